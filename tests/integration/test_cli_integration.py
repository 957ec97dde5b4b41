from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from llm_globber import cli
from llm_globber.config import ExitCode

if TYPE_CHECKING:
    from collections.abc import Iterator

    from pytest_mock import MockerFixture

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


def _denied(path: str, **_: object) -> Iterator[bytes]:
    yield from ()
    raise PermissionError(13, "Permission denied", path)


def _git(repo: Path, *args: str) -> None:
    subprocess.run(  # noqa: S603
        ["git", "-c", "user.name=test", "-c", "user.email=test@example.com", *args],  # noqa: S607
        cwd=repo,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "sample-repo"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("print('tracked')\n", encoding="utf-8")
    (root / "README.md").write_text("# Sample\n", encoding="utf-8")
    _git(root, "init", "-q")
    _git(root, "symbolic-ref", "HEAD", "refs/heads/trunk")
    _git(root, "add", "src/app.py", "README.md")
    _git(root, "commit", "-q", "-m", "init")
    (root / "src" / "untracked.py").write_text("print('untracked')\n", encoding="utf-8")
    return root


@pytest.mark.integration
@requires_git
def test_main_repository_mode_uses_tracked_files(repo: Path, tmp_path: Path) -> None:
    out = tmp_path / "out"

    exit_code = cli.main(["--git", str(repo), "-o", str(out), "-t", ".py"])

    assert exit_code == ExitCode.SUCCESS
    [artifact] = out.iterdir()
    assert artifact.name.startswith("sample-repo_")
    text = artifact.read_text(encoding="utf-8")
    assert "print('tracked')" in text
    assert "untracked" not in text
    assert "README.md" not in text


@pytest.mark.integration
@requires_git
def test_run_repository_mode_reports_branch(repo: Path, tmp_path: Path) -> None:
    settings = cli.parse_args(["--git", str(repo), "-o", str(tmp_path / "out"), "-n", "named"])

    result = cli.run(settings)

    assert result.branch == "trunk"
    assert result.repository == "sample-repo"
    assert result.artifact is not None
    assert result.artifact.name.startswith("named_")
    assert result.stats.processed == 2


@pytest.mark.integration
def test_main_non_repository_is_io_error(tmp_path: Path, mocker: MockerFixture) -> None:
    git = mocker.Mock()
    git.is_working_tree.return_value = False
    mocker.patch.object(cli, "GitCli", return_value=git)

    exit_code = cli.main(["--git", str(tmp_path), "-o", str(tmp_path / "out")])

    assert exit_code == ExitCode.IO_ERROR
    assert not (tmp_path / "out").exists()


@pytest.mark.integration
def test_main_no_matching_files_is_runtime_error(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("x\n", encoding="utf-8")

    exit_code = cli.main(["-o", str(tmp_path / "out"), "-n", "p", "-t", ".rs", "-r", str(tmp_path)])

    assert exit_code == ExitCode.RUNTIME_ERROR
    assert not (tmp_path / "out").exists()


@pytest.mark.integration
def test_main_all_files_unreadable_is_runtime_error(tmp_path: Path, mocker: MockerFixture) -> None:
    target = tmp_path / "a.txt"
    target.write_text("x\n", encoding="utf-8")
    mocker.patch("llm_globber.serializer.iter_record", side_effect=_denied)

    exit_code = cli.main(["-o", str(tmp_path / "out"), "-n", "p", str(target)])

    assert exit_code == ExitCode.RUNTIME_ERROR
    assert list((tmp_path / "out").iterdir()) == []


@pytest.mark.integration
def test_main_parallel_matches_sequential(tmp_path: Path) -> None:
    src = tmp_path / "src"
    src.mkdir()
    for i in range(30):
        (src / f"m{i:02}.py").write_text(f"value = {i}\n\n\n\n\n", encoding="utf-8")

    assert cli.main(["-o", str(tmp_path / "seq"), "-n", "p", "-r", str(src)]) == ExitCode.SUCCESS
    assert cli.main(["-o", str(tmp_path / "par"), "-n", "p", "-r", "-j", "4", str(src)]) == ExitCode.SUCCESS

    [seq] = (tmp_path / "seq").iterdir()
    [par] = (tmp_path / "par").iterdir()
    assert seq.read_bytes() == par.read_bytes()
