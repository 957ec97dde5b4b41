from __future__ import annotations

import signal
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from llm_globber import __version__, cli
from llm_globber.cancellation import CancellationToken
from llm_globber.config import ExitCode, ProcessingStats, RunOutcome, RunResult
from llm_globber.exceptions import (
    ArgumentError,
    GitCommandError,
    NoFilesAdmittedError,
    OutputArtifactError,
)
from llm_globber.settings import Settings

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


def _base_args(tmp_path: Path) -> list[str]:
    return ["-o", str(tmp_path / "out"), "-n", "proj", str(tmp_path)]


@pytest.mark.unit
def test_parse_args_maps_flags_to_settings(tmp_path: Path) -> None:
    settings = cli.parse_args(
        [
            "-o",
            "out",
            "-n",
            "proj",
            "-t",
            ".c,.h",
            "-r",
            "-d",
            "-s",
            "7",
            "--pattern",
            "test*",
            "-j",
            "4",
            "--max-files",
            "10",
            "--no-cleanup",
            "--max-newlines",
            "1",
            "-e",
            "-p",
            "a.c",
            "src",
        ],
    )

    assert settings.output_dir == Path("out")
    assert settings.name == "proj"
    assert settings.types == ".c,.h"
    assert settings.recursive is True
    assert settings.include_dot_files is True
    assert settings.max_size_mb == 7
    assert settings.pattern == "test*"
    assert settings.workers == 4
    assert settings.max_files == 10
    assert settings.cleanup is False
    assert settings.max_newlines == 1
    assert settings.abort_on_error is True
    assert settings.progress is True
    assert settings.inputs == [Path("a.c"), Path("src")]


@pytest.mark.unit
def test_parse_args_leaves_unset_flags_to_defaults() -> None:
    settings = cli.parse_args(["-o", "out", "-n", "proj", "a.c"])

    assert settings.all_files is False
    assert settings.cleanup is True
    assert settings.max_size_mb == 1024


@pytest.mark.unit
def test_parse_args_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--version"])

    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


@pytest.mark.unit
def test_parse_args_requires_name() -> None:
    with pytest.raises(ArgumentError, match="Output filename"):
        cli.parse_args(["-o", "out", "a.c"])


@pytest.mark.unit
def test_parse_args_profile_is_overridden_by_flags(tmp_path: Path) -> None:
    profile = tmp_path / "profile.yaml"
    profile.write_text("name: from-profile\ntypes: .py\nrecursive: true\n", encoding="utf-8")

    settings = cli.parse_args(["--config", str(profile), "-o", "out", "-t", ".rs", "src"])

    assert settings.name == "from-profile"
    assert settings.types == ".rs"
    assert settings.recursive is True


@pytest.mark.unit
def test_main_argument_error_exit_code() -> None:
    assert cli.main(["-o", "out"]) == ExitCode.ARGUMENT_ERROR


@pytest.mark.unit
def test_main_dispatches_unglob(mocker: MockerFixture) -> None:
    unglob_main = mocker.patch.object(cli.unglob, "main", return_value=0)

    assert cli.main(["unglob", "artifact.txt", "-o", "dest"]) == 0
    unglob_main.assert_called_once_with(["artifact.txt", "-o", "dest"])


@pytest.mark.unit
@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (NoFilesAdmittedError(), ExitCode.RUNTIME_ERROR),
        (OutputArtifactError(path=Path("out"), reason="denied"), ExitCode.IO_ERROR),
        (GitCommandError(command="git ls-files", returncode=1, stdout="", stderr="boom"), ExitCode.IO_ERROR),
        (PermissionError("denied"), ExitCode.IO_ERROR),
        (MemoryError(), ExitCode.MEMORY_ERROR),
        (KeyboardInterrupt(), ExitCode.INTERRUPTED),
    ],
)
def test_main_maps_errors_to_exit_codes(
    tmp_path: Path,
    mocker: MockerFixture,
    error: BaseException,
    expected: ExitCode,
) -> None:
    mocker.patch.object(cli, "run", side_effect=error)

    assert cli.main(_base_args(tmp_path)) == expected


@pytest.mark.unit
def test_main_cancelled_run_exit_code(tmp_path: Path, mocker: MockerFixture) -> None:
    mocker.patch.object(cli, "run", return_value=RunResult(outcome=RunOutcome.CANCELLED))

    assert cli.main(_base_args(tmp_path)) == ExitCode.INTERRUPTED


@pytest.mark.unit
def test_main_reports_artifact(
    tmp_path: Path,
    mocker: MockerFixture,
    capsys: pytest.CaptureFixture[str],
) -> None:
    artifact = tmp_path / "out" / "proj_1.txt"
    mocker.patch.object(
        cli,
        "run",
        return_value=RunResult(
            outcome=RunOutcome.SUCCESS,
            artifact=artifact,
            stats=ProcessingStats(processed=3, failed=1),
        ),
    )

    assert cli.main(_base_args(tmp_path)) == ExitCode.SUCCESS
    assert capsys.readouterr().out.strip() == f"Wrote {artifact} files=3 failed=1"


@pytest.mark.unit
def test_main_quiet_prints_nothing(
    tmp_path: Path,
    mocker: MockerFixture,
    capsys: pytest.CaptureFixture[str],
) -> None:
    mocker.patch.object(
        cli,
        "run",
        return_value=RunResult(outcome=RunOutcome.SUCCESS, artifact=tmp_path / "a.txt"),
    )

    assert cli.main([*_base_args(tmp_path), "-q"]) == ExitCode.SUCCESS
    assert capsys.readouterr().out == ""


@pytest.mark.unit
def test_run_repository_mode_names_artifact_after_repository(tmp_path: Path, mocker: MockerFixture) -> None:
    (tmp_path / "main.py").write_text("print('hi')\n", encoding="utf-8")
    git = mocker.Mock()
    git.is_working_tree.return_value = True
    git.tracked_files.return_value = ["main.py"]
    git.repository_name.return_value = "tool"
    git.current_branch.return_value = "main"
    settings = Settings(output_dir=tmp_path / "out", git=tmp_path)

    result = cli.run(settings, git_source=git)

    assert result.outcome is RunOutcome.SUCCESS
    assert result.artifact is not None
    assert result.artifact.name.startswith("tool_")
    assert (result.repository, result.branch) == ("tool", "main")


@pytest.mark.unit
def test_run_cancelled_during_collection(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a\n", encoding="utf-8")
    cancel = CancellationToken()
    cancel.cancel()
    settings = Settings(output_dir=tmp_path / "out", name="p", inputs=[tmp_path], recursive=True)

    result = cli.run(settings, cancel=cancel)

    assert result.outcome is RunOutcome.CANCELLED
    assert not (tmp_path / "out").exists()


@pytest.mark.unit
def test_print_progress(capsys: pytest.CaptureFixture[str]) -> None:
    cli.print_progress(ProcessingStats(processed=9, failed=1, elapsed=2.0), 10)

    err = capsys.readouterr().err
    assert err == "\rProcessed 9/10 files (4.5 files/sec), 1 failed\n"


@pytest.mark.unit
def test_signal_cancellation_sets_token_then_interrupts() -> None:
    cancel = CancellationToken()
    before = signal.getsignal(signal.SIGINT)

    with cli.SignalCancellation(cancel):
        handler = signal.getsignal(signal.SIGINT)
        assert callable(handler)
        handler(signal.SIGINT, None)
        assert cancel.cancelled is True
        with pytest.raises(KeyboardInterrupt):
            handler(signal.SIGINT, None)

    assert signal.getsignal(signal.SIGINT) == before
