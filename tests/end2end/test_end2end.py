from pathlib import Path

import pytest

from llm_globber import cli


def test_end_to_end_recursive_log_export(tmp_path: Path) -> None:
    root = tmp_path / "logs"
    (root / "sub").mkdir(parents=True)
    (root / "keep.log").write_text("kept\n", encoding="utf-8")
    (root / "sub" / "deep.log").write_text("deep\n\n\n\n\n\nend\n", encoding="utf-8")
    (root / "sub" / "skip.txt").write_text("skipped\n", encoding="utf-8")
    (root / ".hidden").mkdir()
    (root / ".hidden" / "secret.log").write_text("secret\n", encoding="utf-8")
    out = tmp_path / "out"

    exit_code = cli.main(["-o", str(out), "-n", "logs", "-t", "log", "-r", str(root)])

    assert exit_code == 0
    [artifact] = out.iterdir()
    assert artifact.name.startswith("logs_")
    assert artifact.suffix == ".txt"
    text = artifact.read_text(encoding="utf-8")
    assert text.startswith("*Local Files*\n")
    assert f"'''--- {root / 'keep.log'} ---\nkept\n\n'''\n" in text
    assert f"'''--- {root / 'sub' / 'deep.log'} ---\ndeep\n\n\nend\n\n'''\n" in text
    assert "skipped" not in text
    assert "secret" not in text


def test_end_to_end_binary_and_unicode(tmp_path: Path) -> None:
    (tmp_path / "img.dat").write_bytes(b"\x00\x01")
    (tmp_path / "note.txt").write_bytes("naïve\n".encode())
    out = tmp_path / "out"

    exit_code = cli.main(
        ["-o", str(out), "-n", "mixed", "-a", str(tmp_path / "img.dat"), str(tmp_path / "note.txt")],
    )

    assert exit_code == 0
    [artifact] = out.iterdir()
    text = artifact.read_text(encoding="utf-8")
    assert f"'''--- {tmp_path / 'img.dat'} ---\n[Binary file - contents omitted]\n'''\n" in text
    assert "na��ve\n" in text


def test_end_to_end_glob_then_unglob(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    project = tmp_path / "project"
    (project / "pkg").mkdir(parents=True)
    (project / "pkg" / "__init__.py").write_text('"""Package."""\n', encoding="utf-8")
    (project / "pkg" / "core.py").write_text("def run():\n    return 42\n", encoding="utf-8")
    out = tmp_path / "out"

    assert cli.main(["-o", str(out), "-n", "project", "-t", ".py", "-r", "-q", str(project)]) == 0
    assert capsys.readouterr().out == ""
    [artifact] = out.iterdir()

    restored = tmp_path / "restored"
    assert cli.main(["unglob", str(artifact), "-o", str(restored)]) == 0

    core = restored.joinpath(*(project / "pkg" / "core.py").parts[1:])
    assert core.read_text(encoding="utf-8") == "def run():\n    return 42\n"
    assert "Extracted 2 files" in capsys.readouterr().out
