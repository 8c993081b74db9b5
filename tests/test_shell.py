from __future__ import annotations

from pathlib import Path
import subprocess

import pytest

from prdeck.observability import configure_logging
from prdeck.shell import CommandError, _preview, run, spawn


def test_run_success(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    called: dict[str, object] = {}

    def fake_run(*args: object, **kwargs: object) -> subprocess.CompletedProcess[str]:
        called["args"] = args
        called["kwargs"] = kwargs
        return subprocess.CompletedProcess(args=["echo"], returncode=0, stdout="ok", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)

    out = run(["echo", "hello"], cwd=tmp_path, input_text="hi")

    assert out == "ok"
    kwargs = called["kwargs"]
    assert isinstance(kwargs, dict)
    assert kwargs["cwd"] == str(tmp_path)
    assert kwargs["input"] == "hi"
    assert kwargs["check"] is False


def test_run_failure_raises_with_argv_and_stderr(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def fake_run(*args: object, **kwargs: object) -> subprocess.CompletedProcess[str]:
        _ = args, kwargs
        return subprocess.CompletedProcess(args=["bad"], returncode=2, stdout="out", stderr="err")

    monkeypatch.setattr(subprocess, "run", fake_run)
    configure_logging(verbose=True)

    with pytest.raises(CommandError, match="Command failed") as excinfo:
        run(["gh", "pr", "merge"])
    assert excinfo.value.argv == ("gh", "pr", "merge")
    assert excinfo.value.stderr == "err"
    stderr = capsys.readouterr().err
    assert "event=command_failed command=gh pr merge exit_code=2" in stderr
    assert "stderr=err" in stderr
    assert "stdout=out" in stderr


def test_run_without_check_returns_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*args: object, **kwargs: object) -> subprocess.CompletedProcess[str]:
        _ = args, kwargs
        return subprocess.CompletedProcess(args=["x"], returncode=1, stdout="partial", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    assert run(["x"], check=False) == "partial"


def test_spawn_starts_detached_process(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    called: dict[str, object] = {}

    class FakePopen:
        pid = 4242

        def __init__(self, argv: list[str], **kwargs: object) -> None:
            called["argv"] = argv
            called["kwargs"] = kwargs

    monkeypatch.setattr(subprocess, "Popen", FakePopen)
    configure_logging(verbose=True)

    assert spawn(["code", "."], cwd=tmp_path) == 4242
    kwargs = called["kwargs"]
    assert isinstance(kwargs, dict)
    assert kwargs["cwd"] == str(tmp_path)
    assert kwargs["start_new_session"] is True
    assert kwargs["stdin"] is subprocess.DEVNULL
    assert "event=command_spawned" in capsys.readouterr().err


def test_spawn_failure_raises_command_error(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def fake_popen(*args: object, **kwargs: object) -> object:
        _ = args, kwargs
        raise FileNotFoundError("no such file: idea")

    monkeypatch.setattr(subprocess, "Popen", fake_popen)
    configure_logging(verbose=True)

    with pytest.raises(CommandError, match="could not be started") as excinfo:
        spawn(["idea", "."])
    assert excinfo.value.argv == ("idea", ".")
    assert isinstance(excinfo.value.__cause__, FileNotFoundError)
    assert "event=command_spawn_failed command=idea ." in capsys.readouterr().err


def test_preview_handles_empty_and_truncation() -> None:
    assert _preview("") == "<empty>"
    assert _preview("x" * 10, limit=4) == "xxxx..."
    assert _preview("a\nb") == "a\\nb"
