from __future__ import annotations

from pathlib import Path
import logging
import subprocess

from prdeck.observability import log_event


class CommandError(RuntimeError):
    """A subprocess exited non-zero; carries the captured output."""

    def __init__(self, message: str, *, argv: tuple[str, ...] = (), stderr: str = "") -> None:
        super().__init__(message)
        self.argv = argv
        self.stderr = stderr


LOGGER = logging.getLogger("prdeck.shell")


def _preview(text: str, *, limit: int = 200) -> str:
    compact = text.replace("\n", "\\n").strip()
    if not compact:
        return "<empty>"
    if len(compact) <= limit:
        return compact
    return f"{compact[:limit]}..."


def run(
    argv: list[str],
    *,
    cwd: Path | None = None,
    input_text: str | None = None,
    check: bool = True,
) -> str:
    proc = subprocess.run(
        argv,
        cwd=str(cwd) if cwd else None,
        input=input_text,
        text=True,
        capture_output=True,
        check=False,
    )
    if check and proc.returncode != 0:
        LOGGER.error(
            "event=command_failed command=%s exit_code=%s stderr=%s stdout=%s",
            " ".join(argv),
            proc.returncode,
            _preview(proc.stderr),
            _preview(proc.stdout),
        )
        raise CommandError(
            "Command failed\n"
            f"cmd: {' '.join(argv)}\n"
            f"exit: {proc.returncode}\n"
            f"stdout:\n{proc.stdout}\n"
            f"stderr:\n{proc.stderr}",
            argv=tuple(argv),
            stderr=proc.stderr,
        )
    return proc.stdout


def spawn(argv: list[str], *, cwd: Path | None = None) -> int:
    """Start a detached process (editor, browser helper) and return its pid."""
    try:
        proc = subprocess.Popen(
            argv,
            cwd=str(cwd) if cwd else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as exc:
        LOGGER.error(
            "event=command_spawn_failed command=%s error=%s",
            " ".join(argv),
            _preview(str(exc)),
        )
        raise CommandError(
            f"Command could not be started\ncmd: {' '.join(argv)}\nerror: {exc}",
            argv=tuple(argv),
        ) from exc
    log_event(LOGGER, "command_spawned", command=" ".join(argv), pid=proc.pid)
    return proc.pid
