from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import sys
from typing import Final, TextIO


_LOGGER_NAME: Final[str] = "prdeck"
_MAX_VALUE_LEN: Final[int] = 120
_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s"


def configure_logging(
    verbose: bool,
    *,
    state_dir: Path | None = None,
    console: bool = True,
) -> None:
    """Route ``prdeck.*`` loggers to stderr and/or ``<state_dir>/logs``.

    Without ``verbose`` (or without any destination) the package logger is
    silenced so the TUI owns the terminal.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.propagate = False
    for handler in tuple(logger.handlers):
        handler.close()
    logger.handlers.clear()

    handlers: list[logging.Handler] = []
    if verbose and console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if verbose and state_dir is not None:
        handlers.append(_UtcDailyFileHandler(base_dir=state_dir))

    if not handlers:
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.CRITICAL + 1)
        return

    formatter = logging.Formatter(_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def log_event(logger: logging.Logger, event: str, **fields: object) -> None:
    logger.info(_format_event(event, fields))


def log_warning_event(logger: logging.Logger, event: str, **fields: object) -> None:
    logger.warning(_format_event(event, fields))


def _format_event(event: str, fields: dict[str, object]) -> str:
    pairs = [("event", event), *sorted(fields.items(), key=lambda item: item[0])]
    return " ".join(f"{key}={_render_value(value)}" for key, value in pairs)


def _render_value(value: object) -> str:
    if value is None:
        text = "null"
    elif isinstance(value, bool):
        text = str(value).lower()
    elif isinstance(value, int | float):
        text = str(value)
    elif isinstance(value, str):
        text = " ".join(value.split()) or "<empty>"
        if len(text) > _MAX_VALUE_LEN:
            text = f"{text[:_MAX_VALUE_LEN]}..."
    else:
        text = f"<{type(value).__name__}>"
    # Quote anything that would break key=value splitting.
    if "=" in text or any(ch.isspace() for ch in text):
        return json.dumps(text)
    return text


class _UtcDailyFileHandler(logging.Handler):
    def __init__(self, *, base_dir: Path) -> None:
        super().__init__()
        self._logs_dir = base_dir / "logs"
        self._stream: TextIO | None = None
        self._active_date = ""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            stream = self._stream_for_current_date()
            stream.write(f"{self.format(record)}\n")
            stream.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self.acquire()
        try:
            self._close_stream()
            super().close()
        finally:
            self.release()

    def _stream_for_current_date(self) -> TextIO:
        date_key = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        if self._stream is None or self._active_date != date_key:
            self._close_stream()
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            path = self._logs_dir / f"{date_key}.log"
            self._stream = path.open("a", encoding="utf-8")
            self._active_date = date_key
        return self._stream

    def _close_stream(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
