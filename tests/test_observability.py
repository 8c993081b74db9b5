from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
import io
import logging
from pathlib import Path

import pytest

from prdeck import observability
from prdeck.observability import configure_logging, log_event, log_warning_event


@pytest.fixture(autouse=True)
def restore_prdeck_logger_state() -> Iterator[None]:
    logger = logging.getLogger("prdeck")
    original_handlers = list(logger.handlers)
    original_level = logger.level
    original_propagate = logger.propagate
    try:
        yield
    finally:
        for handler in logger.handlers:
            if handler not in original_handlers:
                handler.close()
        logger.handlers.clear()
        for handler in original_handlers:
            logger.addHandler(handler)
        logger.setLevel(original_level)
        logger.propagate = original_propagate


def test_configure_logging_quiet_mode_installs_null_handler(tmp_path: Path) -> None:
    configure_logging(verbose=False)
    configure_logging(verbose=False, state_dir=tmp_path)
    logger = logging.getLogger("prdeck")
    assert logger.propagate is False
    assert logger.level > logging.CRITICAL
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.NullHandler)
    assert not (tmp_path / "logs").exists()


def test_configure_logging_without_console_or_state_dir_is_quiet() -> None:
    configure_logging(verbose=True, console=False)
    logger = logging.getLogger("prdeck")
    assert [type(handler) for handler in logger.handlers] == [logging.NullHandler]


def test_configure_logging_verbose_mode_is_idempotent(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(verbose=True)
    configure_logging(verbose=True)
    logger = logging.getLogger("prdeck")
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1

    logging.getLogger("prdeck.tests.verbose").info("event=cursor_moved row=3")
    stderr = capsys.readouterr().err
    assert stderr.count("event=cursor_moved row=3") == 1
    assert "prdeck.tests.verbose" in stderr


def test_configure_logging_writes_utc_daily_file(tmp_path: Path) -> None:
    configure_logging(verbose=True, state_dir=tmp_path, console=False)
    logging.getLogger("prdeck.tests.file").info("event=session_saved repos=2")

    date_key = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    log_path = tmp_path / "logs" / f"{date_key}.log"
    assert log_path.exists()
    assert "event=session_saved repos=2" in log_path.read_text(encoding="utf-8")

    configure_logging(verbose=True, state_dir=tmp_path)
    assert [type(handler) for handler in logging.getLogger("prdeck").handlers] == [
        logging.StreamHandler,
        observability._UtcDailyFileHandler,
    ]


def test_utc_daily_file_handler_handles_emit_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    handler = observability._UtcDailyFileHandler(base_dir=Path("/tmp"))
    called: dict[str, object] = {}

    monkeypatch.setattr(
        handler,
        "_stream_for_current_date",
        lambda: (_ for _ in ()).throw(RuntimeError("boom")),
    )
    monkeypatch.setattr(handler, "handleError", lambda record: called.setdefault("record", record))

    record = logging.LogRecord(
        name="prdeck.tests.observability",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="event=session_saved repos=1",
        args=(),
        exc_info=None,
    )
    handler.emit(record)
    assert "record" in called


def test_log_event_formats_and_normalizes_fields() -> None:
    logger = logging.getLogger("prdeck.tests.observability")
    logger.handlers.clear()
    stream = io.StringIO()
    logger.addHandler(logging.StreamHandler(stream))
    logger.setLevel(logging.INFO)
    logger.propagate = False

    log_event(
        logger,
        "test_event",
        b=2,
        a="multi\nline value",
        none_value=None,
        bool_value=True,
        empty="   ",
        long_text="x" * 121,
        complex_value={"k": "v"},
        equals="a=b",
    )
    log_warning_event(logger, "warned", reason="slow")

    first, second = stream.getvalue().strip().splitlines()
    assert first.startswith("event=test_event a=")
    assert 'a="multi line value"' in first
    assert "b=2" in first
    assert "bool_value=true" in first
    assert "complex_value=<dict>" in first
    assert "empty=<empty>" in first
    assert 'equals="a=b"' in first
    assert f"long_text={'x' * 120}..." in first
    assert "none_value=null" in first
    assert second == "event=warned reason=slow"
