"""Tests for structured logging configuration."""

import json
import logging

import structlog
from hypothesis import given, settings
from hypothesis import strategies as st
from structlog.testing import capture_logs

from src.utils.logging_config import NOISY_LOGGERS, bind_job_context, clear_job_context, configure_logging
from src.utils.retry import linear_backoff_retry


def _reset(handlers_before: set[logging.Handler]) -> None:
    structlog.reset_defaults()
    clear_job_context()
    for handler in set(logging.root.handlers) - handlers_before:
        logging.root.removeHandler(handler)
        handler.close()


def test_json_file_output_contains_required_fields(tmp_path):
    log_file = tmp_path / "app.log"
    handlers_before = set(logging.root.handlers)

    configure_logging(log_level="INFO", json_logs=True, log_file=str(log_file))
    try:
        bind_job_context(job_id="abc123", subject="octo/hello")
        structlog.stdlib.get_logger("test").error("sync_failed", error="boom")
    finally:
        _reset(handlers_before)

    lines = [line for line in log_file.read_text().splitlines() if line.strip()]
    event = json.loads(lines[-1])

    assert event["event"] == "sync_failed"
    assert event["level"] == "error"
    assert event["error"] == "boom"
    assert event["job_id"] == "abc123"
    assert event["subject"] == "octo/hello"
    assert "timestamp" in event


def test_noisy_loggers_quieted():
    handlers_before = set(logging.root.handlers)
    configure_logging(log_level="DEBUG", json_logs=False)
    try:
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level >= logging.WARNING
    finally:
        _reset(handlers_before)


@given(st.text(min_size=1, max_size=50))
@settings(max_examples=20, deadline=None)
def test_property_retry_events_are_logged(message: str):
    """Property 1: Every retry logs a warning and exhaustion logs an error."""

    @linear_backoff_retry(max_retries=2, base_delay=0.0, exceptions=(ValueError,), sleep=lambda _: None)
    def fails():
        raise ValueError(message)

    with capture_logs() as events:
        try:
            fails()
        except ValueError:
            pass

    retries = [e for e in events if e["event"] == "retrying_after_error"]
    exhausted = [e for e in events if e["event"] == "max_retries_reached"]

    assert [e["attempt"] for e in retries] == [1, 2]
    assert all(e["log_level"] == "warning" for e in retries)
    assert len(exhausted) == 1
    assert exhausted[0]["log_level"] == "error"
    assert exhausted[0]["error"] == message
