"""
Tests for input sanitization utilities and log formatting.
"""
import asyncio
import json
import logging

import pytest
from insight_weaver.core.logging import JSONFormatter, TextFormatter
from insight_weaver.core.middleware import correlation_scope
from insight_weaver.core.sanitization import sanitize_for_logging, strip_control_characters


def test_strip_control_characters():
    """Control characters are removed, printable text is kept."""
    assert strip_control_characters("Reve\x00nue\t") == "Revenue"
    assert strip_control_characters("Café €") == "Café €"


def test_sanitize_for_logging():
    """Test log sanitization."""
    # Newlines become spaces so a value cannot forge a log line
    assert sanitize_for_logging("title\nERROR fake entry") == "title ERROR fake entry"
    assert sanitize_for_logging("a\r\nb") == "a  b"

    # Control characters
    assert "\x00" not in sanitize_for_logging("test\x00value")

    # Long values
    long_value = "a" * 300
    sanitized = sanitize_for_logging(long_value)
    assert len(sanitized) == 203
    assert sanitized.endswith("...")

    assert sanitize_for_logging("") == ""
    assert sanitize_for_logging(None) == ""


def _record(message):
    return logging.LogRecord("insight_weaver.test", logging.INFO, __file__, 10, message, None, None)


def test_json_formatter_includes_extra_fields():
    record = _record("Pipeline produced 2 view(s)")
    record.duration = 0.25
    record.correlation_id = "abc"

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "Pipeline produced 2 view(s)"
    assert data["level"] == "INFO"
    assert data["correlation_id"] == "abc"
    assert data["duration"] == 0.25


def test_text_formatter_defaults_correlation_id():
    line = TextFormatter().format(_record("started"))
    assert "[system]" in line
    assert line.endswith("started")


@pytest.mark.parametrize("correlation_id", ["req-1", "req-2"])
def test_correlation_scope_stamps_records(correlation_id):
    with correlation_scope(correlation_id):
        record = logging.getLogRecordFactory()("x", logging.INFO, __file__, 1, "m", None, None)
    assert record.correlation_id == correlation_id

    after = logging.getLogRecordFactory()("x", logging.INFO, __file__, 1, "m", None, None)
    assert not hasattr(after, "correlation_id")


@pytest.mark.asyncio
async def test_interleaved_requests_keep_their_own_correlation_ids():
    factory = logging.getLogRecordFactory
    a_entered, b_entered, a_done = asyncio.Event(), asyncio.Event(), asyncio.Event()
    seen = {}

    async def request_a():
        with correlation_scope("req-A"):
            a_entered.set()
            await b_entered.wait()
            seen["A"] = factory()("x", logging.INFO, __file__, 1, "m", None, None).correlation_id
        a_done.set()

    async def request_b():
        await a_entered.wait()
        with correlation_scope("req-B"):
            b_entered.set()
            # A leaves its scope while B is still inside its own
            await a_done.wait()
            seen["B"] = factory()("x", logging.INFO, __file__, 1, "m", None, None).correlation_id

    await asyncio.gather(request_a(), request_b())

    assert seen == {"A": "req-A", "B": "req-B"}
    after = factory()("x", logging.INFO, __file__, 1, "m", None, None)
    assert not hasattr(after, "correlation_id")
