"""Tests for logging configuration module.

Verifies that logging configuration:
1. Filters out secrets, bot tokens and PII (BLOCKED_FIELDS)
2. Normalizes high-cardinality fields (URLs to endpoints)
3. Produces valid JSON output
4. Optionally writes a size-rotated log file
"""

from __future__ import annotations

import io
import json
import logging
import logging.handlers
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

from tradewatch.logging_config import (
    BLOCKED_FIELDS,
    JsonFormatter,
    SimpleFormatter,
    _filter_log_record,
    _normalize_url,
    _sanitize_text,
    get_logger,
    setup_logging,
)

BOT_TOKEN = "123456789:AAHdqTcvCH1vGWJxfSeofSAs0K5PALDsaw"


def _record(msg: str = "test", level: int = logging.INFO, name: str = "test") -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


class TestBlockedFields:
    """Test that sensitive fields are properly blocked."""

    def test_blocked_fields_not_empty(self) -> None:
        """BLOCKED_FIELDS should contain security-relevant fields."""
        assert "token" in BLOCKED_FIELDS
        assert "secret" in BLOCKED_FIELDS
        assert "password" in BLOCKED_FIELDS

    def test_filter_removes_bot_token(self) -> None:
        """Any field whose name contains token is removed."""
        record = {"bot_token": BOT_TOKEN, "chat_id": "-100"}
        filtered = _filter_log_record(record)
        assert "bot_token" not in filtered
        assert filtered["chat_id"] == "-100"

    def test_filter_case_insensitive(self) -> None:
        record = {"TELEGRAM_BOT_TOKEN": "x", "Password": "y", "kind": "report"}
        filtered = _filter_log_record(record)
        assert filtered == {"kind": "report"}


class TestSanitizeText:
    """Tests for _sanitize_text function."""

    def test_bot_token_redacted(self) -> None:
        result = _sanitize_text(f"token is {BOT_TOKEN} ok")
        assert BOT_TOKEN not in result
        assert "AAHdqTcvCH1vGWJxfSeofSAs0K5PALDsaw" not in result

    def test_bot_token_in_api_url_redacted(self) -> None:
        """Bot API URLs embed the token in the path."""
        result = _sanitize_text(f"POST https://api.telegram.org/bot{BOT_TOKEN}/sendMessage failed")
        assert BOT_TOKEN not in result
        assert "/sendMessage" in result

    def test_url_query_string_removed(self) -> None:
        result = _sanitize_text("GET https://nof1.ai/api/account-totals?lastHourlyMarker=42")
        assert "lastHourlyMarker" not in result
        assert "/api/account-totals" in result

    def test_ip_and_email_redacted(self) -> None:
        result = _sanitize_text("from 10.0.0.1 by user@example.com")
        assert "[IP]" in result
        assert "[EMAIL]" in result

    def test_safe_text_unchanged(self) -> None:
        text = "A BTC opened long 5 (leverage: 3x, entry: 100, current: 101)"
        assert _sanitize_text(text) == text

    def test_empty_string_unchanged(self) -> None:
        assert _sanitize_text("") == ""


class TestHighCardinalityFields:
    """Test normalization of high-cardinality fields."""

    def test_url_normalized_to_endpoint(self) -> None:
        record = {"url": "https://nof1.ai/api/account-totals?lastHourlyMarker=10"}
        filtered = _filter_log_record(record)
        assert "url" not in filtered
        assert filtered["endpoint"] == "/api/account-totals"

    def test_normalize_url_hides_bot_token(self) -> None:
        result = _normalize_url(f"https://api.telegram.org/bot{BOT_TOKEN}/getUpdates")
        assert result == "/bot[BOT_TOKEN]/getUpdates"

    def test_body_redacted(self) -> None:
        filtered = _filter_log_record({"body": '{"accountTotals": []}'})
        assert filtered["body"] == "[BODY]"

    def test_payload_redacted(self) -> None:
        filtered = _filter_log_record({"payload": {"accountTotals": []}})
        assert filtered["payload"] == "[PAYLOAD]"


class TestFilterLogRecord:
    """Test the _filter_log_record function."""

    def test_safe_fields_preserved(self) -> None:
        record = {"events": 3, "ratio": 0.5, "ok": True, "model_id": "gpt-5"}
        assert _filter_log_record(record) == record

    def test_list_capped_at_10(self) -> None:
        filtered = _filter_log_record({"items": list(range(15))})
        assert filtered["items"] == "[list:15 items]"

    def test_nested_dict_filtered(self) -> None:
        record = {"config": {"chat_id": "-100", "bot_token": BOT_TOKEN}}
        filtered = _filter_log_record(record)
        assert filtered["config"] == {"chat_id": "-100"}


class TestFormatters:
    """Test JSON and simple formatters."""

    def test_json_required_fields(self) -> None:
        parsed = json.loads(JsonFormatter().format(_record("hello world", name="mylogger")))
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "mylogger"
        assert parsed["msg"] == "hello world"
        assert parsed["ts"].endswith("+00:00")

    def test_json_warning_includes_location(self) -> None:
        parsed = json.loads(JsonFormatter().format(_record(level=logging.WARNING)))
        assert parsed["file"] == "test.py"
        assert parsed["line"] == 10

    def test_json_extra_fields_filtered(self) -> None:
        record = _record()
        record.bot_token = BOT_TOKEN
        record.events = 4
        parsed = json.loads(JsonFormatter().format(record))
        assert "bot_token" not in parsed
        assert parsed["events"] == 4

    def test_json_message_sanitized(self) -> None:
        output = JsonFormatter().format(_record(f"url /bot{BOT_TOKEN}/sendMessage"))
        assert BOT_TOKEN not in output

    def test_simple_format(self) -> None:
        record = _record("cycle done")
        record.events = 2
        output = SimpleFormatter().format(record)
        assert "INFO" in output
        assert "cycle done" in output
        assert "events=2" in output

    def test_simple_includes_exception(self) -> None:
        try:
            raise RuntimeError("kaboom")
        except RuntimeError:
            record = logging.LogRecord(
                name="test",
                level=logging.ERROR,
                pathname="test.py",
                lineno=1,
                msg="failed",
                args=(),
                exc_info=sys.exc_info(),
            )
        output = SimpleFormatter().format(record)
        assert "RuntimeError: kaboom" in output


class TestSetupLogging:
    """Test the setup_logging function."""

    def test_setup_logging_json(self) -> None:
        stream = io.StringIO()
        setup_logging(json_format=True, stream=stream)

        get_logger("test_json").info("test message", extra={"model_id": "A"})

        parsed = json.loads(stream.getvalue().strip())
        assert parsed["msg"] == "test message"
        assert parsed["model_id"] == "A"

    def test_setup_logging_level_string(self) -> None:
        stream = io.StringIO()
        setup_logging(level="warning", stream=stream)

        logger = get_logger("test_level")
        logger.info("info message")
        logger.warning("warning message")

        output = stream.getvalue()
        assert "info message" not in output
        assert "warning message" in output

    def test_setup_logging_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "trading_monitor.log"
        setup_logging(stream=io.StringIO(), log_file=log_file, max_bytes=1024, backup_count=2)

        get_logger("test_file").info("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        file_handlers = [
            h
            for h in logging.getLogger().handlers
            if isinstance(h, logging.handlers.RotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 1024
        assert file_handlers[0].backupCount == 2
        assert "written to file" in log_file.read_text(encoding="utf-8")

    def test_setup_logging_replaces_handlers(self) -> None:
        setup_logging(stream=io.StringIO())
        setup_logging(stream=io.StringIO())
        assert len(logging.getLogger().handlers) == 1
