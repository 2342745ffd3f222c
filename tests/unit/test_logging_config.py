"""logging_config / observability モジュールのテスト"""

import json
import logging
import os
import sys
from unittest.mock import patch

import pytest

from tripsync.domain.errors import PermissionDenied
from tripsync.logging_config import CloudLoggingFormatter, TextFormatter, setup_logging
from tripsync.observability import fields, operation


def _make_record(
    message: str = "test message",
    level: int = logging.INFO,
    exc_info=None,
    extra_fields: dict | None = None,
) -> logging.LogRecord:
    """テスト用の LogRecord を生成するヘルパー"""
    record = logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="",
        lineno=0,
        msg=message,
        args=(),
        exc_info=exc_info,
    )
    if extra_fields is not None:
        record.extra_fields = extra_fields
    return record


class TestCloudLoggingFormatter:
    """CloudLoggingFormatter の単体テスト"""

    def test_format_returns_valid_json(self):
        parsed = json.loads(CloudLoggingFormatter().format(_make_record("hello")))
        assert parsed["message"] == "hello"

    @pytest.mark.parametrize(
        ("level", "severity"),
        [
            (logging.DEBUG, "DEBUG"),
            (logging.INFO, "INFO"),
            (logging.WARNING, "WARNING"),
            (logging.ERROR, "ERROR"),
            (logging.CRITICAL, "CRITICAL"),
        ],
    )
    def test_severity_mapping(self, level, severity):
        parsed = json.loads(CloudLoggingFormatter().format(_make_record(level=level)))
        assert parsed["severity"] == severity

    def test_required_fields_present(self):
        """必須フィールド (severity, message, logger, timestamp) が含まれること"""
        parsed = json.loads(CloudLoggingFormatter().format(_make_record()))

        assert {"severity", "message", "logger", "timestamp"} <= set(parsed)
        assert parsed["logger"] == "test.logger"

    def test_exception_info_included(self):
        try:
            raise ValueError("test error")
        except ValueError:
            exc_info = sys.exc_info()

        parsed = json.loads(
            CloudLoggingFormatter().format(_make_record(exc_info=exc_info))
        )

        assert "ValueError" in parsed["exception"]
        assert "test error" in parsed["exception"]

    def test_no_exception_field_when_no_exception(self):
        parsed = json.loads(CloudLoggingFormatter().format(_make_record()))
        assert "exception" not in parsed

    def test_extra_fields_are_top_level(self):
        """構造化フィールドが JSON のトップレベルに展開されること"""
        record = _make_record(extra_fields={"function": "acceptTripInvite", "trip_id": "T1"})

        parsed = json.loads(CloudLoggingFormatter().format(record))

        assert parsed["function"] == "acceptTripInvite"
        assert parsed["trip_id"] == "T1"


class TestTextFormatter:
    def test_appends_extra_fields(self):
        record = _make_record("Function called", extra_fields={"user_id": "alice"})

        line = TextFormatter("%(message)s").format(record)

        assert line == "Function called user_id=alice"


class TestSetupLogging:
    """setup_logging() の動作テスト"""

    def test_uses_json_formatter_in_k_service_env(self):
        with patch.dict(
            "os.environ", {"K_SERVICE": "tripsync-api", "LOG_FORMAT": ""}, clear=False
        ):
            setup_logging()

        root_logger = logging.getLogger()
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, CloudLoggingFormatter)

    def test_uses_text_formatter_in_local_env(self):
        env_without_cloud = {
            k: v
            for k, v in os.environ.items()
            if k not in ("K_SERVICE", "CLOUD_RUN_JOB", "LOG_FORMAT")
        }
        with patch.dict("os.environ", env_without_cloud, clear=True):
            setup_logging()

        root_logger = logging.getLogger()
        assert isinstance(root_logger.handlers[0].formatter, TextFormatter)

    def test_log_format_overrides_environment(self):
        """LOG_FORMAT=text なら Cloud Run 上でもテキスト出力になること"""
        with patch.dict(
            "os.environ", {"K_SERVICE": "tripsync-api", "LOG_FORMAT": "text"}, clear=False
        ):
            setup_logging()

        assert isinstance(logging.getLogger().handlers[0].formatter, TextFormatter)

    def test_log_level_respected(self):
        with patch.dict("os.environ", {"LOG_LEVEL": "DEBUG"}, clear=False):
            setup_logging()

        assert logging.getLogger().level == logging.DEBUG

    def test_handlers_cleared_on_reinitialize(self):
        """setup_logging() を複数回呼んでもハンドラが重複しないこと"""
        setup_logging()
        setup_logging()

        assert len(logging.getLogger().handlers) == 1


class TestOperation:
    def _records(self, caplog):
        return [r for r in caplog.records if r.name == "tripsync.operations"]

    def test_logs_call_and_success(self, caplog):
        caplog.set_level(logging.INFO, logger="tripsync.operations")

        with operation("sendFriendRequest", "alice", to_email="bob@example.com") as result:
            result["already"] = False

        called, succeeded = self._records(caplog)
        assert called.getMessage() == "Function called: sendFriendRequest"
        assert called.extra_fields["user_id"] == "alice"
        assert succeeded.extra_fields["status"] == "success"
        assert succeeded.extra_fields["already"] is False

    def test_domain_error_logged_as_warning_and_reraised(self, caplog):
        caplog.set_level(logging.INFO, logger="tripsync.operations")

        with pytest.raises(PermissionDenied):
            with operation("inviteFriendToTrip", "bob", trip_id="T1"):
                raise PermissionDenied("Insufficient role.")

        failed = self._records(caplog)[-1]
        assert failed.levelno == logging.WARNING
        assert failed.extra_fields["error_code"] == "permission-denied"
        assert failed.extra_fields["trip_id"] == "T1"

    def test_unexpected_error_logged_with_traceback(self, caplog):
        caplog.set_level(logging.INFO, logger="tripsync.operations")

        with pytest.raises(RuntimeError):
            with operation("searchUsers", "alice"):
                raise RuntimeError("boom")

        failed = self._records(caplog)[-1]
        assert failed.levelno == logging.ERROR
        assert failed.exc_info is not None

    def test_fields_wraps_extra(self):
        assert fields(a=1) == {"extra_fields": {"a": 1}}
