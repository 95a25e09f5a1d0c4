"""Tests for structured logging configuration."""

import json
import logging
import sys
from io import StringIO

import pytest

from speedyvan_verify.logging_config import (
    REDACTED_VALUE,
    JsonFormatter,
    StructuredLogger,
    TextFormatter,
    correlation_id_ctx,
    get_logger,
    setup_logging,
)


def make_record(
    msg: str = "OTP issued",
    level: int = logging.INFO,
    exc_info=None,
    **extra_fields,
) -> logging.LogRecord:
    record = logging.LogRecord(
        name="speedyvan_verify.services.otp",
        level=level,
        pathname="/app/speedyvan_verify/services/otp.py",
        lineno=134,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    record.funcName = "issue"
    if extra_fields:
        record.extra_fields = extra_fields
    return record


@pytest.fixture
def correlation_id():
    token = correlation_id_ctx.set("booking-42")
    yield "booking-42"
    correlation_id_ctx.reset(token)


class TestJsonFormatter:
    """Tests for JSON log formatting."""

    def test_basic_keys(self):
        parsed = json.loads(JsonFormatter(service_name="verify-test").format(make_record()))

        assert parsed["level"] == "INFO"
        assert parsed["service"] == "verify-test"
        assert parsed["message"] == "OTP issued"
        assert parsed["logger"] == "speedyvan_verify.services.otp"
        assert "timestamp" in parsed
        assert "location" not in parsed

    def test_correlation_id(self, correlation_id):
        parsed = json.loads(JsonFormatter().format(make_record()))

        assert parsed["correlation_id"] == correlation_id

    def test_no_correlation_id_outside_request(self):
        parsed = json.loads(JsonFormatter().format(make_record()))

        assert "correlation_id" not in parsed

    def test_extra_fields_merged(self):
        record = make_record(phone="079***297", purpose="login")

        parsed = json.loads(JsonFormatter().format(record))

        assert parsed["phone"] == "079***297"
        assert parsed["purpose"] == "login"

    def test_error_includes_location(self):
        parsed = json.loads(
            JsonFormatter().format(make_record("SMS failed", level=logging.ERROR))
        )

        assert parsed["location"] == {
            "file": "/app/speedyvan_verify/services/otp.py",
            "line": 134,
            "function": "issue",
        }

    def test_exception_text(self):
        try:
            raise RuntimeError("gateway down")
        except RuntimeError:
            record = make_record("SMS failed", logging.ERROR, sys.exc_info())

        parsed = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: gateway down" in parsed["exception"]


class TestTextFormatter:
    """Tests for text log formatting."""

    def test_basic_line(self):
        output = TextFormatter(service_name="verify-test").format(make_record())

        assert " - verify-test - INFO - [-] - OTP issued" in output

    def test_correlation_id(self, correlation_id):
        output = TextFormatter().format(make_record())

        assert f"[{correlation_id}]" in output

    def test_extra_fields_as_pairs(self):
        output = TextFormatter().format(make_record(purpose="login", attempts=2))

        assert output.endswith("OTP issued purpose=login attempts=2")


class TestRedaction:
    """Codes and credentials never reach the log stream."""

    def _emit(self, formatter: logging.Formatter, **fields) -> str:
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(formatter)
        std_logger = logging.getLogger("test.redaction")
        std_logger.addHandler(handler)
        std_logger.setLevel(logging.INFO)
        std_logger.propagate = False
        try:
            StructuredLogger("test.redaction").info("OTP issued", **fields)
        finally:
            std_logger.removeHandler(handler)
        return stream.getvalue()

    @pytest.mark.parametrize(
        "field", ["code", "otp", "candidate_code", "token", "secret"]
    )
    def test_json_redacts_sensitive_fields(self, field):
        output = self._emit(JsonFormatter(), **{field: "482913"}, purpose="login")
        parsed = json.loads(output)

        assert parsed[field] == REDACTED_VALUE
        assert parsed["purpose"] == "login"
        assert "482913" not in output

    def test_text_redacts_sensitive_fields(self):
        output = self._emit(TextFormatter(), code="482913", phone="079***297")

        assert "482913" not in output
        assert f"code={REDACTED_VALUE}" in output
        assert "phone=079***297" in output


class TestStructuredLogger:
    """Tests for the keyword-field logger wrapper."""

    def test_get_logger(self):
        assert isinstance(get_logger("speedyvan_verify"), StructuredLogger)

    def test_fields_attached_to_record(self, caplog):
        with caplog.at_level(logging.INFO):
            get_logger("test.fields").info("OTP verified", purpose="login")

        [record] = caplog.records
        assert record.getMessage() == "OTP verified"
        assert record.extra_fields == {"purpose": "login"}

    def test_no_fields(self, caplog):
        with caplog.at_level(logging.WARNING):
            get_logger("test.fields").warning("SMS gateway not configured")

        [record] = caplog.records
        assert not hasattr(record, "extra_fields")

    def test_exception_carries_traceback(self, caplog):
        with caplog.at_level(logging.ERROR):
            try:
                raise ValueError("boom")
            except ValueError:
                get_logger("test.fields").exception("Request failed", path="/x")

        [record] = caplog.records
        assert record.exc_info is not None
        assert record.extra_fields == {"path": "/x"}


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json(self):
        setup_logging(log_format="json", log_level="DEBUG", service_name="svc")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        formatter = root.handlers[0].formatter
        assert isinstance(formatter, JsonFormatter)
        assert formatter.service_name == "svc"

    def test_text(self):
        setup_logging(log_format="text", log_level="INFO")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, TextFormatter)

    def test_quietens_http_client(self):
        setup_logging(log_level="DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING
