"""Tests for the structured logging system (taxation_kernel/logging_config.py)."""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from taxation_engines.tax_types import ApplicationType
from taxation_kernel.exceptions import TaxValidationError
from taxation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state around each test, then restore the suite setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "taxation.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("computed", extra={"line_count": 2, "strict": False})

        record = _parse_log(stream)
        assert record["line_count"] == 2
        assert record["strict"] is False

    def test_domain_values_encoded(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        rate_id = uuid4()
        get_logger("test").info("encoded", extra={
            "rate_id": rate_id,
            "tax_amount": Decimal("180.0000"),
            "as_of": date(2024, 6, 15),
            "calculated_at": datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc),
            "application_type": ApplicationType.COMPOUND,
            "opaque": object,
        })

        record = _parse_log(stream)
        assert record["rate_id"] == str(rate_id)
        assert record["tax_amount"] == "180.0000"
        assert record["as_of"] == "2024-06-15"
        assert record["calculated_at"] == "2024-06-15T09:30:00+00:00"
        assert record["application_type"] == "compound"
        assert record["opaque"] == str(object)

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise TaxValidationError("amount", "-1", "must not be negative")
        except TaxValidationError:
            get_logger("test").error("rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "TaxValidationError"
        assert record["exc_code"] == "INVALID_TAX_REQUEST"
        assert record["exc_field"] == "amount"
        assert record["exc_reason"] == "must not be negative"
        assert "Traceback" in record["traceback"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="corr-1", actor_id="user-7")
        get_logger("test").info("with_context")

        record = _parse_log(stream)
        assert record["correlation_id"] == "corr-1"
        assert record["actor_id"] == "user-7"
        assert "tenant_id" not in record

    def test_bind_restores_previous_values(self):
        LogContext.set(request_id="outer")

        with LogContext.bind(request_id="inner", tenant_id="acme"):
            assert LogContext.get_all() == {"request_id": "inner", "tenant_id": "acme"}

        assert LogContext.get_all() == {"request_id": "outer"}

    def test_bind_rejects_unknown_fields(self):
        with pytest.raises(ValueError, match="invoice_id"):
            LogContext.bind(invoice_id="x")

    def test_set_rejects_unknown_fields(self):
        with pytest.raises(ValueError, match="invoice_id"):
            LogContext.set(invoice_id="x")

        assert LogContext.get_all() == {}

    def test_set_skips_none_and_keeps_earlier_fields(self):
        LogContext.set(correlation_id="c", tenant_id="t")
        LogContext.set(correlation_id=None, actor_id="a")

        assert LogContext.get_all() == {
            "correlation_id": "c", "tenant_id": "t", "actor_id": "a",
        }

    def test_get_all_returns_a_copy(self):
        LogContext.set(request_id="r")
        LogContext.get_all()["request_id"] = "mutated"

        assert LogContext.get_all() == {"request_id": "r"}

    def test_clear(self):
        LogContext.set(correlation_id="c")
        LogContext.clear()

        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        first, first_stream = _make_handler()
        second, second_stream = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)

        get_logger("test").info("once")

        assert len(_parse_all_logs(first_stream)) == 1
        assert second_stream.getvalue() == ""

    def test_level_filters_debug(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.INFO)
        get_logger("test").debug("hidden")
        get_logger("test").info("shown")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["shown"]

    def test_default_handler_writes_json_to_stderr(self, capsys):
        configure_logging()
        get_logger("test").warning("to_stderr")

        record = json.loads(capsys.readouterr().err.strip().split("\n")[-1])
        assert record["message"] == "to_stderr"

    def test_does_not_propagate_to_root(self):
        configure_logging(handler=_make_handler()[0])

        assert logging.getLogger("taxation").propagate is False
