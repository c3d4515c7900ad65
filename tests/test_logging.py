"""Tests for the structured logging system (mes_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO

import pytest

from mes_kernel.domain.records import LotStatus
from mes_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


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
        assert record["logger"] == "mes_kernel.test"
        assert "ts" in record

    def test_quantities_and_enums_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "deducted",
            extra={"quantity": Decimal("12.50"), "status": LotStatus.COMPLETED},
        )

        record = _parse_log(stream)
        assert record["quantity"] == "12.50"
        assert record["status"] == "COMPLETED"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", production_lot_id=7)
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["production_lot_id"] == "7"

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from mes_kernel.exceptions import InsufficientStockError

        try:
            raise InsufficientStockError("S-1", Decimal("5"), Decimal("2"))
        except InsufficientStockError:
            get_logger("test").error("stock_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_lot_number"] == "S-1"
        assert record["exc_available_qty"] == "2"
        assert "traceback" in record

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "production_lot_id" not in record

    def test_debug_filtered_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", process_code="CA")
        assert LogContext.get_all() == {"correlation_id": "x", "process_code": "CA"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(event_id="y")

    def test_bind_restores(self):
        LogContext.set(production_lot_id="1")
        with LogContext.bind(production_lot_id=2):
            assert LogContext.get_all()["production_lot_id"] == "2"
        assert LogContext.get_all()["production_lot_id"] == "1"

    def test_bind_skips_none(self):
        with LogContext.bind(production_lot_id=None, process_code="CA"):
            assert LogContext.get_all() == {"process_code": "CA"}
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        handlers = logging.getLogger("mes_kernel").handlers
        assert handlers.count(h1) == 1
        assert h2 not in handlers

    def test_get_logger_returns_child(self):
        assert get_logger("services.deduction").name == "mes_kernel.services.deduction"
