"""
JSON log output and LogContext binding.

Each test gets a fresh tax_kernel logger tree writing into a StringIO;
the session-wide configuration is put back afterwards.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from tax_engines.reverse_charge import ReverseChargeType
from tax_kernel.exceptions import InvalidIdentifierError
from tax_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _isolated_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emitted():
    """Configure logging into a buffer; calling the fixture returns parsed lines."""
    buffer = StringIO()
    configure_logging(handler=logging.StreamHandler(buffer))

    def lines() -> list[dict]:
        return [json.loads(raw) for raw in buffer.getvalue().splitlines() if raw]

    return lines


class TestRecordShape:
    def test_base_fields(self, emitted):
        get_logger("engines.gst").info("gst_calculated")

        (line,) = emitted()
        assert line["message"] == "gst_calculated"
        assert line["level"] == "INFO"
        assert line["logger"] == "tax_kernel.engines.gst"
        assert line["ts"].endswith("+00:00")

    def test_extras_become_top_level_keys(self, emitted):
        get_logger("engines.itc").info(
            "itc_evaluated", extra={"line_count": 3, "blocked_count": 1}
        )

        (line,) = emitted()
        assert line["line_count"] == 3
        assert line["blocked_count"] == 1

    def test_tax_values_serialized(self, emitted):
        batch = uuid4()
        get_logger("engines.tds").info("tds_computed", extra={
            "tds_amount": Decimal("5000.00"),
            "deposit_due": date(2024, 7, 7),
            "rcm_type": ReverseChargeType.IMPORT_OF_SERVICES,
            "batch": batch,
        })

        (line,) = emitted()
        assert line["tds_amount"] == "5000.00"
        assert line["deposit_due"] == "2024-07-07"
        assert line["rcm_type"] == ReverseChargeType.IMPORT_OF_SERVICES.value
        assert line["batch"] == str(batch)

    def test_plain_exception(self, emitted):
        try:
            raise ValueError("bad rate")
        except ValueError:
            get_logger("engines.gst").exception("calculation_failed")

        (line,) = emitted()
        assert line["level"] == "ERROR"
        assert line["exc_type"] == "ValueError"
        assert line["exc_message"] == "bad rate"
        assert "exc_code" not in line
        assert "Traceback" in line["traceback"]

    def test_kernel_exception_carries_its_fields(self, emitted):
        try:
            raise InvalidIdentifierError("GSTIN", "29ABCDE1234F1Z", "recipient_gstin")
        except InvalidIdentifierError:
            get_logger("pipeline").exception("validation_failed")

        (line,) = emitted()
        assert line["exc_type"] == "InvalidIdentifierError"
        assert line["exc_code"] == "INVALID_IDENTIFIER"
        assert line["exc_field_name"] == "recipient_gstin"
        assert line["exc_value"] == "29ABCDE1234F1Z"

    def test_level_filtering(self, emitted):
        log = get_logger("engines")
        log.debug("dropped")
        log.warning("kept")

        assert [line["message"] for line in emitted()] == ["kept"]

    def test_formatter_standalone(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "amount %s", ("10.00",), None)
        assert json.loads(StructuredFormatter().format(record))["message"] == "amount 10.00"


class TestContextInRecords:
    def test_bound_fields_appear(self, emitted):
        LogContext.set(filer_gstin="29ABCDE1234F1Z5", return_period="062024")
        get_logger("returns").info("gstr1_built")

        (line,) = emitted()
        assert line["filer_gstin"] == "29ABCDE1234F1Z5"
        assert line["return_period"] == "062024"

    def test_unbound_fields_absent(self, emitted):
        get_logger("returns").info("gstr1_built")

        (line,) = emitted()
        assert not {"correlation_id", "filer_gstin", "batch_id"} & set(line)

    def test_bind_scopes_records(self, emitted):
        log = get_logger("pipeline")
        with LogContext.bind(correlation_id="INV-001"):
            log.info("inside")
        log.info("outside")

        inside, outside = emitted()
        assert inside["correlation_id"] == "INV-001"
        assert "correlation_id" not in outside


class TestLogContext:
    def test_set_get(self):
        LogContext.set(correlation_id="INV-9", batch_id="B-1")
        assert LogContext.get("batch_id") == "B-1"
        assert LogContext.get_all() == {"correlation_id": "INV-9", "batch_id": "B-1"}

    def test_set_is_additive(self):
        LogContext.set(correlation_id="a")
        LogContext.set(trace_id="b", correlation_id=None)
        assert LogContext.get_all() == {"correlation_id": "a", "trace_id": "b"}

    def test_unknown_name_reads_as_none(self):
        assert LogContext.get("vendor_id") is None

    def test_unknown_name_rejected_on_write(self):
        with pytest.raises(KeyError):
            LogContext.set(vendor_id="V-001")
        with pytest.raises(KeyError):
            LogContext.bind(vendor_id="V-001")

    def test_clear(self):
        LogContext.set(correlation_id="c", filer_gstin="g", return_period="p", batch_id="b", trace_id="t")
        assert len(LogContext.get_all()) == 5
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_nested_bind_restores_each_level(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="middle"):
            with LogContext.bind(correlation_id="inner", return_period="062024"):
                assert LogContext.get("correlation_id") == "inner"
            assert LogContext.get_all() == {"correlation_id": "middle"}
        assert LogContext.get("correlation_id") == "outer"

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(return_period="062024"):
                raise RuntimeError("fail")
        assert LogContext.get("return_period") is None


class TestConfiguration:
    def test_second_configure_is_ignored(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("tax_kernel").handlers) == 1

    def test_tree_does_not_propagate(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert logging.getLogger("tax_kernel").propagate is False

    def test_nested_logger_names(self):
        assert get_logger("engines.reconciliation").name == "tax_kernel.engines.reconciliation"

    def test_debug_level_reaches_children(self):
        buffer = StringIO()
        configure_logging(handler=logging.StreamHandler(buffer), level=logging.DEBUG)
        get_logger("engines.tds.thresholds").debug("threshold_checked")

        assert json.loads(buffer.getvalue())["logger"] == "tax_kernel.engines.tds.thresholds"

    def test_reset_detaches_handler(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        reset_logging()
        tree = logging.getLogger("tax_kernel")
        assert tree.handlers == []
        assert tree.propagate is True
