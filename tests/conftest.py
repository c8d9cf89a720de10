"""
Pytest fixtures for the tax engine test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- ``captured_logs`` for asserting on emitted JSON log records
- Packaged rule tables and ready-built engines
- Small factories for parties and transactions
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from tax_config import get_default_rules
from tax_engines.classification import ReturnClassifier
from tax_engines.gst import GSTCalculator
from tax_engines.itc import ITCEligibilityEngine
from tax_engines.pipeline import TransactionProcessor
from tax_engines.reconciliation import ReconciliationMatcher
from tax_engines.reverse_charge import ReverseChargeDetector
from tax_engines.tds import TDSCalculator
from tax_kernel.domain.transaction import Party, Transaction, TransactionType
from tax_kernel.domain.values import Money
from tax_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

FILER_GSTIN = "29ABCDE1234F1Z5"  # Karnataka
MH_GSTIN = "27AAACB2230M1Z2"  # Maharashtra
KA_VENDOR_GSTIN = "29AAGCS1234K1ZQ"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture tax_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            GSTCalculator().calculate(...)
            logs = captured_logs()
            assert any(r["message"] == "gst_calculation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("tax_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Rule and engine fixtures
# =============================================================================


@pytest.fixture(scope="session")
def rules():
    return get_default_rules()


@pytest.fixture
def detector(rules):
    return ReverseChargeDetector(rules.reverse_charge)


@pytest.fixture
def calculator():
    return GSTCalculator()


@pytest.fixture
def itc_engine(rules):
    return ITCEligibilityEngine(rules.itc)


@pytest.fixture
def classifier():
    return ReturnClassifier()


@pytest.fixture
def matcher(rules):
    return ReconciliationMatcher(rules.reconciliation)


@pytest.fixture
def tds_calculator(rules):
    return TDSCalculator(rules.tds)


@pytest.fixture
def processor(rules):
    return TransactionProcessor(rules)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def filer():
    return Party(name="Filer Pvt Ltd", gstin=FILER_GSTIN, country="IN", state_code="29")


@pytest.fixture
def make_transaction(filer):
    """Factory fixture for outward transactions from the filer."""

    def _make(
        recipient: Party,
        amount: str = "100000",
        transaction_type: TransactionType = TransactionType.DOMESTIC_B2B,
        **overrides,
    ) -> Transaction:
        fields = dict(
            document_number="INV-001",
            document_date=date(2024, 6, 15),
            transaction_type=transaction_type,
            taxable_amount=Money.of(amount),
            supplier=filer,
            recipient=recipient,
            tax_rate=Decimal("18"),
        )
        fields.update(overrides)
        return Transaction(**fields)

    return _make
