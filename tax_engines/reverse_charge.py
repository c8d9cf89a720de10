"""
Reverse-Charge Detector -- decide whether the recipient owes the GST.

Responsibility:
    Decides, from vendor and recipient identity and the service bought,
    whether reverse-charge liability applies, which kind it is, at what
    rate and under which heads. Also checks self-invoice timeliness and
    computes interest on late reverse-charge payment.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Runs first in the per-transaction flow; its decision feeds the GST
    calculator (rate, heads, reverse-charge flag) and the return
    classifier (reverse-charge type).

Decision rules (first match wins):
    1. Vendor outside India and recipient registered
       -> IMPORT_OF_SERVICES at the service-type rate, IGST.
    2. Vendor in India, no vendor GSTIN, service on the notified list
       -> DOMESTIC_UNREGISTERED at the notified rate; CGST + SGST when the
          place of supply is the recipient's state, IGST otherwise.
    3. Otherwise -> NONE.
    A composition-scheme vendor never triggers reverse charge.

Invariants enforced:
    - GSTINs are validated before any rule is evaluated.
    - Deterministic: the decision depends only on the input and the
      rule tables given at construction.

Failure modes:
    - InvalidIdentifierError for a malformed vendor or recipient GSTIN.
    - NegativeAmountError for a negative taxable amount.
    - InvalidDateOrderError when a self-invoice predates receipt.

Usage:
    from tax_engines.reverse_charge import ReverseChargeDetector, ReverseChargeInput

    decision = ReverseChargeDetector().detect(ReverseChargeInput(
        vendor_gstin=None,
        vendor_name="Acme Inc",
        vendor_country="US",
        recipient_gstin="29ABCDE1234F1Z5",
        service_type="SOFTWARE",
        taxable_amount=Money.of("250000"),
    ))
    decision.rcm_type  # ReverseChargeType.IMPORT_OF_SERVICES
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from tax_config import ReverseChargeRules, get_default_rules
from tax_config.schema import NotifiedService
from tax_engines.gst import TaxType
from tax_engines.tracer import traced_engine
from tax_kernel.domain.findings import ComplianceFinding, FindingSeverity
from tax_kernel.domain.identifiers import (
    OUTSIDE_INDIA_STATE_CODE,
    is_domestic_country,
    normalize_country,
    optional_gstin,
    require_state_code,
)
from tax_kernel.domain.transaction import VendorType, check_non_negative, check_rate
from tax_kernel.domain.values import Money, round2
from tax_kernel.exceptions import InvalidDateOrderError, NegativeAmountError
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.reverse_charge")


class ReverseChargeType(str, Enum):
    """Kind of reverse-charge liability."""

    NONE = "none"
    DOMESTIC_UNREGISTERED = "domestic_unregistered"  # Section 9(4) / notified services
    IMPORT_OF_SERVICES = "import_of_services"  # Section 5(3) IGST Act


@dataclass(frozen=True)
class ReverseChargeInput:
    """Vendor, recipient and service attributes of an inward supply."""

    vendor_name: str
    vendor_country: str | None
    taxable_amount: Money
    vendor_gstin: str | None = None
    recipient_gstin: str | None = None
    recipient_state: str | None = None
    place_of_supply: str | None = None
    service_type: str | None = None
    hsn_sac_code: str | None = None
    vendor_type: VendorType = VendorType.REGULAR
    supply_date: date | None = None  # Selects notified entries in force


@dataclass(frozen=True)
class ReverseChargeDecision:
    """Outcome of reverse-charge detection."""

    applicable: bool
    rcm_type: ReverseChargeType
    reason: str
    gst_rate: Decimal | None = None
    tax_type: TaxType | None = None
    notified_service: NotifiedService | None = None

    @classmethod
    def not_applicable(cls, reason: str) -> ReverseChargeDecision:
        return cls(applicable=False, rcm_type=ReverseChargeType.NONE, reason=reason)


class ReverseChargeDetector:
    """
    Apply the reverse-charge decision rules.

    Stateless apart from the immutable rule tables it is built with.
    """

    def __init__(self, rules: ReverseChargeRules | None = None):
        self._rules = rules if rules is not None else get_default_rules().reverse_charge

    @property
    def rules(self) -> ReverseChargeRules:
        return self._rules

    @traced_engine("reverse_charge", "1.0", fingerprint_fields=("rcm_input",))
    def detect(self, rcm_input: ReverseChargeInput) -> ReverseChargeDecision:
        """
        Decide whether reverse charge applies to ``rcm_input``.

        Raises:
            InvalidIdentifierError: vendor or recipient GSTIN malformed.
            NegativeAmountError: taxable amount below zero.
        """
        t0 = time.monotonic()
        vendor_gstin = optional_gstin(rcm_input.vendor_gstin, "vendor_gstin")
        recipient_gstin = optional_gstin(rcm_input.recipient_gstin, "recipient_gstin")
        check_non_negative(rcm_input.taxable_amount, "taxable_amount")

        logger.info("rcm_detection_started", extra={
            "vendor_name": rcm_input.vendor_name,
            "vendor_country": normalize_country(rcm_input.vendor_country),
            "vendor_registered": vendor_gstin is not None,
            "recipient_registered": recipient_gstin is not None,
            "service_type": rcm_input.service_type,
        })

        decision = self._decide(rcm_input, vendor_gstin, recipient_gstin)

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("rcm_detection_completed", extra={
            "applicable": decision.applicable,
            "rcm_type": decision.rcm_type.value,
            "gst_rate": str(decision.gst_rate) if decision.gst_rate is not None else None,
            "tax_type": decision.tax_type.value if decision.tax_type else None,
            "duration_ms": duration_ms,
        })
        return decision

    def _decide(
        self,
        rcm_input: ReverseChargeInput,
        vendor_gstin: str | None,
        recipient_gstin: str | None,
    ) -> ReverseChargeDecision:
        if rcm_input.vendor_type is VendorType.COMPOSITION:
            return ReverseChargeDecision.not_applicable(
                "Composition vendor - reverse charge not applicable"
            )

        vendor_domestic = is_domestic_country(rcm_input.vendor_country)

        # Rule 1: import of services
        if not vendor_domestic and recipient_gstin is not None:
            return ReverseChargeDecision(
                applicable=True,
                rcm_type=ReverseChargeType.IMPORT_OF_SERVICES,
                reason="cross-border service import",
                gst_rate=self._rules.rate_for_service(rcm_input.service_type),
                tax_type=TaxType.IGST,
            )

        # Rule 2: notified service from an unregistered domestic supplier
        if vendor_domestic and vendor_gstin is None:
            notified = self._rules.find_notified_service(
                rcm_input.service_type, rcm_input.hsn_sac_code, rcm_input.supply_date
            )
            if notified is not None:
                return ReverseChargeDecision(
                    applicable=True,
                    rcm_type=ReverseChargeType.DOMESTIC_UNREGISTERED,
                    reason=(
                        f"{notified.description} from unregistered supplier "
                        f"(Notification {notified.notification})"
                    ),
                    gst_rate=notified.gst_rate,
                    tax_type=self._domestic_tax_type(rcm_input, recipient_gstin),
                    notified_service=notified,
                )

        if not vendor_domestic:
            return ReverseChargeDecision.not_applicable(
                "Foreign vendor but recipient is not registered"
            )
        if vendor_gstin is not None:
            return ReverseChargeDecision.not_applicable(
                "Registered vendor - forward charge"
            )
        return ReverseChargeDecision.not_applicable(
            "Unregistered vendor - service not notified for reverse charge"
        )

    def _domestic_tax_type(
        self, rcm_input: ReverseChargeInput, recipient_gstin: str | None
    ) -> TaxType:
        recipient_state = rcm_input.recipient_state
        if recipient_state is None and recipient_gstin is not None:
            recipient_state = recipient_gstin[:2]
        if rcm_input.place_of_supply is None or recipient_state is None:
            return TaxType.CGST_SGST
        pos = require_state_code(rcm_input.place_of_supply, "place_of_supply")
        if pos == OUTSIDE_INDIA_STATE_CODE:
            return TaxType.IGST
        state = require_state_code(recipient_state, "recipient_state")
        return TaxType.CGST_SGST if pos == state else TaxType.IGST


def check_self_invoice_timeliness(
    receipt_date: date,
    issue_date: date,
    window_days: int = 30,
) -> ComplianceFinding | None:
    """
    Flag a reverse-charge self-invoice issued after the statutory window.

    Returns None when issued within ``window_days`` of receipt.

    Raises:
        InvalidDateOrderError: issue_date is before receipt_date.
    """
    if issue_date < receipt_date:
        raise InvalidDateOrderError("receipt_date", receipt_date, "issue_date", issue_date)
    days = (issue_date - receipt_date).days
    if days <= window_days:
        return None
    logger.warning("self_invoice_issued_late", extra={
        "receipt_date": receipt_date.isoformat(),
        "issue_date": issue_date.isoformat(),
        "days_after_receipt": days,
        "window_days": window_days,
    })
    return ComplianceFinding(
        code="LATE_SELF_INVOICE",
        severity=FindingSeverity.WARNING,
        message=(
            f"Self-invoice issued {days} days after receipt; "
            f"must be issued within {window_days} days"
        ),
        reference="Rule 47A, CGST Rules",
        details=(
            ("days_after_receipt", days),
            ("days_late", days - window_days),
        ),
    )


def rcm_payment_interest(
    principal: Money,
    due_date: date,
    paid_date: date,
    annual_rate: Decimal = Decimal("18"),
) -> Money:
    """
    Simple interest on reverse-charge tax paid after its due date.

    ``round2(principal * annual_rate * days / 36500)``; zero when paid on
    or before the due date.
    """
    if principal.is_negative:
        raise NegativeAmountError("principal", principal.amount)
    annual_rate = check_rate(annual_rate, "annual_rate")
    days = max(0, (paid_date - due_date).days)
    interest = round2(principal.amount * annual_rate * days / Decimal("36500"))
    return Money(amount=interest, currency=principal.currency)


def detect_reverse_charge(
    rcm_input: ReverseChargeInput,
    rules: ReverseChargeRules | None = None,
) -> ReverseChargeDecision:
    """Convenience wrapper around ``ReverseChargeDetector(rules).detect``."""
    return ReverseChargeDetector(rules).detect(rcm_input)
