"""
Statutory rule-table schema.

Defines the immutable rule tables the engines are parameterised with.
The loader parses ``data/default_rules.yaml`` (or any caller-supplied file)
into these frozen dataclasses; engines receive them in ``__init__`` and
never consult module-level lookup tables.

Key distinction:
  Rule tables  = statutory data that changes by notification (rates,
                 notified services, TDS thresholds, matching weights)
  Constants    = fixed return structure (table codes, the B2C-large
                 threshold) that lives beside the code that uses it
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from tax_kernel.exceptions import UnknownSectionError

# ---------------------------------------------------------------------------
# Reverse charge
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServiceRate:
    """Default GST rate for a service-type tag (imports of services)."""

    service_type: str
    gst_rate: Decimal
    sac_code: str | None = None


@dataclass(frozen=True)
class NotifiedService:
    """A service notified for reverse charge when bought from an unregistered supplier."""

    code: str
    description: str
    gst_rate: Decimal
    notification: str
    service_types: tuple[str, ...] = ()
    sac_prefixes: tuple[str, ...] = ()
    effective_from: date = date(2017, 7, 1)
    effective_to: date | None = None
    priority: int = 0  # Higher wins when several entries match a SAC code

    def matches(self, service_type: str | None, sac_code: str | None = None) -> bool:
        if service_type and service_type.strip().upper() in self.service_types:
            return True
        if sac_code:
            sac = sac_code.strip()
            return any(sac.startswith(prefix) for prefix in self.sac_prefixes)
        return False

    def is_effective(self, as_of: date | None) -> bool:
        if as_of is None:
            return True
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of <= self.effective_to


@dataclass(frozen=True)
class ReverseChargeRules:
    """Rule tables consumed by the reverse-charge detector."""

    default_gst_rate: Decimal = Decimal("18")
    service_rates: tuple[ServiceRate, ...] = ()
    notified_services: tuple[NotifiedService, ...] = ()
    self_invoice_window_days: int = 30
    interest_rate_annual: Decimal = Decimal("18")

    def rate_for_service(self, service_type: str | None) -> Decimal:
        """Service-type rate, falling back to ``default_gst_rate``."""
        if service_type:
            key = service_type.strip().upper()
            for entry in self.service_rates:
                if entry.service_type == key:
                    return entry.gst_rate
        return self.default_gst_rate

    def find_notified_service(
        self,
        service_type: str | None,
        sac_code: str | None = None,
        as_of: date | None = None,
    ) -> NotifiedService | None:
        """Highest-priority notified entry matching the service, or None."""
        candidates = [
            s for s in self.notified_services
            if s.is_effective(as_of) and s.matches(service_type, sac_code)
        ]
        if not candidates:
            return None
        return sorted(candidates, key=lambda s: (-s.priority, s.code))[0]


# ---------------------------------------------------------------------------
# Input tax credit
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BlockedCreditRule:
    """Statutory wording for a Section 17(5) blocked-credit reason."""

    reason: str
    section: str
    description: str

    @property
    def text(self) -> str:
        return f"{self.section} - {self.description}"


@dataclass(frozen=True)
class ITCRules:
    """Rule tables consumed by the ITC engine."""

    blocked_credit_rules: tuple[BlockedCreditRule, ...] = ()
    composition_reason: str = "Composition dealer - no credit available"
    invalid_invoice_reason: str = "Invalid invoice"
    goods_not_received_reason: str = "Goods not yet received"
    motor_vehicle_max_blocked_seating: int = 13
    non_payment_days: int = 180
    reversal_interest_rate_annual: Decimal = Decimal("18")

    def blocked_reason_text(self, reason: str | None) -> str:
        """Statutory text for a blocked-credit reason key or free-text reason."""
        if reason:
            key = reason.strip().upper()
            for rule in self.blocked_credit_rules:
                if rule.reason == key:
                    return rule.text
            return f"Section 17(5) - {reason.strip()}"
        return "Section 17(5) - Blocked category"


# ---------------------------------------------------------------------------
# TDS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TDSSectionRule:
    """Rate and thresholds of one TDS section."""

    code: str
    description: str
    individual_rate: Decimal  # Individuals and HUFs
    other_rate: Decimal  # Companies, firms and everyone else
    aggregate_threshold: Decimal | None = None  # Per financial year
    single_payment_threshold: Decimal | None = None

    def rate_for(self, individual_or_huf: bool) -> Decimal:
        return self.individual_rate if individual_or_huf else self.other_rate


@dataclass(frozen=True)
class SurchargeSlab:
    """Surcharge rate on TDS once the amount paid exceeds ``above``."""

    above: Decimal
    rate: Decimal


@dataclass(frozen=True)
class TDSRules:
    """Rule tables consumed by the TDS aggregator.

    Surcharge and cess apply to payments to non-residents only; slabs are
    kept in ascending order of ``above``.
    """

    sections: tuple[TDSSectionRule, ...] = ()
    no_pan_rate: Decimal = Decimal("20")
    late_deposit_interest_rate_annual: Decimal = Decimal("18")
    late_filing_fee_per_day: Decimal = Decimal("200")
    late_filing_fee_cap: Decimal | None = None
    cess_rate: Decimal = Decimal("4")  # Health and education cess on TDS + surcharge
    individual_surcharge_slabs: tuple[SurchargeSlab, ...] = ()
    other_surcharge_slabs: tuple[SurchargeSlab, ...] = ()

    def surcharge_rate(self, individual_or_huf: bool, amount: Decimal) -> Decimal:
        """Rate of the highest slab ``amount`` exceeds, else zero."""
        slabs = self.individual_surcharge_slabs if individual_or_huf else self.other_surcharge_slabs
        rate = Decimal("0")
        for slab in slabs:
            if amount > slab.above:
                rate = slab.rate
        return rate

    def section(self, code: str) -> TDSSectionRule:
        """Look up a section by code (case-insensitive).

        Raises:
            UnknownSectionError: code is not in the table.
        """
        key = code.strip().upper() if isinstance(code, str) else ""
        for rule in self.sections:
            if rule.code == key:
                return rule
        raise UnknownSectionError(str(code))


# ---------------------------------------------------------------------------
# Reconciliation and returns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReconciliationRules:
    """Score deductions per discrepancy and the amount tolerance."""

    gstin_weight: int = 30
    document_number_weight: int = 20
    document_date_weight: int = 10
    taxable_value_weight: int = 15
    cgst_weight: int = 10
    sgst_weight: int = 10
    igst_weight: int = 5
    amount_tolerance: Decimal = Decimal("0.01")
    # Potential-match suggestions for unpaired records
    suggestion_date_window_days: int = 30
    suggestion_amount_tolerance_percent: Decimal = Decimal("5")
    max_suggestions: int = 5


@dataclass(frozen=True)
class ReturnRules:
    """Late-fee parameters of the monthly summary return."""

    due_day: int = 20
    late_fee_per_day: Decimal = Decimal("25")  # Per head (CGST and SGST)
    nil_return_late_fee_per_day: Decimal = Decimal("10")
    late_fee_cap: Decimal = Decimal("5000")  # Per head


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineRules:
    """The complete, versioned rule set handed to the engines."""

    version: str
    effective_from: date
    reverse_charge: ReverseChargeRules = field(default_factory=ReverseChargeRules)
    itc: ITCRules = field(default_factory=ITCRules)
    tds: TDSRules = field(default_factory=TDSRules)
    reconciliation: ReconciliationRules = field(default_factory=ReconciliationRules)
    returns: ReturnRules = field(default_factory=ReturnRules)
    checksum: str = ""
