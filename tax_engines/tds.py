"""
TDS Aggregator -- deductions, Form 16A certificates and quarterly returns.

Responsibility:
    Computes tax deducted at source on vendor payments, tracking the
    cumulative amount paid per (vendor, section, financial year) to decide
    when deduction becomes mandatory; assesses interest and penalty on late
    deposit; numbers and assembles Form 16A certificates per vendor and
    quarter; and aggregates a deductor's quarterly return.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Runs independently of the GST flow, over batches of payment records
    supplied by the caller.

Rounding boundaries (ROUND_HALF_UP, two places):
    tds       = round2(base * rate / 100)              base: payment, or catch-up
    surcharge = round2(tds * slab_rate / 100)          non-residents only
    cess      = round2((tds + surcharge) * cess / 100) non-residents only
    interest  = round2(total_tds * annual_rate * days_late / 36500)
    penalty   = per_diem * days_late                   capped when a cap is given

Invariants enforced:
    - Payments are processed in payment-date order; equal dates keep
      input order.
    - Cumulative totals reset at each financial year and never mix
      vendors or sections.
    - A payee without PAN is deducted at the no-PAN rate (20%).
    - days_late = max(0, deposit - due); depositing early is never
      negative.

Failure modes:
    - UnknownSectionError for a section code missing from the rate table.
    - InvalidIdentifierError for a malformed PAN or TAN.
    - InvalidDateOrderError when a deposit predates the payment.
    - InvalidPeriodError for a malformed financial year or quarter.

Usage:
    from tax_engines.tds import TDSCalculator, TDSPayment, DeducteeType

    deductions = TDSCalculator().compute_deductions([
        TDSPayment(
            vendor_id="V-001",
            vendor_pan="ABCDE1234F",
            deductee_type=DeducteeType.COMPANY,
            section_code="194J",
            payment_date=date(2024, 5, 10),
            payment_amount=Money.of("50000"),
        ),
    ])
    deductions[0].tds_amount  # 5000.00 INR
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from tax_config import TDSRules, TDSSectionRule, get_default_rules
from tax_engines.tracer import traced_engine
from tax_kernel.domain.findings import ComplianceFinding, FindingSeverity
from tax_kernel.domain.identifiers import require_pan, require_tan
from tax_kernel.domain.periods import (
    Quarter,
    assessment_year_of,
    financial_year_of,
    quarter_bounds,
    quarter_of,
    tds_deposit_due_date,
)
from tax_kernel.domain.transaction import check_non_negative, check_rate
from tax_kernel.domain.values import BASE_CURRENCY, Money, round2
from tax_kernel.exceptions import InvalidDateOrderError, InvalidPeriodError, MissingFieldError
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.tds")

_DAYS_IN_YEAR_PERCENT = Decimal("36500")

# Last day to file the quarterly statement: (month, day, years after FY start)
_RETURN_DUE_DATES = {
    Quarter.Q1: (7, 31, 0),
    Quarter.Q2: (10, 31, 0),
    Quarter.Q3: (1, 31, 1),
    Quarter.Q4: (5, 31, 1),
}


class DeducteeType(str, Enum):
    """Legal form of the payee; selects the individual or the other rate."""

    INDIVIDUAL = "individual"
    HUF = "huf"  # Hindu Undivided Family
    COMPANY = "company"
    FIRM = "firm"
    OTHER = "other"

    @property
    def is_individual_or_huf(self) -> bool:
        return self in (DeducteeType.INDIVIDUAL, DeducteeType.HUF)


@dataclass(frozen=True)
class TDSPayment:
    """A payment to a vendor that may attract TDS."""

    vendor_id: str
    vendor_pan: str | None
    deductee_type: DeducteeType
    section_code: str
    payment_date: date
    payment_amount: Money
    deposit_date: date | None = None
    challan_number: str | None = None
    rate_override: Decimal | None = None  # Lower-deduction certificate rate
    vendor_name: str | None = None
    non_resident: bool = False  # Surcharge and cess are added to TDS

    def __post_init__(self) -> None:
        if not self.vendor_id or not str(self.vendor_id).strip():
            raise MissingFieldError("vendor_id", "TDS payment")
        check_non_negative(self.payment_amount, "payment_amount")
        if self.vendor_pan is not None and self.vendor_pan.strip():
            object.__setattr__(self, "vendor_pan", require_pan(self.vendor_pan, "vendor_pan"))
        else:
            object.__setattr__(self, "vendor_pan", None)
        if self.rate_override is not None:
            object.__setattr__(self, "rate_override", check_rate(self.rate_override, "rate_override"))
        if self.deposit_date is not None and self.deposit_date < self.payment_date:
            raise InvalidDateOrderError(
                "payment_date", self.payment_date, "deposit_date", self.deposit_date
            )


@dataclass(frozen=True)
class TDSDeduction:
    """
    TDS computed on one payment.

    ``tds_amount`` is the basic tax at the section rate on
    ``taxable_base``. Surcharge and cess come on top for non-residents;
    ``total_tds`` is what is withheld and deposited.
    """

    payment: TDSPayment
    rate: Decimal
    tds_amount: Money
    cumulative_amount: Money  # Paid to the vendor under the section this FY, incl. this payment
    threshold_exceeded: bool  # Either threshold crossed
    deduction_required: bool
    deposit_due_date: date
    financial_year: str
    quarter: Quarter
    taxable_base: Money
    surcharge: Money
    cess: Money
    single_payment_threshold_exceeded: bool = False
    aggregate_threshold_exceeded: bool = False
    findings: tuple[ComplianceFinding, ...] = field(default=())

    @property
    def total_tds(self) -> Money:
        return self.tds_amount + self.surcharge + self.cess

    @property
    def net_payable(self) -> Money:
        """Amount paid to the vendor after withholding.

        Negative when a catch-up deduction exceeds the payment; the shortfall
        is still owed to the government.
        """
        return self.payment.payment_amount - self.total_tds

    @property
    def vendor_id(self) -> str:
        return self.payment.vendor_id

    @property
    def section_code(self) -> str:
        return self.payment.section_code.strip().upper()

    @property
    def payment_date(self) -> date:
        return self.payment.payment_date

    @property
    def payment_amount(self) -> Money:
        return self.payment.payment_amount

    @property
    def deposit_date(self) -> date | None:
        return self.payment.deposit_date

    @property
    def is_deposited(self) -> bool:
        return self.payment.deposit_date is not None

    @property
    def days_late(self) -> int:
        if self.payment.deposit_date is None:
            return 0
        return max(0, (self.payment.deposit_date - self.deposit_due_date).days)


class TDSCalculator:
    """
    Compute TDS deductions.

    Stateless between calls: cumulative totals are rebuilt from the
    payments passed to each ``compute_deductions`` call.

    With ``deduct_on_entire_amount``, the payment that takes the aggregate
    over its threshold is taxed together with the earlier payments of the
    year that went undeducted.
    """

    def __init__(
        self,
        rules: TDSRules | None = None,
        government_deductor: bool = False,
        deduct_on_entire_amount: bool = False,
    ):
        self._rules = rules if rules is not None else get_default_rules().tds
        self._government_deductor = government_deductor
        self._deduct_on_entire_amount = deduct_on_entire_amount

    @property
    def rules(self) -> TDSRules:
        return self._rules

    def rate_for(self, payment: TDSPayment, section: TDSSectionRule | None = None) -> Decimal:
        """Override rate, else the no-PAN rate, else the section rate for the deductee type."""
        section = section or self._rules.section(payment.section_code)
        if payment.rate_override is not None:
            return payment.rate_override
        if payment.vendor_pan is None:
            return self._rules.no_pan_rate
        return section.rate_for(payment.deductee_type.is_individual_or_huf)

    def deduct(
        self,
        payment: TDSPayment,
        prior_cumulative: Money | None = None,
        prior_undeducted: Money | None = None,
    ) -> TDSDeduction:
        """
        TDS on one payment, given the amount already paid to the vendor
        under the same section earlier in the financial year.

        ``prior_undeducted`` is the part of ``prior_cumulative`` no TDS was
        taken on; it defaults to all of it and only matters when deducting
        on the entire amount.

        Raises:
            UnknownSectionError: section code not in the rate table.
        """
        section = self._rules.section(payment.section_code)
        currency = payment.payment_amount.currency
        prior = prior_cumulative if prior_cumulative is not None else Money.zero(currency)
        check_non_negative(prior, "prior_cumulative")
        undeducted = prior_undeducted if prior_undeducted is not None else prior
        check_non_negative(undeducted, "prior_undeducted")
        cumulative = prior + payment.payment_amount

        aggregate_crossed = (
            section.aggregate_threshold is not None
            and cumulative.amount > section.aggregate_threshold
        )
        single_crossed = (
            section.single_payment_threshold is not None
            and payment.payment_amount.amount > section.single_payment_threshold
        )
        no_threshold = section.aggregate_threshold is None and section.single_payment_threshold is None
        required = aggregate_crossed or single_crossed or no_threshold

        first_crossing = aggregate_crossed and prior.amount <= section.aggregate_threshold
        base = payment.payment_amount
        if self._deduct_on_entire_amount and first_crossing:
            base = base + undeducted

        rate = self.rate_for(payment, section)
        zero = Money.zero(currency)
        tds = surcharge = cess = zero
        if required:
            tds = base.percent(rate)
            if payment.non_resident:
                surcharge_rate = self._rules.surcharge_rate(
                    payment.deductee_type.is_individual_or_huf, base.amount
                )
                surcharge = tds.percent(surcharge_rate)
                cess = (tds + surcharge).percent(self._rules.cess_rate)

        findings = []
        if first_crossing:
            findings.append(ComplianceFinding(
                code="TDS_THRESHOLD_CROSSED",
                severity=FindingSeverity.INFO,
                message=(
                    f"Payments to {payment.vendor_id} under {section.code} reached "
                    f"{cumulative.amount}, above the {section.aggregate_threshold} threshold"
                ),
                reference=f"Section {section.code}, Income-tax Act",
                details=(
                    ("vendor_id", payment.vendor_id),
                    ("section", section.code),
                    ("cumulative_amount", str(cumulative.amount)),
                ),
            ))
        if required and payment.vendor_pan is None and payment.rate_override is None:
            findings.append(ComplianceFinding(
                code="PAN_NOT_AVAILABLE",
                severity=FindingSeverity.WARNING,
                message=f"No PAN for {payment.vendor_id}; deducted at {self._rules.no_pan_rate}%",
                reference="Section 206AA, Income-tax Act",
                details=(("vendor_id", payment.vendor_id),),
            ))

        return TDSDeduction(
            payment=payment,
            rate=rate,
            tds_amount=tds,
            cumulative_amount=cumulative,
            threshold_exceeded=aggregate_crossed or single_crossed,
            deduction_required=required,
            deposit_due_date=tds_deposit_due_date(payment.payment_date, self._government_deductor),
            financial_year=financial_year_of(payment.payment_date),
            quarter=quarter_of(payment.payment_date),
            taxable_base=base if required else zero,
            surcharge=surcharge,
            cess=cess,
            single_payment_threshold_exceeded=single_crossed,
            aggregate_threshold_exceeded=aggregate_crossed,
            findings=tuple(findings),
        )

    @traced_engine("tds_calculator", "1.0", fingerprint_fields=("payments",))
    def compute_deductions(self, payments: Sequence[TDSPayment]) -> list[TDSDeduction]:
        """
        Compute TDS for a batch of payments in payment-date order.

        Raises:
            UnknownSectionError: a section code is not in the rate table.
        """
        t0 = time.monotonic()
        logger.info("tds_computation_started", extra={"payment_count": len(payments)})

        cumulative: dict[tuple[str, str, str], Money] = {}
        undeducted: dict[tuple[str, str, str], Money] = {}
        deductions = []
        for payment in sorted(payments, key=lambda p: p.payment_date):
            key = (
                payment.vendor_id,
                payment.section_code.strip().upper(),
                financial_year_of(payment.payment_date),
            )
            zero = Money.zero(payment.payment_amount.currency)
            deduction = self.deduct(payment, cumulative.get(key), undeducted.get(key, zero))
            cumulative[key] = deduction.cumulative_amount
            if not deduction.deduction_required:
                undeducted[key] = undeducted.get(key, zero) + payment.payment_amount
            elif deduction.taxable_base != payment.payment_amount:
                # Catch-up deduction covered everything paid so far
                undeducted[key] = zero
            deductions.append(deduction)

        total = sum((d.total_tds.amount for d in deductions), Decimal("0"))
        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("tds_computation_completed", extra={
            "deduction_count": len(deductions),
            "required_count": sum(1 for d in deductions if d.deduction_required),
            "total_tds": str(total),
            "duration_ms": duration_ms,
        })
        return deductions


def compute_tds(payments: Sequence[TDSPayment], rules: TDSRules | None = None) -> list[TDSDeduction]:
    """Convenience wrapper around ``TDSCalculator(rules).compute_deductions``."""
    return TDSCalculator(rules).compute_deductions(payments)


# ---------------------------------------------------------------------------
# Late deposit
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LateDepositAssessment:
    """Interest (Section 201(1A)) and penalty on TDS deposited late."""

    days_late: int
    interest: Money
    penalty: Money

    @property
    def total(self) -> Money:
        return self.interest + self.penalty


def assess_late_deposit(
    total_tds: Money,
    due_date: date,
    deposit_date: date,
    annual_rate: Decimal = Decimal("18"),
    per_diem_penalty: Decimal = Decimal("200"),
    penalty_cap: Decimal | None = None,
    payment_date: date | None = None,
) -> LateDepositAssessment:
    """
    Interest and penalty for depositing ``total_tds`` after ``due_date``.

    Raises:
        InvalidDateOrderError: deposit_date is before payment_date.
        NegativeAmountError: total_tds is negative.
    """
    check_non_negative(total_tds, "total_tds")
    annual_rate = check_rate(annual_rate, "annual_rate")
    if payment_date is not None and deposit_date < payment_date:
        raise InvalidDateOrderError("payment_date", payment_date, "deposit_date", deposit_date)

    days_late = max(0, (deposit_date - due_date).days)
    interest = round2(total_tds.amount * annual_rate * days_late / _DAYS_IN_YEAR_PERCENT)
    penalty = per_diem_penalty * days_late
    if penalty_cap is not None:
        penalty = min(penalty, penalty_cap)

    return LateDepositAssessment(
        days_late=days_late,
        interest=Money(amount=interest, currency=total_tds.currency),
        penalty=Money(amount=round2(Decimal(penalty)), currency=total_tds.currency),
    )


# ---------------------------------------------------------------------------
# Form 16A certificates
# ---------------------------------------------------------------------------


def certificate_number(tan: str, financial_year: str, quarter: Quarter | str, sequence: int) -> str:
    """``{TAN}/{FY}/{Q}/{sequence:03d}``, e.g. ``MUMA12345B/FY24-25/Q1/001``."""
    tan = require_tan(tan, "tan")
    quarter_bounds(financial_year, quarter)
    if sequence < 1:
        raise InvalidPeriodError("certificate sequence", sequence)
    return f"{tan}/{financial_year.strip().upper()}/{Quarter(quarter).value}/{sequence:03d}"


@dataclass(frozen=True)
class TDSCertificate:
    """Form 16A: TDS deducted from one vendor in one quarter."""

    certificate_number: str
    deductor_tan: str
    deductor_name: str
    vendor_id: str
    vendor_name: str | None
    vendor_pan: str | None
    financial_year: str
    assessment_year: str
    quarter: Quarter
    deductions: tuple[TDSDeduction, ...]
    total_payments: Money
    total_tds_deducted: Money
    total_tds_deposited: Money


def _in_quarter(
    deductions: Sequence[TDSDeduction], financial_year: str, quarter: Quarter | str
) -> list[TDSDeduction]:
    start, end = quarter_bounds(financial_year, quarter)
    return [d for d in deductions if start <= d.payment_date <= end]


def _sum(amounts: Sequence[Money]) -> Money:
    total = Money.zero(amounts[0].currency) if amounts else Money.zero(BASE_CURRENCY)
    for amount in amounts:
        total = total + amount
    return total


def generate_certificates(
    deductor_tan: str,
    deductor_name: str,
    deductions: Sequence[TDSDeduction],
    financial_year: str,
    quarter: Quarter | str,
    start_sequence: int = 1,
) -> list[TDSCertificate]:
    """
    One Form 16A per vendor with TDS deducted in the quarter.

    Vendors are numbered in vendor-id order from ``start_sequence``.
    Deductions with no tax are left off the certificate.
    """
    deductor_tan = require_tan(deductor_tan, "deductor_tan")
    start, _ = quarter_bounds(financial_year, quarter)
    quarter = Quarter(quarter)

    by_vendor: dict[str, list[TDSDeduction]] = {}
    for d in _in_quarter(deductions, financial_year, quarter):
        if d.total_tds.is_positive:
            by_vendor.setdefault(d.vendor_id, []).append(d)

    certificates = []
    for offset, vendor_id in enumerate(sorted(by_vendor)):
        items = sorted(by_vendor[vendor_id], key=lambda d: d.payment_date)
        first = items[0].payment
        certificates.append(TDSCertificate(
            certificate_number=certificate_number(
                deductor_tan, financial_year, quarter, start_sequence + offset
            ),
            deductor_tan=deductor_tan,
            deductor_name=deductor_name,
            vendor_id=vendor_id,
            vendor_name=first.vendor_name,
            vendor_pan=next((d.payment.vendor_pan for d in items if d.payment.vendor_pan), None),
            financial_year=financial_year.strip().upper(),
            assessment_year=assessment_year_of(start),
            quarter=quarter,
            deductions=tuple(items),
            total_payments=_sum([d.payment_amount for d in items]),
            total_tds_deducted=_sum([d.total_tds for d in items]),
            total_tds_deposited=_sum([d.total_tds for d in items if d.is_deposited]),
        ))

    logger.info("tds_certificates_generated", extra={
        "deductor_tan": deductor_tan,
        "financial_year": financial_year,
        "quarter": quarter.value,
        "certificate_count": len(certificates),
    })
    return certificates


# ---------------------------------------------------------------------------
# Quarterly return
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SectionSummary:
    section_code: str
    count: int
    total_payment: Money
    total_tax: Money


@dataclass(frozen=True)
class LateDeposit:
    deduction: TDSDeduction
    assessment: LateDepositAssessment


@dataclass(frozen=True)
class TDSReturn:
    """Quarterly TDS statement (Form 26Q) of one deductor."""

    deductor_tan: str
    financial_year: str
    quarter: Quarter
    total_payments: Money
    total_tds: Money
    transaction_count: int
    section_breakdown: tuple[SectionSummary, ...]
    late_deposits: tuple[LateDeposit, ...] = ()
    findings: tuple[ComplianceFinding, ...] = ()

    @property
    def total_interest(self) -> Money:
        return _sum([ld.assessment.interest for ld in self.late_deposits])

    @property
    def total_penalty(self) -> Money:
        return _sum([ld.assessment.penalty for ld in self.late_deposits])

    @property
    def filing_due_date(self) -> date:
        month, day, offset = _RETURN_DUE_DATES[self.quarter]
        start, _ = quarter_bounds(self.financial_year, Quarter.Q1)
        return date(start.year + offset, month, day)


def build_quarterly_return(
    deductor_tan: str,
    deductions: Sequence[TDSDeduction],
    financial_year: str,
    quarter: Quarter | str,
    annual_rate: Decimal | None = None,
    per_diem_penalty: Decimal = Decimal("200"),
    penalty_cap: Decimal | None = None,
    rules: TDSRules | None = None,
) -> TDSReturn:
    """
    Aggregate the quarter's deductions into a quarterly return.

    Only deductions whose payment date falls inside the quarter count.
    Deposits after their due date are assessed for interest and penalty;
    required TDS never deposited is reported as an error finding.
    """
    t0 = time.monotonic()
    rules = rules if rules is not None else get_default_rules().tds
    annual_rate = annual_rate if annual_rate is not None else rules.late_deposit_interest_rate_annual
    deductor_tan = require_tan(deductor_tan, "deductor_tan")
    in_quarter = sorted(_in_quarter(deductions, financial_year, quarter), key=lambda d: d.payment_date)
    quarter = Quarter(quarter)

    by_section: dict[str, list[TDSDeduction]] = {}
    late: list[LateDeposit] = []
    findings: list[ComplianceFinding] = []
    for d in in_quarter:
        by_section.setdefault(d.section_code, []).append(d)
        if d.deposit_date is not None:
            assessment = assess_late_deposit(
                d.total_tds,
                d.deposit_due_date,
                d.deposit_date,
                annual_rate=annual_rate,
                per_diem_penalty=per_diem_penalty,
                penalty_cap=penalty_cap,
                payment_date=d.payment_date,
            )
            if assessment.days_late > 0 and d.total_tds.is_positive:
                late.append(LateDeposit(d, assessment))
                findings.append(ComplianceFinding(
                    code="TDS_DEPOSITED_LATE",
                    severity=FindingSeverity.WARNING,
                    message=(
                        f"TDS of {d.total_tds.amount} on payment to {d.vendor_id} deposited "
                        f"{assessment.days_late} days late"
                    ),
                    reference="Section 201(1A), Income-tax Act",
                    details=(
                        ("vendor_id", d.vendor_id),
                        ("days_late", assessment.days_late),
                        ("interest", str(assessment.interest.amount)),
                    ),
                ))
        elif d.total_tds.is_positive:
            findings.append(ComplianceFinding(
                code="TDS_NOT_DEPOSITED",
                severity=FindingSeverity.ERROR,
                message=f"TDS of {d.total_tds.amount} on payment to {d.vendor_id} not deposited",
                reference="Section 200, Income-tax Act",
                details=(("vendor_id", d.vendor_id), ("due_date", d.deposit_due_date.isoformat())),
            ))

    breakdown = tuple(
        SectionSummary(
            section_code=code,
            count=len(items),
            total_payment=_sum([d.payment_amount for d in items]),
            total_tax=_sum([d.total_tds for d in items]),
        )
        for code, items in sorted(by_section.items())
    )

    tds_return = TDSReturn(
        deductor_tan=deductor_tan,
        financial_year=financial_year.strip().upper(),
        quarter=quarter,
        total_payments=_sum([d.payment_amount for d in in_quarter]),
        total_tds=_sum([d.total_tds for d in in_quarter]),
        transaction_count=len(in_quarter),
        section_breakdown=breakdown,
        late_deposits=tuple(late),
        findings=tuple(findings),
    )

    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.info("tds_quarterly_return_built", extra={
        "deductor_tan": deductor_tan,
        "financial_year": tds_return.financial_year,
        "quarter": quarter.value,
        "transaction_count": tds_return.transaction_count,
        "total_tds": str(tds_return.total_tds.amount),
        "late_deposit_count": len(late),
        "duration_ms": duration_ms,
    })
    return tds_return


def calculate_late_filing_fee(
    tds_return: TDSReturn,
    filed_on: date,
    rules: TDSRules | None = None,
) -> Money:
    """
    Section 234E fee for filing the quarterly statement late.

    Per-day fee x days after the filing due date, never more than the TDS
    in the statement (nor the configured cap, when one is set).
    """
    rules = rules if rules is not None else get_default_rules().tds
    days_late = max(0, (filed_on - tds_return.filing_due_date).days)
    fee = rules.late_filing_fee_per_day * days_late
    fee = min(fee, tds_return.total_tds.amount)
    if rules.late_filing_fee_cap is not None:
        fee = min(fee, rules.late_filing_fee_cap)
    return Money(amount=round2(Decimal(fee)), currency=tds_return.total_tds.currency)
