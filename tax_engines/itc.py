"""
ITC Engine -- how much of the GST paid on a purchase is creditable.

Responsibility:
    Evaluates input-tax-credit eligibility of a purchase (composition
    vendors, invalid invoices, goods not received, Section 17(5) blocked
    lines, partial business use), assesses whether a purchase falls in a
    Section 17(5) blocked category, computes Rule 37 reversals, aggregates
    a period's credit register and applies the statutory set-off order
    when credit is used against output liability.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Runs after the GST calculator for inward supplies; its results feed
    the summary-return builder (ITC availed, reversed and ineligible).

Invariants enforced:
    - eligible + blocked == total tax of the claim, head by head.
    - eligibility_percentage = eligible / (eligible + blocked) * 100,
      rounded to two places; 0 when there is no tax.
    - Partial business use splits each head with two-place rounding on
      the eligible share; the blocked share is the exact remainder.
    - Set-off never uses CGST credit against SGST or SGST against CGST,
      and IGST credit is exhausted before CGST or SGST credit is used.

Failure modes:
    - RateOutOfRangeError for a business-use percentage outside [0, 100].
    - NegativeAmountError for negative tax heads.
    - InvalidDateOrderError when an as-of date predates the invoice.

Audit relevance:
    Every blocked amount carries its statutory reason so that the
    ineligible-ITC rows of the summary return can be traced to the lines
    that produced them.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from tax_config import ITCRules, get_default_rules
from tax_engines.reverse_charge import ReverseChargeType
from tax_engines.tracer import traced_engine
from tax_kernel.domain.findings import ComplianceFinding, FindingSeverity
from tax_kernel.domain.transaction import (
    CreditCategory,
    TaxComponents,
    VendorType,
    check_rate,
)
from tax_kernel.domain.values import HUNDRED, Money, round2
from tax_kernel.exceptions import InvalidDateOrderError, NegativeAmountError
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.itc")

_CREDIT_CATEGORIES = (
    CreditCategory.INPUTS,
    CreditCategory.CAPITAL_GOODS,
    CreditCategory.INPUT_SERVICES,
)


class BlockedCreditReason(str, Enum):
    """Section 17(5) heads under which credit is blocked."""

    MOTOR_VEHICLE = "MOTOR_VEHICLE"
    FOOD_BEVERAGE = "FOOD_BEVERAGE"
    MEMBERSHIP = "MEMBERSHIP"
    INSURANCE = "INSURANCE"
    CONSTRUCTION = "CONSTRUCTION"
    PERSONAL_USE = "PERSONAL_USE"
    LOST_GOODS = "LOST_GOODS"
    OTHER = "OTHER"


class VehiclePurpose(str, Enum):
    """Use of a motor vehicle; some uses keep the credit."""

    PASSENGER_TRANSPORT = "passenger_transport"
    GOODS_TRANSPORT = "goods_transport"
    IMPARTING_TRAINING = "imparting_training"
    FURTHER_SUPPLY = "further_supply"
    OTHER = "other"


class ITCReversalReason(str, Enum):
    """Why previously availed credit has to be reversed."""

    NON_PAYMENT_180_DAYS = "non_payment_180_days"  # Rule 37
    GOODS_LOST = "goods_lost"
    USAGE_CHANGE = "usage_change"
    CREDIT_NOTE = "credit_note"
    EXEMPT_SUPPLY = "exempt_supply"  # Rule 42/43


def _check_components(tax: TaxComponents, field_name: str) -> None:
    for head in ("igst", "cgst", "sgst", "cess"):
        amount = getattr(tax, head)
        if amount.is_negative:
            raise NegativeAmountError(f"{field_name}.{head}", amount.amount)


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ITCLine:
    """Tax on one purchase line with its credit category."""

    description: str
    category: CreditCategory
    tax: TaxComponents
    blocked_reason: str | None = None
    business_use_percent: Decimal = Decimal("100")

    def __post_init__(self) -> None:
        _check_components(self.tax, "tax")
        object.__setattr__(
            self,
            "business_use_percent",
            check_rate(self.business_use_percent, "business_use_percent"),
        )


@dataclass(frozen=True)
class ITCClaim:
    """A purchase offered for credit."""

    lines: tuple[ITCLine, ...]
    vendor_type: VendorType = VendorType.REGULAR
    is_valid_invoice: bool = True
    goods_received: bool = True
    rcm_type: ReverseChargeType = ReverseChargeType.NONE
    document_number: str | None = None
    currency: str = "INR"

    def __post_init__(self) -> None:
        if not isinstance(self.lines, tuple):
            object.__setattr__(self, "lines", tuple(self.lines))


@dataclass(frozen=True)
class BlockedItem:
    """Tax on a line that is not creditable, with the reason."""

    description: str
    reason: str
    amount: Money


@dataclass(frozen=True)
class ITCEligibility:
    """Outcome of an ITC evaluation."""

    total_tax: Money
    eligible_amount: Money
    blocked_amount: Money
    reversal_required: Money
    eligibility_percentage: Decimal
    eligible_components: TaxComponents
    blocked_components: TaxComponents
    eligible_by_category: tuple[tuple[CreditCategory, TaxComponents], ...] = ()
    blocked_items: tuple[BlockedItem, ...] = ()
    reasons: tuple[str, ...] = ()
    rcm_type: ReverseChargeType = ReverseChargeType.NONE

    @property
    def is_fully_blocked(self) -> bool:
        return self.eligible_amount.is_zero and not self.blocked_amount.is_zero

    def eligible_for(self, category: CreditCategory) -> TaxComponents:
        for cat, components in self.eligible_by_category:
            if cat is category:
                return components
        return TaxComponents.zero(self.total_tax.currency.code)


def _percentage(eligible: Money, blocked: Money) -> Decimal:
    denominator = eligible.amount + blocked.amount
    if denominator == 0:
        return Decimal("0.00")
    return round2(eligible.amount / denominator * HUNDRED)


class ITCEligibilityEngine:
    """
    Evaluate input-tax-credit eligibility.

    Stateless apart from the immutable rule tables it is built with.
    """

    def __init__(self, rules: ITCRules | None = None):
        self._rules = rules if rules is not None else get_default_rules().itc

    @property
    def rules(self) -> ITCRules:
        return self._rules

    @traced_engine("itc_eligibility", "1.0", fingerprint_fields=("claim",))
    def evaluate(self, claim: ITCClaim) -> ITCEligibility:
        """
        Evaluate one claim.

        A composition vendor, an invalid invoice or goods not yet received
        block the whole claim. Otherwise each line is blocked, split by
        business use, or fully eligible.
        """
        t0 = time.monotonic()
        logger.info("itc_evaluation_started", extra={
            "document_number": claim.document_number,
            "line_count": len(claim.lines),
            "vendor_type": claim.vendor_type.value,
            "is_valid_invoice": claim.is_valid_invoice,
            "goods_received": claim.goods_received,
        })

        if claim.vendor_type is VendorType.COMPOSITION:
            result = self._block_all(claim, (self._rules.composition_reason,))
        elif not claim.is_valid_invoice or not claim.goods_received:
            reasons = []
            if not claim.is_valid_invoice:
                reasons.append(self._rules.invalid_invoice_reason)
            if not claim.goods_received:
                reasons.append(self._rules.goods_not_received_reason)
            result = self._block_all(claim, tuple(reasons))
        else:
            result = self._evaluate_lines(claim)

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("itc_evaluation_completed", extra={
            "document_number": claim.document_number,
            "total_tax": str(result.total_tax.amount),
            "eligible_amount": str(result.eligible_amount.amount),
            "blocked_amount": str(result.blocked_amount.amount),
            "reversal_required": str(result.reversal_required.amount),
            "eligibility_percentage": str(result.eligibility_percentage),
            "duration_ms": duration_ms,
        })
        return result

    def _block_all(self, claim: ITCClaim, reasons: tuple[str, ...]) -> ITCEligibility:
        zero = TaxComponents.zero(claim.currency)
        blocked = zero
        for line in claim.lines:
            blocked = blocked + line.tax
        reason = "; ".join(reasons)
        items = tuple(
            BlockedItem(description=line.description, reason=reason, amount=line.tax.total)
            for line in claim.lines
        )
        return ITCEligibility(
            total_tax=blocked.total,
            eligible_amount=zero.total,
            blocked_amount=blocked.total,
            reversal_required=zero.total,
            eligibility_percentage=_percentage(zero.total, blocked.total),
            eligible_components=zero,
            blocked_components=blocked,
            blocked_items=items,
            reasons=reasons,
            rcm_type=claim.rcm_type,
        )

    def _evaluate_lines(self, claim: ITCClaim) -> ITCEligibility:
        zero = TaxComponents.zero(claim.currency)
        eligible = blocked = reversal = zero
        by_category: dict[CreditCategory, TaxComponents] = {}
        items: list[BlockedItem] = []

        for line in claim.lines:
            if line.category is CreditCategory.BLOCKED:
                reason = self._rules.blocked_reason_text(line.blocked_reason)
                blocked = blocked + line.tax
                items.append(BlockedItem(line.description, reason, line.tax.total))
                logger.debug("itc_line_blocked", extra={
                    "description": line.description,
                    "reason": reason,
                    "amount": str(line.tax.total.amount),
                })
                continue

            if line.business_use_percent < HUNDRED:
                usable, non_business = line.tax.split(line.business_use_percent)
                blocked = blocked + non_business
                reversal = reversal + non_business
                items.append(BlockedItem(
                    line.description,
                    f"Non-business use ({HUNDRED - line.business_use_percent}%)",
                    non_business.total,
                ))
            else:
                usable = line.tax

            eligible = eligible + usable
            by_category[line.category] = by_category.get(line.category, zero) + usable

        return ITCEligibility(
            total_tax=(eligible + blocked).total,
            eligible_amount=eligible.total,
            blocked_amount=blocked.total,
            reversal_required=reversal.total,
            eligibility_percentage=_percentage(eligible.total, blocked.total),
            eligible_components=eligible,
            blocked_components=blocked,
            eligible_by_category=tuple(
                (cat, by_category[cat]) for cat in _CREDIT_CATEGORIES if cat in by_category
            ),
            blocked_items=tuple(items),
            rcm_type=claim.rcm_type,
        )


def evaluate_itc(claim: ITCClaim, rules: ITCRules | None = None) -> ITCEligibility:
    """Convenience wrapper around ``ITCEligibilityEngine(rules).evaluate``."""
    return ITCEligibilityEngine(rules).evaluate(claim)


# ---------------------------------------------------------------------------
# Section 17(5) blocked-credit assessment
# ---------------------------------------------------------------------------

BLOCKED_MEMBERSHIPS = frozenset({"CLUB", "FITNESS_CENTER", "GYM", "HEALTH_CLUB"})
BLOCKED_INSURANCE = frozenset({"HEALTH", "LIFE"})


@dataclass(frozen=True)
class BlockedCreditCheck:
    """Facts about a purchase needed to apply Section 17(5)."""

    reason: BlockedCreditReason
    seating_capacity: int | None = None
    vehicle_purpose: VehiclePurpose | None = None
    statutory_obligation: bool = False  # Employer obliged by law to provide it
    membership_type: str | None = None
    insurance_type: str | None = None
    is_plant_and_machinery: bool = False
    for_sale_or_development: bool = False


@dataclass(frozen=True)
class BlockedCreditAssessment:
    """Whether a purchase is blocked and why."""

    blocked: bool
    category: CreditCategory | None
    reason_text: str | None
    explanation: str


def assess_blocked_credit(
    check: BlockedCreditCheck,
    rules: ITCRules | None = None,
) -> BlockedCreditAssessment:
    """
    Apply Section 17(5) and its carve-outs to one purchase.

    Returns a blocked assessment (category BLOCKED, statutory wording) or
    an allowed one (category None, so the caller keeps its own category).
    """
    rules = rules if rules is not None else get_default_rules().itc
    reason = check.reason
    allowed_because: str | None = None

    match reason:
        case BlockedCreditReason.MOTOR_VEHICLE:
            if (
                check.seating_capacity is not None
                and check.seating_capacity > rules.motor_vehicle_max_blocked_seating
            ):
                allowed_because = (
                    f"Seating capacity {check.seating_capacity} exceeds "
                    f"{rules.motor_vehicle_max_blocked_seating}"
                )
            elif check.vehicle_purpose in (
                VehiclePurpose.PASSENGER_TRANSPORT,
                VehiclePurpose.GOODS_TRANSPORT,
                VehiclePurpose.IMPARTING_TRAINING,
                VehiclePurpose.FURTHER_SUPPLY,
            ):
                allowed_because = f"Vehicle used for {check.vehicle_purpose.value}"
        case BlockedCreditReason.FOOD_BEVERAGE:
            if check.statutory_obligation:
                allowed_because = "Provided under a statutory obligation"
        case BlockedCreditReason.MEMBERSHIP:
            if (check.membership_type or "").strip().upper() not in BLOCKED_MEMBERSHIPS:
                allowed_because = f"Membership type {check.membership_type!r} is not blocked"
        case BlockedCreditReason.INSURANCE:
            if (check.insurance_type or "").strip().upper() not in BLOCKED_INSURANCE:
                allowed_because = f"Insurance type {check.insurance_type!r} is not blocked"
            elif check.statutory_obligation:
                allowed_because = "Provided under a statutory obligation"
        case BlockedCreditReason.CONSTRUCTION:
            if check.is_plant_and_machinery:
                allowed_because = "Plant and machinery"
            elif check.for_sale_or_development:
                allowed_because = "Construction for sale or further development"
        case BlockedCreditReason.PERSONAL_USE | BlockedCreditReason.LOST_GOODS | BlockedCreditReason.OTHER:
            pass

    if allowed_because is not None:
        return BlockedCreditAssessment(
            blocked=False,
            category=None,
            reason_text=None,
            explanation=allowed_because,
        )
    text = rules.blocked_reason_text(reason.value)
    return BlockedCreditAssessment(
        blocked=True,
        category=CreditCategory.BLOCKED,
        reason_text=text,
        explanation=text,
    )


# ---------------------------------------------------------------------------
# Reversal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ITCReversal:
    """Credit to be reversed, with interest where the law charges it."""

    reason: ITCReversalReason
    amount: TaxComponents
    interest: Money
    reference: str | None = None


def reversal_for_non_payment(
    credit: TaxComponents,
    invoice_date: date,
    as_of: date,
    paid: bool = False,
    rules: ITCRules | None = None,
) -> ITCReversal | None:
    """
    Rule 37: credit on an invoice unpaid after the allowed days is reversed.

    Interest runs at the reversal rate on the reversed credit for the days
    past the limit. Returns None when paid or still within the limit.

    Raises:
        InvalidDateOrderError: as_of is before invoice_date.
    """
    rules = rules if rules is not None else get_default_rules().itc
    if as_of < invoice_date:
        raise InvalidDateOrderError("invoice_date", invoice_date, "as_of", as_of)
    _check_components(credit, "credit")
    days = (as_of - invoice_date).days
    if paid or days <= rules.non_payment_days:
        return None
    overdue = days - rules.non_payment_days
    interest = round2(
        credit.total.amount * rules.reversal_interest_rate_annual * overdue / Decimal("36500")
    )
    logger.info("itc_reversal_non_payment", extra={
        "invoice_date": invoice_date.isoformat(),
        "as_of": as_of.isoformat(),
        "days_outstanding": days,
        "credit": str(credit.total.amount),
        "interest": str(interest),
    })
    return ITCReversal(
        reason=ITCReversalReason.NON_PAYMENT_180_DAYS,
        amount=credit,
        interest=Money(amount=interest, currency=credit.total.currency),
        reference="Rule 37, CGST Rules",
    )


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ITCRegister:
    """Credit ledger for one return period, by tax head."""

    period: str
    opening_balance: TaxComponents
    eligible: TaxComponents
    blocked: TaxComponents
    reversed: TaxComponents
    utilized: TaxComponents
    closing_balance: TaxComponents
    findings: tuple[ComplianceFinding, ...] = field(default=())

    @property
    def available(self) -> TaxComponents:
        """Credit available for set-off in the period."""
        return self.opening_balance + self.eligible - self.reversed


def build_itc_register(
    period: str,
    opening_balance: TaxComponents,
    evaluations: Sequence[ITCEligibility],
    reversals: Sequence[ITCReversal] = (),
    utilized: TaxComponents | None = None,
) -> ITCRegister:
    """
    Aggregate a period's evaluations and reversals into a credit register.

    closing = opening + eligible - reversed - utilized, head by head. A head
    utilised beyond what was available is reported as an
    ``ITC_EXCEEDS_AVAILABLE`` finding and left negative in the closing
    balance.
    """
    currency = opening_balance.currency
    zero = TaxComponents.zero(currency)
    eligible = blocked = reversed_total = zero
    for evaluation in evaluations:
        eligible = eligible + evaluation.eligible_components
        blocked = blocked + evaluation.blocked_components
    for reversal in reversals:
        reversed_total = reversed_total + reversal.amount
    utilized = utilized if utilized is not None else zero

    available = opening_balance + eligible - reversed_total
    closing = available - utilized

    findings = []
    for head in ("igst", "cgst", "sgst", "cess"):
        balance = getattr(closing, head)
        if balance.is_negative:
            findings.append(ComplianceFinding(
                code="ITC_EXCEEDS_AVAILABLE",
                severity=FindingSeverity.ERROR,
                message=(
                    f"{head.upper()} credit utilised {getattr(utilized, head).amount} "
                    f"exceeds available {getattr(available, head).amount}"
                ),
                reference="Section 49, CGST Act",
                details=(("head", head), ("excess", str(-balance.amount))),
            ))

    logger.info("itc_register_built", extra={
        "period": period,
        "evaluation_count": len(evaluations),
        "eligible": str(eligible.total.amount),
        "reversed": str(reversed_total.total.amount),
        "utilized": str(utilized.total.amount),
        "closing": str(closing.total.amount),
        "finding_count": len(findings),
    })
    return ITCRegister(
        period=period,
        opening_balance=opening_balance,
        eligible=eligible,
        blocked=blocked,
        reversed=reversed_total,
        utilized=utilized,
        closing_balance=closing,
        findings=tuple(findings),
    )


# ---------------------------------------------------------------------------
# Utilisation (set-off)
# ---------------------------------------------------------------------------

# (credit head, liability heads in order of use)
SET_OFF_ORDER: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("igst", ("igst", "cgst", "sgst")),
    ("cgst", ("cgst", "igst")),
    ("sgst", ("sgst", "igst")),
    ("cess", ("cess",)),
)


@dataclass(frozen=True)
class SetOffStep:
    """Credit of one head applied against liability of another."""

    credit_head: str
    liability_head: str
    amount: Money


@dataclass(frozen=True)
class ITCUtilization:
    """Result of setting credit off against output liability."""

    liability: TaxComponents
    available_credit: TaxComponents
    utilized: TaxComponents  # Credit consumed, by credit head
    cash_payable: TaxComponents  # Liability left for cash, by liability head
    remaining_credit: TaxComponents
    steps: tuple[SetOffStep, ...] = ()


def utilize_itc(available: TaxComponents, liability: TaxComponents) -> ITCUtilization:
    """
    Set credit off against liability in the statutory order.

    IGST credit goes against IGST, then CGST, then SGST liability. CGST
    credit goes against CGST, then IGST; SGST credit against SGST, then
    IGST. Cess credit only against cess.
    """
    _check_components(available, "available")
    _check_components(liability, "liability")
    currency = liability.total.currency

    credit = {h: getattr(available, h).amount for h in ("igst", "cgst", "sgst", "cess")}
    owed = {h: getattr(liability, h).amount for h in ("igst", "cgst", "sgst", "cess")}
    used = dict.fromkeys(credit, Decimal("0"))
    steps: list[SetOffStep] = []

    for credit_head, targets in SET_OFF_ORDER:
        for liability_head in targets:
            amount = min(credit[credit_head], owed[liability_head])
            if amount <= 0:
                continue
            credit[credit_head] -= amount
            owed[liability_head] -= amount
            used[credit_head] += amount
            steps.append(SetOffStep(credit_head, liability_head, Money(amount, currency)))

    def components(values: dict[str, Decimal]) -> TaxComponents:
        return TaxComponents(**{h: Money(v, currency) for h, v in values.items()})

    result = ITCUtilization(
        liability=liability,
        available_credit=available,
        utilized=components(used),
        cash_payable=components(owed),
        remaining_credit=components(credit),
        steps=tuple(steps),
    )
    logger.info("itc_utilized", extra={
        "liability": str(liability.total.amount),
        "credit_used": str(result.utilized.total.amount),
        "cash_payable": str(result.cash_payable.total.amount),
        "step_count": len(steps),
    })
    return result
