"""
Tests for the ITC engine.

Covers:
- Whole-claim blocks (composition vendor, invalid invoice, goods not received)
- Section 17(5) blocked lines and partial business use
- Blocked-credit carve-outs
- Rule 37 reversal for non-payment
- Credit register and statutory set-off order
"""

from datetime import date
from decimal import Decimal

import pytest

from tax_engines.itc import (
    BlockedCreditCheck,
    BlockedCreditReason,
    ITCClaim,
    ITCLine,
    ITCReversal,
    ITCReversalReason,
    VehiclePurpose,
    assess_blocked_credit,
    build_itc_register,
    evaluate_itc,
    reversal_for_non_payment,
    utilize_itc,
)
from tax_engines.reverse_charge import ReverseChargeType
from tax_kernel.domain.findings import FindingSeverity
from tax_kernel.domain.transaction import CreditCategory, TaxComponents, VendorType
from tax_kernel.domain.values import Money
from tax_kernel.exceptions import InvalidDateOrderError, NegativeAmountError


def _line(description="Raw material", category=CreditCategory.INPUTS, cgst="900", sgst="900", **kwargs):
    return ITCLine(
        description=description,
        category=category,
        tax=TaxComponents.of(cgst=cgst, sgst=sgst),
        **kwargs,
    )


class TestEligibility:
    """Line-level eligibility."""

    def test_fully_eligible(self, itc_engine):
        result = itc_engine.evaluate(ITCClaim(lines=(_line(),)))

        assert result.eligible_amount == Money.of("1800")
        assert result.blocked_amount.is_zero
        assert result.eligibility_percentage == Decimal("100.00")
        assert result.eligible_for(CreditCategory.INPUTS).total == Money.of("1800")

    def test_blocked_line(self, itc_engine):
        claim = ITCClaim(lines=(
            _line(),
            _line("Staff lunch", CreditCategory.BLOCKED, blocked_reason="FOOD_BEVERAGE"),
        ))
        result = itc_engine.evaluate(claim)

        assert result.eligible_amount == Money.of("1800")
        assert result.blocked_amount == Money.of("1800")
        assert result.eligibility_percentage == Decimal("50.00")
        assert result.blocked_items[0].reason.startswith("Section 17(5)(b)(i)")

    def test_partial_business_use(self, itc_engine):
        claim = ITCClaim(lines=(
            _line("Laptop", CreditCategory.CAPITAL_GOODS, business_use_percent=Decimal("60")),
        ))
        result = itc_engine.evaluate(claim)

        assert result.eligible_amount == Money.of("1080.00")
        assert result.blocked_amount == Money.of("720.00")
        assert result.reversal_required == Money.of("720.00")
        assert result.eligibility_percentage == Decimal("60.00")
        assert result.blocked_items[0].reason == "Non-business use (40%)"

    def test_eligible_plus_blocked_is_total(self, itc_engine):
        claim = ITCClaim(lines=(
            _line(cgst="333.33", sgst="333.33", business_use_percent=Decimal("33")),
            _line("Club", CreditCategory.BLOCKED, cgst="10.01", sgst="10.01"),
        ))
        result = itc_engine.evaluate(claim)

        assert result.eligible_components + result.blocked_components == TaxComponents.of(
            cgst="343.34", sgst="343.34"
        )
        assert result.eligible_amount + result.blocked_amount == result.total_tax

    def test_no_tax(self, itc_engine):
        result = itc_engine.evaluate(ITCClaim(lines=()))
        assert result.eligibility_percentage == Decimal("0.00")
        assert not result.is_fully_blocked

    def test_rcm_type_carried(self, itc_engine):
        claim = ITCClaim(lines=(_line(),), rcm_type=ReverseChargeType.IMPORT_OF_SERVICES)
        assert itc_engine.evaluate(claim).rcm_type is ReverseChargeType.IMPORT_OF_SERVICES


class TestWholeClaimBlocks:
    """Conditions that block every line of a claim."""

    def test_composition_vendor(self, itc_engine):
        result = itc_engine.evaluate(ITCClaim(lines=(_line(),), vendor_type=VendorType.COMPOSITION))

        assert result.is_fully_blocked
        assert result.reasons == ("Composition dealer - no credit available",)

    def test_invalid_invoice_and_goods_not_received(self, itc_engine):
        claim = ITCClaim(lines=(_line(),), is_valid_invoice=False, goods_received=False)
        result = itc_engine.evaluate(claim)

        assert result.eligible_amount.is_zero
        assert result.blocked_amount == Money.of("1800")
        assert result.reasons == ("Invalid invoice", "Goods not yet received")

    def test_wrapper(self):
        result = evaluate_itc(ITCClaim(lines=(_line(),), goods_received=False))
        assert result.is_fully_blocked

    def test_negative_tax_rejected(self):
        with pytest.raises(NegativeAmountError):
            _line(cgst="-1")


class TestBlockedCreditAssessment:
    """Section 17(5) and its carve-outs."""

    def test_small_car_blocked(self):
        result = assess_blocked_credit(BlockedCreditCheck(
            reason=BlockedCreditReason.MOTOR_VEHICLE, seating_capacity=5
        ))

        assert result.blocked
        assert result.category is CreditCategory.BLOCKED
        assert result.reason_text.startswith("Section 17(5)(a)")

    def test_bus_allowed(self):
        result = assess_blocked_credit(BlockedCreditCheck(
            reason=BlockedCreditReason.MOTOR_VEHICLE, seating_capacity=20
        ))
        assert not result.blocked
        assert result.category is None

    def test_goods_transport_vehicle_allowed(self):
        result = assess_blocked_credit(BlockedCreditCheck(
            reason=BlockedCreditReason.MOTOR_VEHICLE,
            seating_capacity=2,
            vehicle_purpose=VehiclePurpose.GOODS_TRANSPORT,
        ))
        assert not result.blocked

    def test_food_under_statutory_obligation(self):
        result = assess_blocked_credit(BlockedCreditCheck(
            reason=BlockedCreditReason.FOOD_BEVERAGE, statutory_obligation=True
        ))
        assert not result.blocked

    @pytest.mark.parametrize("membership, blocked", [("club", True), ("GYM", True), ("TRADE_ASSOCIATION", False)])
    def test_membership(self, membership, blocked):
        result = assess_blocked_credit(BlockedCreditCheck(
            reason=BlockedCreditReason.MEMBERSHIP, membership_type=membership
        ))
        assert result.blocked is blocked

    def test_construction_plant_and_machinery(self):
        result = assess_blocked_credit(BlockedCreditCheck(
            reason=BlockedCreditReason.CONSTRUCTION, is_plant_and_machinery=True
        ))
        assert not result.blocked

    def test_personal_use_always_blocked(self):
        assert assess_blocked_credit(BlockedCreditCheck(reason=BlockedCreditReason.PERSONAL_USE)).blocked


class TestNonPaymentReversal:
    """Rule 37: unpaid invoices lose their credit after 180 days."""

    def setup_method(self):
        self.credit = TaxComponents.of(igst="18000")

    def test_within_limit(self):
        assert reversal_for_non_payment(self.credit, date(2024, 1, 1), date(2024, 6, 29)) is None

    def test_paid(self):
        assert reversal_for_non_payment(self.credit, date(2024, 1, 1), date(2024, 12, 31), paid=True) is None

    def test_reversed_with_interest(self):
        # 190 days outstanding, 10 days past the limit
        reversal = reversal_for_non_payment(self.credit, date(2024, 1, 1), date(2024, 7, 9))

        assert reversal.reason is ITCReversalReason.NON_PAYMENT_180_DAYS
        assert reversal.amount == self.credit
        # 18000 * 18 * 10 / 36500
        assert reversal.interest == Money.of("88.77")

    def test_as_of_before_invoice(self):
        with pytest.raises(InvalidDateOrderError):
            reversal_for_non_payment(self.credit, date(2024, 6, 1), date(2024, 5, 1))


class TestRegisterAndSetOff:
    """Period credit ledger and utilisation."""

    def test_register(self, itc_engine):
        evaluation = itc_engine.evaluate(ITCClaim(lines=(_line(),)))
        reversal = ITCReversal(
            reason=ITCReversalReason.CREDIT_NOTE,
            amount=TaxComponents.of(cgst="100", sgst="100"),
            interest=Money.zero(),
        )
        register = build_itc_register(
            "062024",
            opening_balance=TaxComponents.of(igst="500"),
            evaluations=[evaluation],
            reversals=[reversal],
            utilized=TaxComponents.of(igst="500", cgst="800"),
        )

        assert register.available == TaxComponents.of(igst="500", cgst="800", sgst="800")
        assert register.closing_balance == TaxComponents.of(sgst="800")
        assert register.findings == ()

    def test_over_utilisation_flagged(self):
        register = build_itc_register(
            "062024",
            opening_balance=TaxComponents.of(cgst="100"),
            evaluations=[],
            utilized=TaxComponents.of(cgst="150"),
        )

        assert register.closing_balance.cgst == Money.of("-50")
        assert register.findings[0].code == "ITC_EXCEEDS_AVAILABLE"
        assert register.findings[0].severity is FindingSeverity.ERROR

    def test_igst_credit_used_first_across_heads(self):
        result = utilize_itc(
            available=TaxComponents.of(igst="1000", cgst="300", sgst="300"),
            liability=TaxComponents.of(igst="400", cgst="500", sgst="500"),
        )

        # IGST credit: 400 against IGST, 500 against CGST, 100 against SGST
        assert result.utilized.igst == Money.of("1000")
        assert result.utilized.cgst.is_zero
        assert result.utilized.sgst == Money.of("300")
        assert result.cash_payable == TaxComponents.of(sgst="100")
        assert result.remaining_credit == TaxComponents.of(cgst="300")

    def test_cgst_never_against_sgst(self):
        result = utilize_itc(
            available=TaxComponents.of(cgst="1000"),
            liability=TaxComponents.of(sgst="500"),
        )
        assert result.utilized.is_zero
        assert result.cash_payable.sgst == Money.of("500")

    def test_cess_only_against_cess(self):
        result = utilize_itc(
            available=TaxComponents.of(cess="100"),
            liability=TaxComponents.of(igst="100", cess="40"),
        )
        assert result.utilized.cess == Money.of("40")
        assert result.cash_payable.igst == Money.of("100")
