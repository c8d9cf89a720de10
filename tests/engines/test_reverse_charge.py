"""
Tests for the reverse-charge detector.

Covers:
- Import of services by a registered recipient
- Notified services bought from unregistered domestic suppliers
- Forward-charge fall-through cases
- Self-invoice timeliness and late-payment interest
- Detecting on the same input twice gives the same decision
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from tax_engines.gst import TaxType
from tax_engines.reverse_charge import (
    ReverseChargeDetector,
    ReverseChargeInput,
    ReverseChargeType,
    check_self_invoice_timeliness,
    detect_reverse_charge,
    rcm_payment_interest,
)
from tax_kernel.domain.findings import FindingSeverity
from tax_kernel.domain.transaction import VendorType
from tax_kernel.domain.values import Money
from tax_kernel.exceptions import (
    InvalidDateOrderError,
    InvalidIdentifierError,
    NegativeAmountError,
)

from tests.conftest import FILER_GSTIN, MH_GSTIN


def _input(**overrides) -> ReverseChargeInput:
    fields = dict(
        vendor_name="Acme Inc",
        vendor_country="US",
        taxable_amount=Money.of("250000"),
        recipient_gstin=FILER_GSTIN,
        service_type="SOFTWARE",
    )
    fields.update(overrides)
    return ReverseChargeInput(**fields)


class TestImportOfServices:
    """Rule 1: foreign vendor, registered recipient."""

    def test_detected(self, detector):
        decision = detector.detect(_input())

        assert decision.applicable
        assert decision.rcm_type is ReverseChargeType.IMPORT_OF_SERVICES
        assert decision.gst_rate == Decimal("18")
        assert decision.tax_type is TaxType.IGST

    def test_unregistered_recipient_is_not_reverse_charge(self, detector):
        decision = detector.detect(_input(recipient_gstin=None))

        assert not decision.applicable
        assert decision.rcm_type is ReverseChargeType.NONE

    def test_unknown_service_uses_default_rate(self, detector):
        decision = detector.detect(_input(service_type="SOMETHING_ELSE"))
        assert decision.gst_rate == Decimal("18")

    def test_missing_country_counts_as_foreign(self, detector):
        decision = detector.detect(_input(vendor_country=None))
        assert decision.rcm_type is ReverseChargeType.IMPORT_OF_SERVICES

    @pytest.mark.parametrize("country", ["IN", "India", "IND", "bharat"])
    def test_domestic_spellings_are_not_imports(self, detector, country):
        decision = detector.detect(_input(vendor_country=country, vendor_gstin=MH_GSTIN))
        assert decision.rcm_type is ReverseChargeType.NONE


class TestDomesticUnregistered:
    """Rule 2: notified service from an unregistered domestic supplier."""

    def test_notified_service_intra_state(self, detector):
        decision = detector.detect(_input(
            vendor_name="Local Transport",
            vendor_country="IN",
            service_type="GTA",
            recipient_state="29",
            place_of_supply="29",
        ))

        assert decision.applicable
        assert decision.rcm_type is ReverseChargeType.DOMESTIC_UNREGISTERED
        assert decision.gst_rate == Decimal("5")
        assert decision.tax_type is TaxType.CGST_SGST
        assert decision.notified_service.code == "GTA_ROAD"

    def test_notified_service_inter_state(self, detector):
        decision = detector.detect(_input(
            vendor_country="IN",
            service_type="LEGAL",
            recipient_state="29",
            place_of_supply="27",
        ))
        assert decision.tax_type is TaxType.IGST

    def test_recipient_state_from_gstin(self, detector):
        decision = detector.detect(_input(
            vendor_country="IN",
            service_type="LEGAL",
            place_of_supply="29",
        ))
        assert decision.tax_type is TaxType.CGST_SGST

    def test_notified_by_sac_code(self, detector):
        decision = detector.detect(_input(
            vendor_country="IN",
            service_type=None,
            hsn_sac_code="996601",
            supply_date=date(2024, 1, 1),
        ))
        assert decision.notified_service.code == "RENT_A_CAB"

    def test_not_in_force_on_supply_date(self, detector):
        decision = detector.detect(_input(
            vendor_country="IN",
            service_type="RENT_A_CAB",
            supply_date=date(2019, 1, 1),
        ))
        assert not decision.applicable

    def test_service_not_notified(self, detector):
        decision = detector.detect(_input(vendor_country="IN", service_type="SOFTWARE"))

        assert not decision.applicable
        assert "not notified" in decision.reason

    def test_registered_domestic_vendor_is_forward_charge(self, detector):
        decision = detector.detect(_input(
            vendor_country="IN", vendor_gstin=MH_GSTIN, service_type="GTA"
        ))

        assert not decision.applicable
        assert decision.reason == "Registered vendor - forward charge"


class TestCompositionAndValidation:
    def test_composition_vendor_never_triggers(self, detector):
        decision = detector.detect(_input(vendor_type=VendorType.COMPOSITION))
        assert decision.rcm_type is ReverseChargeType.NONE

    def test_malformed_recipient_gstin(self, detector):
        with pytest.raises(InvalidIdentifierError):
            detector.detect(_input(recipient_gstin="29ABCDE1234F1Z"))

    def test_malformed_vendor_gstin(self, detector):
        with pytest.raises(InvalidIdentifierError):
            detector.detect(_input(vendor_country="IN", vendor_gstin="BAD"))

    def test_negative_amount(self, detector):
        with pytest.raises(NegativeAmountError):
            detector.detect(_input(taxable_amount=Money.of("-1")))

    def test_wrapper(self, rules):
        decision = detect_reverse_charge(_input(), rules.reverse_charge)
        assert decision.rcm_type is ReverseChargeType.IMPORT_OF_SERVICES

    def test_logs_and_trace(self, detector, captured_logs):
        detector.detect(_input())
        messages = [r["message"] for r in captured_logs()]
        assert "rcm_detection_started" in messages
        assert "rcm_detection_completed" in messages
        assert "TAX_ENGINE_TRACE" in messages


class TestSelfInvoiceTimeliness:
    """Self-invoices are due within 30 days of receipt."""

    def test_on_time(self):
        assert check_self_invoice_timeliness(date(2024, 6, 1), date(2024, 7, 1)) is None

    def test_late(self):
        finding = check_self_invoice_timeliness(date(2024, 6, 1), date(2024, 7, 5))

        assert finding.code == "LATE_SELF_INVOICE"
        assert finding.severity is FindingSeverity.WARNING
        assert finding.detail("days_after_receipt") == 34
        assert finding.detail("days_late") == 4

    def test_issue_before_receipt(self):
        with pytest.raises(InvalidDateOrderError):
            check_self_invoice_timeliness(date(2024, 6, 10), date(2024, 6, 1))


class TestRCMInterest:
    def test_interest(self):
        interest = rcm_payment_interest(Money.of("18000"), date(2024, 7, 20), date(2024, 8, 19))
        # 18000 * 18 * 30 / 36500
        assert interest == Money.of("266.30")

    def test_paid_on_time(self):
        interest = rcm_payment_interest(Money.of("18000"), date(2024, 7, 20), date(2024, 7, 19))
        assert interest.is_zero

    def test_negative_principal(self):
        with pytest.raises(NegativeAmountError):
            rcm_payment_interest(Money.of("-1"), date(2024, 7, 20), date(2024, 8, 1))


DETERMINISM_SETTINGS = settings(
    max_examples=150,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)

rcm_inputs = st.builds(
    ReverseChargeInput,
    vendor_name=st.sampled_from(["Acme Inc", "Local Transport", "Counsel & Co"]),
    vendor_country=st.sampled_from([None, "IN", "India", "US", "GB"]),
    taxable_amount=st.decimals(
        min_value=Decimal("0.00"),
        max_value=Decimal("9999999.99"),
        places=2,
        allow_nan=False,
        allow_infinity=False,
    ).map(Money.of),
    vendor_gstin=st.sampled_from([None, MH_GSTIN]),
    recipient_gstin=st.sampled_from([None, FILER_GSTIN, MH_GSTIN]),
    recipient_state=st.sampled_from([None, "29", "27"]),
    place_of_supply=st.sampled_from([None, "29", "27", "96"]),
    service_type=st.sampled_from([None, "SOFTWARE", "GTA", "LEGAL", "SECURITY", "UNLISTED"]),
    hsn_sac_code=st.sampled_from([None, "998212", "996711", "998525"]),
    vendor_type=st.sampled_from(list(VendorType)),
    supply_date=st.one_of(
        st.none(), st.dates(min_value=date(2017, 7, 1), max_value=date(2026, 3, 31))
    ),
)


class TestDeterminism:
    """Detection depends on nothing but its input and the rule tables."""

    @given(rcm_input=rcm_inputs)
    @DETERMINISM_SETTINGS
    def test_same_input_same_decision(self, detector, rcm_input):
        assert detector.detect(rcm_input) == detector.detect(rcm_input)

    @given(rcm_input=rcm_inputs)
    @DETERMINISM_SETTINGS
    def test_independent_of_detector_instance(self, detector, rules, rcm_input):
        fresh = ReverseChargeDetector(rules.reverse_charge)
        assert detector.detect(rcm_input) == fresh.detect(rcm_input)
        assert detect_reverse_charge(rcm_input, rules.reverse_charge) == fresh.detect(rcm_input)
