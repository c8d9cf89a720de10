"""
Tests for the return classifier.

Covers:
- GSTR-1 table selection (B2B, B2C large/small, exports, not applicable)
- GSTR-3B section selection, including reverse charge
- ITC section for self-assessed tax
- Contradictory reverse-charge flags
- Classifying the same input twice gives the same placement
"""

from decimal import Decimal

import pytest
from hypothesis import HealthCheck, assume, given, settings
from hypothesis import strategies as st

from tax_engines.classification import (
    B2C_LARGE_THRESHOLD,
    ClassificationInput,
    GSTR1Table,
    GSTR3BSection,
    ReturnClassifier,
    classify_return,
)
from tax_engines.reverse_charge import ReverseChargeType
from tax_kernel.domain.transaction import TaxComponents, TransactionType
from tax_kernel.domain.values import Money
from tax_kernel.exceptions import InconsistentInputError, InvalidIdentifierError

from tests.conftest import FILER_GSTIN, MH_GSTIN


def _input(**overrides) -> ClassificationInput:
    fields = dict(
        transaction_type=TransactionType.DOMESTIC_B2C,
        is_rcm=False,
        rcm_type=ReverseChargeType.NONE,
        has_export_authorization=False,
        recipient_gstin=None,
        recipient_country="IN",
        total_value_in_base_currency=Money.of("100000"),
        is_interstate=False,
    )
    fields.update(overrides)
    return ClassificationInput(**fields)


class TestGSTR1Tables:
    """Outward-supply return table selection."""

    def test_b2b(self, classifier):
        result = classifier.classify(_input(
            transaction_type=TransactionType.DOMESTIC_B2B, recipient_gstin=MH_GSTIN
        ))

        assert result.gstr1_table is GSTR1Table.B2B
        assert result.gstr1_table_code == "4A"
        assert result.recipient_gstin == MH_GSTIN

    def test_b2c_large(self, classifier):
        """Inter-state supply to an unregistered buyer above 2.5 lakh."""
        result = classifier.classify(_input(
            total_value_in_base_currency=Money.of("300000"), is_interstate=True
        ))

        assert result.gstr1_table is GSTR1Table.B2C_LARGE
        assert result.gstr1_table_code == "5"

    def test_b2c_small_below_threshold(self, classifier):
        result = classifier.classify(_input(is_interstate=True))

        assert result.gstr1_table is GSTR1Table.B2C_SMALL
        assert result.gstr1_table_code == "7"

    def test_threshold_is_exclusive(self, classifier):
        result = classifier.classify(_input(
            total_value_in_base_currency=Money.of(B2C_LARGE_THRESHOLD), is_interstate=True
        ))
        assert result.gstr1_table is GSTR1Table.B2C_SMALL

    def test_large_intra_state_is_small(self, classifier):
        result = classifier.classify(_input(total_value_in_base_currency=Money.of("900000")))
        assert result.gstr1_table is GSTR1Table.B2C_SMALL

    def test_export_with_lut(self, classifier):
        result = classifier.classify(_input(
            transaction_type=TransactionType.EXPORT,
            has_export_authorization=True,
            recipient_country="US",
            is_interstate=True,
        ))

        assert result.gstr1_table is GSTR1Table.EXPORTS_WITH_LUT
        assert result.gstr1_table_code == "6A"
        assert result.gstr3b_section is GSTR3BSection.ZERO_RATED

    def test_export_with_payment(self, classifier):
        result = classifier.classify(_input(
            transaction_type=TransactionType.EXPORT, recipient_country="US", is_interstate=True
        ))
        assert result.gstr1_table is GSTR1Table.EXPORTS_WITH_PAYMENT

    def test_foreign_unregistered_recipient_is_export(self, classifier):
        result = classifier.classify(_input(recipient_country="SG"))
        assert result.gstr1_table is GSTR1Table.EXPORTS_WITH_PAYMENT

    def test_registered_recipient_abroad_is_b2b(self, classifier):
        result = classifier.classify(_input(recipient_gstin=MH_GSTIN, recipient_country="US"))
        assert result.gstr1_table is GSTR1Table.B2B


class TestReverseCharge:
    """Self-assessed tax is not reported in GSTR-1."""

    def test_import_of_services(self, classifier):
        tax = TaxComponents.of(igst="18000")
        result = classifier.classify(_input(
            transaction_type=TransactionType.SELF_INVOICE,
            is_rcm=True,
            rcm_type=ReverseChargeType.IMPORT_OF_SERVICES,
            recipient_gstin=FILER_GSTIN,
            tax=tax,
        ))

        assert result.gstr1_table is GSTR1Table.NOT_APPLICABLE
        assert result.gstr1_table_code is None
        assert result.gstr3b_section is GSTR3BSection.OUTWARD_TAXABLE
        assert result.itc_section == "4A(3)"
        assert result.itc_tax == tax
        assert result.is_rcm

    def test_domestic_unregistered(self, classifier):
        result = classifier.classify(_input(
            transaction_type=TransactionType.SELF_INVOICE,
            is_rcm=True,
            rcm_type=ReverseChargeType.DOMESTIC_UNREGISTERED,
            recipient_gstin=FILER_GSTIN,
        ))

        assert result.gstr3b_section is GSTR3BSection.INWARD_RCM
        assert result.gstr3b_section_code == "3.1(d)"
        assert result.itc_section == "4A(3)"

    def test_forward_charge_has_no_itc_section(self, classifier):
        result = classifier.classify(_input())
        assert result.itc_section is None
        assert result.itc_tax is None


class TestConsistency:
    """Contradictory flags are rejected."""

    def test_rcm_without_type(self, classifier):
        with pytest.raises(InconsistentInputError):
            classifier.classify(_input(is_rcm=True))

    def test_type_without_rcm(self, classifier):
        with pytest.raises(InconsistentInputError):
            classifier.classify(_input(rcm_type=ReverseChargeType.DOMESTIC_UNREGISTERED))

    def test_self_invoice_without_rcm(self, classifier):
        with pytest.raises(InconsistentInputError):
            classifier.classify(_input(transaction_type=TransactionType.SELF_INVOICE))

    def test_malformed_recipient_gstin(self, classifier):
        with pytest.raises(InvalidIdentifierError):
            classifier.classify(_input(recipient_gstin="29ABCDE1234F1Z"))


class TestDefaults:
    def test_taxable_defaults_to_base_value(self):
        result = classify_return(_input())
        assert result.taxable_value == Money.of("100000")
        assert result.tax.is_zero

    def test_table_metadata(self):
        assert GSTR3BSection.ZERO_RATED.section_code == "3.1(b)"
        assert "unregistered" in GSTR1Table.B2C_LARGE.description
        assert GSTR1Table.EXPORTS_WITH_LUT.table_code == GSTR1Table.EXPORTS_WITH_PAYMENT.table_code

    def test_threshold_constant(self):
        assert B2C_LARGE_THRESHOLD == Decimal("250000")


DETERMINISM_SETTINGS = settings(
    max_examples=150,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)

values = st.decimals(
    min_value=Decimal("0.00"),
    max_value=Decimal("9999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@st.composite
def classification_inputs(draw) -> ClassificationInput:
    rcm_type = draw(st.sampled_from(list(ReverseChargeType)))
    transaction_type = draw(st.sampled_from(list(TransactionType)))
    is_rcm = rcm_type is not ReverseChargeType.NONE
    assume(is_rcm or transaction_type is not TransactionType.SELF_INVOICE)
    value = Money.of(draw(values))
    tax = draw(st.one_of(st.none(), st.builds(
        lambda igst, cgst: TaxComponents.of(igst=igst, cgst=cgst, sgst=cgst),
        values,
        values,
    )))
    return ClassificationInput(
        transaction_type=transaction_type,
        is_rcm=is_rcm,
        rcm_type=rcm_type,
        has_export_authorization=draw(st.booleans()),
        recipient_gstin=draw(st.sampled_from([None, "", MH_GSTIN, FILER_GSTIN])),
        recipient_country=draw(st.sampled_from([None, "IN", "India", "US", "SG"])),
        total_value_in_base_currency=value,
        is_interstate=draw(st.booleans()),
        taxable_value=draw(st.sampled_from([None, value])),
        tax=tax,
    )


class TestDeterminism:
    """Classification depends on nothing but its input."""

    @given(ci=classification_inputs())
    @DETERMINISM_SETTINGS
    def test_same_input_same_result(self, classifier, ci):
        assert classifier.classify(ci) == classifier.classify(ci)

    @given(ci=classification_inputs())
    @DETERMINISM_SETTINGS
    def test_independent_of_classifier_instance(self, classifier, ci):
        assert classifier.classify(ci) == ReturnClassifier().classify(ci) == classify_return(ci)

    @given(ci=classification_inputs())
    @DETERMINISM_SETTINGS
    def test_input_left_untouched(self, classifier, ci):
        before = repr(ci)
        classifier.classify(ci)
        assert repr(ci) == before
