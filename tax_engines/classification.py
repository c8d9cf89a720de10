"""
Return Classifier -- which return table or section a transaction belongs in.

Responsibility:
    Maps a transaction's attributes to its row in the outward-supply
    return (GSTR-1 table) and the summary return (GSTR-3B section), and
    attaches the ITC section for self-assessed reverse-charge tax.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Runs last in the per-transaction flow; its output feeds the return
    summary builders.

Decision table:
    GSTR-1
        self-invoice or reverse charge            -> NOT_APPLICABLE
        export, LUT on file                       -> EXPORTS_WITH_LUT (6A)
        export, no LUT                            -> EXPORTS_WITH_PAYMENT (6A)
        recipient registered                      -> B2B (4A)
        unregistered, inter-state, value > 2.5L   -> B2C_LARGE (5)
        unregistered otherwise                    -> B2C_SMALL (7)
    GSTR-3B
        reverse charge, import of services        -> OUTWARD_TAXABLE 3.1(a)
        reverse charge, domestic unregistered     -> INWARD_RCM 3.1(d)
        export                                    -> ZERO_RATED 3.1(b)
        otherwise                                 -> OUTWARD_TAXABLE 3.1(a)
    ITC section 4A(3) whenever reverse charge applies.

    An export is a transaction tagged EXPORT, or one whose recipient is
    unregistered and outside India.

Invariants enforced:
    - Pure function of its input: no clock, no rule file, no state.
    - The 2.5 lakh threshold and every table/section code are statutory
      constants of this module, not configuration.
    - Every enum member is handled; ``assert_never`` marks the exhaustive
      branches.

Failure modes:
    - InconsistentInputError when the reverse-charge flag, the reverse
      charge type and the transaction type contradict each other.
    - InvalidIdentifierError for a malformed recipient GSTIN.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import assert_never

from tax_engines.gst import TaxCalculationResult
from tax_engines.reverse_charge import ReverseChargeDecision, ReverseChargeType
from tax_engines.tracer import traced_engine
from tax_kernel.domain.identifiers import (
    OUTSIDE_INDIA_STATE_CODE,
    gstin_state_code,
    is_domestic_country,
    optional_gstin,
    require_state_code,
)
from tax_kernel.domain.transaction import Party, TaxComponents, Transaction, TransactionType
from tax_kernel.domain.values import Money, round2
from tax_kernel.exceptions import InconsistentInputError
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.classification")

B2C_LARGE_THRESHOLD = Decimal("250000")
RCM_ITC_SECTION = "4A(3)"


class GSTR1Table(str, Enum):
    """Outward-supply return tables."""

    B2B = "B2B"
    B2C_LARGE = "B2C_LARGE"
    B2C_SMALL = "B2C_SMALL"
    EXPORTS_WITH_LUT = "EXPORTS_WITH_LUT"
    EXPORTS_WITH_PAYMENT = "EXPORTS_WITH_PAYMENT"
    NOT_APPLICABLE = "NOT_APPLICABLE"

    @property
    def table_code(self) -> str | None:
        match self:
            case GSTR1Table.B2B:
                return "4A"
            case GSTR1Table.B2C_LARGE:
                return "5"
            case GSTR1Table.B2C_SMALL:
                return "7"
            case GSTR1Table.EXPORTS_WITH_LUT | GSTR1Table.EXPORTS_WITH_PAYMENT:
                return "6A"
            case GSTR1Table.NOT_APPLICABLE:
                return None
            case _:
                assert_never(self)

    @property
    def description(self) -> str:
        match self:
            case GSTR1Table.B2B:
                return "Taxable outward supplies to registered persons"
            case GSTR1Table.B2C_LARGE:
                return "Inter-state supplies to unregistered persons above Rs. 2.5 lakh"
            case GSTR1Table.B2C_SMALL:
                return "Other supplies to unregistered persons"
            case GSTR1Table.EXPORTS_WITH_LUT:
                return "Exports without payment of tax under LUT or bond"
            case GSTR1Table.EXPORTS_WITH_PAYMENT:
                return "Exports with payment of IGST"
            case GSTR1Table.NOT_APPLICABLE:
                return "Not reported in the outward supply return"
            case _:
                assert_never(self)


class GSTR3BSection(str, Enum):
    """Summary return sections."""

    OUTWARD_TAXABLE = "OUTWARD_TAXABLE"
    ZERO_RATED = "ZERO_RATED"
    INWARD_RCM = "INWARD_RCM"

    @property
    def section_code(self) -> str:
        match self:
            case GSTR3BSection.OUTWARD_TAXABLE:
                return "3.1(a)"
            case GSTR3BSection.ZERO_RATED:
                return "3.1(b)"
            case GSTR3BSection.INWARD_RCM:
                return "3.1(d)"
            case _:
                assert_never(self)

    @property
    def description(self) -> str:
        match self:
            case GSTR3BSection.OUTWARD_TAXABLE:
                return "Outward taxable supplies (other than zero rated, nil rated and exempted)"
            case GSTR3BSection.ZERO_RATED:
                return "Outward taxable supplies (zero rated)"
            case GSTR3BSection.INWARD_RCM:
                return "Inward supplies (liable to reverse charge)"
            case _:
                assert_never(self)


@dataclass(frozen=True)
class ReturnItem:
    """One invoice line as GSTR-1 item details and the HSN summary see it."""

    rate: Decimal
    taxable_value: Money
    tax: TaxComponents
    hsn_sac_code: str | None = None
    description: str | None = None
    quantity: Decimal | None = None
    uqc: str | None = None  # Unit quantity code


@dataclass(frozen=True)
class ClassificationInput:
    """Everything the decision table looks at.

    ``taxable_value`` defaults to the base-currency value and ``tax`` to
    zero in the base currency. The document fields and ``items`` do not
    affect the placement; they are carried through for invoice-level
    return detail.
    """

    transaction_type: TransactionType
    is_rcm: bool
    rcm_type: ReverseChargeType
    has_export_authorization: bool
    recipient_gstin: str | None
    recipient_country: str | None
    total_value_in_base_currency: Money
    is_interstate: bool
    taxable_value: Money | None = None
    tax: TaxComponents | None = None
    document_number: str | None = None
    document_date: date | None = None
    place_of_supply: str | None = None
    rate: Decimal | None = None
    items: tuple[ReturnItem, ...] = ()

    @property
    def is_export(self) -> bool:
        if self.transaction_type is TransactionType.EXPORT:
            return True
        if self.transaction_type is TransactionType.SELF_INVOICE:
            return False
        has_registration = bool(self.recipient_gstin and self.recipient_gstin.strip())
        return not has_registration and not is_domestic_country(self.recipient_country)


@dataclass(frozen=True)
class ReturnClassification:
    """Return placement of one transaction, with the invoice detail GSTR-1 reports."""

    gstr1_table: GSTR1Table
    gstr3b_section: GSTR3BSection
    taxable_value: Money
    tax: TaxComponents
    itc_section: str | None = None
    itc_tax: TaxComponents | None = None
    rcm_type: ReverseChargeType = ReverseChargeType.NONE
    recipient_gstin: str | None = None
    document_number: str | None = None
    document_date: date | None = None
    place_of_supply: str | None = None
    is_interstate: bool = False
    rate: Decimal | None = None
    items: tuple[ReturnItem, ...] = ()

    @property
    def gstr1_table_code(self) -> str | None:
        return self.gstr1_table.table_code

    @property
    def gstr3b_section_code(self) -> str:
        return self.gstr3b_section.section_code

    @property
    def is_rcm(self) -> bool:
        return self.rcm_type is not ReverseChargeType.NONE

    @property
    def invoice_value(self) -> Money:
        return self.taxable_value + self.tax.total

    @property
    def report_items(self) -> tuple[ReturnItem, ...]:
        """``items``, or one item covering the whole invoice when none were given.

        Without an explicit rate, the whole-invoice item's rate is the GST
        (excluding cess) as a percentage of the taxable value, two places.
        """
        if self.items:
            return self.items
        rate = self.rate
        if rate is None:
            gst = self.tax.igst + self.tax.cgst + self.tax.sgst
            rate = (
                Decimal("0")
                if self.taxable_value.is_zero
                else round2(gst.amount * 100 / self.taxable_value.amount)
            )
        return (ReturnItem(rate=rate, taxable_value=self.taxable_value, tax=self.tax),)


class ReturnClassifier:
    """Apply the return decision table. Stateless."""

    @traced_engine("return_classifier", "1.0", fingerprint_fields=("classification_input",))
    def classify(self, classification_input: ClassificationInput) -> ReturnClassification:
        """
        Classify one transaction.

        Raises:
            InconsistentInputError: contradictory reverse-charge flags.
            InvalidIdentifierError: malformed recipient GSTIN.
        """
        t0 = time.monotonic()
        ci = classification_input
        recipient_gstin = optional_gstin(ci.recipient_gstin, "recipient_gstin")
        self._check_consistency(ci)

        gstr1 = self._gstr1_table(ci, recipient_gstin)
        gstr3b = self._gstr3b_section(ci)

        currency = ci.total_value_in_base_currency.currency.code
        tax = ci.tax if ci.tax is not None else TaxComponents.zero(currency)
        taxable = ci.taxable_value if ci.taxable_value is not None else ci.total_value_in_base_currency

        result = ReturnClassification(
            gstr1_table=gstr1,
            gstr3b_section=gstr3b,
            taxable_value=taxable,
            tax=tax,
            itc_section=RCM_ITC_SECTION if ci.is_rcm else None,
            itc_tax=tax if ci.is_rcm else None,
            rcm_type=ci.rcm_type,
            recipient_gstin=recipient_gstin,
            document_number=ci.document_number,
            document_date=ci.document_date,
            place_of_supply=ci.place_of_supply,
            is_interstate=ci.is_interstate,
            rate=ci.rate,
            items=ci.items,
        )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("return_classified", extra={
            "transaction_type": ci.transaction_type.value,
            "gstr1_table": gstr1.value,
            "gstr3b_section": gstr3b.value,
            "itc_section": result.itc_section,
            "duration_ms": duration_ms,
        })
        return result

    def _check_consistency(self, ci: ClassificationInput) -> None:
        if ci.is_rcm and ci.rcm_type is ReverseChargeType.NONE:
            raise InconsistentInputError("reverse charge flagged without a reverse-charge type")
        if not ci.is_rcm and ci.rcm_type is not ReverseChargeType.NONE:
            raise InconsistentInputError(
                f"reverse-charge type {ci.rcm_type.value} given but reverse charge not flagged"
            )
        if ci.transaction_type is TransactionType.SELF_INVOICE and not ci.is_rcm:
            raise InconsistentInputError("self-invoice raised without reverse charge")

    def _gstr1_table(self, ci: ClassificationInput, recipient_gstin: str | None) -> GSTR1Table:
        if ci.transaction_type is TransactionType.SELF_INVOICE or ci.is_rcm:
            return GSTR1Table.NOT_APPLICABLE
        if ci.is_export:
            if ci.has_export_authorization:
                return GSTR1Table.EXPORTS_WITH_LUT
            return GSTR1Table.EXPORTS_WITH_PAYMENT
        if recipient_gstin is not None:
            return GSTR1Table.B2B
        if ci.is_interstate and ci.total_value_in_base_currency.amount > B2C_LARGE_THRESHOLD:
            return GSTR1Table.B2C_LARGE
        return GSTR1Table.B2C_SMALL

    def _gstr3b_section(self, ci: ClassificationInput) -> GSTR3BSection:
        if ci.is_rcm:
            match ci.rcm_type:
                case ReverseChargeType.IMPORT_OF_SERVICES:
                    return GSTR3BSection.OUTWARD_TAXABLE
                case ReverseChargeType.DOMESTIC_UNREGISTERED:
                    return GSTR3BSection.INWARD_RCM
                case ReverseChargeType.NONE:
                    raise InconsistentInputError("reverse charge flagged without a reverse-charge type")
                case _:
                    assert_never(ci.rcm_type)
        if ci.is_export:
            return GSTR3BSection.ZERO_RATED
        return GSTR3BSection.OUTWARD_TAXABLE


def party_state(party: Party) -> str | None:
    """Stated state code of a party, else the state embedded in its GSTIN."""
    if party.state_code:
        return require_state_code(party.state_code, "state_code")
    if party.gstin:
        return gstin_state_code(party.gstin)
    return None


def _place_of_supply(transaction: Transaction) -> str | None:
    """Stated place of supply, else the recipient's state, else outside India for exports.

    Falls back to the supplier's state, where a supply with no stated place
    of supply is taxed.
    """
    if transaction.place_of_supply:
        return require_state_code(transaction.place_of_supply, "place_of_supply")
    recipient_state = party_state(transaction.recipient)
    if recipient_state is not None:
        return recipient_state
    if transaction.transaction_type is TransactionType.EXPORT or not transaction.recipient.is_domestic:
        return OUTSIDE_INDIA_STATE_CODE
    return party_state(transaction.supplier)


def _base_tax(transaction: Transaction, tax: TaxComponents) -> TaxComponents:
    if tax.igst.currency.is_base:
        return tax
    return TaxComponents(
        igst=transaction.to_base_currency(tax.igst),
        cgst=transaction.to_base_currency(tax.cgst),
        sgst=transaction.to_base_currency(tax.sgst),
        cess=transaction.to_base_currency(tax.cess),
    )


def _return_items(
    transaction: Transaction, tax_result: TaxCalculationResult
) -> tuple[ReturnItem, ...]:
    if transaction.line_items and len(tax_result.lines) == len(transaction.line_items):
        return tuple(
            ReturnItem(
                rate=result.rate if result.rate is not None else Decimal("0"),
                taxable_value=transaction.to_base_currency(result.taxable_amount),
                tax=_base_tax(transaction, result.components),
                hsn_sac_code=line.hsn_sac_code or transaction.hsn_sac_code,
                description=line.description,
                quantity=line.quantity,
                uqc=line.uqc,
            )
            for line, result in zip(transaction.line_items, tax_result.lines)
        )
    if tax_result.rate is None:
        return ()
    return (
        ReturnItem(
            rate=tax_result.rate,
            taxable_value=transaction.to_base_currency(tax_result.taxable_amount),
            tax=_base_tax(transaction, tax_result.components),
            hsn_sac_code=transaction.hsn_sac_code,
            description=transaction.service_type,
        ),
    )


def classification_input_for(
    transaction: Transaction,
    decision: ReverseChargeDecision,
    tax_result: TaxCalculationResult,
) -> ClassificationInput:
    """Build the classifier input from a transaction and its computed results.

    Amounts are converted to the base currency first. Each line item
    becomes one return item carrying its HSN/SAC code.
    """
    taxable_base = transaction.value_in_base_currency
    return ClassificationInput(
        transaction_type=transaction.transaction_type,
        is_rcm=decision.applicable,
        rcm_type=decision.rcm_type,
        has_export_authorization=transaction.has_export_authorization,
        recipient_gstin=transaction.recipient.gstin,
        recipient_country=transaction.recipient.country,
        total_value_in_base_currency=taxable_base,
        is_interstate=tax_result.is_interstate,
        taxable_value=taxable_base,
        tax=_base_tax(transaction, tax_result.components),
        document_number=transaction.document_number,
        document_date=transaction.document_date,
        place_of_supply=_place_of_supply(transaction),
        rate=tax_result.rate,
        items=_return_items(transaction, tax_result),
    )


def classify_return(classification_input: ClassificationInput) -> ReturnClassification:
    """Convenience wrapper around ``ReturnClassifier().classify``."""
    return ReturnClassifier().classify(classification_input)
