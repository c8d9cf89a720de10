"""
Transaction pipeline -- one transaction through every GST engine, in order.

Responsibility:
    Runs the per-transaction data flow: identifier validation, reverse
    charge detection, GST calculation, ITC evaluation (self-invoices only)
    and return classification, collecting compliance findings on the way.

Architecture position:
    Engines -- orchestration over the pure engines, zero I/O.
    The only module that knows the order the engines run in; each engine
    stays usable on its own.

Invariants enforced:
    - Identifiers are validated before any engine runs.
    - Foreign-currency amounts are converted to the base currency before
      tax is calculated, so every result is in INR.
    - Exports under LUT / bond are taxed at zero.
    - A reverse-charge decision fixes the rate (when the transaction has
      none) and the heads the tax is charged under.

Failure modes:
    Whatever the engines raise, unchanged: ValidationError subclasses for
    malformed input, ComputationError subclasses for contradictions.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal

from tax_config import EngineRules, get_default_rules
from tax_engines.classification import (
    ReturnClassification,
    ReturnClassifier,
    classification_input_for,
    party_state,
)
from tax_engines.gst import GSTCalculator, TaxCalculationResult, TaxType, determine_interstate
from tax_engines.itc import ITCClaim, ITCEligibility, ITCEligibilityEngine, ITCLine
from tax_engines.reverse_charge import (
    ReverseChargeDecision,
    ReverseChargeDetector,
    ReverseChargeInput,
    check_self_invoice_timeliness,
)
from tax_kernel.domain.findings import ComplianceFinding
from tax_kernel.domain.identifiers import (
    optional_gstin,
    require_gstin,
    require_state_code,
)
from tax_kernel.domain.transaction import (
    CreditCategory,
    LineItem,
    Transaction,
    TransactionType,
)
from tax_kernel.exceptions import MissingFieldError
from tax_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.pipeline")


@dataclass(frozen=True)
class TransactionOutcome:
    """Everything the engines produced for one transaction."""

    transaction: Transaction
    decision: ReverseChargeDecision
    tax: TaxCalculationResult
    classification: ReturnClassification
    itc: ITCEligibility | None = None
    findings: tuple[ComplianceFinding, ...] = ()

    @property
    def is_reverse_charge(self) -> bool:
        return self.decision.applicable


class TransactionProcessor:
    """
    Run transactions through the GST engines.

    Holds one instance of each engine, all built from the same rule set.
    """

    def __init__(self, rules: EngineRules | None = None):
        rules = rules if rules is not None else get_default_rules()
        self._rules = rules
        self._detector = ReverseChargeDetector(rules.reverse_charge)
        self._calculator = GSTCalculator()
        self._itc_engine = ITCEligibilityEngine(rules.itc)
        self._classifier = ReturnClassifier()

    @property
    def rules(self) -> EngineRules:
        return self._rules

    def process(self, transaction: Transaction, receipt_date: date | None = None) -> TransactionOutcome:
        """
        Process one transaction.

        ``receipt_date`` is the date a self-invoiced supply was received;
        when given, the self-invoice date is checked against the issue
        window.
        """
        with LogContext.bind(correlation_id=transaction.document_number):
            t0 = time.monotonic()
            logger.info("transaction_processing_started", extra={
                "document_number": transaction.document_number,
                "transaction_type": transaction.transaction_type.value,
                "currency": transaction.currency,
                "line_count": len(transaction.line_items),
            })

            self._validate(transaction)
            findings: list[ComplianceFinding] = []

            decision = self._detector.detect(self._rcm_input(transaction))
            is_interstate = self._is_interstate(transaction, decision)
            tax = self._calculate(transaction, decision, is_interstate)

            itc = None
            if transaction.transaction_type is TransactionType.SELF_INVOICE:
                itc = self._itc_engine.evaluate(self._itc_claim(transaction, decision, tax))
                if receipt_date is not None:
                    late = check_self_invoice_timeliness(
                        receipt_date,
                        transaction.document_date,
                        self._rules.reverse_charge.self_invoice_window_days,
                    )
                    if late is not None:
                        findings.append(late)

            classification = self._classifier.classify(
                classification_input_for(transaction, decision, tax)
            )

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info("transaction_processing_completed", extra={
                "document_number": transaction.document_number,
                "rcm_type": decision.rcm_type.value,
                "total_tax": str(tax.total_tax.amount),
                "gstr1_table": classification.gstr1_table.value,
                "gstr3b_section": classification.gstr3b_section.value,
                "finding_count": len(findings),
                "duration_ms": duration_ms,
            })
            return TransactionOutcome(
                transaction=transaction,
                decision=decision,
                tax=tax,
                classification=classification,
                itc=itc,
                findings=tuple(findings),
            )

    def process_all(self, transactions: Sequence[Transaction]) -> list[TransactionOutcome]:
        """Process transactions one by one; the first failure propagates."""
        return [self.process(t) for t in transactions]

    def _validate(self, transaction: Transaction) -> None:
        optional_gstin(transaction.supplier.gstin, "supplier.gstin")
        optional_gstin(transaction.recipient.gstin, "recipient.gstin")
        if transaction.transaction_type is TransactionType.DOMESTIC_B2B:
            require_gstin(transaction.recipient.gstin, "recipient.gstin")
        if transaction.transaction_type is TransactionType.SELF_INVOICE:
            require_gstin(transaction.recipient.gstin, "recipient.gstin")
        if transaction.place_of_supply is not None:
            require_state_code(transaction.place_of_supply, "place_of_supply")

    def _rcm_input(self, transaction: Transaction) -> ReverseChargeInput:
        supplier, recipient = transaction.supplier, transaction.recipient
        return ReverseChargeInput(
            vendor_name=supplier.name,
            vendor_country=supplier.country,
            taxable_amount=transaction.value_in_base_currency,
            vendor_gstin=supplier.gstin,
            recipient_gstin=recipient.gstin,
            recipient_state=recipient.state_code,
            place_of_supply=transaction.place_of_supply,
            service_type=transaction.service_type,
            hsn_sac_code=transaction.hsn_sac_code,
            vendor_type=supplier.vendor_type,
            supply_date=transaction.document_date,
        )

    def _is_interstate(self, transaction: Transaction, decision: ReverseChargeDecision) -> bool:
        if transaction.transaction_type is TransactionType.EXPORT:
            return True
        if decision.applicable and decision.tax_type is not None:
            return decision.tax_type is TaxType.IGST
        return determine_interstate(party_state(transaction.supplier), transaction.place_of_supply)

    def _calculate(
        self,
        transaction: Transaction,
        decision: ReverseChargeDecision,
        is_interstate: bool,
    ) -> TaxCalculationResult:
        rate = transaction.tax_rate
        if rate is None and decision.applicable:
            rate = decision.gst_rate
        cess_rate = transaction.cess_rate
        zero_rated = (
            transaction.transaction_type is TransactionType.EXPORT
            and transaction.has_export_authorization
        )
        if zero_rated:
            rate, cess_rate = Decimal("0"), Decimal("0")

        if transaction.line_items:
            lines = [
                replace(
                    line,
                    taxable_amount=transaction.to_base_currency(line.taxable_amount),
                    tax_rate=Decimal("0") if zero_rated else line.tax_rate,
                )
                for line in transaction.line_items
            ]
            return self._calculator.calculate_lines(
                lines,
                default_rate=rate,
                is_interstate=is_interstate,
                reverse_charge=decision.applicable,
                rcm_percent=transaction.rcm_percent,
                cess_rate=cess_rate,
            )

        if rate is None:
            raise MissingFieldError("tax_rate", f"document {transaction.document_number}")
        return self._calculator.calculate(
            taxable_amount=transaction.value_in_base_currency,
            rate=rate,
            is_interstate=is_interstate,
            reverse_charge=decision.applicable,
            rcm_percent=transaction.rcm_percent,
            cess_rate=cess_rate,
        )

    def _itc_claim(
        self,
        transaction: Transaction,
        decision: ReverseChargeDecision,
        tax: TaxCalculationResult,
    ) -> ITCClaim:
        if transaction.line_items:
            lines = tuple(
                self._itc_line(item, result)
                for item, result in zip(transaction.line_items, tax.lines, strict=True)
            )
        else:
            lines = (ITCLine(
                description=transaction.service_type or transaction.document_number,
                category=CreditCategory.INPUT_SERVICES,
                tax=tax.components,
            ),)
        return ITCClaim(
            lines=lines,
            vendor_type=transaction.supplier.vendor_type,
            is_valid_invoice=transaction.is_valid_invoice,
            goods_received=transaction.goods_received,
            rcm_type=decision.rcm_type,
            document_number=transaction.document_number,
            currency=tax.taxable_amount.currency.code,
        )

    @staticmethod
    def _itc_line(item: LineItem, result: TaxCalculationResult) -> ITCLine:
        return ITCLine(
            description=item.description,
            category=item.category,
            tax=result.components,
            blocked_reason=item.blocked_reason,
            business_use_percent=item.business_use_percent,
        )


def process_transaction(
    transaction: Transaction,
    rules: EngineRules | None = None,
    receipt_date: date | None = None,
) -> TransactionOutcome:
    """Convenience wrapper around ``TransactionProcessor(rules).process``."""
    return TransactionProcessor(rules).process(transaction, receipt_date=receipt_date)
