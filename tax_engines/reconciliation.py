"""
Reconciliation Matcher -- purchase records against counterparty-reported data.

Responsibility:
    Scores a purchase record against the record the supplier reported
    (GSTR-2B), listing every discrepancy and the signed tax differences,
    and reconciles whole batches keyed on (supplier GSTIN, document
    number).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Runs independently of the per-transaction flow, over batches of
    stored records supplied by the caller.

Scoring:
    Start at 100 and subtract, per mismatch, the configured weight:
    GSTIN 30, document number 20, document date 10, taxable value 15,
    CGST 10, SGST 10, IGST 5. Amounts differ when the absolute difference
    exceeds the tolerance (0.01). The score floors at 0.

Invariants enforced:
    - is_matched is True exactly when there are no discrepancies.
    - A record matched against itself scores 100.
    - Batch partitions are exhaustive and disjoint: each purchase record is
      either matched or missing from counterparty data; each unpaired
      counterparty record is additional. Duplicate keys pair up in input
      order.
    - Differences are signed purchase - counterparty and reported only
      when non-zero.

Suggestions:
    Unpaired counterparty records get up to ``max_suggestions`` candidate
    purchase records from the missing set, ranked by similarity: same GSTIN
    50 (else same state 10), same document number 30 (else one contains
    the other 15), dates within 3 days 10 (else within the window 5),
    taxable values within 1% 10 (else within the tolerance percent 5).
    Suggestions are advisory; they never move a record between partitions.

Audit relevance:
    Tax on purchase records missing from counterparty data is credit at
    risk: it cannot be claimed until the supplier reports the invoice.
    The report also totals the counterparty-reported tax of matched,
    mismatched and counterparty-only records.

Failure modes:
    - Records in more than one currency  -> CurrencyMismatchError, raised
      before any pairing.
"""

from __future__ import annotations

import re
import time
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from tax_config import ReconciliationRules, get_default_rules
from tax_engines.tracer import traced_engine
from tax_kernel.domain.findings import ComplianceFinding, FindingSeverity
from tax_kernel.domain.identifiers import optional_gstin
from tax_kernel.domain.transaction import TaxComponents
from tax_kernel.domain.values import BASE_CURRENCY, Money
from tax_kernel.exceptions import CurrencyMismatchError, MissingFieldError
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

_WHITESPACE = re.compile(r"\s+")


def normalize_key_part(value: str | None) -> str:
    """Upper-case and drop all whitespace."""
    if not value:
        return ""
    return _WHITESPACE.sub("", value).upper()


class DiscrepancyType(str, Enum):
    """What differs between a purchase record and the counterparty record."""

    GSTIN = "gstin"
    DOCUMENT_NUMBER = "document_number"
    DOCUMENT_DATE = "document_date"
    TAXABLE_VALUE = "taxable_value"
    CGST = "cgst"
    SGST = "sgst"
    IGST = "igst"

    @property
    def message(self) -> str:
        return _MESSAGES[self]

    def weight(self, rules: ReconciliationRules) -> int:
        return getattr(rules, f"{self.value}_weight")


_MESSAGES = {
    DiscrepancyType.GSTIN: "GSTIN mismatch",
    DiscrepancyType.DOCUMENT_NUMBER: "Invoice number mismatch",
    DiscrepancyType.DOCUMENT_DATE: "Invoice date mismatch",
    DiscrepancyType.TAXABLE_VALUE: "Taxable amount mismatch",
    DiscrepancyType.CGST: "CGST mismatch",
    DiscrepancyType.SGST: "SGST mismatch",
    DiscrepancyType.IGST: "IGST mismatch",
}


@dataclass(frozen=True)
class InvoiceRecord:
    """A purchase invoice as recorded by us or as reported by the supplier."""

    gstin: str
    document_number: str
    document_date: date
    taxable_value: Money
    cgst: Money
    sgst: Money
    igst: Money

    def __post_init__(self) -> None:
        if not self.document_number or not self.document_number.strip():
            raise MissingFieldError("document_number", "invoice record")
        object.__setattr__(self, "gstin", optional_gstin(self.gstin, "gstin"))
        if self.gstin is None:
            raise MissingFieldError("gstin", "invoice record")
        currency = self.taxable_value.currency
        for amount in (self.cgst, self.sgst, self.igst):
            if amount.currency != currency:
                raise CurrencyMismatchError(currency.code, amount.currency.code)

    @property
    def key(self) -> tuple[str, str]:
        return (normalize_key_part(self.gstin), normalize_key_part(self.document_number))

    @property
    def tax(self) -> TaxComponents:
        return TaxComponents(
            igst=self.igst,
            cgst=self.cgst,
            sgst=self.sgst,
            cess=Money.zero(self.taxable_value.currency),
        )


@dataclass(frozen=True)
class ReconciliationMatch:
    """Score and discrepancies of one purchase / counterparty pair."""

    score: int
    discrepancies: tuple[DiscrepancyType, ...]
    cgst_difference: Money | None = None
    sgst_difference: Money | None = None
    igst_difference: Money | None = None
    taxable_value_difference: Money | None = None

    @property
    def is_matched(self) -> bool:
        return not self.discrepancies

    @property
    def reasons(self) -> tuple[str, ...]:
        return tuple(d.message for d in self.discrepancies)


@dataclass(frozen=True)
class MatchedPair:
    purchase: InvoiceRecord
    counterparty: InvoiceRecord
    match: ReconciliationMatch


@dataclass(frozen=True)
class PotentialMatch:
    """A missing purchase record that may be the same invoice as an unpaired counterparty record."""

    counterparty: InvoiceRecord
    purchase: InvoiceRecord
    similarity: int


@dataclass(frozen=True)
class ReconciliationReport:
    """Outcome of reconciling a batch of purchase records."""

    matched: tuple[MatchedPair, ...]
    missing_in_counterparty: tuple[InvoiceRecord, ...]
    additional_in_counterparty: tuple[InvoiceRecord, ...]
    credit_at_risk: TaxComponents
    findings: tuple[ComplianceFinding, ...] = field(default=())
    potential_matches: tuple[PotentialMatch, ...] = field(default=())

    @property
    def mismatched(self) -> tuple[MatchedPair, ...]:
        """Pairs found in both sets whose details differ."""
        return tuple(p for p in self.matched if not p.match.is_matched)

    def _counterparty_tax(self, records) -> TaxComponents:
        total = TaxComponents.zero(self.credit_at_risk.currency)
        for record in records:
            total = total + record.tax
        return total

    @property
    def matched_itc(self) -> TaxComponents:
        """Counterparty-reported tax on pairs that agree in every field."""
        return self._counterparty_tax(p.counterparty for p in self.matched if p.match.is_matched)

    @property
    def mismatch_itc(self) -> TaxComponents:
        """Counterparty-reported tax on pairs with discrepancies."""
        return self._counterparty_tax(p.counterparty for p in self.mismatched)

    @property
    def counterparty_only_itc(self) -> TaxComponents:
        return self._counterparty_tax(self.additional_in_counterparty)

    def suggestions_for(self, record: InvoiceRecord) -> tuple[PotentialMatch, ...]:
        return tuple(m for m in self.potential_matches if m.counterparty is record)

    @property
    def match_rate(self) -> Decimal:
        """Percentage of purchase records found in counterparty data, two places."""
        total = len(self.matched) + len(self.missing_in_counterparty)
        if total == 0:
            return Decimal("0.00")
        return (Decimal(len(self.matched)) * 100 / total).quantize(Decimal("0.01"))


class ReconciliationMatcher:
    """
    Score and reconcile invoice records.

    Stateless apart from the immutable weights it is built with.
    """

    def __init__(self, rules: ReconciliationRules | None = None):
        self._rules = rules if rules is not None else get_default_rules().reconciliation

    @property
    def rules(self) -> ReconciliationRules:
        return self._rules

    def match(self, purchase: InvoiceRecord, counterparty: InvoiceRecord) -> ReconciliationMatch:
        """Compare two records field by field."""
        if purchase.taxable_value.currency != counterparty.taxable_value.currency:
            raise CurrencyMismatchError(
                purchase.taxable_value.currency.code, counterparty.taxable_value.currency.code
            )
        tolerance = self._rules.amount_tolerance
        discrepancies: list[DiscrepancyType] = []

        if normalize_key_part(purchase.gstin) != normalize_key_part(counterparty.gstin):
            discrepancies.append(DiscrepancyType.GSTIN)
        if normalize_key_part(purchase.document_number) != normalize_key_part(counterparty.document_number):
            discrepancies.append(DiscrepancyType.DOCUMENT_NUMBER)
        if purchase.document_date != counterparty.document_date:
            discrepancies.append(DiscrepancyType.DOCUMENT_DATE)

        differences: dict[str, Money | None] = {}
        for kind, attr in (
            (DiscrepancyType.TAXABLE_VALUE, "taxable_value"),
            (DiscrepancyType.CGST, "cgst"),
            (DiscrepancyType.SGST, "sgst"),
            (DiscrepancyType.IGST, "igst"),
        ):
            diff = getattr(purchase, attr) - getattr(counterparty, attr)
            differences[attr] = None if diff.is_zero else diff
            if abs(diff.amount) > tolerance:
                discrepancies.append(kind)

        penalty = sum(d.weight(self._rules) for d in discrepancies)
        return ReconciliationMatch(
            score=max(0, 100 - penalty),
            discrepancies=tuple(discrepancies),
            cgst_difference=differences["cgst"],
            sgst_difference=differences["sgst"],
            igst_difference=differences["igst"],
            taxable_value_difference=differences["taxable_value"],
        )

    @traced_engine("reconciliation", "1.0", fingerprint_fields=("purchases", "counterparty"))
    def reconcile(
        self,
        purchases: Sequence[InvoiceRecord],
        counterparty: Sequence[InvoiceRecord],
    ) -> ReconciliationReport:
        """
        Reconcile a batch of purchase records with counterparty data.

        Records pair on ``key``. When a key repeats, the n-th purchase
        record with that key pairs with the n-th counterparty record.
        """
        t0 = time.monotonic()
        logger.info("reconciliation_started", extra={
            "purchase_count": len(purchases),
            "counterparty_count": len(counterparty),
        })
        currency = self._batch_currency(purchases, counterparty)

        pending: dict[tuple[str, str], deque[int]] = {}
        for index, record in enumerate(counterparty):
            pending.setdefault(record.key, deque()).append(index)

        matched: list[MatchedPair] = []
        missing: list[InvoiceRecord] = []
        for purchase in purchases:
            queue = pending.get(purchase.key)
            if queue:
                other = counterparty[queue.popleft()]
                matched.append(MatchedPair(purchase, other, self.match(purchase, other)))
            else:
                missing.append(purchase)

        unpaired = sorted(index for queue in pending.values() for index in queue)
        additional = [counterparty[index] for index in unpaired]

        at_risk = TaxComponents.zero(currency)
        for record in missing:
            at_risk = at_risk + record.tax

        suggestions: list[PotentialMatch] = []
        for record in additional:
            suggestions.extend(self.suggest_matches(record, missing))

        findings = self._findings(matched, missing, additional, at_risk)
        report = ReconciliationReport(
            matched=tuple(matched),
            missing_in_counterparty=tuple(missing),
            additional_in_counterparty=tuple(additional),
            credit_at_risk=at_risk,
            findings=findings,
            potential_matches=tuple(suggestions),
        )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("reconciliation_completed", extra={
            "matched_count": len(matched),
            "mismatched_count": len(report.mismatched),
            "missing_count": len(missing),
            "additional_count": len(additional),
            "match_rate": str(report.match_rate),
            "credit_at_risk": str(at_risk.total.amount),
            "suggestion_count": len(suggestions),
            "duration_ms": duration_ms,
        })
        return report

    @staticmethod
    def _batch_currency(
        purchases: Sequence[InvoiceRecord],
        counterparty: Sequence[InvoiceRecord],
    ) -> str:
        currency = None
        for record in (*purchases, *counterparty):
            code = record.taxable_value.currency.code
            if currency is None:
                currency = code
            elif code != currency:
                raise CurrencyMismatchError(currency, code)
        return currency or BASE_CURRENCY

    def similarity(self, counterparty: InvoiceRecord, purchase: InvoiceRecord) -> int:
        """Heuristic closeness of two records that did not pair on key."""
        rules = self._rules
        score = 0

        if purchase.gstin == counterparty.gstin:
            score += 50
        elif purchase.gstin[:2] == counterparty.gstin[:2]:
            score += 10

        ours = normalize_key_part(purchase.document_number)
        theirs = normalize_key_part(counterparty.document_number)
        if ours == theirs:
            score += 30
        elif ours in theirs or theirs in ours:
            score += 15

        days = abs((purchase.document_date - counterparty.document_date).days)
        if days <= 3:
            score += 10
        elif days <= rules.suggestion_date_window_days:
            score += 5

        a = purchase.taxable_value.amount
        b = counterparty.taxable_value.amount
        diff_percent = abs(a - b) * 100 / max(a, b, Decimal(1))
        if diff_percent <= 1:
            score += 10
        elif diff_percent <= rules.suggestion_amount_tolerance_percent:
            score += 5
        return score

    def suggest_matches(
        self,
        counterparty: InvoiceRecord,
        purchases: Sequence[InvoiceRecord],
        limit: int | None = None,
    ) -> tuple[PotentialMatch, ...]:
        """
        Rank purchase records that might be ``counterparty`` under another key.

        Candidates scoring zero are dropped; ties keep input order.
        """
        limit = self._rules.max_suggestions if limit is None else limit
        candidates = []
        for purchase in purchases:
            score = self.similarity(counterparty, purchase)
            if score > 0:
                candidates.append(PotentialMatch(counterparty, purchase, score))
        candidates.sort(key=lambda m: -m.similarity)
        return tuple(candidates[:limit])

    def _findings(
        self,
        matched: Sequence[MatchedPair],
        missing: Sequence[InvoiceRecord],
        additional: Sequence[InvoiceRecord],
        at_risk: TaxComponents,
    ) -> tuple[ComplianceFinding, ...]:
        findings = []
        for record in missing:
            findings.append(ComplianceFinding(
                code="NOT_IN_COUNTERPARTY_DATA",
                severity=FindingSeverity.WARNING,
                message=(
                    f"Invoice {record.document_number} from {record.gstin} not reported "
                    f"by the supplier; credit of {record.tax.total.amount} at risk"
                ),
                reference="Section 16(2)(aa), CGST Act",
                details=(("gstin", record.gstin), ("document_number", record.document_number)),
            ))
        for pair in matched:
            if pair.match.is_matched:
                continue
            findings.append(ComplianceFinding(
                code="RECONCILIATION_MISMATCH",
                severity=FindingSeverity.WARNING,
                message=(
                    f"Invoice {pair.purchase.document_number} from {pair.purchase.gstin}: "
                    + ", ".join(pair.match.reasons)
                ),
                details=(
                    ("document_number", pair.purchase.document_number),
                    ("score", pair.match.score),
                ),
            ))
        for record in additional:
            findings.append(ComplianceFinding(
                code="UNCLAIMED_IN_COUNTERPARTY_DATA",
                severity=FindingSeverity.INFO,
                message=(
                    f"Invoice {record.document_number} from {record.gstin} reported by the "
                    "supplier but not recorded"
                ),
                details=(("gstin", record.gstin), ("document_number", record.document_number)),
            ))
        if missing:
            logger.warning("credit_at_risk", extra={
                "missing_count": len(missing),
                "amount": str(at_risk.total.amount),
            })
        return tuple(findings)


def reconcile(
    purchases: Sequence[InvoiceRecord],
    counterparty: Sequence[InvoiceRecord],
    rules: ReconciliationRules | None = None,
) -> ReconciliationReport:
    """Convenience wrapper around ``ReconciliationMatcher(rules).reconcile``."""
    return ReconciliationMatcher(rules).reconcile(purchases, counterparty)
