"""
Return summaries -- GSTR-1 table totals and the GSTR-3B summary.

Responsibility:
    Aggregates classified transactions and ITC evaluations of one return
    period into the structures of the outward-supply return (GSTR-1) and
    the summary return (GSTR-3B), and computes the late fee for a summary
    return filed after its due date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes ReturnClassification (classification.py), ITCEligibility and
    ITCReversal (itc.py). The dictionaries produced by ``to_dict`` use the
    portal field names so an exporter can serialise them unchanged.

GSTR-1 layout:
    b2b   per recipient GSTIN, each invoice with its items summed per rate
    b2cl  per place of supply, invoices as in b2b without CGST/SGST
    b2cs  one row per (place of supply, rate, INTRA/INTER)
    exp   one block per export type, WPAY (IGST paid) and WOPAY (LUT)
    hsn   one row per HSN/SAC code across all reported invoices
    Invoice dates are DD-MM-YYYY. Empty sections are omitted.

Invariants enforced:
    - Every entry lands in exactly one table / section, the one its
      classification names.
    - All amounts are in the base currency.
    - Net ITC = ITC available - ITC reversed, head by head.
    - Tax payable per head = max(0, output tax - net ITC).

Failure modes:
    - InvalidIdentifierError for a malformed filer GSTIN.
    - InvalidPeriodError for a malformed ``MMYYYY`` return period.
    - MissingFieldError for a GSTR-1 invoice without its number, date or
      place of supply.
    - InvalidDateOrderError is never raised: filing before the due date
      simply yields a zero late fee.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from tax_config import ReturnRules, get_default_rules
from tax_engines.classification import GSTR1Table, GSTR3BSection, ReturnClassification
from tax_engines.itc import ITCEligibility, ITCReversal, ITCReversalReason
from tax_engines.reverse_charge import ReverseChargeType
from tax_kernel.domain.findings import ComplianceFinding, FindingSeverity
from tax_kernel.domain.identifiers import require_gstin
from tax_kernel.domain.periods import parse_return_period
from tax_kernel.domain.transaction import TaxComponents
from tax_kernel.domain.values import BASE_CURRENCY, Money
from tax_kernel.exceptions import MissingFieldError
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.returns")

_HEADS = ("igst", "cgst", "sgst", "cess")


def _tax_fields(tax: TaxComponents) -> dict[str, Decimal]:
    return {
        "iamt": tax.igst.amount,
        "camt": tax.cgst.amount,
        "samt": tax.sgst.amount,
        "csamt": tax.cess.amount,
    }


# ---------------------------------------------------------------------------
# GSTR-1
# ---------------------------------------------------------------------------


def _portal_date(value: date) -> str:
    return value.strftime("%d-%m-%Y")


def _default_uqc(hsn_sac_code: str) -> str:
    # SAC codes (chapter 99) are services and carry no quantity
    return "NA" if hsn_sac_code.startswith("99") else "NOS"


@dataclass(frozen=True)
class GSTR1TableTotal:
    """Count, taxable value and tax of one GSTR-1 table (or one B2B recipient)."""

    table: GSTR1Table
    count: int
    taxable_value: Money
    tax: TaxComponents
    recipient_gstin: str | None = None


@dataclass(frozen=True)
class B2CSRow:
    """One consolidated row of table 7: small B2C supplies per (place of supply, rate, supply type)."""

    supply_type: str  # INTRA / INTER
    place_of_supply: str
    rate: Decimal
    taxable_value: Money
    tax: TaxComponents

    def to_dict(self) -> dict[str, Any]:
        return {
            "sply_ty": self.supply_type,
            "pos": self.place_of_supply,
            "typ": "OE",  # Other than e-commerce
            "rt": self.rate,
            "txval": self.taxable_value.amount,
            **_tax_fields(self.tax),
        }


@dataclass(frozen=True)
class HSNSummaryRow:
    """One row of table 12, the HSN/SAC-wise summary of outward supplies."""

    hsn_sac_code: str
    description: str
    uqc: str
    quantity: Decimal
    taxable_value: Money
    tax: TaxComponents

    @property
    def total_value(self) -> Money:
        return self.taxable_value + self.tax.total

    def to_dict(self, num: int) -> dict[str, Any]:
        return {
            "num": num,
            "hsn_sc": self.hsn_sac_code,
            "desc": self.description,
            "uqc": self.uqc,
            "qty": self.quantity,
            "val": self.total_value.amount,
            "txval": self.taxable_value.amount,
            **_tax_fields(self.tax),
        }


def _rate_groups(entry: ReturnClassification) -> list[tuple[Decimal, Money, TaxComponents]]:
    """Items of one invoice summed per rate, in order of first appearance."""
    grouped: dict[Decimal, tuple[Money, TaxComponents]] = {}
    for item in entry.report_items:
        taxable, tax = grouped.get(
            item.rate, (Money.zero(BASE_CURRENCY), TaxComponents.zero(BASE_CURRENCY))
        )
        grouped[item.rate] = (taxable + item.taxable_value, tax + item.tax)
    return [(rate, taxable, tax) for rate, (taxable, tax) in grouped.items()]


def _invoice_header(entry: ReturnClassification) -> dict[str, Any]:
    context = f"{entry.gstr1_table.value} invoice detail"
    if not entry.document_number:
        raise MissingFieldError("document_number", context)
    if entry.document_date is None:
        raise MissingFieldError("document_date", context)
    return {
        "inum": entry.document_number,
        "idt": _portal_date(entry.document_date),
        "val": entry.invoice_value.amount,
    }


def _place_of_supply(entry: ReturnClassification) -> str:
    if not entry.place_of_supply:
        raise MissingFieldError(
            "place_of_supply", f"{entry.gstr1_table.value} {entry.document_number or ''}".strip()
        )
    return entry.place_of_supply


def _b2b_invoice(entry: ReturnClassification) -> dict[str, Any]:
    return {
        **_invoice_header(entry),
        "pos": _place_of_supply(entry),
        "rchrg": "N",
        "inv_typ": "R",
        "itms": [
            {"num": num, "itm_det": {"rt": rate, "txval": taxable.amount, **_tax_fields(tax)}}
            for num, (rate, taxable, tax) in enumerate(_rate_groups(entry), start=1)
        ],
    }


def _b2cl_invoice(entry: ReturnClassification) -> dict[str, Any]:
    return {
        **_invoice_header(entry),
        "itms": [
            {
                "num": num,
                "itm_det": {
                    "rt": rate,
                    "txval": taxable.amount,
                    "iamt": tax.igst.amount,
                    "csamt": tax.cess.amount,
                },
            }
            for num, (rate, taxable, tax) in enumerate(_rate_groups(entry), start=1)
        ],
    }


def _export_invoice(entry: ReturnClassification) -> dict[str, Any]:
    return {
        **_invoice_header(entry),
        "itms": [
            {
                "txval": taxable.amount,
                "rt": rate,
                "iamt": tax.igst.amount,
                "csamt": tax.cess.amount,
            }
            for rate, taxable, tax in _rate_groups(entry)
        ],
    }


@dataclass(frozen=True)
class GSTR1Summary:
    """
    Outward-supply return for one period.

    ``tables`` and ``b2b_by_recipient`` are the totals view;
    ``to_dict`` lays out the invoice-level portal JSON from ``entries``.
    """

    gstin: str
    period: str
    tables: tuple[GSTR1TableTotal, ...]
    b2b_by_recipient: tuple[GSTR1TableTotal, ...] = ()
    excluded_count: int = 0  # Entries not reported in GSTR-1
    entries: tuple[ReturnClassification, ...] = ()  # Reported entries only
    b2cs: tuple[B2CSRow, ...] = ()
    hsn: tuple[HSNSummaryRow, ...] = ()
    findings: tuple[ComplianceFinding, ...] = field(default=())

    def table(self, table: GSTR1Table) -> GSTR1TableTotal | None:
        for total in self.tables:
            if total.table is table:
                return total
        return None

    def entries_in(self, *tables: GSTR1Table) -> tuple[ReturnClassification, ...]:
        return tuple(e for e in self.entries if e.gstr1_table in tables)

    @property
    def total_taxable_value(self) -> Money:
        total = Money.zero(BASE_CURRENCY)
        for t in self.tables:
            total = total + t.taxable_value
        return total

    @property
    def total_tax(self) -> TaxComponents:
        total = TaxComponents.zero(BASE_CURRENCY)
        for t in self.tables:
            total = total + t.tax
        return total

    def _b2b(self) -> list[dict[str, Any]]:
        by_ctin: dict[str, list[dict[str, Any]]] = {}
        for entry in self.entries_in(GSTR1Table.B2B):
            by_ctin.setdefault(entry.recipient_gstin or "", []).append(_b2b_invoice(entry))
        return [{"ctin": ctin, "inv": by_ctin[ctin]} for ctin in sorted(by_ctin)]

    def _b2cl(self) -> list[dict[str, Any]]:
        by_pos: dict[str, list[dict[str, Any]]] = {}
        for entry in self.entries_in(GSTR1Table.B2C_LARGE):
            by_pos.setdefault(_place_of_supply(entry), []).append(_b2cl_invoice(entry))
        return [{"pos": pos, "inv": by_pos[pos]} for pos in sorted(by_pos)]

    def _exp(self) -> list[dict[str, Any]]:
        sections = []
        for table, exp_typ in (
            (GSTR1Table.EXPORTS_WITH_PAYMENT, "WPAY"),
            (GSTR1Table.EXPORTS_WITH_LUT, "WOPAY"),
        ):
            invoices = [_export_invoice(e) for e in self.entries_in(table)]
            if invoices:
                sections.append({"exp_typ": exp_typ, "inv": invoices})
        return sections

    def to_dict(self) -> dict[str, Any]:
        """
        Portal JSON: ``b2b`` and ``b2cl`` invoice lists, ``b2cs`` rows,
        ``exp`` per export type and the ``hsn`` summary. Empty sections
        are left out.

        Raises:
            MissingFieldError: an invoice-level entry lacks its document
                number, date or place of supply.
        """
        data: dict[str, Any] = {"gstin": self.gstin, "fp": self.period}
        sections = {
            "b2b": self._b2b(),
            "b2cl": self._b2cl(),
            "b2cs": [row.to_dict() for row in self.b2cs],
            "exp": self._exp(),
        }
        data.update({name: rows for name, rows in sections.items() if rows})
        if self.hsn:
            data["hsn"] = {"data": [row.to_dict(num) for num, row in enumerate(self.hsn, start=1)]}
        return data


def _table_total(
    table: GSTR1Table,
    entries: Sequence[ReturnClassification],
    recipient_gstin: str | None = None,
) -> GSTR1TableTotal:
    taxable = Money.zero(BASE_CURRENCY)
    tax = TaxComponents.zero(BASE_CURRENCY)
    for entry in entries:
        taxable = taxable + entry.taxable_value
        tax = tax + entry.tax
    return GSTR1TableTotal(
        table=table,
        count=len(entries),
        taxable_value=taxable,
        tax=tax,
        recipient_gstin=recipient_gstin,
    )


def _b2cs_rows(entries: Sequence[ReturnClassification]) -> tuple[B2CSRow, ...]:
    grouped: dict[tuple[str, Decimal, str], tuple[Money, TaxComponents]] = {}
    for entry in entries:
        supply_type = "INTER" if entry.is_interstate else "INTRA"
        pos = _place_of_supply(entry)
        for rate, taxable, tax in _rate_groups(entry):
            key = (pos, rate, supply_type)
            total_taxable, total_tax = grouped.get(
                key, (Money.zero(BASE_CURRENCY), TaxComponents.zero(BASE_CURRENCY))
            )
            grouped[key] = (total_taxable + taxable, total_tax + tax)
    return tuple(
        B2CSRow(
            supply_type=supply_type,
            place_of_supply=pos,
            rate=rate,
            taxable_value=taxable,
            tax=tax,
        )
        for (pos, rate, supply_type), (taxable, tax) in sorted(grouped.items())
    )


def _hsn_summary(
    entries: Sequence[ReturnClassification],
) -> tuple[tuple[HSNSummaryRow, ...], tuple[ComplianceFinding, ...]]:
    rows: dict[str, dict[str, Any]] = {}
    findings = []
    for entry in entries:
        uncoded = 0
        for item in entry.report_items:
            code = (item.hsn_sac_code or "").strip()
            if not code:
                uncoded += 1
                continue
            row = rows.setdefault(code, {
                "description": (item.description or "")[:30],
                "uqc": (item.uqc or _default_uqc(code)).upper(),
                "quantity": Decimal("0"),
                "taxable_value": Money.zero(BASE_CURRENCY),
                "tax": TaxComponents.zero(BASE_CURRENCY),
            })
            row["quantity"] += item.quantity or Decimal("0")
            row["taxable_value"] = row["taxable_value"] + item.taxable_value
            row["tax"] = row["tax"] + item.tax
        if uncoded:
            findings.append(ComplianceFinding(
                code="HSN_CODE_MISSING",
                severity=FindingSeverity.WARNING,
                message=(
                    f"{uncoded} item(s) of invoice {entry.document_number or '(unnumbered)'} "
                    "have no HSN/SAC code and are left out of the HSN summary"
                ),
                reference="Table 12, GSTR-1",
                details=(("document_number", entry.document_number), ("item_count", uncoded)),
            ))
    summary = tuple(HSNSummaryRow(hsn_sac_code=code, **rows[code]) for code in sorted(rows))
    return summary, tuple(findings)


def build_gstr1_summary(
    gstin: str,
    period: str,
    entries: Sequence[ReturnClassification],
) -> GSTR1Summary:
    """
    Total classified transactions by GSTR-1 table.

    Tables appear in enum order and only when they have entries. B2B is
    also broken down per recipient GSTIN, sorted by GSTIN. Entries
    classified NOT_APPLICABLE are counted in ``excluded_count``.

    Small B2C supplies are consolidated per (place of supply, rate, supply
    type); every reported item with an HSN/SAC code lands in the HSN
    summary, and invoices with uncoded items get an ``HSN_CODE_MISSING``
    finding.

    Raises:
        MissingFieldError: a small B2C entry has no place of supply.
    """
    gstin = require_gstin(gstin, "gstin")
    parse_return_period(period)

    by_table: dict[GSTR1Table, list[ReturnClassification]] = {}
    reported: list[ReturnClassification] = []
    excluded = 0
    for entry in entries:
        if entry.gstr1_table is GSTR1Table.NOT_APPLICABLE:
            excluded += 1
            continue
        reported.append(entry)
        by_table.setdefault(entry.gstr1_table, []).append(entry)

    tables = tuple(
        _table_total(table, by_table[table]) for table in GSTR1Table if table in by_table
    )

    by_recipient: dict[str, list[ReturnClassification]] = {}
    for entry in by_table.get(GSTR1Table.B2B, ()):
        by_recipient.setdefault(entry.recipient_gstin or "", []).append(entry)
    b2b = tuple(
        _table_total(GSTR1Table.B2B, by_recipient[ctin], recipient_gstin=ctin)
        for ctin in sorted(by_recipient)
    )

    b2cs = _b2cs_rows(by_table.get(GSTR1Table.B2C_SMALL, ()))
    hsn, findings = _hsn_summary(reported)

    summary = GSTR1Summary(
        gstin=gstin,
        period=period,
        tables=tables,
        b2b_by_recipient=b2b,
        excluded_count=excluded,
        entries=tuple(reported),
        b2cs=b2cs,
        hsn=hsn,
        findings=findings,
    )
    logger.info("gstr1_summary_built", extra={
        "gstin": gstin,
        "return_period": period,
        "entry_count": len(entries),
        "excluded_count": excluded,
        "table_count": len(tables),
        "b2cs_row_count": len(b2cs),
        "hsn_row_count": len(hsn),
        "total_taxable_value": str(summary.total_taxable_value.amount),
    })
    if findings:
        logger.warning("hsn_codes_missing", extra={"invoice_count": len(findings)})
    return summary


# ---------------------------------------------------------------------------
# GSTR-3B
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SupplyDetail:
    """One row of GSTR-3B table 3.1."""

    txval: Money
    tax: TaxComponents

    @classmethod
    def zero(cls) -> SupplyDetail:
        return cls(txval=Money.zero(BASE_CURRENCY), tax=TaxComponents.zero(BASE_CURRENCY))

    def __add__(self, other: SupplyDetail) -> SupplyDetail:
        if not isinstance(other, SupplyDetail):
            return NotImplemented
        return SupplyDetail(txval=self.txval + other.txval, tax=self.tax + other.tax)

    def to_dict(self, tax_fields: bool = True) -> dict[str, Decimal]:
        data = {"txval": self.txval.amount}
        if tax_fields:
            data.update(_tax_fields(self.tax))
        return data


@dataclass(frozen=True)
class ITCRow:
    """One typed row of GSTR-3B table 4 (``ty`` is the portal row code)."""

    ty: str
    tax: TaxComponents

    def to_dict(self) -> dict[str, Any]:
        return {"ty": self.ty, **_tax_fields(self.tax)}


@dataclass(frozen=True)
class GSTR3BSummary:
    """Summary return for one period, laid out as the portal JSON."""

    gstin: str
    ret_period: str
    osup_det: SupplyDetail  # 3.1(a)
    osup_zero: SupplyDetail  # 3.1(b)
    osup_nil_exmp: SupplyDetail  # 3.1(c)
    isup_rev: SupplyDetail  # 3.1(d)
    osup_nongst: SupplyDetail  # 3.1(e)
    itc_avl: tuple[ITCRow, ...]
    itc_rev: tuple[ITCRow, ...]
    itc_net: TaxComponents
    itc_inelg: tuple[ITCRow, ...]
    tax_payable: TaxComponents
    findings: tuple[ComplianceFinding, ...] = field(default=())

    @property
    def output_tax(self) -> TaxComponents:
        return self.osup_det.tax + self.osup_zero.tax + self.isup_rev.tax

    def itc_row(self, group: str, ty: str) -> ITCRow:
        rows = {"itc_avl": self.itc_avl, "itc_rev": self.itc_rev, "itc_inelg": self.itc_inelg}[group]
        for row in rows:
            if row.ty == ty:
                return row
        raise KeyError(f"{group}/{ty}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "gstin": self.gstin,
            "ret_period": self.ret_period,
            "sup_details": {
                "osup_det": self.osup_det.to_dict(),
                "osup_zero": self.osup_zero.to_dict(),
                "osup_nil_exmp": self.osup_nil_exmp.to_dict(tax_fields=False),
                "isup_rev": self.isup_rev.to_dict(),
                "osup_nongst": self.osup_nongst.to_dict(tax_fields=False),
            },
            "itc_elg": {
                "itc_avl": [r.to_dict() for r in self.itc_avl],
                "itc_rev": [r.to_dict() for r in self.itc_rev],
                "itc_net": _tax_fields(self.itc_net),
                "itc_inelg": [r.to_dict() for r in self.itc_inelg],
            },
            "tax_payable": _tax_fields(self.tax_payable),
        }


def _itc_avl_row(evaluation: ITCEligibility) -> str:
    match evaluation.rcm_type:
        case ReverseChargeType.IMPORT_OF_SERVICES:
            return "IMPS"
        case ReverseChargeType.DOMESTIC_UNREGISTERED:
            return "ISRC"
        case _:
            return "OTH"


def _clamp_head(value: Money) -> Money:
    return value if value.amount > 0 else Money.zero(value.currency)


def build_gstr3b_summary(
    gstin: str,
    period: str,
    entries: Sequence[ReturnClassification],
    itc_evaluations: Sequence[ITCEligibility] = (),
    reversals: Sequence[ITCReversal] = (),
) -> GSTR3BSummary:
    """
    Build the summary return from classified entries and ITC results.

    Supplies go to the 3.1 row their classification names. Eligible
    credit goes to IMPS (import of services under reverse charge), ISRC
    (domestic reverse charge) or OTH. Reversals under Rules 42/43 go to
    RUL, others to OTH. Credit blocked under Section 17(5) goes to
    ineligible RUL; claims blocked outright (composition vendor, invalid
    invoice, goods not received) to ineligible OTH.
    """
    t0 = time.monotonic()
    gstin = require_gstin(gstin, "gstin")
    parse_return_period(period)
    zero = TaxComponents.zero(BASE_CURRENCY)

    rows = {section: SupplyDetail.zero() for section in GSTR3BSection}
    for entry in entries:
        rows[entry.gstr3b_section] = rows[entry.gstr3b_section] + SupplyDetail(
            txval=entry.taxable_value, tax=entry.tax
        )

    avl = dict.fromkeys(("IMPG", "IMPS", "ISRC", "ISD", "OTH"), zero)
    inelg = dict.fromkeys(("RUL", "OTH"), zero)
    for evaluation in itc_evaluations:
        ty = _itc_avl_row(evaluation)
        avl[ty] = avl[ty] + evaluation.eligible_components
        inelg_ty = "OTH" if evaluation.reasons else "RUL"
        inelg[inelg_ty] = inelg[inelg_ty] + evaluation.blocked_components

    rev = dict.fromkeys(("RUL", "OTH"), zero)
    for reversal in reversals:
        ty = "RUL" if reversal.reason is ITCReversalReason.EXEMPT_SUPPLY else "OTH"
        rev[ty] = rev[ty] + reversal.amount

    total_avl = zero
    for tax in avl.values():
        total_avl = total_avl + tax
    total_rev = zero
    for tax in rev.values():
        total_rev = total_rev + tax
    itc_net = total_avl - total_rev

    output_tax = (
        rows[GSTR3BSection.OUTWARD_TAXABLE].tax
        + rows[GSTR3BSection.ZERO_RATED].tax
        + rows[GSTR3BSection.INWARD_RCM].tax
    )
    net = output_tax - itc_net
    tax_payable = TaxComponents(**{h: _clamp_head(getattr(net, h)) for h in _HEADS})

    findings = []
    for head in _HEADS:
        if getattr(itc_net, head).is_negative:
            findings.append(ComplianceFinding(
                code="ITC_REVERSAL_EXCEEDS_AVAILED",
                severity=FindingSeverity.WARNING,
                message=f"{head.upper()} credit reversed exceeds credit availed in {period}",
                reference="Table 4(B), GSTR-3B",
                details=(("head", head), ("net", str(getattr(itc_net, head).amount))),
            ))
        elif getattr(net, head).is_negative:
            findings.append(ComplianceFinding(
                code="ITC_CARRIED_FORWARD",
                severity=FindingSeverity.INFO,
                message=f"{head.upper()} credit exceeds output tax; balance carried forward",
                details=(("head", head), ("balance", str(-getattr(net, head).amount))),
            ))

    summary = GSTR3BSummary(
        gstin=gstin,
        ret_period=period,
        osup_det=rows[GSTR3BSection.OUTWARD_TAXABLE],
        osup_zero=rows[GSTR3BSection.ZERO_RATED],
        osup_nil_exmp=SupplyDetail.zero(),
        isup_rev=rows[GSTR3BSection.INWARD_RCM],
        osup_nongst=SupplyDetail.zero(),
        itc_avl=tuple(ITCRow(ty, tax) for ty, tax in avl.items()),
        itc_rev=tuple(ITCRow(ty, tax) for ty, tax in rev.items()),
        itc_net=itc_net,
        itc_inelg=tuple(ITCRow(ty, tax) for ty, tax in inelg.items()),
        tax_payable=tax_payable,
        findings=tuple(findings),
    )

    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.info("gstr3b_summary_built", extra={
        "gstin": gstin,
        "return_period": period,
        "entry_count": len(entries),
        "evaluation_count": len(itc_evaluations),
        "output_tax": str(output_tax.total.amount),
        "itc_net": str(itc_net.total.amount),
        "tax_payable": str(tax_payable.total.amount),
        "duration_ms": duration_ms,
    })
    return summary


# ---------------------------------------------------------------------------
# Late fee
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReturnLateFee:
    """Late fee for a summary return, charged separately under CGST and SGST."""

    days_late: int
    cgst_fee: Money
    sgst_fee: Money

    @property
    def total(self) -> Money:
        return self.cgst_fee + self.sgst_fee


def calculate_return_late_fee(
    due_date: date,
    filed_on: date,
    nil_return: bool = False,
    rules: ReturnRules | None = None,
) -> ReturnLateFee:
    """
    Late fee per head: per-day rate x days late, capped per head.

    Defaults: 25 per day per head (10 for a nil return), cap 5,000 per head.
    """
    rules = rules if rules is not None else get_default_rules().returns
    days_late = max(0, (filed_on - due_date).days)
    per_day = rules.nil_return_late_fee_per_day if nil_return else rules.late_fee_per_day
    fee = min(per_day * days_late, rules.late_fee_cap)
    fee_money = Money.of(fee, BASE_CURRENCY)
    if days_late:
        logger.warning("return_filed_late", extra={
            "due_date": due_date.isoformat(),
            "filed_on": filed_on.isoformat(),
            "days_late": days_late,
            "nil_return": nil_return,
            "fee_per_head": str(fee),
        })
    return ReturnLateFee(days_late=days_late, cgst_fee=fee_money, sgst_fee=fee_money)
