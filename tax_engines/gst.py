"""
GST Calculator - CGST/SGST/IGST/cess splits and reverse-charge payables.

Pure functions with no I/O. Rates are passed in as percentages (18 for 18%).

Rounding boundaries (ROUND_HALF_UP, two places):
    gst        = round2(taxable * rate / 100)
    CGST, SGST = round2(gst / 2)                 (intra-state)
    IGST       = gst                             (inter-state)
    cess       = round2(taxable * cess_rate / 100)
    total_tax  = CGST + SGST + IGST + cess
    rcm_amount = round2(total_tax * rcm_percent / 100)

For an intra-state supply whose GST has an odd number of paise, the two
halves round up and ``total_tax`` is one paisa above ``gst``. This keeps
CGST == SGST and the components summing exactly to ``total_tax``.

Reverse charge payables:
    full (100%)   payable_to_vendor = taxable,               payable_to_government = rcm
    partial       payable_to_vendor = taxable + vendor_gst,  payable_to_government = rcm
    none          payable_to_vendor = taxable + total_tax,   payable_to_government = 0

Usage:
    from tax_engines.gst import GSTCalculator
    from tax_kernel.domain.values import Money
    from decimal import Decimal

    result = GSTCalculator().calculate(
        taxable_amount=Money.of("100000"),
        rate=Decimal("18"),
        is_interstate=False,
        reverse_charge=True,
    )
    print(result.rcm_amount)         # 18000.00 INR
    print(result.payable_to_vendor)  # 100000 INR
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from tax_engines.tracer import traced_engine
from tax_kernel.domain.identifiers import OUTSIDE_INDIA_STATE_CODE, require_state_code
from tax_kernel.domain.transaction import (
    LineItem,
    TaxComponents,
    check_non_negative,
    check_rate,
)
from tax_kernel.domain.values import HUNDRED, Money, round2, sum_money
from tax_kernel.exceptions import MissingFieldError
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.gst")


class TaxType(str, Enum):
    """Which GST heads a supply is charged under."""

    CGST_SGST = "cgst_sgst"  # Intra-state
    IGST = "igst"  # Inter-state, imports, exports


@dataclass(frozen=True)
class TaxCalculationResult:
    """
    GST computed for one supply (or the sum of an invoice's lines).

    ``rate`` is None for an invoice whose lines carry different rates;
    ``lines`` holds the per-line results in that case.
    """

    taxable_amount: Money
    rate: Decimal | None
    is_interstate: bool
    cgst: Money
    sgst: Money
    igst: Money
    cess: Money
    total_tax: Money
    is_reverse_charge: bool
    rcm_percent: Decimal
    rcm_amount: Money
    vendor_gst: Money
    payable_to_vendor: Money
    payable_to_government: Money
    lines: tuple[TaxCalculationResult, ...] = ()

    @property
    def tax_type(self) -> TaxType:
        return TaxType.IGST if self.is_interstate else TaxType.CGST_SGST

    @property
    def components(self) -> TaxComponents:
        return TaxComponents(igst=self.igst, cgst=self.cgst, sgst=self.sgst, cess=self.cess)

    @property
    def total_amount(self) -> Money:
        """Invoice value: taxable amount plus all tax."""
        return self.taxable_amount + self.total_tax


def determine_interstate(supplier_state: str | None, place_of_supply: str | None) -> bool:
    """True when place of supply differs from the supplier's state.

    Supplies with place of supply outside India are always inter-state.
    A missing place of supply means the supplier's own state.

    Raises:
        MissingFieldError: place of supply is given but the supplier state is not.
        InvalidIdentifierError: either code is not a GST state code.
    """
    if place_of_supply is None or not str(place_of_supply).strip():
        return False
    pos = require_state_code(place_of_supply, "place_of_supply")
    if pos == OUTSIDE_INDIA_STATE_CODE:
        return True
    if supplier_state is None or not str(supplier_state).strip():
        raise MissingFieldError("supplier_state", "needed to compare with place of supply")
    return pos != require_state_code(supplier_state, "supplier_state")


class GSTCalculator:
    """
    Calculate GST heads and reverse-charge splits.

    Stateless; one instance can be shared across threads.
    """

    @traced_engine(
        "gst_calculator",
        "1.0",
        fingerprint_fields=("taxable_amount", "rate", "is_interstate", "reverse_charge", "rcm_percent", "cess_rate"),
    )
    def calculate(
        self,
        taxable_amount: Money,
        rate: Decimal,
        is_interstate: bool,
        reverse_charge: bool = False,
        rcm_percent: Decimal | None = None,
        cess_rate: Decimal = Decimal("0"),
    ) -> TaxCalculationResult:
        """
        Calculate GST on one taxable amount.

        Args:
            taxable_amount: Value of supply (>= 0).
            rate: GST rate as a percentage in [0, 100].
            is_interstate: IGST when True, CGST + SGST otherwise.
            reverse_charge: Recipient pays some or all of the tax.
            rcm_percent: Share of tax under reverse charge; defaults to 100
                when ``reverse_charge`` is set. Ignored otherwise.
            cess_rate: Compensation cess as a percentage.

        Raises:
            NegativeAmountError: taxable_amount < 0.
            RateOutOfRangeError: a rate or percentage outside [0, 100].
        """
        t0 = time.monotonic()
        check_non_negative(taxable_amount, "taxable_amount")
        rate = check_rate(rate, "rate")
        cess_rate = check_rate(cess_rate, "cess_rate")
        pct = HUNDRED if rcm_percent is None else check_rate(rcm_percent, "rcm_percent")

        logger.info("gst_calculation_started", extra={
            "taxable_amount": str(taxable_amount.amount),
            "currency": taxable_amount.currency.code,
            "rate": str(rate),
            "is_interstate": is_interstate,
            "reverse_charge": reverse_charge,
        })

        result = self._compute(taxable_amount, rate, is_interstate, reverse_charge, pct, cess_rate)

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("gst_calculation_completed", extra={
            "total_tax": str(result.total_tax.amount),
            "igst": str(result.igst.amount),
            "cgst": str(result.cgst.amount),
            "sgst": str(result.sgst.amount),
            "rcm_amount": str(result.rcm_amount.amount),
            "duration_ms": duration_ms,
        })
        return result

    def _compute(
        self,
        taxable_amount: Money,
        rate: Decimal,
        is_interstate: bool,
        reverse_charge: bool,
        rcm_percent: Decimal,
        cess_rate: Decimal,
    ) -> TaxCalculationResult:
        currency = taxable_amount.currency
        zero = Money.zero(currency)
        taxable = taxable_amount.round()

        gst = round2(taxable.amount * rate / HUNDRED)
        if is_interstate:
            igst = Money(amount=gst, currency=currency)
            cgst = sgst = zero
        else:
            half = Money(amount=round2(gst / 2), currency=currency)
            igst = zero
            cgst = sgst = half
        cess = taxable.percent(cess_rate)
        total_tax = igst + cgst + sgst + cess

        if reverse_charge:
            rcm_amount = total_tax.percent(rcm_percent)
            vendor_gst = total_tax - rcm_amount
            if rcm_percent == HUNDRED:
                payable_to_vendor = taxable
            else:
                payable_to_vendor = taxable + vendor_gst
            payable_to_government = rcm_amount
        else:
            rcm_percent = Decimal("0")
            rcm_amount = zero
            vendor_gst = total_tax
            payable_to_vendor = taxable + total_tax
            payable_to_government = zero

        return TaxCalculationResult(
            taxable_amount=taxable,
            rate=rate,
            is_interstate=is_interstate,
            cgst=cgst,
            sgst=sgst,
            igst=igst,
            cess=cess,
            total_tax=total_tax,
            is_reverse_charge=reverse_charge,
            rcm_percent=rcm_percent,
            rcm_amount=rcm_amount,
            vendor_gst=vendor_gst,
            payable_to_vendor=payable_to_vendor,
            payable_to_government=payable_to_government,
        )

    @traced_engine("gst_calculator", "1.0", fingerprint_fields=("lines", "default_rate", "is_interstate"))
    def calculate_lines(
        self,
        lines: Sequence[LineItem],
        default_rate: Decimal | None,
        is_interstate: bool,
        reverse_charge: bool = False,
        rcm_percent: Decimal | None = None,
        cess_rate: Decimal = Decimal("0"),
        currency: str = "INR",
    ) -> TaxCalculationResult:
        """
        Calculate GST line by line and sum the results.

        Each line uses its own rate, or ``default_rate`` when it has none.
        An empty ``lines`` yields a zero result in ``currency``.

        Raises:
            MissingFieldError: a line has no rate and no default is given.
        """
        results = []
        for line in lines:
            line_rate = line.tax_rate if line.tax_rate is not None else default_rate
            if line_rate is None:
                raise MissingFieldError("tax_rate", f"line {line.description!r}")
            results.append(
                self._compute(
                    line.taxable_amount,
                    check_rate(line_rate, "rate"),
                    is_interstate,
                    reverse_charge,
                    HUNDRED if rcm_percent is None else check_rate(rcm_percent, "rcm_percent"),
                    check_rate(cess_rate, "cess_rate"),
                )
            )

        combined = combine_results(results, is_interstate, reverse_charge, currency)
        logger.info("gst_lines_calculated", extra={
            "line_count": len(results),
            "total_tax": str(combined.total_tax.amount),
        })
        return combined


def combine_results(
    results: Sequence[TaxCalculationResult],
    is_interstate: bool,
    reverse_charge: bool = False,
    currency: str = "INR",
) -> TaxCalculationResult:
    """Sum line results into one invoice-level result."""
    if results:
        currency = results[0].taxable_amount.currency.code

    def total(attr: str) -> Money:
        return sum_money((getattr(r, attr) for r in results), currency)

    rates = {r.rate for r in results}
    rcm_percents = {r.rcm_percent for r in results}
    return TaxCalculationResult(
        taxable_amount=total("taxable_amount"),
        rate=rates.pop() if len(rates) == 1 else None,
        is_interstate=is_interstate,
        cgst=total("cgst"),
        sgst=total("sgst"),
        igst=total("igst"),
        cess=total("cess"),
        total_tax=total("total_tax"),
        is_reverse_charge=reverse_charge,
        rcm_percent=rcm_percents.pop() if len(rcm_percents) == 1 else Decimal("0"),
        rcm_amount=total("rcm_amount"),
        vendor_gst=total("vendor_gst"),
        payable_to_vendor=total("payable_to_vendor"),
        payable_to_government=total("payable_to_government"),
        lines=tuple(results),
    )


def calculate_gst(
    taxable_amount: Money,
    rate: Decimal,
    is_interstate: bool,
    reverse_charge: bool = False,
    rcm_percent: Decimal | None = None,
    cess_rate: Decimal = Decimal("0"),
) -> TaxCalculationResult:
    """Convenience wrapper around ``GSTCalculator().calculate``."""
    return GSTCalculator().calculate(
        taxable_amount=taxable_amount,
        rate=rate,
        is_interstate=is_interstate,
        reverse_charge=reverse_charge,
        rcm_percent=rcm_percent,
        cess_rate=cess_rate,
    )
