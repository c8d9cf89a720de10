"""
Periods -- Indian financial years, TDS quarters and GST return periods.

Responsibility:
    Pure date arithmetic shared by the TDS aggregator and the return
    builders: financial-year and quarter labels, quarter bounds, return
    period strings and statutory due dates.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O. Never reads the clock;
    every function takes the dates it needs.

Conventions:
    - Financial year runs 1 April to 31 March, labelled ``FY24-25``.
    - Assessment year is the following year, labelled ``AY25-26``.
    - Quarters: Q1 Apr-Jun, Q2 Jul-Sep, Q3 Oct-Dec, Q4 Jan-Mar.
    - GST return period is ``MMYYYY``.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, timedelta
from enum import Enum

from tax_kernel.exceptions import InvalidPeriodError

_FY_PATTERN = re.compile(r"^FY(\d{2})-(\d{2})$")
_RETURN_PERIOD_PATTERN = re.compile(r"^(0[1-9]|1[0-2])(\d{4})$")


class Quarter(str, Enum):
    """TDS quarter within a financial year."""

    Q1 = "Q1"  # April - June
    Q2 = "Q2"  # July - September
    Q3 = "Q3"  # October - December
    Q4 = "Q4"  # January - March

    @property
    def start_month(self) -> int:
        return {"Q1": 4, "Q2": 7, "Q3": 10, "Q4": 1}[self.value]


def _fy_start_year(d: date) -> int:
    return d.year if d.month >= 4 else d.year - 1


def financial_year_of(d: date) -> str:
    """``FY24-25`` for any date between 1 April 2024 and 31 March 2025."""
    start = _fy_start_year(d)
    return f"FY{start % 100:02d}-{(start + 1) % 100:02d}"


def assessment_year_of(d: date) -> str:
    """Assessment year following the financial year of ``d``."""
    start = _fy_start_year(d) + 1
    return f"AY{start % 100:02d}-{(start + 1) % 100:02d}"


def parse_financial_year(label: str) -> int:
    """Calendar year in which financial year ``label`` starts.

    Two-digit years are read as 20xx.

    Raises:
        InvalidPeriodError: label is not ``FYyy-yy`` with consecutive years.
    """
    match = _FY_PATTERN.match(label.strip().upper()) if isinstance(label, str) else None
    if not match:
        raise InvalidPeriodError("financial year", label)
    first, second = int(match.group(1)), int(match.group(2))
    if (first + 1) % 100 != second:
        raise InvalidPeriodError("financial year", label)
    return 2000 + first


def quarter_of(d: date) -> Quarter:
    """TDS quarter containing ``d``."""
    if 4 <= d.month <= 6:
        return Quarter.Q1
    if 7 <= d.month <= 9:
        return Quarter.Q2
    if 10 <= d.month <= 12:
        return Quarter.Q3
    return Quarter.Q4


def quarter_bounds(financial_year: str, quarter: Quarter | str) -> tuple[date, date]:
    """Inclusive first and last day of ``quarter`` in ``financial_year``."""
    try:
        quarter = Quarter(quarter)
    except ValueError as e:
        raise InvalidPeriodError("quarter", quarter) from e
    start_year = parse_financial_year(financial_year)
    year = start_year + 1 if quarter is Quarter.Q4 else start_year
    start = date(year, quarter.start_month, 1)
    end_month = quarter.start_month + 2
    end = date(year, end_month, calendar.monthrange(year, end_month)[1])
    return start, end


def is_quarter_end_month(d: date) -> bool:
    return d.month in (3, 6, 9, 12)


def return_period_of(d: date) -> str:
    """GST return period ``MMYYYY`` containing ``d``."""
    return f"{d.month:02d}{d.year:04d}"


def parse_return_period(period: str) -> tuple[int, int]:
    """``(month, year)`` of a ``MMYYYY`` return period."""
    match = _RETURN_PERIOD_PATTERN.match(period.strip()) if isinstance(period, str) else None
    if not match:
        raise InvalidPeriodError("return period", period)
    return int(match.group(1)), int(match.group(2))


def _next_month(month: int, year: int) -> tuple[int, int]:
    return (1, year + 1) if month == 12 else (month + 1, year)


def gst_return_due_date(period: str, day: int = 20) -> date:
    """Due date of a monthly summary return: ``day`` of the following month."""
    month, year = parse_return_period(period)
    month, year = _next_month(month, year)
    return date(year, month, day)


def tds_deposit_due_date(deduction_date: date, government_deductor: bool = False) -> date:
    """Last date to deposit tax deducted on ``deduction_date``.

    - Government deductors paying by book entry: the same day.
    - Deductions made in March: 30 April.
    - Everything else: the 7th of the following month.
    """
    if government_deductor:
        return deduction_date
    if deduction_date.month == 3:
        return date(deduction_date.year, 4, 30)
    month, year = _next_month(deduction_date.month, deduction_date.year)
    return date(year, month, 7)


def days_between(start: date, end: date) -> int:
    """Signed number of days from ``start`` to ``end``."""
    return (end - start).days


def add_days(d: date, days: int) -> date:
    return d + timedelta(days=days)
