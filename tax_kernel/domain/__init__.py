"""
Pure domain layer.

Immutable value objects and records with NO dependencies on:
- Database or persistence
- Time/clock
- Network or file I/O

Every function here is deterministic.
"""

from tax_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from tax_kernel.domain.findings import ComplianceFinding, FindingSeverity
from tax_kernel.domain.identifiers import (
    DOMESTIC_COUNTRY,
    OUTSIDE_INDIA_STATE_CODE,
    STATE_CODES,
    gstin_state_code,
    is_domestic_country,
    is_valid_gstin,
    is_valid_pan,
    is_valid_tan,
    normalize_country,
    optional_gstin,
    pan_from_gstin,
    require_gstin,
    require_pan,
    require_state_code,
    require_tan,
)
from tax_kernel.domain.periods import (
    Quarter,
    assessment_year_of,
    financial_year_of,
    gst_return_due_date,
    parse_financial_year,
    quarter_bounds,
    quarter_of,
    return_period_of,
    tds_deposit_due_date,
)
from tax_kernel.domain.transaction import (
    CreditCategory,
    LineItem,
    Party,
    TaxComponents,
    Transaction,
    TransactionType,
    VendorType,
)
from tax_kernel.domain.values import (
    BASE_CURRENCY,
    Currency,
    ExchangeRate,
    Money,
    percent_of,
    round2,
    sum_money,
)

__all__ = [
    "BASE_CURRENCY",
    "DOMESTIC_COUNTRY",
    "OUTSIDE_INDIA_STATE_CODE",
    "STATE_CODES",
    "ComplianceFinding",
    "CreditCategory",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "ExchangeRate",
    "FindingSeverity",
    "LineItem",
    "Money",
    "Party",
    "Quarter",
    "TaxComponents",
    "Transaction",
    "TransactionType",
    "VendorType",
    "assessment_year_of",
    "financial_year_of",
    "gst_return_due_date",
    "gstin_state_code",
    "is_domestic_country",
    "is_valid_gstin",
    "is_valid_pan",
    "is_valid_tan",
    "normalize_country",
    "optional_gstin",
    "pan_from_gstin",
    "parse_financial_year",
    "percent_of",
    "quarter_bounds",
    "quarter_of",
    "require_gstin",
    "require_pan",
    "require_state_code",
    "require_tan",
    "return_period_of",
    "round2",
    "sum_money",
    "tds_deposit_due_date",
]
