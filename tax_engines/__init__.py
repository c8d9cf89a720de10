"""
Module: tax_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the GST and
    TDS engines. This is the canonical import surface for callers.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports tax_kernel (domain, exceptions, logging) and tax_config (rule
    tables) only.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates are passed in as explicit parameters.
    - Decimal-only arithmetic; floats are rejected at the Money boundary.
    - Determinism: identical inputs always produce identical outputs.
    - Compliance problems are returned as findings, never raised.

Audit relevance:
    Every engine invocation is traced via the ``@traced_engine`` decorator
    (see ``tax_engines.tracer``), emitting TAX_ENGINE_TRACE log records
    with engine name, version, input fingerprint and duration.

Usage:
    from tax_engines.reverse_charge import ReverseChargeDetector
    from tax_engines.gst import GSTCalculator
    from tax_engines.itc import ITCEligibilityEngine
    from tax_engines.classification import ReturnClassifier
    from tax_engines.reconciliation import ReconciliationMatcher
    from tax_engines.tds import TDSCalculator
    from tax_engines.pipeline import TransactionProcessor
"""

from tax_kernel.logging_config import get_logger

logger = get_logger("engines")

from tax_engines.classification import (
    B2C_LARGE_THRESHOLD,
    RCM_ITC_SECTION,
    ClassificationInput,
    GSTR1Table,
    GSTR3BSection,
    ReturnClassification,
    ReturnClassifier,
    ReturnItem,
    classification_input_for,
    classify_return,
)
from tax_engines.gst import (
    GSTCalculator,
    TaxCalculationResult,
    TaxType,
    calculate_gst,
    combine_results,
    determine_interstate,
)
from tax_engines.itc import (
    BlockedCreditAssessment,
    BlockedCreditCheck,
    BlockedCreditReason,
    ITCClaim,
    ITCEligibility,
    ITCEligibilityEngine,
    ITCLine,
    ITCRegister,
    ITCReversal,
    ITCReversalReason,
    ITCUtilization,
    VehiclePurpose,
    assess_blocked_credit,
    build_itc_register,
    evaluate_itc,
    reversal_for_non_payment,
    utilize_itc,
)
from tax_engines.pipeline import (
    TransactionOutcome,
    TransactionProcessor,
    process_transaction,
)
from tax_engines.reconciliation import (
    DiscrepancyType,
    InvoiceRecord,
    MatchedPair,
    PotentialMatch,
    ReconciliationMatch,
    ReconciliationMatcher,
    ReconciliationReport,
    reconcile,
)
from tax_engines.returns import (
    B2CSRow,
    GSTR1Summary,
    GSTR1TableTotal,
    GSTR3BSummary,
    HSNSummaryRow,
    ReturnLateFee,
    build_gstr1_summary,
    build_gstr3b_summary,
    calculate_return_late_fee,
)
from tax_engines.reverse_charge import (
    ReverseChargeDecision,
    ReverseChargeDetector,
    ReverseChargeInput,
    ReverseChargeType,
    check_self_invoice_timeliness,
    detect_reverse_charge,
    rcm_payment_interest,
)
from tax_engines.tds import (
    DeducteeType,
    LateDepositAssessment,
    TDSCalculator,
    TDSCertificate,
    TDSDeduction,
    TDSPayment,
    TDSReturn,
    assess_late_deposit,
    build_quarterly_return,
    calculate_late_filing_fee,
    certificate_number,
    compute_tds,
    generate_certificates,
)
from tax_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Classification
    "B2C_LARGE_THRESHOLD",
    "RCM_ITC_SECTION",
    "ClassificationInput",
    "GSTR1Table",
    "GSTR3BSection",
    "ReturnClassification",
    "ReturnClassifier",
    "ReturnItem",
    "classification_input_for",
    "classify_return",
    # GST
    "GSTCalculator",
    "TaxCalculationResult",
    "TaxType",
    "calculate_gst",
    "combine_results",
    "determine_interstate",
    # ITC
    "BlockedCreditAssessment",
    "BlockedCreditCheck",
    "BlockedCreditReason",
    "ITCClaim",
    "ITCEligibility",
    "ITCEligibilityEngine",
    "ITCLine",
    "ITCRegister",
    "ITCReversal",
    "ITCReversalReason",
    "ITCUtilization",
    "VehiclePurpose",
    "assess_blocked_credit",
    "build_itc_register",
    "evaluate_itc",
    "reversal_for_non_payment",
    "utilize_itc",
    # Pipeline
    "TransactionOutcome",
    "TransactionProcessor",
    "process_transaction",
    # Reconciliation
    "DiscrepancyType",
    "InvoiceRecord",
    "MatchedPair",
    "PotentialMatch",
    "ReconciliationMatch",
    "ReconciliationMatcher",
    "ReconciliationReport",
    "reconcile",
    # Returns
    "B2CSRow",
    "GSTR1Summary",
    "GSTR1TableTotal",
    "GSTR3BSummary",
    "HSNSummaryRow",
    "ReturnLateFee",
    "build_gstr1_summary",
    "build_gstr3b_summary",
    "calculate_return_late_fee",
    # Reverse charge
    "ReverseChargeDecision",
    "ReverseChargeDetector",
    "ReverseChargeInput",
    "ReverseChargeType",
    "check_self_invoice_timeliness",
    "detect_reverse_charge",
    "rcm_payment_interest",
    # TDS
    "DeducteeType",
    "LateDepositAssessment",
    "TDSCalculator",
    "TDSCertificate",
    "TDSDeduction",
    "TDSPayment",
    "TDSReturn",
    "assess_late_deposit",
    "build_quarterly_return",
    "calculate_late_filing_fee",
    "certificate_number",
    "compute_tds",
    "generate_certificates",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]
