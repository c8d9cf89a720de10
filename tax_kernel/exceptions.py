"""
Typed exception hierarchy for the tax kernel.

===============================================================================
ERROR TAXONOMY
===============================================================================

Tax computation distinguishes three kinds of failure, and only two of them
are exceptions:

  1. ValidationError -- the caller handed us something malformed: a GSTIN
     that does not match the registration pattern, a negative taxable
     amount, a deposit date before the payment date. Raised BEFORE any
     computation runs. Inputs are never silently coerced.

  2. ComputationError -- the input is well-formed but internally
     inconsistent, so no answer can be produced (a rate of 140%, a
     reverse-charge flag with no reverse-charge type, money in two
     currencies). Fails fast with a descriptive reason.

  3. Compliance findings -- valid input that reveals a statutory problem
     (late self-invoice, TDS threshold crossed, ITC utilised beyond the
     balance). These are NOT exceptions; engines return them as
     ComplianceFinding records in their results.

Every class carries a machine-readable ``code`` so that callers can map
errors onto API responses without parsing messages:

    try:
        decision = detector.detect(rcm_input)
    except InvalidIdentifierError as e:
        api_response(code=e.code, field=e.field_name, value=e.value)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TaxKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidIdentifierError
    |   +-- MissingFieldError
    |   +-- NegativeAmountError
    |   +-- InvalidDateOrderError
    |   +-- InvalidPeriodError
    |
    +-- ComputationError
    |   +-- RateOutOfRangeError
    |   +-- CurrencyMismatchError
    |   +-- UnknownSectionError
    |   +-- InconsistentInputError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                 | When Raised
----------------|----------------------|-------------------------------------------
Validation      | INVALID_IDENTIFIER   | GSTIN / PAN / TAN / state code malformed
                | MISSING_FIELD        | Mandatory field absent or blank
                | NEGATIVE_AMOUNT      | Amount below zero where >= 0 is required
                | INVALID_DATE_ORDER   | Later event dated before earlier event
                | INVALID_PERIOD       | Bad financial-year / quarter / return period
----------------|----------------------|-------------------------------------------
Computation     | RATE_OUT_OF_RANGE    | Rate or percentage outside [0, 100]
                | CURRENCY_MISMATCH    | Arithmetic across currencies
                | UNKNOWN_SECTION      | TDS section missing from the rate table
                | INCONSISTENT_INPUT   | Flags that contradict each other
----------------|----------------------|-------------------------------------------
Configuration   | CONFIGURATION_ERROR  | Rule file malformed or incomplete
"""


class TaxKernelError(Exception):
    """
    Base exception for all tax kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "TAX_KERNEL_ERROR"


# Validation errors


class ValidationError(TaxKernelError):
    """Base exception for malformed input rejected before computation."""

    code: str = "VALIDATION_ERROR"


class InvalidIdentifierError(ValidationError):
    """A registration or tax identifier does not match its statutory format."""

    code: str = "INVALID_IDENTIFIER"

    def __init__(self, kind: str, value: object, field_name: str | None = None):
        self.kind = kind
        self.value = value
        self.field_name = field_name or kind.lower()
        super().__init__(f"Invalid {kind} for {self.field_name}: {value!r}")


class MissingFieldError(ValidationError):
    """A mandatory field is absent or blank."""

    code: str = "MISSING_FIELD"

    def __init__(self, field_name: str, context: str | None = None):
        self.field_name = field_name
        self.context = context
        where = f" ({context})" if context else ""
        super().__init__(f"Missing mandatory field: {field_name}{where}")


class NegativeAmountError(ValidationError):
    """An amount that must be non-negative is below zero."""

    code: str = "NEGATIVE_AMOUNT"

    def __init__(self, field_name: str, amount: object):
        self.field_name = field_name
        self.amount = str(amount)
        super().__init__(f"{field_name} must not be negative, got {amount}")


class InvalidDateOrderError(ValidationError):
    """Two dates are in an impossible order."""

    code: str = "INVALID_DATE_ORDER"

    def __init__(
        self,
        earlier_field: str,
        earlier: object,
        later_field: str,
        later: object,
    ):
        self.earlier_field = earlier_field
        self.earlier = str(earlier)
        self.later_field = later_field
        self.later = str(later)
        super().__init__(
            f"{later_field} ({later}) cannot be before {earlier_field} ({earlier})"
        )


class InvalidPeriodError(ValidationError):
    """A financial year, quarter or return period label is malformed."""

    code: str = "INVALID_PERIOD"

    def __init__(self, kind: str, value: object):
        self.kind = kind
        self.value = value
        super().__init__(f"Invalid {kind}: {value!r}")


# Computation errors


class ComputationError(TaxKernelError):
    """Base exception for inputs the engines cannot resolve."""

    code: str = "COMPUTATION_ERROR"


class RateOutOfRangeError(ComputationError):
    """A tax rate or percentage lies outside [0, 100]."""

    code: str = "RATE_OUT_OF_RANGE"

    def __init__(self, field_name: str, rate: object):
        self.field_name = field_name
        self.rate = str(rate)
        super().__init__(f"{field_name} must be between 0 and 100, got {rate}")


class CurrencyMismatchError(ComputationError):
    """Attempted arithmetic on amounts in different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, currency1: str, currency2: str):
        self.currency1 = currency1
        self.currency2 = currency2
        super().__init__(f"Currency mismatch: {currency1} vs {currency2}")


class UnknownSectionError(ComputationError):
    """A TDS section code has no entry in the rate table."""

    code: str = "UNKNOWN_SECTION"

    def __init__(self, section_code: str):
        self.section_code = section_code
        super().__init__(f"Unknown TDS section: {section_code}")


class InconsistentInputError(ComputationError):
    """Input flags contradict each other."""

    code: str = "INCONSISTENT_INPUT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Inconsistent input: {reason}")


# Configuration errors


class ConfigurationError(TaxKernelError):
    """The statutory rule file is malformed or incomplete."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid rule configuration in {source}: {reason}")
