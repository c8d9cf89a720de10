"""
Transaction -- caller-supplied records the engines compute over.

Responsibility:
    Defines the immutable input records (Transaction, LineItem, Party) and
    the TaxComponents value object shared by the calculator, the ITC
    engine and the return classifier.

Architecture position:
    Kernel > Domain -- pure data, zero I/O. Records are created fresh per
    invocation by the caller; nothing here is cached or persisted.

Invariants enforced:
    - taxable amounts are >= 0 (NegativeAmountError)
    - tax rates and percentages lie in [0, 100] (RateOutOfRangeError)
    - document number is present (MissingFieldError)
    - line items share the transaction currency (CurrencyMismatchError)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from tax_kernel.domain.identifiers import DOMESTIC_COUNTRY, is_domestic_country
from tax_kernel.domain.values import HUNDRED, ExchangeRate, Money, percent_of
from tax_kernel.exceptions import (
    CurrencyMismatchError,
    MissingFieldError,
    NegativeAmountError,
    RateOutOfRangeError,
)


class TransactionType(str, Enum):
    """Statutory nature of a transaction."""

    EXPORT = "export"
    DOMESTIC_B2B = "domestic_b2b"
    DOMESTIC_B2C = "domestic_b2c"
    SELF_INVOICE = "self_invoice"  # Raised by the recipient under reverse charge


class VendorType(str, Enum):
    """GST registration type of a supplier."""

    REGULAR = "regular"
    COMPOSITION = "composition"  # Composition levy: charges no GST, no credit flows
    UNREGISTERED = "unregistered"


class CreditCategory(str, Enum):
    """Input-tax-credit category of a purchase line."""

    BLOCKED = "blocked"  # Section 17(5)
    CAPITAL_GOODS = "capital_goods"
    INPUTS = "inputs"
    INPUT_SERVICES = "input_services"


def check_rate(value: Decimal, field_name: str) -> Decimal:
    """Return ``value`` if it lies in [0, 100], else raise RateOutOfRangeError."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if not value.is_finite() or value < 0 or value > HUNDRED:
        raise RateOutOfRangeError(field_name, value)
    return value


def check_non_negative(amount: Money, field_name: str) -> Money:
    if amount.is_negative:
        raise NegativeAmountError(field_name, amount.amount)
    return amount


@dataclass(frozen=True)
class Party:
    """A supplier or recipient.

    ``gstin`` of None means the party is not registered for GST.
    """

    name: str
    gstin: str | None = None
    country: str | None = DOMESTIC_COUNTRY
    state_code: str | None = None
    vendor_type: VendorType = VendorType.REGULAR

    @property
    def is_registered(self) -> bool:
        return bool(self.gstin and self.gstin.strip())

    @property
    def is_domestic(self) -> bool:
        return is_domestic_country(self.country)


@dataclass(frozen=True)
class TaxComponents:
    """IGST / CGST / SGST / cess amounts in one currency."""

    igst: Money
    cgst: Money
    sgst: Money
    cess: Money

    @classmethod
    def zero(cls, currency: str = "INR") -> TaxComponents:
        z = Money.zero(currency)
        return cls(igst=z, cgst=z, sgst=z, cess=z)

    @classmethod
    def of(
        cls,
        igst: Decimal | str | int = 0,
        cgst: Decimal | str | int = 0,
        sgst: Decimal | str | int = 0,
        cess: Decimal | str | int = 0,
        currency: str = "INR",
    ) -> TaxComponents:
        return cls(
            igst=Money.of(igst, currency),
            cgst=Money.of(cgst, currency),
            sgst=Money.of(sgst, currency),
            cess=Money.of(cess, currency),
        )

    @property
    def total(self) -> Money:
        return self.igst + self.cgst + self.sgst + self.cess

    @property
    def currency(self) -> str:
        return self.igst.currency.code

    @property
    def is_zero(self) -> bool:
        return all(m.is_zero for m in (self.igst, self.cgst, self.sgst, self.cess))

    def __add__(self, other: TaxComponents) -> TaxComponents:
        if not isinstance(other, TaxComponents):
            return NotImplemented
        return TaxComponents(
            igst=self.igst + other.igst,
            cgst=self.cgst + other.cgst,
            sgst=self.sgst + other.sgst,
            cess=self.cess + other.cess,
        )

    def __sub__(self, other: TaxComponents) -> TaxComponents:
        if not isinstance(other, TaxComponents):
            return NotImplemented
        return TaxComponents(
            igst=self.igst - other.igst,
            cgst=self.cgst - other.cgst,
            sgst=self.sgst - other.sgst,
            cess=self.cess - other.cess,
        )

    def split(self, percent: Decimal) -> tuple[TaxComponents, TaxComponents]:
        """Split into ``(percent share, remainder)``.

        Each head of the share is rounded to two places; the remainder is
        the exact difference, so share + remainder == self.
        """
        percent = check_rate(percent, "percent")

        def share(m: Money) -> Money:
            return Money(amount=percent_of(m.amount, percent), currency=m.currency)

        portion = TaxComponents(
            igst=share(self.igst),
            cgst=share(self.cgst),
            sgst=share(self.sgst),
            cess=share(self.cess),
        )
        return portion, self - portion


@dataclass(frozen=True)
class LineItem:
    """One line of an invoice.

    ``tax_rate`` of None inherits the transaction rate, and ``hsn_sac_code``
    of None the transaction code.
    """

    description: str
    taxable_amount: Money
    category: CreditCategory = CreditCategory.INPUTS
    tax_rate: Decimal | None = None
    blocked_reason: str | None = None
    business_use_percent: Decimal = Decimal("100")
    hsn_sac_code: str | None = None
    quantity: Decimal | None = None
    uqc: str | None = None  # Unit quantity code, e.g. NOS, KGS

    def __post_init__(self) -> None:
        check_non_negative(self.taxable_amount, "line taxable_amount")
        if self.tax_rate is not None:
            object.__setattr__(self, "tax_rate", check_rate(self.tax_rate, "line tax_rate"))
        object.__setattr__(
            self,
            "business_use_percent",
            check_rate(self.business_use_percent, "business_use_percent"),
        )
        if self.quantity is not None and self.quantity < 0:
            raise NegativeAmountError("line quantity", self.quantity)


@dataclass(frozen=True)
class Transaction:
    """
    An outward supply or an inward self-invoiced supply.

    Amounts are in the invoice currency; ``exchange_rate`` converts them to
    the base currency and is mandatory for foreign-currency invoices.
    ``tax_rate`` of None lets the reverse-charge detector supply the rate.
    """

    document_number: str
    document_date: date
    transaction_type: TransactionType
    taxable_amount: Money
    supplier: Party
    recipient: Party
    tax_rate: Decimal | None = None
    place_of_supply: str | None = None
    service_type: str | None = None
    hsn_sac_code: str | None = None
    export_authorization: str | None = None  # LUT / bond reference
    exchange_rate: ExchangeRate | None = None
    cess_rate: Decimal = Decimal("0")
    rcm_percent: Decimal | None = None
    line_items: tuple[LineItem, ...] = ()
    is_valid_invoice: bool = True
    goods_received: bool = True

    def __post_init__(self) -> None:
        if not self.document_number or not self.document_number.strip():
            raise MissingFieldError("document_number")
        check_non_negative(self.taxable_amount, "taxable_amount")
        if self.tax_rate is not None:
            object.__setattr__(self, "tax_rate", check_rate(self.tax_rate, "tax_rate"))
        object.__setattr__(self, "cess_rate", check_rate(self.cess_rate, "cess_rate"))
        if self.rcm_percent is not None:
            object.__setattr__(self, "rcm_percent", check_rate(self.rcm_percent, "rcm_percent"))
        if not isinstance(self.line_items, tuple):
            object.__setattr__(self, "line_items", tuple(self.line_items))
        for line in self.line_items:
            if line.taxable_amount.currency != self.taxable_amount.currency:
                raise CurrencyMismatchError(
                    self.taxable_amount.currency.code, line.taxable_amount.currency.code
                )

    @property
    def currency(self) -> str:
        return self.taxable_amount.currency.code

    @property
    def has_export_authorization(self) -> bool:
        return bool(self.export_authorization and self.export_authorization.strip())

    def to_base_currency(self, amount: Money) -> Money:
        """Convert an invoice-currency amount to the base currency."""
        if amount.currency.is_base:
            return amount
        if self.exchange_rate is None:
            raise MissingFieldError("exchange_rate", f"invoice in {amount.currency.code}")
        return self.exchange_rate.convert(amount)

    @property
    def value_in_base_currency(self) -> Money:
        return self.to_base_currency(self.taxable_amount)
