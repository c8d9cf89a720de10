"""
Values -- Immutable, self-validating monetary value objects.

Responsibility:
    Provides the value types every tax computation runs on: Currency,
    Money and ExchangeRate, plus ``round2``, the single rounding boundary
    used by all engines.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every engine. No outward dependencies except
    tax_kernel.domain.currency and tax_kernel.exceptions.

Invariants enforced:
    - Monetary amounts are Decimal, never float.
    - Currency codes are validated at construction time.
    - Arithmetic never mixes currencies (CurrencyMismatchError).
    - Rounding is explicit: ROUND_HALF_UP to two places via ``round2`` or
      to currency precision via ``Money.round``. Nothing rounds implicitly.

Failure modes:
    - ValueError on construction with invalid amounts, currencies, or rates.
    - CurrencyMismatchError when arithmetic or comparison mixes currencies.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from tax_kernel.domain.currency import CurrencyRegistry
from tax_kernel.exceptions import CurrencyMismatchError

BASE_CURRENCY = CurrencyRegistry.BASE_CURRENCY

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Decimal | str | int, field_name: str = "value") -> Decimal:
    """Coerce a str/int to Decimal. Floats are rejected."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"{field_name} must be Decimal, str or int, got {type(value).__name__}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid {field_name}: {value!r}") from e


def round2(value: Decimal) -> Decimal:
    """Round to two decimal places, half away from zero."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def percent_of(value: Decimal, percent: Decimal) -> Decimal:
    """Return ``value * percent / 100`` rounded to two places."""
    return round2(value * percent / HUNDRED)


@dataclass(frozen=True, slots=True)
class Currency:
    """ISO 4217 currency code, validated and upper-cased on construction."""

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if self.code else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise ValueError(f"Unsupported currency code: {self.code}")
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def is_base(self) -> bool:
        """True for the currency returns are filed in."""
        return self.code == BASE_CURRENCY

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount paired with its currency.

    Contract:
        Amount and currency are never separated. Arithmetic and comparison
        require the same currency; scalar multiplication and division are
        allowed but do not round. Callers round explicitly with ``round()``.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", to_decimal(self.amount, "amount"))
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(f"currency must be Currency or str, got {type(self.currency)}")
        if not self.amount.is_finite():
            raise ValueError(f"Amount must be finite: {self.amount}")

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency = BASE_CURRENCY) -> Money:
        """Factory method; ``currency`` defaults to the base currency."""
        if isinstance(currency, str):
            currency = Currency(currency)
        return cls(amount=to_decimal(amount, "amount"), currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency = BASE_CURRENCY) -> Money:
        """Create a zero amount in the given currency."""
        if isinstance(currency, str):
            currency = Currency(currency)
        return cls(amount=Decimal("0"), currency=currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == Decimal("0")

    @property
    def is_positive(self) -> bool:
        return self.amount > Decimal("0")

    @property
    def is_negative(self) -> bool:
        return self.amount < Decimal("0")

    def round(self) -> Money:
        """Round to the currency's minor unit, ROUND_HALF_UP."""
        quantum = Decimal(1).scaleb(-self.currency.decimal_places)
        return Money(
            amount=self.amount.quantize(quantum, rounding=ROUND_HALF_UP),
            currency=self.currency,
        )

    def percent(self, rate: Decimal) -> Money:
        """``self * rate / 100``, rounded to two places."""
        return Money(amount=percent_of(self.amount, rate), currency=self.currency)

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.code, other.currency.code)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount, currency=self.currency)

    def __abs__(self) -> Money:
        return Money(amount=abs(self.amount), currency=self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, (int, str)) and not isinstance(factor, bool):
            factor = Decimal(str(factor))
        if not isinstance(factor, Decimal):
            return NotImplemented
        return Money(amount=self.amount * factor, currency=self.currency)

    def __rmul__(self, factor: Decimal | int | str) -> Money:
        return self.__mul__(factor)

    def __truediv__(self, divisor: Decimal | int | str) -> Money:
        if isinstance(divisor, (int, str)) and not isinstance(divisor, bool):
            divisor = Decimal(str(divisor))
        if not isinstance(divisor, Decimal):
            return NotImplemented
        return Money(amount=self.amount / divisor, currency=self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


def sum_money(values: Iterable[Money], currency: str | Currency = BASE_CURRENCY) -> Money:
    """Sum an iterable of Money; an empty iterable yields zero in ``currency``."""
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total


@dataclass(frozen=True, slots=True)
class ExchangeRate:
    """
    Exchange rate: 1 unit of from_currency = rate units of to_currency.

    Used to bring foreign-currency invoices into the base currency before
    tax is computed. The rate must be a positive Decimal.
    """

    from_currency: Currency
    to_currency: Currency
    rate: Decimal

    def __post_init__(self) -> None:
        if isinstance(self.from_currency, str):
            object.__setattr__(self, "from_currency", Currency(self.from_currency))
        if isinstance(self.to_currency, str):
            object.__setattr__(self, "to_currency", Currency(self.to_currency))
        if not isinstance(self.rate, Decimal):
            object.__setattr__(self, "rate", to_decimal(self.rate, "exchange rate"))
        if self.rate <= Decimal("0"):
            raise ValueError(f"Exchange rate must be positive: {self.rate}")

    @classmethod
    def of(
        cls,
        from_currency: str | Currency,
        rate: Decimal | str | int,
        to_currency: str | Currency = BASE_CURRENCY,
    ) -> ExchangeRate:
        """Factory method; converts into the base currency by default."""
        return cls(from_currency=from_currency, to_currency=to_currency, rate=rate)

    def convert(self, money: Money) -> Money:
        """Convert ``money`` into to_currency, rounded to its minor unit."""
        if money.currency != self.from_currency:
            raise CurrencyMismatchError(money.currency.code, self.from_currency.code)
        return Money(amount=money.amount * self.rate, currency=self.to_currency).round()

    def __str__(self) -> str:
        return f"{self.from_currency}/{self.to_currency} = {self.rate}"
