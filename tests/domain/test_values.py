"""
Tests for the monetary value objects.

Covers:
- Money construction, float rejection and currency validation
- Same-currency arithmetic and explicit rounding
- ROUND_HALF_UP at the two-place boundary
- ExchangeRate conversion into the base currency
"""

from decimal import Decimal

import pytest

from tax_kernel.domain.values import (
    Currency,
    ExchangeRate,
    Money,
    percent_of,
    round2,
    sum_money,
    to_decimal,
)
from tax_kernel.exceptions import CurrencyMismatchError


class TestRounding:
    """round2 is the single rounding boundary."""

    @pytest.mark.parametrize("raw, expected", [
        ("0.005", "0.01"),
        ("0.004", "0.00"),
        ("2.675", "2.68"),
        ("-0.005", "-0.01"),
        ("12.345", "12.35"),
        ("100", "100.00"),
    ])
    def test_half_up(self, raw, expected):
        assert round2(Decimal(raw)) == Decimal(expected)

    def test_percent_of(self):
        assert percent_of(Decimal("100000"), Decimal("18")) == Decimal("18000.00")
        assert percent_of(Decimal("999.99"), Decimal("18")) == Decimal("180.00")

    def test_to_decimal_rejects_float(self):
        with pytest.raises(ValueError):
            to_decimal(1.5)

    def test_to_decimal_rejects_bool(self):
        with pytest.raises(ValueError):
            to_decimal(True)

    def test_to_decimal_rejects_garbage(self):
        with pytest.raises(ValueError):
            to_decimal("twelve")


class TestCurrency:
    """Currency codes are validated and normalised."""

    def test_normalised(self):
        assert Currency(" usd ").code == "USD"

    def test_unsupported(self):
        with pytest.raises(ValueError):
            Currency("XYZ")

    def test_base(self):
        assert Currency("INR").is_base
        assert not Currency("USD").is_base

    def test_decimal_places(self):
        assert Currency("JPY").decimal_places == 0
        assert Currency("KWD").decimal_places == 3


class TestMoney:
    """Money arithmetic never mixes currencies."""

    def test_defaults_to_base_currency(self):
        assert Money.of("100").currency.code == "INR"

    def test_string_currency_coerced(self):
        assert Money(Decimal("1"), "usd").currency == Currency("USD")

    def test_rejects_non_finite(self):
        with pytest.raises(ValueError):
            Money.of("Infinity")

    def test_add_and_subtract(self):
        total = Money.of("100.50") + Money.of("20.25")
        assert total == Money.of("120.75")
        assert (total - Money.of("0.75")).amount == Decimal("120.00")

    def test_mixed_currency_add_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of("1") + Money.of("1", "USD")

    def test_mixed_currency_compare_raises(self):
        with pytest.raises(CurrencyMismatchError):
            _ = Money.of("1") < Money.of("1", "USD")

    def test_scalar_multiplication_does_not_round(self):
        assert (Money.of("10.005") * 3).amount == Decimal("30.015")

    def test_round_to_currency_precision(self):
        assert Money.of("10.005").round().amount == Decimal("10.01")
        assert Money.of("10.5", "JPY").round().amount == Decimal("11")

    def test_percent(self):
        assert Money.of("100000").percent(Decimal("18")) == Money.of("18000.00")

    def test_predicates(self):
        assert Money.zero().is_zero
        assert Money.of("0.01").is_positive
        assert Money.of("-0.01").is_negative

    def test_sum_money_empty(self):
        assert sum_money([], "USD") == Money.zero("USD")

    def test_sum_money(self):
        assert sum_money([Money.of("1"), Money.of("2.50")]) == Money.of("3.50")


class TestExchangeRate:
    """Foreign-currency amounts convert into INR, rounded to paise."""

    def test_convert(self):
        rate = ExchangeRate.of("USD", "83.2567")
        assert rate.convert(Money.of("1000", "USD")) == Money.of("83256.70")

    def test_convert_rounds_half_up(self):
        rate = ExchangeRate.of("USD", "83.125")
        assert rate.convert(Money.of("1", "USD")).amount == Decimal("83.13")

    def test_wrong_source_currency(self):
        with pytest.raises(CurrencyMismatchError):
            ExchangeRate.of("USD", "83").convert(Money.of("1", "EUR"))

    @pytest.mark.parametrize("rate", ["0", "-1"])
    def test_rate_must_be_positive(self, rate):
        with pytest.raises(ValueError):
            ExchangeRate.of("USD", rate)
