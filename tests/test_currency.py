"""
Tests for Money values and amount parsing
"""

import pytest
from decimal import Decimal

from peerpay.currency import Money, Currency, decimal_from_string, to_money
from peerpay.errors import InvalidAmount


class TestMoney:
    """Test Money arithmetic and precision"""

    def test_rounds_to_currency_precision(self):
        assert Money(Decimal('10.005'), Currency.USD).amount == Decimal('10.01')
        assert Money(Decimal('1234.5'), Currency.JPY).amount == Decimal('1235')

    def test_non_decimal_amount_is_converted(self):
        money = Money(25, Currency.USD)
        assert isinstance(money.amount, Decimal)
        assert money.amount == Decimal('25.00')

    def test_add_and_subtract(self):
        a = Money(Decimal('10.00'), Currency.USD)
        b = Money(Decimal('2.50'), Currency.USD)
        assert a + b == Money(Decimal('12.50'), Currency.USD)
        assert a - b == Money(Decimal('7.50'), Currency.USD)
        assert (b - a).is_negative()

    def test_negation(self):
        money = Money(Decimal('30.00'), Currency.USD)
        assert -money == Money(Decimal('-30.00'), Currency.USD)
        assert (money + -money).is_zero()

    def test_mixed_currency_rejected(self):
        with pytest.raises(ValueError):
            Money(Decimal('1'), Currency.USD) + Money(Decimal('1'), Currency.EUR)
        with pytest.raises(ValueError):
            Money(Decimal('1'), Currency.USD) < Money(Decimal('1'), Currency.EUR)

    def test_comparisons(self):
        small = Money(Decimal('20.00'), Currency.USD)
        large = Money(Decimal('30.00'), Currency.USD)
        assert small < large
        assert large >= small
        assert small != large

    def test_to_string(self):
        assert Money(Decimal('1250.5'), Currency.USD).to_string() == "USD 1,250.50"
        assert Money(Decimal('1250'), Currency.JPY).to_string() == "JPY 1,250"


class TestAmountParsing:
    """Test conversion of caller-supplied amounts"""

    def test_decimal_from_string_formats(self):
        assert decimal_from_string("$1,250.00") == Decimal('1250.00')
        assert decimal_from_string("12,50") == Decimal('12.50')
        assert decimal_from_string("1,250") == Decimal('1250')
        assert decimal_from_string("-5") == Decimal('-5')

    @pytest.mark.parametrize("value", ["", "abc", "1.2.3", "-", "1e2", "1E30", "1.234,56", "12abc", "1,2345", "12,5,0"])
    def test_decimal_from_string_rejects_garbage(self, value):
        with pytest.raises(InvalidAmount):
            decimal_from_string(value)

    def test_to_money_accepts_numeric_types(self):
        assert to_money(25, Currency.USD).amount == Decimal('25.00')
        assert to_money("25.10", Currency.USD).amount == Decimal('25.10')
        assert to_money(Decimal('0.1'), Currency.USD).amount == Decimal('0.10')
        assert to_money(0.1, Currency.USD).amount == Decimal('0.10')

    def test_to_money_passes_money_through(self):
        money = Money(Decimal('5'), Currency.USD)
        assert to_money(money, Currency.USD) is money

    def test_to_money_rejects_other_currency(self):
        with pytest.raises(InvalidAmount):
            to_money(Money(Decimal('5'), Currency.EUR), Currency.USD)

    @pytest.mark.parametrize("value", [None, True, [], object(), float('nan'), float('inf')])
    def test_to_money_rejects_non_numeric(self, value):
        with pytest.raises(InvalidAmount):
            to_money(value, Currency.USD)

    def test_decimal_from_string_keeps_digits_intact(self):
        assert decimal_from_string(" $ 100 ") == Decimal('100')
        assert decimal_from_string("-$5.25") == Decimal('-5.25')
        assert decimal_from_string("1,234,567.89") == Decimal('1234567.89')

    @pytest.mark.parametrize("value", ["0.005", Decimal('0.005'), 0.005, "25.001"])
    def test_to_money_rejects_sub_unit_precision(self, value):
        with pytest.raises(InvalidAmount):
            to_money(value, Currency.USD)

    def test_to_money_rejects_fractional_yen(self):
        with pytest.raises(InvalidAmount):
            to_money("100.5", Currency.JPY)
        assert to_money("100", Currency.JPY).amount == Decimal('100')

    def test_to_money_accepts_trailing_zeros(self):
        assert to_money(Decimal('25.000'), Currency.USD).amount == Decimal('25.00')

    @pytest.mark.parametrize("value", [Decimal('1e30'), 10 ** 40, "9" * 40])
    def test_to_money_rejects_out_of_range_amounts(self, value):
        with pytest.raises(InvalidAmount):
            to_money(value, Currency.USD)
