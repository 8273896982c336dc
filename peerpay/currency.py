"""
Money Module

ISO 4217 currency codes and an immutable Money value with proper Decimal
precision. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Any, Union
from enum import Enum
import re

from .errors import InvalidAmount

# Set global decimal context for financial precision
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    USD = ("USD", 2)  # US Dollar, 2 decimal places
    EUR = ("EUR", 2)  # Euro, 2 decimal places
    GBP = ("GBP", 2)  # British Pound, 2 decimal places
    JPY = ("JPY", 0)  # Japanese Yen, 0 decimal places
    CAD = ("CAD", 2)  # Canadian Dollar, 2 decimal places

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.
    Balances may be negative; transaction amounts are validated separately.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        # Round to currency precision
        rounded = self.amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=ROUND_HALF_UP
        )
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency) -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __abs__(self) -> 'Money':
        return Money(abs(self.amount), self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency.code))

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display"""
        if self.currency.precision == 0:
            return f"{self.currency.code} {self.amount:,.0f}"
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


CURRENCY_SYMBOLS = re.compile(r'[\s$€£¥]')
DECIMAL_COMMA = re.compile(r'^[+-]?\d+,\d{1,2}$')
PLAIN_AMOUNT = re.compile(r'^[+-]?(\d{1,3}(,\d{3})+|\d+)(\.\d+)?$')


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert user-entered text to Decimal, handling common formats
    like "$1,250.00" or "12,50".

    Only currency symbols, whitespace and well-formed thousands separators
    are removed. Anything else, exponents included, is rejected rather than
    dropped.

    Raises:
        InvalidAmount: If the string is empty or not a plain number
    """
    if not value or not isinstance(value, str):
        raise InvalidAmount("Amount must be a non-empty string")

    clean_value = CURRENCY_SYMBOLS.sub('', value)

    if DECIMAL_COMMA.match(clean_value):
        clean_value = clean_value.replace(',', '.')
    elif PLAIN_AMOUNT.match(clean_value):
        clean_value = clean_value.replace(',', '')
    else:
        raise InvalidAmount(f"Cannot convert '{value}' to an amount", {"value": value})

    return Decimal(clean_value)


def to_money(value: Union[Money, Decimal, int, str, Any], currency: Currency) -> Money:
    """
    Coerce a caller-supplied amount into Money of the given currency.

    Floats go through ``str`` so 0.1 stays 0.1. Booleans and anything
    non-numeric are rejected with InvalidAmount, and so are amounts with
    more decimal places than the currency has: 0.005 USD is an error, not
    a rounded cent.
    """
    if isinstance(value, Money):
        if value.currency != currency:
            raise InvalidAmount(
                f"Amount currency {value.currency.code} does not match {currency.code}",
                {"currency": value.currency.code}
            )
        return value

    if isinstance(value, bool) or value is None:
        raise InvalidAmount("Amount must be numeric", {"value": repr(value)})

    if isinstance(value, str):
        amount = decimal_from_string(value)
    elif isinstance(value, (Decimal, int, float)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise InvalidAmount("Amount must be numeric", {"value": repr(value)})
        if not amount.is_finite():
            raise InvalidAmount("Amount must be finite", {"value": repr(value)})
    else:
        raise InvalidAmount("Amount must be numeric", {"value": repr(value)})

    try:
        exact = amount.quantize(Decimal(1).scaleb(-currency.precision))
    except InvalidOperation:
        raise InvalidAmount("Amount is too large", {"value": str(value)})

    if exact != amount:
        raise InvalidAmount(
            f"{currency.code} amounts allow at most {currency.precision} decimal places",
            {"value": str(value)}
        )
    return Money(exact, currency)
