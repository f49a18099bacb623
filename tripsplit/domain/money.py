"""
Money value model.

Amounts are carried as integer cents so that sums of shares never drift;
``Decimal`` is only used at the edges (parsing input, rendering output).
Every supported currency is treated as having two minor-unit digits.
"""
import enum
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union
from tripsplit.core.config import settings
from tripsplit.core.exceptions import ValidationError

CENT = Decimal("0.01")

# Defaults for the pure functions; services pass the configured values explicitly
SPLIT_TOLERANCE = settings.SPLIT_TOLERANCE
PERCENTAGE_TOLERANCE = settings.PERCENTAGE_TOLERANCE

Number = Union[Decimal, int, float, str]


class Currency(str, enum.Enum):
    """Supported ISO 4217 currency codes."""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    CAD = "CAD"
    AUD = "AUD"
    INR = "INR"


def parse_currency(value: Union[str, Currency], field: str = "currency") -> Currency:
    try:
        return Currency(str(value.value if isinstance(value, Currency) else value).upper())
    except ValueError:
        raise ValidationError(f"Unsupported currency '{value}'", field=field)


def to_decimal(value: Number, field: str = "amount") -> Decimal:
    """Parse a number into a finite Decimal without going through binary floats."""
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"'{value}' is not a valid number", field=field)
    if not result.is_finite():
        raise ValidationError(f"'{value}' is not a valid number", field=field)
    return result


def to_cents(value: Number, field: str = "amount") -> int:
    """Convert an amount to integer cents, rejecting sub-cent precision."""
    amount = to_decimal(value, field)
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        raise ValidationError("Amount is too large", field=field)
    if amount != quantized:
        raise ValidationError("Amount cannot have more than two decimal places", field=field)
    return int(amount * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def convert_cents(cents: int, rate: Decimal) -> int:
    """Multiply an amount by an exchange rate, rounding half up to the cent."""
    if rate == 1:
        return cents
    return int((Decimal(cents) * rate).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def within_tolerance(difference_cents: int, tolerance: Decimal = SPLIT_TOLERANCE) -> bool:
    return abs(from_cents(difference_cents)) <= tolerance


@dataclass(frozen=True)
class Money:
    """A non-negative amount in a single currency."""
    cents: int
    currency: Currency = Currency.USD

    def __post_init__(self):
        if self.cents < 0:
            raise ValidationError("Amount cannot be negative", field="amount")

    @classmethod
    def of(cls, amount: Number, currency: Union[str, Currency] = Currency.USD, field: str = "amount") -> "Money":
        cents = to_cents(amount, field)
        if cents < 0:
            raise ValidationError("Amount cannot be negative", field=field)
        return cls(cents, parse_currency(currency))

    @property
    def amount(self) -> Decimal:
        return from_cents(self.cents)

    def _check_currency(self, other: "Money") -> None:
        if other.currency != self.currency:
            raise ValidationError(
                f"Cannot combine {self.currency.value} and {other.currency.value} amounts",
                field="currency",
            )

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.cents + other.cents, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.cents - other.cents, self.currency)

    def convert(self, rate: Decimal, currency: Union[str, Currency]) -> "Money":
        """Simple multiplication into another currency."""
        return Money(convert_cents(self.cents, rate), parse_currency(currency))

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.value}"
