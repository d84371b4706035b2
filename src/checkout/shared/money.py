"""Money value object — integer minor units with an ISO 4217 currency code.

All arithmetic stays in minor units. Combining amounts in different
currencies is a programming error and raises ``CurrencyMismatchError``
instead of silently picking one side's currency.
"""

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Integer, String

from checkout.domain import checkout

VALID_CURRENCIES = frozenset(
    {
        "USD",
        "EUR",
        "GBP",
        "JPY",
        "CAD",
        "AUD",
        "CHF",
        "NOK",
        "SEK",
        "DKK",
        "NZD",
    }
)


class CurrencyMismatchError(ValueError):
    def __init__(self, left: str, right: str) -> None:
        super().__init__(f"Cannot combine {left} and {right} amounts")
        self.left = left
        self.right = right


@checkout.value_object
class Money:
    """Monetary amount in minor units (øre, cents)."""

    amount: Integer(required=True)
    currency: String(max_length=3, required=True)

    @invariant.post
    def currency_must_be_valid_iso_4217(self):
        if self.currency not in VALID_CURRENCIES:
            raise ValidationError({"currency": [f"Unsupported currency: {self.currency}"]})

    @classmethod
    def zero(cls, currency):
        return cls(amount=0, currency=currency)

    def _check_currency(self, other):
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def add(self, other):
        self._check_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def subtract(self, other):
        self._check_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def multiply(self, factor):
        if not isinstance(factor, int) or isinstance(factor, bool):
            raise TypeError("Money can only be multiplied by an integer")
        return Money(amount=self.amount * factor, currency=self.currency)

    def __add__(self, other):
        return self.add(other)

    def __sub__(self, other):
        return self.subtract(other)

    def __mul__(self, factor):
        return self.multiply(factor)

    __rmul__ = __mul__

    def is_zero(self):
        return self.amount == 0

    def to_wire(self):
        return {"amount": self.amount, "currency": self.currency}

    @classmethod
    def from_wire(cls, data):
        if data is None:
            return None
        return cls(amount=int(data["amount"]), currency=data["currency"])


def sum_money(amounts, currency):
    """Sum an iterable of Money, starting from zero in ``currency``."""
    total = Money.zero(currency)
    for amount in amounts:
        total = total + amount
    return total
