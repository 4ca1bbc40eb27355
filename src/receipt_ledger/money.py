"""Fixed-point money value type."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation

from receipt_ledger.errors import (
    CurrencyMismatchError,
    InvalidAmountError,
    InvalidFactorError,
    NegativeAmountError,
    NegativeResultError,
)

DEFAULT_CURRENCY = "JPY"

# Minor units per major unit (1 yen = 100 sen).
MINOR_UNITS = 100


@dataclass(frozen=True)
class Money:
    """An amount of money held as an integer count of minor units.

    Instances are immutable; every operation returns a new ``Money``.
    """

    amount: int
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            msg = f"Amount in minor units must be an integer, got {self.amount!r}"
            raise InvalidAmountError(msg)
        if self.amount < 0:
            msg = "Amount cannot be negative."
            raise NegativeAmountError(msg)

    @classmethod
    def from_major_units(
        cls, amount: int | float | Decimal | str, currency: str = DEFAULT_CURRENCY
    ) -> Money:
        """Build Money from a major-unit amount, truncating fractional sen.

        Truncation follows Japanese consumption-tax practice: ``100.456``
        becomes 10045 sen, never 10046.
        """
        scaled = _to_decimal(amount, InvalidAmountError, "Amount") * MINOR_UNITS
        minor = int(scaled.to_integral_value(rounding=ROUND_FLOOR))
        if minor < 0:
            msg = "Amount cannot be negative."
            raise NegativeAmountError(msg)
        return cls(minor, currency)

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> Money:
        return cls(0, currency)

    def to_major_units(self) -> Decimal:
        """Return the exact major-unit value."""
        return Decimal(self.amount) / MINOR_UNITS

    def add(self, other: Money) -> Money:
        self._ensure_same_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: Money) -> Money:
        self._ensure_same_currency(other)
        result = self.amount - other.amount
        if result < 0:
            msg = "Subtraction resulted in a negative amount."
            raise NegativeResultError(msg)
        return Money(result, self.currency)

    def multiply(self, factor: int | float | Decimal | str) -> Money:
        """Scale by ``factor``, rounding half up to the nearest minor unit."""
        product = Decimal(self.amount) * _to_decimal(
            factor, InvalidFactorError, "Multiplication factor"
        )
        result = int(product.to_integral_value(rounding=ROUND_HALF_UP))
        if result < 0:
            msg = "Multiplication resulted in a negative amount."
            raise NegativeResultError(msg)
        return Money(result, self.currency)

    def equals(self, other: object) -> bool:
        return self == other

    def format(self) -> str:
        """Return a grouped major-unit string, e.g. ``1,234 JPY``."""
        major = self.to_major_units().normalize()
        return f"{major:,f} {self.currency}"

    def __str__(self) -> str:
        return self.format()

    def _ensure_same_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            msg = (
                "Cannot operate on Money of different currencies: "
                f"{self.currency} and {other.currency}."
            )
            raise CurrencyMismatchError(msg)


def sum_money(amounts: list[Money], currency: str = DEFAULT_CURRENCY) -> Money:
    """Add up ``amounts``, starting from zero in ``currency``."""
    total = Money.zero(currency)
    for amount in amounts:
        total = total.add(amount)
    return total


def _to_decimal(
    value: int | float | Decimal | str, error: type[ValueError], label: str
) -> Decimal:
    if isinstance(value, bool):
        msg = f"{label} must be a finite number, got {value!r}"
        raise error(msg)
    if isinstance(value, float):
        if not math.isfinite(value):
            msg = f"{label} must be a finite number, got {value!r}"
            raise error(msg)
        # Go through repr so 0.29 scales to 29, not 28.999...
        return Decimal(repr(value))
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        msg = f"{label} must be a finite number, got {value!r}"
        raise error(msg) from None
    if not result.is_finite():
        msg = f"{label} must be a finite number, got {value!r}"
        raise error(msg)
    return result
