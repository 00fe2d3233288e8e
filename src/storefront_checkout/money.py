"""
Fixed-point currency arithmetic.

Amounts are held as integers in the currency's minor unit (paise, cents).
Every operation here is integer arithmetic; ``Decimal`` is only used at the
edges to parse major-unit input and to round percentages half-up.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from functools import total_ordering
from typing import Dict, NamedTuple, Union

DEFAULT_CURRENCY = "INR"

Numeric = Union[int, str, Decimal]


class CurrencyMismatch(ValueError):
    """Raised when amounts in different currencies are combined."""
    pass


@dataclass(frozen=True)
class CurrencyInfo:
    """Display and precision metadata for a currency."""
    code: str  # ISO 4217 code
    name: str
    symbol: str
    decimal_places: int = 2


CURRENCIES: Dict[str, CurrencyInfo] = {
    "INR": CurrencyInfo(code="INR", name="Indian Rupee", symbol="₹"),
    "USD": CurrencyInfo(code="USD", name="US Dollar", symbol="$"),
    "EUR": CurrencyInfo(code="EUR", name="Euro", symbol="€"),
    "GBP": CurrencyInfo(code="GBP", name="British Pound", symbol="£"),
    "AED": CurrencyInfo(code="AED", name="UAE Dirham", symbol="AED "),
    "SGD": CurrencyInfo(code="SGD", name="Singapore Dollar", symbol="S$"),
    "JPY": CurrencyInfo(
        code="JPY", name="Japanese Yen", symbol="¥", decimal_places=0
    ),
}


def currency_info(code: str) -> CurrencyInfo:
    """Look up currency metadata, falling back to two decimals and the bare code."""
    code = code.upper()
    info = CURRENCIES.get(code)
    if info is None:
        return CurrencyInfo(code=code, name=code, symbol=f"{code} ")
    return info


class Subtraction(NamedTuple):
    """Result of a clamped subtraction."""
    amount: "Money"
    clamped: bool


@total_ordering
@dataclass(frozen=True)
class Money:
    """An integer amount of minor units in a single currency."""
    amount: int
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        # bool is an int subclass; reject it along with floats
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(
                f"Money amount must be an integer number of minor units, "
                f"got {type(self.amount).__name__}"
            )
        if self.currency != self.currency.upper():
            object.__setattr__(self, "currency", self.currency.upper())

    # -- construction ------------------------------------------------------

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(0, currency)

    @classmethod
    def from_major_units(
        cls,
        value: Numeric,
        currency: str = DEFAULT_CURRENCY,
    ) -> "Money":
        """
        Build Money from a major-unit value such as ``"1299.50"`` rupees.

        Floats are not accepted. Values with more precision than the currency
        allows are rounded half-up to the nearest minor unit.
        """
        if isinstance(value, float):
            raise TypeError("Use str or Decimal for major-unit amounts, not float")
        places = currency_info(currency).decimal_places
        minor = (Decimal(str(value)) * (10 ** places)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return cls(int(minor), currency)

    # -- arithmetic --------------------------------------------------------

    def _check(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatch(
                f"Cannot combine {self.currency} with {other.currency}"
            )

    def add(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: "Money") -> Subtraction:
        """
        Subtract, flooring the result at zero.

        The ``clamped`` flag is set when the true result would have been
        negative so callers can report the anomaly.
        """
        self._check(other)
        difference = self.amount - other.amount
        if difference < 0:
            return Subtraction(Money(0, self.currency), True)
        return Subtraction(Money(difference, self.currency), False)

    def multiply_by_quantity(self, quantity: int) -> "Money":
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise TypeError("Quantity must be an integer")
        return Money(self.amount * quantity, self.currency)

    def percentage_of(self, percent: Numeric) -> "Money":
        """Return ``percent`` % of this amount, rounded half-up to a minor unit."""
        if isinstance(percent, float):
            raise TypeError("Use int, str or Decimal percentages, not float")
        share = (Decimal(self.amount) * Decimal(str(percent)) / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return Money(int(share), self.currency)

    # -- inspection --------------------------------------------------------

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    def to_major_units(self) -> Decimal:
        places = currency_info(self.currency).decimal_places
        return Decimal(self.amount).scaleb(-places)

    def to_display_string(self, locale: str = "en-IN") -> str:
        """
        Format for display, e.g. ``₹1,23,456`` for en-IN or ``$123,456.50``.

        Indian locales use lakh/crore grouping; every other locale uses groups
        of three. The fractional part is shown only when it is non-zero.
        """
        info = currency_info(self.currency)
        places = info.decimal_places
        sign = "-" if self.amount < 0 else ""
        whole, fraction = divmod(abs(self.amount), 10 ** places) if places else (abs(self.amount), 0)

        if locale.lower().endswith("-in"):
            digits = _group_indian(str(whole))
        else:
            digits = f"{whole:,}"

        text = f"{sign}{info.symbol}{digits}"
        if fraction:
            text += "." + str(fraction).zfill(places)
        return text

    def __lt__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount < other.amount

    def __str__(self) -> str:
        return f"{self.to_major_units()} {self.currency}"


def _group_indian(digits: str) -> str:
    """Group digits as 12,34,56,789: the last three, then pairs."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])
