"""
Money helpers -- two-decimal rounding for every persisted or rendered amount.

All amounts are ``Decimal``.  Rounding is ROUND_HALF_UP to the paisa, which
is what customers expect on a printed invoice (2.675 -> 2.68).
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: object) -> Decimal:
    """Convert str/int/Decimal (or a float via its repr) to Decimal.

    Raises:
        ValueError: the value is not numeric or not finite.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary amount: {value!r}") from exc
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        raise ValueError(f"Not a monetary amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return result


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def floor_cent(amount: Decimal) -> Decimal:
    """Truncate toward zero at the paisa."""
    return amount.quantize(CENT, rounding=ROUND_DOWN)


def format_rupees(amount: Decimal) -> str:
    return f"₹ {round_money(amount):,.2f}"


def format_rate(rate: Decimal) -> str:
    """Fraction to a percent label: Decimal("0.05") -> "5%", 0.025 -> "2.5%"."""
    percent = (rate * 100).normalize()
    text = format(percent, "f")
    return f"{text}%"


def allocate_prorata(amount: Decimal, weights: Sequence[Decimal]) -> tuple[Decimal, ...]:
    """
    Split ``amount`` across ``weights`` to the paisa, largest remainder.

    Each share is floored at the paisa; the paise left over go one each to
    the shares with the largest dropped fractions, earliest first on ties.
    The shares always sum to ``round_money(amount)``.  All-zero weights
    split evenly.
    """
    if not weights:
        return ()
    paise = int(round_money(amount) * 100)
    units = [int(round_money(w) * 100) for w in weights]
    if any(u < 0 for u in units):
        raise ValueError("allocation weights must not be negative")
    if not any(units):
        units = [1] * len(units)
    whole = sum(units)

    shares = [paise * u // whole for u in units]
    leftover = paise - sum(shares)
    by_fraction = sorted(
        range(len(units)), key=lambda i: (-((paise * units[i]) % whole), i),
    )
    for i in by_fraction[:leftover]:
        shares[i] += 1
    return tuple(Decimal(share).scaleb(-2) for share in shares)
