"""Amount in words using the Indian numbering system (Crore / Lakh)."""

from __future__ import annotations

from decimal import Decimal

from invoice_kernel.domain.money import round_money

_ONES = (
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight",
    "Nine", "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen",
    "Sixteen", "Seventeen", "Eighteen", "Nineteen",
)

_TENS = (
    "", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy",
    "Eighty", "Ninety",
)

# Largest unit first. The crore count itself may exceed 99 and is spelled
# recursively.
_UNITS = ((10_000_000, "Crore"), (100_000, "Lakh"), (1_000, "Thousand"))


def _below_thousand(num: int) -> list[str]:
    words: list[str] = []
    if num >= 100:
        words += [_ONES[num // 100], "Hundred"]
        num %= 100
    if num >= 20:
        words.append(_TENS[num // 10])
        num %= 10
    if num > 0:
        words.append(_ONES[num])
    return words


def _integer_words(num: int) -> list[str]:
    words: list[str] = []
    for size, label in _UNITS:
        if num >= size:
            count, num = divmod(num, size)
            words += (
                _integer_words(count) if size == 10_000_000
                else _below_thousand(count)
            )
            words.append(label)
    words += _below_thousand(num)
    return words


def amount_to_words(amount: Decimal) -> str:
    """
    Spell a rupee amount for the "Amount in words" line.

    >>> amount_to_words(Decimal("1234.50"))
    'One Thousand Two Hundred Thirty Four Rupees and Fifty Paise Only'
    >>> amount_to_words(Decimal("0"))
    'Zero Rupees Only'

    Raises:
        ValueError: for negative amounts.
    """
    amount = round_money(amount)
    if amount < 0:
        raise ValueError("Amount in words requires a non-negative amount")
    if amount == 0:
        return "Zero Rupees Only"

    rupees = int(amount)
    paise = int((amount - rupees) * 100)

    parts: list[str] = []
    if rupees > 0:
        parts += _integer_words(rupees)
        parts.append("Rupees")
    if paise > 0:
        if parts:
            parts.append("and")
        parts += _below_thousand(paise)
        parts.append("Paise")
    parts.append("Only")
    return " ".join(parts)
