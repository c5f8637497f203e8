"""
HSNResolver -- classification code per line item.

Responsibility:
    Pure, deterministic resolution of the HSN classification code printed
    against each invoice line and in the tax summary.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - An explicit, non-blank code always wins and is returned trimmed.
    - Hint priority is fixed: blend/mix > cotton > polyester > default.
    - Same inputs, same output; no state, no side effects.
"""

from __future__ import annotations

import re
from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from invoice_kernel.domain.order import LineItem

TEXTILE_HSN_CODES: dict[str, str] = {
    "textiles": "6109",   # T-shirts, singlets and other vests, knitted
    "cotton": "6109.10",
    "polyester": "6109.90",
    "blend": "6109.90",   # cotton-polyester blends
    "default": "6109",
}

DEFAULT_HSN_CODE = TEXTILE_HSN_CODES["default"]

# Checked in order; first match wins.
_HINT_PRIORITY: tuple[tuple[tuple[str, ...], str], ...] = (
    (("blend", "mix"), TEXTILE_HSN_CODES["blend"]),
    (("cotton",), TEXTILE_HSN_CODES["cotton"]),
    (("polyester",), TEXTILE_HSN_CODES["polyester"]),
)

_HSN_PATTERN = re.compile(r"^[0-9]{4}(\.[0-9]{2}){0,2}$")


def resolve_hsn_code(
    explicit_code: str | None = None,
    product_hint: str | None = None,
) -> str:
    if explicit_code is not None and explicit_code.strip():
        return explicit_code.strip()

    if product_hint:
        hint = product_hint.lower()
        for keywords, code in _HINT_PRIORITY:
            if any(keyword in hint for keyword in keywords):
                return code

    return DEFAULT_HSN_CODE


def annotate_line_items(items: tuple[LineItem, ...]) -> tuple[LineItem, ...]:
    """Return copies of ``items`` with ``hsn_code`` resolved on each."""
    return tuple(
        replace(
            item,
            hsn_code=resolve_hsn_code(
                item.hsn_code, item.product_type or item.name,
            ),
        )
        for item in items
    )


def is_valid_hsn_code(code: str) -> bool:
    """Format check only (4 digits, optionally .NN or .NN.NN)."""
    return bool(_HSN_PATTERN.match(code))
