"""
Indian states and union territories recognised for GST place of supply.

Responsibility:
    Holds the enumerated state set and the normalisation rule applied to
    every state code before tax determination.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - ``normalize_state_code`` is idempotent: normalising an already
      normalised code returns it unchanged.
    - Only the 36 enumerated two-letter codes are accepted.
"""

from __future__ import annotations

from dataclasses import dataclass

from invoice_kernel.exceptions import InvalidStateCodeError


@dataclass(frozen=True)
class IndianState:
    """A state or union territory and its two-digit GST state code."""

    code: str
    name: str
    gst_code: str


_STATES: tuple[IndianState, ...] = (
    IndianState("AN", "Andaman and Nicobar Islands", "35"),
    IndianState("AP", "Andhra Pradesh", "28"),
    IndianState("AR", "Arunachal Pradesh", "12"),
    IndianState("AS", "Assam", "18"),
    IndianState("BR", "Bihar", "10"),
    IndianState("CH", "Chandigarh", "04"),
    IndianState("CG", "Chhattisgarh", "22"),
    IndianState("DN", "Dadra and Nagar Haveli", "26"),
    IndianState("DD", "Daman and Diu", "25"),
    IndianState("DL", "Delhi", "07"),
    IndianState("GA", "Goa", "30"),
    IndianState("GJ", "Gujarat", "24"),
    IndianState("HR", "Haryana", "06"),
    IndianState("HP", "Himachal Pradesh", "02"),
    IndianState("JK", "Jammu and Kashmir", "01"),
    IndianState("JH", "Jharkhand", "20"),
    IndianState("KA", "Karnataka", "29"),
    IndianState("KL", "Kerala", "32"),
    IndianState("LD", "Lakshadweep", "31"),
    IndianState("MP", "Madhya Pradesh", "23"),
    IndianState("MH", "Maharashtra", "27"),
    IndianState("MN", "Manipur", "14"),
    IndianState("ML", "Meghalaya", "17"),
    IndianState("MZ", "Mizoram", "15"),
    IndianState("NL", "Nagaland", "13"),
    IndianState("OR", "Odisha", "21"),
    IndianState("PY", "Puducherry", "34"),
    IndianState("PB", "Punjab", "03"),
    IndianState("RJ", "Rajasthan", "08"),
    IndianState("SK", "Sikkim", "11"),
    IndianState("TN", "Tamil Nadu", "33"),
    IndianState("TG", "Telangana", "36"),
    IndianState("TR", "Tripura", "16"),
    IndianState("UP", "Uttar Pradesh", "09"),
    IndianState("UT", "Uttarakhand", "05"),
    IndianState("WB", "West Bengal", "19"),
)

INDIAN_STATES: dict[str, IndianState] = {s.code: s for s in _STATES}


def is_known_state(code: str | None) -> bool:
    """True when ``code`` normalises to a member of the state set."""
    if code is None:
        return False
    return code.strip().upper() in INDIAN_STATES


def normalize_state_code(code: str | None) -> str:
    """Trim and upper-case a state code, rejecting unknown codes.

    Raises:
        InvalidStateCodeError: blank input or a code outside the state set.
    """
    if code is None or not code.strip():
        raise InvalidStateCodeError(code)
    normalized = code.strip().upper()
    if normalized not in INDIAN_STATES:
        raise InvalidStateCodeError(code)
    return normalized


def get_state(code: str) -> IndianState:
    return INDIAN_STATES[normalize_state_code(code)]


def state_gst_code(code: str) -> str:
    """Two-digit GST state code, e.g. ``"MH" -> "27"``."""
    return get_state(code).gst_code
