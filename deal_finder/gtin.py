"""GTIN (UPC-A / EAN-8 / EAN-13 / GTIN-14) check digit handling."""
from __future__ import annotations

import re

VALID_LENGTHS = (8, 12, 13, 14)


def digits_only(code: str | None) -> str:
    return re.sub(r"\D", "", code or "")


def check_digit(body: str) -> int:
    """Check digit for a code body (all digits except the trailing check).

    Weights alternate 3, 1, 3, ... starting from the digit next to the check.
    """
    total = sum(int(d) * (3 if i % 2 == 0 else 1) for i, d in enumerate(reversed(body)))
    return (10 - total % 10) % 10


def is_valid_gtin(code: str | None) -> bool:
    s = digits_only(code)
    if len(s) not in VALID_LENGTHS:
        return False
    return check_digit(s[:-1]) == int(s[-1])


def canonical_gtin(code: str | None) -> str | None:
    """Zero-pad to 14 digits so UPC-A and its EAN-13 form compare equal."""
    s = digits_only(code)
    if len(s) not in VALID_LENGTHS:
        return None
    return s.zfill(14)
