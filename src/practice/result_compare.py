"""
Correctness oracle: does a learner's result set match the expected one?

Row order and column value types are ignored: rows are compared as a
multiset of normalised tuples, where numeric-looking values compare by
number ("3", 3 and 3.0 are equal) and everything else by trimmed text.
"""

from __future__ import annotations

from collections import Counter
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Sequence

# Decimal places kept when comparing numeric values
NUMERIC_PRECISION = 6


def normalize_value(value: Any) -> str:
    """Canonical string form of a single cell."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return str(int(value))
    text = str(value).strip()
    try:
        number = Decimal(text)
    except InvalidOperation:
        return text
    if not number.is_finite():
        return text
    try:
        quantized = round(number, NUMERIC_PRECISION).normalize()
    except InvalidOperation:
        # Too many digits to keep NUMERIC_PRECISION decimals within context precision
        return format(number.normalize(), "f")
    # Avoid "-0" and exponent forms such as "1E+1"
    return format(quantized + 0, "f")


def normalize_row(row: Any) -> tuple[str, ...]:
    if isinstance(row, (str, bytes)) or not isinstance(row, Sequence):
        row = (row,)
    return tuple(normalize_value(v) for v in row)


def compare_rows(submitted: Iterable[Any] | None, expected: Iterable[Any] | None) -> bool:
    """
    Return True if both result sets contain the same rows (any order).

    A missing submission (None) never matches.
    """
    if submitted is None or expected is None:
        return False
    return Counter(normalize_row(r) for r in submitted) == Counter(normalize_row(r) for r in expected)
