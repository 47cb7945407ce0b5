"""
Locale-ambiguous BRL amount parsing.

Users type amounts the Brazilian way (``1.234,56``), the US way
(``1,234.56``) or without any thousands separator at all (``1234,5``).
``parse_amount`` turns any of these into integer cents, or ``None`` when the
input cannot be read unambiguously as a non-negative amount.

Rules:
    - everything except digits, ``,``, ``.`` and ``-`` is discarded;
    - any ``-`` rejects the input (amounts are never negative);
    - with both separators present, the later one is the decimal separator;
    - with one kind present, its last occurrence is decimal only when it is
      followed by exactly 1 or 2 digits, otherwise all are thousands marks;
    - more than 2 fractional digits rejects the input.
"""

import re

_STRIP_RE = re.compile(r"[^0-9,.\-]")


def _split_decimal(s: str) -> tuple[str, str]:
    """Return ``(integer_part, fraction_part)`` with separators resolved."""
    has_comma = "," in s
    has_dot = "." in s

    if has_comma and has_dot:
        decimal = "," if s.rfind(",") > s.rfind(".") else "."
        thousands = "." if decimal == "," else ","
        s = s.replace(thousands, "")
        int_part, _, frac = s.rpartition(decimal)
        return int_part, frac

    if has_comma or has_dot:
        sep = "," if has_comma else "."
        head, _, tail = s.rpartition(sep)
        if 1 <= len(tail) <= 2:
            return head.replace(sep, ""), tail
        return s.replace(sep, ""), ""

    return s, ""


def parse_amount(raw) -> int | None:
    """Parse a user-typed BRL amount into integer cents.

    >>> parse_amount("1.234,56")
    123456
    >>> parse_amount("1.234")
    123400
    >>> parse_amount("-5,00") is None
    True
    """
    if raw is None:
        return None
    s = _STRIP_RE.sub("", str(raw))
    if not s or "-" in s:
        return None

    int_part, frac = _split_decimal(s)

    if not int_part and not frac:
        return None
    if len(frac) > 2 or (frac and not frac.isdigit()):
        return None
    if not int_part:
        int_part = "0"
    if not int_part.isdigit():
        return None

    return int(int_part) * 100 + int(frac.ljust(2, "0") or "0")


def format_cents(cents: int | None, sep: str = ",") -> str | None:
    """Render integer cents as ``"{int}{sep}{frac:02d}"`` (``None`` stays ``None``)."""
    if cents is None:
        return None
    value = int(cents)
    sign = "-" if value < 0 else ""
    value = abs(value)
    return f"{sign}{value // 100}{sep}{value % 100:02d}"
