"""Locale-aware number parsing for Brazilian budget documents.

Budgets mix ``1.234,56`` (pt-BR) with ``1,234.56`` and bare ``1234.5``
values, sometimes prefixed with ``R$``. Everything here returns plain
floats, or ``None`` when the token is not a number.
"""

import math
import re

_NON_NUMERIC = re.compile(r"[^0-9,.\-]")
_THOUSANDS_GROUP = re.compile(r"^\d{3}$")
_CURRENCY_VALUE = re.compile(
    r"(?:R\$|\$)?\s*(?<![\d.,])"
    r"([0-9]{1,3}(?:\.[0-9]{3})*,[0-9]{2}|[0-9]{1,3}(?:\.[0-9]{3})+|[0-9]+[.,][0-9]{2})"
    r"(?!\d)"
)


def _resolve_single_separator(body: str, separator: str) -> str | None:
    parts = body.split(separator)
    if len(parts) > 2:
        # 1.234.567 or 1,234,567: only valid as grouped thousands
        if parts[0] and all(_THOUSANDS_GROUP.match(p) for p in parts[1:]):
            return "".join(parts)
        return None

    integer, fraction = parts
    if separator == "." and integer and integer != "0" and len(fraction) == 3:
        return integer + fraction
    return f"{integer or '0'}.{fraction}"


def parse_locale_number(raw: str | None) -> float | None:
    """Parse a region-formatted numeric or currency token.

    When both ``.`` and ``,`` occur the right-most one is the decimal
    separator. A lone ``.`` followed by exactly three digits is a
    thousands separator; a lone ``,`` is always decimal.

    Args:
        raw: Token such as ``"R$ 23.580,00"``, ``"12"`` or ``"1,5"``.

    Returns:
        Parsed float, or ``None`` for unparseable input.
    """
    if not raw:
        return None
    cleaned = _NON_NUMERIC.sub("", raw)
    if not cleaned or not any(ch.isdigit() for ch in cleaned):
        return None

    negative = cleaned.startswith("-")
    body = cleaned.replace("-", "")

    last_comma = body.rfind(",")
    last_dot = body.rfind(".")
    if last_comma >= 0 and last_dot >= 0:
        decimal, thousands = (",", ".") if last_comma > last_dot else (".", ",")
        head, _, tail = body.rpartition(decimal)
        if decimal in head:
            return None
        body = f"{head.replace(thousands, '')}.{tail}"
    elif last_comma >= 0:
        resolved = _resolve_single_separator(body, ",")
        if resolved is None:
            return None
        body = resolved
    elif last_dot >= 0:
        resolved = _resolve_single_separator(body, ".")
        if resolved is None:
            return None
        body = resolved

    try:
        value = float(body)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return -value if negative else value


def extract_currency_values(line: str) -> list[float]:
    """Return every money-like value found in a line, in order."""
    values: list[float] = []
    for match in _CURRENCY_VALUE.finditer(line):
        value = parse_locale_number(match.group(1))
        if value is not None:
            values.append(value)
    return values
