"""Quantity token parsing and unit normalization.

A quantity token is a cell such as ``"12"``, ``"Qtd: 12 un"`` or
``"3 kits"``. Parsing yields a :class:`Quantity` or ``None``; the row
assembly in :mod:`grid_parser` never looks at the raw regex groups.
"""

import math
import re
from dataclasses import dataclass

from .locale_number import parse_locale_number

UNIT_ALIASES: dict[str, str] = {
    "un": "UN",
    "und": "UN",
    "unidade": "UN",
    "unidades": "UN",
    "pcs": "UN",
    "pçs": "UN",
    "pecas": "UN",
    "peças": "UN",
    "kit": "KIT",
    "kits": "KIT",
    "modulo": "MOD",
    "modulos": "MOD",
    "módulo": "MOD",
    "módulos": "MOD",
    "kva": "KVA",
    "kwp": "KWP",
}

_TRAILING_QUANTITY = re.compile(
    r"^(?:qtde|qtd|quantidade)?\s*[:=-]?\s*(\d{1,5}(?:[.,]\d{1,2})?)\s*([^\W\d_]+)?$",
    re.IGNORECASE,
)
_NON_LETTERS = re.compile(r"[\W\d_]+")
_TOKEN_NOISE = re.compile(r"[•·●▪◦]")


@dataclass(frozen=True)
class Quantity:
    """A parsed quantity with its optional normalized unit."""

    value: int
    unit: str | None = None


def normalize_unit(unit: str | None) -> str | None:
    """Map a unit alias to its short code.

    Unknown units are upper-cased and truncated to five letters.

    Args:
        unit: Raw unit text, e.g. ``"peças"`` or ``"kWp"``.

    Returns:
        Normalized code, or ``None`` when no letters remain.
    """
    if not unit:
        return None
    letters = _NON_LETTERS.sub("", unit.lower())
    if not letters:
        return None
    return UNIT_ALIASES.get(letters, letters.upper())[:5]


def known_unit(token: str | None) -> str | None:
    """Return the code for ``token`` only when it is a recognized alias."""
    if not token:
        return None
    letters = _NON_LETTERS.sub("", token.lower())
    return UNIT_ALIASES.get(letters)


def ensure_integer(value: float | None) -> int | None:
    """Round half up to an int; ``None`` for missing or non-finite values."""
    if value is None or not math.isfinite(value):
        return None
    return math.floor(value + 0.5)


def parse_quantity_token(token: str) -> Quantity | None:
    """Parse a ``label? number unit?`` cell into a :class:`Quantity`.

    Args:
        token: A column or word from a budget line.

    Returns:
        The parsed quantity, or ``None`` when the token is not a quantity.
    """
    cleaned = _TOKEN_NOISE.sub(" ", token).strip().rstrip(",;").strip()
    if not cleaned:
        return None
    match = _TRAILING_QUANTITY.match(cleaned)
    if not match:
        return None
    value = ensure_integer(parse_locale_number(match.group(1)))
    if value is None:
        return None
    return Quantity(value=value, unit=normalize_unit(match.group(2)))
