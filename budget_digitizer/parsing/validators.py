"""Validation rules for canonical rows."""

import re

from .noise import has_noise

HEADER_KEYWORDS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^produto$",
        r"^descri[cç][aã]o$",
        r"^item$",
        r"^quantidade$",
        r"^qtd$",
        r"^qtde$",
    )
]

FORBIDDEN_PRODUCT_TERMS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"resumo",
        r"acess[oó]rios",
        r"servi[cç]os",
        r"condi[cç][aã]o",
        r"pagamento",
        r"cliente",
        r"comercial",
    )
]

MIN_PRODUCT_LENGTH = 5


def is_valid_product_text(text: str | None) -> bool:
    """Check that ``text`` can name a budget line item.

    The product needs at least five characters, must not be a bare
    column header, a forbidden summary term, or a noise line.
    """
    if not text:
        return False
    normalized = text.strip()
    if len(normalized) < MIN_PRODUCT_LENGTH:
        return False
    if any(pattern.search(normalized) for pattern in HEADER_KEYWORDS):
        return False
    if any(pattern.search(normalized) for pattern in FORBIDDEN_PRODUCT_TERMS):
        return False
    return not has_noise(normalized)


def is_valid_quantity(value: float | None) -> bool:
    """Check that a quantity is a finite, strictly positive integer."""
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, float) and not value.is_integer():
        return False
    return value > 0


def is_likely_header_row(values: list[str]) -> bool:
    """Check whether split columns repeat the product/quantity header."""
    if not values:
        return False
    normalized = [value.strip().lower() for value in values]
    has_product = any("produto" in v or "item" in v for v in normalized)
    has_quantity = any(
        "quantidade" in v or "qtde" in v or "qtd" in v for v in normalized
    )
    return has_product and has_quantity


def truncate_description(text: str, limit: int = 120) -> str:
    """Cut ``text`` to ``limit`` characters, ending with an ellipsis."""
    if len(text) <= limit:
        return text
    return f"{text[: limit - 1].strip()}…"
