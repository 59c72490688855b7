"""Noise filters for budget text lines.

Quotes carry contact blocks, addresses, commercial conditions and
marketing footers between the item rows. These helpers recognize such
lines so they never become products or descriptions.
"""

import re
import unicodedata

_CONTACT_PATTERNS = [
    r"@",
    r"\bemail\b",
    r"\be-mail\b",
    r"\btelefone\b",
    r"\bwhats?app\b",
    r"\bru[áa]\b",
    r"\bavenida\b",
    r"\bcep\b",
    r"\bcidade\b",
    r"\buf\b",
    r"\bcnpj\b",
    r"\bcpf\b",
    r"\bdocumento\b",
    r"\bcontato\b",
    r"\bdados do cliente\b",
    r"\bcliente\b",
    r"\buc\b",
]

_COMMERCIAL_PATTERNS = [
    r"proposta comercial",
    r"detalhes do or[cç]amento",
    r"condi[cç][aã]o de pagamento",
    r"entrega",
    r"validade",
    r"pot[êe]ncia do sistema",
    r"projeto",
    r"estrutura",
    r"resumo",
    r"observa[cç][aã]o",
]

_FOOTER_PATTERNS = [
    r"sustent[áa]vel",
    r"energia inteligente",
    r"sem investimento inicial",
    r"sem desembolso",
    r"direitos reservados",
    r"todos os direitos",
]

_GENERIC_PATTERNS = [
    r"valor total",
    r"total geral",
    r"aceite",
    r"assinatura",
    r"quadros? comercia(?:l|is)",
    r"pagamento",
    r"fornecedor",
    r"representante",
]

NOISE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in _CONTACT_PATTERNS + _COMMERCIAL_PATTERNS + _FOOTER_PATTERNS + _GENERIC_PATTERNS
]

_BULLETS = re.compile(r"[•·●▪◦︎]")
_WHITESPACE = re.compile(r"\s+")
_HEADER_PRODUCT = re.compile(r"produto|item|descri[cç][aã]o do produto")
_HEADER_QUANTITY = re.compile(r"quantidade|qtde|qtd")
_FOOTER_TRIGGER = re.compile(
    r"valor total|total geral|resumo do investimento|soma dos itens", re.IGNORECASE
)


def has_noise(text: str) -> bool:
    """Check whether a line matches any contact, legal or commercial pattern."""
    normalized = unicodedata.normalize("NFKC", text)
    return any(pattern.search(normalized) for pattern in NOISE_PATTERNS)


def sanitize_noise_text(text: str) -> str:
    """Normalize a line: NFKC, no bullet glyphs, single spaces."""
    normalized = unicodedata.normalize("NFKC", text).replace("\u00a0", " ")
    normalized = _BULLETS.sub(" ", normalized)
    return _WHITESPACE.sub(" ", normalized).strip()


def is_header_like(text: str) -> bool:
    """Check whether a line names both the product and the quantity column."""
    lowered = text.lower()
    return bool(_HEADER_PRODUCT.search(lowered) and _HEADER_QUANTITY.search(lowered))


def is_footer_trigger(text: str) -> bool:
    """Check whether a line opens the totals footer of the item table."""
    return bool(_FOOTER_TRIGGER.search(text))
