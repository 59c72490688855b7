"""Structured budget assembly.

Combines the header fields, the canonical grid rows and the summary
total of a budget into one :class:`StructuredBudget`, and renders it
as the semicolon separated CSV used for spreadsheet export.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from budget_digitizer.utils.logger import get_logger

from .grid_parser import CanonicalRow, extract_canonical_grid
from .locale_number import extract_currency_values

logger = get_logger(__name__)

NO_ITEMS_WARNING = (
    "Nenhum item identificado automaticamente no orçamento. "
    "Revise o documento ou preencha os itens manualmente."
)

_HEADER_PATTERNS: dict[str, re.Pattern[str]] = {
    "numero_orcamento": re.compile(
        r"N[úu]mero do Or[cç]amento:\s*([A-Za-z0-9\-/.]+)", re.IGNORECASE
    ),
    "validade": re.compile(
        r"Or[cç]amento V[áa]lido at[ée]:\s*([0-9]{2}[-/][0-9]{2}[-/][0-9]{4})",
        re.IGNORECASE,
    ),
    "de": re.compile(r"(?:^|\s)De:\s*(.+)$", re.IGNORECASE),
    "para": re.compile(r"(?:^|\s)Para:\s*(.+)$", re.IGNORECASE),
}

TOTAL_MARKERS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"Valor\s+total",
        r"Total\s+geral",
        r"Total\s+do\s+Or[cç]amento",
        r"Total\s+do\s+orcamento",
    )
]

CSV_HEADER = (
    "numeroOrcamento;validade;de;para;produto;codigo;modelo;descricao;"
    "quantidade;unidade;precoUnitario;precoTotal;valorTotal"
)


@dataclass
class BudgetHeader:
    """Document-level fields found near the top of the budget."""

    numero_orcamento: str | None = None
    validade: str | None = None
    de: str | None = None
    para: str | None = None


@dataclass
class BudgetSummary:
    """The budget grand total."""

    valor_total: float | None = None
    moeda: str = "BRL"


@dataclass
class StructuredBudget:
    """Header, items, summary and warnings of one budget document."""

    header: BudgetHeader
    items: list[CanonicalRow]
    summary: BudgetSummary
    warnings: list[str] = field(default_factory=list)
    ignored_by_noise: int = 0
    ignored_by_validation: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used by the JSON payload."""
        return {
            "header": {
                "numeroOrcamento": self.header.numero_orcamento,
                "validade": self.header.validade,
                "de": self.header.de,
                "para": self.header.para,
            },
            "itens": [
                {
                    "produto": item.product,
                    "codigo": item.code,
                    "modelo": item.model,
                    "descricao": item.description,
                    "quantidade": item.quantity,
                    "unidade": item.unit,
                    "precoUnitario": item.unit_price,
                    "precoTotal": item.total_price,
                    "raw": list(item.raw_lines),
                }
                for item in self.items
            ],
            "resumo": {
                "valorTotal": self.summary.valor_total,
                "moeda": self.summary.moeda,
            },
            "warnings": list(self.warnings),
            "ignoredByNoise": self.ignored_by_noise,
            "ignoredByValidation": self.ignored_by_validation,
        }


def normalize_date(raw: str) -> str:
    """Convert ``dd-mm-yyyy`` (or ``dd/mm/yyyy``) to ISO ``yyyy-mm-dd``."""
    parts = re.split(r"[-/]", raw)
    if len(parts) == 3 and all(parts):
        day, month, year = parts
        return f"{year}-{month}-{day}"
    return raw


def parse_header(lines: list[str], scan_lines: int = 150) -> BudgetHeader:
    """Read header fields; the first match of each field wins.

    Args:
        lines: Document lines.
        scan_lines: Number of leading lines searched.

    Returns:
        Header with unmatched fields left as ``None``.
    """
    header = BudgetHeader()
    for line in lines[:scan_lines]:
        for name, pattern in _HEADER_PATTERNS.items():
            if getattr(header, name):
                continue
            match = pattern.search(line)
            if not match:
                continue
            value = match.group(1).strip()
            if name == "validade":
                value = normalize_date(value)
            setattr(header, name, value or None)
    return header


def parse_summary(lines: list[str]) -> BudgetSummary:
    """Take the grand total from the last total line carrying an amount."""
    for line in reversed(lines):
        if not line or not any(marker.search(line) for marker in TOTAL_MARKERS):
            continue
        values = extract_currency_values(line)
        if values:
            return BudgetSummary(valor_total=values[-1])
    return BudgetSummary()


def merge_duplicate_items(items: list[CanonicalRow]) -> list[CanonicalRow]:
    """Merge rows sharing the same code and model, summing quantities.

    Rows without code and model are never merged.
    """
    merged: list[CanonicalRow] = []
    index_by_key: dict[str, int] = {}
    for item in items:
        if not item.code and not item.model:
            merged.append(item)
            continue
        key = f"{(item.code or '').lower()}|{(item.model or '').lower()}"
        existing_index = index_by_key.get(key)
        if existing_index is None:
            index_by_key[key] = len(merged)
            merged.append(item)
            continue
        existing = merged[existing_index]
        if existing.quantity is not None and item.quantity is not None:
            existing.quantity += item.quantity
        elif existing.quantity is None:
            existing.quantity = item.quantity
        if item.description and item.description not in (existing.description or ""):
            existing.description = f"{existing.description or ''} {item.description}".strip()
        existing.raw_lines.extend(item.raw_lines)
    return merged


def _price_warnings(items: list[CanonicalRow]) -> list[str]:
    warnings = []
    for item in items:
        if item.quantity is None or item.unit_price is None or item.total_price is None:
            continue
        if abs(item.unit_price * item.quantity - item.total_price) > 0.01:
            warnings.append(
                f'Inconsistência de valores para o item "{item.product}": '
                "total informado não confere com quantidade x preço unitário."
            )
    return warnings


def parse_structured_budget(
    lines: list[str], description_limit: int = 120, header_scan_lines: int = 150
) -> StructuredBudget:
    """Parse normalized lines into a :class:`StructuredBudget`.

    Args:
        lines: Trimmed, non-empty document lines in reading order.
        description_limit: Maximum item description length.
        header_scan_lines: Number of leading lines searched for header fields.

    Returns:
        The structured budget. Parsing problems only show up as warnings.
    """
    grid = extract_canonical_grid(lines, description_limit)
    items = merge_duplicate_items(grid.rows)

    warnings: list[str] = []
    if not items:
        warnings.append(NO_ITEMS_WARNING)
    if grid.ignored_by_validation:
        warnings.append(
            f"{grid.ignored_by_validation} linha(s) com quantidade foram descartadas "
            "por não conterem um produto válido."
        )
    warnings.extend(_price_warnings(items))

    budget = StructuredBudget(
        header=parse_header(lines, header_scan_lines),
        items=items,
        summary=parse_summary(lines),
        warnings=warnings,
        ignored_by_noise=grid.ignored_by_noise,
        ignored_by_validation=grid.ignored_by_validation,
    )
    logger.info(
        "Structured budget: %d items, total=%s, %d warnings",
        len(items),
        budget.summary.valor_total,
        len(warnings),
    )
    return budget


def _csv_money(value: float | None) -> str:
    return f"{value:.2f}" if value is not None else ""


def structured_budget_to_csv(budget: StructuredBudget) -> str:
    """Render a budget as semicolon separated CSV, one row per item."""
    header = budget.header
    head_cells = [
        header.numero_orcamento or "",
        header.validade or "",
        header.de or "",
        header.para or "",
    ]
    total = _csv_money(budget.summary.valor_total)
    rows = [CSV_HEADER]

    if not budget.items:
        rows.append(";".join(head_cells + [""] * 8 + [total]))
        return "\n".join(rows)

    for item in budget.items:
        rows.append(
            ";".join(
                head_cells
                + [
                    item.product,
                    item.code or "",
                    item.model or "",
                    item.description or "",
                    str(item.quantity) if item.quantity is not None else "",
                    item.unit or "",
                    _csv_money(item.unit_price),
                    _csv_money(item.total_price),
                    total,
                ]
            )
        )
    return "\n".join(rows)
