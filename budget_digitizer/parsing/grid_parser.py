"""Canonical grid parser for budget line items.

Turns normalized text lines into validated rows. The item section is
bounded by the ``Produto ... Quantidade`` header and the totals footer;
inside it every line is either noise, a row, a continuation of the
current row, or discarded. A row is only emitted with a valid product
and a strictly positive integer quantity.
"""

import re
from dataclasses import dataclass, field

from budget_digitizer.utils.logger import get_logger

from .locale_number import parse_locale_number
from .noise import has_noise, is_footer_trigger, is_header_like, sanitize_noise_text
from .units import UNIT_ALIASES, Quantity, known_unit, parse_quantity_token
from .validators import (
    is_likely_header_row,
    is_valid_product_text,
    is_valid_quantity,
    truncate_description,
)

logger = get_logger(__name__)

_MULTI_SPACE = re.compile(r"\s{2,}")
_TABS = re.compile(r"\t+")
_WORDS = re.compile(r"\s+")
_LEADING_MARKS = re.compile(r"^[-–—•·●▪◦]+")
_ENUMERATOR = re.compile(r"^\d{1,3}\.\s+")
_CODE_LABEL = re.compile(r"C[óo]digo\s*:\s*(\S+)", re.IGNORECASE)
_MODEL_LABEL = re.compile(r"Modelo\s*:\s*(\S+)", re.IGNORECASE)
_MANUFACTURER_LABEL = re.compile(r"^Fabricante\s*:\s*(.*)$", re.IGNORECASE)
_MONEY_CELL = re.compile(
    r"(?:R\$|\$)\s*-?[\d.,]+|-?\d+(?:[.,]\d{3})*[.,]\d{2}", re.IGNORECASE
)
_HAS_LETTER = re.compile(r"[^\W\d_]")
_KNOWN_UNIT_CODES = frozenset(UNIT_ALIASES.values())


@dataclass
class CanonicalRow:
    """A validated budget line item."""

    product: str
    quantity: int | None
    unit: str | None = None
    description: str | None = None
    code: str | None = None
    model: str | None = None
    unit_price: float | None = None
    total_price: float | None = None
    raw_lines: list[str] = field(default_factory=list)


@dataclass
class CanonicalGrid:
    """Parsed rows plus diagnostic counters."""

    rows: list[CanonicalRow] = field(default_factory=list)
    ignored_by_noise: int = 0
    ignored_by_validation: int = 0


@dataclass
class _PendingProduct:
    """A quantity-less line that may name the product of the next quantity."""

    text: str
    raw: str
    attached_to: CanonicalRow | None = None
    previous_description: str | None = None
    code: str | None = None
    model: str | None = None
    manufacturer: str | None = None


def clean_cell(value: str) -> str:
    """Normalize a cell and strip bullets, dashes and ``1.`` enumerators."""
    cleaned = sanitize_noise_text(value)
    cleaned = _LEADING_MARKS.sub("", cleaned).strip()
    return _ENUMERATOR.sub("", cleaned).strip()


def _clean_all(values: list[str]) -> list[str]:
    return [cell for cell in (clean_cell(v) for v in values) if cell]


def split_columns(line: str) -> list[str]:
    """Split a line on pipes, tabs, semicolons or runs of spaces.

    Args:
        line: A single budget line.

    Returns:
        Non-empty cleaned columns; the whole line when nothing splits.
    """
    if "|" in line:
        return _clean_all(line.split("|"))
    if "\t" in line:
        return _clean_all(_TABS.split(line))
    if ";" in line:
        parts = _clean_all(line.split(";"))
        if len(parts) > 1:
            return parts
    multi = _clean_all(_MULTI_SPACE.split(line))
    if len(multi) > 1:
        return multi
    cleaned = clean_cell(line)
    return [cleaned] if cleaned else []


def is_money_cell(cell: str) -> bool:
    """Check whether a column holds a currency amount rather than text."""
    return bool(_MONEY_CELL.fullmatch(cell.strip()))


def _quantity_from_parts(
    parts: list[str], require_known_unit: bool = False
) -> tuple[Quantity | None, list[str]]:
    for index in range(len(parts) - 1, -1, -1):
        token = parts[index]
        if is_money_cell(token):
            continue
        parsed = parse_quantity_token(token)
        if parsed is None:
            continue
        # 550W or 5kW inside a product name is a rating, not a count
        if require_known_unit and parsed.unit and parsed.unit not in _KNOWN_UNIT_CODES:
            continue
        unit = parsed.unit
        remaining = parts[:index] + parts[index + 1 :]
        if unit is None and index < len(parts) - 1:
            resolved = known_unit(parts[index + 1])
            if resolved:
                unit = resolved
                remaining = parts[:index] + parts[index + 2 :]
        return Quantity(value=parsed.value, unit=unit), remaining
    return None, parts


def extract_quantity(line: str, columns: list[str]) -> tuple[Quantity | None, list[str]]:
    """Find the quantity (and unit) of a line.

    Columns are scanned from the end. When that fails a single column is
    split into words, and as a last resort the whole line is matched.

    Args:
        line: The cleaned line.
        columns: The line split by :func:`split_columns`.

    Returns:
        Tuple of (quantity or ``None``, columns left for product text).
    """
    quantity, remaining = _quantity_from_parts(columns)
    if quantity is not None:
        return quantity, remaining

    if len(columns) == 1:
        words = _clean_all(_WORDS.split(columns[0]))
        if len(words) > 1:
            quantity, rest = _quantity_from_parts(words, require_known_unit=True)
            if quantity is not None:
                return quantity, [" ".join(rest)] if rest else []

    whole = parse_quantity_token(line)
    if whole is not None:
        return whole, []
    return None, columns


def resolve_product(
    columns: list[str], description_limit: int = 120
) -> tuple[str, str | None, list[float]]:
    """Pick the product text among the remaining columns.

    The longest textual column wins (first one on ties); the other
    textual columns form the description. Money columns are returned
    separately as prices.

    Args:
        columns: Columns left after quantity extraction.
        description_limit: Maximum description length.

    Returns:
        Tuple of (product, description or ``None``, prices in order).
    """
    textual: list[str] = []
    prices: list[float] = []
    for cell in _clean_all(columns):
        if is_money_cell(cell):
            value = parse_locale_number(cell)
            if value is not None:
                prices.append(value)
        elif _HAS_LETTER.search(cell):
            textual.append(cell)

    if not textual:
        return "", None, prices

    longest = 0
    for index in range(1, len(textual)):
        if len(textual[index]) > len(textual[longest]):
            longest = index
    others = [cell for i, cell in enumerate(textual) if i != longest]
    description = " | ".join(others)
    return (
        textual[longest],
        truncate_description(description, description_limit) if description else None,
        prices,
    )


def _extract_attributes(line: str) -> tuple[str | None, str | None, str]:
    code_match = _CODE_LABEL.search(line)
    model_match = _MODEL_LABEL.search(line)
    if not code_match and not model_match:
        return None, None, line
    remainder = line
    for match in (code_match, model_match):
        if match:
            remainder = remainder.replace(match.group(0), " ", 1)
    return (
        code_match.group(1) if code_match else None,
        model_match.group(1) if model_match else None,
        clean_cell(remainder),
    )


def find_section(lines: list[str]) -> tuple[int, int]:
    """Locate the item section as a half-open ``[start, end)`` range.

    Args:
        lines: All document lines.

    Returns:
        Start index (after the header, or 0) and end index (the footer
        line, or ``len(lines)``).
    """
    normalized = [clean_cell(line) for line in lines]
    header = next((i for i, line in enumerate(normalized) if is_header_like(line)), None)
    start = 0 if header is None else header + 1
    search_from = 0 if header is None else header + 1
    end = next(
        (i for i in range(search_from, len(normalized)) if is_footer_trigger(normalized[i])),
        len(lines),
    )
    return start, end


class CanonicalGridParser:
    """Stateful row assembly over the item section of a budget.

    Args:
        description_limit: Maximum length of a row description.
    """

    def __init__(self, description_limit: int = 120) -> None:
        self.description_limit = description_limit

    def parse(self, lines: list[str]) -> CanonicalGrid:
        """Parse text lines into a :class:`CanonicalGrid`.

        Args:
            lines: Normalized, trimmed text lines of the whole document.

        Returns:
            Rows in document order with noise and validation counters.
        """
        grid = CanonicalGrid()
        start, end = find_section(lines)
        current: CanonicalRow | None = None
        pending: _PendingProduct | None = None

        for raw in lines[start:end]:
            sanitized = clean_cell(raw)
            if not sanitized:
                continue
            if has_noise(sanitized):
                grid.ignored_by_noise += 1
                pending = None
                logger.debug("Noise line ignored: %s", sanitized)
                continue
            columns = split_columns(sanitized)
            if is_likely_header_row(columns):
                grid.ignored_by_noise += 1
                continue

            manufacturer = _MANUFACTURER_LABEL.match(sanitized)
            if manufacturer:
                self._add_manufacturer(current, pending, manufacturer.group(1).strip())
                continue

            code, model, sanitized = _extract_attributes(sanitized)
            if code or model:
                target = pending if pending is not None else current
                if target is not None:
                    target.code = code or target.code
                    target.model = model or target.model
                if not sanitized:
                    continue
                columns = split_columns(sanitized)

            quantity, remaining = extract_quantity(sanitized, columns)
            if quantity is None:
                pending = self._continue_row(current, remaining, raw, pending)
                continue

            product, description, prices = resolve_product(
                remaining, self.description_limit
            )
            source = pending if not product and pending is not None else None
            if source is not None:
                product = source.text

            if not is_valid_product_text(product) or not is_valid_quantity(quantity.value):
                grid.ignored_by_validation += 1
                logger.debug("Row rejected: product=%r quantity=%r", product, quantity)
                current = None
                pending = None
                continue

            row = CanonicalRow(
                product=product,
                quantity=quantity.value,
                unit=quantity.unit,
                description=description,
                raw_lines=[raw],
            )
            if prices:
                row.unit_price = prices[0]
                row.total_price = prices[-1] if len(prices) > 1 else None
            if source is not None:
                self._detach(source)
                row.code, row.model = source.code, source.model
                row.raw_lines.insert(0, source.raw)
                if source.manufacturer:
                    row.description = self._append_description(
                        row.description, f"Fabricante: {source.manufacturer}"
                    )
            grid.rows.append(row)
            current = row
            pending = None

        logger.info(
            "Canonical grid: %d rows, %d noise, %d invalid",
            len(grid.rows),
            grid.ignored_by_noise,
            grid.ignored_by_validation,
        )
        return grid

    def _continue_row(
        self,
        current: CanonicalRow | None,
        remaining: list[str],
        raw: str,
        pending: _PendingProduct | None,
    ) -> _PendingProduct | None:
        extra = clean_cell(" ".join(remaining))
        if not extra:
            return pending
        if current is None:
            return _PendingProduct(text=extra, raw=raw)
        previous = current.description
        current.description = self._append_description(previous, extra)
        current.raw_lines.append(raw)
        return _PendingProduct(
            text=extra, raw=raw, attached_to=current, previous_description=previous
        )

    def _append_description(self, description: str | None, extra: str) -> str:
        joined = f"{description} {extra}" if description else extra
        return truncate_description(joined, self.description_limit)

    def _add_manufacturer(
        self,
        current: CanonicalRow | None,
        pending: _PendingProduct | None,
        value: str,
    ) -> None:
        """Attach a ``Fabricante:`` label to the row it describes.

        A product still waiting for its quantity takes it; otherwise it
        extends the description of the current row.
        """
        if not value:
            return
        label = f"Fabricante: {value}"
        if pending is not None and pending.attached_to is None:
            pending.manufacturer = value
        elif current is not None:
            current.description = self._append_description(current.description, label)
            if pending is not None:
                # survives a later detach of the continuation line
                pending.previous_description = self._append_description(
                    pending.previous_description, label
                )

    @staticmethod
    def _detach(source: _PendingProduct) -> None:
        row = source.attached_to
        if row is None:
            return
        row.description = source.previous_description
        if row.raw_lines and row.raw_lines[-1] == source.raw:
            row.raw_lines.pop()


def extract_canonical_grid(lines: list[str], description_limit: int = 120) -> CanonicalGrid:
    """Parse lines with a fresh :class:`CanonicalGridParser`."""
    return CanonicalGridParser(description_limit).parse(lines)
