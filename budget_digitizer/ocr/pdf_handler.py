"""PDF access for budget documents.

Reads the native text layer and page geometry with pdfplumber and
rasterizes single pages with pdf2image when a page needs OCR.
"""

import io
from dataclasses import dataclass

import numpy as np
import pdfplumber
from pdf2image import convert_from_bytes

from budget_digitizer.errors import PdfExtractionError
from budget_digitizer.utils.logger import get_logger

logger = get_logger(__name__)

PDF_POINTS_PER_INCH = 72


@dataclass
class NativePageText:
    """Text layer of one PDF page and its character density."""

    text: str
    char_count: int
    area: float

    @property
    def density(self) -> float:
        """Characters per square point of page area."""
        return self.char_count / max(self.area, 1.0)


class PdfDocument:
    """An open PDF, addressed by 1-based page numbers.

    Args:
        data: Raw PDF bytes.
        dpi: Resolution used by :meth:`render` when none is given.
    """

    def __init__(self, data: bytes, dpi: int = 300) -> None:
        self._data = data
        self.dpi = dpi
        try:
            self._pdf = pdfplumber.open(io.BytesIO(data))
        except Exception as exc:
            raise PdfExtractionError(f"Could not open PDF: {exc}") from exc

    def __enter__(self) -> "PdfDocument":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def num_pages(self) -> int:
        return len(self._pdf.pages)

    def page_size(self, page_number: int) -> tuple[float, float]:
        """Width and height of a page in PDF points (72 per inch)."""
        page = self._pdf.pages[page_number - 1]
        return float(page.width), float(page.height)

    def native_text(self, page_number: int) -> NativePageText:
        """Extract the text layer of a page.

        Args:
            page_number: 1-based page number.

        Returns:
            The page text with its trimmed character count and area.
        """
        page = self._pdf.pages[page_number - 1]
        try:
            text = page.extract_text() or ""
        except Exception as exc:
            raise PdfExtractionError(
                f"Text extraction failed on page {page_number}: {exc}"
            ) from exc
        strings = [s for s in text.splitlines() if s]
        width, height = self.page_size(page_number)
        return NativePageText(
            text="\n".join(strings),
            char_count=sum(len(s.strip()) for s in strings),
            area=width * height,
        )

    def render(self, page_number: int, dpi: int | None = None) -> np.ndarray:
        """Rasterize one page to an RGB pixel array.

        The page is scaled by ``dpi / 72`` from its native point size.

        Args:
            page_number: 1-based page number.
            dpi: Target resolution; the document default when ``None``.

        Returns:
            RGB image as a uint8 array.
        """
        dpi = dpi or self.dpi
        try:
            images = convert_from_bytes(
                self._data, dpi=dpi, first_page=page_number, last_page=page_number
            )
        except Exception as exc:
            raise PdfExtractionError(
                f"Rasterization failed on page {page_number}: {exc}"
            ) from exc
        if not images:
            raise PdfExtractionError(f"Rasterization produced no image for page {page_number}")
        image = np.array(images[0].convert("RGB"))
        logger.debug(
            "Rendered page %d at %d DPI (%dx%d)",
            page_number,
            dpi,
            image.shape[1],
            image.shape[0],
        )
        return image

    def close(self) -> None:
        self._pdf.close()


class PDFHandler:
    """Opens PDF documents for text extraction and rendering.

    Args:
        dpi: Default resolution for page rasterization. Higher values
            produce better OCR results but use more memory.
    """

    def __init__(self, dpi: int = 300) -> None:
        self.dpi = dpi

    def open(self, data: bytes) -> PdfDocument:
        """Open PDF bytes as a :class:`PdfDocument`."""
        document = PdfDocument(data, dpi=self.dpi)
        logger.info("Opened PDF with %d pages", document.num_pages)
        return document
