"""Per-page text acquisition for PDFs and images.

PDF pages with a dense enough text layer are read natively; sparse or
blank pages are rasterized, binarized and sent through the OCR queue.
Images always go through OCR.
"""

import asyncio
import io
from dataclasses import dataclass, field

import numpy as np
from PIL import Image, UnidentifiedImageError

from budget_digitizer.errors import PROCESSING_ERROR, BudgetUploadError
from budget_digitizer.pipeline.progress import ProgressReporter, UploadStage
from budget_digitizer.preprocessing.pipeline import PreprocessingPipeline
from budget_digitizer.utils.logger import get_logger

from .pdf_handler import PDFHandler, PdfDocument
from .tesseract_engine import OcrProgress
from .worker_queue import OcrWorkerQueue

logger = get_logger(__name__)

DEFAULT_MIN_TEXT_DENSITY = 0.00012


@dataclass
class PageExtractionResult:
    """Text of one page and how it was obtained."""

    page_number: int
    text: str
    density: float
    used_ocr: bool


@dataclass
class ExtractionResult:
    """Text of every page of a document, in page order."""

    pages: list[PageExtractionResult] = field(default_factory=list)

    @property
    def used_ocr(self) -> bool:
        return any(page.used_ocr for page in self.pages)

    @property
    def texts(self) -> list[str]:
        return [page.text for page in self.pages]


class TextAcquisition:
    """Extracts raw text from budget PDFs and images.

    Args:
        ocr_queue: Queue serializing recognition jobs.
        pdf_handler: Opens PDF documents.
        preprocessing: Binarization applied before OCR.
        min_text_density: Characters per square point required to trust
            a page's native text layer.
    """

    def __init__(
        self,
        ocr_queue: OcrWorkerQueue,
        pdf_handler: PDFHandler | None = None,
        preprocessing: PreprocessingPipeline | None = None,
        min_text_density: float = DEFAULT_MIN_TEXT_DENSITY,
    ) -> None:
        self.ocr_queue = ocr_queue
        self.pdf_handler = pdf_handler or PDFHandler()
        self.preprocessing = preprocessing or PreprocessingPipeline()
        self.min_text_density = min_text_density

    async def pdf_to_text(
        self, data: bytes, dpi: int | None = None, progress: ProgressReporter | None = None
    ) -> ExtractionResult:
        """Extract the text of every PDF page in order.

        Args:
            data: Raw PDF bytes.
            dpi: Rasterization resolution for pages that need OCR; the PDF
                handler default when ``None``.
            progress: Receives ``texto`` and ``ocr`` checkpoints.

        Returns:
            Per-page results; ``used_ocr`` is set on OCR'd pages.
        """
        progress = progress or ProgressReporter()
        document = await asyncio.to_thread(self.pdf_handler.open, data)
        try:
            total = document.num_pages
            result = ExtractionResult()
            for page_number in range(1, total + 1):
                progress.emit(
                    UploadStage.TEXT,
                    page_number,
                    total,
                    (page_number - 1) / total,
                    f"Extraindo texto da página {page_number}",
                )
                page = await self._extract_pdf_page(document, page_number, total, dpi, progress)
                result.pages.append(page)
        finally:
            document.close()

        logger.info(
            "Extracted %d PDF pages (%d via OCR)",
            len(result.pages),
            sum(1 for p in result.pages if p.used_ocr),
        )
        return result

    async def _extract_pdf_page(
        self,
        document: PdfDocument,
        page_number: int,
        total: int,
        dpi: int | None,
        progress: ProgressReporter,
    ) -> PageExtractionResult:
        native = await asyncio.to_thread(document.native_text, page_number)
        density = native.density
        if density >= self.min_text_density and native.text.strip():
            logger.debug("Page %d: native text (density %.6f)", page_number, density)
            return PageExtractionResult(page_number, native.text, density, used_ocr=False)

        logger.info(
            "Page %d: density %.6f below %.6f, running OCR",
            page_number,
            density,
            self.min_text_density,
        )
        progress.emit(
            UploadStage.OCR, page_number, total, 0.0, f"Executando OCR na página {page_number}"
        )
        image = await asyncio.to_thread(document.render, page_number, dpi)
        text = await self._recognize(image, page_number, total, progress)
        return PageExtractionResult(page_number, text, density, used_ocr=True)

    async def image_to_text(
        self, data: bytes, progress: ProgressReporter | None = None
    ) -> ExtractionResult:
        """OCR a PNG or JPEG image as a single page.

        Raises:
            BudgetUploadError: If the image cannot be decoded.
        """
        progress = progress or ProgressReporter()
        progress.emit(UploadStage.OCR, 1, 1, 0.0, "Executando OCR na imagem enviada")
        image = await asyncio.to_thread(decode_image, data)
        text = await self._recognize(image, 1, 1, progress)
        return ExtractionResult(pages=[PageExtractionResult(1, text, 0.0, used_ocr=True)])

    async def _recognize(
        self, image: np.ndarray, page_number: int, total: int, progress: ProgressReporter
    ) -> str:
        processed = await asyncio.to_thread(self.preprocessing.process, image)

        def forward(update: OcrProgress) -> None:
            progress.emit(
                UploadStage.OCR,
                page_number,
                total,
                update.progress,
                f"OCR {round(update.progress * 100)}% na página {page_number}",
            )

        return await self.ocr_queue.submit(processed, on_progress=forward)


def decode_image(data: bytes) -> np.ndarray:
    """Decode PNG/JPEG bytes into an RGBA pixel array.

    Raises:
        BudgetUploadError: With ``processing-error`` if decoding fails.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            return np.array(image.convert("RGBA"))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise BudgetUploadError(
            PROCESSING_ERROR, "Não foi possível ler a imagem enviada para OCR."
        ) from exc
