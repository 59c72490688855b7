"""Budget upload orchestration.

Validates an uploaded budget document, acquires its text (native or
OCR), parses it into a structured budget and shapes the JSON payload
returned to callers.
"""

import math
import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

from budget_digitizer.errors import (
    FILE_TOO_LARGE,
    PROCESSING_ERROR,
    UNSUPPORTED_FORMAT,
    BudgetUploadError,
    OcrError,
    PdfExtractionError,
)
from budget_digitizer.ocr.pdf_handler import PDFHandler
from budget_digitizer.ocr.tesseract_engine import ProgressCallback, TesseractSession
from budget_digitizer.ocr.text_acquisition import ExtractionResult, TextAcquisition
from budget_digitizer.ocr.worker_queue import OcrWorkerQueue
from budget_digitizer.parsing.structured_budget import StructuredBudget, parse_structured_budget
from budget_digitizer.preprocessing.pipeline import PreprocessingPipeline
from budget_digitizer.utils.config import AppConfig
from budget_digitizer.utils.logger import get_logger

from .progress import ProgressListener, ProgressReporter, UploadStage

logger = get_logger(__name__)

PDF_MIME = "application/pdf"
IMAGE_MIME = re.compile(r"^image/(png|jpe?g)$", re.IGNORECASE)
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")

EMPTY_DESCRIPTION = "—"
DEFAULT_UNIT = "UN"

_WHITESPACE = re.compile(r"\s+")


@dataclass
class UploadTask:
    """An uploaded file waiting to be processed."""

    data: bytes
    file_name: str
    content_type: str | None = None
    size: int | None = None

    def __post_init__(self) -> None:
        if self.size is None:
            self.size = len(self.data)


@dataclass
class UploadOptions:
    """Per-upload options.

    Attributes:
        dpi: Rasterization resolution for OCR'd PDF pages; the configured
            default is used when ``None``.
        on_progress: Listener receiving progress checkpoints.
    """

    dpi: int | None = None
    on_progress: ProgressListener | None = None


@dataclass
class BudgetUploadResult:
    """Everything produced from one uploaded document."""

    json: dict[str, Any]
    structured: StructuredBudget
    plain_text: str
    pages: list[str] = field(default_factory=list)
    used_ocr: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "json": self.json,
            "structured": self.structured.to_dict(),
            "plainText": self.plain_text,
            "pages": list(self.pages),
            "usedOcr": self.used_ocr,
        }


def detect_file_type(file_name: str, content_type: str | None) -> str:
    """Classify an upload as ``"pdf"`` or ``"image"``.

    The declared MIME type and the file extension are both accepted.

    Raises:
        BudgetUploadError: With ``unsupported-format`` for anything else.
    """
    mime = (content_type or "").strip().lower()
    suffix = PurePath(file_name or "").suffix.lower()
    if mime == PDF_MIME or suffix == ".pdf":
        return "pdf"
    if IMAGE_MIME.match(mime) or suffix in IMAGE_EXTENSIONS:
        return "image"
    raise BudgetUploadError(
        UNSUPPORTED_FORMAT, "Formato não suportado. Envie um PDF ou imagem (PNG/JPG)."
    )


def normalize_extracted_text(text: str) -> str:
    """Apply NFKC, unify line endings and collapse whitespace per line."""
    text = unicodedata.normalize("NFKC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\u00a0", " ")
    return "\n".join(_WHITESPACE.sub(" ", line).strip() for line in text.split("\n"))


def split_lines(text: str) -> list[str]:
    """Split text into trimmed, non-empty lines."""
    return [line.strip() for line in text.split("\n") if line.strip()]


def normalize_number(value: float | int | None) -> float | None:
    """Round to two decimals; ``None`` for missing or non-finite values."""
    if value is None or not math.isfinite(value):
        return None
    rounded = round(float(value), 2)
    return rounded if math.isfinite(rounded) else None


def _sanitize_string(value: str | None) -> str | None:
    if not value:
        return None
    return value.strip() or None


def convert_to_parsed_json(structured: StructuredBudget) -> dict[str, Any]:
    """Shape a structured budget into the public JSON payload.

    Args:
        structured: Parsed budget.

    Returns:
        Dictionary with ``header``, ``itens`` and ``resumo`` keys.
    """
    header = structured.header
    items = []
    for item in structured.items:
        quantity = normalize_number(item.quantity)
        items.append(
            {
                "produto": item.product or "",
                "codigo": _sanitize_string(item.code),
                "modelo": _sanitize_string(item.model),
                "descricao": _sanitize_string(item.description) or EMPTY_DESCRIPTION,
                "quantidade": int(round(quantity)) if quantity is not None else None,
                "unidade": _sanitize_string(item.unit) or DEFAULT_UNIT,
                "precoUnitario": normalize_number(item.unit_price),
                "precoTotal": normalize_number(item.total_price),
            }
        )
    return {
        "header": {
            "numeroOrcamento": _sanitize_string(header.numero_orcamento),
            "validade": _sanitize_string(header.validade),
            "de": _sanitize_string(header.de),
            "para": _sanitize_string(header.para),
        },
        "itens": items,
        "resumo": {
            "valorTotal": normalize_number(structured.summary.valor_total),
            "moeda": "BRL",
        },
    }


def build_default_queue(config: AppConfig) -> OcrWorkerQueue:
    """Create an OCR queue backed by Tesseract sessions."""

    def factory(progress_callback: ProgressCallback) -> TesseractSession:
        return TesseractSession(
            tesseract_cmd=config.ocr.tesseract_cmd,
            psm=config.ocr.psm,
            progress_callback=progress_callback,
        )

    return OcrWorkerQueue(
        factory, language=config.ocr.language, timeout=config.ocr.timeout_seconds
    )


class UploadOrchestrator:
    """Turns uploaded budget documents into structured results.

    Args:
        config: Application configuration.
        ocr_queue: Queue used for every OCR job. Built from ``config``
            when omitted; share one queue between orchestrators to keep
            recognition serialized across uploads.
        pdf_handler: PDF opener; defaults to :class:`PDFHandler`.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        ocr_queue: OcrWorkerQueue | None = None,
        pdf_handler: PDFHandler | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.ocr_queue = ocr_queue or build_default_queue(self.config)
        self.acquisition = TextAcquisition(
            ocr_queue=self.ocr_queue,
            pdf_handler=pdf_handler or PDFHandler(dpi=self.config.upload.default_dpi),
            preprocessing=PreprocessingPipeline(self.config.preprocessing),
            min_text_density=self.config.upload.min_text_density,
        )

    async def process(
        self, task: UploadTask, options: UploadOptions | None = None
    ) -> BudgetUploadResult:
        """Process one uploaded document.

        Args:
            task: The uploaded file.
            options: DPI and progress listener.

        Returns:
            The shaped JSON, structured budget, text and OCR flag.

        Raises:
            BudgetUploadError: ``file-too-large`` or ``unsupported-format``
                before any work starts, ``processing-error`` for failures
                during text acquisition or parsing.
        """
        options = options or UploadOptions()
        max_size = self.config.upload.max_file_size_bytes
        if task.size is not None and task.size > max_size:
            logger.warning("Rejected %s: %d bytes exceeds %d", task.file_name, task.size, max_size)
            raise BudgetUploadError(
                FILE_TOO_LARGE,
                f"O arquivo excede o limite de {max_size // (1024 * 1024)}MB.",
            )

        file_type = detect_file_type(task.file_name, task.content_type)
        progress = ProgressReporter(options.on_progress)
        logger.info("Processing %s (%s, %d bytes)", task.file_name, file_type, task.size)
        progress.emit(UploadStage.LOADING, 0, 0, 0.0, "Carregando arquivo")

        try:
            extraction = await self._acquire(task, file_type, options.dpi, progress)
            return self._build_result(extraction, file_type, progress)
        except BudgetUploadError:
            raise
        except (OcrError, PdfExtractionError) as exc:
            logger.error("Failed to process %s: %s", task.file_name, exc)
            raise BudgetUploadError(
                PROCESSING_ERROR, f"Falha ao processar o documento: {exc}"
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected failure processing %s", task.file_name)
            raise BudgetUploadError(
                PROCESSING_ERROR, f"Falha ao processar o documento: {exc}"
            ) from exc

    async def _acquire(
        self, task: UploadTask, file_type: str, dpi: int | None, progress: ProgressReporter
    ) -> ExtractionResult:
        if file_type == "pdf":
            return await self.acquisition.pdf_to_text(task.data, dpi, progress)
        return await self.acquisition.image_to_text(task.data, progress)

    def _build_result(
        self, extraction: ExtractionResult, file_type: str, progress: ProgressReporter
    ) -> BudgetUploadResult:
        total = len(extraction.pages)
        progress.emit(
            UploadStage.PARSE, total, total, 1.0, "Normalizando e interpretando orçamento"
        )

        pages = [normalize_extracted_text(text) for text in extraction.texts]
        plain_text = "\n\n".join(pages)
        lines = split_lines(plain_text)

        parser_config = self.config.parser
        structured = parse_structured_budget(
            lines,
            description_limit=parser_config.description_limit,
            header_scan_lines=parser_config.header_scan_lines,
        )
        return BudgetUploadResult(
            json=convert_to_parsed_json(structured),
            structured=structured,
            plain_text=plain_text,
            pages=pages,
            used_ocr=extraction.used_ocr or file_type == "image",
        )

    async def close(self) -> None:
        """Shut down the OCR queue."""
        await self.ocr_queue.close()
