"""FastAPI application for the budget digitizer.

Provides REST endpoints for uploading budget documents, parsing already
extracted lines, and health checks.
"""

import shutil
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from budget_digitizer.errors import (
    FILE_TOO_LARGE,
    PROCESSING_ERROR,
    UNSUPPORTED_FORMAT,
    BudgetUploadError,
)
from budget_digitizer.parsing.structured_budget import (
    parse_structured_budget,
    structured_budget_to_csv,
)
from budget_digitizer.pipeline.upload import (
    UploadOptions,
    UploadOrchestrator,
    UploadTask,
    convert_to_parsed_json,
)
from budget_digitizer.utils.config import load_config
from budget_digitizer.utils.logger import get_logger

from .schemas import (
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    ParseRequest,
    ParseResponse,
    UploadResponse,
)

logger = get_logger(__name__)

VERSION = "1.0.0"

_STATUS_BY_CODE = {
    FILE_TOO_LARGE: 413,
    UNSUPPORTED_FORMAT: 415,
    PROCESSING_ERROR: 500,
}


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    yield
    orchestrator = getattr(application.state, "orchestrator", None)
    if orchestrator is not None:
        await orchestrator.close()
        application.state.orchestrator = None


app = FastAPI(
    title="Budget Digitizer API",
    description="Extract line items from solar-equipment budget PDFs and images",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_orchestrator() -> UploadOrchestrator:
    """Return the app-wide orchestrator, creating it on first use.

    All requests share one orchestrator so OCR jobs from concurrent
    uploads go through the same queue.
    """
    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = UploadOrchestrator(load_config())
        app.state.orchestrator = orchestrator
    return orchestrator


def _to_http_error(exc: BudgetUploadError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_CODE.get(exc.code, 500),
        detail=ErrorDetail(code=exc.code, message=exc.message).model_dump(),
    )


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=VERSION,
        tesseract_available=shutil.which("tesseract") is not None,
    )


@app.post(
    "/budgets/upload",
    response_model=UploadResponse,
    responses={status: {"model": ErrorResponse} for status in _STATUS_BY_CODE.values()},
)
async def upload_budget(
    file: Annotated[UploadFile, File(...)],
    dpi: Annotated[int | None, Query(ge=72, le=600)] = None,
) -> UploadResponse:
    """Digitize an uploaded budget document.

    Args:
        file: Budget PDF, PNG or JPEG.
        dpi: Rasterization resolution for pages that need OCR.

    Returns:
        Parsed budget JSON, structured budget, text and OCR flag.
    """
    start_time = time.time()
    content = await file.read()
    task = UploadTask(
        data=content,
        file_name=file.filename or "document",
        content_type=file.content_type,
        size=len(content),
    )

    try:
        result = await _get_orchestrator().process(task, UploadOptions(dpi=dpi))
    except BudgetUploadError as exc:
        logger.error("Upload of %s failed (%s): %s", task.file_name, exc.code, exc.message)
        raise _to_http_error(exc) from exc

    payload = result.to_dict()
    payload["processingTimeMs"] = (time.time() - start_time) * 1000
    return UploadResponse.model_validate(payload)


@app.post("/budgets/parse", response_model=ParseResponse)
async def parse_budget_lines(request: ParseRequest) -> ParseResponse:
    """Parse already extracted budget lines without OCR.

    Args:
        request: Document lines in reading order.

    Returns:
        Parsed budget JSON, structured budget and CSV export.
    """
    config = load_config()
    lines = [line.strip() for line in request.lines if line.strip()]
    structured = parse_structured_budget(
        lines,
        description_limit=config.parser.description_limit,
        header_scan_lines=config.parser.header_scan_lines,
    )
    return ParseResponse.model_validate(
        {
            "json": convert_to_parsed_json(structured),
            "structured": structured.to_dict(),
            "csv": structured_budget_to_csv(structured),
        }
    )
