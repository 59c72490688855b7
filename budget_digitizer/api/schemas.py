"""Pydantic request/response schemas for the FastAPI endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    """Base for payloads serialized with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)


class BudgetHeaderResponse(_CamelModel):
    """Document-level fields of a budget."""

    numero_orcamento: str | None = Field(default=None, alias="numeroOrcamento")
    validade: str | None = None
    de: str | None = None
    para: str | None = None


class BudgetItemResponse(_CamelModel):
    """One budget line item."""

    produto: str
    codigo: str | None = None
    modelo: str | None = None
    descricao: str
    quantidade: int | None = None
    unidade: str
    preco_unitario: float | None = Field(default=None, alias="precoUnitario")
    preco_total: float | None = Field(default=None, alias="precoTotal")


class BudgetSummaryResponse(_CamelModel):
    """Budget grand total."""

    valor_total: float | None = Field(default=None, alias="valorTotal")
    moeda: str = "BRL"


class ParsedBudgetResponse(BaseModel):
    """The shaped budget JSON."""

    header: BudgetHeaderResponse
    itens: list[BudgetItemResponse]
    resumo: BudgetSummaryResponse


class UploadResponse(_CamelModel):
    """Response schema for a budget upload."""

    parsed: ParsedBudgetResponse = Field(alias="json")
    structured: dict[str, Any]
    plain_text: str = Field(alias="plainText")
    pages: list[str]
    used_ocr: bool = Field(alias="usedOcr")
    processing_time_ms: float = Field(alias="processingTimeMs")


class ParseRequest(BaseModel):
    """Request schema for parsing already extracted lines."""

    lines: list[str]


class ParseResponse(_CamelModel):
    """Response schema for line parsing."""

    parsed: ParsedBudgetResponse = Field(alias="json")
    structured: dict[str, Any]
    csv: str


class ErrorDetail(BaseModel):
    """Machine-readable error code with a user-facing message."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error body returned with 4xx/5xx responses."""

    detail: ErrorDetail


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
