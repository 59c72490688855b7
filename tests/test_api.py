"""Tests for the FastAPI REST endpoints."""

import io
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from budget_digitizer.api.app import app
from budget_digitizer.errors import (
    FILE_TOO_LARGE,
    PROCESSING_ERROR,
    UNSUPPORTED_FORMAT,
    BudgetUploadError,
)
from budget_digitizer.parsing.structured_budget import CSV_HEADER, parse_structured_budget
from budget_digitizer.pipeline.upload import BudgetUploadResult, convert_to_parsed_json

E2E_LINES = [
    "Produto Quantidade",
    "Módulo Solar 550W",
    "Quantidade: 8",
    "Inversor Solar 5kW",
    "Quantidade: 1",
    "Valor total: R$ 23.580,00",
]


@pytest.fixture
def client() -> TestClient:
    """Create a FastAPI test client."""
    return TestClient(app)


def _make_test_image_bytes() -> bytes:
    """Create a minimal PNG image as bytes."""
    img = Image.fromarray(np.zeros((100, 200, 3), dtype=np.uint8))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _make_result() -> BudgetUploadResult:
    """Create an upload result from the end-to-end budget lines."""
    structured = parse_structured_budget(E2E_LINES)
    return BudgetUploadResult(
        json=convert_to_parsed_json(structured),
        structured=structured,
        plain_text="\n".join(E2E_LINES),
        pages=["\n".join(E2E_LINES)],
        used_ocr=True,
    )


def _mock_orchestrator(**process_kwargs) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.process = AsyncMock(**process_kwargs)
    return orchestrator


class TestHealthEndpoint:
    """Tests for the /health endpoint."""

    def test_health_returns_ok(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert isinstance(data["tesseract_available"], bool)


class TestUploadEndpoint:
    """Tests for the /budgets/upload endpoint."""

    @patch("budget_digitizer.api.app._get_orchestrator")
    def test_upload_success(self, mock_get: MagicMock, client: TestClient) -> None:
        orchestrator = _mock_orchestrator(return_value=_make_result())
        mock_get.return_value = orchestrator

        response = client.post(
            "/budgets/upload",
            files={"file": ("orcamento.png", _make_test_image_bytes(), "image/png")},
            params={"dpi": 200},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["usedOcr"] is True
        assert [i["produto"] for i in data["json"]["itens"]] == [
            "Módulo Solar 550W",
            "Inversor Solar 5kW",
        ]
        assert data["json"]["itens"][0]["unidade"] == "UN"
        assert data["json"]["resumo"]["valorTotal"] == pytest.approx(23580.0)
        assert data["processingTimeMs"] >= 0

        task, options = orchestrator.process.call_args[0]
        assert task.file_name == "orcamento.png"
        assert task.content_type == "image/png"
        assert options.dpi == 200

    @pytest.mark.parametrize(
        ("code", "status"),
        [(FILE_TOO_LARGE, 413), (UNSUPPORTED_FORMAT, 415), (PROCESSING_ERROR, 500)],
    )
    @patch("budget_digitizer.api.app._get_orchestrator")
    def test_error_codes_map_to_status(
        self, mock_get: MagicMock, client: TestClient, code: str, status: int
    ) -> None:
        mock_get.return_value = _mock_orchestrator(
            side_effect=BudgetUploadError(code, "falhou")
        )

        response = client.post(
            "/budgets/upload",
            files={"file": ("arquivo.bin", b"data", "application/octet-stream")},
        )

        assert response.status_code == status
        assert response.json()["detail"] == {"code": code, "message": "falhou"}

    def test_dpi_validated(self, client: TestClient) -> None:
        response = client.post(
            "/budgets/upload",
            files={"file": ("orcamento.png", b"data", "image/png")},
            params={"dpi": 10},
        )
        assert response.status_code == 422

    def test_error_responses_documented(self, client: TestClient) -> None:
        schema = client.get("/openapi.json").json()
        responses = schema["paths"]["/budgets/upload"]["post"]["responses"]
        for status in ("413", "415", "500"):
            ref = responses[status]["content"]["application/json"]["schema"]["$ref"]
            assert ref.endswith("/ErrorResponse")
        assert set(schema["components"]["schemas"]["ErrorDetail"]["properties"]) == {
            "code",
            "message",
        }


class TestParseEndpoint:
    """Tests for the /budgets/parse endpoint."""

    def test_parse_lines(self, client: TestClient) -> None:
        response = client.post("/budgets/parse", json={"lines": E2E_LINES + ["", "  "]})
        assert response.status_code == 200
        data = response.json()
        assert len(data["json"]["itens"]) == 2
        assert data["structured"]["resumo"]["valorTotal"] == pytest.approx(23580.0)
        assert data["csv"].split("\n")[0] == CSV_HEADER

    def test_parse_without_items(self, client: TestClient) -> None:
        response = client.post("/budgets/parse", json={"lines": ["Proposta comercial"]})
        assert response.status_code == 200
        data = response.json()
        assert data["json"]["itens"] == []
        assert data["structured"]["warnings"]

    def test_parse_requires_lines(self, client: TestClient) -> None:
        response = client.post("/budgets/parse", json={})
        assert response.status_code == 422
