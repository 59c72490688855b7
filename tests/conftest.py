"""Shared test fixtures for the budget digitizer test suite."""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

E2E_LINES = [
    "Produto Quantidade",
    "Módulo Solar 550W",
    "Quantidade: 8",
    "Inversor Solar 5kW",
    "Quantidade: 1",
    "Valor total: R$ 23.580,00",
]


@pytest.fixture
def budget_lines() -> list[str]:
    """Lines of a small budget with product and quantity on separate lines."""
    return list(E2E_LINES)


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic RGB test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def png_bytes() -> bytes:
    """Encode a small RGB image as PNG bytes."""
    buffer = io.BytesIO()
    Image.fromarray(np.full((40, 60, 3), 255, dtype=np.uint8)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
