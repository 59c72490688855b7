"""Configuration management for the budget digitizer.

Loads and validates YAML configuration with sensible defaults
for OCR, upload limits, preprocessing, and parsing settings.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class OCRConfig(BaseModel):
    """Configuration for the Tesseract OCR session."""

    tesseract_cmd: str | None = None
    language: str = "por"
    psm: int = 6
    timeout_seconds: float = 120.0


class UploadConfig(BaseModel):
    """Limits and thresholds applied to uploaded documents."""

    max_file_size_bytes: int = 40 * 1024 * 1024
    default_dpi: int = 300
    # Characters per square PDF point below which a page is treated as scanned.
    min_text_density: float = 0.00012


class PreprocessingConfig(BaseModel):
    """Configuration for image binarization before OCR."""

    binarize_enabled: bool = True
    gray_weight: float = Field(default=0.6, ge=0.0, le=1.0)


class ParserConfig(BaseModel):
    """Configuration for the line item parser."""

    description_limit: int = 120
    header_scan_lines: int = 150


class AppConfig(BaseModel):
    """Top-level application configuration."""

    ocr: OCRConfig = Field(default_factory=OCRConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
