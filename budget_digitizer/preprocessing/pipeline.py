"""Image preprocessing applied to every page before OCR."""

import numpy as np

from budget_digitizer.utils.config import PreprocessingConfig
from budget_digitizer.utils.logger import get_logger

from .binarize import binarize, to_luminance

logger = get_logger(__name__)


def calculate_contrast(image: np.ndarray) -> float:
    """Calculate image contrast as the standard deviation of luminance.

    Args:
        image: Grayscale, RGB or RGBA image.

    Returns:
        Contrast score (higher means more contrast); 0.0 for empty images.
    """
    if image.size == 0:
        return 0.0
    gray, _ = to_luminance(image)
    return float(gray.std())


class PreprocessingPipeline:
    """Configurable preprocessing for rasterized pages and photos.

    Args:
        config: Preprocessing configuration controlling binarization.
    """

    def __init__(self, config: PreprocessingConfig | None = None) -> None:
        self.config = config or PreprocessingConfig()

    def process(self, image: np.ndarray) -> np.ndarray:
        """Prepare an image for OCR.

        Args:
            image: Pixel buffer in RGB(A) or grayscale.

        Returns:
            Processed image of identical dimensions.
        """
        if not self.config.binarize_enabled:
            return image

        result = binarize(image, gray_weight=self.config.gray_weight)
        logger.info(
            "Preprocessing complete (%dx%d): contrast %.1f->%.1f",
            image.shape[1] if image.ndim > 1 else 0,
            image.shape[0],
            calculate_contrast(image),
            calculate_contrast(result),
        )
        return result
