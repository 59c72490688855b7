"""Otsu binarization for scanned budget pages.

Converts RGB(A) pixel buffers to luminance, thresholds them with Otsu's
method and blends the binary image back with the grayscale one so the
OCR engine keeps some antialiasing.
"""

import cv2
import numpy as np

from budget_digitizer.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_THRESHOLD = 127
DEFAULT_GRAY_WEIGHT = 0.6


def to_luminance(image: np.ndarray) -> tuple[np.ndarray, np.ndarray | None]:
    """Convert an image to 8-bit luminance.

    Fully transparent pixels count as white.

    Args:
        image: Grayscale (H, W), RGB (H, W, 3) or RGBA (H, W, 4) array.

    Returns:
        Tuple of (luminance as uint8 (H, W), alpha channel or ``None``).
    """
    if image.ndim == 2:
        return np.ascontiguousarray(image, dtype=np.uint8), None

    pixels = np.ascontiguousarray(image, dtype=np.uint8)
    if pixels.shape[2] == 4:
        gray = cv2.cvtColor(pixels, cv2.COLOR_RGBA2GRAY)
        alpha = pixels[..., 3]
        gray[alpha == 0] = 255
        return gray, alpha
    return cv2.cvtColor(pixels, cv2.COLOR_RGB2GRAY), None


def otsu_binarize(gray: np.ndarray) -> tuple[int, np.ndarray]:
    """Threshold a luminance image with Otsu's method.

    Args:
        gray: Single-channel uint8 image.

    Returns:
        Tuple of (threshold, binary image with values 0 or 255). A
        single-level image is cut at 127.
    """
    if gray.min() == gray.max():
        _, binary = cv2.threshold(gray, DEFAULT_THRESHOLD, 255, cv2.THRESH_BINARY)
        return DEFAULT_THRESHOLD, binary
    threshold, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return int(threshold), binary


def binarize(image: np.ndarray, gray_weight: float = DEFAULT_GRAY_WEIGHT) -> np.ndarray:
    """Binarize an image with Otsu's threshold, blended with its grayscale.

    Args:
        image: Grayscale, RGB or RGBA uint8 array.
        gray_weight: Share of the grayscale image in the output; the binary
            image contributes the rest.

    Returns:
        New array with the same shape as ``image``. Empty images are
        returned unchanged.
    """
    if image.size == 0 or 0 in image.shape[:2]:
        return image

    gray, alpha = to_luminance(image)
    threshold, binary = otsu_binarize(gray)

    blended = cv2.addWeighted(gray, gray_weight, binary, 1.0 - gray_weight, 0)
    logger.debug("Applied Otsu binarization (threshold=%d)", threshold)

    if image.ndim == 2:
        return blended
    rgb = cv2.cvtColor(blended, cv2.COLOR_GRAY2RGB)
    if alpha is None:
        return rgb
    return np.dstack([rgb, alpha]).astype(np.uint8)
