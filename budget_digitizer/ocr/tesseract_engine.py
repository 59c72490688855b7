"""Tesseract OCR session wrapper.

Exposes the ``load / load_language / initialize / recognize / terminate``
lifecycle the worker queue drives, on top of ``pytesseract``. Payloads
are either raw pixel arrays or ``data:image/png;base64`` strings.
"""

import base64
import binascii
import io
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import numpy as np
import pytesseract
from PIL import Image, UnidentifiedImageError

from budget_digitizer.errors import OcrFatalError, OcrTimeoutError, OcrTransientError
from budget_digitizer.utils.logger import get_logger

logger = get_logger(__name__)

DATA_URL_PREFIX = "data:image/png;base64,"


@dataclass
class OcrProgress:
    """Progress notification emitted by an engine while it works."""

    status: str
    progress: float


ProgressCallback = Callable[[OcrProgress], None]


class OcrEngine(Protocol):
    """Capabilities the worker queue needs from an OCR engine session."""

    def load(self) -> None: ...

    def load_language(self, language: str) -> None: ...

    def initialize(self, language: str) -> None: ...

    def recognize(self, payload: np.ndarray | str, timeout: float) -> str: ...

    def terminate(self) -> None: ...


def encode_data_url(image: np.ndarray) -> str:
    """Encode a pixel array as a PNG data URL."""
    buffer = io.BytesIO()
    Image.fromarray(image).save(buffer, format="PNG")
    return DATA_URL_PREFIX + base64.b64encode(buffer.getvalue()).decode("ascii")


def _payload_to_image(payload: np.ndarray | str) -> Image.Image:
    try:
        if isinstance(payload, str):
            if not payload.startswith(DATA_URL_PREFIX):
                raise ValueError("Unsupported data URL")
            raw = base64.b64decode(payload[len(DATA_URL_PREFIX) :], validate=True)
            image = Image.open(io.BytesIO(raw))
            image.load()
            return image
        return Image.fromarray(np.ascontiguousarray(payload))
    except (ValueError, TypeError, OSError, binascii.Error, UnidentifiedImageError) as exc:
        raise OcrTransientError(f"Could not hand image to Tesseract: {exc}") from exc


class TesseractSession:
    """A Tesseract session bound to one language model.

    pytesseract spawns one process per call, so the session keeps the
    validated runtime and language settings rather than a live process.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        psm: Tesseract page segmentation mode.
        progress_callback: Receives :class:`OcrProgress` updates.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        psm: int = 6,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.psm = psm
        self.progress_callback = progress_callback
        self.language: str | None = None
        self.version: str | None = None
        self._terminated = False

    def _report(self, status: str, progress: float) -> None:
        if self.progress_callback is not None:
            self.progress_callback(OcrProgress(status=status, progress=progress))

    def load(self) -> None:
        """Check that the Tesseract runtime is available."""
        self._report("loading tesseract core", 0.0)
        try:
            self.version = str(pytesseract.get_tesseract_version())
        except pytesseract.TesseractNotFoundError as exc:
            raise OcrFatalError("Tesseract executable not found") from exc
        logger.info("Loaded Tesseract %s", self.version)
        self._report("loading tesseract core", 1.0)

    def load_language(self, language: str) -> None:
        """Check that the language model is installed.

        Raises:
            OcrFatalError: If the traineddata file is missing.
        """
        self._report("loading language traineddata", 0.0)
        available = pytesseract.get_languages(config="")
        if language not in available:
            raise OcrFatalError(
                f"Tesseract language '{language}' not installed (have: {available})"
            )
        self._report("loading language traineddata", 1.0)

    def initialize(self, language: str) -> None:
        """Bind the session to ``language`` for all later recognitions."""
        self.language = language
        self._terminated = False
        self._report("initialized api", 1.0)

    def recognize(self, payload: np.ndarray | str, timeout: float) -> str:
        """Recognize the text of one image.

        Args:
            payload: Pixel array or PNG data URL.
            timeout: Seconds before the Tesseract process is killed.

        Returns:
            Recognized text.

        Raises:
            OcrTransientError: If the payload could not be decoded.
            OcrTimeoutError: If Tesseract exceeded ``timeout``.
            OcrFatalError: For any other Tesseract failure.
        """
        if self._terminated or self.language is None:
            raise OcrFatalError("Tesseract session is not initialized")

        image = _payload_to_image(payload)
        self._report("recognizing text", 0.0)
        try:
            text = pytesseract.image_to_string(
                image,
                lang=self.language,
                config=f"--psm {self.psm}",
                timeout=timeout,
            )
        except pytesseract.TesseractError as exc:
            raise OcrFatalError(f"Tesseract failed: {exc}") from exc
        except RuntimeError as exc:
            # pytesseract kills the child process and raises a bare RuntimeError
            if "timeout" in str(exc).lower():
                raise OcrTimeoutError("Tesseract process timed out") from exc
            raise OcrFatalError(f"Tesseract failed: {exc}") from exc
        self._report("recognizing text", 1.0)

        logger.info("OCR recognized %d characters", len(text))
        return text

    def terminate(self) -> None:
        """Release the session; later recognitions fail until re-initialized."""
        self._terminated = True
        self.language = None
