"""Exception types raised by the upload pipeline and the OCR queue."""

FILE_TOO_LARGE = "file-too-large"
UNSUPPORTED_FORMAT = "unsupported-format"
PROCESSING_ERROR = "processing-error"


class BudgetUploadError(Exception):
    """Raised when an uploaded budget document cannot be processed.

    Args:
        code: One of ``file-too-large``, ``unsupported-format`` or
            ``processing-error``.
        message: Human readable reason, shown to the user as-is.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class OcrError(Exception):
    """Base exception for OCR failures."""

    code = "ocr-error"


class OcrTimeoutError(OcrError):
    """Raised when a recognition call exceeds the configured timeout."""

    code = "ocr-timeout"


class OcrTransientError(OcrError):
    """Raised by an engine when the image payload could not be handed over.

    The queue retries these with a cloned buffer and then with an
    alternate encoding before giving up.
    """

    code = "ocr-transient"


class OcrFatalError(OcrError):
    """Raised when recognition fails for good; the session is torn down."""

    code = "ocr-fatal"


class PdfExtractionError(Exception):
    """Raised when the PDF text layer or rasterization cannot be produced."""
