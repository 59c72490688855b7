"""Progress events emitted while an upload is processed."""

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from budget_digitizer.utils.logger import get_logger

logger = get_logger(__name__)


class UploadStage(StrEnum):
    """Pipeline stage reported with each progress event."""

    LOADING = "carregando"
    TEXT = "texto"
    OCR = "ocr"
    PARSE = "parse"


@dataclass
class UploadProgress:
    """One progress checkpoint; advisory only."""

    stage: UploadStage
    page: int
    total_pages: int
    progress: float
    message: str | None = None


ProgressListener = Callable[[UploadProgress], None]


class ProgressReporter:
    """Calls the caller's listener at pipeline checkpoints.

    Listener failures are logged and never abort the upload.

    Args:
        listener: Optional callable receiving :class:`UploadProgress`.
    """

    def __init__(self, listener: ProgressListener | None = None) -> None:
        self.listener = listener

    def emit(
        self,
        stage: UploadStage,
        page: int,
        total_pages: int,
        progress: float,
        message: str | None = None,
    ) -> None:
        if self.listener is None:
            return
        event = UploadProgress(
            stage=stage,
            page=page,
            total_pages=total_pages,
            progress=min(max(progress, 0.0), 1.0),
            message=message,
        )
        try:
            self.listener(event)
        except Exception:
            logger.warning("Progress listener failed at stage %s", stage, exc_info=True)
