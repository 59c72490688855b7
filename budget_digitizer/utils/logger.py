"""Centralized logging setup for the budget digitizer.

Provides a single logging configuration with consistent formatting
across the OCR, parsing, and API modules.
"""

import logging
import sys

# pdfplumber's pdfminer backend and Pillow log every object at DEBUG.
_NOISY_LOGGERS = ("pdfminer", "PIL")


def setup_logging(level: str = "INFO", quiet_libraries: bool = True) -> None:
    """Configure the root logger with a standard format.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        quiet_libraries: Cap chatty third-party loggers at WARNING.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if quiet_libraries:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)
    root.setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger for a pipeline module.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
