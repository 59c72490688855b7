"""File name helpers shared by the CLI and the API."""

import re
import time

_FORBIDDEN_CHARS = re.compile(r'[/\\?%*:|"<>]')


def sanitize_file_name(file_name: str | None, default_suffix: str = ".json") -> str:
    """Replace characters that are not allowed in file names with ``_``.

    Args:
        file_name: Candidate file name, possibly empty.
        default_suffix: Suffix used for the generated fallback name.

    Returns:
        A safe file name. Empty input yields a timestamped fallback.
    """
    safe = _FORBIDDEN_CHARS.sub("_", file_name or "")
    return safe or f"document-{int(time.time() * 1000)}{default_suffix}"
