"""
Content type lookup by filename extension.
"""

import mimetypes
import posixpath
from typing import Optional

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# built-in table only, so results do not depend on the host's mime.types
_MIME_TYPES = mimetypes.MimeTypes()

_EXTRA_TYPES = {
    ".ics": "text/calendar",
    ".eml": "message/rfc822",
    ".md": "text/markdown",
    ".webp": "image/webp",
}


def detect_mime_type(filename: Optional[str]) -> str:
    """Guess a content type from the extension of ``filename``."""
    if not filename:
        return DEFAULT_CONTENT_TYPE

    ext = posixpath.splitext(filename.lower())[1]
    if ext in _EXTRA_TYPES:
        return _EXTRA_TYPES[ext]

    content_type, _ = _MIME_TYPES.guess_type(filename.lower(), strict=False)
    return content_type or DEFAULT_CONTENT_TYPE


def is_text_type(content_type: str) -> bool:
    return content_type.split(";", 1)[0].strip().lower().startswith("text/")
