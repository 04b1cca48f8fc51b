"""
Content types for files served from the public directory.

Only the extensions a small site actually ships are listed; anything else
goes out as application/octet-stream. Text types get a charset parameter.
"""

from pathlib import Path
from typing import Optional, Union

MIME_TYPES = {
    # documents and code
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".txt": "text/plain",
    ".xml": "application/xml",
    ".map": "application/json",
    # images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    # fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    # other
    ".pdf": "application/pdf",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

_TEXT_APPLICATION_TYPES = frozenset({
    "application/json",
    "application/javascript",
    "application/xml",
    "image/svg+xml",
})


def get_mime_type(path: Union[str, Path], default: Optional[str] = None) -> str:
    """
    MIME type for `path` by extension (case-insensitive).

        >>> get_mime_type("public/css/styles.css")
        'text/css'
        >>> get_mime_type("archive.xyz")
        'application/octet-stream'
    """
    extension = Path(path).suffix.lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def is_text_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in _TEXT_APPLICATION_TYPES


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """Content-Type header value for `path`, with charset for text types."""
    mime_type = get_mime_type(path)
    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type
