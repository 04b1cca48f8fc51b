"""
=============================================================================
BODY PARSING
=============================================================================

Decodes POST, PUT and PATCH bodies into ctx.body by Content-Type:

    ┌───────────────────────────────────┬──────────────────────────────────┐
    │ Content-Type                      │ ctx.body                         │
    ├───────────────────────────────────┼──────────────────────────────────┤
    │ application/json                  │ decoded JSON value               │
    │                                   │ (the raw text if it is invalid)  │
    │ application/x-www-form-urlencoded │ dict, last value per name wins   │
    │ multipart/form-data               │ dict of fields; files in         │
    │                                   │ ctx.files                        │
    │ anything else / missing           │ the body as text                 │
    └───────────────────────────────────┴──────────────────────────────────┘

Other methods leave ctx.body as None. Malformed input never fails the
request here; handlers validate what they receive.
=============================================================================
"""

from pathlib import Path
from typing import Optional, Union
from urllib.parse import parse_qsl
import json
import logging

from .base import BeforeMiddleware, CONTINUE, Flow
from ..http.multipart import parse_multipart

logger = logging.getLogger(__name__)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class BodyParserMiddleware(BeforeMiddleware):
    """
    Args:
        upload_dir: Where multipart file parts are spooled; the system
            temporary directory when None.
    """

    def __init__(self, upload_dir: Optional[Union[str, Path]] = None):
        self.upload_dir = upload_dir

    def __call__(self, ctx) -> Flow:
        request = ctx.request
        if request.method not in BODY_METHODS:
            return CONTINUE

        content_type = request.content_type or ""
        raw = request.body
        text = raw.decode("utf-8", errors="replace")

        if content_type == "application/json":
            try:
                ctx.body = json.loads(text)
            except ValueError:
                logger.debug(f"Malformed JSON body on {request.method} {request.path}")
                ctx.body = text
        elif content_type == "application/x-www-form-urlencoded":
            ctx.body = dict(parse_qsl(text, keep_blank_values=True))
        elif content_type == "multipart/form-data":
            parsed = parse_multipart(
                request.get_header("content-type"), raw, upload_dir=self.upload_dir
            )
            ctx.body = parsed.fields
            ctx.files = parsed.files
        else:
            ctx.body = text

        return CONTINUE
