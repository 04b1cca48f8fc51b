"""
=============================================================================
HTTP LAYER
=============================================================================

Wire format in, wire format out, and the table that decides which handlers
a request reaches.

    bytes ──► RequestParser ──► HTTPRequest
                                     │
                                     ▼
                              RouteTable.resolve(method, path)
                                     │
                                     ▼
              handlers write into ResponseWriter ──► HTTPResponse ──► bytes

    ┌──────────────────┬────────────────────────────────────────────────────┐
    │ request.py       │ request line, headers, query, body, cookies        │
    │ response.py      │ HTTPResponse, ResponseBuilder, ResponseWriter      │
    │ router.py        │ PathMatcher, RouteTable (":name" parameters)       │
    │ multipart.py     │ multipart/form-data fields and uploaded files      │
    │ status_codes.py  │ HTTPStatus and reason phrases                      │
    │ mime_types.py    │ extension → Content-Type                           │
    └──────────────────┴────────────────────────────────────────────────────┘
=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ResponseWriter,
    ok,
    created,
    redirect,
    bad_request,
    not_found,
    internal_error,
)
from .status_codes import HTTPStatus, reason_phrase
from .mime_types import get_mime_type, get_content_type
from .multipart import MultipartResult, UploadedFile, parse_multipart

# router pulls in the middleware package, so it comes last
from .router import PathMatcher, RouteEntry, RouteMatch, RouteTable

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "ResponseWriter",
    "ok",
    "created",
    "redirect",
    "bad_request",
    "not_found",
    "internal_error",
    "HTTPStatus",
    "reason_phrase",
    "get_mime_type",
    "get_content_type",
    "MultipartResult",
    "UploadedFile",
    "parse_multipart",
    "PathMatcher",
    "RouteEntry",
    "RouteMatch",
    "RouteTable",
]
