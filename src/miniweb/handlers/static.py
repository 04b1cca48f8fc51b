"""
=============================================================================
STATIC FILES
=============================================================================

Serves files from the public directory before any route is consulted.

    GET /static/css/styles.css  ─┐
    GET /public/css/styles.css  ─┴─►  <public_dir>/css/styles.css

    ┌───────────────────────────────┬──────────────────────────────────────┐
    │ Situation                     │ Result                               │
    ├───────────────────────────────┼──────────────────────────────────────┤
    │ not GET/HEAD, or no prefix    │ not claimed, routing continues       │
    │ file does not exist           │ not claimed, routing continues       │
    │ resolves outside public_dir   │ 403, claimed                         │
    │ If-None-Match equals the ETag │ 304, claimed                         │
    │ otherwise                     │ 200 with the file, claimed           │
    └───────────────────────────────┴──────────────────────────────────────┘

Every file goes out with Content-Type, ETag, Last-Modified and
Cache-Control. Files listed in preload() are read once at startup and
served from memory afterwards.
=============================================================================
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence, Union
import logging
import threading

from ..http.mime_types import get_content_type
from ..http.request import HTTPRequest
from ..http.response import ResponseWriter, format_http_date
from ..http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)

DEFAULT_PREFIXES = ("/static/", "/public/")


@dataclass(frozen=True)
class StaticAsset:
    content: bytes
    content_type: str
    etag: str
    last_modified: str


class StaticFileHandler:
    """
    Args:
        root_dir: Directory files are served from.
        prefixes: URL prefixes mapped onto root_dir.
        cache_max_age: Cache-Control max-age in seconds.
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        prefixes: Sequence[str] = DEFAULT_PREFIXES,
        cache_max_age: int = 3600,
    ):
        self.root_dir = Path(root_dir).resolve()
        self.prefixes = tuple(p if p.endswith("/") else p + "/" for p in prefixes)
        self.cache_max_age = cache_max_age
        self._preloaded: Dict[str, StaticAsset] = {}
        self._lock = threading.Lock()

    def serve(self, request: HTTPRequest, response: ResponseWriter) -> bool:
        """Answer `request` from disk if it names a static file. Returns True if claimed."""
        if request.method not in ("GET", "HEAD"):
            return False

        relative = self._relative_path(request.path)
        if relative is None:
            return False

        with self._lock:
            asset = self._preloaded.get(relative)
        if asset is None:
            full_path = (self.root_dir / relative).resolve()
            if full_path != self.root_dir and self.root_dir not in full_path.parents:
                logger.warning(f"Refused static path outside root: {request.path}")
                response.text("Forbidden", status=HTTPStatus.FORBIDDEN)
                return True
            if not full_path.is_file():
                return False
            try:
                asset = self._load(full_path)
            except PermissionError:
                response.text("Forbidden", status=HTTPStatus.FORBIDDEN)
                return True

        self._send(asset, request, response)
        return True

    def preload(self, files: Iterable[str]) -> int:
        """
        Read critical files into memory, given relative to root_dir.
        Missing files are logged and skipped. Returns how many were loaded.
        """
        loaded = 0
        for name in files:
            relative = name.lstrip("/")
            full_path = (self.root_dir / relative).resolve()
            if self.root_dir not in full_path.parents or not full_path.is_file():
                logger.warning(f"Cannot preload static file: {name}")
                continue
            asset = self._load(full_path)
            with self._lock:
                self._preloaded[relative] = asset
            loaded += 1
        logger.info(f"Preloaded {loaded} static file(s)")
        return loaded

    def _relative_path(self, path: str) -> Optional[str]:
        for prefix in self.prefixes:
            if path.startswith(prefix):
                return path[len(prefix):]
        return None

    def _load(self, path: Path) -> StaticAsset:
        stat = path.stat()
        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        return StaticAsset(
            content=path.read_bytes(),
            content_type=get_content_type(path),
            etag=f'"{int(stat.st_mtime)}-{stat.st_size}"',
            last_modified=format_http_date(modified),
        )

    def _send(self, asset: StaticAsset, request: HTTPRequest, response: ResponseWriter) -> None:
        response.set_header("ETag", asset.etag)
        response.set_header("Last-Modified", asset.last_modified)
        response.set_header("Cache-Control", f"public, max-age={self.cache_max_age}")

        if request.get_header("if-none-match") == asset.etag:
            response.status = HTTPStatus.NOT_MODIFIED
            response.end()
            return

        response.status = HTTPStatus.OK
        response.set_header("Content-Type", asset.content_type)
        response.end(asset.content)
