"""
Product comments, persisted as one JSON object keyed by product id:

    {
      "3": [
        {"id": 1760870400123, "author": "ana", "text": "...", "createdAt": "2026-10-19T12:00:00.123Z"}
      ]
    }

Every write rewrites the whole file under a lock. A missing file counts as
"no comments yet". A corrupt one reads as empty, and the next write moves
it aside to comments.json.corrupt-<ms> before starting a fresh file.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Union
import json
import logging
import os
import tempfile
import threading
import time

logger = logging.getLogger(__name__)

Comment = Dict[str, Any]


class CommentRepository:

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._last_id = 0
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write({})

    def list(self, product_id: Any) -> List[Comment]:
        with self._lock:
            try:
                data = self._read()
            except ValueError as e:
                logger.warning(f"Could not read {self.path}: {e}")
                return []
            return list(data.get(str(product_id), []))

    def add(self, product_id: Any, author: str, text: str) -> Comment:
        with self._lock:
            try:
                data = self._read()
            except ValueError as e:
                backup = self._backup()
                logger.error(f"Corrupt comments file {self.path} moved to {backup}: {e}")
                data = {}
            item = {
                "id": self._next_id(),
                "author": author,
                "text": text,
                "createdAt": _iso_now(),
            }
            data.setdefault(str(product_id), []).append(item)
            self._write(data)
        logger.info(f"Comment {item['id']} added to product {product_id}")
        return item

    def _next_id(self) -> int:
        # Millisecond timestamps, bumped when two writes share a millisecond.
        candidate = int(time.time() * 1000)
        self._last_id = max(candidate, self._last_id + 1)
        return self._last_id

    def _read(self) -> Dict[str, List[Comment]]:
        """
        Raises:
            ValueError: if the file is not a JSON object.
            OSError: if the file exists but cannot be read.
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return data

    def _backup(self) -> Path:
        backup = self.path.with_name(f"{self.path.name}.corrupt-{int(time.time() * 1000)}")
        os.replace(self.path, backup)
        return backup

    def _write(self, data: Dict[str, List[Comment]]) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".comments-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise


def _iso_now() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
