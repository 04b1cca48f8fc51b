"""
multipart/form-data bodies.

    --XyZ\r\n
    Content-Disposition: form-data; name="nombre"\r\n
    \r\n
    Lámpara\r\n
    --XyZ\r\n
    Content-Disposition: form-data; name="imagen"; filename="lampara.png"\r\n
    Content-Type: image/png\r\n
    \r\n
    <bytes>\r\n
    --XyZ--\r\n

Plain fields are decoded as UTF-8 strings. File parts are written to
temporary files right away; handlers move them where they belong with
UploadedFile.save_to() or delete them with discard().
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union
import logging
import os
import re
import shutil
import tempfile

logger = logging.getLogger(__name__)

_BOUNDARY = re.compile(r'boundary=(?:"([^"]+)"|([^;\s]+))', re.IGNORECASE)
_DISPOSITION_PARAM = re.compile(r'(\w+)="([^"]*)"')


@dataclass
class UploadedFile:
    field: str
    filename: str
    path: Path
    size: int
    content_type: str = "application/octet-stream"

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def save_to(self, directory: Union[str, Path], filename: Optional[str] = None) -> Path:
        """Move the upload into `directory` (created if needed); returns the new path."""
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / (filename or self.filename)
        shutil.move(str(self.path), str(target))
        self.path = target
        return target

    def discard(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


@dataclass
class MultipartResult:
    fields: Dict[str, str] = field(default_factory=dict)
    files: List[UploadedFile] = field(default_factory=list)

    def file(self, name: str) -> Optional[UploadedFile]:
        for upload in self.files:
            if upload.field == name:
                return upload
        return None


def get_boundary(content_type: str) -> Optional[str]:
    found = _BOUNDARY.search(content_type or "")
    if not found:
        return None
    return found.group(1) or found.group(2)


def parse_multipart(
    content_type: str,
    raw: bytes,
    upload_dir: Optional[Union[str, Path]] = None,
) -> MultipartResult:
    """
    Split a multipart body into fields and uploaded files.

    A Content-Type without a boundary yields an empty result. Parts without
    a Content-Disposition name are skipped. Uploaded file names are reduced
    to their base name.
    """
    result = MultipartResult()
    boundary = get_boundary(content_type)
    if not boundary:
        return result

    delimiter = b"--" + boundary.encode("latin-1")
    for part in raw.split(delimiter)[1:-1]:
        if part.startswith(b"\r\n"):
            part = part[2:]
        head, sep, body = part.partition(b"\r\n\r\n")
        if not sep:
            continue
        if body.endswith(b"\r\n"):
            body = body[:-2]

        headers = _part_headers(head)
        params = dict(_DISPOSITION_PARAM.findall(headers.get("content-disposition", "")))
        name = params.get("name")
        if not name:
            continue

        if "filename" in params:
            filename = os.path.basename(params["filename"].replace("\\", "/"))
            if not filename:
                continue
            result.files.append(_store_upload(
                name, filename, body,
                headers.get("content-type", "application/octet-stream"),
                upload_dir,
            ))
        else:
            result.fields[name] = body.decode("utf-8", errors="replace")

    return result


def _part_headers(head: bytes) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for line in head.decode("utf-8", errors="replace").split("\r\n"):
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()
    return headers


def _store_upload(
    field_name: str,
    filename: str,
    data: bytes,
    content_type: str,
    upload_dir: Optional[Union[str, Path]],
) -> UploadedFile:
    handle, temp_path = tempfile.mkstemp(prefix="miniweb-", suffix=f"-{filename}",
                                         dir=upload_dir)
    with os.fdopen(handle, "wb") as out:
        out.write(data)
    logger.debug(f"Stored upload {filename} ({len(data)} bytes) at {temp_path}")
    return UploadedFile(
        field=field_name,
        filename=filename,
        path=Path(temp_path),
        size=len(data),
        content_type=content_type,
    )
