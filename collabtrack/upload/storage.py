# collabtrack/upload/storage.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from fastapi import Request, UploadFile

from collabtrack.errors import BadRequest

logger = logging.getLogger("collabtrack.upload")

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class StoredFile:
    filename: str
    original_name: str
    mime_type: str
    size: int


class AttachmentStorage:
    """Local-disk store for task attachments, keyed by a generated filename."""

    def __init__(self, upload_dir: str | Path, max_file_size: int, allowed_mime_types: Iterable[str]) -> None:
        self.root = Path(upload_dir).expanduser().resolve(strict=False)
        self.max_file_size = max_file_size
        self.allowed_mime_types = frozenset(allowed_mime_types)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, filename: str) -> Path:
        return self.root / Path(filename).name

    @staticmethod
    def public_url(filename: str) -> str:
        return f"/uploads/{filename}"

    def save(self, upload: UploadFile) -> StoredFile:
        if upload.content_type not in self.allowed_mime_types:
            raise BadRequest("File type not allowed")

        original_name = upload.filename or "upload"
        filename = f"{uuid.uuid4()}{Path(original_name).suffix.lower()}"
        target = self.path_for(filename)
        self.ensure_root()

        size = 0
        with target.open("wb") as handle:
            while True:
                chunk = upload.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_file_size:
                    break
                handle.write(chunk)

        if size > self.max_file_size:
            target.unlink(missing_ok=True)
            raise BadRequest("File too large")

        return StoredFile(filename=filename, original_name=original_name, mime_type=upload.content_type, size=size)

    def delete(self, filename: str) -> bool:
        """Best effort: a failure is logged, never raised."""
        try:
            self.path_for(filename).unlink()
            return True
        except OSError:
            logger.warning("attachment_file_delete_failed", extra={"stored_filename": filename}, exc_info=True)
            return False


def get_storage(request: Request) -> AttachmentStorage:
    return request.app.state.storage
