"""
File storage for submission attachments.

The service only ever talks to the abstract ``BlobStore``; ``LocalBlobStore``
keeps files on disk under ``UPLOAD_DIR`` and is what the app wires in by
default.
"""

import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

from coursework.core.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Upload:
    """A file as received from the client, before it is stored."""

    filename: str
    content_type: str
    data: bytes


@dataclass(frozen=True)
class FileRef:
    storage_name: str
    original_name: str
    url: str
    size_bytes: int
    mime_type: str
    uploaded_at: str  # ISO-8601, UTC

    def as_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "FileRef":
        return cls(
            storage_name=data["storage_name"],
            original_name=data.get("original_name", ""),
            url=data.get("url", ""),
            size_bytes=int(data.get("size_bytes", 0)),
            mime_type=data.get("mime_type", ""),
            uploaded_at=data.get("uploaded_at", ""),
        )


class BlobStore(ABC):
    @abstractmethod
    def store(self, upload: Upload) -> FileRef:
        """Persist the bytes and return a stable reference. Raises StorageError."""

    @abstractmethod
    def delete(self, ref: FileRef) -> None:
        """Remove the blob. Missing blobs are not an error."""


def _unique_name(original_name: str) -> str:
    ext = os.path.splitext(original_name)[1].lower()
    return f"{uuid.uuid4().hex}{ext}"


class LocalBlobStore(BlobStore):
    def __init__(self, root: Path, url_prefix: str):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def store(self, upload: Upload) -> FileRef:
        storage_name = _unique_name(upload.filename)
        path = self.root / storage_name
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(upload.data)
        except OSError as e:
            logger.error("Failed to store %s as %s: %s", upload.filename, path, e)
            raise StorageError(f"Could not store file {upload.filename!r}") from e

        return FileRef(
            storage_name=storage_name,
            original_name=upload.filename,
            url=f"{self.url_prefix}/{storage_name}",
            size_bytes=len(upload.data),
            mime_type=upload.content_type,
            uploaded_at=datetime.now(timezone.utc).isoformat(),
        )

    def delete(self, ref: FileRef) -> None:
        path = self.root / ref.storage_name
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Could not delete file {ref.storage_name!r}") from e
