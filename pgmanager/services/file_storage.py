"""Local-disk file storage for uploaded proofs and member documents.

References handed out by the store look like ``/uploads/<category>/<name>``
and are what the database keeps. Deleting reports an outcome instead of
raising, so callers can aggregate results across many files.
"""

import logging
import secrets
import time
from enum import Enum
from pathlib import Path, PurePosixPath

from pgmanager.config import settings
from pgmanager.services.errors import DependencyError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".jfif", ".pdf"}


class FileCategory(str, Enum):
    """Sub-directories under the upload root."""

    PAYMENT = "payment"
    PROFILE = "profile"
    DOCUMENT = "document"
    SIGNATURE = "signature"
    SETTLEMENT = "settlement"


class DeleteOutcome(str, Enum):
    """Result of deleting one stored file."""

    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
    ERROR = "error"


class LocalFileStorage:
    """File-storage collaborator backed by a directory on disk."""

    def __init__(self, base_dir: str | Path, url_prefix: str = "/uploads"):
        self.base_dir = Path(base_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def store(self, category: FileCategory, filename: str, content: bytes) -> str:
        """Persist an uploaded file and return its reference.

        Args:
            category: Target sub-directory
            filename: Original client filename (only the extension is kept)
            content: File bytes

        Returns:
            Reference such as "/uploads/payment/payment-1717000000000-1a2b3c4d.png"

        Raises:
            ValidationError: Empty file or unsupported extension
            DependencyError: The file could not be written
        """
        extension = PurePosixPath(filename or "").suffix.lower()
        if extension not in ALLOWED_EXTENSIONS:
            raise ValidationError(f"Unsupported file type: {filename!r}")
        if not content:
            raise ValidationError(f"Uploaded file {filename!r} is empty")

        category = FileCategory(category)
        unique_name = f"{category.value}-{int(time.time() * 1000)}-{secrets.token_hex(4)}{extension}"
        target_dir = self.base_dir / category.value
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            (target_dir / unique_name).write_bytes(content)
        except OSError as e:
            logger.error(f"Failed to store {filename!r} in {target_dir}: {e}")
            raise DependencyError("File storage unavailable") from e

        reference = f"{self.url_prefix}/{category.value}/{unique_name}"
        logger.debug(f"Stored file {reference} ({len(content)} bytes)")
        return reference

    def delete(self, reference: str) -> DeleteOutcome:
        """Delete a stored file.

        Returns:
            DELETED, ALREADY_ABSENT when nothing exists at the reference, or
            ERROR when the reference is invalid or the filesystem refused
        """
        path = self._resolve(reference)
        if path is None:
            logger.error(f"Refusing to delete reference outside upload root: {reference!r}")
            return DeleteOutcome.ERROR
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(f"File already absent: {reference}")
            return DeleteOutcome.ALREADY_ABSENT
        except OSError as e:
            logger.error(f"Failed to delete file {reference}: {e}")
            return DeleteOutcome.ERROR

        logger.debug(f"Deleted file {reference}")
        return DeleteOutcome.DELETED

    def delete_many(self, references: list[str]) -> dict[str, DeleteOutcome]:
        """Delete several references, one independent outcome each."""
        return {reference: self.delete(reference) for reference in references}

    def exists(self, reference: str) -> bool:
        path = self._resolve(reference)
        return path is not None and path.is_file()

    def _resolve(self, reference: str) -> Path | None:
        """Map a reference onto a path under base_dir, or None if it escapes the root."""
        if not reference:
            return None
        relative = reference
        if relative.startswith(self.url_prefix + "/"):
            relative = relative[len(self.url_prefix) + 1 :]
        relative = relative.lstrip("/")

        root = self.base_dir.resolve()
        candidate = (root / relative).resolve()
        if candidate == root or root not in candidate.parents:
            return None
        return candidate


_storage: LocalFileStorage | None = None


def get_file_storage() -> LocalFileStorage:
    """Process-wide storage rooted at settings.upload_dir."""
    global _storage
    if _storage is None:
        _storage = LocalFileStorage(settings.upload_dir)
    return _storage


__all__ = [
    "ALLOWED_EXTENSIONS",
    "FileCategory",
    "DeleteOutcome",
    "LocalFileStorage",
    "get_file_storage",
]
