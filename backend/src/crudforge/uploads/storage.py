"""Local file storage for uploads.

Files live under one directory per file type::

    <upload_root>/images/<name>-<suffix>.png
    <upload_root>/documents/<name>-<suffix>.pdf

Stored names are sanitized and made unique; lookups only accept a bare file
name, never a path.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from crudforge.config import UploadRestriction
from crudforge.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def secure_filename(filename: str) -> str:
    """Sanitize an uploaded file name for storage."""
    filename = Path(filename).name
    filename = re.sub(r"[^\w.\-]", "_", filename)
    filename = filename.lstrip(".")
    if "." in filename:
        name, ext = filename.rsplit(".", 1)
        filename = f"{name[:100]}.{ext[:10]}"
    else:
        filename = filename[:100]
    return filename or "unnamed_file"


def extension_of(filename: str) -> str:
    return Path(filename).suffix.lstrip(".").lower()


@dataclass(frozen=True)
class IncomingFile:
    """An uploaded file, read into memory."""

    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


class UploadStorage:
    """Saves, finds and deletes uploaded files per file type.

    Args:
        root: Storage root; created on first write
        restrictions: Limits per file type; its keys are the accepted types
    """

    def __init__(self, root: Path, restrictions: dict[str, UploadRestriction]):
        self.root = Path(root)
        self.restrictions = restrictions

    def restriction(self, file_type: str) -> UploadRestriction:
        restriction = self.restrictions.get(file_type)
        if restriction is None:
            raise ValidationError(
                "Invalid file type",
                details=[
                    {
                        "field": "fileType",
                        "message": f"expected one of {', '.join(sorted(self.restrictions))}",
                    }
                ],
                code="InvalidFileType",
            )
        return restriction

    def check(self, file_type: str, files: list[IncomingFile]) -> None:
        """Reject a batch that breaks the limits of *file_type*."""
        restriction = self.restriction(file_type)
        if len(files) > restriction.max_count:
            raise ValidationError(
                f"Too many files, at most {restriction.max_count} {file_type} per request",
                code="TooManyFiles",
            )
        for incoming in files:
            if not restriction.allows(extension_of(incoming.filename)):
                raise ValidationError(
                    f"File type not allowed, allowed files are "
                    f"{', '.join(restriction.extensions)}",
                    details=[{"field": file_type, "message": incoming.filename}],
                    code="FileTypeNotAllowed",
                )
            if incoming.size > restriction.max_size:
                raise ValidationError(
                    f"File too large, the limit is {restriction.max_size} bytes",
                    details=[{"field": file_type, "message": incoming.filename}],
                    code="FileTooLarge",
                )

    def save(self, file_type: str, incoming: IncomingFile) -> str:
        """Write *incoming* and return its stored name."""
        safe = secure_filename(incoming.filename)
        stem, dot, ext = safe.rpartition(".")
        if not dot:
            stem, ext = safe, ""
        stored = f"{stem}-{uuid4().hex[:12]}{'.' + ext if ext else ''}"

        directory = self.root / file_type
        directory.mkdir(parents=True, exist_ok=True)
        (directory / stored).write_bytes(incoming.content)
        logger.info("Stored %s (%d bytes) as %s/%s", incoming.filename, incoming.size, file_type, stored)
        return stored

    def path_for(self, file_type: str, name: str) -> Path:
        """Path of a stored file.

        Raises:
            ValidationError: If *file_type* is not accepted.
            NotFoundError: If *name* is not a stored file of that type.
        """
        self.restriction(file_type)
        if name != Path(name).name or name.startswith("."):
            raise NotFoundError("File not found")
        path = self.root / file_type / name
        if not path.is_file():
            raise NotFoundError("File not found")
        return path

    def delete(self, file_type: str, name: str) -> None:
        self.path_for(file_type, name).unlink()
        logger.info("Deleted upload %s/%s", file_type, name)
