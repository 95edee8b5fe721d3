"""File type and size policy checks.

Validation looks only at declared file attributes (name, media type, size),
never at content, so it is deterministic and side-effect free.
"""

from fnmatch import fnmatch

import structlog
from pydantic import BaseModel

from evidence_analyzer.config.settings import Settings, get_settings
from evidence_analyzer.models import EvidenceUpload

logger = structlog.get_logger(__name__)

PDF_MEDIA_TYPE = "application/pdf"

# Declared types that carry no information; a .pdf name may override them.
_GENERIC_MEDIA_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


class ValidationOutcome(BaseModel):
    """Result of validating one file or one batch."""

    ok: bool
    reason: str | None = None
    limit: str | None = None

    @classmethod
    def accepted(cls) -> "ValidationOutcome":
        return cls(ok=True)

    @classmethod
    def rejected(cls, reason: str, limit: str | None = None) -> "ValidationOutcome":
        return cls(ok=False, reason=reason, limit=limit)


def _format_mb(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):g}MB"


class FileValidator:
    """Enforces the media type allow-list and size ceilings."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def effective_media_type(self, upload: EvidenceUpload) -> str:
        """Declared media type, falling back to the file extension for PDFs."""
        media_type = (upload.media_type or "").lower().strip()
        if media_type in _GENERIC_MEDIA_TYPES and upload.name.lower().endswith(".pdf"):
            return PDF_MEDIA_TYPE
        return media_type

    def is_supported_type(self, media_type: str) -> bool:
        return any(fnmatch(media_type, pattern) for pattern in self.settings.allowed_media_types)

    def validate(self, upload: EvidenceUpload) -> ValidationOutcome:
        """Check one file against the type allow-list and per-file ceiling."""
        media_type = self.effective_media_type(upload)

        if not self.is_supported_type(media_type):
            logger.debug("file_rejected_type", file=upload.name, media_type=media_type)
            return ValidationOutcome.rejected(
                f"Unsupported file type: {media_type or 'unknown'}. "
                "Supported types: images, videos, audio, and PDFs.",
                limit="type",
            )

        if upload.size == 0:
            return ValidationOutcome.rejected(f"File {upload.name!r} is empty", limit="empty")

        if upload.size > self.settings.max_file_size_bytes:
            logger.debug("file_rejected_size", file=upload.name, size=upload.size)
            return ValidationOutcome.rejected(
                f"File {upload.name!r} exceeds maximum size of "
                f"{_format_mb(self.settings.max_file_size_bytes)}",
                limit="max_file_size",
            )

        return ValidationOutcome.accepted()

    def validate_batch(self, uploads: list[EvidenceUpload]) -> ValidationOutcome:
        """Check the batch-total size ceiling."""
        total_size = sum(upload.size for upload in uploads)

        if total_size > self.settings.max_batch_size_bytes:
            logger.debug("batch_rejected_size", total_size=total_size)
            return ValidationOutcome.rejected(
                f"Total file size exceeds maximum of "
                f"{_format_mb(self.settings.max_batch_size_bytes)}",
                limit="max_batch_size",
            )

        return ValidationOutcome.accepted()
