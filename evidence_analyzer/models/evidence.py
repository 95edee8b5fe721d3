"""Models for uploaded evidence files and batch processing results."""

import mimetypes
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles
from pydantic import BaseModel, ConfigDict, Field, computed_field

from .enums import FileCategory, FileStatus


def category_for_media_type(media_type: str, file_name: str = "") -> FileCategory:
    """Map a declared media type (or a .pdf file name) to a file category."""
    media_type = (media_type or "").lower()

    if media_type.startswith("image/"):
        return FileCategory.IMAGE
    if media_type.startswith("video/"):
        return FileCategory.VIDEO
    if media_type.startswith("audio/"):
        return FileCategory.AUDIO
    if media_type == "application/pdf" or file_name.lower().endswith(".pdf"):
        return FileCategory.DOCUMENT

    return FileCategory.UNKNOWN


class EvidenceUpload(BaseModel):
    """A raw file as supplied by the caller, before any processing."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Original file name")
    media_type: str = Field(default="", description="Declared media type, may be empty")
    size: int = Field(..., ge=0, description="Size in bytes")
    last_modified: datetime | None = Field(None, description="Last-modified timestamp")
    data: bytes | None = Field(default=None, repr=False, description="In-memory content")
    path: Path | None = Field(default=None, description="On-disk content")

    @classmethod
    def from_bytes(
        cls,
        name: str,
        data: bytes,
        media_type: str | None = None,
        last_modified: datetime | None = None,
    ) -> "EvidenceUpload":
        """Build an upload from in-memory bytes."""
        if media_type is None:
            media_type = mimetypes.guess_type(name)[0] or ""
        return cls(
            name=name,
            media_type=media_type,
            size=len(data),
            last_modified=last_modified,
            data=data,
        )

    @classmethod
    def from_path(cls, path: str | Path, media_type: str | None = None) -> "EvidenceUpload":
        """Build an upload that reads its content from disk on demand."""
        path = Path(path)
        stat = path.stat()
        if media_type is None:
            media_type = mimetypes.guess_type(path.name)[0] or ""
        return cls(
            name=path.name,
            media_type=media_type,
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            path=path,
        )

    @property
    def category(self) -> FileCategory:
        return category_for_media_type(self.media_type, self.name)

    async def read(self) -> bytes:
        """Return the file content, reading from disk if needed."""
        if self.data is not None:
            return self.data
        if self.path is None:
            raise OSError(f"No content available for {self.name}")

        async with aiofiles.open(self.path, "rb") as f:
            return await f.read()


class MetadataResult(BaseModel):
    """Uniform output of every metadata extraction strategy."""

    success: bool = Field(..., description="Whether any metadata could be read")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Normalized metadata")
    raw_metadata: dict[str, Any] | None = Field(None, description="Unprocessed tag data")
    error: str | None = Field(None, description="Why extraction failed or found nothing")


class ContentBlock(BaseModel):
    """Transmittable file content for the remote capability."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    media_type: str
    data: str = Field(..., repr=False, description="Base64-encoded file content")
    byte_size: int = Field(..., ge=0)
    text: str | None = Field(None, repr=False, description="Text rendering, for documents")


class EvidenceFile(BaseModel):
    """One processed evidence file. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    name: str
    media_type: str
    size: int = Field(..., ge=0)
    last_modified: datetime | None = None
    category: FileCategory = FileCategory.UNKNOWN

    metadata: dict[str, Any] = Field(default_factory=dict)
    raw_metadata: dict[str, Any] | None = Field(None, repr=False)
    metadata_extracted: bool = False
    metadata_error: str | None = None

    content: ContentBlock | None = Field(None, repr=False)
    status: FileStatus = FileStatus.OK
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == FileStatus.OK and self.content is not None


class FileError(BaseModel):
    """A per-file failure collected on the batch result."""

    file_name: str
    stage: str = Field(..., description="validation, encoding or batch")
    error: str


class BatchSummary(BaseModel):
    """Summary statistics for a processed batch."""

    total: int
    successful: int
    failed: int
    categories: dict[str, int] = Field(default_factory=dict)
    total_size_bytes: int = 0
    with_metadata: int = 0

    @property
    def total_size_mb(self) -> float:
        return round(self.total_size_bytes / (1024 * 1024), 2)

    @property
    def metadata_percentage(self) -> float:
        if self.successful == 0:
            return 0.0
        return round(self.with_metadata / self.successful * 100, 1)


class BatchResult(BaseModel):
    """Aggregated outcome of processing a batch of uploads."""

    model_config = ConfigDict(frozen=True)

    total_files: int = Field(..., ge=0)
    successful_files: int = Field(..., ge=0)
    failed_files: int = Field(..., ge=0)
    files: tuple[EvidenceFile, ...] = ()
    errors: tuple[FileError, ...] = ()

    @computed_field
    @property
    def success(self) -> bool:
        """True only if every file succeeded."""
        return self.total_files > 0 and self.failed_files == 0

    @property
    def successful(self) -> list[EvidenceFile]:
        return [f for f in self.files if f.ok]

    def errors_by_file(self) -> dict[str, str]:
        return {e.file_name: e.error for e in self.errors}

    def summary(self) -> BatchSummary:
        """Per-category counts, total size and metadata coverage."""
        categories: dict[str, int] = {}
        total_size = 0
        with_metadata = 0

        for file in self.successful:
            categories[file.category.value] = categories.get(file.category.value, 0) + 1
            total_size += file.size
            if file.metadata_extracted:
                with_metadata += 1

        return BatchSummary(
            total=self.total_files,
            successful=self.successful_files,
            failed=self.failed_files,
            categories=categories,
            total_size_bytes=total_size,
            with_metadata=with_metadata,
        )
