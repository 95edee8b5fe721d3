"""Concurrent validation, metadata extraction and encoding of a batch.

Every file is processed independently: a failing file is recorded on the
batch result and never blocks or delays its siblings.
"""

import asyncio
from datetime import datetime

import structlog

from evidence_analyzer.config.settings import Settings, get_settings
from evidence_analyzer.errors import EncodingError, ValidationError
from evidence_analyzer.extraction import FileValidator, MetadataExtractor, PayloadEncoder
from evidence_analyzer.models import (
    BatchResult,
    EvidenceFile,
    EvidenceUpload,
    FileError,
    FileStatus,
)

logger = structlog.get_logger(__name__)


class EvidenceBatchProcessor:
    """Runs validate → extract → encode for each file and aggregates results."""

    def __init__(
        self,
        settings: Settings | None = None,
        validator: FileValidator | None = None,
        extractor: MetadataExtractor | None = None,
        encoder: PayloadEncoder | None = None,
    ):
        self.settings = settings or get_settings()
        self.validator = validator or FileValidator(self.settings)
        self.extractor = extractor or MetadataExtractor()
        self.encoder = encoder or PayloadEncoder(self.settings)

    async def process(self, uploads: list[EvidenceUpload]) -> BatchResult:
        """Process a batch of uploads.

        Args:
            uploads: Files submitted together.

        Returns:
            BatchResult with one EvidenceFile per upload, in input order.
        """
        start = datetime.now()
        logger.info("batch_processing_start", files=len(uploads))

        batch_outcome = self.validator.validate_batch(uploads)
        if not batch_outcome.ok:
            logger.warning("batch_rejected", reason=batch_outcome.reason)
            files = [
                self._failed(upload, batch_outcome.reason or "Batch rejected")
                for upload in uploads
            ]
            errors = [FileError(file_name=u.name, stage="batch", error=f.error or "") for u, f in zip(uploads, files)]
            return self._aggregate(files, errors)

        results = await asyncio.gather(*(self._process_one(upload) for upload in uploads))

        files = [file for file, _ in results]
        errors = [error for _, error in results if error is not None]
        batch = self._aggregate(files, errors)

        logger.info(
            "batch_processing_complete",
            total=batch.total_files,
            successful=batch.successful_files,
            failed=batch.failed_files,
            duration_seconds=round((datetime.now() - start).total_seconds(), 3),
        )
        return batch

    async def _process_one(self, upload: EvidenceUpload) -> tuple[EvidenceFile, FileError | None]:
        """Process a single file; failures are returned, never raised."""
        try:
            return await self._build_file(upload), None

        except ValidationError as e:
            logger.info("file_rejected", file=upload.name, reason=str(e))
            return self._failed(upload, str(e)), FileError(
                file_name=upload.name, stage="validation", error=str(e)
            )

        except EncodingError as e:
            logger.warning("file_encoding_failed", file=upload.name, error=str(e))
            return self._failed(upload, str(e)), FileError(
                file_name=upload.name, stage="encoding", error=str(e)
            )

    async def _build_file(self, upload: EvidenceUpload) -> EvidenceFile:
        outcome = self.validator.validate(upload)
        if not outcome.ok:
            raise ValidationError(outcome.reason)

        try:
            data = await upload.read()
        except OSError as e:
            raise EncodingError(f"Failed to read file: {upload.name}: {e}") from e

        media_type = self.validator.effective_media_type(upload)
        metadata_result = await self.extractor.extract(upload, data)
        content = await self.encoder.encode(upload, data, media_type=media_type)

        return EvidenceFile(
            name=upload.name,
            media_type=media_type,
            size=upload.size,
            last_modified=upload.last_modified,
            category=upload.category,
            metadata=metadata_result.metadata or {},
            raw_metadata=metadata_result.raw_metadata,
            metadata_extracted=metadata_result.success,
            metadata_error=metadata_result.error,
            content=content,
            status=FileStatus.OK,
        )

    @staticmethod
    def _failed(upload: EvidenceUpload, reason: str) -> EvidenceFile:
        return EvidenceFile(
            name=upload.name,
            media_type=upload.media_type,
            size=upload.size,
            last_modified=upload.last_modified,
            category=upload.category,
            status=FileStatus.FAILED,
            error=reason,
        )

    @staticmethod
    def _aggregate(files: list[EvidenceFile], errors: list[FileError]) -> BatchResult:
        successful = sum(1 for f in files if f.ok)
        return BatchResult(
            total_files=len(files),
            successful_files=successful,
            failed_files=len(files) - successful,
            files=tuple(files),
            errors=tuple(errors),
        )
