"""Unit tests for concurrent batch processing."""

import asyncio
import threading

import pytest

from evidence_analyzer.config.settings import Settings
from evidence_analyzer.extraction import MetadataExtractor, MetadataStrategy
from evidence_analyzer.models import EvidenceUpload, FileCategory, FileStatus, MetadataResult
from evidence_analyzer.processing import EvidenceBatchProcessor

from tests.media import make_jpeg, make_wav


class RendezvousStrategy(MetadataStrategy):
    """Succeeds only if every file reaches extraction at the same time."""

    category = FileCategory.VIDEO

    def __init__(self, parties: int):
        self.barrier = threading.Barrier(parties, timeout=5)

    def extract(self, data, upload):
        self.barrier.wait()
        return MetadataResult(success=True, metadata={"duration": 3.0})


class TestEvidenceBatchProcessor:
    """Tests for EvidenceBatchProcessor.process."""

    def test_all_files_succeed(self, settings, evidence_uploads):
        jpeg = make_jpeg({0x010F: "Canon"})
        uploads = evidence_uploads + [
            EvidenceUpload.from_bytes("security_photo.jpg", jpeg),
            EvidenceUpload.from_bytes("call.wav", make_wav(), media_type="audio/wav"),
        ]

        batch = asyncio.run(EvidenceBatchProcessor(settings).process(uploads))

        assert batch.success
        assert batch.total_files == 4
        assert batch.errors == ()
        assert [f.name for f in batch.files] == [u.name for u in uploads]
        assert all(f.content is not None for f in batch.files)
        assert batch.summary().categories == {"document": 2, "image": 1, "audio": 1}

    def test_partial_failure_is_recorded_not_raised(self, settings, transcript_pdf):
        uploads = [
            EvidenceUpload.from_bytes("minutes.pdf", transcript_pdf),
            EvidenceUpload.from_bytes("notes.txt", b"plain text"),
            EvidenceUpload(name="huge.mp4", media_type="video/mp4", size=settings.max_file_size_bytes + 1, data=b"x"),
        ]

        batch = asyncio.run(EvidenceBatchProcessor(settings).process(uploads))

        assert not batch.success
        assert batch.successful_files == 1
        assert batch.failed_files == 2
        errors = batch.errors_by_file()
        assert errors["notes.txt"].startswith("Unsupported file type")
        assert "exceeds maximum size" in errors["huge.mp4"]
        assert {e.stage for e in batch.errors} == {"validation"}
        assert batch.files[0].status == FileStatus.OK

    def test_batch_total_limit_fails_every_file(self, transcript_pdf):
        settings = Settings(_env_file=None, max_batch_size_bytes=len(transcript_pdf) + 10)
        uploads = [
            EvidenceUpload.from_bytes("a.pdf", transcript_pdf),
            EvidenceUpload.from_bytes("b.pdf", transcript_pdf),
        ]

        batch = asyncio.run(EvidenceBatchProcessor(settings).process(uploads))

        assert batch.failed_files == 2
        assert all(e.stage == "batch" for e in batch.errors)
        assert all("Total file size exceeds" in f.error for f in batch.files)

    def test_metadata_failure_is_not_fatal(self, settings):
        uploads = [EvidenceUpload.from_bytes("broken.jpg", b"not an image at all")]

        batch = asyncio.run(EvidenceBatchProcessor(settings).process(uploads))

        assert batch.success
        file = batch.files[0]
        assert file.metadata_extracted is False
        assert file.metadata_error is not None
        assert file.metadata == {}

    def test_unreadable_file_is_encoding_failure(self, settings, tmp_path):
        path = tmp_path / "gone.pdf"
        path.write_bytes(b"%PDF-1.4")
        upload = EvidenceUpload.from_path(path)
        path.unlink()

        batch = asyncio.run(EvidenceBatchProcessor(settings).process([upload]))

        assert batch.errors[0].stage == "encoding"
        assert "Failed to read file" in batch.errors[0].error

    def test_idempotent(self, settings, evidence_uploads):
        processor = EvidenceBatchProcessor(settings)

        first = asyncio.run(processor.process(evidence_uploads))
        second = asyncio.run(processor.process(evidence_uploads))

        assert first == second

    def test_files_processed_concurrently(self, settings):
        strategy = RendezvousStrategy(parties=3)
        processor = EvidenceBatchProcessor(settings, extractor=MetadataExtractor([strategy]))
        uploads = [EvidenceUpload.from_bytes(f"clip{i}.mp4", b"x" * (i + 1)) for i in range(3)]

        batch = asyncio.run(processor.process(uploads))

        assert batch.success
        assert [f.metadata_extracted for f in batch.files] == [True] * 3

    @pytest.mark.parametrize("count", [0, 1])
    def test_small_batches(self, settings, transcript_pdf, count):
        uploads = [EvidenceUpload.from_bytes("a.pdf", transcript_pdf)] * count

        batch = asyncio.run(EvidenceBatchProcessor(settings).process(uploads))

        assert batch.total_files == count
        assert batch.success is (count > 0)
