"""Unit tests for payload encoding."""

import base64

import pytest

from evidence_analyzer.config.settings import Settings
from evidence_analyzer.errors import EncodingError
from evidence_analyzer.extraction import PayloadEncoder, build_extraction_payload
from evidence_analyzer.extraction.encoder import _clean_page_text, render_pdf_text
from evidence_analyzer.models import EvidenceFile, EvidenceUpload, FileCategory, FileStatus

from tests.media import make_jpeg, make_text_pdf


@pytest.fixture
def encoder() -> PayloadEncoder:
    return PayloadEncoder(Settings(_env_file=None))


class TestPayloadEncoder:
    """Tests for PayloadEncoder."""

    def test_image_block(self, encoder):
        data = make_jpeg()
        upload = EvidenceUpload.from_bytes("photo.jpg", data)

        block = encoder.encode_sync(upload, data)

        assert block.media_type == "image/jpeg"
        assert block.byte_size == len(data)
        assert base64.b64decode(block.data) == data
        assert block.text is None

    def test_document_block_carries_text(self, encoder):
        data = make_text_pdf(["Email from VP Martinez", "As we discussed this morning"])
        upload = EvidenceUpload.from_bytes("email.pdf", data)

        block = encoder.encode_sync(upload, data)

        assert block.text.startswith("[Page 1]")
        assert "Email from VP Martinez" in block.text

    def test_effective_media_type_used(self, encoder):
        upload = EvidenceUpload.from_bytes("scan.pdf", b"%PDF-1.4", media_type="application/octet-stream")

        block = encoder.encode_sync(upload, b"%PDF-1.4", media_type="application/pdf")

        assert block.media_type == "application/pdf"

    def test_unreadable_pdf_text_is_not_fatal(self, encoder):
        upload = EvidenceUpload.from_bytes("broken.pdf", b"not a pdf")

        block = encoder.encode_sync(upload, b"not a pdf")

        assert block.text is None
        assert base64.b64decode(block.data) == b"not a pdf"

    def test_empty_content_raises(self, encoder):
        upload = EvidenceUpload(name="empty.jpg", media_type="image/jpeg", size=10, data=b"")

        with pytest.raises(EncodingError, match="empty.jpg"):
            encoder.encode_sync(upload, b"")


class TestPdfText:
    """Tests for PDF text rendering."""

    def test_clean_page_text(self):
        assert _clean_page_text("a   b\n\n\n\nc") == "a b\n\nc"
        assert _clean_page_text("") == ""

    def test_truncated_to_max_chars(self):
        data = make_text_pdf(["x" * 80, "y" * 80])
        assert len(render_pdf_text(data, max_chars=50)) == 50


class TestExtractionPayload:
    """Tests for build_extraction_payload."""

    def test_only_successful_files(self):
        ok = EvidenceFile(
            name="a.pdf",
            media_type="application/pdf",
            size=3,
            category=FileCategory.DOCUMENT,
            metadata={"page_count": 1},
            content={"file_name": "a.pdf", "media_type": "application/pdf", "data": "QUJD", "byte_size": 3},
        )
        failed = EvidenceFile(
            name="b.pdf",
            media_type="application/pdf",
            size=3,
            status=FileStatus.FAILED,
            error="too big",
        )

        payload = build_extraction_payload([ok, failed])

        assert [block.file_name for block in payload["files"]] == ["a.pdf"]
        assert payload["metadata"] == [
            {
                "fileName": "a.pdf",
                "category": "document",
                "extractedMetadata": {"page_count": 1},
                "fileSize": 3,
                "lastModified": None,
            }
        ]
