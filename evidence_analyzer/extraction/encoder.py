"""Conversion of validated files into transmittable content blocks."""

import asyncio
import base64
import binascii
import io

import pdfplumber
import structlog

from evidence_analyzer.config.settings import Settings, get_settings
from evidence_analyzer.errors import EncodingError
from evidence_analyzer.models import ContentBlock, EvidenceFile, EvidenceUpload, FileCategory

logger = structlog.get_logger(__name__)


def _clean_page_text(text: str) -> str:
    """Normalize whitespace in extracted page text, keeping paragraph breaks."""
    if not text:
        return ""

    lines = [" ".join(line.split()) for line in text.split("\n")]
    result = "\n".join(lines)

    while "\n\n\n" in result:
        result = result.replace("\n\n\n", "\n\n")

    return result.strip()


def render_pdf_text(data: bytes, max_chars: int) -> str | None:
    """Extract page text from a PDF, page by page, up to max_chars.

    Returns None when the PDF has no extractable text layer.
    """
    parts: list[str] = []
    total = 0

    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page_num, page in enumerate(pdf.pages, start=1):
            text = _clean_page_text(page.extract_text() or "")
            if not text:
                continue
            parts.append(f"[Page {page_num}]\n{text}")
            total += len(text)
            if total >= max_chars:
                break

    if not parts:
        return None
    return "\n\n".join(parts)[:max_chars]


class PayloadEncoder:
    """Builds base64 content blocks, with a text rendering for documents."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def encode_sync(self, upload: EvidenceUpload, data: bytes, media_type: str | None = None) -> ContentBlock:
        """Encode file content.

        Raises:
            EncodingError: If the content is empty or cannot be encoded.
        """
        if not data:
            raise EncodingError(f"Failed to read file: {upload.name} (no content)")

        try:
            encoded = base64.b64encode(data).decode("ascii")
        except (TypeError, binascii.Error) as e:
            raise EncodingError(f"Failed to encode file: {upload.name}: {e}") from e

        text = None
        if upload.category == FileCategory.DOCUMENT:
            try:
                text = render_pdf_text(data, self.settings.pdf_text_max_chars)
            except Exception as e:
                # The binary content is still sent; only the text rendering is lost
                logger.warning("pdf_text_rendering_failed", file=upload.name, error=str(e))

        return ContentBlock(
            file_name=upload.name,
            media_type=media_type or upload.media_type,
            data=encoded,
            byte_size=len(data),
            text=text,
        )

    async def encode(self, upload: EvidenceUpload, data: bytes, media_type: str | None = None) -> ContentBlock:
        return await asyncio.to_thread(self.encode_sync, upload, data, media_type)


def build_extraction_payload(files: list[EvidenceFile]) -> dict:
    """Pair content blocks with their metadata for the extraction request.

    Only files that were validated and encoded are included.
    """
    valid = [f for f in files if f.ok]

    return {
        "files": [f.content for f in valid],
        "metadata": [
            {
                "fileName": f.name,
                "category": f.category.value,
                "extractedMetadata": f.metadata,
                "fileSize": f.size,
                "lastModified": f.last_modified.isoformat() if f.last_modified else None,
            }
            for f in valid
        ],
    }
