"""Type-specific forensic metadata extraction.

One strategy per file category, all returning the same MetadataResult shape:
- Images: EXIF/GPS tags via Pillow
- Video/Audio: container headers via hachoir (no decoding, no transcoding)
- Documents: PDF document info and page count via pdfplumber

Extraction failures are never fatal: the file continues through the pipeline
with empty or partial metadata.
"""

import asyncio
import io
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any

import pdfplumber
import structlog
from hachoir.metadata import extractMetadata
from hachoir.parser import guessParser
from hachoir.stream import InputIOStream
from PIL import ExifTags, Image, UnidentifiedImageError

from evidence_analyzer.errors import ExtractionError
from evidence_analyzer.models import EvidenceUpload, FileCategory, MetadataResult

logger = structlog.get_logger(__name__)


# =============================================================================
# Value normalization helpers
# =============================================================================

EXIF_DATETIME_PATTERN = re.compile(r"^(\d{4}):(\d{2}):(\d{2})[ T](\d{2}):(\d{2}):(\d{2})")
PDF_DATE_PATTERN = re.compile(
    r"^D?:?(\d{4})(\d{2})?(\d{2})?(\d{2})?(\d{2})?(\d{2})?"
    r"(?:(Z)|([+-])(\d{2})'?(\d{2})?'?)?"
)


def _exif_datetime_to_iso(value: Any) -> str | None:
    """Convert EXIF 'YYYY:MM:DD HH:MM:SS' to ISO-8601, passing other text through."""
    if value is None:
        return None
    text = str(value).strip().strip("\x00")
    if not text:
        return None

    match = EXIF_DATETIME_PATTERN.match(text)
    if not match:
        return text

    year, month, day, hour, minute, second = match.groups()
    return f"{year}-{month}-{day}T{hour}:{minute}:{second}"


def _pdf_date_to_iso(value: Any) -> str | None:
    """Convert a PDF date string (D:YYYYMMDDHHmmSSOHH'mm') to ISO-8601."""
    if value is None:
        return None
    text = _to_text(value)
    if not text:
        return None

    match = PDF_DATE_PATTERN.match(text.strip())
    if not match:
        return text

    year, month, day, hour, minute, second, zulu, sign, tz_hour, tz_minute = match.groups()
    iso = f"{year}-{month or '01'}-{day or '01'}T{hour or '00'}:{minute or '00'}:{second or '00'}"

    if zulu:
        iso += "Z"
    elif sign and tz_hour:
        iso += f"{sign}{tz_hour}:{tz_minute or '00'}"

    return iso


def _to_text(value: Any) -> str | None:
    """Decode tag values that may arrive as bytes or parser literals."""
    if value is None:
        return None
    if isinstance(value, bytes):
        for encoding in ("utf-8", "utf-16", "latin-1"):
            try:
                return value.decode(encoding).strip("\x00").strip() or None
            except UnicodeDecodeError:
                continue
        return None
    name = getattr(value, "name", None)
    if name is not None and not isinstance(value, str):
        return str(name)
    text = str(value).strip()
    return text or None


def _to_number(value: Any) -> float | int | None:
    """Convert EXIF rationals and similar to plain numbers."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    return int(number) if number.is_integer() else round(number, 6)


def _gps_to_decimal(dms: Any, ref: Any) -> float | None:
    """Convert GPS degrees/minutes/seconds to signed decimal degrees."""
    if not dms:
        return None
    try:
        degrees, minutes, seconds = (float(part) for part in dms)
    except (TypeError, ValueError, ZeroDivisionError):
        return None

    decimal = degrees + minutes / 60.0 + seconds / 3600.0
    if _to_text(ref) in ("S", "W"):
        decimal = -decimal
    return round(decimal, 6)


def _jsonable(value: Any) -> Any:
    """Make raw tag values JSON-friendly for the raw metadata dump."""
    if isinstance(value, (str, int, bool)) or value is None:
        return value
    if isinstance(value, float):
        return round(value, 6)
    if isinstance(value, bytes):
        return _to_text(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    number = _to_number(value)
    if number is not None:
        return number
    return str(value)


# =============================================================================
# Strategies
# =============================================================================

class MetadataStrategy(ABC):
    """Extracts metadata for one file category."""

    category: FileCategory

    @abstractmethod
    def extract(self, data: bytes, upload: EvidenceUpload) -> MetadataResult:
        """Parse metadata from file content.

        Raises:
            ExtractionError: If the content cannot be parsed at all.
        """


class ImageMetadataStrategy(MetadataStrategy):
    """EXIF, GPS and dimension metadata from image files."""

    category = FileCategory.IMAGE

    def extract(self, data: bytes, upload: EvidenceUpload) -> MetadataResult:
        try:
            with Image.open(io.BytesIO(data)) as image:
                width, height = image.size
                exif = image.getexif()
                ifd0 = {ExifTags.TAGS.get(tag, str(tag)): value for tag, value in exif.items()}
                exif_ifd = {
                    ExifTags.TAGS.get(tag, str(tag)): value
                    for tag, value in exif.get_ifd(ExifTags.IFD.Exif).items()
                }
                gps_ifd = {
                    ExifTags.GPSTAGS.get(tag, str(tag)): value
                    for tag, value in exif.get_ifd(ExifTags.IFD.GPSInfo).items()
                }
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ExtractionError(f"Could not read image {upload.name}: {e}") from e

        tags = {**ifd0, **exif_ifd}
        metadata = {
            # Camera information
            "make": _to_text(tags.get("Make")),
            "model": _to_text(tags.get("Model")),
            "software": _to_text(tags.get("Software")),
            # Timestamps
            "date_time": _exif_datetime_to_iso(tags.get("DateTimeOriginal") or tags.get("DateTime")),
            "date_time_digitized": _exif_datetime_to_iso(tags.get("DateTimeDigitized")),
            "modify_date": _exif_datetime_to_iso(ifd0.get("DateTime")),
            # GPS
            "gps": self._gps(gps_ifd),
            # Capture settings
            "iso": _to_number(tags.get("ISOSpeedRatings")),
            "f_number": _to_number(tags.get("FNumber")),
            "exposure_time": _to_number(tags.get("ExposureTime")),
            "focal_length": _to_number(tags.get("FocalLength")),
            "lens_model": _to_text(tags.get("LensModel")),
            "flash": _to_number(tags.get("Flash")),
            "white_balance": _to_number(tags.get("WhiteBalance")),
            # Dimensions
            "width": _to_number(tags.get("ExifImageWidth")) or width,
            "height": _to_number(tags.get("ExifImageHeight")) or height,
            "orientation": _to_number(tags.get("Orientation")),
        }

        if not tags and not gps_ifd:
            return MetadataResult(success=False, metadata=metadata, error="No EXIF data found")

        raw = {key: _jsonable(value) for key, value in tags.items()}
        if gps_ifd:
            raw["GPSInfo"] = {key: _jsonable(value) for key, value in gps_ifd.items()}

        return MetadataResult(success=True, metadata=metadata, raw_metadata=raw)

    @staticmethod
    def _gps(gps_ifd: dict) -> dict | None:
        latitude = _gps_to_decimal(gps_ifd.get("GPSLatitude"), gps_ifd.get("GPSLatitudeRef"))
        longitude = _gps_to_decimal(gps_ifd.get("GPSLongitude"), gps_ifd.get("GPSLongitudeRef"))
        if latitude is None or longitude is None:
            return None

        altitude = _to_number(gps_ifd.get("GPSAltitude"))
        # AltitudeRef 1 means below sea level
        if altitude is not None and gps_ifd.get("GPSAltitudeRef") in (1, b"\x01"):
            altitude = -altitude

        return {
            "latitude": latitude,
            "longitude": longitude,
            "altitude": altitude,
            "timestamp": _to_text(gps_ifd.get("GPSDateStamp")),
        }


class MediaMetadataStrategy(MetadataStrategy):
    """Container-level metadata for audio and video, read from headers only."""

    def __init__(self, category: FileCategory):
        self.category = category

    def extract(self, data: bytes, upload: EvidenceUpload) -> MetadataResult:
        stream = InputIOStream(io.BytesIO(data), source=f"evidence:{upload.name}", tags=[])
        parser = guessParser(stream)
        if parser is None:
            raise ExtractionError(f"Failed to load {self.category.value} metadata for {upload.name}")

        try:
            parsed = extractMetadata(parser)
        except Exception as e:
            raise ExtractionError(f"Failed to read {self.category.value} headers: {e}") from e
        if parsed is None:
            raise ExtractionError(f"Failed to load {self.category.value} metadata for {upload.name}")

        duration = self._value(parsed, "duration")
        metadata: dict[str, Any] = {
            "duration": duration.total_seconds() if isinstance(duration, timedelta) else None,
            "mime_type": self._value(parsed, "mime_type"),
            "bit_rate": _to_number(self._value(parsed, "bit_rate")),
            "creation_date": self._iso(self._value(parsed, "creation_date")),
        }

        if self.category == FileCategory.VIDEO:
            metadata["width"] = _to_number(self._value(parsed, "width"))
            metadata["height"] = _to_number(self._value(parsed, "height"))
        else:
            metadata["sample_rate"] = _to_number(self._value(parsed, "sample_rate"))
            metadata["channels"] = _to_number(self._value(parsed, "nb_channel"))

        raw = {line.lstrip("- ") for line in parsed.exportPlaintext() or []}
        return MetadataResult(
            success=True,
            metadata=metadata,
            raw_metadata={"plaintext": sorted(raw)},
        )

    @staticmethod
    def _value(parsed, key: str) -> Any:
        """First value for a key, searching nested groups (e.g. video tracks)."""
        if parsed.has(key):
            return parsed.get(key)
        iter_groups = getattr(parsed, "iterGroups", None)
        if iter_groups is None:
            return None
        for group in iter_groups():
            if group.has(key):
                return group.get(key)
        return None

    @staticmethod
    def _iso(value: Any) -> str | None:
        if isinstance(value, datetime):
            return value.isoformat()
        return _to_text(value)


class DocumentMetadataStrategy(MetadataStrategy):
    """PDF document info dictionary and page count."""

    category = FileCategory.DOCUMENT

    INFO_FIELDS = {
        "title": "Title",
        "author": "Author",
        "subject": "Subject",
        "keywords": "Keywords",
        "creator": "Creator",
        "producer": "Producer",
    }

    def extract(self, data: bytes, upload: EvidenceUpload) -> MetadataResult:
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                info = dict(pdf.metadata or {})
                page_count = len(pdf.pages)
        except Exception as e:
            raise ExtractionError(f"Failed to extract PDF metadata: {e}") from e

        metadata: dict[str, Any] = {"page_count": page_count}
        for key, info_key in self.INFO_FIELDS.items():
            metadata[key] = _to_text(info.get(info_key))
        metadata["creation_date"] = _pdf_date_to_iso(info.get("CreationDate"))
        metadata["modification_date"] = _pdf_date_to_iso(info.get("ModDate"))

        return MetadataResult(
            success=True,
            metadata=metadata,
            raw_metadata={key: _jsonable(value) for key, value in info.items()},
        )


# =============================================================================
# Dispatcher
# =============================================================================

class MetadataExtractor:
    """Routes each file to the strategy for its category."""

    def __init__(self, strategies: list[MetadataStrategy] | None = None):
        strategies = strategies or [
            ImageMetadataStrategy(),
            MediaMetadataStrategy(FileCategory.VIDEO),
            MediaMetadataStrategy(FileCategory.AUDIO),
            DocumentMetadataStrategy(),
        ]
        self._strategies = {strategy.category: strategy for strategy in strategies}

    def extract_sync(self, upload: EvidenceUpload, data: bytes) -> MetadataResult:
        """Extract metadata, converting every failure into a result."""
        last_modified = upload.last_modified.isoformat() if upload.last_modified else None
        strategy = self._strategies.get(upload.category)

        if strategy is None:
            return MetadataResult(
                success=False,
                error=f"Unsupported file type: {upload.media_type or 'unknown'}",
                metadata={
                    "file_name": upload.name,
                    "file_size": upload.size,
                    "file_type": upload.media_type,
                    "last_modified": last_modified,
                },
            )

        try:
            result = strategy.extract(data, upload)
        except ExtractionError as e:
            logger.warning("metadata_extraction_failed", file=upload.name, error=str(e))
            return MetadataResult(success=False, error=str(e), metadata={})
        except Exception as e:
            logger.exception("metadata_extraction_unexpected_error", file=upload.name)
            return MetadataResult(success=False, error=f"Unexpected error: {e}", metadata={})

        metadata = {**result.metadata, "last_modified": last_modified}
        logger.debug(
            "metadata_extracted",
            file=upload.name,
            category=upload.category.value,
            success=result.success,
        )
        return result.model_copy(update={"metadata": metadata})

    async def extract(self, upload: EvidenceUpload, data: bytes) -> MetadataResult:
        """Extract metadata off the event loop."""
        return await asyncio.to_thread(self.extract_sync, upload, data)
