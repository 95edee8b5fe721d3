"""File validation, metadata extraction and payload encoding."""

from .encoder import PayloadEncoder, build_extraction_payload
from .metadata import (
    DocumentMetadataStrategy,
    ImageMetadataStrategy,
    MediaMetadataStrategy,
    MetadataExtractor,
    MetadataStrategy,
)
from .validator import FileValidator, ValidationOutcome

__all__ = [
    "FileValidator",
    "ValidationOutcome",
    "MetadataExtractor",
    "MetadataStrategy",
    "ImageMetadataStrategy",
    "MediaMetadataStrategy",
    "DocumentMetadataStrategy",
    "PayloadEncoder",
    "build_extraction_payload",
]
