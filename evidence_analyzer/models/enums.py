"""Enumeration types for evidence files, findings and pipeline runs."""

from enum import Enum

import structlog

logger = structlog.get_logger(__name__)


class FileCategory(str, Enum):
    """Evidence file category, derived from the declared media type."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    UNKNOWN = "unknown"


class FileStatus(str, Enum):
    """Outcome of validating and encoding one file."""

    OK = "ok"
    FAILED = "failed"


# Vocabulary the remote capability is known to use for the ordered levels.
_LEVEL_ALIASES: dict[str, dict[str, str]] = {
    "Severity": {
        "low": "minor",
        "moderate": "medium",
        "major": "high",
        "severe": "critical",
    },
    "Credibility": {
        "very high": "very_high",
        "veryhigh": "very_high",
        "moderate": "medium",
        "very_low": "low",
    },
    "ConfidenceLevel": {
        "very high": "very_high",
        "veryhigh": "very_high",
        "moderate": "medium",
        "very_low": "low",
    },
}


class OrderedLevel(str, Enum):
    """Ordered qualitative level. Members are declared lowest first.

    Unrecognized values normalize to the lowest member instead of failing,
    because the values come from a remote capability whose vocabulary is
    not fully controlled.
    """

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_")
            key = _LEVEL_ALIASES.get(cls.__name__, {}).get(key, key).replace(" ", "_")
            for member in cls:
                if member.value == key:
                    return member
        logger.warning("unrecognized_level_normalized", level_type=cls.__name__, value=str(value))
        return cls.lowest()

    @classmethod
    def lowest(cls):
        return next(iter(cls))

    @property
    def rank(self) -> int:
        """Position in the total order, 0 for the lowest member."""
        return list(type(self)).index(self)


class Severity(OrderedLevel):
    """Materiality of a contradiction or tampering indicator."""

    MINOR = "minor"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Credibility(OrderedLevel):
    """Qualitative trust rating of one claim or source."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class ConfidenceLevel(OrderedLevel):
    """Confidence attached to a reconciled timeline event."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class RunState(str, Enum):
    """States of one analysis pipeline run."""

    IDLE = "idle"
    PROCESSING = "processing"
    EXTRACTING = "extracting"
    REASONING = "reasoning"
    COMPLETE = "complete"
    FAILED = "failed"


class FailurePhase(str, Enum):
    """Pipeline phase in which a run failed."""

    PROCESSING = "processing"
    EXTRACTION = "extraction"
    REASONING = "reasoning"


class ProgressStage(str, Enum):
    """Coarse progress reported to the presentation layer."""

    UPLOADING = "uploading"
    EXTRACTING = "extracting"
    REASONING = "reasoning"
    COMPLETE = "complete"
    FAILED = "failed"
