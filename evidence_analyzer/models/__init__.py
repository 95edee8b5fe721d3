"""Pydantic data models for evidence processing and analysis."""

from .enums import (
    ConfidenceLevel,
    Credibility,
    FailurePhase,
    FileCategory,
    FileStatus,
    ProgressStage,
    RunState,
    Severity,
)
from .evidence import (
    BatchResult,
    BatchSummary,
    ContentBlock,
    EvidenceFile,
    EvidenceUpload,
    FileError,
    MetadataResult,
    category_for_media_type,
)
from .analysis import (
    AnalysisResult,
    Claim,
    ConfidenceScores,
    Contradiction,
    ContradictionClaim,
    ExtractionOutput,
    FileExtraction,
    TamperingIndicator,
    TimelineEvent,
)
from .run import ProgressEvent, RunFailure

__all__ = [
    # Enums
    "FileCategory",
    "FileStatus",
    "Severity",
    "Credibility",
    "ConfidenceLevel",
    "RunState",
    "FailurePhase",
    "ProgressStage",
    # Evidence
    "EvidenceUpload",
    "EvidenceFile",
    "MetadataResult",
    "ContentBlock",
    "FileError",
    "BatchResult",
    "BatchSummary",
    "category_for_media_type",
    # Phase 1
    "Claim",
    "FileExtraction",
    "ExtractionOutput",
    # Phase 2
    "TimelineEvent",
    "ContradictionClaim",
    "Contradiction",
    "TamperingIndicator",
    "ConfidenceScores",
    "AnalysisResult",
    # Runs
    "ProgressEvent",
    "RunFailure",
]
