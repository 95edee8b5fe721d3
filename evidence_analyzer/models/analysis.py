"""Models for extracted claims and the reconciled analysis result.

Phase 1 (extraction)  → ExtractionOutput (FileExtraction, Claim)
Phase 2 (reasoning)   → AnalysisResult (TimelineEvent, Contradiction,
                        TamperingIndicator, ConfidenceScores)

Severity, credibility and confidence levels are normalized rather than
rejected; structural invariants (cross-source contradictions, scores in
[0, 1]) are enforced at construction.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import ConfidenceLevel, Credibility, FileCategory, Severity


# =============================================================================
# Phase 1: Extraction
# =============================================================================

class Claim(BaseModel):
    """An atomic assertion extracted from one evidence file."""

    model_config = ConfigDict(frozen=True)

    claim_id: str = Field(..., description="Run-local identifier (e.g. 'F1-C3')")
    statement: str = Field(..., min_length=1)
    source: str = Field(..., description="Name of the file the claim came from")
    timestamp: str | None = Field(None, description="When the claimed event happened")
    speaker: str | None = Field(None, description="Who made the claim")
    context: str | None = None


class FileExtraction(BaseModel):
    """Phase 1 output for a single file."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    category: FileCategory = FileCategory.UNKNOWN
    claims: tuple[Claim, ...] = ()
    timestamps: tuple[str, ...] = ()
    entities: tuple[str, ...] = ()
    locations: tuple[str, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = Field(None, description="Why extraction failed for this file")


class ExtractionOutput(BaseModel):
    """Complete Phase 1 output for a batch."""

    model_config = ConfigDict(frozen=True)

    files: tuple[FileExtraction, ...] = ()
    raw_response: str | None = Field(None, repr=False)

    @property
    def claims(self) -> list[Claim]:
        return [claim for file in self.files for claim in file.claims]

    @property
    def files_with_claims(self) -> list[str]:
        return [file.file_name for file in self.files if file.claims]

    def to_payload(self) -> dict:
        """JSON-ready form forwarded to the reasoning phase."""
        return {
            "files": [
                {
                    "fileName": file.file_name,
                    "category": file.category.value,
                    "claims": [
                        claim.model_dump(exclude_none=True, exclude={"source"})
                        for claim in file.claims
                    ],
                    "timestamps": list(file.timestamps),
                    "entities": list(file.entities),
                    "locations": list(file.locations),
                    "metadata": file.metadata,
                }
                for file in self.files
                if file.claims
            ]
        }


# =============================================================================
# Phase 2: Reasoning
# =============================================================================

class TimelineEvent(BaseModel):
    """A reconciled point-in-time assertion supported by one or more files."""

    model_config = ConfigDict(frozen=True)

    timestamp: str = Field(..., description="ISO-8601, or original wording when approximate")
    approximate: bool = Field(default=False, description="Timestamp could not be pinned down")
    description: str
    sources: tuple[str, ...] = Field(..., min_length=1)
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, value):
        return ConfidenceLevel(value)


class ContradictionClaim(BaseModel):
    """One side of a contradiction."""

    model_config = ConfigDict(frozen=True)

    statement: str
    source: str = Field(..., min_length=1)
    credibility: Credibility = Credibility.LOW

    @field_validator("credibility", mode="before")
    @classmethod
    def _normalize_credibility(cls, value):
        return Credibility(value)


class Contradiction(BaseModel):
    """Two conflicting claims from different sources."""

    model_config = ConfigDict(frozen=True)

    id: str
    severity: Severity = Severity.MINOR
    claim_a: ContradictionClaim
    claim_b: ContradictionClaim
    analysis: str | None = None
    verdict: str
    confidence: float = Field(..., ge=0.0, le=1.0)

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value):
        return Severity(value)

    @model_validator(mode="after")
    def _require_distinct_sources(self) -> "Contradiction":
        if self.claim_a.source.strip().casefold() == self.claim_b.source.strip().casefold():
            raise ValueError(
                f"Contradiction {self.id} pairs two claims from the same source: {self.claim_a.source}"
            )
        return self

    @property
    def more_credible(self) -> ContradictionClaim | None:
        """The side with the higher credibility, or None on a tie."""
        if self.claim_a.credibility.rank == self.claim_b.credibility.rank:
            return None
        if self.claim_a.credibility.rank > self.claim_b.credibility.rank:
            return self.claim_a
        return self.claim_b


class TamperingIndicator(BaseModel):
    """Sign that evidence may have been manipulated."""

    model_config = ConfigDict(frozen=True)

    type: str
    description: str
    severity: Severity = Severity.MINOR
    evidence: str | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value):
        return Severity(value)


class ConfidenceScores(BaseModel):
    """Overall and per-axis confidence, every value in [0, 1]."""

    model_config = ConfigDict(frozen=True, extra="allow")

    overall: float = Field(..., ge=0.0, le=1.0)
    metadata: float | None = Field(None, ge=0.0, le=1.0)
    content: float | None = Field(None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_extra_axes(self) -> "ConfidenceScores":
        for axis, value in (self.model_extra or {}).items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"Confidence axis {axis!r} is not numeric: {value!r}")
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Confidence axis {axis!r} outside [0, 1]: {value}")
        return self

    def as_dict(self) -> dict[str, float]:
        return self.model_dump(exclude_none=True)


class AnalysisResult(BaseModel):
    """Terminal artifact of a completed analysis run."""

    model_config = ConfigDict(frozen=True)

    reasoning_steps: tuple[str, ...] = ()
    timeline: tuple[TimelineEvent, ...] = ()
    contradictions: tuple[Contradiction, ...] = ()
    tampering_indicators: tuple[TamperingIndicator, ...] = ()
    confidence_scores: ConfidenceScores
    verdict: str = Field(..., min_length=1, description="One-paragraph summary verdict")
    reasoning: str | None = None

    @property
    def critical_contradictions(self) -> list[Contradiction]:
        return [c for c in self.contradictions if c.severity == Severity.CRITICAL]
