"""Models describing pipeline progress and run failures."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .analysis import ExtractionOutput
from .enums import FailurePhase, ProgressStage
from .evidence import FileError


class ProgressEvent(BaseModel):
    """Progress update for the presentation layer."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    stage: ProgressStage
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)


class RunFailure(BaseModel):
    """Why and where a run failed, with whatever partial output exists.

    Enough is kept for a caller to retry only the failed phase: the batch
    errors for processing failures, and the Phase 1 output for reasoning
    failures.
    """

    model_config = ConfigDict(frozen=True)

    phase: FailurePhase
    cause: str
    error_type: str
    retryable: bool = Field(default=False, description="True for transport failures")
    cancelled: bool = False
    batch_errors: tuple[FileError, ...] = ()
    partial_extraction: ExtractionOutput | None = None
    raw_response: str | None = Field(None, repr=False, description="Raw output of the failed phase")

    @property
    def raw_extraction_response(self) -> str | None:
        if self.partial_extraction is None:
            return None
        return self.partial_extraction.raw_response
