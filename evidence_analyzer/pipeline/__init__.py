"""Analysis pipeline: run state machine, orchestration and output normalization."""

from .normalize import CredibilityPolicy, normalize_analysis, normalize_extraction, order_timeline
from .orchestrator import AnalysisOrchestrator
from .state import ALLOWED_TRANSITIONS, PipelineRun, ReasoningStepStream

__all__ = [
    "AnalysisOrchestrator",
    "PipelineRun",
    "ReasoningStepStream",
    "ALLOWED_TRANSITIONS",
    "CredibilityPolicy",
    "normalize_extraction",
    "normalize_analysis",
    "order_timeline",
]
