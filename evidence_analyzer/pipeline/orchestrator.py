"""Analysis orchestrator - drives a batch through processing and both phases.

Processing  → validate, extract metadata and encode every file
Phase 1     → extract atomic claims per file (remote capability)
Phase 2     → cross-reference claims into timeline, contradictions, verdict

Exactly one run is current at a time. Submitting a new batch replaces the
current-run handle and cancels the previous run; anything the previous run
produces afterwards is discarded.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from evidence_analyzer.config.settings import Settings, get_settings
from evidence_analyzer.errors import (
    BatchIncompleteError,
    BatchTooSmallError,
    EvidenceAnalyzerError,
    RemoteError,
    RemoteProtocolError,
    RemoteTransportError,
    ValidationError,
)
from evidence_analyzer.llm.chains import run_extraction_chain, run_reasoning_chain
from evidence_analyzer.llm.client import LangChainCapability, RemoteCapability
from evidence_analyzer.models import (
    AnalysisResult,
    BatchResult,
    EvidenceFile,
    EvidenceUpload,
    ExtractionOutput,
    FileExtraction,
    ProgressEvent,
    ProgressStage,
    RunFailure,
    RunState,
)
from evidence_analyzer.pipeline.normalize import (
    CredibilityPolicy,
    derive_reasoning_steps,
    normalize_analysis,
    normalize_extraction,
)
from evidence_analyzer.pipeline.state import PipelineRun
from evidence_analyzer.processing.batch import EvidenceBatchProcessor

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class _StaleRun(Exception):
    """The run stopped being current while it was suspended."""

    pass


class AnalysisOrchestrator:
    """Owns the current run and moves it through the pipeline states."""

    def __init__(
        self,
        capability: RemoteCapability | None = None,
        settings: Settings | None = None,
        processor: EvidenceBatchProcessor | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.settings = settings or get_settings()
        self.capability = capability if capability is not None else LangChainCapability()
        self.processor = processor or EvidenceBatchProcessor(self.settings)
        self.policy = CredibilityPolicy.from_settings(self.settings)
        self.on_progress = on_progress
        self._current: PipelineRun | None = None

    @property
    def current_run(self) -> PipelineRun | None:
        return self._current

    def submit(self, uploads: list[EvidenceUpload]) -> PipelineRun:
        """Start a run for a batch, cancelling the current one.

        Must be called from a running event loop. Returns immediately; use
        `PipelineRun.wait()` for the outcome.

        Raises:
            BatchTooSmallError: Fewer files than a cross-source analysis needs.
                No run is created and the current run is left alone.
            ValidationError: Two files share a name. Names identify sources
                in both phases, so they must be unique (case-insensitive).
        """
        uploads = list(uploads)
        if len(uploads) < self.settings.min_batch_files:
            raise BatchTooSmallError(
                f"At least {self.settings.min_batch_files} files are needed for "
                f"cross-source analysis, got {len(uploads)}"
            )

        seen: set[str] = set()
        duplicates = []
        for upload in uploads:
            key = upload.name.casefold()
            if key in seen:
                duplicates.append(upload.name)
            seen.add(key)
        if duplicates:
            raise ValidationError(f"File names must be unique within a batch: {', '.join(duplicates)}")

        loop = asyncio.get_running_loop()
        run = PipelineRun(uploads)

        # Replace the handle before anything can suspend
        previous, self._current = self._current, run
        if previous is not None:
            previous.cancel(f"Superseded by run {run.run_id}")

        run.transition(RunState.PROCESSING)
        logger.info("analysis_run_submitted", run_id=run.run_id, files=len(uploads))
        self._report(run, ProgressStage.UPLOADING, f"Processing {len(uploads)} files...")

        run.task = loop.create_task(self._execute(run), name=f"analysis-{run.run_id}")
        return run

    async def analyze(self, uploads: list[EvidenceUpload]) -> PipelineRun:
        """Submit a batch and wait for the run to finish."""
        run = self.submit(uploads)
        return await run.wait()

    def cancel(self, reason: str = "Cancelled by caller") -> bool:
        """Cancel the current run. Returns False if nothing was in flight."""
        if self._current is None:
            return False
        return self._current.cancel(reason)

    def _is_current(self, run: PipelineRun) -> bool:
        return self._current is run and not run.cancelled

    def _ensure_current(self, run: PipelineRun) -> None:
        if not self._is_current(run):
            raise _StaleRun(run.run_id)

    async def _execute(self, run: PipelineRun) -> None:
        started = datetime.now()
        logger.info("analysis_run_start", run_id=run.run_id, files=len(run.uploads))

        try:
            batch = await self._run_processing(run)
            extraction = await self._run_extraction(run, batch)
            result = await self._run_reasoning(run, extraction)

            self._ensure_current(run)
            run.complete(result)

            logger.info(
                "analysis_run_complete",
                run_id=run.run_id,
                duration_seconds=round((datetime.now() - started).total_seconds(), 2),
                timeline_events=len(result.timeline),
                contradictions=len(result.contradictions),
                overall_confidence=result.confidence_scores.overall,
            )
            self._report(
                run,
                ProgressStage.COMPLETE,
                f"Analysis complete: {len(result.contradictions)} contradictions found",
            )

        except _StaleRun:
            logger.info("stale_run_output_discarded", run_id=run.run_id)
        except asyncio.CancelledError:
            if not run.cancelled:
                run.cancel("Run task was cancelled")
            raise
        except Exception as e:
            self._fail(run, e)

    async def _run_processing(self, run: PipelineRun) -> BatchResult:
        """Validate, extract metadata and encode every file."""
        stage_start = datetime.now()
        logger.info("processing_start", run_id=run.run_id, files=len(run.uploads))

        batch = await self.processor.process(list(run.uploads))
        self._ensure_current(run)
        run.batch = batch

        if not batch.success:
            logger.warning(
                "processing_batch_incomplete",
                run_id=run.run_id,
                failed_files=batch.failed_files,
                errors=batch.errors_by_file(),
            )
            raise BatchIncompleteError(
                f"{batch.failed_files} of {batch.total_files} files failed processing",
                errors=list(batch.errors),
            )

        logger.info(
            "processing_complete",
            run_id=run.run_id,
            files=batch.successful_files,
            duration_seconds=round((datetime.now() - stage_start).total_seconds(), 2),
        )

        run.transition(RunState.EXTRACTING)
        self._report(
            run,
            ProgressStage.EXTRACTING,
            f"Phase 1: extracting claims from {batch.successful_files} files...",
        )
        return batch

    async def _run_extraction(self, run: PipelineRun, batch: BatchResult) -> ExtractionOutput:
        """Phase 1: extract claims, batched or one request per file."""
        stage_start = datetime.now()
        files = batch.successful
        mode = self.settings.extraction_mode
        logger.info("phase_1_extraction_start", run_id=run.run_id, files=len(files), mode=mode)

        errors: list[RemoteError] = []
        if mode == "per_file":
            extraction, errors = await self._extract_per_file(run, files)
        else:
            parsed, response = await run_extraction_chain(self.capability, files)
            self._ensure_current(run)
            extraction = normalize_extraction(parsed, files, raw_response=response.text)

        run.extraction = extraction

        if not extraction.files_with_claims:
            if errors and all(isinstance(e, RemoteTransportError) for e in errors):
                raise RemoteTransportError(
                    f"All {len(errors)} extraction requests failed: {errors[0]}",
                    phase="extraction",
                )
            raise RemoteProtocolError(
                "No file yielded any claims",
                phase="extraction",
                raw_response=extraction.raw_response,
            )

        logger.info(
            "phase_1_complete",
            run_id=run.run_id,
            claims=len(extraction.claims),
            files_with_claims=len(extraction.files_with_claims),
            files_without_claims=len(files) - len(extraction.files_with_claims),
            duration_seconds=round((datetime.now() - stage_start).total_seconds(), 2),
        )

        run.transition(RunState.REASONING)
        self._report(
            run,
            ProgressStage.REASONING,
            f"Phase 2: cross-referencing {len(extraction.claims)} claims...",
        )
        return extraction

    async def _extract_per_file(
        self,
        run: PipelineRun,
        files: list[EvidenceFile],
    ) -> tuple[ExtractionOutput, list[RemoteError]]:
        async def extract_one(position: int, file: EvidenceFile):
            try:
                parsed, response = await run_extraction_chain(self.capability, [file])
            except RemoteError as e:
                logger.warning(
                    "file_extraction_failed",
                    run_id=run.run_id,
                    file_name=file.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                failed = FileExtraction(file_name=file.name, category=file.category, error=str(e))
                return failed, e.raw_response, e

            output = normalize_extraction(parsed, [file], raw_response=response.text, first_position=position)
            return output.files[0], response.text, None

        results = await asyncio.gather(*(extract_one(i, f) for i, f in enumerate(files, start=1)))
        self._ensure_current(run)

        raw = "\n\n".join(text for _, text, _ in results if text)
        extraction = ExtractionOutput(files=tuple(r[0] for r in results), raw_response=raw or None)
        return extraction, [e for _, _, e in results if e is not None]

    async def _run_reasoning(self, run: PipelineRun, extraction: ExtractionOutput) -> AnalysisResult:
        """Phase 2: cross-reference the complete claim set."""
        stage_start = datetime.now()
        logger.info("phase_2_reasoning_start", run_id=run.run_id, claims=len(extraction.claims))

        def on_thought(step: str) -> None:
            if self._is_current(run):
                run.emit_step(step)

        parsed, response = await run_reasoning_chain(
            self.capability,
            extraction,
            self.policy.describe(),
            on_thought=on_thought,
        )
        self._ensure_current(run)

        if not run.emitted_steps:
            for step in derive_reasoning_steps(response, parsed):
                run.emit_step(step)

        result = normalize_analysis(parsed, run.emitted_steps, self.policy)

        logger.info(
            "phase_2_complete",
            run_id=run.run_id,
            reasoning_steps=len(result.reasoning_steps),
            timeline_events=len(result.timeline),
            contradictions=len(result.contradictions),
            critical=len(result.critical_contradictions),
            tampering_indicators=len(result.tampering_indicators),
            duration_seconds=round((datetime.now() - stage_start).total_seconds(), 2),
        )
        return result

    def _fail(self, run: PipelineRun, error: Exception) -> None:
        if not self._is_current(run):
            logger.info("stale_run_error_discarded", run_id=run.run_id, error=str(error))
            return

        if not isinstance(error, EvidenceAnalyzerError):
            logger.exception("analysis_run_unexpected_error", run_id=run.run_id)

        phase = run.phase
        failure = RunFailure(
            phase=phase,
            cause=str(error) or type(error).__name__,
            error_type=type(error).__name__,
            retryable=isinstance(error, RemoteTransportError),
            batch_errors=tuple(error.errors) if isinstance(error, BatchIncompleteError) else (),
            partial_extraction=run.extraction,
            raw_response=getattr(error, "raw_response", None),
        )
        run.fail(failure)

        logger.error(
            "analysis_run_failed",
            run_id=run.run_id,
            phase=phase.value,
            error=failure.cause,
            error_type=failure.error_type,
            retryable=failure.retryable,
        )
        self._report(run, ProgressStage.FAILED, f"Failed during {phase.value}: {failure.cause}")

    def _report(self, run: PipelineRun, stage: ProgressStage, message: str) -> None:
        if self.on_progress is None:
            return
        event = ProgressEvent(run_id=run.run_id, stage=stage, message=message)
        try:
            self.on_progress(event)
        except Exception:
            logger.exception("progress_callback_failed", run_id=run.run_id, stage=stage.value)
