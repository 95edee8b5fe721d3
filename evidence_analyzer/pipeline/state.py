"""Run state machine and the per-run handle owned by the orchestrator."""

import asyncio
import uuid
from collections.abc import AsyncIterator
from datetime import datetime

import structlog

from evidence_analyzer.errors import InvalidTransitionError
from evidence_analyzer.models import (
    AnalysisResult,
    BatchResult,
    EvidenceUpload,
    ExtractionOutput,
    FailurePhase,
    RunFailure,
    RunState,
)

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.IDLE: frozenset({RunState.PROCESSING}),
    RunState.PROCESSING: frozenset({RunState.EXTRACTING, RunState.FAILED}),
    RunState.EXTRACTING: frozenset({RunState.REASONING, RunState.FAILED}),
    RunState.REASONING: frozenset({RunState.COMPLETE, RunState.FAILED}),
    RunState.COMPLETE: frozenset(),
    RunState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({RunState.COMPLETE, RunState.FAILED})

STATE_PHASES = {
    RunState.PROCESSING: FailurePhase.PROCESSING,
    RunState.EXTRACTING: FailurePhase.EXTRACTION,
    RunState.REASONING: FailurePhase.REASONING,
}

_END = object()


class ReasoningStepStream:
    """Single-consumer stream of reasoning steps, closed when the run ends."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._consumed = False
        self.steps: list[str] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, step: str) -> bool:
        if self._closed:
            return False
        self.steps.append(step)
        self._queue.put_nowait(step)
        return True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("Reasoning steps can only be consumed once per run")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item


class PipelineRun:
    """One analysis run: its state, history and whatever output it produced.

    Only the orchestrator mutates a run. Callers observe it through the
    attributes, `wait()` and `reasoning_steps()`.
    """

    def __init__(self, uploads: list[EvidenceUpload], run_id: str | None = None):
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.uploads = tuple(uploads)
        self.state = RunState.IDLE
        self.history: list[tuple[RunState, datetime]] = [(RunState.IDLE, datetime.now())]
        self.cancelled = False

        self.batch: BatchResult | None = None
        self.extraction: ExtractionOutput | None = None
        self.result: AnalysisResult | None = None
        self.failure: RunFailure | None = None

        self.task: asyncio.Task | None = None
        self._steps = ReasoningStepStream()
        self._done = asyncio.Event()

    def __repr__(self) -> str:
        return f"PipelineRun(run_id={self.run_id!r}, state={self.state.value!r}, files={len(self.uploads)})"

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def phase(self) -> FailurePhase | None:
        """Phase the run is in, None outside the working states."""
        return STATE_PHASES.get(self.state)

    def can_transition(self, new_state: RunState) -> bool:
        return new_state in ALLOWED_TRANSITIONS[self.state]

    def transition(self, new_state: RunState) -> None:
        """Move to a new state.

        Raises:
            InvalidTransitionError: If the transition is not in the table.
        """
        if not self.can_transition(new_state):
            raise InvalidTransitionError(
                f"Run {self.run_id}: illegal transition {self.state.value} -> {new_state.value}"
            )
        logger.debug("run_state_transition", run_id=self.run_id, from_state=self.state.value, to_state=new_state.value)
        self.state = new_state
        self.history.append((new_state, datetime.now()))

    def emit_step(self, step: str) -> bool:
        return self._steps.emit(step)

    @property
    def emitted_steps(self) -> list[str]:
        return list(self._steps.steps)

    def reasoning_steps(self) -> AsyncIterator[str]:
        """Steps as they are produced. Finite, ends with the run, consumable once."""
        return aiter(self._steps)

    def complete(self, result: AnalysisResult) -> None:
        self.transition(RunState.COMPLETE)
        self.result = result
        self._finish()

    def fail(self, failure: RunFailure) -> None:
        self.transition(RunState.FAILED)
        self.failure = failure
        self._finish()

    def cancel(self, reason: str) -> bool:
        """Abandon the run, discarding its partial output.

        Returns:
            False if the run had already finished.
        """
        if self.is_terminal or self.cancelled:
            return False

        self.cancelled = True
        self.batch = None
        self.extraction = None

        if self.state == RunState.IDLE:
            self._finish()
        else:
            self.fail(
                RunFailure(
                    phase=self.phase,
                    cause=reason,
                    error_type="CancelledError",
                    cancelled=True,
                )
            )

        if self.task is not None and not self.task.done():
            self.task.cancel()
        logger.info("run_cancelled", run_id=self.run_id, reason=reason)
        return True

    async def wait(self) -> "PipelineRun":
        """Wait until the run reaches a terminal state (or is cancelled)."""
        await self._done.wait()
        return self

    def _finish(self) -> None:
        self._steps.close()
        self._done.set()
