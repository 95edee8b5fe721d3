"""Normalization of remote output into validated result models.

The remote capability's vocabulary is not fully controlled: key names vary,
claims arrive as strings or objects, credibilities are sometimes omitted.
Everything here maps that output onto the models, dropping entries that
cannot be supported and raising RemoteProtocolError for output that cannot
be trusted at all.
"""

import re
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from evidence_analyzer.config.settings import Settings
from evidence_analyzer.errors import RemoteProtocolError
from evidence_analyzer.llm.client import RemoteResponse
from evidence_analyzer.llm.parsing import split_reasoning_steps, text_before_json
from evidence_analyzer.models import (
    AnalysisResult,
    Claim,
    ConfidenceScores,
    Contradiction,
    Credibility,
    EvidenceFile,
    ExtractionOutput,
    FileExtraction,
    TamperingIndicator,
    TimelineEvent,
)

logger = structlog.get_logger(__name__)

_FILE_NAME_KEYS = ("fileName", "file_name", "filename", "name", "file")
_STATEMENT_KEYS = ("statement", "claim", "text", "content")
_TIMESTAMP_KEYS = ("datetime", "timestamp", "date", "time")
_SOURCE_SPLIT = re.compile(r"[\s\-.]+")
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def _first(entry: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = entry.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _strings(values: Any) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, (str, int, float)):
        values = [values]
    if not isinstance(values, list):
        return ()
    return tuple(text for text in (_text(v) for v in values) if text)


class CredibilityPolicy:
    """Source credibility ranking, applied to every contradiction in a run.

    The ranking maps source-type keywords to credibility levels. A source
    takes the level of the first keyword found in its normalized name.
    """

    def __init__(self, ranking: dict[str, str], default: str = "low"):
        self.ranking = {keyword.lower(): Credibility(level) for keyword, level in ranking.items()}
        self.default = Credibility(default)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredibilityPolicy":
        return cls(settings.credibility_ranking, settings.default_credibility)

    def credibility_for(self, source: str) -> Credibility:
        name = _SOURCE_SPLIT.sub("_", source.lower())
        for keyword, level in self.ranking.items():
            if keyword in name:
                return level
        return self.default

    def describe(self) -> str:
        """Render the ranking for inclusion in the reasoning instruction."""
        lines = []
        for level in sorted(set(self.ranking.values()), key=lambda c: c.rank, reverse=True):
            keywords = ", ".join(k for k, v in self.ranking.items() if v == level)
            lines.append(f"- {level.value}: {keywords}")
        lines.append(f"- {self.default.value}: anything else")
        return "\n".join(lines)


# =============================================================================
# Phase 1
# =============================================================================

def _claim(item: Any, file_name: str, claim_id: str) -> Claim | None:
    if isinstance(item, dict):
        statement = _text(_first(item, _STATEMENT_KEYS))
        if not statement:
            return None
        return Claim(
            claim_id=claim_id,
            statement=statement,
            source=file_name,
            timestamp=_text(_first(item, _TIMESTAMP_KEYS)),
            speaker=_text(item.get("speaker")),
            context=_text(item.get("context")),
        )

    statement = _text(item)
    if not statement:
        return None
    return Claim(claim_id=claim_id, statement=statement, source=file_name)


def normalize_file_entry(entry: dict, file: EvidenceFile, position: int) -> FileExtraction:
    """Normalize one file's Phase 1 output. Claim ids are "F<position>-C<n>"."""
    items = entry.get("claims")
    if items is None:
        items = []
    elif isinstance(items, (str, dict)):
        items = [items]
    elif not isinstance(items, list):
        logger.warning("extraction_claims_malformed", file_name=file.name, type=type(items).__name__)
        items = []

    claims = []
    for item in items:
        claim = _claim(item, file.name, f"F{position}-C{len(claims) + 1}")
        if claim:
            claims.append(claim)

    metadata = entry.get("metadata")
    return FileExtraction(
        file_name=file.name,
        category=file.category,
        claims=tuple(claims),
        timestamps=_strings(entry.get("timestamps")),
        entities=_strings(entry.get("entities")),
        locations=_strings(entry.get("locations")),
        metadata=metadata if isinstance(metadata, dict) else {},
    )


def normalize_extraction(
    parsed: dict,
    files: list[EvidenceFile],
    raw_response: str | None = None,
    first_position: int = 1,
) -> ExtractionOutput:
    """Match Phase 1 entries to batch files and normalize their claims.

    Entries are matched by file name (case-insensitive), falling back to
    position when the name is missing. Entries naming files outside the
    batch are dropped. Files without an entry get an error instead of claims.
    File names must be unique within `files`; the orchestrator refuses
    batches that repeat a name.
    """
    by_name = {f.name.casefold(): f for f in files}
    positions = {f.name: first_position + i for i, f in enumerate(files)}
    entries: dict[str, FileExtraction] = {}

    for index, entry in enumerate(parsed.get("files") or []):
        if not isinstance(entry, dict):
            logger.warning("extraction_entry_malformed", index=index)
            continue

        name = _text(_first(entry, _FILE_NAME_KEYS))
        if name:
            file = by_name.get(name.casefold())
        else:
            file = files[index] if index < len(files) else None

        if file is None:
            logger.warning("extraction_entry_unknown_file", file_name=name)
            continue
        if file.name in entries:
            logger.warning("extraction_entry_duplicate", file_name=file.name)
            continue

        entries[file.name] = normalize_file_entry(entry, file, positions[file.name])

    results = []
    for file in files:
        extraction = entries.get(file.name)
        if extraction is None:
            extraction = FileExtraction(
                file_name=file.name,
                category=file.category,
                error="No extraction returned for this file",
            )
        if not extraction.claims:
            logger.info("file_yielded_no_claims", file_name=file.name, error=extraction.error)
        results.append(extraction)

    return ExtractionOutput(files=tuple(results), raw_response=raw_response)


# =============================================================================
# Phase 2
# =============================================================================

def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def order_timeline(events: list[TimelineEvent]) -> list[TimelineEvent]:
    """Order events by timestamp where known and narrative order otherwise.

    An approximate event keeps its place directly after the dated event that
    preceded it in the narrative.
    """
    keyed = []
    anchor = _EARLIEST
    for index, event in enumerate(events):
        moment = None if event.approximate else parse_timestamp(event.timestamp)
        if moment is not None:
            anchor = moment
        keyed.append(((anchor, index), event))

    keyed.sort(key=lambda pair: pair[0])
    return [event for _, event in keyed]


def _timeline_event(entry: dict) -> TimelineEvent | None:
    description = _text(_first(entry, ("event", "description", "what")))
    sources = _strings(entry.get("sources") or entry.get("source"))
    if not description or not sources:
        logger.warning("timeline_event_dropped", description=description, sources=list(sources))
        return None

    wording = _text(_first(entry, _TIMESTAMP_KEYS))
    approximate = bool(entry.get("approximate")) or wording is None or parse_timestamp(wording) is None

    return TimelineEvent(
        timestamp=wording or "undated",
        approximate=approximate,
        description=description,
        sources=sources,
        confidence=entry.get("confidence"),
        reasoning=_text(entry.get("reasoning")) or "",
    )


def _contradiction_side(side: Any, policy: CredibilityPolicy) -> dict:
    if not isinstance(side, dict):
        return {"statement": _text(side) or "", "source": ""}
    side = dict(side)
    side["source"] = _text(side.get("source")) or ""
    if not _text(side.get("credibility")) and side["source"]:
        side["credibility"] = policy.credibility_for(side["source"])
    return side


def _contradiction(entry: dict, index: int, policy: CredibilityPolicy) -> Contradiction | None:
    claim_a = _contradiction_side(entry.get("claim_a") or entry.get("claimA"), policy)
    claim_b = _contradiction_side(entry.get("claim_b") or entry.get("claimB"), policy)

    source_a = claim_a["source"].casefold()
    if source_a and source_a == claim_b["source"].casefold():
        logger.warning(
            "same_source_contradiction_dropped",
            contradiction_id=entry.get("id"),
            source=claim_a.get("source"),
        )
        return None

    return Contradiction(
        id=_text(entry.get("id")) or f"C{index}",
        severity=entry.get("severity"),
        claim_a=claim_a,
        claim_b=claim_b,
        analysis=_text(entry.get("analysis")),
        verdict=_text(entry.get("verdict")) or "",
        confidence=entry.get("confidence"),
    )


def _entries(parsed: dict, *keys: str) -> list[dict]:
    value = _first(parsed, keys)
    if value is None:
        return []
    if not isinstance(value, list):
        raise RemoteProtocolError(f"Expected a list for '{keys[0]}'", phase="reasoning")
    return [item for item in value if isinstance(item, dict)]


def normalize_analysis(
    parsed: dict,
    reasoning_steps: list[str],
    policy: CredibilityPolicy,
) -> AnalysisResult:
    """Build a validated AnalysisResult from Phase 2 output.

    Raises:
        RemoteProtocolError: Verdict or confidence scores missing, or any
            value failing validation (e.g. a confidence outside [0, 1]).
    """
    verdict = _text(_first(parsed, ("verdict", "summary", "finalVerdict")))
    if not verdict:
        raise RemoteProtocolError("Reasoning output has no verdict", phase="reasoning")

    scores = _first(parsed, ("confidenceScores", "confidence_scores"))
    if not isinstance(scores, dict):
        raise RemoteProtocolError("Reasoning output has no confidence scores", phase="reasoning")

    try:
        timeline = [
            event
            for event in (_timeline_event(e) for e in _entries(parsed, "timeline"))
            if event is not None
        ]
        contradictions = [
            c
            for c in (
                _contradiction(entry, index, policy)
                for index, entry in enumerate(_entries(parsed, "contradictions"), start=1)
            )
            if c is not None
        ]
        tampering = [
            TamperingIndicator(
                type=_text(entry.get("type")) or "unspecified",
                description=_text(entry.get("description")) or "",
                severity=entry.get("severity"),
                evidence=_text(entry.get("evidence")),
            )
            for entry in _entries(parsed, "tamperingIndicators", "tampering_indicators")
        ]

        return AnalysisResult(
            reasoning_steps=tuple(reasoning_steps),
            timeline=tuple(order_timeline(timeline)),
            contradictions=tuple(contradictions),
            tampering_indicators=tuple(tampering),
            confidence_scores=ConfidenceScores(**scores),
            verdict=verdict,
            reasoning=_text(parsed.get("reasoning")),
        )
    except PydanticValidationError as e:
        raise RemoteProtocolError(f"Reasoning output failed validation: {e}", phase="reasoning") from e


def derive_reasoning_steps(response: RemoteResponse, parsed: dict) -> list[str]:
    """Reasoning steps for a response that streamed none.

    Exposed thoughts win, then an explicit step list, then step-split text:
    a "thinking" field, prose before the JSON, and finally the "reasoning" field.
    """
    if response.thoughts:
        return list(response.thoughts)

    listed = _first(parsed, ("thinkingSteps", "reasoning_steps", "reasoningSteps"))
    if isinstance(listed, list):
        steps = list(_strings(listed))
        if steps:
            return steps

    for text in (parsed.get("thinking"), text_before_json(response.text), parsed.get("reasoning")):
        if isinstance(text, str):
            steps = split_reasoning_steps(text)
            if steps:
                return steps
    return []
