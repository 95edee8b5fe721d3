"""Unit tests for normalizing remote output into result models."""

import json

import pytest

from evidence_analyzer.config.settings import Settings
from evidence_analyzer.errors import RemoteProtocolError
from evidence_analyzer.llm.client import RemoteResponse
from evidence_analyzer.models import (
    ConfidenceLevel,
    Credibility,
    EvidenceFile,
    FileCategory,
    Severity,
    TimelineEvent,
)
from evidence_analyzer.pipeline.normalize import (
    CredibilityPolicy,
    derive_reasoning_steps,
    normalize_analysis,
    normalize_extraction,
    order_timeline,
    parse_timestamp,
)

from tests.media import INTERVIEW_NAME, TRANSCRIPT_NAME


def _file(name: str) -> EvidenceFile:
    return EvidenceFile(
        name=name,
        media_type="application/pdf",
        size=10,
        category=FileCategory.DOCUMENT,
        content={"file_name": name, "media_type": "application/pdf", "data": "AA==", "byte_size": 1},
    )


@pytest.fixture
def files() -> list[EvidenceFile]:
    return [_file(TRANSCRIPT_NAME), _file(INTERVIEW_NAME)]


@pytest.fixture
def policy() -> CredibilityPolicy:
    return CredibilityPolicy.from_settings(Settings(_env_file=None))


def _event(timestamp: str, description: str, approximate: bool = False) -> TimelineEvent:
    return TimelineEvent(
        timestamp=timestamp,
        approximate=approximate,
        description=description,
        sources=("a.pdf",),
    )


class TestCredibilityPolicy:
    """Tests for the source credibility ranking."""

    @pytest.mark.parametrize(
        "source,expected",
        [
            ("executive_floor_access_log.png", Credibility.VERY_HIGH),
            ("merrill_lynch_statement.pdf", Credibility.VERY_HIGH),
            ("email_martinez_chen.pdf", Credibility.HIGH),
            ("quarterly_meeting_transcript.pdf", Credibility.HIGH),
            ("ceo_interview_script.txt", Credibility.LOW),
            ("IMG_0042.jpg", Credibility.LOW),
        ],
    )
    def test_default_ranking(self, policy, source, expected):
        assert policy.credibility_for(source) == expected

    def test_separators_normalized(self, policy):
        assert policy.credibility_for("Access-Log March.png") == Credibility.VERY_HIGH

    def test_custom_ranking(self):
        policy = CredibilityPolicy({"affidavit": "very_high"}, default="medium")
        assert policy.credibility_for("smith_affidavit.pdf") == Credibility.VERY_HIGH
        assert policy.credibility_for("notes.pdf") == Credibility.MEDIUM

    def test_describe_lists_levels_highest_first(self, policy):
        lines = policy.describe().splitlines()
        assert lines[0].startswith("- very_high: access_log")
        assert lines[-1] == "- low: anything else"


class TestNormalizeExtraction:
    """Tests for Phase 1 normalization."""

    def test_claims_from_objects_and_strings(self, files, extraction_reply):
        parsed = json.loads(extraction_reply.split("\n", 1)[1])

        output = normalize_extraction(parsed, files, raw_response=extraction_reply)

        transcript, interview = output.files
        assert [c.claim_id for c in transcript.claims] == ["F1-C1", "F1-C2"]
        assert transcript.claims[0].speaker == "Michael Chen"
        assert transcript.claims[0].timestamp == "2025-03-05"
        assert transcript.claims[1].statement == "Board was briefed on the Zenith acquisition on March 15th"
        assert transcript.claims[1].source == TRANSCRIPT_NAME
        assert interview.claims[0].claim_id == "F2-C1"
        assert transcript.entities == ("Michael Chen", "Zenith Corp")
        assert output.raw_response == extraction_reply

    def test_file_names_matched_case_insensitively(self, files):
        parsed = {"files": [{"fileName": INTERVIEW_NAME.upper(), "claims": ["x"]}]}

        output = normalize_extraction(parsed, files)

        assert output.files_with_claims == [INTERVIEW_NAME]
        assert output.files[0].error == "No extraction returned for this file"

    def test_unknown_and_duplicate_entries_dropped(self, files):
        parsed = {
            "files": [
                {"fileName": "someone_else.pdf", "claims": ["x"]},
                {"fileName": TRANSCRIPT_NAME, "claims": ["first"]},
                {"fileName": TRANSCRIPT_NAME, "claims": ["second"]},
                "not an object",
            ]
        }

        output = normalize_extraction(parsed, files)

        assert [c.statement for c in output.claims] == ["first"]

    def test_positional_fallback_when_name_missing(self, files):
        parsed = {"files": [{"claims": ["a"]}, {"claims": ["b"]}]}

        output = normalize_extraction(parsed, files)

        assert [c.source for c in output.claims] == [TRANSCRIPT_NAME, INTERVIEW_NAME]

    def test_blank_claims_skipped(self, files):
        parsed = {"files": [{"fileName": TRANSCRIPT_NAME, "claims": ["", {"statement": "  "}, {"claim": "kept"}]}]}

        output = normalize_extraction(parsed, files)

        assert [(c.claim_id, c.statement) for c in output.claims] == [("F1-C1", "kept")]

    def test_single_string_claim(self, files):
        parsed = {"files": [{"fileName": TRANSCRIPT_NAME, "claims": "Met on March 5"}]}

        output = normalize_extraction(parsed, files)

        assert [c.statement for c in output.claims] == ["Met on March 5"]

    @pytest.mark.parametrize("claims", [42, 3.5, True])
    def test_non_list_claims_dropped(self, files, claims):
        parsed = {"files": [{"fileName": TRANSCRIPT_NAME, "claims": claims}]}

        output = normalize_extraction(parsed, files)

        assert output.claims == []
        assert output.files_with_claims == []

    def test_first_position_offsets_ids(self, files):
        parsed = {"files": [{"fileName": INTERVIEW_NAME, "claims": ["x"]}]}

        output = normalize_extraction(parsed, files[1:], first_position=2)

        assert output.claims[0].claim_id == "F2-C1"


class TestTimeline:
    """Tests for timeline ordering."""

    def test_parse_timestamp(self):
        assert parse_timestamp("2025-03-05T08:42:15Z").tzinfo is not None
        assert parse_timestamp("2025-03-05") == parse_timestamp("2025-03-05T00:00:00+00:00")
        assert parse_timestamp("late February") is None

    def test_known_timestamps_sorted(self):
        events = [_event("2025-03-20", "c"), _event("2025-03-05T08:00:00Z", "a"), _event("2025-03-08", "b")]
        assert [e.description for e in order_timeline(events)] == ["a", "b", "c"]

    def test_mixed_offsets_compare_as_instants(self):
        events = [_event("2025-03-05T10:00:00+02:00", "later"), _event("2025-03-05T07:30:00Z", "earlier")]
        assert [e.description for e in order_timeline(events)] == ["earlier", "later"]

    def test_approximate_events_follow_their_narrative_predecessor(self):
        events = [
            _event("around then", "leading", approximate=True),
            _event("2025-03-20", "interview"),
            _event("2025-03-05", "meeting"),
            _event("that evening", "trades", approximate=True),
        ]
        assert [e.description for e in order_timeline(events)] == ["leading", "meeting", "trades", "interview"]

    def test_stable_for_equal_timestamps(self):
        events = [_event("2025-03-05", "first"), _event("2025-03-05", "second")]
        assert [e.description for e in order_timeline(events)] == ["first", "second"]


class TestNormalizeAnalysis:
    """Tests for Phase 2 normalization."""

    def test_complete_result(self, reasoning_payload, policy):
        result = normalize_analysis(reasoning_payload, ["Step 1: look"], policy)

        assert result.reasoning_steps == ("Step 1: look",)
        assert [e.description for e in result.timeline] == [
            "Executive strategic session on Zenith",
            "Informal conversations with Zenith begin",
            "CEO claims he first heard of the deal on March 15",
        ]
        assert result.timeline[1].approximate is True
        assert result.timeline[1].timestamp == "late February"
        assert result.timeline[0].confidence == ConfidenceLevel.VERY_HIGH

        (contradiction,) = result.contradictions
        assert contradiction.severity == Severity.CRITICAL
        assert contradiction.confidence == 0.97
        assert contradiction.claim_a.credibility == Credibility.LOW
        # Filled from the ranking table
        assert contradiction.claim_b.credibility == Credibility.HIGH
        assert contradiction.more_credible.source == TRANSCRIPT_NAME
        assert result.confidence_scores.overall == 0.95

    def test_same_source_contradiction_dropped(self, reasoning_payload, policy):
        same = dict(reasoning_payload["contradictions"][0])
        same["id"] = "C2"
        same["claim_b"] = {"statement": "Other wording", "source": INTERVIEW_NAME.upper()}
        reasoning_payload["contradictions"].append(same)

        result = normalize_analysis(reasoning_payload, [], policy)

        assert [c.id for c in result.contradictions] == ["C1"]

    @pytest.mark.parametrize("side", ["claim_a", "claim_b"])
    def test_null_source_is_protocol_error(self, reasoning_payload, policy, side):
        reasoning_payload["contradictions"][0][side]["source"] = None

        with pytest.raises(RemoteProtocolError):
            normalize_analysis(reasoning_payload, [], policy)

    def test_numeric_source_is_coerced(self, reasoning_payload, policy):
        reasoning_payload["contradictions"][0]["claim_a"]["source"] = 42

        result = normalize_analysis(reasoning_payload, [], policy)

        assert result.contradictions[0].claim_a.source == "42"

    def test_numeric_sources_compared_as_text(self, reasoning_payload, policy):
        contradiction = reasoning_payload["contradictions"][0]
        contradiction["claim_a"]["source"] = 7
        contradiction["claim_b"]["source"] = " 7 "

        result = normalize_analysis(reasoning_payload, [], policy)

        assert result.contradictions == ()

    def test_unknown_levels_normalized(self, reasoning_payload, policy):
        reasoning_payload["contradictions"][0]["severity"] = "earth-shattering"
        reasoning_payload["contradictions"][0]["claim_a"]["credibility"] = "dubious"
        reasoning_payload["timeline"][0]["confidence"] = "high claim was made, low claim is true"

        result = normalize_analysis(reasoning_payload, [], policy)

        assert result.contradictions[0].severity == Severity.MINOR
        assert result.contradictions[0].claim_a.credibility == Credibility.LOW
        assert all(e.confidence in ConfidenceLevel for e in result.timeline)

    def test_missing_ids_and_summary_fallback(self, reasoning_payload, policy):
        del reasoning_payload["contradictions"][0]["id"]
        reasoning_payload["summary"] = reasoning_payload.pop("verdict")

        result = normalize_analysis(reasoning_payload, [], policy)

        assert result.contradictions[0].id == "C1"
        assert result.verdict.startswith("The CEO knew")

    def test_timeline_event_without_sources_dropped(self, reasoning_payload, policy):
        reasoning_payload["timeline"].append({"datetime": "2025-03-06", "event": "Unsourced rumour"})

        result = normalize_analysis(reasoning_payload, [], policy)

        assert "Unsourced rumour" not in [e.description for e in result.timeline]

    def test_tampering_indicators(self, reasoning_payload, policy):
        reasoning_payload["tamperingIndicators"] = [
            {
                "type": "Suspicious Trading Pattern",
                "description": "Stock sales right after a confidential meeting",
                "severity": "critical",
                "evidence": "80,000 shares sold on March 5th",
                "regulatoryImplication": "Potential insider trading",
            }
        ]

        result = normalize_analysis(reasoning_payload, [], policy)

        assert result.tampering_indicators[0].severity == Severity.CRITICAL

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda p: p.pop("verdict"),
            lambda p: p.pop("confidenceScores"),
            lambda p: p["confidenceScores"].update(overall=1.7),
            lambda p: p["contradictions"][0].update(confidence=97),
            lambda p: p["contradictions"][0].pop("confidence"),
            lambda p: p.update(timeline="not a list"),
        ],
    )
    def test_invalid_output_is_protocol_error(self, reasoning_payload, policy, mutate):
        mutate(reasoning_payload)

        with pytest.raises(RemoteProtocolError):
            normalize_analysis(reasoning_payload, [], policy)


class TestDeriveReasoningSteps:
    """Tests for reasoning step fallbacks."""

    def test_thoughts_preferred(self):
        response = RemoteResponse(text='Step 1: x\n{"a": 1}', thoughts=["thought one"])
        assert derive_reasoning_steps(response, {}) == ["thought one"]

    def test_explicit_step_list(self):
        response = RemoteResponse(text="{}")
        assert derive_reasoning_steps(response, {"thinkingSteps": ["a", "b"]}) == ["a", "b"]

    def test_prose_before_json(self):
        response = RemoteResponse(text='Step 1: Compare.\nStep 2: Decide.\n{"verdict": "x"}')
        assert derive_reasoning_steps(response, {"verdict": "x"}) == ["Step 1: Compare.", "Step 2: Decide."]

    def test_reasoning_field_last(self):
        response = RemoteResponse(text='{"reasoning": "a"}')
        assert derive_reasoning_steps(response, {"reasoning": "First.\n\nSecond."}) == ["First.", "Second."]

    def test_nothing_available(self):
        assert derive_reasoning_steps(RemoteResponse(text="{}"), {}) == []
