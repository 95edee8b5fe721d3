"""Pytest configuration and fixtures."""

import json
from datetime import datetime, timezone

import pytest

from evidence_analyzer.config.settings import Settings
from evidence_analyzer.models import EvidenceUpload

from tests.media import INTERVIEW_NAME, TRANSCRIPT_NAME, make_text_pdf


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, max_file_size_bytes=64 * 1024, max_batch_size_bytes=256 * 1024)


@pytest.fixture
def transcript_pdf() -> bytes:
    return make_text_pdf(
        [
            "Quarterly Board Meeting - March 15, 2025",
            "Our first formal meeting with Zenith was March 5th.",
        ],
        info={"Title": "Board Minutes", "Author": "Corporate Secretary", "CreationDate": "D:20250315101523Z"},
    )


@pytest.fixture
def interview_pdf() -> bytes:
    return make_text_pdf(
        [
            "CEO Interview - March 20, 2025",
            "I was informed on March 15th. That was the first time I heard about Zenith.",
        ]
    )


@pytest.fixture
def evidence_uploads(transcript_pdf: bytes, interview_pdf: bytes) -> list[EvidenceUpload]:
    """Two valid PDFs making conflicting claims."""
    modified = datetime(2025, 3, 21, 9, 0, tzinfo=timezone.utc)
    return [
        EvidenceUpload.from_bytes(TRANSCRIPT_NAME, transcript_pdf, last_modified=modified),
        EvidenceUpload.from_bytes(INTERVIEW_NAME, interview_pdf, last_modified=modified),
    ]


@pytest.fixture
def extraction_reply() -> str:
    """Phase 1 reply with claims for both PDFs, wrapped in prose."""
    payload = {
        "files": [
            {
                "fileName": TRANSCRIPT_NAME,
                "category": "document",
                "claims": [
                    {
                        "statement": "First formal meeting with Zenith was March 5th",
                        "timestamp": "2025-03-05",
                        "speaker": "Michael Chen",
                    },
                    "Board was briefed on the Zenith acquisition on March 15th",
                ],
                "timestamps": ["2025-03-05", "2025-03-15"],
                "entities": ["Michael Chen", "Zenith Corp"],
                "locations": [],
                "metadata": {"documentType": "minutes"},
            },
            {
                "fileName": INTERVIEW_NAME,
                "category": "document",
                "claims": [
                    {
                        "statement": "First heard about Zenith on March 15th",
                        "timestamp": "2025-03-15",
                        "speaker": "Michael Chen",
                    }
                ],
                "timestamps": ["2025-03-20"],
                "entities": ["Michael Chen"],
            },
        ]
    }
    return "Here is the extracted data:\n" + json.dumps(payload, indent=2)


@pytest.fixture
def reasoning_payload() -> dict:
    """Phase 2 reply with one critical contradiction."""
    return {
        "timeline": [
            {
                "datetime": "2025-03-20T00:00:00Z",
                "event": "CEO claims he first heard of the deal on March 15",
                "sources": [INTERVIEW_NAME],
                "confidence": "high",
            },
            {
                "datetime": "2025-03-05T08:42:15Z",
                "event": "Executive strategic session on Zenith",
                "sources": [TRANSCRIPT_NAME],
                "confidence": "very_high",
            },
            {
                "datetime": "late February",
                "event": "Informal conversations with Zenith begin",
                "sources": [TRANSCRIPT_NAME],
                "confidence": "medium",
            },
        ],
        "contradictions": [
            {
                "id": "C1",
                "severity": "critical",
                "claim_a": {
                    "statement": "First heard about Zenith on March 15th",
                    "source": INTERVIEW_NAME,
                    "credibility": "low",
                },
                "claim_b": {
                    "statement": "First formal meeting with Zenith was March 5th",
                    "source": TRANSCRIPT_NAME,
                },
                "analysis": "The interview denies knowledge the board minutes record ten days earlier.",
                "verdict": "Public statement is contradicted by the board record",
                "confidence": 0.97,
            }
        ],
        "tamperingIndicators": [],
        "confidenceScores": {"overall": 0.95, "metadata": 0.9, "content": 0.93},
        "verdict": "The CEO knew about Zenith by March 5; the March 15 claim is false.",
        "reasoning": "Board minutes outrank an interview script.",
    }


@pytest.fixture
def reasoning_reply(reasoning_payload: dict) -> str:
    return "Step 1: Compare dates across files.\nStep 2: Weigh the sources.\n" + json.dumps(reasoning_payload)
