"""Request chains for the two analysis phases."""

import json

import structlog
from langchain_core.prompts import ChatPromptTemplate

from evidence_analyzer.config.prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    EXTRACTION_USER_PROMPT,
    REASONING_SYSTEM_PROMPT,
    REASONING_USER_PROMPT,
)
from evidence_analyzer.errors import RemoteError, RemoteProtocolError
from evidence_analyzer.extraction.encoder import build_extraction_payload
from evidence_analyzer.llm.client import RemoteCapability, RemoteRequest, RemoteResponse, ThoughtCallback
from evidence_analyzer.llm.parsing import parse_json_response
from evidence_analyzer.models import EvidenceFile, ExtractionOutput

logger = structlog.get_logger(__name__)


def _render(system: str, user: str, variables: dict) -> tuple[str, str]:
    prompt = ChatPromptTemplate.from_messages([("system", system), ("human", user)])
    system_message, user_message = prompt.format_messages(**variables)
    return system_message.content, user_message.content


def build_extraction_request(files: list[EvidenceFile]) -> RemoteRequest:
    """Build the Phase 1 request for encoded files and their metadata."""
    payload = build_extraction_payload(files)
    system_prompt, instruction = _render(
        EXTRACTION_SYSTEM_PROMPT,
        EXTRACTION_USER_PROMPT,
        {
            "file_count": len(payload["files"]),
            "metadata_json": json.dumps(payload["metadata"], indent=2, default=str),
        },
    )
    return RemoteRequest(
        phase="extraction",
        system_prompt=system_prompt,
        instruction=instruction,
        content_blocks=payload["files"],
    )


def build_reasoning_request(extraction: ExtractionOutput, credibility_table: str) -> RemoteRequest:
    """Build the Phase 2 request from the complete Phase 1 output."""
    system_prompt, instruction = _render(
        REASONING_SYSTEM_PROMPT,
        REASONING_USER_PROMPT,
        {
            "credibility_table": credibility_table,
            "extraction_json": json.dumps(extraction.to_payload(), indent=2, default=str),
        },
    )
    return RemoteRequest(phase="reasoning", system_prompt=system_prompt, instruction=instruction)


async def run_extraction_chain(
    capability: RemoteCapability,
    files: list[EvidenceFile],
) -> tuple[dict, RemoteResponse]:
    """Run Phase 1 for one or more files.

    Returns:
        Tuple of (parsed JSON object, raw response).

    Raises:
        RemoteProtocolError: Response missing or not shaped like an extraction.
        RemoteTransportError: Remote capability unreachable.
    """
    request = build_extraction_request(files)
    logger.debug("extraction_request_built", files=[f.name for f in files])

    response = await capability.request(request)
    parsed = _parse(response, "extraction")

    if not isinstance(parsed.get("files"), list):
        # A single-file reply may drop the wrapper
        if len(files) == 1 and "claims" in parsed:
            parsed = {"files": [{"fileName": files[0].name, **parsed}]}
        else:
            raise RemoteProtocolError(
                "Extraction response has no 'files' list",
                phase="extraction",
                raw_response=response.text,
            )

    return parsed, response


async def run_reasoning_chain(
    capability: RemoteCapability,
    extraction: ExtractionOutput,
    credibility_table: str,
    on_thought: ThoughtCallback | None = None,
) -> tuple[dict, RemoteResponse]:
    """Run Phase 2 over the complete Phase 1 output.

    Returns:
        Tuple of (parsed JSON object, raw response).
    """
    request = build_reasoning_request(extraction, credibility_table)
    logger.debug("reasoning_request_built", claims=len(extraction.claims))

    response = await capability.request(request, on_thought=on_thought)
    return _parse(response, "reasoning"), response


def _parse(response: RemoteResponse, phase: str) -> dict:
    try:
        return parse_json_response(response.text, expect=dict, phase=phase)
    except RemoteError as e:
        e.raw_response = response.text
        raise
