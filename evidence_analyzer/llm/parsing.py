"""Recovery of structured output from free-form model responses.

Models often wrap JSON in reasoning text, markdown fences or trailing
commentary. These helpers locate the first well-formed JSON value of the
expected type and split free-text reasoning into discrete steps.
"""

import json
import re
from typing import Any

import structlog

from evidence_analyzer.errors import RemoteProtocolError

logger = structlog.get_logger(__name__)

CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
STEP_MARKER_PATTERN = re.compile(r"(?im)^[ \t>*#_-]*step\s+\d+\s*[:.)\-]")
BLANK_LINE_PATTERN = re.compile(r"\n[ \t]*\n")


def _clean_json_string(text: str) -> str:
    """Clean common issues in JSON strings from LLM output."""
    # Remove any BOM or zero-width characters
    text = text.strip("\ufeff\u200b\u200c\u200d")

    # Remove trailing commas before } or ] (invalid JSON but common LLM mistake)
    return re.sub(r",(\s*[}\]])", r"\1", text)


def _balanced_end(text: str, start: int) -> int | None:
    """Index one past the bracket closing the one at `start`, or None."""
    stack = []
    in_string = False
    escape_next = False
    pairs = {"{": "}", "[": "]"}

    for i in range(start, len(text)):
        char = text[i]
        # Handle string escaping to avoid counting brackets inside strings
        if escape_next:
            escape_next = False
            continue
        if char == "\\" and in_string:
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char in pairs:
            stack.append(pairs[char])
        elif char in "}]":
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return i + 1

    return None


def find_json(text: str, expect: type = dict) -> tuple[Any, tuple[int, int]] | None:
    """Find the first well-formed JSON value of the expected type.

    Args:
        text: Response text that may contain JSON among other content.
        expect: dict or list.

    Returns:
        Tuple of (parsed value, (start, end) span in text), or None.
    """
    openers = "{" if expect is dict else "["

    for start, char in enumerate(text):
        if char not in openers:
            continue
        end = _balanced_end(text, start)
        if end is None:
            continue
        try:
            value = json.loads(_clean_json_string(text[start:end]))
        except json.JSONDecodeError:
            continue
        if isinstance(value, expect):
            return value, (start, end)

    return None


def parse_json_response(response: str, expect: type = dict, phase: str | None = None) -> Any:
    """Parse JSON from a model response, tolerating surrounding prose.

    Raises:
        RemoteProtocolError: If no well-formed JSON value of the expected type exists.
    """
    if not response or not response.strip():
        raise RemoteProtocolError("Empty response from remote capability", phase=phase, raw_response=response)

    text = response.strip()

    logger.debug(
        "raw_remote_response",
        phase=phase,
        response_length=len(text),
        preview=text[:500],
    )

    # Strategy 1: Direct parsing attempt
    try:
        value = json.loads(_clean_json_string(text))
        if isinstance(value, expect):
            return value
    except json.JSONDecodeError:
        pass

    # Strategy 2: Contents of markdown code blocks
    for match in CODE_BLOCK_PATTERN.finditer(text):
        found = find_json(match.group(1), expect)
        if found:
            return found[0]

    # Strategy 3: First balanced JSON value anywhere in the text
    found = find_json(text, expect)
    if found:
        return found[0]

    logger.error("json_parse_error", phase=phase, response_preview=text[:300])
    raise RemoteProtocolError(
        f"Failed to parse JSON response. Response preview: {text[:150]}",
        phase=phase,
        raw_response=response,
    )


def text_before_json(text: str) -> str:
    """Prose preceding the first JSON object, e.g. reasoning shown before the answer."""
    if not text:
        return ""
    fence = text.find("```")
    found = find_json(text, dict)
    cut = found[1][0] if found else len(text)
    if 0 <= fence < cut:
        cut = fence
    return text[:cut]


def split_reasoning_steps(text: str) -> list[str]:
    """Split reasoning text into steps on "Step N:" markers or blank lines."""
    if not text or not text.strip():
        return []

    markers = [m.start() for m in STEP_MARKER_PATTERN.finditer(text)]
    if markers:
        bounds = ([0] if markers[0] > 0 else []) + markers + [len(text)]
        pieces = [text[a:b] for a, b in zip(bounds, bounds[1:])]
    else:
        pieces = BLANK_LINE_PATTERN.split(text)

    return [piece.strip() for piece in pieces if piece.strip()]


class IncrementalStepSplitter:
    """Splits streamed reasoning text into steps as each one completes.

    Once a "Step N:" marker has been seen, only markers end a step; before
    that, blank lines do.
    """

    def __init__(self):
        self._buffer = ""
        self._marker_mode = False

    def feed(self, chunk: str) -> list[str]:
        """Add streamed text and return the steps completed by it."""
        if not chunk:
            return []
        self._buffer += chunk

        markers = [m.start() for m in STEP_MARKER_PATTERN.finditer(self._buffer)]
        if markers:
            self._marker_mode = True

        if self._marker_mode:
            boundaries = [pos for pos in markers if pos > 0]
        else:
            boundaries = [m.end() for m in BLANK_LINE_PATTERN.finditer(self._buffer)]

        if not boundaries:
            return []

        cut = boundaries[-1]
        complete, self._buffer = self._buffer[:cut], self._buffer[cut:]
        return split_reasoning_steps(complete)

    def flush(self) -> list[str]:
        """Return whatever remains as final steps."""
        remaining, self._buffer = self._buffer, ""
        return split_reasoning_steps(remaining)
