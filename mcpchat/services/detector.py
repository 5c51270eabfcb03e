"""Detection of tool-call requests embedded in assistant text."""

import json
from typing import Any, Protocol

from pydantic import ValidationError

from mcpchat.models.tools import ToolCallRequest
from mcpchat.utils.logging import get_logger

logger = get_logger(__name__)

TOOL_CALL_KEY = "tool_call"


class ToolCallExtractor(Protocol):
    """Finds a structured tool request in the finished text of one assistant turn."""

    def extract(self, text: str) -> ToolCallRequest | None: ...


class JsonToolCallDetector:
    """Finds the first well-formed ``{"tool_call": {...}}`` object in free text.

    Candidates are tried in order of their opening brace, so when the text
    holds several tool-call objects only the first one counts and the rest is
    treated as prose. JSON-shaped text that does not parse is skipped, never
    raised.
    """

    def __init__(self) -> None:
        self._decoder = json.JSONDecoder()
        self._marker = f'"{TOOL_CALL_KEY}"'

    def extract(self, text: str) -> ToolCallRequest | None:
        last_marker = text.rfind(self._marker)
        if last_marker == -1:
            return None

        # A matching object has to open before the last occurrence of its key
        position = text.find("{")
        while position != -1 and position < last_marker:
            request, end = self._parse_candidate(text, position)
            if request is not None:
                logger.info(f"Detected tool call '{request.name}' at offset {position}")
                return request
            # Objects nested in a decoded value without the key cannot match either
            if end > position and self._marker not in text[position:end]:
                position = text.find("{", end)
            else:
                position = text.find("{", position + 1)

        logger.warning("Assistant text mentions a tool call but holds no well-formed tool call object")
        return None

    def _parse_candidate(self, text: str, position: int) -> tuple[ToolCallRequest | None, int]:
        """Decode the JSON value opening at ``position``; returns the request and the end offset."""
        try:
            candidate, end = self._decoder.raw_decode(text, position)
        except json.JSONDecodeError as e:
            if text[position + 1 :].lstrip().startswith(self._marker):
                logger.debug(f"Ignoring malformed tool call JSON at offset {position}: {e}")
            return None, position

        if not isinstance(candidate, dict) or TOOL_CALL_KEY not in candidate:
            return None, end
        return self._to_request(candidate, position), end

    def _to_request(self, candidate: dict[str, Any], position: int) -> ToolCallRequest | None:
        call = candidate[TOOL_CALL_KEY]
        if not isinstance(call, dict):
            logger.debug(f"Ignoring tool call at offset {position}: expected an object, got {type(call).__name__}")
            return None

        explanation = candidate.get("explanation")
        try:
            return ToolCallRequest(
                name=call.get("name"),
                arguments=call.get("arguments") or {},
                explanation=explanation if isinstance(explanation, str) else None,
            )
        except ValidationError as e:
            logger.debug(f"Ignoring tool call at offset {position}: {e.error_count()} validation error(s)")
            return None
