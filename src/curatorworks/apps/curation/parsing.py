"""Recover the JSON payload embedded in free-form vision model output."""

from __future__ import annotations

import json
import logging
from typing import Dict, Optional, Tuple

from .errors import MalformedResponse

logger = logging.getLogger(__name__)

_RAW_SNIPPET_CHARS = 600


def _first_balanced_object(text: str) -> Optional[Tuple[int, int]]:
    """Return the span of the first balanced ``{...}`` block in *text*.

    Braces inside JSON string literals are ignored so that rationales such as
    ``"use {curly} quotes"`` do not break the match.
    """

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return start, index + 1
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: Optional[str]) -> Dict[str, object]:
    """Parse the first balanced JSON object found in *text*.

    Anything outside the object (prose, markdown fences) is discarded.
    Raises :class:`MalformedResponse` carrying the raw text when no object can
    be recovered.
    """

    raw = text or ""
    span = _first_balanced_object(raw)
    if span is None:
        logger.warning(
            "No JSON object in vision response: %s", raw[:_RAW_SNIPPET_CHARS]
        )
        raise MalformedResponse("Response did not contain a JSON object", raw=raw)

    candidate = raw[span[0] : span[1]]
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.warning(
            "Vision response JSON failed to parse (%s): %s",
            exc,
            candidate[:_RAW_SNIPPET_CHARS],
        )
        raise MalformedResponse(f"Invalid JSON object: {exc}", raw=raw) from exc
    if not isinstance(payload, dict):  # pragma: no cover - braces always yield dict
        raise MalformedResponse("JSON payload is not an object", raw=raw)
    return payload


def require_mapping(
    payload: Dict[str, object], key: str, *, raw: str = ""
) -> Dict[str, object]:
    """Return ``payload[key]`` when it is an object, else fail as malformed."""

    value = payload.get(key)
    if not isinstance(value, dict):
        raise MalformedResponse(f"Missing '{key}' object in response", raw=raw)
    return value


__all__ = ["extract_json_object", "require_mapping"]
