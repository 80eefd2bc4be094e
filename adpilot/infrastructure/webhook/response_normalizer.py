"""Tolerant decoding of the conversation backend's response body.

The backend's reply shape is loosely versioned: a bare string, a one-element
array, or an object carrying the text under one of several synonymous keys.
``normalize_remote_response`` is the only entry point; the accepted shapes are
the ordered ``_EXTRACTORS`` below and the first one that matches wins.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

# Priority order of the object keys that may carry the assistant text
TEXT_KEYS = ("cleanedText", "output", "message", "text", "content", "response")

_TRAILING_OPERATIONS = re.compile(r"\[\{.*\}\]", re.DOTALL)


@dataclass
class NormalizedResponse:
    ai_response: Optional[str] = None
    message_type: str = "text"
    operations: List[Any] = field(default_factory=list)


def _decode_body(raw_text: str) -> Any:
    try:
        decoded = json.loads(raw_text)
    except ValueError:
        return raw_text
    if isinstance(decoded, list) and decoded:
        return decoded[0]
    return decoded


def _from_string(candidate: Any) -> Optional[NormalizedResponse]:
    if not isinstance(candidate, str):
        return None
    match = _TRAILING_OPERATIONS.search(candidate)
    if match is None:
        return NormalizedResponse(ai_response=candidate)
    operations: List[Any] = []
    try:
        parsed = json.loads(match.group(0))
        if isinstance(parsed, list):
            operations = parsed
    except ValueError:
        logger.debug("Trailing operations fragment is not valid JSON")
    return NormalizedResponse(ai_response=candidate[: match.start()], operations=operations)


def _from_text_key(key: str) -> Callable[[Any], Optional[NormalizedResponse]]:
    def extract(candidate: Any) -> Optional[NormalizedResponse]:
        if not isinstance(candidate, dict):
            return None
        text = candidate.get(key)
        if not text or not isinstance(text, str):
            return None
        operations = candidate.get("operations") or []
        return NormalizedResponse(
            ai_response=text,
            message_type=candidate.get("type") or "text",
            operations=operations if isinstance(operations, list) else [],
        )

    extract.__name__ = f"extract_{key}"
    return extract


_EXTRACTORS: List[Callable[[Any], Optional[NormalizedResponse]]] = [_from_string] + [
    _from_text_key(key) for key in TEXT_KEYS
]


def normalize_remote_response(raw_text: Optional[str]) -> NormalizedResponse:
    """Turn a raw response body into ``NormalizedResponse``.

    An empty body, an unrecognized shape or whitespace-only text all mean
    "success without an assistant reply" (``ai_response is None``).
    """
    if not raw_text:
        return NormalizedResponse()

    candidate = _decode_body(raw_text)
    for extractor in _EXTRACTORS:
        result = extractor(candidate)
        if result is None:
            continue
        text = (result.ai_response or "").strip()
        if not text:
            return NormalizedResponse()
        result.ai_response = text
        return result

    logger.debug("Unrecognized response shape: %s", type(candidate).__name__)
    return NormalizedResponse()
