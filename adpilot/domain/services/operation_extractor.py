"""Extraction of executable ad-platform operations from assistant text.

Assistant replies are prose that may embed one or more JSON fragments such as::

    Pause it.
    [{"method": "post", "endpoint": "/123456789", "params": {"status": "PAUSED"}}]

The regular expressions below only find *candidates*. Validity is decided by
``json.loads`` plus ``is_valid_operation``; a candidate that fails either is
dropped without error so that one malformed fragment never hides the others.
"""
from __future__ import annotations

import itertools
import json
import logging
import re
from typing import Any, Iterable, Iterator, List

from adpilot.domain.entities.operation import ExecutableOperation

logger = logging.getLogger(__name__)

VALID_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
ENDPOINT_PATTERN = re.compile(r"^/\d+")

# Candidate length is bounded to keep the lazy scan linear-ish on long replies.
_MAX_CANDIDATE_CHARS = 20000
JSON_ARRAY_PATTERN = re.compile(
    r"\[\s*\{[\s\S]{0,%d}?\}\s*\]" % _MAX_CANDIDATE_CHARS
)
JSON_OBJECT_PATTERN = re.compile(
    r'\{[\s\S]{0,%d}?"method"[\s\S]{0,%d}?"endpoint"[\s\S]{0,%d}?\}'
    % (_MAX_CANDIDATE_CHARS, _MAX_CANDIDATE_CHARS, _MAX_CANDIDATE_CHARS)
)

_WHITESPACE_RUN = re.compile(r"\s+")


def clean_json_candidate(candidate: str) -> str:
    """Collapse escaped/real newlines, tabs and whitespace runs into single spaces."""
    cleaned = (
        candidate.replace("\\n", " ")
        .replace("\n", " ")
        .replace("\r", " ")
        .replace("\t", " ")
    )
    return _WHITESPACE_RUN.sub(" ", cleaned).strip()


def is_valid_operation(candidate: Any) -> bool:
    if not isinstance(candidate, dict):
        return False

    method = candidate.get("method")
    if not isinstance(method, str) or method.upper() not in VALID_METHODS:
        return False

    endpoint = candidate.get("endpoint")
    if not isinstance(endpoint, str) or not ENDPOINT_PATTERN.match(endpoint):
        return False

    if "params" in candidate and not isinstance(candidate["params"], dict):
        return False

    return True


def _to_operation(candidate: dict) -> ExecutableOperation:
    return ExecutableOperation(
        method=candidate["method"].upper(),
        endpoint=candidate["endpoint"],
        params=candidate.get("params"),
    )


def _parse_candidates(matches: Iterable[str]) -> Iterator[Any]:
    for match in matches:
        try:
            yield json.loads(clean_json_candidate(match))
        except (json.JSONDecodeError, ValueError):
            continue


def _object_candidates(content: str) -> Iterator[Any]:
    """Parse single-object candidates.

    The lazy pattern stops at the first closing brace, which truncates objects
    with a nested ``params`` map; those are re-read with a real JSON decoder
    starting at the candidate position.
    """
    decoder = json.JSONDecoder()
    for match in JSON_OBJECT_PATTERN.finditer(content):
        try:
            yield json.loads(clean_json_candidate(match.group(0)))
            continue
        except ValueError:
            pass
        try:
            parsed, _ = decoder.raw_decode(clean_json_candidate(content[match.start():]))
        except ValueError:
            continue
        yield parsed


def _append_unique(operations: List[ExecutableOperation], candidate: dict) -> None:
    op = _to_operation(candidate)
    if any(existing.key == op.key for existing in operations):
        return
    operations.append(op)


def extract_executable_operations(content: Any) -> List[ExecutableOperation]:
    """Return the unique valid operations in *content*, first-seen order.

    Array-shaped fragments win: single-object fragments are only scanned when
    no array fragment yielded an operation.
    """
    if not content or not isinstance(content, str):
        return []

    operations: List[ExecutableOperation] = []

    for parsed in _parse_candidates(JSON_ARRAY_PATTERN.findall(content)):
        if not isinstance(parsed, list):
            continue
        for item in parsed:
            if is_valid_operation(item):
                _append_unique(operations, item)

    if not operations:
        for parsed in _object_candidates(content):
            if is_valid_operation(parsed):
                _append_unique(operations, parsed)

    logger.debug("Extracted %d executable operation(s)", len(operations))
    return operations


def has_executable_operations(content: Any) -> bool:
    """Cheap check used to decide whether to offer the "apply changes" action."""
    if not content or not isinstance(content, str):
        return False

    candidates = itertools.chain(
        _parse_candidates(JSON_ARRAY_PATTERN.findall(content)),
        _object_candidates(content),
    )
    for parsed in candidates:
        if isinstance(parsed, list):
            if any(is_valid_operation(item) for item in parsed):
                return True
        elif is_valid_operation(parsed):
            return True
    return False
