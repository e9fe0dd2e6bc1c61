"""Recover the JSON estimate object from free-form generator output."""
from __future__ import annotations

import json
import logging
import re

from .errors import MalformedJsonError, NoJsonFoundError, TruncatedResponseError

LOGGER = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def strip_fences(text: str) -> str:
    return FENCE_PATTERN.sub("", text or "").strip()


def _object_end(text: str, start: int) -> int:
    """Return the index closing the object opened at ``start``, or -1."""

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
                return index
    return -1


def extract_json(raw_text: str) -> dict:
    """Return the first balanced top-level JSON object in ``raw_text``."""

    clean = strip_fences(raw_text)
    start = clean.find("{")
    if start == -1:
        raise NoJsonFoundError("No JSON found in response")

    end = _object_end(clean, start)
    if end == -1:
        LOGGER.warning("Generator output truncated after %d characters", len(clean))
        raise TruncatedResponseError()

    candidate = clean[start : end + 1]
    try:
        return json.loads(candidate)
    except ValueError as exc:
        LOGGER.error("Generator output is not valid JSON: %s", exc)
        raise MalformedJsonError(f"Malformed JSON in response: {exc}", raw=candidate) from exc


__all__ = ["extract_json", "strip_fences"]
