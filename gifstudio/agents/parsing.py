"""Best-effort extraction of JSON from free-text model replies.

Gemini gives no schema guarantee for these calls: replies may wrap the JSON
in prose or markdown fences, or omit it entirely. Every call site therefore
declares the value it falls back to, and parsing never raises.
"""

import json
import logging
import re
from typing import Any, Literal, TypeVar

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

JsonKind = Literal["object", "array"]

# Greedy on purpose: first opening bracket to last closing bracket.
_PATTERNS: dict[str, re.Pattern[str]] = {
    "object": re.compile(r"\{[\s\S]*\}"),
    "array": re.compile(r"\[[\s\S]*\]"),
}


def extract_json(text: str | None, kind: JsonKind = "object") -> str | None:
    """Return the first brace- (or bracket-) delimited block in ``text``."""
    if not text:
        return None
    match = _PATTERNS[kind].search(text)
    return match.group(0) if match else None


def parse_json(text: str | None, schema: Any, kind: JsonKind = "object") -> Any | None:
    """Validate the embedded JSON against ``schema``; None when that is not possible."""
    block = extract_json(text, kind)
    if block is None:
        logger.warning("No JSON %s found in model reply", kind)
        return None
    try:
        return TypeAdapter(schema).validate_python(json.loads(block))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Could not parse JSON %s from model reply: %s", kind, e)
        return None


def parse_or_default(text: str | None, schema: Any, default: T, kind: JsonKind = "object") -> T:
    result = parse_json(text, schema, kind)
    return default if result is None else result
