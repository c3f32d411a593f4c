"""Utilities for robustly extracting the structured result from LLM responses.

parse_response() is total: it never raises. The model is asked for JSON but
is not guaranteed to honour it, so every call site gets either ParsedOk or a
ParsedFallback carrying the raw text and a diagnostic note.
"""

from __future__ import annotations
import json
import re
from dataclasses import dataclass
from typing import Any, Union

PARSE_FAILED_NOTE = "Unable to parse structured response; using raw output."
EMPTY_RESPONSE_NOTE = "No response text provided."

_LEADING_FENCE = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\s*```\s*$")


@dataclass(frozen=True)
class ParsedOk:
    data: dict[str, Any]
    fence_stripped: bool = False

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass(frozen=True)
class ParsedFallback:
    raw_text: str
    note: str = PARSE_FAILED_NOTE


ParsedResponse = Union[ParsedOk, ParsedFallback]


def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang fence and a trailing ``` fence, independently."""
    t = (text or "").strip()
    t = _LEADING_FENCE.sub("", t, count=1)
    t = _TRAILING_FENCE.sub("", t, count=1)
    return t.strip()


def _decode_object(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
    except (ValueError, TypeError, RecursionError):
        return None
    return data if isinstance(data, dict) else None


def parse_response(text: Any) -> ParsedResponse:
    """
    1. decode the raw text,
    2. decode again after stripping code fences,
    3. fall back to the (fence-stripped) text verbatim with a note.
    """
    if not isinstance(text, str):
        text = "" if text is None else str(text)
    if not text.strip():
        return ParsedFallback(raw_text="", note=EMPTY_RESPONSE_NOTE)

    data = _decode_object(text)
    if data is not None:
        return ParsedOk(data)

    stripped = strip_code_fences(text)
    data = _decode_object(stripped)
    if data is not None:
        return ParsedOk(data, fence_stripped=True)

    return ParsedFallback(raw_text=stripped or text)


def to_str_list(x: Any) -> list[str]:
    """Convert None, str, or list[str] to list[str].
    Discard non-strings and empty/whitespace-only strings.
    """
    if x is None:
        return []
    if isinstance(x, list):
        out = []
        for item in x:
            if isinstance(item, str):
                item = item.strip()
                if item:
                    out.append(item)
        return out
    if isinstance(x, str):
        s = x.strip()
        return [s] if s else []
    return []
