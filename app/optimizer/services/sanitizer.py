"""
Purpose: Normalize model-proposed "next step" suggestions before they are
shown to the user or stored on a message.
"""

from __future__ import annotations
import re
from typing import Any

from ..models import MAX_SUGGESTIONS

MAX_SUGGESTION_WORDS = 12

_QUOTES = "\"'`“”‘’«»"
_BOILERPLATE = re.compile(
    r"^\s*(?:ask\s+the\s+user|question|prompt|suggestion|try)\s*:\s*",
    re.IGNORECASE,
)
_WS = re.compile(r"\s+")


def _clean(candidate: str) -> str:
    s = candidate.strip().strip(_QUOTES).strip()
    while True:
        stripped = _BOILERPLATE.sub("", s, count=1)
        if stripped == s:
            break
        s = stripped.strip().strip(_QUOTES).strip()
    s = _WS.sub(" ", s).strip()
    words = s.split(" ")
    if len(words) > MAX_SUGGESTION_WORDS:
        s = " ".join(words[:MAX_SUGGESTION_WORDS])
    return s


def sanitize_suggestions(raw: Any, *, limit: int = MAX_SUGGESTIONS) -> list[str]:
    """De-duplicated, prefix-stripped, word-bounded suggestions; at most `limit`."""
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        return []

    out: list[str] = []
    seen: set[str] = set()
    for candidate in raw:
        if not isinstance(candidate, str):
            continue
        s = _clean(candidate)
        if not s:
            continue
        key = s.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(s)
        if len(out) >= limit:
            break
    return out
