"""Session titles derived from the first user message."""

from __future__ import annotations
import re
import secrets
import time
from typing import Optional

from ..models import MAX_TITLE_CHARS

DEFAULT_TITLE = "New Optimization"
UNTITLED = "Untitled"

_QUOTED = re.compile(r"[\"'`]([^\"'`]+)[\"'`]")
_LABELLED = re.compile(r"(?:title|name|prompt):\s*([^\n\"]+)", re.IGNORECASE)
_SENTENCE_END = re.compile(r"[.!?\n]")
_TRAILING_PUNCT = re.compile(r"[.,;:!?]+$")
_ONLY_SYMBOLS = re.compile(r"^[\s\d\W]+$")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _is_good_candidate(c: str) -> bool:
    return (
        10 <= len(c) <= 60
        and "http" not in c.lower()
        and not _ONLY_SYMBOLS.match(c)
    )


def generate_session_name(prompt: Optional[str]) -> str:
    """A concise title for a session: quoted text, a labelled title, the
    first sentence, or the first 5-8 words, whichever fits first."""
    text = (prompt or "").strip()
    if not text:
        return DEFAULT_TITLE

    candidates = _QUOTED.findall(text)
    labelled = _LABELLED.search(text)
    if labelled:
        candidates.append(labelled.group(1))
    candidates.append(_SENTENCE_END.split(text)[0])

    best = next(
        (c.strip() for c in candidates if c.strip() and _is_good_candidate(c.strip())),
        None,
    )
    if best is None:
        words = text.split()
        count = min(max(5, len(words) // 2), 8)
        best = _TRAILING_PUNCT.sub("", " ".join(words[:count]))

    if len(best) > 60:
        best = best[:57] + "..."
    best = best[:MAX_TITLE_CHARS]
    return best[:1].upper() + best[1:] if best else DEFAULT_TITLE


def normalize_title(title: Optional[str]) -> str:
    """User-supplied rename: trimmed, bounded, never empty."""
    t = re.sub(r"\s+", " ", (title or "")).strip()
    return t[:MAX_TITLE_CHARS] if t else UNTITLED


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
    return out or "0"


def new_session_id() -> str:
    """Time-ordered opaque id: base36 millis + 6 random base36 chars."""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{_base36(millis)}-{suffix}"
