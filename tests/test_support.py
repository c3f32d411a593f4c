"""Tests for model lookup, error remediation and session naming helpers."""

from __future__ import annotations

import pytest

from optimizer.errors import UpstreamError, remediation_message
from optimizer.model_config import (
    DEFAULT_MODEL_ID,
    estimate_tokens,
    get_model_by_id,
    is_supported,
    supports_schema,
)
from optimizer.models import CoachingState
from optimizer.utils.session_naming import (
    DEFAULT_TITLE,
    generate_session_name,
    new_session_id,
    normalize_title,
)


def test_model_lookup_and_fallback() -> None:
    assert is_supported("gemini-1.5-flash")
    assert not is_supported("gpt-4o")
    assert get_model_by_id("gemini-2.0-flash").output_tokens == 8_192
    assert get_model_by_id("unknown").id == DEFAULT_MODEL_ID


def test_schema_support_by_model_family() -> None:
    assert supports_schema("gemini-1.5-flash")
    assert supports_schema("gemini-2.5-flash")
    assert not supports_schema("gemini-pro")


def test_estimate_tokens() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


@pytest.mark.parametrize(
    "status, message, expected",
    [
        (429, "quota", "rate limited"),
        (503, "overloaded", "unavailable"),
        (500, "boom", "unavailable"),
        (404, "model missing", "Switch to another model"),
        (400, "models/x is not found", "Switch to another model"),
        (413, "payload", "Shorten"),
        (403, "denied", "Check your key"),
        (400, "API key not valid", "Check your key"),
        (400, "weird", "weird"),
    ],
)
def test_remediation_messages(status, message, expected) -> None:
    assert expected in remediation_message(status, message)


def test_upstream_error_keeps_raw_message() -> None:
    err = UpstreamError(429, "quota exceeded", user_message="Wait", attempts=3)

    assert str(err) == "Wait"
    assert err.message == "quota exceeded"
    assert err.transient


def test_coaching_answers_must_parallel_questions() -> None:
    assert CoachingState(suggestion="s", questions=["a", "b"]).answers == ["", ""]
    assert len(CoachingState(suggestion="s", questions=list("abcdef")).questions) == 4
    with pytest.raises(ValueError):
        CoachingState(suggestion="s", questions=["a"], answers=["x", "y"])


@pytest.mark.parametrize(
    "prompt, expected",
    [
        ("", DEFAULT_TITLE),
        ("   ", DEFAULT_TITLE),
        ('Write an email titled "Quarterly budget review" to my team', "Quarterly budget review"),
        ("summarize this research paper. Keep it short", "Summarize this research paper"),
        ("hi", "Hi"),
    ],
)
def test_generate_session_name(prompt, expected) -> None:
    assert generate_session_name(prompt) == expected


def test_long_names_are_truncated() -> None:
    name = generate_session_name("word " * 40)

    assert len(name) <= 60


def test_normalize_title() -> None:
    assert normalize_title("  a   b ") == "a b"
    assert normalize_title("") == "Untitled"
    assert len(normalize_title("x" * 200)) == 80


def test_session_ids_are_unique() -> None:
    ids = {new_session_id() for _ in range(100)}

    assert len(ids) == 100


def test_build_store_picks_medium(tmp_path) -> None:
    from optimizer.config import Settings, build_store
    from optimizer.persistence.kv import InMemoryKeyValueStore, SQLiteKeyValueStore

    class MemorySettings(Settings):
        STORE_PATH = ""
        MAX_SESSIONS = 7

    class FileSettings(Settings):
        STORE_PATH = str(tmp_path / "sessions.db")

    memory = build_store(MemorySettings())
    assert isinstance(memory.kv, InMemoryKeyValueStore)
    assert memory.capacity == 7

    durable = build_store(FileSettings())
    assert isinstance(durable.kv, SQLiteKeyValueStore)
    durable.kv.close()
