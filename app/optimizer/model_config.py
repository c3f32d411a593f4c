"""
Supported Gemini models and their limits.

Central model table so orchestrator/controller do not duplicate lookups.
"""

from __future__ import annotations
import re
from dataclasses import dataclass


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    description: str
    max_tokens: int  # input token limit
    output_tokens: int


SUPPORTED_MODELS: tuple[ModelInfo, ...] = (
    ModelInfo(
        id="gemini-1.5-flash",
        name="Gemini 1.5 Flash",
        description="Fast and versatile multimodal model for scaling across diverse tasks",
        max_tokens=1_048_576,
        output_tokens=8_192,
    ),
    ModelInfo(
        id="gemini-2.0-flash",
        name="Gemini 2.0 Flash",
        description="Next-gen features with superior speed, native tool use, and 1M token context",
        max_tokens=1_048_576,
        output_tokens=8_192,
    ),
    ModelInfo(
        id="gemini-2.5-flash",
        name="Gemini 2.5 Flash",
        description="Best price-performance model with thinking capabilities",
        max_tokens=1_048_576,
        output_tokens=65_536,
    ),
)

DEFAULT_MODEL_ID = "gemini-2.5-flash"

_SCHEMA_CAPABLE = re.compile(r"1\.5|2\.")

CHARS_PER_TOKEN = 4


def supported_model_ids() -> frozenset[str]:
    return frozenset(m.id for m in SUPPORTED_MODELS)


def is_supported(model_id: str) -> bool:
    return (model_id or "").strip() in supported_model_ids()


def get_model_by_id(model_id: str) -> ModelInfo:
    """Look up a model; unknown ids fall back to the default model."""
    wanted = (model_id or "").strip()
    for m in SUPPORTED_MODELS:
        if m.id == wanted:
            return m
    return next(m for m in SUPPORTED_MODELS if m.id == DEFAULT_MODEL_ID)


def supports_schema(model_id: str) -> bool:
    """Models that accept a JSON response schema (not just JSON mode)."""
    return bool(_SCHEMA_CAPABLE.search(model_id or ""))


def estimate_tokens(text: str) -> int:
    """Fast heuristic: ~4 chars per token."""
    t = (text or "").strip()
    if not t:
        return 0
    return (len(t) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN
