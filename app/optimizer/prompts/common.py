"""Shared prompt helpers and output schemas used across prompt modules."""

from __future__ import annotations
from textwrap import dedent

from ..models import MAX_QUESTIONS, MAX_SUGGESTIONS

OPTIMIZE_SCHEMA: dict = {
    "title": "optimized_prompt",
    "type": "object",
    "properties": {
        "optimizedPrompt": {"type": "string"},
        "explanations": {"type": "array", "items": {"type": "string"}},
        "suggestions": {
            "type": "array",
            "items": {"type": "string"},
            "maxItems": MAX_SUGGESTIONS,
        },
    },
    "required": ["optimizedPrompt", "explanations", "suggestions"],
}

CLARIFY_SCHEMA: dict = {
    "title": "clarifying_questions",
    "type": "object",
    "properties": {
        "questions": {
            "type": "array",
            "items": {"type": "string"},
            "maxItems": MAX_QUESTIONS,
        },
    },
    "required": ["questions"],
}


def quoted(text: str) -> str:
    """Embed user text in a triple-quoted block so it reads as data."""
    safe = (text or "").replace('"""', "'''").strip()
    return f'"""\n{safe}\n"""'


def optimize_output_block(*, prompt_hint: str) -> str:
    return dedent(
        f"""\
        Output ONLY this JSON object (no code fences, no commentary):
        {{
          "optimizedPrompt": "{prompt_hint}",
          "explanations": ["<brief change 1 and why it helps>", "<change 2, etc.>"],
          "suggestions": ["<up to {MAX_SUGGESTIONS} short next steps the user could ask for>"]
        }}
        """
    )


def suggestion_rules() -> str:
    return dedent(
        f"""\
        Suggestions:
        - At most {MAX_SUGGESTIONS}, each 12 words or fewer.
        - Phrase each as an improvement the user could request next
          (e.g. "Add a target audience").
        - No prefixes like "Question:" or "Ask the user:".
        """
    )
