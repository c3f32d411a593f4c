"""Clarify prompts: ask only what is needed to act on one suggestion."""

from __future__ import annotations
from textwrap import dedent

from ..models import MAX_QUESTIONS, BuiltPrompt, ClarifyContext, TaskPhase
from .common import CLARIFY_SCHEMA, quoted

CLARIFY_TEMPLATE = "clarify"


def clarify_instruction(
    *, original_prompt: str, suggestion: str, current_prompt: str | None
) -> str:
    current = (
        f"Current optimized prompt:\n{quoted(current_prompt)}\n\n"
        if current_prompt
        else "Current optimized prompt: (none yet)\n\n"
    )
    return (
        "You are a prompt engineering coach. The user picked a suggested "
        "improvement and you need just enough information to apply it.\n\n"
        f"Original user request:\n{quoted(original_prompt)}\n\n"
        + current
        + f"Selected suggestion:\n{quoted(suggestion)}\n\n"
        + dedent(
            f"""\
            Rules:
            - Ask at most {MAX_QUESTIONS} short, specific questions.
            - Ask ONLY for information required to apply the selected suggestion.
            - Never ask for anything the request or current prompt already states.
            - If nothing is missing, return an empty list.

            Output ONLY this JSON object (no code fences, no commentary):
            {{
              "questions": ["<question 1>", "<question 2>"]
            }}
            """
        )
    )


def build_clarify_prompt(ctx: ClarifyContext) -> BuiltPrompt:
    return BuiltPrompt(
        phase=TaskPhase.CLARIFY,
        content=clarify_instruction(
            original_prompt=ctx.original_prompt,
            suggestion=ctx.suggestion,
            current_prompt=ctx.current_prompt,
        ),
        output_schema=CLARIFY_SCHEMA,
        template=CLARIFY_TEMPLATE,
    )
