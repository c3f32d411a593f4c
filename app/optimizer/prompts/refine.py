"""Refine prompts: apply the user's answers to the current prompt."""

from __future__ import annotations

from ..models import BuiltPrompt, RefineContext, TaskPhase
from .common import OPTIMIZE_SCHEMA, optimize_output_block, quoted, suggestion_rules

REFINE_TEMPLATE = "refine.answers"


def render_answers(answers: tuple[tuple[str, str], ...]) -> str:
    lines = []
    for i, (question, answer) in enumerate(answers, start=1):
        lines.append(f"Q{i}: {question.strip()}")
        lines.append(f"A{i}: {answer.strip() or '(no answer)'}")
    return "\n".join(lines)


def refine_instruction(*, current_prompt: str, answers: tuple[tuple[str, str], ...]) -> str:
    return (
        "You are a prompt engineering expert applying clarifications from the "
        "user to an existing prompt.\n\n"
        f"Current prompt:\n{quoted(current_prompt)}\n\n"
        f"Clarifying questions and the user's answers:\n{render_answers(answers)}\n\n"
        "Rules:\n"
        "- Make minimal changes; every change must trace back to a specific answer.\n"
        "- Preserve all parts of the current prompt the answers do not touch.\n"
        "- Ignore questions answered with '(no answer)'.\n"
        "- In explanations, name the answer (e.g. 'A2') behind each change.\n\n"
        + optimize_output_block(prompt_hint="The updated prompt as a single string.")
        + "\n"
        + suggestion_rules()
    )


def build_refine_prompt(ctx: RefineContext) -> BuiltPrompt:
    return BuiltPrompt(
        phase=TaskPhase.REFINE,
        content=refine_instruction(current_prompt=ctx.current_prompt, answers=ctx.answers),
        output_schema=OPTIMIZE_SCHEMA,
        template=REFINE_TEMPLATE,
    )
