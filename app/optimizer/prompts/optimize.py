"""Optimize prompts: initial transformation and feedback-driven refinement."""

from __future__ import annotations

from ..models import BuiltPrompt, OptimizeContext, TaskPhase
from .common import OPTIMIZE_SCHEMA, optimize_output_block, quoted, suggestion_rules

INITIAL_TEMPLATE = "optimize.initial"
REFINEMENT_TEMPLATE = "optimize.refinement"


def initial_instruction(*, prompt: str) -> str:
    return (
        "You are a prompt engineering expert for large language models.\n\n"
        f"User input:\n{quoted(prompt)}\n\n"
        "Transform this into an optimized prompt: make it clear, concise, and "
        "high-impact. Use techniques like assigning a role to the AI, providing "
        "context, specifying the exact output format (e.g. JSON, bullet points), "
        "including few-shot examples if helpful, or guiding step-by-step thinking "
        "to leverage the model's strengths.\n"
        "Focus on eliciting precise, creative, and reliable responses.\n\n"
        + optimize_output_block(prompt_hint="The fully optimized prompt as a single string.")
        + "\n"
        + suggestion_rules()
    )


def refinement_instruction(*, previous_prompt: str, instruction: str) -> str:
    return (
        "You are a prompt engineering expert specializing in iterative refinement "
        "for large language models.\n\n"
        f"Existing prompt:\n{quoted(previous_prompt)}\n\n"
        f"User feedback:\n{quoted(instruction)}\n\n"
        "Refine the existing prompt by analyzing the feedback and making targeted, "
        "meaningful changes. Do not append the feedback verbatim; integrate it into "
        "the existing prompt and keep everything the feedback does not touch. "
        "Consider role-playing, step-by-step reasoning, examples, or output "
        "formatting only if they address the feedback.\n"
        "Keep explanations concise, actionable, and linked to the feedback.\n\n"
        + optimize_output_block(prompt_hint="The refined prompt as a single, cohesive string.")
        + "\n"
        + suggestion_rules()
    )


def build_optimize_prompt(ctx: OptimizeContext) -> BuiltPrompt:
    if ctx.is_refinement:
        return BuiltPrompt(
            phase=TaskPhase.OPTIMIZE,
            content=refinement_instruction(
                previous_prompt=ctx.previous_prompt,
                instruction=ctx.refinement_instruction,
            ),
            output_schema=OPTIMIZE_SCHEMA,
            template=REFINEMENT_TEMPLATE,
        )
    return BuiltPrompt(
        phase=TaskPhase.OPTIMIZE,
        content=initial_instruction(prompt=ctx.prompt),
        output_schema=OPTIMIZE_SCHEMA,
        template=INITIAL_TEMPLATE,
    )
