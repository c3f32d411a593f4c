"""Facade over the per-phase prompt modules."""

from __future__ import annotations

from ..models import (
    BuiltPrompt,
    ClarifyContext,
    OptimizeContext,
    RefineContext,
    TaskPhase,
)
from . import clarify as _clarify
from . import optimize as _optimize
from . import refine as _refine


class DefaultPromptFactory:
    # OPTIMIZE (initial or feedback refinement)
    def build_optimize(self, ctx: OptimizeContext) -> BuiltPrompt:
        return _optimize.build_optimize_prompt(ctx)

    # CLARIFY
    def build_clarify(self, ctx: ClarifyContext) -> BuiltPrompt:
        return _clarify.build_clarify_prompt(ctx)

    # REFINE WITH ANSWERS
    def build_refine(self, ctx: RefineContext) -> BuiltPrompt:
        return _refine.build_refine_prompt(ctx)

    def build(self, phase: TaskPhase, ctx) -> BuiltPrompt:
        if phase == TaskPhase.OPTIMIZE:
            return self.build_optimize(ctx)
        if phase == TaskPhase.CLARIFY:
            return self.build_clarify(ctx)
        return self.build_refine(ctx)
