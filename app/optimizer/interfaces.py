"""
Abstractions for pluggable services. Inversion of control: the orchestrator
depends on interfaces, not concrete services. Enables fakes/mocks and future
swaps.

Common protocols:
- LLMClient.generate(request) -> str  (raises GenerationError)
- PromptFactory.build_optimize/build_clarify/build_refine(ctx) -> BuiltPrompt
- SecurityGuard.validate_user_input(text) / sanitize_for_prompt(text)
- KeyValueStore.get/apply/keys (persistence medium for the session store)

Testing: Use simple fake implementations to test the orchestrator without
network calls.
"""

from __future__ import annotations
from typing import Iterable, Mapping, Optional, Protocol

from .models import (
    BuiltPrompt,
    ClarifyContext,
    GenerationRequest,
    OptimizeContext,
    RefineContext,
)


class LLMClient(Protocol):
    def generate(self, request: GenerationRequest) -> str: ...


class PromptFactory(Protocol):
    def build_optimize(self, ctx: OptimizeContext) -> BuiltPrompt: ...

    def build_clarify(self, ctx: ClarifyContext) -> BuiltPrompt: ...

    def build_refine(self, ctx: RefineContext) -> BuiltPrompt: ...


class SecurityGuard(Protocol):
    def validate_user_input(self, text: str, *, field: str = "prompt") -> None: ...

    def sanitize_for_prompt(self, text: str) -> str: ...


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def apply(
        self, sets: Mapping[str, str], deletes: Iterable[str] = ()
    ) -> None: ...

    def keys(self) -> list[str]: ...
