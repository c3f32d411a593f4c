"""
Canonical data shapes, shared truth for typing/validation between layers.

Typical contents:
- Session / ChatMessage / CoachingState (what the session store owns).
- Task contexts handed to the prompt builder once validated.
- LLMSettings and GenerationRequest (what goes out to the model).
- OptimizationResult / ClarifyResult (what comes back to the caller).

Serialization helpers use the camelCase keys of the persisted layout.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class TaskPhase(str, Enum):
    OPTIMIZE = "optimize"
    CLARIFY = "clarify"
    REFINE = "refine"


class RequestState(str, Enum):
    VALIDATING = "validating"
    BUILDING = "building"
    INVOKING = "invoking"
    PARSING = "parsing"
    DONE = "done"
    FAILED = "failed"


MAX_TITLE_CHARS = 80
MAX_SUGGESTIONS = 3
MAX_QUESTIONS = 4


@dataclass
class ChatMessage:
    role: Role
    content: str
    explanations: Optional[list[str]] = None
    suggestions: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.explanations is not None:
            data["explanations"] = list(self.explanations)
        if self.suggestions is not None:
            data["suggestions"] = list(self.suggestions)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        role = data.get("role")
        explanations = data.get("explanations")
        suggestions = data.get("suggestions")
        return cls(
            role=Role(role) if role in ("user", "assistant") else Role.ASSISTANT,
            content=str(data.get("content") or ""),
            explanations=list(explanations) if isinstance(explanations, list) else None,
            suggestions=list(suggestions) if isinstance(suggestions, list) else None,
        )


@dataclass
class Session:
    id: str
    title: str
    updated_at: int
    title_locked: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "updatedAt": self.updated_at,
            "titleLocked": self.title_locked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or "")[:MAX_TITLE_CHARS],
            updated_at=int(data.get("updatedAt") or 0),
            title_locked=bool(data.get("titleLocked", False)),
        )


@dataclass
class CoachingState:
    """In-progress clarify/refine sub-flow for one session."""

    suggestion: str
    questions: list[str] = field(default_factory=list)
    answers: list[str] = field(default_factory=list)
    active: bool = True

    def __post_init__(self) -> None:
        self.questions = list(self.questions)[:MAX_QUESTIONS]
        if not self.answers:
            self.answers = ["" for _ in self.questions]
        elif len(self.answers) != len(self.questions):
            raise ValueError("answers must be parallel to questions")

    def pairs(self) -> list[tuple[str, str]]:
        return list(zip(self.questions, self.answers))

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "questions": list(self.questions),
            "answers": list(self.answers),
            "suggestion": self.suggestion,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CoachingState":
        return cls(
            suggestion=str(data.get("suggestion") or ""),
            questions=[str(q) for q in data.get("questions") or []],
            answers=[str(a) for a in data.get("answers") or []],
            active=bool(data.get("active", True)),
        )


@dataclass(frozen=True)
class Credentials:
    api_key: str


@dataclass
class LLMSettings:
    temperature: float = 0.7
    top_p: float = 0.95
    top_k: Optional[int] = None
    max_output_tokens: int = 2048


@dataclass(frozen=True)
class GenerationRequest:
    model_id: str
    content: str
    output_constraint: Optional[dict] = None
    temperature: float = 0.7
    top_p: float = 0.95
    top_k: Optional[int] = None
    max_output_tokens: int = 2048


# Validated task contexts. The prompt builder only accepts these.


@dataclass(frozen=True)
class OptimizeContext:
    prompt: str = ""
    previous_prompt: Optional[str] = None
    refinement_instruction: Optional[str] = None

    def __post_init__(self) -> None:
        if not (self.prompt or "").strip() and not self.is_refinement:
            raise ValueError("optimize needs a prompt or a previous prompt + instruction")

    @property
    def is_refinement(self) -> bool:
        return bool(
            (self.previous_prompt or "").strip()
            and (self.refinement_instruction or "").strip()
        )


@dataclass(frozen=True)
class ClarifyContext:
    original_prompt: str
    suggestion: str
    current_prompt: Optional[str] = None

    def __post_init__(self) -> None:
        if not (self.original_prompt or "").strip() or not (self.suggestion or "").strip():
            raise ValueError("clarify needs the original prompt and a suggestion")


@dataclass(frozen=True)
class RefineContext:
    current_prompt: str
    answers: tuple[tuple[str, str], ...]

    def __post_init__(self) -> None:
        if not (self.current_prompt or "").strip() or not self.answers:
            raise ValueError("refine needs the current prompt and at least one answer")


@dataclass(frozen=True)
class BuiltPrompt:
    phase: TaskPhase
    content: str
    output_schema: dict
    template: str


@dataclass
class OptimizationResult:
    optimized_prompt: str
    explanations: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    degraded: bool = False

    def to_message(self) -> ChatMessage:
        return ChatMessage(
            role=Role.ASSISTANT,
            content=self.optimized_prompt,
            explanations=list(self.explanations),
            suggestions=list(self.suggestions),
        )


@dataclass
class ClarifyResult:
    questions: list[str] = field(default_factory=list)
    degraded: bool = False
