"""Shared pytest fixtures and fakes."""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable

import pytest

from optimizer.errors import GenerationError
from optimizer.models import Credentials, GenerationRequest
from optimizer.orchestrator import Orchestrator
from optimizer.persistence.kv import InMemoryKeyValueStore
from optimizer.persistence.session_store import SessionStore


class FakeLLM:
    """Scripted LLMClient: each call pops the next reply (str or exception)."""

    def __init__(self, replies: Iterable[Any] = ()):
        self.replies = list(replies)
        self.requests: list[GenerationRequest] = []
        self.on_call: Callable[[GenerationRequest], None] | None = None

    def generate(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        if self.on_call is not None:
            self.on_call(request)
        if not self.replies:
            raise AssertionError("FakeLLM ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply

    @property
    def calls(self) -> int:
        return len(self.requests)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ManualTimer:
    def __init__(self, delay: float, fn: Callable[[], None]):
        self.delay = delay
        self.fn = fn
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.fn()


class ManualTimerFactory:
    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, fn: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, fn)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def fire_all(self) -> None:
        for t in list(self.live):
            t.fire()


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now


def optimize_reply(prompt: str = "X", explanations=None, suggestions=None) -> dict:
    return {
        "optimizedPrompt": prompt,
        "explanations": explanations if explanations is not None else ["Added a role."],
        "suggestions": suggestions if suggestions is not None else ["Add a target audience"],
    }


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(api_key="test-key")


@pytest.fixture
def orchestrator(fake_llm: FakeLLM, sleep: RecordingSleep) -> Orchestrator:
    return Orchestrator(lambda creds: fake_llm, sleep=sleep)


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(kv, timers, clock) -> SessionStore:
    return SessionStore(kv, timer_factory=timers, clock=clock)
