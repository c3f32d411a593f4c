"""Tests for the session controller: conversation flow and coaching."""

from __future__ import annotations

import pytest

from optimizer.config import Settings
from optimizer.controller import PromptSessionController, build_controller
from optimizer.errors import ClientError, GenerationError, UpstreamError
from optimizer.models import Credentials, Role
from optimizer.services.llm_gemini import GeminiLLMClient

from conftest import optimize_reply


@pytest.fixture
def controller(orchestrator, store, credentials) -> PromptSessionController:
    return PromptSessionController(orchestrator, store, credentials=credentials)


@pytest.fixture
def optimized(controller, fake_llm) -> str:
    fake_llm.replies = [optimize_reply("P1", suggestions=["Add a target audience"])]
    controller.submit("s1", "write a blog post")
    return "s1"


def test_first_submit_optimizes_from_scratch(controller, fake_llm) -> None:
    fake_llm.replies = [optimize_reply("P1")]

    reply = controller.submit("s1", "write a blog post")

    assert reply.content == "P1"
    assert reply.suggestions == ["Add a target audience"]
    history = controller.get_history("s1")
    assert [(m.role, m.content) for m in history] == [
        (Role.USER, "write a blog post"),
        (Role.ASSISTANT, "P1"),
    ]
    assert "Existing prompt" not in fake_llm.requests[0].content


def test_follow_up_refines_latest_result(controller, fake_llm, optimized) -> None:
    fake_llm.replies = [optimize_reply("P2")]

    controller.submit(optimized, "make it funnier")

    request = fake_llm.requests[-1].content
    assert "Existing prompt" in request
    assert "P1" in request
    assert "make it funnier" in request
    assert controller.latest_result(optimized) == "P2"
    assert controller.original_prompt(optimized) == "write a blog post"
    assert len(controller.get_history(optimized)) == 4


def test_failed_request_appends_nothing(controller, fake_llm, optimized) -> None:
    fake_llm.replies = [GenerationError(401, "API key not valid")]

    with pytest.raises(UpstreamError) as excinfo:
        controller.submit(optimized, "make it funnier")

    assert "Check your key" in str(excinfo.value)
    assert len(controller.get_history(optimized)) == 2


def test_failed_first_request_creates_no_session(controller, fake_llm) -> None:
    fake_llm.replies = [GenerationError(503, "down")] * 3

    with pytest.raises(UpstreamError):
        controller.submit("s1", "write a blog post")

    assert controller.sessions() == []
    assert not controller.store.exists("s1")


def test_missing_credentials_is_client_error(orchestrator, store, fake_llm) -> None:
    controller = PromptSessionController(orchestrator, store)

    with pytest.raises(ClientError):
        controller.submit("s1", "write a blog post")

    assert fake_llm.calls == 0


def test_clarify_creates_coaching_state(controller, fake_llm, optimized) -> None:
    fake_llm.replies = [{"questions": ["Who reads it?", "How long?"]}]

    state = controller.start_clarify(optimized, "Add a target audience")

    assert state.questions == ["Who reads it?", "How long?"]
    assert state.answers == ["", ""]
    assert controller.coaching(optimized).suggestion == "Add a target audience"
    request = fake_llm.requests[-1].content
    assert "write a blog post" in request
    assert "P1" in request


def test_clarify_needs_a_result_first(controller, fake_llm) -> None:
    with pytest.raises(ClientError):
        controller.start_clarify("s1", "Add a target audience")

    assert fake_llm.calls == 0


def test_zero_questions_applies_suggestion_directly(controller, fake_llm, optimized) -> None:
    fake_llm.replies = [{"questions": []}, optimize_reply("P2")]

    assert controller.start_clarify(optimized, "Add a target audience") is None

    assert controller.coaching(optimized) is None
    assert controller.latest_result(optimized) == "P2"
    history = controller.get_history(optimized)
    assert history[-2].content == "Add a target audience"
    assert "Existing prompt" in fake_llm.requests[-1].content


def test_answers_refine_and_clear_coaching(controller, fake_llm, optimized) -> None:
    fake_llm.replies = [{"questions": ["Who reads it?", "How long?"]}]
    controller.start_clarify(optimized, "Add a target audience")
    controller.record_answer(optimized, 0, "Developers")
    fake_llm.replies = [optimize_reply("P2")]

    reply = controller.submit_answers(optimized)

    assert reply.content == "P2"
    request = fake_llm.requests[-1].content
    assert "A1: Developers" in request
    assert "A2: (no answer)" in request
    history = controller.get_history(optimized)
    assert [m.content for m in history[-2:]] == ["Add a target audience", "P2"]
    assert controller.coaching(optimized) is None


def test_submit_answers_with_explicit_list(controller, fake_llm, optimized) -> None:
    fake_llm.replies = [{"questions": ["Who reads it?"]}]
    controller.start_clarify(optimized, "Add a target audience")
    fake_llm.replies = [optimize_reply("P2")]

    with pytest.raises(ClientError):
        controller.submit_answers(optimized, ["a", "b"])

    controller.submit_answers(optimized, ["Developers"])

    assert controller.latest_result(optimized) == "P2"


def test_all_blank_answers_keep_coaching_open(controller, fake_llm, optimized) -> None:
    fake_llm.replies = [{"questions": ["Who reads it?"]}]
    controller.start_clarify(optimized, "Add a target audience")
    calls = fake_llm.calls

    with pytest.raises(ClientError):
        controller.submit_answers(optimized)

    assert fake_llm.calls == calls
    assert controller.coaching(optimized) is not None


def test_cancel_during_refine_discards_result(controller, fake_llm, optimized) -> None:
    fake_llm.replies = [{"questions": ["Who reads it?"]}]
    controller.start_clarify(optimized, "Add a target audience")
    controller.record_answer(optimized, 0, "Developers")
    fake_llm.replies = [optimize_reply("P2")]
    fake_llm.on_call = lambda request: controller.cancel_coaching(optimized)

    assert controller.submit_answers(optimized) is None

    assert controller.latest_result(optimized) == "P1"
    assert len(controller.get_history(optimized)) == 2
    assert controller.coaching(optimized) is None


def test_cancel_during_clarify_discards_questions(controller, fake_llm, optimized) -> None:
    fake_llm.replies = [{"questions": ["Who reads it?"]}]
    fake_llm.on_call = lambda request: controller.cancel_coaching(optimized)

    assert controller.start_clarify(optimized, "Add a target audience") is None

    assert controller.coaching(optimized) is None


def test_record_answer_without_coaching(controller, optimized) -> None:
    with pytest.raises(ClientError):
        controller.record_answer(optimized, 0, "x")


def test_record_answer_out_of_range(controller, fake_llm, optimized) -> None:
    fake_llm.replies = [{"questions": ["Who reads it?"]}]
    controller.start_clarify(optimized, "Add a target audience")

    with pytest.raises(IndexError):
        controller.record_answer(optimized, 3, "x")


def test_rename_and_delete(controller, optimized) -> None:
    controller.store.flush(optimized)

    assert controller.rename_session(optimized, "Blog").title == "Blog"
    assert [s.title for s in controller.sessions()] == ["Blog"]

    assert controller.delete_session(optimized) is True
    assert controller.sessions() == []
    assert controller.get_history(optimized) == []


def test_build_controller_wires_settings(store) -> None:
    class TestSettings(Settings):
        GEMINI_API_KEY = "test-key"
        DEFAULT_MODEL = "gemini-2.0-flash"
        MAX_ATTEMPTS = 5
        LOG_DIR = ""

    controller = build_controller(TestSettings(), store=store)

    assert controller.model_id == "gemini-2.0-flash"
    assert controller.credentials == Credentials("test-key")
    assert controller.orchestrator.max_attempts == 5
    assert controller.store is store
    client = controller.orchestrator.client_factory(Credentials("test-key"))
    assert isinstance(client, GeminiLLMClient)


def test_delete_during_submit_discards_result(controller, fake_llm, optimized) -> None:
    controller.store.flush(optimized)
    fake_llm.replies = [optimize_reply("P2")]
    seen = {}

    def delete_while_running(request):
        seen["deleted"] = controller.delete_session(optimized)
        seen["lock_held"] = controller._session_lock(optimized).locked()

    fake_llm.on_call = delete_while_running

    assert controller.submit(optimized, "make it shorter") is None

    assert seen == {"deleted": True, "lock_held": True}
    assert not controller.store.exists(optimized)
    assert controller.sessions() == []
    assert controller.get_history(optimized) == []
    assert controller.store.kv.keys() == ["chat_sessions"]


def test_submit_after_delete_starts_fresh(controller, fake_llm, optimized) -> None:
    controller.delete_session(optimized)
    fake_llm.replies = [optimize_reply("P9")]

    reply = controller.submit(optimized, "write a haiku")

    assert reply.content == "P9"
    assert "Existing prompt" not in fake_llm.requests[-1].content
    assert [m.content for m in controller.get_history(optimized)] == ["write a haiku", "P9"]
