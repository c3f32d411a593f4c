"""
Purpose: The caller side of the engine. Owns the conversation flow for
sessions: it asks the orchestrator for results and appends them to the
session store.

Key responsibilities:
- submit(): first message -> initial optimize; later messages -> refinement
  of the latest optimized prompt.
- start_clarify() / record_answer() / submit_answers() / cancel_coaching():
  the coaching sub-flow around one selected suggestion.
- Requests for the same session run single-flight, so exchanges never
  interleave.
- A failed request appends nothing; prior session state is untouched.

Testing: Pure unit tests with fakes: fake LLMClient behind the orchestrator,
InMemoryKeyValueStore, manual timers.
"""

from __future__ import annotations
import threading
from typing import Optional

from .config import Settings, build_store, settings as default_settings
from .errors import ClientError
from .logger import configure_root, get_logger
from .model_config import DEFAULT_MODEL_ID
from .models import (
    ChatMessage,
    ClarifyResult,
    CoachingState,
    Credentials,
    OptimizationResult,
    Role,
    Session,
    TaskPhase,
)
from .orchestrator import Orchestrator
from .persistence.session_store import SessionStore
from .services.llm_gemini import GeminiLLMClient
from .utils.session_naming import new_session_id

logger = get_logger(__name__)


class PromptSessionController:
    def __init__(
        self,
        orchestrator: Orchestrator,
        store: SessionStore,
        *,
        model_id: str = DEFAULT_MODEL_ID,
        credentials: Optional[Credentials] = None,
    ):
        self.orchestrator = orchestrator
        self.store = store
        self.model_id = model_id
        self.credentials = credentials
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        # bumped on every coaching start/cancel/submit; stale results are dropped
        self._coaching_epoch: dict[str, int] = {}
        # bumped on delete; an in-flight submit must not resurrect the session
        self._generation: dict[str, int] = {}

    def set_model(self, model_id: str) -> None:
        self.model_id = model_id

    def set_credentials(self, api_key: str) -> None:
        self.credentials = Credentials(api_key=api_key)

    def new_session_id(self) -> str:
        return new_session_id()

    def _session_lock(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(session_id, threading.Lock())

    def _bump_epoch(self, session_id: str) -> int:
        with self._locks_guard:
            epoch = self._coaching_epoch.get(session_id, 0) + 1
            self._coaching_epoch[session_id] = epoch
            return epoch

    def _epoch(self, session_id: str) -> int:
        with self._locks_guard:
            return self._coaching_epoch.get(session_id, 0)

    def _generation_of(self, session_id: str) -> int:
        with self._locks_guard:
            return self._generation.get(session_id, 0)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get_history(self, session_id: str) -> list[ChatMessage]:
        return self.store.get_messages(session_id)

    def sessions(self, query: Optional[str] = None) -> list[Session]:
        return self.store.list(query)

    def latest_result(self, session_id: str) -> str:
        """Content of the latest assistant message ("" when none yet)."""
        for m in reversed(self.store.get_messages(session_id)):
            if m.role == Role.ASSISTANT:
                return m.content
        return ""

    def original_prompt(self, session_id: str) -> str:
        for m in self.store.get_messages(session_id):
            if m.role == Role.USER:
                return m.content
        return ""

    def coaching(self, session_id: str) -> Optional[CoachingState]:
        return self.store.get_coaching(session_id)

    # ------------------------------------------------------------------
    # optimize
    # ------------------------------------------------------------------
    def submit(self, session_id: str, text: str) -> Optional[ChatMessage]:
        """
        Send one user message. The first message in a session is optimized
        from scratch; later ones refine the latest optimized prompt.
        Returns the appended assistant message, or None when the session
        was deleted while the request was in flight.
        """
        generation = self._generation_of(session_id)
        with self._session_lock(session_id):
            previous = self.latest_result(session_id)
            if previous:
                payload = {"previous_prompt": previous, "refinement_instruction": text}
            else:
                payload = {"prompt": text}
            result: OptimizationResult = self.orchestrator.run_task(
                TaskPhase.OPTIMIZE, self.model_id, self.credentials, payload
            )
            if generation != self._generation_of(session_id):
                logger.info("Session %s: discarding result for deleted session", session_id)
                return None
            reply = result.to_message()
            self._append_exchange(session_id, text, reply)
            logger.info(
                "Session %s: %s", session_id, "refined" if previous else "optimized"
            )
            return reply

    def _append_exchange(self, session_id: str, user_text: str, reply: ChatMessage) -> None:
        self.store.create_or_touch(session_id)
        self.store.append_message(session_id, ChatMessage(role=Role.USER, content=user_text))
        self.store.append_message(session_id, reply)

    # ------------------------------------------------------------------
    # coaching: clarify -> answers -> refine
    # ------------------------------------------------------------------
    def start_clarify(self, session_id: str, suggestion: str) -> Optional[CoachingState]:
        """
        Ask the model what it needs to apply `suggestion`. With at least one
        question a coaching state is stored and returned; with none the
        suggestion is applied directly as a refinement and None is returned.
        """
        epoch = self._bump_epoch(session_id)
        with self._session_lock(session_id):
            current = self.latest_result(session_id)
            if not current:
                raise ClientError("Optimize a prompt before asking for suggestions.")
            payload = {
                "original_prompt": self.original_prompt(session_id) or current,
                "current_prompt": current,
                "suggestion": suggestion,
            }
            result: ClarifyResult = self.orchestrator.run_task(
                TaskPhase.CLARIFY, self.model_id, self.credentials, payload
            )
            if epoch != self._epoch(session_id):
                logger.info("Session %s: discarding clarify result after cancel", session_id)
                return None

            if not result.questions:
                refined: OptimizationResult = self.orchestrator.run_task(
                    TaskPhase.OPTIMIZE,
                    self.model_id,
                    self.credentials,
                    {"previous_prompt": current, "refinement_instruction": suggestion},
                )
                if epoch != self._epoch(session_id):
                    return None
                self._append_exchange(session_id, suggestion, refined.to_message())
                return None

            state = CoachingState(suggestion=suggestion, questions=result.questions)
            self.store.set_coaching(session_id, state)
            return state

    def record_answer(self, session_id: str, index: int, answer: str) -> CoachingState:
        state = self.store.get_coaching(session_id)
        if state is None or not state.active:
            raise ClientError("No clarifying questions are open for this session.")
        if not 0 <= index < len(state.questions):
            raise IndexError(f"No question at position {index}")
        state.answers[index] = answer
        self.store.set_coaching(session_id, state)
        return state

    def submit_answers(
        self, session_id: str, answers: Optional[list[str]] = None
    ) -> Optional[ChatMessage]:
        """
        Refine the latest prompt with the coaching answers. Returns the
        appended assistant message, or None when the flow was cancelled
        while the request was in flight.
        """
        epoch = self._epoch(session_id)
        state = self.store.get_coaching(session_id)
        if state is None or not state.active:
            raise ClientError("No clarifying questions are open for this session.")
        if answers is not None:
            if len(answers) != len(state.questions):
                raise ClientError("Provide one answer per question.")
            state.answers = list(answers)

        with self._session_lock(session_id):
            result: OptimizationResult = self.orchestrator.run_task(
                TaskPhase.REFINE,
                self.model_id,
                self.credentials,
                {
                    "current_prompt": self.latest_result(session_id),
                    "answers": [{"question": q, "answer": a} for q, a in state.pairs()],
                },
            )
            if epoch != self._epoch(session_id):
                logger.info("Session %s: discarding refine result after cancel", session_id)
                return None
            reply = result.to_message()
            self._append_exchange(session_id, state.suggestion, reply)
            self._bump_epoch(session_id)
            self.store.set_coaching(session_id, None)
            return reply

    def cancel_coaching(self, session_id: str) -> None:
        self._bump_epoch(session_id)
        if self.store.exists(session_id):
            self.store.set_coaching(session_id, None)

    # ------------------------------------------------------------------
    # session management
    # ------------------------------------------------------------------
    def rename_session(self, session_id: str, title: str) -> Session:
        return self.store.rename(session_id, title)

    def delete_session(self, session_id: str) -> bool:
        self._bump_epoch(session_id)
        with self._locks_guard:
            self._generation[session_id] = self._generation.get(session_id, 0) + 1
            # a held lock stays so a queued request still waits on it
            lock = self._locks.get(session_id)
            if lock is not None and not lock.locked():
                del self._locks[session_id]
        return self.store.delete(session_id)

    def close(self) -> None:
        self.store.close()


def build_controller(
    config: Settings = default_settings,
    *,
    store: Optional[SessionStore] = None,
) -> PromptSessionController:
    """Wire the default Gemini client, orchestrator and store from settings."""
    configure_root(config.LOG_LEVEL, config.LOG_DIR)

    def client_factory(creds: Credentials) -> GeminiLLMClient:
        return GeminiLLMClient(creds.api_key, base_url=config.GEMINI_BASE_URL)

    orchestrator = Orchestrator(
        client_factory,
        settings=config.llm_settings,
        max_attempts=config.MAX_ATTEMPTS,
        base_delay=config.BASE_DELAY,
    )
    credentials = Credentials(config.GEMINI_API_KEY) if config.GEMINI_API_KEY else None
    return PromptSessionController(
        orchestrator,
        store or build_store(config),
        model_id=config.DEFAULT_MODEL,
        credentials=credentials,
    )
