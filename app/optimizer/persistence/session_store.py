"""
Purpose: Session index, message logs and coaching state, persisted to a
key-value medium with debounced writes and a capacity-bounded index.

Layout (one key per record):
- "chat_sessions"  -> JSON list of {id, title, updatedAt, titleLocked}
- "chat:<id>"      -> {"messages": [...]}
- "coach:<id>"     -> {active, questions, answers, suggestion}

Every mutation lands in memory immediately and (re)starts a per-session
quiet-period timer; the durable write happens when the timer fires or when
flush() is called. A flush whose message payload is byte-identical to the
last one written is skipped, so reloading a session never bumps updatedAt.

Testing: InMemoryKeyValueStore + a manual timer factory + a fake clock.
"""

from __future__ import annotations
import json
import threading
import time
from typing import Any, Callable, Optional

from ..interfaces import KeyValueStore
from ..logger import get_logger
from ..models import ChatMessage, CoachingState, Role, Session
from ..utils.session_naming import (
    DEFAULT_TITLE,
    generate_session_name,
    new_session_id,
    normalize_title,
)
from .debounce import DebouncedScheduler, TimerFactory

logger = get_logger(__name__)

INDEX_KEY = "chat_sessions"
DEFAULT_CAPACITY = 50
DEFAULT_DEBOUNCE_SECONDS = 0.5


def messages_key(session_id: str) -> str:
    return f"chat:{session_id}"


def coaching_key(session_id: str) -> str:
    return f"coach:{session_id}"


def _dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _now_millis() -> int:
    return int(time.time() * 1000)


class SessionStore:
    def __init__(
        self,
        kv: KeyValueStore,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], int] = _now_millis,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.kv = kv
        self.capacity = capacity
        self._clock = clock
        self._lock = threading.RLock()
        if timer_factory is None:
            self._scheduler = DebouncedScheduler(debounce_seconds)
        else:
            self._scheduler = DebouncedScheduler(debounce_seconds, timer_factory=timer_factory)

        self._index: list[Session] = self._load_index()
        self._messages: dict[str, list[ChatMessage]] = {}
        self._coaching: dict[str, Optional[CoachingState]] = {}
        self._last_written: dict[str, Optional[str]] = {}
        self._last_coaching: dict[str, Optional[str]] = {}
        self._known: set[str] = {s.id for s in self._index}
        self.flush_count = 0

    # ------------------------------------------------------------------
    # loading
    # ------------------------------------------------------------------
    def _load_index(self) -> list[Session]:
        raw = self.kv.get(INDEX_KEY)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning("Session index is not valid JSON; starting empty")
            return []
        index: list[Session] = []
        seen: set[str] = set()
        for item in items if isinstance(items, list) else []:
            try:
                s = Session.from_dict(item)
            except (KeyError, TypeError, ValueError):
                logger.warning("Dropping malformed session index entry: %r", item)
                continue
            if s.id in seen:
                continue
            seen.add(s.id)
            index.append(s)
        index.sort(key=lambda s: s.updated_at, reverse=True)
        return index

    def _ensure_loaded(self, session_id: str) -> None:
        if session_id in self._messages:
            return
        raw = self.kv.get(messages_key(session_id))
        messages: list[ChatMessage] = []
        if raw:
            try:
                data = json.loads(raw)
                messages = [ChatMessage.from_dict(m) for m in data.get("messages") or []]
            except (ValueError, AttributeError, TypeError):
                logger.warning("Message log for %s is unreadable; starting empty", session_id)
                raw = None
        self._messages[session_id] = messages
        self._last_written[session_id] = raw

        raw_coach = self.kv.get(coaching_key(session_id))
        coaching = None
        if raw_coach:
            try:
                coaching = CoachingState.from_dict(json.loads(raw_coach))
            except (ValueError, AttributeError, TypeError):
                logger.warning("Coaching record for %s is unreadable; dropping", session_id)
                raw_coach = None
        self._coaching[session_id] = coaching
        self._last_coaching[session_id] = raw_coach

    def _find(self, session_id: str) -> Optional[Session]:
        return next((s for s in self._index if s.id == session_id), None)

    def _require(self, session_id: str) -> None:
        if session_id not in self._known:
            raise KeyError(f"Unknown session: {session_id}")

    # ------------------------------------------------------------------
    # mutations (debounced)
    # ------------------------------------------------------------------
    def create_or_touch(self, session_id: Optional[str] = None) -> str:
        """Register a session (generating an id if needed) and schedule a flush."""
        session_id = session_id or new_session_id()
        with self._lock:
            self._ensure_loaded(session_id)
            self._known.add(session_id)
        self._schedule(session_id)
        return session_id

    def append_message(self, session_id: str, message: ChatMessage) -> None:
        with self._lock:
            self._ensure_loaded(session_id)
            self._known.add(session_id)
            self._messages[session_id].append(message)
        self._schedule(session_id)

    def set_coaching(self, session_id: str, state: Optional[CoachingState]) -> None:
        with self._lock:
            self._require(session_id)
            self._ensure_loaded(session_id)
            self._coaching[session_id] = state
        self._schedule(session_id)

    def _schedule(self, session_id: str) -> None:
        self._scheduler.schedule(session_id, lambda: self._on_timer(session_id))

    def _on_timer(self, session_id: str) -> None:
        try:
            with self._lock:
                self._flush_locked(session_id)
        except Exception:
            logger.exception("Failed to save session %s", session_id)

    # ------------------------------------------------------------------
    # mutations (write-through)
    # ------------------------------------------------------------------
    def rename(self, session_id: str, title: str) -> Session:
        with self._lock:
            self._require(session_id)
            if self._find(session_id) is None:
                self._scheduler.cancel(session_id)
                self._flush_locked(session_id)
            entry = self._find(session_id)
            entry.title = normalize_title(title)
            entry.title_locked = True
            self.kv.apply({INDEX_KEY: self._index_payload()})
            return Session(**vars(entry))

    def delete(self, session_id: str) -> bool:
        """Remove a session, its message log and its coaching record."""
        self._scheduler.cancel(session_id)
        with self._lock:
            existed = session_id in self._known
            self._index = [s for s in self._index if s.id != session_id]
            self._forget(session_id)
            self.kv.apply(
                {INDEX_KEY: self._index_payload()},
                deletes=[messages_key(session_id), coaching_key(session_id)],
            )
        if existed:
            logger.info("Deleted session %s", session_id)
        return existed

    def _forget(self, session_id: str) -> None:
        self._known.discard(session_id)
        self._messages.pop(session_id, None)
        self._coaching.pop(session_id, None)
        self._last_written.pop(session_id, None)
        self._last_coaching.pop(session_id, None)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def list(self, query: Optional[str] = None) -> list[Session]:
        """Sessions, newest first; optional case-insensitive title filter."""
        with self._lock:
            items = [Session(**vars(s)) for s in self._index]
        if query:
            q = query.casefold()
            items = [s for s in items if q in s.title.casefold()]
        return items

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            s = self._find(session_id)
            return Session(**vars(s)) if s else None

    def exists(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._known

    def get_messages(self, session_id: str) -> list[ChatMessage]:
        with self._lock:
            if session_id not in self._known:
                return []
            self._ensure_loaded(session_id)
            return list(self._messages[session_id])

    def get_coaching(self, session_id: str) -> Optional[CoachingState]:
        with self._lock:
            if session_id not in self._known:
                return None
            self._ensure_loaded(session_id)
            state = self._coaching.get(session_id)
            return CoachingState.from_dict(state.to_dict()) if state else None

    def is_pending(self, session_id: str) -> bool:
        return self._scheduler.is_pending(session_id)

    # ------------------------------------------------------------------
    # flushing
    # ------------------------------------------------------------------
    def flush(self, session_id: str) -> bool:
        """Write the session now. Returns False when nothing had changed."""
        self._scheduler.cancel(session_id)
        with self._lock:
            return self._flush_locked(session_id)

    def flush_all(self) -> int:
        written = 0
        for session_id in self._scheduler.pending():
            if self.flush(session_id):
                written += 1
        return written

    def close(self) -> None:
        self.flush_all()
        self._scheduler.cancel_all()

    def __enter__(self) -> "SessionStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _index_payload(self) -> str:
        return _dumps([s.to_dict() for s in self._index])

    def _derive_title(self, session_id: str) -> str:
        first_user = next(
            (m for m in self._messages[session_id] if m.role == Role.USER and m.content.strip()),
            None,
        )
        return generate_session_name(first_user.content) if first_user else DEFAULT_TITLE

    def _flush_locked(self, session_id: str) -> bool:
        if session_id not in self._known:
            return False
        self._ensure_loaded(session_id)

        payload = _dumps({"messages": [m.to_dict() for m in self._messages[session_id]]})
        coaching = self._coaching.get(session_id)
        coach_payload = _dumps(coaching.to_dict()) if coaching else None

        entry = self._find(session_id)
        messages_changed = entry is None or payload != self._last_written.get(session_id)
        coaching_changed = coach_payload != self._last_coaching.get(session_id)
        if not messages_changed and not coaching_changed:
            logger.debug("Session %s unchanged; skipping write", session_id)
            return False

        sets: dict[str, str] = {}
        deletes: list[str] = []
        evicted: list[Session] = []

        if coaching_changed:
            if coach_payload is None:
                deletes.append(coaching_key(session_id))
            else:
                sets[coaching_key(session_id)] = coach_payload

        index = self._index
        if messages_changed:
            sets[messages_key(session_id)] = payload
            locked = entry is not None and entry.title_locked
            fresh = Session(
                id=session_id,
                title=entry.title if locked else self._derive_title(session_id),
                updated_at=self._clock(),
                title_locked=locked,
            )
            index = [fresh] + [s for s in self._index if s.id != session_id]
            index.sort(key=lambda s: s.updated_at, reverse=True)

            if len(index) > self.capacity:
                evicted = index[self.capacity:]
                index = index[: self.capacity]
                for old in evicted:
                    deletes.extend([messages_key(old.id), coaching_key(old.id)])
            sets[INDEX_KEY] = _dumps([s.to_dict() for s in index])

        # index, logs and evictions land in one batch
        self.kv.apply(sets, deletes)

        self._index = index
        self._last_written[session_id] = payload
        self._last_coaching[session_id] = coach_payload
        # ranked by persisted updatedAt only; unflushed appends go with the session
        for old in evicted:
            if self._scheduler.cancel(old.id):
                logger.warning(
                    "Evicted session %s had unsaved changes; they were discarded", old.id
                )
            self._forget(old.id)
        self.flush_count += 1

        if evicted:
            logger.info(
                "Evicted %d session(s) over capacity %d: %s",
                len(evicted),
                self.capacity,
                ", ".join(s.id for s in evicted),
            )
        logger.debug("Flushed session %s", session_id)
        return True
