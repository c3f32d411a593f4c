"""
Trailing-edge debounce: at most one pending timer per key; scheduling again
cancels and restarts it.
"""

from __future__ import annotations
import threading
from typing import Callable, Protocol


class TimerHandle(Protocol):
    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


class DebouncedScheduler:
    def __init__(self, delay: float, *, timer_factory: TimerFactory = threading.Timer):
        self.delay = delay
        self._timer_factory = timer_factory
        self._timers: dict[str, TimerHandle] = {}
        self._lock = threading.Lock()

    def schedule(self, key: str, fn: Callable[[], None]) -> None:
        def fire() -> None:
            with self._lock:
                if self._timers.get(key) is not timer:
                    return
                del self._timers[key]
            fn()

        with self._lock:
            previous = self._timers.pop(key, None)
            if previous is not None:
                previous.cancel()
            timer = self._timer_factory(self.delay, fire)
            timer.daemon = True
            self._timers[key] = timer
        timer.start()

    def cancel(self, key: str) -> bool:
        with self._lock:
            timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._timers

    def pending(self) -> list[str]:
        with self._lock:
            return list(self._timers)

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for t in timers:
            t.cancel()
