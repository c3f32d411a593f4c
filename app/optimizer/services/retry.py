"""
Purpose: One place for retry policy around the generation call.

Linear backoff: attempt N that fails with a retriable status waits
base_delay * N before attempt N + 1. No jitter. The caller's thread is
blocked for the whole backoff.

Testing: inject a fake client and a recording sleep; count calls.
"""

from __future__ import annotations
import time
from typing import Callable, Optional

from ..errors import GenerationError
from ..interfaces import LLMClient
from ..logger import get_logger
from ..models import GenerationRequest

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.8


class RetryingInvoker:
    def __init__(
        self,
        llm: LLMClient,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.llm = llm
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        self.last_attempts = 0

    def invoke(
        self,
        request: GenerationRequest,
        *,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> str:
        """Return the raw text, or raise the last GenerationError."""
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        delay = self.base_delay if base_delay is None else base_delay

        for attempt in range(1, attempts + 1):
            self.last_attempts = attempt
            try:
                return self.llm.generate(request)
            except GenerationError as e:
                if not e.retriable:
                    logger.error(
                        "Generation failed with non-retriable status %s on %s: %s",
                        e.status,
                        request.model_id,
                        e.message,
                    )
                    raise
                if attempt >= attempts:
                    logger.error(
                        "Generation failed after %d attempts on %s (status %s)",
                        attempt,
                        request.model_id,
                        e.status,
                    )
                    raise
                wait = delay * attempt
                logger.warning(
                    "Retriable status %s from %s (attempt %d/%d); retrying in %.2fs",
                    e.status,
                    request.model_id,
                    attempt,
                    attempts,
                    wait,
                )
                self._sleep(wait)

        raise AssertionError("unreachable")  # pragma: no cover
