"""
Error taxonomy surfaced by the orchestrator.

GenerationError is the raw outbound failure (status + message) and never
leaves the engine; the orchestrator translates it into UpstreamError.
"""

from __future__ import annotations
from typing import Optional

RETRIABLE_STATUSES = frozenset({429, 500, 503})


class OptimizerError(Exception):
    # RequestState the request was in when it failed; set by the orchestrator.
    failed_state = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ClientError(OptimizerError, ValueError):
    """Invalid task payload, unsupported model, missing credentials."""

    status = 400


class GenerationError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message

    @property
    def retriable(self) -> bool:
        return self.status in RETRIABLE_STATUSES


class UpstreamError(OptimizerError):
    def __init__(
        self,
        status: int,
        message: str,
        *,
        user_message: Optional[str] = None,
        attempts: int = 1,
    ):
        super().__init__(message)
        self.status = status
        self.user_message = user_message or message
        self.attempts = attempts

    @property
    def transient(self) -> bool:
        return self.status in RETRIABLE_STATUSES

    def __str__(self) -> str:
        return self.user_message


def remediation_message(status: int, message: str) -> str:
    """Map a raw upstream status/message to what the user should do next."""
    text = (message or "").lower()
    if status == 429:
        return "The model is rate limited right now. Wait a moment and try again."
    if status in (500, 503):
        return "The model service is unavailable. Please try again shortly."
    if status == 404 or "not found" in text:
        return "The selected model is not available. Switch to another model."
    if status == 413 or ("token" in text and ("exceed" in text or "too large" in text)):
        return "The conversation is too long for this model. Shorten it or start a new session."
    if status in (401, 403) or "api key" in text:
        return "The API key was rejected. Check your key in settings."
    return message or "The model request failed."
