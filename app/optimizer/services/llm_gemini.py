"""
Purpose: Thin client wrapper around Gemini, reached through its
OpenAI-compatible endpoint with the OpenAI SDK.
One place for auth, model options, and response/error normalization.

Retries are NOT done here: the SDK's own retries are disabled so the
RetryingInvoker owns the policy. Every failure leaves this module as a
GenerationError(status, message).

Testing: Mock SDK calls; assert it maps options and errors correctly.
"""

from __future__ import annotations
from typing import Any, Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, OpenAIError

from ..errors import GenerationError
from ..model_config import supports_schema
from ..models import GenerationRequest

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class GeminiLLMClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key
        if not self.api_key:
            raise RuntimeError("Missing GEMINI_API_KEY")
        if client is not None:
            self.client = client
            return
        try:
            self.client = OpenAI(
                api_key=self.api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
            )
        except OpenAIError as e:
            raise RuntimeError(f"Failed to initialize Gemini client: {e}")

    @staticmethod
    def _response_format(request: GenerationRequest) -> dict:
        if request.output_constraint and supports_schema(request.model_id):
            return {
                "type": "json_schema",
                "json_schema": {
                    "name": request.output_constraint.get("title", "result"),
                    "schema": request.output_constraint,
                },
            }
        return {"type": "json_object"}

    def generate(self, request: GenerationRequest) -> str:
        kwargs: dict[str, Any] = {
            "model": request.model_id,
            "messages": [{"role": "user", "content": request.content}],
            "temperature": request.temperature,
            "top_p": request.top_p,
            "max_tokens": request.max_output_tokens,
            "response_format": self._response_format(request),
        }
        if request.top_k is not None:
            kwargs["extra_body"] = {"top_k": request.top_k}

        try:
            cc = self.client.chat.completions.create(**kwargs)
        except APIStatusError as e:
            raise GenerationError(e.status_code, _error_message(e)) from e
        except (APIConnectionError, APITimeoutError) as e:
            raise GenerationError(503, str(e) or "Connection to model service failed") from e
        except OpenAIError as e:
            raise GenerationError(500, str(e) or "Internal Server Error") from e

        choices = getattr(cc, "choices", None) or []
        if not choices:
            return ""
        return choices[0].message.content or ""


def _error_message(e: APIStatusError) -> str:
    body = getattr(e, "body", None)
    if isinstance(body, dict):
        err = body.get("error", body)
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return getattr(e, "message", None) or str(e)
