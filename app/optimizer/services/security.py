"""
Purpose: Guardrails for inputs.
Content: early, predictable failures; prevent empty or oversized requests
before anything is sent to the model.
"""

from ..errors import ClientError

MAX_INPUT_CHARS = 20000


class DefaultSecurity:
    def __init__(self, max_input_chars: int = MAX_INPUT_CHARS):
        self.max_input_chars = max_input_chars

    def validate_user_input(self, text: str, *, field: str = "prompt") -> None:
        if not isinstance(text, str) or not text.strip():
            raise ClientError(f"Missing required field: {field}")
        if len(text) > self.max_input_chars:
            raise ClientError(
                f"The {field} is too long ({len(text)} characters; "
                f"limit is {self.max_input_chars})."
            )

    def sanitize_for_prompt(self, text: str) -> str:
        return (text or "").replace("\x00", "").strip()
