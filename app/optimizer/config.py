import os
from typing import Optional

from dotenv import load_dotenv

from .models import LLMSettings

load_dotenv()


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


class Settings:
    # Gemini access (OpenAI-compatible endpoint)
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_BASE_URL: str = os.getenv(
        "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
    )
    DEFAULT_MODEL: str = os.getenv("OPTIMIZER_DEFAULT_MODEL", "gemini-2.5-flash")

    # Retry policy
    MAX_ATTEMPTS: int = _int_env("OPTIMIZER_MAX_ATTEMPTS", 3)
    BASE_DELAY: float = _float_env("OPTIMIZER_BASE_DELAY", 0.8)

    # Session persistence
    DEBOUNCE_SECONDS: float = _float_env("OPTIMIZER_DEBOUNCE_SECONDS", 0.5)
    MAX_SESSIONS: int = _int_env("OPTIMIZER_MAX_SESSIONS", 50)
    STORE_PATH: str = os.getenv("OPTIMIZER_STORE_PATH", "")

    # Logging
    LOG_LEVEL: str = os.getenv("OPTIMIZER_LOG_LEVEL", "INFO")
    LOG_DIR: str = os.getenv("OPTIMIZER_LOG_DIR", "")

    # Sampling
    TEMPERATURE: float = _float_env("OPTIMIZER_TEMPERATURE", 0.7)
    TOP_P: float = _float_env("OPTIMIZER_TOP_P", 0.95)
    TOP_K: Optional[int] = _int_env("OPTIMIZER_TOP_K", None)
    MAX_OUTPUT_TOKENS: int = _int_env("OPTIMIZER_MAX_OUTPUT_TOKENS", 2048)

    @property
    def llm_settings(self) -> LLMSettings:
        return LLMSettings(
            temperature=self.TEMPERATURE,
            top_p=self.TOP_P,
            top_k=self.TOP_K,
            max_output_tokens=self.MAX_OUTPUT_TOKENS,
        )


settings = Settings()


def build_store(config: Settings = settings):
    """Session store backed by SQLite when a path is configured, memory otherwise."""
    from .persistence.kv import InMemoryKeyValueStore, SQLiteKeyValueStore
    from .persistence.session_store import SessionStore

    kv = SQLiteKeyValueStore(config.STORE_PATH) if config.STORE_PATH else InMemoryKeyValueStore()
    return SessionStore(
        kv,
        debounce_seconds=config.DEBOUNCE_SECONDS,
        capacity=config.MAX_SESSIONS,
    )
