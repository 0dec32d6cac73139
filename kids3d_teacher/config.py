"""Configuration management for API keys and settings."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# .env lives in the project root, one level above this package.
# Values already present in the environment win.
ENV_PATH = Path(__file__).parent.parent / ".env"
load_dotenv(ENV_PATH, override=False)

DEFAULT_CORS_ORIGINS = [
    "https://public-speaking-for-kids2.vercel.app",
    "http://localhost:5173",
    "http://localhost:3000",
]


def _get_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _get_optional(name: str) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or None


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _get_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Config:
    """Application configuration from environment variables."""

    # Provider A: Gemini Developer API
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_api_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Provider B: OpenAI chat completions
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo"
    openai_api_url: str = "https://api.openai.com/v1"

    # Server
    host: str = "0.0.0.0"
    port: int = 4000
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    audio_dir: str = "audio"
    tts_provider: Optional[str] = None

    # Outbound provider calls never wait longer than this
    llm_timeout_seconds: float = 30.0

    # Session side
    backend_url: str = "http://localhost:4000"
    prompt_history_turns: int = 20

    # Speech timing overrides in milliseconds (None = device default)
    speech_silence_ms: Optional[int] = None
    speech_restart_ms: Optional[int] = None
    speech_resume_ms: Optional[int] = None
    speech_retry_ms: Optional[int] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration snapshot from the current environment."""
        return cls(
            gemini_api_key=_get_optional("GEMINI_API_KEY"),
            gemini_model=_get_str("GEMINI_MODEL", cls.gemini_model),
            gemini_api_url=_get_str("GEMINI_API_URL", cls.gemini_api_url).rstrip("/"),
            openai_api_key=_get_optional("OPENAI_API_KEY"),
            openai_model=_get_str("OPENAI_MODEL", cls.openai_model),
            openai_api_url=_get_str("OPENAI_API_URL", cls.openai_api_url).rstrip("/"),
            host=_get_str("HOST", cls.host),
            port=_get_int("PORT", cls.port),
            cors_origins=_get_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
            audio_dir=_get_str("AUDIO_DIR", cls.audio_dir),
            tts_provider=_get_optional("TTS_PROVIDER"),
            llm_timeout_seconds=_get_float("LLM_TIMEOUT_SECONDS", cls.llm_timeout_seconds),
            backend_url=_get_str("BACKEND_URL", cls.backend_url).rstrip("/"),
            prompt_history_turns=_get_int("PROMPT_HISTORY_TURNS", cls.prompt_history_turns),
            speech_silence_ms=_get_ms("SPEECH_SILENCE_MS"),
            speech_restart_ms=_get_ms("SPEECH_RESTART_MS"),
            speech_resume_ms=_get_ms("SPEECH_RESUME_MS"),
            speech_retry_ms=_get_ms("SPEECH_RETRY_MS"),
            log_level=_get_str("LOG_LEVEL", cls.log_level),
        )

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def openai_configured(self) -> bool:
        return bool(self.openai_api_key)

    def validate(self) -> List[str]:
        """Validate configuration and return list of missing required settings."""
        missing = []
        if not (self.gemini_configured or self.openai_configured):
            missing.append("GEMINI_API_KEY or OPENAI_API_KEY (at least one provider is required)")
        return missing


def _get_ms(name: str) -> Optional[int]:
    raw = _get_optional(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def get_config() -> Config:
    """FastAPI dependency: configuration is re-read for every request."""
    return Config.from_env()


def setup_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or Config.from_env().log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
