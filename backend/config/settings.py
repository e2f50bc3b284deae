"""Centralized settings module: single source of truth for all config.

All secrets loaded exclusively from env vars. Never committed, never logged.
Redaction enforced everywhere via observability.redaction.
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings

_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # ── Environment ──────────────────────────────────────────────
    ENV: Literal["dev", "staging", "prod"] = Field(default="dev")

    # ── MongoDB (channel lookup only) ────────────────────────────
    MONGO_URL: str = Field(default="mongodb://localhost:27017")
    DB_NAME: str = Field(default="devroom_dev")
    CHANNEL_COLLECTION: str = Field(default="projects")
    USE_IN_MEMORY_CHANNELS: bool = Field(default=False)
    DEV_CHANNELS: List[str] = Field(default=["demo"])  # `id` or `id=name`, in-memory lookup only

    # ── Auth / Signing ───────────────────────────────────────────
    JWT_SECRET: str = Field(default="")
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_EXPIRY_SECONDS: int = Field(default=86400)  # 24 hours

    # ── HTTP / WS surface ────────────────────────────────────────
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"]
    )

    # ── Generation service ───────────────────────────────────────
    GEMINI_API_KEY: str = Field(default="")
    GEMINI_MODEL: str = Field(default="gemini-2.5-flash")
    GEMINI_BASE_URL: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    GENERATION_TEMPERATURE: float = Field(default=0.5)
    GENERATION_MAX_OUTPUT_TOKENS: int = Field(default=8192)
    GENERATION_DEADLINE_S: float = Field(default=60.0)
    GENERATION_MAX_ATTEMPTS: int = Field(default=3)  # 1 initial + 2 retries
    GENERATION_BACKOFF_BASE_S: float = Field(default=1.0)
    RESPONSE_SIZE_WARN_CHARS: int = Field(default=1_000_000)

    # ── Channel relay ────────────────────────────────────────────
    AI_TRIGGER_TOKEN: str = Field(default="@ai")
    MEMBER_QUEUE_MAX: int = Field(default=1000)

    # ── Observability ────────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")
    LOG_REDACTION_ENABLED: bool = Field(default=True)

    # ── Feature Flags ────────────────────────────────────────────
    MOCK_LLM: bool = Field(default=True)

    model_config = {
        "env_file": str(_ROOT / ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
