"""Startup configuration validation guardrails."""

import logging


logger = logging.getLogger(__name__)


def _require_jwt_secret(settings) -> None:
    """Fail closed if JWT secret is not explicitly configured."""
    if not settings.JWT_SECRET or not settings.JWT_SECRET.strip():
        raise RuntimeError(
            "STARTUP FAILED — JWT_SECRET is required and cannot be empty. "
            "Set JWT_SECRET in backend/.env or container environment and restart the server."
        )


def validate_startup_config(settings) -> None:
    """Centralized startup guardrails for required and warning-level config."""
    _require_jwt_secret(settings)

    if settings.GENERATION_MAX_ATTEMPTS < 1:
        raise RuntimeError(
            "STARTUP FAILED — GENERATION_MAX_ATTEMPTS must be at least 1."
        )
    if settings.GENERATION_DEADLINE_S <= 0:
        raise RuntimeError(
            "STARTUP FAILED — GENERATION_DEADLINE_S must be positive."
        )
    if not settings.AI_TRIGGER_TOKEN.strip():
        raise RuntimeError(
            "STARTUP FAILED — AI_TRIGGER_TOKEN cannot be empty."
        )

    if settings.ENV == "prod":
        # Mock providers must be disabled in prod
        if getattr(settings, "MOCK_LLM", False):
            raise RuntimeError(
                "STARTUP FAILED — MOCK_LLM must be False in production."
            )
        if getattr(settings, "USE_IN_MEMORY_CHANNELS", False):
            raise RuntimeError(
                "STARTUP FAILED — USE_IN_MEMORY_CHANNELS must be False in production."
            )

    if not getattr(settings, "MOCK_LLM", False) and not settings.GEMINI_API_KEY:
        logger.warning("CONFIG WARNING: GEMINI_API_KEY is not set — assistant requests will fail")
