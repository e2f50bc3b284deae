"""Generation client: one deadline-bounded call to the generation service.

Owns the deadline race and the failure classification. The provider's own
timeouts are never trusted: every call is raced against a local timer.
Completion reasons are inspected before any text is used, so
content-policy and safety rejections are never mistaken for output.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from config.feature_flags import is_mock_llm
from config.settings import get_settings
from core.exceptions import TerminalGenerationError, TransientGenerationError
from generation.prompts import SYSTEM_CONTRACT
from generation.provider.interface import GenerationProvider, ProviderReply
from generation.provider.mock import MockGenerationProvider

logger = logging.getLogger(__name__)

CONTENT_POLICY_REASONS = frozenset({"RECITATION"})
SAFETY_REASONS = frozenset({"SAFETY", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"})


@dataclass
class GenerationResult:
    raw_text: str
    finish_reason: Optional[str] = None
    latency_ms: float = 0.0


def _get_provider() -> GenerationProvider:
    """Get the configured generation provider."""
    if is_mock_llm():
        logger.info("[Generation] Provider=MockGenerationProvider (MOCK_LLM=true)")
        return MockGenerationProvider()
    from generation.provider.gemini import GeminiGenerationProvider
    logger.info("[Generation] Provider=GeminiGenerationProvider (MOCK_LLM=false)")
    return GeminiGenerationProvider()


# Singleton provider
_provider: Optional[GenerationProvider] = None


def get_generation_provider() -> GenerationProvider:
    global _provider
    if _provider is None:
        _provider = _get_provider()
    return _provider


class GenerationClient:
    """Wraps exactly one external call per `generate()`."""

    def __init__(
        self,
        provider: GenerationProvider,
        deadline_s: Optional[float] = None,
        size_warn_chars: Optional[int] = None,
        system_contract: str = SYSTEM_CONTRACT,
    ):
        settings = get_settings()
        self.provider = provider
        self.deadline_s = deadline_s if deadline_s is not None else settings.GENERATION_DEADLINE_S
        self.size_warn_chars = size_warn_chars if size_warn_chars is not None else settings.RESPONSE_SIZE_WARN_CHARS
        self.system_contract = system_contract

    async def generate(self, directive: str) -> GenerationResult:
        """Return raw text, or raise a classified Transient/TerminalGenerationError."""
        start = time.monotonic()
        logger.info("[Generation] Request: len=%d deadline=%.1fs", len(directive), self.deadline_s)
        try:
            reply = await asyncio.wait_for(
                self.provider.generate(directive, self.system_contract),
                timeout=self.deadline_s,
            )
        except asyncio.TimeoutError:
            raise TransientGenerationError(
                TransientGenerationError.DEADLINE,
                f"Request timeout after {self.deadline_s:g}s - please try a simpler prompt",
            )
        except (TransientGenerationError, TerminalGenerationError):
            raise
        except Exception as e:
            raise TerminalGenerationError(TerminalGenerationError.UNCLASSIFIED, str(e)) from e

        latency_ms = (time.monotonic() - start) * 1000
        self._raise_for_rejection(reply)

        if not reply.text or not reply.text.strip():
            raise TransientGenerationError(
                TransientGenerationError.EMPTY, "Empty response from AI model"
            )

        if len(reply.text) > self.size_warn_chars:
            logger.warning(
                "[Generation] Response is very large: len=%d ceiling=%d",
                len(reply.text), self.size_warn_chars,
            )

        logger.info(
            "[Generation] Reply accepted: len=%d finish=%s latency=%.0fms",
            len(reply.text), reply.finish_reason, latency_ms,
        )
        return GenerationResult(
            raw_text=reply.text,
            finish_reason=reply.finish_reason,
            latency_ms=latency_ms,
        )

    @staticmethod
    def _raise_for_rejection(reply: ProviderReply) -> None:
        reasons = {r.upper() for r in (reply.finish_reason, reply.block_reason) if r}
        if reasons & CONTENT_POLICY_REASONS:
            raise TransientGenerationError(
                TransientGenerationError.CONTENT_POLICY,
                "AI response was blocked due to content recitation policy (RECITATION)",
            )
        if reasons & SAFETY_REASONS or reply.block_reason:
            raise TransientGenerationError(
                TransientGenerationError.SAFETY,
                f"AI response was blocked due to safety filters ({', '.join(sorted(reasons))})",
            )


def get_generation_client() -> GenerationClient:
    return GenerationClient(get_generation_provider())
