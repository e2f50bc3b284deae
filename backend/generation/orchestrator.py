"""Invocation orchestrator: directive in, CanonicalAIResponse out, never raises.

Drives up to GENERATION_MAX_ATTEMPTS calls through the GenerationClient:
  1. blank directive → "prompt required", no external call
  2. transient failure (deadline / content policy / safety / empty) →
     back off `backoff_base_s * attempt`, rephrase, retry
  3. terminal failure (configuration / quota / unclassified) → stop
  4. success → sanitize → decode → normalize → required-artifact policy
Decode failures and policy violations are final; retrying cannot fix a
shape problem, while a rephrased directive can get past a rejection.
"""
import asyncio
import logging
import re
from typing import Awaitable, Callable, Optional

from config.settings import get_settings
from core.exceptions import (
    PolicyViolationError,
    StructuralError,
    TerminalGenerationError,
    TransientGenerationError,
)
from generation.client import GenerationClient, get_generation_client
from generation.normalizer import normalize_response
from generation.policy import find_missing_artifacts
from generation.prompts import build_retry_directive
from generation.sanitizer import decode_payload
from schemas.ai_response import CanonicalAIResponse, error_response

logger = logging.getLogger(__name__)

PROMPT_REQUIRED_TEXT = "Please provide a prompt to generate code."
PROMPT_REQUIRED_ERROR = "Prompt is required"

STRUCTURAL_TEXT = "Sorry, I couldn't process that request. Please try again with a different prompt."
STRUCTURAL_DEFAULT_ERROR = "The AI response could not be understood. Please try rephrasing your request."

_ERROR_FRAGMENT = re.compile(r"error[\s:]*([^\n\r]+)", re.IGNORECASE)

# kind/category → (error detail, user-facing text)
_TRANSIENT_MESSAGES = {
    TransientGenerationError.DEADLINE: (
        "Request timed out",
        "The request took too long. Please try a simpler prompt.",
    ),
    TransientGenerationError.CONTENT_POLICY: (
        "AI response blocked due to content recitation",
        "The AI blocked this response due to content policies. Please try rephrasing your request.",
    ),
    TransientGenerationError.SAFETY: (
        "AI response blocked due to safety filters",
        "The AI blocked this response due to safety filters. Please try a different request.",
    ),
    TransientGenerationError.EMPTY: (
        "Empty response from AI model",
        "Sorry, I encountered an error. Please try again.",
    ),
}

_TERMINAL_MESSAGES = {
    TerminalGenerationError.CONFIGURATION: (
        "API key issue",
        "There's a configuration issue. Please contact support.",
    ),
    TerminalGenerationError.QUOTA: (
        "API quota exceeded",
        "The service is temporarily unavailable. Please try again later.",
    ),
}

GENERIC_TEXT = "Sorry, I encountered an error. Please try again."


def extract_diagnostic(raw_text: str) -> str:
    """Best-effort `error: ...` fragment from an unparseable payload."""
    match = _ERROR_FRAGMENT.search(raw_text or "")
    if match and match.group(1).strip():
        return match.group(1).strip()
    return STRUCTURAL_DEFAULT_ERROR


def prompt_required_response() -> CanonicalAIResponse:
    return error_response(PROMPT_REQUIRED_TEXT, PROMPT_REQUIRED_ERROR)


def transient_failure_response(error: TransientGenerationError) -> CanonicalAIResponse:
    detail, text = _TRANSIENT_MESSAGES.get(error.kind, (error.message, GENERIC_TEXT))
    return error_response(text, f"{detail}: {error.message}")


def terminal_failure_response(error: TerminalGenerationError) -> CanonicalAIResponse:
    if error.category in _TERMINAL_MESSAGES:
        detail, text = _TERMINAL_MESSAGES[error.category]
        return error_response(text, f"{detail}: {error.message}")
    return error_response(GENERIC_TEXT, error.message or "An unexpected error occurred while generating your response.")


def structural_failure_response(raw_text: str) -> CanonicalAIResponse:
    return error_response(STRUCTURAL_TEXT, extract_diagnostic(raw_text))


def policy_failure_response(error: PolicyViolationError) -> CanonicalAIResponse:
    return error_response(error.message, error.message)


class InvocationOrchestrator:
    """Retry/backoff and post-processing around a GenerationClient."""

    def __init__(
        self,
        client: GenerationClient,
        max_attempts: Optional[int] = None,
        backoff_base_s: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.client = client
        self.max_attempts = max_attempts if max_attempts is not None else settings.GENERATION_MAX_ATTEMPTS
        self.backoff_base_s = backoff_base_s if backoff_base_s is not None else settings.GENERATION_BACKOFF_BASE_S
        self._sleep = sleep

    async def invoke(self, directive: str) -> CanonicalAIResponse:
        """Run the full pipeline. Only task cancellation propagates."""
        if not isinstance(directive, str) or not directive.strip():
            logger.warning("[Orchestrator] Empty directive rejected")
            return prompt_required_response()

        directive = directive.strip()
        prompt = directive
        attempt = 0

        while True:
            attempt += 1
            logger.info(
                "[Orchestrator] Attempt %d/%d: len=%d preview=%r",
                attempt, self.max_attempts, len(prompt), prompt[:100],
            )
            try:
                result = await self.client.generate(prompt)
            except TransientGenerationError as e:
                if attempt < self.max_attempts:
                    delay = self.backoff_base_s * attempt
                    logger.warning(
                        "[Orchestrator] Retryable failure: attempt=%d kind=%s backoff=%.1fs error=%s",
                        attempt, e.kind, delay, e.message,
                    )
                    await self._sleep(delay)
                    prompt = build_retry_directive(directive, attempt + 1)
                    continue
                logger.error(
                    "[Orchestrator] Retries exhausted: attempts=%d kind=%s error=%s",
                    attempt, e.kind, e.message,
                )
                return transient_failure_response(e)
            except TerminalGenerationError as e:
                logger.error(
                    "[Orchestrator] Terminal failure: attempt=%d category=%s error=%s",
                    attempt, e.category, e.message,
                )
                return terminal_failure_response(e)
            except Exception as e:
                logger.error("[Orchestrator] Unclassified failure: %s", str(e), exc_info=True)
                return terminal_failure_response(
                    TerminalGenerationError(TerminalGenerationError.UNCLASSIFIED, str(e))
                )

            try:
                return self._finalize(directive, result.raw_text)
            except Exception as e:
                logger.error("[Orchestrator] Post-processing failed: %s", str(e), exc_info=True)
                return structural_failure_response(result.raw_text)

    def _finalize(self, directive: str, raw_text: str) -> CanonicalAIResponse:
        try:
            response = normalize_response(decode_payload(raw_text))
        except StructuralError as e:
            logger.error(
                "[Orchestrator] Unparseable payload: error=%s len=%d head=%r tail=%r",
                e.message, len(raw_text), raw_text[:200], raw_text[-200:],
            )
            return structural_failure_response(raw_text)

        missing = find_missing_artifacts(directive, response.file_tree.keys())
        if missing:
            error = PolicyViolationError(missing)
            logger.error(
                "[Orchestrator] Required files missing: missing=%s directive=%r",
                missing, directive[:200],
            )
            return policy_failure_response(error)

        logger.info(
            "[Orchestrator] Response ready: files=%s text_len=%d",
            sorted(response.file_tree), len(response.text),
        )
        return response


def get_invocation_orchestrator() -> InvocationOrchestrator:
    return InvocationOrchestrator(get_generation_client())
