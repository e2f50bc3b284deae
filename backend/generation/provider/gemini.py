"""Gemini generation provider: one `generateContent` call over REST.

Talks to the Generative Language API directly with httpx so the candidate's
finishReason and the prompt's blockReason stay visible to the client's
classifier.
"""
import logging
import time
from typing import Any, Dict, Optional

import httpx

from config.settings import get_settings
from core.exceptions import TerminalGenerationError
from generation.provider.interface import GenerationProvider, ProviderReply

logger = logging.getLogger(__name__)

_CONNECT_TIMEOUT_S = 10.0
_HTTP_TIMEOUT = httpx.Timeout(None, connect=_CONNECT_TIMEOUT_S)


class GeminiGenerationProvider(GenerationProvider):
    """Real Gemini provider."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self._model = model or settings.GEMINI_MODEL
        self._base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self._temperature = settings.GENERATION_TEMPERATURE
        self._max_output_tokens = settings.GENERATION_MAX_OUTPUT_TOKENS
        self._transport = transport
        if not self._api_key:
            logger.error("[Gemini] No API key configured")

    def _request_body(self, directive: str, system_contract: str) -> Dict[str, Any]:
        return {
            "systemInstruction": {"parts": [{"text": system_contract}]},
            "contents": [{"role": "user", "parts": [{"text": directive}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "temperature": self._temperature,
                "maxOutputTokens": self._max_output_tokens,
            },
        }

    async def generate(self, directive: str, system_contract: str) -> ProviderReply:
        if not self._api_key:
            raise TerminalGenerationError(
                TerminalGenerationError.CONFIGURATION, "API key is not configured"
            )

        url = f"{self._base_url}/models/{self._model}:generateContent"
        start = time.monotonic()
        try:
            # Read/write are bounded by the client deadline; only connect is capped here
            async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=self._request_body(directive, system_contract),
                    headers={"x-goog-api-key": self._api_key},
                )
        except httpx.HTTPError as e:
            logger.error("[Gemini] Transport failure: %s", str(e))
            raise TerminalGenerationError(
                TerminalGenerationError.UNCLASSIFIED, f"Generation service unreachable: {e}"
            ) from e

        latency_ms = (time.monotonic() - start) * 1000
        if response.status_code >= 400:
            raise _classify_http_failure(response)

        reply = _parse_reply(response.json())
        logger.info(
            "[Gemini] Reply: model=%s finish=%s block=%s len=%d latency=%.0fms",
            self._model, reply.finish_reason, reply.block_reason, len(reply.text), latency_ms,
        )
        return reply

    async def is_healthy(self) -> bool:
        return bool(self._api_key)


def _classify_http_failure(response: httpx.Response) -> TerminalGenerationError:
    detail = response.text[:300]
    logger.warning("[Gemini] HTTP %d: %s", response.status_code, detail)
    if response.status_code in (401, 403):
        return TerminalGenerationError(
            TerminalGenerationError.CONFIGURATION, f"API key rejected (HTTP {response.status_code})"
        )
    lowered = detail.lower()
    if response.status_code == 429 or "quota" in lowered or "rate limit" in lowered:
        return TerminalGenerationError(
            TerminalGenerationError.QUOTA, f"API quota exceeded (HTTP {response.status_code})"
        )
    return TerminalGenerationError(
        TerminalGenerationError.UNCLASSIFIED, f"API Error: {response.status_code}"
    )


def _parse_reply(data: Dict[str, Any]) -> ProviderReply:
    block_reason = (data.get("promptFeedback") or {}).get("blockReason")
    candidates = data.get("candidates") or []
    if not candidates:
        return ProviderReply(text="", finish_reason=None, block_reason=block_reason)

    candidate = candidates[0] or {}
    parts = (candidate.get("content") or {}).get("parts") or []
    text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
    return ProviderReply(
        text=text,
        finish_reason=candidate.get("finishReason"),
        block_reason=block_reason,
    )
