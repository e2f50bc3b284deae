"""Generation provider interface: provider-agnostic contract.

Providers perform exactly one call and report what the service said:
raw text plus the completion/blocking reason when the service exposes one.
Providers do NOT enforce deadlines, retry, or parse the text.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class ProviderReply:
    """Raw answer from a generation service."""
    text: str
    finish_reason: Optional[str] = None  # e.g. STOP, RECITATION, SAFETY, MAX_TOKENS
    block_reason: Optional[str] = None  # prompt-level block, if the service reports one


class GenerationProvider(ABC):
    """Abstract generation provider interface."""

    @abstractmethod
    async def generate(self, directive: str, system_contract: str) -> ProviderReply:
        """Send one directive. Raises TerminalGenerationError for service-side failures."""
        ...

    @abstractmethod
    async def is_healthy(self) -> bool:
        """Health check for the provider."""
        ...
