"""
LLM provider protocol definition.

WHAT: Interface every chat-completion provider implements
WHY: Services and tests depend on the shape, not on httpx details
HOW: typing.Protocol with async ping and generate
"""

from typing import Protocol
from .types import PromptMessage, LLMResult, ProviderStatus


class LLMProvider(Protocol):
    """Protocol defining the interface all LLM providers must implement."""

    async def ping(self) -> ProviderStatus:
        """Check provider health and availability."""
        ...

    async def generate(
        self,
        messages: list[PromptMessage],
        *,
        temperature: float,
        max_tokens: int,
        stop: list[str] | None = None,
        model: str | None = None
    ) -> LLMResult:
        """Generate a complete response."""
        ...

    async def close(self) -> None:
        ...
