"""
LLM provider types, dataclasses, and exceptions.

WHAT: Shared contracts for calling a chat-completion model
WHY: Seller suggestions should not care which endpoint serves the model
HOW: TypedDict for prompt messages, dataclasses for results/status, custom exceptions
"""

from typing import TypedDict, Literal
from dataclasses import dataclass


# Message format compatible with OpenAI-style APIs
PromptMessage = TypedDict(
    "PromptMessage",
    {"role": Literal["system", "user", "assistant"], "content": str}
)


@dataclass
class LLMResult:
    """Complete LLM generation result."""
    text: str
    usage: dict
    model: str


@dataclass
class ProviderStatus:
    """Health status of an LLM provider."""
    available: bool
    base_url: str
    models: list[str] | None = None
    error: str | None = None


class ProviderTimeoutError(Exception):
    """Request to provider timed out."""


class ProviderUnavailableError(Exception):
    """Provider is not reachable or down."""


class ProviderDisabledError(Exception):
    """Provider is misconfigured (e.g. hosted endpoint without an API key)."""


class ProviderResponseError(Exception):
    """Provider returned an invalid or error response."""
