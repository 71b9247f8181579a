"""LLM provider layer."""

from .types import (
    PromptMessage,
    LLMResult,
    ProviderStatus,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderDisabledError,
    ProviderResponseError,
)
from .provider import LLMProvider
from .provider_factory import get_provider, reset_provider

__all__ = [
    "PromptMessage",
    "LLMResult",
    "ProviderStatus",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ProviderDisabledError",
    "ProviderResponseError",
    "LLMProvider",
    "get_provider",
    "reset_provider",
]
