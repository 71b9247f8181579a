"""
LLM provider factory with singleton pattern.

WHAT: Factory to get the configured LLM provider
WHY: One shared httpx client per process
HOW: Build an OpenAICompatibleProvider from settings on first use, cache it
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .provider import LLMProvider

# Singleton instance
_provider_instance: "LLMProvider | None" = None


def get_provider() -> "LLMProvider":
    """
    Get the configured LLM provider singleton.

    Raises:
        ProviderDisabledError: hosted provider selected without an API key
    """
    global _provider_instance

    if _provider_instance is None:
        # Import here to avoid circular dependencies
        from .openai_compatible import OpenAICompatibleProvider

        _provider_instance = OpenAICompatibleProvider()

    return _provider_instance


async def close_provider() -> None:
    """Close the singleton's HTTP client, if one was created."""
    global _provider_instance
    if _provider_instance is not None:
        await _provider_instance.close()
        _provider_instance = None


def reset_provider() -> None:
    """Reset the provider singleton (useful for testing)."""
    global _provider_instance
    _provider_instance = None
