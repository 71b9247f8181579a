"""
OpenAI-compatible chat completion provider.

WHAT: Talks to LM Studio locally or OpenRouter in the cloud
WHY: Both expose /models and /chat/completions with the same payloads
HOW: httpx AsyncClient, bearer auth when a key is set, exponential-backoff retries
"""

import asyncio
import json
import re

import httpx

from .types import (
    PromptMessage,
    LLMResult,
    ProviderStatus,
    ProviderDisabledError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderResponseError,
)
from ..core.config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

THINK_BLOCK = re.compile(r"<think(?:ing)?>.*?</think(?:ing)?>\s*", flags=re.DOTALL | re.IGNORECASE)


class OpenAICompatibleProvider:
    """Chat completion provider with retry logic."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        default_model: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ):
        self.name = settings.LLM_PROVIDER
        self.base_url = (base_url or settings.LLM_BASE_URL).rstrip("/")
        self.api_key = settings.LLM_API_KEY if api_key is None else api_key
        self.default_model = default_model or settings.LLM_DEFAULT_MODEL
        self.timeout = timeout if timeout is not None else settings.LLM_TIMEOUT
        self.max_retries = max(1, max_retries if max_retries is not None else settings.LLM_MAX_RETRIES)
        self.retry_delay = retry_delay if retry_delay is not None else settings.LLM_RETRY_DELAY

        if self.name == "openrouter" and not self.api_key.strip():
            logger.error("OpenRouter selected but LLM_API_KEY is not set")
            raise ProviderDisabledError(
                "LLM_PROVIDER is 'openrouter' but LLM_API_KEY is empty. "
                "Set LLM_API_KEY to a key from https://openrouter.ai/keys"
            )

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.name == "openrouter":
            headers["HTTP-Referer"] = settings.APP_NAME
            headers["X-Title"] = settings.APP_NAME

        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(5.0, read=self.timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            headers=headers,
        )
        logger.info(f"LLM provider {self.name} at {self.base_url} (model: {self.default_model})")

    async def ping(self) -> ProviderStatus:
        """
        Check availability by listing models.

        Never raises; failures are reported in the returned status.
        """
        try:
            response = await self.client.get(f"{self.base_url}/models", timeout=5.0)
            response.raise_for_status()
            models = [m.get("id") for m in response.json().get("data", [])]
            return ProviderStatus(
                available=True,
                base_url=self.base_url,
                models=models[:10] if models else None,
            )
        except httpx.TimeoutException:
            logger.warning(f"{self.name} ping timed out")
            return ProviderStatus(available=False, base_url=self.base_url, error="Connection timeout")
        except httpx.ConnectError:
            logger.warning(f"{self.name} not reachable at {self.base_url}")
            return ProviderStatus(available=False, base_url=self.base_url, error="Connection refused")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{self.name} ping failed: {e}")
            return ProviderStatus(available=False, base_url=self.base_url, error=str(e))

    async def generate(
        self,
        messages: list[PromptMessage],
        *,
        temperature: float,
        max_tokens: int,
        stop: list[str] | None = None,
        model: str | None = None
    ) -> LLMResult:
        """
        Generate a complete response.

        Raises:
            ProviderTimeoutError: Request timed out on every attempt
            ProviderUnavailableError: Endpoint not reachable on every attempt
            ProviderResponseError: 4xx, persistent 5xx or malformed body
        """
        model_to_use = model or self.default_model
        payload = {
            "model": model_to_use,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }
        if stop:
            payload["stop"] = stop

        for attempt in range(self.max_retries):
            try:
                response = await self.client.post(f"{self.base_url}/chat/completions", json=payload)
                response.raise_for_status()
                data = response.json()

                text = THINK_BLOCK.sub("", data["choices"][0]["message"]["content"] or "").strip()
                usage = data.get("usage", {})
                response_model = data.get("model", model_to_use)

                logger.info(f"{self.name} generate success (model: {response_model}, tokens: {usage.get('total_tokens', 'unknown')})")
                return LLMResult(text=text, usage=usage, model=response_model)

            except httpx.TimeoutException as e:
                logger.warning(f"{self.name} timeout (attempt {attempt + 1}/{self.max_retries})")
                if attempt == self.max_retries - 1:
                    raise ProviderTimeoutError(f"Request timed out after {self.max_retries} attempts") from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

            except httpx.ConnectError as e:
                logger.error(f"{self.name} connection refused (attempt {attempt + 1}/{self.max_retries})")
                if attempt == self.max_retries - 1:
                    raise ProviderUnavailableError(f"{self.name} is not reachable at {self.base_url}") from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500:
                    logger.error(f"{self.name} server error {e.response.status_code} (attempt {attempt + 1}/{self.max_retries})")
                    if attempt == self.max_retries - 1:
                        raise ProviderResponseError(f"Server error: {e.response.status_code}") from e
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                else:
                    # Client errors don't retry
                    raise ProviderResponseError(f"HTTP {e.response.status_code}: {e.response.text}") from e

            except (KeyError, IndexError, TypeError, json.JSONDecodeError) as e:
                logger.error(f"Invalid response from {self.name}: {e}")
                raise ProviderResponseError(f"Invalid response format: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()
