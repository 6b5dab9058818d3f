"""
OpenRouter Client for remote LLM inference.

Connects to the OpenRouter chat-completions API for the two calls a chat
turn makes:
- Fact extraction (deterministic, temperature 0)
- Reply generation (creative, higher temperature)

The provider's response shape is decoded once, here, into one of three
variants so callers never poke at raw JSON:
- Completion: generated text
- ProviderError: the provider answered with an error payload
- Malformed: the provider answered with nothing usable

Transport problems (timeouts, refused connections, non-JSON bodies, 5xx/429
after retries) raise OpenRouterError instead.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from config.settings import settings
from api.services.resilience import RetryConfig, retry_async, is_retryable_status

logger = logging.getLogger(__name__)


class OpenRouterError(Exception):
    """Error reaching OpenRouter (transport-level failure)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class Completion:
    """Generated text from a successful call."""
    text: str


@dataclass(frozen=True)
class ProviderError:
    """The provider responded, but with an error object."""
    message: str
    status_code: Optional[int] = None


@dataclass(frozen=True)
class Malformed:
    """The provider responded without any usable field."""
    raw: str


ProviderResult = Union[Completion, ProviderError, Malformed]


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        if message:
            return str(message)
        return json.dumps(error)
    return str(error)


def decode_completion(data: Any) -> ProviderResult:
    """
    Decode a chat-completions payload.

    Precedence:
    1. ``error`` object -> ProviderError
    2. ``choices[0].message.content`` -> Completion
    3. ``choices[0].text`` -> Completion
    4. anything else -> Malformed

    Args:
        data: Parsed JSON body

    Returns:
        One of Completion, ProviderError, Malformed
    """
    if not isinstance(data, dict):
        return Malformed(raw=repr(data)[:200])

    error = data.get("error")
    if error:
        return ProviderError(message=_error_message(error))

    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        first = choices[0]

        message = first.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str) and content.strip():
                return Completion(text=content)

        text = first.get("text")
        if isinstance(text, str) and text.strip():
            return Completion(text=text)

    return Malformed(raw=json.dumps(data)[:200])


class OpenRouterClient:
    """
    Client for the OpenRouter chat-completions API.

    Every call carries a bounded timeout; a timeout is reported the same way
    as any other transport failure.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key (default from settings)
            model: Model name to use (default from settings)
            base_url: API base URL (default from settings)
            timeout: Request timeout in seconds (default from settings)
            max_retries: Retries for transient failures (default from settings)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key if api_key is not None else settings.openrouter_api_key
        self.model = model or settings.model
        self.base_url = (base_url or settings.openrouter_base_url).rstrip("/")
        self.timeout = timeout or settings.openrouter_timeout
        self._transport = transport

        retries = settings.openrouter_max_retries if max_retries is None else max_retries
        self.retry_config = RetryConfig(
            max_retries=retries,
            retryable_exceptions=(OpenRouterError,),
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": settings.app_url,
            "X-Title": settings.app_title,
        }

    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ProviderResult:
        """
        Send a role-tagged conversation and decode the reply.

        Args:
            messages: List of {"role": ..., "content": ...} dicts
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate (provider default if None)
            model: Model to use (defaults to instance model)
            timeout: Request timeout (defaults to instance timeout)

        Returns:
            Completion, ProviderError or Malformed

        Raises:
            OpenRouterError: If OpenRouter cannot be reached after retries
        """
        payload: dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        return await self._post_completion(
            payload,
            timeout or self.timeout,
            retry_config=self.retry_config,
        )

    @retry_async()
    async def _post_completion(self, payload: dict, timeout: float) -> ProviderResult:
        url = f"{self.base_url}/chat/completions"

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            raise OpenRouterError(f"Timeout connecting to OpenRouter: {e}") from e
        except httpx.HTTPError as e:
            raise OpenRouterError(f"Connection error to OpenRouter: {e}") from e

        if is_retryable_status(response.status_code):
            raise OpenRouterError(
                f"HTTP {response.status_code} from OpenRouter",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise OpenRouterError(
                f"Non-JSON response from OpenRouter (HTTP {response.status_code}): {e}",
                status_code=response.status_code,
            ) from e

        logger.debug(f"OpenRouter response: {json.dumps(data, indent=2)}")

        result = decode_completion(data)
        if isinstance(result, ProviderError):
            return ProviderError(message=result.message, status_code=response.status_code)
        if not response.is_success:
            return ProviderError(
                message=f"HTTP {response.status_code} from OpenRouter",
                status_code=response.status_code,
            )
        return result


# Singleton instance
_client: Optional[OpenRouterClient] = None


def get_openrouter_client() -> OpenRouterClient:
    """Get or create OpenRouterClient singleton."""
    global _client
    if _client is None:
        _client = OpenRouterClient()
    return _client


def reset_openrouter_client() -> None:
    """Reset the singleton (for testing)."""
    global _client
    _client = None
