"""LLM provider adapters and the provider registry.

Providers are request/response black boxes.  Each adapter turns a
:class:`ProviderRequest` into one HTTP call and returns the completion text.
Any failure (transport error, non-2xx status, unreadable body) is raised as
:class:`~promptcraft.core.errors.ProviderCallError` carrying the provider's
error signal, which the orchestrator classifies.

Provider Identity
-----------------
Provider identity is a closed set (:class:`ProviderName`).  Adding a provider
means adding an enum member and an adapter class; names from stored
templates are parsed with :meth:`ProviderName.parse`, which also accepts the
aliases older templates used (``google``, ``ollama``, ``llama``).

Registry Pattern
----------------
Adapters register themselves with the global :data:`provider_registry`:

    >>> from promptcraft.core.providers import provider_registry, ProviderName
    >>> provider = provider_registry.create(ProviderName.OPENAI, config)
    >>> text = await provider.complete(request)

HTTP Client
-----------
Adapters accept an optional shared ``httpx.AsyncClient``.  Without one, each
call opens and closes its own client with the configured timeout.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .config import PromptcraftConfig
from .errors import ProviderCallError

logger = logging.getLogger(__name__)


class ProviderName(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    MISTRAL = "mistral"
    LOCAL = "local"

    @classmethod
    def parse(cls, value: str | None) -> ProviderName | None:
        """Parse a provider name, returning None for empty or unsupported values."""
        if not value:
            return None
        normalized = str(value).strip().lower()
        aliases = {"google": cls.GEMINI, "ollama": cls.LOCAL, "llama": cls.LOCAL}
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            return None


@dataclass
class ProviderRequest:
    """One completion request, already rendered into system and user text."""

    system: str
    user: str
    model: str
    temperature: float = 0.8
    max_tokens: int = 500
    credential: str | None = None


def _error_signal(response: httpx.Response) -> str:
    """Extract the most descriptive error text from a failed response."""
    detail = ""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error", body.get("message", ""))
        if isinstance(error, dict):
            detail = str(error.get("message") or error.get("type") or error)
        else:
            detail = str(error)
    if not detail:
        detail = response.text[:500]

    return f"HTTP {response.status_code} {response.reason_phrase}: {detail}".strip()


class BaseProvider(ABC):
    """Abstract base class for provider adapters.

    Subclasses describe the HTTP call (:meth:`build_call`) and how to read
    the completion text back (:meth:`parse_response`); transport and error
    handling are shared.
    """

    name: ProviderName
    default_model: str = ""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @abstractmethod
    def build_call(self, request: ProviderRequest) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return ``(url, headers, json_payload)`` for a request."""

    @abstractmethod
    def parse_response(self, data: dict[str, Any]) -> str:
        """Return the completion text from a decoded response body."""

    async def complete(self, request: ProviderRequest) -> str:
        """Send the request and return the completion text.

        Raises:
            ProviderCallError: On any transport, status or decoding failure
        """
        url, headers, payload = self.build_call(request)
        logger.info(f"Calling {self.name.value} model '{request.model}'")

        try:
            if self._client is not None:
                response = await self._client.post(
                    url, headers=headers, json=payload, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            raise ProviderCallError(f"Request timed out: {e!r}") from e
        except httpx.ConnectError as e:
            raise ProviderCallError(f"Connection refused: {e!r}") from e
        except httpx.HTTPError as e:
            raise ProviderCallError(f"Transport error: {e!r}") from e

        if response.is_error:
            raise ProviderCallError(_error_signal(response), status_code=response.status_code)

        try:
            data = response.json()
            text = self.parse_response(data)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProviderCallError(f"Malformed response from {self.name.value}: {e!r}") from e

        if not isinstance(text, str):
            raise ProviderCallError(
                f"Malformed response from {self.name.value}: expected text, got {type(text).__name__}"
            )
        return text


class OpenAIProvider(BaseProvider):
    """OpenAI chat completions (also any OpenAI-compatible endpoint)."""

    name = ProviderName.OPENAI
    default_model = "gpt-4o"

    def build_call(self, request: ProviderRequest) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {"Content-Type": "application/json"}
        if request.credential:
            headers["Authorization"] = f"Bearer {request.credential}"
        payload = {
            "model": request.model,
            "messages": [
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.user},
            ],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        return f"{self.base_url}/chat/completions", headers, payload

    def parse_response(self, data: dict[str, Any]) -> str:
        return data["choices"][0]["message"]["content"] or ""


class MistralProvider(OpenAIProvider):
    """Mistral's chat API, which follows the OpenAI wire format."""

    name = ProviderName.MISTRAL
    default_model = "mistral-large-latest"


class AnthropicProvider(BaseProvider):
    name = ProviderName.ANTHROPIC
    default_model = "claude-sonnet-4-5"

    def build_call(self, request: ProviderRequest) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {"Content-Type": "application/json", "anthropic-version": "2023-06-01"}
        if request.credential:
            headers["x-api-key"] = request.credential
        payload = {
            "model": request.model,
            "system": request.system,
            "messages": [{"role": "user", "content": request.user}],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        return f"{self.base_url}/messages", headers, payload

    def parse_response(self, data: dict[str, Any]) -> str:
        blocks = data["content"]
        return "".join(block.get("text", "") for block in blocks if block.get("type") == "text")


class GeminiProvider(BaseProvider):
    name = ProviderName.GEMINI
    default_model = "gemini-2.5-flash"

    def build_call(self, request: ProviderRequest) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {"Content-Type": "application/json"}
        if request.credential:
            headers["x-goog-api-key"] = request.credential
        payload = {
            "systemInstruction": {"parts": [{"text": request.system}]},
            "contents": [{"role": "user", "parts": [{"text": request.user}]}],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }
        return f"{self.base_url}/models/{request.model}:generateContent", headers, payload

    def parse_response(self, data: dict[str, Any]) -> str:
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)


class LocalProvider(BaseProvider):
    """Local Ollama chat endpoint.  Needs no credential."""

    name = ProviderName.LOCAL
    default_model = "llama3.1"

    def build_call(self, request: ProviderRequest) -> tuple[str, dict[str, str], dict[str, Any]]:
        payload = {
            "model": request.model,
            "messages": [
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.user},
            ],
            "stream": False,
            "options": {"temperature": request.temperature, "num_predict": request.max_tokens},
        }
        return f"{self.base_url}/api/chat", {"Content-Type": "application/json"}, payload

    def parse_response(self, data: dict[str, Any]) -> str:
        return data["message"]["content"] or ""


class ProviderRegistry:
    """Registry for discovering and instantiating provider adapters."""

    def __init__(self) -> None:
        self._providers: dict[ProviderName, type[BaseProvider]] = {}

    def register(self, provider_class: type[BaseProvider]) -> None:
        if provider_class.name in self._providers:
            logger.warning(f"Provider '{provider_class.name.value}' is already registered, overwriting")
        self._providers[provider_class.name] = provider_class
        logger.debug(f"Registered provider: {provider_class.name.value}")

    def get_provider_class(self, name: ProviderName) -> type[BaseProvider] | None:
        return self._providers.get(name)

    def list_available(self) -> list[str]:
        return [name.value for name in self._providers]

    def default_model_for(self, name: ProviderName) -> str:
        provider_class = self._providers.get(name)
        return provider_class.default_model if provider_class else ""

    def create(
        self,
        name: ProviderName,
        config: PromptcraftConfig,
        client: httpx.AsyncClient | None = None,
    ) -> BaseProvider:
        """Instantiate the adapter for a provider using configured endpoints.

        Raises:
            KeyError: If no adapter is registered for ``name``
        """
        if name not in self._providers:
            available = ", ".join(self.list_available())
            raise KeyError(f"Provider '{name.value}' not registered. Available providers: {available}")
        provider_class = self._providers[name]
        return provider_class(
            base_url=config.base_url_for(name.value),
            timeout=config.request_timeout,
            client=client,
        )


# Global provider registry instance
provider_registry = ProviderRegistry()
for _provider_class in (
    OpenAIProvider,
    AnthropicProvider,
    GeminiProvider,
    MistralProvider,
    LocalProvider,
):
    provider_registry.register(_provider_class)
