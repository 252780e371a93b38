"""Tests for promptcraft.core.providers - HTTP adapters and the registry.

All HTTP traffic goes through ``httpx.MockTransport``; nothing leaves the
process.
"""

from __future__ import annotations

import json

import httpx
import pytest

from promptcraft.core.errors import ProviderCallError
from promptcraft.core.providers import (
    AnthropicProvider,
    GeminiProvider,
    LocalProvider,
    MistralProvider,
    OpenAIProvider,
    ProviderName,
    ProviderRegistry,
    ProviderRequest,
    provider_registry,
)


def _request(**overrides) -> ProviderRequest:
    values = {"system": "Be vivid.", "user": "a cat", "model": "m-1", "credential": "key-123"}
    values.update(overrides)
    return ProviderRequest(**values)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestProviderName:
    def test_parse_known(self):
        assert ProviderName.parse("OpenAI") is ProviderName.OPENAI
        assert ProviderName.parse(" anthropic ") is ProviderName.ANTHROPIC

    def test_parse_aliases(self):
        assert ProviderName.parse("google") is ProviderName.GEMINI
        assert ProviderName.parse("ollama") is ProviderName.LOCAL

    def test_parse_unknown(self):
        assert ProviderName.parse("skynet") is None
        assert ProviderName.parse("") is None
        assert ProviderName.parse(None) is None


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "a regal cat"}}]})

        async with _client(handler) as client:
            provider = OpenAIProvider("https://api.example.com/v1/", client=client)
            text = await provider.complete(_request())

        assert text == "a regal cat"
        assert seen["url"] == "https://api.example.com/v1/chat/completions"
        assert seen["auth"] == "Bearer key-123"
        assert seen["body"]["messages"][0] == {"role": "system", "content": "Be vivid."}
        assert seen["body"]["model"] == "m-1"

    @pytest.mark.asyncio
    async def test_http_error_carries_signal(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})

        async with _client(handler) as client:
            provider = OpenAIProvider("https://api.example.com/v1", client=client)
            with pytest.raises(ProviderCallError) as exc_info:
                await provider.complete(_request())

        assert exc_info.value.status_code == 401
        assert "HTTP 401" in exc_info.value.signal
        assert "Incorrect API key provided" in exc_info.value.signal

    @pytest.mark.asyncio
    async def test_timeout_signal(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        async with _client(handler) as client:
            provider = OpenAIProvider("https://api.example.com/v1", client=client)
            with pytest.raises(ProviderCallError, match="timed out"):
                await provider.complete(_request())

    @pytest.mark.asyncio
    async def test_connection_refused_signal(self):
        def handler(request):
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        async with _client(handler) as client:
            provider = OpenAIProvider("https://api.example.com/v1", client=client)
            with pytest.raises(ProviderCallError, match="Connection refused"):
                await provider.complete(_request())

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        def handler(request):
            return httpx.Response(200, json={"unexpected": True})

        async with _client(handler) as client:
            provider = OpenAIProvider("https://api.example.com/v1", client=client)
            with pytest.raises(ProviderCallError, match="Malformed response"):
                await provider.complete(_request())


class TestOtherProviders:
    @pytest.mark.asyncio
    async def test_anthropic(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"content": [{"type": "text", "text": "a cat"}]})

        async with _client(handler) as client:
            text = await AnthropicProvider("https://anthropic.test/v1", client=client).complete(_request())

        assert text == "a cat"
        assert seen["url"] == "https://anthropic.test/v1/messages"
        assert seen["key"] == "key-123"
        assert seen["body"]["system"] == "Be vivid."

    @pytest.mark.asyncio
    async def test_gemini(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": "a "}, {"text": "cat"}]}}]}
            )

        async with _client(handler) as client:
            text = await GeminiProvider("https://gemini.test/v1beta", client=client).complete(_request())

        assert text == "a cat"
        assert seen["url"] == "https://gemini.test/v1beta/models/m-1:generateContent"

    @pytest.mark.asyncio
    async def test_mistral_uses_openai_format(self):
        def handler(request):
            assert request.url.path == "/v1/chat/completions"
            return httpx.Response(200, json={"choices": [{"message": {"content": "bonjour"}}]})

        async with _client(handler) as client:
            text = await MistralProvider("https://mistral.test/v1", client=client).complete(_request())
        assert text == "bonjour"

    @pytest.mark.asyncio
    async def test_local_needs_no_key(self):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"content": "local cat"}})

        async with _client(handler) as client:
            provider = LocalProvider("http://127.0.0.1:11434", client=client)
            text = await provider.complete(_request(credential=None))

        assert text == "local cat"
        assert "authorization" not in seen["headers"]
        assert seen["body"]["stream"] is False


class TestUnexpectedBodyShapes:
    """A 200 reply that does not hold completion text is a provider failure."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "provider_class,body",
        [
            (OpenAIProvider, {"choices": [{"message": {"content": 5}}]}),
            (OpenAIProvider, {"choices": [{"message": {"content": ["a", "b"]}}]}),
            (MistralProvider, {"choices": ["not a choice"]}),
            (AnthropicProvider, {"content": [None]}),
            (AnthropicProvider, {"content": "plain string"}),
            (GeminiProvider, {"candidates": [{"content": {"parts": ["x"]}}]}),
            (GeminiProvider, {"candidates": []}),
            (LocalProvider, {"message": {"content": {"text": "a cat"}}}),
            (LocalProvider, ["not", "an", "object"]),
        ],
    )
    async def test_raises_provider_call_error(self, provider_class, body):
        def handler(request):
            return httpx.Response(200, json=body)

        async with _client(handler) as client:
            provider = provider_class("https://api.example.com/v1", client=client)
            with pytest.raises(ProviderCallError, match="Malformed response") as exc_info:
                await provider.complete(_request())

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        async with _client(handler) as client:
            provider = AnthropicProvider("https://api.example.com/v1", client=client)
            with pytest.raises(ProviderCallError, match="Malformed response"):
                await provider.complete(_request())


class TestProviderRegistry:
    def test_global_registry_has_all_providers(self):
        assert sorted(provider_registry.list_available()) == sorted(p.value for p in ProviderName)

    def test_create_uses_config(self, test_config):
        provider = provider_registry.create(ProviderName.ANTHROPIC, test_config)
        assert isinstance(provider, AnthropicProvider)
        assert provider.base_url == "https://api.anthropic.com/v1"
        assert provider.timeout == test_config.request_timeout

    def test_create_unregistered_raises(self, test_config):
        with pytest.raises(KeyError):
            ProviderRegistry().create(ProviderName.OPENAI, test_config)

    def test_default_models(self):
        assert provider_registry.default_model_for(ProviderName.OPENAI) == "gpt-4o"
        assert ProviderRegistry().default_model_for(ProviderName.OPENAI) == ""
