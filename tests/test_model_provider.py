"""Tests for model_provider module."""

import json
import os
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import pytest

from storyloom.story.errors import LLMProviderError
from storyloom.story.model_provider import (
    ClaudeProvider,
    DashScopeProvider,
    GenerationResult,
    ModelInfo,
    OllamaProvider,
    get_model_info,
    get_provider,
    parse_model_spec,
)

CONFIG = {"max_tokens": 256, "temperature": 0.5, "timeout": None}


class TestParseModelSpec:
    """Tests for parse_model_spec function."""

    def test_parse_none_uses_story_model_env(self):
        """Test that None reads STORY_MODEL."""
        with patch.dict(os.environ, {"STORY_MODEL": "ollama:qwen"}, clear=False):
            info = parse_model_spec(None)
            assert info.provider == "ollama"
            assert info.model_name == "qwen"

    def test_parse_none_without_env_uses_default(self):
        """Test that None without env var uses dashscope:qwen-max."""
        with patch.dict(os.environ, {}, clear=True):
            info = parse_model_spec(None)
            assert info == ModelInfo(provider="dashscope", model_name="qwen-max", full_spec="dashscope:qwen-max")

    def test_parse_dashscope_spec(self):
        info = parse_model_spec("dashscope:qwen-plus")
        assert info.provider == "dashscope"
        assert info.model_name == "qwen-plus"

    def test_parse_ollama_spec_with_tag(self):
        """Test that only the first colon separates the provider."""
        info = parse_model_spec("ollama:qwen3:30b")
        assert info.provider == "ollama"
        assert info.model_name == "qwen3:30b"

    def test_parse_claude_model(self):
        info = parse_model_spec("claude-sonnet-4-5-20250929")
        assert info.provider == "anthropic"
        assert info.model_name == "claude-sonnet-4-5-20250929"


class TestGetProvider:
    """Tests for get_provider function."""

    def test_get_provider_types(self):
        assert isinstance(get_provider("dashscope:qwen-max"), DashScopeProvider)
        assert isinstance(get_provider("ollama:llama3"), OllamaProvider)
        assert isinstance(get_provider("claude-sonnet-4-5-20250929"), ClaudeProvider)

    def test_get_model_info(self):
        assert get_model_info("ollama:llama3").provider == "ollama"


class TestDashScopeProvider:
    """Tests for DashScopeProvider."""

    @pytest.mark.asyncio
    async def test_generate_success(self):
        """Test chat completion request and response parsing."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "choices": [{"message": {"content": '{"deliverable": "好"}'}}],
                "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
            })

        provider = DashScopeProvider(
            "qwen-max",
            api_key="sk-test",
            base_url="https://example.test/v1",
            transport=httpx.MockTransport(handler),
        )
        result = await provider.generate("SYS", "USER", CONFIG)

        assert isinstance(result, GenerationResult)
        assert result.text == '{"deliverable": "好"}'
        assert result.usage == {"input_tokens": 10, "output_tokens": 5, "total_tokens": 15}
        assert result.provider == "dashscope"
        assert captured["url"] == "https://example.test/v1/chat/completions"
        assert captured["auth"] == "Bearer sk-test"
        assert captured["body"]["messages"][0] == {"role": "system", "content": "SYS"}
        assert captured["body"]["max_tokens"] == 256

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        """Test that a missing key is reported before any request."""
        with patch.dict(os.environ, {}, clear=True):
            provider = DashScopeProvider("qwen-max")
            with pytest.raises(LLMProviderError, match="DASHSCOPE_API_KEY"):
                await provider.generate("SYS", "USER", CONFIG)

    @pytest.mark.asyncio
    async def test_http_error_carries_body(self):
        """Test that the provider's error body is kept as detail."""
        transport = httpx.MockTransport(
            lambda request: httpx.Response(401, json={"code": "InvalidApiKey"})
        )
        provider = DashScopeProvider("qwen-max", api_key="bad", transport=transport)

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.generate("SYS", "USER", CONFIG)

        assert exc_info.value.provider == "dashscope"
        assert exc_info.value.provider_detail == {"code": "InvalidApiKey"}

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = DashScopeProvider("qwen-max", api_key="k", transport=httpx.MockTransport(handler))

        with pytest.raises(LLMProviderError, match="connection failed"):
            await provider.generate("SYS", "USER", CONFIG)


class TestOllamaProvider:
    """Tests for OllamaProvider."""

    @pytest.mark.asyncio
    async def test_generate_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert request.url.path == "/api/generate"
            assert body["system"] == "SYS"
            assert body["stream"] is False
            return httpx.Response(200, json={
                "response": "generated",
                "prompt_eval_count": 3,
                "eval_count": 4,
            })

        provider = OllamaProvider("llama3", base_url="http://ollama.test", transport=httpx.MockTransport(handler))
        result = await provider.generate("SYS", "USER", CONFIG)

        assert result.text == "generated"
        assert result.usage["total_tokens"] == 7

    @pytest.mark.asyncio
    async def test_error_field(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"error": "model not found"}))
        provider = OllamaProvider("missing", transport=transport)

        with pytest.raises(LLMProviderError, match="model not found"):
            await provider.generate("SYS", "USER", CONFIG)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = OllamaProvider("llama3", transport=httpx.MockTransport(handler))

        with pytest.raises(LLMProviderError, match="timeout"):
            await provider.generate("SYS", "USER", CONFIG)


class TestClaudeProvider:
    """Tests for ClaudeProvider."""

    @pytest.mark.asyncio
    async def test_generate_success(self):
        message = MagicMock()
        message.content = [MagicMock(text="claude text")]
        message.usage.input_tokens = 8
        message.usage.output_tokens = 2
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=message)

        provider = ClaudeProvider("claude-test", client=client)
        result = await provider.generate("SYS", "USER", CONFIG)

        assert result.text == "claude text"
        assert result.usage["total_tokens"] == 10
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "SYS"
        assert kwargs["messages"] == [{"role": "user", "content": "USER"}]

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=anthropic.APIConnectionError(request=request))

        provider = ClaudeProvider("claude-test", client=client)

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.generate("SYS", "USER", CONFIG)

        assert exc_info.value.provider == "anthropic"
