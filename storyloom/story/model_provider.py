"""
Model provider abstraction for dynamic block generation.

Supports multiple LLM backends:
- DashScope (OpenAI-compatible chat completions) - default
- Ollama (local models)
- Claude (Anthropic)

Usage:
    provider = get_provider("dashscope:qwen-max")
    result = await provider.generate(system_prompt, user_prompt, config)
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import anthropic
import httpx

from .errors import LLMProviderError

logger = logging.getLogger(__name__)

DEFAULT_MODEL_SPEC = "dashscope:qwen-max"
DEFAULT_DASHSCOPE_BASE_URL = "https://dashscope-intl.aliyuncs.com/compatible-mode/v1"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"


@dataclass
class ModelInfo:
    """Model identification information."""
    provider: str  # "dashscope", "ollama", "anthropic"
    model_name: str  # e.g., "qwen-max", "llama3", "claude-sonnet-4-5-20250929"
    full_spec: str  # e.g., "dashscope:qwen-max", "ollama:llama3"


@dataclass
class GenerationResult:
    """Result from text generation."""
    text: str
    usage: Optional[Dict[str, int]]
    provider: str
    model: str


def parse_model_spec(model_spec: Optional[str]) -> ModelInfo:
    """
    Parse model specification string into provider and model name.

    Formats:
    - "dashscope:qwen-max" -> provider="dashscope", model="qwen-max"
    - "ollama:llama3" -> provider="ollama", model="llama3"
    - "claude-sonnet-4-5-20250929" -> provider="anthropic", model="claude-sonnet-4-5-20250929"
    - None -> STORY_MODEL from env, else dashscope:qwen-max

    Args:
        model_spec: Model specification string or None for default

    Returns:
        ModelInfo with provider and model name
    """
    if not model_spec:
        model_spec = os.getenv("STORY_MODEL") or DEFAULT_MODEL_SPEC

    for prefix in ("dashscope", "ollama"):
        if model_spec.startswith(f"{prefix}:"):
            return ModelInfo(
                provider=prefix,
                model_name=model_spec.split(":", 1)[1],
                full_spec=model_spec
            )

    # Anything else is treated as a Claude model
    return ModelInfo(
        provider="anthropic",
        model_name=model_spec,
        full_spec=model_spec
    )


def _response_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class ModelProvider(ABC):
    """Abstract base class for model providers."""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        config: Dict[str, Any]
    ) -> GenerationResult:
        """
        Generate text using the model.

        Args:
            system_prompt: System prompt text
            user_prompt: User prompt text
            config: Configuration dict with max_tokens, temperature, timeout

        Returns:
            GenerationResult with generated text and metadata

        Raises:
            LLMProviderError: If the call fails
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return provider name for metadata."""
        pass


class DashScopeProvider(ModelProvider):
    """DashScope provider using the OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        model_name: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model_name = model_name
        self.api_key = api_key or os.getenv("DASHSCOPE_API_KEY")
        self.base_url = (base_url or os.getenv("DASHSCOPE_BASE_URL") or DEFAULT_DASHSCOPE_BASE_URL).rstrip("/")
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "dashscope"

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        config: Dict[str, Any]
    ) -> GenerationResult:
        """Generate using the DashScope chat completions API."""
        if not self.api_key:
            raise LLMProviderError(
                "API key not found. Set DASHSCOPE_API_KEY in environment variables.",
                provider=self.provider_name,
            )

        logger.info(f"[DashScopeProvider] Generating with {self.model_name}")

        request_body = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": int(config.get("max_tokens", 4096)),
            "temperature": float(config.get("temperature", 0.8)),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=config.get("timeout"), transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=request_body,
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"[DashScopeProvider] HTTP {e.response.status_code}: {e.response.text[:500]}")
            raise LLMProviderError(
                f"DashScope returned HTTP {e.response.status_code}",
                provider=self.provider_name,
                provider_detail=_response_detail(e.response),
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"[DashScopeProvider] Connection error: {e}")
            raise LLMProviderError(
                f"DashScope connection failed: {e}", provider=self.provider_name
            ) from e
        except ValueError as e:
            raise LLMProviderError(
                f"DashScope returned invalid JSON: {e}", provider=self.provider_name
            ) from e

        choices = data.get("choices") or []
        message = (choices[0].get("message") or {}) if choices else {}
        text = message.get("content") or "No reply received"

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            usage = {
                "input_tokens": raw_usage.get("prompt_tokens", 0),
                "output_tokens": raw_usage.get("completion_tokens", 0),
                "total_tokens": raw_usage.get("total_tokens", 0),
            }

        logger.info(f"[DashScopeProvider] Generated {len(text)} chars")

        return GenerationResult(
            text=text,
            usage=usage,
            provider=self.provider_name,
            model=self.model_name
        )


class OllamaProvider(ModelProvider):
    """Ollama (local) model provider."""

    def __init__(
        self,
        model_name: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model_name = model_name
        self.base_url = (base_url or os.getenv("OLLAMA_BASE_URL") or DEFAULT_OLLAMA_BASE_URL).rstrip("/")
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "ollama"

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        config: Dict[str, Any]
    ) -> GenerationResult:
        """Generate using Ollama API."""
        logger.info(f"[OllamaProvider] Generating with {self.model_name}")

        request_body = {
            "model": self.model_name,
            "system": system_prompt,
            "prompt": user_prompt,
            "stream": False,
            "options": {
                "temperature": float(config.get("temperature", 0.8)),
                "num_predict": int(config.get("max_tokens", 4096)),
            }
        }

        try:
            async with httpx.AsyncClient(
                timeout=config.get("timeout"), transport=self._transport
            ) as client:
                response = await client.post(f"{self.base_url}/api/generate", json=request_body)
                response.raise_for_status()
                response_json = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"[OllamaProvider] Timeout: {e}")
            raise LLMProviderError(f"Ollama timeout: {e}", provider=self.provider_name) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"[OllamaProvider] HTTP {e.response.status_code}")
            raise LLMProviderError(
                f"Ollama returned HTTP {e.response.status_code}",
                provider=self.provider_name,
                provider_detail=_response_detail(e.response),
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"[OllamaProvider] Connection error: {e}")
            raise LLMProviderError(
                f"Ollama connection failed: {e}", provider=self.provider_name
            ) from e
        except ValueError as e:
            raise LLMProviderError(
                f"Ollama returned invalid JSON: {e}", provider=self.provider_name
            ) from e

        if "error" in response_json:
            raise LLMProviderError(
                f"Ollama error: {response_json['error']}",
                provider=self.provider_name,
                provider_detail=response_json,
            )

        text = response_json.get("response", "")

        usage = None
        if "eval_count" in response_json:
            usage = {
                "input_tokens": response_json.get("prompt_eval_count", 0),
                "output_tokens": response_json.get("eval_count", 0),
                "total_tokens": response_json.get("prompt_eval_count", 0) + response_json.get("eval_count", 0)
            }

        logger.info(f"[OllamaProvider] Generated {len(text)} chars")

        return GenerationResult(
            text=text,
            usage=usage,
            provider=self.provider_name,
            model=self.model_name
        )


class ClaudeProvider(ModelProvider):
    """Claude (Anthropic) model provider."""

    def __init__(
        self,
        model_name: str,
        api_key: Optional[str] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self.model_name = model_name
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self._client = client

    @property
    def provider_name(self) -> str:
        return "anthropic"

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        config: Dict[str, Any]
    ) -> GenerationResult:
        """Generate using Claude API."""
        logger.info(f"[ClaudeProvider] Generating with {self.model_name}")
        client = self._client or anthropic.AsyncAnthropic(
            api_key=self.api_key, timeout=config.get("timeout")
        )

        try:
            message = await client.messages.create(
                model=self.model_name,
                max_tokens=int(config.get("max_tokens", 4096)),
                temperature=float(config.get("temperature", 0.8)),
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}]
            )
        except anthropic.APIStatusError as e:
            logger.error(f"[ClaudeProvider] HTTP {e.status_code}: {e.message}")
            raise LLMProviderError(
                f"Claude returned HTTP {e.status_code}",
                provider=self.provider_name,
                provider_detail=e.body,
            ) from e
        except anthropic.APIError as e:
            logger.error(f"[ClaudeProvider] Generation failed: {e}")
            raise LLMProviderError(
                f"Claude request failed: {e}", provider=self.provider_name
            ) from e

        text = message.content[0].text if message.content else ""

        usage = None
        if getattr(message, "usage", None):
            try:
                usage = {
                    "input_tokens": message.usage.input_tokens,
                    "output_tokens": message.usage.output_tokens,
                    "total_tokens": message.usage.input_tokens + message.usage.output_tokens
                }
            except (AttributeError, TypeError):
                usage = None

        logger.info(f"[ClaudeProvider] Generated {len(text)} chars")

        return GenerationResult(
            text=text,
            usage=usage,
            provider=self.provider_name,
            model=self.model_name
        )


def get_provider(model_spec: Optional[str] = None) -> ModelProvider:
    """
    Get appropriate model provider for the given model specification.

    Args:
        model_spec: Model specification (e.g., "dashscope:qwen-max", "ollama:llama3")
                   None uses STORY_MODEL from environment

    Returns:
        ModelProvider instance
    """
    info = parse_model_spec(model_spec)

    if info.provider == "dashscope":
        return DashScopeProvider(info.model_name)
    elif info.provider == "ollama":
        return OllamaProvider(info.model_name)
    else:
        return ClaudeProvider(info.model_name)


def get_model_info(model_spec: Optional[str] = None) -> ModelInfo:
    """
    Get model information without creating a provider.

    Args:
        model_spec: Model specification string

    Returns:
        ModelInfo with provider and model details
    """
    return parse_model_spec(model_spec)
