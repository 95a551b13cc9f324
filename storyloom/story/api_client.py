"""
LLM API client module.

Handles all LLM API interactions for dynamic block generation.
Supports multiple providers: DashScope, Ollama, Claude (Anthropic).
"""

import logging
from typing import Any, Dict, Optional

from ..infra.data_paths import get_llm_config
from .errors import LLMProviderError
from .model_provider import ModelProvider, get_model_info, get_provider

logger = logging.getLogger(__name__)

LOG_SEPARATOR = "." * 100


async def call_llm_api(
    system_prompt: str,
    user_prompt: str,
    config: Optional[Dict[str, Any]] = None,
    model_spec: Optional[str] = None,
    provider: Optional[ModelProvider] = None,
) -> Dict[str, Any]:
    """
    Call the LLM with a system and user prompt.

    Args:
        system_prompt (str): System prompt (writer role)
        user_prompt (str): Assembled prompt for the block
        config (Optional[Dict]): max_tokens, temperature, timeout; env defaults when None
        model_spec (Optional[str]): Model specification
            - None: STORY_MODEL from env (default dashscope:qwen-max)
            - "dashscope:qwen-max": DashScope model
            - "ollama:llama3": Ollama model
            - "claude-sonnet-4-5-20250929": Claude model
        provider (Optional[ModelProvider]): Explicit provider, overrides model_spec

    Returns:
        Dict[str, Any]: Generation result
            - text (str): Raw reply
            - usage (Dict): Token usage info (may be None)
            - provider (str): Provider name
            - model (str): Model name used

    Raises:
        LLMProviderError: If the call fails
    """
    config = config if config is not None else get_llm_config()

    if provider is None:
        model_info = get_model_info(model_spec)
        logger.info(f"[LLM] Using provider={model_info.provider}, model={model_info.model_name}")
        provider = get_provider(model_spec)

    logger.debug(f"[LLM] Prompt:\n{LOG_SEPARATOR}\n{user_prompt}\n{LOG_SEPARATOR}")

    try:
        result = await provider.generate(system_prompt, user_prompt, config)
    except LLMProviderError:
        raise
    except Exception as e:
        logger.error(f"[LLM] Generation failed: {e}", exc_info=True)
        raise LLMProviderError(
            f"LLM generation failed: {e}", provider=provider.provider_name
        ) from e

    logger.info(f"[LLM] Returned result:\n{LOG_SEPARATOR}\n{result.text}\n{LOG_SEPARATOR}")
    if result.usage:
        logger.info(
            f"[LLM] Token usage - Input: {result.usage.get('input_tokens')}, "
            f"Output: {result.usage.get('output_tokens')}, Total: {result.usage.get('total_tokens')}"
        )

    return {
        "text": result.text,
        "usage": result.usage,
        "provider": result.provider,
        "model": result.model
    }
