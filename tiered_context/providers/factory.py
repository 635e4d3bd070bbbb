"""Build an LLM provider from the ``providers`` config section."""

from __future__ import annotations

import logging
import os

from ..types import LLMProvider, SummarizationConfig

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "ollama": "http://127.0.0.1:11434/v1",
}


def build_provider(
    provider_name: str,
    provider_config: dict | None,
    summarization: SummarizationConfig,
) -> LLMProvider | None:
    """Return a provider, or None when it cannot be configured (e.g. no API key)."""
    provider_config = provider_config or {}
    ptype = provider_config.get("type", provider_name)
    model = provider_config.get("model", summarization.model)

    if ptype in ("generic_openai", "openai", "ollama"):
        api_key_env = provider_config.get("api_key_env", "OPENAI_API_KEY")
        api_key = provider_config.get("api_key") or os.environ.get(api_key_env, "")
        if ptype == "openai" and not api_key:
            logger.info("No %s set; summaries will use the truncation fallback", api_key_env)
            return None
        from .generic_openai import GenericOpenAIProvider
        return GenericOpenAIProvider(
            base_url=provider_config.get("base_url", DEFAULT_BASE_URLS.get(ptype, DEFAULT_BASE_URLS["ollama"])),
            model=model,
            temperature=summarization.temperature,
            api_key=api_key or None,
            api_key_env=api_key_env,
            timeout=summarization.timeout,
        )

    if ptype == "anthropic":
        api_key_env = provider_config.get("api_key_env", "ANTHROPIC_API_KEY")
        api_key = provider_config.get("api_key") or os.environ.get(api_key_env, "")
        if api_key:
            from .anthropic import AnthropicProvider
            return AnthropicProvider(
                api_key=api_key,
                model=model,
                temperature=summarization.temperature,
                timeout=summarization.timeout,
            )
        logger.info("No %s set; summaries will use the truncation fallback", api_key_env)
        return None

    logger.warning("Unknown provider type '%s' for provider '%s'", ptype, provider_name)
    return None
