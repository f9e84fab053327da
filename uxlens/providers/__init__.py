"""
Vision Provider Implementations

Pluggable vision model providers following a common interface.
The set of backends is closed: OpenRouter, OpenAI, Anthropic, Local (Ollama).
"""

from typing import Optional

from ..errors import ConfigurationError
from ..models import LensConfig
from .anthropic import AnthropicProvider
from .base import ProviderResponse, VisionProvider
from .local import LocalProvider
from .openai import OpenAIProvider
from .openrouter import OpenRouterProvider

__all__ = [
    "VisionProvider",
    "ProviderResponse",
    "OpenRouterProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "LocalProvider",
    "PROVIDERS",
    "get_provider",
    "get_fallback_provider",
]


PROVIDERS = {
    "openrouter": OpenRouterProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "local": LocalProvider,
}


def get_provider(
    provider_name: str,
    config: LensConfig,
    model: Optional[str] = None,
    api_key: Optional[str] = None
) -> VisionProvider:
    """
    Factory function to get configured vision provider.

    The configured base_url only applies when provider_name is the primary
    provider; any other provider talks to its default endpoint.

    Args:
        provider_name: One of "openrouter", "openai", "anthropic" or "local"
        config: Configuration with API keys and request parameters
        model: Model override (defaults to config.ai.model)
        api_key: API key override (defaults to config.ai.api_key)

    Returns:
        Configured vision provider instance

    Raises:
        ConfigurationError: If provider name is unknown or its key is missing

    Example:
        provider = get_provider("anthropic", config)
        response = await provider.analyze(screenshot, context, prompt)
    """
    provider_cls = PROVIDERS.get(provider_name)
    if provider_cls is None:
        raise ConfigurationError(
            f"Unknown provider: {provider_name}. "
            f"Choose from: {', '.join(PROVIDERS)}"
        )

    base_url = config.ai.base_url if provider_name == config.ai.provider else None
    return provider_cls(config, model=model, api_key=api_key, base_url=base_url)


def get_fallback_provider(config: LensConfig) -> Optional[VisionProvider]:
    """
    Build the fallback provider described by config.ai.fallback_model.

    Routing rules:
    - A primary on OpenRouter keeps the fallback on OpenRouter, which routes
      "vendor/model" ids itself.
    - Otherwise a known "vendor/" prefix selects that provider
      ("anthropic/claude-3-5-sonnet" -> anthropic).
    - Anything else falls back on the primary provider with a different model.

    Returns:
        Fallback provider, or None when no fallback model is configured
    """
    fallback_model = config.ai.fallback_model
    if not fallback_model:
        return None

    provider_name = config.ai.provider
    if provider_name != "openrouter" and "/" in fallback_model:
        prefix = fallback_model.split("/", 1)[0]
        if prefix in PROVIDERS:
            provider_name = prefix

    api_key = config.ai.fallback_api_key or config.ai.api_key
    return get_provider(provider_name, config, model=fallback_model, api_key=api_key)
