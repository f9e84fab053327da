"""
OpenRouter Vision Provider

OpenRouter exposes many vendors' models behind one OpenAI-compatible API,
so this provider reuses the OpenAI request format and keeps "vendor/model"
ids intact for routing.
"""

from .openai import OpenAIProvider


class OpenRouterProvider(OpenAIProvider):
    """
    Vision provider routing through OpenRouter.

    Example:
        config.ai.model = "anthropic/claude-3.5-sonnet"
        provider = OpenRouterProvider(config)
    """

    default_base_url = "https://openrouter.ai/api/v1"
    capabilities = ("vision", "text-analysis", "code-generation", "accessibility-analysis")

    @property
    def name(self) -> str:
        return "openrouter"

    def _resolve_model(self, model: str) -> str:
        return model

    def _default_headers(self) -> dict:
        return {
            "HTTP-Referer": "https://github.com/uxlens/uxlens",
            "X-Title": "uxlens - AI UI analysis",
        }
