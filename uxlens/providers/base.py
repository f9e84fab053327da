"""
Base Vision Provider Interface

Abstract base class defining the contract for vision model providers.
All providers must implement this interface for consistent behavior.
"""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..errors import ConfigurationError
from ..models import AnalysisContext, LensConfig, ScreenshotData


@dataclass(frozen=True)
class ProviderResponse:
    """Raw model output plus usage, as returned by a provider"""

    text: str
    tokens_used: int
    model: str
    provider: str


class VisionProvider(ABC):
    """
    Abstract base class for vision model providers.

    All vision providers (OpenRouter, OpenAI, Anthropic, Local) implement
    this interface so the Analyzer can swap primary and fallback providers
    without knowing which backend it talks to.

    Subclasses must implement:
    - analyze(): Send screenshot + prompt, return raw text and token usage
    - is_available(): Lightweight probe that never raises
    - name: Property returning provider name

    Providers never retry. A failed call raises ProviderError and the
    caller decides whether to consult a fallback.
    """

    #: Whether the provider refuses to start without an API key
    requires_api_key = True
    capabilities: tuple[str, ...] = ("vision", "text-analysis")

    def __init__(
        self,
        config: LensConfig,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None
    ):
        """
        Initialize provider from configuration.

        Args:
            config: Full configuration; provider settings are read from config.ai
                    and the detail level from config.analysis.depth
            model: Model identifier overriding config.ai.model (used for fallbacks)
            api_key: API key overriding config.ai.api_key
            base_url: Endpoint override; None means the provider default

        Raises:
            ConfigurationError: If the provider needs an API key and none is set
        """
        self.config = config
        self.model = self._resolve_model(model or config.ai.model)
        self._api_key = api_key if api_key is not None else config.ai.api_key
        self._base_url = base_url

        if self.requires_api_key and not (self._api_key and self._api_key.strip()):
            raise ConfigurationError(
                f"{self.name} API key is required. "
                f"Set UXLENS_API_KEY in .env file"
            )

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Provider name for logging and identification.

        Returns:
            Provider name (e.g., "openrouter", "openai", "anthropic", "local")
        """
        pass

    @abstractmethod
    async def analyze(
        self,
        screenshot: ScreenshotData,
        context: AnalysisContext,
        prompt: str
    ) -> ProviderResponse:
        """
        Send screenshot and prompt to the vision model.

        Args:
            screenshot: Image buffer and metadata
            context: Analysis context the prompt was built from
            prompt: Rendered instruction text

        Returns:
            ProviderResponse with the model's raw text and token usage

        Raises:
            ProviderError: On non-2xx responses or transport failures
        """
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """
        Check if provider is reachable with the configured credentials.

        Returns:
            True if provider can be used, False otherwise (never raises)
        """
        pass

    def get_model_info(self) -> dict:
        """Model name and capability tags"""
        return {"name": self.model, "capabilities": list(self.capabilities)}

    def _resolve_model(self, model: str) -> str:
        """
        Strip a "vendor/" prefix for providers that use bare model ids.

        OpenRouter overrides this to keep the routed id intact.
        """
        if "/" in model:
            return model.split("/", 1)[1]
        return model

    @property
    def detail(self) -> str:
        """Image detail level requested from the model"""
        return "high" if self.config.analysis.depth == "comprehensive" else "auto"

    def _encode_image(self, screenshot: ScreenshotData) -> str:
        """
        Encode screenshot buffer as base64 string.

        Args:
            screenshot: Screenshot holding the raw image bytes

        Returns:
            Base64-encoded image data
        """
        return base64.b64encode(screenshot.buffer).decode("utf-8")
