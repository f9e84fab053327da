"""
Anthropic Claude Vision Provider

Implements screenshot analysis using Claude's vision capabilities.
Supports Claude 3+ models with vision understanding.
"""

import anthropic

from ..errors import ProviderError
from ..models import AnalysisContext, ScreenshotData
from .base import ProviderResponse, VisionProvider


class AnthropicProvider(VisionProvider):
    """
    Vision provider using Anthropic's Claude models.

    The screenshot is sent as a base64 ``image`` content block followed by
    the prompt as a text block.

    Example:
        provider = AnthropicProvider(config)
        response = await provider.analyze(screenshot, context, prompt)
    """

    capabilities = ("vision", "text-analysis", "detailed-reasoning")

    def __init__(self, config, model=None, api_key=None, base_url=None):
        """
        Initialize Anthropic provider.

        Args:
            config: Configuration with max_tokens and temperature
            model: Claude model to use; must be vision-capable (Claude 3+)
            api_key: Anthropic API key (get from https://console.anthropic.com/)
            base_url: Endpoint override (optional)
        """
        super().__init__(config, model=model, api_key=api_key, base_url=base_url)
        self.client = anthropic.AsyncAnthropic(
            api_key=self._api_key,
            base_url=base_url,
            max_retries=0
        )

    @property
    def name(self) -> str:
        """Provider name for identification"""
        return "anthropic"

    async def is_available(self) -> bool:
        """
        Probe the model listing endpoint with the configured key.

        Returns:
            True if the key is accepted, False otherwise
        """
        try:
            await self.client.models.list(limit=1)
            return True
        except Exception:
            return False

    async def analyze(
        self,
        screenshot: ScreenshotData,
        context: AnalysisContext,
        prompt: str
    ) -> ProviderResponse:
        """
        Analyze screenshot using Claude vision model.

        Args:
            screenshot: Image buffer and metadata
            context: Analysis context (unused by the request itself)
            prompt: Rendered instruction text

        Returns:
            ProviderResponse with raw text and input + output token usage

        Raises:
            ProviderError: If the API returns non-2xx or the request fails
        """
        image_data = self._encode_image(screenshot)

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.config.ai.max_tokens,
                temperature=self.config.ai.temperature,
                messages=[{
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": screenshot.media_type,
                                "data": image_data
                            }
                        },
                        {
                            "type": "text",
                            "text": prompt
                        }
                    ]
                }]
            )
        except anthropic.APIStatusError as e:
            raise ProviderError(
                f"Anthropic API error: {e.status_code} - {e.response.text}",
                provider=self.name,
                status=e.status_code,
                body=e.response.text
            ) from e
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic request failed: {e}", provider=self.name) from e

        # Claude may interleave non-text blocks; keep the text ones
        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )

        usage = getattr(response, "usage", None)
        tokens_used = (
            (getattr(usage, "input_tokens", 0) or 0) +
            (getattr(usage, "output_tokens", 0) or 0)
        )

        return ProviderResponse(
            text=text,
            tokens_used=tokens_used,
            model=self.model,
            provider=self.name
        )
