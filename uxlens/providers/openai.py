"""
OpenAI Vision Provider

Implements screenshot analysis using OpenAI's chat completions API with
vision-capable models (gpt-4o and later).
"""

import openai

from ..errors import ProviderError
from ..models import AnalysisContext, ScreenshotData
from .base import ProviderResponse, VisionProvider


class OpenAIProvider(VisionProvider):
    """
    Vision provider using OpenAI's chat completions API.

    The screenshot is sent inline as a base64 data URL in an ``image_url``
    content part; the prompt travels as the accompanying text part.

    Example:
        provider = OpenAIProvider(config)
        response = await provider.analyze(screenshot, context, prompt)
    """

    default_base_url = "https://api.openai.com/v1"
    capabilities = ("vision", "text-analysis", "code-generation")

    def __init__(self, config, model=None, api_key=None, base_url=None):
        super().__init__(config, model=model, api_key=api_key, base_url=base_url)
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.client = openai.AsyncOpenAI(
            api_key=self._api_key,
            base_url=self.base_url,
            default_headers=self._default_headers(),
            max_retries=0
        )

    @property
    def name(self) -> str:
        """Provider name for identification"""
        return "openai"

    def _default_headers(self) -> dict:
        return {}

    async def is_available(self) -> bool:
        """
        Probe the model listing endpoint.

        Returns:
            True if the endpoint answers with the configured key, False otherwise
        """
        try:
            await self.client.models.list()
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
        Analyze screenshot with a vision-capable chat model.

        Args:
            screenshot: Image buffer and metadata
            context: Analysis context (unused by the request itself)
            prompt: Rendered instruction text

        Returns:
            ProviderResponse with raw text and total token usage

        Raises:
            ProviderError: If the API returns non-2xx or the request fails
        """
        image_data = self._encode_image(screenshot)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{
                    "role": "user",
                    "content": [
                        {
                            "type": "text",
                            "text": prompt
                        },
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{screenshot.media_type};base64,{image_data}",
                                "detail": self.detail
                            }
                        }
                    ]
                }],
                max_tokens=self.config.ai.max_tokens,
                temperature=self.config.ai.temperature
            )
        except openai.APIStatusError as e:
            raise ProviderError(
                f"{self.name} API error: {e.status_code} - {e.response.text}",
                provider=self.name,
                status=e.status_code,
                body=e.response.text
            ) from e
        except openai.APIError as e:
            raise ProviderError(f"{self.name} request failed: {e}", provider=self.name) from e

        try:
            text = response.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as e:
            raise ProviderError(
                f"{self.name} returned an unexpected payload: {e}", provider=self.name
            ) from e

        usage = getattr(response, "usage", None)
        tokens_used = getattr(usage, "total_tokens", 0) or 0

        return ProviderResponse(
            text=text,
            tokens_used=tokens_used,
            model=self.model,
            provider=self.name
        )
