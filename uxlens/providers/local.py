"""
Local LLM Vision Provider

Implements screenshot analysis using local LLMs via Ollama.
Supports LLaVA, BakLLaVA, and other vision-capable local models.
"""

import asyncio

import requests

from ..errors import ProviderError
from ..models import AnalysisContext, ScreenshotData
from .base import ProviderResponse, VisionProvider


class LocalProvider(VisionProvider):
    """
    Vision provider using local LLMs through Ollama.

    Uses Ollama's API to run local vision models like LLaVA.
    Fully offline, no API key and no API costs.

    Requirements:
    - Ollama installed (https://ollama.ai/)
    - Vision model pulled (e.g., `ollama pull llava`)

    The HTTP calls use requests and run in a worker thread so they do not
    block the event loop.

    Example:
        config.ai.provider = "local"
        config.ai.model = "llava"
        provider = LocalProvider(config)
    """

    requires_api_key = False
    request_timeout = 120  # Local models can be slow

    def __init__(self, config, model=None, api_key=None, base_url=None):
        super().__init__(config, model=model, api_key=api_key, base_url=base_url)
        self.host = (base_url or config.ai.ollama_host).rstrip("/")

    @property
    def name(self) -> str:
        """Provider name for identification"""
        return "local"

    def _resolve_model(self, model: str) -> str:
        # Ollama tags may legitimately contain "/" (e.g. "library/llava")
        return model

    async def is_available(self) -> bool:
        """
        Check if Ollama server is running.

        Returns:
            True if server is reachable, False otherwise
        """
        try:
            response = await asyncio.to_thread(
                requests.get, f"{self.host}/api/tags", timeout=2
            )
            return response.status_code == 200
        except requests.RequestException:
            return False

    async def analyze(
        self,
        screenshot: ScreenshotData,
        context: AnalysisContext,
        prompt: str
    ) -> ProviderResponse:
        """
        Analyze screenshot using local LLM via Ollama.

        Args:
            screenshot: Image buffer and metadata
            context: Analysis context (unused by the request itself)
            prompt: Rendered instruction text

        Returns:
            ProviderResponse with raw text and prompt + completion token counts

        Raises:
            ProviderError: If Ollama is unreachable or answers non-2xx
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "images": [self._encode_image(screenshot)],
            "stream": False,
            "options": {
                "temperature": self.config.ai.temperature,
                "num_predict": self.config.ai.max_tokens
            }
        }

        try:
            response = await asyncio.to_thread(
                requests.post,
                f"{self.host}/api/generate",
                json=payload,
                timeout=self.request_timeout
            )
        except requests.RequestException as e:
            raise ProviderError(
                f"Failed to connect to Ollama at {self.host}: {e}", provider=self.name
            ) from e

        if not response.ok:
            raise ProviderError(
                f"Ollama API error: {response.status_code} - {response.text}",
                provider=self.name,
                status=response.status_code,
                body=response.text
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Ollama returned invalid JSON: {e}", provider=self.name) from e

        tokens_used = (data.get("prompt_eval_count") or 0) + (data.get("eval_count") or 0)

        return ProviderResponse(
            text=data.get("response", ""),
            tokens_used=tokens_used,
            model=self.model,
            provider=self.name
        )
