"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
import base64

import pytest

from uxlens.models import AIConfig, AnalysisContext, LensConfig, ScreenshotData, UserContext
from uxlens.providers.base import ProviderResponse


PNG_1X1_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAwMCAO7+fJ8AAAAASUVORK5CYII="
)

SAMPLE_RESPONSE = """**OVERALL UX SCORE: 7/10**

Usability: 8/10
Accessibility: 5/10

**STRENGTHS:**
- Clear product imagery
- Prominent price display

**CRITICAL ISSUES:** (Blocks user success)
- Checkout button `#checkout-btn` is hidden below the fold on mobile. Fix: move it above the fold.

**MAJOR ISSUES:** (Impacts user experience)
- Low contrast on the promo banner text violates WCAG 1.4.3. The text should use a darker color.

**MINOR ISSUES:** (Polish opportunities)
- Footer links are slightly cramped.
- Icon buttons lack labels for screen readers (WCAG 2.1 SC 4.1.2).

**RECOMMENDATIONS:**
- Move the checkout button into a sticky footer using simple CSS.
- Increase banner text contrast to at least 4.5:1 for accessibility.
"""


class FakeProvider:
    """Scripted provider: returns (or raises) its responses in order, repeating the last one."""

    def __init__(self, responses, name: str = "fake", model: str = "fake-model", delay: float = 0.0) -> None:
        self.name = name
        self.model = model
        self.responses = list(responses)
        self.delay = delay
        self.calls: list[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def analyze(self, screenshot, context, prompt):
        self.calls.append({"screenshot": screenshot, "context": context, "prompt": prompt})
        response = self.responses[min(len(self.calls), len(self.responses)) - 1]
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if isinstance(response, BaseException):
            raise response
        return ProviderResponse(text=response, tokens_used=42, model=self.model, provider=self.name)

    async def is_available(self) -> bool:
        return True


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def sample_response() -> str:
    return SAMPLE_RESPONSE


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_1X1_BYTES


@pytest.fixture
def config() -> LensConfig:
    return LensConfig(ai=AIConfig(provider="openai", api_key="test-key", model="gpt-4o"))


@pytest.fixture
def screenshot() -> ScreenshotData:
    return ScreenshotData(buffer=PNG_1X1_BYTES, path="cart.png")


@pytest.fixture
def context() -> AnalysisContext:
    return AnalysisContext(
        stage="checkout",
        user_intent="complete purchase",
        user_context=UserContext(persona="mobile-consumer", device_context="desktop"),
        critical_elements=["checkout button", "order total"],
        page_url="https://shop.example.com/cart",
    )
