"""
Analyzer Orchestrator

Coordinates a single screenshot analysis: input validation, prompt
rendering, the provider call (primary, then at most one fallback) and
response parsing.
"""

import asyncio
import logging
import time
from typing import Optional, Sequence

from .errors import ArityMismatch, InvalidContext, InvalidInput
from .models import AnalysisContext, AnalysisResult, LensConfig, ScreenshotData
from .parser import ResponseParser
from .prompts import build_journey_prompt, build_prompt
from .providers import get_fallback_provider, get_provider
from .providers.base import ProviderResponse, VisionProvider


logger = logging.getLogger(__name__)


class Analyzer:
    """
    Runs screenshot analyses against a configured vision provider.

    Provider and network failures never escape analyze(): the primary
    provider is tried first, the fallback (when configured) exactly once
    after it, and if both fail a degraded result with error=True is
    returned. Only local precondition failures raise.

    Example:
        config = load_config()
        analyzer = Analyzer(config)

        result = await analyzer.analyze(screenshot, AnalysisContext(
            stage="checkout",
            user_intent="complete purchase"
        ))

        print(result.summary())
    """

    def __init__(
        self,
        config: LensConfig,
        provider: Optional[VisionProvider] = None,
        fallback_provider: Optional[VisionProvider] = None,
        parser: Optional[ResponseParser] = None
    ):
        """
        Initialize analyzer.

        Providers are built from config unless given explicitly, so an
        unknown provider or a missing API key fails here rather than on
        the first analysis.

        Args:
            config: Provider, model and analysis settings
            provider: Primary provider (defaults to config.ai.provider)
            fallback_provider: Fallback provider (defaults to config.ai.fallback_model)
            parser: Response parser (defaults to ResponseParser())

        Raises:
            ConfigurationError: If a provider cannot be configured
        """
        self.config = config
        self.provider = provider or get_provider(config.ai.provider, config)
        if fallback_provider is None and provider is None:
            fallback_provider = get_fallback_provider(config)
        self.fallback_provider = fallback_provider
        self.parser = parser or ResponseParser()

    async def analyze(
        self,
        screenshot: ScreenshotData,
        context: AnalysisContext,
        prompt: Optional[str] = None
    ) -> AnalysisResult:
        """
        Analyze one screenshot.

        Args:
            screenshot: Image buffer and metadata
            context: Stage, intent, user and business context
            prompt: Pre-rendered prompt (defaults to build_prompt for the
                configured analysis types and depth)

        Returns:
            Parsed AnalysisResult, or a degraded error result when every
            provider failed

        Raises:
            InvalidInput: If the screenshot buffer is empty
            InvalidContext: If stage or user_intent is blank
        """
        self._validate(screenshot, context)

        if prompt is None:
            prompt = build_prompt(
                context,
                self.config.analysis.types,
                depth=self.config.analysis.depth,
                personas=self.config.personas
            )

        started = time.perf_counter()
        logger.debug(
            "Analyzing %s (%d bytes) with %s/%s",
            screenshot.path or context.stage, len(screenshot.buffer),
            self.provider.name, self.provider.model
        )

        response, failure = await self._call(self.provider, screenshot, context, prompt)

        if response is None and self.fallback_provider is not None:
            logger.warning(
                "Primary provider %s failed (%s), trying fallback %s/%s",
                self.provider.name, failure,
                self.fallback_provider.name, self.fallback_provider.model
            )
            response, failure = await self._call(
                self.fallback_provider, screenshot, context, prompt
            )

        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if response is None:
            logger.warning("Analysis failed after %d ms: %s", elapsed_ms, failure)
            return self.parser.error_result(
                str(failure),
                context=context,
                model=self.provider.model,
                provider=self.provider.name,
                analysis_time=elapsed_ms,
                config=self._config_summary(self.provider.name, self.provider.model)
            )

        result = self.parser.parse(
            response.text,
            context=context,
            model=response.model,
            provider=response.provider,
            tokens_used=response.tokens_used,
            analysis_time=elapsed_ms,
            config=self._config_summary(response.provider, response.model)
        )
        logger.debug(
            "Analysis of %s done in %d ms: score %g, %d finding(s)",
            result.page, elapsed_ms, result.overall_score, len(result.all_findings)
        )
        return result

    async def analyze_multiple(
        self,
        screenshots: Sequence[ScreenshotData],
        contexts: Sequence[AnalysisContext],
        concurrency: int = 3,
        prompts: Optional[Sequence[str]] = None
    ) -> list[AnalysisResult]:
        """
        Analyze screenshots pairwise with their contexts.

        Every pair is validated before the first provider call, so a bad
        input never leaves a partially processed batch behind.

        Args:
            screenshots: Screenshots to analyze
            contexts: One context per screenshot, same order
            concurrency: Maximum number of analyses in flight
            prompts: Optional pre-rendered prompt per pair, same order

        Returns:
            Results in input order

        Raises:
            ArityMismatch: If the sequences differ in length
            InvalidInput / InvalidContext: If any pair is invalid
        """
        if len(screenshots) != len(contexts):
            raise ArityMismatch(
                f"Got {len(screenshots)} screenshot(s) but {len(contexts)} context(s)"
            )
        if prompts is not None and len(prompts) != len(screenshots):
            raise ArityMismatch(
                f"Got {len(screenshots)} screenshot(s) but {len(prompts)} prompt(s)"
            )
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        for screenshot, context in zip(screenshots, contexts):
            self._validate(screenshot, context)

        semaphore = asyncio.Semaphore(concurrency)

        async def run_one(
            screenshot: ScreenshotData,
            context: AnalysisContext,
            prompt: Optional[str]
        ) -> AnalysisResult:
            async with semaphore:
                return await self.analyze(screenshot, context, prompt)

        pair_prompts = prompts if prompts is not None else [None] * len(screenshots)
        return list(await asyncio.gather(
            *(run_one(s, c, p) for s, c, p in zip(screenshots, contexts, pair_prompts))
        ))

    async def analyze_journey(
        self,
        journey_name: str,
        screenshots: Sequence[ScreenshotData],
        contexts: Sequence[AnalysisContext],
        concurrency: int = 3
    ) -> list[AnalysisResult]:
        """
        Analyze every stage of a multi-step user journey.

        Stages are given in journey order. Each stage is prompted with the
        journey name and the stages that came before it, then all of them
        run through analyze_multiple.

        Example:
            results = await analyzer.analyze_journey(
                "Guest checkout",
                [cart_png, shipping_png, payment_png],
                [cart_ctx, shipping_ctx, payment_ctx]
            )

        Returns:
            One result per stage, in journey order

        Raises:
            ArityMismatch: If screenshots and contexts differ in length
            InvalidInput / InvalidContext: If any stage is invalid
        """
        if len(screenshots) != len(contexts):
            raise ArityMismatch(
                f"Got {len(screenshots)} screenshot(s) but {len(contexts)} context(s)"
            )

        prompts = [
            build_journey_prompt(
                journey_name,
                context.stage,
                [previous.stage for previous in contexts[:position]],
                context,
                personas=self.config.personas
            )
            for position, context in enumerate(contexts)
        ]
        logger.debug("Analyzing journey %r with %d stage(s)", journey_name, len(contexts))
        return await self.analyze_multiple(screenshots, contexts, concurrency, prompts=prompts)

    @staticmethod
    def _validate(screenshot: ScreenshotData, context: AnalysisContext) -> None:
        if screenshot is None or not screenshot.buffer:
            raise InvalidInput("Screenshot buffer is empty")
        if not context.stage or not context.stage.strip():
            raise InvalidContext("Analysis context requires a non-empty stage")
        if not context.user_intent or not context.user_intent.strip():
            raise InvalidContext("Analysis context requires a non-empty user_intent")

    @staticmethod
    async def _call(
        provider: VisionProvider,
        screenshot: ScreenshotData,
        context: AnalysisContext,
        prompt: str
    ) -> tuple[Optional[ProviderResponse], Optional[Exception]]:
        try:
            return await provider.analyze(screenshot, context, prompt), None
        except Exception as e:
            return None, e

    def _config_summary(self, provider: str, model: str) -> dict:
        return {
            "provider": provider,
            "model": model,
            "analysis_types": list(self.config.analysis.types),
            "depth": self.config.analysis.depth,
        }
