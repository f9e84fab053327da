"""Tests for the analysis orchestrator."""

from __future__ import annotations

import asyncio

import pytest

from uxlens.analyzer import Analyzer
from uxlens.errors import ArityMismatch, ConfigurationError, InvalidContext, InvalidInput, ProviderError
from uxlens.models import AIConfig, AnalysisContext, LensConfig, ScreenshotData


def test_analyze_parses_provider_output(config, screenshot, context, fake_provider, sample_response) -> None:
    provider = fake_provider([sample_response])
    analyzer = Analyzer(config, provider=provider)

    result = asyncio.run(analyzer.analyze(screenshot, context))

    assert result.error is False
    assert result.overall_score == 7
    assert result.provider == "fake"
    assert result.model == "fake-model"
    assert result.tokens_used == 42
    assert result.config["depth"] == "standard"
    assert len(provider.calls) == 1
    assert "User Stage: checkout" in provider.calls[0]["prompt"]


def test_empty_buffer_is_rejected_before_any_call(config, context, fake_provider) -> None:
    provider = fake_provider(["OVERALL UX SCORE: 8/10"])
    analyzer = Analyzer(config, provider=provider)

    with pytest.raises(InvalidInput):
        asyncio.run(analyzer.analyze(ScreenshotData(buffer=b""), context))

    assert provider.calls == []


@pytest.mark.parametrize("field", ["stage", "user_intent"])
def test_blank_context_field_is_rejected(config, screenshot, context, fake_provider, field: str) -> None:
    provider = fake_provider(["OVERALL UX SCORE: 8/10"])
    analyzer = Analyzer(config, provider=provider)

    with pytest.raises(InvalidContext):
        asyncio.run(analyzer.analyze(screenshot, context.model_copy(update={field: "   "})))

    assert provider.calls == []


def test_fallback_is_used_once_when_primary_fails(config, screenshot, context, fake_provider) -> None:
    primary = fake_provider([ProviderError("HTTP 500", provider="fake", status=500)])
    fallback = fake_provider(["OVERALL UX SCORE: 6/10"], name="backup", model="backup-model")
    analyzer = Analyzer(config, provider=primary, fallback_provider=fallback)

    result = asyncio.run(analyzer.analyze(screenshot, context))

    assert len(primary.calls) + len(fallback.calls) == 2
    assert result.error is False
    assert result.overall_score == 6
    assert result.provider == "backup"
    assert result.model == "backup-model"


def test_failure_without_fallback_returns_error_result(config, screenshot, context, fake_provider) -> None:
    primary = fake_provider([ProviderError("HTTP 503", provider="fake", status=503)])
    analyzer = Analyzer(config, provider=primary)

    result = asyncio.run(analyzer.analyze(screenshot, context))

    assert result.error is True
    assert result.overall_score == 0
    assert [finding.title for finding in result.all_findings] == ["Analysis Failed"]
    assert "HTTP 503" in result.critical_issues[0].description


def test_failing_fallback_returns_error_result(config, screenshot, context, fake_provider) -> None:
    primary = fake_provider([ProviderError("primary down")])
    fallback = fake_provider([ConnectionError("fallback down")], name="backup")
    analyzer = Analyzer(config, provider=primary, fallback_provider=fallback)

    result = asyncio.run(analyzer.analyze(screenshot, context))

    assert len(primary.calls) == 1
    assert len(fallback.calls) == 1
    assert result.error is True
    assert result.overall_score == 0
    assert len(result.critical_issues) == 1
    assert result.critical_issues[0].title == "Analysis Failed"


def test_analyze_multiple_checks_arity_before_any_work(config, screenshot, context, fake_provider) -> None:
    provider = fake_provider(["OVERALL UX SCORE: 8/10"])
    analyzer = Analyzer(config, provider=provider)

    with pytest.raises(ArityMismatch):
        asyncio.run(analyzer.analyze_multiple([screenshot, screenshot], [context]))

    assert provider.calls == []


def test_analyze_multiple_validates_every_pair_first(config, screenshot, context, fake_provider) -> None:
    provider = fake_provider(["OVERALL UX SCORE: 8/10"])
    analyzer = Analyzer(config, provider=provider)

    with pytest.raises(InvalidInput):
        asyncio.run(analyzer.analyze_multiple([screenshot, ScreenshotData(buffer=b"")], [context, context]))

    assert provider.calls == []


def test_analyze_multiple_keeps_order_and_bounds_concurrency(config, screenshot, fake_provider) -> None:
    provider = fake_provider(["OVERALL UX SCORE: 8/10"], delay=0.01)
    analyzer = Analyzer(config, provider=provider)
    contexts = [AnalysisContext(stage=f"step-{i}", user_intent="continue") for i in range(7)]

    results = asyncio.run(analyzer.analyze_multiple([screenshot] * 7, contexts, concurrency=2))

    assert [result.page for result in results] == [f"step-{i}" for i in range(7)]
    assert provider.max_in_flight <= 2


def test_providers_are_built_from_config_and_fail_fast() -> None:
    analyzer = Analyzer(LensConfig(ai=AIConfig(
        provider="openai",
        api_key="sk-test",
        model="gpt-4o",
        fallback_model="anthropic/claude-3-5-sonnet-20241022",
        fallback_api_key="ak-test",
    )))

    assert analyzer.provider.name == "openai"
    assert analyzer.fallback_provider.name == "anthropic"
    assert analyzer.fallback_provider.model == "claude-3-5-sonnet-20241022"

    with pytest.raises(ConfigurationError):
        Analyzer(LensConfig(ai=AIConfig(provider="anthropic", api_key=None)))


@pytest.mark.parametrize(
    "reply",
    [
        '{"overall_score": 7, "critical_issues": 2, "major_issues": 1}',
        '{"overall_score": 6, "critical_issues": [{"title": 1, "description": "Low contrast"}]}',
        '{"overall_score": 6, "recommendations": [["a", "b"]]}',
    ],
)
def test_malformed_json_reply_still_returns_a_result(config, screenshot, context, fake_provider, reply: str) -> None:
    analyzer = Analyzer(config, provider=fake_provider([reply]))

    result = asyncio.run(analyzer.analyze(screenshot, context))

    assert result.error is False
    assert 0 <= result.overall_score <= 10


def test_analyze_journey_prompts_each_stage_with_its_predecessors(config, screenshot, fake_provider) -> None:
    provider = fake_provider(["OVERALL UX SCORE: 8/10"])
    analyzer = Analyzer(config, provider=provider)
    stages = ["cart", "shipping", "payment"]
    contexts = [AnalysisContext(stage=stage, user_intent="buy the items in my cart") for stage in stages]

    results = asyncio.run(analyzer.analyze_journey("Guest checkout", [screenshot] * 3, contexts))

    assert [result.page for result in results] == stages
    prompts = {call["context"].stage: call["prompt"] for call in provider.calls}
    assert all("Journey: Guest checkout" in prompt for prompt in prompts.values())
    assert "Previous Stages" not in prompts["cart"]
    assert "Previous Stages: cart -> shipping" in prompts["payment"]


def test_analyze_journey_checks_arity(config, screenshot, context, fake_provider) -> None:
    provider = fake_provider(["OVERALL UX SCORE: 8/10"])

    with pytest.raises(ArityMismatch):
        asyncio.run(Analyzer(config, provider=provider).analyze_journey("Signup", [screenshot], [context, context]))

    assert provider.calls == []
