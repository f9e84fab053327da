"""Tests for the batch controller: concurrency, retries, timeouts and events."""

from __future__ import annotations

import asyncio
import random

import pytest
from pydantic import ValidationError

from uxlens.analyzer import Analyzer
from uxlens.batch import BatchController, backoff_delay
from uxlens.errors import InvalidInput, ProviderError
from uxlens.models import BatchItem, BatchItemOutcome, BatchOptions, ScreenshotData


class _FakeSource:
    def __init__(self, png: bytes, buffer: bytes | None = None, failures: int = 0) -> None:
        self.png = png
        self.buffer = buffer
        self.failures = failures
        self.calls: list[str] = []

    async def __call__(self, item: BatchItem) -> ScreenshotData:
        self.calls.append(item.url)
        if len(self.calls) <= self.failures:
            raise RuntimeError("Screenshot capture failed: net::ERR_CONNECTION_RESET")
        return ScreenshotData(buffer=self.png if self.buffer is None else self.buffer, path=item.url)


class _FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class _RecordingReporter:
    def __init__(self) -> None:
        self.events: list[dict] = []

    def on_start(self, event: dict) -> None:
        self.events.append(event)

    def on_item(self, event: dict) -> None:
        self.events.append(event)

    def on_complete(self, event: dict) -> None:
        self.events.append(event)


class _AsyncReporter(_RecordingReporter):
    async def on_item(self, event: dict) -> None:
        await asyncio.sleep(0)
        self.events.append(event)


class _BrokenReporter:
    def on_start(self, event: dict) -> None:
        raise OSError("disk full")

    async def on_item(self, event: dict) -> None:
        raise OSError("disk full")


def _items(count: int) -> list[BatchItem]:
    return [BatchItem(url=f"https://example.com/page-{i}") for i in range(count)]


def _controller(config, provider, source, reporter=None, sleep=None) -> BatchController:
    return BatchController(
        Analyzer(config, provider=provider),
        source,
        reporter,
        sleep=sleep or _FakeSleep(),
        rng=random.Random(7),
    )


def test_backoff_doubles_without_jitter() -> None:
    assert [backoff_delay(k, 500) for k in (1, 2, 3)] == [500.0, 1000.0, 2000.0]


def test_backoff_jitter_stays_within_bounds() -> None:
    rng = random.Random(3)
    for k in (1, 2, 3):
        base = 500 * 2 ** (k - 1)
        assert base <= backoff_delay(k, 500, jitter=True, rng=rng) <= 2 * base


def test_backoff_rejects_retry_zero() -> None:
    with pytest.raises(ValueError):
        backoff_delay(0, 500)


def test_concurrency_cap_and_input_order(config, png_bytes, fake_provider, sample_response) -> None:
    provider = fake_provider([sample_response], delay=0.01)
    controller = _controller(config, provider, _FakeSource(png_bytes))

    run = asyncio.run(controller.run_batch(_items(10), BatchOptions(concurrency=3)))

    assert provider.max_in_flight <= 3
    assert len(run.outcomes) == 10
    assert [outcome.index for outcome in run.outcomes] == list(range(10))
    assert [outcome.url for outcome in run.outcomes] == [f"https://example.com/page-{i}" for i in range(10)]
    assert run.succeeded == 10
    assert run.failed == 0


def test_outcomes_follow_input_order_when_items_finish_out_of_order(config, png_bytes, fake_provider) -> None:
    finished: list[str] = []

    async def slow_first(item: BatchItem) -> ScreenshotData:
        index = int(item.url.rsplit("-", 1)[1])
        await asyncio.sleep(0.01 * (6 - index))
        finished.append(item.url)
        return ScreenshotData(buffer=png_bytes, path=item.url)

    controller = _controller(config, fake_provider(["OVERALL UX SCORE: 8/10"]), slow_first)
    items = _items(6)

    run = asyncio.run(controller.run_batch(items, BatchOptions(concurrency=6)))

    assert finished == [item.url for item in reversed(items)]
    assert [outcome.index for outcome in run.outcomes] == list(range(6))
    assert [outcome.result.page for outcome in run.outcomes] == [item.url for item in items]


def test_severity_counts_aggregate_issues(config, png_bytes, fake_provider, sample_response) -> None:
    controller = _controller(config, fake_provider([sample_response]), _FakeSource(png_bytes))

    run = asyncio.run(controller.run_batch(_items(2)))

    assert run.counts == {"low": 2, "medium": 2, "high": 2, "critical": 2}
    assert all(len(outcome.structured_issues) == 4 for outcome in run.outcomes)
    assert run.outcomes[0].structured_issues[0].page_url == "https://example.com/page-0"


def test_retries_use_exponential_backoff(config, png_bytes, fake_provider) -> None:
    provider = fake_provider([
        ProviderError("HTTP 502", status=502),
        ProviderError("HTTP 502", status=502),
        "OVERALL UX SCORE: 8/10",
    ])
    sleep = _FakeSleep()
    controller = _controller(config, provider, _FakeSource(png_bytes), sleep=sleep)

    run = asyncio.run(controller.run_batch(
        _items(1), BatchOptions(retry_max=2, retry_base_ms=500, jitter=False)
    ))

    outcome = run.outcomes[0]
    assert outcome.ok is True
    assert outcome.attempts == 3
    assert sleep.delays == [0.5, 1.0]


def test_capture_failures_are_retried(config, png_bytes, fake_provider) -> None:
    source = _FakeSource(png_bytes, failures=1)
    controller = _controller(config, fake_provider(["OVERALL UX SCORE: 8/10"]), source)

    run = asyncio.run(controller.run_batch(_items(1), BatchOptions(retry_max=1, jitter=False)))

    assert run.outcomes[0].ok is True
    assert run.outcomes[0].attempts == 2
    assert len(source.calls) == 2


def test_exhausted_retries_are_recorded_not_raised(config, png_bytes, fake_provider) -> None:
    provider = fake_provider([ProviderError("HTTP 500", status=500)])
    controller = _controller(config, provider, _FakeSource(png_bytes))

    run = asyncio.run(controller.run_batch(_items(2), BatchOptions(retry_max=1, jitter=False)))

    assert run.failed == 2
    for outcome in run.outcomes:
        assert outcome.ok is False
        assert outcome.attempts == 2
        assert outcome.error_kind == "exhausted"
        assert "HTTP 500" in outcome.error


def test_invalid_input_is_terminal(config, png_bytes, fake_provider) -> None:
    provider = fake_provider(["OVERALL UX SCORE: 8/10"])
    sleep = _FakeSleep()
    controller = _controller(config, provider, _FakeSource(png_bytes, buffer=b""), sleep=sleep)

    run = asyncio.run(controller.run_batch(_items(1), BatchOptions(retry_max=3)))

    outcome = run.outcomes[0]
    assert outcome.ok is False
    assert outcome.error_kind == "invalid"
    assert outcome.attempts == 1
    assert provider.calls == []
    assert sleep.delays == []


def test_item_timeout_counts_as_failed_attempt(config, png_bytes, fake_provider) -> None:
    provider = fake_provider(["OVERALL UX SCORE: 8/10"], delay=1.0)
    controller = _controller(config, provider, _FakeSource(png_bytes))

    run = asyncio.run(controller.run_batch(
        [BatchItem(url="https://example.com/slow", timeout_ms=20)],
        BatchOptions(retry_max=1, jitter=False, retry_base_ms=0),
    ))

    outcome = run.outcomes[0]
    assert outcome.ok is False
    assert outcome.attempts == 2
    assert outcome.error_kind == "exhausted"
    assert "timed out" in outcome.error


def test_run_budget_stops_pending_items(config, png_bytes, fake_provider) -> None:
    provider = fake_provider(["OVERALL UX SCORE: 8/10"], delay=0.3)
    controller = _controller(config, provider, _FakeSource(png_bytes))

    run = asyncio.run(controller.run_batch(
        _items(3), BatchOptions(concurrency=1, retry_max=0, timeout_ms=50)
    ))

    assert run.failed == 3
    assert run.outcomes[0].attempts == 1
    for outcome in run.outcomes[1:]:
        assert outcome.error_kind == "timeout"
        assert outcome.attempts == 0
    assert len(provider.calls) == 1


def test_events_are_emitted_in_order(config, png_bytes, fake_provider) -> None:
    provider = fake_provider([ProviderError("HTTP 500"), "OVERALL UX SCORE: 8/10"])
    reporter = _RecordingReporter()
    controller = _controller(config, provider, _FakeSource(png_bytes), reporter)

    run = asyncio.run(controller.run_batch(_items(1), BatchOptions(retry_max=1, jitter=False), run_id="run-1"))

    types = [event["type"] for event in reporter.events]
    assert types == ["start", "item", "item", "complete"]

    start, failed, succeeded, complete = reporter.events
    assert start["run_id"] == "run-1"
    assert start["item_count"] == 1
    assert start["config"]["retry_max"] == 1
    assert failed["ok"] is False and failed["attempt"] == 1 and "HTTP 500" in failed["error"]
    assert succeeded["ok"] is True and succeeded["attempt"] == 2 and succeeded["issue_count"] == 0
    assert complete["succeeded"] == run.succeeded == 1
    assert complete["failed"] == 0
    assert complete["counts"] == run.counts


def test_async_reporter_deliveries_are_flushed(config, png_bytes, fake_provider) -> None:
    reporter = _AsyncReporter()
    controller = _controller(config, fake_provider(["OVERALL UX SCORE: 8/10"]), _FakeSource(png_bytes), reporter)

    asyncio.run(controller.run_batch(_items(3)))

    assert sum(1 for event in reporter.events if event["type"] == "item") == 3


def test_broken_reporter_never_fails_the_run(config, png_bytes, fake_provider) -> None:
    controller = _controller(
        config, fake_provider(["OVERALL UX SCORE: 8/10"]), _FakeSource(png_bytes), _BrokenReporter()
    )

    run = asyncio.run(controller.run_batch(_items(2)))

    assert run.succeeded == 2


def test_zero_items_is_rejected(config, png_bytes, fake_provider) -> None:
    controller = _controller(config, fake_provider(["x"]), _FakeSource(png_bytes))

    with pytest.raises(InvalidInput):
        asyncio.run(controller.run_batch([]))


def test_concurrency_out_of_range_is_rejected() -> None:
    with pytest.raises(ValueError):
        BatchOptions(concurrency=0)
    with pytest.raises(ValueError):
        BatchOptions(concurrency=9)


def test_outcome_error_kinds_are_the_ones_the_controller_records() -> None:
    for kind in ("timeout", "invalid", "exhausted"):
        assert BatchItemOutcome(index=0, url="https://example.com", ok=False, error_kind=kind).error_kind == kind

    with pytest.raises(ValidationError):
        BatchItemOutcome(index=0, url="https://example.com", ok=False, error_kind="provider")
