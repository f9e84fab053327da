"""
Batch/Concurrency Controller

Runs many analyses under a concurrency cap with per-item and run-level
timeouts, retries with exponential backoff and jitter, and progress events
delivered to an optional reporter.
"""

import asyncio
import inspect
import logging
import random
import time
import uuid
from typing import Any, Awaitable, Callable, Iterable, Optional

from .analyzer import Analyzer
from .errors import AnalysisTimeout, InvalidContext, InvalidInput, ProviderError, RetryExhausted
from .models import (
    SEVERITY_ORDER,
    AnalysisContext,
    AnalysisResult,
    BatchItem,
    BatchItemOutcome,
    BatchOptions,
    BatchRun,
    ScreenshotData,
    _utcnow,
)
from .normalizer import normalize_issues


logger = logging.getLogger(__name__)

ScreenshotSource = Callable[[BatchItem], Awaitable[ScreenshotData]]


def backoff_delay(
    retry_number: int,
    base_ms: int,
    jitter: bool = False,
    rng: Optional[random.Random] = None
) -> float:
    """
    Delay in milliseconds before retry number ``retry_number`` (1-based).

    The delay doubles with each retry, starting at base_ms. With jitter,
    a uniform random amount in [0, delay] is added on top.

    Example:
        backoff_delay(1, 500)  # 500.0
        backoff_delay(2, 500)  # 1000.0
    """
    if retry_number < 1:
        raise ValueError(f"retry_number must be at least 1, got {retry_number}")

    delay = float(base_ms * 2 ** (retry_number - 1))
    if jitter and delay > 0:
        delay += (rng or random).uniform(0, delay)
    return delay


def default_context(item: BatchItem) -> AnalysisContext:
    """Context used for batch items that do not carry their own"""
    return AnalysisContext(
        stage="page review",
        user_intent="understand the page and complete its primary task",
        page_url=item.url
    )


class BatchController:
    """
    Analyzes a list of URLs concurrently.

    Each item is captured through ``screenshot_source``, analyzed and
    normalized into structured issues. Items are independent: a failing
    item is recorded in its outcome and never aborts the run.

    Reporter events are plain dicts passed to the reporter's optional
    ``on_start``, ``on_item`` and ``on_complete`` methods, which may be
    sync or async. A failing reporter is logged and otherwise ignored.

    Example:
        controller = BatchController(analyzer, ScreenshotCapturer(), JsonlReporter("reports", run_id))
        run = await controller.run_batch(
            [BatchItem(url="https://example.com"), BatchItem(url="https://example.com/pricing")],
            BatchOptions(concurrency=2, retry_max=2)
        )
        print(f"{run.succeeded} ok, {run.failed} failed")
    """

    #: Seconds to wait for pending async reporter deliveries at the end of a run
    flush_timeout = 5.0

    def __init__(
        self,
        analyzer: Analyzer,
        screenshot_source: ScreenshotSource,
        reporter: Any = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize batch controller.

        Args:
            analyzer: Analyzer used for every item
            screenshot_source: Async callable producing a screenshot for an item
            reporter: Optional event sink
            sleep: Coroutine used for backoff waits (seconds)
            rng: Random source for backoff jitter
        """
        self.analyzer = analyzer
        self.screenshot_source = screenshot_source
        self.reporter = reporter
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._deliveries: set[asyncio.Task] = set()

    async def run_batch(
        self,
        items: Iterable[BatchItem],
        options: Optional[BatchOptions] = None,
        run_id: Optional[str] = None
    ) -> BatchRun:
        """
        Analyze every item and aggregate the outcomes.

        Args:
            items: Items to analyze
            options: Concurrency, retry and timeout policy
            run_id: Identifier for events and reports (generated if omitted)

        Returns:
            BatchRun with one outcome per item, in input order

        Raises:
            InvalidInput: If no items were given
        """
        items = list(items)
        if not items:
            raise InvalidInput("A batch needs at least one item")

        options = options or BatchOptions()
        run_id = run_id or uuid.uuid4().hex[:12]
        started_at = _utcnow()
        started = time.monotonic()
        deadline = started + options.timeout_ms / 1000 if options.timeout_ms else None

        slots: list[Optional[BatchItemOutcome]] = [None] * len(items)
        counts = {severity: 0 for severity in SEVERITY_ORDER}
        semaphore = asyncio.Semaphore(options.concurrency)

        logger.info(
            "Batch %s: %d item(s), concurrency %d, %d retries",
            run_id, len(items), options.concurrency, options.retry_max
        )
        self._emit("on_start", {
            "type": "start",
            "run_id": run_id,
            "item_count": len(items),
            "config": options.model_dump(),
        })

        async def worker(index: int, item: BatchItem) -> None:
            async with semaphore:
                outcome = await self._run_item(run_id, index, item, options, deadline)
            slots[index] = outcome
            for issue in outcome.structured_issues:
                counts[issue.severity] += 1

        await asyncio.gather(*(worker(i, item) for i, item in enumerate(items)))

        outcomes = [outcome for outcome in slots if outcome is not None]
        succeeded = sum(1 for outcome in outcomes if outcome.ok)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        run = BatchRun(
            run_id=run_id,
            started_at=started_at,
            finished_at=_utcnow(),
            elapsed_ms=elapsed_ms,
            outcomes=outcomes,
            counts=counts,
            succeeded=succeeded,
            failed=len(outcomes) - succeeded
        )

        self._emit("on_complete", {
            "type": "complete",
            "run_id": run_id,
            "counts": dict(counts),
            "succeeded": run.succeeded,
            "failed": run.failed,
            "elapsed_ms": elapsed_ms,
        })
        await self._flush()

        logger.info(
            "Batch %s finished in %d ms: %d succeeded, %d failed",
            run_id, elapsed_ms, run.succeeded, run.failed
        )
        return run

    async def _run_item(
        self,
        run_id: str,
        index: int,
        item: BatchItem,
        options: BatchOptions,
        deadline: Optional[float]
    ) -> BatchItemOutcome:
        started = time.monotonic()
        context = item.context or default_context(item)
        if context.page_url is None:
            context = context.model_copy(update={"page_url": item.url})

        item_timeout_ms = item.timeout_ms or options.item_timeout_ms
        max_attempts = options.retry_max + 1
        attempts = 0
        last_error: Optional[BaseException] = None

        def outcome(**fields: Any) -> BatchItemOutcome:
            return BatchItemOutcome(
                index=index,
                url=item.url,
                attempts=attempts,
                elapsed_ms=int((time.monotonic() - started) * 1000),
                **fields
            )

        while attempts < max_attempts:
            remaining = self._remaining(deadline)
            if remaining is not None and remaining <= 0:
                return outcome(
                    ok=False,
                    error=self._budget_message(last_error),
                    error_kind="timeout"
                )

            attempts += 1
            timeout = self._attempt_timeout(item_timeout_ms, remaining)
            attempt_started = time.monotonic()

            try:
                result = await self._attempt(item, context, timeout)
            except (InvalidInput, InvalidContext) as e:
                self._emit_item(run_id, index, item, attempts, attempt_started, error=e)
                logger.warning("Item %d (%s) is invalid: %s", index, item.url, e)
                return outcome(ok=False, error=str(e), error_kind="invalid")
            except (asyncio.TimeoutError, TimeoutError):
                last_error = AnalysisTimeout(
                    f"Attempt {attempts} timed out after {timeout * 1000:.0f} ms"
                )
            except Exception as e:
                last_error = e
            else:
                if not result.error:
                    issues = normalize_issues(result, item.url)
                    self._emit_item(
                        run_id, index, item, attempts, attempt_started, issue_count=len(issues)
                    )
                    return outcome(ok=True, result=result, structured_issues=issues)

                last_error = ProviderError(
                    result.critical_issues[0].description if result.critical_issues else "Analysis failed",
                    provider=result.provider
                )

            self._emit_item(run_id, index, item, attempts, attempt_started, error=last_error)

            if attempts >= max_attempts:
                break

            delay = backoff_delay(attempts, options.retry_base_ms, options.jitter, self._rng) / 1000
            remaining = self._remaining(deadline)
            if remaining is not None and delay >= remaining:
                if remaining > 0:
                    await self._sleep(remaining)
                return outcome(
                    ok=False,
                    error=self._budget_message(last_error),
                    error_kind="timeout"
                )

            logger.info(
                "Retrying item %d (%s) in %.0f ms after attempt %d/%d failed: %s",
                index, item.url, delay * 1000, attempts, max_attempts, last_error
            )
            await self._sleep(delay)

        exhausted = RetryExhausted(
            f"Failed after {attempts} attempt(s): {last_error}",
            attempts=attempts,
            last_error=last_error
        )
        logger.warning("Item %d (%s): %s", index, item.url, exhausted)
        return outcome(ok=False, error=str(exhausted), error_kind="exhausted")

    async def _attempt(
        self,
        item: BatchItem,
        context: AnalysisContext,
        timeout: Optional[float]
    ) -> AnalysisResult:
        async def capture_and_analyze() -> AnalysisResult:
            screenshot = await self.screenshot_source(item)
            return await self.analyzer.analyze(screenshot, context)

        if timeout is None:
            return await capture_and_analyze()
        return await asyncio.wait_for(capture_and_analyze(), timeout)

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return deadline - time.monotonic()

    @staticmethod
    def _attempt_timeout(item_timeout_ms: Optional[int], remaining: Optional[float]) -> Optional[float]:
        limits = [t for t in (item_timeout_ms and item_timeout_ms / 1000, remaining) if t is not None]
        return min(limits) if limits else None

    @staticmethod
    def _budget_message(last_error: Optional[BaseException]) -> str:
        if last_error is None:
            return "Run time budget exhausted before the item started"
        return f"Run time budget exhausted; last error: {last_error}"

    # ------------------------------------------------------------------
    # Reporter delivery
    # ------------------------------------------------------------------

    def _emit_item(
        self,
        run_id: str,
        index: int,
        item: BatchItem,
        attempt: int,
        attempt_started: float,
        error: Optional[BaseException] = None,
        issue_count: Optional[int] = None
    ) -> None:
        event = {
            "type": "item",
            "run_id": run_id,
            "index": index,
            "url": item.url,
            "attempt": attempt,
            "ok": error is None,
            "elapsed_ms": int((time.monotonic() - attempt_started) * 1000),
        }
        if error is not None:
            event["error"] = str(error) or type(error).__name__
        else:
            event["issue_count"] = issue_count
        self._emit("on_item", event)

    def _emit(self, hook: str, event: dict) -> None:
        handler = getattr(self.reporter, hook, None)
        if handler is None:
            return

        try:
            delivery = handler(event)
        except Exception as e:
            logger.warning("Reporter %s failed: %s", hook, e)
            return

        if inspect.isawaitable(delivery):
            task = asyncio.ensure_future(delivery)
            self._deliveries.add(task)
            task.add_done_callback(self._delivery_done)

    def _delivery_done(self, task: asyncio.Task) -> None:
        self._deliveries.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Reporter delivery failed: %s", error)

    async def _flush(self) -> None:
        if not self._deliveries:
            return

        _, pending = await asyncio.wait(set(self._deliveries), timeout=self.flush_timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Dropped %d reporter event(s) still pending after %.1fs",
                           len(pending), self.flush_timeout)
