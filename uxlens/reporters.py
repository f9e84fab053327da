"""
Batch Event Reporters

Sinks for the start/item/complete events emitted by BatchController.
"""

import asyncio
import inspect
import json
import logging
import time
from pathlib import Path
from typing import Awaitable, Optional, Union

from rich.console import Console
from rich.markup import escape


logger = logging.getLogger(__name__)


class JsonlReporter:
    """
    Appends one JSON line per batch event to ``<report_dir>/events-<run_id>.jsonl``.

    Every line carries the event fields plus ``ts`` (epoch milliseconds).
    The hooks are coroutines: file writes run in a worker thread so the
    event loop keeps analyzing while lines are written. Writes are
    serialized, so lines appear in the order the events were emitted.

    Example:
        reporter = JsonlReporter("reports", run_id)
        run = await BatchController(analyzer, source, reporter).run_batch(items, run_id=run_id)
        print(reporter.path)
    """

    def __init__(self, report_dir: Union[str, Path], run_id: str):
        self.report_dir = Path(report_dir)
        self.run_id = run_id
        self.report_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.report_dir / f"events-{run_id}.jsonl"
        self._lock: Optional[asyncio.Lock] = None

    async def on_start(self, event: dict) -> None:
        await self._append(event)

    async def on_item(self, event: dict) -> None:
        await self._append(event)

    async def on_complete(self, event: dict) -> None:
        await self._append(event)

    async def _append(self, event: dict) -> None:
        line = json.dumps({**event, "ts": int(time.time() * 1000)}, default=str)
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            await asyncio.to_thread(self._write, line)

    def _write(self, line: str) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")


class ConsoleReporter:
    """Prints batch progress to the terminal"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)

    def on_start(self, event: dict) -> None:
        self.console.print(
            f"[bold blue]Batch {event['run_id']}[/bold blue]: "
            f"{event['item_count']} item(s)"
        )

    def on_item(self, event: dict) -> None:
        prefix = f"  [{event['index']}] attempt {event['attempt']}"
        if event["ok"]:
            self.console.print(
                f"{prefix} [green]✓[/green] {escape(event['url'])} "
                f"({event['issue_count']} issue(s), {event['elapsed_ms']} ms)"
            )
        else:
            self.console.print(
                f"{prefix} [red]✗[/red] {escape(event['url'])}: {escape(event.get('error', 'failed'))}"
            )

    def on_complete(self, event: dict) -> None:
        counts = event.get("counts", {})
        breakdown = ", ".join(f"{severity}: {count}" for severity, count in counts.items())
        self.console.print(
            f"[bold]Done[/bold] in {event['elapsed_ms']} ms: "
            f"[green]{event['succeeded']} succeeded[/green], "
            f"[red]{event['failed']} failed[/red] ({breakdown})"
        )


class CompositeReporter:
    """
    Fans each event out to several reporters.

    Wrapped reporters may be synchronous or return awaitables. When any of
    them is asynchronous, the hook returns one awaitable covering all of
    them, which BatchController schedules like any other async delivery.
    A failing reporter is logged and does not stop delivery to the others.
    """

    def __init__(self, *reporters):
        self.reporters = [r for r in reporters if r is not None]

    def on_start(self, event: dict) -> Optional[Awaitable[None]]:
        return self._dispatch("on_start", event)

    def on_item(self, event: dict) -> Optional[Awaitable[None]]:
        return self._dispatch("on_item", event)

    def on_complete(self, event: dict) -> Optional[Awaitable[None]]:
        return self._dispatch("on_complete", event)

    def _dispatch(self, hook: str, event: dict) -> Optional[Awaitable[None]]:
        pending = []
        for reporter in self.reporters:
            handler = getattr(reporter, hook, None)
            if handler is None:
                continue
            name = f"{type(reporter).__name__}.{hook}"
            try:
                delivery = handler(event)
            except Exception as e:
                logger.warning("%s failed: %s", name, e)
                continue
            if inspect.isawaitable(delivery):
                pending.append((name, delivery))

        if not pending:
            return None
        return self._await_all(pending)

    @staticmethod
    async def _await_all(pending: list) -> None:
        for name, delivery in pending:
            try:
                await delivery
            except Exception as e:
                logger.warning("%s failed: %s", name, e)
