"""
Command-Line Interface

CLI using rich for colored output, progress indicators and formatted
results. `uxlens analyze` runs a single analysis; `uxlens batch` runs many
URLs with retries and writes a JSONL event log.
"""

import asyncio
import json
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .analyzer import Analyzer
from .batch import BatchController
from .capture import ScreenshotCapturer, load_screenshot
from .config import load_config
from .errors import UXLensError
from .models import AnalysisContext, BatchItem, BatchOptions, BusinessContext, UserContext
from .normalizer import normalize_issues
from .reporters import CompositeReporter, ConsoleReporter, JsonlReporter


console = Console()

PROVIDER_CHOICES = click.Choice(["openrouter", "openai", "anthropic", "local"], case_sensitive=False)

SEVERITY_STYLES = {
    "critical": ("bold red", "🔴"),
    "high": ("red", "🟠"),
    "medium": ("yellow", "🟡"),
    "low": ("green", "🟢"),
}


def _setup_logging(debug: bool) -> None:
    level = logging.DEBUG if debug or os.getenv("UXLENS_DEBUG") else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=debug)],
        force=True
    )


def _common_options(func):
    """Options shared by every subcommand"""
    options = [
        click.option(
            "--provider",
            default=None,
            type=PROVIDER_CHOICES,
            help="Vision provider to use. Defaults to UXLENS_PROVIDER from .env"
        ),
        click.option(
            "--output",
            default="rich",
            type=click.Choice(["rich", "json"], case_sensitive=False),
            help="Output format: rich (colored terminal) or json (for scripts and agents)"
        ),
        click.option(
            "--env-file",
            default=None,
            type=click.Path(exists=True, dir_okay=False),
            help="Path to .env file (defaults to ./.env)"
        ),
        click.option(
            "--config",
            "config_file",
            default=None,
            type=click.Path(exists=True, dir_okay=False),
            help="Path to JSON config file (defaults to ./uxlens.config.json)"
        ),
        click.option("--debug", is_flag=True, help="Verbose logging and tracebacks"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(version=__version__)
def main():
    """
    uxlens - Contextual UX Analysis with Vision Models

    Analyze web UI screenshots in the context of a user journey and get
    scores, prioritized issues and actionable recommendations.
    """


@main.command()
@click.option("--screenshot", type=click.Path(exists=True, dir_okay=False), help="Image file to analyze")
@click.option("--url", default=None, help="Page URL to capture and analyze (file:// or http(s)://)")
@click.option("--stage", required=True, help='Journey stage of this screen, e.g. "checkout"')
@click.option("--intent", required=True, help='What the user is trying to do, e.g. "complete purchase"')
@click.option("--persona", default=None, help='Persona preset name (e.g. "mobile-consumer") or free text')
@click.option("--device", default="desktop", show_default=True, help="Device context")
@click.option("--element", "elements", multiple=True, help="Critical element to evaluate (repeatable)")
@click.option("--industry", default=None, help='Business industry, e.g. "ecommerce" or "saas"')
@click.option("--instructions", default=None, help="Extra instructions appended to the prompt")
@click.option(
    "--depth",
    default=None,
    type=click.Choice(["quick", "standard", "comprehensive"], case_sensitive=False),
    help="Analysis depth (defaults to UXLENS_DEPTH or standard)"
)
@_common_options
def analyze(
    screenshot: Optional[str],
    url: Optional[str],
    stage: str,
    intent: str,
    persona: Optional[str],
    device: str,
    elements: tuple,
    industry: Optional[str],
    instructions: Optional[str],
    depth: Optional[str],
    provider: Optional[str],
    output: str,
    env_file: Optional[str],
    config_file: Optional[str],
    debug: bool
):
    """
    Analyze a single screenshot or page.

    Examples:

      # Existing screenshot
      uxlens analyze --screenshot cart.png --stage cart --intent "review order"

      # Capture a page, mobile persona, JSON for agents
      uxlens analyze --url https://shop.example.com/cart --stage cart \\
          --intent "complete purchase" --persona mobile-consumer --device mobile \\
          --element "checkout button" --output json
    """
    _setup_logging(debug)

    if bool(screenshot) == bool(url):
        raise click.UsageError("Pass exactly one of --screenshot or --url")

    try:
        config = _load(env_file, config_file, provider, depth)

        context = AnalysisContext(
            stage=stage,
            user_intent=intent,
            user_context=UserContext(persona=persona, device_context=device),
            critical_elements=list(elements),
            business_context=BusinessContext(industry=industry) if industry else None,
            custom_prompt=instructions,
            page_url=url
        )

        result = asyncio.run(_run_analysis(config, context, screenshot, url))
        issues = normalize_issues(result, url)

        if output == "json":
            _output_json({
                "result": result.model_dump(mode="json"),
                "grade": result.get_grade(),
                "issues": [issue.model_dump(mode="json") for issue in issues],
            })
        else:
            _output_result(result, issues)

        if result.error:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  Interrupted by user[/yellow]")
        sys.exit(130)
    except (UXLensError, ValueError) as e:
        console.print(f"[red]❌ Error: {str(e)}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]❌ Error: {str(e)}[/red]")
        if debug:
            console.print_exception()
        sys.exit(1)


@main.command()
@click.argument("urls", nargs=-1)
@click.option(
    "--urls-file",
    type=click.Path(exists=True, dir_okay=False),
    help="File with one URL per line (blank lines and # comments ignored)"
)
@click.option("--stage", default="page review", show_default=True, help="Journey stage applied to every URL")
@click.option(
    "--intent",
    default="understand the page and complete its primary task",
    show_default=True,
    help="User intent applied to every URL"
)
@click.option("--persona", default=None, help="Persona preset name or free text")
@click.option("--concurrency", default=2, show_default=True, type=click.IntRange(1, 8))
@click.option("--retries", default=2, show_default=True, type=click.IntRange(min=0), help="Retries per URL")
@click.option("--retry-base-ms", default=500, show_default=True, type=click.IntRange(min=0))
@click.option("--no-jitter", is_flag=True, help="Disable random backoff jitter")
@click.option("--timeout-ms", default=None, type=click.IntRange(min=1), help="Time budget for the whole run")
@click.option("--item-timeout-ms", default=None, type=click.IntRange(min=1), help="Time budget per attempt")
@click.option(
    "--report-dir",
    default="uxlens-reports",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory for the events-<run_id>.jsonl log"
)
@_common_options
def batch(
    urls: tuple,
    urls_file: Optional[str],
    stage: str,
    intent: str,
    persona: Optional[str],
    concurrency: int,
    retries: int,
    retry_base_ms: int,
    no_jitter: bool,
    timeout_ms: Optional[int],
    item_timeout_ms: Optional[int],
    report_dir: str,
    provider: Optional[str],
    output: str,
    env_file: Optional[str],
    config_file: Optional[str],
    debug: bool
):
    """
    Capture and analyze many URLs with retries and backoff.

    Examples:

      uxlens batch https://example.com https://example.com/pricing --concurrency 2

      uxlens batch --urls-file urls.txt --retries 3 --timeout-ms 600000 --output json
    """
    _setup_logging(debug)

    targets = list(urls)
    if urls_file:
        targets.extend(_read_urls(Path(urls_file)))
    if not targets:
        raise click.UsageError("Pass at least one URL or --urls-file")

    try:
        config = _load(env_file, config_file, provider, None)
        options = BatchOptions(
            concurrency=concurrency,
            retry_max=retries,
            retry_base_ms=retry_base_ms,
            jitter=not no_jitter,
            timeout_ms=timeout_ms,
            item_timeout_ms=item_timeout_ms
        )
        items = [
            BatchItem(url=target, context=AnalysisContext(
                stage=stage,
                user_intent=intent,
                user_context=UserContext(persona=persona),
                page_url=target
            ))
            for target in targets
        ]

        run = asyncio.run(_run_batch(config, items, options, Path(report_dir), output))

        if output == "json":
            _output_json(run.model_dump(mode="json"))
        else:
            _output_batch(run)

        if run.failed:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  Interrupted by user[/yellow]")
        sys.exit(130)
    except (UXLensError, ValueError) as e:
        console.print(f"[red]❌ Error: {str(e)}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]❌ Error: {str(e)}[/red]")
        if debug:
            console.print_exception()
        sys.exit(1)


def _load(env_file, config_file, provider, depth):
    config = load_config(
        Path(env_file) if env_file else None,
        Path(config_file) if config_file else None,
        provider=provider.lower() if provider else None
    )
    if depth:
        config.analysis.depth = depth.lower()
    return config


def _read_urls(path: Path) -> list[str]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


async def _run_analysis(config, context: AnalysisContext, screenshot: Optional[str], url: Optional[str]):
    """Run a single analysis with progress indicators"""

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True
    ) as progress:

        task = progress.add_task("[cyan]Initializing vision provider...", total=None)
        analyzer = Analyzer(config)

        if url:
            progress.update(task, description=f"[cyan]Capturing {url}...")
            data = await ScreenshotCapturer().capture(url)
        else:
            data = load_screenshot(screenshot)

        progress.update(task, description="[cyan]Analyzing UI with vision model...")
        result = await analyzer.analyze(data, context)

        progress.update(task, description="[green]✓ Analysis complete", completed=True)

    return result


async def _run_batch(config, items: list[BatchItem], options: BatchOptions, report_dir: Path, output: str):
    analyzer = Analyzer(config)
    controller = BatchController(analyzer, ScreenshotCapturer())

    run_id = uuid.uuid4().hex[:12]
    jsonl = JsonlReporter(report_dir, run_id)
    controller.reporter = CompositeReporter(jsonl, ConsoleReporter() if output == "rich" else None)

    run = await controller.run_batch(items, options, run_id=run_id)
    if output == "rich":
        console.print(f"[dim]📄 Events: {jsonl.path}[/dim]")
    return run


def _output_result(result, issues) -> None:
    """Output result in rich formatted terminal output"""

    console.print()
    console.print(Panel.fit(
        f"[bold]UX Analysis[/bold] - {result.page}\n"
        f"Provider: {result.provider} ({result.model}) · {result.analysis_time} ms · "
        f"{result.tokens_used} tokens",
        border_style="red" if result.error else "cyan"
    ))

    console.print("\n[bold]📊 Scores[/bold]")
    scores_table = Table(show_header=True, header_style="bold magenta")
    scores_table.add_column("Dimension", style="cyan")
    scores_table.add_column("Score", justify="right")

    for label, score in (
        ("Usability", result.scores.usability),
        ("Accessibility", result.scores.accessibility),
        ("Visual Design", result.scores.visual_design),
        ("Performance", result.scores.performance),
    ):
        scores_table.add_row(label, f"[{_score_color(score)}]{score:g}/10[/]")
    scores_table.add_row(
        "[bold]Overall[/bold]",
        f"[bold][{_score_color(result.overall_score)}]{result.overall_score:g}/10[/] "
        f"({result.get_grade()})[/bold]"
    )
    console.print(scores_table)

    if result.strengths:
        console.print("\n[bold]✅ Strengths[/bold]")
        for strength in result.strengths:
            console.print(f"  • {strength}")

    if issues:
        console.print(f"\n[bold]🔍 Issues Found ({len(issues)})[/bold]")
        for severity, (style, icon) in SEVERITY_STYLES.items():
            group = [issue for issue in issues if issue.severity == severity]
            if not group:
                continue
            console.print(f"\n[{style}]{severity.title()}:[/{style}]")
            for issue in group:
                where = " ".join(part for part in (issue.selector, issue.wcag) if part)
                console.print(f"  {icon} {escape(f'[{issue.category}]')} {escape(issue.description)}")
                if where:
                    console.print(f"     [dim]{escape(where)}[/dim]")
                console.print(f"     💡 {escape(issue.recommendation)}\n")
    elif result.error:
        for finding in result.critical_issues:
            console.print(f"\n[bold red]{finding.title}:[/bold red] {finding.description}")
    else:
        console.print("\n[bold green]✓ No issues found![/bold green]")

    if result.recommendations:
        console.print("\n[bold]💡 Top Recommendations[/bold]")
        for i, rec in enumerate(result.recommendations[:5], 1):
            console.print(f"  {i}. {rec.description} [dim]({rec.impact} impact, {rec.effort} effort)[/dim]")

    console.print()


def _output_batch(run) -> None:
    table = Table(show_header=True, header_style="bold magenta", title=f"Batch {run.run_id}")
    table.add_column("#", justify="right")
    table.add_column("URL", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Issues", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Status")

    for outcome in run.outcomes:
        if outcome.ok:
            score = f"[{_score_color(outcome.result.overall_score)}]{outcome.result.overall_score:g}/10[/]"
            status = "[green]ok[/green]"
        else:
            score = "-"
            status = f"[red]{outcome.error_kind}[/red]: {escape(outcome.error or '')}"
        table.add_row(
            str(outcome.index),
            outcome.url,
            score,
            str(len(outcome.structured_issues)),
            str(outcome.attempts),
            status
        )

    console.print()
    console.print(table)
    console.print(
        "Severity counts: " + ", ".join(f"{severity}: {count}" for severity, count in run.counts.items())
    )


def _output_json(payload: dict) -> None:
    """Output result as JSON for scripts and coding agents"""
    print(json.dumps(payload, indent=2))


def _score_color(score: float) -> str:
    if score >= 7.5:
        return "green"
    elif score >= 6:
        return "yellow"
    elif score >= 4:
        return "orange3"
    else:
        return "red"


if __name__ == "__main__":
    main()
