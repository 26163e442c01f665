"""Command-line interface for LoadShaper."""

from __future__ import annotations

import asyncio
import contextlib
import importlib
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from loadshaper import __version__
from loadshaper.analysis import PerformanceAnalyzer
from loadshaper.config import LoadTestConfig, Settings, get_settings
from loadshaper.engine import LoadTestOrchestrator
from loadshaper.exceptions import ConfigurationError
from loadshaper.observability import configure_logging
from loadshaper.protocols import LifecycleEvent, ScenarioLike
from loadshaper.results import AnalysisResult, LoadTestResult
from loadshaper.utils import atomic_write_json

console = Console()
logger = structlog.get_logger(__name__)


def load_scenarios(reference: str) -> List[ScenarioLike]:
    """
    Resolve ``module:attribute`` to a list of scenarios.

    The attribute may be a sequence of scenarios or a zero-argument factory
    returning one.
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"Scenario reference '{reference}' must look like 'package.module:factory'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import scenario module '{module_name}': {e}") from e
    try:
        target = getattr(module, attr)
    except AttributeError:
        raise ConfigurationError(f"Module '{module_name}' has no attribute '{attr}'") from None

    scenarios = target() if callable(target) else target
    try:
        return list(scenarios)
    except TypeError:
        raise ConfigurationError(f"'{reference}' did not produce a list of scenarios") from None


def _load_result(path: str) -> LoadTestResult:
    try:
        return LoadTestResult.model_validate_json(Path(path).read_text(encoding="utf-8"))
    except ValidationError as e:
        raise click.ClickException(f"{path} is not a load test result: {e.error_count()} validation errors")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Settings file path (default: loadshaper.yaml in the working directory)",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: str) -> None:
    """LoadShaper - phased load testing and performance analysis."""
    ctx.ensure_object(dict)
    try:
        settings = Settings.from_yaml(Path(config)) if config else get_settings()
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    configure_logging(settings.monitoring.model_copy(update={"log_level": log_level}))
    ctx.obj["settings"] = settings


@cli.command()
@click.argument("plan", type=click.Path(exists=True, dir_okay=False))
@click.option("--scenarios", "-s", "scenario_ref", required=True, help="Scenario factory as module:attribute")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the result JSON here")
@click.option("--progress/--no-progress", default=True, help="Show a live progress bar")
@click.pass_context
def run(ctx: click.Context, plan: str, scenario_ref: str, output: Optional[str], progress: bool) -> None:
    """Run the load test described by PLAN (YAML)."""
    try:
        config = LoadTestConfig.from_yaml(Path(plan))
        scenarios = load_scenarios(scenario_ref)
        orchestrator = LoadTestOrchestrator(config, scenarios, settings=ctx.obj["settings"])
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    console.print(
        Panel.fit(
            f"[bold blue]{config.name}[/bold blue]\n"
            f"Concurrency: {config.concurrency}\n"
            f"Target rate: {config.target_rate:g} req/s ({config.distribution.value})\n"
            f"Duration: {config.ramp_up_duration:g}s up / {config.total_duration:g}s sustain / "
            f"{config.ramp_down_duration:g}s down",
            title="Starting Load Test",
        )
    )

    result = asyncio.run(_run_orchestrator(orchestrator, progress))
    _print_result(result)

    if output:
        atomic_write_json(Path(output), result)
        console.print(f"[green]Result written to {output}[/green]")

    sys.exit(0 if result.success else 1)


async def _run_orchestrator(orchestrator: LoadTestOrchestrator, show_progress: bool) -> LoadTestResult:
    loop = asyncio.get_running_loop()
    installed: List[int] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, orchestrator.stop)
            installed.append(sig)

    try:
        if not show_progress:
            return await orchestrator.run()

        budget = orchestrator.config.wall_clock_budget
        progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.fields[rps]:>8.1f} req/s"),
            TimeElapsedColumn(),
            console=console,
        )
        with progress:
            task = progress.add_task("Running", total=budget, rps=0.0)

            tick = orchestrator.settings.metrics.tick_interval_seconds

            def on_tick(event: LifecycleEvent, payload: Dict[str, Any]) -> None:
                progress.update(task, advance=tick, rps=payload["snapshot"].throughput)

            handle = orchestrator.subscribe(LifecycleEvent.METRICS_COLLECTED, on_tick)
            try:
                result = await orchestrator.run()
            finally:
                orchestrator.unsubscribe(handle)
            progress.update(task, completed=budget)
        return result
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def _print_result(result: LoadTestResult) -> None:
    m = result.final_metrics
    table = Table(title=f"Load Test: {result.config.name}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Requests", f"{m.total_requests} ({m.failed_requests} failed)")
    table.add_row("Throughput", f"{m.throughput:.2f} req/s")
    table.add_row("Error rate", f"{m.error_rate:.2f}%")
    table.add_row("Avg / p50", f"{m.average_response_time:.1f}ms / {m.median_response_time:.1f}ms")
    table.add_row("p95 / p99", f"{m.p95_response_time:.1f}ms / {m.p99_response_time:.1f}ms")
    table.add_row("CPU avg / peak", f"{m.avg_cpu_pct:.1f}% / {m.peak_cpu_pct:.1f}%")
    table.add_row("Peak memory", f"{m.peak_memory_mb:.1f}MB")
    console.print(table)

    if result.sla_violations:
        console.print(Panel("\n".join(result.sla_violations), title="SLA Violations", border_style="red"))
    else:
        console.print("[green]All SLA requirements met[/green]")
    if result.bottlenecks:
        console.print(Panel("\n".join(result.bottlenecks), title="Bottlenecks", border_style="yellow"))
    if result.stopped_early:
        console.print("[yellow]Run was stopped before all phases completed[/yellow]")


@cli.command()
@click.argument("result_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--baseline", "-b", type=click.Path(exists=True, dir_okay=False), help="Baseline result JSON")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the analysis JSON here")
@click.pass_context
def analyze(ctx: click.Context, result_path: str, baseline: Optional[str], output: Optional[str]) -> None:
    """Analyze a saved result, optionally against a baseline."""
    result = _load_result(result_path)
    baseline_result = _load_result(baseline) if baseline else None

    analysis = PerformanceAnalyzer(ctx.obj["settings"].analyzer).analyze(result, baseline_result)
    _print_analysis(analysis)

    if output:
        atomic_write_json(Path(output), analysis)
        console.print(f"[green]Analysis written to {output}[/green]")


def _print_analysis(analysis: AnalysisResult) -> None:
    border = "green" if analysis.grade in ("A", "B") else "yellow" if analysis.grade == "C" else "red"
    console.print(
        Panel.fit(
            f"Score: [bold]{analysis.overall_score:.0f}[/bold]  Grade: [bold]{analysis.grade}[/bold]\n"
            f"Primary bottleneck: {analysis.primary_bottleneck or 'none detected'}",
            title="Performance Analysis",
            border_style=border,
        )
    )

    if analysis.regressions:
        table = Table(title="Regressions")
        for column in ("Metric", "Baseline", "Current", "Change", "Severity"):
            table.add_column(column)
        for r in analysis.regressions:
            table.add_row(r.metric, f"{r.baseline:.2f}", f"{r.current:.2f}", f"{r.change:+.3f}", r.severity.value)
        console.print(table)

    if analysis.trends:
        table = Table(title="Trends")
        for column in ("Metric", "Direction", "Rate/hour", "Confidence"):
            table.add_column(column)
        for t in analysis.trends:
            table.add_row(t.metric, t.direction.value, f"{t.rate_per_hour:.2f}", f"{t.confidence:.2f}")
        console.print(table)

    if analysis.anomalies:
        console.print(f"[yellow]{len(analysis.anomalies)} anomalies detected[/yellow]")
        for a in analysis.anomalies[:10]:
            console.print(f"  [{a.severity.value}] {a.description}")

    for label, items in (
        ("Key findings", analysis.key_findings),
        ("Recommendations", analysis.recommendations),
        ("Caveats", analysis.caveats),
    ):
        if items:
            console.print(f"[bold]{label}[/bold]")
            for item in items:
                console.print(f"  - {item}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
