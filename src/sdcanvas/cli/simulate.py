"""Simulation CLI command.

Runs the engine over a graph document and prints:
- Run summary panel
- Per-node load table
- Entry-point round trips
- Ranked bottlenecks, query warnings and run warnings
"""

import math
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sdcanvas.cli.loader import err_console, load_graph
from sdcanvas.config import LatencyJitter, SimulationConfig, settings
from sdcanvas.exceptions import StructuralError
from sdcanvas.simulation import SimulationResult, run_simulation

console = Console()


def _format_rps(value: float) -> str:
    if math.isinf(value):
        return "∞"
    return f"{value:,.1f}"


def _status(saturated: bool, utilization: float) -> str:
    if saturated:
        return "[red]saturated[/red]"
    if utilization >= 0.85:
        return "[yellow]hot[/yellow]"
    return "[green]ok[/green]"


def _print_report(result: SimulationResult) -> None:
    config = result.config
    summary = f"""[bold]Total RPS:[/bold] {result.total_rps:,.1f}
[bold]Duration:[/bold] {result.duration_seconds:g}s ({config.tick_count} ticks of {config.tick_seconds:g}s)
[bold]Ramp-up:[/bold] {config.ramp_up_seconds:g}s
[bold]Bottlenecks:[/bold] {len(result.bottlenecks)}
[bold]Warnings:[/bold] {len(result.warnings)}"""
    console.print(Panel(summary, title="Simulation", border_style="cyan"))

    table = Table(title="Nodes")
    table.add_column("Node", style="cyan")
    table.add_column("Type", style="dim")
    table.add_column("RPS", justify="right")
    table.add_column("Capacity", justify="right")
    table.add_column("Util", justify="right")
    table.add_column("Mean ms", justify="right")
    table.add_column("P99 ms", justify="right")
    table.add_column("Inst", justify="right")
    table.add_column("Status")

    for metrics in result.node_metrics.values():
        table.add_row(
            metrics.node_id,
            metrics.node_type,
            _format_rps(metrics.incoming_rps),
            _format_rps(metrics.capacity_rps),
            f"{metrics.utilization:.0%}",
            f"{metrics.mean_latency_ms:.1f}",
            f"{metrics.p99_latency_ms:.1f}",
            str(metrics.instances),
            _status(metrics.saturated, metrics.utilization),
        )
    console.print(table)

    if result.entry_point_metrics:
        entries = Table(title="Entry Points")
        entries.add_column("Entry", style="cyan")
        entries.add_column("RPS", justify="right")
        entries.add_column("Avg RTT ms", justify="right")
        entries.add_column("P99 RTT ms", justify="right")
        entries.add_column("Success", justify="right")
        entries.add_column("Slowest Path")
        for entry in result.entry_point_metrics.values():
            entries.add_row(
                entry.node_id,
                _format_rps(entry.requests_per_second),
                f"{entry.avg_round_trip_ms:.1f}",
                f"{entry.p99_round_trip_ms:.1f}",
                f"{entry.success_rate:.1%}",
                " -> ".join(entry.slowest_path),
            )
        console.print(entries)

    if result.bottlenecks:
        bottlenecks = Table(title="Bottlenecks")
        bottlenecks.add_column("Element", style="cyan")
        bottlenecks.add_column("Type")
        bottlenecks.add_column("Severity")
        bottlenecks.add_column("Score", justify="right")
        bottlenecks.add_column("Detail")
        for b in result.bottlenecks:
            color = "red" if b.severity == "critical" else "yellow"
            bottlenecks.add_row(
                b.element_id,
                b.type.value,
                f"[{color}]{b.severity}[/{color}]",
                f"{b.score:.2f}",
                b.message,
            )
        console.print(bottlenecks)
    else:
        console.print("[green]No bottlenecks detected[/green]")

    for node_id, analyses in result.query_analyses.items():
        for analysis in analyses:
            for warning in analysis.warnings:
                console.print(
                    f"[yellow]{node_id}[/yellow] query {analysis.query_id}: {warning.message}"
                )
                if warning.suggestion:
                    console.print(f"    [dim]{warning.suggestion}[/dim]")

    for node_id, analyses in result.cache_analyses.items():
        for analysis in analyses:
            for suggestion in analysis.suggestions:
                console.print(f"[yellow]{node_id}[/yellow] cache {analysis.key_pattern}: {suggestion}")

    for warning in result.warnings:
        console.print(f"[yellow]Warning[/yellow] ({warning.code.value}): {warning.message}")


def simulate(
    file: Path = typer.Argument(..., help="Graph document (JSON)"),
    rps: float = typer.Option(
        settings.default_rps, "--rps", "-r",
        help="Total requests per second split across entry points",
    ),
    duration: float = typer.Option(
        settings.default_duration_seconds, "--duration", "-d",
        help="Simulated duration in seconds",
    ),
    tick: float = typer.Option(
        settings.default_tick_seconds, "--tick", "-t",
        help="Timeline tick in seconds",
    ),
    ramp_up: float = typer.Option(0.0, "--ramp-up", help="Linear traffic ramp-up in seconds"),
    jitter: float = typer.Option(0.0, "--jitter", help="Latency jitter ratio (0-1)"),
    seed: int = typer.Option(0, "--seed", help="Jitter seed"),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
) -> None:
    """Simulate traffic through a graph and report load, latency and bottlenecks.

    Examples:
        sdcanvas simulate design.json --rps 5000
        sdcanvas simulate design.json --ramp-up 30 --jitter 0.1 --json
    """
    graph = load_graph(file)

    try:
        config = SimulationConfig(
            requests_per_second=rps,
            duration_seconds=duration,
            tick_seconds=tick,
            ramp_up_seconds=ramp_up,
            jitter=LatencyJitter(ratio=jitter, seed=seed),
        )
    except ValidationError as e:
        err_console.print(f"[red]Invalid simulation options:[/red] {e}")
        raise typer.Exit(1)

    try:
        result = run_simulation(graph, config)
    except StructuralError as e:
        err_console.print(f"[red]Invalid graph: {e}[/red]")
        raise typer.Exit(1)

    if as_json:
        typer.echo(result.model_dump_json(indent=2))
        return

    _print_report(result)
