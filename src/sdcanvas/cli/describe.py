"""Graph inspection CLI commands.

- validate: Report every structural problem in a graph document
- info: Summarize a graph's nodes, edges and entry points
- behaviors: Show the per-kind behavior table
"""

import json
import math
from collections import Counter
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from sdcanvas.cli.loader import load_graph
from sdcanvas.simulation.behaviors import (
    NODE_BEHAVIOR_MODELS,
    TRANSPORT_LATENCY_MS,
    capacity_per_instance,
    get_node_behavior,
)
from sdcanvas.simulation.graph import find_structural_errors
from sdcanvas.types import NodeKind

console = Console()


def _capacity(value: float) -> float | None:
    """Capacity for display; unbounded kinds have none."""
    return None if math.isinf(value) else value


def validate(
    file: Path = typer.Argument(..., help="Graph document (JSON)"),
) -> None:
    """Check a graph document for structural problems."""
    graph = load_graph(file)
    errors = find_structural_errors(graph)

    if errors:
        console.print(f"[red]{len(errors)} structural problem(s) in {file}[/red]")
        for error in errors:
            console.print(f"  [red]✗[/red] {error}")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] {file} is valid "
        f"({len(graph.nodes)} nodes, {len(graph.edges)} edges)"
    )


def info(
    file: Path = typer.Argument(..., help="Graph document (JSON)"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
) -> None:
    """Summarize a graph document."""
    graph = load_graph(file)

    kinds = Counter(node.type for node in graph.nodes)
    entry_points = [node.id for node in graph.nodes if node.kind == NodeKind.USER]
    nodes = []
    for node in graph.nodes:
        behavior = get_node_behavior(node.type)
        scaling = node.data.scaling or behavior.scaling
        nodes.append({
            "id": node.id,
            "type": node.type,
            "label": node.data.label,
            "capacity_per_instance": _capacity(
                capacity_per_instance(behavior, node.data.resources)
            ),
            "scaling": scaling.type,
        })

    if as_json:
        typer.echo(json.dumps({
            "nodes": len(graph.nodes),
            "edges": len(graph.edges),
            "kinds": dict(kinds),
            "entry_points": entry_points,
            "node_details": nodes,
        }, indent=2))
        return

    console.print(f"[bold]Graph:[/bold] {file}")
    console.print(f"[bold]Nodes:[/bold] {len(graph.nodes)}  [bold]Edges:[/bold] {len(graph.edges)}")
    console.print(f"[bold]Entry points:[/bold] {', '.join(entry_points) or '-'}")
    console.print()

    table = Table(title="Nodes")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Label")
    table.add_column("Capacity/inst", justify="right")
    table.add_column("Scaling", style="dim")
    for entry in nodes:
        capacity = entry["capacity_per_instance"]
        table.add_row(
            entry["id"],
            entry["type"],
            entry["label"] or "-",
            "∞" if capacity is None else f"{capacity:,.0f}",
            entry["scaling"],
        )
    console.print(table)


def behaviors(
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
) -> None:
    """Show the behavior model used for each node kind."""
    if as_json:
        typer.echo(json.dumps({
            kind.value: {
                "base_ms": model.latency.base_ms,
                "variance_ms": model.latency.variance_ms,
                "p99_multiplier": model.latency.p99_multiplier,
                "max_rps_per_instance": _capacity(model.max_rps_per_instance),
                "cpu_per_request": model.resources.cpu_per_request,
                "memory_per_request_mb": model.resources.memory_per_request_mb,
                "memory_per_instance_mb": model.memory_per_instance_mb,
                "participates": model.participates,
            }
            for kind, model in NODE_BEHAVIOR_MODELS.items()
        }, indent=2))
        return

    table = Table(title="Node Behavior Models")
    table.add_column("Kind", style="cyan")
    table.add_column("Base ms", justify="right")
    table.add_column("± ms", justify="right")
    table.add_column("P99 x", justify="right")
    table.add_column("RPS/instance", justify="right")
    table.add_column("CPU/req", justify="right")
    table.add_column("Mem/req MB", justify="right")
    table.add_column("Mem/instance MB", justify="right")
    table.add_column("Simulated")

    for kind, model in NODE_BEHAVIOR_MODELS.items():
        table.add_row(
            kind.value,
            f"{model.latency.base_ms:g}",
            f"{model.latency.variance_ms:g}",
            f"{model.latency.p99_multiplier:g}",
            "∞" if math.isinf(model.max_rps_per_instance) else f"{model.max_rps_per_instance:,.0f}",
            f"{model.resources.cpu_per_request:g}",
            f"{model.resources.memory_per_request_mb:g}",
            f"{model.memory_per_instance_mb:g}",
            "yes" if model.participates else "[dim]no[/dim]",
        )
    console.print(table)

    transport = Table(title="Transport Latency")
    transport.add_column("Connection", style="cyan")
    transport.add_column("ms", justify="right")
    for connection_type, latency in TRANSPORT_LATENCY_MS.items():
        transport.add_row(connection_type, f"{latency:g}")
    console.print(transport)
