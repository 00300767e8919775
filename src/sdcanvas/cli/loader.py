"""Graph document loading for CLI commands."""

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from sdcanvas.types import SystemGraph

err_console = Console(stderr=True)


def load_graph(path: Path) -> SystemGraph:
    """Read a ``{"nodes": [...], "edges": [...]}`` document.

    Args:
        path: JSON document path

    Returns:
        Validated SystemGraph

    Raises:
        typer.Exit: With code 1 if the file is unreadable or invalid
    """
    try:
        text = path.read_text()
    except OSError as e:
        err_console.print(f"[red]Cannot read {path}: {e}[/red]")
        raise typer.Exit(1)

    try:
        return SystemGraph.model_validate_json(text)
    except ValidationError as e:
        err_console.print(f"[red]Invalid graph document {path}:[/red]")
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            err_console.print(f"  [yellow]{location}[/yellow]: {error['msg']}")
        raise typer.Exit(1)
