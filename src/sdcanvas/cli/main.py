"""sdcanvas CLI - load simulation for system design canvases."""

import logging

import typer

from sdcanvas.cli.describe import behaviors, info, validate
from sdcanvas.cli.simulate import simulate
from sdcanvas.config import settings

app = typer.Typer(
    name="sdcanvas",
    help="Load simulation for system design canvases",
    no_args_is_help=True,
)

app.command("simulate")(simulate)
app.command("validate")(validate)
app.command("info")(info)
app.command("behaviors")(behaviors)


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for all commands."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
