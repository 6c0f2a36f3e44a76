# Copyright (c) Syntropy Systems
"""Main CLI entry point for solverbench."""

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from solverbench.cli.doctor import doctor
from solverbench.cli.export import export
from solverbench.cli.init_cmd import init
from solverbench.cli.parse_cmd import parse
from solverbench.cli.plan import plan
from solverbench.cli.run_cmd import run
from solverbench.cli.runs import runs
from solverbench.cli.summarize import summarize

app = typer.Typer(
    name="solverbench",
    help=(
        "Benchmark harness for parallel game-tree solvers. Run the matrix "
        "one job at a time, record every outcome, summarise scaling."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show debug logging (commands, state transitions)",
    ),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# Register commands
_ = app.command()(init)
_ = app.command()(doctor)
_ = app.command()(plan)
_ = app.command()(run)
_ = app.command(name="parse")(parse)
_ = app.command()(summarize)
_ = app.command()(runs)
_ = app.command(name="export")(export)


if __name__ == "__main__":
    app()
