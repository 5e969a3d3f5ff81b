"""Root application for the parstats CLI."""

from __future__ import annotations

import sys

import cyclopts
from rich.console import Console

from . import run
from .render import render_app
from .submit import submit_app

console = Console(stderr=True)


def _get_version() -> str:
    """Get package version for --version flag."""
    try:
        from importlib.metadata import version

        return version("parstats")
    except Exception:
        return "unknown"


app = cyclopts.App(
    name="parstats",
    help="Per-unit regressions run sequentially, as a SLURM job array, or on an MPI pool.",
    version=_get_version(),
)

app.command(run.units, name="units")
app.command(run.sequential, name="sequential")
app.command(run.array_task, name="array-task")
app.command(run.parallel, name="parallel")
app.command(run.combine, name="combine")
app.command(run.missing, name="missing")
app.command(run.sample_data, name="sample-data")
app.command(render_app)
app.command(submit_app)


def _handle_error(e: Exception) -> None:
    """Handle exceptions with user-friendly messages."""
    from ..errors import (
        AnalysisfileEnvironmentNotFoundError,
        AnalysisfileError,
        AnalysisfileInvalidError,
        AnalysisfileNotFoundError,
        ArrayIndexError,
        DatasetError,
        ModelFitError,
        ResultsError,
        SchedulerCommandError,
        SchedulerTimeout,
        SubmissionError,
    )

    if isinstance(e, AnalysisfileNotFoundError):
        console.print(f"[red]Error:[/red] {e}")
        console.print(
            "\n[dim]Hint: Create an Analysisfile in your project directory, "
            "or use --config to specify a path.[/dim]"
        )
    elif isinstance(e, AnalysisfileEnvironmentNotFoundError):
        console.print(f"[red]Error:[/red] {e}")
        console.print(
            "\n[dim]Hint: Environments are the top-level tables of the Analysisfile.[/dim]"
        )
    elif isinstance(e, AnalysisfileInvalidError):
        console.print(f"[red]Error:[/red] {e}")
        console.print("\n[dim]Hint: Check your Analysisfile for TOML syntax errors.[/dim]")
    elif isinstance(e, AnalysisfileError):
        console.print(f"[red]Analysisfile Error:[/red] {e}")
    elif isinstance(e, DatasetError):
        console.print(f"[red]Data Error:[/red] {e}")
    elif isinstance(e, ModelFitError):
        console.print(f"[red]Model Error:[/red] {e}")
    elif isinstance(e, ArrayIndexError):
        console.print(f"[red]Array Index Error:[/red] {e}")
        console.print("\n[dim]Hint: 'parstats units' lists the valid indices.[/dim]")
    elif isinstance(e, ResultsError):
        console.print(f"[red]Results Error:[/red] {e}")
    elif isinstance(e, SubmissionError):
        console.print("[red]Submission Error:[/red]")
        console.print(e)
    elif isinstance(e, SchedulerTimeout):
        console.print(f"[red]Scheduler Timeout:[/red] {e}")
        console.print("\n[dim]Hint: The controller may be busy; try again shortly.[/dim]")
    elif isinstance(e, SchedulerCommandError):
        console.print(f"[red]Command Error:[/red] {e}")
    else:
        console.print(f"[red]Error:[/red] {e}")

    sys.exit(1)


def main() -> None:
    """Entry point for the parstats CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:
        _handle_error(e)
