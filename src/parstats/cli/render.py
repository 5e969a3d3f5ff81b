"""Render subcommand for the parstats CLI."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated, Optional

import cyclopts
from rich.console import Console

from ..config import AnalysisSettings
from ..rendering import render_script
from .utils import ConfigOption, EnvOption, array_selection, get_settings

render_app = cyclopts.App(
    name="render",
    help="Print SLURM batch scripts without submitting them.",
)

console = Console(stderr=True)

OutputOption = Annotated[
    Optional[str],
    cyclopts.Parameter(
        name=["--output", "-o"],
        help="Write the script to this file instead of stdout.",
    ),
]


def _emit(script: str, output: Optional[str]) -> None:
    if output is None:
        sys.stdout.write(script)
        return
    target = Path(output)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(script, encoding="utf-8")
    console.print(f"Wrote {target}")


def _render(kind: str, settings: AnalysisSettings, output: Optional[str]) -> None:
    _emit(render_script(kind, settings), output)


@render_app.command(name="array")
def render_array(
    missing_only: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--missing-only"],
            help="Only include array elements whose unit has no result row.",
        ),
    ] = False,
    output: OutputOption = None,
    config: ConfigOption = None,
    env: EnvOption = None,
) -> None:
    """Render the job-array script (one element per unit)."""
    settings = get_settings(config, env)
    num_units, indices = array_selection(settings, missing_only)
    if indices == []:
        console.print("[green]Nothing to re-run: every unit has a result.[/green]")
        return
    _emit(render_script("array", settings, num_units=num_units, indices=indices), output)


@render_app.command(name="mpi")
def render_mpi(
    output: OutputOption = None,
    config: ConfigOption = None,
    env: EnvOption = None,
) -> None:
    """Render the MPI pool script."""
    _render("mpi", get_settings(config, env), output)


@render_app.command(name="sequential")
def render_sequential(
    output: OutputOption = None,
    config: ConfigOption = None,
    env: EnvOption = None,
) -> None:
    """Render the single-core loop script."""
    _render("sequential", get_settings(config, env), output)


@render_app.command(name="combine")
def render_combine(
    output: OutputOption = None,
    config: ConfigOption = None,
    env: EnvOption = None,
) -> None:
    """Render the aggregation script."""
    _render("combine", get_settings(config, env), output)
