"""Submit subcommand for the parstats CLI."""

from __future__ import annotations

from typing import Annotated

import cyclopts
from rich.console import Console

from ..config import AnalysisSettings
from ..rendering import render_script
from ..submit import afterany_dependency, submit_script
from .utils import ConfigOption, EnvOption, array_selection, get_settings

submit_app = cyclopts.App(
    name="submit",
    help="Render SLURM batch scripts and hand them to sbatch.",
)

console = Console(stderr=True)


def _prepare(settings: AnalysisSettings) -> None:
    # sbatch does not create the directories of --output/--error
    settings.slurm.logs_dir.mkdir(parents=True, exist_ok=True)
    settings.rows_path.parent.mkdir(parents=True, exist_ok=True)


@submit_app.command(name="array")
def submit_array(
    missing_only: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--missing-only"],
            help="Only re-submit elements whose unit has no result row.",
        ),
    ] = False,
    combine: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--combine"],
            help="Queue the aggregation job after the array (--no-combine to skip).",
        ),
    ] = True,
    config: ConfigOption = None,
    env: EnvOption = None,
) -> None:
    """Submit the job array, then the aggregation job depending on it."""
    settings = get_settings(config, env)
    num_units, indices = array_selection(settings, missing_only)
    if indices == []:
        console.print("[green]Nothing to re-run: every unit has a result.[/green]")
        return

    _prepare(settings)
    script = render_script("array", settings, num_units=num_units, indices=indices)
    array_job_id = submit_script(script)
    count = len(indices) if indices is not None else num_units
    console.print(f"Submitted array job [cyan]{array_job_id}[/cyan] ({count} elements)")

    if combine:
        combine_job_id = submit_script(
            render_script("combine", settings),
            dependency=afterany_dependency(array_job_id),
        )
        console.print(
            f"Submitted combine job [cyan]{combine_job_id}[/cyan] "
            f"(after array {array_job_id})"
        )


@submit_app.command(name="mpi")
def submit_mpi(
    config: ConfigOption = None,
    env: EnvOption = None,
) -> None:
    """Submit the MPI pool job."""
    settings = get_settings(config, env)
    _prepare(settings)
    job_id = submit_script(render_script("mpi", settings))
    console.print(
        f"Submitted MPI job [cyan]{job_id}[/cyan] "
        f"({settings.slurm.ntasks} processes on {settings.slurm.nodes} node(s))"
    )


@submit_app.command(name="sequential")
def submit_sequential(
    config: ConfigOption = None,
    env: EnvOption = None,
) -> None:
    """Submit the single-core loop job."""
    settings = get_settings(config, env)
    _prepare(settings)
    job_id = submit_script(render_script("sequential", settings))
    console.print(f"Submitted sequential job [cyan]{job_id}[/cyan]")
