"""Commands that run the analysis in one of the three patterns."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Optional

import cyclopts
from rich.console import Console

from ..data import SAMPLE_KINDS, list_units, sample_dataset
from ..patterns import resolve_array_index, run_array_task, run_parallel, run_sequential
from ..rendering import generate_array_spec
from ..results import combine_rows, missing_units, read_rows, write_results
from .formatters import print_missing, print_results_table, print_units_table
from .utils import ConfigOption, EnvOption, VerboseOption, get_settings, load_frame

logger = logging.getLogger(__name__)

console = Console(stderr=True)


def units(
    config: ConfigOption = None,
    env: EnvOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List the units in the dataset and the array index of each."""
    settings = get_settings(config, env, verbose)
    frame = load_frame(settings)
    print_units_table(list_units(frame, settings.unit_column), settings.unit_column)


def sequential(
    config: ConfigOption = None,
    env: EnvOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Fit every unit in a plain loop and write the results table."""
    settings = get_settings(config, env, verbose)
    frame = load_frame(settings)
    results = run_sequential(frame, settings.unit_column, settings.model)
    write_results(settings.results_path, results)
    print_results_table(results, settings.model)


def array_task(
    index: Annotated[
        Optional[int],
        cyclopts.Parameter(
            help="0-based unit index. Defaults to $SLURM_ARRAY_TASK_ID.",
        ),
    ] = None,
    config: ConfigOption = None,
    env: EnvOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Fit the unit selected by INDEX and append its row to the rows file."""
    settings = get_settings(config, env, verbose)
    resolved = resolve_array_index(index)
    frame = load_frame(settings)
    run_array_task(
        frame, settings.unit_column, settings.model, resolved, settings.rows_path
    )


def parallel(
    max_workers: Annotated[
        Optional[int],
        cyclopts.Parameter(
            name=["--max-workers", "-n"],
            help="Workers to spawn when not launched under mpi4py.futures.",
        ),
    ] = None,
    config: ConfigOption = None,
    env: EnvOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Fit every unit on an MPI worker pool and write the results table."""
    settings = get_settings(config, env, verbose)
    frame = load_frame(settings)
    results = run_parallel(
        frame, settings.unit_column, settings.model, max_workers=max_workers
    )
    write_results(settings.results_path, results)
    print_results_table(results, settings.model)


def combine(
    config: ConfigOption = None,
    env: EnvOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Aggregate the job array's rows into the final results table."""
    settings = get_settings(config, env, verbose)
    rows = read_rows(settings.rows_path)
    combined = combine_rows(rows)
    logger.info(
        "Read %d rows (%d units) from %s", len(rows), len(combined), settings.rows_path
    )

    expected = list_units(load_frame(settings), settings.unit_column)
    missing = missing_units(expected, combined)
    if missing:
        logger.warning(
            "%d of %d units have no result yet: %s",
            len(missing),
            len(expected),
            ", ".join(str(unit) for unit in missing),
        )

    write_results(settings.results_path, combined)
    print_results_table(combined, settings.model)


def missing(
    config: ConfigOption = None,
    env: EnvOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List units without a result row and the --array spec to re-run them."""
    settings = get_settings(config, env, verbose)
    expected = list_units(load_frame(settings), settings.unit_column)
    absent = missing_units(expected, read_rows(settings.rows_path))

    array_spec = ""
    if absent:
        positions = {unit: index for index, unit in enumerate(expected)}
        array_spec = generate_array_spec(
            max_concurrent=settings.slurm.max_concurrent,
            indices=[positions[unit] for unit in absent],
        )
    print_missing(absent, expected, array_spec)


def sample_data(
    kind: Annotated[
        str,
        cyclopts.Parameter(help=f"Schema to generate: {', '.join(SAMPLE_KINDS)}."),
    ],
    path: Annotated[
        str,
        cyclopts.Parameter(help="Where to write the CSV file."),
    ],
    first_year: Annotated[
        int, cyclopts.Parameter(name=["--first-year"], help="First year.")
    ] = 2000,
    last_year: Annotated[
        int, cyclopts.Parameter(name=["--last-year"], help="Last year (inclusive).")
    ] = 2009,
    rows_per_year: Annotated[
        int, cyclopts.Parameter(name=["--rows-per-year"], help="Rows per year.")
    ] = 200,
    seed: Annotated[int, cyclopts.Parameter(name=["--seed"], help="Random seed.")] = 0,
) -> None:
    """Write a synthetic dataset to practise the patterns on."""
    if last_year < first_year:
        raise ValueError("--last-year must not be before --first-year")
    frame = sample_dataset(
        kind,
        years=range(first_year, last_year + 1),
        rows_per_year=rows_per_year,
        seed=seed,
    )
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(target, index=False)
    console.print(
        f"Wrote {len(frame)} rows ({last_year - first_year + 1} years) to {target}"
    )
