"""Shared utilities for the parstats CLI."""

from __future__ import annotations

import logging
from typing import Annotated, List, Optional, Tuple

import cyclopts
import pandas as pd

from ..config import AnalysisSettings, load_settings
from ..data import list_units, load_dataset
from ..logging import configure_logging
from ..results import missing_units, read_rows

ConfigOption = Annotated[
    Optional[str],
    cyclopts.Parameter(
        name=["--config", "-c"],
        help="Path to Analysisfile.",
    ),
]

EnvOption = Annotated[
    Optional[str],
    cyclopts.Parameter(
        name=["--env", "-e"],
        help="Environment name from Analysisfile.",
    ),
]

VerboseOption = Annotated[
    bool,
    cyclopts.Parameter(
        name=["--verbose", "-v"],
        help="Log per-unit details.",
    ),
]


def get_settings(
    config: Optional[str] = None,
    env: Optional[str] = None,
    verbose: bool = False,
) -> AnalysisSettings:
    """Configure logging and load settings from CLI args.

    Args:
        config: Path to Analysisfile (discovered when omitted).
        env: Environment name to load from the Analysisfile.
        verbose: Log at DEBUG level.
    """
    configure_logging(logging.DEBUG if verbose else logging.INFO)
    return load_settings(config, env=env)


def load_frame(settings: AnalysisSettings) -> pd.DataFrame:
    """Load the configured dataset, checking the columns the model needs."""
    return load_dataset(
        settings.data_path,
        delimiter=settings.delimiter,
        required_columns=settings.required_columns(),
    )


def array_selection(
    settings: AnalysisSettings,
    missing_only: bool = False,
) -> Tuple[int, Optional[List[int]]]:
    """Return the unit count and, with ``missing_only``, the indices still to run.

    Indices refer to positions in the sorted unit list, which is exactly how
    ``parstats array-task`` maps ``SLURM_ARRAY_TASK_ID`` back to a unit.
    """
    units = list_units(load_frame(settings), settings.unit_column)
    if not missing_only:
        return len(units), None

    missing = set(missing_units(units, read_rows(settings.rows_path)))
    return len(units), [index for index, unit in enumerate(units) if unit in missing]
