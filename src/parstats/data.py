"""Loading the input table and splitting it into units of work."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Iterable, List, Sequence, Union

import numpy as np
import pandas as pd

from .errors import DatasetError

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike[str]]

# True coefficients used by ``sample_dataset`` so fitted values can be checked.
DISTANCE_EFFECT = 0.01
EDUCATION_EFFECT = 0.08

SAMPLE_KINDS = ("flights", "wages")


def load_dataset(
    path: PathLike,
    delimiter: str = ",",
    required_columns: Iterable[str] = (),
) -> pd.DataFrame:
    """Read a delimited text table with a header row.

    Args:
        path: Location of the table.
        delimiter: Field separator (``","`` for CSV, ``"\\t"`` for TSV).
        required_columns: Columns that must be present, typically the unit
            column plus every variable the model formula refers to.

    Raises:
        DatasetError: If the file is missing, empty, or lacks a required column.
    """
    resolved = Path(path).expanduser()
    logger.debug("Loading dataset from %s (delimiter=%r)", resolved, delimiter)

    try:
        frame = pd.read_csv(resolved, sep=delimiter)
    except FileNotFoundError as exc:
        raise DatasetError(f"Data file '{resolved}' does not exist.") from exc
    except pd.errors.EmptyDataError as exc:
        raise DatasetError(f"Data file '{resolved}' is empty.") from exc
    except pd.errors.ParserError as exc:
        raise DatasetError(f"Could not parse '{resolved}': {exc}") from exc

    missing = [name for name in required_columns if name not in frame.columns]
    if missing:
        hint = ""
        if len(frame.columns) == 1:
            hint = f" Only one column was found; is the delimiter {delimiter!r} right?"
        raise DatasetError(
            f"Data file '{resolved}' is missing column(s) {', '.join(missing)}.{hint}"
        )

    logger.debug("Loaded %d rows x %d columns", len(frame), len(frame.columns))
    return frame


def list_units(frame: pd.DataFrame, unit_column: str) -> List[Any]:
    """Return the sorted distinct values of ``unit_column``, ignoring blanks."""
    if unit_column not in frame.columns:
        raise DatasetError(f"Unit column '{unit_column}' not found in dataset.")
    values = frame[unit_column].dropna().unique()
    return sorted(pd.Series(values).tolist())


def unit_subset(frame: pd.DataFrame, unit_column: str, unit: Any) -> pd.DataFrame:
    """Return the rows belonging to one unit.

    Raises:
        DatasetError: If the unit has no rows.
    """
    subset = frame.loc[frame[unit_column] == unit]
    if subset.empty:
        raise DatasetError(f"No rows with {unit_column} == {unit!r}.")
    return subset


def sample_dataset(
    kind: str = "flights",
    years: Sequence[int] = tuple(range(2000, 2010)),
    rows_per_year: int = 200,
    seed: int = 0,
) -> pd.DataFrame:
    """Build a synthetic table with one of the workshop's two schemas.

    ``flights`` has columns ``year, month, distance, dep_delay, arr_delay``,
    where ``arr_delay`` depends on ``distance`` with slope
    :data:`DISTANCE_EFFECT`. ``wages`` has columns
    ``year, age, education, hours, log_wage``, where ``log_wage`` depends on
    ``education`` with slope :data:`EDUCATION_EFFECT`.
    """
    if kind not in SAMPLE_KINDS:
        raise ValueError(f"Unknown sample dataset '{kind}'. Choose from {SAMPLE_KINDS}.")
    if rows_per_year <= 0:
        raise ValueError("rows_per_year must be positive")

    rng = np.random.default_rng(seed)
    frames = []
    for offset, year in enumerate(years):
        n = rows_per_year
        if kind == "flights":
            distance = rng.uniform(100, 3000, n)
            dep_delay = rng.normal(10, 20, n)
            arr_delay = (
                2.0
                + 0.5 * offset
                + 0.9 * dep_delay
                + DISTANCE_EFFECT * distance
                + rng.normal(0, 5, n)
            )
            part = pd.DataFrame(
                {
                    "year": year,
                    "month": rng.integers(1, 13, n),
                    "distance": distance.round(0),
                    "dep_delay": dep_delay.round(1),
                    "arr_delay": arr_delay.round(2),
                }
            )
        else:
            age = rng.integers(18, 66, n)
            education = rng.integers(8, 21, n)
            log_wage = (
                1.5
                + 0.02 * offset
                + EDUCATION_EFFECT * education
                + 0.01 * age
                + rng.normal(0, 0.3, n)
            )
            part = pd.DataFrame(
                {
                    "year": year,
                    "age": age,
                    "education": education,
                    "hours": rng.normal(40, 8, n).round(1),
                    "log_wage": log_wage.round(4),
                }
            )
        frames.append(part)

    return pd.concat(frames, ignore_index=True)
