"""Job-array pattern: one invocation fits one unit chosen by an integer index.

Invocations never talk to each other. Each one appends a single row to the
shared rows file; ``parstats combine`` later turns that file into the final
table. Failed elements can be re-submitted on their own.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional, Sequence, Union

import pandas as pd

from ..analysis import ModelSpec, fit_unit
from ..data import list_units
from ..errors import ArrayIndexError
from ..results import PathLike, UnitResult, append_result
from ..runtime import build_array_context, task_label

logger = logging.getLogger(__name__)

ARRAY_INDEX_ENV_VAR = "SLURM_ARRAY_TASK_ID"


def resolve_array_index(
    explicit: Optional[Union[int, str]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """Return the index of this element.

    An explicit (command-line) value wins over ``SLURM_ARRAY_TASK_ID``.

    Raises:
        ArrayIndexError: If neither is set, or the value is not a
            non-negative integer.
    """
    env_map = env if env is not None else os.environ

    if explicit is not None:
        raw: Any = explicit
        source = "command line"
    else:
        raw = env_map.get(ARRAY_INDEX_ENV_VAR)
        source = ARRAY_INDEX_ENV_VAR
        if raw is None or str(raw).strip() == "":
            raise ArrayIndexError(
                f"No array index given and {ARRAY_INDEX_ENV_VAR} is not set; "
                "pass the index explicitly when running outside a job array."
            )

    try:
        index = int(str(raw).strip())
    except ValueError as exc:
        raise ArrayIndexError(
            f"Array index from {source} must be an integer, got {raw!r}."
        ) from exc
    if index < 0:
        raise ArrayIndexError(f"Array index from {source} must be >= 0, got {index}.")
    return index


def unit_for_index(units: Sequence[Any], index: int) -> Any:
    """Map a 0-based array index onto the sorted unit list."""
    if index < 0 or index >= len(units):
        raise ArrayIndexError(f"Array index {index} out of range [0, {len(units)})")
    return units[index]


def run_array_task(
    frame: pd.DataFrame,
    unit_column: str,
    spec: ModelSpec,
    index: int,
    rows_path: PathLike,
) -> UnitResult:
    """Fit the unit selected by ``index`` and append its row to ``rows_path``."""
    label = task_label(build_array_context())
    units = list_units(frame, unit_column)
    unit = unit_for_index(units, index)
    logger.info("[%s] array index %d -> %s %r", label, index, unit_column, unit)

    result = fit_unit(frame, unit_column, unit, spec)
    append_result(rows_path, result)

    logger.info(
        "[%s] %s = %.4g [%.4g, %.4g]",
        label,
        spec.term,
        result.estimate,
        result.lower,
        result.upper,
    )
    return result
