"""Sequential per-unit analysis: the baseline every other pattern replaces."""

from __future__ import annotations

import logging
import time
from typing import Any, List, Optional, Sequence

import pandas as pd

from ..analysis import ModelSpec, fit_unit
from ..data import list_units
from ..results import UnitResult

logger = logging.getLogger(__name__)


def run_sequential(
    frame: pd.DataFrame,
    unit_column: str,
    spec: ModelSpec,
    units: Optional[Sequence[Any]] = None,
) -> List[UnitResult]:
    """Fit every unit in turn and return the results table in unit order.

    The first failing unit stops the loop and its error propagates.
    """
    todo = list(units) if units is not None else list_units(frame, unit_column)
    logger.info("Fitting %d units sequentially", len(todo))

    start = time.perf_counter()
    results: List[UnitResult] = []
    for position, unit in enumerate(todo, start=1):
        result = fit_unit(frame, unit_column, unit, spec)
        logger.debug(
            "[%d/%d] unit %r: %s = %.4g [%.4g, %.4g]",
            position,
            len(todo),
            unit,
            spec.term,
            result.estimate,
            result.lower,
            result.upper,
        )
        results.append(result)

    logger.info(
        "Sequential run finished %d units in %.2fs",
        len(results),
        time.perf_counter() - start,
    )
    return results
