"""Results table: one ``(unit, lower, estimate, upper)`` row per unit of work.

Job-array elements append header-less rows to a shared file without any
coordination; :func:`combine_rows` later collapses that file into the final
table. In-process runs build the same table directly in memory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, NamedTuple, Sequence, Union

import pandas as pd

from .errors import ResultsError

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ("unit", "lower", "estimate", "upper")

PathLike = Union[str, os.PathLike[str]]


class UnitResult(NamedTuple):
    """Summary of one fitted model."""

    unit: Any
    lower: float
    estimate: float
    upper: float


def results_frame(results: Iterable[UnitResult]) -> pd.DataFrame:
    """Return ``results`` as a DataFrame sorted by unit."""
    rows = list(results)
    if not rows:
        return pd.DataFrame(columns=list(RESULT_COLUMNS))
    frame = pd.DataFrame(rows, columns=list(RESULT_COLUMNS))
    return frame.sort_values("unit", kind="stable").reset_index(drop=True)


def append_result(path: PathLike, result: UnitResult) -> None:
    """Append one header-less row for ``result`` to ``path``.

    The row is written with a single ``write`` on a file opened in append
    mode, so independent processes can share the file.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    line = results_frame([result]).to_csv(index=False, header=False)
    with open(target, "a", encoding="utf-8", newline="") as handle:
        handle.write(line)
    logger.debug("Appended row for unit %r to %s", result.unit, target)


def read_rows(path: PathLike) -> List[UnitResult]:
    """Read a header-less rows file written by :func:`append_result`.

    A missing or empty file yields an empty list.

    Raises:
        ResultsError: If a line does not hold a unit and three numbers.
    """
    source = Path(path)
    if not source.exists():
        return []

    try:
        frame = pd.read_csv(
            source,
            header=None,
            names=list(RESULT_COLUMNS),
            float_precision="round_trip",
            skip_blank_lines=False,
        )
    except pd.errors.EmptyDataError:
        return []
    except pd.errors.ParserError as exc:
        raise ResultsError(f"Malformed rows file '{source}': {exc}") from exc

    numeric = frame[["lower", "estimate", "upper"]].apply(
        pd.to_numeric, errors="coerce"
    )
    bad = frame["unit"].isna() | numeric.isna().any(axis=1)
    if bad.any():
        line_number = int(bad.to_numpy().nonzero()[0][0]) + 1
        raise ResultsError(
            f"Malformed row at line {line_number} of '{source}'; "
            f"expected {', '.join(RESULT_COLUMNS)}."
        )

    return [
        UnitResult(unit, float(lower), float(estimate), float(upper))
        for unit, lower, estimate, upper in zip(
            frame["unit"].tolist(),
            numeric["lower"].tolist(),
            numeric["estimate"].tolist(),
            numeric["upper"].tolist(),
        )
    ]


def combine_rows(rows: Iterable[UnitResult]) -> List[UnitResult]:
    """Collapse duplicate units and sort by unit.

    A unit that was re-run appears again further down the shared file, so
    the last row for a unit wins.
    """
    latest: Dict[Any, UnitResult] = {}
    for row in rows:
        if row.unit in latest:
            logger.debug("Unit %r appears more than once; keeping the latest row", row.unit)
        latest[row.unit] = row
    return [latest[unit] for unit in sorted(latest)]


def write_results(path: PathLike, results: Iterable[UnitResult]) -> Path:
    """Write the final results table (with header) to ``path``."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    results_frame(results).to_csv(target, index=False)
    logger.info("Wrote results table to %s", target)
    return target


def missing_units(expected: Sequence[Any], rows: Iterable[UnitResult]) -> List[Any]:
    """Return the units in ``expected`` that have no row yet."""
    seen = {row.unit for row in rows}
    return [unit for unit in expected if unit not in seen]
