"""
In-process parallel-loop pattern.

The sequential loop's iterations are submitted as futures to a pool of
worker processes. By default the pool is ``mpi4py.futures.MPIPoolExecutor``,
so the workers can span several nodes of one batch job. Results come back to
the invoking process in completion order.

Unlike a job array, a failing unit takes the whole run down with it: there
is no record of which units already finished, so the run has to be
restarted as a whole.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future, as_completed
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from ..analysis import ModelSpec, fit_subset
from ..data import list_units, unit_subset
from ..results import UnitResult

logger = logging.getLogger(__name__)


def mpi_pool_executor(max_workers: Optional[int] = None) -> Executor:
    """Create an ``MPIPoolExecutor``.

    Under ``python -m mpi4py.futures`` (as rendered MPI scripts launch it)
    the workers are the other ranks of the job; otherwise they are spawned
    dynamically, up to ``max_workers``.
    """
    try:
        from mpi4py.futures import MPIPoolExecutor
    except ImportError as exc:
        raise ImportError(
            "The MPI pattern requires 'mpi4py'. Install it with "
            "`pip install parstats[mpi]` on a machine with an MPI library."
        ) from exc
    return MPIPoolExecutor(max_workers=max_workers)


def run_parallel(
    frame: pd.DataFrame,
    unit_column: str,
    spec: ModelSpec,
    units: Optional[Sequence[Any]] = None,
    executor: Optional[Executor] = None,
    max_workers: Optional[int] = None,
) -> List[UnitResult]:
    """Fit every unit on a worker pool and gather all results here.

    Args:
        frame: The full dataset; each worker only receives its unit's rows.
        unit_column: Column identifying units.
        spec: Model to fit per unit.
        units: Units to fit (default: every unit in ``frame``).
        executor: Pool to use. When omitted an MPI pool is created and shut
            down again before returning.
        max_workers: Passed to the MPI pool when one is created here.

    Returns:
        One result per unit, in completion order.

    Raises:
        Exception: The first unit failure, after cancelling pending work.
    """
    todo = list(units) if units is not None else list_units(frame, unit_column)
    owns_executor = executor is None
    pool = mpi_pool_executor(max_workers) if owns_executor else executor
    logger.info("Fitting %d units on %s", len(todo), type(pool).__name__)

    start = time.perf_counter()
    results: List[UnitResult] = []
    try:
        # Every subset exists before any work is handed out
        subsets = [(unit, unit_subset(frame, unit_column, unit)) for unit in todo]
        futures: Dict[Future, Any] = {
            pool.submit(fit_subset, unit, subset, spec): unit for unit, subset in subsets
        }
        for future in as_completed(futures):
            unit = futures[future]
            try:
                result = future.result()
            except Exception:
                logger.error(
                    "Unit %r failed; abandoning the parallel run (%d of %d done)",
                    unit,
                    len(results),
                    len(todo),
                )
                for pending in futures:
                    pending.cancel()
                raise
            logger.debug("Gathered unit %r (%d/%d)", unit, len(results) + 1, len(todo))
            results.append(result)
    finally:
        if owns_executor:
            pool.shutdown(wait=True)

    logger.info(
        "Parallel run finished %d units in %.2fs",
        len(results),
        time.perf_counter() - start,
    )
    return results
