"""The three ways of running the per-unit analysis.

- :mod:`.sequential`: a plain loop in one process.
- :mod:`.array`: one unit per job-array element, rows appended to a shared file.
- :mod:`.parallel`: loop iterations farmed out to an MPI worker pool.
"""

from .array import resolve_array_index, run_array_task, unit_for_index
from .parallel import run_parallel
from .sequential import run_sequential

__all__ = [
    "run_sequential",
    "run_array_task",
    "resolve_array_index",
    "unit_for_index",
    "run_parallel",
]
