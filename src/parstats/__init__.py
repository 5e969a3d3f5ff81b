# parstats/__init__.py

"""
Per-unit statistical analysis run three ways: a sequential loop, a SLURM job
array, and an MPI worker pool.
"""

__version__ = "0.1.0"

from .analysis import ModelSpec, fit_subset, fit_unit
from .config import AnalysisSettings, load_settings
from .patterns import run_array_task, run_parallel, run_sequential
from .results import UnitResult

__all__ = [
    "ModelSpec",
    "UnitResult",
    "AnalysisSettings",
    "fit_subset",
    "fit_unit",
    "load_settings",
    "run_sequential",
    "run_array_task",
    "run_parallel",
]
