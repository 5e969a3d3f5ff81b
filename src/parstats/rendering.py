"""
This module provides functions for rendering SLURM batch scripts for the
three workshop patterns plus the aggregation job.

The scripts are declarative job descriptions consumed by ``sbatch``; all the
scheduling they ask for is done by SLURM itself.
"""

from __future__ import annotations

import logging
import shlex
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .config import AnalysisSettings

logger = logging.getLogger(__name__)

SCRIPT_KINDS = ("array", "mpi", "sequential", "combine")


def normalize_sbatch_key(key: str) -> str:
    """Normalize SBATCH keyword-style input to our internal underscore form."""

    normalized = str(key or "").strip().lstrip("-").lower().replace("-", "_")
    if normalized == "name":
        return "job_name"
    return normalized


def normalize_sbatch_options(options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a copy of the provided mapping with normalized SBATCH keys."""

    normalized: Dict[str, Any] = {}
    if not options:
        return normalized

    for raw_key, value in options.items():
        if raw_key is None:
            continue
        key = normalize_sbatch_key(raw_key)
        normalized[key] = value

    if "memory" in normalized and "mem" not in normalized:
        normalized["mem"] = normalized.pop("memory")
    return normalized


def format_directives(options: Dict[str, Any]) -> List[str]:
    """Render ``#SBATCH`` lines in insertion order.

    A ``None`` value emits a bare flag (``#SBATCH --exclusive``). Output and
    error paths are shell-quoted.
    """
    lines: List[str] = []
    for key, value in normalize_sbatch_options(options).items():
        flag = key.replace("_", "-")
        if value is None:
            lines.append(f"#SBATCH --{flag}")
            continue
        if isinstance(value, bool):
            if value:
                lines.append(f"#SBATCH --{flag}")
            continue
        value_to_emit = value
        if isinstance(value, str) and key in {"output", "error"}:
            value_to_emit = shlex.quote(value)
        lines.append(f"#SBATCH --{flag}={value_to_emit}")
    return lines


def _compress_indices(indices: Iterable[int]) -> str:
    ordered = sorted(set(indices))
    ranges: List[str] = []
    start = prev = ordered[0]
    for index in ordered[1:]:
        if index == prev + 1:
            prev = index
            continue
        ranges.append(f"{start}-{prev}" if start != prev else str(start))
        start = prev = index
    ranges.append(f"{start}-{prev}" if start != prev else str(start))
    return ",".join(ranges)


def generate_array_spec(
    num_items: Optional[int] = None,
    max_concurrent: Optional[int] = None,
    indices: Optional[Sequence[int]] = None,
) -> str:
    """Generate a SLURM ``--array`` specification string.

    Args:
        num_items: Number of array elements; indices run ``0..num_items-1``.
        max_concurrent: Optional cap on simultaneously running elements.
        indices: Explicit element indices (e.g. only the failed ones), which
            take precedence over ``num_items``.

    Examples:
        >>> generate_array_spec(100)
        '0-99'
        >>> generate_array_spec(100, max_concurrent=10)
        '0-99%10'
        >>> generate_array_spec(indices=[7, 1, 2, 3])
        '1-3,7'
    """
    if indices is not None:
        if not indices:
            raise ValueError("No array indices to run")
        if any(index < 0 for index in indices):
            raise ValueError("Array indices must be non-negative")
        array_spec = _compress_indices(indices)
    else:
        if num_items is None or num_items <= 0:
            raise ValueError("Number of items must be positive")
        array_spec = f"0-{num_items - 1}"

    if max_concurrent is not None and max_concurrent > 0:
        array_spec = f"{array_spec}%{max_concurrent}"

    return array_spec


def _cli_options(settings: AnalysisSettings) -> List[str]:
    parts: List[str] = []
    if settings.path is not None:
        parts.append(f"--config {shlex.quote(str(settings.path))}")
    if settings.name != "default":
        parts.append(f"--env {shlex.quote(settings.name)}")
    return parts


def _script(
    settings: AnalysisSettings,
    directives: Dict[str, Any],
    command: str,
    banner: Sequence[str] = (),
) -> str:
    slurm = settings.slurm
    script_lines = ["#!/bin/bash"]
    script_lines.extend(format_directives(directives))
    script_lines.append("")

    for module in slurm.modules:
        script_lines.append(f"module load {shlex.quote(module)}")
    if slurm.modules:
        script_lines.append("")

    script_lines.append('cd "${SLURM_SUBMIT_DIR:-$(pwd)}"')
    script_lines.append('echo "SLURM Job ID: ${SLURM_JOB_ID:-}"')
    script_lines.extend(banner)
    script_lines.append('echo "Running on host: $(hostname)"')
    script_lines.append("")

    script_lines.append(f"PY_EXEC_RESOLVED=${{PY_EXEC:-{shlex.quote(slurm.python)}}}")
    script_lines.append("export PY_EXEC_RESOLVED")
    script_lines.append("")

    script_lines.append(command)
    script_lines.append("EXECUTION_STATUS=$?")
    script_lines.append("")
    script_lines.append('echo "Job finished with status: $EXECUTION_STATUS"')
    script_lines.append("exit $EXECUTION_STATUS")
    return "\n".join(script_lines) + "\n"


def _directives(
    settings: AnalysisSettings, suffix: str, log_pattern: str, **resources: Any
) -> Dict[str, Any]:
    slurm = settings.slurm
    job_name = f"{slurm.job_name}-{suffix}"
    logs = slurm.logs_dir
    directives: Dict[str, Any] = {"job_name": job_name}
    directives.update(resources)
    directives.update(slurm.base_options())
    directives.setdefault("output", f"{logs}/{job_name}_{log_pattern}.out")
    directives.setdefault("error", f"{logs}/{job_name}_{log_pattern}.err")
    return directives


def render_array_script(
    settings: AnalysisSettings,
    num_units: int,
    indices: Optional[Sequence[int]] = None,
) -> str:
    """Render a job array with one element per unit.

    Each element receives its index from ``SLURM_ARRAY_TASK_ID``, fits one
    unit and appends one row to the shared rows file.
    """
    if indices and num_units and max(indices) >= num_units:
        raise ValueError(
            f"Array index {max(indices)} out of range for {num_units} units"
        )
    array_spec = generate_array_spec(
        num_units, max_concurrent=settings.slurm.max_concurrent, indices=indices
    )
    directives = _directives(
        settings,
        "array",
        "%A_%a",
        ntasks=1,
        cpus_per_task=settings.slurm.cpus_per_task,
        array=array_spec,
    )
    command = " ".join(
        ['"$PY_EXEC_RESOLVED" -m parstats array-task "$SLURM_ARRAY_TASK_ID"']
        + _cli_options(settings)
    )
    logger.debug("Rendered array script with --array=%s", array_spec)
    return _script(
        settings,
        directives,
        command,
        banner=['echo "Array element: ${SLURM_ARRAY_JOB_ID:-}_${SLURM_ARRAY_TASK_ID:-}"'],
    )


def render_mpi_script(settings: AnalysisSettings) -> str:
    """Render a multi-process job running the MPI pool pattern.

    ``srun`` starts ``ntasks`` MPI processes; ``mpi4py.futures`` turns rank 0
    into the invoking process and the rest into pool workers.
    """
    slurm = settings.slurm
    directives = _directives(
        settings,
        "mpi",
        "%j",
        nodes=slurm.nodes,
        ntasks=slurm.ntasks,
        cpus_per_task=slurm.cpus_per_task,
    )
    command = " ".join(
        ['srun "$PY_EXEC_RESOLVED" -m mpi4py.futures -m parstats parallel']
        + _cli_options(settings)
    )
    return _script(
        settings,
        directives,
        command,
        banner=['echo "MPI processes: ${SLURM_NTASKS:-}"'],
    )


def render_sequential_script(settings: AnalysisSettings) -> str:
    """Render a single-core job running the plain loop."""
    directives = _directives(settings, "sequential", "%j", ntasks=1, cpus_per_task=1)
    command = " ".join(
        ['"$PY_EXEC_RESOLVED" -m parstats sequential'] + _cli_options(settings)
    )
    return _script(settings, directives, command)


def render_combine_script(settings: AnalysisSettings) -> str:
    """Render the aggregation job that concatenates the array's rows."""
    directives = _directives(settings, "combine", "%j", ntasks=1, cpus_per_task=1)
    command = " ".join(
        ['"$PY_EXEC_RESOLVED" -m parstats combine'] + _cli_options(settings)
    )
    return _script(settings, directives, command)


def render_script(
    kind: str,
    settings: AnalysisSettings,
    num_units: Optional[int] = None,
    indices: Optional[Sequence[int]] = None,
) -> str:
    """Render one of :data:`SCRIPT_KINDS` by name."""
    if kind == "array":
        if num_units is None and indices is None:
            raise ValueError("An array script needs the number of units or explicit indices")
        return render_array_script(settings, num_units or 0, indices=indices)
    if kind == "mpi":
        return render_mpi_script(settings)
    if kind == "sequential":
        return render_sequential_script(settings)
    if kind == "combine":
        return render_combine_script(settings)
    raise ValueError(f"Unknown script kind '{kind}'. Choose from {SCRIPT_KINDS}.")
