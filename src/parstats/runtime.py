"""Utilities for reading the scheduler's runtime metadata inside a job."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional


@dataclass(frozen=True)
class ArrayTaskContext:
    """SLURM metadata visible to one running job or job-array element.

    Values are populated directly from the ``SLURM_*`` environment, so the
    context can be rebuilt anywhere without calling ``scontrol``. Fields are
    ``None`` when the corresponding variable is absent, e.g. when a script is
    run interactively on a laptop.
    """

    job_id: Optional[str]
    array_job_id: Optional[str]
    array_task_id: Optional[int]
    array_task_count: Optional[int]
    array_task_min: Optional[int]
    array_task_max: Optional[int]
    procid: Optional[int]
    nodelist: Optional[str]
    environment: Dict[str, str] = field(default_factory=dict)

    @property
    def is_array_element(self) -> bool:
        return self.array_task_id is not None


def build_array_context(env: Optional[Mapping[str, str]] = None) -> ArrayTaskContext:
    """Create an :class:`ArrayTaskContext` from the provided (or current) environment."""

    env_map = env if env is not None else os.environ

    return ArrayTaskContext(
        job_id=env_map.get("SLURM_JOB_ID"),
        array_job_id=env_map.get("SLURM_ARRAY_JOB_ID"),
        array_task_id=_parse_int(env_map.get("SLURM_ARRAY_TASK_ID")),
        array_task_count=_parse_int(env_map.get("SLURM_ARRAY_TASK_COUNT")),
        array_task_min=_parse_int(env_map.get("SLURM_ARRAY_TASK_MIN")),
        array_task_max=_parse_int(env_map.get("SLURM_ARRAY_TASK_MAX")),
        procid=_parse_int(env_map.get("SLURM_PROCID")),
        nodelist=env_map.get("SLURM_JOB_NODELIST") or env_map.get("SLURM_NODELIST"),
        environment={k: env_map[k] for k in env_map if k.startswith("SLURM_")},
    )


def task_label(context: ArrayTaskContext) -> str:
    """Label for log lines: ``<array_job_id>_<task_id>``, the job id, or ``local``."""

    if context.array_job_id and context.array_task_id is not None:
        return f"{context.array_job_id}_{context.array_task_id}"
    return context.job_id or "local"


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None
