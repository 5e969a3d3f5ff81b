"""Handing rendered scripts to ``sbatch`` on a cluster login node."""

from __future__ import annotations

import logging
import re
import subprocess
from typing import List, Optional

from .errors import SchedulerCommandError, SchedulerTimeout, SubmissionError

logger = logging.getLogger(__name__)

_SUBMITTED_RE = re.compile(r"Submitted batch job (\d+)")


def afterany_dependency(job_id: str) -> str:
    """Dependency that starts once every element of ``job_id`` has ended.

    ``afterany`` rather than ``afterok`` so the aggregation job still runs,
    and reports the missing units, when some array elements fail.
    """
    return f"afterany:{job_id}"


def submit_script(
    script: str,
    *,
    dependency: Optional[str] = None,
    chdir: Optional[str] = None,
    timeout: int = 30,
) -> str:
    """Submit ``script`` through ``sbatch`` reading from stdin.

    Args:
        script: The rendered batch script.
        dependency: Optional ``--dependency`` value, e.g. ``afterany:123``.
        chdir: Optional working directory for the job.
        timeout: Seconds to wait for ``sbatch`` to return.

    Returns:
        The job id assigned by the scheduler.

    Raises:
        SchedulerCommandError: If ``sbatch`` is not available.
        SchedulerTimeout: If ``sbatch`` does not return within ``timeout``.
        SubmissionError: If ``sbatch`` rejects the script or its output
            cannot be parsed.
    """
    cmd: List[str] = ["sbatch"]
    if chdir:
        cmd.append(f"--chdir={chdir}")
    if dependency:
        cmd.append(f"--dependency={dependency}")

    metadata = {"command": " ".join(cmd)}
    logger.debug("Submitting with command: %s", metadata["command"])
    logger.debug("--- BEGIN SCRIPT CONTENT ---\n%s\n--- END SCRIPT CONTENT ---", script)

    try:
        result = subprocess.run(
            cmd,
            input=script,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise SchedulerCommandError(
            "sbatch was not found on PATH; submit from a cluster login node."
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise SchedulerTimeout(f"sbatch did not return within {timeout}s") from exc

    if result.returncode != 0:
        raise SubmissionError(
            f"sbatch exited with status {result.returncode}: {result.stderr.strip()}",
            script=script,
            metadata=metadata,
        )

    match = _SUBMITTED_RE.search(result.stdout)
    if not match:
        raise SubmissionError(
            f"Failed to parse job ID from sbatch output: {result.stdout.strip()}",
            script=script,
            metadata=metadata,
        )

    job_id = match.group(1)
    logger.info("Job submitted: %s", job_id)
    return job_id
