"""Custom error types for parstats."""

from __future__ import annotations

from typing import Any, Dict, Optional

from rich.console import Console, ConsoleRenderable
from rich.syntax import Syntax


class AnalysisfileError(Exception):
    """Base class for Analysisfile configuration errors.

    Analysisfiles are TOML configuration files that describe the dataset, the
    model fitted per unit, where results go and how jobs are submitted. These
    errors indicate problems with the Analysisfile itself.
    """


class AnalysisfileNotFoundError(AnalysisfileError):
    """Raised when an Analysisfile cannot be located.

    parstats searches for Analysisfile, Analysisfile.toml, analysisfile or
    analysisfile.toml in the current directory and its parents.

    What to check:
        - Run from within the project directory
        - Set the ANALYSISFILE environment variable to an explicit path
        - Pass ``--config`` on the command line
    """


class AnalysisfileInvalidError(AnalysisfileError):
    """Raised when an Analysisfile contains invalid TOML or a bad schema.

    Common causes:
        - TOML syntax errors (unclosed brackets, invalid escaping, etc.)
        - Missing required keys such as ``data.path`` or ``model.formula``
        - A section that should be a table is a scalar
    """


class AnalysisfileEnvironmentNotFoundError(AnalysisfileError):
    """Raised when a requested environment is missing from the Analysisfile.

    Examples:
        >>> load_settings(env="clsuter")  # Typo!
        AnalysisfileEnvironmentNotFoundError: Environment 'clsuter' not defined in Analysisfile.
    """


class DatasetError(Exception):
    """Raised when the input table cannot be loaded or subset.

    Common causes:
        - The data file does not exist or is empty
        - The configured unit column or a model variable is not a column
        - The wrong delimiter was configured, so everything lands in one column
        - A unit requested by index has no rows
    """


class ModelSpecError(ValueError):
    """Raised when the model description itself is invalid."""


class ModelFitError(Exception):
    """Raised when fitting the linear model for one unit fails.

    Attributes:
        unit: The unit whose fit failed.
    """

    def __init__(self, message: str, *, unit: Any = None) -> None:
        super().__init__(message)
        self.unit = unit


class ResultsError(Exception):
    """Raised when a results rows file contains a malformed line."""


class ArrayIndexError(IndexError):
    """Raised when an array index is missing, malformed or out of range.

    The index either comes from the command line or from
    ``SLURM_ARRAY_TASK_ID`` set by the scheduler for each array element.
    """


class SubmissionError(Exception):
    """Raised when handing a rendered script to ``sbatch`` fails.

    Common causes:
        - Invalid SBATCH parameters (unknown partition, invalid time format, etc.)
        - Account/partition permission denied
        - Array size exceeds the cluster's MaxArraySize
        - Fairshare or QOS limits reject the submission

    Attributes:
        message: Error description
        script: The rendered job script that failed to submit (if available)
        metadata: Dictionary with submission context (partition, dependency, etc.)
    """

    def __init__(
        self,
        message: str,
        *,
        script: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.script = script
        self.metadata = metadata or {}
        self._syntax: Optional[ConsoleRenderable] = self._build_syntax(script)

    @staticmethod
    def _build_syntax(script: Optional[str]) -> Optional[ConsoleRenderable]:
        if not script:
            return None
        return Syntax(script, "bash", theme="monokai", line_numbers=True)

    def __str__(self) -> str:
        parts = [self.message]

        if self.metadata:
            formatted = ", ".join(
                f"{key}={value}" for key, value in self.metadata.items()
            )
            parts.append(f"metadata: {formatted}")

        if self.script:
            parts.append("rendered sbatch script:\n" + self.script)

        return "\n\n".join(parts)

    def __rich_console__(self, console: Console, options):  # pragma: no cover
        yield self.message
        if self.metadata:
            formatted = ", ".join(
                f"{key}={value}" for key, value in self.metadata.items()
            )
            yield f"metadata: {formatted}"
        if self._syntax is not None:
            yield "rendered sbatch script:"
            yield self._syntax


class SchedulerError(Exception):
    """Base class for failures talking to the workload manager's commands."""


class SchedulerTimeout(SchedulerError, TimeoutError):
    """Raised when a scheduler command (``sbatch``) does not return in time."""


class SchedulerCommandError(SchedulerError):
    """Raised when a scheduler command cannot be executed at all.

    Usually ``sbatch`` is not on ``PATH`` because the command is being run
    outside the cluster's login nodes.
    """
