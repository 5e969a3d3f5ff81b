"""Utilities for loading and resolving project Analysisfile configuration.

An Analysisfile is a TOML file describing the dataset, the model fitted per
unit, where results are written and how batch jobs are requested. Named
environments (for example ``laptop`` and ``cluster``) are deep-merged on top
of the ``[default]`` table.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

try:  # pragma: no cover - import guard
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - python <3.11 fallback
    import tomli as tomllib  # type: ignore[no-redef]

from .analysis import ModelSpec
from .errors import (
    AnalysisfileEnvironmentNotFoundError,
    AnalysisfileInvalidError,
    AnalysisfileNotFoundError,
    ModelSpecError,
)

TOMLDecodeError = tomllib.TOMLDecodeError

PARSTATS_ENV_VAR = "PARSTATS_ENV"
ANALYSISFILE_ENV_VAR = "ANALYSISFILE"
DEFAULT_ANALYSISFILE_NAMES = (
    "Analysisfile",
    "Analysisfile.toml",
    "analysisfile",
    "analysisfile.toml",
)

PathLike = Union[str, os.PathLike[str]]


@dataclass
class SlurmSettings:
    """Resource requests and environment setup for rendered batch scripts."""

    job_name: str = "parstats"
    account: Optional[str] = None
    partition: Optional[str] = None
    time: str = "00:30:00"
    mem: Optional[str] = "2G"
    cpus_per_task: int = 1
    nodes: int = 1
    ntasks: int = 4
    max_concurrent: Optional[int] = None
    modules: List[str] = field(default_factory=list)
    python: str = "python"
    logs_dir: Path = Path("logs")
    extra: Dict[str, Any] = field(default_factory=dict)

    def base_options(self) -> Dict[str, Any]:
        """SBATCH options shared by every script, ``None`` entries dropped."""
        options: Dict[str, Any] = {
            "account": self.account,
            "partition": self.partition,
            "time": self.time,
            "mem": self.mem,
        }
        options = {key: value for key, value in options.items() if value is not None}
        options.update(self.extra)
        return options


@dataclass
class AnalysisSettings:
    """Resolved configuration for a specific Analysisfile environment."""

    name: str
    path: Optional[Path]
    data_path: Path
    model: ModelSpec
    rows_path: Path
    results_path: Path
    unit_column: str = "year"
    delimiter: str = ","
    slurm: SlurmSettings = field(default_factory=SlurmSettings)

    def required_columns(self) -> List[str]:
        columns = [self.unit_column]
        for name in self.model.variables():
            if name not in columns:
                columns.append(name)
        return columns


def load_settings(
    analysisfile: Optional[PathLike] = None,
    *,
    env: Optional[str] = None,
    start_dir: Optional[PathLike] = None,
) -> AnalysisSettings:
    """Load an Analysisfile environment and build :class:`AnalysisSettings`."""

    resolved_path = resolve_analysisfile_path(analysisfile, start_dir=start_dir)
    raw_data = _read_toml(resolved_path)
    root_table = _extract_root_table(raw_data)
    env_table = _extract_environment_table(root_table)

    env_name = (env or os.getenv(PARSTATS_ENV_VAR) or "default").strip() or "default"
    resolved_config = _resolve_environment_config(root_table, env_table, env_name)

    return build_settings(
        resolved_config,
        base_dir=resolved_path.parent,
        name=env_name,
        path=resolved_path,
    )


def resolve_analysisfile_path(
    analysisfile: Optional[PathLike] = None,
    *,
    start_dir: Optional[PathLike] = None,
) -> Path:
    """Determine which Analysisfile to use, respecting explicit hints and discovery."""

    if analysisfile is not None:
        return _normalize_analysisfile_path(Path(analysisfile))

    env_path = os.getenv(ANALYSISFILE_ENV_VAR)
    if env_path:
        return _normalize_analysisfile_path(Path(env_path))

    return discover_analysisfile(start_dir=start_dir)


def discover_analysisfile(start_dir: Optional[PathLike] = None) -> Path:
    """Search upwards from ``start_dir`` (or ``cwd``) for an Analysisfile."""

    start_candidate = Path(start_dir) if start_dir is not None else Path.cwd()
    start_candidate = start_candidate.expanduser()
    try:
        start_candidate = start_candidate.resolve()
    except FileNotFoundError:
        start_candidate = start_candidate.absolute()

    for directory in (start_candidate,) + tuple(start_candidate.parents):
        for name in DEFAULT_ANALYSISFILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate

    raise AnalysisfileNotFoundError(
        f"No Analysisfile found starting from '{start_candidate}'. "
        f"Checked {DEFAULT_ANALYSISFILE_NAMES}."
    )


def _normalize_analysisfile_path(path: Path) -> Path:
    expanded = path.expanduser()
    if expanded.is_dir():
        for name in DEFAULT_ANALYSISFILE_NAMES:
            candidate = expanded / name
            if candidate.is_file():
                return candidate
        raise AnalysisfileNotFoundError(
            f"Analysisfile not found inside directory '{expanded}'. "
            f"Checked {DEFAULT_ANALYSISFILE_NAMES}."
        )
    if expanded.is_file():
        return expanded
    raise AnalysisfileNotFoundError(f"Analysisfile path '{expanded}' does not exist.")


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except TOMLDecodeError as exc:
        raise AnalysisfileInvalidError(
            f"Invalid TOML in Analysisfile '{path}': {exc}"
        ) from exc
    return data


def _extract_root_table(data: Dict[str, Any]) -> Dict[str, Any]:
    tool_section = data.get("tool")
    if isinstance(tool_section, dict):
        parstats_section = tool_section.get("parstats")
        if isinstance(parstats_section, dict):
            return parstats_section
    # A flat file with no environments is its own default
    if "default" not in data and "environments" not in data and "data" in data:
        return {"default": data}
    return data


def _extract_environment_table(root: Dict[str, Any]) -> Dict[str, Any]:
    environments = root.get("environments")
    if isinstance(environments, dict):
        return environments
    return root


def _resolve_environment_config(
    root_table: Dict[str, Any],
    env_table: Dict[str, Any],
    env_name: str,
) -> Dict[str, Any]:
    result: Dict[str, Any] = {}

    root_default = root_table.get("default")
    if root_default:
        if not isinstance(root_default, dict):
            raise AnalysisfileInvalidError("[default] section must be a table.")
        result = _deep_merge(result, root_default)

    env_default = env_table.get("default")
    if env_default and env_default is not root_default:
        if not isinstance(env_default, dict):
            raise AnalysisfileInvalidError("[default] environment must be a table.")
        result = _deep_merge(result, env_default)

    if env_name != "default":
        env_config = env_table.get(env_name)
        if env_config is None:
            raise AnalysisfileEnvironmentNotFoundError(
                f"Environment '{env_name}' not defined in Analysisfile."
            )
        if not isinstance(env_config, dict):
            raise AnalysisfileInvalidError(
                f"Environment '{env_name}' section must be a table."
            )
        result = _deep_merge(result, env_config)

    return result


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name, {})
    if not isinstance(section, dict):
        raise AnalysisfileInvalidError(f"[{name}] section must be a table.")
    return section


def _require(section: Dict[str, Any], section_name: str, key: str) -> Any:
    value = section.get(key)
    if value is None or value == "":
        raise AnalysisfileInvalidError(f"Missing required key '{section_name}.{key}'.")
    return value


def _resolve_path(base_dir: Path, value: PathLike) -> Path:
    path = Path(os.path.expandvars(str(value))).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def _optional_int(section: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    value = section.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise AnalysisfileInvalidError(f"slurm.{key} must be a positive integer.")
    return value


def _build_slurm(section: Dict[str, Any], base_dir: Path) -> SlurmSettings:
    defaults = SlurmSettings()

    modules = section.get("modules", [])
    if isinstance(modules, str):
        modules = [modules]
    if not isinstance(modules, list):
        raise AnalysisfileInvalidError("slurm.modules must be a list of module names.")

    extra = section.get("extra", {})
    if not isinstance(extra, dict):
        raise AnalysisfileInvalidError("slurm.extra must be a table of sbatch options.")

    return SlurmSettings(
        job_name=str(section.get("job_name", defaults.job_name)),
        account=section.get("account"),
        partition=section.get("partition"),
        time=str(section.get("time", defaults.time)),
        mem=section.get("mem", defaults.mem),
        cpus_per_task=_optional_int(section, "cpus_per_task", defaults.cpus_per_task),
        nodes=_optional_int(section, "nodes", defaults.nodes),
        ntasks=_optional_int(section, "ntasks", defaults.ntasks),
        max_concurrent=_optional_int(section, "max_concurrent", None),
        modules=[str(name) for name in modules],
        python=str(section.get("python", defaults.python)),
        logs_dir=_resolve_path(base_dir, section.get("logs_dir", defaults.logs_dir)),
        extra=dict(extra),
    )


def build_settings(
    config: Dict[str, Any],
    *,
    base_dir: Optional[PathLike] = None,
    name: str = "default",
    path: Optional[Path] = None,
) -> AnalysisSettings:
    """Validate a merged configuration mapping and build :class:`AnalysisSettings`.

    Relative paths are resolved against ``base_dir`` (the Analysisfile's
    directory when loaded from disk, the working directory otherwise).
    """
    root = Path(base_dir) if base_dir is not None else Path.cwd()

    data = _section(config, "data")
    model = _section(config, "model")
    output = _section(config, "output")

    try:
        spec = ModelSpec(
            formula=str(_require(model, "model", "formula")),
            term=str(_require(model, "model", "term")),
            confidence=float(model.get("confidence", 0.95)),
        )
    except ModelSpecError as exc:
        raise AnalysisfileInvalidError(f"Invalid [model] section: {exc}") from exc

    return AnalysisSettings(
        name=name,
        path=path,
        data_path=_resolve_path(root, _require(data, "data", "path")),
        delimiter=str(data.get("delimiter", ",")),
        unit_column=str(data.get("unit_column", "year")),
        model=spec,
        rows_path=_resolve_path(root, output.get("rows", "results/rows.csv")),
        results_path=_resolve_path(root, output.get("results", "results/results.csv")),
        slurm=_build_slurm(_section(config, "slurm"), root),
    )
