import textwrap
from pathlib import Path

import pytest

from parstats.config import (
    build_settings,
    discover_analysisfile,
    load_settings,
    resolve_analysisfile_path,
)
from parstats.errors import (
    AnalysisfileEnvironmentNotFoundError,
    AnalysisfileInvalidError,
    AnalysisfileNotFoundError,
)


def _write(path: Path, content: str) -> Path:
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


def test_load_settings_default_environment(analysisfile, tmp_path):
    settings = load_settings(analysisfile)

    assert settings.name == "default"
    assert settings.path == analysisfile
    assert settings.data_path == tmp_path / "data" / "flights.csv"
    assert settings.unit_column == "year"
    assert settings.model.formula == "arr_delay ~ dep_delay + distance"
    assert settings.model.term == "distance"
    assert settings.model.confidence == 0.95
    assert settings.rows_path == tmp_path / "results" / "rows.csv"
    assert settings.results_path == tmp_path / "results" / "results.csv"
    assert settings.slurm.job_name == "flights"
    assert settings.slurm.account is None
    assert settings.slurm.logs_dir == tmp_path / "logs"


def test_named_environment_merges_over_default(analysisfile):
    settings = load_settings(analysisfile, env="cluster")

    assert settings.name == "cluster"
    assert settings.slurm.job_name == "flights"
    assert settings.slurm.time == "00:05:00"
    assert settings.slurm.account == "acc"
    assert settings.slurm.partition == "short"
    assert settings.slurm.max_concurrent == 2
    assert settings.slurm.nodes == 2
    assert settings.slurm.ntasks == 6
    assert settings.slurm.modules == ["python/3.11", "openmpi"]


def test_environment_from_env_var(monkeypatch, analysisfile):
    monkeypatch.setenv("PARSTATS_ENV", "cluster")

    assert load_settings(analysisfile).name == "cluster"


def test_unknown_environment(analysisfile):
    with pytest.raises(AnalysisfileEnvironmentNotFoundError, match="producton"):
        load_settings(analysisfile, env="producton")


def test_discovery_walks_up(monkeypatch, analysisfile, tmp_path):
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.delenv("ANALYSISFILE", raising=False)

    assert discover_analysisfile(nested) == analysisfile.resolve()
    monkeypatch.chdir(nested)
    assert resolve_analysisfile_path().resolve() == analysisfile.resolve()


def test_env_var_path_and_directory(monkeypatch, analysisfile, tmp_path):
    monkeypatch.setenv("ANALYSISFILE", str(tmp_path))

    assert resolve_analysisfile_path().resolve() == analysisfile.resolve()


def test_missing_analysisfile(tmp_path, monkeypatch):
    monkeypatch.delenv("ANALYSISFILE", raising=False)

    with pytest.raises(AnalysisfileNotFoundError):
        resolve_analysisfile_path(tmp_path / "nope.toml")
    with pytest.raises(AnalysisfileNotFoundError):
        resolve_analysisfile_path(tmp_path)


def test_invalid_toml(tmp_path):
    path = _write(tmp_path / "Analysisfile", "[default.data\npath = 1\n")

    with pytest.raises(AnalysisfileInvalidError, match="Invalid TOML"):
        load_settings(path)


def test_flat_file_without_environments(tmp_path):
    path = _write(
        tmp_path / "Analysisfile",
        """
        [data]
        path = "wages.csv"

        [model]
        formula = "log_wage ~ education + age"
        term = "education"
        confidence = 0.9
        """,
    )

    settings = load_settings(path)

    assert settings.data_path == tmp_path / "wages.csv"
    assert settings.model.confidence == 0.9
    assert settings.rows_path == tmp_path / "results" / "rows.csv"
    assert settings.required_columns() == ["year", "log_wage", "education", "age"]


def test_pyproject_tool_table(tmp_path):
    path = _write(
        tmp_path / "pyproject.toml",
        """
        [project]
        name = "my-analysis"

        [tool.parstats.default.data]
        path = "d.csv"

        [tool.parstats.default.model]
        formula = "y ~ x"
        term = "x"
        """,
    )

    settings = load_settings(path)

    assert settings.model.term == "x"
    assert settings.data_path == tmp_path / "d.csv"


@pytest.mark.parametrize(
    "config, message",
    [
        ({"model": {"formula": "y ~ x", "term": "x"}}, "data.path"),
        ({"data": {"path": "d.csv"}, "model": {"term": "x"}}, "model.formula"),
        (
            {"data": {"path": "d.csv"}, "model": {"formula": "y ~ x", "term": "x", "confidence": 95}},
            "between 0 and 1",
        ),
        ({"data": "d.csv"}, r"\[data\] section must be a table"),
        (
            {"data": {"path": "d.csv"}, "model": {"formula": "y ~ x", "term": "z"}},
            r"Invalid \[model\] section: .*right-hand side",
        ),
        (
            {"data": {"path": "d.csv"}, "model": {"formula": "y ~ x", "term": "x"}, "slurm": {"ntasks": 0}},
            "slurm.ntasks",
        ),
        (
            {"data": {"path": "d.csv"}, "model": {"formula": "y ~ x", "term": "x"}, "slurm": {"modules": 3}},
            "slurm.modules",
        ),
    ],
)
def test_build_settings_validation(config, message, tmp_path):
    with pytest.raises(AnalysisfileInvalidError, match=message):
        build_settings(config, base_dir=tmp_path)


def test_build_settings_absolute_paths_and_extra(tmp_path):
    settings = build_settings(
        {
            "data": {"path": "/srv/data/flights.tsv", "delimiter": "\t"},
            "model": {"formula": "y ~ x", "term": "x"},
            "slurm": {"modules": "python", "extra": {"qos": "long"}, "mem": "8G"},
        },
        base_dir=tmp_path,
    )

    assert settings.data_path == Path("/srv/data/flights.tsv")
    assert settings.delimiter == "\t"
    assert settings.slurm.modules == ["python"]
    assert settings.slurm.base_options() == {"time": "00:30:00", "mem": "8G", "qos": "long"}


def test_required_columns_follow_formula_parser(tmp_path, flights_csv):
    from parstats.data import load_dataset

    settings = build_settings(
        {
            "data": {"path": str(flights_csv)},
            "model": {"formula": "arr_delay ~ C(month, Sum) + distance", "term": "distance"},
        },
        base_dir=tmp_path,
    )

    assert settings.required_columns() == ["year", "arr_delay", "month", "distance"]
    frame = load_dataset(settings.data_path, required_columns=settings.required_columns())
    assert len(frame) > 0
