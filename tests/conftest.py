import os
import sys
import textwrap

import pytest


# Ensure 'src' is on sys.path for package imports in tests
TESTS_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(TESTS_DIR, os.pardir))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from parstats.analysis import ModelSpec  # noqa: E402
from parstats.data import sample_dataset  # noqa: E402

YEARS = (2001, 2002, 2003, 2004, 2005)


@pytest.fixture
def flights_frame():
    return sample_dataset("flights", years=YEARS, rows_per_year=150, seed=7)


@pytest.fixture
def flights_spec():
    return ModelSpec(formula="arr_delay ~ dep_delay + distance", term="distance")


@pytest.fixture
def flights_csv(tmp_path, flights_frame):
    path = tmp_path / "data" / "flights.csv"
    path.parent.mkdir()
    flights_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def analysisfile(tmp_path, flights_csv):
    content = textwrap.dedent(
        """
        [default.data]
        path = "data/flights.csv"
        unit_column = "year"

        [default.model]
        formula = "arr_delay ~ dep_delay + distance"
        term = "distance"

        [default.output]
        rows = "results/rows.csv"
        results = "results/results.csv"

        [default.slurm]
        job_name = "flights"
        time = "00:05:00"
        mem = "1G"

        [cluster.slurm]
        account = "acc"
        partition = "short"
        max_concurrent = 2
        nodes = 2
        ntasks = 6
        modules = ["python/3.11", "openmpi"]
        """
    )
    path = tmp_path / "Analysisfile.toml"
    path.write_text(content, encoding="utf-8")
    return path
