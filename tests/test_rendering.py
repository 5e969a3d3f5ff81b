import pytest

from parstats.config import load_settings
from parstats.rendering import (
    format_directives,
    generate_array_spec,
    normalize_sbatch_options,
    render_array_script,
    render_combine_script,
    render_mpi_script,
    render_script,
    render_sequential_script,
)


@pytest.fixture
def settings(analysisfile):
    return load_settings(analysisfile)


@pytest.fixture
def cluster_settings(analysisfile):
    return load_settings(analysisfile, env="cluster")


def test_normalize_sbatch_options():
    options = normalize_sbatch_options(
        {"--cpus-per-task": 2, "Name": "x", "memory": "4G", None: "skip"}
    )

    assert options == {"cpus_per_task": 2, "job_name": "x", "mem": "4G"}


def test_format_directives():
    lines = format_directives(
        {
            "job_name": "demo",
            "ntasks_per_node": 8,
            "exclusive": None,
            "requeue": True,
            "hold": False,
            "output": "logs dir/out_%j.out",
        }
    )

    assert lines == [
        "#SBATCH --job-name=demo",
        "#SBATCH --ntasks-per-node=8",
        "#SBATCH --exclusive",
        "#SBATCH --requeue",
        "#SBATCH --output='logs dir/out_%j.out'",
    ]


def test_generate_array_spec():
    assert generate_array_spec(100) == "0-99"
    assert generate_array_spec(1) == "0-0"
    assert generate_array_spec(100, max_concurrent=10) == "0-99%10"
    assert generate_array_spec(indices=[7, 1, 2, 3]) == "1-3,7"
    assert generate_array_spec(indices=[4]) == "4"
    assert generate_array_spec(indices=[0, 2, 4, 5], max_concurrent=2) == "0,2,4-5%2"


@pytest.mark.parametrize(
    "kwargs",
    [{"num_items": 0}, {}, {"indices": []}, {"indices": [-1, 2]}],
)
def test_generate_array_spec_rejects_empty(kwargs):
    with pytest.raises(ValueError):
        generate_array_spec(**kwargs)


def test_array_script(settings, tmp_path):
    script = render_array_script(settings, num_units=5)
    lines = script.splitlines()

    assert lines[0] == "#!/bin/bash"
    assert "#SBATCH --job-name=flights-array" in lines
    assert "#SBATCH --array=0-4" in lines
    assert "#SBATCH --ntasks=1" in lines
    assert "#SBATCH --time=00:05:00" in lines
    assert "#SBATCH --mem=1G" in lines
    assert f"#SBATCH --output={tmp_path}/logs/flights-array_%A_%a.out" in lines
    assert not any(line.startswith("#SBATCH --account") for line in lines)
    assert (
        f'"$PY_EXEC_RESOLVED" -m parstats array-task "$SLURM_ARRAY_TASK_ID" '
        f"--config {tmp_path}/Analysisfile.toml"
    ) in lines
    assert "PY_EXEC_RESOLVED=${PY_EXEC:-python}" in lines
    assert lines[-1] == "exit $EXECUTION_STATUS"


def test_array_script_directives_precede_commands(settings):
    lines = render_array_script(settings, num_units=3).splitlines()
    last_directive = max(i for i, line in enumerate(lines) if line.startswith("#SBATCH"))
    first_command = next(
        i for i, line in enumerate(lines[1:], start=1) if line and not line.startswith("#")
    )

    assert last_directive < first_command


def test_array_script_cluster_environment(cluster_settings):
    script = render_array_script(cluster_settings, num_units=5)

    assert "#SBATCH --array=0-4%2" in script
    assert "#SBATCH --account=acc" in script
    assert "#SBATCH --partition=short" in script
    assert "module load python/3.11" in script
    assert "--env cluster" in script


def test_array_script_missing_indices(settings):
    script = render_array_script(settings, num_units=10, indices=[8, 2, 3])

    assert "#SBATCH --array=2-3,8" in script


def test_array_script_rejects_out_of_range_indices(settings):
    with pytest.raises(ValueError, match="out of range"):
        render_array_script(settings, num_units=3, indices=[1, 3])


def test_mpi_script(cluster_settings):
    script = render_mpi_script(cluster_settings)

    assert "#SBATCH --job-name=flights-mpi" in script
    assert "#SBATCH --nodes=2" in script
    assert "#SBATCH --ntasks=6" in script
    assert "#SBATCH --array" not in script
    assert "module load openmpi" in script
    assert 'srun "$PY_EXEC_RESOLVED" -m mpi4py.futures -m parstats parallel' in script


def test_sequential_and_combine_scripts(settings):
    sequential = render_sequential_script(settings)
    combine = render_combine_script(settings)

    assert "#SBATCH --job-name=flights-sequential" in sequential
    assert '"$PY_EXEC_RESOLVED" -m parstats sequential' in sequential
    assert "#SBATCH --job-name=flights-combine" in combine
    assert '"$PY_EXEC_RESOLVED" -m parstats combine' in combine
    assert "_%j.out" in combine


def test_extra_options_override(tmp_path):
    from parstats.config import build_settings

    settings = build_settings(
        {
            "data": {"path": "d.csv"},
            "model": {"formula": "y ~ x", "term": "x"},
            "slurm": {"python": "/opt/venv/bin/python", "extra": {"qos": "debug", "output": "o.log"}},
        },
        base_dir=tmp_path,
    )

    script = render_sequential_script(settings)

    assert "#SBATCH --qos=debug" in script
    assert "#SBATCH --output=o.log" in script
    assert "PY_EXEC_RESOLVED=${PY_EXEC:-/opt/venv/bin/python}" in script
    # No Analysisfile on disk, so nothing to forward
    assert "--config" not in script


def test_render_script_dispatch(settings):
    assert "--array=0-2" in render_script("array", settings, num_units=3)
    assert "parstats parallel" in render_script("mpi", settings)

    with pytest.raises(ValueError, match="Unknown script kind"):
        render_script("dask", settings)
    with pytest.raises(ValueError, match="number of units"):
        render_script("array", settings)
