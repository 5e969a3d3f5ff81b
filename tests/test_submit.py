"""Tests for handing scripts to sbatch (subprocess mocked)."""

import subprocess
from types import SimpleNamespace

import pytest

from parstats import submit as submit_mod
from parstats.errors import (
    SchedulerCommandError,
    SchedulerError,
    SchedulerTimeout,
    SubmissionError,
)
from parstats.submit import afterany_dependency, submit_script

SCRIPT = "#!/bin/bash\n#SBATCH --job-name=demo\necho hi\n"


@pytest.fixture
def fake_run(monkeypatch):
    calls = []
    outcome = {"returncode": 0, "stdout": "Submitted batch job 4242\n", "stderr": ""}

    def run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        if "raise" in outcome:
            raise outcome["raise"]
        return SimpleNamespace(
            returncode=outcome["returncode"],
            stdout=outcome["stdout"],
            stderr=outcome["stderr"],
        )

    monkeypatch.setattr(submit_mod.subprocess, "run", run)
    return SimpleNamespace(calls=calls, outcome=outcome)


def test_afterany_dependency():
    assert afterany_dependency("123") == "afterany:123"


def test_submit_returns_job_id(fake_run):
    assert submit_script(SCRIPT) == "4242"

    cmd, kwargs = fake_run.calls[0]
    assert cmd == ["sbatch"]
    assert kwargs["input"] == SCRIPT
    assert kwargs["text"] is True
    assert kwargs["timeout"] == 30


def test_submit_with_dependency_and_chdir(fake_run):
    submit_script(SCRIPT, dependency="afterany:99", chdir="/scratch/me")

    cmd, _ = fake_run.calls[0]
    assert cmd == ["sbatch", "--chdir=/scratch/me", "--dependency=afterany:99"]


def test_submit_parses_cluster_suffix(fake_run):
    fake_run.outcome["stdout"] = "Submitted batch job 17 on cluster hpc\n"

    assert submit_script(SCRIPT) == "17"


def test_rejected_script_carries_script(fake_run):
    fake_run.outcome.update(
        returncode=1,
        stdout="",
        stderr="sbatch: error: invalid partition specified: nope\n",
    )

    with pytest.raises(SubmissionError) as exc_info:
        submit_script(SCRIPT)

    error = exc_info.value
    assert "invalid partition" in str(error)
    assert error.script == SCRIPT
    assert error.metadata["command"] == "sbatch"


def test_unparseable_output(fake_run):
    fake_run.outcome["stdout"] = "something unexpected"

    with pytest.raises(SubmissionError, match="Failed to parse job ID"):
        submit_script(SCRIPT)


def test_sbatch_not_installed(fake_run):
    fake_run.outcome["raise"] = FileNotFoundError("sbatch")

    with pytest.raises(SchedulerCommandError, match="not found"):
        submit_script(SCRIPT)


def test_sbatch_timeout(fake_run):
    fake_run.outcome["raise"] = subprocess.TimeoutExpired(["sbatch"], 5)

    with pytest.raises(SchedulerTimeout) as exc_info:
        submit_script(SCRIPT, timeout=5)

    assert isinstance(exc_info.value, SchedulerError)
    assert isinstance(exc_info.value, TimeoutError)
