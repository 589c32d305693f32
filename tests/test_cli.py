"""Tests for the command line interface."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from retempleton.__main__ import cli
from retempleton.job_state import JobState


@pytest.fixture
def config_file(config, tmp_path):
    path = tmp_path / "templeton.yaml"
    path.write_text(
        "storage_class: filesystem\n"
        "storage_fs_url: 'file://'\n"
        f"storage_root: '{config.storage_root}'\n"
        "security: simple\n"
        "gateway_user: templeton\n"
        "cleanup_max_age: 3600\n"
    )
    return str(path)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def jobs(storage):
    JobState.register(storage, "job_a_1", "alice", created=1000)
    JobState.register(storage, "job_a_2", "bob")
    JobState("job_a_1", storage).add_child("job_a_2")
    return storage


def _invoke(runner, config_file, *args):
    return runner.invoke(cli, ["--config", config_file, *args])


def test_jobs_ls(runner, config_file, jobs):
    result = _invoke(runner, config_file, "jobs", "ls")

    assert result.exit_code == 0, result.output
    assert "job_a_1" in result.output
    assert "bob" in result.output


def test_jobs_ls_for_user(runner, config_file, jobs):
    result = _invoke(runner, config_file, "jobs", "ls", "--user", "bob")

    assert result.exit_code == 0, result.output
    assert "job_a_2" in result.output
    assert "alice" not in result.output


def test_jobs_show(runner, config_file, jobs):
    result = _invoke(runner, config_file, "jobs", "show", "job_a_1")

    assert result.exit_code == 0, result.output
    assert "job_a_2" in result.output

    result = _invoke(runner, config_file, "jobs", "show", "job_x_9")
    assert result.exit_code == 1
    assert "No record" in result.output


def test_jobs_rm(runner, config_file, jobs):
    result = _invoke(runner, config_file, "jobs", "rm", "job_a_1", "job_x_9")

    assert result.exit_code == 0, result.output
    assert "Removed" in result.output
    assert JobState.get_jobs(jobs) == ["job_a_2"]


def test_cleanup(runner, config_file, jobs):
    result = _invoke(runner, config_file, "cleanup")

    assert result.exit_code == 0, result.output
    assert "Deleted 1 expired job records" in result.output
    assert JobState.get_jobs(jobs) == ["job_a_2"]


def test_complete(runner, config_file, jobs):
    result = _invoke(runner, config_file, "complete", "job_a_2", "--status", "KILLED")

    assert result.exit_code == 0, result.output
    assert "No callback registered" in result.output
    assert JobState("job_a_2", jobs).complete_status == "KILLED"


def test_gateway_errors(runner, config_file, jobs):
    result = _invoke(runner, config_file, "complete", "job_x_9")
    assert result.exit_code == 1
    assert "NOT_FOUND" in result.output

    result = _invoke(runner, config_file, "status", "not-a-job-id", "--user", "alice")
    assert result.exit_code == 1
    assert "BAD_PARAM" in result.output


def test_jar_rejects_malformed_define(runner, config_file):
    result = _invoke(runner, config_file, "jar", "wordcount.jar", "-u", "alice", "-D", "novalue")

    assert result.exit_code == 2
    assert "key=value" in result.output
