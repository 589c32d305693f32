"""Tests for job status queries."""

from __future__ import annotations

from unittest import mock

import pytest

from retempleton.common.exceptions import BadParam, NotAuthorized, NotFoundError, RestHTTPError, StorageError
from retempleton.complete import CompleteDelegator
from retempleton.delegator import JarDelegator, JarLaunchSpec
from retempleton.exec_service import ExecResult
from retempleton.job_state import JobState
from retempleton.status import StatusDelegator, parse_job_id
from retempleton.yarn.models import ApplicationReport

RUNNING = {
    "app": {
        "id": "application_1700000000000_0001",
        "name": "word count",
        "user": "alice",
        "queue": "default",
        "state": "RUNNING",
        "finalStatus": "UNDEFINED",
        "progress": 42.0,
        "trackingUrl": "http://rm:8088/proxy/application_1700000000000_0001/",
        "startedTime": 1700000000000,
        "finishedTime": 0,
        "diagnostics": "",
        "applicationType": "MAPREDUCE",
    }
}

JOB_ID = "job_1700000000000_0001"


def _report(**changes):
    return ApplicationReport.decode({**RUNNING["app"], **changes})


@pytest.fixture
def session():
    _session = mock.MagicMock()
    _session.rm.application.return_value = _report()
    return _session


@pytest.fixture
def connection(session):
    _connection = mock.MagicMock()
    _connection.act_as.side_effect = lambda identity, operation: operation(session)
    return _connection


@pytest.fixture
def completer():
    return mock.MagicMock(spec=CompleteDelegator)


@pytest.fixture
def delegator(connection, storage, completer):
    return StatusDelegator(connection, storage, completer)


@pytest.mark.parametrize(
    ("job_id", "app_id"),
    [
        ("job_1700000000000_0001", "application_1700000000000_0001"),
        ("job_local42_7", "application_local42_7"),
    ],
)
def test_parse_job_id(job_id, app_id):
    assert parse_job_id(job_id) == app_id


@pytest.mark.parametrize(
    "job_id",
    ["not-a-job-id", "", None, "job_1_x", "application_1_2", "job__1", "job_1_2 ", "job_1_2_3"],
)
def test_parse_job_id_malformed(job_id):
    with pytest.raises(BadParam):
        parse_job_id(job_id)


def test_malformed_id_does_not_contact_scheduler(delegator, connection):
    with pytest.raises(BadParam):
        delegator.run("alice", "not-a-job-id")
    connection.act_as.assert_not_called()


def test_report_decoding():
    report = ApplicationReport.decode(RUNNING)
    assert report.state == "RUNNING"
    assert report.tracking_url.endswith("/")
    assert not report.is_terminal
    assert _report(state="KILLED").is_terminal


def test_status_of_unrecorded_job(delegator, connection, session, storage):
    status = delegator.run("alice", JOB_ID)

    assert status.status.job_id == JOB_ID
    assert status.status.run_state == "RUNNING"
    assert status.status.percent_complete == 42.0
    assert status.profile.user == "alice"
    assert status.profile.name == "word count"
    assert connection.act_as.call_args[0][0] == "alice"
    session.rm.application.assert_called_once_with("application_1700000000000_0001")
    # nothing is recorded for jobs not submitted through the gateway
    assert JobState.get_jobs(storage) == []


def test_status_of_job_announced_as_application(
    delegator, session, config, fake_exec, storage, local_fs, jar_file
):
    fake_exec.result = ExecResult(
        exit_code=0, stdout="Submitted application application_1700000000000_0001", stderr=""
    )
    submitted = JarDelegator(config, fake_exec, storage, fs=local_fs).run(
        "alice", JarLaunchSpec(jar=str(jar_file))
    )

    status = delegator.run("alice", submitted.id)

    assert submitted.id == JOB_ID
    assert status.status.job_id == JOB_ID
    session.rm.application.assert_called_once_with("application_1700000000000_0001")


def test_progress_is_recorded(delegator, storage, completer):
    JobState.register(storage, JOB_ID, "alice")

    delegator.run("alice", JOB_ID)

    state = JobState(JOB_ID, storage)
    assert state.percent_complete == 42.0
    assert state.complete_status is None
    completer.run.assert_not_called()


def test_owner_mismatch(delegator, storage, connection):
    JobState.register(storage, JOB_ID, "alice")

    with pytest.raises(NotAuthorized):
        delegator.run("mallory", JOB_ID)
    connection.act_as.assert_not_called()


def test_terminal_state_completes(delegator, storage, session, completer):
    JobState.register(storage, JOB_ID, "alice")
    session.rm.application.return_value = _report(
        state="FINISHED", finalStatus="SUCCEEDED", progress=100.0
    )

    status = delegator.run("alice", JOB_ID)

    assert status.status.is_complete
    state = JobState(JOB_ID, storage)
    assert state.complete_status == "SUCCEEDED"
    assert state.percent_complete == 100.0
    completer.run.assert_called_once_with(JOB_ID, "SUCCEEDED")


def test_terminal_state_sends_callback_once(connection, storage, session):
    http = mock.MagicMock()
    http.request.return_value.status_code = 200
    delegator = StatusDelegator(connection, storage, CompleteDelegator(storage, session=http))
    JobState.register(storage, JOB_ID, "alice", callback="http://cb/$jobId")
    session.rm.application.return_value = _report(state="FAILED", finalStatus="FAILED")

    delegator.run("alice", JOB_ID)
    delegator.run("alice", JOB_ID)

    assert http.request.call_count == 1
    assert JobState(JOB_ID, storage).complete_status == "FAILED"
    assert JobState(JOB_ID, storage).notified_time is not None


def test_store_failures_do_not_fail_status(delegator, storage, completer):
    JobState.register(storage, JOB_ID, "alice")

    with mock.patch.object(storage, "save_field", side_effect=StorageError("read only")):
        status = delegator.run("alice", JOB_ID)

    assert status.status.run_state == "RUNNING"


def test_unknown_job(delegator, session):
    session.rm.application.side_effect = RestHTTPError("not found", status_code=404)
    with pytest.raises(NotFoundError):
        delegator.run("alice", JOB_ID)


def test_scheduler_errors_propagate(delegator, session):
    session.rm.application.side_effect = RestHTTPError("server error", status_code=500)
    with pytest.raises(RestHTTPError):
        delegator.run("alice", JOB_ID)
