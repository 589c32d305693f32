"""Tests for jar job submission."""

from __future__ import annotations

import os
from unittest import mock

import msgspec
import pytest

from retempleton.common.exceptions import (
    BadParam,
    BusyError,
    ConfigurationError,
    DelegationTokenError,
    QueueException,
)
from retempleton.common.tokens import TOKEN_FILE_ENV, Token
from retempleton.delegator import JarDelegator, JarLaunchSpec, extract_job_id
from retempleton.exec_service import ExecResult
from retempleton.job_state import JobState
from retempleton.secure_proxy import SecureProxySupport

TOKEN = Token(identifier=b"ident", password=b"pass", kind="WEBHDFS delegation", service="nn:9870")


@pytest.fixture
def delegator(config, fake_exec, storage, local_fs):
    return JarDelegator(config, fake_exec, storage, fs=local_fs)


@pytest.mark.parametrize(
    ("output", "job_id"),
    [
        ("Submitted job: job_001\n", "job_001"),
        ("INFO mapreduce.Job: Running job: job_1700000000000_0001\n", "job_1700000000000_0001"),
        ("templeton-job-id:job_a_7\nSubmitted job: job_b_8", "job_a_7"),
        ("Submitted application application_1_2", "job_1_2"),
        ("Job started", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_job_id(output, job_id):
    assert extract_job_id(output) == job_id


def test_submit(delegator, fake_exec, storage, jar_file):
    fake_exec.result = ExecResult(exit_code=0, stdout="Submitted job: job_001", stderr="")

    result = delegator.run("alice", JarLaunchSpec(jar=str(jar_file)))

    assert result.id == "job_001"
    assert result.exec.exit_code == 0
    state = JobState("job_001", storage)
    assert state.user == "alice"
    assert state.created is not None
    assert fake_exec.calls[0]["identity"] == "alice"
    assert fake_exec.calls[0]["program"] == "hadoop"


def test_submit_registers_callback(delegator, fake_exec, storage, jar_file):
    fake_exec.result = ExecResult(exit_code=0, stdout="Submitted job: job_001", stderr="")

    delegator.run("alice", JarLaunchSpec(jar=str(jar_file), callback="http://cb/$jobId"))

    assert JobState("job_001", storage).callback == "http://cb/$jobId"


def test_failed_submission_registers_nothing(delegator, fake_exec, storage, jar_file):
    fake_exec.result = ExecResult(exit_code=1, stdout="", stderr="Exception in thread main")

    with pytest.raises(QueueException) as exc_info:
        delegator.run("alice", JarLaunchSpec(jar=str(jar_file)))

    assert exc_info.value.exec_result.exit_code == 1
    assert JobState.get_jobs(storage) == []


def test_submission_without_job_id(delegator, fake_exec, storage, jar_file):
    fake_exec.result = ExecResult(exit_code=0, stdout="nothing to see", stderr="")

    with pytest.raises(QueueException, match="job id"):
        delegator.run("alice", JarLaunchSpec(jar=str(jar_file)))

    assert JobState.get_jobs(storage) == []


def test_executor_errors_propagate(delegator, fake_exec, storage, jar_file):
    fake_exec.error = BusyError("Too many processes")

    with pytest.raises(BusyError):
        delegator.run("alice", JarLaunchSpec(jar=str(jar_file)))
    assert JobState.get_jobs(storage) == []


@pytest.mark.parametrize(
    "changes",
    [
        {"jar": "missing.jar"},
        {"libjars": ["/nonexistent/lib.jar"]},
        {"files": ["/nonexistent/data.txt"]},
        {"jar": ""},
        {"statusdir": "x:status"},
        {"defines": ["no-equals-sign"]},
        {"defines": ["=value"]},
    ],
)
def test_bad_params_before_spawn(delegator, fake_exec, jar_file, changes):
    spec = msgspec.structs.replace(JarLaunchSpec(jar=str(jar_file)), **changes)

    with pytest.raises(BadParam):
        delegator.run("alice", spec)
    assert fake_exec.calls == []


def test_relative_paths_resolve_against_home(config, fake_exec, storage, local_fs, tmp_path):
    home = tmp_path / "home"
    (home / "alice").mkdir(parents=True)
    (home / "alice" / "job.jar").write_bytes(b"PK")
    delegator = JarDelegator(
        msgspec.structs.replace(config, user_home_dir=str(home)), fake_exec, storage, fs=local_fs
    )

    _, job_args = delegator.make_args("alice", JarLaunchSpec(jar="job.jar"))

    assert job_args[:3] == ["hadoop", "jar", "job.jar"]
    with pytest.raises(BadParam):
        delegator.make_args(None, JarLaunchSpec(jar="job.jar"))


def test_argument_layout(delegator, config, jar_file, tmp_path):
    lib = tmp_path / "jobs" / "lib.jar"
    lib.write_bytes(b"PK")
    data = tmp_path / "jobs" / "stopwords.txt"
    data.write_text("the\n")
    spec = JarLaunchSpec(
        jar=str(jar_file),
        main_class="org.example.WordCount",
        libjars=[str(lib)],
        files=[str(data)],
        defines=["mapreduce.job.queuename=etl", "a=b=c"],
        args=["in", "out"],
        statusdir="/status/wc",
    )

    launcher_args, job_args = delegator.make_args("alice", spec)

    assert launcher_args[:3] == ["jar", config.templeton_jar, config.controller_class]
    for define in [
        "user.name=alice",
        "templeton.statusdir=/status/wc",
        f"templeton.copy={jar_file}",
        "templeton.storage.class=filesystem",
        f"templeton.storage.root={config.storage_root}",
        f"job.end.notification.url={config.completion_url}",
        "job.end.retry.attempts=3",
        "job.end.retry.interval=5000",
    ]:
        idx = launcher_args.index(define)
        assert launcher_args[idx - 1] == "-D"

    assert job_args == [
        "hadoop",
        "jar",
        "wordcount.jar",
        "org.example.WordCount",
        "-libjars",
        str(lib),
        "-files",
        str(data),
        "-Dmapreduce.job.queuename=etl",
        "-Da=b=c",
        "in",
        "out",
    ]


def test_command_line(delegator, fake_exec, jar_file):
    fake_exec.result = ExecResult(exit_code=0, stdout="Submitted job: job_001", stderr="")

    delegator.run("alice", JarLaunchSpec(jar=str(jar_file), args=["x"]))

    args = fake_exec.calls[0]["args"]
    separator = args.index("--")
    assert args[0] == "jar"
    assert args[separator + 1 : separator + 4] == ["hadoop", "jar", "wordcount.jar"]
    assert args[-1] == "x"
    assert fake_exec.calls[0]["env"] == {}


def test_missing_launcher_jar(config, fake_exec, storage, local_fs, jar_file):
    delegator = JarDelegator(
        msgspec.structs.replace(config, templeton_jar=None), fake_exec, storage, fs=local_fs
    )
    with pytest.raises(ConfigurationError):
        delegator.run("alice", JarLaunchSpec(jar=str(jar_file)))
    assert fake_exec.calls == []


def test_requires_connection_or_filesystem(config, fake_exec, storage):
    with pytest.raises(ValueError):
        JarDelegator(config, fake_exec, storage)


class TestDelegationTokens:
    @pytest.fixture
    def token_config(self, config, tmp_path):
        token_dir = tmp_path / "tokens"
        token_dir.mkdir()
        return msgspec.structs.replace(config, token_dir=str(token_dir))

    @pytest.fixture
    def connection(self):
        _connection = mock.MagicMock()
        _connection.act_as.return_value = (TOKEN.encode(), "rm-token")
        return _connection

    @pytest.fixture
    def proxies(self):
        return []

    @pytest.fixture
    def secure_delegator(self, token_config, fake_exec, storage, local_fs, connection, proxies):
        def factory():
            proxy = SecureProxySupport(connection, token_config, enabled=True)
            proxies.append(proxy)
            return proxy

        return JarDelegator(
            token_config, fake_exec, storage, fs=local_fs, proxy_factory=factory
        )

    def test_tokens_are_passed_on(self, secure_delegator, fake_exec, token_config, jar_file):
        seen = {}

        def check_token_file():
            _path = fake_exec.calls[-1]["env"][TOKEN_FILE_ENV]
            seen["exists"] = os.path.exists(_path)
            seen["path"] = _path

        fake_exec.on_run = check_token_file
        fake_exec.result = ExecResult(exit_code=0, stdout="Submitted job: job_001", stderr="")

        secure_delegator.run("alice", JarLaunchSpec(jar=str(jar_file)))

        assert seen["exists"]
        assert not os.path.exists(seen["path"])
        assert os.listdir(token_config.token_dir) == []
        args = fake_exec.calls[0]["args"]
        idx = args.index("templeton.resourcemanager.delegation.token=rm-token")
        assert args[idx - 1] == "-D"
        assert idx < args.index("--")

    @pytest.mark.parametrize(
        ("result", "error", "expected"),
        [
            (ExecResult(exit_code=1, stdout="", stderr=""), None, QueueException),
            (ExecResult(exit_code=0, stdout="", stderr=""), None, QueueException),
            (None, BusyError("busy"), BusyError),
        ],
    )
    def test_token_file_removed_on_failure(
        self, secure_delegator, fake_exec, token_config, proxies, jar_file, result, error, expected
    ):
        fake_exec.result = result
        fake_exec.error = error

        with pytest.raises(expected):
            secure_delegator.run("alice", JarLaunchSpec(jar=str(jar_file)))

        assert os.listdir(token_config.token_dir) == []
        assert proxies[0].token_path is None

    def test_token_failure(self, secure_delegator, connection, fake_exec, token_config, jar_file):
        connection.act_as.side_effect = RuntimeError("GSS initiate failed")

        with pytest.raises(DelegationTokenError):
            secure_delegator.run("alice", JarLaunchSpec(jar=str(jar_file)))

        assert fake_exec.calls == []
        assert os.listdir(token_config.token_dir) == []
