"""Shared fixtures for the retempleton test suite."""

from __future__ import annotations

import sys

import fsspec
import pytest

from retempleton.config import AppConfig
from retempleton.exec_service import ExecResult
from retempleton.hadoop.config import HadoopConfig
from retempleton.storage import FileSystemStorage


class FakeExecService:
    """Stands in for `ExecService`, returning a canned result."""

    def __init__(self, result: ExecResult | None = None, error: Exception | None = None):
        self.result = result or ExecResult(exit_code=0, stdout="", stderr="")
        self.error = error
        self.calls = []
        self.on_run = None

    def run(self, identity, program, args=None, env=None):
        self.calls.append(
            {"identity": identity, "program": program, "args": list(args or []), "env": dict(env or {})}
        )
        if self.on_run is not None:
            self.on_run()
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep the host's Hadoop and gateway settings out of the tests."""
    for name in ("HADOOP_CONF_DIR", "YARN_CONF_DIR", "HDFS_CONF_DIR", "HADOOP_AUTH", "HADOOP_DEFAULT_FS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(HadoopConfig, "_config_path", None)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        exec_programs={"hadoop": sys.executable},
        exec_timeout=5.0,
        templeton_jar="hdfs:///apps/templeton/templeton.jar",
        storage_class="filesystem",
        storage_root=str(tmp_path / "store"),
        storage_fs_url="file://",
        security="simple",
        gateway_user="templeton",
        completion_url="http://gateway:50111/templeton/v1/internal/complete/$jobId",
    )


@pytest.fixture
def local_fs():
    return fsspec.filesystem("file")


@pytest.fixture
def storage(config, local_fs):
    _storage = FileSystemStorage(local_fs)
    _storage.open_storage(config)
    yield _storage
    _storage.close_storage()


@pytest.fixture
def fake_exec():
    return FakeExecService()


@pytest.fixture
def jar_file(tmp_path):
    path = tmp_path / "jobs" / "wordcount.jar"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"PK\x03\x04")
    return path
