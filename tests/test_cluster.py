"""Tests for cluster access and impersonation."""

from __future__ import annotations

import json
from unittest import mock

import msgspec
import pytest
import requests
from fsspec.implementations.webhdfs import WebHDFS

from retempleton.cluster import ClusterConnection
from retempleton.common.auth import HTTPSimpleAuth, ProxyUserAuth
from retempleton.common.exceptions import ConfigurationError, RestHTTPError, RestServiceError
from retempleton.hadoop.config import HadoopConfig
from retempleton.hadoop.services import active_name_node, active_resource_manager
from retempleton.yarn.filesystem import HDFSFileSystem
from retempleton.yarn.resourcemanager import ResourceManager


@pytest.fixture
def cluster_config(config):
    return msgspec.structs.replace(
        config, rm_address="http://rm:8088", hdfs_address="http://nn:9870"
    )


@pytest.fixture
def connection(cluster_config):
    return ClusterConnection(cluster_config)


def _response(payload, status_code=200):
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(payload).encode()
    response.url = "http://rm:8088/ws/v1/cluster/"
    return response


def test_simple_login(connection):
    assert not connection.is_secure
    login = connection.login()
    assert isinstance(login, HTTPSimpleAuth)
    assert login.username == "templeton"


def test_security_from_hadoop_config(cluster_config, tmp_path, monkeypatch):
    conf = tmp_path / "conf"
    conf.mkdir()
    (conf / "core-site.xml").write_text(
        "<configuration><property><name>hadoop.security.authentication</name>"
        "<value>kerberos</value></property></configuration>"
    )
    monkeypatch.setenv("HADOOP_CONF_DIR", str(conf))

    connection = ClusterConnection(msgspec.structs.replace(cluster_config, security="auto"))

    assert connection.is_secure
    with pytest.raises(ConfigurationError):
        ClusterConnection(
            msgspec.structs.replace(cluster_config, security="auto", rm_address=None)
        ).rm_address


def test_impersonation(connection):
    sessions = []

    def operation(session):
        sessions.append(session)
        return session.rm, session.fs

    rm, fs = connection.act_as("alice", operation)

    assert isinstance(rm._auth, ProxyUserAuth)
    assert rm._auth.proxy_user == "alice"
    assert isinstance(fs, HDFSFileSystem)
    assert fs.pars["doas"] == "alice"
    assert fs.pars["user.name"] == "templeton"
    assert sessions[0]._rm is None
    assert sessions[0]._fs is None


def test_session_closed_on_error(connection):
    sessions = []

    def operation(session):
        sessions.append(session)
        session.rm
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        connection.act_as("alice", operation)
    assert sessions[0]._rm is None


def test_proxy_user_auth():
    request = requests.Request("GET", "http://rm:8088/ws/v1/cluster/apps/x").prepare()
    ProxyUserAuth("alice", HTTPSimpleAuth("templeton"))(request)

    assert "doas=alice" in request.url
    assert "user.name=templeton" in request.url


class TestResourceManager:
    @pytest.fixture
    def rm(self):
        _rm = ResourceManager("http://rm:8088", auth=HTTPSimpleAuth("templeton"))
        _rm._session = mock.MagicMock()
        _rm._session.proxies = {}
        return _rm

    def test_application(self, rm):
        rm._session.request.return_value = _response(
            {"app": {"id": "application_1_2", "user": "alice", "state": "RUNNING", "progress": 5.0}}
        )

        report = rm.application("application_1_2")

        assert report.user == "alice"
        assert report.progress == 5.0
        assert rm._session.request.call_args.kwargs["url"] == (
            "http://rm:8088/ws/v1/cluster/apps/application_1_2"
        )

    def test_unknown_application(self, rm):
        rm._session.request.return_value = _response({"RemoteException": {}}, status_code=404)

        with pytest.raises(RestHTTPError) as exc_info:
            rm.application("application_1_2")
        assert exc_info.value.status_code == 404

    def test_delegation_token(self, rm):
        rm._session.request.return_value = _response({"token": "abc"})

        assert rm.delegation_token(renewer="yarn") == "abc"
        _kwargs = rm._session.request.call_args.kwargs
        assert _kwargs["method"] == "POST"
        assert msgspec.json.decode(_kwargs["data"]) == {"renewer": "yarn"}

    def test_missing_delegation_token(self, rm):
        rm._session.request.return_value = _response({})
        with pytest.raises(ValueError):
            rm.delegation_token(renewer="yarn")


class TestActiveNode:
    @pytest.fixture
    def session(self):
        _session = mock.MagicMock()
        _session.proxies = {}
        return _session

    def test_active_resource_manager(self, session):
        standby = _response({}, status_code=307)
        active = _response({"clusterInfo": {}})
        session.request.side_effect = [standby, active]

        address = active_resource_manager(["http://rm1:8088", "http://rm2:8088"], session)

        assert address == "http://rm2:8088"
        assert session.request.call_args.kwargs["allow_redirects"] is False

    def test_active_name_node(self, session):
        session.request.side_effect = [
            _response({"beans": [{"State": "active"}]}),
            _response({"beans": [{"State": "standby"}]}),
        ]

        assert active_name_node(["http://nn1:9870", "http://nn2:9870"], session) == "http://nn1:9870"

    def test_unreachable_nodes(self, session):
        session.request.side_effect = requests.ConnectionError("Connection refused")
        assert active_resource_manager(["http://rm1:8088", "http://rm2:8088"], session) is None

    def test_connection_uses_active_node(self, cluster_config, monkeypatch):
        monkeypatch.setattr(
            HadoopConfig, "resource_manager_addresses", ["http://rm1:8088", "http://rm2:8088"]
        )
        find_active = mock.MagicMock(return_value="http://rm2:8088")
        monkeypatch.setattr("retempleton.cluster.active_resource_manager", find_active)
        connection = ClusterConnection(msgspec.structs.replace(cluster_config, rm_address=None))

        assert connection.rm_address == "http://rm2:8088"
        assert connection.rm_address == "http://rm2:8088"
        find_active.assert_called_once()

    def test_no_active_node(self, cluster_config, monkeypatch):
        monkeypatch.setattr(
            HadoopConfig, "resource_manager_addresses", ["http://rm1:8088", "http://rm2:8088"]
        )
        monkeypatch.setattr(
            "retempleton.cluster.active_resource_manager", mock.MagicMock(return_value=None)
        )
        connection = ClusterConnection(msgspec.structs.replace(cluster_config, rm_address=None))

        with pytest.raises(ConfigurationError):
            connection.rm_address


class TestHDFSFileSystem:
    @pytest.fixture
    def fs(self):
        return HDFSFileSystem(
            host="nn", port=9870, user="templeton", proxy_to="alice", skip_instance_cache=True
        )

    def test_delegation_token(self, fs):
        response = mock.MagicMock()
        response.json.return_value = {"Token": {"urlString": "KAAKSm9i"}}
        with mock.patch.object(WebHDFS, "_call", return_value=response) as call:
            assert fs.get_delegation_token(renewer="yarn") == "KAAKSm9i"
        call.assert_called_once_with(
            "GETDELEGATIONTOKEN", method="get", path=None, data=None, redirect=True, renewer="yarn"
        )

    def test_no_delegation_token(self, fs):
        response = mock.MagicMock()
        response.json.return_value = {"Token": None}
        with mock.patch.object(WebHDFS, "_call", return_value=response):
            with pytest.raises(ValueError):
                fs.get_delegation_token()

    def test_request_errors_are_mapped(self, fs):
        with mock.patch.object(
            WebHDFS, "_call", side_effect=requests.ConnectionError("Connection refused")
        ):
            with pytest.raises(RestServiceError):
                fs.info("/user/alice")
