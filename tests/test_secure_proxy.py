"""Tests for delegation token sessions."""

from __future__ import annotations

import os
from unittest import mock

import msgspec
import pytest

from retempleton.common.exceptions import DelegationTokenError, NotAuthorized
from retempleton.common.tokens import TOKEN_FILE_ENV, TOKEN_SIGNATURE_KEY, Token, read_token_storage
from retempleton.secure_proxy import SecureProxySupport

TOKEN = Token(identifier=b"ident", password=b"pass", kind="WEBHDFS delegation", service="nn:9870")


@pytest.fixture
def token_config(config, tmp_path):
    token_dir = tmp_path / "tokens"
    token_dir.mkdir()
    return msgspec.structs.replace(config, token_dir=str(token_dir), token_renewer="yarn")


@pytest.fixture
def connection():
    _connection = mock.MagicMock()
    _connection.act_as.return_value = (TOKEN.encode(), "rm-token")
    return _connection


def test_disabled_is_a_no_op(config):
    proxy = SecureProxySupport(config=config, enabled=False)
    env = {"PATH": "/usr/bin"}
    args = ["jar", "x.jar"]

    assert proxy.open("alice") is None
    assert proxy.add_env(env) is env
    assert env == {"PATH": "/usr/bin"}
    assert proxy.add_args(args) is args
    assert args == ["jar", "x.jar"]
    assert proxy.token_path is None
    proxy.close()
    proxy.close()


def test_disabled_without_strong_auth(connection):
    connection.is_secure = False
    assert not SecureProxySupport(connection).enabled

    connection.is_secure = True
    assert SecureProxySupport(connection).enabled


def test_enabled_requires_connection():
    with pytest.raises(ValueError):
        SecureProxySupport(enabled=True)


def test_open(connection, token_config):
    with SecureProxySupport(connection, token_config, enabled=True) as proxy:
        path = proxy.open("alice")

        assert os.path.dirname(path) == token_config.token_dir
        assert os.path.basename(path).startswith("templeton")
        with open(path, "rb") as fil:
            assert read_token_storage(fil) == {"nn:9870": TOKEN}
        assert proxy.service_token == "rm-token"
        assert proxy.add_env({}) == {TOKEN_FILE_ENV: path}
        assert proxy.add_args(["x"]) == ["x", "-D", f"{TOKEN_SIGNATURE_KEY}=rm-token"]

    assert not os.path.exists(path)
    assert proxy.token_path is None
    assert proxy.service_token is None
    assert connection.act_as.call_args[0][0] == "alice"


def test_tokens_are_issued_as_the_user(connection, token_config):
    session = mock.MagicMock(identity="alice")
    session.fs.get_delegation_token.return_value = TOKEN.encode()
    session.rm.delegation_token.return_value = "rm-token"
    connection.act_as.side_effect = lambda identity, operation: operation(session)

    with SecureProxySupport(connection, token_config, enabled=True) as proxy:
        proxy.open("alice")

    session.fs.get_delegation_token.assert_called_once_with(renewer="yarn")
    session.rm.delegation_token.assert_called_once_with(renewer="yarn")


def test_service_token_key(connection, token_config):
    assert TOKEN_SIGNATURE_KEY == "templeton.resourcemanager.delegation.token"
    config = msgspec.structs.replace(token_config, token_signature_key="hive.metastore.token.signature")

    with SecureProxySupport(connection, config, enabled=True) as proxy:
        proxy.open("alice")
        assert proxy.add_args([]) == ["-D", "hive.metastore.token.signature=rm-token"]


def test_reopen_replaces_session(connection, token_config):
    with SecureProxySupport(connection, token_config, enabled=True) as proxy:
        first = proxy.open("alice")
        second = proxy.open("bob")

        assert first != second
        assert not os.path.exists(first)
        assert os.path.exists(second)
    assert os.listdir(token_config.token_dir) == []


def test_open_requires_identity(connection, token_config):
    proxy = SecureProxySupport(connection, token_config, enabled=True)
    with pytest.raises(NotAuthorized):
        proxy.open(None)
    connection.act_as.assert_not_called()


@pytest.mark.parametrize(
    "side_effect",
    [RuntimeError("GSS initiate failed"), None],
)
def test_open_failure_cleans_up(connection, token_config, side_effect):
    if side_effect is None:
        connection.act_as.return_value = ("AAAA", "rm-token")
    else:
        connection.act_as.side_effect = side_effect
    proxy = SecureProxySupport(connection, token_config, enabled=True)

    with pytest.raises(DelegationTokenError):
        proxy.open("alice")

    assert proxy.token_path is None
    assert proxy.service_token is None
    assert os.listdir(token_config.token_dir) == []
