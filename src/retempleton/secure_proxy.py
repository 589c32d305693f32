#!/usr/bin/env python3
"""
secure_proxy.py
===============

Delegation tokens for processes launched on behalf of a user.

On a kerberized cluster a process the gateway spawns must not use the
gateway's own credentials. `SecureProxySupport.open` obtains delegation tokens
for the calling user by impersonating it from the gateway login:

- a WebHDFS delegation token, written to a private token storage file the
  spawned Hadoop client reads via `HADOOP_TOKEN_FILE_LOCATION`,
- a ResourceManager delegation token, kept in memory and passed as a `-D`
  definition (`templeton.resourcemanager.delegation.token` by default).

`close` removes the token file and must run on every exit path; the class is a
context manager for that. On clusters without strong authentication every
method is a no-op.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import os
import tempfile
from typing import TYPE_CHECKING

from . import logger
from .common.exceptions import DelegationTokenError, NotAuthorized
from .common.tokens import TOKEN_FILE_ENV, TOKEN_SIGNATURE_KEY, Token, write_token_storage

if TYPE_CHECKING:
    from .cluster import ClusterConnection, ImpersonatedSession
    from .config import AppConfig

TOKEN_FILE_PREFIX = "templeton"


class SecureProxySupport:
    """
    Delegation session of one submission.

    Parameters
    ----------
    connection : ClusterConnection, optional
        The gateway's cluster connection, used to issue tokens. Required if
        enabled.
    config : AppConfig, optional
        The gateway configuration (`token_dir`, `token_renewer`,
        `token_signature_key`).
    enabled : bool, optional
        Whether to issue tokens. By default, if the cluster runs with Kerberos.
    """

    def __init__(
        self,
        connection: ClusterConnection | None = None,
        config: AppConfig | None = None,
        enabled: bool | None = None,
    ):
        self._connection = connection
        self._config = config if config is not None else getattr(connection, "config", None)
        self.enabled = enabled if enabled is not None else bool(connection and connection.is_secure)
        self._token_path: str | None = None
        self._service_token: str | None = None

        if self.enabled and self._connection is None:
            raise ValueError("A cluster connection is required to issue delegation tokens")

    def __repr__(self):
        return f"SecureProxySupport<enabled={self.enabled}, token_path={self._token_path}>"

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    @property
    def token_path(self) -> str | None:
        """The token storage file of the open session."""
        return self._token_path

    @property
    def service_token(self) -> str | None:
        """The in-memory service token of the open session."""
        return self._service_token

    @property
    def _signature_key(self) -> str:
        return self._config.token_signature_key if self._config else TOKEN_SIGNATURE_KEY

    def open(self, identity: str | None) -> str | None:
        """
        Open a delegation session for `identity`, closing any previous one.

        Parameters
        ----------
        identity : str
            The user to obtain tokens for.

        Returns
        -------
        str | None
            The token file path, `None` if disabled.

        Raises
        ------
        NotAuthorized
            If enabled and no identity is given.
        DelegationTokenError
            If a token could not be obtained or written. The session is closed.
        """
        self.close()
        if not self.enabled:
            return None
        if not identity:
            raise NotAuthorized("Delegation tokens need a user to act as")

        _fd, self._token_path = tempfile.mkstemp(
            prefix=TOKEN_FILE_PREFIX, dir=self._config.token_dir if self._config else None
        )
        os.close(_fd)
        try:
            _fs_token, self._service_token = self._connection.act_as(identity, self._issue_tokens)
            _token = Token.decode(_fs_token)
            with open(self._token_path, "wb") as fil:
                write_token_storage(fil, {_token.service: _token})
        except Exception as exc:
            self.close()
            raise DelegationTokenError(
                f"Unable to obtain delegation tokens for '{identity}': {exc}"
            ) from exc

        logger.debug(f"Wrote delegation token of '{identity}' to '{self._token_path}'")
        return self._token_path

    def _issue_tokens(self, session: ImpersonatedSession) -> tuple[str, str]:
        _renewer = (self._config.token_renewer if self._config else None) or session.identity
        return (
            session.fs.get_delegation_token(renewer=_renewer),
            session.rm.delegation_token(renewer=_renewer),
        )

    def add_env(self, env: dict[str, str]) -> dict[str, str]:
        """Point `HADOOP_TOKEN_FILE_LOCATION` in `env` to the token file."""
        if self.enabled and self._token_path:
            env[TOKEN_FILE_ENV] = self._token_path
        return env

    def add_args(self, args: list[str]) -> list[str]:
        """Append the `-D` definition carrying the service token to `args`."""
        if self.enabled and self._service_token:
            args.extend(["-D", f"{self._signature_key}={self._service_token}"])
        return args

    def close(self):
        """Remove the token file and forget the tokens. Safe to call repeatedly."""
        if self._token_path is not None:
            try:
                os.remove(self._token_path)
            except FileNotFoundError:
                pass
            logger.debug(f"Removed delegation token file '{self._token_path}'")
            self._token_path = None
        self._service_token = None
