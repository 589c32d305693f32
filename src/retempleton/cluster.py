#!/usr/bin/env python3
"""
cluster.py
==========

Access to the Hadoop cluster's REST services on behalf of a calling user.

The gateway logs in with its own, trusted identity (Kerberos keytab or
`simple` user name) and impersonates end users with Hadoop's proxy user
mechanism (`doas`). `ClusterConnection.act_as` runs an operation with an
`ImpersonatedSession` whose ResourceManager and WebHDFS clients carry the
caller's identity, and closes the session afterwards on every path.

Example
-------

```python
from retempleton.cluster import ClusterConnection
from retempleton.config import AppConfig

connection = ClusterConnection(AppConfig.load())
report = connection.act_as("alice", lambda session: session.rm.application(app_id))
```
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

# imports
import contextlib
import threading
from typing import TYPE_CHECKING, TypeVar
from urllib.parse import urlparse

import requests
from requests import auth

# module imports
from . import logger
from .common.auth import OPTIONAL, Authentication, HTTPKerberosAuth, HTTPSimpleAuth, ProxyUserAuth
from .common.exceptions import ConfigurationError
from .common.kerberos import kinit
from .hadoop.config import HadoopConfig
from .hadoop.services import active_name_node, active_resource_manager
from .yarn.filesystem import HDFSFileSystem
from .yarn.resourcemanager import ResourceManager

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from .config import AppConfig

T = TypeVar("T")


class ImpersonatedSession:
    """
    REST clients of the cluster acting as `identity`.

    The clients are created on first use and closed with `close`.

    Parameters
    ----------
    connection : ClusterConnection
        The gateway's cluster connection.
    identity : str, optional
        The user to impersonate. If `None` the session acts as the gateway.
    """

    def __init__(self, connection: ClusterConnection, identity: str | None):
        self._connection = connection
        self.identity = identity
        self._rm: ResourceManager | None = None
        self._fs: HDFSFileSystem | None = None

    def __repr__(self):
        return f"ImpersonatedSession<{self.identity or 'gateway'}>"

    @property
    def rm(self) -> ResourceManager:
        """The ResourceManager REST client."""
        if self._rm is None:
            _login = self._connection.login()
            self._rm = ResourceManager(
                self._connection.rm_address,
                auth=ProxyUserAuth(self.identity, _login) if self.identity else _login,
                timeout=self._connection.config.timeout,
                verify=self._connection.config.verify,
            )
        return self._rm

    @property
    def fs(self) -> HDFSFileSystem:
        """The WebHDFS filesystem."""
        if self._fs is None:
            self._fs = self._connection.filesystem(proxy_to=self.identity)
        return self._fs

    def close(self):
        if self._rm is not None:
            self._rm.close()
            self._rm = None
        if self._fs is not None:
            self._fs.session.close()
            self._fs = None


class ClusterConnection:
    """
    The gateway's login to the cluster and the impersonation primitive.

    Parameters
    ----------
    config : AppConfig
        The gateway configuration (security mode, keytab, service addresses).
    """

    def __init__(self, config: AppConfig):
        self.config = config
        self._login_lock = threading.Lock()
        self._addresses: dict[str, str] = {}

    def __repr__(self):
        return f"ClusterConnection<{self.authentication}>"

    @property
    def authentication(self) -> Authentication:
        """The cluster's authentication method."""
        if self.config.security == "auto":
            return Authentication(
                "kerberos" if HadoopConfig().is_kerberos_enabled else "simple"
            )
        return Authentication(self.config.security)

    @property
    def is_secure(self) -> bool:
        """Whether the cluster runs with strong (Kerberos) authentication."""
        return self.authentication == Authentication.KERBEROS

    def _select(
        self,
        service: str,
        addresses: list[str],
        find_active: Callable[[list[str], requests.Session], str | None],
    ) -> str:
        if service in self._addresses:
            return self._addresses[service]
        if len(addresses) == 1:
            return addresses[0]

        with requests.Session() as _session:
            _session.verify = self.config.verify
            _address = find_active(addresses, _session)
        if _address is None:
            raise ConfigurationError(f"No {service} node reachable at {addresses}")
        logger.info(f"Using {service} at '{_address}'")
        self._addresses[service] = _address
        return _address

    @property
    def rm_address(self) -> str:
        """
        The ResourceManager web address. Of a high availability pair, the
        active one.
        """
        if self.config.rm_address:
            return self.config.rm_address
        _addresses = HadoopConfig().resource_manager_addresses
        if not _addresses:
            raise ConfigurationError(
                "No ResourceManager address configured. Set `rm_address` or "
                "`yarn.resourcemanager.webapp.address` in `yarn-site.xml`."
            )
        return self._select("ResourceManager", _addresses, active_resource_manager)

    @property
    def hdfs_address(self) -> str:
        """
        The NameNode WebHDFS address. Of a high availability pair, the active
        one.
        """
        if self.config.hdfs_address:
            return self.config.hdfs_address
        _addresses = HadoopConfig().name_node_webhdfs_addresses
        if not _addresses:
            raise ConfigurationError(
                "No WebHDFS address configured. Set `hdfs_address` or "
                "`dfs.namenode.http-address` in `hdfs-site.xml`."
            )
        return self._select("NameNode", _addresses, active_name_node)

    def login(self) -> auth.AuthBase:
        """
        Authentication handler of the gateway's own identity.

        With Kerberos a ticket is obtained from the configured keytab first,
        unless a valid one is cached already.

        Returns
        -------
        requests.auth.AuthBase
            `HTTPKerberosAuth` or `HTTPSimpleAuth`.
        """
        if self.authentication == Authentication.KERBEROS:
            if self.config.keytab:
                with self._login_lock:
                    kinit(self.config.keytab, self.config.principal)
            return HTTPKerberosAuth(mutual_authentication=OPTIONAL)
        return HTTPSimpleAuth(self.config.gateway_user)

    def filesystem(self, proxy_to: str | None = None) -> HDFSFileSystem:
        """
        A WebHDFS filesystem logged in as the gateway.

        Parameters
        ----------
        proxy_to : str, optional
            The user to impersonate.

        Returns
        -------
        HDFSFileSystem
            The filesystem.
        """
        _url = urlparse(self.hdfs_address)
        _kerberos = self.is_secure
        if _kerberos and self.config.keytab:
            with self._login_lock:
                kinit(self.config.keytab, self.config.principal)

        logger.debug(f"Connecting to WebHDFS at '{self.hdfs_address}' ({proxy_to=})")
        return HDFSFileSystem(
            host=_url.hostname,
            port=_url.port or (9871 if _url.scheme == "https" else 9870),
            kerberos=_kerberos,
            kerb_kwargs={"mutual_authentication": OPTIONAL} if _kerberos else None,
            user=None if _kerberos else HTTPSimpleAuth(self.config.gateway_user).username,
            proxy_to=proxy_to,
            use_https=_url.scheme == "https",
            session_verify=self.config.verify,
            skip_instance_cache=True,
        )

    @contextlib.contextmanager
    def session(self, identity: str | None) -> Iterator[ImpersonatedSession]:
        """
        Context manager yielding an `ImpersonatedSession` for `identity`, closed
        on exit regardless of outcome.
        """
        _session = ImpersonatedSession(self, identity)
        try:
            yield _session
        finally:
            _session.close()

    def act_as(self, identity: str | None, operation: Callable[[ImpersonatedSession], T]) -> T:
        """
        Run `operation` with a session impersonating `identity`.

        Parameters
        ----------
        identity : str, optional
            The user to act as.
        operation : Callable[[ImpersonatedSession], T]
            The operation to run.

        Returns
        -------
        T
            The operation's result. Its exceptions propagate.
        """
        with self.session(identity) as _session:
            return operation(_session)
