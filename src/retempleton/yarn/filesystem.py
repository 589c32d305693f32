#!/usr/bin/env python3
"""
yarn/filesystem.py
==================

The cluster's WebHDFS as an `fsspec` filesystem.

`HDFSFileSystem` reports REST failures as the gateway's `RestServiceError`s
and can issue [delegation tokens][1] for the user it impersonates, which is
how processes spawned for that user get HDFS access.

[1]: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#Get_Delegation_Token
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

from fsspec.implementations.webhdfs import WebHDFS

from ..common.exceptions import handle_request_exception


class HDFSFileSystem(WebHDFS):
    """
    WebHDFS filesystem of the gateway.

    Takes the arguments of `fsspec.implementations.webhdfs.WebHDFS`; with
    `proxy_to` every call is made on behalf of that user.
    """

    def _call(self, op, method="get", path=None, data=None, redirect=True, **kwargs):
        # filesystem errors (FileNotFoundError, PermissionError) pass unchanged
        try:
            return super()._call(op, method=method, path=path, data=data, redirect=redirect, **kwargs)
        except Exception as exc:  # noqa: BLE001
            handle_request_exception(exc, proxies=self.session.proxies)

    def get_delegation_token(
        self, renewer: str | None = None, service: str | None = None, kind: str | None = None
    ) -> str:
        """
        Issue an HDFS delegation token.

        Parameters
        ----------
        renewer : str, optional
            The user allowed to renew the token, by default the token owner.
        service : str, optional
            The token service, by default the NameNode's.
        kind : str, optional
            The token kind, by default `HDFS_DELEGATION_TOKEN`.

        Returns
        -------
        str
            The token in its URL string form.

        Raises
        ------
        ValueError
            If the NameNode issued no token, e.g. on an insecure cluster.
        """
        _params = {
            _key: _value
            for _key, _value in (("renewer", renewer), ("service", service), ("kind", kind))
            if _value
        }
        _token = self._call("GETDELEGATIONTOKEN", **_params).json().get("Token")
        if not _token or not _token.get("urlString"):
            raise ValueError("No delegation token issued for this user and security context")
        return _token["urlString"]
