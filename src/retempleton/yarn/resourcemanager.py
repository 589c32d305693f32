#!/usr/bin/env python3
"""
yarn/resourcemanager.py
=======================

Python wrapper for the parts of YARN's ResourceManager web services
[REST API][1] the gateway uses: application reports and delegation tokens.

[1]: https://hadoop.apache.org/docs/stable/hadoop-yarn/hadoop-yarn-site/ResourceManagerRest.html
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

# imports
import os
import pathlib
from typing import Any
from urllib.parse import urljoin

import msgspec
import requests
from requests import auth

# module imports
from .. import PathType
from ..common.request import make_request
from .models import ApplicationReport


class ResourceManager:
    """
    YARN ResourceManager web services REST API wrapper.

    Parameters
    ----------
    address : str
        ResourceManager HTTP(S) address, e.g. `http://rm:8088`.
    auth : requests.auth.AuthBase, optional
        The authentication handler for all requests, e.g. a `ProxyUserAuth`
        impersonating the calling user, by default `None`.
    timeout : int, optional
        How many seconds to wait for the server to send data before giving up, by
        default `90`
    verify : bool
        Either a boolean, in which case it controls whether we verify the server's TLS
        certificate, or a string, in which case it must be a path to a CA bundle to use,
        by default to `True`
    proxies : dict[str, str], optional
        Dictionary mapping protocol to the URL of the proxy, by default to `None`
    """

    def __init__(
        self,
        address: str,
        auth: auth.AuthBase | None = None,
        timeout: int | (float | None) = None,
        verify: bool | (PathType | None) = None,
        proxies: dict[str, str] | None = None,
    ):
        self._address = urljoin(address, "/ws/v1/cluster/")
        self._timeout = timeout or 90
        self._verify = verify if verify is not None else True
        self._proxies = proxies
        self._auth = auth

        # setup request session
        self._session = requests.Session()
        self._session.verify = (
            str(self._verify) if isinstance(self._verify, pathlib.Path) else self._verify
        )
        if self._proxies:
            self._session.proxies = self._proxies
        self._session.auth = self._auth

    def __repr__(self):
        return f"ResourceManager<{self._address}>"

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        """Close the underlying HTTP session"""
        self._session.close()

    def _request(
        self,
        api_path: str,
        method: str = "GET",
        timeout: int | (float | None) = None,
        **kwargs,
    ) -> dict[str, Any] | str:
        """Execute request and handle response

        Parameters
        ----------
        api_path : str, optional
            The path of the API endpoint to request.
        method : str, optional
            The HTTP method to use for the request. One of {`'GET'`, `'POST'`, `'PUT'`,
             `'DELETE'`}, by default `'GET'`.
        timeout : int or float, optional
            The number of seconds to wait for the server's response before giving up,
            defaults to the client's timeout.
        **kwargs
            Additional keyword arguments to pass to the `Session.request` method.

        Returns
        -------
        dict or str
            The response from the server, either as a JSON dictionary or raw string.

        Raises
        ------
        RestHTTPError
            If the server returns a non-2xx status code.
        """
        # extract params from kwargs and drop entries with value `None`
        params = (
            {k: v for k, v in kwargs.pop("params").items() if v is not None}
            if "params" in kwargs
            else None
        )
        data = kwargs.pop("json", None)

        response = make_request(
            session=self._session,
            url=self._address,
            path=api_path,
            method=method,
            timeout=timeout or self._timeout,
            params=params,
            data=msgspec.json.encode(data) if data else None,
            **kwargs,
        )
        try:
            return msgspec.json.decode(response.content)
        except (msgspec.DecodeError, TypeError):
            return response.text

    def application(self, application_id: str, **kwargs) -> ApplicationReport:
        """
        Get the report of the application with `application_id`

        An application resource contains information about a particular
        application that was submitted to a cluster.

        Parameters
        ----------
        application_id : str
            The application Id

        Returns
        -------
        ApplicationReport
            The decoded application report.

        Raises
        ------
        RestHTTPError
            With `status_code` 404 if the application is unknown.
        """
        path = f"apps/{application_id}"
        return ApplicationReport.decode(self._request(path, **kwargs))

    def delegation_token(self, renewer: str | None = None, **kwargs) -> str:
        """
        Get a ResourceManager delegation token

        All delegation token requests must be carried out on a Kerberos
        authenticated connection (using SPNEGO). If the request impersonates a
        user (`doas`), the token is issued for that user.

        Parameters
        ----------
        renewer : str, optional
            The user who is allowed to renew the delegation token.

        Returns
        -------
        str
            The token in its URL string form.
        """
        path = "delegation-token"
        data = {"renewer": renewer or os.getenv("USER") or os.getenv("USERNAME")}
        response = self._request(path, "POST", json=data, **kwargs)
        if not isinstance(response, dict) or not response.get("token"):
            raise ValueError(f"No delegation token in ResourceManager response: {response!r}")
        return response["token"]
