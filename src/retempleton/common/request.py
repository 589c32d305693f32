#!/usr/bin/env python3
"""
common/request.py
=================

HTTP requests against the Hadoop REST services (YARN ResourceManager,
WebHDFS) and caller supplied callback URLs. Failures of the `requests` stack
are re-raised as the gateway's `RestServiceError`s with a hint on what to
check.

Example
-------

```python
from requests import Session
from retempleton.common.request import make_request

session = Session()
response = make_request(session, "http://rm:8088/ws/v1/cluster/", path="info")
```
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"


# imports
import os
from typing import Any
from urllib.parse import urljoin

from requests import Response, Session, exceptions
from urllib3 import disable_warnings
from urllib3.exceptions import InsecureRequestWarning

from .. import logger
from .exceptions import handle_request_exception

IGNORE_INSECURE_ENV = "IGNORE_INSECURE_REQUEST_WARNINGS"


def make_request(  # noqa: PLR0913
    session: Session,
    url: str,
    path: str | None = "",
    method: str | None = "GET",
    params: dict[str, Any] | None = None,
    data: dict[str, Any] | bytes | None = None,
    timeout: int | float | None = None,
    raise_for_status: bool = True,
    **kwargs,
) -> Response | None:
    """
    Send a request with `session`.

    JSON is requested unless an `Accept` header is passed in `headers`.

    Parameters
    ----------
    session : requests.Session
        The session carrying authentication, TLS verification and proxies.
    url : str
        The service's base URL, or the full URL if `path` is empty.
    path : str, optional
        Endpoint path joined to `url`.
    method : str, optional
        The HTTP method, by default `'GET'`.
    params : dict[str, Any], optional
        Query parameters.
    data : dict[str, Any] | bytes, optional
        The request body, sent as JSON content.
    timeout : int | float, optional
        Seconds to wait for the server, by default no limit.
    raise_for_status : bool
        Whether an HTTP error status is an error, by default `True`.
    **kwargs
        Passed on to `Session.request`.

    Returns
    -------
    requests.Response
        The server's response.

    Raises
    ------
    RestHTTPError
        On an HTTP error status, if `raise_for_status`.
    RestProxyError, RestSSLError, RestConnectionError
        If the server could not be reached.
    """
    if os.getenv(IGNORE_INSECURE_ENV, "False").lower() == "true":
        disable_warnings(InsecureRequestWarning)

    # hadoop services answer with xml unless asked for json
    headers = {"Accept": "application/json", **kwargs.pop("headers", {})}
    if data is not None:
        headers.setdefault("Content-Type", "application/json")

    _url = urljoin(url, path) if path else url
    response = None
    try:
        logger.debug(f"{method} '{_url}' ({params=})")
        response = session.request(
            method=method,
            url=_url,
            headers=headers,
            timeout=timeout,
            params=params,
            data=data,
            **kwargs,
        )
        logger.debug(f"'{_url}' answered {response.status_code} {response.reason}")
        if raise_for_status:
            response.raise_for_status()
        return response
    except exceptions.RequestException as exc:
        handle_request_exception(exc, response, session.proxies)
