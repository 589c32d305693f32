#!/usr/bin/env python3
"""
common/exceptions.py
====================

This module implements the gateway's error taxonomy and the HTTP request error
handling used by the REST clients.

Every gateway error carries an `ErrorKind` tag and a `retryable` flag, so
callers can tell a retryable `BusyError` apart from terminal failures without
walking the class hierarchy.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"


# imports
import os
import subprocess
import sys
from typing import TYPE_CHECKING

from requests import exceptions as request_exceptions

# import skein exceptions
from skein.exceptions import SkeinError, _Context
from skein.objects import Enum

if TYPE_CHECKING:
    from requests import Response

    from ..exec_service import ExecResult


class ErrorKind(Enum):
    """The closed set of gateway failure kinds.

    Attributes
    ----------
    BAD_PARAM : ErrorKind
        Structurally invalid caller input.
    NOT_AUTHORIZED : ErrorKind
        Identity not permitted to impersonate or execute.
    BUSY : ErrorKind
        Admission ceiling reached, retry later.
    QUEUE : ErrorKind
        The scheduler command ran but the submission failed.
    EXECUTION : ErrorKind
        The external process could not be run.
    TIMEOUT : ErrorKind
        The external process exceeded its timeout.
    NOT_FOUND : ErrorKind
        A record or scheduler job does not exist.
    IO : ErrorKind
        Store, token or filesystem I/O failure.
    """

    _values = (
        "BAD_PARAM",
        "NOT_AUTHORIZED",
        "BUSY",
        "QUEUE",
        "EXECUTION",
        "TIMEOUT",
        "NOT_FOUND",
        "IO",
    )


class TempletonError(SkeinError):
    """Basic gateway exception"""

    kind: ErrorKind = ErrorKind.IO
    retryable: bool = False


class BadParam(TempletonError):
    """Caller supplied input is invalid (unresolvable path, malformed job id)"""

    kind = ErrorKind.BAD_PARAM


class NotAuthorized(TempletonError):
    """Identity is not permitted to impersonate or execute"""

    kind = ErrorKind.NOT_AUTHORIZED


class BusyError(TempletonError):
    """Too many processes are running, the caller should back off and retry"""

    kind = ErrorKind.BUSY
    retryable = True


class ExecutionFailed(TempletonError):
    """The external process could not be run"""

    kind = ErrorKind.EXECUTION


class ExecTimeout(ExecutionFailed):
    """The external process was killed after exceeding its timeout"""

    kind = ErrorKind.TIMEOUT


class QueueException(TempletonError):
    """The scheduler command ran but did not enqueue a job.

    Parameters
    ----------
    message : str
        What went wrong.
    exec_result : ExecResult, optional
        The captured process result for diagnostics.
    """

    kind = ErrorKind.QUEUE

    def __init__(self, message: str, exec_result: ExecResult | None = None):
        self.exec_result = exec_result
        if exec_result is not None:
            message = (
                f"{message} (exit code {exec_result.exit_code})\n"
                f"stdout:\n{exec_result.stdout}\nstderr:\n{exec_result.stderr}"
            )
        super().__init__(message)


class NotFoundError(TempletonError):
    """A job record, storage container or scheduler job does not exist"""

    kind = ErrorKind.NOT_FOUND


class StorageError(TempletonError):
    """The job state store failed"""


class DelegationTokenError(TempletonError):
    """A delegation token could not be obtained or persisted"""


class ConfigurationError(TempletonError):
    """Gateway configuration is invalid"""


class RestServiceError(TempletonError):
    """Internal HTTP exceptions from a REST service request"""


class RestHTTPError(RestServiceError):
    """HTTP error status from a REST service request"""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RestSSLError(RestServiceError):
    """SSL exceptions from a REST service request"""


class RestProxyError(RestServiceError):
    """Proxy exceptions from a REST service request"""


class RestConnectionError(RestServiceError):
    """Connection exceptions from a REST service request"""


for exc in [
    ValueError,
    KeyError,
    TypeError,
    FileNotFoundError,
    subprocess.SubprocessError,
]:
    _Context.register_wrapper(exc)

context = _Context()


_HTTP_ERROR_HINTS = {
    400: (
        "400 Bad Request: The server couldn't process the request due to a client error. "
        "Check the request parameters and the job or application id."
    ),
    401: (
        "401 Unauthorized: The request lacks valid authentication. If the cluster "
        "is kerberized make sure the gateway holds a valid ticket (`kinit` with the "
        "gateway keytab)."
    ),
    403: (
        "403 Forbidden: The server refused the request. The gateway principal may "
        "not be allowed to impersonate the user (check `hadoop.proxyuser.*` in "
        "`core-site.xml`) or the user lacks permission on the resource."
    ),
    404: "404 Not Found: The server can't find the requested resource.",
    500: (
        "500 Internal Server Error: The server encountered an unexpected issue. "
        "This could be a server-side bug, a configuration issue, or an internal exception."
    ),
}

_CONNECTION_ERROR_HINT = (
    "{exception_msg}\n\n"
    "Connection Error: There's a problem connecting to the service. "
    "Check the configured service address, the network connection, "
    "and the service itself."
)

_PROXY_ERROR_HINT = (
    "{exception_msg}\n\n"
    "Proxy Error: There's an issue with the proxy server. Check your proxy "
    "settings. Proxies used: {proxies}"
)

_SSL_ERROR_HINT = (
    "{exception_msg}\n\n"
    "SSL Error: There's an issue with the SSL/TLS certificates in your Hadoop cluster. "
    "Check the certificates and consider providing a certificate bundle file with the "
    "`verify` setting or disabling SSL verification (not recommended)."
)


def handle_request_exception(
    exception: Exception,
    failed_response: Response | None = None,
    proxies: dict[str, str] | None = None,
):
    """Handle request exceptions for failed HTTP requests.

    Parameters
    ----------
    exception : Exception
        Exception object for failed request.
    failed_response : Response, optional
        The response of the failed request to handle
    proxies : dict[str, str], optional
        Proxies used for the request. Default is None.

    Raises
    ------
    RestHTTPError
        If the request returned an HTTP error status.
    RestProxyError
        If there is an issue with the specified proxies.
    RestSSLError
        If there is an issue with the SSL certificates used for the request.
    RestConnectionError
        If there is an issue establishing a connection for the request.
    """
    exception_msg = str(exception)

    status_code = None
    if isinstance(exception, request_exceptions.HTTPError):
        _response = exception.response if exception.response is not None else failed_response
        status_code = _response.status_code if _response is not None else None

    if status_code is not None:
        _error = RestHTTPError
        _hint = _HTTP_ERROR_HINTS.get(status_code)
        _message = f"{exception_msg}\n\n{_hint}" if _hint else exception_msg
    elif isinstance(exception, request_exceptions.ProxyError):
        _proxies = proxies or {"http": os.getenv("HTTP_PROXY"), "https": os.getenv("HTTPS_PROXY")}
        _error = RestProxyError
        _message = _PROXY_ERROR_HINT.format(exception_msg=exception_msg, proxies=_proxies)
    elif isinstance(exception, request_exceptions.SSLError):
        _error = RestSSLError
        _message = _SSL_ERROR_HINT.format(exception_msg=exception_msg)
    elif isinstance(exception, request_exceptions.ConnectionError | request_exceptions.Timeout):
        _error = RestConnectionError
        _message = _CONNECTION_ERROR_HINT.format(exception_msg=exception_msg)
    else:
        raise exception

    if failed_response is not None:
        _message = f"{_message}\n\nOriginal server response:\n{failed_response.text}"

    if _error is RestHTTPError:
        raise RestHTTPError(_message, status_code=status_code).with_traceback(sys.exc_info()[2])
    raise _error(_message).with_traceback(sys.exc_info()[2])
