#!/usr/bin/env python3
"""
common/auth.py
==============

This module contains the authentication handlers for HTTP requests against
Hadoop REST APIs.

`HTTPSimpleAuth` attaches the gateway user name to each request (`user.name`
query parameter) for clusters running with `simple` authentication. For
kerberized clusters `HTTPKerberosAuth` from `requests_kerberos` negotiates
SPNEGO with the gateway's own ticket.

`ProxyUserAuth` wraps either of them and adds the `doas` query parameter, so
the request is executed as the impersonated end user while the gateway
authenticates with its own, trusted identity.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import os

from requests import PreparedRequest, auth
from skein.objects import Enum

# import auth handlers
try:
    from requests_kerberos import OPTIONAL, HTTPKerberosAuth  # noqa: F401
except (ImportError, ModuleNotFoundError) as e:
    import inspect

    msg = inspect.cleandoc(
        """
        Package 'requests-kerberos' missing. Install with `conda`:
        $ conda install -c conda-forge requests-kerberos

        or `pip`:
        $ pip install requests-kerberos
        """
    )
    import sys

    raise type(e)(str(e) + "\n\n" + msg).with_traceback(sys.exc_info()[2]) from e

from .. import logger


class HTTPSimpleAuth(auth.AuthBase):
    """Attaches HTTP simple username Authentication to the given Request
    object.

    Parameters
    ----------
    username : str, optional
        User name to authenticate with. If not given the value of the
        `'TEMPLETON_USER_NAME'` environment variable or the current system
        user's username is used.
    """

    def __init__(self, username: str | None = None):
        self.username = (
            username
            or os.getenv("TEMPLETON_USER_NAME")
            or os.getenv("USER")
            or os.getenv("USERNAME")
        )
        if not self.username:
            raise ValueError("No user name available for 'simple' HTTP authentication")

        logger.debug(f"Using simple HTTP authentication with username '{self.username}'")

    def __call__(self, request: PreparedRequest):
        request.prepare_url(request.url, {"user.name": self.username})
        return request


class ProxyUserAuth(auth.AuthBase):
    """Executes a request as `proxy_user` on top of the gateway's own
    authentication.

    Parameters
    ----------
    proxy_user : str
        The user to impersonate (`doas` parameter).
    login_auth : requests.auth.AuthBase, optional
        The authentication handler of the gateway's login identity.
    """

    def __init__(self, proxy_user: str, login_auth: auth.AuthBase | None = None):
        self.proxy_user = proxy_user
        self.login_auth = login_auth

    def __call__(self, request: PreparedRequest):
        request.prepare_url(request.url, {"doas": self.proxy_user})
        if self.login_auth is not None:
            return self.login_auth(request)
        return request

    def __repr__(self):
        return f"ProxyUserAuth<{self.proxy_user}>"


class Authentication(Enum):
    """Authentication method of the cluster

    Attributes
    ----------
    SIMPLE : Authentication
        Simple authentication
    KERBEROS : Authentication
        Kerberos authentication
    """

    _values = ("SIMPLE", "KERBEROS")
