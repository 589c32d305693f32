#!/usr/bin/env python3
"""
hadoop/services.py
==================

Selection of the active node of a high availability ResourceManager or
NameNode pair. Standby nodes answer, but redirect (ResourceManager) or report
`standby` (NameNode), so each candidate address is probed until an active one
is found.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

from http import HTTPStatus
from typing import TYPE_CHECKING

import msgspec
import requests

from .. import logger
from ..common.exceptions import RestHTTPError, RestServiceError
from ..common.request import make_request

if TYPE_CHECKING:
    from collections.abc import Callable


def _probe(
    session: requests.Session,
    address: str,
    path: str,
    is_active: Callable[[requests.Response], bool],
    params: dict[str, str] | None = None,
) -> tuple[bool, int]:
    try:
        response = make_request(
            session=session,
            url=address,
            path=path,
            params=params or {},
            allow_redirects=False,
            raise_for_status=False,
        )
    except RestServiceError as err:
        logger.debug(f"No service node at '{address}': {err}")
        _status = err.status_code if isinstance(err, RestHTTPError) else None
        return False, _status or HTTPStatus.SERVICE_UNAVAILABLE

    if not is_active(response):
        logger.debug(f"Service node at '{address}' is inactive ({response.status_code})")
        return False, response.status_code
    return True, response.status_code


def find_active(
    addresses: list[str],
    session: requests.Session,
    path: str,
    is_active: Callable[[requests.Response], bool],
    params: dict[str, str] | None = None,
) -> str | None:
    """
    The first active address of `addresses`.

    Parameters
    ----------
    addresses : list[str]
        Candidate node addresses.
    session : requests.Session
        The session to probe with.
    path : str
        The path probed on each node.
    is_active : Callable[[requests.Response], bool]
        Whether a node's response shows it is active.
    params : dict[str, str], optional
        Query parameters of the probe.

    Returns
    -------
    str | None
        The active address. If none is active, the last node that answered
        without a server error, otherwise `None`.
    """
    _reachable = []
    for address in addresses:
        _active, _status = _probe(session, address, path, is_active, params)
        if _active:
            logger.debug(f"Using active service node '{address}'")
            return address
        if _status < HTTPStatus.INTERNAL_SERVER_ERROR:
            _reachable.append(address)
    return _reachable[-1] if _reachable else None


def active_resource_manager(addresses: list[str], session: requests.Session) -> str | None:
    """The active ResourceManager. Standby nodes redirect to the active one."""
    return find_active(
        addresses,
        session,
        path="/ws/v1/cluster",
        is_active=lambda r: r.status_code < HTTPStatus.FOUND,
    )


def active_name_node(addresses: list[str], session: requests.Session) -> str | None:
    """The active NameNode, as reported by its `NameNodeStatus` bean."""

    def _is_active(response: requests.Response) -> bool:
        try:
            return msgspec.json.decode(response.content)["beans"][0]["State"] == "active"
        except (msgspec.DecodeError, IndexError, KeyError, TypeError):
            return False

    return find_active(
        addresses,
        session,
        path="/jmx",
        is_active=_is_active,
        params={"get": "Hadoop:service=NameNode,name=NameNodeStatus::State"},
    )
