#!/usr/bin/env python3
"""
complete.py
===========

Completion handling of submitted jobs.

When a job ends, the launcher calls the gateway's completion URL (Hadoop's
job end notification) or the status correlator observes a terminal state.
Either path ends in `CompleteDelegator.run`, which records the terminal status
and calls the job's callback URL once. The callback is a plain HTTP GET with
`$jobId` in the URL replaced by the job id. A failed delivery is logged and
leaves `notified` unset; it is not retried.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

from typing import TYPE_CHECKING

import msgspec
import requests

from . import logger
from .common.exceptions import NotFoundError, RestServiceError
from .common.request import make_request
from .job_state import JobState, now_ms

if TYPE_CHECKING:
    from .storage.base import TempletonStorage

JOB_ID_PLACEHOLDER = "$jobId"
DEFAULT_COMPLETE_STATUS = "done"


class CompleteResult(msgspec.Struct, frozen=True):
    """
    Outcome of a completion notification.

    Attributes
    ----------
    id : str
        The job id.
    status : str
        What happened, e.g. `'Callback sent'`.
    notified : bool
        Whether the callback has been delivered, now or before.
    """

    id: str
    status: str
    notified: bool = False


class CompleteDelegator:
    """
    Records job completion and notifies callbacks.

    Parameters
    ----------
    storage : TempletonStorage
        The job state store.
    timeout : float
        Seconds to wait for the callback's server, by default `10`.
    session : requests.Session, optional
        HTTP session for callbacks.
    """

    def __init__(
        self,
        storage: TempletonStorage,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self._storage = storage
        self._timeout = timeout
        self._session = session or requests.Session()

    def run(self, job_id: str, status: str | None = None) -> CompleteResult:
        """
        Record the completion of `job_id` and call its callback once.

        Parameters
        ----------
        job_id : str
            The job id.
        status : str, optional
            The terminal status. Defaults to an already recorded status or
            `'done'`.

        Returns
        -------
        CompleteResult
            The notification outcome.

        Raises
        ------
        NotFoundError
            If there is no record of `job_id`.
        """
        state = JobState(job_id, self._storage)
        if state.user is None and state.created is None:
            raise NotFoundError(f"No record of job '{job_id}'")

        if status or state.complete_status is None:
            state.complete_status = status or DEFAULT_COMPLETE_STATUS

        _notified = state.notified_time
        if _notified is not None:
            logger.debug(f"Callback of job '{job_id}' already sent at {_notified}")
            return CompleteResult(id=job_id, status="Callback already sent", notified=True)

        _callback = state.callback
        if not _callback:
            return CompleteResult(id=job_id, status="No callback registered")

        if not self.notify(job_id, _callback):
            return CompleteResult(id=job_id, status="Callback failed")

        state.notified_time = now_ms()
        logger.info(f"Sent callback of job '{job_id}'")
        return CompleteResult(id=job_id, status="Callback sent", notified=True)

    def notify(self, job_id: str, callback: str) -> bool:
        """Call `callback` for `job_id`. Returns whether the call succeeded."""
        _url = callback.replace(JOB_ID_PLACEHOLDER, job_id)
        try:
            make_request(self._session, _url, timeout=self._timeout, headers={"Accept": "*/*"})
        except RestServiceError as exc:
            logger.error(f"Callback '{_url}' of job '{job_id}' failed: {exc}")
            return False
        return True
