#!/usr/bin/env python3
"""
status.py
=========

Live status of submitted jobs.

`StatusDelegator.run` asks the ResourceManager for the application behind a
job id, impersonating the caller, and reconciles the answer with the job
state store: the progress is recorded, and a terminal state records the
completion and triggers the callback. Polling and the launcher's completion
notification may both observe the end of a job; either path is safe to run
repeatedly.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import re
from typing import TYPE_CHECKING

from . import logger
from .common.exceptions import BadParam, NotAuthorized, NotFoundError, RestHTTPError, TempletonError
from .job_state import JobState
from .yarn.models import QueueStatus

if TYPE_CHECKING:
    from .cluster import ClusterConnection
    from .complete import CompleteDelegator
    from .storage.base import TempletonStorage

_JOB_ID_PATTERN = re.compile(r"^job_([^_\s]+)_(\d+)$")


def parse_job_id(job_id: str) -> str:
    """
    The YARN application id of a MapReduce job id.

    `job_1700000000000_0001` belongs to `application_1700000000000_0001`.

    Raises
    ------
    BadParam
        If `job_id` is not a job id.
    """
    _match = _JOB_ID_PATTERN.match(job_id or "")
    if _match is None:
        raise BadParam(f"Invalid job id {job_id!r}")
    return f"application_{_match.group(1)}_{_match.group(2)}"


class StatusDelegator:
    """
    Queries and reconciles job status.

    Parameters
    ----------
    connection : ClusterConnection
        The cluster connection used to query the ResourceManager.
    storage : TempletonStorage
        The job state store.
    completer : CompleteDelegator, optional
        Notified when a terminal state is observed.
    """

    def __init__(
        self,
        connection: ClusterConnection,
        storage: TempletonStorage,
        completer: CompleteDelegator | None = None,
    ):
        self._connection = connection
        self._storage = storage
        self._completer = completer

    def run(self, identity: str | None, job_id: str) -> QueueStatus:
        """
        The current status of `job_id`, as seen by `identity`.

        Returns
        -------
        QueueStatus
            Status and profile of the job.

        Raises
        ------
        BadParam
            If `job_id` is malformed. The scheduler is not contacted then.
        NotAuthorized
            If the job is recorded with a different owner.
        NotFoundError
            If the scheduler does not know the job.
        """
        _app_id = parse_job_id(job_id)
        state = JobState(job_id, self._storage)
        _owner = state.user
        if _owner is not None and identity != _owner:
            logger.warning(f"'{identity}' is not allowed to see job '{job_id}' of '{_owner}'")
            raise NotAuthorized(f"User '{identity}' is not the owner of job '{job_id}'")

        try:
            _report = self._connection.act_as(
                identity, lambda session: session.rm.application(_app_id)
            )
        except RestHTTPError as exc:
            if exc.status_code == 404:  # noqa: PLR2004
                raise NotFoundError(f"Job '{job_id}' not found") from exc
            raise

        status = QueueStatus.from_report(job_id, _report)
        if _owner is not None:
            self.reconcile(state, status)
        return status

    def reconcile(self, state: JobState, status: QueueStatus):
        """Record `status` in the job record. Failures are logged."""
        try:
            state.percent_complete = status.status.percent_complete
            if status.status.is_complete:
                _final = status.status.final_status
                if state.complete_status is None:
                    state.complete_status = _final
                if self._completer is not None:
                    self._completer.run(state.id, _final)
        except TempletonError as exc:
            logger.error(f"Unable to record status of job '{state.id}': {exc}")
