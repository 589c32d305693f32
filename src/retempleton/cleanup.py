#!/usr/bin/env python3
"""
cleanup.py
==========

Periodic removal of old job records.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import threading
from typing import TYPE_CHECKING

from . import logger
from .job_state import JobState, now_ms

if TYPE_CHECKING:
    from .storage.base import TempletonStorage


class JobStateCleanup:
    """
    Deletes job records created more than `max_age` seconds ago.

    Records without a creation time are left alone.

    Parameters
    ----------
    storage : TempletonStorage
        The job state store.
    max_age : float
        Maximum record age in seconds.
    """

    def __init__(self, storage: TempletonStorage, max_age: float):
        self._storage = storage
        self._max_age_ms = int(max_age * 1000)
        self._stop = threading.Event()

    def sweep(self, now: int | None = None) -> list[str]:
        """
        Delete the expired records.

        Parameters
        ----------
        now : int, optional
            The current time (epoch ms).

        Returns
        -------
        list[str]
            The ids of the deleted records.
        """
        _now = now if now is not None else now_ms()
        deleted = []
        for _id in JobState.get_jobs(self._storage):
            _state = JobState(_id, self._storage)
            _created = _state.created
            if _created is None:
                logger.debug(f"Job '{_id}' has no creation time, keeping it")
                continue
            if _created + self._max_age_ms < _now and _state.delete():
                deleted.append(_id)

        logger.info(f"Deleted {len(deleted)} expired job records")
        return deleted

    def run_forever(self, interval: float):
        """Sweep every `interval` seconds until `stop` is called."""
        while not self._stop.is_set():
            self.sweep()
            self._stop.wait(interval)

    def stop(self):
        self._stop.set()
