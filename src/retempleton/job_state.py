#!/usr/bin/env python3
"""
job_state.py
============

Typed access to the job records of a job state store.

A `JobState` is a handle on the record of one job id; every property reads or
writes one field of the store, so there is no cached state that could go
stale between concurrent writers. Numeric fields are read leniently: a value
that does not parse is logged and reported as `None`.

Example
-------

```python
from retempleton.job_state import JobState

state = JobState.register(storage, "job_1700000000000_0001", user="alice")
state.percent_complete = 42.0
state.to_record()
```
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import time

import msgspec

from . import logger
from .common.exceptions import NotFoundError, StorageError
from .storage.base import StorageType, TempletonStorage, validate_id

MAX_CHILD_DEPTH = 16

# store field names
USER = "user"
CREATED = "created"
CALLBACK = "callback"
PERCENT_COMPLETE = "percentComplete"
EXIT_VALUE = "exitValue"
COMPLETED = "completed"
NOTIFIED = "notified"
CHILD_ID = "childid"
CHILDREN = "children"


def now_ms() -> int:
    """The current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class JobRecord(msgspec.Struct, frozen=True, omit_defaults=True, kw_only=True):
    """
    Snapshot of a job record.

    Attributes
    ----------
    id : str
        The job id.
    user : str, optional
        The job owner.
    created : int, optional
        Registration time (epoch ms).
    callback : str, optional
        URL notified on completion.
    percent_complete : float, optional
        Progress in percent.
    exit_value : int, optional
        Exit value of the job.
    complete_status : str, optional
        Terminal status.
    notified_time : int, optional
        Time the callback was delivered (epoch ms).
    child_id : str, optional
        Id of the job launched by the controller.
    children : tuple[JobRecord, ...]
        Snapshots of the child jobs still in the store.
    """

    id: str
    user: str | None = None
    created: int | None = None
    callback: str | None = None
    percent_complete: float | None = None
    exit_value: int | None = None
    complete_status: str | None = None
    notified_time: int | None = None
    child_id: str | None = None
    children: tuple[JobRecord, ...] = ()

    @property
    def is_empty(self) -> bool:
        """Whether the record holds no fields at all."""
        return not any(
            _value is not None and _value != ()
            for _name, _value in msgspec.structs.asdict(self).items()
            if _name != "id"
        )

    def to_dict(self) -> dict:
        return msgspec.to_builtins(self)


class JobState:
    """
    Handle on the record of `job_id` in `storage`.

    Parameters
    ----------
    job_id : str
        The job id. Must not be empty or contain `/` or `,`.
    storage : TempletonStorage
        An opened store.
    kind : StorageType
        The record kind, by default `StorageType.JOB`.
    """

    def __init__(
        self, job_id: str, storage: TempletonStorage, kind: StorageType = StorageType.JOB
    ):
        self._id = validate_id(job_id)
        self._storage = storage
        self._kind = kind

    def __repr__(self):
        return f"JobState<{self._id}>"

    @property
    def id(self) -> str:
        return self._id

    @classmethod
    def register(
        cls,
        storage: TempletonStorage,
        job_id: str,
        user: str | None,
        callback: str | None = None,
        created: int | None = None,
    ) -> JobState:
        """
        Create the record of a newly submitted job.

        Returns
        -------
        JobState
            The handle on the new record.
        """
        state = cls(job_id, storage)
        if user:
            state.user = user
        if callback:
            state.callback = callback
        state.created = created if created is not None else now_ms()
        logger.info(f"Registered job '{job_id}' for user '{user}'")
        return state

    @classmethod
    def get_jobs(cls, storage: TempletonStorage) -> list[str]:
        """The ids of all job records."""
        return storage.get_all_for_type(StorageType.JOB)

    @classmethod
    def get_jobs_for_user(cls, storage: TempletonStorage, user: str) -> list[str]:
        """The ids of all job records owned by `user`."""
        return storage.get_all_for_key(StorageType.JOB, USER, user)

    def delete(self) -> bool:
        """Delete the record. Deleting a missing record succeeds."""
        return self._storage.delete(self._kind, self._id)

    # raw field access

    def _get(self, key: str) -> str | None:
        return self._storage.get_field(self._kind, self._id, key)

    def _set(self, key: str, value: object):
        try:
            self._storage.save_field(self._kind, self._id, key, str(value))
        except NotFoundError as exc:
            raise StorageError(f"Unable to save '{key}' of job '{self._id}': {exc}") from exc

    def _get_number(self, key: str, type_: type[int] | type[float]) -> int | float | None:
        _value = self._get(key)
        if _value is None:
            return None
        try:
            return type_(_value.strip())
        except ValueError:
            logger.error(f"Unable to parse '{key}' of job '{self._id}': {_value!r}")
            return None

    # fields

    @property
    def user(self) -> str | None:
        return self._get(USER)

    @user.setter
    def user(self, value: str):
        self._set(USER, value)

    @property
    def created(self) -> int | None:
        return self._get_number(CREATED, int)

    @created.setter
    def created(self, value: int):
        self._set(CREATED, int(value))

    @property
    def callback(self) -> str | None:
        return self._get(CALLBACK)

    @callback.setter
    def callback(self, value: str):
        self._set(CALLBACK, value)

    @property
    def percent_complete(self) -> float | None:
        return self._get_number(PERCENT_COMPLETE, float)

    @percent_complete.setter
    def percent_complete(self, value: float):
        self._set(PERCENT_COMPLETE, float(value))

    @property
    def exit_value(self) -> int | None:
        return self._get_number(EXIT_VALUE, int)

    @exit_value.setter
    def exit_value(self, value: int):
        self._set(EXIT_VALUE, int(value))

    @property
    def complete_status(self) -> str | None:
        return self._get(COMPLETED)

    @complete_status.setter
    def complete_status(self, value: str):
        self._set(COMPLETED, value)

    @property
    def notified_time(self) -> int | None:
        return self._get_number(NOTIFIED, int)

    @notified_time.setter
    def notified_time(self, value: int):
        self._set(NOTIFIED, int(value))

    @property
    def child_id(self) -> str | None:
        return self._get(CHILD_ID)

    @child_id.setter
    def child_id(self, value: str):
        self._set(CHILD_ID, validate_id(value))

    # children

    @property
    def child_ids(self) -> list[str]:
        """The ids of the child jobs, in insertion order."""
        _value = self._get(CHILDREN)
        if not _value:
            return []
        return list(dict.fromkeys(_id.strip() for _id in _value.split(",") if _id.strip()))

    @child_ids.setter
    def child_ids(self, value: list[str]):
        _ids = dict.fromkeys(validate_id(_id) for _id in value)
        self._set(CHILDREN, ",".join(_ids))

    @property
    def children(self) -> list[JobState]:
        """Handles on the child jobs."""
        return [JobState(_id, self._storage) for _id in self.child_ids]

    def add_child(self, child_id: str):
        """Append `child_id` to the children, unless it is one already."""
        _ids = self.child_ids
        if child_id not in _ids:
            self.child_ids = [*_ids, child_id]

    def to_record(self, depth: int = MAX_CHILD_DEPTH) -> JobRecord:
        """
        Snapshot of the record with its children.

        Children without any fields in the store are treated as cleaned up and
        left out. Below `depth` levels of children, no further children are
        read.
        """
        _children = []
        if depth > 0:
            for _child in self.children:
                _record = _child.to_record(depth - 1)
                if _record.is_empty:
                    logger.debug(f"Child '{_child.id}' of job '{self._id}' no longer exists")
                    continue
                _children.append(_record)
        elif self.child_ids:
            logger.warning(f"Not reading children of job '{self._id}', maximum depth reached")

        return JobRecord(
            id=self._id,
            user=self.user,
            created=self.created,
            callback=self.callback,
            percent_complete=self.percent_complete,
            exit_value=self.exit_value,
            complete_status=self.complete_status,
            notified_time=self.notified_time,
            child_id=self.child_id,
            children=tuple(_children),
        )
