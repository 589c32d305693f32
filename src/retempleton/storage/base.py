#!/usr/bin/env python3
"""
storage/base.py
===============

The field oriented job state store interface and the backend registry.

A store keeps named string fields under `(kind, id)` containers, laid out as
`<root>/<kind path>/<id>/<field>` by all backends. Each field is written
independently, so concurrent writers of different fields of the same job do
not overwrite each other.

Backends register themselves under one or more names with
`register_storage`; `get_storage` instantiates and opens the backend named by
`AppConfig.storage_class` and falls back to ZooKeeper.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import abc
from typing import TYPE_CHECKING

from skein.objects import Enum

from .. import logger
from ..common.exceptions import BadParam, StorageError

if TYPE_CHECKING:
    from collections.abc import Callable

    from ..config import AppConfig

DEFAULT_STORAGE = "zookeeper"

_KIND_PATHS = {"JOB": "jobs", "JOBTRACKING": "created", "OTHER": "overhead"}


class StorageType(Enum):
    """Kinds of records sharing one store

    Attributes
    ----------
    JOB : StorageType
        Job records.
    JOBTRACKING : StorageType
        Job creation tracking records.
    OTHER : StorageType
        Anything else.
    """

    _values = ("JOB", "JOBTRACKING", "OTHER")

    @property
    def path(self) -> str:
        """The namespace directory of the kind."""
        return _KIND_PATHS[str(self)]


def validate_id(record_id: str) -> str:
    """Return `record_id` if it can be used as a container name."""
    if not record_id or not isinstance(record_id, str) or "/" in record_id or "," in record_id:
        raise BadParam(f"Invalid id {record_id!r}")
    return record_id


class TempletonStorage(abc.ABC):
    """
    Base class of job state store backends.

    Subclasses implement the raw field protocol. Missing fields read as
    `None`; deleting a missing container is not an error.
    """

    def __init__(self):
        self._root = ""

    def __repr__(self):
        return f"{type(self).__name__}<{self._root}>"

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close_storage()

    def container_path(self, kind: StorageType, record_id: str) -> str:
        """The path of the `(kind, record_id)` container."""
        return f"{self._root}/{StorageType(kind).path}/{validate_id(record_id)}"

    def field_path(self, kind: StorageType, record_id: str, key: str) -> str:
        """The path of the field `key` of the `(kind, record_id)` container."""
        if not key or "/" in key:
            raise BadParam(f"Invalid field name {key!r}")
        return f"{self.container_path(kind, record_id)}/{key}"

    def kind_path(self, kind: StorageType) -> str:
        return f"{self._root}/{StorageType(kind).path}"

    @abc.abstractmethod
    def open_storage(self, config: AppConfig):
        """Connect to the backend."""

    @abc.abstractmethod
    def close_storage(self):
        """Release the backend connection."""

    @abc.abstractmethod
    def save_field(self, kind: StorageType, record_id: str, key: str, value: str):
        """
        Create or overwrite one field, creating the container if needed.

        Raises
        ------
        NotFoundError
            If the container can neither be found nor created.
        StorageError
            On other backend failures.
        """

    @abc.abstractmethod
    def get_field(self, kind: StorageType, record_id: str, key: str) -> str | None:
        """The value of one field, `None` if it is not set."""

    @abc.abstractmethod
    def delete(self, kind: StorageType, record_id: str) -> bool:
        """
        Delete a container with all its fields.

        Returns
        -------
        bool
            `True` if the container is gone afterwards, also if it never existed.
            Backend failures are logged and reported as `False`.
        """

    @abc.abstractmethod
    def get_all_for_type(self, kind: StorageType) -> list[str]:
        """The ids of all containers of `kind`."""

    def get_all_for_key(self, kind: StorageType, key: str, value: str) -> list[str]:
        """The ids of all containers of `kind` whose field `key` equals `value`."""
        return [
            record_id
            for record_id in self.get_all_for_type(kind)
            if self.get_field(kind, record_id, key) == value
        ]


STORAGE_BACKENDS: dict[str, Callable[[], TempletonStorage]] = {}


def register_storage(*names: str):
    """Class decorator registering a backend under `names`."""

    def decorator(cls):
        for name in names:
            STORAGE_BACKENDS[name.lower()] = cls
        return cls

    return decorator


def _open(factory: Callable[[], TempletonStorage], config: AppConfig) -> TempletonStorage:
    storage = factory()
    storage.open_storage(config)
    return storage


def get_storage(config: AppConfig) -> TempletonStorage:
    """
    Instantiate and open the backend configured as `storage_class`.

    If the name is unknown or the backend fails to open, the ZooKeeper
    backend is used instead.

    Raises
    ------
    StorageError
        If the default backend cannot be opened either.
    """
    _name = (config.storage_class or DEFAULT_STORAGE).lower()
    _factory = STORAGE_BACKENDS.get(_name)

    if _factory is None:
        logger.warning(
            f"Unknown storage class '{config.storage_class}', using '{DEFAULT_STORAGE}'. "
            f"Known: {sorted(STORAGE_BACKENDS)}"
        )
    elif _name != DEFAULT_STORAGE:
        try:
            return _open(_factory, config)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                f"Unable to open storage '{_name}' ({exc}), using '{DEFAULT_STORAGE}'"
            )

    try:
        return _open(STORAGE_BACKENDS[DEFAULT_STORAGE], config)
    except StorageError:
        raise
    except Exception as exc:
        raise StorageError(f"Unable to open storage '{DEFAULT_STORAGE}': {exc}") from exc
