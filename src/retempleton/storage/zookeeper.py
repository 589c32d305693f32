#!/usr/bin/env python3
"""
storage/zookeeper.py
====================

Job state store on ZooKeeper, the default backend. Every field is a znode
holding the UTF-8 encoded value, so each field write is atomic on its own.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

from typing import TYPE_CHECKING

from kazoo.client import KazooClient
from kazoo.exceptions import KazooException, NodeExistsError, NoNodeError
from kazoo.handlers.threading import KazooTimeoutError

from .. import logger
from ..common.exceptions import NotFoundError, StorageError
from .base import StorageType, TempletonStorage, register_storage

if TYPE_CHECKING:
    from ..config import AppConfig


@register_storage("zookeeper", "zk")
class ZooKeeperStorage(TempletonStorage):
    """
    ZooKeeper backend.

    Parameters
    ----------
    client : kazoo.client.KazooClient, optional
        A client to use instead of creating one from the configuration.
    """

    def __init__(self, client: KazooClient | None = None):
        super().__init__()
        self._client = client

    def open_storage(self, config: AppConfig):
        self._root = config.storage_root.rstrip("/")
        if self._client is None:
            self._client = KazooClient(
                hosts=config.zookeeper_hosts, timeout=config.zookeeper_session_timeout
            )
        try:
            self._client.start(timeout=config.zookeeper_session_timeout)
            self._client.ensure_path(self._root or "/")
        except (KazooException, KazooTimeoutError) as exc:
            raise StorageError(
                f"Unable to connect to ZooKeeper at '{config.zookeeper_hosts}': {exc}"
            ) from exc
        logger.debug(f"Opened ZooKeeper storage at '{config.zookeeper_hosts}{self._root}'")

    def close_storage(self):
        if self._client is not None:
            self._client.stop()
            self._client.close()

    def save_field(self, kind: StorageType, record_id: str, key: str, value: str):
        _path = self.field_path(kind, record_id, key)
        _data = str(value).encode("utf-8")
        try:
            try:
                self._client.set(_path, _data)
            except NoNodeError:
                try:
                    self._client.create(_path, _data, makepath=True)
                except NodeExistsError:
                    # created concurrently
                    self._client.set(_path, _data)
        except NoNodeError as exc:
            raise NotFoundError(f"Unable to create '{_path}'") from exc
        except KazooException as exc:
            raise StorageError(f"Unable to write '{_path}': {exc}") from exc

    def get_field(self, kind: StorageType, record_id: str, key: str) -> str | None:
        _path = self.field_path(kind, record_id, key)
        try:
            _data, _ = self._client.get(_path)
        except NoNodeError:
            return None
        except KazooException as exc:
            raise StorageError(f"Unable to read '{_path}': {exc}") from exc
        return _data.decode("utf-8") if _data is not None else None

    def delete(self, kind: StorageType, record_id: str) -> bool:
        _path = self.container_path(kind, record_id)
        try:
            self._client.delete(_path, recursive=True)
        except NoNodeError:
            logger.debug(f"'{_path}' already deleted")
        except KazooException as exc:
            logger.error(f"Unable to delete '{_path}': {exc}")
            return False
        return True

    def get_all_for_type(self, kind: StorageType) -> list[str]:
        _path = self.kind_path(kind)
        try:
            return sorted(self._client.get_children(_path))
        except NoNodeError:
            return []
        except KazooException as exc:
            raise StorageError(f"Unable to list '{_path}': {exc}") from exc
