#!/usr/bin/env python3
"""
storage/filesystem.py
=====================

Job state store on a filesystem. Every field is a file holding the UTF-8
encoded value. Any `fsspec` filesystem works (`filesystem`), the `hdfs`
backend uses WebHDFS logged in as the gateway.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import posixpath
from typing import TYPE_CHECKING

import fsspec

from .. import logger
from ..cluster import ClusterConnection
from ..common.exceptions import ConfigurationError, NotFoundError, StorageError
from .base import StorageType, TempletonStorage, register_storage

if TYPE_CHECKING:
    from fsspec import AbstractFileSystem

    from ..config import AppConfig


@register_storage("filesystem", "fs")
class FileSystemStorage(TempletonStorage):
    """
    Filesystem backend.

    Parameters
    ----------
    fs : fsspec.AbstractFileSystem, optional
        The filesystem to use instead of the one given by `storage_fs_url`.
    """

    def __init__(self, fs: AbstractFileSystem | None = None):
        super().__init__()
        self._fs = fs

    def _connect(self, config: AppConfig) -> AbstractFileSystem:
        if not config.storage_fs_url:
            raise ConfigurationError("`storage_fs_url` is required for filesystem storage")
        _fs, _ = fsspec.core.url_to_fs(config.storage_fs_url)
        return _fs

    def open_storage(self, config: AppConfig):
        self._root = config.storage_root.rstrip("/")
        if self._fs is None:
            self._fs = self._connect(config)
        try:
            self._fs.makedirs(self._root or "/", exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Unable to create storage root '{self._root}': {exc}") from exc
        logger.debug(f"Opened filesystem storage at '{self._root}' on {type(self._fs).__name__}")

    def close_storage(self):
        pass

    def save_field(self, kind: StorageType, record_id: str, key: str, value: str):
        _path = self.field_path(kind, record_id, key)
        try:
            self._fs.makedirs(posixpath.dirname(_path), exist_ok=True)
            self._fs.pipe_file(_path, str(value).encode("utf-8"))
        except FileNotFoundError as exc:
            raise NotFoundError(f"Unable to create '{_path}'") from exc
        except OSError as exc:
            raise StorageError(f"Unable to write '{_path}': {exc}") from exc

    def get_field(self, kind: StorageType, record_id: str, key: str) -> str | None:
        _path = self.field_path(kind, record_id, key)
        try:
            return self._fs.cat_file(_path).decode("utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Unable to read '{_path}': {exc}") from exc

    def delete(self, kind: StorageType, record_id: str) -> bool:
        _path = self.container_path(kind, record_id)
        try:
            self._fs.rm(_path, recursive=True)
        except FileNotFoundError:
            logger.debug(f"'{_path}' already deleted")
        except OSError as exc:
            logger.error(f"Unable to delete '{_path}': {exc}")
            return False
        return True

    def get_all_for_type(self, kind: StorageType) -> list[str]:
        _path = self.kind_path(kind)
        try:
            _entries = self._fs.ls(_path, detail=False)
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageError(f"Unable to list '{_path}': {exc}") from exc
        return sorted(posixpath.basename(_entry.rstrip("/")) for _entry in _entries)


@register_storage("hdfs", "webhdfs")
class HDFSStorage(FileSystemStorage):
    """Filesystem backend on the cluster's WebHDFS, logged in as the gateway."""

    def _connect(self, config: AppConfig) -> AbstractFileSystem:
        if config.storage_fs_url:
            return super()._connect(config)
        return ClusterConnection(config).filesystem()
