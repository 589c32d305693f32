#!/usr/bin/env python3
"""
storage
=======

Pluggable job state store backends. Importing the package registers the
ZooKeeper (`zookeeper`) and filesystem (`filesystem`, `hdfs`) backends.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

from .base import (
    STORAGE_BACKENDS,
    StorageType,
    TempletonStorage,
    get_storage,
    register_storage,
    validate_id,
)
from .filesystem import FileSystemStorage, HDFSStorage
from .zookeeper import ZooKeeperStorage

__all__ = [
    "STORAGE_BACKENDS",
    "FileSystemStorage",
    "HDFSStorage",
    "StorageType",
    "TempletonStorage",
    "ZooKeeperStorage",
    "get_storage",
    "register_storage",
    "validate_id",
]
