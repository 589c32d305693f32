#!/usr/bin/env python3
"""
services.py
===========

Wiring of the gateway's components.

`Templeton` holds one instance of each component, built from an `AppConfig`.
The executor is shared by all callers of a process; construct `Templeton`
once and pass it around.

Example
-------

```python
from retempleton.delegator import JarLaunchSpec
from retempleton.services import Templeton

with Templeton.from_config() as templeton:
    result = templeton.jar.run("alice", JarLaunchSpec(jar="wordcount.jar", args=["in", "out"]))
    templeton.status.run("alice", result.id)
```
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

from typing import TYPE_CHECKING

from . import PathType, logger
from .cleanup import JobStateCleanup
from .cluster import ClusterConnection
from .complete import CompleteDelegator
from .config import AppConfig
from .delegator import JarDelegator
from .exec_service import ExecService
from .hadoop.config import HadoopConfig
from .status import StatusDelegator
from .storage import get_storage

if TYPE_CHECKING:
    from .storage.base import TempletonStorage


class Templeton:
    """
    The gateway's components.

    Parameters
    ----------
    config : AppConfig
        The gateway configuration.
    storage : TempletonStorage, optional
        An opened job state store. By default the configured backend.
    exec_service : ExecService, optional
        The executor. By default a new one.
    connection : ClusterConnection, optional
        The cluster connection. By default a new one.
    """

    def __init__(
        self,
        config: AppConfig,
        storage: TempletonStorage | None = None,
        exec_service: ExecService | None = None,
        connection: ClusterConnection | None = None,
    ):
        self.config = config
        self.connection = connection or ClusterConnection(config)
        self.storage = storage or get_storage(config)
        self.exec_service = exec_service or ExecService(config)
        self.complete = CompleteDelegator(self.storage, timeout=config.callback_timeout)
        self.status = StatusDelegator(self.connection, self.storage, self.complete)
        self.jar = JarDelegator(
            config,
            self.exec_service,
            self.storage,
            connection=self.connection,
            defaultfs=self._defaultfs(),
        )
        self.cleanup = JobStateCleanup(self.storage, config.cleanup_max_age)

    @classmethod
    def from_config(cls, path: PathType | None = None) -> Templeton:
        """Build the gateway from the configuration file at `path`."""
        return cls(AppConfig.load(path))

    def __repr__(self):
        return f"Templeton<{self.storage!r}, {self.connection!r}>"

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        self.cleanup.stop()
        self.storage.close_storage()

    @staticmethod
    def _defaultfs() -> str | None:
        try:
            return HadoopConfig().defaultfs
        except FileNotFoundError:
            logger.debug("No Hadoop configuration found, paths stay unqualified")
            return None
