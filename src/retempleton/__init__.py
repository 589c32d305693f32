#!/usr/bin/env python3
"""
Retempleton
===========

`Retempleton` is a job submission gateway core for Apache Hadoop clusters. It
submits MapReduce jobs to the cluster's scheduler on behalf of remote, often
unprivileged, callers and keeps a durable, queryable record of those jobs.

Features:
---------
- **Admission controlled execution**: External scheduler commands run as the
  calling user with a global process ceiling, a timeout and bounded output
  capture.
- **Job launching**: Logical jar submissions are translated into a `hadoop jar`
  command line, the scheduler-assigned job id is extracted from its output and
  the job gets registered.
- **Job state store**: A pluggable, field oriented store (ZooKeeper or any
  `fsspec` filesystem such as WebHDFS) keeps job owner, progress, completion
  and parent/child links.
- **Delegation tokens**: Short lived credentials are issued for the calling
  user via [WebHDFS][1] and the [YARN ResourceManager REST API][2], so the
  gateway never hands out its own credentials.

[1]: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html
[2]: https://hadoop.apache.org/docs/stable/hadoop-yarn/hadoop-yarn-site/ResourceManagerRest.html
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"


# version
try:
    from ._version import __version__, __version_tuple__, version
except ImportError:
    __version__ = version = "0.0.0"
    __version_tuple__ = (0, 0, 0)

import pathlib

LIBRARY_NAME = __name__

# set up logging
from .common.logging import get_logger

logger = get_logger(__name__)

# type definitions
PathType = str | pathlib.Path

# specify the configuration directory
CONFIG_DIR = (
    pathlib.Path.cwd() / ".templeton"
    if (pathlib.Path.cwd() / ".templeton").exists()
    else pathlib.Path("~/.templeton").expanduser()
)
