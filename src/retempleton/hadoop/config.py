#!/usr/bin/env python3
"""
hadoop/config.py
================

This module implements the parts of Hadoop core, HDFS, and YARN configuration
handling the gateway needs: the cluster's security mode, the default
filesystem and the ResourceManager and WebHDFS service addresses.

Parsed configuration files are cached; the cache is cleared if the
modification time of a file changes (see `config_cache`).

Example
-------

```python
import os
from retempleton.hadoop.config import HadoopConfig

os.environ['HADOOP_CONF_DIR'] = '/etc/hadoop/conf'

HadoopConfig().is_kerberos_enabled
HadoopConfig().resource_manager_addresses
```
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

# imports
import os
import pathlib
import re
import xml.etree.ElementTree as ET
from functools import cache, wraps
from typing import TYPE_CHECKING
from urllib.parse import urlparse

# module imports
from .. import PathType, logger

if TYPE_CHECKING:
    from collections.abc import Callable

_DEFAULT_CONFIG_DIR = "/etc/hadoop/conf"


def config_cache(func: Callable):
    """
    A decorator that clears the cache of a cached parse function if the
    configuration file it is called with has been modified.

    Parameters
    ----------
    func : Callable
        The cached function to be decorated.

    Returns
    -------
    Callable
        The decorated function.
    """
    conf_files_ts = {}

    @wraps(func)
    def wrapper(conf_file, *args, **kwargs):
        if isinstance(conf_file, pathlib.Path):
            _mtime = conf_file.stat().st_mtime
            if conf_file in conf_files_ts and conf_files_ts[conf_file] < _mtime:
                func.cache_clear()
            conf_files_ts[conf_file] = _mtime

        return func(conf_file, *args, **kwargs)

    wrapper.cache_clear = func.cache_clear
    return wrapper


@config_cache
@cache
def _parse_hadoop_config(config: PathType) -> dict[str, str]:
    """
    Parse a Hadoop configuration file into a dictionary of property names and
    values.

    Parameters
    ----------
    config : PathType
        The path to the Hadoop configuration file, e.g. `core-site.xml`.

    Returns
    -------
    dict[str, str]
        Property names mapped to their values.
    """
    root = ET.parse(str(config)).getroot()
    return {
        prop.findtext("name"): prop.findtext("value")
        for prop in root.findall("./property")
        if prop.findtext("name") is not None
    }


class HadoopConfig:
    """
    A singleton to read the Hadoop cluster configuration (`core-site.xml`,
    `yarn-site.xml`, `hdfs-site.xml`).

    The configuration directory is taken from the `config_path` given at first
    instantiation or `set_config_path`, otherwise from the `HADOOP_CONF_DIR`,
    `YARN_CONF_DIR` or `HDFS_CONF_DIR` environment variables, defaulting to
    `/etc/hadoop/conf`.
    """

    _instance: HadoopConfig | None = None
    _config_path: PathType | None = None

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, config_path: PathType | None = None):
        if config_path:
            self.set_config_path(config_path)

    @property
    def config_dir(self) -> pathlib.Path:
        """
        The Hadoop configuration directory.

        Returns
        -------
        pathlib.Path
            The path to the Hadoop configuration directory.
        """
        return pathlib.Path(
            self._config_path
            or os.getenv("HADOOP_CONF_DIR")
            or os.getenv("YARN_CONF_DIR")
            or os.getenv("HDFS_CONF_DIR")
            or _DEFAULT_CONFIG_DIR
        )

    def set_config_path(self, config_path: PathType) -> bool:
        """
        Set the Hadoop configuration directory.

        Parameters
        ----------
        config_path : PathType
            The Hadoop configuration directory, or one of its `*-site.xml` files.

        Returns
        -------
        bool
            `True` if `core-site.xml` was found in the directory.

        Raises
        ------
        FileNotFoundError
            If `core-site.xml` is not found in the directory.
        """
        _path = (
            pathlib.Path(config_path).parent
            if str(config_path).endswith("-site.xml")
            else pathlib.Path(config_path)
        )
        if not (_path / "core-site.xml").exists():
            raise FileNotFoundError(f"'core-site.xml' not found in '{_path}'")

        logger.debug(f"Setting hadoop config path to '{_path}'")
        type(self)._config_path = _path
        return True

    def get(self, key: str, default: str | None = None) -> str | None:
        """
        Get the value of `key` from the Hadoop configuration files.

        Values referencing another key (`${other.key}`) are interpolated.

        Parameters
        ----------
        key : str
            The property name.
        default : str, optional
            Returned if the key is not set in any file.

        Returns
        -------
        str | None
            The property value.

        Raises
        ------
        FileNotFoundError
            If the configuration directory holds no configuration files.
        """
        _conf_files = sorted(self.config_dir.glob("*-site.xml"))
        if not _conf_files:
            raise FileNotFoundError(
                f"No config files found in the directory '{self.config_dir}'. "
                "You can specify the Hadoop configuration directory by using the "
                "`HadoopConfig().set_config_path` method or by setting one of the following "
                "environment variables: `HADOOP_CONF_DIR`, `YARN_CONF_DIR`, or `HDFS_CONF_DIR`."
            )

        _value = next(
            (
                _parse_hadoop_config(_file)[key]
                for _file in _conf_files
                if key in _parse_hadoop_config(_file)
            ),
            default,
        )

        # Note: hadoop config files can use value interpolation like,
        # <value>${yarn.resourcemanager.hostname}:8088</value>
        if _value and "${" in _value:
            _value = re.sub(
                r"\$\{(.*?)\}", lambda m: self.get(m.group(1), "") or "", _value
            )

        return _value

    @property
    def defaultfs(self) -> str | None:
        """
        The default filesystem, `fs.defaultFS`, unless overridden by the
        `HADOOP_DEFAULT_FS` environment variable.
        """
        return os.getenv("HADOOP_DEFAULT_FS") or self.get("fs.defaultFS")

    @property
    def is_kerberos_enabled(self) -> bool:
        """
        Checks if Kerberos authentication is enabled.

        This is determined by the `HADOOP_AUTH` environment variable or the
        `hadoop.security.authentication` configuration key.
        """
        _auth = os.getenv("HADOOP_AUTH") or self.get("hadoop.security.authentication", "simple")
        return _auth.lower() == "kerberos"

    @property
    def yarn_https_only(self) -> bool:
        """Whether `yarn.http.policy` is `HTTPS_ONLY`."""
        return self.get("yarn.http.policy") == "HTTPS_ONLY"

    @property
    def hdfs_https_only(self) -> bool:
        """Whether `dfs.http.policy` is `HTTPS_ONLY`."""
        return self.get("dfs.http.policy") == "HTTPS_ONLY"

    @property
    def resource_manager_addresses(self) -> list[str]:
        """
        The ResourceManager web address(es), one per ResourceManager of a high
        availability cluster.
        """
        if self.yarn_https_only:
            _key, _scheme = "yarn.resourcemanager.webapp.https.address", "https"
        else:
            _key, _scheme = "yarn.resourcemanager.webapp.address", "http"

        _rm_ids = self.get("yarn.resourcemanager.ha.rm-ids")
        if _rm_ids:
            return [
                f"{_scheme}://{self.get(f'{_key}.{rm_id.strip()}')}"
                for rm_id in _rm_ids.split(",")
                if self.get(f"{_key}.{rm_id.strip()}")
            ]
        if self.get(_key):
            return [f"{_scheme}://{self.get(_key)}"]
        return []

    @property
    def name_node_webhdfs_addresses(self) -> list[str]:
        """
        The NameNode WebHDFS address(es), one per NameNode of a high
        availability cluster.
        """
        _nameservice = urlparse(self.defaultfs).hostname if self.defaultfs else None
        if self.hdfs_https_only:
            _key, _scheme = "dfs.namenode.https-address", "https"
        else:
            _key, _scheme = "dfs.namenode.http-address", "http"

        _nn_ids = self.get(f"dfs.ha.namenodes.{_nameservice}") if _nameservice else None
        if _nn_ids:
            return [
                f"{_scheme}://{self.get(f'{_key}.{_nameservice}.{nn_id.strip()}')}"
                for nn_id in _nn_ids.split(",")
                if self.get(f"{_key}.{_nameservice}.{nn_id.strip()}")
            ]
        if self.get(_key):
            return [f"{_scheme}://{self.get(_key)}"]
        return []
