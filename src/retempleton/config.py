#!/usr/bin/env python3
"""
config.py
=========

Gateway configuration.

The configuration is read from a YAML file (by default
`<CONFIG_DIR>/templeton.yaml`), then overridden by `TEMPLETON_<FIELD>`
variables from a `.env` file next to it, the working directory's `.env` file
and finally the process environment. List valued fields are given as comma
separated strings in environment variables.

Example `templeton.yaml`:

```yaml
templeton_jar: hdfs:///apps/templeton/templeton.jar
exec_programs:
  hadoop: /usr/bin/hadoop
exec_max_procs: 16
sudo: /usr/bin/sudo
storage_class: zookeeper
zookeeper_hosts: zk1:2181,zk2:2181,zk3:2181
completion_url: http://gateway:50111/templeton/v1/internal/complete/$jobId
```
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import os
import pathlib
from typing import Literal

import msgspec
from dotenv import dotenv_values, find_dotenv

from . import CONFIG_DIR, PathType, logger
from .common.exceptions import ConfigurationError
from .common.tokens import TOKEN_SIGNATURE_KEY

ENV_PREFIX = "TEMPLETON_"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "templeton.yaml"


class AppConfig(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """
    Gateway settings.

    Attributes
    ----------
    exec_programs : dict[str, str]
        Logical program names the executor may run, mapped to executables.
    exec_envs : list[str]
        Names of gateway environment variables passed on to spawned processes.
    exec_encoding : str
        Encoding of captured process output.
    exec_timeout : float
        Seconds before a spawned process is killed.
    exec_max_procs : int
        Maximum number of concurrently running processes.
    exec_max_output_bytes : int
        Maximum number of bytes kept per output stream.
    exec_denied_users : list[str]
        Identities never impersonated.
    exec_allowed_users : list[str], optional
        If set, the only identities that may be impersonated.
    sudo : str, optional
        Path to `sudo`. If set, processes run as the calling user.
    cluster_hadoop : str
        The `hadoop` executable on the cluster nodes.
    templeton_jar : str, optional
        Location of the launcher (controller) jar.
    controller_class : str
        Main class of the launcher jar.
    lib_jars : list[str]
        Jars shipped with the launcher job.
    completion_url : str, optional
        Gateway URL the launcher calls on completion; `$jobId` is replaced.
    storage_class : str
        Job state store backend name.
    storage_root : str
        Root path of the job state store.
    storage_fs_url : str, optional
        `fsspec` URL of the filesystem backend, e.g. `webhdfs://nn:9870`.
    zookeeper_hosts : str
        ZooKeeper connect string.
    zookeeper_session_timeout : float
        ZooKeeper session timeout in seconds.
    security : {'auto', 'kerberos', 'simple'}
        Cluster security mode. `'auto'` reads it from the Hadoop configuration.
    token_dir : str, optional
        Directory of the per-request delegation token files.
    token_renewer : str, optional
        Renewer of issued delegation tokens, by default the calling user.
    token_signature_key : str
        Job configuration key the ResourceManager delegation token is passed
        under. The launched controller must read the token from this key.
    """

    # executor
    exec_programs: dict[str, str] = msgspec.field(
        default_factory=lambda: {"hadoop": "hadoop", "date": "date"}
    )
    exec_envs: list[str] = msgspec.field(
        default_factory=lambda: [
            "HADOOP_PREFIX",
            "HADOOP_HOME",
            "HADOOP_CONF_DIR",
            "JAVA_HOME",
            "HADOOP_HOME_WARN_SUPPRESS",
            "PATH",
        ]
    )
    exec_encoding: str = "utf-8"
    exec_timeout: float = 10.0
    exec_max_procs: int = 16
    exec_max_output_bytes: int = 1024 * 1024
    exec_denied_users: list[str] = msgspec.field(default_factory=lambda: ["root"])
    exec_allowed_users: list[str] | None = None
    sudo: str | None = None

    # launcher
    cluster_hadoop: str = "hadoop"
    templeton_jar: str | None = None
    controller_class: str = "org.apache.hive.hcatalog.templeton.tool.TempletonControllerJob"
    lib_jars: list[str] = msgspec.field(default_factory=list)
    user_home_dir: str = "/user"
    completion_url: str | None = None
    callback_retry_attempts: int = 3
    callback_retry_interval: int = 5000
    callback_timeout: float = 10.0

    # job state store
    storage_class: str = "zookeeper"
    storage_root: str = "/templeton-hadoop"
    storage_fs_url: str | None = None
    zookeeper_hosts: str = "localhost:2181"
    zookeeper_session_timeout: float = 30.0
    cleanup_max_age: float = 7 * 24 * 3600.0
    cleanup_interval: float = 12 * 3600.0

    # cluster access
    security: Literal["auto", "kerberos", "simple"] = "auto"
    keytab: str | None = None
    principal: str | None = None
    gateway_user: str | None = None
    rm_address: str | None = None
    hdfs_address: str | None = None
    timeout: float = 90.0
    verify: bool | str = True
    token_dir: str | None = None
    token_renewer: str | None = None
    token_signature_key: str = TOKEN_SIGNATURE_KEY

    @classmethod
    def load(cls, path: PathType | None = None) -> AppConfig:
        """
        Load the configuration.

        Parameters
        ----------
        path : PathType, optional
            The YAML configuration file, by default `<CONFIG_DIR>/templeton.yaml`.
            A missing default file yields the defaults; a missing explicit file
            is an error.

        Returns
        -------
        AppConfig
            The loaded configuration.

        Raises
        ------
        ConfigurationError
            If the file is missing, malformed or holds invalid values.
        """
        _path = pathlib.Path(path) if path is not None else DEFAULT_CONFIG_FILE

        values = {}
        try:
            with _path.open("rb") as fil:
                values = msgspec.yaml.decode(fil.read()) or {}
            logger.debug(f"Read gateway configuration from '{_path}'")
        except FileNotFoundError as exc:
            if path is not None:
                raise ConfigurationError(f"Configuration file '{_path}' not found") from exc
            logger.debug(f"No configuration file at '{_path}', using defaults")
        except msgspec.DecodeError as exc:
            raise ConfigurationError(f"Malformed configuration file '{_path}': {exc}") from exc

        if not isinstance(values, dict):
            raise ConfigurationError(f"Configuration file '{_path}' must hold a mapping")

        values.update(cls._env_overrides(_path.parent / ".env"))

        try:
            return msgspec.convert(values, type=cls, strict=False)
        except msgspec.ValidationError as exc:
            raise ConfigurationError(f"Invalid gateway configuration: {exc}") from exc

    @classmethod
    def _env_overrides(cls, env_file: pathlib.Path) -> dict[str, object]:
        # precedence: config dir .env < cwd .env < process environment
        _env = {
            **dotenv_values(env_file),
            **dotenv_values(find_dotenv(usecwd=True)),
            **os.environ,
        }

        overrides = {}
        for field in msgspec.structs.fields(cls):
            _value = _env.get(f"{ENV_PREFIX}{field.name.upper()}")
            if _value is None:
                continue
            if field.name == "exec_programs":
                _value = dict(item.split("=", 1) for item in _value.split(",") if "=" in item)
            elif "list" in str(field.type):
                _value = [item.strip() for item in _value.split(",") if item.strip()]
            overrides[field.name] = _value
        return overrides

    def to_dict(self) -> dict[str, object]:
        """The configuration as a dictionary."""
        return msgspec.to_builtins(self)
