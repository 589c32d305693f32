#!/usr/bin/env python3
"""
delegator.py
============

Submission of jobs to the cluster's scheduler.

A submission runs the launcher (controller) job with `hadoop jar`; the
controller in turn runs the user's job on the cluster. The command line is

    jar <templeton jar> <controller class> [-libjars <jars>] -D<launcher settings>...
        [-D <token signature>] -- <hadoop> jar <user jar> [main class]
        [-libjars <jars>] [-files <files>] -D<key=value>... <args>...

All user supplied paths are resolved before anything runs. The job id the
scheduler assigns is parsed from the command's output and the job is
registered in the job state store.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import contextlib
import re
from typing import TYPE_CHECKING

import msgspec

from . import logger
from .common.exceptions import BadParam, ConfigurationError, QueueException
from .exec_service import ExecResult
from .hadoop.paths import HadoopPathResolver
from .job_state import JobState
from .secure_proxy import SecureProxySupport

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from fsspec import AbstractFileSystem

    from .cluster import ClusterConnection
    from .config import AppConfig
    from .exec_service import ExecService
    from .storage.base import TempletonStorage

# announcement lines of the job id, in order of preference
JOB_ID_PATTERNS = (
    re.compile(r"templeton-job-id:\s*(\S+)"),
    re.compile(r"Submitted job:\s*(\S+)"),
    re.compile(r"Running job:\s*(\S+)"),
    re.compile(r"Submitted application\s+(\S+)"),
)

_APPLICATION_ID = re.compile(r"^application_([^_\s]+)_(\d+)$")


def extract_job_id(output: str | None) -> str | None:
    """
    The job id announced in the output of a submission command.

    Returns
    -------
    str | None
        The first announced id, `None` if there is none. A YARN application
        id is given as the job id of that application, so
        `application_1700000000000_0001` becomes `job_1700000000000_0001`.
    """
    if not output:
        return None
    for _pattern in JOB_ID_PATTERNS:
        _match = _pattern.search(output)
        if _match:
            _app = _APPLICATION_ID.match(_match.group(1))
            if _app:
                return f"job_{_app.group(1)}_{_app.group(2)}"
            return _match.group(1)
    return None


class JarLaunchSpec(msgspec.Struct, kw_only=True):
    """
    A jar job submission.

    Attributes
    ----------
    jar : str
        Location of the job jar.
    main_class : str, optional
        The main class, if the jar has no `Main-Class` manifest entry.
    libjars : list[str]
        Jars added to the job's classpath.
    files : list[str]
        Files shipped to the job's working directory.
    defines : list[str]
        Job configuration overrides as `key=value`.
    args : list[str]
        Arguments of the main class.
    statusdir : str, optional
        Directory the controller writes the job's output and exit value to.
    callback : str, optional
        URL to notify on completion.
    """

    jar: str
    main_class: str | None = None
    libjars: list[str] = []
    files: list[str] = []
    defines: list[str] = []
    args: list[str] = []
    statusdir: str | None = None
    callback: str | None = None


class EnqueueResult(msgspec.Struct, frozen=True):
    """
    A submitted job.

    Attributes
    ----------
    id : str
        The scheduler job id.
    exec : ExecResult
        The output of the submission command.
    """

    id: str
    exec: ExecResult


class LauncherDelegator:
    """
    Runs launcher jobs and registers the submitted jobs.

    Parameters
    ----------
    config : AppConfig
        The gateway configuration.
    exec_service : ExecService
        The shared executor.
    storage : TempletonStorage
        The job state store.
    connection : ClusterConnection, optional
        The cluster connection, used for path resolution and delegation
        tokens. Required unless `fs` is given.
    fs : fsspec.AbstractFileSystem, optional
        A filesystem to resolve paths on instead of WebHDFS impersonating the
        caller.
    defaultfs : str, optional
        The default filesystem URI unqualified paths are qualified with.
    proxy_factory : Callable[[], SecureProxySupport], optional
        Creates the delegation session of a submission.
    """

    program = "hadoop"

    def __init__(  # noqa: PLR0913
        self,
        config: AppConfig,
        exec_service: ExecService,
        storage: TempletonStorage,
        connection: ClusterConnection | None = None,
        fs: AbstractFileSystem | None = None,
        defaultfs: str | None = None,
        proxy_factory: Callable[[], SecureProxySupport] | None = None,
    ):
        if connection is None and fs is None:
            raise ValueError("Either a cluster connection or a filesystem is required")
        self._config = config
        self._exec_service = exec_service
        self._storage = storage
        self._connection = connection
        self._fs = fs
        self._defaultfs = defaultfs
        self._proxy_factory = proxy_factory or (
            lambda: SecureProxySupport(connection, config, enabled=None if connection else False)
        )

    @contextlib.contextmanager
    def resolver(self, identity: str | None) -> Iterator[HadoopPathResolver]:
        """Path resolver on the filesystem as seen by `identity`."""
        if self._fs is not None:
            yield HadoopPathResolver(self._fs, self._defaultfs, self._config.user_home_dir)
            return
        with self._connection.session(identity) as _session:
            yield HadoopPathResolver(_session.fs, self._defaultfs, self._config.user_home_dir)

    @staticmethod
    def _define(args: list[str], name: str, value: object | None):
        if value is not None:
            args.extend(["-D", f"{name}={value}"])

    def make_launcher_args(
        self, identity: str | None, statusdir: str | None, copy_files: list[str]
    ) -> list[str]:
        """
        Arguments of the launcher job.

        Parameters
        ----------
        identity : str, optional
            The submitting user.
        statusdir : str, optional
            The resolved status directory.
        copy_files : list[str]
            Resolved files the controller copies to the job's working directory.
        """
        if not self._config.templeton_jar:
            raise ConfigurationError("`templeton_jar` is not configured")

        args = ["jar", self._config.templeton_jar, self._config.controller_class]
        if self._config.lib_jars:
            args.extend(["-libjars", ",".join(self._config.lib_jars)])

        self._define(args, "user.name", identity)
        self._define(args, "templeton.statusdir", statusdir)
        self._define(args, "templeton.copy", ",".join(copy_files) if copy_files else None)
        self._define(args, "templeton.storage.class", self._config.storage_class)
        self._define(args, "templeton.storage.root", self._config.storage_root)
        if self._config.completion_url:
            self._define(args, "job.end.notification.url", self._config.completion_url)
            self._define(args, "job.end.retry.attempts", self._config.callback_retry_attempts)
            self._define(args, "job.end.retry.interval", self._config.callback_retry_interval)
        return args

    def enqueue(
        self,
        identity: str | None,
        launcher_args: list[str],
        job_args: list[str],
        callback: str | None = None,
    ) -> EnqueueResult:
        """
        Run the launcher job as `identity` and register the submitted job.

        Raises
        ------
        QueueException
            If the command failed or did not announce a job id. No job is
            registered then.
        """
        with self._proxy_factory() as _proxy:
            _proxy.open(identity)
            _args = [*launcher_args, *_proxy.add_args([]), "--", *job_args]
            _result = self._exec_service.run(
                identity, self.program, _args, _proxy.add_env({})
            )

            if _result.exit_code != 0:
                logger.error(
                    f"Submission for '{identity}' failed with exit code {_result.exit_code}"
                )
                raise QueueException("invalid exit code", _result)

            _id = extract_job_id(_result.stdout)
            if _id is None:
                logger.error(f"Submission for '{identity}' ran but announced no job id")
                raise QueueException("Unable to get job id", _result)

            JobState.register(self._storage, _id, identity, callback)
        return EnqueueResult(id=_id, exec=_result)


class JarDelegator(LauncherDelegator):
    """Submits jar jobs."""

    def run(self, identity: str | None, spec: JarLaunchSpec) -> EnqueueResult:
        """
        Submit the jar job described by `spec` as `identity`.

        Parameters
        ----------
        identity : str, optional
            The submitting user.
        spec : JarLaunchSpec
            The submission.

        Returns
        -------
        EnqueueResult
            The job id and the submission command's output.

        Raises
        ------
        BadParam
            If a path does not resolve or a definition is malformed. Nothing
            has run then.
        NotAuthorized, BusyError, ExecutionFailed, ExecTimeout
            From the executor.
        DelegationTokenError
            If delegation tokens could not be obtained.
        QueueException
            If the submission command failed or announced no job id.
        """
        _launcher_args, _job_args = self.make_args(identity, spec)
        _result = self.enqueue(identity, _launcher_args, _job_args, spec.callback)
        logger.info(f"Submitted jar job '{_result.id}' for '{identity}'")
        return _result

    def make_args(self, identity: str | None, spec: JarLaunchSpec) -> tuple[list[str], list[str]]:
        """The launcher and job arguments of `spec`, with all paths resolved."""
        for _define in spec.defines:
            if "=" not in _define or _define.startswith("="):
                raise BadParam(f"Invalid definition '{_define}', expected 'key=value'")

        with self.resolver(identity) as _resolver:
            _jar = _resolver.resolve(spec.jar, identity)
            _libjars = _resolver.resolve_list(spec.libjars, identity)
            _files = _resolver.resolve_list(spec.files, identity)
            _statusdir = _resolver.qualify(spec.statusdir, identity) if spec.statusdir else None

        _launcher_args = self.make_launcher_args(identity, _statusdir, [_jar])

        _job_args = [self._config.cluster_hadoop, "jar", HadoopPathResolver.basename(_jar)]
        if spec.main_class:
            _job_args.append(spec.main_class)
        if _libjars:
            _job_args.extend(["-libjars", ",".join(_libjars)])
        if _files:
            _job_args.extend(["-files", ",".join(_files)])
        _job_args.extend(f"-D{_define}" for _define in spec.defines)
        _job_args.extend(spec.args)
        return _launcher_args, _job_args
