#!/usr/bin/env python3
"""
exec_service.py
===============

Admission controlled execution of external programs.

`ExecService.run` spawns one process per call, optionally as the calling
user (`sudo -n -u <identity>`), and never through a shell. At most
`exec_max_procs` processes run at a time; a call arriving while all slots are
taken fails immediately with `BusyError`. Processes exceeding `exec_timeout`
are killed. Captured output is bounded to `exec_max_output_bytes` per stream.

Example
-------

```python
from retempleton.config import AppConfig
from retempleton.exec_service import ExecService

service = ExecService(AppConfig.load())
result = service.run("alice", "hadoop", ["version"])
print(result.exit_code, result.stdout)
```
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

# imports
import os
import re
import shutil
import subprocess
import threading
from typing import IO, TYPE_CHECKING

import msgspec

# module imports
from . import logger
from .common.exceptions import BusyError, ExecTimeout, ExecutionFailed, NotAuthorized

if TYPE_CHECKING:
    from .config import AppConfig

_IDENTITY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")
_READ_CHUNK_SIZE = 64 * 1024


class ExecResult(msgspec.Struct, frozen=True):
    """
    The outcome of an external process.

    Attributes
    ----------
    exit_code : int
        The process exit code.
    stdout : str
        Captured standard output.
    stderr : str
        Captured standard error.
    """

    exit_code: int
    stdout: str
    stderr: str


class _BoundedReader(threading.Thread):
    """Drains a pipe, keeping at most `limit` bytes."""

    def __init__(self, stream: IO[bytes], limit: int):
        super().__init__(daemon=True)
        self._stream = stream
        self._limit = limit
        self._chunks: list[bytes] = []
        self._kept = 0
        self.dropped = 0

    def run(self):
        with self._stream:
            for chunk in iter(lambda: self._stream.read(_READ_CHUNK_SIZE), b""):
                _room = self._limit - self._kept
                if _room > 0:
                    self._chunks.append(chunk[:_room])
                    self._kept += len(chunk[:_room])
                self.dropped += max(len(chunk) - max(_room, 0), 0)

    def text(self, encoding: str) -> str:
        _text = b"".join(self._chunks).decode(encoding, errors="replace")
        if self.dropped:
            _text += f"\n[... truncated {self.dropped} bytes]"
        return _text


class ExecService:
    """
    Runs external programs with a global concurrency ceiling.

    One instance is shared by all request threads of a gateway process.

    Parameters
    ----------
    config : AppConfig
        The gateway configuration (`exec_*` settings and `sudo`).
    """

    def __init__(self, config: AppConfig):
        self._config = config
        self._slots = threading.BoundedSemaphore(config.exec_max_procs)

    def __repr__(self):
        return f"ExecService<max_procs={self._config.exec_max_procs}>"

    def run(
        self,
        identity: str | None,
        program: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
    ) -> ExecResult:
        """
        Run `program` with `args` as `identity`.

        Parameters
        ----------
        identity : str, optional
            The user to run as. Required if `sudo` is configured.
        program : str
            A program name configured in `exec_programs`, or one of their paths.
        args : list[str], optional
            Arguments, passed verbatim.
        env : dict[str, str], optional
            Environment variables set on top of the whitelisted gateway
            environment.

        Returns
        -------
        ExecResult
            Exit code and captured output. A non-zero exit code is not an error.

        Raises
        ------
        NotAuthorized
            If `identity` may not be impersonated or `program` is not permitted.
        BusyError
            If `exec_max_procs` processes are running already.
        ExecTimeout
            If the process exceeded `exec_timeout` and was killed.
        ExecutionFailed
            If the process could not be spawned.
        """
        _program = self._resolve_program(program)
        _identity = self._check_identity(identity)
        _env = self._make_env(env)
        _cmd = self._make_command(_identity, _program, list(args or []), _env)

        if not self._slots.acquire(blocking=False):
            logger.warning(f"Rejecting '{program}' for '{identity}': too many processes")
            raise BusyError(
                f"Too many processes running ({self._config.exec_max_procs}), retry later"
            )
        try:
            logger.debug(f"Running '{_program}' with {len(_cmd)} arguments as '{_identity}'")
            return self._execute(_cmd, _env)
        finally:
            self._slots.release()

    def _resolve_program(self, program: str) -> str:
        _programs = self._config.exec_programs
        if program in _programs:
            _path = _programs[program]
        elif program in _programs.values():
            _path = program
        else:
            logger.warning(f"Program '{program}' is not permitted")
            raise NotAuthorized(f"Program '{program}' is not permitted")

        _resolved = _path if os.path.isabs(_path) else shutil.which(_path)
        if not _resolved or not os.path.isfile(_resolved) or not os.access(_resolved, os.X_OK):
            raise NotAuthorized(f"Program '{program}' is not an executable ('{_path}')")
        return _resolved

    def _check_identity(self, identity: str | None) -> str | None:
        if not identity:
            if self._config.sudo:
                raise NotAuthorized("An identity is required to run processes as a user")
            return None

        if not _IDENTITY_PATTERN.match(identity):
            logger.warning(f"Rejecting malformed identity {identity!r}")
            raise NotAuthorized(f"Invalid user name {identity!r}")
        if identity in self._config.exec_denied_users:
            logger.warning(f"Rejecting denied identity '{identity}'")
            raise NotAuthorized(f"User '{identity}' may not run processes")
        _allowed = self._config.exec_allowed_users
        if _allowed is not None and identity not in _allowed:
            logger.warning(f"Rejecting identity '{identity}', not in allowed users")
            raise NotAuthorized(f"User '{identity}' may not run processes")
        return identity

    def _make_env(self, env: dict[str, str] | None) -> dict[str, str]:
        _env = {
            key: os.environ[key] for key in self._config.exec_envs if key in os.environ
        }
        _env.update(env or {})
        return _env

    def _make_command(
        self, identity: str | None, program: str, args: list[str], env: dict[str, str]
    ) -> list[str]:
        if not self._config.sudo:
            return [program, *args]
        # sudo resets the environment, pass it explicitly through `env`
        return [
            self._config.sudo,
            "-n",
            "-u",
            identity,
            "env",
            *(f"{key}={value}" for key, value in env.items()),
            program,
            *args,
        ]

    def _execute(self, cmd: list[str], env: dict[str, str]) -> ExecResult:
        """Spawn `cmd`, wait for it and capture its output."""
        try:
            proc = subprocess.Popen(  # noqa: S603
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            raise ExecutionFailed(f"Unable to run '{cmd[0]}': {exc}") from exc

        _limit = self._config.exec_max_output_bytes
        _readers = (_BoundedReader(proc.stdout, _limit), _BoundedReader(proc.stderr, _limit))
        for _reader in _readers:
            _reader.start()

        try:
            exit_code = proc.wait(timeout=self._config.exec_timeout)
        except subprocess.TimeoutExpired as exc:
            proc.kill()
            proc.wait()
            raise ExecTimeout(
                f"'{cmd[0]}' killed after {self._config.exec_timeout} seconds"
            ) from exc
        finally:
            for _reader in _readers:
                _reader.join()

        _stdout, _stderr = (_reader.text(self._config.exec_encoding) for _reader in _readers)
        logger.debug(f"'{cmd[0]}' exited with {exit_code}")
        return ExecResult(exit_code=exit_code, stdout=_stdout, stderr=_stderr)
