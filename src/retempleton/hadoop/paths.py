#!/usr/bin/env python3
"""
hadoop/paths.py
===============

Resolution of user supplied paths against the cluster's filesystem.

Relative paths are taken relative to the calling user's home directory
(`/user/<identity>`), unqualified paths get the default filesystem's scheme and
authority. Paths passed to the scheduler must exist; anything that cannot be
resolved fails with `BadParam` before it reaches a command line.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import posixpath
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from .. import logger
from ..common.exceptions import BadParam

if TYPE_CHECKING:
    from fsspec import AbstractFileSystem


class HadoopPathResolver:
    """
    Qualify and check paths on a cluster filesystem.

    Parameters
    ----------
    fs : fsspec.AbstractFileSystem
        The filesystem paths are checked on, usually WebHDFS impersonating the
        calling user.
    defaultfs : str, optional
        The default filesystem URI (`fs.defaultFS`), e.g. `hdfs://nameservice1`.
        If `None` paths stay unqualified.
    user_home_dir : str
        The parent directory of user home directories, by default `/user`.
    """

    def __init__(
        self, fs: AbstractFileSystem, defaultfs: str | None = None, user_home_dir: str = "/user"
    ):
        self._fs = fs
        self._defaultfs = defaultfs.rstrip("/") if defaultfs else ""
        self._user_home_dir = user_home_dir

    def home(self, identity: str | None) -> str:
        """The home directory of `identity`."""
        if not identity:
            raise BadParam("Relative paths need a user to resolve against")
        return posixpath.join(self._user_home_dir, identity)

    def qualify(self, path: str, identity: str | None = None) -> str:
        """
        Fully qualify `path`, without checking it exists.

        Raises
        ------
        BadParam
            If `path` is empty or not a valid URI.
        """
        if not path or not path.strip():
            raise BadParam("Empty path")
        try:
            _url = urlparse(path.strip())
        except ValueError as exc:
            raise BadParam(f"Invalid path '{path}': {exc}") from exc

        if _url.scheme and len(_url.scheme) > 1:
            _prefix = f"{_url.scheme}://{_url.netloc}"
            _path = _url.path
        elif _url.scheme:
            raise BadParam(f"Invalid path '{path}'")
        else:
            _prefix = self._defaultfs
            _path = path.strip()

        if not _path:
            raise BadParam(f"Invalid path '{path}': no path component")
        if not _path.startswith("/"):
            _path = posixpath.join(self.home(identity), _path)
        return _prefix + posixpath.normpath(_path)

    def _is_default_fs(self, scheme: str, netloc: str) -> bool:
        _default = urlparse(self._defaultfs)
        # an empty authority stands for the default one of the scheme
        return bool(_default.scheme) and scheme == _default.scheme and netloc in ("", _default.netloc)

    def resolve(self, path: str, identity: str | None = None) -> str:
        """
        Qualify `path` and make sure it exists.

        Returns
        -------
        str
            The fully qualified path.

        Raises
        ------
        BadParam
            If the path is invalid, on another filesystem than the default
            one, or does not exist.
        """
        _qualified = self.qualify(path, identity)
        _url = urlparse(_qualified)
        if _url.scheme and not self._is_default_fs(_url.scheme, _url.netloc):
            raise BadParam(f"File '{path}' is not on the default filesystem '{self._defaultfs}'")
        if not self._fs.exists(_url.path):
            raise BadParam(f"File '{path}' not found")
        logger.debug(f"Resolved '{path}' to '{_qualified}'")
        return _qualified

    def resolve_list(self, paths: str | list[str], identity: str | None = None) -> list[str]:
        """Resolve a comma separated string or list of paths."""
        if isinstance(paths, str):
            paths = paths.split(",")
        return [self.resolve(_path, identity) for _path in paths if _path.strip()]

    @staticmethod
    def basename(path: str) -> str:
        """The last path component of a (qualified) path."""
        return posixpath.basename(urlparse(path).path.rstrip("/"))
