#!/usr/bin/env python3
"""
common/logging.py
=================

Logging setup for the gateway. Console output is rendered with `rich` on
stderr, file output uses a plain `logging.Formatter`. The log level is taken
from the `TEMPLETON_LOG_LEVEL` environment variable unless given explicitly;
without a level only warnings and errors are emitted.

Log messages may carry user supplied text (paths, job ids, command output),
so they are not interpreted as `rich` markup.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import logging
import os
import pathlib

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from .. import LIBRARY_NAME

LOG_LEVEL_ENV = "TEMPLETON_LOG_LEVEL"

_FILE_FORMAT = "[%(levelname)s %(asctime)s %(name)s] : %(message)s"
_CONSOLE_FORMAT = "%(name)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_theme = Theme(
    {
        "log.time": "grey50",
        "repr.str": "not bold not italic grey50",
        "repr.number": "#5F8A3E",
        "repr.url": "not bold not italic underline #3C7DBF",
        "repr.path": "#3C7DBF",
        "logging.level.debug": "bold #5F8A3E",
        "logging.level.info": "#E3B505",
        "logging.level.warning": "dark_orange3",
        "logging.level.error": "bold red3",
        "logging.level.critical": "bright_white on red3",
    }
)


def _console_handler() -> RichHandler:
    handler = RichHandler(
        console=Console(stderr=True, theme=_theme),
        rich_tracebacks=True,
        log_time_format=_DATE_FORMAT,
        markup=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    return handler


def _file_handler(path: pathlib.Path | str) -> logging.FileHandler:
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def get_logger(
    name: str | None = None,
    log_level: str | int | None = None,
    log: pathlib.Path | str | bool | None = None,
) -> logging.Logger:
    """
    Get a logger with the given name.

    Parameters
    ----------
    name : str, optional
        The name of the logger, by default the library name.
    log_level : str | int, optional
        The log level of the logger. Falls back to the `TEMPLETON_LOG_LEVEL`
        environment variable.
    log : pathlib.Path | str | bool, optional
        A path to write the log to, `True` to log to the console, or `False` to
        only emit warnings and errors. By default logging is enabled if a log
        level is known.

    Returns
    -------
    logging.Logger
        The logger with the given name.
    """
    log_level = log_level or os.getenv(LOG_LEVEL_ENV)
    log = log if log is not None else log_level is not None

    _logger = logging.getLogger(name or LIBRARY_NAME)
    _logger.propagate = False

    _to_file = isinstance(log, str | pathlib.Path)
    _handler_type = logging.FileHandler if _to_file else RichHandler
    if not any(isinstance(h, _handler_type) for h in _logger.handlers):
        _logger.addHandler(_file_handler(log) if _to_file else _console_handler())

    if not log:
        _logger.setLevel(logging.WARNING)
    elif isinstance(log_level, str):
        _logger.setLevel(log_level.upper())
    else:
        _logger.setLevel(log_level or logging.INFO)
    return _logger
