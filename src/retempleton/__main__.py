#!/usr/bin/env python3
"""
Retempleton
===========

Command line interface of the `Retempleton` job submission gateway core.

Commands:
---------
- **jar**: Submit a MapReduce jar job on behalf of a user.
- **status**: Query the live status of a submitted job.
- **complete**: Record the completion of a job and notify its callback.
- **jobs**: List, show and remove job records of the job state store.
- **cleanup**: Delete expired job records, once or periodically.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import functools
import os
import pathlib
import shutil
from datetime import datetime

import rich_click as click
from rich.console import Console
from rich.table import Table
from rich.traceback import install

from . import get_logger
from .common.exceptions import TempletonError
from .common.logging import LOG_LEVEL_ENV
from .delegator import JarLaunchSpec
from .job_state import JobRecord, JobState
from .services import Templeton

# install rich traceback
install(show_locals=True, max_frames=5)

# click rich configuration
click.rich_click.USE_RICH_MARKUP = True

logger = get_logger(__name__)

# set terminal width
_TERMINAL_WIDTH = shutil.get_terminal_size().columns


#
# validation functions
#
def _validate_config_dir(ctx, param, value):
    if value is None:
        return value
    value = pathlib.Path(value).resolve().absolute()
    if not (value / "core-site.xml").exists():
        raise click.BadParameter(
            "Invalid configuration directory. Please provide a directory containing "
            "the `core-site.xml` file."
        )
    return value


def _validate_define(ctx, param, value):
    for _define in value:
        if "=" not in _define:
            raise click.BadParameter(f"'{_define}' is not of the form 'key=value'")
    return value


def _handle_errors(func):
    """Report gateway errors as command failures."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TempletonError as exc:
            _hint = " (retry later)" if exc.retryable else ""
            raise click.ClickException(f"{exc.kind}: {exc}{_hint}") from exc

    return wrapper


# create a output table
def _make_output_table(title: str, header: list[tuple[str, dict]], rows: list[list[str]], **kwargs):
    """
    Create a table for output.

    Parameters
    ----------
    title : str
        The title of the table.
    header : list[tuple[str, dict]]
        The header of the table. Each tuple contains the column name and a
        dictionary of keyword arguments to pass to `rich.table.Table.add_column`.
    rows : list[list[str]]
        The rows of the table. Each list contains the values for a row.

    Returns
    -------
    table : rich.table.Table
        The table.
    """
    table = Table(
        show_header=any(h[0] for h in header),
        header_style="bold deep_sky_blue1",
        show_lines=False,
        box=None,
        title=title,
        min_width=min(120, _TERMINAL_WIDTH),
        title_justify="left",
        expand=True,
        **kwargs,
    )
    for i, (col, header_kwargs) in enumerate(header):
        if "style" not in header_kwargs:
            header_kwargs["style"] = "dim" if i == 0 else None
        table.add_column(col, **header_kwargs)
    for row in rows:
        table.add_row(*row)
    return table


def _fmt_time(epoch_ms: int | None) -> str:
    if epoch_ms is None:
        return ""
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _fmt(value) -> str:
    return "" if value is None else str(value)


def _print_jobs(records: list[JobRecord], title: str = "Jobs"):
    header = ["job_id", "user", "created", "progress", "completed", "exit", "notified", "children"]
    _rows = [
        [
            record.id,
            _fmt(record.user),
            _fmt_time(record.created),
            _fmt(record.percent_complete),
            _fmt(record.complete_status),
            _fmt(record.exit_value),
            _fmt_time(record.notified_time),
            ",".join(child.id for child in record.children),
        ]
        for record in records
    ]
    Console().print(
        _make_output_table(title=title, header=[(h, {}) for h in header], rows=_rows)
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (can be passed multiple times)",
)
@click.option(
    "-c",
    "--hadoop-conf",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    callback=_validate_config_dir,
    help=(
        "The path to the Hadoop configuration directory, where the "
        "`{core, yarn, hdfs}-site.xml` files can be found. If not provided, "
        "the Hadoop configuration directory can be be set via environment "
        "variables `HADOOP_CONF_DIR`, `YARN_CONF_DIR`, or `HDFS_CONF_DIR`."
    ),
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, resolve_path=True),
    help="The gateway configuration file, by default `~/.templeton/templeton.yaml`.",
)
@click.version_option(prog_name="retempleton")
@click.pass_context
def cli(ctx, verbose: int, hadoop_conf: pathlib.Path | None, config_file: str | None):
    """
    Retempleton submits MapReduce jobs to an Apache Hadoop cluster on behalf
    of users and keeps track of them in a job state store.

    You can try using --help at the top level and also for
    specific subcommands.
    """
    if verbose > 0:
        os.environ[LOG_LEVEL_ENV] = "INFO" if verbose == 1 else "DEBUG"

    if hadoop_conf:
        os.environ["HADOOP_CONF_DIR"] = f"{hadoop_conf}"

    # in case the log level got set, update loggers
    get_logger()
    globals().update({"logger": get_logger(__name__)})

    ctx.obj = config_file


def _templeton(ctx) -> Templeton:
    return Templeton.from_config(ctx.obj)


##
## COMMANDS
##
@cli.command(name="jar", help="Submit a jar job")
@click.argument("jar", type=str)
@click.argument("args", nargs=-1, type=str)
@click.option("--user", "-u", type=str, required=True, help="The user to submit the job as.")
@click.option("--main-class", "-m", type=str, help="The main class of the job.")
@click.option("--libjars", multiple=True, help="Jars to add to the job's classpath.")
@click.option("--files", multiple=True, help="Files to ship to the job's working directory.")
@click.option(
    "--define",
    "-D",
    multiple=True,
    callback=_validate_define,
    help="Job configuration override `key=value` (can be passed multiple times).",
)
@click.option("--statusdir", type=str, help="Directory for the job's output and exit value.")
@click.option("--callback", type=str, help="URL to call on completion, `$jobId` is replaced.")
@click.pass_context
@_handle_errors
def jar(  # noqa: PLR0913
    ctx,
    jar: str,
    args: tuple[str],
    user: str,
    main_class: str | None,
    libjars: tuple[str],
    files: tuple[str],
    define: tuple[str],
    statusdir: str | None,
    callback: str | None,
):
    spec = JarLaunchSpec(
        jar=jar,
        main_class=main_class,
        libjars=list(libjars),
        files=list(files),
        defines=list(define),
        args=list(args),
        statusdir=statusdir,
        callback=callback,
    )
    with _templeton(ctx) as templeton:
        result = templeton.jar.run(user, spec)
    Console().print(f"Submitted job [bold]{result.id}[/]")


@cli.command(name="status", help="Live status of a job")
@click.argument("job_id", type=str)
@click.option("--user", "-u", type=str, required=True, help="The user asking.")
@click.pass_context
@_handle_errors
def status(ctx, job_id: str, user: str):
    with _templeton(ctx) as templeton:
        _status = templeton.status.run(user, job_id)

    header = ["job_id", "user", "name", "queue", "state", "status", "progress", "url"]
    _row = [
        job_id,
        _status.profile.user,
        _status.profile.name,
        _status.profile.queue,
        _status.status.run_state,
        _status.status.final_status,
        f"{_status.status.percent_complete:.1f}",
        _status.profile.url,
    ]
    Console().print(
        _make_output_table(
            title=f"Job Status for [dim]{job_id}[/]",
            header=[(h, {}) for h in header],
            rows=[_row],
        )
    )


@cli.command(name="complete", help="Record the completion of a job and notify its callback")
@click.argument("job_id", type=str)
@click.option("--status", "-s", "complete_status", type=str, help="The terminal status.")
@click.pass_context
@_handle_errors
def complete(ctx, job_id: str, complete_status: str | None):
    with _templeton(ctx) as templeton:
        result = templeton.complete.run(job_id, complete_status)
    Console().print(f"{result.id}: {result.status}")


@cli.group(context_settings={"help_option_names": ["-h", "--help"]})
def jobs():
    """Manage job records"""


@jobs.command(name="ls", help="List job records")
@click.option("--user", "-u", type=str, help="Only list jobs of this user.")
@click.pass_context
@_handle_errors
def jobs_ls(ctx, user: str | None):
    with _templeton(ctx) as templeton:
        _ids = (
            JobState.get_jobs_for_user(templeton.storage, user)
            if user
            else JobState.get_jobs(templeton.storage)
        )
        _records = [JobState(_id, templeton.storage).to_record(depth=1) for _id in _ids]
    _print_jobs(_records)


@jobs.command(name="show", help="Show a job record with its children")
@click.argument("job_id", type=str)
@click.pass_context
@_handle_errors
def jobs_show(ctx, job_id: str):
    with _templeton(ctx) as templeton:
        record = JobState(job_id, templeton.storage).to_record()
    if record.is_empty:
        raise click.ClickException(f"No record of job '{job_id}'")
    _print_jobs([record, *record.children], title=f"Job [dim]{job_id}[/]")


@jobs.command(name="rm", help="Remove job records")
@click.argument("job_ids", nargs=-1, type=str, required=True)
@click.pass_context
@_handle_errors
def jobs_rm(ctx, job_ids: tuple[str]):
    with _templeton(ctx) as templeton:
        for _id in job_ids:
            if JobState(_id, templeton.storage).delete():
                Console().print(f"Removed [bold]{_id}[/]")
            else:
                logger.error(f"Unable to remove '{_id}'")


@cli.command(name="cleanup", help="Delete expired job records")
@click.option(
    "--forever",
    is_flag=True,
    help="Keep sweeping every `cleanup_interval` seconds.",
)
@click.pass_context
@_handle_errors
def cleanup(ctx, forever: bool):
    with _templeton(ctx) as templeton:
        if forever:
            templeton.cleanup.run_forever(templeton.config.cleanup_interval)
        else:
            _deleted = templeton.cleanup.sweep()
            Console().print(f"Deleted {len(_deleted)} expired job records")


# main function
main = cli

if __name__ == "__main__":
    main()
