#!/usr/bin/env python3
"""
yarn/models.py
==============

This module defines the message models of the YARN ResourceManager REST API
the gateway reads, and the status snapshot it hands back to callers.

- *ApplicationReport*: Application report message (`apps/<id>` endpoint).
- *JobStatus*: Run state and progress of a scheduler job.
- *JobProfile*: Static properties of a scheduler job.
- *QueueStatus*: Point in time snapshot of a job, status and profile.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"


from typing import Annotated, Literal

import msgspec
from skein import model as skein_model

# application states after which a job does not change anymore
TERMINAL_STATES = frozenset(("FINISHED", "FAILED", "KILLED"))


class ApplicationReport(msgspec.Struct, rename="camel", omit_defaults=True, kw_only=True):
    """
    Application report message from the YARN REST API.

    Attributes
    ----------
    id : str
        The application ID.
    name : str
        The application name.
    user : str
        The user who submitted the application.
    queue : str
        The queue the application was submitted to.
    state : Literal[skein_model.ApplicationState._values]
        The state of the application.
    final_status : Literal[skein_model.FinalStatus._values]
        The final status of the application.
    progress : float
        The progress of the application in percent.
    diagnostics : str
        The diagnostics for the application.
    tracking_url : str
        The tracking URL for the application.
    started_time : int
        The start time of the application (epoch ms).
    finished_time : int
        The finish time of the application (epoch ms), `0` while running.
    application_type : str
        The application type, e.g. `MAPREDUCE`.
    """

    id: str
    name: str = ""
    user: str = ""
    queue: str = ""
    state: Literal[skein_model.ApplicationState._values] = "NEW"  # type: ignore[Literal]
    final_status: Literal[skein_model.FinalStatus._values] = "UNDEFINED"  # type: ignore[Literal]
    progress: Annotated[float, msgspec.Meta(ge=0.0)] = 0.0
    diagnostics: str = ""
    tracking_url: str = ""
    started_time: int = 0
    finished_time: int = 0
    application_type: str = ""

    @classmethod
    def decode(cls, message: bytes | dict) -> ApplicationReport:
        """Decode the `{"app": {...}}` response of the `apps/<id>` endpoint."""
        if isinstance(message, bytes | str):
            message = msgspec.json.decode(message)
        return msgspec.convert(message.get("app", message), type=cls, strict=False)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class JobStatus(msgspec.Struct, kw_only=True):
    """
    Run state and progress of a scheduler job.

    Attributes
    ----------
    job_id : str
        The scheduler job id, e.g. `job_1700000000000_0001`.
    run_state : str
        The application state (`RUNNING`, `FINISHED`, ...).
    final_status : str
        The final status (`UNDEFINED` while running, `SUCCEEDED`, `FAILED`, ...).
    percent_complete : float
        Progress in percent.
    start_time : int
        Start time (epoch ms).
    finish_time : int
        Finish time (epoch ms).
    diagnostics : str
        Scheduler diagnostics.
    """

    job_id: str
    run_state: str
    final_status: str
    percent_complete: float
    start_time: int = 0
    finish_time: int = 0
    diagnostics: str = ""

    @property
    def is_complete(self) -> bool:
        return self.run_state in TERMINAL_STATES


class JobProfile(msgspec.Struct, kw_only=True):
    """Static properties of a scheduler job."""

    job_id: str
    user: str
    name: str
    queue: str
    url: str


class QueueStatus(msgspec.Struct, kw_only=True):
    """Point in time snapshot of a scheduler job."""

    status: JobStatus
    profile: JobProfile

    @classmethod
    def from_report(cls, job_id: str, report: ApplicationReport) -> QueueStatus:
        """Build the snapshot of `job_id` from its application report."""
        return cls(
            status=JobStatus(
                job_id=job_id,
                run_state=report.state,
                final_status=report.final_status,
                percent_complete=report.progress,
                start_time=report.started_time,
                finish_time=report.finished_time,
                diagnostics=report.diagnostics,
            ),
            profile=JobProfile(
                job_id=job_id,
                user=report.user,
                name=report.name,
                queue=report.queue,
                url=report.tracking_url,
            ),
        )

    def to_dict(self) -> dict:
        return msgspec.to_builtins(self)
