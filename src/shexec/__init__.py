"""Execution core of a command-line shell: pipelines, redirection, background jobs."""

import logging

from shexec.builtins import format_jobs
from shexec.cmdline import CmdLine, cmdline, pipeline
from shexec.config import Settings, get_settings
from shexec.errors import EmptyStageError, JobTableFull, SetupError, ShexecError
from shexec.fdops import STDERR, STDIN, STDOUT, OwnedFd
from shexec.jobs import Job, JobTable
from shexec.runtime import (
    EXIT_EXEC_FAILED,
    EXIT_WIRING_FAILED,
    Executor,
    LaunchFailure,
    Result,
    Shell,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "EXIT_EXEC_FAILED",
    "EXIT_WIRING_FAILED",
    "STDERR",
    "STDIN",
    "STDOUT",
    "CmdLine",
    "EmptyStageError",
    "Executor",
    "Job",
    "JobTable",
    "JobTableFull",
    "LaunchFailure",
    "OwnedFd",
    "Result",
    "SetupError",
    "Settings",
    "Shell",
    "ShexecError",
    "cmdline",
    "format_jobs",
    "get_settings",
    "pipeline",
]
