"""The jobs builtin: the only command the executor answers itself."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TextIO

from shexec.jobs import Job, JobTable

NO_JOBS = "(no background jobs)"


def format_jobs(jobs: Iterable[Job]) -> list[str]:
    """One `[pid] Running  text` line per job, or the empty-table sentinel."""
    lines = [f"[{job.pid}] Running  {job.command or '(unknown)'}" for job in jobs]
    return lines or [NO_JOBS]


def jobs(table: JobTable, stdout: TextIO) -> None:
    for line in format_jobs(table.list()):
        print(line, file=stdout)
    stdout.flush()


BUILTINS: dict[str, Callable[[JobTable, TextIO], None]] = {"jobs": jobs}
