"""Fixed-capacity table of background jobs."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Iterator
from dataclasses import dataclass

from shexec.config import get_settings
from shexec.errors import JobTableFull

logger = logging.getLogger(__name__)


@dataclass
class Job:
    """A background process tracked by pid, with a display label.

    proc is the spawning handle when the job was launched by this
    process; the liveness probe prefers it over a raw waitpid so the
    handle's own bookkeeping stays consistent.
    """

    pid: int = 0
    active: bool = False
    command: str = ""
    proc: subprocess.Popen[bytes] | None = None

    def finished(self) -> bool:
        """Non-blocking probe: has the process exited or been signaled?"""
        if self.proc is not None:
            return self.proc.poll() is not None
        try:
            pid, _ = os.waitpid(self.pid, os.WNOHANG)
        except ChildProcessError:
            # Reaped elsewhere, or never our child.
            return True
        return pid == self.pid


class JobTable:
    """Slots are reused in place once inactive; the table never grows."""

    def __init__(
        self, capacity: int | None = None, text_max: int | None = None
    ) -> None:
        settings = get_settings()
        self.capacity = capacity if capacity is not None else settings.max_jobs
        self.text_max = text_max if text_max is not None else settings.job_text_max
        self._slots = [Job() for _ in range(self.capacity)]

    def add(
        self,
        pid: int,
        command: str,
        proc: subprocess.Popen[bytes] | None = None,
    ) -> int:
        """Track pid in the first inactive slot and return its index.

        Raises JobTableFull when every slot is active; the process keeps
        running untracked.
        """
        for index, slot in enumerate(self._slots):
            if not slot.active:
                self._slots[index] = Job(
                    pid=pid,
                    active=True,
                    command=command[: self.text_max],
                    proc=proc,
                )
                logger.debug("job slot %d <- pid %d", index, pid)
                return index
        raise JobTableFull

    def reap_finished(self) -> None:
        """Mark every active job whose process has terminated as inactive."""
        for index, slot in enumerate(self._slots):
            if slot.active and slot.finished():
                slot.active = False
                slot.proc = None
                logger.debug("job slot %d pid %d finished", index, slot.pid)

    def list(self) -> list[Job]:
        """Active jobs in slot order, reaped first so none is stale."""
        self.reap_finished()
        return list(self.active())

    def active(self) -> Iterator[Job]:
        for slot in self._slots:
            if slot.active:
                yield slot

    def __len__(self) -> int:
        return sum(1 for _ in self.active())
