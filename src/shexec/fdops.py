"""Descriptor ownership and child fd-table planning.

OwnedFd gives every parent-side descriptor a single owner with an
idempotent close. FdOps is a pure simulation of a pipeline stage's fd
table: it records the dup2/close operations the child performs between
fork and exec and tracks which fds are left alive. build_preexec()
turns the recorded plan into the callable that runs in the child.
"""

from __future__ import annotations

import contextlib
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass

STDIN: int = 0
STDOUT: int = 1
STDERR: int = 2

STANDARD_FDS = frozenset({STDIN, STDOUT, STDERR})


def close_fd(fd: int) -> None:
    """Close fd, suppressing errors if already closed."""
    with contextlib.suppress(OSError):
        os.close(fd)


@dataclass
class OwnedFd:
    """Tracked file descriptor with idempotent close."""

    fd: int
    closed: bool = False

    def close(self) -> None:
        """Close the fd if not already closed."""
        if not self.closed:
            self.closed = True
            close_fd(self.fd)


# ── Operations (pure data, interpreted in the child) ────────────────


@dataclass(frozen=True)
class OpDup2:
    src: int
    dst: int


@dataclass(frozen=True)
class OpClose:
    fd: int


Op = OpDup2 | OpClose


# ── FdOps simulator ─────────────────────────────────────────────────


class FdOps:
    """Simulate a child's fd table, emitting ordered ops.

    Constructor takes the fds inherited across fork: the standard
    streams plus every pipe and redirection fd the parent holds open.
    """

    def __init__(self, live: Iterable[int] | None = None) -> None:
        self._ops: list[Op] = []
        self._live: set[int] = set(live) if live is not None else set()

    def dup2(self, src: int, dst: int) -> None:
        """dup2(src, dst). dst becomes live, src stays live."""
        if src not in self._live:
            raise ValueError(f"dup2 source fd {src} is not live")
        self._ops.append(OpDup2(src, dst))
        self._live.add(dst)

    def move_fd(self, src: int, dst: int) -> None:
        """dup2(src, dst) then close(src). No-op when src is already dst."""
        if src == dst:
            return
        self.dup2(src, dst)
        self.close(src)

    def close(self, fd: int) -> None:
        """close(fd). fd leaves live set."""
        self._ops.append(OpClose(fd))
        self._live.discard(fd)

    def close_extra(self, fds: Iterable[int]) -> None:
        """Close each fd still live, never touching the standard streams."""
        for fd in fds:
            if fd in self._live and fd not in STANDARD_FDS:
                self.close(fd)

    @property
    def ops(self) -> tuple[Op, ...]:
        """Ordered operations for the child."""
        return tuple(self._ops)

    @property
    def live(self) -> frozenset[int]:
        """Fds alive in child after all ops."""
        return frozenset(self._live)


def plan_stage(
    stdin_fd: int | None, stdout_fd: int | None, inherited: Iterable[int]
) -> FdOps:
    """Plan one stage's wiring.

    stdin_fd/stdout_fd of None mean "inherit the shell's stream". Every
    inherited fd that is not a standard stream is closed once the active
    ends have been moved onto 0 and 1, so the child keeps exactly {0, 1, 2}.
    """
    inherited = tuple(inherited)
    fdo = FdOps(live={*STANDARD_FDS, *inherited})
    if stdin_fd is not None:
        fdo.dup2(stdin_fd, STDIN)
    if stdout_fd is not None:
        fdo.dup2(stdout_fd, STDOUT)
    fdo.close_extra(inherited)
    return fdo


def build_preexec(ops: tuple[Op, ...]) -> Callable[[], None] | None:
    """Build a preexec_fn closure that executes all fd ops in the child.

    Runs between fork() and exec(); only dup2 and close are called. An
    OSError here aborts the launch and surfaces in the parent as
    subprocess.SubprocessError.
    """
    if not ops:
        return None

    def _preexec(frozen_ops: tuple[Op, ...] = ops) -> None:
        for op in frozen_ops:
            match op:
                case OpDup2(src, dst):
                    os.dup2(src, dst)
                case OpClose(fd):
                    os.close(fd)

    return _preexec
