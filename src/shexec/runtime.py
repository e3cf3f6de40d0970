"""Runtime execution of parsed command lines."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from shexec.builtins import BUILTINS
from shexec.cmdline import Argv, CmdLine
from shexec.errors import EmptyStageError, JobTableFull, SetupError, ShexecError
from shexec.fdops import OwnedFd, build_preexec, plan_stage
from shexec.jobs import JobTable

logger = logging.getLogger(__name__)

EXIT_WIRING_FAILED = 126
EXIT_EXEC_FAILED = 127

OUTPUT_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
OUTPUT_MODE = 0o644


@dataclass(frozen=True)
class LaunchFailure:
    """A stage whose child never became the target program.

    code mirrors the exit status such a child would have had: 127 when
    exec failed, 126 when wiring the standard streams failed.
    """

    stage: int
    argv: Argv
    code: int
    error: str


@dataclass
class Result:
    """Outcome of one command line.

    ok is False only for setup failures (pipe, open, fork, empty stage),
    in which case everything created so far has been rolled back.
    """

    ok: bool
    pids: tuple[int, ...] = ()
    job: int | None = None
    launch_failures: tuple[LaunchFailure, ...] = ()


def _open(path: Path, flags: int) -> OwnedFd:
    try:
        return OwnedFd(os.open(path, flags, OUTPUT_MODE))
    except OSError as exc:
        raise SetupError(str(path), exc) from exc


def open_endpoints(
    input_path: Path | None, output_path: Path | None
) -> tuple[OwnedFd | None, OwnedFd | None]:
    """Open the redirection ends once. Nothing stays open if either fails."""
    stdin = _open(input_path, os.O_RDONLY) if input_path is not None else None
    try:
        stdout = _open(output_path, OUTPUT_FLAGS) if output_path is not None else None
    except SetupError:
        if stdin is not None:
            stdin.close()
        raise
    return stdin, stdout


class Executor:
    """Spawns the stages of a single command line.

    All allocated fds and spawned processes are tracked in flat lists so
    that rollback() can release everything in one place, whichever step
    failed.
    """

    def __init__(self, report: Callable[[str], None] | None = None) -> None:
        self.fds: list[OwnedFd] = []
        self.procs: list[subprocess.Popen[bytes]] = []
        self.launch_failures: list[LaunchFailure] = []
        self._report = report

    def _exec(
        self, argv: Argv, preexec_fn: Callable[[], None] | None
    ) -> subprocess.Popen[bytes]:
        """Spawn a subprocess, tracking it for cleanup."""
        proc = subprocess.Popen(argv, preexec_fn=preexec_fn, close_fds=True)
        self.procs.append(proc)
        return proc

    def adopt(self, *entries: OwnedFd | None) -> None:
        """Take ownership of caller-opened fds."""
        self.fds.extend(entry for entry in entries if entry is not None)

    def pipe(self) -> tuple[OwnedFd, OwnedFd]:
        """Allocate a pipe, tracking both ends for cleanup."""
        try:
            read_fd, write_fd = os.pipe()
        except OSError as exc:
            raise SetupError("pipe", exc) from exc
        read_end = OwnedFd(read_fd)
        write_end = OwnedFd(write_fd)
        self.fds.append(read_end)
        self.fds.append(write_end)
        return read_end, write_end

    def open_endpoints(
        self, input_path: Path | None, output_path: Path | None
    ) -> tuple[OwnedFd | None, OwnedFd | None]:
        stdin, stdout = open_endpoints(input_path, output_path)
        self.adopt(stdin, stdout)
        return stdin, stdout

    def spawn(
        self,
        index: int,
        argv: Argv,
        stdin: OwnedFd | None,
        stdout: OwnedFd | None,
    ) -> subprocess.Popen[bytes] | None:
        """Spawn one stage wired to stdin/stdout (None inherits the shell's).

        Returns None when the child could not become the program; that
        is recorded as a LaunchFailure. A fork failure raises SetupError.
        """
        if not argv:
            raise EmptyStageError(index)
        inherited = [entry.fd for entry in self.fds if not entry.closed]
        plan = plan_stage(
            stdin.fd if stdin is not None else None,
            stdout.fd if stdout is not None else None,
            inherited,
        )
        try:
            proc = self._exec(argv, build_preexec(plan.ops))
        except subprocess.SubprocessError:
            self._launch_failed(
                index, argv, EXIT_WIRING_FAILED, f"dup2: cannot wire {argv[0]}"
            )
            return None
        except OSError as exc:
            if exc.filename is None:
                raise SetupError("fork", exc) from exc
            self._launch_failed(
                index, argv, EXIT_EXEC_FAILED, f"{argv[0]}: {exc.strerror}"
            )
            return None
        logger.debug("stage %d pid %d: %s", index, proc.pid, shlex.join(argv))
        return proc

    def _launch_failed(self, index: int, argv: Argv, code: int, error: str) -> None:
        self.launch_failures.append(LaunchFailure(index, argv, code, error))
        if self._report is not None:
            self._report(error)

    def spawn_pipeline(self, line: CmdLine) -> None:
        """Spawn every stage, closing parent-side ends as soon as they are used.

        Pipes are allocated before the redirection ends are opened, and
        both before the first fork.
        """
        count = len(line.stages)
        pipes = [self.pipe() for _ in range(count - 1)]
        stdin, stdout = self.open_endpoints(line.input_path, line.output_path)

        for index, argv in enumerate(line.stages):
            stage_stdin = stdin if index == 0 else pipes[index - 1][0]
            stage_stdout = stdout if index == count - 1 else pipes[index][1]
            self.spawn(index, argv, stage_stdin, stage_stdout)

            if index == 0 and stdin is not None:
                stdin.close()
            if index > 0:
                # Both ends of the previous pipe now belong to children.
                read_end, write_end = pipes[index - 1]
                read_end.close()
                write_end.close()

        self.release()

    def release(self) -> None:
        """Close every tracked fd (idempotent)."""
        for entry in self.fds:
            entry.close()

    def rollback(self) -> None:
        """Close every fd, then wait for every process already spawned."""
        self.release()
        for proc in self.procs:
            proc.wait()
        logger.debug("rolled back %d process(es)", len(self.procs))


class Shell:
    """Owns the job table and runs command lines on behalf of a front end."""

    def __init__(
        self,
        jobs: JobTable | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self.jobs = jobs if jobs is not None else JobTable()
        self._stdout = stdout
        self._stderr = stderr

    @property
    def stdout(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    @property
    def stderr(self) -> TextIO:
        return self._stderr if self._stderr is not None else sys.stderr

    def diag(self, message: str) -> None:
        """Write one diagnostic line."""
        logger.debug("diagnostic: %s", message)
        print(message, file=self.stderr)
        self.stderr.flush()

    def execute(self, line: CmdLine) -> Result:
        """Run a command line: one command or an N-stage pipeline."""
        self.jobs.reap_finished()

        if not line.stages:
            return Result(ok=True)

        if len(line.stages) == 1:
            argv = line.stages[0]
            if argv and argv[0] in BUILTINS:
                BUILTINS[argv[0]](self.jobs, self.stdout)
                return Result(ok=True)
            try:
                stdin, stdout = open_endpoints(line.input_path, line.output_path)
            except SetupError as exc:
                return self._fail(exc)
            return self.execute_command(
                argv, stdin, stdout, line.background, line.display()
            )

        executor = Executor(report=self.diag)
        try:
            executor.spawn_pipeline(line)
        except ShexecError as exc:
            executor.rollback()
            return self._fail(exc, executor)
        finally:
            executor.release()
        return self._finish(executor, line.background, line.display())

    def execute_command(
        self,
        argv: Sequence[str],
        stdin: OwnedFd | None = None,
        stdout: OwnedFd | None = None,
        background: bool = False,
        text: str = "",
    ) -> Result:
        """Run one program. Takes ownership of stdin/stdout and closes them."""
        argv = tuple(argv)
        executor = Executor(report=self.diag)
        executor.adopt(stdin, stdout)
        try:
            executor.spawn(0, argv, stdin, stdout)
        except ShexecError as exc:
            executor.rollback()
            return self._fail(exc, executor)
        finally:
            executor.release()
        return self._finish(executor, background, text or shlex.join(argv))

    def print_jobs(self) -> None:
        BUILTINS["jobs"](self.jobs, self.stdout)

    def _finish(self, executor: Executor, background: bool, text: str) -> Result:
        job = None
        if not background:
            for proc in executor.procs:
                proc.wait()
        elif executor.procs:
            # Only the first stage is tracked; later stages run unmanaged.
            first = executor.procs[0]
            try:
                job = self.jobs.add(first.pid, text, first)
            except JobTableFull as exc:
                self.diag(str(exc))
        return Result(
            ok=True,
            pids=tuple(proc.pid for proc in executor.procs),
            job=job,
            launch_failures=tuple(executor.launch_failures),
        )

    def _fail(self, exc: ShexecError, executor: Executor | None = None) -> Result:
        self.diag(str(exc))
        failures = tuple(executor.launch_failures) if executor is not None else ()
        return Result(ok=False, launch_failures=failures)
