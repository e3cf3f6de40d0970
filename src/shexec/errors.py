"""Exception hierarchy for command-line execution failures."""

from __future__ import annotations


class ShexecError(Exception):
    """Base class for failures reported as a single diagnostic line."""


class SetupError(ShexecError):
    """A pipe, open or fork call failed while building a command line."""

    def __init__(self, op: str, cause: OSError) -> None:
        self.op = op
        self.cause = cause
        super().__init__(f"{op}: {cause.strerror or cause}")


class EmptyStageError(ShexecError):
    def __init__(self, stage: int) -> None:
        self.stage = stage
        super().__init__(f"empty command in pipeline at stage {stage}")


class JobTableFull(ShexecError):
    def __init__(self) -> None:
        super().__init__("jobs: job table full")
