"""Parsed command line: frozen dataclass with chainable builder methods."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, replace
from pathlib import Path

PathLike = Path | str
Argv = tuple[str, ...]


@dataclass(frozen=True)
class CmdLine:
    """One input line as handed over by the parser.

    stages holds one argv per pipeline stage. input_path feeds the first
    stage, output_path receives the last stage. text is the raw line the
    user typed; it is only used as the job label.
    """

    stages: tuple[Argv, ...]
    input_path: Path | None = None
    output_path: Path | None = None
    background: bool = False
    text: str = ""

    def pipe(self, *args: PathLike) -> CmdLine:
        """Append a stage."""
        return replace(self, stages=(*self.stages, _argv(args)))

    def read(self, path: PathLike) -> CmdLine:
        """Read the first stage's stdin from path."""
        return replace(self, input_path=Path(path))

    def write(self, path: PathLike) -> CmdLine:
        """Write the last stage's stdout to path (created or truncated)."""
        return replace(self, output_path=Path(path))

    def bg(self, background: bool = True) -> CmdLine:
        """Run without waiting for completion."""
        return replace(self, background=background)

    def raw(self, text: str) -> CmdLine:
        """Record the raw line used for job display."""
        return replace(self, text=text)

    def display(self) -> str:
        """Job label: the raw text if recorded, else a quoted rendering."""
        if self.text:
            return self.text
        rendered = " | ".join(shlex.join(stage) for stage in self.stages)
        if self.input_path is not None:
            rendered += f" < {shlex.quote(str(self.input_path))}"
        if self.output_path is not None:
            rendered += f" > {shlex.quote(str(self.output_path))}"
        if self.background:
            rendered += " &"
        return rendered


def _argv(args: tuple[PathLike, ...]) -> Argv:
    return tuple(str(arg) for arg in args)


def cmdline(*args: PathLike) -> CmdLine:
    """Create a one-stage command line from positional arguments."""
    return CmdLine((_argv(args),))


def pipeline(*lines: CmdLine) -> CmdLine:
    """Flatten several command lines into one multi-stage line.

    The input redirection comes from the first line, the output
    redirection from the last; background is set if any line asks for it.
    """
    if not lines:
        return CmdLine(())
    stages: list[Argv] = []
    for line in lines:
        stages.extend(line.stages)
    return CmdLine(
        tuple(stages),
        input_path=lines[0].input_path,
        output_path=lines[-1].output_path,
        background=any(line.background for line in lines),
    )
