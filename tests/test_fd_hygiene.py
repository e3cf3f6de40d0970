"""FD hygiene tests: children see exactly {0, 1, 2}; the parent leaks nothing."""

import json
import os
from pathlib import Path

from shexec import STDERR, STDIN, STDOUT, Shell, cmdline


def _child_fds(path: Path) -> set[int]:
    """Parse _list_fds JSON output into a set of fd numbers."""
    return set(json.loads(path.read_text()))


def _parent_fds() -> set[str]:
    return set(os.listdir("/proc/self/fd"))


# =============================================================================
# Child fd visibility
# =============================================================================


def test_child_default_fds(
    shell: Shell, list_fds_cmd: tuple[str, str], tmp_path: Path
) -> None:
    outfile = tmp_path / "fds.json"
    shell.execute(cmdline(*list_fds_cmd).write(outfile))
    assert _child_fds(outfile) == {STDIN, STDOUT, STDERR}


def test_child_fds_with_both_redirects(
    shell: Shell, list_fds_cmd: tuple[str, str], tmp_path: Path
) -> None:
    infile = tmp_path / "in.txt"
    infile.write_text("hello")
    outfile = tmp_path / "fds.json"
    shell.execute(cmdline(*list_fds_cmd).read(infile).write(outfile))
    assert _child_fds(outfile) == {STDIN, STDOUT, STDERR}


def test_pipeline_stages_see_no_pipe_fds(
    shell: Shell, list_fds_cmd: tuple[str, str], tmp_path: Path
) -> None:
    infile = tmp_path / "in.txt"
    infile.write_text("hello")
    first = tmp_path / "first.json"
    middle = tmp_path / "middle.json"
    last = tmp_path / "last.json"
    # Each stage records its own fd table via a side file; cat keeps data flowing.
    line = (
        cmdline("sh", "-c", f'"$0" "$1" > {first}; cat', *list_fds_cmd)
        .read(infile)
        .pipe("sh", "-c", f'"$0" "$1" > {middle}; cat', *list_fds_cmd)
        .pipe("sh", "-c", f'"$0" "$1" > {last}; cat', *list_fds_cmd)
        .write(tmp_path / "out.txt")
    )
    assert shell.execute(line).ok
    for path in (first, middle, last):
        assert _child_fds(path) == {STDIN, STDOUT, STDERR}
    assert (tmp_path / "out.txt").read_text() == "hello"


def test_parent_fds_not_leaked_to_child(
    shell: Shell, list_fds_cmd: tuple[str, str], tmp_path: Path
) -> None:
    read_fd, write_fd = os.pipe()
    os.set_inheritable(read_fd, True)
    try:
        outfile = tmp_path / "fds.json"
        shell.execute(cmdline(*list_fds_cmd).write(outfile))
        fds = _child_fds(outfile)
        assert read_fd not in fds
        assert write_fd not in fds
    finally:
        os.close(read_fd)
        os.close(write_fd)


# =============================================================================
# Parent fd leak detection
# =============================================================================


def test_no_fd_leak_after_pipeline(shell: Shell, tmp_path: Path) -> None:
    infile = tmp_path / "in.txt"
    infile.write_text("a\nb\n")
    before = _parent_fds()
    line = cmdline("cat").read(infile).pipe("sort").pipe("uniq").write(tmp_path / "o")
    assert shell.execute(line).ok
    assert _parent_fds() == before


def test_no_fd_leak_after_single_command(shell: Shell, tmp_path: Path) -> None:
    infile = tmp_path / "in.txt"
    infile.write_text("a\n")
    before = _parent_fds()
    assert shell.execute(cmdline("cat").read(infile).write(tmp_path / "o")).ok
    assert _parent_fds() == before


def test_no_fd_leak_after_background_pipeline(shell: Shell, tmp_path: Path) -> None:
    before = _parent_fds()
    result = shell.execute(cmdline("true").pipe("cat").bg().write(tmp_path / "o"))
    assert _parent_fds() == before
    for pid in result.pids:
        os.waitpid(pid, 0)


def test_no_fd_leak_after_open_failure(shell: Shell, tmp_path: Path) -> None:
    before = _parent_fds()
    line = cmdline("cat").pipe("cat").read(tmp_path / "missing").write(tmp_path / "o")
    assert not shell.execute(line).ok
    assert _parent_fds() == before


def test_no_fd_leak_after_output_open_failure(shell: Shell, tmp_path: Path) -> None:
    infile = tmp_path / "in.txt"
    infile.write_text("a\n")
    before = _parent_fds()
    line = cmdline("cat").pipe("cat").read(infile).write(tmp_path / "nodir" / "o")
    assert not shell.execute(line).ok
    assert _parent_fds() == before


def test_no_fd_leak_after_launch_failure(shell: Shell, tmp_path: Path) -> None:
    before = _parent_fds()
    line = cmdline("echo").pipe("no-such-command-shexec").write(tmp_path / "o")
    result = shell.execute(line)
    assert result.ok
    assert len(result.launch_failures) == 1
    assert _parent_fds() == before
