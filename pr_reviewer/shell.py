"""External process execution for pr-reviewer.

Every external tool (git, gh, the review/fix agents) is invoked through
``run_shell``; ``run_with_retry`` adds bounded retries on top of it.
"""

import queue
import re
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import IO

from pr_reviewer.errors import ExecError, NonZeroExitError, ProcessSpawnError
from pr_reviewer.models import CommandResult
from pr_reviewer.utils import get_logger

DEFAULT_SHELL = "/bin/sh"
STDOUT = "stdout"
STDERR = "stderr"

LINE_QUEUE_SIZE = 1024

_BASE_ARGUMENT = re.compile(r"""\s+--base(?:=|\s+)(?:'[^']*'|"(?:[^"\\]|\\.)*"|\\.|[^\s'"\\])+""")

_STREAM_CLOSED = None


def sh_quote(value: str) -> str:
    """Single-quote ``value`` for a POSIX shell.

    Args:
        value: Raw value

    Returns:
        Quoted value with embedded single quotes escaped

    """
    return "'" + value.replace("'", "'\\''") + "'"


def _read_lines(
    stream_id: str,
    pipe: IO[bytes],
    lines: "queue.Queue[tuple[str, str] | None]",
) -> None:
    """Forward complete lines from ``pipe`` to ``lines``, then post a close marker."""
    try:
        for raw in iter(pipe.readline, b""):
            lines.put((stream_id, raw.decode("utf-8", errors="replace").rstrip("\r\n")))
    finally:
        pipe.close()
        lines.put(_STREAM_CLOSED)


def _echo(stream_id: str, line: str, prefix: str | None) -> None:
    target = sys.stdout if stream_id == STDOUT else sys.stderr
    target.write(f"{prefix or ''}{line}\n")
    target.flush()


def _run_streaming(
    argv: list[str],
    command: str,
    cwd: Path | None,
    prefix: str | None,
) -> CommandResult:
    """Run a process, echoing and capturing both streams line by line.

    Lines of one stream keep their order; stdout and stderr lines are merged
    in arrival order only.
    """
    try:
        process = subprocess.Popen(  # noqa: S603  # command lines come from user templates.
            argv,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        message = f"failed to execute command: {command}, error: {e}"
        raise ProcessSpawnError(command, message) from e

    lines: queue.Queue[tuple[str, str] | None] = queue.Queue(maxsize=LINE_QUEUE_SIZE)
    readers = [
        threading.Thread(target=_read_lines, args=(STDOUT, process.stdout, lines), daemon=True),
        threading.Thread(target=_read_lines, args=(STDERR, process.stderr, lines), daemon=True),
    ]
    for reader in readers:
        reader.start()

    buffers: dict[str, list[str]] = {STDOUT: [], STDERR: []}
    open_streams = len(readers)
    while open_streams:
        item = lines.get()
        if item is _STREAM_CLOSED:
            open_streams -= 1
            continue
        stream_id, line = item
        buffers[stream_id].append(f"{line}\n")
        _echo(stream_id, line, prefix)

    for reader in readers:
        reader.join()

    try:
        exit_code = process.wait()
    except OSError as e:
        message = f"failed waiting command: {command}, error: {e}"
        raise ProcessSpawnError(command, message) from e

    return CommandResult(exit_code, "".join(buffers[STDOUT]), "".join(buffers[STDERR]))


def _run_captured(argv: list[str], command: str, cwd: Path | None) -> CommandResult:
    try:
        completed = subprocess.run(  # noqa: S603  # command lines come from user templates.
            argv,
            cwd=cwd,
            capture_output=True,
            check=False,
        )
    except OSError as e:
        message = f"failed to execute command: {command}, error: {e}"
        raise ProcessSpawnError(command, message) from e

    return CommandResult(
        completed.returncode,
        completed.stdout.decode("utf-8", errors="replace"),
        completed.stderr.decode("utf-8", errors="replace"),
    )


def run_shell(
    command: str,
    cwd: Path | str | None = None,
    *,
    fail_on_non_zero: bool = False,
    stream: bool = False,
    prefix: str | None = None,
    shell: str = DEFAULT_SHELL,
) -> CommandResult:
    """Run a command line through a shell.

    Args:
        command: Command line, already shell-quoted where needed
        cwd: Working directory
        fail_on_non_zero: Raise NonZeroExitError when the exit code is not 0
        stream: Echo stdout/stderr live while capturing them
        prefix: Prefix for echoed lines (e.g. ``"[review] "``)
        shell: Shell executable, invoked as ``<shell> -c <command>``

    Returns:
        CommandResult with exit code and captured output

    Raises:
        ProcessSpawnError: The process could not be started or awaited
        NonZeroExitError: ``fail_on_non_zero`` is set and the command failed

    """
    argv = [shell, "-c", command]
    workdir = Path(cwd) if cwd is not None else None
    get_logger().debug("Running: %s (cwd=%s)", command, workdir or ".")

    if stream:
        result = _run_streaming(argv, command, workdir, prefix)
    else:
        result = _run_captured(argv, command, workdir)

    if fail_on_non_zero and not result.succeeded:
        raise NonZeroExitError(command, result)

    return result


def run_with_retry(
    command: str,
    cwd: Path | str | None = None,
    *,
    retries: int,
    delay_seconds: int,
    stream: bool = False,
    prefix: str | None = None,
    shell: str = DEFAULT_SHELL,
) -> CommandResult:
    """Run a command, retrying failed attempts after a fixed delay.

    Makes up to ``retries + 1`` attempts. Any non-zero exit counts as a
    failure. The delay (at least one second) is applied only between attempts.

    Args:
        command: Command line
        cwd: Working directory
        retries: Number of retries after the first attempt
        delay_seconds: Delay between attempts
        stream: Echo output live
        prefix: Prefix for echoed lines
        shell: Shell executable

    Returns:
        Result of the first successful attempt

    Raises:
        ExecError: The last failure once all attempts are exhausted

    """
    attempts = max(retries, 0) + 1
    delay = max(delay_seconds, 1)
    logger = get_logger()

    def attempt_once() -> CommandResult:
        return run_shell(
            command,
            cwd,
            fail_on_non_zero=True,
            stream=stream,
            prefix=prefix,
            shell=shell,
        )

    for attempt in range(1, attempts):
        try:
            return attempt_once()
        except ExecError as e:
            logger.warning(
                "Attempt %s/%s failed: %s. Retrying in %ss...",
                attempt,
                attempts,
                e,
                delay,
            )
            time.sleep(delay)

    return attempt_once()


def is_review_prompt_conflict(err: ExecError) -> bool:
    """Detect ``codex review`` rejecting ``--base`` combined with a prompt.

    Args:
        err: Error raised by a review command

    Returns:
        True when the failure is the known argument conflict

    """
    if not isinstance(err, NonZeroExitError):
        return False
    return (
        "codex review" in err.command
        and "--base" in err.command
        and "cannot be used with '[PROMPT]'" in err.result.stderr
    )


def remove_base_argument(command: str) -> str:
    """Remove ``--base <branch>`` (or ``--base=<branch>``) from a command line.

    Args:
        command: Expanded review command

    Returns:
        Command without the base-branch argument

    """
    return _BASE_ARGUMENT.sub("", command).strip()


def strip_co_authored_by_trailers(message: str) -> str:
    """Remove ``Co-authored-by:`` trailers from a commit message.

    Args:
        message: Commit message

    Returns:
        Message without trailer lines, ending with a single newline

    """
    kept = [
        line
        for line in message.splitlines()
        if not line.lstrip().lower().startswith("co-authored-by:")
    ]
    return "\n".join(kept).rstrip() + "\n"
