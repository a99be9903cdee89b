"""Exception types for pr-reviewer."""

from pr_reviewer.models import CommandResult


class PrReviewerError(Exception):
    """Base class for pr-reviewer errors."""


class ExecError(PrReviewerError):
    """An external command could not be run to a successful end."""

    def __init__(self, command: str, message: str) -> None:
        """Initialize the error.

        Args:
            command: Command line that was executed
            message: Human-readable description

        """
        super().__init__(message)
        self.command = command


class ProcessSpawnError(ExecError):
    """The process could not be started or awaited."""


class NonZeroExitError(ExecError):
    """The process ran but exited with a non-zero status."""

    def __init__(self, command: str, result: CommandResult) -> None:
        """Initialize the error.

        Args:
            command: Command line that was executed
            result: Full captured result, kept for stderr inspection

        """
        super().__init__(command, f"command failed: {command} (exit {result.exit_code})")
        self.result = result


class OutputParseError(PrReviewerError, ValueError):
    """An external tool produced output that could not be parsed."""


class SetupError(PrReviewerError, ValueError):
    """Configuration or repository preparation is invalid."""


class PrNotFoundError(PrReviewerError, LookupError):
    """A requested PR is not among the open PRs."""


def render_exec_error(err: ExecError) -> str:
    """Render an execution error for logs and snapshot messages.

    Args:
        err: Error to render

    Returns:
        Message including the command, exit code and trimmed stderr when available

    """
    if isinstance(err, NonZeroExitError):
        stderr = err.result.stderr.strip()
        if not stderr:
            return f"{err.command} failed with exit {err.result.exit_code}"
        return f"{err.command} failed with exit {err.result.exit_code}: {stderr}"
    return str(err)


def describe_error(err: BaseException) -> str:
    """Render any error caught at a run or PR boundary.

    Args:
        err: Caught error

    Returns:
        Message suitable for a snapshot's error field

    """
    if isinstance(err, ExecError):
        return render_exec_error(err)
    return str(err)
