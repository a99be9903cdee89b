"""Constants and message generators for user-facing messages."""


def processing_pr_message(ordinal: int, total: int, pr_number: int, title: str) -> str:
    """Return the progress line logged when a PR starts.

    Args:
        ordinal: 1-based position in the run
        total: Number of PRs in the run
        pr_number: PR number
        title: PR title

    Returns:
        Progress message

    """
    return f"[{ordinal}/{total}] Processing PR #{pr_number}: {title}"


def counter_updated_message(pr_number: int) -> str:
    """Return the log line for a PR newly counted this month."""
    return f"Counter updated: PR #{pr_number} counted for this calendar month"


def counter_unchanged_message(pr_number: int) -> str:
    """Return the log line for a PR already counted this month."""
    return f"Counter unchanged: PR #{pr_number} already counted this calendar month"


def review_fallback_message() -> str:
    """Return the log line for the review argument-conflict fallback."""
    return "Detected codex review --base prompt conflict, retrying without --base"


def run_failures_message(failures: int) -> str:
    """Return the run error message when some PRs failed.

    Args:
        failures: Number of failed PRs

    Returns:
        Error message

    """
    return f"{failures} PR(s) failed"


def final_status_line(status: str, done: int, total: int, error: str | None) -> str:
    """Return the one-line summary printed after a run.

    Args:
        status: Terminal run status
        done: Index of the last processed PR
        total: Number of PRs selected
        error: Run error message, if any

    Returns:
        Summary line

    """
    return f"final status={status}, progress={done}/{total}, error={error or '-'}"


def single_pr_status_line(status: str, pr_number: int, error: str | None) -> str:
    """Return the summary printed after a single-PR run."""
    return f"selected PR done: status={status}, pr=#{pr_number} error={error or '-'}"


def no_prs_to_show_message() -> str:
    """Return the notice for an empty filtered PR listing."""
    return "no open PRs to show (after participant filter)"


def no_report_file_message(reports_dir: str) -> str:
    """Return the notice when no Markdown report exists yet."""
    return f"no markdown report file found in {reports_dir}"


def unsupported_review_template_error() -> str:
    """Return the template validation error for ``codex review --pr``."""
    return (
        "review_command_template contains unsupported flags (--pr). "
        "Please use `codex review --base {{DEFAULT_BRANCH}}` style."
    )


def unsupported_fix_template_error() -> str:
    """Return the template validation error for ``codex fix``."""
    return 'fix_command_template uses unsupported `codex fix`. Please use `codex exec "..."`.'


def cannot_auto_clone_error() -> str:
    """Return the error for an empty repository without a clone URL."""
    return "repo_path is empty and settings.repo_clone_url is empty, cannot auto clone"


def remote_repo_path_error() -> str:
    """Return the error for a remote URL configured as repo_path."""
    return (
        "settings.repo_path must be a local directory path, not a remote URL; "
        "put remote URL in settings.repo_clone_url"
    )
