"""Repository operations for the pr-reviewer runner.

This module handles the local checkout:
- Preparing it (auto clone when empty)
- Discarding local changes and syncing the default branch
- Checking out PR branches
- Committing, cleaning commit trailers, and pushing fixes
"""

import logging
import tempfile
from pathlib import Path

from pr_reviewer.config import Settings
from pr_reviewer.errors import ExecError, SetupError
from pr_reviewer.messages import cannot_auto_clone_error, remote_repo_path_error
from pr_reviewer.models import CommandResult, OpenPr
from pr_reviewer.shell import (
    run_shell,
    run_with_retry,
    sh_quote,
    strip_co_authored_by_trailers,
)

REMOTE_URL_PREFIXES = ("http://", "https://", "git@")
NO_HOOKS_COMMIT = "git -c core.hooksPath=/dev/null commit --no-verify"


class GitManager:
    """Manages git operations on the configured checkout."""

    def __init__(self, settings: Settings, logger: logging.Logger) -> None:
        """Initialize the git manager.

        Args:
            settings: Configuration settings
            logger: Logger instance for output

        """
        self.settings = settings
        self.logger = logger

    @property
    def repo_path(self) -> Path:
        """Configured checkout directory."""
        return Path(self.settings.repo_path)

    def _run(self, command: str, *, check: bool = True) -> CommandResult:
        return run_shell(
            command,
            self.repo_path,
            fail_on_non_zero=check,
            shell=self.settings.shell,
        )

    def _run_with_retry(self, command: str, *, in_repo: bool = True) -> CommandResult:
        return run_with_retry(
            command,
            self.repo_path if in_repo else None,
            retries=self.settings.max_command_retries,
            delay_seconds=self.settings.retry_delay_seconds,
            shell=self.settings.shell,
        )

    def ensure_repo_ready(self) -> None:
        """Make sure repo_path is a git checkout, cloning it when empty.

        Raises:
            SetupError: repo_path is unusable
            ExecError: Cloning failed after retries

        """
        repo_path = self.settings.repo_path.strip()
        clone_url = self.settings.repo_clone_url.strip()
        if not repo_path:
            if not clone_url:
                raise SetupError(cannot_auto_clone_error())
            message = "settings.repo_path is empty"
            raise SetupError(message)
        if repo_path.startswith(REMOTE_URL_PREFIXES):
            raise SetupError(remote_repo_path_error())

        path = Path(repo_path)
        try:
            path.mkdir(parents=True, exist_ok=True)
            is_empty = not any(path.iterdir())
        except OSError as e:
            message = f"failed to prepare repo_path directory: {path}: {e}"
            raise SetupError(message) from e

        if is_empty:
            if not clone_url:
                raise SetupError(cannot_auto_clone_error())
            self.logger.info("Cloning %s into %s", clone_url, path)
            self._run_with_retry(
                f"git clone {sh_quote(clone_url)} {sh_quote(repo_path)}",
                in_repo=False,
            )

        result = self._run("git rev-parse --is-inside-work-tree", check=False)
        if not result.succeeded:
            message = f"repo_path is not a git repository: {path}"
            raise SetupError(message)

    def has_changes(self) -> bool:
        """Whether the working tree has uncommitted or untracked changes."""
        return bool(self._run("git status --porcelain").stdout.strip())

    def rollback_uncommitted_changes(self) -> None:
        """Discard local modifications and untracked files, if any."""
        if not self.has_changes():
            return
        self.logger.info("Discarding uncommitted changes in %s", self.repo_path)
        self._run("git reset --hard HEAD")
        self._run("git clean -fd")

    def sync_repository(self) -> None:
        """Reset the checkout and fast-forward the default branch."""
        branch = sh_quote(self.settings.default_branch)
        self.rollback_uncommitted_changes()
        self._run_with_retry("git fetch --all --prune")
        self._run_with_retry(f"git checkout {branch}")
        self._run_with_retry(f"git pull --ff-only origin {branch}")

    def checkout_pr(self, pr_number: int) -> None:
        """Check out the head branch of a PR."""
        self._run_with_retry(f"gh pr checkout {pr_number}")

    def checkout_default_branch(self) -> None:
        """Return to the default branch; failures are ignored."""
        try:
            self._run(f"git checkout {sh_quote(self.settings.default_branch)}", check=False)
        except ExecError as e:
            self.logger.debug("Ignoring default branch checkout failure: %s", e)

    def sanitize_latest_commit_message(self) -> None:
        """Drop Co-authored-by trailers from the HEAD commit message."""
        latest = self._run("git log -1 --pretty=%B").stdout
        cleaned = strip_co_authored_by_trailers(latest)
        if cleaned.rstrip() == latest.rstrip():
            return

        with tempfile.NamedTemporaryFile(
            "w",
            prefix="pr-reviewer-commit-msg-",
            suffix=".txt",
            delete=False,
            encoding="utf-8",
        ) as f:
            f.write(cleaned)
            message_file = Path(f.name)
        try:
            self._run(f"{NO_HOOKS_COMMIT} --amend -F {sh_quote(str(message_file))}")
        finally:
            message_file.unlink(missing_ok=True)

    def commit_and_push_if_needed(self, pr: OpenPr) -> bool:
        """Commit all changes for a PR and push them.

        Args:
            pr: PR whose branch is checked out

        Returns:
            True if a commit was pushed, False when the tree was clean

        """
        if not self.has_changes():
            self.logger.info("No changes to push for PR #%s", pr.number)
            return False

        self._run("git add -A")
        self._run(f"{NO_HOOKS_COMMIT} -m {sh_quote(f'chore: auto-fix for PR #{pr.number}')}")
        self.sanitize_latest_commit_message()
        self._run_with_retry("git push")
        return True
