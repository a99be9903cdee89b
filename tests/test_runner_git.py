"""Tests for GitManager."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from pr_reviewer.config import Settings
from pr_reviewer.errors import ProcessSpawnError, SetupError
from pr_reviewer.models import CommandResult, OpenPr
from pr_reviewer.runner_git import GitManager

OK = CommandResult(0, "", "")
CLONE_URL = "https://github.com/o/r.git"


def make_manager(repo_path: str, **overrides: object) -> GitManager:
    """Build a GitManager with fast retries."""
    settings = Settings(repo_path=repo_path, retry_delay_seconds=1, **overrides)
    return GitManager(settings, MagicMock())


def commands(mock: MagicMock) -> list[str]:
    """Return the command lines a mocked executor received."""
    return [call.args[0] for call in mock.call_args_list]


class TestEnsureRepoReady:
    """Tests for repository preparation."""

    def test_empty_path_and_clone_url(self) -> None:
        """Refuse to auto clone without a clone URL."""
        with pytest.raises(SetupError, match="cannot auto clone"):
            make_manager("").ensure_repo_ready()

    def test_empty_path_with_clone_url(self) -> None:
        """Require repo_path even when a clone URL is set."""
        with pytest.raises(SetupError, match="settings.repo_path is empty"):
            make_manager("", repo_clone_url=CLONE_URL).ensure_repo_ready()

    def test_remote_url_rejected(self) -> None:
        """Reject a remote URL used as repo_path."""
        with pytest.raises(SetupError, match="not a remote URL"):
            make_manager("git@github.com:o/r.git").ensure_repo_ready()

    def test_empty_directory_without_clone_url(self, tmp_path: Path) -> None:
        """Refuse to clone into an empty directory without a URL."""
        with pytest.raises(SetupError, match="cannot auto clone"):
            make_manager(str(tmp_path / "repo")).ensure_repo_ready()

    def test_empty_directory_is_cloned(self, tmp_path: Path) -> None:
        """Clone into an empty directory with retry, then verify the checkout."""
        repo = tmp_path / "repo"
        manager = make_manager(str(repo), repo_clone_url=CLONE_URL)

        with (
            patch("pr_reviewer.runner_git.run_with_retry", return_value=OK) as mock_retry,
            patch("pr_reviewer.runner_git.run_shell", return_value=OK) as mock_shell,
        ):
            manager.ensure_repo_ready()

        assert commands(mock_retry) == [f"git clone '{CLONE_URL}' '{repo}'"]
        assert mock_retry.call_args.args[1] is None
        assert commands(mock_shell) == ["git rev-parse --is-inside-work-tree"]

    def test_not_a_git_repository(self, tmp_path: Path) -> None:
        """Reject a non-empty directory that is not a checkout."""
        (tmp_path / "file.txt").write_text("x", encoding="utf-8")
        manager = make_manager(str(tmp_path))

        with (
            patch("pr_reviewer.runner_git.run_shell", return_value=CommandResult(128, "", "")),
            pytest.raises(SetupError, match="not a git repository"),
        ):
            manager.ensure_repo_ready()


class TestSyncAndCheckout:
    """Tests for sync and checkout."""

    def test_sync_discards_changes_then_pulls(self, tmp_path: Path) -> None:
        """Reset a dirty tree, then fetch, checkout and pull with retry."""
        manager = make_manager(str(tmp_path))
        status = CommandResult(0, " M file.py\n", "")

        with (
            patch("pr_reviewer.runner_git.run_shell", side_effect=[status, OK, OK]) as mock_shell,
            patch("pr_reviewer.runner_git.run_with_retry", return_value=OK) as mock_retry,
        ):
            manager.sync_repository()

        assert commands(mock_shell) == [
            "git status --porcelain",
            "git reset --hard HEAD",
            "git clean -fd",
        ]
        assert commands(mock_retry) == [
            "git fetch --all --prune",
            "git checkout 'main'",
            "git pull --ff-only origin 'main'",
        ]

    def test_sync_clean_tree_skips_reset(self, tmp_path: Path) -> None:
        """Skip the reset when the tree is clean."""
        manager = make_manager(str(tmp_path))

        with (
            patch("pr_reviewer.runner_git.run_shell", return_value=OK) as mock_shell,
            patch("pr_reviewer.runner_git.run_with_retry", return_value=OK),
        ):
            manager.sync_repository()

        assert commands(mock_shell) == ["git status --porcelain"]

    def test_checkout_pr_uses_retry(self, tmp_path: Path) -> None:
        """Check out PR branches through gh with retry."""
        manager = make_manager(str(tmp_path))

        with patch("pr_reviewer.runner_git.run_with_retry", return_value=OK) as mock_retry:
            manager.checkout_pr(10)

        assert commands(mock_retry) == ["gh pr checkout 10"]

    def test_default_branch_checkout_failure_ignored(self, tmp_path: Path) -> None:
        """Ignore failures when returning to the default branch."""
        manager = make_manager(str(tmp_path))
        error = ProcessSpawnError("git checkout 'main'", "failed")

        with patch("pr_reviewer.runner_git.run_shell", side_effect=error):
            manager.checkout_default_branch()


class TestCommitAndPush:
    """Tests for commit_and_push_if_needed."""

    def test_clean_tree_is_noop(self, tmp_path: Path) -> None:
        """Return False without committing on a clean tree."""
        manager = make_manager(str(tmp_path))

        with (
            patch("pr_reviewer.runner_git.run_shell", return_value=OK) as mock_shell,
            patch("pr_reviewer.runner_git.run_with_retry") as mock_retry,
        ):
            pushed = manager.commit_and_push_if_needed(OpenPr(number=10))

        assert pushed is False
        assert commands(mock_shell) == ["git status --porcelain"]
        mock_retry.assert_not_called()

    def test_commits_sanitizes_and_pushes(self, tmp_path: Path) -> None:
        """Commit, strip trailers through an amend, and push with retry."""
        manager = make_manager(str(tmp_path))
        responses = [
            CommandResult(0, "?? new.py\n", ""),
            OK,
            OK,
            CommandResult(0, "chore: auto-fix for PR #10\n\nCo-authored-by: bot <b@x>\n", ""),
            OK,
        ]

        with (
            patch("pr_reviewer.runner_git.run_shell", side_effect=responses) as mock_shell,
            patch("pr_reviewer.runner_git.run_with_retry", return_value=OK) as mock_retry,
        ):
            pushed = manager.commit_and_push_if_needed(OpenPr(number=10))

        assert pushed is True
        sent = commands(mock_shell)
        assert sent[1] == "git add -A"
        assert sent[2].endswith("-m 'chore: auto-fix for PR #10'")
        assert "--no-verify" in sent[2]
        assert "--amend -F" in sent[4]
        assert commands(mock_retry) == ["git push"]

    def test_amend_skipped_without_trailers(self, tmp_path: Path) -> None:
        """Skip the amend when the message has no trailers."""
        manager = make_manager(str(tmp_path))
        responses = [
            CommandResult(0, " M a.py\n", ""),
            OK,
            OK,
            CommandResult(0, "chore: auto-fix for PR #10\n", ""),
        ]

        with (
            patch("pr_reviewer.runner_git.run_shell", side_effect=responses) as mock_shell,
            patch("pr_reviewer.runner_git.run_with_retry", return_value=OK),
        ):
            manager.commit_and_push_if_needed(OpenPr(number=10))

        assert len(commands(mock_shell)) == len(responses)
