"""Tests for config module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from pr_reviewer.config import (
    DEFAULT_FIX_TEMPLATE,
    DEFAULT_REVIEW_TEMPLATE,
    CliOptions,
    Settings,
    StorePaths,
    get_settings,
    load_settings,
    migrate_legacy_templates,
    save_settings,
)

# Constants for default settings values
DEFAULT_MAX_PRS = 20
DEFAULT_RETRIES = 2
DEFAULT_RETRY_DELAY = 15
FILE_MAX_PRS = 5
ENV_MAX_PRS = 7
CLI_MAX_PRS = 3
CLI_RETRIES = 0


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove PRR_* variables inherited from the environment."""
    for key in list(os.environ):
        if key.startswith("PRR_"):
            monkeypatch.delenv(key)


class TestSettings:
    """Tests for Settings class."""

    def test_default_settings(self) -> None:
        """Test default settings values."""
        settings = Settings()
        assert settings.repo_path == ""
        assert settings.repo_clone_url == ""
        assert settings.default_branch == "main"
        assert settings.max_prs_per_run == DEFAULT_MAX_PRS
        assert settings.max_command_retries == DEFAULT_RETRIES
        assert settings.retry_delay_seconds == DEFAULT_RETRY_DELAY
        assert settings.review_command_template == DEFAULT_REVIEW_TEMPLATE
        assert settings.fix_command_template == DEFAULT_FIX_TEMPLATE
        assert settings.auto_push_enabled
        assert settings.shell == "/bin/sh"
        assert not settings.debug

    def test_env_overrides_file_values(self) -> None:
        """Environment variables win over values passed from settings.json."""
        with patch.dict(os.environ, {"PRR_MAX_PRS_PER_RUN": str(ENV_MAX_PRS)}):
            settings = Settings(max_prs_per_run=FILE_MAX_PRS)
        assert settings.max_prs_per_run == ENV_MAX_PRS

    def test_negative_limit_rejected(self) -> None:
        """Reject negative numeric limits."""
        settings = Settings(max_command_retries=-1)
        with pytest.raises(ValueError, match="max_command_retries"):
            settings.validate_limits()


class TestStorePaths:
    """Tests for StorePaths."""

    def test_layout(self, tmp_path: Path) -> None:
        """Place every state file under the root."""
        paths = StorePaths(tmp_path)

        assert paths.settings == tmp_path / "settings.json"
        assert paths.state == tmp_path / "engine-state.json"
        assert paths.snapshot == tmp_path / "run-snapshot.json"
        assert paths.reports == tmp_path / "reports"
        assert paths.log_file == tmp_path / "logs" / "pr-reviewer.log"

    def test_home_env_var(self, tmp_path: Path) -> None:
        """Use $PR_REVIEWER_HOME when set."""
        with patch.dict(os.environ, {"PR_REVIEWER_HOME": str(tmp_path / "home")}):
            paths = StorePaths()
        assert paths.root == tmp_path / "home"

    def test_ensure_dirs(self, tmp_path: Path) -> None:
        """Create root, reports and logs directories."""
        paths = StorePaths(tmp_path / "state")
        paths.ensure_dirs()

        assert paths.reports.is_dir()
        assert paths.logs.is_dir()


class TestLoadSettings:
    """Tests for settings.json handling."""

    def test_missing_file_written_with_defaults(self, tmp_path: Path) -> None:
        """Create settings.json with defaults on first load."""
        paths = StorePaths(tmp_path)

        settings = load_settings(paths)

        assert settings == Settings()
        data = json.loads(paths.settings.read_text(encoding="utf-8"))
        assert data["max_prs_per_run"] == DEFAULT_MAX_PRS
        assert "debug" not in data

    def test_values_read_from_file(self, tmp_path: Path) -> None:
        """Read values from settings.json."""
        paths = StorePaths(tmp_path)
        save_settings(paths, Settings(repo_path="/src/app", max_prs_per_run=FILE_MAX_PRS))

        settings = load_settings(paths)

        assert settings.repo_path == "/src/app"
        assert settings.max_prs_per_run == FILE_MAX_PRS

    def test_invalid_json_raises(self, tmp_path: Path) -> None:
        """Raise ValueError for unparsable settings."""
        paths = StorePaths(tmp_path)
        paths.settings.write_text("{oops", encoding="utf-8")

        with pytest.raises(ValueError, match="failed to parse json"):
            load_settings(paths)

    def test_legacy_templates_migrated_and_saved(self, tmp_path: Path) -> None:
        """Rewrite legacy templates and persist the migration."""
        paths = StorePaths(tmp_path)
        paths.settings.write_text(
            json.dumps(
                {
                    "review_command_template": "codex review --pr {{PR_NUMBER}}",
                    "fix_command_template": "codex fix --pr {{PR_NUMBER}}",
                },
            ),
            encoding="utf-8",
        )

        settings = load_settings(paths)

        assert settings.review_command_template == DEFAULT_REVIEW_TEMPLATE
        assert settings.fix_command_template == DEFAULT_FIX_TEMPLATE
        saved = json.loads(paths.settings.read_text(encoding="utf-8"))
        assert saved["review_command_template"] == DEFAULT_REVIEW_TEMPLATE

    def test_current_templates_not_migrated(self) -> None:
        """Leave supported templates alone."""
        settings = Settings(review_command_template="codex review --base {{DEFAULT_BRANCH}}")

        assert migrate_legacy_templates(settings) is False

    def test_review_base_with_prompt_migrated(self) -> None:
        """Migrate review templates combining --base with a PR prompt."""
        settings = Settings(
            review_command_template='codex review --base main "Review {{PR_TITLE}}"',
        )

        assert migrate_legacy_templates(settings) is True
        assert settings.review_command_template == DEFAULT_REVIEW_TEMPLATE


class TestGetSettings:
    """Tests for get_settings."""

    def test_cli_options_override(self, tmp_path: Path) -> None:
        """Apply CLI overrides on top of the file."""
        paths = StorePaths(tmp_path)
        options = CliOptions(
            repo_path="/other",
            max_prs_per_run=CLI_MAX_PRS,
            max_command_retries=CLI_RETRIES,
            no_push=True,
            debug=True,
        )

        settings = get_settings(paths, options)

        assert settings.repo_path == "/other"
        assert settings.max_prs_per_run == CLI_MAX_PRS
        assert settings.max_command_retries == CLI_RETRIES
        assert not settings.auto_push_enabled
        assert settings.debug

    def test_partial_options_keep_file_values(self, tmp_path: Path) -> None:
        """Leave unset options at their file values."""
        paths = StorePaths(tmp_path)
        save_settings(paths, Settings(max_prs_per_run=FILE_MAX_PRS))

        settings = get_settings(paths, CliOptions())

        assert settings.max_prs_per_run == FILE_MAX_PRS
        assert settings.auto_push_enabled

    def test_negative_cli_value_rejected(self, tmp_path: Path) -> None:
        """Reject negative limits from the command line."""
        with pytest.raises(ValueError, match="max_prs_per_run"):
            get_settings(StorePaths(tmp_path), CliOptions(max_prs_per_run=-1))
