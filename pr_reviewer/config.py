"""Configuration management for pr-reviewer."""

import json
import os
from dataclasses import dataclass
from pathlib import Path

import pydantic as pyd
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

HOME_ENV_VAR = "PR_REVIEWER_HOME"
DEFAULT_HOME_DIRNAME = ".pr-reviewer-cli"

DEFAULT_REVIEW_TEMPLATE = "codex review --base {{DEFAULT_BRANCH}}"
DEFAULT_FIX_TEMPLATE = (
    'codex exec "You are in a checked-out PR branch. Read findings and fix issues for '
    "PR #{{PR_NUMBER}} ({{PR_TITLE}}). Use report context at {{REPORT_PATH}} when relevant. "
    'Make minimal safe changes and update tests if needed."'
)


class Settings(BaseSettings):
    """Configuration settings for pr-reviewer.

    Values come from ``settings.json`` in the state directory; ``PRR_*``
    environment variables override the file.
    """

    # Repository
    repo_path: str = pyd.Field(
        default="",
        description="Local checkout directory to operate on",
    )

    repo_clone_url: str = pyd.Field(
        default="",
        description="Remote URL cloned into repo_path when it is empty",
    )

    default_branch: str = pyd.Field(
        default="main",
        description="Branch synced before and restored after a run",
    )

    # Limits
    max_prs_per_run: int = pyd.Field(
        default=20,
        description="Maximum number of new PRs processed per run",
    )

    max_command_retries: int = pyd.Field(
        default=2,
        description="Retries after the first attempt of a retried command",
    )

    retry_delay_seconds: int = pyd.Field(
        default=15,
        description="Delay between retried attempts (at least 1 second)",
    )

    # Commands
    review_command_template: str = pyd.Field(
        default=DEFAULT_REVIEW_TEMPLATE,
        description="Review command with {{PLACEHOLDER}} substitutions",
    )

    fix_command_template: str = pyd.Field(
        default=DEFAULT_FIX_TEMPLATE,
        description="Fix command with {{PLACEHOLDER}} substitutions",
    )

    auto_push_enabled: bool = pyd.Field(
        default=True,
        description="Commit and push fixes after the fix command",
    )

    shell: str = pyd.Field(
        default="/bin/sh",
        description="Shell used to execute command lines",
    )

    # Debug mode
    debug: bool = pyd.Field(
        default=False,
        description="Enable debug logging",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PRR_",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Let the environment override values read from settings.json."""
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def validate_limits(self) -> None:
        """Validate numeric limits are not negative."""
        for name in ("max_prs_per_run", "max_command_retries", "retry_delay_seconds"):
            value = getattr(self, name)
            if value < 0:
                message = (
                    f"Invalid configuration: {name} must be a non-negative integer (got '{value}')"
                )
                raise ValueError(message)


@dataclass(frozen=True)
class CliOptions:
    """CLI override options for Settings."""

    repo_path: str | None = None
    max_prs_per_run: int | None = None
    max_command_retries: int | None = None
    no_push: bool = False
    debug: bool = False


class StorePaths:
    """Path management for the pr-reviewer state directory."""

    def __init__(self, root: Path | None = None) -> None:
        """Initialize paths.

        Args:
            root: State directory (defaults to $PR_REVIEWER_HOME or ~/.pr-reviewer-cli)

        """
        self.root = root or self._default_root()
        self.settings = self.root / "settings.json"
        self.state = self.root / "engine-state.json"
        self.snapshot = self.root / "run-snapshot.json"
        self.reports = self.root / "reports"
        self.logs = self.root / "logs"
        self.log_file = self.logs / "pr-reviewer.log"

    @staticmethod
    def _default_root() -> Path:
        env_root = os.environ.get(HOME_ENV_VAR)
        if env_root:
            return Path(env_root)
        return Path.home() / DEFAULT_HOME_DIRNAME

    def ensure_dirs(self) -> None:
        """Create the state, reports and logs directories."""
        self.root.mkdir(parents=True, exist_ok=True)
        self.reports.mkdir(parents=True, exist_ok=True)
        self.logs.mkdir(parents=True, exist_ok=True)


def migrate_legacy_templates(settings: Settings) -> bool:
    """Replace command templates written for older agent CLIs.

    Args:
        settings: Settings to update in place

    Returns:
        True if a template was replaced

    """
    migrated = False
    review = settings.review_command_template
    if (
        "codex review --pr" in review
        or "--repo {{REPO_PATH}}" in review
        or ("codex review --base" in review and ("{{PR_" in review or '"Review ' in review))
    ):
        settings.review_command_template = DEFAULT_REVIEW_TEMPLATE
        migrated = True

    if settings.fix_command_template.lstrip().startswith("codex fix"):
        settings.fix_command_template = DEFAULT_FIX_TEMPLATE
        migrated = True

    return migrated


def save_settings(paths: StorePaths, settings: Settings) -> None:
    """Write settings.json.

    Args:
        paths: State directory paths
        settings: Settings to persist

    """
    paths.root.mkdir(parents=True, exist_ok=True)
    data = settings.model_dump(mode="json", exclude={"debug"})
    paths.settings.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def load_settings(paths: StorePaths) -> Settings:
    """Load settings.json, creating it with defaults when missing.

    Args:
        paths: State directory paths

    Returns:
        Settings instance

    Raises:
        ValueError: settings.json is not a JSON object

    """
    if not paths.settings.exists():
        settings = Settings()
        save_settings(paths, settings)
        return settings

    try:
        data = json.loads(paths.settings.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        message = f"failed to parse json: {paths.settings}: {e}"
        raise ValueError(message) from e
    if not isinstance(data, dict):
        message = f"failed to parse json: {paths.settings}: expected an object"
        raise ValueError(message)

    settings = Settings(**data)
    if migrate_legacy_templates(settings):
        save_settings(paths, settings)
    return settings


def get_settings(paths: StorePaths, options: CliOptions | None = None) -> Settings:
    """Create Settings from settings.json, the environment and CLI options.

    Args:
        paths: State directory paths
        options: CLI override options grouped into a dataclass

    Returns:
        Settings instance

    """
    settings = load_settings(paths)

    if options is not None:
        _apply_cli_options(settings, options)

    settings.validate_limits()

    return settings


def _apply_cli_options(settings: Settings, options: CliOptions) -> None:
    """Apply CLI options to Settings instance.

    Args:
        settings: Settings instance to modify
        options: CLI options to apply

    """
    if options.repo_path is not None:
        settings.repo_path = options.repo_path
    if options.max_prs_per_run is not None:
        settings.max_prs_per_run = options.max_prs_per_run
    if options.max_command_retries is not None:
        settings.max_command_retries = options.max_command_retries
    if options.no_push:
        settings.auto_push_enabled = False
    if options.debug:
        settings.debug = options.debug
