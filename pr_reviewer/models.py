"""Data models for pr-reviewer.

Durable models (settings aside) are pydantic models so they round-trip
through the JSON files under the state directory without custom codecs.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Self

import pydantic as pyd

MAX_LOG_LINES = 500

# Exit code recorded for a PR whose execution raised before commands finished
FAILED_EXIT_CODE = -1


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


class RunStatus(StrEnum):
    """Coarse status of a run."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ExecutionStage(StrEnum):
    """Fine-grained stage of a run."""

    IDLE = "idle"
    SYNCING_REPO = "syncing_repo"
    LOADING_PRS = "loading_prs"
    REVIEWING_PR = "reviewing_pr"
    FIXING_PR = "fixing_pr"
    PUSHING_CHANGES = "pushing_changes"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def display_name(self) -> str:
        """Return the human-readable stage name."""
        return _STAGE_DISPLAY_NAMES[self]


_STAGE_DISPLAY_NAMES = {
    ExecutionStage.IDLE: "Idle",
    ExecutionStage.SYNCING_REPO: "Syncing repository",
    ExecutionStage.LOADING_PRS: "Loading PR list",
    ExecutionStage.REVIEWING_PR: "Reviewing PR",
    ExecutionStage.FIXING_PR: "Auto fixing",
    ExecutionStage.PUSHING_CHANGES: "Pushing changes",
    ExecutionStage.COMPLETED: "Completed",
    ExecutionStage.FAILED: "Failed",
}


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one process invocation."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def succeeded(self) -> bool:
        """Whether the process exited with status 0."""
        return self.exit_code == 0


class EngineState(pyd.BaseModel):
    """Cross-run durable memory."""

    processed_pr_numbers: list[int] = pyd.Field(default_factory=list)
    last_run_at: datetime | None = None
    monthly_fixed_pr_numbers_by_month: dict[str, list[int]] = pyd.Field(default_factory=dict)

    def processed_set(self) -> set[int]:
        """Return the processed PR numbers as a set."""
        return set(self.processed_pr_numbers)

    def merge_processed(self, numbers: set[int] | list[int]) -> None:
        """Union ``numbers`` into the processed list, keeping it sorted and unique.

        Args:
            numbers: PR numbers finished in the current run

        """
        self.processed_pr_numbers = sorted(self.processed_set() | set(numbers))


class PrAuthor(pyd.BaseModel):
    """Author block of a PR as reported by ``gh``."""

    login: str = "unknown"
    name: str | None = None

    def display(self) -> str:
        """Return ``Name (login)`` when a name is known, else the login."""
        if self.name and self.name.strip():
            return f"{self.name.strip()} ({self.login})"
        return self.login


class OpenPr(pyd.BaseModel):
    """Open pull request metadata from ``gh pr list``.

    The involvement payloads are kept as raw JSON values; they are only ever
    searched structurally for a login.
    """

    model_config = pyd.ConfigDict(populate_by_name=True)

    number: int = 0
    title: str = ""
    head_ref_name: str = pyd.Field(default="", alias="headRefName")
    url: str = ""
    updated_at: str = pyd.Field(default="", alias="updatedAt")
    author: PrAuthor = pyd.Field(default_factory=PrAuthor)
    assignees: Any = None
    reviews: Any = None
    review_requests: Any = pyd.Field(default=None, alias="reviewRequests")
    comments: Any = None
    latest_reviews: Any = pyd.Field(default=None, alias="latestReviews")

    @pyd.field_validator("author", mode="before")
    @classmethod
    def _default_author(cls, value: object) -> object:
        # gh reports deleted accounts as null
        return PrAuthor() if value is None else value


class PrExecutionResult(pyd.BaseModel):
    """Outcome of processing one PR."""

    model_config = pyd.ConfigDict(frozen=True)

    number: int
    title: str
    url: str
    review_exit_code: int
    fix_exit_code: int
    pushed: bool
    report_path: str
    error_message: str | None = None

    @classmethod
    def failed(cls, pr: OpenPr, message: str) -> Self:
        """Build the result recorded when a PR's execution raised."""
        return cls(
            number=pr.number,
            title=pr.title,
            url=pr.url,
            review_exit_code=FAILED_EXIT_CODE,
            fix_exit_code=FAILED_EXIT_CODE,
            pushed=False,
            report_path="",
            error_message=message,
        )

    @property
    def state_label(self) -> str:
        """Return ``failed``, ``pushed`` or ``done``."""
        if self.error_message is not None:
            return "failed"
        if self.pushed:
            return "pushed"
        return "done"


class RunSnapshot(pyd.BaseModel):
    """Observable progress of one run, persisted after every transition."""

    started_at: datetime | None = None
    finished_at: datetime | None = None
    status: RunStatus = RunStatus.IDLE
    stage: ExecutionStage = ExecutionStage.IDLE
    total_prs: int = 0
    current_index: int = 0
    current_pr_number: int | None = None
    current_pr_title: str | None = None
    error_message: str | None = None
    report: list[PrExecutionResult] = pyd.Field(default_factory=list)
    log_lines: list[str] = pyd.Field(default_factory=list)

    @classmethod
    def begin(cls, stage: ExecutionStage, total_prs: int = 0) -> Self:
        """Create the snapshot of a run that is starting at ``stage``."""
        return cls(
            started_at=utc_now(),
            status=RunStatus.RUNNING,
            stage=stage,
            total_prs=total_prs,
        )

    def append_log(self, message: str) -> None:
        """Append a timestamped log line, dropping the oldest beyond MAX_LOG_LINES."""
        self.log_lines.append(f"[{utc_now().isoformat()}] {message}")
        overflow = len(self.log_lines) - MAX_LOG_LINES
        if overflow > 0:
            del self.log_lines[:overflow]

    def add_result(self, result: PrExecutionResult) -> None:
        """Append a PR result and keep the report ordered by PR number."""
        self.report.append(result)
        self.report.sort(key=lambda item: item.number)

    def mark_failed(self, message: str) -> None:
        """Move the run into its terminal failed state."""
        self.status = RunStatus.FAILED
        self.stage = ExecutionStage.FAILED
        self.error_message = message
        self.finished_at = utc_now()

    def mark_succeeded(self) -> None:
        """Move the run into its terminal succeeded state."""
        self.status = RunStatus.SUCCEEDED
        self.stage = ExecutionStage.COMPLETED
        self.finished_at = utc_now()

    @property
    def failed_count(self) -> int:
        """Number of PR results carrying an error."""
        return sum(1 for item in self.report if item.error_message is not None)
