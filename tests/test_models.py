"""Tests for data models."""

from pr_reviewer.models import (
    FAILED_EXIT_CODE,
    MAX_LOG_LINES,
    EngineState,
    ExecutionStage,
    OpenPr,
    PrExecutionResult,
    RunSnapshot,
    RunStatus,
)

OVERFLOW_LINES = MAX_LOG_LINES + 1


def make_result(number: int, *, pushed: bool = False) -> PrExecutionResult:
    """Build a successful PR result."""
    return PrExecutionResult(
        number=number,
        title=f"PR {number}",
        url=f"https://github.com/o/r/pull/{number}",
        review_exit_code=0,
        fix_exit_code=0,
        pushed=pushed,
        report_path=f"/tmp/pr-{number}.md",
    )


class TestRunSnapshot:
    """Tests for RunSnapshot transitions."""

    def test_begin_marks_running(self) -> None:
        """Start a run in the running status at the given stage."""
        snapshot = RunSnapshot.begin(ExecutionStage.SYNCING_REPO)

        assert snapshot.status == RunStatus.RUNNING
        assert snapshot.stage == ExecutionStage.SYNCING_REPO
        assert snapshot.started_at is not None
        assert snapshot.finished_at is None

    def test_log_is_bounded(self) -> None:
        """Drop the oldest lines beyond the cap."""
        snapshot = RunSnapshot()
        for index in range(1, OVERFLOW_LINES + 1):
            snapshot.append_log(f"line {index}")

        assert len(snapshot.log_lines) == MAX_LOG_LINES
        assert snapshot.log_lines[0].endswith("] line 2")
        assert snapshot.log_lines[-1].endswith(f"] line {OVERFLOW_LINES}")

    def test_log_lines_are_timestamped(self) -> None:
        """Prefix log lines with a bracketed timestamp."""
        snapshot = RunSnapshot()
        snapshot.append_log("hello")

        assert snapshot.log_lines[0].startswith("[")
        assert snapshot.log_lines[0].endswith("] hello")

    def test_report_stays_sorted(self) -> None:
        """Keep results ordered by PR number after any append order."""
        snapshot = RunSnapshot()
        for number in (11, 3, 7, 1):
            snapshot.add_result(make_result(number))

        assert [item.number for item in snapshot.report] == [1, 3, 7, 11]

    def test_mark_failed(self) -> None:
        """Record the error and finish time."""
        snapshot = RunSnapshot.begin(ExecutionStage.LOADING_PRS)
        snapshot.mark_failed("boom")

        assert snapshot.status == RunStatus.FAILED
        assert snapshot.stage == ExecutionStage.FAILED
        assert snapshot.error_message == "boom"
        assert snapshot.finished_at is not None

    def test_mark_succeeded(self) -> None:
        """Complete the run without an error."""
        snapshot = RunSnapshot.begin(ExecutionStage.LOADING_PRS)
        snapshot.mark_succeeded()

        assert snapshot.status == RunStatus.SUCCEEDED
        assert snapshot.stage == ExecutionStage.COMPLETED
        assert snapshot.error_message is None

    def test_failed_count(self) -> None:
        """Count results carrying an error."""
        snapshot = RunSnapshot()
        snapshot.add_result(make_result(1))
        snapshot.add_result(PrExecutionResult.failed(OpenPr(number=2, title="x"), "err"))

        assert snapshot.failed_count == 1


class TestPrExecutionResult:
    """Tests for PrExecutionResult."""

    def test_failed_uses_sentinels(self) -> None:
        """Use the sentinel exit codes for a caught failure."""
        result = PrExecutionResult.failed(OpenPr(number=4, title="t", url="u"), "oops")

        assert result.review_exit_code == FAILED_EXIT_CODE
        assert result.fix_exit_code == FAILED_EXIT_CODE
        assert result.pushed is False
        assert result.report_path == ""
        assert result.error_message == "oops"
        assert result.state_label == "failed"

    def test_state_labels(self) -> None:
        """Label pushed and done results."""
        assert make_result(1, pushed=True).state_label == "pushed"
        assert make_result(1).state_label == "done"


class TestEngineState:
    """Tests for EngineState."""

    def test_merge_processed_is_sorted_union(self) -> None:
        """Merge numbers without duplicates, sorted."""
        state = EngineState(processed_pr_numbers=[5, 2])
        state.merge_processed({3, 5})

        assert state.processed_pr_numbers == [2, 3, 5]

    def test_stage_display_names(self) -> None:
        """Provide a human-readable name for every stage."""
        for stage in ExecutionStage:
            assert stage.display_name
        assert ExecutionStage.FIXING_PR.display_name == "Auto fixing"
