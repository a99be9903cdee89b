"""Console views of run status, reports and PR listings."""

from datetime import datetime

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.text import Text

from pr_reviewer.config import StorePaths
from pr_reviewer.counter import CompletionTracker
from pr_reviewer.messages import no_prs_to_show_message, no_report_file_message
from pr_reviewer.models import OpenPr, RunSnapshot
from pr_reviewer.reports import latest_report
from pr_reviewer.store import load_engine_state, load_snapshot


def _timestamp(moment: datetime | None) -> str:
    return moment.isoformat() if moment is not None else "-"


def monthly_count(paths: StorePaths, tracker: CompletionTracker | None = None) -> int:
    """Return this month's fixed-PR count as persisted in engine-state.json."""
    tracker = tracker or CompletionTracker()
    tracker.initialize(load_engine_state(paths))
    return tracker.count()


def print_status(
    paths: StorePaths,
    console: Console,
    tracker: CompletionTracker | None = None,
) -> RunSnapshot:
    """Print the last persisted run snapshot.

    Args:
        paths: State directory paths
        console: Output console
        tracker: Monthly tracker (loaded from engine state by default)

    Returns:
        The snapshot that was printed

    """
    snapshot = load_snapshot(paths)
    console.print(f"status: {snapshot.status}")
    console.print(f"stage: {snapshot.stage.display_name}")
    console.print(f"progress: {snapshot.current_index}/{snapshot.total_prs}")
    if snapshot.current_pr_number is not None:
        console.print(
            f"current PR: #{snapshot.current_pr_number} {snapshot.current_pr_title or ''}",
            markup=False,
        )
    console.print(f"last error: {snapshot.error_message or '-'}", markup=False)
    console.print(f"fixed PRs this month: {monthly_count(paths, tracker)}")
    return snapshot


def print_report(paths: StorePaths, console: Console) -> None:
    """Print the last run's results followed by the newest Markdown report."""
    snapshot = load_snapshot(paths)
    console.print(f"run status: {snapshot.status}")
    console.print(f"stage: {snapshot.stage.display_name}")
    console.print(f"results: {len(snapshot.report)}")
    console.print(f"started: {_timestamp(snapshot.started_at)}")
    console.print(f"finished: {_timestamp(snapshot.finished_at)}")

    for item in snapshot.report:
        line = f"- #{item.number} [{item.state_label}] {item.title} -> {item.report_path or '-'}"
        if item.error_message:
            line += f" (error: {item.error_message})"
        console.print(line, markup=False)

    report = latest_report(paths.reports)
    if report is None:
        console.print(no_report_file_message(str(paths.reports)), markup=False)
        return

    console.print(f"\nlatest report: {report}", markup=False)
    console.print(Markdown(report.read_text(encoding="utf-8")))


def print_pr_list(prs: list[OpenPr], processed: set[int], console: Console) -> None:
    """Print a numbered table of open PRs.

    Args:
        prs: PRs to show, in display order
        processed: PR numbers already handled by an earlier run
        console: Output console

    """
    if not prs:
        console.print(no_prs_to_show_message())
        return

    table = Table(title="Open PRs")
    table.add_column("#", justify="right")
    table.add_column("PR", justify="right")
    table.add_column("State")
    table.add_column("Author")
    table.add_column("Title")
    table.add_column("Updated")

    for index, pr in enumerate(prs, 1):
        marker = "processed" if pr.number in processed else "new"
        table.add_row(
            str(index),
            f"#{pr.number}",
            marker,
            Text(pr.author.display()),
            Text(pr.title),
            pr.updated_at,
        )

    console.print(table)
