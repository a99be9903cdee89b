"""Command-line interface for pr-reviewer."""

import json
import sys
import traceback
from collections.abc import Callable

import click
from rich.console import Console

from pr_reviewer.config import CliOptions, StorePaths, get_settings, load_settings
from pr_reviewer.errors import PrReviewerError
from pr_reviewer.messages import final_status_line, single_pr_status_line
from pr_reviewer.models import RunStatus
from pr_reviewer.runner import WorkflowRunner
from pr_reviewer.views import print_pr_list, print_report, print_status

console = Console()


def _handle_errors(action: Callable[[], int], *, debug: bool) -> None:
    """Run a command body, mapping errors to exit codes.

    Args:
        action: Command body returning an exit code
        debug: Print tracebacks for unexpected errors

    """
    try:
        exit_code = action()
    except (ValueError, PrReviewerError) as e:
        console.print(f"Error: {e}", style="red", markup=False)
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"Unexpected error: {e}", style="red", markup=False)
        if debug:
            console.print(traceback.format_exc(), markup=False)
        sys.exit(1)
    if exit_code:
        sys.exit(exit_code)


def _build_cli_options(kwargs: dict[str, str | int | bool | None], *, debug: bool) -> CliOptions:
    """Build CliOptions from Click's keyword arguments.

    Args:
        kwargs: Keyword arguments injected by Click decorators
        debug: Value of the group-level ``--debug`` flag

    Returns:
        CliOptions with CLI-provided overrides

    """
    repo_path = kwargs.get("repo_path")
    max_prs = kwargs.get("max_prs")
    retries = kwargs.get("retries")

    return CliOptions(
        repo_path=str(repo_path) if repo_path is not None else None,
        max_prs_per_run=int(max_prs) if max_prs is not None else None,
        max_command_retries=int(retries) if retries is not None else None,
        no_push=bool(kwargs.get("no_push", False)),
        debug=debug,
    )


def run_overrides[F: Callable[..., None]](func: F) -> F:
    """Attach the options that override settings for one run."""
    decorators = [
        click.option(
            "--repo-path",
            help="Local checkout directory (overrides settings.repo_path)",
            envvar="PRR_REPO_PATH",
        ),
        click.option(
            "--max-prs",
            type=int,
            help="Maximum new PRs processed per run (default: 20)",
        ),
        click.option(
            "--retries",
            type=int,
            help="Retries after the first attempt of retried commands (default: 2)",
        ),
        click.option(
            "--no-push",
            is_flag=True,
            help="Skip commit and push after the fix command",
        ),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


@click.group()
@click.option(
    "-d",
    "--debug",
    is_flag=True,
    help="Enable debug logging and tracebacks",
    envvar="PRR_DEBUG",
)
@click.version_option(package_name="pr-reviewer")
@click.pass_context
def main(ctx: click.Context, *, debug: bool) -> None:
    r"""Automated review and fix of open GitHub pull requests.

    \f
    pr-reviewer syncs a local checkout, lists open PRs with gh, then for each
    PR not handled by an earlier run:
    1. Checks out the PR branch
    2. Runs the review command and writes a Markdown report
    3. Runs the fix command
    4. Commits and pushes the resulting changes

    State lives in $PR_REVIEWER_HOME (default: ~/.pr-reviewer-cli).

    Examples:
      # Process new PRs
      pr-reviewer run --repo-path ~/src/project

      # Re-run a single PR
      pr-reviewer run-pr --pr 42

    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["paths"] = StorePaths()


@main.command()
@run_overrides
@click.option("-q", "--quiet", is_flag=True, help="Only print warnings and the final status")
@click.pass_context
def run(ctx: click.Context, **kwargs: str | int | bool | None) -> None:
    """Review and fix every new open PR."""
    debug = bool(ctx.obj["debug"])

    def action() -> int:
        options = _build_cli_options(kwargs, debug=debug)
        paths: StorePaths = ctx.obj["paths"]
        settings = get_settings(paths, options)
        runner = WorkflowRunner(settings, paths, verbose=not kwargs.get("quiet"))
        snapshot = runner.run()
        console.print(
            final_status_line(
                snapshot.status,
                snapshot.current_index,
                snapshot.total_prs,
                snapshot.error_message,
            ),
            markup=False,
        )
        return 1 if snapshot.status == RunStatus.FAILED else 0

    _handle_errors(action, debug=debug)


@main.command("run-pr")
@run_overrides
@click.option("--pr", "pr_number", type=int, required=True, help="PR number to process")
@click.pass_context
def run_pr(ctx: click.Context, pr_number: int, **kwargs: str | int | bool | None) -> None:
    """Review and fix one open PR, even if it was processed before."""
    debug = bool(ctx.obj["debug"])

    def action() -> int:
        options = _build_cli_options(kwargs, debug=debug)
        paths: StorePaths = ctx.obj["paths"]
        settings = get_settings(paths, options)
        runner = WorkflowRunner(settings, paths)
        snapshot = runner.run_single_pr(pr_number)
        console.print(
            single_pr_status_line(snapshot.status, pr_number, snapshot.error_message),
            markup=False,
        )
        return 1 if snapshot.status == RunStatus.FAILED else 0

    _handle_errors(action, debug=debug)


@main.command()
@click.option("--no-sync", is_flag=True, help="List without syncing the default branch first")
@click.pass_context
def prs(ctx: click.Context, *, no_sync: bool) -> None:
    """List open PRs the current gh user is not involved in yet."""
    debug = bool(ctx.obj["debug"])

    def action() -> int:
        paths: StorePaths = ctx.obj["paths"]
        settings = get_settings(paths, CliOptions(debug=debug))
        runner = WorkflowRunner(settings, paths, verbose=False)
        selected, processed = runner.select_prs_for_listing(sync=not no_sync)
        print_pr_list(selected, processed, console)
        return 0

    _handle_errors(action, debug=debug)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the state of the last run."""

    def action() -> int:
        print_status(ctx.obj["paths"], console)
        return 0

    _handle_errors(action, debug=bool(ctx.obj["debug"]))


@main.command()
@click.pass_context
def report(ctx: click.Context) -> None:
    """Show the last run's results and the newest PR report."""

    def action() -> int:
        print_report(ctx.obj["paths"], console)
        return 0

    _handle_errors(action, debug=bool(ctx.obj["debug"]))


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the state directory and settings.json."""

    def action() -> int:
        paths: StorePaths = ctx.obj["paths"]
        paths.ensure_dirs()
        load_settings(paths)
        console.print(f"settings: {paths.settings}", markup=False)
        return 0

    _handle_errors(action, debug=bool(ctx.obj["debug"]))


@main.command("settings")
@click.pass_context
def show_settings(ctx: click.Context) -> None:
    """Print the settings file path and its effective content."""

    def action() -> int:
        paths: StorePaths = ctx.obj["paths"]
        settings = load_settings(paths)
        console.print(f"settings: {paths.settings}", markup=False)
        data = settings.model_dump(mode="json", exclude={"debug"})
        console.print(json.dumps(data, indent=2), markup=False, highlight=False)
        return 0

    _handle_errors(action, debug=bool(ctx.obj["debug"]))


if __name__ == "__main__":
    main()
