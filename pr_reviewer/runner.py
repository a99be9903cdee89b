"""Main runner for pr-reviewer."""

import json
import logging
import re
import shlex
import shutil
import time
from collections.abc import Callable
from pathlib import Path

from pr_reviewer.config import Settings, StorePaths
from pr_reviewer.counter import CompletionTracker
from pr_reviewer.errors import (
    ExecError,
    OutputParseError,
    PrNotFoundError,
    PrReviewerError,
    SetupError,
    describe_error,
)
from pr_reviewer.messages import (
    counter_unchanged_message,
    counter_updated_message,
    processing_pr_message,
    review_fallback_message,
    run_failures_message,
    unsupported_fix_template_error,
    unsupported_review_template_error,
)
from pr_reviewer.models import (
    CommandResult,
    EngineState,
    ExecutionStage,
    OpenPr,
    PrExecutionResult,
    RunSnapshot,
    utc_now,
)
from pr_reviewer.reports import ReportStep, report_path_for, write_report
from pr_reviewer.runner_git import GitManager
from pr_reviewer.selector import (
    PR_LIST_FIELDS,
    parse_open_prs,
    select_prs_for_execution,
    select_prs_for_listing,
    sort_by_recency,
    value_contains_login,
)
from pr_reviewer.shell import (
    is_review_prompt_conflict,
    remove_base_argument,
    run_shell,
    run_with_retry,
    sh_quote,
)
from pr_reviewer.store import (
    load_engine_state,
    save_engine_state,
    save_snapshot,
)
from pr_reviewer.utils import configure_logger, format_duration

BASE_REQUIRED_TOOLS = ("git", "gh")
PR_LIST_LIMIT = 200
REVIEW_PREFIX = "[review] "
FIX_PREFIX = "[fix] "

# Errors that end one PR (or one preparation step) without aborting the process
RECOVERABLE_ERRORS = (PrReviewerError, OSError)


# Tokens after which the shell expects a new command
COMMAND_SEPARATORS = frozenset({"&&", "||", ";", ";;", "|", "&", "(", ")", "{", "}", "!"})
# Words that run the command following them
COMMAND_PREFIXES = frozenset(
    {"exec", "command", "builtin", "env", "nohup", "time"}
    | {"if", "then", "else", "elif", "while", "until", "do"}
)
# Builtins whose arguments are not programs
SHELL_BUILTINS = frozenset(
    {"cd", "export", "set", "unset", "source", ".", ":", "pushd", "popd", "umask", "trap"}
)
_ASSIGNMENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")
_REDIRECTION = re.compile(r"^[<>&]*[<>][<>&]*$")


def _shell_words(template: str) -> list[str]:
    lexer = shlex.shlex(template, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    try:
        return list(lexer)
    except ValueError:
        return template.split()


def template_executable(template: str) -> str | None:
    """Return the program a command template runs first.

    Leading ``NAME=value`` assignments, grouping tokens, redirections and
    builtins such as ``cd`` or ``export`` are skipped. Both
    ``cd {{WORK_DIR}} && codex review`` and ``GIT_PAGER=cat codex exec``
    resolve to ``codex``.

    Args:
        template: Command template

    Returns:
        First program word, or None when the template runs no program

    """
    words = iter(_shell_words(template))
    expecting_command = True
    for word in words:
        if word in COMMAND_SEPARATORS:
            expecting_command = True
        elif _REDIRECTION.match(word):
            next(words, None)
        elif not expecting_command:
            continue
        elif word in SHELL_BUILTINS:
            expecting_command = False
        elif not (_ASSIGNMENT.match(word) or word in COMMAND_PREFIXES or word.startswith("-")):
            return word
    return None


class WorkflowRunner:
    """Runner that orchestrates review, fix and push over open PRs."""

    def __init__(
        self,
        settings: Settings,
        paths: StorePaths,
        *,
        verbose: bool = True,
        tracker: CompletionTracker | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            settings: Configuration settings
            paths: State directory paths
            verbose: Echo progress and command output live
            tracker: Monthly completion tracker (a fresh one by default)
            logger: Logger override (configured project logger by default)

        """
        self.settings = settings
        self.paths = paths
        self.verbose = verbose
        self.paths.ensure_dirs()
        self.logger = logger or configure_logger(
            self.paths.log_file,
            verbose=verbose,
            debug=settings.debug,
        )
        self.tracker = tracker or CompletionTracker()
        self.git = GitManager(settings, self.logger)

    def log_step(self, snapshot: RunSnapshot, message: str) -> None:
        """Append a message to the snapshot log and the logger."""
        snapshot.append_log(message)
        self.logger.info(message)

    def persist(self, snapshot: RunSnapshot) -> None:
        """Write the snapshot to disk."""
        save_snapshot(self.paths, snapshot)

    def _retry(
        self,
        command: str,
        *,
        stream: bool = False,
        prefix: str | None = None,
    ) -> CommandResult:
        return run_with_retry(
            command,
            self.settings.repo_path,
            retries=self.settings.max_command_retries,
            delay_seconds=self.settings.retry_delay_seconds,
            stream=stream,
            prefix=prefix,
            shell=self.settings.shell,
        )

    def load_state(self) -> EngineState:
        """Load engine state and seed the monthly tracker from it."""
        state = load_engine_state(self.paths)
        self.tracker.initialize(state)
        return state

    def validate_required_commands(self) -> None:
        """Check that git, gh and the template programs are on PATH.

        Raises:
            SetupError: A required CLI is missing

        """
        tools = list(BASE_REQUIRED_TOOLS)
        for template in (
            self.settings.review_command_template,
            self.settings.fix_command_template,
        ):
            executable = template_executable(template)
            if executable and executable not in tools:
                tools.append(executable)

        for tool in tools:
            if shutil.which(tool) is None:
                message = f"{tool} CLI not found"
                raise SetupError(message)

    def validate_command_templates(self) -> None:
        """Reject command templates written for unsupported agent CLIs.

        Raises:
            SetupError: A template uses an unsupported form

        """
        if "codex review --pr" in self.settings.review_command_template:
            raise SetupError(unsupported_review_template_error())
        if self.settings.fix_command_template.lstrip().startswith("codex fix"):
            raise SetupError(unsupported_fix_template_error())

    def list_open_prs(self) -> list[OpenPr]:
        """Fetch open PRs via gh.

        Returns:
            Parsed open PRs, unordered

        """
        fields = ",".join(PR_LIST_FIELDS)
        result = self._retry(
            f"gh pr list --state open --limit {PR_LIST_LIMIT} --json {fields}",
        )
        return parse_open_prs(result.stdout)

    def get_current_login(self) -> str | None:
        """Return the lower-cased gh login, or None when unavailable."""
        try:
            result = run_shell(
                "gh api user --jq .login",
                self.settings.repo_path,
                shell=self.settings.shell,
            )
        except ExecError as e:
            self.logger.warning("Could not determine gh login: %s", describe_error(e))
            return None
        login = result.stdout.strip()
        if not result.succeeded or not login:
            return None
        return login.lower()

    def pr_has_commit_by_login(self, pr_number: int, login: str) -> bool:
        """Check whether ``login`` authored a commit on a PR.

        Args:
            pr_number: PR number
            login: Login to look for

        Returns:
            True if a commit author matches

        Raises:
            OutputParseError: gh output is not valid JSON

        """
        result = self._retry(f"gh pr view {pr_number} --json commits")
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            message = f"failed parsing gh pr view commits json for PR #{pr_number}"
            raise OutputParseError(message) from e
        commits = payload.get("commits") if isinstance(payload, dict) else None
        return value_contains_login(commits, login)

    def _has_commit_or_false(self, pr_number: int, login: str) -> bool:
        try:
            return self.pr_has_commit_by_login(pr_number, login)
        except RECOVERABLE_ERRORS as e:
            self.logger.warning(
                "Commit lookup failed for PR #%s, keeping it: %s",
                pr_number,
                describe_error(e),
            )
            return False

    def fetch_open_prs(self, *, sync: bool) -> tuple[list[OpenPr], EngineState]:
        """Prepare the checkout and list open PRs, most recent first.

        Args:
            sync: Reset and fast-forward the default branch first

        Returns:
            Tuple of (open PRs, engine state)

        """
        state = self.load_state()
        self.validate_required_commands()
        self.git.ensure_repo_ready()
        self.validate_command_templates()
        if sync:
            self.git.sync_repository()
        return sort_by_recency(self.list_open_prs()), state

    def select_prs_for_listing(self, *, sync: bool = True) -> tuple[list[OpenPr], set[int]]:
        """Select open PRs worth showing to the current user.

        Args:
            sync: Sync the repository before listing

        Returns:
            Tuple of (filtered PRs, processed PR numbers)

        """
        prs, state = self.fetch_open_prs(sync=sync)
        login = self.get_current_login()
        selected = select_prs_for_listing(prs, login, self._has_commit_or_false)
        return selected, state.processed_set()

    def expand_template(self, template: str, pr: OpenPr, report_path: Path) -> str:
        """Substitute placeholders in a command template.

        Every substituted string is shell-quoted.

        Args:
            template: Command template
            pr: PR being processed
            report_path: Report file of the PR

        Returns:
            Command line ready for the shell

        """
        replacements = {
            "{{PR_NUMBER}}": str(pr.number),
            "{{PR_TITLE}}": sh_quote(pr.title),
            "{{PR_URL}}": sh_quote(pr.url),
            "{{PR_BRANCH}}": sh_quote(pr.head_ref_name),
            "{{DEFAULT_BRANCH}}": sh_quote(self.settings.default_branch),
            "{{REPO_PATH}}": sh_quote(self.settings.repo_path),
            "{{WORK_DIR}}": sh_quote(self.settings.repo_path),
            "{{REPORT_PATH}}": sh_quote(str(report_path)),
        }
        command = template
        for placeholder, value in replacements.items():
            command = command.replace(placeholder, value)
        return command

    def run_review(self, snapshot: RunSnapshot, command: str) -> tuple[str, CommandResult]:
        """Run the review command, falling back once on the --base conflict.

        Args:
            snapshot: Snapshot of the current run
            command: Expanded review command

        Returns:
            Tuple of (command actually run, its result)

        """
        try:
            return command, self._retry(command, stream=self.verbose, prefix=REVIEW_PREFIX)
        except ExecError as e:
            if not is_review_prompt_conflict(e):
                raise
        fallback = remove_base_argument(command)
        self.log_step(snapshot, review_fallback_message())
        return fallback, self._retry(fallback, stream=self.verbose, prefix=REVIEW_PREFIX)

    def _record_completion(self, pr: OpenPr, state: EngineState, snapshot: RunSnapshot) -> None:
        if self.tracker.record(pr.number):
            self.log_step(snapshot, counter_updated_message(pr.number))
            self.tracker.sync_into(state)
            save_engine_state(self.paths, state)
        else:
            self.log_step(snapshot, counter_unchanged_message(pr.number))

    def execute_pr(
        self,
        pr: OpenPr,
        state: EngineState,
        snapshot: RunSnapshot,
        ordinal: int,
        total: int,
    ) -> PrExecutionResult:
        """Check out, review, fix and push one PR.

        Args:
            pr: PR to process
            state: Engine state (updated when the PR is counted this month)
            snapshot: Snapshot of the current run
            ordinal: 1-based position of the PR in the run
            total: Number of PRs in the run

        Returns:
            Result of the PR

        Raises:
            PrReviewerError: A step failed; the caller records the PR as failed

        """
        snapshot.current_index = ordinal
        snapshot.current_pr_number = pr.number
        snapshot.current_pr_title = pr.title
        snapshot.stage = ExecutionStage.REVIEWING_PR
        self.log_step(snapshot, processing_pr_message(ordinal, total, pr.number, pr.title))
        self.persist(snapshot)

        report_path = report_path_for(self.paths.reports, pr.number)

        self.log_step(snapshot, f"Checkout PR #{pr.number}")
        self.git.checkout_pr(pr.number)

        review_cmd = self.expand_template(self.settings.review_command_template, pr, report_path)
        self.log_step(snapshot, f"Review PR #{pr.number}")
        review_cmd, review_result = self.run_review(snapshot, review_cmd)
        steps = [ReportStep.from_result("review", review_cmd, review_result)]
        write_report(report_path, pr, steps)

        snapshot.stage = ExecutionStage.FIXING_PR
        self.persist(snapshot)

        fix_cmd = self.expand_template(self.settings.fix_command_template, pr, report_path)
        self.log_step(snapshot, f"Fix PR #{pr.number}")
        fix_result = self._retry(fix_cmd, stream=self.verbose, prefix=FIX_PREFIX)
        steps.append(ReportStep.from_result("fix", fix_cmd, fix_result))
        write_report(report_path, pr, steps)

        pushed = False
        if self.settings.auto_push_enabled:
            snapshot.stage = ExecutionStage.PUSHING_CHANGES
            self.persist(snapshot)
            self.log_step(snapshot, f"Push changes for PR #{pr.number}")
            pushed = self.git.commit_and_push_if_needed(pr)

        if review_result.succeeded and fix_result.succeeded and pushed:
            self._record_completion(pr, state, snapshot)

        return PrExecutionResult(
            number=pr.number,
            title=pr.title,
            url=pr.url,
            review_exit_code=review_result.exit_code,
            fix_exit_code=fix_result.exit_code,
            pushed=pushed,
            report_path=str(report_path),
        )

    def _finish_state(self, state: EngineState, processed: set[int]) -> None:
        """Merge the run's processed PRs and the monthly counter, then persist."""
        state.merge_processed(processed)
        state.last_run_at = utc_now()
        self.tracker.sync_into(state)
        save_engine_state(self.paths, state)

    def _abort(self, snapshot: RunSnapshot, label: str, err: BaseException) -> RunSnapshot:
        """End the run as failed before any PR was processed."""
        message = describe_error(err)
        snapshot.mark_failed(message)
        self.log_step(snapshot, f"{label}: {message}")
        self.persist(snapshot)
        return snapshot

    def _preparation_steps(self) -> list[tuple[str, str, Callable[[], None]]]:
        return [
            ("Validate required commands", "Validation failed", self.validate_required_commands),
            (
                "Prepare repository (auto clone if empty)",
                "Repository preparation failed",
                self.git.ensure_repo_ready,
            ),
            (
                "Validate command templates",
                "Template validation failed",
                self.validate_command_templates,
            ),
            ("Sync repository", "Sync failed", self.git.sync_repository),
        ]

    def run(self) -> RunSnapshot:
        """Run the full workflow over new open PRs.

        Returns:
            Terminal snapshot of the run

        """
        start_time = time.time()
        state = self.load_state()

        snapshot = RunSnapshot.begin(ExecutionStage.SYNCING_REPO)
        self.log_step(snapshot, "Start run")
        self.persist(snapshot)

        for message, failure_label, step in self._preparation_steps():
            self.log_step(snapshot, message)
            try:
                step()
            except RECOVERABLE_ERRORS as e:
                return self._abort(snapshot, failure_label, e)

        snapshot.stage = ExecutionStage.LOADING_PRS
        self.log_step(snapshot, "Loading open PR list")
        self.persist(snapshot)

        try:
            open_prs = self.list_open_prs()
        except RECOVERABLE_ERRORS as e:
            return self._abort(snapshot, "Load PRs failed", e)

        new_prs = select_prs_for_execution(
            open_prs,
            state.processed_set(),
            self.settings.max_prs_per_run,
        )
        snapshot.total_prs = len(new_prs)
        self.log_step(snapshot, f"Found {len(new_prs)} new PR(s)")
        self.persist(snapshot)

        if not new_prs:
            self._finish_state(state, set())
            snapshot.mark_succeeded()
            self.log_step(snapshot, "No new PRs, run finished")
            self.persist(snapshot)
            return snapshot

        processed: set[int] = set()
        for ordinal, pr in enumerate(new_prs, 1):
            try:
                result = self.execute_pr(pr, state, snapshot, ordinal, len(new_prs))
            except RECOVERABLE_ERRORS as e:
                message = describe_error(e)
                self.log_step(snapshot, f"PR #{pr.number} failed: {message}")
                snapshot.add_result(PrExecutionResult.failed(pr, message))
            else:
                processed.add(pr.number)
                snapshot.add_result(result)
                self.log_step(snapshot, f"PR #{pr.number} finished")
            self.persist(snapshot)

        self.git.checkout_default_branch()
        self._finish_state(state, processed)

        failures = snapshot.failed_count
        if failures:
            snapshot.mark_failed(run_failures_message(failures))
            self.log_step(snapshot, f"Run completed with {failures} failure(s)")
        else:
            snapshot.mark_succeeded()
            self.log_step(snapshot, "Run completed successfully")

        self.logger.info("Run duration: %s", format_duration(int(time.time() - start_time)))
        self.persist(snapshot)
        return snapshot

    def run_single_pr(self, pr_number: int) -> RunSnapshot:
        """Review, fix and push one open PR regardless of earlier runs.

        Args:
            pr_number: PR to process

        Returns:
            Terminal snapshot of the run

        Raises:
            PrNotFoundError: The PR is not open
            PrReviewerError: Preparation or listing failed

        """
        prs, state = self.fetch_open_prs(sync=True)
        pr = next((item for item in prs if item.number == pr_number), None)
        if pr is None:
            message = f"PR #{pr_number} is not open or not found"
            raise PrNotFoundError(message)

        snapshot = RunSnapshot.begin(ExecutionStage.REVIEWING_PR, total_prs=1)
        self.log_step(snapshot, f"Start selected PR run for #{pr.number}")
        self.persist(snapshot)

        processed: set[int] = set()
        try:
            result = self.execute_pr(pr, state, snapshot, 1, 1)
        except RECOVERABLE_ERRORS as e:
            message = describe_error(e)
            snapshot.add_result(PrExecutionResult.failed(pr, message))
            snapshot.mark_failed(message)
            self.log_step(snapshot, f"Selected PR #{pr.number} failed: {message}")
        else:
            processed.add(pr.number)
            snapshot.add_result(result)
            snapshot.mark_succeeded()
            self.log_step(snapshot, f"Selected PR #{pr.number} completed successfully")

        self.git.checkout_default_branch()
        self._finish_state(state, processed)

        snapshot.current_index = 1
        self.persist(snapshot)
        return snapshot

    def monthly_fixed_count(self) -> int:
        """Return the number of PRs counted as fixed this month."""
        return self.tracker.count()
