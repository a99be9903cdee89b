"""Selection of open PRs for listing and for execution."""

import json
from collections.abc import Callable, Iterable

import pydantic as pyd

from pr_reviewer.errors import OutputParseError
from pr_reviewer.models import OpenPr

PARSE_ERROR_SNIPPET_CHARS = 120
WIP_MARKER = "wip"

# Fields gh returns for each open PR; the involvement payloads are searched for a login.
PR_LIST_FIELDS = (
    "number",
    "title",
    "headRefName",
    "url",
    "updatedAt",
    "author",
    "assignees",
    "reviews",
    "reviewRequests",
    "comments",
    "latestReviews",
)


def parse_open_prs(payload: str) -> list[OpenPr]:
    """Parse ``gh pr list --json`` output.

    Args:
        payload: Raw stdout of gh

    Returns:
        Parsed PR records

    Raises:
        OutputParseError: The output is not a JSON array of PR objects

    """
    snippet = payload[:PARSE_ERROR_SNIPPET_CHARS]
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        message = f"failed parsing gh pr json output, stdout snippet: {snippet}"
        raise OutputParseError(message) from e

    if not isinstance(data, list):
        message = f"failed parsing gh pr json output, expected a list, stdout snippet: {snippet}"
        raise OutputParseError(message)

    try:
        return [OpenPr.model_validate(item) for item in data]
    except pyd.ValidationError as e:
        message = f"failed parsing gh pr json output, stdout snippet: {snippet}"
        raise OutputParseError(message) from e


def sort_by_recency(prs: Iterable[OpenPr]) -> list[OpenPr]:
    """Return PRs ordered by ``updated_at``, most recent first.

    gh timestamps are fixed-width ISO-8601 strings, so string order is time order.
    """
    return sorted(prs, key=lambda pr: pr.updated_at, reverse=True)


def value_contains_login(value: object, login: str) -> bool:
    """Search a JSON value for an object whose ``login`` field equals ``login``.

    Args:
        value: Arbitrarily nested dict/list/scalar value
        login: Login to look for (case-insensitive)

    Returns:
        True if any nested ``login`` field matches

    """
    if isinstance(value, dict):
        candidate = value.get("login")
        if isinstance(candidate, str) and candidate.lower() == login.lower():
            return True
        return any(value_contains_login(item, login) for item in value.values())
    if isinstance(value, list):
        return any(value_contains_login(item, login) for item in value)
    return False


def pr_involves_login(pr: OpenPr, login: str) -> bool:
    """Check whether ``login`` authored, was assigned, reviewed or commented on ``pr``."""
    if pr.author.login.lower() == login.lower():
        return True
    payloads = (pr.assignees, pr.reviews, pr.review_requests, pr.comments, pr.latest_reviews)
    return any(value_contains_login(payload, login) for payload in payloads)


def select_prs_for_listing(
    prs: Iterable[OpenPr],
    login: str | None,
    has_commit_by_login: Callable[[int, str], bool],
) -> list[OpenPr]:
    """Select PRs worth showing to the current user.

    Drops work-in-progress PRs and PRs the user is already involved in. The
    commit lookup is only consulted for PRs that pass the cheap checks.

    Args:
        prs: Open PRs
        login: Current user's login, or None when unknown
        has_commit_by_login: Callback ``(pr_number, login) -> bool``

    Returns:
        Filtered PRs, most recently updated first

    """
    selected = []
    for pr in sort_by_recency(prs):
        if WIP_MARKER in pr.title.lower():
            continue
        if login is not None and (
            pr_involves_login(pr, login) or has_commit_by_login(pr.number, login)
        ):
            continue
        selected.append(pr)
    return selected


def select_prs_for_execution(
    prs: Iterable[OpenPr],
    processed: set[int],
    max_prs: int,
) -> list[OpenPr]:
    """Select the new PRs a run should process.

    Args:
        prs: Open PRs
        processed: PR numbers handled by earlier runs
        max_prs: Maximum number of PRs per run

    Returns:
        Unprocessed PRs, most recently updated first, at most ``max_prs``

    """
    new_prs = [pr for pr in sort_by_recency(prs) if pr.number not in processed]
    return new_prs[: max(max_prs, 0)]
