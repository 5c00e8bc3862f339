"""Match open pull requests to issues and summarize their status."""

import re
from collections.abc import Sequence

from ..github_client.fetcher import GitHubFetcher
from ..github_client.models import RawPullRequest, StatusCheckRollup
from .models import ChecksState, PRStatus

CLOSING_KEYWORDS = (
    "close",
    "closes",
    "closed",
    "fix",
    "fixes",
    "fixed",
    "resolve",
    "resolves",
    "resolved",
)

MERGEABLE = "MERGEABLE"

_ROLLUP_STATES = {
    "SUCCESS": ChecksState.SUCCESS,
    "FAILURE": ChecksState.FAILURE,
    "ERROR": ChecksState.FAILURE,
    "PENDING": ChecksState.PENDING,
    "EXPECTED": ChecksState.PENDING,
}


def closing_reference_pattern(issue_number: int) -> re.Pattern[str]:
    """Regex matching e.g. "Closes #12" but not "Closes #123" for issue 12."""
    keywords = "|".join(CLOSING_KEYWORDS)
    return re.compile(
        rf"\b(?:{keywords}):?\s+#{issue_number}(?!\d)", re.IGNORECASE
    )


def checks_state(rollup: StatusCheckRollup | None) -> ChecksState:
    """Fold a check rollup into success, failure or pending."""
    if rollup is None or not isinstance(rollup.state, str):
        return ChecksState.PENDING
    return _ROLLUP_STATES.get(rollup.state.upper(), ChecksState.PENDING)


def resolve_status(
    issue_number: int, open_prs: Sequence[RawPullRequest]
) -> PRStatus | None:
    """Derive the PR status for an issue from the open pull request list.

    The first pull request whose body carries a closing reference to the issue
    wins. Returns None when no pull request references it.
    """
    pattern = closing_reference_pattern(issue_number)
    for pr in open_prs:
        if pr.body and pattern.search(pr.body):
            return PRStatus(
                pr_number=pr.number,
                mergeable=pr.mergeable == MERGEABLE,
                checks_state=checks_state(pr.status_check_rollup),
            )
    return None


async def get_pr_status(
    owner: str,
    repo: str,
    issue_number: int,
    fetcher: GitHubFetcher | None = None,
) -> PRStatus | None:
    """Fetch open pull requests and resolve the status for one issue.

    Raises:
        FetchError: If the pull request query fails
    """
    fetcher = fetcher or GitHubFetcher()
    open_prs = await fetcher.fetch_open_prs(owner, repo)
    return resolve_status(issue_number, open_prs)
