"""GitHub data fetching package."""

from .fetcher import GitHubFetcher, parse_blocked_by, run_gh_command
from .models import IssueQueryResult, RawIssue, RawPullRequest, StatusCheckRollup

__all__ = [
    "GitHubFetcher",
    "IssueQueryResult",
    "RawIssue",
    "RawPullRequest",
    "StatusCheckRollup",
    "parse_blocked_by",
    "run_gh_command",
]
