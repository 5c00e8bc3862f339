"""Fetch issue and pull request records through the GitHub CLI."""

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from ..exceptions import FetchError, GhCommandError
from .models import (
    IssueQueryResult,
    RawIssue,
    RawPullRequest,
    issue_numbers,
    label_names,
)

logger = logging.getLogger(__name__)

GhExec = Callable[[list[str]], Awaitable[str]]

ISSUES_QUERY = """
query($owner: String!, $repo: String!) {
  repository(owner: $owner, name: $repo) {
    issues(first: 100, orderBy: {field: CREATED_AT, direction: ASC}) {
      nodes {
        number
        title
        state
        body
        labels(first: 20) { nodes { name } }
        blockedBy(first: 50) { nodes { number } }
      }
    }
    projectsV2(first: 1) { totalCount }
  }
}
"""

PULL_REQUESTS_QUERY = """
query($owner: String!, $repo: String!) {
  repository(owner: $owner, name: $repo) {
    pullRequests(states: OPEN, first: 100) {
      nodes {
        number
        body
        mergeable
        commits(last: 1) { nodes { commit { statusCheckRollup { state } } } }
      }
    }
  }
}
"""

_BLOCKED_BY_HEADING = re.compile(r"blocked\s+by", re.IGNORECASE)
_BLOCKED_BY_ITEM = re.compile(r"^[-*]\s+#(\d+)")


async def run_gh_command(args: list[str], binary: str = "gh") -> str:
    """Run a GitHub CLI command and return its stdout.

    Args:
        args: Arguments passed to the binary (no shell interpolation)
        binary: Executable to run, ``gh`` unless overridden

    Returns:
        Decoded standard output

    Raises:
        GhCommandError: If the binary is missing or exits non-zero
    """
    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise GhCommandError(f"{binary}: {e}") from e

    stdout, stderr = await process.communicate()
    error_text = stderr.decode("utf-8", errors="replace").strip()
    if process.returncode != 0:
        raise GhCommandError(
            f"{binary} {' '.join(args[:2])} failed "
            f"(exit {process.returncode}): {error_text}",
            returncode=process.returncode,
            stderr=error_text,
        )
    return stdout.decode("utf-8", errors="replace")


def parse_blocked_by(body: str | None) -> list[int]:
    """Parse ``- #N`` lines listed under a "Blocked by" heading in an issue body.

    Used when the tracker does not report structured dependencies. Parsing stops
    at the next markdown heading; anything unparseable yields no entries.
    """
    if not body:
        return []

    blocked_by: list[int] = []
    in_section = False
    for line in body.splitlines():
        stripped = line.strip()
        if not in_section:
            if _BLOCKED_BY_HEADING.search(line):
                in_section = True
            continue
        match = _BLOCKED_BY_ITEM.match(stripped)
        if match:
            blocked_by.append(int(match.group(1)))
        elif stripped.startswith("#"):
            break
    return blocked_by


def _connection_nodes(repository: dict[str, Any], field: str) -> list[Any]:
    """Return the ``nodes`` list of a GraphQL connection field.

    Raises:
        FetchError: If the connection or its nodes have an unexpected shape
    """
    connection = repository.get(field)
    if connection is None:
        return []
    if not isinstance(connection, dict):
        raise FetchError(f"Unexpected GraphQL response: {field} is not an object")
    nodes = connection.get("nodes")
    if nodes is None:
        return []
    if not isinstance(nodes, list):
        raise FetchError(f"Unexpected GraphQL response: {field}.nodes is not a list")
    return nodes


class GitHubFetcher:
    """Issues the structured issue and pull request queries."""

    def __init__(self, exec: GhExec | None = None):
        """Initialize the fetcher.

        Args:
            exec: Coroutine running a ``gh`` command and returning stdout.
                Defaults to :func:`run_gh_command`.
        """
        self.exec = exec or run_gh_command

    async def _graphql(self, query: str, owner: str, repo: str) -> dict[str, Any]:
        """Run a GraphQL query and return its ``data.repository`` object."""
        args = [
            "api",
            "graphql",
            "-f",
            f"query={query}",
            "-f",
            f"owner={owner}",
            "-f",
            f"repo={repo}",
        ]
        try:
            output = await self.exec(args)
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(str(e)) from e

        try:
            payload = json.loads(output)
        except json.JSONDecodeError as e:
            raise FetchError(f"Invalid JSON from gh api graphql: {e}") from e

        if not isinstance(payload, dict):
            raise FetchError("Unexpected GraphQL response: not an object")
        if payload.get("errors"):
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in payload["errors"]
            )
            raise FetchError(f"GraphQL error: {messages}")

        repository = (payload.get("data") or {}).get("repository")
        if not isinstance(repository, dict):
            raise FetchError(f"Repository {owner}/{repo} not found")
        return repository

    def _convert_issue(self, node: dict[str, Any]) -> RawIssue | None:
        """Convert a GraphQL issue node, skipping nodes without a usable number."""
        number = node.get("number")
        if not isinstance(number, int) or isinstance(number, bool) or number < 1:
            logger.warning(f"Skipping issue node without a valid number: {node!r}")
            return None

        body = node.get("body") if isinstance(node.get("body"), str) else None
        blocked_by = issue_numbers(node.get("blockedBy"))
        if blocked_by is None:
            blocked_by = parse_blocked_by(body)

        title = node.get("title")
        state = node.get("state")
        return RawIssue(
            number=number,
            title=title if isinstance(title, str) else "",
            state=state if isinstance(state, str) else None,
            labels=label_names(node.get("labels")),
            blocked_by=blocked_by,
            body=body,
        )

    def _convert_pull_request(self, node: dict[str, Any]) -> RawPullRequest | None:
        """Convert a GraphQL pull request node, flattening the head commit rollup."""
        number = node.get("number")
        if not isinstance(number, int) or isinstance(number, bool):
            logger.warning(f"Skipping pull request node without a number: {node!r}")
            return None

        rollup = node.get("statusCheckRollup")
        commits = node.get("commits")
        if rollup is None and isinstance(commits, dict):
            commit_nodes = commits.get("nodes") or []
            if commit_nodes and isinstance(commit_nodes[-1], dict):
                rollup = (commit_nodes[-1].get("commit") or {}).get(
                    "statusCheckRollup"
                )

        body = node.get("body")
        mergeable = node.get("mergeable")
        return RawPullRequest(
            number=number,
            body=body if isinstance(body, str) else None,
            mergeable=mergeable if isinstance(mergeable, str) else None,
            statusCheckRollup=rollup if isinstance(rollup, dict) else None,
        )

    async def fetch_issues(self, owner: str, repo: str) -> IssueQueryResult:
        """Fetch issues with labels and blocking references.

        Args:
            owner: Repository owner
            repo: Repository name

        Returns:
            IssueQueryResult with issues in query order and the project count

        Raises:
            FetchError: If the query fails; the message carries the cause
        """
        repository = await self._graphql(ISSUES_QUERY, owner, repo)

        nodes = _connection_nodes(repository, "issues")
        issues = []
        for node in nodes:
            if not isinstance(node, dict):
                continue
            issue = self._convert_issue(node)
            if issue is not None:
                issues.append(issue)

        projects = repository.get("projectsV2")
        project_count = 0
        if isinstance(projects, dict):
            project_count = projects.get("totalCount", 0)
        if not isinstance(project_count, int):
            project_count = 0

        logger.info(f"Fetched {len(issues)} issues from {owner}/{repo}")
        return IssueQueryResult(issues=issues, project_count=project_count)

    async def fetch_open_prs(self, owner: str, repo: str) -> list[RawPullRequest]:
        """Fetch open pull requests with mergeability and check rollup.

        Raises:
            FetchError: If the query fails; the message carries the cause
        """
        repository = await self._graphql(PULL_REQUESTS_QUERY, owner, repo)

        nodes = _connection_nodes(repository, "pullRequests")
        pull_requests = []
        for node in nodes:
            if not isinstance(node, dict):
                continue
            pr = self._convert_pull_request(node)
            if pr is not None:
                pull_requests.append(pr)

        logger.info(f"Fetched {len(pull_requests)} open PRs from {owner}/{repo}")
        return pull_requests
