"""Build the issue dependency graph from raw issue records."""

import logging
from collections.abc import Iterable, Sequence

from ..github_client.fetcher import GitHubFetcher
from ..github_client.models import RawIssue
from .models import IssueEdge, IssueGraph, IssueNode, IssueState, IssueType

logger = logging.getLogger(__name__)

# Checked in order; the first label present wins.
TYPE_PRIORITY = (IssueType.FEATURE, IssueType.TASK, IssueType.BUG)

NO_PROJECT_WARNING = (
    "No project board is configured for this repository; "
    "dependency metadata may be incomplete."
)


def parse_type(labels: Iterable[str] | None) -> IssueType | None:
    """Determine the issue type from label names.

    Priority is Feature > Task > Bug. Unrecognized or missing labels give None.
    """
    try:
        names = {label for label in labels or () if isinstance(label, str)}
    except TypeError:
        return None
    for issue_type in TYPE_PRIORITY:
        if issue_type.value in names:
            return issue_type
    return None


def parse_state(state: str | None) -> IssueState:
    """Normalize issue state; anything but a case-insensitive "open" is closed."""
    if isinstance(state, str) and state.lower() == "open":
        return IssueState.OPEN
    return IssueState.CLOSED


def _to_node(raw: RawIssue) -> IssueNode:
    return IssueNode(
        number=raw.number,
        title=raw.title,
        state=parse_state(raw.state),
        type=parse_type(raw.labels),
        external=False,
        blocked_by=tuple(raw.blocked_by or ()),
    )


def build_graph(raw_issues: Sequence[RawIssue], project_count: int) -> IssueGraph:
    """Transform raw issue records into an immutable dependency graph.

    Args:
        raw_issues: Issues in source query order
        project_count: Number of project boards linked to the repository

    Returns:
        IssueGraph with one edge per blocked_by entry. Duplicate edges are kept.
    """
    nodes = tuple(_to_node(raw) for raw in raw_issues)
    edges = tuple(
        IssueEdge(source=blocker, target=node.number)
        for node in nodes
        for blocker in node.blocked_by
    )
    warning = NO_PROJECT_WARNING if project_count == 0 else None

    graph = IssueGraph(nodes=nodes, edges=edges, warning=warning)

    dangling = graph.dangling_edges()
    if dangling:
        refs = ", ".join(f"#{edge.source}->#{edge.target}" for edge in dangling)
        logger.warning(f"Graph references issues outside the fetch window: {refs}")

    return graph


async def load_issue_graph(
    owner: str, repo: str, fetcher: GitHubFetcher | None = None
) -> IssueGraph:
    """Fetch issues for a repository and build its dependency graph.

    Raises:
        FetchError: If the fetch fails. The builder does not run in that case.
    """
    fetcher = fetcher or GitHubFetcher()
    result = await fetcher.fetch_issues(owner, repo)
    return build_graph(result.issues, result.project_count)
