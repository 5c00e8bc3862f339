"""Issue dependency graph and pull request status derivation."""

from .builder import build_graph, load_issue_graph, parse_state, parse_type
from .models import (
    ChecksState,
    IssueEdge,
    IssueGraph,
    IssueNode,
    IssueState,
    IssueType,
    PRStatus,
)
from .pr_status import get_pr_status, resolve_status

__all__ = [
    "ChecksState",
    "IssueEdge",
    "IssueGraph",
    "IssueNode",
    "IssueState",
    "IssueType",
    "PRStatus",
    "build_graph",
    "get_pr_status",
    "load_issue_graph",
    "parse_state",
    "parse_type",
    "resolve_status",
]
