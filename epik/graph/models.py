"""Pydantic models for the issue dependency graph and PR status."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class IssueState(str, Enum):
    """Normalized issue state."""

    OPEN = "open"
    CLOSED = "closed"


class IssueType(str, Enum):
    """Issue type derived from labels."""

    FEATURE = "Feature"
    TASK = "Task"
    BUG = "Bug"


class ChecksState(str, Enum):
    """Three-way summary of a pull request's CI checks."""

    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


class IssueNode(BaseModel):
    """One tracked issue in the dependency graph."""

    model_config = ConfigDict(frozen=True)

    number: int = Field(..., gt=0, description="Issue number, unique per snapshot")
    title: str = Field("", description="Display title")
    state: IssueState = Field(..., description="Normalized open/closed state")
    type: IssueType | None = Field(None, description="Derived from labels")
    external: bool = Field(
        False, description="True if the issue lives outside the tracked repository"
    )
    blocked_by: tuple[int, ...] = Field(
        default_factory=tuple,
        description="Numbers of issues this issue depends on; may dangle",
    )


class IssueEdge(BaseModel):
    """Directed blocking edge: ``source`` must close before ``target`` starts."""

    model_config = ConfigDict(frozen=True)

    source: int = Field(..., description="Blocking issue number")
    target: int = Field(..., description="Blocked issue number")


class IssueGraph(BaseModel):
    """Immutable snapshot of the issue dependency graph from one fetch."""

    model_config = ConfigDict(frozen=True)

    nodes: tuple[IssueNode, ...] = Field(
        default_factory=tuple, description="Issues in source query order"
    )
    edges: tuple[IssueEdge, ...] = Field(
        default_factory=tuple, description="One edge per blocked_by entry"
    )
    warning: str | None = Field(
        None, description="Degraded-data advisory, never blocks graph use"
    )

    def node(self, number: int) -> IssueNode | None:
        """Return the node with the given number, if present."""
        for node in self.nodes:
            if node.number == number:
                return node
        return None

    def dangling_edges(self) -> list[IssueEdge]:
        """Edges whose source or target is not a node in this snapshot."""
        known = {node.number for node in self.nodes}
        return [
            edge
            for edge in self.edges
            if edge.source not in known or edge.target not in known
        ]

    def ready_issues(self) -> list[IssueNode]:
        """Open issues whose blockers are all closed.

        A blocker missing from the snapshot counts as unresolved, so an issue
        that depends on something outside the fetch window is never ready.
        """
        states = {node.number: node.state for node in self.nodes}
        return [
            node
            for node in self.nodes
            if node.state == IssueState.OPEN
            and all(
                states.get(blocker) == IssueState.CLOSED for blocker in node.blocked_by
            )
        ]


class PRStatus(BaseModel):
    """Derived status of the pull request linked to an issue."""

    model_config = ConfigDict(frozen=True)

    pr_number: int = Field(..., description="Pull request number")
    mergeable: bool = Field(..., description="True only for MERGEABLE")
    checks_state: ChecksState = Field(..., description="success, failure or pending")
