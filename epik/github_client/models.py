"""Pydantic models for raw GitHub records returned by the data fetcher.

These models map to the GitHub GraphQL API response structures, flattened
to the fields the graph builder and PR status resolver depend on.
API Reference: https://docs.github.com/en/graphql/reference/objects#issue
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RawIssue(BaseModel):
    """Issue record as returned by the issue query.

    Maps to GitHub GraphQL Issue object. Fields that GitHub may omit or return
    as null are optional so that partial records still load.
    API Reference: https://docs.github.com/en/graphql/reference/objects#issue
    """

    model_config = ConfigDict(populate_by_name=True)

    number: int = Field(..., description="Issue number within the repository")
    title: str = Field("", description="Short description/title of the issue")
    state: str | None = Field(None, description="Issue state, e.g. 'OPEN'")
    labels: list[str] = Field(
        default_factory=list, description="Names of labels attached to the issue"
    )
    blocked_by: list[int] | None = Field(
        None,
        alias="blockedBy",
        description="Numbers of issues blocking this one, None if not reported",
    )
    body: str | None = Field(None, description="Issue body in markdown")


class IssueQueryResult(BaseModel):
    """Result of the issue query: issues plus project board existence count."""

    issues: list[RawIssue] = Field(default_factory=list)
    project_count: int = Field(
        0, description="projectsV2.totalCount for the repository"
    )


class StatusCheckRollup(BaseModel):
    """Aggregated CI status for a pull request head commit.

    API Reference: https://docs.github.com/en/graphql/reference/objects#statuscheckrollup
    """

    state: str | None = Field(
        None, description="SUCCESS, FAILURE, ERROR, PENDING or EXPECTED"
    )


class RawPullRequest(BaseModel):
    """Open pull request record.

    Maps to GitHub GraphQL PullRequest object.
    API Reference: https://docs.github.com/en/graphql/reference/objects#pullrequest
    """

    model_config = ConfigDict(populate_by_name=True)

    number: int = Field(..., description="Pull request number")
    body: str | None = Field(None, description="Pull request body in markdown")
    mergeable: str | None = Field(
        None, description="MERGEABLE, CONFLICTING or UNKNOWN"
    )
    status_check_rollup: StatusCheckRollup | None = Field(
        None, alias="statusCheckRollup", description="CI rollup, None if no checks"
    )


def label_names(raw_labels: Any) -> list[str]:
    """Extract label names from a GraphQL ``labels`` connection.

    Accepts ``{"nodes": [{"name": ...}]}``, a plain list of label objects or a
    list of strings. Anything malformed yields an empty list.
    """
    if isinstance(raw_labels, dict):
        raw_labels = raw_labels.get("nodes")
    if not isinstance(raw_labels, list):
        return []

    names = []
    for label in raw_labels:
        if isinstance(label, str):
            names.append(label)
        elif isinstance(label, dict) and isinstance(label.get("name"), str):
            names.append(label["name"])
    return names


def issue_numbers(raw_refs: Any) -> list[int] | None:
    """Extract issue numbers from a GraphQL issue connection.

    Returns None when the connection is missing entirely so callers can tell
    "no data" apart from "no dependencies".
    """
    if raw_refs is None:
        return None
    if isinstance(raw_refs, dict):
        raw_refs = raw_refs.get("nodes")
    if not isinstance(raw_refs, list):
        return []

    numbers = []
    for ref in raw_refs:
        if isinstance(ref, dict):
            ref = ref.get("number")
        if isinstance(ref, int) and not isinstance(ref, bool) and ref > 0:
            numbers.append(ref)
    return numbers
