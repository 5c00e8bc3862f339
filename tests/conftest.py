"""Test configuration and fixtures."""

import json
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import pytest


def make_gql_issues_response(
    issues: list[dict[str, Any]], project_count: int = 1
) -> dict[str, Any]:
    """Build a GraphQL issue query response.

    Each issue dict takes number, title, state, labels (names) and blocked_by
    (numbers). Pass ``blocked_by=None`` to omit the connection entirely.
    """
    nodes = []
    for issue in issues:
        node: dict[str, Any] = {
            "number": issue["number"],
            "title": issue.get("title", f"Issue {issue['number']}"),
            "state": issue.get("state", "OPEN"),
            "body": issue.get("body"),
            "labels": {"nodes": [{"name": name} for name in issue.get("labels", [])]},
        }
        blocked_by = issue.get("blocked_by", [])
        if blocked_by is not None:
            node["blockedBy"] = {"nodes": [{"number": n} for n in blocked_by]}
        nodes.append(node)

    return {
        "data": {
            "repository": {
                "issues": {"nodes": nodes},
                "projectsV2": {"totalCount": project_count},
            }
        }
    }


def make_gql_prs_response(pull_requests: list[dict[str, Any]]) -> dict[str, Any]:
    """Build a GraphQL pull request query response.

    Each dict takes number, body, mergeable and rollup_state. Use
    ``rollup_state=None`` for a commit without a check rollup.
    """
    nodes = []
    for pr in pull_requests:
        rollup = (
            {"state": pr["rollup_state"]}
            if pr.get("rollup_state") is not None
            else None
        )
        nodes.append(
            {
                "number": pr["number"],
                "body": pr.get("body"),
                "mergeable": pr.get("mergeable"),
                "commits": {"nodes": [{"commit": {"statusCheckRollup": rollup}}]},
            }
        )
    return {"data": {"repository": {"pullRequests": {"nodes": nodes}}}}


def make_exec(payload: Any) -> AsyncMock:
    """Mock gh exec resolving with the serialized payload."""
    return AsyncMock(return_value=json.dumps(payload))


class FakeNatsSubscription:
    """Stand-in for a nats-py subscription."""

    def __init__(self, connection: "FakeNatsConnection", subject: str, cb: Any):
        self.connection = connection
        self.subject = subject
        self.cb = cb

    async def unsubscribe(self) -> None:
        if self in self.connection.subscriptions:
            self.connection.subscriptions.remove(self)


class FakeNatsConnection:
    """In-memory stand-in for a nats-py client connection."""

    def __init__(self) -> None:
        self.is_closed = False
        self.published: list[tuple[str, bytes]] = []
        self.subscriptions: list[FakeNatsSubscription] = []
        self.close_calls = 0

    async def publish(self, subject: str, payload: bytes) -> None:
        self.published.append((subject, payload))
        for subscription in list(self.subscriptions):
            if subscription.subject == subject:
                await subscription.cb(SimpleNamespace(subject=subject, data=payload))

    async def subscribe(self, subject: str, cb: Any = None) -> FakeNatsSubscription:
        subscription = FakeNatsSubscription(self, subject, cb)
        self.subscriptions.append(subscription)
        return subscription

    async def close(self) -> None:
        self.close_calls += 1
        self.is_closed = True


class FakeBroker:
    """Connect function that records every connection it hands out."""

    def __init__(self) -> None:
        self.connections: list[FakeNatsConnection] = []
        self.fail_with: Exception | None = None

    async def connect(self, servers: str = "", **kwargs: Any) -> FakeNatsConnection:
        if self.fail_with is not None:
            raise self.fail_with
        connection = FakeNatsConnection()
        self.connections.append(connection)
        return connection

    @property
    def latest(self) -> FakeNatsConnection:
        return self.connections[-1]


@pytest.fixture
def broker() -> FakeBroker:
    """Fake NATS broker."""
    return FakeBroker()


@pytest.fixture
def exec_factory() -> Callable[[Any], AsyncMock]:
    """Factory for mock gh exec functions."""
    return make_exec


@pytest.fixture
def issues_response() -> Callable[..., dict[str, Any]]:
    """Builder for GraphQL issue query responses."""
    return make_gql_issues_response


@pytest.fixture
def prs_response() -> Callable[..., dict[str, Any]]:
    """Builder for GraphQL pull request query responses."""
    return make_gql_prs_response
