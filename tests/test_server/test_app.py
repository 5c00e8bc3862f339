"""Tests for the observer HTTP and WebSocket endpoints."""

import json
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from epik.events.aggregator import EventAggregator
from epik.github_client.fetcher import GitHubFetcher
from epik.server.app import create_app
from epik.transport.router import TopicMessage, TopicRouter
from epik.transport.topics import TopicSet


@pytest.fixture
def aggregator(broker: Any) -> EventAggregator:
    router = TopicRouter(connect=broker.connect)
    return EventAggregator(router, TopicSet(workers=2))


@pytest.fixture
def client(aggregator: EventAggregator) -> TestClient:
    """Test client without repository endpoints configured."""
    return TestClient(create_app(aggregator))


def repo_client(aggregator: EventAggregator, exec: AsyncMock) -> TestClient:
    app = create_app(
        aggregator, owner="octo", repo="demo", fetcher=GitHubFetcher(exec=exec)
    )
    return TestClient(app)


class TestCommandEndpoints:
    """Tests for message and interrupt forwarding."""

    def test_message_is_accepted(self, client: TestClient, broker: Any) -> None:
        """Test a message is published to the agent's command topic."""
        response = client.post(
            "/api/message", json={"agentId": "worker-0", "text": "rebase please"}
        )

        assert response.status_code == 202
        assert response.json() == {"accepted": True}
        [(topic, data)] = broker.latest.published
        assert topic == "epik.worker.0"
        assert json.loads(data) == {"type": "message", "text": "rebase please"}

    def test_interrupt_is_accepted(self, client: TestClient, broker: Any) -> None:
        response = client.post("/api/interrupt", json={"agentId": "supervisor"})

        assert response.status_code == 202
        assert broker.latest.published[0][0] == "epik.supervisor"

    def test_unknown_agent(self, client: TestClient) -> None:
        response = client.post("/api/interrupt", json={"agentId": "worker-7"})
        assert response.status_code == 404
        assert "worker-7" in response.json()["detail"]

    def test_missing_fields(self, client: TestClient) -> None:
        """Test invalid bodies return a validation error."""
        response = client.post("/api/message", json={"agentId": "worker-0"})
        assert response.status_code == 422
        response = client.post("/api/message", json={"agentId": "worker-0", "text": ""})
        assert response.status_code == 422

    def test_broker_unavailable(self, client: TestClient, broker: Any) -> None:
        broker.fail_with = OSError("connection refused")
        response = client.post("/api/interrupt", json={"agentId": "worker-1"})
        assert response.status_code == 503
        assert "connection refused" in response.json()["detail"]


class TestObserverStream:
    """Tests for the WebSocket event stream."""

    def test_replays_pool_and_history(
        self, client: TestClient, aggregator: EventAggregator
    ) -> None:
        """Test a new observer first receives the pool, then past events."""
        aggregator.handle_pool_message(
            TopicMessage(
                topic="epik.pool",
                data=b'[{"agentId": "worker-0", "status": "working", "issue": 3}]',
            )
        )
        aggregator.handle_agent_message(
            "worker-0",
            TopicMessage(
                topic="epik.events.worker-0",
                data=b'{"kind": "text_delta", "id": "e1", "text": "Hello"}',
            ),
        )

        with client.websocket_connect("/ws") as websocket:
            pool_frame = websocket.receive_json()
            event_frame = websocket.receive_json()

        assert pool_frame == {
            "type": "pool_state",
            "pool": [{"agentId": "worker-0", "status": "working", "issue": 3}],
        }
        assert event_frame == {
            "type": "agent_event",
            "agentId": "worker-0",
            "event": {"kind": "text_delta", "id": "e1", "text": "Hello"},
        }

    def test_empty_pool_on_fresh_server(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as websocket:
            assert websocket.receive_json() == {"type": "pool_state", "pool": []}


class TestGraphEndpoints:
    """Tests for the graph and PR status endpoints."""

    def test_graph(
        self, aggregator: EventAggregator, exec_factory: Any, issues_response: Any
    ) -> None:
        payload = issues_response(
            [
                {"number": 1, "labels": ["Feature"]},
                {"number": 2, "labels": ["Task"], "blocked_by": [1]},
            ]
        )
        exec = exec_factory(payload)
        response = repo_client(aggregator, exec).get("/api/graph")

        assert response.status_code == 200
        data = response.json()
        assert [node["number"] for node in data["nodes"]] == [1, 2]
        assert data["edges"] == [{"source": 1, "target": 2}]
        assert data["warning"] is None
        assert "owner=octo" in exec.call_args.args[0]

    def test_graph_fetch_error(self, aggregator: EventAggregator) -> None:
        exec = AsyncMock(side_effect=RuntimeError("gh: not logged in"))
        response = repo_client(aggregator, exec).get("/api/graph")
        assert response.status_code == 502
        assert "not logged in" in response.json()["detail"]

    def test_graph_without_repository(self, client: TestClient) -> None:
        assert client.get("/api/graph").status_code == 404

    def test_pr_status(
        self, aggregator: EventAggregator, exec_factory: Any, prs_response: Any
    ) -> None:
        payload = prs_response(
            [
                {
                    "number": 101,
                    "body": "Closes #2",
                    "mergeable": "MERGEABLE",
                    "rollup_state": "SUCCESS",
                }
            ]
        )
        client = repo_client(aggregator, exec_factory(payload))

        response = client.get("/api/issues/2/pr")
        assert response.status_code == 200
        assert response.json() == {
            "pr_number": 101,
            "mergeable": True,
            "checks_state": "success",
        }

        assert client.get("/api/issues/3/pr").json() is None


class TestLifecycle:
    """Tests for application startup and shutdown."""

    def test_manages_aggregator_and_router(
        self, aggregator: EventAggregator, broker: Any
    ) -> None:
        app = create_app(aggregator, manage_lifecycle=True)
        with TestClient(app):
            subjects = {sub.subject for sub in broker.latest.subscriptions}
            assert "epik.pool" in subjects
            assert "epik.events.worker-1" in subjects

        assert broker.latest.close_calls == 1
        assert not aggregator.router.is_connected
