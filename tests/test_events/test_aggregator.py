"""Tests for the event aggregator and observer channels."""

import asyncio
import json
from typing import Any

import pytest

from epik.events.aggregator import EventAggregator, ObserverChannel
from epik.events.models import (
    AgentEventFrame,
    AgentState,
    AgentStatus,
    PoolStateFrame,
    TextDelta,
)
from epik.transport.router import TopicMessage, TopicRouter
from epik.transport.topics import TopicSet, UnknownAgentError


def agent_message(agent_id: str, payload: Any) -> TopicMessage:
    data = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    return TopicMessage(topic=f"epik.events.{agent_id}", data=data)


def pool_message(payload: Any) -> TopicMessage:
    return TopicMessage(topic="epik.pool", data=json.dumps(payload).encode())


async def take(channel: ObserverChannel, count: int) -> list[Any]:
    """Read ``count`` frames, failing fast if they never arrive."""

    async def _read() -> list[Any]:
        frames = []
        async for frame in channel:
            frames.append(frame)
            if len(frames) == count:
                break
        return frames

    return await asyncio.wait_for(_read(), timeout=1)


async def settle() -> None:
    """Let consumer tasks drain their queues."""
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
def router(broker: Any) -> TopicRouter:
    return TopicRouter(connect=broker.connect)


@pytest.fixture
def aggregator(router: TopicRouter) -> EventAggregator:
    return EventAggregator(router, TopicSet(workers=2))


class TestObserverChannel:
    """Test per-observer delivery."""

    @pytest.mark.asyncio
    async def test_frames_in_order(self) -> None:
        channel = ObserverChannel()
        frames = [PoolStateFrame(), PoolStateFrame(pool=[])]
        for frame in frames:
            channel.put(frame)
        assert await take(channel, 2) == frames

    @pytest.mark.asyncio
    async def test_slow_observer_is_closed(self) -> None:
        """Test an observer past its backlog limit is closed, not skipped."""
        channel = ObserverChannel(max_pending=2)
        for _ in range(3):
            channel.put(PoolStateFrame())

        assert channel.closed
        assert len(await take(channel, 5)) == 2

    def test_replay_does_not_count_against_backlog(self) -> None:
        channel = ObserverChannel(max_pending=1)
        channel.preload([PoolStateFrame()] * 5)
        channel.put(PoolStateFrame())
        assert not channel.closed

    @pytest.mark.asyncio
    async def test_drained_replay_no_longer_extends_backlog(self) -> None:
        """Test the replay allowance shrinks as replay frames are read."""
        channel = ObserverChannel(max_pending=2)
        channel.preload([PoolStateFrame()] * 3)
        await take(channel, 3)

        for _ in range(2):
            channel.put(PoolStateFrame())
        assert not channel.closed
        channel.put(PoolStateFrame())
        assert channel.closed

    def test_put_after_close_is_ignored(self) -> None:
        channel = ObserverChannel()
        channel.close()
        channel.put(PoolStateFrame())
        channel.close()
        assert channel.closed


class TestHandleMessages:
    """Test event and pool handling without a live broker."""

    @pytest.mark.asyncio
    async def test_redelivered_event_appears_once(
        self, aggregator: EventAggregator
    ) -> None:
        """Test a redelivered worker-0 event is appended and broadcast once."""
        channel = aggregator.register_observer()
        await take(channel, 1)  # initial pool replay

        hello = {"kind": "text_delta", "id": "e1", "text": "Hello"}
        sequence = [
            ("worker-1", {"kind": "text_delta", "id": "w1-1", "text": "a"}),
            ("worker-0", hello),
            ("worker-1", {"kind": "text_delta", "id": "w1-2", "text": "b"}),
            ("worker-0", hello),
            ("worker-1", {"kind": "text_delta", "id": "w1-3", "text": "c"}),
            ("worker-0", {"kind": "status", "status": "working"}),
        ]
        for agent_id, payload in sequence:
            aggregator.handle_agent_message(agent_id, agent_message(agent_id, payload))

        worker_0 = aggregator.store.events("worker-0")
        assert len(worker_0) == 2
        assert worker_0[0] == TextDelta(id="e1", text="Hello")
        assert worker_0[1].kind == "status"
        assert aggregator.store.events("worker-1") == [
            TextDelta(id="w1-1", text="a"),
            TextDelta(id="w1-2", text="b"),
            TextDelta(id="w1-3", text="c"),
        ]

        frames = await take(channel, 5)
        assert [(f.agent_id, f.event.id) for f in frames] == [
            ("worker-1", "w1-1"),
            ("worker-0", "e1"),
            ("worker-1", "w1-2"),
            ("worker-1", "w1-3"),
            ("worker-0", None),
        ]

    def test_malformed_event_is_dropped(self, aggregator: EventAggregator) -> None:
        aggregator.handle_agent_message("worker-1", agent_message("worker-1", b"{"))
        aggregator.handle_agent_message(
            "worker-1", agent_message("worker-1", {"kind": "nope"})
        )
        assert aggregator.store.events("worker-1") == []

    @pytest.mark.asyncio
    async def test_pool_is_replaced_and_broadcast(
        self, aggregator: EventAggregator
    ) -> None:
        channel = aggregator.register_observer()
        await take(channel, 1)

        aggregator.handle_pool_message(
            pool_message([{"agentId": "worker-0", "status": "idle"}])
        )
        aggregator.handle_pool_message(
            pool_message(
                {"pool": [{"agentId": "worker-1", "status": "working", "issue": 7}]}
            )
        )

        assert aggregator.store.pool == [
            AgentStatus(agent_id="worker-1", status=AgentState.WORKING, issue=7)
        ]
        frames = await take(channel, 2)
        assert all(isinstance(frame, PoolStateFrame) for frame in frames)
        assert frames[-1].pool == aggregator.store.pool

    def test_malformed_pool_keeps_previous(self, aggregator: EventAggregator) -> None:
        aggregator.handle_pool_message(
            pool_message([{"agentId": "worker-0", "status": "idle"}])
        )
        aggregator.handle_pool_message(pool_message({"nope": True}))
        assert len(aggregator.store.pool) == 1


class TestObservers:
    """Test observer registration and replay."""

    @pytest.mark.asyncio
    async def test_new_observer_gets_pool_then_history(
        self, aggregator: EventAggregator
    ) -> None:
        aggregator.handle_pool_message(
            pool_message([{"agentId": "worker-0", "status": "working", "issue": 1}])
        )
        aggregator.handle_agent_message(
            "worker-0", agent_message("worker-0", {"kind": "text_delta", "text": "a"})
        )
        aggregator.handle_agent_message(
            "worker-1", agent_message("worker-1", {"kind": "text_delta", "text": "b"})
        )

        channel = aggregator.register_observer()
        frames = await take(channel, 3)

        assert isinstance(frames[0], PoolStateFrame)
        assert frames[0].pool[0].issue == 1
        assert [(f.agent_id, f.event.text) for f in frames[1:]] == [
            ("worker-0", "a"),
            ("worker-1", "b"),
        ]

    @pytest.mark.asyncio
    async def test_disconnect_does_not_affect_others(
        self, aggregator: EventAggregator
    ) -> None:
        first = aggregator.register_observer()
        second = aggregator.register_observer()
        assert aggregator.observer_count == 2

        aggregator.unregister_observer(first)
        aggregator.unregister_observer(first)
        aggregator.handle_agent_message(
            "worker-0", agent_message("worker-0", {"kind": "text_delta", "text": "x"})
        )

        assert aggregator.observer_count == 1
        frames = await take(second, 2)
        assert isinstance(frames[1], AgentEventFrame)
        assert first.closed

    def test_slow_observer_is_unregistered(self, router: TopicRouter) -> None:
        aggregator = EventAggregator(router, TopicSet(workers=1), max_pending=1)
        slow = aggregator.register_observer()
        other = aggregator.register_observer()
        for _ in range(2):
            aggregator.handle_agent_message(
                "worker-0",
                agent_message("worker-0", {"kind": "text_delta", "text": "x"}),
            )

        assert slow.closed
        assert other.closed
        assert aggregator.observer_count == 0


class TestSubscriptions:
    """Test the aggregator against the router."""

    @pytest.mark.asyncio
    async def test_consumes_event_and_pool_topics(
        self, aggregator: EventAggregator, router: TopicRouter, broker: Any
    ) -> None:
        await aggregator.start()
        subjects = {sub.subject for sub in broker.latest.subscriptions}
        assert subjects == {
            "epik.events.supervisor",
            "epik.events.worker-0",
            "epik.events.worker-1",
            "epik.pool",
        }

        await router.publish(
            "epik.events.worker-1", {"kind": "tool_use", "name": "Bash"}
        )
        await router.publish("epik.pool", [{"agentId": "worker-1", "status": "idle"}])
        await settle()

        assert aggregator.store.events("worker-1")[0].kind == "tool_use"
        assert aggregator.store.pool[0].agent_id == "worker-1"

        await aggregator.stop()
        assert broker.latest.subscriptions == []

    @pytest.mark.asyncio
    async def test_keeps_consuming_after_connection_drop(self, broker: Any) -> None:
        """Test events still arrive after the shared handle closes."""
        router = TopicRouter(connect=broker.connect, reconnect_delay=0.01)
        aggregator = EventAggregator(router, TopicSet(workers=1))
        await aggregator.start()
        broker.latest.is_closed = True

        for _ in range(100):
            if len(broker.connections) == 2:
                break
            await asyncio.sleep(0.01)
        assert len(broker.connections) == 2
        assert len(broker.latest.subscriptions) == 3

        await broker.latest.publish(
            "epik.events.worker-0", b'{"kind": "text_delta", "text": "back"}'
        )
        await broker.latest.publish(
            "epik.pool", b'[{"agentId": "worker-0", "status": "working"}]'
        )
        await settle()

        assert aggregator.store.events("worker-0") == [TextDelta(text="back")]
        assert aggregator.store.pool[0].status == AgentState.WORKING
        await aggregator.stop()
        await router.close()

    @pytest.mark.asyncio
    async def test_stop_closes_observers(self, aggregator: EventAggregator) -> None:
        await aggregator.start()
        channel = aggregator.register_observer()
        await aggregator.stop()
        assert channel.closed
        assert aggregator.observer_count == 0


class TestCommands:
    """Test forwarding observer commands to agents."""

    @pytest.mark.asyncio
    async def test_send_message(
        self, aggregator: EventAggregator, broker: Any
    ) -> None:
        await aggregator.send_message("worker-1", "please rebase")
        [(topic, data)] = broker.latest.published
        assert topic == "epik.worker.1"
        assert json.loads(data) == {"type": "message", "text": "please rebase"}

    @pytest.mark.asyncio
    async def test_interrupt(self, aggregator: EventAggregator, broker: Any) -> None:
        await aggregator.interrupt("supervisor")
        [(topic, data)] = broker.latest.published
        assert topic == "epik.supervisor"
        assert json.loads(data) == {"type": "interrupt"}

    @pytest.mark.asyncio
    async def test_unknown_agent(
        self, aggregator: EventAggregator, broker: Any
    ) -> None:
        with pytest.raises(UnknownAgentError):
            await aggregator.send_message("worker-9", "hello")
        with pytest.raises(UnknownAgentError):
            await aggregator.interrupt("worker-9")
        assert broker.connections == []
