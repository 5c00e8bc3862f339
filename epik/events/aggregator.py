"""Fan agent events and pool snapshots out to live observers."""

import asyncio
import logging
from collections.abc import AsyncIterator

from ..transport.router import Subscription, TopicMessage, TopicRouter
from ..transport.topics import (
    TOPIC_POOL,
    InterruptRequest,
    OperatorMessage,
    TopicSet,
)
from .models import (
    AgentEventFrame,
    AnyFrame,
    PoolStateFrame,
    parse_event,
    parse_pool,
)
from .store import AgentEventStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 1000


class ObserverChannel:
    """Delivery path for one observer.

    Frames are queued in broadcast order. An observer that falls more than
    ``max_pending`` frames behind is closed rather than skipped, so it can
    reconnect and receive a consistent replay.
    """

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING):
        self.max_pending = max_pending
        self._queue: asyncio.Queue[AnyFrame | None] = asyncio.Queue()
        self._replayed = 0
        self.closed = False

    def preload(self, frames: list[AnyFrame]) -> None:
        """Queue replay frames ahead of live ones.

        Undrained replay frames do not count against ``max_pending``.
        """
        for frame in frames:
            self._queue.put_nowait(frame)
        self._replayed += len(frames)

    def put(self, frame: AnyFrame) -> None:
        if self.closed:
            return
        if self._queue.qsize() >= self.max_pending + self._replayed:
            logger.warning("Observer fell behind, closing its channel")
            self.close()
            return
        self._queue.put_nowait(frame)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[AnyFrame]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[AnyFrame]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            if self._replayed:
                self._replayed -= 1
            yield frame


class EventAggregator:
    """Consumes agent event topics and the pool topic, and serves observers.

    One consumer task runs per subscription. Each agent's log is written only
    by that agent's consumer and the pool snapshot only by the pool consumer,
    so no locking is needed.
    """

    def __init__(
        self,
        router: TopicRouter,
        topics: TopicSet,
        max_pending: int = DEFAULT_MAX_PENDING,
    ):
        self.router = router
        self.topics = topics
        self.max_pending = max_pending
        self.store = AgentEventStore(topics.agent_ids)
        self._observers: list[ObserverChannel] = []
        self._subscriptions: list[Subscription] = []
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    async def start(self) -> None:
        """Subscribe to every agent event topic and the pool topic."""
        if self._tasks:
            return
        for agent_id in self.topics.agent_ids:
            subscription = await self.router.subscribe(
                self.topics.event_topic(agent_id)
            )
            self._subscriptions.append(subscription)
            self._tasks.append(
                asyncio.create_task(
                    self._consume_agent(agent_id, subscription),
                    name=f"aggregator-{agent_id}",
                )
            )

        subscription = await self.router.subscribe(TOPIC_POOL)
        self._subscriptions.append(subscription)
        self._tasks.append(
            asyncio.create_task(
                self._consume_pool(subscription), name="aggregator-pool"
            )
        )
        logger.info(f"Aggregating events for {len(self.topics.agent_ids)} agents")

    async def stop(self) -> None:
        """Cancel consumers, drop subscriptions and close observer channels."""
        for subscription in self._subscriptions:
            await subscription.unsubscribe()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._subscriptions.clear()
        self._tasks.clear()

        for channel in list(self._observers):
            channel.close()
        self._observers.clear()

    async def _consume_agent(self, agent_id: str, subscription: Subscription) -> None:
        async for message in subscription:
            self.handle_agent_message(agent_id, message)

    async def _consume_pool(self, subscription: Subscription) -> None:
        async for message in subscription:
            self.handle_pool_message(message)

    def handle_agent_message(self, agent_id: str, message: TopicMessage) -> None:
        """Append a routed agent event and broadcast it. Bad frames are dropped."""
        event = parse_event(message.data)
        if event is None:
            logger.warning(f"Dropped malformed event on {message.topic}")
            return
        if not self.store.append(agent_id, event):
            logger.debug(f"Ignored redelivered event {event.id} for {agent_id}")
            return
        self._broadcast(AgentEventFrame(agent_id=agent_id, event=event))

    def handle_pool_message(self, message: TopicMessage) -> None:
        """Replace the pool snapshot and broadcast it. Bad frames are dropped."""
        pool = parse_pool(message.data)
        if pool is None:
            logger.warning(f"Dropped malformed pool state on {message.topic}")
            return
        self.store.replace_pool(pool)
        self._broadcast(PoolStateFrame(pool=pool))

    def _broadcast(self, frame: AnyFrame) -> None:
        for channel in list(self._observers):
            channel.put(frame)
            if channel.closed:
                self.unregister_observer(channel)

    def register_observer(self) -> ObserverChannel:
        """Attach an observer; it first receives the pool and full history."""
        channel = ObserverChannel(max_pending=self.max_pending)
        replay: list[AnyFrame] = [PoolStateFrame(pool=self.store.pool)]
        for agent_id, events in self.store.snapshot().items():
            replay.extend(
                AgentEventFrame(agent_id=agent_id, event=event) for event in events
            )
        channel.preload(replay)

        self._observers.append(channel)
        logger.info(f"Observer connected ({len(self._observers)} active)")
        return channel

    def unregister_observer(self, channel: ObserverChannel) -> None:
        """Detach an observer. Other observers and subscriptions are unaffected."""
        channel.close()
        if channel in self._observers:
            self._observers.remove(channel)
            logger.info(f"Observer disconnected ({len(self._observers)} active)")

    async def send_message(self, agent_id: str, text: str) -> None:
        """Forward an observer's message to an agent without awaiting a reply.

        Raises:
            UnknownAgentError: If the agent is not in the roster
        """
        topic = self.topics.command_topic(agent_id)
        await self.router.publish(topic, OperatorMessage(text=text))
        logger.info(f"Forwarded message to {agent_id}")

    async def interrupt(self, agent_id: str) -> None:
        """Forward an interrupt request to an agent without awaiting a reply.

        Raises:
            UnknownAgentError: If the agent is not in the roster
        """
        topic = self.topics.command_topic(agent_id)
        await self.router.publish(topic, InterruptRequest())
        logger.info(f"Forwarded interrupt to {agent_id}")
