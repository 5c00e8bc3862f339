"""Topic-addressed publish/subscribe over a shared NATS connection."""

import asyncio
import json
import logging
import signal
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import nats
from nats.aio.client import Client as NATSClient
from nats.aio.msg import Msg
from pydantic import BaseModel

from ..config import DEFAULT_NATS_URL, DEFAULT_RECONNECT_DELAY
from ..exceptions import TransportError

logger = logging.getLogger(__name__)

ConnectFn = Callable[..., Awaitable[NATSClient]]


def encode_payload(payload: Any) -> bytes:
    """Serialize a payload for the wire: models and dicts become JSON."""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(exclude_none=True).encode()
    if isinstance(payload, str):
        return payload.encode()
    return json.dumps(payload).encode()


class TopicMessage(BaseModel):
    """A message received on a topic."""

    topic: str
    data: bytes

    def decode(self) -> Any:
        """Decode the payload as JSON. Raises ValueError on bad input."""
        return json.loads(self.data)


class Subscription:
    """Long-lived channel of messages for one topic.

    The transport callback only enqueues; a single consumer drains the queue
    with ``async for``, so messages are yielded in delivery order.
    """

    def __init__(self, router: "TopicRouter", topic: str):
        self.router = router
        self.topic = topic
        self._queue: asyncio.Queue[TopicMessage | None] = asyncio.Queue()
        self._nats_sub: Any = None
        self.closed = False

    async def _deliver(self, msg: Msg) -> None:
        self._queue.put_nowait(TopicMessage(topic=msg.subject, data=msg.data))

    async def _attach(self, connection: NATSClient) -> None:
        self._nats_sub = await connection.subscribe(self.topic, cb=self._deliver)

    def __aiter__(self) -> AsyncIterator[TopicMessage]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[TopicMessage]:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message

    async def unsubscribe(self) -> None:
        """Stop delivery and end iteration. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        self.router._forget(self)
        if self._nats_sub is not None:
            try:
                await self._nats_sub.unsubscribe()
            except Exception as e:
                logger.debug(f"Ignoring unsubscribe error on {self.topic}: {e}")
            self._nats_sub = None
        self._queue.put_nowait(None)


class TopicRouter:
    """Owns the process-wide pub/sub connection.

    The connection is opened lazily and reused while healthy. A handle found
    closed is replaced transparently before the operation proceeds, and live
    subscriptions are re-attached to the new connection.

    A watchdog task started with the first connection checks the handle every
    ``reconnect_delay`` seconds and reconnects on its own, so long-lived
    subscribers recover even when nobody publishes.
    """

    def __init__(
        self,
        servers: str = DEFAULT_NATS_URL,
        connect: ConnectFn | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    ):
        """Initialize the router.

        Args:
            servers: NATS server URL(s)
            connect: Coroutine function creating a connection, ``nats.connect``
                unless overridden
            reconnect_delay: Seconds between health checks and reconnect attempts
        """
        self.servers = servers
        self._connect = connect or nats.connect
        self._connection: NATSClient | None = None
        self._lock = asyncio.Lock()
        self._subscriptions: list[Subscription] = []
        self._closed = False
        self._shutdown_task: asyncio.Task[None] | None = None
        self.reconnect_delay = reconnect_delay
        self._watchdog: asyncio.Task[None] | None = None

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    async def open(self) -> NATSClient:
        """Open the connection if needed. Re-enables a router after close()."""
        self._closed = False
        return await self.ensure_healthy()

    async def ensure_healthy(self) -> NATSClient:
        """Return a live connection, reconnecting if the handle is closed.

        Raises:
            TransportError: If the router was closed or the broker is unreachable
        """
        if self._closed:
            raise TransportError("Topic router is closed")
        if self.is_connected:
            assert self._connection is not None
            return self._connection

        async with self._lock:
            if self._closed:
                raise TransportError("Topic router is closed")
            if self.is_connected:
                assert self._connection is not None
                return self._connection

            reconnecting = self._connection is not None
            try:
                connection = await self._connect(servers=self.servers)
            except Exception as e:
                raise TransportError(
                    f"Could not connect to {self.servers}: {e}"
                ) from e

            self._connection = connection
            if reconnecting:
                logger.info(f"Reconnected to {self.servers}")
                for subscription in list(self._subscriptions):
                    await subscription._attach(connection)
            else:
                logger.info(f"Connected to {self.servers}")
            self._start_watchdog()
            return connection

    async def publish(self, topic: str, payload: Any) -> None:
        """Publish a payload on a topic."""
        connection = await self.ensure_healthy()
        await connection.publish(topic, encode_payload(payload))

    async def subscribe(self, topic: str) -> Subscription:
        """Subscribe to a topic; iterate the result to receive messages."""
        connection = await self.ensure_healthy()
        subscription = Subscription(self, topic)
        await subscription._attach(connection)
        self._subscriptions.append(subscription)
        return subscription

    def _start_watchdog(self) -> None:
        if self._watchdog is None or self._watchdog.done():
            self._watchdog = asyncio.get_running_loop().create_task(
                self._watch(), name="topic-router-watchdog"
            )

    async def _watch(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.reconnect_delay)
            if self._closed or self.is_connected:
                continue
            logger.warning(f"Connection to {self.servers} lost, reconnecting")
            try:
                await self.ensure_healthy()
            except TransportError as e:
                logger.warning(f"Reconnect failed, retrying: {e}")

    def _forget(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def close(self) -> None:
        """Close the connection and end all subscriptions. Idempotent."""
        if self._closed:
            return
        self._closed = True

        watchdog, self._watchdog = self._watchdog, None
        if watchdog is not None and watchdog is not asyncio.current_task():
            watchdog.cancel()
            try:
                await watchdog
            except asyncio.CancelledError:
                pass

        for subscription in list(self._subscriptions):
            subscription.closed = True
            subscription._queue.put_nowait(None)
        self._subscriptions.clear()

        async with self._lock:
            connection, self._connection = self._connection, None
            if connection is not None and not connection.is_closed:
                await connection.close()
                logger.info(f"Closed connection to {self.servers}")

    def shutdown(self) -> asyncio.Task[None]:
        """Start closing exactly once; later calls return the same task."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.get_running_loop().create_task(self.close())
        return self._shutdown_task

    def install_signal_handlers(
        self,
        loop: asyncio.AbstractEventLoop,
        stop: asyncio.Event | None = None,
    ) -> None:
        """Close the router on SIGINT/SIGTERM, then set ``stop``.

        Repeated signals reuse the first shutdown task.
        """

        def _on_signal(signame: str) -> None:
            if self._shutdown_task is None:
                logger.info(f"Received {signame}, closing topic router")
            task = self.shutdown()
            if stop is not None:
                task.add_done_callback(lambda _: stop.set())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _on_signal, sig.name)
