"""Observer-side connection to the event stream with automatic reconnect."""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

import httpx
import websockets
from websockets.exceptions import WebSocketException

from ..config import DEFAULT_RECONNECT_DELAY
from .models import AgentEventFrame, AnyFrame, PoolStateFrame, parse_frame
from .store import AgentEventStore

logger = logging.getLogger(__name__)

ConnectFn = Callable[[str], Any]


class ConnectionState(str, Enum):
    """Lifecycle of an observer connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


class ObserverConnection:
    """Streams frames from the observer WebSocket into a local store.

    When the connection closes, cleanly or not, a reconnect is scheduled after
    ``reconnect_delay`` seconds. ``close()`` cancels both the live connection
    and any pending reconnect, and nothing reopens afterwards.

    Each successful connect starts from an empty store because the server
    replays the pool snapshot and full history to new connections.
    """

    def __init__(
        self,
        ws_url: str,
        api_url: str,
        store: AgentEventStore | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        connect: ConnectFn | None = None,
        on_frame: Callable[[AnyFrame], None] | None = None,
    ):
        """Initialize the connection.

        Args:
            ws_url: WebSocket URL of the event stream, e.g. ``ws://host/ws``
            api_url: Base URL for command requests, e.g. ``http://host``
            store: Store receiving frames; a fresh one is created if omitted
            reconnect_delay: Fixed delay in seconds before reconnecting
            connect: Factory returning an async context manager for the socket,
                ``websockets.connect`` unless overridden
            on_frame: Optional callback invoked after each applied frame
        """
        self.ws_url = ws_url
        self.api_url = api_url.rstrip("/")
        self.store = store or AgentEventStore()
        self.reconnect_delay = reconnect_delay
        self._connect = connect or websockets.connect
        self.on_frame = on_frame

        self.state = ConnectionState.DISCONNECTED
        self.connect_attempts = 0
        self._active = False
        self._task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def start(self) -> None:
        """Begin connecting. No-op if already running."""
        if self._active:
            return
        self._active = True
        self._open()

    def _open(self) -> None:
        self._reconnect_handle = None
        if not self._active:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        self.state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        try:
            async with self._connect(self.ws_url) as websocket:
                self.state = ConnectionState.CONNECTED
                self.store.clear()
                logger.info(f"Connected to {self.ws_url}")
                async for raw in websocket:
                    self.handle_frame(raw)
            logger.info(f"Connection to {self.ws_url} closed")
        except (OSError, WebSocketException) as e:
            logger.warning(f"Connection to {self.ws_url} lost: {e}")
        finally:
            if self._active:
                self.state = ConnectionState.DISCONNECTED
                self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._open)

    def handle_frame(self, raw: str | bytes) -> None:
        """Apply one server frame to the store. Unrecognized frames are dropped."""
        frame = parse_frame(raw)
        if frame is None:
            return
        if isinstance(frame, PoolStateFrame):
            self.store.replace_pool(frame.pool)
        elif isinstance(frame, AgentEventFrame):
            self.store.append(frame.agent_id, frame.event)
        if self.on_frame is not None:
            self.on_frame(frame)

    async def close(self) -> None:
        """Close the connection and cancel any scheduled reconnect."""
        self._active = False
        self.state = ConnectionState.CLOSING
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.state = ConnectionState.DISCONNECTED

    async def _post(self, path: str, payload: dict[str, Any]) -> bool:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.api_url}{path}", json=payload, timeout=10.0
                )
            if response.status_code != 202:
                logger.error(
                    f"Request to {path} rejected: {response.status_code} "
                    f"{response.text}"
                )
                return False
            return True
        except httpx.HTTPError as e:
            logger.error(f"Request to {path} failed: {e}")
            return False

    async def send_message(self, agent_id: str, text: str) -> bool:
        """Ask the server to forward a message to an agent.

        Returns:
            True if the server accepted the request
        """
        return await self._post("/api/message", {"agentId": agent_id, "text": text})

    async def interrupt(self, agent_id: str) -> bool:
        """Ask the server to interrupt an agent.

        Returns:
            True if the server accepted the request
        """
        return await self._post("/api/interrupt", {"agentId": agent_id})
