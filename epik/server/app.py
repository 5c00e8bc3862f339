"""HTTP and WebSocket surface for dashboard observers.

Endpoints:
    GET  /ws                    stream of pool_state / agent_event frames
    POST /api/message           forward a message to an agent
    POST /api/interrupt         interrupt an agent
    GET  /api/graph             issue dependency graph
    GET  /api/issues/{n}/pr     status of the pull request closing issue n
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field

from ..events.aggregator import EventAggregator, ObserverChannel
from ..events.models import encode_frame
from ..exceptions import FetchError, TransportError
from ..github_client.fetcher import GitHubFetcher
from ..graph.builder import load_issue_graph
from ..graph.models import IssueGraph, PRStatus
from ..graph.pr_status import get_pr_status
from ..transport.topics import UnknownAgentError

logger = logging.getLogger(__name__)


class MessageBody(BaseModel):
    """Request to forward a message to an agent."""

    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(..., alias="agentId")
    text: str = Field(..., min_length=1)


class InterruptBody(BaseModel):
    """Request to interrupt an agent."""

    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(..., alias="agentId")


class Accepted(BaseModel):
    accepted: bool = True


async def _stream(websocket: WebSocket, channel: ObserverChannel) -> None:
    async for frame in channel:
        await websocket.send_text(encode_frame(frame))


async def _wait_disconnect(websocket: WebSocket) -> None:
    # Observers do not send on this socket; reading only detects the close.
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


def create_app(
    aggregator: EventAggregator,
    owner: str | None = None,
    repo: str | None = None,
    fetcher: GitHubFetcher | None = None,
    manage_lifecycle: bool = False,
) -> FastAPI:
    """Create the observer application.

    Args:
        aggregator: Event aggregator feeding observers
        owner: Repository owner for graph/PR endpoints
        repo: Repository name for graph/PR endpoints
        fetcher: Data fetcher, a default GitHubFetcher if omitted
        manage_lifecycle: Start the aggregator on startup and stop it together
            with its topic router on shutdown
    """
    fetcher = fetcher or GitHubFetcher()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await aggregator.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await aggregator.stop()
                await aggregator.router.close()

    app = FastAPI(title="epik", lifespan=lifespan)

    def _require_repo() -> tuple[str, str]:
        if not owner or not repo:
            raise HTTPException(status_code=404, detail="No repository configured")
        return owner, repo

    @app.websocket("/ws")
    async def observer_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        channel = aggregator.register_observer()
        sender = asyncio.create_task(_stream(websocket, channel))
        receiver = asyncio.create_task(_wait_disconnect(websocket))
        try:
            done, _ = await asyncio.wait(
                {sender, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task.exception() is not None and not isinstance(
                    task.exception(), WebSocketDisconnect
                ):
                    logger.warning(f"Observer stream ended: {task.exception()}")
            if sender in done and sender.exception() is None:
                # Channel closed server-side; let the observer reconnect.
                await websocket.close()
        finally:
            sender.cancel()
            receiver.cancel()
            await asyncio.gather(sender, receiver, return_exceptions=True)
            aggregator.unregister_observer(channel)

    @app.post("/api/message", status_code=202, response_model=Accepted)
    async def send_message(body: MessageBody) -> Accepted:
        try:
            await aggregator.send_message(body.agent_id, body.text)
        except UnknownAgentError:
            raise HTTPException(
                status_code=404, detail=f"Unknown agent {body.agent_id}"
            )
        except TransportError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return Accepted()

    @app.post("/api/interrupt", status_code=202, response_model=Accepted)
    async def interrupt(body: InterruptBody) -> Accepted:
        try:
            await aggregator.interrupt(body.agent_id)
        except UnknownAgentError:
            raise HTTPException(
                status_code=404, detail=f"Unknown agent {body.agent_id}"
            )
        except TransportError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return Accepted()

    @app.get("/api/graph", response_model=IssueGraph)
    async def issue_graph() -> IssueGraph:
        graph_owner, graph_repo = _require_repo()
        try:
            return await load_issue_graph(graph_owner, graph_repo, fetcher)
        except FetchError as e:
            raise HTTPException(status_code=502, detail=str(e))

    @app.get("/api/issues/{issue_number}/pr", response_model=PRStatus | None)
    async def pr_status(issue_number: int) -> PRStatus | None:
        pr_owner, pr_repo = _require_repo()
        try:
            return await get_pr_status(pr_owner, pr_repo, issue_number, fetcher)
        except FetchError as e:
            raise HTTPException(status_code=502, detail=str(e))

    return app
