"""CLI command following a running server's event stream."""

import asyncio
import signal

import typer
from rich.console import Console

from ..config import EpikConfig
from ..events.models import AgentEventFrame, AnyFrame, PoolStateFrame
from ..events.observer import ObserverConnection

console = Console()


def format_frame(frame: AnyFrame) -> str:
    """Render one observer frame as a single console line."""
    if isinstance(frame, PoolStateFrame):
        agents = ", ".join(
            f"{status.agent_id}={status.status.value}"
            + (f" #{status.issue}" if status.issue else "")
            for status in frame.pool
        )
        return f"[magenta]pool[/magenta] {agents or '(empty)'}"

    assert isinstance(frame, AgentEventFrame)
    event = frame.event
    if event.kind == "text_delta":
        detail = event.text
    elif event.kind == "tool_use":
        detail = f"{event.name} {event.input}"
    else:
        detail = event.status + (f" ({event.detail})" if event.detail else "")
    return f"[cyan]{frame.agent_id}[/cyan] {event.kind}: {detail}"


def watch(
    url: str | None = typer.Option(
        None, "--url", "-u", help="Server base URL (default from EPIK_HOST/EPIK_PORT)"
    ),
) -> None:
    """Follow the agent event stream of a running server until Ctrl-C.

    Examples:
        epik watch
        epik watch --url http://dashboard.internal:8000
    """
    config = EpikConfig()
    try:
        config.validate()
    except ValueError as e:
        console.print(f"❌ {e}")
        raise typer.Exit(1)

    api_url = (url or f"http://{config.host}:{config.port}").rstrip("/")
    if not api_url.startswith(("http://", "https://")):
        console.print(f"❌ Invalid URL '{api_url}'. Expected http:// or https://")
        raise typer.Exit(1)
    ws_url = "ws" + api_url[len("http") :] + "/ws"

    async def _watch() -> None:
        connection = ObserverConnection(
            ws_url,
            api_url,
            reconnect_delay=config.reconnect_delay,
            on_frame=lambda frame: console.print(format_frame(frame)),
        )
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        connection.start()
        console.print(f"Watching {ws_url} (Ctrl-C to stop)")
        try:
            await stop.wait()
        finally:
            await connection.close()

    asyncio.run(_watch())
