"""CLI commands for publishing to and listening on pub/sub topics."""

import asyncio
import json

import typer
from rich.console import Console

from ..config import EpikConfig
from ..exceptions import TransportError
from ..transport.router import Subscription, TopicRouter
from .options import NATS_URL_OPTION

console = Console()


def publish(
    topic: str = typer.Argument(..., help="Topic name, e.g. epik.worker.0"),
    message: str = typer.Argument(..., help='JSON payload, e.g. \'{"issue": 7}\''),
    nats_url: str | None = NATS_URL_OPTION,
) -> None:
    """Publish a JSON message on a topic.

    Examples:
        epik publish epik.worker.0 '{"issue": 7}'
        epik publish epik.supervisor '{"status": "done", "pr": 12}'
    """
    try:
        payload = json.loads(message)
    except json.JSONDecodeError as e:
        console.print(f"❌ Message is not valid JSON: {e}")
        raise typer.Exit(1)

    async def _publish() -> None:
        config = EpikConfig()
        router = TopicRouter(
            nats_url or config.nats_url, reconnect_delay=config.reconnect_delay
        )
        try:
            await router.publish(topic, payload)
        finally:
            await router.close()

    try:
        asyncio.run(_publish())
    except TransportError as e:
        console.print(f"❌ {e}")
        raise typer.Exit(1)
    console.print(f"✅ Published to {topic}")


def listen(
    topics: list[str] = typer.Argument(..., help="Topics to print until Ctrl-C"),
    nats_url: str | None = NATS_URL_OPTION,
) -> None:
    """Print messages arriving on one or more topics until interrupted."""

    async def _print(subscription: Subscription) -> None:
        async for message in subscription:
            text = message.data.decode(errors="replace")
            console.print(f"[cyan]{message.topic}[/cyan] {text}")

    async def _listen() -> None:
        config = EpikConfig()
        router = TopicRouter(
            nats_url or config.nats_url, reconnect_delay=config.reconnect_delay
        )
        stop = asyncio.Event()
        router.install_signal_handlers(asyncio.get_running_loop(), stop)

        printers = []
        for topic in topics:
            subscription = await router.subscribe(topic)
            printers.append(asyncio.create_task(_print(subscription)))
        console.print(f"Listening on {', '.join(topics)} (Ctrl-C to stop)")

        await stop.wait()
        await asyncio.gather(*printers, return_exceptions=True)

    try:
        asyncio.run(_listen())
    except TransportError as e:
        console.print(f"❌ {e}")
        raise typer.Exit(1)
