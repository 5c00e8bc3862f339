"""CLI command running the observer server."""

import functools
import logging

import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler

from ..config import EpikConfig
from ..events.aggregator import EventAggregator
from ..github_client.fetcher import GitHubFetcher, run_gh_command
from ..server.app import create_app
from ..transport.router import TopicRouter
from ..transport.topics import TopicSet
from .options import (
    GH_BIN_OPTION,
    HOST_OPTION,
    NATS_URL_OPTION,
    PORT_OPTION,
    REPO_OPTION,
    WORKERS_OPTION,
)

console = Console()


def serve(
    repo: str | None = REPO_OPTION,
    nats_url: str | None = NATS_URL_OPTION,
    workers: int | None = WORKERS_OPTION,
    host: str | None = HOST_OPTION,
    port: int | None = PORT_OPTION,
    gh_bin: str | None = GH_BIN_OPTION,
) -> None:
    """Run the dashboard server: event stream, agent commands and issue graph.

    Examples:
        epik serve --repo myorg/myrepo
        epik serve --repo myorg/myrepo --workers 5 --port 9000
    """
    config = EpikConfig()
    try:
        config.validate()
    except ValueError as e:
        console.print(f"❌ {e}")
        raise typer.Exit(1)

    owner = name = None
    if repo or config.repo:
        try:
            owner, name = config.owner_repo(repo)
        except ValueError as e:
            console.print(f"❌ {e}")
            raise typer.Exit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )

    topics = TopicSet(workers or config.workers)
    router = TopicRouter(
        nats_url or config.nats_url, reconnect_delay=config.reconnect_delay
    )
    aggregator = EventAggregator(router, topics)
    fetcher = GitHubFetcher(
        exec=functools.partial(run_gh_command, binary=gh_bin or config.gh_bin)
    )
    app = create_app(
        aggregator, owner=owner, repo=name, fetcher=fetcher, manage_lifecycle=True
    )

    console.print(
        f"🚀 Serving {len(topics.agent_ids)} agents on "
        f"http://{host or config.host}:{port or config.port}"
    )
    uvicorn.run(app, host=host or config.host, port=port or config.port)
