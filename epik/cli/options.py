"""Shared CLI option definitions so shorthands stay consistent across commands."""

import typer

REPO_OPTION = typer.Option(
    None, "--repo", "-r", help="GitHub repository as OWNER/REPO (or set EPIK_REPO)"
)

ISSUE_NUMBER_OPTION = typer.Option(
    ..., "--issue-number", "-i", help="Issue number to look up"
)

GH_BIN_OPTION = typer.Option(
    None, "--gh-bin", help="GitHub CLI executable (or set EPIK_GH_BIN)"
)

NATS_URL_OPTION = typer.Option(
    None, "--nats-url", help="NATS server URL (or set EPIK_NATS_URL)"
)

WORKERS_OPTION = typer.Option(
    None, "--workers", "-w", help="Number of worker agents (or set EPIK_WORKERS)"
)

HOST_OPTION = typer.Option(None, "--host", help="Bind address (or set EPIK_HOST)")

PORT_OPTION = typer.Option(None, "--port", "-p", help="Bind port (or set EPIK_PORT)")

JSON_OPTION = typer.Option(False, "--json", help="Print raw JSON instead of a table")
