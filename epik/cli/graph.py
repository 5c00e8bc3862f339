"""CLI commands for inspecting the issue graph and pull request status."""

import asyncio
import functools

import typer
from rich.console import Console
from rich.table import Table

from ..config import EpikConfig
from ..exceptions import FetchError
from ..github_client.fetcher import GitHubFetcher, run_gh_command
from ..graph.builder import load_issue_graph
from ..graph.models import IssueGraph, IssueState
from ..graph.pr_status import get_pr_status
from .options import GH_BIN_OPTION, ISSUE_NUMBER_OPTION, JSON_OPTION, REPO_OPTION

console = Console()


def _resolve(repo: str | None, gh_bin: str | None) -> tuple[str, str, GitHubFetcher]:
    config = EpikConfig()
    try:
        owner, name = config.owner_repo(repo)
    except ValueError as e:
        console.print(f"❌ {e}")
        raise typer.Exit(1)
    binary = gh_bin or config.gh_bin
    fetcher = GitHubFetcher(exec=functools.partial(run_gh_command, binary=binary))
    return owner, name, fetcher


def _load(repo: str | None, gh_bin: str | None) -> IssueGraph:
    owner, name, fetcher = _resolve(repo, gh_bin)
    try:
        return asyncio.run(load_issue_graph(owner, name, fetcher))
    except FetchError as e:
        console.print(f"❌ Failed to load issues for {owner}/{name}: {e}")
        raise typer.Exit(1)


def _print_graph(graph: IssueGraph, title: str) -> None:
    table = Table(title=title)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Title")
    table.add_column("State", style="green")
    table.add_column("Type", style="magenta")
    table.add_column("Blocked by", style="yellow")

    for node in graph.nodes:
        state_style = "green" if node.state == IssueState.OPEN else "dim"
        table.add_row(
            str(node.number),
            node.title,
            f"[{state_style}]{node.state.value}[/{state_style}]",
            node.type.value if node.type else "-",
            ", ".join(f"#{n}" for n in node.blocked_by) or "-",
        )
    console.print(table)


def graph(
    repo: str | None = REPO_OPTION,
    gh_bin: str | None = GH_BIN_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Show the issue dependency graph for a repository.

    Examples:
        epik graph --repo myorg/myrepo
        epik graph --repo myorg/myrepo --json
    """
    issue_graph = _load(repo, gh_bin)

    if as_json:
        typer.echo(issue_graph.model_dump_json(indent=2))
        return

    _print_graph(issue_graph, f"Issues ({len(issue_graph.nodes)})")
    console.print(f"Edges: {len(issue_graph.edges)}")
    dangling = issue_graph.dangling_edges()
    if dangling:
        refs = ", ".join(f"#{edge.source}→#{edge.target}" for edge in dangling)
        console.print(f"[yellow]Dangling references:[/yellow] {refs}")
    if issue_graph.warning:
        console.print(f"⚠️  {issue_graph.warning}")


def ready(
    repo: str | None = REPO_OPTION,
    gh_bin: str | None = GH_BIN_OPTION,
) -> None:
    """List open issues whose blockers are all closed."""
    issue_graph = _load(repo, gh_bin)
    ready_nodes = issue_graph.ready_issues()

    if not ready_nodes:
        console.print("No issues are ready to assign")
        return

    _print_graph(
        IssueGraph(nodes=tuple(ready_nodes), warning=issue_graph.warning),
        f"Ready issues ({len(ready_nodes)})",
    )


def pr_status(
    issue_number: int = ISSUE_NUMBER_OPTION,
    repo: str | None = REPO_OPTION,
    gh_bin: str | None = GH_BIN_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Show the status of the open pull request that closes an issue."""
    owner, name, fetcher = _resolve(repo, gh_bin)
    try:
        status = asyncio.run(get_pr_status(owner, name, issue_number, fetcher))
    except FetchError as e:
        console.print(f"❌ Failed to load pull requests for {owner}/{name}: {e}")
        raise typer.Exit(1)

    if as_json:
        typer.echo(status.model_dump_json(indent=2) if status else "null")
        return

    if status is None:
        console.print(f"No open pull request references issue #{issue_number}")
        return

    table = Table(title=f"Issue #{issue_number}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Pull request", f"#{status.pr_number}")
    table.add_row("Mergeable", "yes" if status.mergeable else "no")
    table.add_row("Checks", status.checks_state.value)
    console.print(table)
