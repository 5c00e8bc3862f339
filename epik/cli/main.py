"""Main CLI entry point."""

import typer
from dotenv import load_dotenv
from rich.console import Console

from .bus import listen, publish
from .graph import graph, pr_status, ready
from .serve import serve
from .watch import watch

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="epik",
    help="Issue dependency graph and agent event routing",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()

app.command(name="graph")(graph)
app.command(name="ready")(ready)
app.command(name="pr-status")(pr_status)
app.command(name="serve")(serve)
app.command(name="publish")(publish)
app.command(name="listen")(listen)
app.command(name="watch")(watch)


@app.command()
def version() -> None:
    """Show version information."""
    from epik import __version__

    console.print(f"epik v{__version__}")


if __name__ == "__main__":
    app()
