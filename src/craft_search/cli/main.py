# src/craft_search/cli/main.py

"""Command-line interface for searching and maintaining the search index.

Registered as the `craftsearch` console script.
"""

import logging
import sys
from typing import Optional

import typer
from rich.console import Console

from craft_search import defaults
from craft_search.config import Settings, load_settings
from craft_search.diagnostics import render_diagnostics
from craft_search.local.database import (
    create_search_engine,
    init_db,
    make_session_factory,
)
from craft_search.local.indexer import seed_keywords
from craft_search.local.retrieval import RetrievalError
from craft_search.local.service import Service
from craft_search.shared.models.api import SortMode

app = typer.Typer(
    name="craftsearch",
    help="Search the community content index from the command line.",
    no_args_is_help=True,
)
db_app = typer.Typer(
    name="db",
    help="Create and seed the search index database.",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

console = Console()
error_console = Console(stderr=True)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s"


def configure_logging(log_level: str) -> None:
    """Configures root logging for CLI runs."""
    numeric_level = getattr(logging, log_level.upper(), logging.WARNING)
    if not isinstance(numeric_level, int):
        numeric_level = logging.WARNING
    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _ensure_data_dir(settings: Settings) -> None:
    if settings.db_url == defaults.DEFAULT_DB_URL:
        defaults.CRAFT_SEARCH_USER_DATA_DIR.mkdir(parents=True, exist_ok=True)


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    ),
):
    """Craft Search command-line tools."""
    configure_logging(log_level)


@app.command("search")
def search_command(
    query: str = typer.Argument(..., help="Search query."),
    sort: Optional[SortMode] = typer.Option(
        None, "--sort", case_sensitive=False, help="Explicit sort mode."
    ),
    limit: int = typer.Option(10, "--limit", min=1, help="Number of results to show."),
):
    """Searches the index and prints the ranked results."""
    service = Service(load_settings())
    try:
        response = service.search(query, sort=sort, limit=limit)
    except RetrievalError as e:
        error_console.print(f"[bold red]Search failed:[/bold red] {e}")
        raise typer.Exit(code=1)
    finally:
        service.close()

    console.print(
        f"[dim]Intent: {response.intent.category.value} | "
        f"sort: {response.sort.value} | terms: {', '.join(response.search_terms)}[/dim]"
    )
    if not response.results:
        console.print("No results found.")
        return
    for rank, result in enumerate(response.results, start=1):
        entry = result.entry
        console.print(
            f"{rank:>2}. [bold]{entry.title}[/bold] [cyan]({entry.type})[/cyan] "
            f"score={result.score}  {entry.link}"
        )


@app.command("diagnose")
def diagnose_command(
    query: str = typer.Argument(..., help="Search query to diagnose."),
    sort: Optional[SortMode] = typer.Option(
        None, "--sort", case_sensitive=False, help="Explicit sort mode."
    ),
):
    """Runs a live search and prints its per-result score breakdown."""
    service = Service(load_settings())
    try:
        response = service.search(query, sort=sort)
    except RetrievalError as e:
        error_console.print(f"[bold red]Search failed:[/bold red] {e}")
        raise typer.Exit(code=1)
    finally:
        service.close()
    render_diagnostics(response, console)


@db_app.command("init")
def db_init_command():
    """Creates the search index tables if they do not exist."""
    settings = load_settings()
    _ensure_data_dir(settings)
    engine = create_search_engine(settings.db_url)
    try:
        init_db(engine)
    finally:
        engine.dispose()
    console.print(f"[green]Search index ready at {settings.db_url}[/green]")


@db_app.command("seed-keywords")
def db_seed_keywords_command():
    """Installs the built-in keyword dictionary."""
    settings = load_settings()
    _ensure_data_dir(settings)
    engine = create_search_engine(settings.db_url)
    try:
        init_db(engine)
        session_factory = make_session_factory(engine)
        with session_factory.begin() as session:
            count = seed_keywords(session)
    finally:
        engine.dispose()
    console.print(f"[green]Seeded {count} keywords.[/green]")


if __name__ == "__main__":
    app()
