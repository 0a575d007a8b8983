# src/craft_search/diagnostics.py

"""Admin search diagnostics.

Diagnostics never score anything themselves: they take a `SearchResponse`
produced by `Service.search` and lay out its per-result breakdown, so the
admin view shows exactly the numbers live search used.
"""

from typing import List, Optional

from rich.console import Console
from rich.table import Table

from craft_search.shared.models.api import (
    DiagnosticRow,
    DiagnosticsResponse,
    SearchResponse,
)


def build_diagnostic_rows(response: SearchResponse) -> List[DiagnosticRow]:
    """Returns one breakdown row per result, in result order.

    `text_match` folds the title keyword bonus and the description/tag bonus
    into a single column.
    """
    rows = []
    for rank, result in enumerate(response.results, start=1):
        breakdown = result.score_breakdown
        rows.append(
            DiagnosticRow(
                rank=rank,
                id=result.entry.id,
                type=result.entry.type,
                title=result.entry.title,
                base=breakdown.base,
                text_match=breakdown.keyword_match + breakdown.desc_or_tag_match,
                intent_bonus=breakdown.intent_bonus,
                fuzzy_bonus=breakdown.fuzzy_bonus,
                fuzzy_score=round(result.fuzzy_score, 3),
                score=result.score,
            )
        )
    return rows


def build_diagnostics(response: SearchResponse) -> DiagnosticsResponse:
    """Wraps a search response with its diagnostic rows."""
    return DiagnosticsResponse(response=response, rows=build_diagnostic_rows(response))


def render_diagnostics(
    response: SearchResponse, console: Optional[Console] = None
) -> None:
    """Prints the intent, expanded terms and breakdown table of a search."""
    console = console or Console()
    intent = response.intent

    console.print(f"[bold]Query:[/bold] {response.query}")
    console.print(
        f"[bold]Intent:[/bold] {intent.category.value}"
        + (f" / {intent.sub_category}" if intent.sub_category else "")
        + (f"  [dim]{intent.explanation}[/dim]" if intent.explanation else "")
    )
    console.print(f"[bold]Sort:[/bold] {response.sort.value}")
    console.print(f"[bold]Search terms:[/bold] {', '.join(response.search_terms) or '-'}")

    if not response.results:
        console.print("[yellow]No results found.[/yellow]")
        return

    table = Table(show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Title", overflow="fold")
    table.add_column("Base", justify="right")
    table.add_column("Text", justify="right")
    table.add_column("Intent", justify="right")
    table.add_column("Fuzzy", justify="right")
    table.add_column("Score", justify="right", style="bold")

    for row in build_diagnostic_rows(response):
        table.add_row(
            str(row.rank),
            row.type,
            row.title,
            str(row.base),
            str(row.text_match),
            str(row.intent_bonus),
            f"{row.fuzzy_bonus} ({row.fuzzy_score:.2f})",
            str(row.score),
        )
    console.print(table)
