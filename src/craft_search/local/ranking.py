# src/craft_search/local/ranking.py

"""Sort resolution and final ordering of scored results."""

import datetime
from typing import Any, List, Optional, Sequence

from craft_search.shared.models.api import ScoredResult, SearchIntent, SortMode


def _as_sort_mode(value: Any) -> Optional[SortMode]:
    if value is None or value == "":
        return None
    if isinstance(value, SortMode):
        return value
    try:
        return SortMode(str(value).upper())
    except ValueError:
        return None


def resolve_sort(explicit: Any, intent: Optional[SearchIntent]) -> SortMode:
    """Decides the sort mode of a request.

    An explicit mode other than RELEVANCE wins; otherwise the intent's
    suggestion is used; otherwise RELEVANCE.

    Args:
        explicit: Mode passed by the caller (`SortMode`, its name, or None).
            Unrecognised values are treated as not given.
        intent: Classifier output, possibly without a sort suggestion.

    Returns:
        The resolved `SortMode`.
    """
    explicit_mode = _as_sort_mode(explicit)
    if explicit_mode is not None and explicit_mode != SortMode.RELEVANCE:
        return explicit_mode
    if intent is not None and intent.sort is not None:
        return intent.sort
    return SortMode.RELEVANCE


def _created_at_key(result: ScoredResult) -> float:
    created_at = result.entry.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=datetime.timezone.utc)
    return created_at.timestamp()


def order_results(results: Sequence[ScoredResult], mode: SortMode) -> List[ScoredResult]:
    """Returns `results` ordered for `mode`.

    The sort is stable, so ties keep their retrieval pre-order.
    """
    if mode == SortMode.LATEST:
        return sorted(results, key=_created_at_key, reverse=True)
    if mode == SortMode.POPULARITY:
        return sorted(results, key=lambda r: r.entry.view_count, reverse=True)
    return sorted(results, key=lambda r: r.score, reverse=True)
