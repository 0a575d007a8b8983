# src/craft_search/local/retrieval.py

"""Candidate retrieval from the content index.

An entry is a candidate when it is visible (not hidden, not soft-deleted) and
at least one of the following holds:

* its title is strongly similar to the raw query (trigram similarity at or
  above the strong threshold),
* its title similarity exceeds the loose fuzzy floor, or
* any search term is a case-insensitive substring of its title, description,
  one of its tags or one of its keywords.

The predicate is expressed once as a SQLAlchemy query (`build_retrieval_query`)
and once in Python (`entry_matches`). Tag and keyword lists are matched element
by element in both forms. Rows returned by the query are re-checked with
`entry_matches` before they become candidates.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy import Float, Select, case, exists, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from craft_search import defaults
from craft_search.local.database import json_elements
from craft_search.shared.models.api import SearchContentEntry, SortMode, entry_from_orm
from craft_search.shared.models.db import SearchContent

logger = logging.getLogger(__name__)


class RetrievalError(RuntimeError):
    """Raised when the content index cannot be queried."""


@dataclass(frozen=True)
class RetrievalCriteria:
    """Input of a retrieval pass.

    Attributes:
        raw_query: The query as typed, compared against titles by similarity.
        terms: Expanded search terms used for substring matching.
        sort_hint: Resolved sort mode; selects the primary pre-ordering key.
        limit: Maximum number of candidates returned.
        strong_similarity: Similarity at or above which a title counts as a
            near-exact match (fuzzy score 1.0).
        min_similarity: Loose similarity floor for typo-tolerant matches.
    """

    raw_query: str
    terms: Sequence[str] = field(default_factory=tuple)
    sort_hint: SortMode = SortMode.RELEVANCE
    limit: int = defaults.DEFAULT_RESULTS_LIMIT
    strong_similarity: float = defaults.DEFAULT_STRONG_SIMILARITY_THRESHOLD
    min_similarity: float = defaults.DEFAULT_MIN_SIMILARITY

    def search_terms(self) -> List[str]:
        """Returns the non-blank terms, stripped."""
        return [t.strip() for t in self.terms if t and t.strip()]


@dataclass(frozen=True)
class Candidate:
    """A retrieved entry with its title-to-query fuzzy score in [0, 1]."""

    entry: SearchContentEntry
    fuzzy_score: float


def _contains(haystack: str, needles: Sequence[str]) -> bool:
    lowered = haystack.lower()
    return any(n.lower() in lowered for n in needles)


def entry_matches(
    entry: SearchContentEntry, criteria: RetrievalCriteria, fuzzy_score: float
) -> bool:
    """Evaluates the retrieval predicate for a single entry.

    Args:
        entry: The index entry.
        criteria: Retrieval input.
        fuzzy_score: The entry's fuzzy score for `criteria.raw_query`.

    Returns:
        True if the entry is visible and matches by similarity or substring.
    """
    if entry.is_hidden or entry.deleted_at is not None:
        return False
    if fuzzy_score >= criteria.strong_similarity or fuzzy_score > criteria.min_similarity:
        return True

    terms = criteria.search_terms()
    if not terms:
        return False
    if _contains(entry.title, terms) or _contains(entry.description, terms):
        return True
    return any(_contains(value, terms) for value in (*entry.tags, *entry.keywords))


def _any_element_contains(json_column, term: str, dialect_name: str):
    elements = json_elements(json_column, dialect_name)
    return exists().where(elements.c.value.icontains(term, autoescape=True))


def build_retrieval_query(
    criteria: RetrievalCriteria, dialect_name: str = "sqlite"
) -> Select:
    """Builds the retrieval SELECT for `criteria`.

    The statement yields `(SearchContent, fuzzy_score)` rows, pre-ordered by
    the sort hint's key, then fuzzy score and view count (both descending),
    and limited to `limit * DEFAULT_RETRIEVAL_OVERSAMPLING_FACTOR` rows.

    Args:
        criteria: Retrieval input.
        dialect_name: Dialect the statement will run on; selects the JSON
            array function used for tag and keyword matching.
    """
    similarity = func.similarity(SearchContent.title, criteria.raw_query, type_=Float)
    fuzzy_score = case(
        (similarity >= criteria.strong_similarity, 1.0), else_=similarity
    ).label("fuzzy_score")

    match_clauses = [
        similarity >= criteria.strong_similarity,
        similarity > criteria.min_similarity,
    ]
    for term in criteria.search_terms():
        match_clauses.extend(
            [
                SearchContent.title.icontains(term, autoescape=True),
                SearchContent.description.icontains(term, autoescape=True),
                _any_element_contains(SearchContent.tags, term, dialect_name),
                _any_element_contains(SearchContent.keywords, term, dialect_name),
            ]
        )

    order_by = []
    if criteria.sort_hint == SortMode.POPULARITY:
        order_by.append(SearchContent.view_count.desc())
    elif criteria.sort_hint == SortMode.LATEST:
        order_by.append(SearchContent.created_at.desc())
    order_by.extend([fuzzy_score.desc(), SearchContent.view_count.desc()])

    return (
        select(SearchContent, fuzzy_score)
        .where(SearchContent.is_hidden.is_(False))
        .where(SearchContent.deleted_at.is_(None))
        .where(or_(*match_clauses))
        .order_by(*order_by)
        .limit(criteria.limit * defaults.DEFAULT_RETRIEVAL_OVERSAMPLING_FACTOR)
    )


def retrieve(session: Session, criteria: RetrievalCriteria) -> List[Candidate]:
    """Fetches the candidates matching `criteria`.

    Args:
        session: Session bound to the content index.
        criteria: Retrieval input.

    Returns:
        At most `criteria.limit` candidates in retrieval pre-order. An empty
        list means no entry matched.

    Raises:
        RetrievalError: If the index query fails.
    """
    if not criteria.raw_query.strip() and not criteria.search_terms():
        return []

    stmt = build_retrieval_query(criteria, session.get_bind().dialect.name)
    try:
        rows: Sequence[Tuple[SearchContent, float]] = session.execute(stmt).all()
    except SQLAlchemyError as e:
        logger.error(
            "Retrieval query failed for '%s': %s", criteria.raw_query, e, exc_info=True
        )
        raise RetrievalError(f"Content index query failed: {e}") from e

    candidates: List[Candidate] = []
    for row, raw_fuzzy in rows:
        try:
            entry = entry_from_orm(row)
        except ValidationError as e:
            logger.warning("Skipping malformed index row %s: %s", row.id, e)
            continue
        fuzzy = max(0.0, min(1.0, float(raw_fuzzy or 0.0)))
        if not entry_matches(entry, criteria, fuzzy):
            continue
        candidates.append(Candidate(entry=entry, fuzzy_score=fuzzy))
        if len(candidates) >= criteria.limit:
            break

    logger.debug(
        "Retrieved %d candidates (%d rows fetched) for '%s'.",
        len(candidates),
        len(rows),
        criteria.raw_query,
    )
    return candidates
