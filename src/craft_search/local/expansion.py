# src/craft_search/local/expansion.py

"""Synonym-based query expansion.

Query tokens are looked up in the keyword dictionary; every dictionary row
whose term equals a token, or whose synonym list contains a token, adds its
canonical term and all of its synonyms to the search terms. Expansion is a
best-effort enhancement: if the dictionary cannot be read, the raw query
terms are returned and the failure is only logged.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session, sessionmaker

from craft_search import defaults
from craft_search.local.database import json_elements
from craft_search.shared.models.db import SearchKeyword

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordEntry:
    """A dictionary row as seen by the expansion step."""

    term: str
    synonyms: List[str] = field(default_factory=list)
    category: Optional[str] = None


class KeywordStore(Protocol):
    """Read-only access to the keyword dictionary."""

    def lookup(self, tokens: Sequence[str]) -> List[KeywordEntry]:
        """Returns the rows whose term or synonyms match any token."""
        ...


def tokenize_query(query: str) -> List[str]:
    """Splits a query on whitespace and drops one-character tokens."""
    return [
        token
        for token in query.split()
        if len(token) >= defaults.MIN_QUERY_TOKEN_LENGTH
    ]


def keyword_matches(entry: KeywordEntry, tokens: Sequence[str]) -> bool:
    """Returns True if the entry's term or one of its synonyms equals a token.

    Comparison is case-insensitive.
    """
    lowered = {t.lower() for t in tokens}
    if entry.term.lower() in lowered:
        return True
    return any(s.lower() in lowered for s in entry.synonyms)


class SQLKeywordStore:
    """Keyword dictionary backed by the `search_keyword` table.

    Candidate rows are selected in SQL by case-insensitive equality of the
    term or of any synonym, then confirmed with `keyword_matches`.
    """

    def __init__(self, session_factory: "sessionmaker[Session]"):
        self.session_factory = session_factory

    def lookup(self, tokens: Sequence[str]) -> List[KeywordEntry]:
        if not tokens:
            return []
        lowered = sorted({t.lower() for t in tokens})
        with self.session_factory() as session:
            dialect_name = session.get_bind().dialect.name
            synonyms = json_elements(SearchKeyword.synonyms, dialect_name)
            stmt = select(SearchKeyword).where(
                or_(
                    func.lower(SearchKeyword.term).in_(lowered),
                    exists().where(func.lower(synonyms.c.value).in_(lowered)),
                )
            )
            rows = session.execute(stmt).scalars().all()
            entries = [
                KeywordEntry(
                    term=row.term,
                    synonyms=list(row.synonyms or []),
                    category=row.category,
                )
                for row in rows
            ]
        return [e for e in entries if keyword_matches(e, tokens)]


def _unique(terms: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for term in terms:
        if not term:
            continue
        key = term.strip()
        if key and key not in seen:
            seen.add(key)
            ordered.append(key)
    return ordered


def lookup_dictionary_terms(query: str, store: Optional[KeywordStore]) -> List[str]:
    """Returns the canonical terms and synonyms matched by the query tokens.

    Any exception raised by the store is logged and yields an empty list.
    """
    tokens = tokenize_query(query)
    if store is None or not tokens:
        return []
    try:
        matched = store.lookup(tokens)
    except Exception as e:
        logger.warning(
            "Keyword expansion failed for query '%s': %s. Using raw query terms.",
            query,
            e,
        )
        return []

    expanded: List[str] = []
    for entry in matched:
        expanded.append(entry.term)
        expanded.extend(entry.synonyms)
    logger.debug(
        "Keyword expansion matched %d dictionary entries for '%s'.", len(matched), query
    )
    return expanded


def merge_terms(
    query: str, extra_terms: Iterable[str] = (), dictionary_terms: Iterable[str] = ()
) -> List[str]:
    """Returns `[query, *extra_terms, *dictionary_terms]` de-duplicated."""
    return _unique([query, *extra_terms, *dictionary_terms])


def expand_query(
    query: str,
    store: Optional[KeywordStore],
    extra_terms: Iterable[str] = (),
) -> List[str]:
    """Expands a query into its search terms.

    Args:
        query: The raw query string.
        store: Keyword dictionary; None disables dictionary lookups.
        extra_terms: Additional terms to merge in (classifier keywords and
            tag filters).

    Returns:
        An ordered, de-duplicated list that always starts with the query.
    """
    return merge_terms(query, extra_terms, lookup_dictionary_terms(query, store))
