# src/craft_search/local/service.py

"""Provides the search service shared by live search and admin diagnostics.

`Service.search` is the single orchestration path: intent classification
(timeout-bounded, with a GENERAL fallback), keyword expansion, retrieval,
scoring and final ordering. The diagnostics view calls the same method, so
its numbers are exactly those of live search.
"""

import concurrent.futures
import datetime
import logging
import time
from typing import Callable, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from craft_search import defaults
from craft_search.config import Settings, load_settings
from craft_search.local.database import create_search_engine, make_session_factory
from craft_search.local.expansion import (
    KeywordStore,
    SQLKeywordStore,
    lookup_dictionary_terms,
    merge_terms,
)
from craft_search.local.intent import IntentClassifier, build_classifier
from craft_search.local.ranking import order_results, resolve_sort
from craft_search.local.retrieval import RetrievalCriteria, retrieve
from craft_search.local.scoring import score_candidate
from craft_search.policy import RankingPolicy, load_policy
from craft_search.shared.models.api import (
    ScoredResult,
    SearchIntent,
    SearchResponse,
    SortMode,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Service:
    """Search orchestrator over the content index.

    Collaborators not passed explicitly are built from `settings`: the
    engine from `settings.db_url`, the classifier via `build_classifier`, and
    the ranking policy from `settings.policy_path`.

    Attributes:
        settings: Resolved runtime settings.
        engine: The SQLAlchemy engine of the content index.
        SessionLocal: Session factory bound to `engine`.
        classifier: Intent classifier, called with a timeout.
        keyword_store: Keyword dictionary used for query expansion.
        policy: Ranking policy applied to every request.
        classifier_timeout (float): Seconds to wait for the classifier.
        default_results_limit (int): Maximum results per search.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        engine: Optional[Engine] = None,
        classifier: Optional[IntentClassifier] = None,
        keyword_store: Optional[KeywordStore] = None,
        policy: Optional[RankingPolicy] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ):
        """Initializes the Service and its collaborators.

        Raises:
            RuntimeError: If the user data directory for the default SQLite
                database cannot be created.
        """
        logger.info("Initializing search Service...")
        self.settings = settings or load_settings()

        self._owns_engine = engine is None
        if engine is None:
            if self.settings.db_url == defaults.DEFAULT_DB_URL:
                try:
                    defaults.CRAFT_SEARCH_USER_DATA_DIR.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    logger.error(
                        "Could not create user data directory %s: %s",
                        defaults.CRAFT_SEARCH_USER_DATA_DIR,
                        e,
                    )
                    raise RuntimeError(f"Failed to create user data directory: {e}") from e
            engine = create_search_engine(self.settings.db_url)
        self.engine: Engine = engine
        self.SessionLocal: "sessionmaker[Session]" = make_session_factory(self.engine)

        self.classifier: IntentClassifier = classifier or build_classifier(self.settings)
        self.keyword_store: KeywordStore = keyword_store or SQLKeywordStore(self.SessionLocal)
        self.policy: RankingPolicy = policy or load_policy(self.settings.policy_path)
        self.classifier_timeout: float = self.settings.classifier_timeout
        self.default_results_limit: int = self.settings.results_limit
        self._clock = clock or _utcnow

        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="intent-classifier"
        )
        logger.info(
            "Search Service initialized (policy %s, classifier %s).",
            self.policy.version,
            type(self.classifier).__name__,
        )

    def _await_intent(
        self, future: "concurrent.futures.Future[SearchIntent]", query: str
    ) -> SearchIntent:
        try:
            intent = future.result(timeout=self.classifier_timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            logger.warning(
                "Intent classification timed out after %.1fs for '%s'. Using GENERAL fallback.",
                self.classifier_timeout,
                query,
            )
            return SearchIntent.fallback()
        except Exception as e:
            logger.warning(
                "Intent classification failed for '%s': %s. Using GENERAL fallback.",
                query,
                e,
            )
            return SearchIntent.fallback()
        if not isinstance(intent, SearchIntent):
            logger.warning(
                "Classifier returned %s instead of SearchIntent. Using GENERAL fallback.",
                type(intent).__name__,
            )
            return SearchIntent.fallback()
        return intent

    def search(
        self,
        query: str,
        sort: Optional[SortMode] = None,
        limit: Optional[int] = None,
    ) -> SearchResponse:
        """Runs a relevance-ranked search.

        Args:
            query: The free-text query.
            sort: Explicit sort mode. RELEVANCE or None defer to the intent's
                suggestion.
            limit: Maximum number of results. Defaults to
                `default_results_limit`.

        Returns:
            A `SearchResponse` with the resolved sort mode, the intent, the
            ordered results and the expanded search terms. An empty result
            list means nothing matched.

        Raises:
            RetrievalError: If the content index cannot be queried.
        """
        start_time = time.time()
        raw_query = query or ""
        query = raw_query.strip()
        if not query:
            return SearchResponse(
                query=raw_query,
                sort=resolve_sort(sort, None),
                intent=SearchIntent.fallback(),
                results=[],
                search_terms=[raw_query],
            )

        future = self._executor.submit(self.classifier.classify, query)
        # Dictionary lookup overlaps with the classifier call.
        dictionary_terms = lookup_dictionary_terms(query, self.keyword_store)
        intent = self._await_intent(future, query)

        terms = merge_terms(
            query, [*intent.keywords, *intent.filters.tags], dictionary_terms
        )
        sort_mode = resolve_sort(sort, intent)
        criteria = RetrievalCriteria(
            raw_query=query,
            terms=terms,
            sort_hint=sort_mode,
            limit=limit or self.default_results_limit,
            strong_similarity=self.policy.strong_similarity_threshold,
            min_similarity=self.policy.min_similarity,
        )

        with self.SessionLocal() as session:
            candidates = retrieve(session, criteria)

        now = self._clock()
        scored: List[ScoredResult] = [
            score_candidate(candidate, terms, intent, now, self.policy)
            for candidate in candidates
        ]
        results = order_results(scored, sort_mode)

        logger.info(
            "Search '%s' (intent %s, sort %s): %d results in %.2f ms.",
            query,
            intent.category.value,
            sort_mode.value,
            len(results),
            (time.time() - start_time) * 1000,
        )
        return SearchResponse(
            query=query,
            sort=sort_mode,
            intent=intent,
            results=results,
            search_terms=terms,
        )

    def close(self) -> None:
        """Stops the classifier pool and disposes an engine created here."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self._owns_engine:
            self.engine.dispose()
        logger.info("Search Service closed.")

    def __enter__(self) -> "Service":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
