# tests/craft_search/local/test_service.py

"""Tests for the search orchestrator `craft_search.local.service.Service`.

Most tests run the real pipeline against the in-memory index with the
rule-based classifier and a fixed clock; classifier and retrieval failures
are injected with doubles and mocks.
"""

import datetime
import logging
import pathlib
import threading
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Sequence

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from craft_search import defaults
from craft_search.config import Settings, load_settings
from craft_search.local.expansion import KeywordEntry
from craft_search.local.intent import RuleBasedIntentClassifier
from craft_search.local.retrieval import RetrievalError
from craft_search.local.service import Service
from craft_search.policy import DEFAULT_POLICY
from craft_search.shared.models.api import IntentCategory, SearchIntent, SortMode
from craft_search.shared.models.db import SearchKeyword

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


class RaisingClassifier:
    """Classifier that always fails."""

    def classify(self, query: str) -> SearchIntent:
        raise ConnectionError("classifier unreachable")


class BlockingClassifier:
    """Classifier that blocks until released, to trigger the timeout."""

    def __init__(self):
        self.release = threading.Event()

    def classify(self, query: str) -> SearchIntent:
        self.release.wait(timeout=5)
        return SearchIntent(category=IntentCategory.SERVER)


class FailingStore:
    """Keyword store whose lookups always fail."""

    def lookup(self, tokens: Sequence[str]) -> List[KeywordEntry]:
        raise ConnectionError("dictionary unavailable")


@pytest.fixture
def make_service(
    engine: Engine, fixed_now: datetime.datetime
) -> Iterator[Callable[..., Service]]:
    """Returns a factory for services bound to the in-memory index.

    Args:
        engine: In-memory index engine fixture.
        fixed_now: Reference time fixture.

    Yields:
        A factory accepting `classifier`, `timeout` and other Service
        keyword arguments. Created services are closed after the test.
    """
    created: List[Service] = []

    def _make(classifier: Any = None, timeout: float = 3.0, **kwargs: Any) -> Service:
        service = Service(
            Settings(classifier_timeout=timeout),
            engine=engine,
            classifier=classifier or RuleBasedIntentClassifier(),
            policy=DEFAULT_POLICY,
            clock=lambda: fixed_now,
            **kwargs,
        )
        created.append(service)
        return service

    yield _make
    for service in created:
        service.close()


class TestServiceInitialization:
    """Tests for building a Service from settings."""

    def test_builds_collaborators_from_settings(self, isolated_data_paths: pathlib.Path):
        """Without explicit collaborators, settings decide everything.

        Args:
            isolated_data_paths: Fixture redirecting the default data paths.
        """
        service = Service(load_settings())
        try:
            assert isolated_data_paths.is_dir()
            assert isinstance(service.classifier, RuleBasedIntentClassifier)
            assert service.policy == DEFAULT_POLICY
            assert service.classifier_timeout == defaults.DEFAULT_CLASSIFIER_TIMEOUT_SECONDS
            assert service.default_results_limit == defaults.DEFAULT_RESULTS_LIMIT
            assert service.engine.url.database == str(defaults.DEFAULT_DB_PATH.resolve())
        finally:
            service.close()

    def test_explicit_engine_is_not_disposed(
        self, engine: Engine, mocker: "MockerFixture"
    ):
        """Closing a service leaves a caller-owned engine alone.

        Args:
            engine: In-memory index engine fixture.
            mocker: Pytest-mock's mocker fixture.
        """
        dispose = mocker.spy(engine, "dispose")
        Service(Settings(), engine=engine).close()
        dispose.assert_not_called()


class TestSearchScenarios:
    """End-to-end ranking scenarios."""

    def test_server_outranks_texture_pack(
        self, make_service: Callable[..., Service], add_content: Callable[..., Any]
    ):
        """An S-grade popular server ranks above a weak resource.

        Args:
            make_service: Service factory fixture.
            add_content: Index row factory fixture.
        """
        add_content(type="SERVER", title="야생 서버 추천", trust_grade="S", view_count=5000)
        add_content(type="RESOURCE", title="야생 텍스처팩", trust_grade="B", view_count=10)

        response = make_service().search("야생 서버")

        assert [r.entry.title for r in response.results] == ["야생 서버 추천", "야생 텍스처팩"]
        assert response.results[0].score > response.results[1].score
        assert response.sort == SortMode.RELEVANCE
        assert response.intent.category == IntentCategory.SERVER

    def test_no_matches_is_empty_not_error(self, make_service: Callable[..., Service]):
        """An empty index yields an empty result list and a populated intent.

        Args:
            make_service: Service factory fixture.
        """
        response = make_service().search("존재하지않는검색어12345")
        assert response.results == []
        assert response.intent is not None
        assert response.intent.category == IntentCategory.GENERAL
        assert response.search_terms[0] == "존재하지않는검색어12345"

    def test_classifier_failure_falls_back(
        self,
        make_service: Callable[..., Service],
        add_content: Callable[..., Any],
        caplog: pytest.LogCaptureFixture,
    ):
        """A failing classifier yields the GENERAL intent and a normal response.

        Args:
            make_service: Service factory fixture.
            add_content: Index row factory fixture.
            caplog: Pytest fixture to capture log output.
        """
        add_content(title="야생 서버")
        with caplog.at_level(logging.WARNING):
            response = make_service(classifier=RaisingClassifier()).search("야생 서버")

        assert response.intent.category == IntentCategory.GENERAL
        assert "야생 서버" in response.search_terms
        assert [r.entry.title for r in response.results] == ["야생 서버"]
        assert "classifier unreachable" in caplog.text

    def test_classifier_timeout_falls_back(
        self, make_service: Callable[..., Service], caplog: pytest.LogCaptureFixture
    ):
        """A classifier slower than the timeout is abandoned.

        Args:
            make_service: Service factory fixture.
            caplog: Pytest fixture to capture log output.
        """
        classifier = BlockingClassifier()
        try:
            with caplog.at_level(logging.WARNING):
                response = make_service(classifier=classifier, timeout=0.05).search("야생")
        finally:
            classifier.release.set()

        assert response.intent.category == IntentCategory.GENERAL
        assert response.search_terms == ["야생"]
        assert "timed out" in caplog.text

    def test_non_intent_reply_falls_back(
        self, make_service: Callable[..., Service], static_classifier: Callable[..., Any]
    ):
        """A classifier returning the wrong type is treated as a failure.

        Args:
            make_service: Service factory fixture.
            static_classifier: Classifier double factory fixture.
        """
        response = make_service(classifier=static_classifier({"category": "SERVER"})).search(
            "야생"
        )
        assert response.intent == SearchIntent.fallback()

    def test_fuzzy_bonus_breaks_equal_base(
        self, make_service: Callable[..., Service], add_content: Callable[..., Any]
    ):
        """With equal base scores, the closer title ranks first.

        Args:
            make_service: Service factory fixture.
            add_content: Index row factory fixture.
        """
        add_content(type="POST", title="야생 텍스처팩")
        add_content(type="POST", title="야생 서버 추천")

        response = make_service().search("야생 서버")
        first, second = response.results

        assert first.entry.title == "야생 서버 추천"
        assert first.score_breakdown.base == second.score_breakdown.base
        assert first.score_breakdown.fuzzy_bonus == 300
        assert second.score_breakdown.fuzzy_bonus == 0
        assert first.score > second.score


class TestSearchPipeline:
    """Tests for sort precedence, expansion and error propagation."""

    def test_explicit_sort_overrides_intent(
        self,
        make_service: Callable[..., Service],
        add_content: Callable[..., Any],
        static_classifier: Callable[..., Any],
        fixed_now: datetime.datetime,
    ):
        """Explicit POPULARITY beats an intent suggesting LATEST.

        Args:
            make_service: Service factory fixture.
            add_content: Index row factory fixture.
            static_classifier: Classifier double factory fixture.
            fixed_now: Reference time fixture.
        """
        add_content(title="야생 서버 A", view_count=10, created_at=fixed_now)
        add_content(title="야생 서버 B", view_count=9000)
        add_content(title="야생 서버 C", view_count=500)
        classifier = static_classifier(SearchIntent(sort=SortMode.LATEST))

        service = make_service(classifier=classifier)
        popular = service.search("야생 서버", sort=SortMode.POPULARITY)
        latest = service.search("야생 서버")

        assert popular.sort == SortMode.POPULARITY
        assert [r.entry.view_count for r in popular.results] == [9000, 500, 10]
        assert latest.sort == SortMode.LATEST
        assert latest.results[0].entry.title == "야생 서버 A"

    def test_dictionary_expansion_reaches_retrieval(
        self,
        make_service: Callable[..., Service],
        add_content: Callable[..., Any],
        session_factory: "sessionmaker[Session]",
    ):
        """A synonym from the dictionary retrieves an otherwise unrelated title.

        Args:
            make_service: Service factory fixture.
            add_content: Index row factory fixture.
            session_factory: Session factory on the in-memory index.
        """
        with session_factory.begin() as session:
            session.add(SearchKeyword(term="야생", synonyms=["Survival", "서바이벌"]))
        add_content(title="Survival Island")

        response = make_service().search("야생")

        assert "Survival" in response.search_terms
        assert [r.entry.title for r in response.results] == ["Survival Island"]
        assert response.results[0].score_breakdown.keyword_match == 200

    def test_intent_keywords_and_tags_join_terms(
        self, make_service: Callable[..., Service], static_classifier: Callable[..., Any]
    ):
        """Classifier keywords and tag filters are merged into the terms.

        Args:
            make_service: Service factory fixture.
            static_classifier: Classifier double factory fixture.
        """
        intent = SearchIntent(keywords=["스카이블록"], filters={"tags": ["PvP"]})
        response = make_service(classifier=static_classifier(intent)).search("스블 서버")
        assert response.search_terms == ["스블 서버", "스카이블록", "PvP"]

    def test_dictionary_failure_does_not_raise(
        self, make_service: Callable[..., Service], add_content: Callable[..., Any]
    ):
        """A failing dictionary degrades expansion only.

        Args:
            make_service: Service factory fixture.
            add_content: Index row factory fixture.
        """
        add_content(title="야생 서버")
        response = make_service(keyword_store=FailingStore()).search("야생 서버")
        assert [r.entry.title for r in response.results] == ["야생 서버"]

    def test_retrieval_error_propagates(
        self, make_service: Callable[..., Service], mocker: "MockerFixture"
    ):
        """Index failures surface to the caller as `RetrievalError`.

        Args:
            make_service: Service factory fixture.
            mocker: Pytest-mock's mocker fixture.
        """
        mocker.patch(
            "craft_search.local.service.retrieve",
            side_effect=RetrievalError("index unreachable"),
        )
        with pytest.raises(RetrievalError):
            make_service().search("야생 서버")

    def test_blank_query_short_circuits(
        self, make_service: Callable[..., Service], static_classifier: Callable[..., Any]
    ):
        """Blank queries return nothing without calling the classifier.

        The query is still echoed as the only search term.

        Args:
            make_service: Service factory fixture.
            static_classifier: Classifier double factory fixture.
        """
        classifier = static_classifier(SearchIntent(category=IntentCategory.SERVER))
        response = make_service(classifier=classifier).search("   ")
        assert response.results == []
        assert response.search_terms == ["   "]
        assert response.query == "   "
        assert response.intent.category == IntentCategory.GENERAL
        assert classifier.queries == []

    def test_limit(
        self, make_service: Callable[..., Service], add_content: Callable[..., Any]
    ):
        """The result count never exceeds the requested limit.

        Args:
            make_service: Service factory fixture.
            add_content: Index row factory fixture.
        """
        for i in range(6):
            add_content(title=f"야생 서버 {i}")
        assert len(make_service().search("야생 서버", limit=4).results) == 4

    def test_repeated_search_is_identical(
        self, make_service: Callable[..., Service], add_content: Callable[..., Any]
    ):
        """Two searches for the same query produce identical responses.

        Args:
            make_service: Service factory fixture.
            add_content: Index row factory fixture.
        """
        add_content(title="야생 서버 추천", view_count=300, like_count=12)
        add_content(type="WIKI", title="야생 가이드", tags=["서버"])
        service = make_service()
        assert service.search("야생 서버").model_dump() == service.search("야생 서버").model_dump()
