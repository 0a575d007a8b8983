# tests/conftest.py

"""Shared fixtures for the craft-search test suite.

This file provides fixtures that are automatically discovered by pytest
and can be used by any test in the 'tests' directory and its
subdirectories: an in-memory index database with the trigram similarity
function registered, factories for index rows and entry models, a fixed
reference time, and environment isolation for settings.
"""

import datetime
import pathlib
import uuid
from typing import Any, Callable, Iterator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

import craft_search.config
import craft_search.defaults
from craft_search.config import ENV_OVERRIDES
from craft_search.local.database import (
    create_search_engine,
    init_db,
    make_session_factory,
)
from craft_search.shared.models.api import ENTRY_MODELS, SearchIntent
from craft_search.shared.models.db import REFERENCE_COLUMNS, ContentType, SearchContent

FIXED_NOW = datetime.datetime(2024, 6, 1, 12, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Removes craft-search environment overrides and disables `.env` loading.

    Args:
        monkeypatch: Pytest's built-in fixture for modifying objects.
    """
    for env_var, _, _ in ENV_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setattr(craft_search.config, "load_dotenv", lambda **kwargs: False)


@pytest.fixture
def isolated_data_paths(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> pathlib.Path:
    """Redirects the default data directory, database URL and query log.

    Args:
        tmp_path: Pytest's built-in fixture for a temporary directory.
        monkeypatch: Pytest's built-in fixture for modifying objects.

    Yields:
        pathlib.Path: The temporary user data directory.
    """
    fake_data_dir = tmp_path / "craft_search_data"
    fake_db_path = fake_data_dir / craft_search.defaults.DEFAULT_DB_FILENAME
    fake_db_url = f"sqlite:///{fake_db_path.resolve()}"
    monkeypatch.setattr(
        craft_search.defaults, "CRAFT_SEARCH_USER_DATA_DIR", fake_data_dir
    )
    monkeypatch.setattr(craft_search.defaults, "DEFAULT_DB_PATH", fake_db_path)
    monkeypatch.setattr(craft_search.defaults, "DEFAULT_DB_URL", fake_db_url)
    monkeypatch.setattr(
        craft_search.defaults,
        "DEFAULT_QUERY_LOG_PATH",
        tmp_path / "logs" / craft_search.defaults.DEFAULT_QUERY_LOG_FILENAME,
    )
    monkeypatch.setenv("CRAFT_SEARCH_DB_URL", fake_db_url)
    yield fake_data_dir


@pytest.fixture
def fixed_now() -> datetime.datetime:
    """The reference time used by scoring tests."""
    return FIXED_NOW


@pytest.fixture(scope="function")
def engine() -> Iterator[Engine]:
    """Provides an in-memory SQLite engine with the index schema created.

    Yields:
        sqlalchemy.engine.Engine: A fresh engine; disposed after the test.
    """
    search_engine = create_search_engine("sqlite://")
    init_db(search_engine)
    try:
        yield search_engine
    finally:
        search_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> "sessionmaker[Session]":
    """Session factory bound to the in-memory index."""
    return make_session_factory(engine)


@pytest.fixture
def db_session(session_factory: "sessionmaker[Session]") -> Iterator[Session]:
    """Provides an open session on the in-memory index.

    Yields:
        sqlalchemy.orm.Session: The session; closed after the test.
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def add_content(
    session_factory: "sessionmaker[Session]",
) -> Callable[..., SearchContent]:
    """Returns a factory that commits `SearchContent` rows to the index.

    The factory accepts any column as a keyword argument plus `type`
    (defaults to SERVER) and `ref_id` (defaults to a random id). Rows
    default to being 30 days old relative to `FIXED_NOW`.
    """

    def _add(**fields: Any) -> SearchContent:
        content_type = ContentType(fields.pop("type", ContentType.SERVER))
        ref_id = fields.pop("ref_id", uuid.uuid4().hex)
        fields.setdefault("created_at", FIXED_NOW - datetime.timedelta(days=30))
        row = SearchContent(type=content_type, **fields)
        setattr(row, REFERENCE_COLUMNS[content_type], ref_id)
        with session_factory.begin() as session:
            session.add(row)
        return row

    return _add


@pytest.fixture
def make_entry() -> Callable[..., Any]:
    """Returns a factory for validated entry models without a database."""

    def _make(**fields: Any) -> Any:
        content_type = ContentType(fields.pop("type", ContentType.SERVER))
        data = {
            "id": uuid.uuid4().hex,
            "title": "Entry",
            "created_at": FIXED_NOW - datetime.timedelta(days=30),
            REFERENCE_COLUMNS[content_type]: uuid.uuid4().hex,
        }
        data.update(fields)
        data["type"] = content_type.value
        return ENTRY_MODELS[content_type].model_validate(data)

    return _make


class StaticClassifier:
    """Classifier double returning a fixed intent and recording queries."""

    def __init__(self, intent: SearchIntent):
        self.intent = intent
        self.queries = []

    def classify(self, query: str) -> SearchIntent:
        self.queries.append(query)
        return self.intent


@pytest.fixture
def static_classifier() -> Callable[[SearchIntent], StaticClassifier]:
    """Returns a factory for `StaticClassifier` doubles."""
    return StaticClassifier
