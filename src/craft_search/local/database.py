# src/craft_search/local/database.py

"""Database engine setup for the search index.

Creates SQLAlchemy engines configured for the index schema. JSON columns are
serialized without ASCII escaping. SQLite connections receive a
`similarity(a, b)` SQL function equivalent to pg_trgm's and a Unicode-aware
`lower(x)`, so case-insensitive predicates behave as they do on PostgreSQL.
"""

import functools
import json
import logging
from typing import Any

from sqlalchemy import String, column, create_engine, event, func, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.selectable import TableValuedAlias

from craft_search.local.similarity import trigram_similarity
from craft_search.shared.models.db import Base

logger = logging.getLogger(__name__)

_json_serializer = functools.partial(json.dumps, ensure_ascii=False)


def _unicode_lower(value: Any) -> Any:
    if value is None:
        return None
    return str(value).lower()


def _register_sqlite_functions(dbapi_connection: Any, connection_record: Any) -> None:
    dbapi_connection.create_function(
        "similarity", 2, trigram_similarity, deterministic=True
    )
    # Overrides the built-in lower(), which folds ASCII letters only.
    dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)


def create_search_engine(db_url: str, echo: bool = False) -> Engine:
    """Creates an engine for the search index database.

    In-memory SQLite URLs share a single connection across threads so that
    every session of the process sees the same database.

    Args:
        db_url: SQLAlchemy database URL.
        echo: Whether SQLAlchemy should log emitted SQL.

    Returns:
        The configured `Engine`.
    """
    engine_kwargs = {"echo": echo, "json_serializer": _json_serializer}
    is_sqlite = db_url.startswith("sqlite")
    if is_sqlite and (db_url in ("sqlite://", "sqlite:///:memory:")):
        engine_kwargs["poolclass"] = StaticPool
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    elif is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_pre_ping"] = True

    engine = create_engine(db_url, **engine_kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _register_sqlite_functions)
        logger.debug("Registered trigram similarity function for SQLite engine.")
    return engine


def init_db(engine: Engine) -> None:
    """Creates the index tables (and pg_trgm on PostgreSQL) if missing.

    Args:
        engine: Engine returned by `create_search_engine`.
    """
    if engine.dialect.name == "postgresql":
        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS pg_trgm"))
        logger.info("Ensured pg_trgm extension is installed.")
    Base.metadata.create_all(engine)
    logger.info("Search index schema ensured on %s.", engine.url.render_as_string())


def make_session_factory(engine: Engine) -> "sessionmaker[Session]":
    """Returns a session factory bound to `engine`."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def json_elements(json_column: Any, dialect_name: str) -> TableValuedAlias:
    """Returns the string elements of a JSON array column as a table.

    The result has a single `value` column and correlates with the table of
    `json_column` when used inside an EXISTS subquery.

    Args:
        json_column: A JSON column holding a list of strings.
        dialect_name: Name of the engine's dialect.
    """
    value = column("value", String)
    if dialect_name == "postgresql":
        # Names the column explicitly: AS anon_1(value).
        elements = func.json_array_elements_text(json_column).table_valued(value)
        return elements.render_derived()
    return func.json_each(json_column).table_valued(value)
