# src/craft_search/shared/models/db.py

"""SQLAlchemy ORM models for the unified search index.

`SearchContent` is the denormalized, read-mostly index row: one row per
searchable server, resource, wiki document, forum post or collection. The
owning content services write these rows inside their own transactions; the
search core only reads them. `SearchKeyword` is the synonym dictionary used
for query expansion.
"""

import datetime
import enum
import uuid
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class ContentType(str, enum.Enum):
    """Variant tag of an index row."""

    SERVER = "SERVER"
    RESOURCE = "RESOURCE"
    WIKI = "WIKI"
    POST = "POST"
    COLLECTION = "COLLECTION"


class Grade(str, enum.Enum):
    """Editorial ordinal grade, S highest."""

    S = "S"
    A = "A"
    B = "B"
    C = "C"
    F = "F"


# Content type -> name of the reference column that must be set for it.
REFERENCE_COLUMNS = {
    ContentType.SERVER: "server_id",
    ContentType.RESOURCE: "resource_id",
    ContentType.WIKI: "wiki_id",
    ContentType.POST: "post_id",
    ContentType.COLLECTION: "collection_id",
}


def _exactly_one_reference_sql() -> str:
    clauses = []
    for content_type, column in REFERENCE_COLUMNS.items():
        others = " AND ".join(
            f"{other} IS NULL" for other in REFERENCE_COLUMNS.values() if other != column
        )
        clauses.append(
            f"(type = '{content_type.value}' AND {column} IS NOT NULL AND {others})"
        )
    return " OR ".join(clauses)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp stored as UTC on every backend.

    SQLite keeps only the wall-clock part of a bound datetime, so offsets are
    normalized to UTC before binding and loaded values are tagged as UTC.
    Naive datetimes are taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Declarative base for all craft_search tables."""


class SearchContent(Base):
    """One searchable content unit in the unified index."""

    __tablename__ = "search_content"
    __table_args__ = (
        CheckConstraint(_exactly_one_reference_sql(), name="ck_search_content_one_reference"),
        Index("ix_search_content_visible", "is_hidden", "deleted_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    type: Mapped[ContentType] = mapped_column(
        Enum(ContentType, name="content_type"), nullable=False, index=True
    )

    server_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    resource_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    wiki_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    post_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    collection_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, unique=True
    )
    link: Mapped[str] = mapped_column(String(512), nullable=False, default="/")
    thumbnail: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    keywords: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    trust_grade: Mapped[Grade] = mapped_column(
        Enum(Grade, name="grade"), nullable=False, default=Grade.B
    )
    relevance_grade: Mapped[Grade] = mapped_column(
        Enum(Grade, name="grade"), nullable=False, default=Grade.B
    )
    accuracy_grade: Mapped[Grade] = mapped_column(
        Enum(Grade, name="grade"), nullable=False, default=Grade.B
    )

    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    impressions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    report_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )
    last_active: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        UTCDateTime(timezone=True), nullable=True
    )

    content_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    readability_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    def __repr__(self) -> str:
        return f"<SearchContent(id={self.id!r}, type={self.type}, title={self.title!r})>"


class SearchKeyword(Base):
    """A dictionary term with its synonyms, used for query expansion."""

    __tablename__ = "search_keyword"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    term: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    synonyms: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    popularity: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    def __repr__(self) -> str:
        return f"<SearchKeyword(term={self.term!r}, synonyms={self.synonyms!r})>"
