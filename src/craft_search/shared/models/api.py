# src/craft_search/shared/models/api.py

"""Pydantic models exchanged between the search core and its consumers.

Index rows are exposed as a tagged variant (`SearchContentEntry`): each
content type carries exactly one reference field of its own, so a
resource entry cannot hold a server id. Query-time objects (`SearchIntent`,
`ScoredResult`, `SearchResponse`) are ephemeral and never persisted.
"""

import datetime
import enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

from craft_search.shared.models.db import ContentType, Grade, SearchContent

# JSON keys are camelCase; Python code may use either spelling.
API_MODEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IntentCategory(str, enum.Enum):
    """Purpose of a query as judged by the intent classifier."""

    NAVIGATION = "NAVIGATION"
    SERVER = "SERVER"
    RESOURCE = "RESOURCE"
    GUIDE = "GUIDE"
    PROBLEM = "PROBLEM"
    GENERAL = "GENERAL"


class SortMode(str, enum.Enum):
    """Final ordering of search results."""

    RELEVANCE = "RELEVANCE"
    POPULARITY = "POPULARITY"
    LATEST = "LATEST"


# --- Index entries ---


class _EntryBase(BaseModel):
    """Fields shared by every index entry variant."""

    model_config = ConfigDict(frozen=True, **API_MODEL_CONFIG)

    id: str
    link: str = "/"
    thumbnail: Optional[str] = None
    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)

    trust_grade: Grade = Grade.B
    relevance_grade: Grade = Grade.B
    accuracy_grade: Grade = Grade.B

    view_count: int = 0
    like_count: int = 0
    impressions: int = 0
    clicks: int = 0
    comment_count: int = 0
    report_count: int = 0

    created_at: datetime.datetime
    last_active: Optional[datetime.datetime] = None
    is_hidden: bool = False
    deleted_at: Optional[datetime.datetime] = None

    content_length: int = 0
    readability_score: float = 0.0

    @field_validator("trust_grade", "relevance_grade", "accuracy_grade", mode="before")
    @classmethod
    def _default_grade(cls, value: Any) -> Any:
        # A missing or unrecognised grade reads as B instead of failing the row.
        letter = getattr(value, "value", value)
        if isinstance(letter, str) and letter.strip().upper() in Grade.__members__:
            return Grade(letter.strip().upper())
        return Grade.B

    @field_validator(
        "view_count",
        "like_count",
        "impressions",
        "clicks",
        "comment_count",
        "report_count",
        "content_length",
        mode="before",
    )
    @classmethod
    def _non_negative_counter(cls, value: Any) -> int:
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return 0

    @field_validator("readability_score", mode="before")
    @classmethod
    def _non_negative_readability(cls, value: Any) -> float:
        try:
            return max(0.0, float(value))
        except (TypeError, ValueError):
            return 0.0

    @field_validator("tags", "keywords", mode="before")
    @classmethod
    def _string_list(cls, value: Any) -> List[str]:
        if not value:
            return []
        return [str(v) for v in value if v is not None]

    @field_validator("description", mode="before")
    @classmethod
    def _empty_description(cls, value: Any) -> str:
        return value or ""


class ServerEntry(_EntryBase):
    type: Literal["SERVER"] = "SERVER"
    server_id: str


class ResourceEntry(_EntryBase):
    type: Literal["RESOURCE"] = "RESOURCE"
    resource_id: str


class WikiEntry(_EntryBase):
    type: Literal["WIKI"] = "WIKI"
    wiki_id: str


class PostEntry(_EntryBase):
    type: Literal["POST"] = "POST"
    post_id: str


class CollectionEntry(_EntryBase):
    type: Literal["COLLECTION"] = "COLLECTION"
    collection_id: str


SearchContentEntry = Annotated[
    Union[ServerEntry, ResourceEntry, WikiEntry, PostEntry, CollectionEntry],
    Field(discriminator="type"),
]

ENTRY_MODELS: Dict[ContentType, Type[_EntryBase]] = {
    ContentType.SERVER: ServerEntry,
    ContentType.RESOURCE: ResourceEntry,
    ContentType.WIKI: WikiEntry,
    ContentType.POST: PostEntry,
    ContentType.COLLECTION: CollectionEntry,
}


def entry_from_orm(row: SearchContent) -> _EntryBase:
    """Converts a `SearchContent` row into its tagged entry variant.

    Args:
        row: The ORM row.

    Returns:
        The `ServerEntry`, `ResourceEntry`, ... matching `row.type`.

    Raises:
        pydantic.ValidationError: If the reference column for the row's type
            is not set.
    """
    content_type = ContentType(getattr(row.type, "value", row.type))
    data = {column.key: getattr(row, column.key) for column in SearchContent.__table__.columns}
    data["type"] = content_type.value
    return ENTRY_MODELS[content_type].model_validate(data)


# --- Intent ---


class IntentFilters(BaseModel):
    """Structured filters extracted from a query."""

    model_config = API_MODEL_CONFIG

    tags: List[str] = Field(default_factory=list)
    edition: Optional[Literal["JAVA", "BEDROCK"]] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_list(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(v) for v in value if v]

    @field_validator("edition", mode="before")
    @classmethod
    def _known_edition(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value.upper() in ("JAVA", "BEDROCK"):
            return value.upper()
        return None


class SearchIntent(BaseModel):
    """Classifier output for a single query."""

    model_config = API_MODEL_CONFIG

    category: IntentCategory = IntentCategory.GENERAL
    sub_category: Optional[str] = None
    explanation: str = ""
    keywords: List[str] = Field(default_factory=list)
    filters: IntentFilters = Field(default_factory=IntentFilters)
    sort: Optional[SortMode] = None

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, value: Any) -> Any:
        letter = getattr(value, "value", value)
        if isinstance(letter, str) and letter.upper() in IntentCategory.__members__:
            return IntentCategory(letter.upper())
        return IntentCategory.GENERAL

    @field_validator("sort", mode="before")
    @classmethod
    def _known_sort(cls, value: Any) -> Any:
        mode = getattr(value, "value", value)
        if isinstance(mode, str) and mode.upper() in SortMode.__members__:
            return SortMode(mode.upper())
        return None

    @field_validator("sub_category", mode="before")
    @classmethod
    def _blank_sub_category(cls, value: Any) -> Optional[str]:
        if not value or not isinstance(value, str):
            return None
        return value.strip().upper() or None

    @field_validator("explanation", mode="before")
    @classmethod
    def _explanation_text(cls, value: Any) -> str:
        return str(value) if value else ""

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords_list(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(v) for v in value if v]

    @classmethod
    def fallback(cls, explanation: str = "") -> "SearchIntent":
        """Returns the GENERAL intent used when classification is unavailable."""
        return cls(category=IntentCategory.GENERAL, explanation=explanation)


# --- Scored results ---


class ScoreBreakdown(BaseModel):
    """Named additive components of a result's total score."""

    model_config = API_MODEL_CONFIG

    base: int
    keyword_match: int = 0
    desc_or_tag_match: int = 0
    intent_bonus: int = 0
    fuzzy_bonus: int = 0

    @property
    def total(self) -> int:
        return (
            self.base
            + self.keyword_match
            + self.desc_or_tag_match
            + self.intent_bonus
            + self.fuzzy_bonus
        )


class ScoredResult(BaseModel):
    """An index entry with its total score and score breakdown.

    Serialized flat: the entry's fields sit next to `score`,
    `scoreBreakdown` and `fuzzyScore`. Validation accepts both the flat
    form and a nested `entry`.
    """

    model_config = API_MODEL_CONFIG

    entry: SearchContentEntry
    score: int
    score_breakdown: ScoreBreakdown
    fuzzy_score: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _nest_entry(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "entry" in data:
            return data
        result_keys = {
            name
            for field_name in ("score", "score_breakdown", "fuzzy_score")
            for name in (field_name, to_camel(field_name))
        }
        entry = {k: v for k, v in data.items() if k not in result_keys}
        nested = {k: v for k, v in data.items() if k in result_keys}
        nested["entry"] = entry
        return nested

    @model_serializer(mode="wrap")
    def _flatten_entry(self, handler: Any) -> Dict[str, Any]:
        data = handler(self)
        entry = data.pop("entry")
        return {**entry, **data}


class SearchResponse(BaseModel):
    """Response of `Service.search`.

    Attributes:
        query: The raw query as received (stripped).
        sort: The sort mode that decided the final ordering.
        intent: The classifier output, or the GENERAL fallback.
        results: Ordered results.
        search_terms: The expanded term list used for matching.
    """

    model_config = API_MODEL_CONFIG

    query: str
    sort: SortMode = SortMode.RELEVANCE
    intent: SearchIntent
    results: List[ScoredResult] = Field(default_factory=list)
    search_terms: List[str] = Field(default_factory=list)


# --- Diagnostics ---


class DiagnosticRow(BaseModel):
    """One row of the admin diagnostics table."""

    model_config = API_MODEL_CONFIG

    rank: int
    id: str
    type: str
    title: str
    base: int
    text_match: int
    intent_bonus: int
    fuzzy_bonus: int
    fuzzy_score: float
    score: int


class DiagnosticsResponse(BaseModel):
    """Search response plus its per-row breakdown for the diagnostics view."""

    model_config = API_MODEL_CONFIG

    response: SearchResponse
    rows: List[DiagnosticRow] = Field(default_factory=list)
