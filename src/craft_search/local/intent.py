# src/craft_search/local/intent.py

"""Intent classifiers consumed by the search orchestrator.

The orchestrator only depends on the `IntentClassifier` protocol. Two
adapters are provided:

* `RuleBasedIntentClassifier`, an offline trigger-word classifier used by
  default and whenever no LLM credentials are configured.
* `GeminiIntentClassifier`, which asks a Google Gemini model for a JSON
  classification and validates it into a `SearchIntent`.

Classifiers may be slow or fail; the orchestrator bounds them with a
timeout and substitutes `SearchIntent.fallback()` on any error.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import google.generativeai as genai
from pydantic import ValidationError

from craft_search import defaults
from craft_search.config import Settings
from craft_search.local.expansion import tokenize_query
from craft_search.shared.models.api import IntentCategory, SearchIntent, SortMode

logger = logging.getLogger(__name__)


class IntentClassificationError(RuntimeError):
    """Raised when a classifier cannot produce a valid intent."""


class IntentClassifier(Protocol):
    """Maps a free-text query to a structured `SearchIntent`."""

    def classify(self, query: str) -> SearchIntent:
        ...


# --- Rule-based classifier ---

# Checked in order; the first category with a trigger in the query wins.
CATEGORY_TRIGGERS: Tuple[Tuple[IntentCategory, Tuple[str, ...]], ...] = (
    (
        IntentCategory.PROBLEM,
        ("오류", "에러", "안돼", "안되", "튕김", "튕겨", "해결", "크래시",
         "error", "crash", "fix", "not working", "bug"),
    ),
    (
        IntentCategory.NAVIGATION,
        ("주소", "채널", "어디", "디스코드", "접속", "address", "ip", "discord", "where"),
    ),
    (
        IntentCategory.GUIDE,
        ("방법", "하는 법", "하는법", "가이드", "공략", "규칙", "공지", "만드는",
         "how to", "guide", "tutorial", "rules"),
    ),
    (
        IntentCategory.SERVER,
        ("서버", "server", "야생", "마인팜", "스카이블록", "rpg", "미니게임"),
    ),
    (
        IntentCategory.RESOURCE,
        ("모드", "맵", "리소스팩", "텍스처", "쉐이더", "셰이더", "플러그인", "스킨",
         "데이터팩", "스크립트", "mod", "map", "resource pack", "texture", "shader",
         "plugin", "skin", "datapack"),
    ),
)

SUB_CATEGORY_TRIGGERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("NEWS", ("업데이트", "패치", "스냅샷", "뉴스", "update", "patch", "snapshot", "news")),
    ("MODS", ("모드", "애드온", "mod", "addon")),
    ("MAPS", ("맵", "월드", "map", "world")),
    ("PLUGINS", ("플러그인", "plugin")),
    ("SCRIPTS", ("스크립트", "스크립", "skript", "script")),
    ("DEV_QUESTION", ("개발", "코드", "코딩", "api", "code", "dev")),
)

SORT_TRIGGERS: Tuple[Tuple[SortMode, Tuple[str, ...]], ...] = (
    (SortMode.LATEST, ("최신", "최근", "새로운", "latest", "newest", "recent")),
    (SortMode.POPULARITY, ("인기", "유명한", "popular", "best", "top")),
)

EDITION_TRIGGERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("BEDROCK", ("베드락", "베드록", "bedrock", "pe")),
    ("JAVA", ("자바", "java", "je")),
)

# Filler words that carry no search value on their own.
STOPWORDS = frozenset(
    {"추천", "추천해줘", "알려줘", "찾아줘", "있어", "있나요", "있어?", "좀", "하는",
     "the", "a", "an", "for", "and", "please"}
)


def _contains_trigger(text: str, tokens: Sequence[str], trigger: str) -> bool:
    if " " in trigger or not trigger.isascii():
        return trigger in text
    # Short ASCII triggers ("ip", "pe") must match a whole token.
    return trigger in tokens


class RuleBasedIntentClassifier:
    """Classifies queries with ordered trigger-word tables.

    Deterministic and dependency-free; explanations are short Korean
    sentences in the same register as the LLM classifier.
    """

    def classify(self, query: str) -> SearchIntent:
        text = query.strip().lower()
        tokens = [t.strip("?!.,") for t in text.split()]

        category = IntentCategory.GENERAL
        for candidate, triggers in CATEGORY_TRIGGERS:
            if any(_contains_trigger(text, tokens, t) for t in triggers):
                category = candidate
                break

        sub_category: Optional[str] = None
        for candidate_sub, triggers in SUB_CATEGORY_TRIGGERS:
            if any(_contains_trigger(text, tokens, t) for t in triggers):
                sub_category = candidate_sub
                break

        sort: Optional[SortMode] = None
        for mode, triggers in SORT_TRIGGERS:
            if any(_contains_trigger(text, tokens, t) for t in triggers):
                sort = mode
                break

        edition: Optional[str] = None
        for candidate_edition, triggers in EDITION_TRIGGERS:
            if any(_contains_trigger(text, tokens, t) for t in triggers):
                edition = candidate_edition
                break

        tags: List[str] = []
        keywords: List[str] = []
        for token in tokenize_query(query):
            cleaned = token.strip("?!.,")
            if cleaned.startswith("#") and len(cleaned) > 1:
                tags.append(cleaned[1:])
            elif cleaned.lower() not in STOPWORDS and len(cleaned) > 1:
                keywords.append(cleaned)

        return SearchIntent(
            category=category,
            sub_category=sub_category,
            explanation=f"규칙 기반 분류: {category.value}",
            keywords=keywords,
            filters={"tags": tags, "edition": edition},
            sort=sort,
        )


# --- Gemini classifier ---

INTENT_PROMPT_TEMPLATE = """
You are a Search Intent Analyzer for a Minecraft community site.
Classify the user query into one of these categories:

1. GUIDE (start/info): "how to", rules, guides, notices, server info.
2. RESOURCE (discovery): recommendations for maps, mods, resource packs.
3. PROBLEM (troubleshooting): fix, error, not working, help.
4. NAVIGATION (where is?): channel, server address, where to go.
5. SERVER: looking for a server to play on.
6. GENERAL: anything else.

Optionally set subCategory to one of NEWS, MODS, MAPS, PLUGINS, SCRIPTS,
DEV_QUESTION, and sort to RELEVANCE, POPULARITY or LATEST when the user asks
for it. Extract filters and keywords (stemmed core words).

User query: "{query}"

Return JSON only:
{{
  "category": "GUIDE" | "RESOURCE" | "PROBLEM" | "NAVIGATION" | "SERVER" | "GENERAL",
  "subCategory": string | null,
  "filters": {{"type": "JAVA" | "BEDROCK" | null, "tags": ["tag1"]}},
  "keywords": ["keyword1", "keyword2"],
  "sort": "RELEVANCE" | "POPULARITY" | "LATEST" | null,
  "explanation": "Brief explanation in Korean"
}}
"""

_CODE_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


def parse_intent_response(response_text: str) -> SearchIntent:
    """Parses an LLM JSON reply into a `SearchIntent`.

    Args:
        response_text: Raw model output, optionally wrapped in code fences.

    Returns:
        The validated intent.

    Raises:
        IntentClassificationError: If the reply is not a JSON object or fails
            validation.
    """
    cleaned = _CODE_FENCE_PATTERN.sub("", response_text or "").strip()
    try:
        data: Any = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise IntentClassificationError(f"Classifier returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise IntentClassificationError(
            f"Classifier returned {type(data).__name__}, expected a JSON object."
        )

    filters: Dict[str, Any] = data.get("filters") or {}
    if not isinstance(filters, dict):
        filters = {}
    try:
        return SearchIntent(
            category=data.get("category"),
            sub_category=data.get("subCategory", data.get("sub_category")),
            explanation=data.get("explanation"),
            keywords=data.get("keywords"),
            filters={"tags": filters.get("tags"), "edition": filters.get("type")},
            sort=data.get("sort"),
        )
    except ValidationError as e:
        raise IntentClassificationError(f"Classifier reply failed validation: {e}") from e


class GeminiIntentClassifier:
    """Intent classifier backed by a Google Gemini generative model.

    Attributes:
        model_name: Gemini model used for classification.
        request_timeout: Per-request timeout in seconds passed to the SDK.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = defaults.DEFAULT_GEMINI_MODEL_NAME,
        request_timeout: float = defaults.DEFAULT_CLASSIFIER_TIMEOUT_SECONDS,
    ):
        if not api_key:
            raise ValueError("A Gemini API key is required for GeminiIntentClassifier.")
        try:
            genai.configure(api_key=api_key)
        except Exception as e:
            raise RuntimeError(f"Failed to configure Google GenAI client: {e}") from e
        self.model_name = model_name
        self.request_timeout = request_timeout
        self._model = genai.GenerativeModel(model_name)

    def classify(self, query: str) -> SearchIntent:
        prompt = INTENT_PROMPT_TEMPLATE.format(query=query.replace('"', "'"))
        response = self._model.generate_content(
            prompt, request_options={"timeout": self.request_timeout}
        )
        try:
            response_text = response.text
        except ValueError as e:
            # Blocked or empty candidates raise on `.text`.
            raise IntentClassificationError(f"Classifier returned no text: {e}") from e
        return parse_intent_response(response_text)


def build_classifier(settings: Settings) -> IntentClassifier:
    """Returns the classifier selected by `settings.classifier`.

    Falls back to `RuleBasedIntentClassifier` when Gemini is requested without
    an API key or the name is unknown.
    """
    choice = (settings.classifier or defaults.DEFAULT_CLASSIFIER).lower()
    if choice == "gemini":
        if settings.gemini_api_key:
            logger.info("Using Gemini intent classifier (%s).", settings.gemini_model)
            return GeminiIntentClassifier(
                api_key=settings.gemini_api_key,
                model_name=settings.gemini_model,
                request_timeout=settings.classifier_timeout,
            )
        logger.warning(
            "GEMINI_API_KEY not set; falling back to the rule-based intent classifier."
        )
    elif choice != "rules":
        logger.warning("Unknown classifier '%s'; using rule-based classifier.", choice)
    return RuleBasedIntentClassifier()
