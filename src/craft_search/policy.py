# src/craft_search/policy.py

"""Ranking policy: every tunable number of the scoring pipeline in one place.

The policy is an immutable dataclass so that a single search request sees one
consistent set of weights. `DEFAULT_POLICY` mirrors `craft_search.defaults`;
`load_policy` reads a versioned TOML file whose tables override individual
values, e.g.::

    version = "2025.2"

    [grades]
    A = 75

    [intent_bonuses.GUIDE]
    WIKI = 120

    [sub_category_tags]
    MODS = ["Mod", "Addon", "Forge"]
"""

import dataclasses
import logging
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import toml

from craft_search import defaults

logger = logging.getLogger(__name__)

GRADE_ORDER: Tuple[str, ...] = ("S", "A", "B", "C", "F")

# (TOML section, TOML key) -> RankingPolicy field name
_SCALAR_FIELDS: Dict[Tuple[str, str], str] = {
    ("weights", "trust"): "trust_weight",
    ("weights", "relevance"): "relevance_weight",
    ("weights", "accuracy"): "accuracy_weight",
    ("recency", "window_days"): "recency_window_days",
    ("recency", "bonus"): "recency_bonus",
    ("popularity", "scale"): "popularity_scale",
    ("popularity", "cap"): "popularity_cap",
    ("engagement", "like_weight"): "like_weight",
    ("engagement", "like_cap"): "like_cap",
    ("engagement", "ctr_scale"): "ctr_scale",
    ("engagement", "ctr_cap"): "ctr_cap",
    ("engagement", "ctr_impression_smoothing"): "ctr_impression_smoothing",
    ("engagement", "comment_weight"): "comment_weight",
    ("engagement", "comment_cap"): "comment_cap",
    ("content_quality", "min_length"): "min_content_length",
    ("content_quality", "length_scale"): "content_length_scale",
    ("content_quality", "length_cap"): "content_length_cap",
    ("content_quality", "readability_weight"): "readability_weight",
    ("reports", "threshold"): "report_penalty_threshold",
    ("reports", "penalty_per_report"): "report_penalty_per_report",
    ("bonuses", "keyword_match"): "keyword_match_bonus",
    ("bonuses", "desc_or_tag_match"): "desc_or_tag_bonus",
    ("bonuses", "sub_category"): "sub_category_bonus",
    ("bonuses", "fuzzy_threshold"): "fuzzy_bonus_threshold",
    ("bonuses", "fuzzy_scale"): "fuzzy_bonus_scale",
    ("retrieval", "strong_similarity"): "strong_similarity_threshold",
    ("retrieval", "min_similarity"): "min_similarity",
}


@dataclass(frozen=True)
class RankingPolicy:
    """Immutable set of ranking parameters.

    Attributes:
        version: Identifier of the policy revision, surfaced in logs.
        grade_scores: Grade letter -> numeric score. Strictly decreasing S..F.
        trust_weight: Multiplier for the trust grade. Must be the largest weight.
        relevance_weight: Multiplier for the relevance grade.
        accuracy_weight: Multiplier for the accuracy grade. Must be the smallest.
        intent_bonuses: Intent category -> content type -> bonus.
        sub_category_tags: Sub-category -> tag fragments that trigger the
            sub-category bonus.
    """

    version: str = defaults.DEFAULT_POLICY_VERSION
    grade_scores: Dict[str, int] = field(
        default_factory=lambda: dict(defaults.DEFAULT_GRADE_SCORES)
    )
    trust_weight: float = defaults.DEFAULT_TRUST_WEIGHT
    relevance_weight: float = defaults.DEFAULT_RELEVANCE_WEIGHT
    accuracy_weight: float = defaults.DEFAULT_ACCURACY_WEIGHT

    recency_window_days: int = defaults.DEFAULT_RECENCY_WINDOW_DAYS
    recency_bonus: int = defaults.DEFAULT_RECENCY_BONUS

    popularity_scale: float = defaults.DEFAULT_POPULARITY_SCALE
    popularity_cap: float = defaults.DEFAULT_POPULARITY_CAP

    like_weight: float = defaults.DEFAULT_LIKE_WEIGHT
    like_cap: float = defaults.DEFAULT_LIKE_CAP
    ctr_scale: float = defaults.DEFAULT_CTR_SCALE
    ctr_cap: float = defaults.DEFAULT_CTR_CAP
    ctr_impression_smoothing: int = defaults.DEFAULT_CTR_IMPRESSION_SMOOTHING
    comment_weight: float = defaults.DEFAULT_COMMENT_WEIGHT
    comment_cap: float = defaults.DEFAULT_COMMENT_CAP

    min_content_length: int = defaults.DEFAULT_MIN_CONTENT_LENGTH
    content_length_scale: float = defaults.DEFAULT_CONTENT_LENGTH_SCALE
    content_length_cap: int = defaults.DEFAULT_CONTENT_LENGTH_CAP
    readability_weight: float = defaults.DEFAULT_READABILITY_WEIGHT

    report_penalty_threshold: int = defaults.DEFAULT_REPORT_PENALTY_THRESHOLD
    report_penalty_per_report: int = defaults.DEFAULT_REPORT_PENALTY_PER_REPORT

    keyword_match_bonus: int = defaults.DEFAULT_KEYWORD_MATCH_BONUS
    desc_or_tag_bonus: int = defaults.DEFAULT_DESC_OR_TAG_BONUS
    intent_bonuses: Dict[str, Dict[str, int]] = field(
        default_factory=lambda: {
            category: dict(table)
            for category, table in defaults.DEFAULT_INTENT_TYPE_BONUSES.items()
        }
    )
    sub_category_bonus: int = defaults.DEFAULT_SUB_CATEGORY_BONUS
    sub_category_tags: Dict[str, List[str]] = field(
        default_factory=lambda: {
            sub: list(tags) for sub, tags in defaults.DEFAULT_SUB_CATEGORY_TAGS.items()
        }
    )
    fuzzy_bonus_threshold: float = defaults.DEFAULT_FUZZY_BONUS_THRESHOLD
    fuzzy_bonus_scale: int = defaults.DEFAULT_FUZZY_BONUS_SCALE

    strong_similarity_threshold: float = defaults.DEFAULT_STRONG_SIMILARITY_THRESHOLD
    min_similarity: float = defaults.DEFAULT_MIN_SIMILARITY

    def __post_init__(self) -> None:
        validate_policy(self)

    def grade_score(self, grade: Any) -> int:
        """Returns the numeric score of a grade letter or `Grade` member.

        Unknown or missing grades score as `B`.
        """
        letter = getattr(grade, "value", grade)
        if letter not in self.grade_scores:
            letter = "B"
        return self.grade_scores[letter]

    def intent_bonus(self, category: Any, content_type: Any) -> int:
        """Returns the bonus for a content type under an intent category."""
        category_key = getattr(category, "value", category)
        type_key = getattr(content_type, "value", content_type)
        return self.intent_bonuses.get(category_key, {}).get(type_key, 0)

    def tags_for_sub_category(self, sub_category: str) -> List[str]:
        """Returns the tag fragments for a sub-category (itself if unknown)."""
        return self.sub_category_tags.get(sub_category.upper(), [sub_category])


def validate_policy(policy: RankingPolicy) -> None:
    """Checks the ordering invariants of a policy.

    Raises:
        ValueError: If the grade table is incomplete, negative or not strictly
            decreasing, or if the weights are not ordered
            trust > relevance > accuracy > 0.
    """
    missing = [g for g in GRADE_ORDER if g not in policy.grade_scores]
    if missing:
        raise ValueError(f"Grade table is missing grades: {missing}")
    scores = [policy.grade_scores[g] for g in GRADE_ORDER]
    if any(s < 0 for s in scores):
        raise ValueError(f"Grade scores must be non-negative, got {scores}")
    if any(a <= b for a, b in zip(scores, scores[1:])):
        raise ValueError(f"Grade scores must strictly decrease S..F, got {scores}")
    if not (
        policy.trust_weight > policy.relevance_weight > policy.accuracy_weight > 0
    ):
        raise ValueError(
            "Weights must satisfy trust > relevance > accuracy > 0, got "
            f"{policy.trust_weight}, {policy.relevance_weight}, "
            f"{policy.accuracy_weight}"
        )


def policy_from_dict(data: Dict[str, Any], base: Optional[RankingPolicy] = None) -> RankingPolicy:
    """Builds a policy by overlaying a parsed TOML document on `base`.

    Args:
        data: Parsed TOML document.
        base: Policy supplying every value the document does not set.
            Defaults to `DEFAULT_POLICY`.

    Returns:
        A new, validated `RankingPolicy`.
    """
    base = base or DEFAULT_POLICY
    overrides: Dict[str, Any] = {}

    if "version" in data:
        overrides["version"] = str(data["version"])

    if "grades" in data:
        grades = dict(base.grade_scores)
        for letter, value in data["grades"].items():
            if letter.upper() not in GRADE_ORDER:
                logger.warning("Ignoring unknown grade '%s' in policy.", letter)
                continue
            grades[letter.upper()] = int(value)
        overrides["grade_scores"] = grades

    if "intent_bonuses" in data:
        table = {k: dict(v) for k, v in base.intent_bonuses.items()}
        for category, type_bonuses in data["intent_bonuses"].items():
            table.setdefault(category.upper(), {}).update(
                {t.upper(): int(b) for t, b in type_bonuses.items()}
            )
        overrides["intent_bonuses"] = table

    if "sub_category_tags" in data:
        tags = {k: list(v) for k, v in base.sub_category_tags.items()}
        for sub_category, fragments in data["sub_category_tags"].items():
            tags[sub_category.upper()] = [str(f) for f in fragments]
        overrides["sub_category_tags"] = tags

    for section, values in data.items():
        if section in ("version", "grades", "intent_bonuses", "sub_category_tags"):
            continue
        if not isinstance(values, dict):
            logger.warning("Ignoring unknown top-level policy key '%s'.", section)
            continue
        for key, value in values.items():
            field_name = _SCALAR_FIELDS.get((section, key))
            if field_name is None:
                logger.warning("Ignoring unknown policy key '%s.%s'.", section, key)
                continue
            current = getattr(base, field_name)
            overrides[field_name] = type(current)(value)

    return dataclasses.replace(base, **overrides)


def load_policy(policy_path: Optional[pathlib.Path]) -> RankingPolicy:
    """Loads a ranking policy from a TOML file.

    A missing or corrupted file is logged and yields `DEFAULT_POLICY`.

    Args:
        policy_path: Path to the policy TOML file, or None for the defaults.

    Returns:
        The loaded `RankingPolicy`.

    Raises:
        ValueError: If the file parses but violates the policy invariants.
    """
    if policy_path is None:
        return DEFAULT_POLICY
    policy_path = pathlib.Path(policy_path)
    if not policy_path.is_file():
        logger.warning(
            "Policy file %s not found. Using default ranking policy.", policy_path
        )
        return DEFAULT_POLICY
    try:
        with open(policy_path, "r", encoding="utf-8") as f:
            data = toml.load(f)
    except toml.TomlDecodeError as e:
        logger.warning(
            "Policy file %s is corrupted (%s). Using default ranking policy.",
            policy_path,
            e,
        )
        return DEFAULT_POLICY
    policy = policy_from_dict(data)
    logger.info("Loaded ranking policy version %s from %s.", policy.version, policy_path)
    return policy


DEFAULT_POLICY = RankingPolicy()
