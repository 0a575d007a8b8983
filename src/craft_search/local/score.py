# src/craft_search/local/score.py

"""Query-independent quality score of an index entry.

The base score combines editorial grades (trust weighted highest), a report
penalty, cached content-quality metrics, logarithmic popularity, capped
engagement signals and a flat recency bonus. It does not include any
query-specific bonus; those are added by `craft_search.local.scoring`.

All functions here are pure: the only time dependency is the explicit `now`
argument used for the recency window, and malformed entries (missing grades,
negative or missing counters) are read in their lowest-scoring form instead
of raising.
"""

import datetime
import math
from dataclasses import dataclass
from typing import Any, Optional

from craft_search.policy import DEFAULT_POLICY, RankingPolicy


@dataclass(frozen=True)
class BaseScoreComponents:
    """Named increments that make up a base score.

    Attributes:
        grades: Weighted sum of the three editorial grades.
        report_penalty: Non-positive penalty for heavily reported entries.
        content_quality: Length and readability bonus.
        popularity: Logarithmic view-count term, capped.
        engagement: Likes, click-through and comment bonuses, each capped.
        recency: Flat bonus for entries created inside the recency window.
        total: Rounded, non-negative sum of all components.
    """

    grades: float
    report_penalty: float
    content_quality: float
    popularity: float
    engagement: float
    recency: float
    total: int


def _counter(entry: Any, name: str) -> int:
    try:
        return max(0, int(getattr(entry, name, 0) or 0))
    except (TypeError, ValueError):
        return 0


def _as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite drops the offset; stored values are UTC.
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def grade_component(entry: Any, policy: RankingPolicy = DEFAULT_POLICY) -> float:
    """Returns the weighted editorial grade sum of an entry."""
    return (
        policy.grade_score(getattr(entry, "trust_grade", None)) * policy.trust_weight
        + policy.grade_score(getattr(entry, "relevance_grade", None))
        * policy.relevance_weight
        + policy.grade_score(getattr(entry, "accuracy_grade", None))
        * policy.accuracy_weight
    )


def popularity_term(view_count: int, policy: RankingPolicy = DEFAULT_POLICY) -> float:
    """Returns `min(log10(max(views, 1)) * scale, cap)`."""
    return min(
        math.log10(max(view_count, 1)) * policy.popularity_scale, policy.popularity_cap
    )


def engagement_term(entry: Any, policy: RankingPolicy = DEFAULT_POLICY) -> float:
    """Returns the capped like, click-through and comment bonuses."""
    likes = _counter(entry, "like_count")
    impressions = _counter(entry, "impressions")
    clicks = _counter(entry, "clicks")
    comments = _counter(entry, "comment_count")

    score = 0.0
    if likes > 0:
        score += min(likes * policy.like_weight, policy.like_cap)
    if impressions > 0:
        ctr = clicks / float(impressions + policy.ctr_impression_smoothing)
        score += min(ctr * policy.ctr_scale, policy.ctr_cap)
    if comments > 0:
        score += min(comments * policy.comment_weight, policy.comment_cap)
    return score


def content_quality_term(entry: Any, policy: RankingPolicy = DEFAULT_POLICY) -> float:
    """Returns the cached length and readability bonus."""
    length = _counter(entry, "content_length")
    try:
        readability = max(0.0, float(getattr(entry, "readability_score", 0.0) or 0.0))
    except (TypeError, ValueError):
        readability = 0.0

    score = 0.0
    if length >= policy.min_content_length:
        score += min(
            round(math.log10(length) * policy.content_length_scale),
            policy.content_length_cap,
        )
    if readability > 0:
        score += round(readability * policy.readability_weight)
    return score


def report_penalty(entry: Any, policy: RankingPolicy = DEFAULT_POLICY) -> float:
    """Returns the (non-positive) penalty for heavily reported entries."""
    reports = _counter(entry, "report_count")
    if reports >= policy.report_penalty_threshold:
        return -float(reports * policy.report_penalty_per_report)
    return 0.0


def recency_bonus(
    entry: Any, now: datetime.datetime, policy: RankingPolicy = DEFAULT_POLICY
) -> float:
    """Returns the flat recency bonus.

    The window is inclusive: an entry created exactly `recency_window_days`
    before `now` still receives the bonus. Creation times in the future count
    as age zero; a missing creation time gets no bonus.
    """
    created_at = _as_utc(getattr(entry, "created_at", None))
    if created_at is None:
        return 0.0
    age = max(datetime.timedelta(0), _as_utc(now) - created_at)
    if age <= datetime.timedelta(days=policy.recency_window_days):
        return float(policy.recency_bonus)
    return 0.0


def score_components(
    entry: Any,
    now: Optional[datetime.datetime] = None,
    policy: RankingPolicy = DEFAULT_POLICY,
) -> BaseScoreComponents:
    """Computes every base-score component of an entry.

    Args:
        entry: An index entry (Pydantic entry or ORM row).
        now: Reference time for the recency window. Defaults to the current
            UTC time.
        policy: Ranking policy supplying tables and weights.

    Returns:
        The `BaseScoreComponents` of the entry.
    """
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)

    grades = grade_component(entry, policy)
    penalty = report_penalty(entry, policy)
    quality = content_quality_term(entry, policy)
    popularity = popularity_term(_counter(entry, "view_count"), policy)
    engagement = engagement_term(entry, policy)
    recency = recency_bonus(entry, now, policy)

    total = round(grades + penalty + quality + popularity + engagement + recency)
    return BaseScoreComponents(
        grades=grades,
        report_penalty=penalty,
        content_quality=quality,
        popularity=popularity,
        engagement=engagement,
        recency=recency,
        total=max(0, int(total)),
    )


def base_score(
    entry: Any,
    now: Optional[datetime.datetime] = None,
    policy: RankingPolicy = DEFAULT_POLICY,
) -> int:
    """Returns the deterministic, non-negative base score of an entry."""
    return score_components(entry, now=now, policy=policy).total
