# src/craft_search/local/scoring.py

"""Result scorer: base score plus query-specific bonuses.

Every bonus is independent and additive. The full breakdown is kept on the
`ScoredResult` because the admin diagnostics view renders it per row.
"""

import datetime
import math
from typing import Iterable, Sequence

from craft_search.local.retrieval import Candidate
from craft_search.local.score import base_score
from craft_search.policy import DEFAULT_POLICY, RankingPolicy
from craft_search.shared.models.api import ScoreBreakdown, ScoredResult, SearchIntent


def _any_term_in(text: str, terms: Sequence[str]) -> bool:
    lowered = (text or "").lower()
    return any(t.lower() in lowered for t in terms if t)


def _any_tag_contains(tags: Iterable[str], fragments: Sequence[str]) -> bool:
    return any(_any_term_in(tag, fragments) for tag in tags)


def keyword_match_bonus(
    title: str, terms: Sequence[str], policy: RankingPolicy = DEFAULT_POLICY
) -> int:
    """Bonus when any term is a case-insensitive substring of the title."""
    return policy.keyword_match_bonus if _any_term_in(title, terms) else 0


def desc_or_tag_bonus(
    description: str,
    tags: Iterable[str],
    terms: Sequence[str],
    policy: RankingPolicy = DEFAULT_POLICY,
) -> int:
    """Bonus when any term occurs in the description or inside any tag."""
    if _any_term_in(description, terms) or _any_tag_contains(tags, terms):
        return policy.desc_or_tag_bonus
    return 0


def intent_bonus(
    intent: SearchIntent,
    content_type: str,
    tags: Iterable[str],
    policy: RankingPolicy = DEFAULT_POLICY,
) -> int:
    """Category alignment bonus plus the optional sub-category tag bonus."""
    bonus = policy.intent_bonus(intent.category, content_type)
    if intent.sub_category:
        fragments = policy.tags_for_sub_category(intent.sub_category)
        if _any_tag_contains(tags, fragments):
            bonus += policy.sub_category_bonus
    return bonus


def fuzzy_bonus(fuzzy_score: float, policy: RankingPolicy = DEFAULT_POLICY) -> int:
    """Returns `floor(fuzzy_score * scale)` above the activation threshold."""
    if fuzzy_score > policy.fuzzy_bonus_threshold:
        return int(math.floor(fuzzy_score * policy.fuzzy_bonus_scale))
    return 0


def score_candidate(
    candidate: Candidate,
    terms: Sequence[str],
    intent: SearchIntent,
    now: datetime.datetime,
    policy: RankingPolicy = DEFAULT_POLICY,
) -> ScoredResult:
    """Scores one retrieved candidate.

    Args:
        candidate: The retrieved entry and its fuzzy score.
        terms: Expanded search terms (always including the raw query).
        intent: Classifier output for the query.
        now: Reference time shared by every candidate of the request.
        policy: Ranking policy supplying bonuses and thresholds.

    Returns:
        The `ScoredResult` with its total score and breakdown.
    """
    entry = candidate.entry
    breakdown = ScoreBreakdown(
        base=base_score(entry, now=now, policy=policy),
        keyword_match=keyword_match_bonus(entry.title, terms, policy),
        desc_or_tag_match=desc_or_tag_bonus(entry.description, entry.tags, terms, policy),
        intent_bonus=intent_bonus(intent, entry.type, entry.tags, policy),
        fuzzy_bonus=fuzzy_bonus(candidate.fuzzy_score, policy),
    )
    return ScoredResult(
        entry=entry,
        score=breakdown.total,
        score_breakdown=breakdown,
        fuzzy_score=candidate.fuzzy_score,
    )
