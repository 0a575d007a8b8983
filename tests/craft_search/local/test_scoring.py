# tests/craft_search/local/test_scoring.py

"""Tests for the result scorer in `craft_search.local.scoring`."""

import dataclasses
import datetime
from typing import Any, Callable

import pytest

from craft_search.local.retrieval import Candidate
from craft_search.local.scoring import fuzzy_bonus, intent_bonus, score_candidate
from craft_search.policy import DEFAULT_POLICY
from craft_search.shared.models.api import IntentCategory, SearchIntent

BASE = 450


def _score(entry, terms, intent=None, fuzzy=0.0, now=None, policy=DEFAULT_POLICY):
    now = now or datetime.datetime(2024, 6, 1, 12, tzinfo=datetime.timezone.utc)
    return score_candidate(
        Candidate(entry=entry, fuzzy_score=fuzzy),
        terms,
        intent or SearchIntent.fallback(),
        now,
        policy,
    )


class TestTextBonuses:
    """Tests for the title and description/tag bonuses."""

    def test_title_match(self, make_entry: Callable[..., Any]):
        """A term inside the title earns the keyword bonus only.

        Args:
            make_entry: Entry factory fixture.
        """
        result = _score(make_entry(title="야생 서버 추천"), ["야생 서버"])
        assert result.score_breakdown.keyword_match == 200
        assert result.score_breakdown.desc_or_tag_match == 0
        assert result.score == BASE + 200

    def test_title_and_description_are_independent(self, make_entry: Callable[..., Any]):
        """Title and description hits both fire.

        Args:
            make_entry: Entry factory fixture.
        """
        entry = make_entry(title="Skyblock Island", description="best SKYBLOCK server")
        result = _score(entry, ["skyblock"])
        assert result.score_breakdown.keyword_match == 200
        assert result.score_breakdown.desc_or_tag_match == 50
        assert result.score == BASE + 250

    def test_tag_contains_term(self, make_entry: Callable[..., Any]):
        """A tag containing a term earns the description/tag bonus.

        Args:
            make_entry: Entry factory fixture.
        """
        result = _score(make_entry(title="Alpha", tags=["PvP 서버"]), ["pvp"])
        assert result.score_breakdown.desc_or_tag_match == 50
        assert result.score_breakdown.keyword_match == 0

    def test_no_text_match(self, make_entry: Callable[..., Any]):
        """Unrelated entries keep their base score.

        Args:
            make_entry: Entry factory fixture.
        """
        result = _score(make_entry(title="Alpha"), ["베타"])
        assert result.score == BASE


class TestIntentBonus:
    """Tests for the intent alignment and sub-category bonuses."""

    @pytest.mark.parametrize(
        "category, content_type, expected",
        [
            (IntentCategory.NAVIGATION, "SERVER", 200),
            (IntentCategory.SERVER, "SERVER", 200),
            (IntentCategory.GUIDE, "WIKI", 100),
            (IntentCategory.RESOURCE, "RESOURCE", 100),
            (IntentCategory.GUIDE, "SERVER", 0),
            (IntentCategory.PROBLEM, "POST", 0),
            (IntentCategory.GENERAL, "SERVER", 0),
        ],
    )
    def test_category_table(
        self,
        make_entry: Callable[..., Any],
        category: IntentCategory,
        content_type: str,
        expected: int,
    ):
        """Each intent category rewards its aligned content type.

        Args:
            make_entry: Entry factory fixture.
            category: Intent category.
            content_type: Candidate content type.
            expected: Expected bonus.
        """
        entry = make_entry(type=content_type)
        assert intent_bonus(SearchIntent(category=category), entry.type, entry.tags) == expected

    def test_sub_category_adds_to_category_bonus(self, make_entry: Callable[..., Any]):
        """A matching sub-category tag adds on top of the category bonus.

        Args:
            make_entry: Entry factory fixture.
        """
        entry = make_entry(type="RESOURCE", tags=["Fabric Mod"])
        intent = SearchIntent(category=IntentCategory.RESOURCE, sub_category="MODS")
        assert intent_bonus(intent, entry.type, entry.tags) == 100 + 150

    def test_sub_category_korean_tag(self, make_entry: Callable[..., Any]):
        """Korean tag fragments count for the sub-category.

        Args:
            make_entry: Entry factory fixture.
        """
        entry = make_entry(type="POST", tags=["모드 질문"])
        intent = SearchIntent(category=IntentCategory.GENERAL, sub_category="MODS")
        assert intent_bonus(intent, entry.type, entry.tags) == 150

    def test_unknown_sub_category_matches_own_name(self, make_entry: Callable[..., Any]):
        """Sub-categories outside the table match tags containing their name.

        Args:
            make_entry: Entry factory fixture.
        """
        entry = make_entry(type="POST", tags=["Redstone"])
        intent = SearchIntent(sub_category="redstone")
        assert intent_bonus(intent, entry.type, entry.tags) == 150

    def test_policy_table_override(self, make_entry: Callable[..., Any]):
        """The bonus table comes from the policy.

        Args:
            make_entry: Entry factory fixture.
        """
        policy = dataclasses.replace(
            DEFAULT_POLICY, intent_bonuses={"PROBLEM": {"POST": 75}}
        )
        entry = make_entry(type="POST")
        intent = SearchIntent(category=IntentCategory.PROBLEM)
        assert intent_bonus(intent, entry.type, entry.tags, policy) == 75


class TestFuzzyBonus:
    """Tests for the fuzzy similarity bonus."""

    @pytest.mark.parametrize(
        "fuzzy, expected", [(0.0, 0), (0.2, 0), (0.3, 0), (0.5, 150), (0.9, 270), (1.0, 300)]
    )
    def test_threshold_and_floor(self, fuzzy: float, expected: int):
        """Scores above 0.3 earn `floor(score * 300)`.

        Args:
            fuzzy: Fuzzy score.
            expected: Expected bonus.
        """
        assert fuzzy_bonus(fuzzy) == expected

    def test_scenario_d_tie_break(self, make_entry: Callable[..., Any]):
        """Equal base scores are separated by the fuzzy bonus.

        Args:
            make_entry: Entry factory fixture.
        """
        strong = _score(make_entry(title="A"), ["zzz"], fuzzy=0.9)
        weak = _score(make_entry(title="B"), ["zzz"], fuzzy=0.2)
        assert strong.score_breakdown.base == weak.score_breakdown.base
        assert strong.score_breakdown.fuzzy_bonus == 270
        assert weak.score_breakdown.fuzzy_bonus == 0
        assert strong.score > weak.score


class TestScoreCandidate:
    """Tests for the assembled `ScoredResult`."""

    def test_breakdown_sums_to_score(self, make_entry: Callable[..., Any]):
        """The total equals the sum of the breakdown components.

        Args:
            make_entry: Entry factory fixture.
        """
        entry = make_entry(
            type="SERVER",
            title="야생 서버 추천",
            description="야생 서버",
            trust_grade="S",
            view_count=5000,
        )
        intent = SearchIntent(category=IntentCategory.SERVER)
        result = _score(entry, ["야생 서버"], intent=intent, fuzzy=1.0)

        breakdown = result.score_breakdown
        assert result.score == breakdown.total
        assert breakdown.keyword_match == 200
        assert breakdown.desc_or_tag_match == 50
        assert breakdown.intent_bonus == 200
        assert breakdown.fuzzy_bonus == 300
        assert result.fuzzy_score == 1.0
        assert result.entry == entry
