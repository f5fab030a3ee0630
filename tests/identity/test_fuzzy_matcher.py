"""Tests for fuzzy roster alternatives."""

import pytest

from name_resolution.identity.fuzzy_matcher import FuzzyMatcher
from name_resolution.identity.schemas import RosterEntry


@pytest.fixture
def matcher() -> FuzzyMatcher:
    """Default matcher with 0.5 minimum score."""
    return FuzzyMatcher(min_score=0.5)


class TestFindTopMatches:
    """Tests for find_top_matches method."""

    def test_typo_ranks_intended_entry_first(
        self, matcher: FuzzyMatcher, sample_roster: list[RosterEntry]
    ):
        """'Danial Green' is a typo of 'Daniel Green'."""
        matches = matcher.find_top_matches("Danial Green", sample_roster)

        assert len(matches) >= 1
        entry, score = matches[0]
        assert entry.external_id == "page-004"
        assert 0.85 <= score < 1.0

    def test_word_order_independent(
        self, matcher: FuzzyMatcher, sample_roster: list[RosterEntry]
    ):
        entry, score = matcher.find_top_matches("Green Daniel", sample_roster)[0]

        assert entry.external_id == "page-004"
        assert score == 1.0

    def test_hebrew_names(self, matcher: FuzzyMatcher, sample_roster: list[RosterEntry]):
        entry, _ = matcher.find_top_matches("דנה כהן", sample_roster)[0]

        assert entry.external_id == "page-001"

    def test_unrelated_name_returns_empty(
        self, matcher: FuzzyMatcher, sample_roster: list[RosterEntry]
    ):
        assert matcher.find_top_matches("Xyzzy", sample_roster) == []

    def test_respects_limit(self, matcher: FuzzyMatcher):
        roster = [
            RosterEntry(external_id=f"p{i}", name=f"Dana Levi{'x' * i}") for i in range(5)
        ]

        assert len(matcher.find_top_matches("Dana Levi", roster, limit=2)) == 2

    def test_one_result_per_external_id(self, matcher: FuzzyMatcher):
        roster = [
            RosterEntry(external_id="same", name="Dana Levi"),
            RosterEntry(external_id="same", name="Dana Levy"),
            RosterEntry(external_id="other", name="Dana Lev"),
        ]

        matches = matcher.find_top_matches("Dana Levi", roster, limit=3)

        assert [e.external_id for e, _ in matches] == ["same", "other"]

    def test_empty_inputs(self, matcher: FuzzyMatcher, sample_roster: list[RosterEntry]):
        assert matcher.find_top_matches("Dana", []) == []
        assert matcher.find_top_matches("!!", sample_roster) == []
