"""Fuzzy roster alternatives using RapidFuzz.

Gives reviewers a ranked list of likely roster entries for names the
rule ladder could not place (typos such as "Danial", reordered names).
Never used for automatic decisions.
"""

from collections.abc import Sequence

from rapidfuzz import fuzz, process

from name_resolution.identity.normalizer import normalize
from name_resolution.identity.schemas import RosterEntry


class FuzzyMatcher:
    """Fuzzy name ranking using RapidFuzz.

    Uses token_sort_ratio on normalized names for order independence
    ("Levi Dana" vs "Dana Levi").
    """

    def __init__(self, min_score: float = 0.5):
        """Initialize matcher.

        Args:
            min_score: Minimum similarity (0-1) for an alternative to be
                      listed.
        """
        self._min_score = min_score

    def find_top_matches(
        self,
        query: str,
        roster: Sequence[RosterEntry],
        limit: int = 3,
    ) -> list[tuple[RosterEntry, float]]:
        """Find top N roster entries for a name.

        Args:
            query: Raw name from the transcript
            roster: Roster entries to rank
            limit: Maximum number of matches to return

        Returns:
            List of (entry, score) tuples sorted by score descending,
            one per external_id.
        """
        if not roster or not normalize(query):
            return []

        choices = [entry.name for entry in roster]
        results = process.extract(
            query,
            choices,
            scorer=fuzz.token_sort_ratio,
            processor=normalize,
            score_cutoff=self._min_score * 100,  # fuzz uses 0-100 scale
            limit=None,
        )

        seen_ids: set[str] = set()
        matches: list[tuple[RosterEntry, float]] = []

        for _name, score, index in results:
            entry = roster[index]
            if entry.external_id in seen_ids:
                continue
            seen_ids.add(entry.external_id)
            matches.append((entry, score / 100))
            if len(matches) >= limit:
                break

        return matches
