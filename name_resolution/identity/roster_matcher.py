"""Rule-based matching of raw transcript names against the CRM roster.

Every rule is evaluated for every roster entry and the highest score
wins. Rules are plain data so a threshold or score can be tuned without
a new code path.

Rule ladder (default scores):
- exact (100): normalized names are equal
- first-exact (90): first tokens are equal (3+ chars)
- is-first (85): the whole raw name is the roster's first token
- transliteration (75): roster first token equals or starts with a
  Hebrew spelling of the raw first token
- prefix (65): roster first token starts with the raw first token
- substring (50): one first token contains the other (3+ chars)

Active students get a bonus so that near-ties prefer a current student.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from functools import lru_cache

from name_resolution.identity.normalizer import first_token, normalize
from name_resolution.identity.schemas import (
    MatchOutcome,
    MatchResult,
    RosterEntry,
    ScoredCandidate,
)
from name_resolution.identity.transliteration import TransliterationTable

MIN_TOKEN_LENGTH = 3


@dataclass(frozen=True)
class NameParts:
    """Normalized full name and first token."""

    full: str
    first: str


@lru_cache(maxsize=4096)
def name_parts(name: str) -> NameParts:
    normalized = normalize(name)
    return NameParts(full=normalized, first=first_token(normalized))


# (raw, roster, hebrew spellings of raw first token) -> applies?
RulePredicate = Callable[[NameParts, NameParts, tuple[str, ...]], bool]


@dataclass(frozen=True)
class MatchRule:
    """One rung of the scoring ladder."""

    name: str
    score: int
    applies: RulePredicate


def _exact(raw: NameParts, roster: NameParts, _: tuple[str, ...]) -> bool:
    return bool(raw.full) and raw.full == roster.full


def _first_exact(raw: NameParts, roster: NameParts, _: tuple[str, ...]) -> bool:
    return len(raw.first) >= MIN_TOKEN_LENGTH and raw.first == roster.first


def _is_first(raw: NameParts, roster: NameParts, _: tuple[str, ...]) -> bool:
    return bool(raw.full) and raw.full == roster.first


def _transliteration(raw: NameParts, roster: NameParts, hebrew: tuple[str, ...]) -> bool:
    return bool(roster.first) and any(roster.first.startswith(h) for h in hebrew)


def _prefix(raw: NameParts, roster: NameParts, _: tuple[str, ...]) -> bool:
    return len(raw.first) >= MIN_TOKEN_LENGTH and roster.first.startswith(raw.first)


def _substring(raw: NameParts, roster: NameParts, _: tuple[str, ...]) -> bool:
    if len(raw.first) >= MIN_TOKEN_LENGTH and raw.first in roster.first:
        return True
    return len(roster.first) >= MIN_TOKEN_LENGTH and roster.first in raw.first


DEFAULT_RULES: tuple[MatchRule, ...] = (
    MatchRule("exact", 100, _exact),
    MatchRule("first-exact", 90, _first_exact),
    MatchRule("is-first", 85, _is_first),
    MatchRule("transliteration", 75, _transliteration),
    MatchRule("prefix", 65, _prefix),
    MatchRule("substring", 50, _substring),
)


class RosterMatcher:
    """Scores raw names against roster entries using a rule table.

    Ties on score are broken by preferring the active entry, then the
    smallest external_id, so the result never depends on the order the
    CRM happened to return entries in.
    """

    def __init__(
        self,
        transliterations: TransliterationTable,
        rules: Sequence[MatchRule] = DEFAULT_RULES,
        low_threshold: int = 55,
        high_threshold: int = 80,
        active_bonus: int = 5,
    ):
        """Initialize matcher.

        Args:
            transliterations: Latin -> Hebrew first-name table
            rules: Scoring ladder, evaluated in full for every entry
            low_threshold: Scores below this are discarded
            high_threshold: Scores at or above this are strong matches
            active_bonus: Added to a non-zero score for active entries
        """
        if not 0 <= low_threshold <= high_threshold <= 100:
            raise ValueError(
                f"Thresholds must satisfy 0 <= low <= high <= 100, "
                f"got low={low_threshold} high={high_threshold}"
            )
        self._transliterations = transliterations
        self._rules = tuple(rules)
        self.low_threshold = low_threshold
        self.high_threshold = high_threshold
        self._active_bonus = active_bonus

    def _score(
        self, raw: NameParts, hebrew: tuple[str, ...], entry: RosterEntry
    ) -> tuple[int, str]:
        roster = name_parts(entry.name)
        best_score, best_rule = 0, "none"
        for rule in self._rules:
            if rule.score > best_score and rule.applies(raw, roster, hebrew):
                best_score, best_rule = rule.score, rule.name

        if best_score and entry.is_active:
            best_score = min(best_score + self._active_bonus, 100)
        return best_score, best_rule

    def rank(
        self,
        raw_name: str,
        roster: Sequence[RosterEntry],
        limit: int | None = None,
    ) -> list[ScoredCandidate]:
        """All entries with a non-zero score, best first.

        Args:
            raw_name: Name from the transcript
            roster: Roster snapshot
            limit: Maximum number of candidates to return

        Returns:
            Candidates sorted by score, then active, then external_id
        """
        raw = name_parts(raw_name)
        hebrew = self._transliterations.lookup(raw.first) if raw.first else ()

        candidates = []
        for entry in roster:
            score, rule = self._score(raw, hebrew, entry)
            if score > 0:
                candidates.append(ScoredCandidate(entry=entry, score=score, rule=rule))

        candidates.sort(
            key=lambda c: (-c.score, not c.entry.is_active, c.entry.external_id)
        )
        return candidates[:limit] if limit is not None else candidates

    def classify(self, score: int) -> MatchOutcome:
        if score >= self.high_threshold:
            return MatchOutcome.STRONG
        if score >= self.low_threshold:
            return MatchOutcome.SUGGESTION
        return MatchOutcome.NONE

    def match(self, raw_name: str, roster: Sequence[RosterEntry]) -> MatchResult:
        """Find the best roster entry for a raw name.

        Matches scoring below the low threshold are discarded, so the
        result is a strong match, a weak suggestion or no match.
        """
        ranked = self.rank(raw_name, roster, limit=1)
        if not ranked or ranked[0].score < self.low_threshold:
            return MatchResult(raw_name=raw_name)

        top = ranked[0]
        return MatchResult(
            raw_name=raw_name,
            best=top.entry,
            score=top.score,
            rule=top.rule,
            outcome=self.classify(top.score),
        )
