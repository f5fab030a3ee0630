"""Identity resolution for lesson transcripts.

This module provides:
- NameExtractor: Finds the student's raw name in transcript text
- normalize / first_token: Script-agnostic comparable name form
- TransliterationTable: Latin -> Hebrew first-name spellings
- NameBlacklist: Speaker labels that are never students
- RosterMatcher: Rule-ladder scoring against the CRM roster
- FuzzyMatcher: RapidFuzz alternatives for reviewers
- Schemas for roster entries, match results and name mappings

The batch resolver and review workflow live in
``name_resolution.identity.resolver`` and ``name_resolution.identity.review``.
"""

from name_resolution.identity.blacklist import NameBlacklist
from name_resolution.identity.extractor import NameExtractor
from name_resolution.identity.fuzzy_matcher import FuzzyMatcher
from name_resolution.identity.normalizer import first_token, normalize
from name_resolution.identity.roster_matcher import MatchRule, RosterMatcher
from name_resolution.identity.schemas import (
    MappingStatus,
    MatchResult,
    NameMapping,
    RosterEntry,
)
from name_resolution.identity.transliteration import TransliterationTable

__all__ = [
    "FuzzyMatcher",
    "MappingStatus",
    "MatchResult",
    "MatchRule",
    "NameBlacklist",
    "NameExtractor",
    "NameMapping",
    "RosterEntry",
    "RosterMatcher",
    "TransliterationTable",
    "first_token",
    "normalize",
]
