"""Tokens that are never student names.

Device names, generic words and stray letters show up as speaker labels
in transcripts. Those raw names are rejected without consulting the
roster.
"""

import json
from collections.abc import Iterable
from pathlib import Path

from name_resolution.identity.normalizer import normalize

DEFAULT_BLACKLIST_PATH = Path(__file__).parent / "data" / "blacklist.json"

BLACKLIST_NOTE = "auto-rejected: not a student name"


class NameBlacklist:
    """Case-insensitive blacklist with a minimum name length."""

    def __init__(self, tokens: Iterable[str], min_length: int = 2, version: str = "unversioned"):
        """Initialize blacklist.

        Args:
            tokens: Names that are never students (any case)
            min_length: Normalized names shorter than this are blocked
            version: Data version, for logging
        """
        self._tokens = frozenset(normalize(t) for t in tokens if normalize(t))
        self._min_length = min_length
        self.version = version

    @classmethod
    def from_json(cls, path: str | Path = DEFAULT_BLACKLIST_PATH) -> "NameBlacklist":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls(
            data.get("tokens", []),
            min_length=int(data.get("min_length", 2)),
            version=str(data.get("version", "unversioned")),
        )

    def is_blocked(self, raw_name: str) -> bool:
        normalized = normalize(raw_name)
        return len(normalized) < self._min_length or normalized in self._tokens
