"""Latin-to-Hebrew given-name transliteration table.

The table is versioned data (``data/transliterations.json``), not logic.
It maps a normalized Latin first-name token to every Hebrew spelling it
may stand for. Hebrew input is never translated.
"""

import json
from collections.abc import Iterable
from pathlib import Path

from name_resolution.identity.normalizer import normalize

DEFAULT_TRANSLITERATIONS_PATH = Path(__file__).parent / "data" / "transliterations.json"


class TransliterationTable:
    """Lookup of Hebrew name candidates for a Latin first-name token."""

    def __init__(self, mapping: dict[str, tuple[str, ...]], version: str = "unversioned"):
        self._mapping = mapping
        self.version = version

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[tuple[str, Iterable[str]]],
        version: str = "unversioned",
    ) -> "TransliterationTable":
        """Build from (hebrew_name, latin_variants) pairs.

        Several Hebrew names may share a Latin variant; all of them are
        kept, in first-seen order.
        """
        mapping: dict[str, list[str]] = {}
        for hebrew, variants in entries:
            hebrew_norm = normalize(hebrew)
            if not hebrew_norm:
                continue
            for variant in variants:
                key = normalize(variant)
                if not key:
                    continue
                targets = mapping.setdefault(key, [])
                if hebrew_norm not in targets:
                    targets.append(hebrew_norm)
        return cls({k: tuple(v) for k, v in mapping.items()}, version=version)

    @classmethod
    def from_json(cls, path: str | Path = DEFAULT_TRANSLITERATIONS_PATH) -> "TransliterationTable":
        """Load a table from its JSON data file.

        Expected format: ``{"version": str, "entries": [{"hebrew": str,
        "latin": [str, ...]}, ...]}``.
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_entries(
            ((e["hebrew"], e.get("latin", [])) for e in data.get("entries", [])),
            version=str(data.get("version", "unversioned")),
        )

    def lookup(self, token: str) -> tuple[str, ...]:
        """Hebrew candidates for a Latin token; empty means no evidence."""
        return self._mapping.get(normalize(token), ())

    def __len__(self) -> int:
        return len(self._mapping)

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and normalize(token) in self._mapping
