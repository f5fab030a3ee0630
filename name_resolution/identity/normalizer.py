"""Name normalization for matching.

Produces a comparable form of a name that treats Latin and Hebrew script
uniformly. The result is only used for comparison; stored names keep
their original spelling.
"""

import re
import unicodedata

_DISALLOWED = re.compile(r"[^a-z0-9א-ת\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize(name: str) -> str:
    """Canonicalize a name for comparison.

    Decomposes accented characters and drops the combining marks (Latin
    diacritics and Hebrew niqqud), lowercases, keeps only Latin letters,
    Hebrew letters, digits and whitespace, collapses whitespace runs and
    trims. Idempotent: ``normalize(normalize(x)) == normalize(x)``.

    Args:
        name: Raw name string

    Returns:
        Normalized name, possibly empty
    """
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    kept = _DISALLOWED.sub("", stripped.lower())
    return _WHITESPACE.sub(" ", kept).strip()


def first_token(normalized: str) -> str:
    """Return the substring up to the first space of a normalized name."""
    return normalized.split(" ", 1)[0]

