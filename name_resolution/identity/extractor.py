"""Student name extraction from lesson transcripts.

Transcripts are exported dialogue where each line reads
``Speaker Name (12.5): utterance``. The student is the first speaker
near the top of the transcript who is not the teacher.
"""

import re

import structlog

from name_resolution.identity.schemas import (
    ExtractedName,
    ExtractionSource,
    TranscriptRecord,
)

logger = structlog.get_logger()

BOM = "\ufeff"

# LRM/RLM, embeddings/overrides and isolates
_BIDI_CONTROLS = re.compile("[\u200e\u200f\u202a-\u202e\u2066-\u2069]")
_SPEAKER_LINE = re.compile(r"^([^(]+?)\s*\(\s*[\d.:]+\s*\)\s*:")
_TITLE_WITH = re.compile(r"\bwith\s+(\w+)", re.IGNORECASE)
_PURE_LATIN = re.compile(r"^[A-Za-z\s]+$")

DEFAULT_CLEANUP_PATTERNS: tuple[str, ...] = (
    r"\s*['’]s\s+iPhone$",
    r"\s*['’]s\s+iPad$",
    r"^ה-iPhone של\s*",
    r"\s*-\s*פיתוח קול$",
    r"^\d{10,}",
)


class NameExtractor:
    """Find the student's raw name in a transcript.

    Only the first ``max_lines`` lines are scanned: the student speaks
    early, and deeper lines risk picking up a quoted aside.
    """

    def __init__(
        self,
        excluded_speakers: list[str],
        max_lines: int = 30,
        cleanup_patterns: tuple[str, ...] = DEFAULT_CLEANUP_PATTERNS,
    ):
        """Initialize extractor.

        Args:
            excluded_speakers: Teacher name and other non-student labels,
                matched case-insensitively by substring in both directions
            max_lines: How many lines from the top to scan
            cleanup_patterns: Regexes removed from the raw name, in order
        """
        self._excluded = [s.strip().lower() for s in excluded_speakers if s.strip()]
        self._max_lines = max_lines
        self._cleanup = [re.compile(p, re.IGNORECASE) for p in cleanup_patterns]

    def is_excluded(self, speaker: str) -> bool:
        """True if the label refers to a known non-student speaker."""
        label = speaker.lower()
        return any(alias in label or label in alias for alias in self._excluded)

    def extract_from_text(self, full_text: str) -> str | None:
        """Return the first non-excluded speaker, or None if there is none."""
        for line in full_text.lstrip(BOM).splitlines()[: self._max_lines]:
            match = _SPEAKER_LINE.match(_strip_controls(line).strip())
            if not match:
                continue
            speaker = _strip_controls(match.group(1)).strip()
            if not speaker or self.is_excluded(speaker):
                continue
            cleaned = self.clean(speaker)
            if cleaned:
                return cleaned
        return None

    def extract_from_title(self, title: str) -> str | None:
        """Parse the name out of a title like 'Lesson with Dana | Dec 08, 2025'."""
        match = _TITLE_WITH.search(title)
        if not match:
            return None
        cleaned = self.clean(match.group(1))
        if not cleaned or self.is_excluded(cleaned):
            return None
        return cleaned

    def extract(self, transcript: TranscriptRecord) -> ExtractedName | None:
        """Extract a raw name from content, falling back to the title.

        Returns None when neither yields a candidate; that is an expected
        outcome, not an error.
        """
        name = self.extract_from_text(transcript.full_text)
        if name:
            return ExtractedName(raw_name=name, source=ExtractionSource.CONTENT)

        logger.debug("No speaker candidate in content", transcript_id=transcript.id)
        if transcript.title:
            name = self.extract_from_title(transcript.title)
            if name:
                return ExtractedName(raw_name=name, source=ExtractionSource.TITLE)

        logger.debug("No student name found", transcript_id=transcript.id)
        return None

    def clean(self, name: str) -> str:
        """Strip device suffixes, locale affixes and phone-number artifacts.

        Pure-Latin results are title-cased ("dana LEVI" -> "Dana Levi").
        """
        cleaned = _strip_controls(name).strip()
        for pattern in self._cleanup:
            cleaned = pattern.sub("", cleaned).strip()
        cleaned = " ".join(cleaned.split())

        if _PURE_LATIN.match(cleaned):
            cleaned = " ".join(w[:1].upper() + w[1:].lower() for w in cleaned.split(" "))
        return cleaned


def _strip_controls(text: str) -> str:
    return _BIDI_CONTROLS.sub("", text.replace(BOM, ""))
