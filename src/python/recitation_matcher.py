#!/usr/bin/env python3
"""
Recitation Matcher for Spoken Scripture

This module checks a spoken recitation against the canonical verse text:
1. Parse a spoken reference ("Genesis chapter 1 verse 1 ...") into book, chapter, verse
2. Resolve a misheard book name to the closest known book title
3. Score the spoken quote against the verse text (Levenshtein similarity, 0-100)
4. Produce a word-level diff aligned to the canonical verse

Everything here is pure: the books order and the verse lookup are passed in,
and every outcome (including failures) comes back as a MatchResult.
"""

import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

# ============================================================================
# CONFIGURATION
# ============================================================================

DEFAULT_PASS_THRESHOLD = 70.0  # Minimum similarity (percent) for a recitation to pass

# Spoken reference: "<book> [chapter] <n>[ :][verse] <n>"
REFERENCE_PATTERN = re.compile(
    r'([\w\s]+?)\s*(?:chapter\s*)?(\d+)[\s:]+(?:verse\s*)?(\d+)',
    re.IGNORECASE | re.ASCII,
)


@dataclass
class MatcherConfig:
    """Configuration for a match attempt."""
    pass_threshold: float = DEFAULT_PASS_THRESHOLD
    debug: bool = False

    def __post_init__(self):
        if not 0 < self.pass_threshold <= 100:
            raise ValueError(f"pass_threshold must be in (0, 100], got {self.pass_threshold}")


# ============================================================================
# DEBUG LOGGING
# ============================================================================

def _debug_log(message: str, debug: bool = False, prefix: str = "[MATCH]"):
    """Print debug message if debug mode is enabled."""
    if debug:
        print(f"{prefix} {message}", file=sys.stderr, flush=True)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class MatchStatus(Enum):
    """Terminal state of one match attempt."""
    PARSE_FAILED = "parse_failed"
    BOOK_UNKNOWN = "book_unknown"
    VERSE_NOT_FOUND = "verse_not_found"
    MATCHED = "matched"
    MATCH_FAILED = "match_failed"


@dataclass(frozen=True)
class VerseKey:
    """A resolved Bible reference, e.g. Genesis 1:1."""
    book: str
    chapter: int
    verse: int

    def __post_init__(self):
        if self.chapter < 1 or self.verse < 1:
            raise ValueError(f"chapter and verse must be >= 1, got {self.chapter}:{self.verse}")

    def to_lookup_key(self) -> str:
        """Convert to the corpus key format "Book Chapter:Verse"."""
        return f"{self.book} {self.chapter}:{self.verse}"

    def __str__(self) -> str:
        return self.to_lookup_key()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'book': self.book,
            'chapter': self.chapter,
            'verse': self.verse,
            'reference': self.to_lookup_key(),
        }


@dataclass(frozen=True)
class ParsedReference:
    """Raw, unresolved reference extracted from spoken text."""
    book_fragment: str  # Normalized, not yet matched to a book title
    chapter: int
    verse: int
    verse_position: int = 0  # Offset of the verse digits in the raw text


@dataclass(frozen=True)
class DiffSegment:
    """One canonical word, tagged against the word spoken at the same position."""
    word: str
    correct: bool

    def to_dict(self) -> Dict[str, Any]:
        return {'word': self.word, 'correct': self.correct}


@dataclass(frozen=True)
class MatchResult:
    """Outcome of checking one recitation."""
    status: MatchStatus
    resolved_key: Optional[VerseKey] = None
    accuracy: Optional[float] = None
    diff_segments: Tuple[DiffSegment, ...] = field(default_factory=tuple)
    transcript: str = ""
    book_fragment: Optional[str] = None
    quote: Optional[str] = None
    verse_text: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status is MatchStatus.MATCHED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'passed': self.passed,
            'resolvedKey': self.resolved_key.to_dict() if self.resolved_key else None,
            'accuracy': self.accuracy,
            'diffSegments': [s.to_dict() for s in self.diff_segments],
            'transcript': self.transcript,
            'bookFragment': self.book_fragment,
            'quote': self.quote,
            'verseText': self.verse_text,
        }


VerseLookup = Callable[[VerseKey], Optional[str]]


def lookup_from_mapping(mapping: Mapping[str, str]) -> VerseLookup:
    """Adapt a {"Book C:V": text} mapping to the VerseLookup contract."""
    def lookup(key: VerseKey) -> Optional[str]:
        return mapping.get(key.to_lookup_key())
    return lookup


# ============================================================================
# NORMALIZATION
# ============================================================================

def normalize(text: str) -> str:
    """
    Canonicalize text for comparison.

    Lower-cases, drops everything outside [a-z0-9] and whitespace, trims,
    and collapses whitespace runs to a single space.
    """
    text = text.lower()
    text = re.sub(r'[^a-z0-9\s]', '', text)
    text = text.strip()
    return re.sub(r'\s+', ' ', text)


# ============================================================================
# EDIT DISTANCE
# ============================================================================

def levenshtein_distance(a: str, b: str) -> int:
    """
    Classic Levenshtein distance (insert, delete, substitute all cost 1).

    Rows follow b, columns follow a. Only the previous row is kept; each row
    is computed with numpy in one pass.
    """
    a_chars = np.array(list(a), dtype='U1')
    columns = np.arange(len(a) + 1, dtype=np.int64)
    previous = columns.copy()

    for i in range(1, len(b) + 1):
        current = np.empty_like(previous)
        current[0] = i
        # Diagonal (free on a match) or up
        current[1:] = np.minimum(previous[:-1] + (a_chars != b[i - 1]), previous[1:] + 1)
        # Left: cell j may come from any cell k < j in this row at cost j - k
        current = np.minimum.accumulate(current - columns) + columns
        previous = current

    return int(previous[-1])


def similarity(spoken: str, expected: str) -> float:
    """
    Similarity score in [0, 100] relative to the longer string.

    Two empty strings are identical (100.0).
    """
    max_len = max(len(spoken), len(expected))
    if max_len == 0:
        return 100.0
    distance = levenshtein_distance(spoken, expected)
    return ((max_len - distance) / max_len) * 100


# ============================================================================
# REFERENCE PARSING
# ============================================================================

def parse_reference(raw: str) -> Optional[ParsedReference]:
    """
    Extract (book fragment, chapter, verse) from a spoken sentence.

    This is a best-effort heuristic, not a grammar. Returns None when no
    "<words> <number> <number>" shape is present anywhere in the text.
    """
    match = REFERENCE_PATTERN.search(raw)
    if not match:
        return None

    return ParsedReference(
        book_fragment=normalize(match.group(1).strip()),
        chapter=int(match.group(2)),
        verse=int(match.group(3)),
        verse_position=match.start(3),
    )


# ============================================================================
# BOOK RESOLUTION
# ============================================================================

def resolve_book(fragment: str, books_order: Sequence[str]) -> Optional[str]:
    """
    Map a noisy book-name fragment to the closest known title.

    The first title with the strictly greatest score wins, so ties go to the
    earlier book. A title scoring 0 is never selected.
    """
    fragment_norm = normalize(fragment)
    best_book = None
    best_score = 0.0

    for book in books_order:
        score = similarity(fragment_norm, normalize(book))
        if score > best_score:
            best_book = book
            best_score = score

    return best_book


# ============================================================================
# WORD DIFF
# ============================================================================

def diff_words(user_text: str, actual_text: str) -> List[DiffSegment]:
    """
    Align spoken words to canonical words position by position.

    The canonical word count is authoritative: missing spoken words count as
    wrong, extra spoken words are ignored.
    """
    user_words = normalize(user_text).split()
    actual_words = normalize(actual_text).split()

    segments = []
    for i, word in enumerate(actual_words):
        spoken = user_words[i] if i < len(user_words) else None
        segments.append(DiffSegment(word=word, correct=spoken == word))
    return segments


# ============================================================================
# MATCH PIPELINE
# ============================================================================

def extract_quote(raw: str, parsed: ParsedReference) -> str:
    """
    Strip the spoken reference off the front of a recitation.

    Finds the verse number in the lower-cased text, starting from the verse
    slot the parser matched, and keeps everything after it. Falls back to
    the whole text when the number is not found.
    """
    verse_str = str(parsed.verse)
    start = raw.lower().find(verse_str, parsed.verse_position)
    if start < 0:
        return raw
    return raw[start + len(verse_str):]


def match_recitation(
    transcript: str,
    books_order: Sequence[str],
    lookup: VerseLookup,
    pass_threshold: float = DEFAULT_PASS_THRESHOLD,
    debug: bool = False
) -> MatchResult:
    """
    Check one spoken recitation against the canonical verse.

    Args:
        transcript: Raw speech-recognition transcript, reference first
        books_order: Known book titles in canonical order
        lookup: Returns the verse text for a VerseKey, or None
        pass_threshold: Minimum accuracy (percent) to count as a pass
        debug: Emit debug logging to stderr

    Returns:
        MatchResult; failures are reported through its status
    """
    parsed = parse_reference(transcript)
    if parsed is None:
        _debug_log(f"Could not parse reference from {transcript!r}", debug)
        return MatchResult(status=MatchStatus.PARSE_FAILED, transcript=transcript)

    _debug_log(f"Parsed {parsed.book_fragment!r} {parsed.chapter}:{parsed.verse}", debug)

    book = resolve_book(parsed.book_fragment, books_order)
    if book is None:
        _debug_log(f"No book resembles {parsed.book_fragment!r}", debug)
        return MatchResult(
            status=MatchStatus.BOOK_UNKNOWN,
            transcript=transcript,
            book_fragment=parsed.book_fragment,
        )

    if parsed.chapter < 1 or parsed.verse < 1:
        _debug_log(f"{book} {parsed.chapter}:{parsed.verse} is not a valid reference", debug)
        return MatchResult(
            status=MatchStatus.VERSE_NOT_FOUND,
            transcript=transcript,
            book_fragment=parsed.book_fragment,
        )

    key = VerseKey(book=book, chapter=parsed.chapter, verse=parsed.verse)
    verse_text = lookup(key)
    if not verse_text:
        _debug_log(f"{key} not found in corpus", debug)
        return MatchResult(
            status=MatchStatus.VERSE_NOT_FOUND,
            resolved_key=key,
            transcript=transcript,
            book_fragment=parsed.book_fragment,
        )

    quote = extract_quote(transcript, parsed)
    accuracy = similarity(normalize(quote), normalize(verse_text))
    segments = tuple(diff_words(quote, verse_text))
    status = MatchStatus.MATCHED if accuracy >= pass_threshold else MatchStatus.MATCH_FAILED

    _debug_log(f"{key}: {accuracy:.1f}% ({status.value})", debug)

    return MatchResult(
        status=status,
        resolved_key=key,
        accuracy=accuracy,
        diff_segments=segments,
        transcript=transcript,
        book_fragment=parsed.book_fragment,
        quote=quote,
        verse_text=verse_text,
    )


class VerseMatcher:
    """Matcher bound to one corpus: a books order plus a verse lookup."""

    def __init__(self, books_order: Sequence[str], lookup: VerseLookup,
                 config: Optional[MatcherConfig] = None):
        self.books_order = list(books_order)
        self.lookup = lookup
        self.config = config or MatcherConfig()

    def match(self, transcript: str) -> MatchResult:
        return match_recitation(
            transcript,
            self.books_order,
            self.lookup,
            pass_threshold=self.config.pass_threshold,
            debug=self.config.debug,
        )
