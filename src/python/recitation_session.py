"""
Recitation session state and result rendering.

The matcher holds no state; the session owns the single navigation cursor over
the books order and remembers the last result. Rendering helpers turn a
MatchResult into the messages and word highlighting shown to the user.
"""

import html
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from recitation_matcher import (
    DiffSegment,
    MatchResult,
    MatchStatus,
    MatcherConfig,
    VerseLookup,
    match_recitation,
)


# ============================================================================
# NAVIGATION
# ============================================================================

@dataclass
class RecitationSession:
    """Cursor over the books order plus the outcome of the last attempt."""
    books_order: List[str]
    current_index: int = 0
    last_result: Optional[MatchResult] = None
    can_advance: bool = False
    config: MatcherConfig = field(default_factory=MatcherConfig)

    def __post_init__(self):
        if not self.books_order:
            raise ValueError("books_order must not be empty")
        self.books_order = list(self.books_order)
        self.current_index %= len(self.books_order)

    @property
    def current_book(self) -> str:
        return self.books_order[self.current_index]

    @property
    def progress_percent(self) -> float:
        return ((self.current_index + 1) / len(self.books_order)) * 100

    @property
    def progress_text(self) -> str:
        return f"{self.current_index + 1} of {len(self.books_order)} books complete"

    @property
    def prompt_text(self) -> str:
        return f"📖 {self.current_book}"

    def _move_to(self, index: int) -> str:
        self.current_index = index % len(self.books_order)
        self.last_result = None
        self.can_advance = False
        return self.current_book

    def select_book(self, book: str) -> str:
        if book not in self.books_order:
            raise ValueError(f"Unknown book: {book}")
        return self._move_to(self.books_order.index(book))

    def next_book(self) -> str:
        return self._move_to(self.current_index + 1)

    def previous_book(self) -> str:
        return self._move_to(self.current_index - 1)

    def check(self, transcript: str, lookup: VerseLookup) -> MatchResult:
        """Match a transcript and remember the outcome."""
        result = match_recitation(
            transcript,
            self.books_order,
            lookup,
            pass_threshold=self.config.pass_threshold,
            debug=self.config.debug,
        )
        self.last_result = result
        self.can_advance = result.passed
        return result

    def advance_if_matched(self, result: MatchResult) -> bool:
        """Move to the next book only when the result passed."""
        if result.status is not MatchStatus.MATCHED:
            return False
        self.next_book()
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'currentIndex': self.current_index,
            'currentBook': self.current_book,
            'canAdvance': self.can_advance,
            'progressPercent': self.progress_percent,
            'progressText': self.progress_text,
            'prompt': self.prompt_text,
        }


# ============================================================================
# RENDERING
# ============================================================================

def highlight_differences(segments: Sequence[DiffSegment]) -> str:
    """Render diff segments as HTML spans (class "correct" or "wrong")."""
    spans = []
    for segment in segments:
        css_class = "correct" if segment.correct else "wrong"
        spans.append(f'<span class="{css_class}">{html.escape(segment.word)}</span>')
    return ' '.join(spans)


def format_result_message(result: MatchResult) -> str:
    """Status line shown to the user after an attempt."""
    if result.status is MatchStatus.PARSE_FAILED:
        return '❌ Could not parse your reference. Try saying something like "Genesis 1:1".'
    if result.status is MatchStatus.BOOK_UNKNOWN:
        return f'❌ Unknown book "{result.book_fragment}". Try again.'
    if result.status is MatchStatus.VERSE_NOT_FOUND:
        reference = result.resolved_key or result.book_fragment
        return f'❌ Verse "{reference}" not found in Bible data.'
    if result.status is MatchStatus.MATCHED:
        return f"✅ Matched {result.resolved_key} at {result.accuracy:.1f}%"
    return f"❌ Match too low ({result.accuracy:.1f}%)"


def render_result(result: MatchResult) -> Dict[str, Any]:
    """Everything a front end needs to display one attempt."""
    rendered = {
        'message': format_result_message(result),
        'highlight': highlight_differences(result.diff_segments),
        'hint': None,
    }
    if result.status is MatchStatus.MATCHED:
        rendered['hint'] = '✅ You can click "Next Book" to continue.'
    elif result.status is MatchStatus.MATCH_FAILED:
        rendered['hint'] = '🔁 Try again.'
    return rendered
