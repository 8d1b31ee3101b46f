#!/usr/bin/env python3
"""
Bible corpus sources for the recitation matcher.

Two interchangeable sources provide the books order and a verse lookup:
- BibleCorpus: a local JSON file mapping "Book Chapter:Verse" to verse text (e.g. kjv.json)
- BibleAPIClient: the Bolls.life API, with a JSON file cache and rate limiting

Both expose lookup_verse(key), which satisfies the VerseLookup contract.
"""

import re
import sys
import json
import time
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import requests

from recitation_matcher import VerseKey

# ============================================================================
# CONFIGURATION
# ============================================================================

# Local corpus shipped beside the app
DEFAULT_CORPUS_FILE = Path(__file__).parent / "kjv.json"

# Bible API configuration - Bolls.life API (free, no API key, many translations)
BIBLE_API_BASE = "https://bolls.life"
DEFAULT_TRANSLATION = "KJV"

API_RATE_LIMIT_DELAY = 0.5
API_TIMEOUT = 10

# Cache file for verses fetched from the API
CACHE_FILE = Path(__file__).parent / "bible_verse_cache.json"

# First book of the New Testament in canonical order
NEW_TESTAMENT_FIRST_BOOK = "Matthew"

# Trailing " Chapter:Verse" on a corpus key
VERSE_SUFFIX_PATTERN = re.compile(r' ?\d*:\d*$')

# Book name to Bolls.life book ID mapping (standard Protestant Bible order)
BOOK_ID_MAP = {
    'Genesis': 1, 'Exodus': 2, 'Leviticus': 3, 'Numbers': 4, 'Deuteronomy': 5,
    'Joshua': 6, 'Judges': 7, 'Ruth': 8, '1 Samuel': 9, '2 Samuel': 10,
    '1 Kings': 11, '2 Kings': 12, '1 Chronicles': 13, '2 Chronicles': 14,
    'Ezra': 15, 'Nehemiah': 16, 'Esther': 17, 'Job': 18, 'Psalms': 19,
    'Proverbs': 20, 'Ecclesiastes': 21, 'Song of Solomon': 22, 'Isaiah': 23,
    'Jeremiah': 24, 'Lamentations': 25, 'Ezekiel': 26, 'Daniel': 27,
    'Hosea': 28, 'Joel': 29, 'Amos': 30, 'Obadiah': 31, 'Jonah': 32,
    'Micah': 33, 'Nahum': 34, 'Habakkuk': 35, 'Zephaniah': 36, 'Haggai': 37,
    'Zechariah': 38, 'Malachi': 39, 'Matthew': 40, 'Mark': 41, 'Luke': 42,
    'John': 43, 'Acts': 44, 'Romans': 45, '1 Corinthians': 46, '2 Corinthians': 47,
    'Galatians': 48, 'Ephesians': 49, 'Philippians': 50, 'Colossians': 51,
    '1 Thessalonians': 52, '2 Thessalonians': 53, '1 Timothy': 54, '2 Timothy': 55,
    'Titus': 56, 'Philemon': 57, 'Hebrews': 58, 'James': 59, '1 Peter': 60,
    '2 Peter': 61, '1 John': 62, '2 John': 63, '3 John': 64, 'Jude': 65,
    'Revelation': 66
}


class CorpusLoadError(RuntimeError):
    """Raised when a local corpus file is missing or malformed."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Could not load Bible corpus from {path}: {reason}")
        self.path = path
        self.reason = reason


def _debug_log(message: str, debug: bool = False, prefix: str = "[CORPUS]"):
    """Print debug message if debug mode is enabled."""
    if debug:
        print(f"{prefix} {message}", file=sys.stderr, flush=True)


def _warn(message: str):
    print(f"  ⚠ {message}", file=sys.stderr, flush=True)


# ============================================================================
# BOOK ORDERING
# ============================================================================

def derive_books_order(keys: Iterable[str]) -> List[str]:
    """
    Derive the ordered list of book titles from corpus keys.

    "1 John 3:16" -> "1 John". First-seen order is kept; duplicates dropped.
    """
    books: List[str] = []
    seen = set()
    for key in keys:
        book = VERSE_SUFFIX_PATTERN.sub('', key)
        if book not in seen:
            seen.add(book)
            books.append(book)
    return books


def split_testaments(books_order: List[str]) -> Tuple[List[str], List[str]]:
    """
    Split books into (Old Testament, New Testament) at the first Matthew.

    A corpus without Matthew is treated as all Old Testament.
    """
    for i, book in enumerate(books_order):
        if book.startswith(NEW_TESTAMENT_FIRST_BOOK):
            return books_order[:i], books_order[i:]
    return list(books_order), []


# ============================================================================
# LOCAL JSON CORPUS
# ============================================================================

def load_bible_json(path: Path) -> Dict[str, str]:
    """Load a {"Book Chapter:Verse": text} corpus from a JSON file."""
    path = Path(path)
    if not path.exists():
        raise CorpusLoadError(path, "file does not exist")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise CorpusLoadError(path, str(e)) from e

    if not isinstance(data, dict):
        raise CorpusLoadError(path, "expected a JSON object of reference -> verse text")
    return data


class BibleCorpus:
    """In-memory verse corpus keyed by "Book Chapter:Verse"."""

    def __init__(self, verses: Mapping[str, str]):
        self.verses: Dict[str, str] = dict(verses)
        self.books_order = derive_books_order(self.verses.keys())
        self.old_testament_books, self.new_testament_books = split_testaments(self.books_order)

    @classmethod
    def from_json_file(cls, path: Path = DEFAULT_CORPUS_FILE, debug: bool = False) -> 'BibleCorpus':
        corpus = cls(load_bible_json(path))
        _debug_log(f"Loaded {len(corpus)} verses in {len(corpus.books_order)} books from {path}", debug)
        return corpus

    @classmethod
    def from_mapping(cls, verses: Mapping[str, str]) -> 'BibleCorpus':
        return cls(verses)

    def get_text(self, reference: str) -> Optional[str]:
        return self.verses.get(reference)

    def lookup_verse(self, key: VerseKey) -> Optional[str]:
        return self.verses.get(key.to_lookup_key())

    def __len__(self) -> int:
        return len(self.verses)

    def __contains__(self, reference: object) -> bool:
        if isinstance(reference, VerseKey):
            reference = reference.to_lookup_key()
        return reference in self.verses


# ============================================================================
# BIBLE API CLIENT
# ============================================================================

class BibleAPIClient:
    """Client for the Bolls.life API with caching and rate limiting.

    API format:
    - Single verse: https://bolls.life/get-verse/{translation}/{book_id}/{chapter}/{verse}/
    """

    def __init__(self, cache_file: Optional[Path] = CACHE_FILE, translation: str = DEFAULT_TRANSLATION):
        self.cache_file = cache_file
        self.cache: Dict[str, str] = self._load_cache()
        self.last_request_time = 0.0
        self.translation = translation
        self.books_order = list(BOOK_ID_MAP)

    def _load_cache(self) -> Dict[str, str]:
        """Load cached verses from file."""
        if self.cache_file is not None and self.cache_file.exists():
            try:
                with open(self.cache_file, 'r', encoding='utf-8') as f:
                    return json.load(f)
            except (json.JSONDecodeError, IOError):
                return {}
        return {}

    def _save_cache(self):
        """Save cache to file."""
        if self.cache_file is None:
            return
        with open(self.cache_file, 'w', encoding='utf-8') as f:
            json.dump(self.cache, f, indent=2, ensure_ascii=False)

    def _rate_limit(self):
        """Ensure we don't exceed API rate limits."""
        elapsed = time.time() - self.last_request_time
        if elapsed < API_RATE_LIMIT_DELAY:
            time.sleep(API_RATE_LIMIT_DELAY - elapsed)
        self.last_request_time = time.time()

    def _clean_html(self, text: str) -> str:
        """Remove HTML tags and Strong's numbers from Bolls.life verse text.

        "Wherefore<S>3606</S> he is able<S>1410</S>..." -> "Wherefore he is able..."
        """
        text = re.sub(r'<S>\d+</S>', '', text)
        text = re.sub(r'<sup>[^<]*</sup>', '', text)
        text = re.sub(r'<[^>]+>', '', text)
        text = re.sub(r'\s+', ' ', text)
        return text.strip()

    def _fetch_single_verse(self, key: VerseKey) -> Optional[str]:
        """Fetch a single verse's text from Bolls.life API."""
        book_id = BOOK_ID_MAP.get(key.book)
        if not book_id:
            _warn(f"Unknown book: {key.book}")
            return None

        self._rate_limit()

        try:
            url = f"{BIBLE_API_BASE}/get-verse/{self.translation}/{book_id}/{key.chapter}/{key.verse}/"
            response = requests.get(url, timeout=API_TIMEOUT)

            if response.status_code == 200:
                data = response.json()
                if data and 'text' in data:
                    return self._clean_html(data['text'])
            else:
                _warn(f"HTTP {response.status_code} for {key}")
        except requests.RequestException as e:
            _warn(f"Request error for {key}: {e}")

        return None

    def lookup_verse(self, key: VerseKey) -> Optional[str]:
        """
        Fetch verse text from cache or API.

        Returns:
            Clean verse text, or None if the verse does not exist or the request failed
        """
        cache_key = f"{key.to_lookup_key()}|{self.translation}"
        if cache_key in self.cache:
            return self.cache[cache_key]

        text = self._fetch_single_verse(key)
        if text:
            self.cache[cache_key] = text
            self._save_cache()
        return text

    def verify_reference(self, book: str, chapter: int, verse: int) -> bool:
        """True if the verse exists in the current translation."""
        try:
            key = VerseKey(book=book, chapter=chapter, verse=verse)
        except ValueError:
            return False
        return self.lookup_verse(key) is not None

    def set_translation(self, translation: str):
        """Change the Bible translation being used."""
        self.translation = translation
        print(f"  ℹ Bible translation set to: {translation}", file=sys.stderr)
