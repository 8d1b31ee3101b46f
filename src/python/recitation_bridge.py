#!/usr/bin/env python3
"""
Recitation Python Bridge

This module provides a JSON-based subprocess interface for the front end to:
1. List the books of the loaded Bible corpus (with the Old/New Testament split)
2. Check a spoken recitation transcript against the canonical verse
3. Report which Python dependencies are installed

Protocol: Reads one JSON command from stdin, writes JSON responses to stdout.
Speech recognition happens in the front end; only the transcript string is sent here.
"""

import sys
import json
import os
import traceback
from pathlib import Path
from typing import Any, Dict, Optional, Union

from bible_corpus import (
    BibleAPIClient,
    BibleCorpus,
    CorpusLoadError,
    DEFAULT_CORPUS_FILE,
    DEFAULT_TRANSLATION,
    split_testaments,
)
from recitation_matcher import DEFAULT_PASS_THRESHOLD, MatcherConfig
from recitation_session import RecitationSession, render_result

# Configuration from the environment (command fields take precedence)
BIBLE_CORPUS_PATH = os.environ.get('BIBLE_CORPUS_PATH', str(DEFAULT_CORPUS_FILE))
BIBLE_TRANSLATION = os.environ.get('BIBLE_TRANSLATION', DEFAULT_TRANSLATION)
RECITATION_DEBUG = os.environ.get('RECITATION_DEBUG', '').lower() in ('1', 'true', 'yes')


# ============================================================================
# OUTPUT
# ============================================================================

def emit_error(error: str):
    """Emit an error to stdout as JSON."""
    result = {
        "type": "error",
        "error": error,
    }
    print(json.dumps(result, ensure_ascii=False), flush=True)


def emit_result(data: Dict[str, Any]):
    """Emit the final result to stdout as JSON."""
    result = {
        "type": "result",
        **data
    }
    print(json.dumps(result, ensure_ascii=False), flush=True)


def _debug_log(message: str, debug: bool = False, prefix: str = "[BRIDGE]"):
    """Print debug message if debug mode is enabled."""
    if debug:
        print(f"{prefix} {message}", file=sys.stderr, flush=True)


# ============================================================================
# CONFIGURATION
# ============================================================================

def pass_threshold_from(command: Dict[str, Any]) -> float:
    """Pass threshold from the command, else RECITATION_PASS_THRESHOLD, else the default."""
    if 'threshold' in command:
        return float(command['threshold'])

    raw = os.environ.get('RECITATION_PASS_THRESHOLD')
    if raw is None or not raw.strip():
        return DEFAULT_PASS_THRESHOLD
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"RECITATION_PASS_THRESHOLD must be a number, got {raw!r}") from None


# ============================================================================
# CORPUS LOADING
# ============================================================================

def load_corpus(command: Dict[str, Any], debug: bool = False) -> Union[BibleCorpus, BibleAPIClient]:
    """Build the corpus source named by the command ("file" or "api")."""
    source = command.get('source', 'file')
    if source == 'api':
        translation = command.get('translation', BIBLE_TRANSLATION)
        _debug_log(f"Using Bolls.life API ({translation})", debug)
        return BibleAPIClient(translation=translation)
    if source != 'file':
        raise ValueError(f"Unknown corpus source: {source}")

    corpus_path = Path(command.get('corpusPath') or BIBLE_CORPUS_PATH)
    return BibleCorpus.from_json_file(corpus_path, debug=debug)


# ============================================================================
# COMMANDS
# ============================================================================

def list_books(command: Dict[str, Any], debug: bool = False) -> Dict[str, Any]:
    corpus = load_corpus(command, debug)
    if isinstance(corpus, BibleCorpus):
        old_testament, new_testament = corpus.old_testament_books, corpus.new_testament_books
    else:
        old_testament, new_testament = split_testaments(corpus.books_order)
    return {
        'booksOrder': corpus.books_order,
        'oldTestament': old_testament,
        'newTestament': new_testament,
    }


def check_recitation(command: Dict[str, Any], debug: bool = False) -> Dict[str, Any]:
    """
    Check one recitation attempt.

    A transcriptError from the speech recognizer means no attempt was made:
    no match is run and the session is left untouched.
    """
    transcript_error: Optional[str] = command.get('transcriptError')
    if transcript_error:
        _debug_log(f"Speech recognition error: {transcript_error}", debug)
        return {'attempted': False, 'error': transcript_error}

    transcript = command.get('transcript')
    if transcript is None:
        return {'error': 'transcript is required'}

    corpus = load_corpus(command, debug)
    config = MatcherConfig(
        pass_threshold=pass_threshold_from(command),
        debug=debug,
    )
    session = RecitationSession(
        books_order=corpus.books_order,
        current_index=int(command.get('currentIndex', 0)),
        config=config,
    )

    result = session.check(transcript, corpus.lookup_verse)
    rendered = render_result(result)
    advanced = session.advance_if_matched(result) if command.get('autoAdvance', False) else False

    return {
        'attempted': True,
        'match': result.to_dict(),
        'message': rendered['message'],
        'highlight': rendered['highlight'],
        'hint': rendered['hint'],
        'advanced': advanced,
        'canAdvance': result.passed,
        'session': session.to_dict(),
    }


def check_dependencies() -> Dict[str, Any]:
    """Check if all required packages are installed."""
    deps = {
        'numpy': False,
        'requests': False,
    }

    try:
        import numpy
        deps['numpy'] = True
        deps['numpy_version'] = str(numpy.__version__)
    except ImportError:
        pass

    try:
        import requests
        deps['requests'] = True
    except ImportError:
        pass

    all_installed = all(deps.get(k, False) for k in ['numpy', 'requests'])

    return {
        'dependencies': deps,
        'all_installed': all_installed,
    }


def handle_command(command: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle a command from the front end.

    Commands:
        - check_dependencies: Check if all required packages are installed
        - books: List the corpus books in canonical order
        - match: Check a recitation transcript
    """
    cmd = command.get('command', '')
    debug = bool(command.get('debug', RECITATION_DEBUG))

    if cmd == 'check_dependencies':
        return check_dependencies()

    elif cmd == 'books':
        return list_books(command, debug)

    elif cmd == 'match':
        return check_recitation(command, debug)

    else:
        return {'error': f'Unknown command: {cmd}'}


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def main():
    """
    Main entry point for subprocess mode.
    Reads a JSON command from stdin and writes JSON responses to stdout.
    """
    try:
        input_data = sys.stdin.read()
        if not input_data.strip():
            emit_error("No input provided")
            return

        command = json.loads(input_data)
    except json.JSONDecodeError as e:
        emit_error(f"Invalid JSON input: {e}")
        return

    try:
        result = handle_command(command)
        emit_result(result)
    except CorpusLoadError as e:
        emit_error(str(e))
    except Exception as e:
        emit_error(f"Error processing command: {e}\n{traceback.format_exc()}")


if __name__ == "__main__":
    main()
