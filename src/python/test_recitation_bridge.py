"""
Tests for the JSON bridge (recitation_bridge.py).

Verifies that:
- handle_command() dispatches books / match / check_dependencies
- A speech-recognition error produces no match attempt
- main() writes a single JSON line for results and errors
"""

import sys
import os
import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from recitation_bridge import check_dependencies, handle_command, main


SAMPLE_VERSES = {
    "Genesis 1:1": "In the beginning God created the heaven and the earth.",
    "Exodus 20:3": "Thou shalt have no other gods before me.",
    "Matthew 5:3": "Blessed are the poor in spirit: for theirs is the kingdom of heaven.",
    "John 11:35": "Jesus wept.",
}


class BridgeTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.corpus_path = str(Path(self.tmpdir.name) / "kjv.json")
        with open(self.corpus_path, 'w', encoding='utf-8') as f:
            json.dump(SAMPLE_VERSES, f)

    def tearDown(self):
        self.tmpdir.cleanup()


class TestHandleCommand(BridgeTestCase):

    def test_books(self):
        result = handle_command({'command': 'books', 'corpusPath': self.corpus_path})
        self.assertEqual(result['booksOrder'], ["Genesis", "Exodus", "Matthew", "John"])
        self.assertEqual(result['oldTestament'], ["Genesis", "Exodus"])
        self.assertEqual(result['newTestament'], ["Matthew", "John"])

    def test_books_from_api_source(self):
        result = handle_command({'command': 'books', 'source': 'api'})
        self.assertEqual(len(result['booksOrder']), 66)
        self.assertEqual(len(result['oldTestament']), 39)

    def test_match_passed(self):
        result = handle_command({
            'command': 'match',
            'corpusPath': self.corpus_path,
            'transcript': 'Genesis 1 1 In the beginning God created the heaven and the earth',
        })
        self.assertTrue(result['attempted'])
        self.assertEqual(result['match']['status'], 'matched')
        self.assertEqual(result['match']['resolvedKey']['reference'], 'Genesis 1:1')
        self.assertTrue(result['message'].startswith('✅ Matched Genesis 1:1'))
        self.assertNotIn('class="wrong"', result['highlight'])
        self.assertTrue(result['canAdvance'])
        self.assertFalse(result['advanced'])

    def test_match_auto_advance(self):
        result = handle_command({
            'command': 'match',
            'corpusPath': self.corpus_path,
            'transcript': 'John 11 35 Jesus wept',
            'currentIndex': 3,
            'autoAdvance': True,
        })
        self.assertTrue(result['advanced'])
        self.assertEqual(result['session']['currentBook'], 'Genesis')

    def test_match_threshold_override(self):
        result = handle_command({
            'command': 'match',
            'corpusPath': self.corpus_path,
            'transcript': 'John 11 35 Jesus slept',
            'threshold': 99,
        })
        self.assertEqual(result['match']['status'], 'match_failed')
        self.assertIn('Match too low', result['message'])

    def test_match_parse_failed(self):
        result = handle_command({
            'command': 'match',
            'corpusPath': self.corpus_path,
            'transcript': 'mumble mumble',
        })
        self.assertTrue(result['attempted'])
        self.assertEqual(result['match']['status'], 'parse_failed')

    def test_transcript_error_is_no_attempt(self):
        result = handle_command({'command': 'match', 'transcriptError': 'no-speech'})
        self.assertEqual(result, {'attempted': False, 'error': 'no-speech'})

    def test_missing_transcript(self):
        result = handle_command({'command': 'match', 'corpusPath': self.corpus_path})
        self.assertIn('error', result)

    def test_unknown_command(self):
        self.assertEqual(handle_command({'command': 'dance'}), {'error': 'Unknown command: dance'})

    def test_threshold_from_environment(self):
        command = {
            'command': 'match',
            'corpusPath': self.corpus_path,
            'transcript': 'John 11 35 Jesus slept',
        }
        with patch.dict(os.environ, {'RECITATION_PASS_THRESHOLD': '99'}):
            self.assertEqual(handle_command(command)['match']['status'], 'match_failed')
        with patch.dict(os.environ, {'RECITATION_PASS_THRESHOLD': '50'}):
            self.assertEqual(handle_command(command)['match']['status'], 'matched')

    def test_command_threshold_beats_environment(self):
        with patch.dict(os.environ, {'RECITATION_PASS_THRESHOLD': 'not-a-number'}):
            result = handle_command({
                'command': 'match',
                'corpusPath': self.corpus_path,
                'transcript': 'John 11 35 Jesus slept',
                'threshold': 50,
            })
        self.assertEqual(result['match']['status'], 'matched')

    def test_malformed_threshold_environment(self):
        with patch.dict(os.environ, {'RECITATION_PASS_THRESHOLD': 'seventy'}):
            with self.assertRaises(ValueError):
                handle_command({
                    'command': 'match',
                    'corpusPath': self.corpus_path,
                    'transcript': 'John 11 35 Jesus wept',
                })

    def test_unknown_source(self):
        with self.assertRaises(ValueError):
            handle_command({'command': 'books', 'source': 'ftp'})


class TestCheckDependencies(unittest.TestCase):

    def test_reports_stack(self):
        result = check_dependencies()
        self.assertIn('numpy', result['dependencies'])
        self.assertIn('requests', result['dependencies'])
        self.assertTrue(result['all_installed'])


class TestMain(BridgeTestCase):

    def _run(self, stdin_text):
        stdout = io.StringIO()
        with patch('sys.stdin', io.StringIO(stdin_text)), patch('sys.stdout', stdout):
            main()
        lines = [l for l in stdout.getvalue().splitlines() if l.strip()]
        self.assertEqual(len(lines), 1)
        return json.loads(lines[0])

    def test_result_line(self):
        output = self._run(json.dumps({'command': 'books', 'corpusPath': self.corpus_path}))
        self.assertEqual(output['type'], 'result')
        self.assertIn('booksOrder', output)

    def test_empty_input(self):
        output = self._run("")
        self.assertEqual(output, {'type': 'error', 'error': 'No input provided'})

    def test_invalid_json(self):
        output = self._run("{nope")
        self.assertEqual(output['type'], 'error')
        self.assertIn('Invalid JSON input', output['error'])

    def test_malformed_threshold_environment_is_error_line(self):
        command = {'command': 'match', 'corpusPath': self.corpus_path, 'transcript': 'John 11 35 Jesus wept'}
        with patch.dict(os.environ, {'RECITATION_PASS_THRESHOLD': 'seventy'}):
            output = self._run(json.dumps(command))
        self.assertEqual(output['type'], 'error')
        self.assertIn('RECITATION_PASS_THRESHOLD', output['error'])

    def test_missing_corpus_is_error_line(self):
        missing = str(Path(self.tmpdir.name) / "missing.json")
        output = self._run(json.dumps({'command': 'books', 'corpusPath': missing}))
        self.assertEqual(output['type'], 'error')
        self.assertIn('missing.json', output['error'])


if __name__ == '__main__':
    unittest.main()
