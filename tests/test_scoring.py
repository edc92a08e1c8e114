#!/usr/bin/env python3
"""
Tests for the file importance scorer.
"""

import sys
import unittest
from pathlib import Path

# Import from parent directory
sys.path.insert(0, str(Path(__file__).parent.parent))
from flatten_repo.collector import CandidateFile
from flatten_repo.scoring import rank_files, score_file, score_files

NOW = 1_700_000_000.0
DAY = 24 * 60 * 60
KB = 1024


def candidate(path, size, age_days=30):
    return CandidateFile(Path("/root") / path, path, size, NOW - age_days * DAY)


class TestScoreFile(unittest.TestCase):
    """Test the scoring heuristic band by band."""

    def test_base_score(self):
        """A mid-sized, old, unclassified file keeps the base score."""
        self.assertEqual(score_file(candidate("notes.txt", 100 * KB), NOW), 50)

    def test_size_bands_first_match_wins(self):
        self.assertEqual(score_file(candidate("a.txt", 9 * KB), NOW), 70)
        self.assertEqual(score_file(candidate("a.txt", 10 * KB), NOW), 60)
        self.assertEqual(score_file(candidate("a.txt", 49 * KB), NOW), 60)
        self.assertEqual(score_file(candidate("a.txt", 500 * KB), NOW), 50)
        self.assertEqual(score_file(candidate("a.txt", 501 * KB), NOW), 30)

    def test_path_adjustments_are_additive(self):
        self.assertEqual(score_file(candidate("src/a.txt", 100 * KB), NOW), 65)
        self.assertEqual(score_file(candidate("test/a.txt", 100 * KB), NOW), 40)
        self.assertEqual(score_file(candidate("demo/a.txt", 100 * KB), NOW), 45)
        self.assertEqual(score_file(candidate("src/test/demo/a.txt", 100 * KB), NOW), 50)
        self.assertEqual(score_file(candidate("SRC/a.txt", 100 * KB), NOW), 65)

    def test_extension_adjustments(self):
        self.assertEqual(score_file(candidate("a.py", 100 * KB), NOW), 60)
        self.assertEqual(score_file(candidate("a.yaml", 100 * KB), NOW), 55)
        self.assertEqual(score_file(candidate("a.md", 100 * KB), NOW), 50)

    def test_recency(self):
        self.assertEqual(score_file(candidate("a.txt", 100 * KB, age_days=2), NOW), 60)
        self.assertEqual(score_file(candidate("a.txt", 100 * KB, age_days=8), NOW), 50)

    def test_clamped(self):
        """50 + 20 + 15 + 10 + 10 = 105 is clamped to 100."""
        self.assertEqual(score_file(candidate("src/a.py", 500, age_days=1), NOW), 100)

    def test_combined(self):
        # 50 - 20 (size) - 5 (demo) + 5 (config)
        self.assertEqual(score_file(candidate("demo/config.yaml", 600 * KB), NOW), 30)
        # 50 + 10 (size) + 15 (lib) + 10 (code)
        self.assertEqual(score_file(candidate("lib/big.js", 20 * KB), NOW), 85)


class TestRanking(unittest.TestCase):

    def test_score_files_keeps_order(self):
        files = [candidate("b.txt", 100 * KB), candidate("src/a.py", 500)]
        scored = score_files(files, NOW)
        self.assertEqual([f.relative_path for f in scored], ["b.txt", "src/a.py"])
        self.assertEqual([f.importance_score for f in scored], [50, 95])
        self.assertIsNone(files[0].importance_score)

    def test_rank_is_stable(self):
        files = score_files([
            candidate("x.txt", 100 * KB),
            candidate("src/a.py", 500),
            candidate("y.txt", 100 * KB),
        ], NOW)
        ranked = rank_files(files)
        self.assertEqual([f.relative_path for f in ranked], ["src/a.py", "x.txt", "y.txt"])


if __name__ == "__main__":
    unittest.main()
