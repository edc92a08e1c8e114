#!/usr/bin/env python3
"""
Tests for host configuration loading.
"""

import json
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

# Import from parent directory
sys.path.insert(0, str(Path(__file__).parent.parent))
from flatten_repo.config import DEFAULT_INCLUDE_EXTENSIONS, FlattenConfig, load_config
from flatten_repo.engine import build_chunks


class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        """Create temporary test directory."""
        self.test_dir = tempfile.mkdtemp()
        self.config_path = Path(self.test_dir) / "settings.json"

    def tearDown(self):
        """Clean up temporary directory."""
        shutil.rmtree(self.test_dir)

    def test_missing_file(self):
        self.assertEqual(load_config(self.config_path), FlattenConfig())
        self.assertEqual(load_config(None), FlattenConfig())

    def test_values_loaded(self):
        self.config_path.write_text(json.dumps({
            "includeExtensions": [".py"],
            "ignoreDirs": ["gen"],
            "useGitIgnore": False,
            "maxChunkSize": 1234,
            "globalBlacklist": ["*.snap"],
            "order": "importance",
            "unknownKey": 1,
        }))
        config = load_config(self.config_path)
        self.assertEqual(config.include_extensions, (".py",))
        self.assertEqual(config.ignore_dirs, ("gen",))
        self.assertFalse(config.use_gitignore)
        self.assertEqual(config.max_chunk_size, 1234)
        self.assertEqual(config.global_blacklist, ("*.snap",))
        self.assertEqual(config.order, "importance")

    def test_invalid_json_falls_back(self):
        self.config_path.write_text("{not json")
        self.assertEqual(load_config(self.config_path), FlattenConfig())

    def test_non_object_falls_back(self):
        self.config_path.write_text("[1, 2]")
        self.assertEqual(load_config(self.config_path), FlattenConfig())

    def test_bad_field_types(self):
        self.config_path.write_text(json.dumps({"includeExtensions": ".py", "order": "random"}))
        config = load_config(self.config_path)
        self.assertEqual(config.include_extensions, DEFAULT_INCLUDE_EXTENSIONS)
        self.assertEqual(config.order, "collection")

    def test_bad_scalar_types(self):
        """Wrongly typed scalars are dropped, keeping the defaults."""
        self.config_path.write_text(json.dumps({
            "maxChunkSize": "20000",
            "chunkThreshold": None,
            "useGitIgnore": "no",
            "profile": 3,
        }))
        with mock.patch("sys.stderr"):
            config = load_config(self.config_path)
        self.assertEqual(config, FlattenConfig())

        self.config_path.write_text(json.dumps({"maxChunkSize": True, "chunkThreshold": -1}))
        with mock.patch("sys.stderr"):
            config = load_config(self.config_path)
        self.assertEqual(config.max_chunk_size, 0)
        self.assertEqual(config.chunk_threshold, 10)

    def test_bad_chunk_size_still_flattens(self):
        """A run with a string maxChunkSize uses the token limit instead of crashing."""
        root = Path(self.test_dir)
        (root / "a.py").write_text("print('a')\n")
        self.config_path.write_text(json.dumps({"maxChunkSize": "20000"}))
        with mock.patch("sys.stderr"):
            config = load_config(self.config_path)
            summary = build_chunks(root, config)
        self.assertEqual(summary.max_chunk_size, 50000 * 4)
        self.assertIn("a.py", summary.chunks[0].included_paths)

    def test_with_overrides(self):
        config = FlattenConfig().with_overrides(maxTokenLimit=10, maxTokensPerFile=None)
        self.assertEqual(config.overrides, {"maxTokenLimit": 10})
        self.assertEqual(config.with_overrides(maxConcurrentFiles=2).overrides,
                         {"maxTokenLimit": 10, "maxConcurrentFiles": 2})


if __name__ == "__main__":
    unittest.main()
