#!/usr/bin/env python3
"""
Tests for the rule set parser and loader.
"""

import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

# Import from parent directory
sys.path.insert(0, str(Path(__file__).parent.parent))
from flatten_repo.config import FlattenConfig
from flatten_repo.rules import (
    BUILTIN_BLACKLIST, PROFILES, RULE_DOCUMENT, RuleSettings, append_blacklist_patterns,
    coerce_value, expand_directory_patterns, gitignore_to_globs, init_rule_document,
    is_library_path, load_rule_set, parse_rule_document, split_sections,
)


class TempRootTestCase(unittest.TestCase):

    def setUp(self):
        """Create temporary test directory."""
        self.test_dir = tempfile.mkdtemp()
        self.root = Path(self.test_dir)

    def tearDown(self):
        """Clean up temporary directory."""
        shutil.rmtree(self.test_dir)


class TestSplitSections(unittest.TestCase):
    """Test section scanning."""

    def test_sections_and_comments(self):
        doc = split_sections(
            "# header comment\n"
            "GLOBAL:\n"
            "  node_modules/**  \n"
            "\n"
            "Whitelist:\n"
            "src/**\n"
            "blacklist:\n"
            "# not a pattern\n"
            "*.min.js\n"
        )
        self.assertEqual(doc.global_ignore, ["node_modules/**"])
        self.assertEqual(doc.whitelist, ["src/**"])
        self.assertEqual(doc.blacklist, ["*.min.js"])

    def test_settings_coercion(self):
        doc = split_sections(
            "settings:\n"
            "maxTokenLimit: 1000\n"
            "ratio: 1.5\n"
            "useGitIgnore: false\n"
            "broken line\n"
        )
        self.assertEqual(doc.settings["maxTokenLimit"], 1000)
        self.assertEqual(doc.settings["ratio"], 1.5)
        self.assertEqual(doc.settings["useGitIgnore"], "false")
        self.assertNotIn("broken line", doc.settings)

    def test_lines_before_any_section_ignored(self):
        doc = split_sections("stray/**\nblacklist:\n*.log\n")
        self.assertEqual(doc.global_ignore, [])
        self.assertEqual(doc.blacklist, ["*.log"])

    def test_coerce_value(self):
        self.assertEqual(coerce_value(" 42 "), 42)
        self.assertEqual(coerce_value("2.5"), 2.5)
        self.assertEqual(coerce_value("yes"), "yes")


class TestSettings(unittest.TestCase):
    """Test typed settings."""

    def test_defaults(self):
        settings = RuleSettings.from_mapping({})
        self.assertEqual(settings.max_token_limit, PROFILES["default"])
        self.assertTrue(settings.use_gitignore)
        self.assertEqual(settings.max_concurrent_files, 4)
        self.assertEqual(settings.max_chunk_chars, PROFILES["default"] * 4)

    def test_profile(self):
        self.assertEqual(RuleSettings.from_mapping({"profile": "large"}).max_token_limit, 128000)
        self.assertEqual(RuleSettings.from_mapping({}, profile="large").max_token_limit, 128000)
        self.assertEqual(RuleSettings.from_mapping({"profile": "nope"}).max_token_limit, 50000)

    def test_explicit_values_win(self):
        settings = RuleSettings.from_mapping({
            "profile": "large", "maxTokenLimit": 1000, "maxTokensPerFile": 100,
            "useGitIgnore": "no", "maxConcurrentFiles": 8, "custom": "x",
        })
        self.assertEqual(settings.max_token_limit, 1000)
        self.assertEqual(settings.max_file_chars, 400)
        self.assertFalse(settings.use_gitignore)
        self.assertEqual(settings.max_concurrent_files, 8)
        self.assertEqual(settings.extra, {"custom": "x"})

    def test_invalid_values_fall_back(self):
        settings = RuleSettings.from_mapping({"maxTokenLimit": "lots", "maxConcurrentFiles": -2})
        self.assertEqual(settings.max_token_limit, 50000)
        self.assertEqual(settings.max_concurrent_files, 4)

    def test_non_finite_numbers_fall_back(self):
        """inf, nan and overflowing literals never escape the settings parser."""
        for value in ("inf", "-inf", "nan", "1e400"):
            with mock.patch("sys.stderr"):
                rule_set = parse_rule_document(
                    f"settings:\nmaxTokenLimit: {value}\nmaxTokensPerFile: {value}\n", Path(".")
                )
            self.assertEqual(rule_set.settings.max_token_limit, 50000, value)
            self.assertEqual(rule_set.settings.max_tokens_per_file, 25000, value)


class TestParseRuleDocument(TempRootTestCase):
    """Test parsing into a compiled RuleSet."""

    def test_directory_names_expanded(self):
        """A plain existing directory name becomes dir/**."""
        (self.root / "src").mkdir()
        rule_set = parse_rule_document("blacklist:\nsrc\nmissing\nbuild/\n", self.root)
        patterns = rule_set.patterns["blacklist"]
        self.assertIn("src/**", patterns)
        self.assertIn("missing", patterns)
        self.assertIn("build/**", patterns)
        self.assertTrue(rule_set.is_blacklisted("src/a/b.js"))
        self.assertFalse(rule_set.is_blacklisted("src-other/x.js"))

    def test_expand_keeps_globs(self):
        (self.root / "docs").mkdir()
        self.assertEqual(
            expand_directory_patterns(["*.md", "docs", "/lib/*/"], self.root),
            ["*.md", "docs/**", "lib/*/**"],
        )

    def test_builtin_blacklist_always_present(self):
        rule_set = parse_rule_document("", self.root)
        for pattern in BUILTIN_BLACKLIST:
            self.assertIn(pattern, rule_set.patterns["blacklist"])
        self.assertTrue(rule_set.is_blacklisted("node_modules/x.js"))
        self.assertTrue(rule_set.is_blacklisted("pkg/node_modules/x.js"))

    def test_global_ignore_beats_whitelist(self):
        rule_set = parse_rule_document("global:\nsecret/**\nwhitelist:\nsecret/**\n", self.root)
        self.assertFalse(rule_set.allows("secret/key.js"))

    def test_whitelist_requires_match(self):
        rule_set = parse_rule_document("whitelist:\nsrc/**\n", self.root)
        self.assertTrue(rule_set.allows("src/a.js"))
        self.assertFalse(rule_set.allows("lib/a.js"))

    def test_empty_whitelist_allows_everything(self):
        rule_set = parse_rule_document("blacklist:\n*.log\n", self.root)
        self.assertTrue(rule_set.allows("anything/at/all.js"))
        self.assertFalse(rule_set.allows("debug.log"))

    def test_prunes_directory(self):
        rule_set = parse_rule_document("global:\ncache/**\nblacklist:\n*.js\n", self.root)
        self.assertTrue(rule_set.prunes_directory("cache"))
        self.assertTrue(rule_set.prunes_directory("node_modules"))
        self.assertFalse(rule_set.prunes_directory("src"))


class TestGitignore(unittest.TestCase):
    """Test .gitignore conversion."""

    def test_conversion(self):
        globs = gitignore_to_globs(["# comment", "", "/dist/", "*.log", "!keep.log", "docs/build"])
        self.assertEqual(globs, [
            "dist/**",
            "*.log", "*.log/**", "**/*.log", "**/*.log/**",
            "docs/build", "docs/build/**",
        ])

    def test_library_paths(self):
        self.assertTrue(is_library_path("node_modules/a/b.js"))
        self.assertTrue(is_library_path("x/vendor/lib.php"))
        self.assertFalse(is_library_path("src/vendored.js"))


class TestLoadRuleSet(TempRootTestCase):
    """Test combining every rule source."""

    def test_missing_document_uses_defaults(self):
        rule_set = load_rule_set(self.root)
        self.assertEqual(rule_set.whitelist, ())
        self.assertEqual(rule_set.settings, RuleSettings.from_mapping({}))
        self.assertTrue(rule_set.is_ignored("flattened/flattened_1.txt"))
        self.assertTrue(rule_set.is_ignored("node_modules/x.js"))

    def test_unreadable_document_uses_defaults(self):
        (self.root / RULE_DOCUMENT).write_bytes(b"\xff\xfe\xfa global:")
        rule_set = load_rule_set(self.root)
        self.assertEqual(rule_set.settings.max_token_limit, 50000)
        self.assertEqual(rule_set.whitelist, ())

    def test_gitignore_folded_when_enabled(self):
        (self.root / ".gitignore").write_text("*.log\n/out-dir/\n")
        rule_set = load_rule_set(self.root)
        self.assertTrue(rule_set.is_ignored("logs/app.log"))
        self.assertTrue(rule_set.is_ignored("out-dir/x.js"))

    def test_gitignore_disabled_by_host(self):
        (self.root / ".gitignore").write_text("*.log\n")
        rule_set = load_rule_set(self.root, FlattenConfig(use_gitignore=False))
        self.assertFalse(rule_set.is_ignored("logs/app.log"))

    def test_gitignore_disabled_by_document(self):
        (self.root / ".gitignore").write_text("*.log\n")
        (self.root / RULE_DOCUMENT).write_text("settings:\nuseGitIgnore: false\n")
        self.assertFalse(load_rule_set(self.root).is_ignored("logs/app.log"))

    def test_legacy_list_files(self):
        (self.root / ".flatten_blacklist").write_text("# comment\n*.md\n")
        (self.root / "flattened").mkdir()
        (self.root / "flattened" / ".flatten_whitelist").write_text("docs/**\n")
        rule_set = load_rule_set(self.root)
        self.assertTrue(rule_set.is_blacklisted("docs/a.md"))
        self.assertTrue(rule_set.is_whitelisted("docs/a.txt"))
        self.assertFalse(rule_set.is_whitelisted("src/a.txt"))

    def test_host_lists_and_ignore_dirs(self):
        config = FlattenConfig(ignore_dirs=("generated",), global_blacklist=("*.snap",),
                               global_whitelist=("src/**",))
        rule_set = load_rule_set(self.root, config)
        self.assertTrue(rule_set.is_ignored("generated/a.js"))
        self.assertTrue(rule_set.is_ignored("pkg/generated/a.js"))
        self.assertTrue(rule_set.is_blacklisted("src/x.snap"))
        self.assertFalse(rule_set.is_whitelisted("lib/x.js"))

    def test_overrides_win_over_document(self):
        (self.root / RULE_DOCUMENT).write_text("settings:\nmaxTokenLimit: 2000\n")
        self.assertEqual(load_rule_set(self.root).settings.max_token_limit, 2000)
        config = FlattenConfig().with_overrides(maxTokenLimit=3000, maxTokensPerFile=None)
        rule_set = load_rule_set(self.root, config)
        self.assertEqual(rule_set.settings.max_token_limit, 3000)
        self.assertEqual(rule_set.settings.max_tokens_per_file, 25000)


class TestEditing(TempRootTestCase):
    """Test template creation and blacklist persistence."""

    def test_init_rule_document(self):
        self.assertTrue(init_rule_document(self.root))
        text = (self.root / RULE_DOCUMENT).read_text()
        self.assertIn("blacklist:", text)
        (self.root / RULE_DOCUMENT).write_text("custom\n")
        self.assertFalse(init_rule_document(self.root))
        self.assertEqual((self.root / RULE_DOCUMENT).read_text(), "custom\n")

    def test_template_parses(self):
        init_rule_document(self.root)
        rule_set = load_rule_set(self.root)
        self.assertTrue(rule_set.is_blacklisted("web/app.min.js"))
        self.assertEqual(rule_set.settings.max_token_limit, 50000)

    def test_append_into_existing_section(self):
        (self.root / RULE_DOCUMENT).write_text(
            "blacklist:\n*.log\n\nsettings:\nmaxTokenLimit: 1000\n"
        )
        added = append_blacklist_patterns(self.root, ["*.log", "docs/**", "docs/**"])
        self.assertEqual(added, ["docs/**"])
        text = (self.root / RULE_DOCUMENT).read_text()
        self.assertEqual(text, "blacklist:\n*.log\ndocs/**\n\nsettings:\nmaxTokenLimit: 1000\n")

    def test_append_creates_section(self):
        (self.root / RULE_DOCUMENT).write_text("global:\nx/**\n")
        self.assertEqual(append_blacklist_patterns(self.root, ["*.csv"]), ["*.csv"])
        rule_set = load_rule_set(self.root)
        self.assertTrue(rule_set.is_blacklisted("data/a.csv"))
        self.assertTrue(rule_set.is_ignored("x/y.js"))

    def test_append_creates_document(self):
        self.assertEqual(append_blacklist_patterns(self.root, ["*.csv"]), ["*.csv"])
        self.assertEqual((self.root / RULE_DOCUMENT).read_text(), "blacklist:\n*.csv\n")

    def test_append_nothing_new(self):
        self.assertEqual(append_blacklist_patterns(self.root, []), [])
        self.assertFalse((self.root / RULE_DOCUMENT).exists())


if __name__ == "__main__":
    unittest.main()
