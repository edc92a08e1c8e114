"""
Rule Set Parser.

Reads the `.flatten_ignore` rule document into a RuleSet:

    # comment
    global:
    node_modules/**
    whitelist:
    src/**
    blacklist:
    *.min.js
    settings:
    maxTokenLimit: 50000
    useGitIgnore: true

Section headers are case-insensitive. Lines in global/whitelist/blacklist are
glob patterns; lines in settings are `key: value` pairs. Loading never fails:
a missing or broken document yields the built-in defaults.
"""

import math
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import FlattenConfig
from .errors import RuleDocumentError
from .globs import GlobMatcher, compile_globs, is_glob, matches_any, normalize_path


RULE_DOCUMENT = ".flatten_ignore"
LEGACY_WHITELIST = ".flatten_whitelist"
LEGACY_BLACKLIST = ".flatten_blacklist"
GITIGNORE = ".gitignore"

GLOBAL = "global"
WHITELIST = "whitelist"
BLACKLIST = "blacklist"
SETTINGS = "settings"
SECTIONS = (GLOBAL, WHITELIST, BLACKLIST, SETTINGS)

CHARS_PER_TOKEN = 4
DEFAULT_MAX_TOKENS_PER_FILE = 25000
DEFAULT_MAX_CONCURRENT_FILES = 4

PROFILES = {
    "default": 50000,
    "large": 128000,
}

# Dependency, build and VCS directories. Always blacklisted, whatever the
# rule document says.
LIBRARY_DIRS = (
    "node_modules", "bower_components", "jspm_packages", "vendor",
    "site-packages", "venv", ".venv", "__pycache__", ".git", ".hg", ".svn",
    "dist", "build", "target", ".gradle", "Pods",
)


def directory_patterns(name: str) -> List[str]:
    """Patterns matching everything under a directory name at any depth."""
    name = name.strip().strip("/")
    if not name:
        return []
    return [f"{name}/**", f"**/{name}/**"]


BUILTIN_BLACKLIST = tuple(p for name in LIBRARY_DIRS for p in directory_patterns(name))
_LIBRARY_MATCHERS = tuple(compile_globs(BUILTIN_BLACKLIST))


def is_library_path(relative_path: str) -> bool:
    """True if the path lies inside a dependency, build or VCS directory."""
    return matches_any(relative_path, _LIBRARY_MATCHERS)


# ============================================================================
# SETTINGS
# ============================================================================

def coerce_value(value: str) -> Any:
    """Numbers become int or float; everything else stays a string."""
    value = value.strip()
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "on"):
            return True
        if lowered in ("false", "no", "off"):
            return False
    return default


def as_positive_int(value: Any, default: int) -> int:
    """Positive whole number, or the default (with a warning) for anything else."""
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        print(f"Warning: setting value '{value}' is not a finite number, using {default}.", file=sys.stderr)
        return default
    if int(value) <= 0:
        print(f"Warning: setting value {value} is not positive, using {default}.", file=sys.stderr)
        return default
    return int(value)


@dataclass(frozen=True)
class RuleSettings:
    """Typed view of the settings section."""
    max_token_limit: int = PROFILES["default"]
    max_tokens_per_file: int = DEFAULT_MAX_TOKENS_PER_FILE
    use_gitignore: bool = True
    max_concurrent_files: int = DEFAULT_MAX_CONCURRENT_FILES
    chars_per_token: int = CHARS_PER_TOKEN
    extra: Dict[str, Any] = field(default_factory=dict)  # unrecognised keys, kept as parsed

    @property
    def max_chunk_chars(self) -> int:
        return self.max_token_limit * self.chars_per_token

    @property
    def max_file_chars(self) -> int:
        return self.max_tokens_per_file * self.chars_per_token

    @classmethod
    def from_mapping(cls, values: Dict[str, Any], profile: str = "default") -> "RuleSettings":
        """
        Build settings from a parsed `key: value` map.

        Args:
            values: Raw settings (numbers already coerced)
            profile: Profile name selecting the default maxTokenLimit

        Returns:
            RuleSettings with defaults filled in for missing or invalid keys
        """
        values = dict(values)
        profile = str(values.pop("profile", profile))
        if profile not in PROFILES:
            print(f"Warning: unknown profile '{profile}', using 'default'.", file=sys.stderr)
            profile = "default"

        known = {"maxTokenLimit", "maxTokensPerFile", "useGitIgnore", "maxConcurrentFiles"}
        return cls(
            max_token_limit=as_positive_int(values.get("maxTokenLimit"), PROFILES[profile]),
            max_tokens_per_file=as_positive_int(values.get("maxTokensPerFile"), DEFAULT_MAX_TOKENS_PER_FILE),
            use_gitignore=as_bool(values.get("useGitIgnore"), True),
            max_concurrent_files=as_positive_int(values.get("maxConcurrentFiles"), DEFAULT_MAX_CONCURRENT_FILES),
            extra={k: v for k, v in values.items() if k not in known},
        )


# ============================================================================
# RULE SET
# ============================================================================

@dataclass(frozen=True)
class RuleSet:
    """Compiled include/exclude rules. Read-only once built."""
    global_ignore: Tuple[GlobMatcher, ...] = ()
    whitelist: Tuple[GlobMatcher, ...] = ()
    blacklist: Tuple[GlobMatcher, ...] = ()
    settings: RuleSettings = field(default_factory=RuleSettings)

    def is_ignored(self, relative_path: str) -> bool:
        return matches_any(relative_path, self.global_ignore)

    def is_whitelisted(self, relative_path: str) -> bool:
        """An empty whitelist accepts everything."""
        return not self.whitelist or matches_any(relative_path, self.whitelist)

    def is_blacklisted(self, relative_path: str) -> bool:
        return matches_any(relative_path, self.blacklist)

    def allows(self, relative_path: str) -> bool:
        """File-level check: global ignore, then whitelist, then blacklist."""
        if self.is_ignored(relative_path):
            return False
        if not self.is_whitelisted(relative_path):
            return False
        return not self.is_blacklisted(relative_path)

    def prunes_directory(self, relative_dir: str) -> bool:
        """True if nothing under the directory can survive global ignore or blacklist."""
        return any(m.covers_directory(relative_dir) for m in self.global_ignore + self.blacklist)

    @property
    def patterns(self) -> Dict[str, List[str]]:
        return {
            GLOBAL: [m.pattern for m in self.global_ignore],
            WHITELIST: [m.pattern for m in self.whitelist],
            BLACKLIST: [m.pattern for m in self.blacklist],
        }


@dataclass
class RuleDocument:
    """Raw sections of a rule document, before directory expansion."""
    global_ignore: List[str] = field(default_factory=list)
    whitelist: List[str] = field(default_factory=list)
    blacklist: List[str] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)

    def section(self, name: str) -> List[str]:
        return {GLOBAL: self.global_ignore, WHITELIST: self.whitelist, BLACKLIST: self.blacklist}[name]


def split_sections(document_text: str) -> RuleDocument:
    """Scan the document line by line into its four sections."""
    doc = RuleDocument()
    active = None

    for lineno, raw in enumerate(document_text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        header = line.lower()
        if header.endswith(":") and header[:-1] in SECTIONS:
            active = header[:-1]
            continue

        if active is None:
            print(f"Warning: rule line {lineno} '{line}' is outside any section, ignoring.", file=sys.stderr)
        elif active == SETTINGS:
            key, sep, value = line.partition(":")
            if not sep or not key.strip():
                print(f"Warning: settings line {lineno} '{line}' is not 'key: value', ignoring.", file=sys.stderr)
                continue
            doc.settings[key.strip()] = coerce_value(value)
        else:
            doc.section(active).append(line)

    return doc


def expand_directory_patterns(patterns: Iterable[str], root_path: Path) -> List[str]:
    """
    Rewrite plain directory names to recursive patterns.

    A pattern without wildcards that names an existing directory under the
    root becomes `pattern/**`; a trailing '/' always means a directory.
    This is checked once, at parse time.
    """
    expanded = []
    for pattern in patterns:
        pattern = normalize_path(pattern.strip())
        if not pattern:
            continue
        if is_glob(pattern):
            if pattern.endswith("/") and not pattern.endswith("**/"):
                pattern = pattern + "**"
            expanded.append(pattern.rstrip("/").lstrip("/"))
            continue
        bare = pattern.strip("/")
        if pattern.endswith("/") or (root_path / bare).is_dir():
            expanded.append(f"{bare}/**")
        else:
            expanded.append(pattern.lstrip("/"))
    return expanded


def parse_rule_document(document_text: str, root_path: Path,
                        profile: str = "default") -> RuleSet:
    """
    Parse a rule document into a RuleSet.

    Args:
        document_text: Text of the rule document
        root_path: Workspace root, used for the directory expansion
        profile: Default profile when the document has no `profile` setting

    Returns:
        RuleSet with the built-in library blacklist unioned in
    """
    doc = split_sections(document_text)
    return build_rule_set(doc, root_path, RuleSettings.from_mapping(doc.settings, profile))


def build_rule_set(doc: RuleDocument, root_path: Path, settings: RuleSettings) -> RuleSet:
    blacklist = expand_directory_patterns(doc.blacklist, root_path)
    blacklist.extend(p for p in BUILTIN_BLACKLIST if p not in blacklist)
    return RuleSet(
        global_ignore=tuple(compile_globs(expand_directory_patterns(doc.global_ignore, root_path))),
        whitelist=tuple(compile_globs(expand_directory_patterns(doc.whitelist, root_path))),
        blacklist=tuple(compile_globs(blacklist)),
        settings=settings,
    )


# ============================================================================
# LOADING
# ============================================================================

def read_rule_document(path: Path) -> Optional[str]:
    """Read a rule document. None if it does not exist.

    Raises:
        RuleDocumentError: If the file exists but cannot be read
    """
    if not path.is_file():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise RuleDocumentError(f"Could not read {path}: {e}") from e


def read_list_file(root_path: Path, filename: str, output_dir_name: str) -> List[str]:
    """Patterns from a one-pattern-per-line file in the root and output folder."""
    patterns = []
    for location in (root_path / filename, root_path / output_dir_name / filename):
        try:
            text = read_rule_document(location)
        except RuleDocumentError as e:
            print(f"Warning: {e}", file=sys.stderr)
            continue
        if text is None:
            continue
        patterns.extend(
            line.strip() for line in text.splitlines()
            if line.strip() and not line.strip().startswith("#")
        )
    return patterns


def gitignore_to_globs(lines: Iterable[str]) -> List[str]:
    """
    Convert .gitignore lines to glob patterns.

    - `/x` is anchored to the root, `x` matches at any depth
    - `x/` only matches directories (everything under them)
    - `!x` negations are not supported and are skipped with a warning

    Examples:
        >>> gitignore_to_globs(["/dist/", "*.log"])
        ['dist/**', '*.log', '*.log/**', '**/*.log', '**/*.log/**']
    """
    globs = []
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("!"):
            print(f"Warning: .gitignore negation '{line}' is not supported, skipping.", file=sys.stderr)
            continue

        dir_only = line.endswith("/")
        body = line.strip("/")
        if not body:
            continue
        anchored = line.startswith("/") or "/" in body

        bases = [body] if anchored else [body, f"**/{body}"]
        for base in bases:
            if not dir_only:
                globs.append(base)
            if not base.endswith("/**"):
                globs.append(f"{base}/**")
    return _dedupe(globs)


def _dedupe(patterns: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for p in patterns:
        if p not in seen:
            seen.add(p)
            result.append(p)
    return result


def load_rule_set(root_path: Path, config: Optional[FlattenConfig] = None) -> RuleSet:
    """
    Build the RuleSet for a run from every rule source.

    Sources, in order: `.flatten_ignore`, the legacy whitelist/blacklist
    files, the host's ignore directories and global lists, the output
    folder, and `.gitignore` when enabled. Never raises; a broken rule
    document is reported and replaced by an empty one.
    """
    config = config or FlattenConfig()

    try:
        text = read_rule_document(root_path / RULE_DOCUMENT)
    except RuleDocumentError as e:
        print(f"Warning: {e}. Using built-in defaults.", file=sys.stderr)
        text = None
    doc = split_sections(text) if text else RuleDocument()

    settings_map = dict(doc.settings)
    settings_map.update(config.overrides)
    if config.use_gitignore is not None:
        settings_map["useGitIgnore"] = config.use_gitignore
    settings = RuleSettings.from_mapping(settings_map, config.profile)

    doc.whitelist.extend(read_list_file(root_path, LEGACY_WHITELIST, config.output_dir_name))
    doc.whitelist.extend(config.global_whitelist)
    doc.blacklist.extend(read_list_file(root_path, LEGACY_BLACKLIST, config.output_dir_name))
    doc.blacklist.extend(config.global_blacklist)

    for name in config.ignore_dirs:
        doc.global_ignore.extend(directory_patterns(name))
    doc.global_ignore.append(f"{config.output_dir_name}/**")

    if settings.use_gitignore:
        try:
            gitignore = read_rule_document(root_path / GITIGNORE)
        except RuleDocumentError as e:
            print(f"Warning: {e}", file=sys.stderr)
            gitignore = None
        if gitignore:
            doc.global_ignore.extend(gitignore_to_globs(gitignore.splitlines()))

    doc.global_ignore = _dedupe(doc.global_ignore)
    doc.whitelist = _dedupe(doc.whitelist)
    doc.blacklist = _dedupe(doc.blacklist)
    return build_rule_set(doc, root_path, settings)


# ============================================================================
# EDITING
# ============================================================================

RULE_DOCUMENT_TEMPLATE = """\
# flatten-repo rules
#
# global:    patterns that are always excluded (whitelist cannot override)
# whitelist: if non-empty, only matching files are included
# blacklist: matching files are excluded
# settings:  key: value pairs
#
# Patterns are globs over paths relative to the project root:
#   *  any characters except '/',  **  any characters,  ?  one character
# A plain directory name is expanded to name/**.

global:
node_modules/**
.git/**

whitelist:

blacklist:
*.min.js
*.lock

settings:
maxTokenLimit: 50000
maxTokensPerFile: 25000
useGitIgnore: true
maxConcurrentFiles: 4
"""


def init_rule_document(root_path: Path) -> bool:
    """Create `.flatten_ignore` from the template. Returns False if it already exists."""
    path = root_path / RULE_DOCUMENT
    if path.exists():
        return False
    path.write_text(RULE_DOCUMENT_TEMPLATE, encoding="utf-8")
    return True


def append_blacklist_patterns(root_path: Path, patterns: Iterable[str]) -> List[str]:
    """
    Persist extra blacklist patterns into `.flatten_ignore`.

    Patterns go at the end of the existing `blacklist:` section, which is
    created if missing. Patterns already present anywhere in that section
    are skipped.

    Returns:
        The patterns actually added
    """
    path = root_path / RULE_DOCUMENT
    text = path.read_text(encoding="utf-8") if path.is_file() else ""
    lines = text.splitlines()

    start = None
    end = len(lines)
    for i, line in enumerate(lines):
        header = line.strip().lower()
        if header.endswith(":") and header[:-1] in SECTIONS:
            if start is not None:
                end = i
                break
            if header == BLACKLIST + ":":
                start = i

    existing = set()
    if start is not None:
        existing = {l.strip() for l in lines[start + 1:end] if l.strip() and not l.strip().startswith("#")}
    added = [p for p in _dedupe(p.strip() for p in patterns) if p and p not in existing]
    if not added:
        return []

    if start is None:
        if lines and lines[-1].strip():
            lines.append("")
        lines.append(BLACKLIST + ":")
        lines.extend(added)
    else:
        # Insert after the last non-blank line of the section
        insert_at = end
        while insert_at > start + 1 and not lines[insert_at - 1].strip():
            insert_at -= 1
        lines[insert_at:insert_at] = added

    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return added
