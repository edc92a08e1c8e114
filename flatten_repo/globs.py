"""
Glob Matcher.

Compiles glob patterns into anchored regular expressions over
forward-slash relative paths:

    **  any sequence, path separators included
    *   any sequence without '/'
    ?   exactly one character other than '/'

Every other character is matched literally and case-sensitively. A pattern
without any '/' is also tried against the last path segment, so `*.min.js`
matches `src/a.min.js`.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern as RegexPattern


GLOB_CHARS = ("*", "?")


def is_glob(pattern: str) -> bool:
    """True if the pattern contains a wildcard."""
    return any(c in pattern for c in GLOB_CHARS)


def glob_to_regex(pattern: str) -> str:
    """
    Translate a glob into a regular expression source string.

    Args:
        pattern: Glob pattern using *, ** and ?

    Returns:
        Regex source anchored with ^ and $

    Examples:
        >>> glob_to_regex("src/**")
        '^src/.*$'
        >>> glob_to_regex("*.min.js")
        '^[^/]*\\\\.min\\\\.js$'
    """
    parts = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if i + 1 < n and pattern[i + 1] == "*":
                parts.append(".*")
                i += 2
                continue
            parts.append("[^/]*")
        elif c == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(c))
        i += 1
    return "^" + "".join(parts) + "$"


def normalize_path(path: str) -> str:
    """Forward-slash form of a relative path, without a leading './'."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


@dataclass(frozen=True)
class GlobMatcher:
    """A compiled glob. Immutable once built."""
    pattern: str
    regex: Optional[RegexPattern] = field(default=None, compare=False, repr=False)

    @property
    def matches_basename(self) -> bool:
        return "/" not in self.pattern

    def test(self, relative_path: str) -> bool:
        """Return True if the whole path (or, for slash-free patterns, its name) matches."""
        if self.regex is None:
            return False
        path = normalize_path(relative_path)
        if self.regex.match(path) is not None:
            return True
        if self.matches_basename:
            name = path.rstrip("/").rsplit("/", 1)[-1]
            return name != path and self.regex.match(name) is not None
        return False

    def covers_directory(self, relative_dir: str) -> bool:
        """True if the pattern matches every path under the directory."""
        if self.regex is None or not self.pattern.endswith("**"):
            return False
        return self.regex.match(normalize_path(relative_dir).rstrip("/") + "/") is not None


def compile_glob(pattern: str) -> GlobMatcher:
    """Compile a glob pattern. An empty pattern matches nothing."""
    pattern = pattern.strip()
    if not pattern:
        return GlobMatcher(pattern, None)
    return GlobMatcher(pattern, re.compile(glob_to_regex(pattern)))


def compile_globs(patterns: Iterable[str]) -> List[GlobMatcher]:
    return [compile_glob(p) for p in patterns]


def matches_any(relative_path: str, matchers: Iterable[GlobMatcher]) -> bool:
    """True if any matcher accepts the path."""
    return any(m.test(relative_path) for m in matchers)
