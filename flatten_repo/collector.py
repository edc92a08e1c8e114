"""
File Collector.

Depth-first walk of the project tree. Directories are visited in the order
the filesystem reports them. Hidden directories (".tox", ".mypy_cache", ...)
are not entered; the rule set prunes whole directories and then filters
individual files.
"""

import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Collection, Generator, List, Optional

from .progress import COLLECTED, CancellationToken, ProgressObserver, check_cancelled, notify
from .rules import RuleSet


@dataclass(frozen=True)
class CandidateFile:
    """A file that survived every inclusion rule."""
    absolute_path: Path
    relative_path: str           # forward slashes, relative to the root
    size_bytes: int
    modified_time: float         # Unix timestamp
    importance_score: Optional[int] = None

    @property
    def extension(self) -> str:
        """Lowercase extension including the dot, '' if none."""
        return os.path.splitext(self.absolute_path.name)[1].lower()

    def with_score(self, score: int) -> "CandidateFile":
        return replace(self, importance_score=score)

    def __repr__(self) -> str:
        return f"CandidateFile({self.relative_path!r}, {self.size_bytes}B)"


def has_included_extension(name: str, include_extensions: Collection[str]) -> bool:
    """
    True if a file name is covered by the include list.

    Entries are usually extensions ('.py'), but whole names such as
    'README.md', '.gitignore' or 'CHANGELOG' are accepted as well.
    """
    if name in include_extensions:
        return True
    extension = os.path.splitext(name)[1]
    return bool(extension) and extension in include_extensions


def iter_candidates(
    root_path: Path,
    rule_set: RuleSet,
    include_extensions: Collection[str],
    cancel_token: Optional[CancellationToken] = None,
    skip_hidden_dirs: bool = True,
) -> Generator[CandidateFile, None, None]:
    """Generator that yields candidates as they're found (depth-first traversal)."""
    include_extensions = frozenset(include_extensions)

    def walk(current_dir: Path) -> Generator[CandidateFile, None, None]:
        check_cancelled(cancel_token)
        try:
            items = list(current_dir.iterdir())
        except OSError as e:
            print(f"Warning: Could not read directory {current_dir}: {e}", file=sys.stderr)
            return

        for item in items:
            relative_path = item.relative_to(root_path).as_posix()

            try:
                is_dir = item.is_dir()
                if is_dir and item.is_symlink():
                    print(f"[SKIP DIR] {relative_path} (symlinked directory)", file=sys.stderr)
                    continue
            except OSError as e:
                print(f"Warning: Could not stat {item}: {e}", file=sys.stderr)
                continue

            if is_dir:
                if skip_hidden_dirs and item.name.startswith("."):
                    print(f"[SKIP DIR] {relative_path} (hidden directory)", file=sys.stderr)
                    continue
                if rule_set.prunes_directory(relative_path):
                    print(f"[SKIP DIR] {relative_path} (matches ignore pattern)", file=sys.stderr)
                    continue
                yield from walk(item)
                continue

            if not rule_set.allows(relative_path):
                continue
            if not has_included_extension(item.name, include_extensions):
                continue

            try:
                stat = item.stat()
            except OSError as e:
                print(f"Warning: Could not stat {item}: {e}", file=sys.stderr)
                continue

            yield CandidateFile(
                absolute_path=item,
                relative_path=relative_path,
                size_bytes=stat.st_size,
                modified_time=stat.st_mtime,
            )

    yield from walk(root_path)


def collect_files(
    root_path: Path,
    rule_set: RuleSet,
    include_extensions: Collection[str],
    cancel_token: Optional[CancellationToken] = None,
    observer: Optional[ProgressObserver] = None,
    skip_hidden_dirs: bool = True,
) -> List[CandidateFile]:
    """
    Collect every candidate file under the root.

    Args:
        root_path: Project root
        rule_set: Compiled rules
        include_extensions: Extensions (with leading dot) or exact file names
        cancel_token: Checked before each directory is read
        observer: Notified once collection is complete
        skip_hidden_dirs: Do not walk directories whose name starts with "."

    Returns:
        Candidates in traversal order

    Raises:
        FlattenCancelled: If the token is cancelled during the walk
    """
    files = list(iter_candidates(root_path, rule_set, include_extensions, cancel_token, skip_hidden_dirs))
    notify(observer, COLLECTED, f"Found {len(files)} files", len(files), len(files))
    return files
