"""
Content Packer.

Reads candidate files (in fixed-size parallel batches) and packs their
entries into size-bounded chunks:

    \\n\\n=== FILE: src/a.js ===\\n<content>

Entries are never split. An entry longer than the per-file limit, or longer
than a whole chunk, is skipped and reported instead.
"""

import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .collector import CandidateFile
from .progress import (
    CHUNK_SEALED, FILES_READ, CancellationToken, ProgressObserver, check_cancelled, notify,
)
from .tree import render_tree


FILE_HEADER = "\n\n=== FILE: {path} ===\n"
TREE_HEADER = "=== Directory Tree ===\n"

# Skip reasons
TOO_LARGE_FOR_FILE = "exceeds per-file limit"
TOO_LARGE_FOR_CHUNK = "exceeds chunk size"


@dataclass(frozen=True)
class FileEntry:
    """One file as it is packed into a chunk."""
    relative_path: str
    raw_content: str
    entry_text: str

    def __len__(self) -> int:
        return len(self.entry_text)


def build_entry(relative_path: str, content: str) -> FileEntry:
    return FileEntry(relative_path, content, FILE_HEADER.format(path=relative_path) + content)


@dataclass(frozen=True)
class Chunk:
    """A sealed chunk: the packed entries plus the paths they came from.

    `body` is the concatenation of entry texts in pack order; size limits
    apply to it. The tree header is only added by render().
    """
    body: str
    included_paths: Tuple[str, ...]

    @property
    def size(self) -> int:
        return len(self.body)

    @property
    def tree(self) -> str:
        return render_tree(self.included_paths)

    def render(self) -> str:
        """Full artifact text: tree header, blank line, then the entries."""
        return TREE_HEADER + self.tree + "\n\n" + self.body


@dataclass(frozen=True)
class SkippedFile:
    relative_path: str
    reason: str
    size: int  # entry length in characters


@dataclass
class PackResult:
    chunks: List[Chunk] = field(default_factory=list)
    skipped: List[SkippedFile] = field(default_factory=list)

    @property
    def packed_paths(self) -> List[str]:
        return [p for chunk in self.chunks for p in chunk.included_paths]


def pack_entries(
    entries: Iterable[FileEntry],
    max_chunk_size: int,
    max_file_size: int,
    observer: Optional[ProgressObserver] = None,
) -> PackResult:
    """
    Greedily pack entries into chunks, in input order.

    Args:
        entries: Entries in packing order
        max_chunk_size: Maximum chunk body length in characters
        max_file_size: Maximum entry length in characters
        observer: Notified each time a chunk is sealed

    Returns:
        PackResult with the sealed chunks and the skipped entries

    Algorithm:
        1. Skip entries longer than max_file_size or max_chunk_size
        2. If the entry does not fit the open chunk, seal it and open a new one
        3. Append the entry and record its path
        4. Seal the last chunk if it is not empty
    """
    result = PackResult()
    parts: List[str] = []
    paths: List[str] = []
    length = 0

    def seal():
        chunk = Chunk("".join(parts), tuple(paths))
        result.chunks.append(chunk)
        notify(observer, CHUNK_SEALED, f"Chunk {len(result.chunks)}: {len(paths)} files, {chunk.size:,} chars")

    for entry in entries:
        size = len(entry)
        if size > max_file_size:
            result.skipped.append(SkippedFile(entry.relative_path, TOO_LARGE_FOR_FILE, size))
            print(f"[SKIP] {entry.relative_path} ({size:,} chars, {TOO_LARGE_FOR_FILE})", file=sys.stderr)
            continue
        if size > max_chunk_size:
            result.skipped.append(SkippedFile(entry.relative_path, TOO_LARGE_FOR_CHUNK, size))
            print(f"[SKIP] {entry.relative_path} ({size:,} chars, {TOO_LARGE_FOR_CHUNK})", file=sys.stderr)
            continue

        if paths and length + size > max_chunk_size:
            seal()
            parts, paths, length = [], [], 0

        parts.append(entry.entry_text)
        paths.append(entry.relative_path)
        length += size
        print(f"[KEEP] {entry.relative_path}", file=sys.stderr)

    if paths:
        seal()

    return result


def pack(files: Iterable[Tuple[str, str]], max_chunk_size: int, max_file_size: int) -> PackResult:
    """Pack (relative_path, content) pairs. See pack_entries()."""
    return pack_entries((build_entry(p, c) for p, c in files), max_chunk_size, max_file_size)


# ============================================================================
# READING
# ============================================================================

def is_binary(file_path: Path) -> bool:
    """
    Checks if a file is likely binary by reading a chunk and looking for null bytes.
    """
    with file_path.open('rb') as f:
        chunk = f.read(1024)
    return b'\x00' in chunk


def read_file_content(file_path: Path) -> Optional[str]:
    """
    Reads a text file. Tries UTF-8 then latin-1.

    Returns None (and reports why) for binary or unreadable files.
    """
    try:
        if is_binary(file_path):
            print(f"[SKIP] {file_path.as_posix()} (likely binary)", file=sys.stderr)
            return None
        return file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        try:
            return file_path.read_text(encoding="latin-1")
        except (OSError, UnicodeDecodeError) as e:
            print(f"Error: Could not read file {file_path}: {e}. Skipping.", file=sys.stderr)
            return None
    except OSError as e:
        print(f"Error: Could not read file {file_path}: {e}. Skipping.", file=sys.stderr)
        return None


def _read_candidate(file: CandidateFile) -> Optional[str]:
    return read_file_content(file.absolute_path)


def read_candidates(
    files: Sequence[CandidateFile],
    max_concurrent_files: int = 4,
    cancel_token: Optional[CancellationToken] = None,
    observer: Optional[ProgressObserver] = None,
) -> Tuple[List[Tuple[str, str]], List[str]]:
    """
    Read candidate contents in batches of max_concurrent_files.

    Reads inside a batch run concurrently; the next batch starts only when
    the whole batch is done. Results keep the input order. If the thread
    pool fails, the remaining files are read one by one.

    Args:
        files: Candidates in packing order
        max_concurrent_files: Batch width (1 reads sequentially)
        cancel_token: Checked before every batch
        observer: Notified after every batch

    Returns:
        ([(relative_path, content), ...] in input order, unreadable paths)

    Raises:
        FlattenCancelled: If the token is cancelled between batches
    """
    batch_size = max(1, max_concurrent_files)
    contents: List[Tuple[str, str]] = []
    unreadable: List[str] = []
    executor = ThreadPoolExecutor(max_workers=batch_size) if batch_size > 1 else None

    try:
        for start in range(0, len(files), batch_size):
            check_cancelled(cancel_token)
            batch = files[start:start + batch_size]

            results = None
            if executor is not None:
                try:
                    results = list(executor.map(_read_candidate, batch))
                except RuntimeError as e:
                    print(f"Warning: parallel read failed ({e}), reading remaining files sequentially.",
                          file=sys.stderr)
                    executor.shutdown(wait=False)
                    executor = None
            if results is None:
                results = [_read_candidate(f) for f in batch]

            for f, content in zip(batch, results):
                if content is None:
                    unreadable.append(f.relative_path)
                else:
                    contents.append((f.relative_path, content))

            processed = min(start + batch_size, len(files))
            notify(observer, FILES_READ, "Reading files", processed, len(files))
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    return contents, unreadable
