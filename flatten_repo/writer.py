"""
Output Writer.

Persists sealed chunks as `flattened/flattened_<YYYYMMDD-HHMMSS>_<n>.txt`
and keeps the output folder out of version control.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from .config import OUTPUT_DIR_NAME
from .packer import Chunk
from .progress import CHUNK_WRITTEN, ProgressObserver, notify


def timestamp_prefix(now: Optional[datetime] = None) -> str:
    """Local time as YYYYMMDD-HHMMSS."""
    return (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


def chunk_filename(timestamp: str, index: int) -> str:
    """File name for the 1-based chunk index."""
    return f"flattened_{timestamp}_{index}.txt"


def write_chunks(
    root_path: Path,
    chunks: Sequence[Chunk],
    output_dir_name: str = OUTPUT_DIR_NAME,
    now: Optional[datetime] = None,
    observer: Optional[ProgressObserver] = None,
) -> List[Path]:
    """
    Write every chunk to the output folder.

    Args:
        root_path: Project root
        chunks: Sealed chunks, in order
        output_dir_name: Folder under the root (created if missing)
        now: Timestamp for the file names (defaults to now)
        observer: Notified after each file

    Returns:
        Paths of the written files, in chunk order
    """
    output_dir = root_path / output_dir_name
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = timestamp_prefix(now)

    written = []
    for index, chunk in enumerate(chunks, start=1):
        path = output_dir / chunk_filename(timestamp, index)
        path.write_text(chunk.render(), encoding="utf-8")
        written.append(path)
        notify(observer, CHUNK_WRITTEN, f"Wrote {path.name}", index, len(chunks))
    return written


def ensure_gitignore_entry(root_path: Path, entry: str = "/" + OUTPUT_DIR_NAME) -> bool:
    """
    Append an entry to the project's .gitignore unless it is already listed.

    Returns True if the file was changed. Errors are reported, never raised.
    """
    gitignore = root_path / ".gitignore"
    try:
        content = gitignore.read_text(encoding="utf-8") if gitignore.is_file() else ""
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: Could not read {gitignore}: {e}", file=sys.stderr)
        return False

    if any(line.strip() == entry for line in content.splitlines()):
        return False

    if content and not content.endswith("\n"):
        content += "\n"
    content += entry + "\n"
    try:
        gitignore.write_text(content, encoding="utf-8")
    except OSError as e:
        print(f"Error: Could not update {gitignore}: {e}", file=sys.stderr)
        return False
    return True
