"""
Flattening pipeline.

    collect -> score -> estimate/negotiate -> read -> pack -> render -> write

Every stage takes its inputs explicitly; nothing here looks up global
settings. Cancellation is honoured between directories and between read
batches, and nothing is written until every chunk is sealed.
"""

import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from .budget import BudgetPolicy, negotiate_budget
from .collector import CandidateFile, collect_files
from .config import FlattenConfig
from .errors import EmptyResultError
from .packer import Chunk, SkippedFile, build_entry, pack_entries, read_candidates
from .progress import DONE, SCORED, CancellationToken, ProgressObserver, check_cancelled, notify
from .rules import RuleSet, load_rule_set
from .scoring import rank_files, score_files
from .writer import ensure_gitignore_entry, write_chunks


@dataclass
class FlattenSummary:
    """Outcome of a run, for the end-of-run report."""
    collected: int = 0
    chunks: List[Chunk] = field(default_factory=list)
    skipped: List[SkippedFile] = field(default_factory=list)
    unreadable: List[str] = field(default_factory=list)
    written: List[Path] = field(default_factory=list)
    max_chunk_size: int = 0
    max_file_size: int = 0

    @property
    def packed(self) -> int:
        return sum(len(c.included_paths) for c in self.chunks)

    def print_report(self, output=None):
        """Print a formatted run summary."""
        output = output or sys.stderr
        print("=" * 70, file=output)
        print("FLATTEN REPORT", file=output)
        print("=" * 70, file=output)
        print(f"Files collected:   {self.collected}", file=output)
        print(f"Files packed:      {self.packed}", file=output)
        print(f"Skipped for size:  {len(self.skipped)}", file=output)
        print(f"Unreadable:        {len(self.unreadable)}", file=output)
        print(f"Chunks:            {len(self.chunks)} (max {self.max_chunk_size:,} chars)", file=output)

        if self.skipped:
            print(file=output)
            print("Skipped files:", file=output)
            for skipped in self.skipped[:10]:
                print(f"  {skipped.relative_path} ({skipped.size:,} chars, {skipped.reason})", file=output)
            if len(self.skipped) > 10:
                print(f"  ... and {len(self.skipped) - 10} more", file=output)

        if self.written:
            print(file=output)
            for path in self.written:
                print(f"  -> {path}", file=output)

        print("=" * 70, file=output)


def resolve_limits(rule_set: RuleSet, config: FlattenConfig) -> Tuple[int, int]:
    """(max chunk chars, max file chars). A host chunk size overrides the token limit."""
    settings = rule_set.settings
    max_chunk_size = config.max_chunk_size if config.max_chunk_size > 0 else settings.max_chunk_chars
    return max_chunk_size, settings.max_file_chars


def prepare_candidates(
    root_path: Path,
    config: FlattenConfig,
    rule_set: RuleSet,
    cancel_token: Optional[CancellationToken] = None,
    observer: Optional[ProgressObserver] = None,
    now: Optional[datetime] = None,
) -> List[CandidateFile]:
    """Collect and score candidates, ordered for packing."""
    files = collect_files(root_path, rule_set, config.include_extensions, cancel_token, observer,
                          skip_hidden_dirs=config.skip_hidden_dirs)
    files = score_files(files, (now or datetime.now()).timestamp())
    if config.order == "importance":
        files = rank_files(files)
    notify(observer, SCORED, f"Scored {len(files)} files ({config.order} order)")
    return files


def build_chunks(
    root_path: Path,
    config: Optional[FlattenConfig] = None,
    rule_set: Optional[RuleSet] = None,
    budget_policy: Optional[BudgetPolicy] = None,
    cancel_token: Optional[CancellationToken] = None,
    observer: Optional[ProgressObserver] = None,
    now: Optional[datetime] = None,
) -> FlattenSummary:
    """
    Run the pipeline up to sealed chunks, without writing anything.

    Args:
        root_path: Project root
        config: Host settings (defaults if None)
        rule_set: Precompiled rules; loaded from the root if None
        budget_policy: Called when the estimate exceeds the chunk threshold;
            without one such a run stops with BudgetAborted
        cancel_token: Cancels the run between steps
        observer: Receives progress events
        now: Reference time for recency scoring

    Returns:
        FlattenSummary with chunks and skip lists filled in

    Raises:
        FlattenCancelled: If cancelled
        BudgetAborted: If the budget policy stops the run
        EmptyResultError: If nothing survives filtering or nothing could be read
    """
    root_path = Path(root_path)
    config = config or FlattenConfig()
    if rule_set is None:
        rule_set = load_rule_set(root_path, config)

    max_chunk_size, max_file_size = resolve_limits(rule_set, config)
    files = prepare_candidates(root_path, config, rule_set, cancel_token, observer, now)
    if not files:
        raise EmptyResultError("No files matched the include rules. Nothing to flatten.")
    collected = len(files)

    files, max_chunk_size = negotiate_budget(
        files,
        max_chunk_size,
        root_path,
        policy=budget_policy,
        threshold=config.chunk_threshold,
        chars_per_token=rule_set.settings.chars_per_token,
        observer=observer,
        max_file_size=max_file_size,
    )
    if not files:
        raise EmptyResultError("No files left after applying the budget policy. Nothing to flatten.")

    contents, unreadable = read_candidates(
        files, rule_set.settings.max_concurrent_files, cancel_token, observer
    )
    check_cancelled(cancel_token)
    if not contents:
        raise EmptyResultError("None of the matched files could be read. Nothing to flatten.")

    result = pack_entries(
        (build_entry(path, content) for path, content in contents),
        max_chunk_size,
        max_file_size,
        observer,
    )
    if not result.chunks:
        raise EmptyResultError("Every file exceeded the size limits. Nothing to flatten.")

    return FlattenSummary(
        collected=collected,
        chunks=result.chunks,
        skipped=result.skipped,
        unreadable=unreadable,
        max_chunk_size=max_chunk_size,
        max_file_size=max_file_size,
    )


def flatten(
    root_path: Path,
    config: Optional[FlattenConfig] = None,
    budget_policy: Optional[BudgetPolicy] = None,
    cancel_token: Optional[CancellationToken] = None,
    observer: Optional[ProgressObserver] = None,
    now: Optional[datetime] = None,
    update_gitignore: bool = True,
) -> FlattenSummary:
    """
    Flatten a project into chunk files under `<root>/flattened/`.

    See build_chunks() for arguments and errors. After the chunks are
    written, `/flattened` is added to the project's .gitignore.
    """
    root_path = Path(root_path)
    config = config or FlattenConfig()
    summary = build_chunks(root_path, config, None, budget_policy, cancel_token, observer, now)

    check_cancelled(cancel_token)
    summary.written = write_chunks(root_path, summary.chunks, config.output_dir_name, now, observer)
    if update_gitignore:
        ensure_gitignore_entry(root_path, "/" + config.output_dir_name)

    notify(observer, DONE,
           f"Flattened {summary.packed} files into {len(summary.chunks)} chunk(s)",
           summary.packed, summary.collected)
    return summary
