"""
Size Estimator and Budget Negotiator.

Before any content is read, the candidate sizes are run through the same
greedy bin fill the packer uses. When the projected chunk count is too high
the run stops at a decision point and a caller-supplied policy picks how to
continue.
"""

import math
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, TextIO, Tuple

from .collector import CandidateFile
from .errors import BudgetAborted
from .packer import FILE_HEADER
from .progress import ESTIMATED, ProgressObserver, notify
from .rules import CHARS_PER_TOKEN, append_blacklist_patterns, is_library_path


DEFAULT_CHUNK_THRESHOLD = 10
SMALLEST_FILES_TOKEN_BUDGET = 200_000

# Budget actions
PROCEED = "proceed"
SMALLEST = "smallest"
EXPAND = "expand"
EDIT_RULES = "edit_rules"
ABORT = "abort"
ACTIONS = (PROCEED, SMALLEST, EXPAND, EDIT_RULES, ABORT)


def parse_token_budget(value: str) -> int:
    """
    Parse a token budget string with optional k/M suffix.

    Args:
        value: Budget string like "100000", "100k", "100K", "2m", "2M"

    Returns:
        Integer token count

    Raises:
        ValueError: If the format is invalid

    Examples:
        >>> parse_token_budget("50k")
        50000
        >>> parse_token_budget("2M")
        2000000
    """
    value = value.strip()
    match = re.match(r'^(\d+)([kKmM]?)$', value)
    if not match:
        raise ValueError(f"Invalid token budget format: '{value}'. Expected format: 123, 100k, 2M")

    number = int(match.group(1))
    suffix = match.group(2).lower()

    multipliers = {'': 1, 'k': 1_000, 'm': 1_000_000}
    return number * multipliers[suffix]


@dataclass(frozen=True)
class BudgetEstimate:
    """Projected output of packing a candidate list."""
    estimated_chunk_count: int
    total_size: int                        # characters, file headers included
    file_count: int
    max_chunk_size: int
    threshold: int = DEFAULT_CHUNK_THRESHOLD
    max_file_size: Optional[int] = None
    oversized_count: int = 0               # entries the packer will skip

    @property
    def exceeds_threshold(self) -> bool:
        return self.estimated_chunk_count > self.threshold

    def print_report(self, output=None):
        """Print a formatted estimate."""
        output = output or sys.stderr
        print("=" * 70, file=output)
        print("SIZE ESTIMATE", file=output)
        print("=" * 70, file=output)
        print(f"Files:       {self.file_count:,}", file=output)
        print(f"Total size:  {self.total_size:,} characters", file=output)
        print(f"Chunk size:  {self.max_chunk_size:,} characters", file=output)
        if self.oversized_count:
            print(f"Oversized:   {self.oversized_count} (will be skipped)", file=output)
        print(f"Chunks:      ~{self.estimated_chunk_count} (threshold {self.threshold})", file=output)
        print("=" * 70, file=output)


def entry_size(file: CandidateFile) -> int:
    """Projected entry length: the file header plus one character per byte."""
    return len(FILE_HEADER.format(path=file.relative_path)) + file.size_bytes


def entry_sizes(files: Sequence[CandidateFile], max_file_size: Optional[int] = None) -> List[int]:
    """Projected entry lengths in order, without entries over the per-file limit."""
    sizes = [entry_size(f) for f in files]
    if max_file_size is None:
        return sizes
    return [size for size in sizes if size <= max_file_size]


def count_chunks(sizes: Iterable[int], max_chunk_size: int) -> int:
    """Greedy bin fill over sizes, in order. Like the packer, sizes over a chunk are skipped."""
    count = 0
    running = 0
    for size in sizes:
        if size > max_chunk_size:
            continue
        if count == 0:
            count = 1
            running = size
        elif running + size > max_chunk_size:
            count += 1
            running = size
        else:
            running += size
    return count


def estimate_chunks(files: Sequence[CandidateFile], max_chunk_size: int,
                    threshold: int = DEFAULT_CHUNK_THRESHOLD,
                    max_file_size: Optional[int] = None) -> BudgetEstimate:
    """
    Project how many chunks the files would produce.

    The projection is exact for ASCII content packed in the same order;
    multi-byte text makes it an upper bound on the characters.

    Args:
        files: Candidates, in the order they will be packed
        max_chunk_size: Maximum characters per chunk
        threshold: Chunk count above which a decision is required
        max_file_size: Maximum entry length; None means no per-file limit

    Returns:
        BudgetEstimate with the chunk count and total entry characters
    """
    sizes = entry_sizes(files, max_file_size)
    packed = [size for size in sizes if size <= max_chunk_size]
    return BudgetEstimate(
        estimated_chunk_count=count_chunks(packed, max_chunk_size),
        total_size=sum(packed),
        file_count=len(files),
        max_chunk_size=max_chunk_size,
        threshold=threshold,
        max_file_size=max_file_size,
        oversized_count=len(files) - len(packed),
    )


def filter_smallest(files: Sequence[CandidateFile], budget_chars: int) -> List[CandidateFile]:
    """
    Keep the smallest non-library files that fit in a character budget.

    Files are taken in ascending size order (ties by path) and selection
    stops at the first file that would exceed the budget. The survivors
    keep their original relative order.
    """
    eligible = [f for f in files if not is_library_path(f.relative_path)]
    eligible.sort(key=lambda f: (f.size_bytes, f.relative_path))

    chosen = set()
    total = 0
    for f in eligible:
        if total + f.size_bytes > budget_chars:
            break
        chosen.add(f.relative_path)
        total += f.size_bytes

    return [f for f in files if f.relative_path in chosen]


def expanded_chunk_size(files: Sequence[CandidateFile], estimate: BudgetEstimate) -> int:
    """Smallest doubling of the even-split size that fits the threshold."""
    threshold = max(1, estimate.threshold)
    sizes = entry_sizes(files, estimate.max_file_size)
    size = max(estimate.max_chunk_size, math.ceil(sum(sizes) / threshold), 1)
    while count_chunks(sizes, size) > threshold:
        size *= 2
    return size


# ============================================================================
# POLICIES
# ============================================================================

@dataclass(frozen=True)
class BudgetDecision:
    """The operator's answer at the budget decision point."""
    action: str
    max_chunk_size: Optional[int] = None         # EXPAND: explicit new size
    blacklist_patterns: Tuple[str, ...] = ()     # EDIT_RULES: patterns to persist

    def __post_init__(self):
        if self.action not in ACTIONS:
            raise ValueError(f"Unknown budget action '{self.action}'. Expected one of: {', '.join(ACTIONS)}")


BudgetPolicy = Callable[[BudgetEstimate], BudgetDecision]


def fixed_policy(action: str, blacklist_patterns: Iterable[str] = ()) -> BudgetPolicy:
    """A policy that always answers with the same action."""
    decision = BudgetDecision(action, blacklist_patterns=tuple(blacklist_patterns))
    return lambda estimate: decision


def prompt_policy(input_func: Callable[[str], str] = input, output: Optional[TextIO] = None) -> BudgetPolicy:
    """
    A policy that asks the operator on the terminal.

    Answers: p(roceed), s(mallest), e(xpand), b(lacklist) followed by
    patterns, a(bort). Anything unrecognised aborts.
    """
    def policy(estimate: BudgetEstimate) -> BudgetDecision:
        out = output or sys.stderr
        estimate.print_report(out)
        print(f"About {estimate.estimated_chunk_count} chunks would be written. Choose:", file=out)
        print("  [p] proceed with all files", file=out)
        print(f"  [s] keep only the smallest files (~{SMALLEST_FILES_TOKEN_BUDGET:,} tokens)", file=out)
        print("  [e] expand the chunk size", file=out)
        print("  [b PATTERN ...] add blacklist patterns to .flatten_ignore and stop", file=out)
        print("  [a] abort", file=out)
        try:
            answer = input_func("> ").strip()
        except EOFError:
            answer = ""

        choice, _, rest = answer.partition(" ")
        choice = choice.lower()
        if choice in ("p", PROCEED):
            return BudgetDecision(PROCEED)
        if choice in ("s", SMALLEST):
            return BudgetDecision(SMALLEST)
        if choice in ("e", EXPAND):
            return BudgetDecision(EXPAND)
        if choice in ("b", "blacklist", EDIT_RULES) and rest.split():
            return BudgetDecision(EDIT_RULES, blacklist_patterns=tuple(rest.split()))
        return BudgetDecision(ABORT)

    return policy


def negotiate_budget(
    files: Sequence[CandidateFile],
    max_chunk_size: int,
    root_path: Path,
    policy: Optional[BudgetPolicy] = None,
    threshold: int = DEFAULT_CHUNK_THRESHOLD,
    chars_per_token: int = CHARS_PER_TOKEN,
    observer: Optional[ProgressObserver] = None,
    max_file_size: Optional[int] = None,
) -> Tuple[List[CandidateFile], int]:
    """
    Estimate the output and, if it is too fragmented, apply a policy.

    Args:
        files: Candidates in packing order
        max_chunk_size: Configured characters per chunk
        root_path: Project root (EDIT_RULES writes `.flatten_ignore` there)
        policy: Decision callback; without one an over-threshold run stops
        threshold: Chunk count above which the policy is consulted
        chars_per_token: Ratio used for the SMALLEST token budget
        observer: Notified with the estimate
        max_file_size: Per-file limit, so skipped entries are not counted

    Returns:
        (files to pack, chunk size to pack with)

    Raises:
        BudgetAborted: On ABORT, after EDIT_RULES, or when no policy was given
    """
    estimate = estimate_chunks(files, max_chunk_size, threshold, max_file_size)
    notify(observer, ESTIMATED,
           f"~{estimate.estimated_chunk_count} chunk(s) for {estimate.total_size:,} characters")

    if not estimate.exceeds_threshold:
        return list(files), max_chunk_size

    if policy is None:
        estimate.print_report()
        raise BudgetAborted(f"About {estimate.estimated_chunk_count} chunks would be written "
                            f"(threshold {threshold}) and no budget policy was chosen.")

    decision = policy(estimate)
    print(f"Budget decision: {decision.action} "
          f"({estimate.estimated_chunk_count} chunks > threshold {threshold})", file=sys.stderr)

    if decision.action == PROCEED:
        return list(files), max_chunk_size

    if decision.action == SMALLEST:
        kept = filter_smallest(files, SMALLEST_FILES_TOKEN_BUDGET * chars_per_token)
        print(f"Keeping the {len(kept)} smallest non-library files "
              f"(dropped {len(files) - len(kept)})", file=sys.stderr)
        return kept, max_chunk_size

    if decision.action == EXPAND:
        new_size = decision.max_chunk_size or expanded_chunk_size(files, estimate)
        print(f"Chunk size expanded: {max_chunk_size:,} -> {new_size:,} characters", file=sys.stderr)
        return list(files), new_size

    if decision.action == EDIT_RULES:
        added = append_blacklist_patterns(root_path, decision.blacklist_patterns)
        if added:
            print(f"Added blacklist patterns to .flatten_ignore: {added}", file=sys.stderr)
        raise BudgetAborted("Rules updated; run again to apply the new blacklist.")

    raise BudgetAborted(f"Aborted: about {estimate.estimated_chunk_count} chunks would be written.")
