"""
File Importance Scorer.

A cheap heuristic over size, path, extension and recency. Scores are
integers in [0, 100]; higher means keep first when the budget is tight.
"""

import time
from typing import List, Optional, Sequence

from .collector import CandidateFile


BASE_SCORE = 50

KB = 1024

# (upper bound in bytes, adjustment); first match wins, checked in order
SIZE_BANDS = (
    (10 * KB, 20),
    (50 * KB, 10),
)
LARGE_FILE_BYTES = 500 * KB
LARGE_FILE_PENALTY = -20

MAIN_CODE_EXTENSIONS = frozenset({
    ".py", ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".java", ".kt",
    ".kts", ".c", ".cpp", ".h", ".hpp", ".cs", ".go", ".rs", ".rb", ".php",
    ".swift", ".m", ".mm", ".scala", ".dart", ".lua", ".groovy",
})

CONFIG_EXTENSIONS = frozenset({
    ".json", ".yml", ".yaml", ".toml", ".xml", ".ini", ".conf", ".config",
    ".env", ".gradle",
})

RECENT_SECONDS = 7 * 24 * 60 * 60


def score_file(file: CandidateFile, now: Optional[float] = None) -> int:
    """
    Score a candidate file.

    Args:
        file: Candidate to score
        now: Reference time for the recency bonus (defaults to time.time())

    Returns:
        Integer score clamped to [0, 100]

    Algorithm:
        1. Start at 50
        2. Size: +20 under 10KB, else +10 under 50KB, else -20 over 500KB
        3. Path: +15 for src/ or lib/, -10 for test/ or spec/,
           -5 for example/ or demo/ (independent)
        4. Extension: +10 main code, +5 config
        5. +10 if modified within the last 7 days
    """
    if now is None:
        now = time.time()

    score = BASE_SCORE

    for limit, adjustment in SIZE_BANDS:
        if file.size_bytes < limit:
            score += adjustment
            break
    else:
        if file.size_bytes > LARGE_FILE_BYTES:
            score += LARGE_FILE_PENALTY

    path = file.relative_path.lower()
    if "src/" in path or "lib/" in path:
        score += 15
    if "test/" in path or "spec/" in path:
        score -= 10
    if "example/" in path or "demo/" in path:
        score -= 5

    extension = file.extension
    if extension in MAIN_CODE_EXTENSIONS:
        score += 10
    if extension in CONFIG_EXTENSIONS:
        score += 5

    if now - file.modified_time <= RECENT_SECONDS:
        score += 10

    return max(0, min(100, score))


def score_files(files: Sequence[CandidateFile], now: Optional[float] = None) -> List[CandidateFile]:
    """Attach a score to every file, keeping the input order."""
    if now is None:
        now = time.time()
    return [f.with_score(score_file(f, now)) for f in files]


def rank_files(files: Sequence[CandidateFile]) -> List[CandidateFile]:
    """Sort scored files by score (DESC); ties keep their collection order."""
    return sorted(files, key=lambda f: -(f.importance_score or 0))
