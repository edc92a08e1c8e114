"""
flatten_repo - flatten a project into size-bounded text chunks.

Walks a project tree, applies layered include/exclude rules, and packs the
surviving files into chunk files with a directory-tree header, sized for
LLM context windows.
"""

__version__ = "0.12.1"
__author__ = "flatten-repo contributors"
__license__ = "MIT"

from .budget import BudgetDecision, BudgetEstimate, estimate_chunks, parse_token_budget
from .collector import CandidateFile, collect_files
from .config import FlattenConfig, load_config
from .engine import FlattenSummary, build_chunks, flatten
from .errors import BudgetAborted, EmptyResultError, FlattenCancelled, FlattenError
from .globs import compile_glob
from .packer import Chunk, FileEntry, pack
from .progress import CancellationToken, ProgressEvent, ProgressObserver
from .rules import RuleSet, load_rule_set, parse_rule_document
from .scoring import score_file
from .tree import render_tree

__all__ = [
    "BudgetAborted", "BudgetDecision", "BudgetEstimate", "CancellationToken",
    "CandidateFile", "Chunk", "EmptyResultError", "FileEntry", "FlattenCancelled",
    "FlattenConfig", "FlattenError", "FlattenSummary", "ProgressEvent",
    "ProgressObserver", "RuleSet", "build_chunks", "collect_files", "compile_glob",
    "estimate_chunks", "flatten", "load_config", "load_rule_set", "pack",
    "parse_rule_document", "parse_token_budget", "render_tree", "score_file",
]
