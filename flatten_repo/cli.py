"""
Command line front end for flatten_repo.
"""

import argparse
import signal
import sys
from dataclasses import replace
from pathlib import Path

from . import __version__
from .budget import ABORT, ACTIONS, EDIT_RULES, estimate_chunks, fixed_policy, parse_token_budget, prompt_policy
from .config import CONFIG_FILENAME, ORDERS, load_config
from .engine import flatten, prepare_candidates, resolve_limits
from .errors import BudgetAborted, EmptyResultError, FlattenCancelled
from .progress import CancellationToken, StderrProgress
from .rules import PROFILES, RULE_DOCUMENT, init_rule_document, load_rule_set

# Handle SIGPIPE gracefully for Unix pipe compatibility (e.g., flatten-repo . --dry-run | head)
try:
    signal.signal(signal.SIGPIPE, signal.SIG_DFL)
except AttributeError:
    pass  # Windows compatibility (SIGPIPE doesn't exist on Windows)

PROMPT = "prompt"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flatten-repo",
        description="Flatten a project into size-bounded text chunks for LLM context windows.",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=f"""
Examples:
  # Flatten the current directory into ./flattened/
  flatten-repo .

  # Bigger chunks, most important files first
  flatten-repo . --max-tokens 128k --order importance

  # Show what would be included without writing anything
  flatten-repo . --dry-run

  # Create a {RULE_DOCUMENT} template
  flatten-repo . --init-ignore
        """
    )

    parser.add_argument("--version", action="version", version=f"flatten-repo {__version__}")
    parser.add_argument("project_root", type=Path, nargs='?', default=Path("."),
                        help="The root directory of the project to flatten (default: current directory).")
    parser.add_argument("-c", "--config", type=Path, default=None,
                        help=f"Path to a JSON settings file.\nDefaults to <project_root>/{CONFIG_FILENAME}")
    parser.add_argument("--max-tokens", type=str, metavar="N",
                        help="Token limit per chunk (e.g., 50000, 50k, 1M). Overrides maxTokenLimit.")
    parser.add_argument("--max-file-tokens", type=str, metavar="N",
                        help="Token limit per file. Larger files are skipped. Overrides maxTokensPerFile.")
    parser.add_argument("--max-chunk-size", type=int, metavar="CHARS",
                        help="Characters per chunk. Takes precedence over the token limit.")
    parser.add_argument("--concurrency", type=int, metavar="N",
                        help="Files read in parallel per batch. Overrides maxConcurrentFiles.")
    parser.add_argument("--profile", choices=sorted(PROFILES),
                        help="Default token limit profile: " +
                             ", ".join(f"{k}={v:,}" for k, v in sorted(PROFILES.items())))
    parser.add_argument("--order", choices=ORDERS,
                        help="Pack files in 'collection' (traversal) or 'importance' (score) order.")
    parser.add_argument("--on-budget-exceeded", choices=[a for a in ACTIONS if a != EDIT_RULES] + [PROMPT],
                        default=None,
                        help="What to do when the output would exceed the chunk threshold\n"
                             "(default: prompt on a terminal, abort otherwise).")
    parser.add_argument("--threshold", type=int, metavar="N",
                        help="Chunk count that triggers the budget decision (default: 10).")
    parser.add_argument("--include-hidden", action="store_true",
                        help="Also walk directories whose name starts with '.'.")
    parser.add_argument("--no-gitignore", action="store_true",
                        help="Do not fold .gitignore patterns into the ignore rules.")
    parser.add_argument("--dry-run", action="store_true",
                        help="List candidate files with scores and the size estimate; write nothing.")
    parser.add_argument("--init-ignore", action="store_true",
                        help=f"Create a {RULE_DOCUMENT} template in the project root and exit.")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Do not print progress events.")
    return parser


def default_budget_action(stdin=None) -> str:
    """Ask on an interactive terminal; never proceed past the budget unattended."""
    stdin = stdin or sys.stdin
    try:
        interactive = stdin.isatty()
    except (AttributeError, ValueError):
        interactive = False
    return PROMPT if interactive else ABORT


def apply_arguments(config, args):
    """Layer CLI arguments over the loaded settings (CLI always wins)."""
    changes = {}
    if args.max_chunk_size is not None:
        changes["max_chunk_size"] = args.max_chunk_size
    if args.profile:
        changes["profile"] = args.profile
    if args.order:
        changes["order"] = args.order
    if args.threshold is not None:
        changes["chunk_threshold"] = args.threshold
    if args.no_gitignore:
        changes["use_gitignore"] = False
    if args.include_hidden:
        changes["skip_hidden_dirs"] = False
    config = replace(config, **changes)

    return config.with_overrides(
        maxTokenLimit=parse_token_budget(args.max_tokens) if args.max_tokens else None,
        maxTokensPerFile=parse_token_budget(args.max_file_tokens) if args.max_file_tokens else None,
        maxConcurrentFiles=args.concurrency,
    )


def dry_run(root_path: Path, config) -> None:
    """Print candidates (score, size, path) to stdout and the estimate to stderr."""
    rule_set = load_rule_set(root_path, config)
    max_chunk_size, max_file_size = resolve_limits(rule_set, config)
    files = prepare_candidates(root_path, config, rule_set)
    for f in files:
        print(f"[{f.importance_score:3d}] {f.size_bytes:>10,}  {f.relative_path}")
    estimate_chunks(files, max_chunk_size, config.chunk_threshold, max_file_size).print_report()


def main(argv=None):
    """Main entry point for the script."""
    parser = build_parser()
    args = parser.parse_args(argv)

    root_path = args.project_root
    if not root_path.is_dir():
        print(f"Error: Project root '{root_path}' is not a valid directory.", file=sys.stderr)
        sys.exit(1)

    if args.init_ignore:
        if init_rule_document(root_path):
            print(f"Created {root_path / RULE_DOCUMENT}", file=sys.stderr)
        else:
            print(f"{root_path / RULE_DOCUMENT} already exists, leaving it unchanged.", file=sys.stderr)
        return

    config = load_config(args.config or root_path / CONFIG_FILENAME)
    try:
        config = apply_arguments(config, args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.dry_run:
        dry_run(root_path, config)
        return

    action = args.on_budget_exceeded or default_budget_action()
    if action == PROMPT:
        policy = prompt_policy()
    else:
        policy = fixed_policy(action)

    token = CancellationToken()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())

    print(f"\nFlattening '{root_path}'...", file=sys.stderr)
    try:
        summary = flatten(
            root_path,
            config,
            budget_policy=policy,
            cancel_token=token,
            observer=None if args.quiet else StderrProgress(),
        )
    except FlattenCancelled as e:
        print(f"\n{e} No output was written.", file=sys.stderr)
        sys.exit(130)
    except BudgetAborted as e:
        print(f"\n{e}", file=sys.stderr)
        sys.exit(2)
    except EmptyResultError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    summary.print_report()
    print(f"\nFlattened {summary.packed} files into {len(summary.chunks)} chunk(s) "
          f"in /{config.output_dir_name} folder.", file=sys.stderr)


if __name__ == "__main__":  # pragma: no cover
    main()
