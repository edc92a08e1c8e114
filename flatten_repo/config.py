"""
Host configuration for a flattening run.

FlattenConfig is built once (from defaults, an optional JSON settings file
and CLI overrides) and passed explicitly into the engine.
"""

import json
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


CONFIG_FILENAME = ".flatten_repo_config.json"
OUTPUT_DIR_NAME = "flattened"

DEFAULT_INCLUDE_EXTENSIONS = (
    ".c", ".cpp", ".h", ".hpp", ".cs", ".java", ".kt", ".kts", ".py", ".rb",
    ".rs", ".go", ".php", ".swift", ".m", ".mm", ".ts", ".tsx", ".js", ".jsx",
    ".mjs", ".cjs", ".lua", ".sh", ".bash", ".ps1", ".pl", ".r", ".sql",
    ".dart", ".scala", ".groovy", ".html", ".htm", ".css", ".scss", ".sass",
    ".less", ".json", ".yml", ".yaml", ".xml", ".env", ".ini", ".conf",
    ".config", ".toml", ".gradle", ".babelrc", ".eslintrc", ".prettierrc",
    ".stylelintrc", ".npmrc", ".editorconfig", ".md", ".rst", ".txt",
    ".gitignore", ".gitattributes",
)

DEFAULT_IGNORE_DIRS = (
    "node_modules", "bower_components", "vendor", "dist", "build", "out",
    "target", "tmp", "temp", ".cache", "__pycache__", ".git", ".hg", ".svn",
    ".vscode", ".idea", ".pnp", ".jest", ".mocha", ".nyc_output",
    "test-results", "reports", ".gradle", "android", "ios",
)

ORDERS = ("collection", "importance")

# JSON key -> FlattenConfig field
_JSON_KEYS = {
    "includeExtensions": "include_extensions",
    "ignoreDirs": "ignore_dirs",
    "useGitIgnore": "use_gitignore",
    "maxChunkSize": "max_chunk_size",
    "globalWhitelist": "global_whitelist",
    "globalBlacklist": "global_blacklist",
    "order": "order",
    "profile": "profile",
    "chunkThreshold": "chunk_threshold",
    "skipHiddenDirs": "skip_hidden_dirs",
}

_TUPLE_FIELDS = {"include_extensions", "ignore_dirs", "global_whitelist", "global_blacklist"}
_INT_FIELDS = {"max_chunk_size", "chunk_threshold"}
_STR_FIELDS = {"order", "profile"}
_BOOL_FIELDS = {"use_gitignore", "skip_hidden_dirs"}


@dataclass(frozen=True)
class FlattenConfig:
    """Immutable host settings for one run.

    Settings found in the rule document (maxTokenLimit, maxTokensPerFile, ...)
    live on RuleSettings; this struct covers what the host supplies.
    """
    include_extensions: Tuple[str, ...] = DEFAULT_INCLUDE_EXTENSIONS
    ignore_dirs: Tuple[str, ...] = DEFAULT_IGNORE_DIRS
    use_gitignore: Optional[bool] = None  # None = let the rule document decide
    max_chunk_size: int = 0               # characters; 0 = derive from token limit
    global_whitelist: Tuple[str, ...] = ()
    global_blacklist: Tuple[str, ...] = ()
    order: str = "collection"
    profile: str = "default"
    chunk_threshold: int = 10
    skip_hidden_dirs: bool = True         # directories named .* are never walked
    output_dir_name: str = OUTPUT_DIR_NAME
    overrides: Dict[str, Any] = field(default_factory=dict)  # rule settings forced by the host

    def with_overrides(self, **settings: Any) -> "FlattenConfig":
        """Return a copy whose rule settings are forced to the given values."""
        merged = dict(self.overrides)
        merged.update({k: v for k, v in settings.items() if v is not None})
        return replace(self, overrides=merged)


def load_config(config_path: Optional[Path]) -> FlattenConfig:
    """Loads host settings from a JSON file, falling back to defaults.

    A missing file yields the defaults silently. An unreadable or invalid
    file yields the defaults with a warning on stderr.
    """
    if not config_path or not config_path.is_file():
        return FlattenConfig()

    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        print(f"Warning: Could not read or parse {config_path}: {e}", file=sys.stderr)
        return FlattenConfig()

    if not isinstance(data, dict):
        print(f"Warning: {config_path} must contain a JSON object, using defaults.", file=sys.stderr)
        return FlattenConfig()

    values = {}
    for key, attr in _JSON_KEYS.items():
        if key not in data:
            continue
        value = data[key]
        if attr in _TUPLE_FIELDS:
            if not isinstance(value, list):
                print(f"Warning: '{key}' in {config_path} must be a list, ignoring.", file=sys.stderr)
                continue
            value = tuple(str(v) for v in value)
        elif attr in _INT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                print(f"Warning: '{key}' in {config_path} must be a non-negative integer, ignoring.",
                      file=sys.stderr)
                continue
        elif attr in _STR_FIELDS:
            if not isinstance(value, str):
                print(f"Warning: '{key}' in {config_path} must be a string, ignoring.", file=sys.stderr)
                continue
        elif attr in _BOOL_FIELDS and not isinstance(value, bool):
            print(f"Warning: '{key}' in {config_path} must be true or false, ignoring.", file=sys.stderr)
            continue
        values[attr] = value

    if values.get("order", "collection") not in ORDERS:
        print(f"Warning: unknown order '{values['order']}', using 'collection'.", file=sys.stderr)
        values.pop("order")

    try:
        return FlattenConfig(**values)
    except TypeError as e:
        print(f"Warning: Invalid settings in {config_path}: {e}", file=sys.stderr)
        return FlattenConfig()
