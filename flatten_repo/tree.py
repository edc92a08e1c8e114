"""
Directory Tree Renderer.

Turns a flat list of relative paths into a tree drawing:

    ├─ a
    │  ├─ b.js
    │  └─ c.js
    └─ d.js

Children are sorted at every level; the input order does not matter.
"""

from typing import Dict, Iterable, List


Tree = Dict[str, "Tree"]

BRANCH = "├─ "
LAST_BRANCH = "└─ "
PIPE = "│  "
SPACE = "   "


def build_tree(relative_paths: Iterable[str]) -> Tree:
    """Nest paths into a dict keyed by path segment."""
    tree: Tree = {}
    for path in relative_paths:
        node = tree
        for part in path.replace("\\", "/").split("/"):
            if part:
                node = node.setdefault(part, {})
    return tree


def _render_level(node: Tree, indent: str) -> List[str]:
    lines = []
    names = sorted(node)
    for i, name in enumerate(names):
        is_last = i == len(names) - 1
        lines.append(f"{indent}{LAST_BRANCH if is_last else BRANCH}{name}")
        children = node[name]
        if children:
            lines.extend(_render_level(children, indent + (SPACE if is_last else PIPE)))
    return lines


def render_tree(relative_paths: Iterable[str]) -> str:
    """Render paths as a multi-line tree drawing ('' for no paths)."""
    return "\n".join(_render_level(build_tree(relative_paths), ""))
