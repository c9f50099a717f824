"""
Category persistence and folder import.

Categories are stored as a flat JSON list of
{rel_path, display, keywords, ext_filter, ai_hint} records. The required
"uncategorized" node is never written; it is recreated on load.
"""

import json
import os
import re
from collections import deque
from pathlib import Path

from ..paths import normalize_rel_path, to_rel_from_base
from ..utils import save_json, load_json, print_warning
from .tree import CategoryTree


def parse_keywords(value) -> list[str]:
    """
    Accept keywords as a list, a JSON array string or a separated string.

    Separators: comma, ideographic comma, semicolon.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(k).strip() for k in value if k is not None and str(k).strip()]

    text = str(value).strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            return parse_keywords(json.loads(text))
        except json.JSONDecodeError:
            pass
    return [p.strip() for p in re.split(r"[,、;]", text) if p.strip()]


def tree_to_records(tree: CategoryTree) -> list[dict]:
    records = []
    for node in tree.flatten():
        if node.is_required or not node.rel_path.strip():
            continue
        records.append({
            "rel_path": normalize_rel_path(node.rel_path),
            "display": node.display,
            "keywords": list(node.keywords),
            "ext_filter": node.ext_filter,
            "ai_hint": node.ai_hint,
        })
    return records


def tree_from_records(records: list[dict]) -> CategoryTree:
    tree = CategoryTree()
    for rec in records:
        rel = normalize_rel_path(rec.get("rel_path", ""))
        if not rel:
            continue
        tree.add_by_rel_path(
            rel,
            rec.get("display") or None,
            keywords=parse_keywords(rec.get("keywords")),
            ext_filter=rec.get("ext_filter") or None,
            ai_hint=rec.get("ai_hint") or None,
            recompute=False,
        )
    tree.recompute_rel_paths()
    return tree


def save_categories(tree: CategoryTree, path: Path) -> None:
    """Write the tree as a flat record list."""
    save_json(tree_to_records(tree), Path(path))


def load_categories(path: Path) -> CategoryTree:
    """
    Load a tree from a flat record list.

    A missing file yields a tree containing only the required node.

    Raises:
        ValueError: If the file is not a JSON list.
    """
    path = Path(path)
    if not path.exists():
        return CategoryTree()
    data = load_json(path)
    if not isinstance(data, list):
        raise ValueError(f"Category file must contain a JSON list: {path}")
    return tree_from_records([r for r in data if isinstance(r, dict)])


def import_from_base(base_path: Path) -> CategoryTree:
    """
    Seed a tree from the folders that already exist under base_path.

    Breadth-first; hidden (dot) folders and symlinks are skipped, and
    unreadable folders are skipped with a warning.
    """
    tree = CategoryTree()
    base_path = Path(base_path)
    if not base_path.is_dir():
        return tree

    queue = deque([base_path])
    while queue:
        current = queue.popleft()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name.lower())
        except OSError as e:
            print_warning(f"Skipping unreadable folder {current}: {e}")
            continue

        for entry in entries:
            if entry.name.startswith("."):
                continue
            try:
                if entry.is_symlink() or not entry.is_dir():
                    continue
            except OSError:
                continue

            rel = to_rel_from_base(base_path, entry.path)
            if not rel:
                continue
            tree.add_by_rel_path(rel, entry.name, recompute=False)
            queue.append(Path(entry.path))

    tree.recompute_rel_paths()
    return tree
