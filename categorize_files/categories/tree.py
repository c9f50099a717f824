"""
Hierarchical category model.

Display names are the source of truth: every relPath is derived from the
chain of display names from the root down to the node and is recomputed
whenever the tree is reshaped or renamed. Exactly one node, the
"uncategorized" leaf, is marked required; it cannot be removed, renamed
or moved.
"""

from dataclasses import dataclass, field
from typing import Iterator

from ..paths import (
    normalize_rel_path,
    split_rel,
    join_rel,
    make_safe_name,
    get_file_name,
    is_valid_rel_path,
)
from ..llm.classifier import CategoryDef

UNCATEGORIZED_REL_PATH = "_Uncategorized"
UNCATEGORIZED_DISPLAY = "Uncategorized"
NEW_CATEGORY_NAME = "NewCategory"


@dataclass
class CategoryNode:
    """A single category folder."""
    rel_path: str
    display: str
    children: list["CategoryNode"] = field(default_factory=list)
    is_required: bool = False
    keywords: list[str] = field(default_factory=list)
    ext_filter: str | None = None
    ai_hint: str | None = None

    def walk(self) -> Iterator["CategoryNode"]:
        """Yield this node and all descendants, depth-first, parents first."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class ValidationReport:
    """Result of CategoryTree.validate()."""
    errors: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and not self.duplicates


class CategoryTree:
    """
    Owns the category nodes under a virtual root.

    The virtual root has an empty relPath and is never reported by
    flatten(), validate() or category_defs().
    """

    def __init__(self):
        self.root = CategoryNode(rel_path="", display="")
        self.root.children.append(CategoryNode(
            rel_path=UNCATEGORIZED_REL_PATH,
            display=UNCATEGORIZED_DISPLAY,
            is_required=True,
        ))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def uncategorized(self) -> CategoryNode:
        return next(n for n in self.root.children if n.is_required)

    def flatten(self) -> list[CategoryNode]:
        """All nodes except the virtual root, parents before children."""
        return [n for n in self.root.walk() if n is not self.root]

    def is_empty(self) -> bool:
        """True when the tree holds nothing but the required node."""
        return len(self.root.children) == 1 and not self.root.children[0].children

    def find_by_rel_path(self, rel: str) -> CategoryNode | None:
        norm = normalize_rel_path(rel).lower()
        if not norm:
            return None
        for node in self.flatten():
            if normalize_rel_path(node.rel_path).lower() == norm:
                return node
        return None

    def contains_rel_path(self, rel: str) -> bool:
        return self.find_by_rel_path(rel) is not None

    def _find_parent(self, target: CategoryNode) -> CategoryNode | None:
        for node in self.root.walk():
            if any(c is target for c in node.children):
                return node
        return None

    def category_defs(self) -> list[CategoryDef]:
        """Category list handed to the classifier (required node excluded)."""
        return [
            CategoryDef(
                rel_path=normalize_rel_path(n.rel_path),
                display=n.display,
                keywords=list(n.keywords),
                ext_filter=n.ext_filter,
                ai_hint=n.ai_hint,
            )
            for n in self.flatten()
            if not n.is_required and n.rel_path.strip()
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_by_rel_path(
        self,
        rel_path: str,
        display: str | None = None,
        keywords: list[str] | None = None,
        ext_filter: str | None = None,
        ai_hint: str | None = None,
        recompute: bool = True
    ) -> CategoryNode | None:
        """
        Add a category, creating any missing intermediate nodes.

        Intermediate nodes take their segment name as display. The leaf
        takes `display` (or its segment name). relPaths are recomputed
        afterwards unless `recompute` is False; bulk loaders pass False and
        recompute once at the end so later records still match the stored
        segment names.

        Returns:
            The leaf node, or None if rel_path is empty or points below
            the required node (which stays a leaf).
        """
        parts = split_rel(rel_path)
        if not parts:
            return None

        current = self.root
        for name in parts:
            if current.is_required:
                return None
            nxt = next(
                (c for c in current.children if get_file_name(c.rel_path).lower() == name.lower()),
                None,
            )
            if nxt is None:
                nxt = CategoryNode(rel_path=join_rel(current.rel_path, name), display=name)
                current.children.append(nxt)
            current = nxt

        if not current.is_required:
            if display is not None and display.strip():
                current.display = display.strip()
            if keywords is not None:
                current.keywords = list(keywords)
            if ext_filter is not None:
                current.ext_filter = ext_filter
            if ai_hint is not None:
                current.ai_hint = ai_hint

        if recompute:
            self.recompute_rel_paths()
        return current

    def remove_by_rel_path(self, rel: str) -> bool:
        """Remove a node and its subtree. False for the required node or unknown paths."""
        node = self.find_by_rel_path(rel)
        if node is None or node.is_required:
            return False
        parent = self._find_parent(node)
        parent.children = [c for c in parent.children if c is not node]
        return True

    def rename(self, rel: str, display: str) -> bool:
        """Change a node's display name; its subtree's relPaths follow."""
        node = self.find_by_rel_path(rel)
        if node is None or node.is_required:
            return False
        node.display = (display or "").strip()
        self.recompute_rel_paths()
        return True

    def move(self, rel: str, new_parent_rel: str = "") -> bool:
        """
        Re-parent a node. An empty new_parent_rel moves it to the top level.

        Fails for the required node, unknown paths, moves under the
        required node and moves into the node's own subtree.
        """
        node = self.find_by_rel_path(rel)
        if node is None or node.is_required:
            return False

        if normalize_rel_path(new_parent_rel):
            new_parent = self.find_by_rel_path(new_parent_rel)
            if new_parent is None or new_parent.is_required or any(n is new_parent for n in node.walk()):
                return False
        else:
            new_parent = self.root

        old_parent = self._find_parent(node)
        old_parent.children = [c for c in old_parent.children if c is not node]
        new_parent.children.append(node)
        self.recompute_rel_paths()
        return True

    def merge(self, other: "CategoryTree") -> int:
        """
        Add every category of `other` whose relPath is not present yet.

        Returns:
            Number of categories added.
        """
        added = 0
        for node in other.flatten():
            if node.is_required or not node.rel_path.strip():
                continue
            if self.contains_rel_path(node.rel_path):
                continue
            if self.add_by_rel_path(
                node.rel_path, node.display,
                keywords=node.keywords, ext_filter=node.ext_filter, ai_hint=node.ai_hint,
                recompute=False,
            ) is not None:
                added += 1
        self.recompute_rel_paths()
        return added

    def recompute_rel_paths(self) -> None:
        """
        Regenerate every non-required relPath from the display chain.

        Walks root-first. Sibling collisions (case-insensitive) get `_1`,
        `_2`, ... appended to the safe name.
        """
        taken: set[str] = set()

        def walk(node: CategoryNode, parent_rel: str) -> None:
            if node.is_required:
                node.rel_path = normalize_rel_path(node.rel_path) or UNCATEGORIZED_REL_PATH
                taken.add(node.rel_path.lower())
                for child in node.children:
                    walk(child, node.rel_path)
                return

            safe = make_safe_name(node.display if node.display.strip() else NEW_CATEGORY_NAME)
            rel = join_rel(parent_rel, safe)
            i = 1
            while rel.lower() in taken:
                rel = join_rel(parent_rel, f"{safe}_{i}")
                i += 1

            node.rel_path = rel
            taken.add(rel.lower())
            for child in node.children:
                walk(child, rel)

        for child in self.root.children:
            walk(child, "")

    def validate(self) -> ValidationReport:
        """
        Report structural problems without raising.

        Checks every node except the virtual root and the required node
        for an empty or invalid relPath and for duplicates.
        """
        report = ValidationReport()
        seen: set[str] = set()

        for node in self.flatten():
            if node.is_required:
                continue
            if not node.rel_path.strip():
                report.errors.append(f"Empty relPath: {node.display}")
                continue

            norm = normalize_rel_path(node.rel_path)
            if not is_valid_rel_path(norm):
                report.errors.append(f"Invalid relPath: {node.rel_path}")

            key = norm.lower()
            if key in seen:
                report.duplicates.append(norm)
            seen.add(key)

        return report
