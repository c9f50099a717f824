"""
Category tree and its persistence.
"""

from .tree import (
    CategoryNode,
    CategoryTree,
    ValidationReport,
    UNCATEGORIZED_REL_PATH,
)
from .repository import (
    save_categories,
    load_categories,
    import_from_base,
    parse_keywords,
)

__all__ = [
    "CategoryNode",
    "CategoryTree",
    "ValidationReport",
    "UNCATEGORIZED_REL_PATH",
    "save_categories",
    "load_categories",
    "import_from_base",
    "parse_keywords",
]
