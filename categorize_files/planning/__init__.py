"""
Planning module for the category-based file sorter.

Provides:
- Plan data types
- Dry-run plan builder (classification, threshold routing, collision-free names)
"""

from .types import (
    Plan,
    PlanStats,
    CreateDir,
    RenameDir,
    MoveItem,
    PlanError,
    ApplyProgress,
    REASON_CLASSIFIED,
    REASON_FALLBACK,
)
from .builder import (
    PlanBuilder,
    build_plan,
    expand_targets,
    build_filename_context,
)

__all__ = [
    "Plan",
    "PlanStats",
    "CreateDir",
    "RenameDir",
    "MoveItem",
    "PlanError",
    "ApplyProgress",
    "REASON_CLASSIFIED",
    "REASON_FALLBACK",
    "PlanBuilder",
    "build_plan",
    "expand_targets",
    "build_filename_context",
]
