"""
Category-based File Sorter
==========================

A command-line tool that uses Google Gemini LLM to classify files into a
user-designed category tree under a base folder, previews the result as a
dry-run plan, and applies it with a reversible undo log.
"""

__version__ = "1.0.0"

from .categories import CategoryTree, CategoryNode, load_categories, save_categories, import_from_base
from .executor import PlanApplier, ApplyReport
from .planning import Plan, PlanBuilder, build_plan
from .workflow import WorkflowController, WorkflowState
from .utils import save_json, load_json

__all__ = [
    "CategoryTree",
    "CategoryNode",
    "load_categories",
    "save_categories",
    "import_from_base",
    "PlanApplier",
    "ApplyReport",
    "Plan",
    "PlanBuilder",
    "build_plan",
    "WorkflowController",
    "WorkflowState",
    "save_json",
    "load_json",
]
