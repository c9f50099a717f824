#!/usr/bin/env python3
"""
Category-based File Sorter - CLI Entry Point
=============================================

Usage:
    python -m categorize_files import /path/to/base -o categories.json
    python -m categorize_files validate categories.json
    python -m categorize_files plan ~/Downloads --base /path/to/base -o plan.json
    python -m categorize_files apply plan.json --base /path/to/base --undo-log undo.json
    python -m categorize_files undo undo.json
    python -m categorize_files run ~/Downloads --base /path/to/base
"""

import argparse
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from tqdm import tqdm

from .categories import CategoryTree, import_from_base, load_categories, save_categories
from .config import Settings, load_settings
from .errors import CancelToken, CancellationRequested, CategorizeError, FatalApplyError, ValidationError
from .executor import ApplyReport, PlanApplier
from .extraction import TextExtractor
from .index import IndexStore
from .llm import GEMINI_MODELS, GeminiClassifier
from .planning import Plan, PlanBuilder, ApplyProgress
from .planning.types import PHASE_DONE
from .undo import undo_log_from_dicts, undo_log_to_dicts, revert_all
from .utils import save_json, load_json, console, print_header, print_error, print_warning, print_success, print_info, print_plan_table
from .workflow import WorkflowController


class TqdmProgress:
    """Progress sink rendering one tqdm bar per apply phase."""

    def __init__(self):
        self._bar = None
        self._phase = None

    def __call__(self, progress: ApplyProgress) -> None:
        if progress.phase != self._phase:
            self.close()
            self._phase = progress.phase
            if progress.phase == PHASE_DONE:
                return
            self._bar = tqdm(total=progress.total, desc=progress.phase, unit="item")
        if self._bar is not None:
            self._bar.n = progress.done
            self._bar.set_postfix(errors=progress.errors)
            self._bar.refresh()

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


# =============================================================================
# Helpers
# =============================================================================

def _threshold_arg(value: str) -> float:
    try:
        threshold = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"must be a number, got {value!r}")
    if not 0.0 <= threshold <= 1.0:
        raise argparse.ArgumentTypeError(f"must be within [0, 1], got {threshold}")
    return threshold


def _settings_from_args(args) -> Settings:
    settings = load_settings()
    if getattr(args, "model", None):
        settings.gemini_model = args.model
    if getattr(args, "threshold", None) is not None:
        settings.threshold = args.threshold
    if getattr(args, "log_dir", None):
        settings.log_dir = args.log_dir
    return settings


def _open_index(args, settings: Settings) -> IndexStore | None:
    if getattr(args, "no_index", False):
        return None
    return IndexStore(settings.index_path)


def _resolve_base(base: Path) -> Path | None:
    base = base.expanduser().resolve()
    if not base.is_dir():
        print_error(f"Invalid directory: {base}")
        return None
    return base


def _load_tree(categories: Path | None, base: Path) -> CategoryTree:
    if categories is not None:
        print_info(f"Loading categories from {categories}")
        return load_categories(categories)
    print_info(f"Importing categories from folders under {base}")
    return import_from_base(base)


def _print_validation(tree: CategoryTree) -> bool:
    tree.recompute_rel_paths()
    report = tree.validate()
    for err in report.errors:
        print_error(err)
    for dup in report.duplicates:
        print_error(f"Duplicate category path: {dup}")
    return report.ok


def _print_report(report: ApplyReport) -> None:
    label = "Simulated" if report.simulate else "Applied"
    console.print(f"[INFO] {label}: {report.created_dirs} folders created, "
                  f"{report.moved} files moved, {report.failed} failed")
    for item, error in report.failures[:5]:
        console.print(f"  - {error}: {item}")
    if len(report.failures) > 5:
        console.print(f"  ... and {len(report.failures) - 5} more")


def _run_cancellable(func, cancel):
    """Run func on a worker thread; Ctrl+C calls cancel() instead of killing it."""
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(func)
        while True:
            try:
                return future.result()
            except KeyboardInterrupt:
                print_warning("Cancelling after the current step...")
                cancel()


def _confirm(question: str, assume_yes: bool = False) -> bool:
    if assume_yes:
        return True
    if not sys.stdin.isatty():
        print_warning("Non-interactive mode detected. Use --yes to confirm.")
        return False
    console.print(f"\n[bold yellow]{question} \\[y]es / \\[n]o[/bold yellow]")
    while True:
        choice = input("Choice: ").strip().lower()
        if choice in ['y', 'yes']:
            return True
        elif choice in ['n', 'no', '']:
            return False
        else:
            console.print("Invalid choice. Enter y or n")


# =============================================================================
# Subcommands
# =============================================================================

def cmd_import(args) -> int:
    """Import command - build categories from existing folders."""
    base = _resolve_base(args.base)
    if base is None:
        return 1

    tree = import_from_base(base)
    save_categories(tree, args.output)
    print_success(f"Imported {len(tree.flatten()) - 1} categories into {args.output}")
    return 0


def cmd_validate(args) -> int:
    """Validate command - check a categories file."""
    if not args.categories.exists():
        print_error(f"Categories file not found: {args.categories}")
        return 1

    tree = load_categories(args.categories)
    if not _print_validation(tree):
        return 1
    print_success(f"{len(tree.flatten())} categories OK")
    return 0


def cmd_plan(args) -> int:
    """Plan command - classify targets and write a dry-run plan."""
    base = _resolve_base(args.base)
    if base is None:
        return 1

    settings = _settings_from_args(args)
    tree = _load_tree(args.categories, base)
    if not _print_validation(tree):
        return 1

    builder = PlanBuilder(
        GeminiClassifier(settings.gemini_api_key, settings.gemini_model),
        extractor=TextExtractor(settings.max_text_bytes),
        index=_open_index(args, settings),
        threshold=settings.threshold,
        max_text_bytes=settings.max_text_bytes,
        log_dir=settings.log_dir,
    )

    with console.status("[bold green]Classifying files...[/bold green]"):
        plan = builder.build(args.targets, tree, base)

    print_plan_table(plan)
    save_json({"base": str(base), **plan.to_dict()}, args.output)
    print_info(f"Plan saved to {args.output}")
    return 0


def cmd_apply(args) -> int:
    """Apply command - execute (or simulate) a saved plan."""
    if not args.plan.exists():
        print_error(f"Plan file not found: {args.plan}")
        return 1

    data = load_json(args.plan)
    base_arg = args.base or (Path(data["base"]) if data.get("base") else None)
    if base_arg is None:
        print_error("No base directory specified (use --base)")
        return 1

    base = base_arg.expanduser().resolve()
    plan = Plan.from_dict(data)
    settings = _settings_from_args(args)
    index = None if args.simulate else _open_index(args, settings)

    applier = PlanApplier(base, index=index)
    token = CancelToken()
    progress = TqdmProgress()
    print_info(f"{'Simulating' if args.simulate else 'Applying'} {plan.stats.move_count} moves under {base}")

    exit_code = 0
    try:
        report = _run_cancellable(lambda: applier.apply(plan, progress, token, simulate=args.simulate), token.cancel)
        _print_report(report)
    except CancellationRequested:
        print_warning(f"Apply cancelled; {len(applier.undo_log)} steps were already applied")
        exit_code = 130
    except FatalApplyError as e:
        print_error(str(e))
        exit_code = 1
    finally:
        progress.close()

    if args.undo_log and applier.undo_log:
        save_json(undo_log_to_dicts(applier.undo_log), args.undo_log)
        print_info(f"Undo log saved to {args.undo_log}")

    if args.simulate:
        print_warning("This was a SIMULATION. No files were actually moved.")
    return exit_code


def cmd_undo(args) -> int:
    """Undo command - revert a saved undo log."""
    if not args.undo_log.exists():
        print_error(f"Undo log not found: {args.undo_log}")
        return 1

    try:
        entries = undo_log_from_dicts(load_json(args.undo_log))
    except (ValueError, TypeError) as e:
        print_error(f"Invalid undo log: {e}")
        return 1

    settings = _settings_from_args(args)
    reverted = revert_all(entries, _open_index(args, settings))
    if reverted == len(entries):
        print_success(f"Reverted {reverted} steps")
        return 0
    print_warning(f"Reverted {reverted} of {len(entries)} steps")
    return 1


def cmd_run(args) -> int:
    """Run command - full workflow: categories → dry run → apply."""
    base = _resolve_base(args.base)
    if base is None:
        return 1

    settings = _settings_from_args(args)
    controller = WorkflowController(
        GeminiClassifier(settings.gemini_api_key, settings.gemini_model),
        extractor=TextExtractor(settings.max_text_bytes),
        index=_open_index(args, settings),
        settings=settings,
    )

    print_header("Category-based File Sorter", f"Base: {base}\nModel: {settings.gemini_model}\n"
                                                f"Threshold: {settings.threshold}")

    try:
        controller.set_base_path(base)
        if args.categories:
            controller.load_categories(args.categories)
        controller.select_targets(args.targets)
        controller.decide_targets()

        # Step 1: Dry run
        console.print("\n[bold cyan][STEP 1] Classifying files (dry run)...[/bold cyan]")
        with console.status("[bold green]Classifying files...[/bold green]"):
            plan = controller.run_dry_run()
        print_plan_table(plan)

        if not plan.moves:
            print_success("Nothing to move - all files are already in place!")
            return 0
        if not _confirm("Proceed with this plan?", args.yes):
            console.print("[bold red]Plan cancelled[/bold red]")
            return 0

        # Step 2: Apply
        console.print("\n[bold cyan][STEP 2] Applying plan...[/bold cyan]")
        progress = TqdmProgress()
        try:
            report = _run_cancellable(lambda: controller.apply(progress), controller.cancel)
        except (CancellationRequested, FatalApplyError) as e:
            print_error(str(e))
            report = None
        finally:
            progress.close()

        if report is not None:
            _print_report(report)
        if report is None or report.failed:
            if controller.can_undo and _confirm("Undo the changes made so far?", False):
                reverted = controller.undo_all()
                print_info(f"Reverted {reverted} steps")
            return 1

        print_success("Operation Complete!")
        return 0

    except ValidationError as e:
        print_error(str(e))
        return 1
    except KeyboardInterrupt:
        print("\n[ABORT] Operation cancelled by user")
        return 130
    except CategorizeError as e:
        print_error(str(e))
        return 1


# =============================================================================
# Main
# =============================================================================

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Category-based File Sorter - sort files into category folders with LLM assistance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    model_choices = list(GEMINI_MODELS.keys())

    def add_classifier_args(p):
        p.add_argument("--model", type=str, default=None, choices=model_choices,
                       help="Gemini model to use (default: GEMINI_MODEL or flash)")
        p.add_argument("--threshold", type=_threshold_arg, default=None,
                       help="Minimum confidence for a category (default: 0.55)")
        p.add_argument("--log-dir", type=Path, default=None,
                       help="Folder for daily classification logs")

    def add_index_args(p):
        p.add_argument("--no-index", action="store_true",
                       help="Do not record classifications and moves in the index")

    # --- IMPORT command ---
    import_parser = subparsers.add_parser("import", help="Build categories from existing folders")
    import_parser.add_argument("base", type=Path, help="Classification base directory")
    import_parser.add_argument("-o", "--output", type=Path, default=Path("categories.json"),
                               help="Output categories file (default: categories.json)")
    import_parser.set_defaults(func=cmd_import)

    # --- VALIDATE command ---
    validate_parser = subparsers.add_parser("validate", help="Check a categories file")
    validate_parser.add_argument("categories", type=Path, help="Categories file to check")
    validate_parser.set_defaults(func=cmd_validate)

    # --- PLAN command ---
    plan_parser = subparsers.add_parser("plan", help="Classify files and write a dry-run plan")
    plan_parser.add_argument("targets", nargs="+", help="Files or folders to sort")
    plan_parser.add_argument("--base", type=Path, required=True, help="Classification base directory")
    plan_parser.add_argument("--categories", type=Path, default=None,
                             help="Categories file (default: import folders under --base)")
    plan_parser.add_argument("-o", "--output", type=Path, default=Path("plan.json"),
                             help="Output plan file (default: plan.json)")
    add_classifier_args(plan_parser)
    add_index_args(plan_parser)
    plan_parser.set_defaults(func=cmd_plan)

    # --- APPLY command ---
    apply_parser = subparsers.add_parser("apply", help="Apply a saved plan")
    apply_parser.add_argument("plan", type=Path, help="Plan file to apply")
    apply_parser.add_argument("--base", type=Path, default=None, help="Base directory (overrides plan)")
    apply_parser.add_argument("--simulate", action="store_true",
                              help="Walk the plan without modifying files")
    apply_parser.add_argument("--undo-log", type=Path, default=None,
                              help="Write the undo log to this file")
    add_index_args(apply_parser)
    apply_parser.set_defaults(func=cmd_apply)

    # --- UNDO command ---
    undo_parser = subparsers.add_parser("undo", help="Revert an applied plan from its undo log")
    undo_parser.add_argument("undo_log", type=Path, help="Undo log written by apply --undo-log")
    add_index_args(undo_parser)
    undo_parser.set_defaults(func=cmd_undo)

    # --- RUN command (full workflow) ---
    run_parser = subparsers.add_parser("run", help="Full workflow: categories → dry run → apply")
    run_parser.add_argument("targets", nargs="+", help="Files or folders to sort")
    run_parser.add_argument("--base", type=Path, required=True, help="Classification base directory")
    run_parser.add_argument("--categories", type=Path, default=None,
                            help="Categories file (default: import folders under --base)")
    run_parser.add_argument("--yes", "-y", action="store_true",
                            help="Apply without asking for confirmation")
    add_classifier_args(run_parser)
    add_index_args(run_parser)
    run_parser.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except (CategorizeError, ValueError) as e:
        print_error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
