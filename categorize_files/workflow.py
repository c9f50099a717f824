"""
Workflow state machine for one sorting session.

SelectTargets -> Design -> DryRunPreview -> Applying -> SelectTargets
(on success) or Design (on cancellation or failure). A single busy flag
serializes long-running commands; a second one started while busy is
rejected with WorkflowBusyError.
"""

import os
import threading
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from .categories import CategoryTree, ValidationReport, import_from_base, load_categories, save_categories
from .config import Settings
from .errors import (
    CancelToken,
    InvalidTransitionError,
    ValidationError,
    WorkflowBusyError,
)
from .executor import PlanApplier, ApplyReport, ProgressSink
from .index import IndexStore
from .llm.classifier import Classifier
from .paths import same_volume
from .planning import Plan, PlanBuilder
from .planning.builder import Extractor
from .utils import print_info


class WorkflowState(Enum):
    SELECT_TARGETS = "select_targets"
    DESIGN = "design"
    DRY_RUN_PREVIEW = "dry_run_preview"
    APPLYING = "applying"


class WorkflowController:
    """
    Gates target selection, tree editing, dry runs and apply.

    Args:
        classifier: Classifier used for dry runs.
        extractor: Optional text extractor for dry runs.
        index: Optional index store shared by builder and applier.
        settings: Threshold, text cap and log folder.
        volume_check: Same-volume predicate handed to the applier.
    """

    def __init__(
        self,
        classifier: Classifier,
        extractor: Extractor | None = None,
        index: IndexStore | None = None,
        settings: Settings | None = None,
        volume_check=same_volume,
    ):
        self.classifier = classifier
        self.extractor = extractor
        self.index = index
        self.settings = settings or Settings()
        self.volume_check = volume_check

        self.state = WorkflowState.SELECT_TARGETS
        self.base_path: Path | None = None
        self.tree = CategoryTree()
        self.targets: list[str] = []
        self.plan: Plan | None = None
        self.applier: PlanApplier | None = None
        self.last_report: ApplyReport | None = None

        self._busy_lock = threading.Lock()
        self._cancel_token: CancelToken | None = None

    # ------------------------------------------------------------------
    # Gating helpers
    # ------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self._busy_lock.locked()

    @property
    def threshold(self) -> float:
        return self.settings.threshold

    @property
    def can_undo(self) -> bool:
        return self.applier is not None and bool(self.applier.undo_log)

    @contextmanager
    def _busy(self):
        if not self._busy_lock.acquire(blocking=False):
            raise WorkflowBusyError("Another operation is already running")
        try:
            yield
        finally:
            self._busy_lock.release()

    def _require_idle(self) -> None:
        if self.is_busy:
            raise WorkflowBusyError("Another operation is already running")

    def _require_state(self, *states: WorkflowState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransitionError(f"Not allowed in state '{self.state.value}' (needs: {allowed})")

    def _require_base(self) -> Path:
        if self.base_path is None:
            raise InvalidTransitionError("Choose a classification base path first")
        return self.base_path

    # ------------------------------------------------------------------
    # SelectTargets
    # ------------------------------------------------------------------

    def set_base_path(self, base_path: str | Path) -> None:
        """Choose the base path. The category tree starts over."""
        self._require_idle()
        self._require_state(WorkflowState.SELECT_TARGETS, WorkflowState.DESIGN)
        self.base_path = Path(os.path.abspath(base_path))
        self.tree = CategoryTree()
        self.plan = None

    def select_targets(self, targets: list[str | Path]) -> None:
        self._require_idle()
        self._require_state(WorkflowState.SELECT_TARGETS)
        self.targets = [str(t) for t in targets if str(t).strip()]

    def decide_targets(self) -> int:
        """
        Move to Design.

        On first entry (tree holds only the required node) with a base
        path chosen, the existing folders under it are imported.

        Returns:
            Number of categories imported.
        """
        self._require_state(WorkflowState.SELECT_TARGETS)
        with self._busy():
            imported = 0
            if self.base_path is not None and self.tree.is_empty():
                imported = self.tree.merge(import_from_base(self.base_path))
                if imported:
                    print_info(f"Imported {imported} categories from {self.base_path}")
            self.state = WorkflowState.DESIGN
            return imported

    # ------------------------------------------------------------------
    # Design
    # ------------------------------------------------------------------

    def back_to_select_targets(self) -> None:
        self._require_idle()
        self._require_state(WorkflowState.DESIGN, WorkflowState.DRY_RUN_PREVIEW)
        self.plan = None
        self.state = WorkflowState.SELECT_TARGETS

    def back_to_design(self) -> None:
        self._require_idle()
        self._require_state(WorkflowState.DRY_RUN_PREVIEW)
        self.plan = None
        self.state = WorkflowState.DESIGN

    def import_from_base(self) -> int:
        """Merge the base path's folder structure into the tree."""
        self._require_state(WorkflowState.DESIGN)
        base = self._require_base()
        with self._busy():
            return self.tree.merge(import_from_base(base))

    def add_category(self, rel_path: str, display: str | None = None, **attrs):
        self._require_idle()
        self._require_state(WorkflowState.DESIGN)
        return self.tree.add_by_rel_path(rel_path, display, **attrs)

    def rename_category(self, rel_path: str, display: str) -> bool:
        self._require_idle()
        self._require_state(WorkflowState.DESIGN)
        return self.tree.rename(rel_path, display)

    def remove_category(self, rel_path: str) -> bool:
        self._require_idle()
        self._require_state(WorkflowState.DESIGN)
        return self.tree.remove_by_rel_path(rel_path)

    def move_category(self, rel_path: str, new_parent_rel: str = "") -> bool:
        self._require_idle()
        self._require_state(WorkflowState.DESIGN)
        return self.tree.move(rel_path, new_parent_rel)

    def save_categories(self, path: str | Path) -> None:
        self._require_idle()
        self.tree.recompute_rel_paths()
        save_categories(self.tree, Path(path))

    def load_categories(self, path: str | Path) -> None:
        self._require_idle()
        self._require_state(WorkflowState.SELECT_TARGETS, WorkflowState.DESIGN)
        self.tree = load_categories(Path(path))

    def validate(self) -> ValidationReport:
        """Recompute relPaths, then report problems without raising."""
        self._require_idle()
        self.tree.recompute_rel_paths()
        return self.tree.validate()

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    def run_dry_run(self, cancel_token: CancelToken | None = None) -> Plan:
        """
        Classify the targets and compute a Plan without touching disk.

        Raises:
            ValidationError: If the tree does not validate; state stays Design.
        """
        self._require_state(WorkflowState.DESIGN)
        base = self._require_base()

        with self._busy():
            self.tree.recompute_rel_paths()
            report = self.tree.validate()
            if not report.ok:
                raise ValidationError(report)

            builder = PlanBuilder(
                self.classifier,
                extractor=self.extractor,
                index=self.index,
                threshold=self.settings.threshold,
                max_text_bytes=self.settings.max_text_bytes,
                log_dir=self.settings.log_dir,
            )
            self.plan = builder.build(self.targets, self.tree, base, cancel_token)
            self.state = WorkflowState.DRY_RUN_PREVIEW
            return self.plan

    def simulate(self, progress: ProgressSink | None = None) -> ApplyReport:
        """Walk the current plan's apply phases without mutating anything."""
        self._require_state(WorkflowState.DRY_RUN_PREVIEW)
        base = self._require_base()
        with self._busy():
            return PlanApplier(base, volume_check=self.volume_check).apply(
                self.plan, progress, simulate=True
            )

    # ------------------------------------------------------------------
    # Apply / undo
    # ------------------------------------------------------------------

    def apply(self, progress: ProgressSink | None = None) -> ApplyReport:
        """
        Apply the previewed plan.

        On success the session (plan, targets) is reset and the state
        returns to SelectTargets; the undo log is cleared unless some
        items failed. On any error raised mid-apply (cancellation, a fatal
        error, a failing progress sink) the state returns to Design with the
        tree intact, the undo log stays available and the error is re-raised.
        """
        self._require_state(WorkflowState.DRY_RUN_PREVIEW)
        base = self._require_base()
        if self.plan is None:
            raise InvalidTransitionError("No plan to apply; run a dry run first")

        with self._busy():
            self._cancel_token = CancelToken()
            self.applier = PlanApplier(base, index=self.index, volume_check=self.volume_check)
            self.state = WorkflowState.APPLYING
            try:
                report = self.applier.apply(self.plan, progress, self._cancel_token, simulate=False)
            except Exception:
                self.last_report = self.applier.last_report
                self.state = WorkflowState.DESIGN
                raise
            finally:
                self._cancel_token = None

            self.last_report = report
            if not report.failed:
                self.applier.clear_undo_log()
            self.plan = None
            self.targets = []
            self.state = WorkflowState.SELECT_TARGETS
            return report

    def cancel(self) -> bool:
        """Request cancellation of a running apply. Returns False if none runs."""
        token = self._cancel_token
        if token is None:
            return False
        token.cancel()
        return True

    def undo_all(self) -> int:
        """Revert the most recent apply session."""
        if self.state == WorkflowState.APPLYING:
            raise InvalidTransitionError("Cannot undo while applying")
        if self.applier is None:
            return 0
        with self._busy():
            return self.applier.undo_all()
