"""
Plan execution for the category-based file sorter.

Applies a Plan to the filesystem (or simulates it) in a fixed phase
order and records an undo log for the session.
"""

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .errors import ApplyItemError, CancelToken, FatalApplyError
from .index import IndexStore, stable_file_key
from .paths import combine_base, get_available_name, is_under_base, same_volume
from .planning.types import (
    Plan, ApplyProgress, MoveItem,
    PHASE_CREATE_DIRS, PHASE_RENAME_DIRS, PHASE_MOVE_ITEMS, PHASE_UPDATE_INDEX, PHASE_DONE,
)
from .undo import UndoEntry, CreatedDir, RenamedDir, MovedFile, CopiedFile, revert_all
from .utils import print_warning

ProgressSink = Callable[[ApplyProgress], None]


@dataclass
class ApplyReport:
    simulate: bool = False
    created_dirs: int = 0
    renamed_dirs: int = 0
    moved: int = 0
    failed: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)


class PlanApplier:
    """
    Executes plans under one classification base path.

    The undo log covers every real mutation made by this applier since it
    was created or last undone/cleared, newest last.
    """

    def __init__(
        self,
        base_path: str | Path,
        index: IndexStore | None = None,
        volume_check: Callable[[Path, Path], bool] = same_volume
    ):
        self.base_path = Path(os.path.abspath(base_path))
        self.index = index
        self.volume_check = volume_check
        self.undo_log: list[UndoEntry] = []
        self.last_report: ApplyReport | None = None

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(
        self,
        plan: Plan,
        progress: ProgressSink | None = None,
        cancel_token: CancelToken | None = None,
        simulate: bool = False
    ) -> ApplyReport:
        """
        Apply (or simulate) a plan.

        Phases: CreateDirs -> RenameDirs -> MoveItems -> UpdateIndex -> Done.
        Simulation reports the same progress but never touches the
        filesystem, the index or the undo log.

        Raises:
            FatalApplyError: If the base path is unreachable.
            CancellationRequested: At the first checkpoint after cancel();
                already-applied steps stay in place and in the undo log.
        """
        report = ApplyReport(simulate=simulate)
        self.last_report = report

        if not simulate and not self.base_path.is_dir():
            raise FatalApplyError(f"Base path not found: {self.base_path}\nIs the drive connected?")

        def emit(phase: str, done: int, total: int, current: str | None) -> None:
            if progress is not None:
                progress(ApplyProgress(phase, done, total, current, report.failed))

        def checkpoint() -> None:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

        # 1) CreateDirs
        total = len(plan.create_dirs)
        emit(PHASE_CREATE_DIRS, 0, total, None)
        for i, create in enumerate(plan.create_dirs, 1):
            checkpoint()
            target = combine_base(self.base_path, create.rel_path)
            if not is_under_base(self.base_path, target):
                self._fail(report, str(target), "Folder outside base path")
            elif not simulate:
                try:
                    if self._create_dir_tracked(target):
                        report.created_dirs += 1
                except OSError as e:
                    self._fail(report, str(target), str(e))
            emit(PHASE_CREATE_DIRS, i, total, str(target))

        # 2) RenameDirs
        total = len(plan.rename_dirs)
        emit(PHASE_RENAME_DIRS, 0, total, None)
        for i, rename in enumerate(plan.rename_dirs, 1):
            checkpoint()
            old_abs = combine_base(self.base_path, rename.old_rel_path)
            new_abs = combine_base(self.base_path, rename.new_rel_path)
            if not simulate:
                try:
                    self._rename_dir(old_abs, new_abs)
                    report.renamed_dirs += 1
                except (OSError, ApplyItemError) as e:
                    self._fail(report, str(old_abs), str(e))
            emit(PHASE_RENAME_DIRS, i, total, f"{old_abs} -> {new_abs}")

        # 3) MoveItems
        total = len(plan.moves)
        emit(PHASE_MOVE_ITEMS, 0, total, None)
        for i, move in enumerate(plan.moves, 1):
            checkpoint()
            try:
                if not is_under_base(self.base_path, move.destination):
                    raise ApplyItemError("Destination outside base path")
                if not simulate:
                    self._move_one(move)
                    report.moved += 1
            except (OSError, ApplyItemError) as e:
                self._fail(report, move.source, str(e))
            emit(PHASE_MOVE_ITEMS, i, total, move.source)

        # 4) UpdateIndex / 5) Done
        emit(PHASE_UPDATE_INDEX, 1, 1, None)
        emit(PHASE_DONE, 1, 1, None)
        return report

    def _fail(self, report: ApplyReport, item: str, error: str) -> None:
        report.failed += 1
        report.failures.append((item, error))
        print_warning(f"{error}: {item}")

    def _create_dir_tracked(self, target: Path) -> bool:
        """
        Create target and any missing parents, one undo entry per folder.

        Returns:
            True if anything was created.
        """
        missing = []
        current = target
        while not current.exists() and current != self.base_path and current.parent != current:
            missing.append(current)
            current = current.parent

        for folder in reversed(missing):
            folder.mkdir(exist_ok=True)
            self.undo_log.append(CreatedDir(str(folder)))
        return bool(missing)

    def _rename_dir(self, old_abs: Path, new_abs: Path) -> None:
        if not old_abs.is_dir():
            return
        if new_abs.exists():
            raise ApplyItemError("Destination folder exists")
        self._create_dir_tracked(new_abs.parent)
        os.rename(old_abs, new_abs)
        self.undo_log.append(RenamedDir(str(old_abs), str(new_abs)))

    def _move_one(self, move: MoveItem) -> None:
        source = Path(move.source)
        planned = Path(move.destination)
        if not source.is_file():
            raise ApplyItemError("Source not found")

        self._create_dir_tracked(planned.parent)
        # Time has passed since the dry run: look for a free name again.
        destination = get_available_name(planned.parent, planned.name)
        old_key = stable_file_key(source)

        if self.volume_check(source, destination.parent):
            if destination.exists():
                raise ApplyItemError("Destination exists (race condition)")
            os.rename(source, destination)
            self.undo_log.append(MovedFile(str(source), str(destination)))
            self._sync_index_rename(old_key, source, destination, move.reason)
        else:
            if destination.exists():
                raise ApplyItemError("Destination exists (race condition)")
            try:
                shutil.copy2(source, destination)
                self._sync_index_copy(old_key, source, destination, move.reason)
                source.unlink()
            except OSError:
                destination.unlink(missing_ok=True)
                raise
            self.undo_log.append(CopiedFile(str(source), str(destination)))

    def _sync_index_rename(self, key: str, source: Path, destination: Path, reason: str) -> None:
        if self.index is None:
            return
        try:
            self.index.update_file_path(key, destination)
            self.index.insert_move(key, source, destination, "move", reason)
        except Exception as e:
            print_warning(f"Index update failed for {destination.name}: {e}")

    def _sync_index_copy(self, key: str, source: Path, destination: Path, reason: str) -> None:
        if self.index is None:
            return
        try:
            self.index.upsert_file_from_fs(destination)
            self.index.insert_move(key, source, destination, "copy+delete", reason)
            self.index.migrate_suggestion(key, stable_file_key(destination))
        except Exception as e:
            print_warning(f"Index update failed for {destination.name}: {e}")

    # ------------------------------------------------------------------
    # Undo
    # ------------------------------------------------------------------

    def undo_all(self) -> int:
        """
        Revert every recorded action, newest first.

        Individual failures are reported and skipped. The log is cleared
        afterwards.

        Returns:
            Number of entries reverted successfully.
        """
        reverted = revert_all(self.undo_log, self.index)
        self.undo_log.clear()
        return reverted

    def clear_undo_log(self) -> None:
        self.undo_log.clear()
