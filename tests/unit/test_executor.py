import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from categorize_files.errors import CancelToken, CancellationRequested, FatalApplyError
from categorize_files.executor import PlanApplier
from categorize_files.index import IndexStore, stable_file_key
from categorize_files.planning.types import (
    Plan, CreateDir, RenameDir, MoveItem,
    PHASE_CREATE_DIRS, PHASE_RENAME_DIRS, PHASE_MOVE_ITEMS, PHASE_UPDATE_INDEX, PHASE_DONE,
    REASON_CLASSIFIED,
)
from categorize_files.undo import (
    CreatedDir, MovedFile, CopiedFile, RenamedDir,
    revert, undo_log_to_dicts, undo_log_from_dicts,
)


def snapshot(root: Path) -> list[str]:
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            found.append(os.path.relpath(os.path.join(dirpath, name), root))
    return sorted(found)


class ApplierTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.base = self.root / "base"
        self.inbox = self.root / "inbox"
        self.base.mkdir()
        self.inbox.mkdir()

    def tearDown(self):
        self._tmp.cleanup()

    def make_files(self, count: int) -> list[Path]:
        files = []
        for i in range(count):
            path = self.inbox / f"file{i}.txt"
            path.write_text(f"content {i}", encoding="utf-8")
            files.append(path)
        return files

    def make_plan(self, files: list[Path], rel_dir: str = "Docs/Notes") -> Plan:
        dest_dir = self.base / rel_dir
        return Plan(
            create_dirs=(CreateDir(rel_dir),),
            moves=tuple(MoveItem(str(f), str(dest_dir / f.name), REASON_CLASSIFIED) for f in files),
        )


class TestApply(ApplierTestCase):
    def test_same_volume_apply_and_undo(self):
        files = self.make_files(3)
        before = snapshot(self.root)
        applier = PlanApplier(self.base)

        report = applier.apply(self.make_plan(files))

        self.assertEqual(report.moved, 3)
        self.assertEqual(report.failed, 0)
        self.assertEqual(report.created_dirs, 1)
        for f in files:
            self.assertFalse(f.exists())
            self.assertTrue((self.base / "Docs" / "Notes" / f.name).exists())
        self.assertIsInstance(applier.undo_log[0], CreatedDir)
        self.assertTrue(all(isinstance(e, MovedFile) for e in applier.undo_log[2:]))

        reverted = applier.undo_all()

        self.assertEqual(reverted, 5)  # two folders + three files
        self.assertEqual(applier.undo_log, [])
        self.assertEqual(snapshot(self.root), before)

    def test_cross_volume_apply_and_undo(self):
        files = self.make_files(2)
        before = snapshot(self.root)
        applier = PlanApplier(self.base, volume_check=lambda a, b: False)

        report = applier.apply(self.make_plan(files, "Docs"))

        self.assertEqual(report.moved, 2)
        self.assertTrue(all(isinstance(e, CopiedFile) for e in applier.undo_log[1:]))
        self.assertEqual((self.base / "Docs" / "file1.txt").read_text(encoding="utf-8"), "content 1")
        self.assertFalse(files[1].exists())

        applier.undo_all()
        self.assertEqual(snapshot(self.root), before)
        self.assertEqual(files[1].read_text(encoding="utf-8"), "content 1")

    def test_failed_cross_volume_copy_leaves_nothing_behind(self):
        files = self.make_files(1)
        before = snapshot(self.root)
        applier = PlanApplier(self.base, volume_check=lambda a, b: False)

        def broken_copy(src, dst):
            Path(dst).write_text("PARTIAL", encoding="utf-8")
            raise OSError("No space left on device")

        with patch("categorize_files.executor.shutil.copy2", side_effect=broken_copy):
            report = applier.apply(self.make_plan(files, "Docs"))

        self.assertEqual(report.moved, 0)
        self.assertEqual(report.failed, 1)
        self.assertFalse((self.base / "Docs" / "file0.txt").exists())
        self.assertTrue(files[0].exists())

        applier.undo_all()
        self.assertEqual(snapshot(self.root), before)

    def test_simulate_makes_no_changes(self):
        files = self.make_files(3)
        before = snapshot(self.root)
        events = []
        applier = PlanApplier(self.base)

        report = applier.apply(self.make_plan(files), progress=events.append, simulate=True)

        self.assertTrue(report.simulate)
        self.assertEqual(report.moved, 0)
        self.assertEqual(snapshot(self.root), before)
        self.assertEqual(applier.undo_log, [])

        phases = []
        for e in events:
            if not phases or phases[-1] != e.phase:
                phases.append(e.phase)
        self.assertEqual(phases, [PHASE_CREATE_DIRS, PHASE_RENAME_DIRS, PHASE_MOVE_ITEMS,
                                  PHASE_UPDATE_INDEX, PHASE_DONE])
        moves = [e for e in events if e.phase == PHASE_MOVE_ITEMS]
        self.assertEqual([(e.done, e.total) for e in moves], [(0, 3), (1, 3), (2, 3), (3, 3)])

    def test_cancel_mid_batch_then_undo(self):
        files = self.make_files(5)
        before = snapshot(self.root)
        token = CancelToken()
        applier = PlanApplier(self.base)

        def progress(p):
            if p.phase == PHASE_MOVE_ITEMS and p.done == 2:
                token.cancel()

        with self.assertRaises(CancellationRequested):
            applier.apply(self.make_plan(files, "Docs"), progress=progress, cancel_token=token)

        moved = [e for e in applier.undo_log if isinstance(e, MovedFile)]
        self.assertEqual(len(moved), 2)
        self.assertEqual(sum(1 for f in files if f.exists()), 3)

        self.assertEqual(applier.undo_all(), 3)
        self.assertEqual(snapshot(self.root), before)

    def test_item_failure_does_not_stop_batch(self):
        files = self.make_files(2)
        missing = self.inbox / "gone.txt"
        plan = Plan(
            create_dirs=(CreateDir("Docs"),),
            moves=(
                MoveItem(str(missing), str(self.base / "Docs" / "gone.txt"), REASON_CLASSIFIED),
                MoveItem(str(files[0]), str(self.base / "Docs" / files[0].name), REASON_CLASSIFIED),
                MoveItem(str(files[1]), str(self.root / "outside" / files[1].name), REASON_CLASSIFIED),
            ),
        )
        report = PlanApplier(self.base).apply(plan)

        self.assertEqual(report.moved, 1)
        self.assertEqual(report.failed, 2)
        self.assertTrue(files[1].exists())
        self.assertFalse((self.root / "outside").exists())

    def test_destination_taken_since_dry_run(self):
        files = self.make_files(1)
        plan = self.make_plan(files, "Docs")
        (self.base / "Docs").mkdir()
        (self.base / "Docs" / "file0.txt").write_text("other", encoding="utf-8")

        PlanApplier(self.base).apply(plan)

        self.assertEqual((self.base / "Docs" / "file0.txt").read_text(encoding="utf-8"), "other")
        self.assertEqual((self.base / "Docs" / "file0 (1).txt").read_text(encoding="utf-8"), "content 0")

    def test_missing_base_is_fatal(self):
        files = self.make_files(1)
        applier = PlanApplier(self.root / "unplugged")
        with self.assertRaises(FatalApplyError):
            applier.apply(self.make_plan(files))
        self.assertTrue(files[0].exists())

    def test_rename_dirs(self):
        (self.base / "Old" / "Sub").mkdir(parents=True)
        applier = PlanApplier(self.base)
        report = applier.apply(Plan(rename_dirs=(RenameDir("Old", "New"),)))

        self.assertEqual(report.renamed_dirs, 1)
        self.assertTrue((self.base / "New" / "Sub").is_dir())
        applier.undo_all()
        self.assertTrue((self.base / "Old" / "Sub").is_dir())
        self.assertFalse((self.base / "New").exists())

    def test_index_follows_moves(self):
        files = self.make_files(1)
        index = IndexStore(self.root / "index.db")
        old_key = stable_file_key(files[0])
        index.upsert_file_from_fs(files[0])
        index.upsert_classification_suggestion(old_key, "Docs", 0.9)

        applier = PlanApplier(self.base, index=index)
        applier.apply(self.make_plan(files, "Docs"))

        new_path = self.base / "Docs" / "file0.txt"
        new_key = stable_file_key(new_path)
        self.assertIsNone(index.get_file(old_key))
        self.assertEqual(index.get_file(new_key)["path"], str(new_path))
        self.assertEqual(index.get_suggestion(new_key)["rel_path"], "Docs")
        self.assertEqual(index.get_moves(old_key)[0]["op"], "move")

        applier.undo_all()
        self.assertIsNotNone(index.get_file(old_key))
        self.assertIsNotNone(index.get_suggestion(old_key))


class TestUndo(ApplierTestCase):
    def test_revert_refuses_reoccupied_source(self):
        files = self.make_files(1)
        applier = PlanApplier(self.base)
        applier.apply(self.make_plan(files, "Docs"))
        files[0].write_text("new file in the old place", encoding="utf-8")

        # The move back is refused; the non-empty folder entry is a no-op
        self.assertEqual(applier.undo_all(), 1)
        self.assertTrue((self.base / "Docs" / "file0.txt").exists())
        self.assertEqual(files[0].read_text(encoding="utf-8"), "new file in the old place")

    def test_cross_volume_revert_refuses_reoccupied_source(self):
        files = self.make_files(1)
        applier = PlanApplier(self.base, volume_check=lambda a, b: False)
        applier.apply(self.make_plan(files, "Docs"))
        files[0].write_text("new file in the old place", encoding="utf-8")

        self.assertEqual(applier.undo_all(), 1)
        self.assertEqual((self.base / "Docs" / "file0.txt").read_text(encoding="utf-8"), "content 0")
        self.assertEqual(files[0].read_text(encoding="utf-8"), "new file in the old place")

    def test_created_dir_kept_when_not_empty(self):
        folder = self.base / "Keep"
        folder.mkdir()
        (folder / "x.txt").touch()
        revert(CreatedDir(str(folder)))
        self.assertTrue(folder.exists())

    def test_log_serialization(self):
        entries = [
            CreatedDir("/b/Docs"),
            RenamedDir("/b/Old", "/b/New"),
            MovedFile("/in/a.txt", "/b/Docs/a.txt"),
            CopiedFile("/in/b.txt", "/b/Docs/b.txt"),
        ]
        data = undo_log_to_dicts(entries)
        self.assertEqual(data[2], {"kind": "moved_file", "source": "/in/a.txt", "destination": "/b/Docs/a.txt"})
        self.assertEqual(undo_log_from_dicts(data), entries)

        with self.assertRaises(ValueError):
            undo_log_from_dicts([{"kind": "deleted_file", "path": "/x"}])


if __name__ == "__main__":
    unittest.main()
