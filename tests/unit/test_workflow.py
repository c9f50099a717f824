import shutil
import tempfile
import threading
import unittest
from pathlib import Path

from categorize_files.config import Settings
from categorize_files.errors import (
    CancellationRequested,
    FatalApplyError,
    InvalidTransitionError,
    ValidationError,
    WorkflowBusyError,
)
from categorize_files.llm.classifier import ClassifyResult
from categorize_files.planning.types import PHASE_MOVE_ITEMS
from categorize_files.workflow import WorkflowController, WorkflowState


class FakeClassifier:
    def __init__(self, rel_path="Docs", confidence=0.9):
        self.rel_path = rel_path
        self.confidence = confidence

    def classify(self, request):
        return ClassifyResult(rel_path=self.rel_path, confidence=self.confidence)


class BlockingClassifier(FakeClassifier):
    """Holds the dry run open until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def classify(self, request):
        self.entered.set()
        self.release.wait(5)
        return super().classify(request)


class FakeExtractor:
    def extract(self, path):
        return "text"


class WorkflowTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.base = self.root / "base"
        self.inbox = self.root / "inbox"
        (self.base / "Docs").mkdir(parents=True)
        self.inbox.mkdir()
        for name in ("a.txt", "b.txt", "c.txt"):
            (self.inbox / name).write_text(name, encoding="utf-8")

    def tearDown(self):
        self._tmp.cleanup()

    def make_controller(self, classifier=None) -> WorkflowController:
        controller = WorkflowController(
            classifier or FakeClassifier(),
            extractor=FakeExtractor(),
            settings=Settings(index_path=self.root / "index.db"),
        )
        controller.set_base_path(self.base)
        controller.select_targets([self.inbox])
        return controller


class TestTransitions(WorkflowTestCase):
    def test_decide_targets_imports_base_folders(self):
        controller = self.make_controller()
        self.assertEqual(controller.state, WorkflowState.SELECT_TARGETS)

        imported = controller.decide_targets()

        self.assertEqual(imported, 1)
        self.assertEqual(controller.state, WorkflowState.DESIGN)
        self.assertTrue(controller.tree.contains_rel_path("Docs"))

    def test_wrong_state_commands_raise(self):
        controller = self.make_controller()
        with self.assertRaises(InvalidTransitionError):
            controller.run_dry_run()
        with self.assertRaises(InvalidTransitionError):
            controller.add_category("Music")
        with self.assertRaises(InvalidTransitionError):
            controller.apply()

        controller.decide_targets()
        with self.assertRaises(InvalidTransitionError):
            controller.select_targets([self.inbox])
        with self.assertRaises(InvalidTransitionError):
            controller.back_to_design()

    def test_set_base_path_resets_tree(self):
        controller = self.make_controller()
        controller.decide_targets()
        controller.add_category("Music")
        controller.set_base_path(self.root / "inbox")
        self.assertTrue(controller.tree.is_empty())

    def test_tree_editing(self):
        controller = self.make_controller()
        controller.decide_targets()
        controller.add_category("Work/Reports")
        self.assertTrue(controller.rename_category("Work", "Job"))
        self.assertTrue(controller.move_category("Job/Reports", "Docs"))
        self.assertTrue(controller.remove_category("Job"))
        self.assertTrue(controller.tree.contains_rel_path("Docs/Reports"))
        self.assertFalse(controller.remove_category("_Uncategorized"))
        self.assertTrue(controller.validate().ok)

    def test_back_navigation(self):
        controller = self.make_controller()
        controller.decide_targets()
        controller.run_dry_run()
        controller.back_to_design()
        self.assertIsNone(controller.plan)
        self.assertEqual(controller.state, WorkflowState.DESIGN)
        controller.back_to_select_targets()
        self.assertEqual(controller.state, WorkflowState.SELECT_TARGETS)

    def test_save_and_load_categories(self):
        path = self.root / "categories.json"
        controller = self.make_controller()
        controller.decide_targets()
        controller.add_category("Music/Live", keywords=["concert"])
        controller.save_categories(path)

        other = self.make_controller()
        other.load_categories(path)
        node = other.tree.find_by_rel_path("Music/Live")
        self.assertEqual(node.keywords, ["concert"])
        # A loaded tree is not empty, so no import happens on entry
        self.assertEqual(other.decide_targets(), 0)


class TestDryRunAndApply(WorkflowTestCase):
    def test_validation_blocks_dry_run(self):
        controller = self.make_controller()
        controller.decide_targets()
        controller.rename_category("Docs", "CON")

        with self.assertRaises(ValidationError) as ctx:
            controller.run_dry_run()

        self.assertFalse(ctx.exception.report.ok)
        self.assertEqual(controller.state, WorkflowState.DESIGN)
        self.assertIsNone(controller.plan)

    def test_full_session(self):
        controller = self.make_controller()
        controller.decide_targets()

        plan = controller.run_dry_run()
        self.assertEqual(controller.state, WorkflowState.DRY_RUN_PREVIEW)
        self.assertEqual(plan.stats.move_count, 3)
        self.assertTrue((self.inbox / "a.txt").exists())

        simulated = controller.simulate()
        self.assertEqual(simulated.moved, 0)
        self.assertTrue((self.inbox / "a.txt").exists())

        report = controller.apply()

        self.assertEqual(report.moved, 3)
        self.assertEqual(controller.state, WorkflowState.SELECT_TARGETS)
        self.assertIsNone(controller.plan)
        self.assertEqual(controller.targets, [])
        self.assertTrue((self.base / "Docs" / "a.txt").exists())
        # A clean apply ends the session's undo log
        self.assertFalse(controller.can_undo)
        self.assertEqual(controller.undo_all(), 0)
        self.assertTrue((self.base / "Docs" / "a.txt").exists())

    def test_partial_apply_keeps_undo(self):
        controller = self.make_controller()
        controller.decide_targets()
        controller.run_dry_run()
        (self.inbox / "b.txt").unlink()

        report = controller.apply()

        self.assertEqual(report.moved, 2)
        self.assertEqual(report.failed, 1)
        self.assertEqual(controller.state, WorkflowState.SELECT_TARGETS)
        self.assertTrue(controller.can_undo)
        self.assertEqual(controller.undo_all(), 2)
        self.assertTrue((self.inbox / "a.txt").exists())
        self.assertFalse(controller.can_undo)

    def test_fatal_apply_returns_to_design(self):
        controller = self.make_controller()
        controller.decide_targets()
        controller.run_dry_run()
        shutil.rmtree(self.base)

        with self.assertRaises(FatalApplyError):
            controller.apply()
        self.assertEqual(controller.state, WorkflowState.DESIGN)
        self.assertFalse(controller.is_busy)

    def test_cancel_during_apply(self):
        controller = self.make_controller()
        controller.decide_targets()
        controller.run_dry_run()

        def progress(p):
            if p.phase == PHASE_MOVE_ITEMS and p.done == 1:
                self.assertTrue(controller.cancel())

        with self.assertRaises(CancellationRequested):
            controller.apply(progress)

        self.assertEqual(controller.state, WorkflowState.DESIGN)
        self.assertEqual(sum(1 for p in self.inbox.iterdir()), 2)
        self.assertTrue(controller.can_undo)
        controller.undo_all()
        self.assertEqual(sum(1 for p in self.inbox.iterdir()), 3)

    def test_progress_error_returns_to_design(self):
        controller = self.make_controller()
        controller.decide_targets()
        controller.run_dry_run()

        def progress(p):
            if p.phase == PHASE_MOVE_ITEMS and p.done == 1:
                raise RuntimeError("display went away")

        with self.assertRaises(RuntimeError):
            controller.apply(progress)

        self.assertEqual(controller.state, WorkflowState.DESIGN)
        self.assertFalse(controller.is_busy)
        self.assertTrue(controller.can_undo)
        controller.undo_all()
        self.assertEqual(sum(1 for p in self.inbox.iterdir()), 3)

    def test_cancel_without_apply(self):
        controller = self.make_controller()
        self.assertFalse(controller.cancel())
        self.assertEqual(controller.undo_all(), 0)

    def test_busy_rejects_second_operation(self):
        classifier = BlockingClassifier()
        controller = self.make_controller(classifier)
        controller.decide_targets()

        worker = threading.Thread(target=controller.run_dry_run)
        worker.start()
        try:
            self.assertTrue(classifier.entered.wait(5))
            self.assertTrue(controller.is_busy)
            with self.assertRaises(WorkflowBusyError):
                controller.import_from_base()
            with self.assertRaises(WorkflowBusyError):
                controller.add_category("Music")
        finally:
            classifier.release.set()
            worker.join(5)

        self.assertFalse(controller.is_busy)
        self.assertEqual(controller.state, WorkflowState.DRY_RUN_PREVIEW)


if __name__ == "__main__":
    unittest.main()
