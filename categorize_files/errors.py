"""
Error types and cooperative cancellation.
"""

import threading


class CategorizeError(Exception):
    """Base class for all errors raised by the sorter."""


class ValidationError(CategorizeError):
    """The category tree has structural errors or duplicate relPaths."""

    def __init__(self, report):
        self.report = report
        lines = list(report.errors) + [f"Duplicate: {d}" for d in report.duplicates]
        super().__init__("Category validation failed:\n" + "\n".join(f"  - {l}" for l in lines[:5]))


class ClassificationFailure(CategorizeError):
    """A classifier response could not be obtained or understood."""


class ApplyItemError(CategorizeError):
    """A single create/move failed; counted, never fatal to the batch."""


class FatalApplyError(CategorizeError):
    """The remaining apply phases cannot run (e.g. base path unreachable)."""


class CancellationRequested(CategorizeError):
    """Raised at a cancellation checkpoint after cancel() was called."""


class WorkflowBusyError(CategorizeError):
    """Another long-running operation is already in progress."""


class InvalidTransitionError(CategorizeError):
    """The command is not allowed in the current workflow state."""


class CancelToken:
    """Cooperative cancellation flag shared between a caller and a worker."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationRequested("Operation cancelled")
