"""
Compensating actions recorded while a plan is applied.

Each entry carries only what is needed to reverse one mutation. Entries
are reverted newest first by `revert()`.
"""

import os
import shutil
from dataclasses import dataclass, asdict
from pathlib import Path

from .index import IndexStore, stable_file_key
from .utils import print_warning


@dataclass(frozen=True)
class CreatedDir:
    path: str


@dataclass(frozen=True)
class RenamedDir:
    old_path: str
    new_path: str


@dataclass(frozen=True)
class MovedFile:
    """Same-volume rename; reversed by renaming back."""
    source: str
    destination: str


@dataclass(frozen=True)
class CopiedFile:
    """Cross-volume copy + delete; reversed by copying back and re-indexing."""
    source: str
    destination: str


UndoEntry = CreatedDir | RenamedDir | MovedFile | CopiedFile

_KINDS = {
    "created_dir": CreatedDir,
    "renamed_dir": RenamedDir,
    "moved_file": MovedFile,
    "copied_file": CopiedFile,
}
_KIND_NAMES = {cls: name for name, cls in _KINDS.items()}


def revert(entry: UndoEntry, index: IndexStore | None = None) -> None:
    """
    Reverse one recorded mutation.

    Raises:
        OSError: If the filesystem no longer allows the reversal
            (e.g. the original path has been reoccupied).
    """
    if isinstance(entry, CreatedDir):
        path = Path(entry.path)
        if path.is_dir() and not any(path.iterdir()):
            path.rmdir()

    elif isinstance(entry, RenamedDir):
        old, new = Path(entry.old_path), Path(entry.new_path)
        if new.is_dir():
            if old.exists():
                raise FileExistsError(f"Cannot restore folder, path is taken: {old}")
            os.rename(new, old)

    elif isinstance(entry, MovedFile):
        source, destination = Path(entry.source), Path(entry.destination)
        if source.exists():
            raise FileExistsError(f"Cannot move back, path is taken: {source}")
        source.parent.mkdir(parents=True, exist_ok=True)
        os.rename(destination, source)
        if index is not None:
            index.update_file_path(stable_file_key(destination), source)

    elif isinstance(entry, CopiedFile):
        source, destination = Path(entry.source), Path(entry.destination)
        if source.exists():
            raise FileExistsError(f"Cannot copy back, path is taken: {source}")
        source.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copy2(destination, source)
        except OSError:
            source.unlink(missing_ok=True)
            raise
        destination.unlink()
        if index is not None:
            index.upsert_file_from_fs(source)
            index.migrate_suggestion(stable_file_key(destination), stable_file_key(source))

    else:
        raise TypeError(f"Unknown undo entry: {entry!r}")


def undo_log_to_dicts(entries: list[UndoEntry]) -> list[dict]:
    return [{"kind": _KIND_NAMES[type(e)], **asdict(e)} for e in entries]


def undo_log_from_dicts(items: list[dict]) -> list[UndoEntry]:
    """
    Rebuild entries saved by undo_log_to_dicts.

    Raises:
        ValueError: On an unknown kind.
    """
    entries = []
    for item in items:
        fields = dict(item)
        kind = fields.pop("kind", None)
        if kind not in _KINDS:
            raise ValueError(f"Unknown undo entry kind: {kind!r}")
        entries.append(_KINDS[kind](**fields))
    return entries


def revert_all(entries: list[UndoEntry], index: IndexStore | None = None) -> int:
    """
    Revert entries newest first. Failed steps are reported and skipped.

    Returns:
        Number of entries reverted successfully.
    """
    reverted = 0
    for entry in reversed(entries):
        try:
            revert(entry, index)
            reverted += 1
        except Exception as e:
            print_warning(f"Undo step failed ({type(entry).__name__}): {e}")
    return reverted
