"""
Plan data types.

A Plan is produced once per dry run and never mutated; a later dry run
replaces it.
"""

from dataclasses import dataclass, field

REASON_CLASSIFIED = "classified"
REASON_FALLBACK = "fallback"

PHASE_CREATE_DIRS = "CreateDirs"
PHASE_RENAME_DIRS = "RenameDirs"
PHASE_MOVE_ITEMS = "MoveItems"
PHASE_UPDATE_INDEX = "UpdateIndex"
PHASE_DONE = "Done"


@dataclass(frozen=True)
class CreateDir:
    rel_path: str


@dataclass(frozen=True)
class RenameDir:
    old_rel_path: str
    new_rel_path: str


@dataclass(frozen=True)
class MoveItem:
    source: str
    destination: str
    reason: str  # "classified" | "fallback"


@dataclass(frozen=True)
class PlanError:
    source: str
    reason: str


@dataclass(frozen=True)
class PlanStats:
    create_count: int = 0
    rename_count: int = 0
    move_count: int = 0
    unresolved_count: int = 0
    error_count: int = 0


@dataclass(frozen=True)
class Plan:
    create_dirs: tuple[CreateDir, ...] = ()
    rename_dirs: tuple[RenameDir, ...] = ()
    moves: tuple[MoveItem, ...] = ()
    unresolved: tuple[str, ...] = ()
    errors: tuple[PlanError, ...] = ()
    stats: PlanStats = field(default_factory=PlanStats)

    def to_dict(self) -> dict:
        return {
            "type": "plan",
            "create_dirs": [d.rel_path for d in self.create_dirs],
            "rename_dirs": [{"old_rel": r.old_rel_path, "new_rel": r.new_rel_path} for r in self.rename_dirs],
            "moves": [{"source": m.source, "destination": m.destination, "reason": m.reason} for m in self.moves],
            "unresolved": list(self.unresolved),
            "errors": [{"source": e.source, "reason": e.reason} for e in self.errors],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Plan":
        """Rebuild a saved plan. Stats are recomputed from the lists."""
        create_dirs = tuple(CreateDir(rel) for rel in data.get("create_dirs", []))
        rename_dirs = tuple(RenameDir(r["old_rel"], r["new_rel"]) for r in data.get("rename_dirs", []))
        moves = tuple(
            MoveItem(m["source"], m["destination"], m.get("reason", REASON_CLASSIFIED))
            for m in data.get("moves", [])
        )
        unresolved = tuple(data.get("unresolved", []))
        errors = tuple(PlanError(e["source"], e.get("reason", "")) for e in data.get("errors", []))
        return cls(
            create_dirs=create_dirs,
            rename_dirs=rename_dirs,
            moves=moves,
            unresolved=unresolved,
            errors=errors,
            stats=PlanStats(
                create_count=len(create_dirs),
                rename_count=len(rename_dirs),
                move_count=len(moves),
                unresolved_count=len(unresolved),
                error_count=len(errors),
            ),
        )


@dataclass(frozen=True)
class ApplyProgress:
    phase: str
    done: int
    total: int
    current: str | None
    errors: int
