"""
Path helpers shared by the category tree, the plan builder and the applier.

relPaths are always forward-slash separated and relative to the
classification base path.
"""

import os
import re
from pathlib import Path
from typing import Iterable

INVALID_NAME_CHARS = set('<>:"/\\|?*') | {chr(c) for c in range(32)}
RESERVED_NAMES = {"CON", "PRN", "AUX", "NUL"}
RESERVED_NAME_PATTERN = re.compile(r"^(COM[1-9]|LPT[1-9])$")
MAX_REL_LENGTH = 240
DEFAULT_FOLDER_NAME = "NewFolder"


def normalize_rel_path(rel: str | None) -> str:
    """
    Normalize a relative path to the canonical forward-slash form.

    Backslashes become slashes, empty segments are dropped and each
    segment is trimmed. Applying it twice gives the same result.
    """
    if not rel or not rel.strip():
        return ""
    segments = [s.strip() for s in rel.replace("\\", "/").split("/")]
    return "/".join(s for s in segments if s)


def split_rel(rel: str | None) -> list[str]:
    rel = normalize_rel_path(rel)
    return rel.split("/") if rel else []


def make_safe_name(name: str | None) -> str:
    """Replace characters that cannot appear in a folder name."""
    safe = "".join("_" if ch in INVALID_NAME_CHARS else ch for ch in (name or "").strip())
    if not safe.strip():
        return DEFAULT_FOLDER_NAME
    return safe


def join_rel(base_rel: str | None, name: str | None) -> str:
    base_rel = normalize_rel_path(base_rel)
    name = make_safe_name(name)
    return f"{base_rel}/{name}" if base_rel else name


def get_parent_rel(rel: str | None) -> str:
    rel = normalize_rel_path(rel)
    idx = rel.rfind("/")
    return rel[:idx] if idx >= 0 else ""


def get_file_name(rel: str | None) -> str:
    rel = normalize_rel_path(rel)
    return rel[rel.rfind("/") + 1:]


def is_reserved_name(segment: str) -> bool:
    upper = segment.upper()
    return upper in RESERVED_NAMES or bool(RESERVED_NAME_PATTERN.match(upper))


def is_valid_rel_path(rel: str | None) -> bool:
    """
    Check that a relPath can be used as a folder under the base path.

    Rejects empty or over-long paths, `.`/`..` segments, invalid
    characters and reserved device names.
    """
    rel = normalize_rel_path(rel)
    if not rel or len(rel) > MAX_REL_LENGTH:
        return False

    for seg in rel.split("/"):
        if not seg.strip() or seg in (".", ".."):
            return False
        if any(ch in INVALID_NAME_CHARS for ch in seg):
            return False
        if is_reserved_name(seg):
            return False
    return True


def combine_base(base_path: str | Path, rel_path: str | None) -> Path:
    """Resolve a relPath against the base path into an absolute path."""
    rel = normalize_rel_path(rel_path)
    combined = Path(base_path) / rel if rel else Path(base_path)
    return Path(os.path.abspath(combined))


def to_rel_from_base(base_path: str | Path, abs_path: str | Path) -> str:
    """Return the relPath of abs_path under base_path, or "" when outside."""
    base = os.path.normcase(os.path.abspath(base_path))
    full = os.path.normcase(os.path.abspath(abs_path))
    try:
        if os.path.commonpath([base, full]) != base:
            return ""
    except ValueError:
        return ""
    rel = os.path.relpath(os.path.abspath(abs_path), os.path.abspath(base_path))
    return "" if rel == "." else normalize_rel_path(rel)


def is_under_base(base_path: str | Path, abs_path: str | Path) -> bool:
    """True when abs_path lies strictly inside base_path (case-insensitive)."""
    base = os.path.abspath(base_path).rstrip("\\/").lower() + os.sep
    full = os.path.abspath(abs_path).lower()
    return full.startswith(base) and len(full) > len(base)


def _split_name(file_name: str) -> tuple[str, str]:
    stem, ext = os.path.splitext(file_name)
    return stem, ext


def get_available_name(
    dest_dir: str | Path,
    file_name: str,
    claimed: Iterable[str] = ()
) -> Path:
    """
    Find a destination path that does not collide with an existing file.

    Probes `name.ext`, `name (1).ext`, `name (2).ext`, ... Names listed in
    `claimed` (lower-cased absolute paths) are treated as taken too. A
    missing directory simply has no existing files; nothing is created.
    """
    dest_dir = Path(dest_dir)
    claimed = claimed if isinstance(claimed, (set, frozenset)) else set(claimed)
    stem, ext = _split_name(file_name)

    def taken(candidate: Path) -> bool:
        return candidate.exists() or str(candidate).lower() in claimed

    candidate = dest_dir / file_name
    i = 1
    while taken(candidate):
        candidate = dest_dir / f"{stem} ({i}){ext}"
        i += 1
    return candidate


def _nearest_existing(path: Path) -> Path:
    path = Path(os.path.abspath(path))
    while not path.exists() and path.parent != path:
        path = path.parent
    return path


def same_volume(a: str | Path, b: str | Path) -> bool:
    """
    Decide whether a rename between the two paths can stay on one volume.

    Compares drive roots first, then the device id of the nearest existing
    ancestor of each path.
    """
    drive_a = os.path.splitdrive(os.path.abspath(a))[0].lower()
    drive_b = os.path.splitdrive(os.path.abspath(b))[0].lower()
    if drive_a != drive_b:
        return False
    try:
        return os.stat(_nearest_existing(Path(a))).st_dev == os.stat(_nearest_existing(Path(b))).st_dev
    except OSError:
        return True
