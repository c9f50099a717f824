"""
Persistent file index backed by SQLite.

Records are keyed by a stable file key (SHA-1 of the lower-cased absolute
path). Writes are serialized by a lock owned by the IndexStore instance;
reads take no lock. No lock is held while the caller touches the
filesystem.
"""

import hashlib
import json
import os
import sqlite3
import threading
import time
from contextlib import contextmanager, closing
from pathlib import Path


def stable_file_key(path: str | Path) -> str:
    """SHA-1 hex digest of the lower-cased absolute path (UTF-8)."""
    full = os.path.abspath(str(path))
    return hashlib.sha1(full.lower().encode("utf-8")).hexdigest()


SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    file_key    TEXT PRIMARY KEY,
    path        TEXT NOT NULL,
    parent      TEXT,
    name        TEXT,
    ext         TEXT,
    size        INTEGER,
    mtime       INTEGER,
    summary     TEXT,
    snippet     TEXT,
    tags        TEXT,
    indexed_at  INTEGER
);
CREATE INDEX IF NOT EXISTS idx_files_parent ON files(parent);

CREATE TABLE IF NOT EXISTS suggestions (
    file_key    TEXT PRIMARY KEY,
    rel_path    TEXT NOT NULL,
    confidence  REAL,
    updated_at  INTEGER
);

CREATE TABLE IF NOT EXISTS moves (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    file_key    TEXT NOT NULL,
    old_path    TEXT NOT NULL,
    new_path    TEXT NOT NULL,
    op          TEXT NOT NULL,
    reason      TEXT,
    moved_at    INTEGER
);
CREATE INDEX IF NOT EXISTS idx_moves_key ON moves(file_key);
"""


class IndexStore:
    """Handle to one index database file."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._write_lock = threading.Lock()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self):
        with closing(sqlite3.connect(self.db_path, timeout=5.0)) as conn:
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn

    @contextmanager
    def _write(self):
        with self._write_lock:
            with self._connect() as conn:
                yield conn

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_classification_suggestion(self, key: str, rel_path: str, confidence: float) -> None:
        with self._write() as conn:
            conn.execute(
                """INSERT INTO suggestions (file_key, rel_path, confidence, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(file_key) DO UPDATE SET
                       rel_path = excluded.rel_path,
                       confidence = excluded.confidence,
                       updated_at = excluded.updated_at""",
                (key, rel_path, confidence, int(time.time())),
            )

    def update_summary_snippet_tags(
        self,
        key: str,
        path: str | Path,
        summary: str,
        snippet: str,
        tags: list[str] | None
    ) -> None:
        """Store classifier output for a file, creating its row if needed."""
        path = Path(os.path.abspath(path))
        tags_json = json.dumps(tags, ensure_ascii=False) if tags else None
        with self._write() as conn:
            conn.execute(
                """INSERT INTO files (file_key, path, parent, name, ext, summary, snippet, tags, indexed_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(file_key) DO UPDATE SET
                       summary = excluded.summary,
                       snippet = excluded.snippet,
                       tags = excluded.tags,
                       indexed_at = excluded.indexed_at""",
                (key, str(path), str(path.parent), path.name, path.suffix,
                 summary, snippet, tags_json, int(time.time())),
            )

    def update_file_path(self, key: str, new_path: str | Path) -> None:
        """
        Point an existing record at its new location after a rename.

        The record is re-keyed to the new path's stable key, and its
        suggestion follows it.
        """
        new_path = Path(os.path.abspath(new_path))
        new_key = stable_file_key(new_path)
        with self._write() as conn:
            conn.execute("DELETE FROM files WHERE file_key = ? AND file_key != ?", (new_key, key))
            conn.execute(
                """UPDATE files SET file_key = ?, path = ?, parent = ?, name = ?, ext = ?, indexed_at = ?
                   WHERE file_key = ?""",
                (new_key, str(new_path), str(new_path.parent), new_path.name, new_path.suffix,
                 int(time.time()), key),
            )
            self._migrate_suggestion(conn, key, new_key)

    def upsert_file_from_fs(self, path: str | Path) -> None:
        """Index a file from its current on-disk metadata."""
        path = Path(os.path.abspath(path))
        stat = path.stat()
        with self._write() as conn:
            conn.execute(
                """INSERT INTO files (file_key, path, parent, name, ext, size, mtime, indexed_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(file_key) DO UPDATE SET
                       path = excluded.path,
                       parent = excluded.parent,
                       name = excluded.name,
                       ext = excluded.ext,
                       size = excluded.size,
                       mtime = excluded.mtime,
                       indexed_at = excluded.indexed_at""",
                (stable_file_key(path), str(path), str(path.parent), path.name, path.suffix,
                 stat.st_size, int(stat.st_mtime), int(time.time())),
            )

    def migrate_suggestion(self, old_key: str, new_key: str) -> None:
        with self._write() as conn:
            self._migrate_suggestion(conn, old_key, new_key)

    @staticmethod
    def _migrate_suggestion(conn, old_key: str, new_key: str) -> None:
        if old_key == new_key:
            return
        row = conn.execute("SELECT 1 FROM suggestions WHERE file_key = ?", (old_key,)).fetchone()
        if row is None:
            return
        conn.execute("DELETE FROM suggestions WHERE file_key = ?", (new_key,))
        conn.execute("UPDATE suggestions SET file_key = ? WHERE file_key = ?", (new_key, old_key))

    def insert_move(self, key: str, old_path: str | Path, new_path: str | Path, op: str, reason: str) -> None:
        with self._write() as conn:
            conn.execute(
                """INSERT INTO moves (file_key, old_path, new_path, op, reason, moved_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (key, str(old_path), str(new_path), op, reason, int(time.time())),
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_file(self, key: str) -> dict | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM files WHERE file_key = ?", (key,)).fetchone()
        return dict(row) if row else None

    def get_suggestion(self, key: str) -> dict | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM suggestions WHERE file_key = ?", (key,)).fetchone()
        return dict(row) if row else None

    def get_moves(self, key: str | None = None) -> list[dict]:
        with self._connect() as conn:
            if key is None:
                rows = conn.execute("SELECT * FROM moves ORDER BY id").fetchall()
            else:
                rows = conn.execute("SELECT * FROM moves WHERE file_key = ? ORDER BY id", (key,)).fetchall()
        return [dict(r) for r in rows]
