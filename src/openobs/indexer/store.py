"""SQLite index store for a vault.

The database is a derived cache of the markdown files: delete it and the next
open rebuilds it. Holds notes (with an FTS5 mirror kept in sync by triggers),
wikilinks, tags, headings, settings and the recent-vaults list.

One connection per open vault. Every mutator runs inside ``transaction()``,
and nested ``transaction()`` blocks join the outermost one, so the indexer
can group a note's row, links, tags and headings into a single commit.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from ..config import (
    RECENT_VAULTS_LIMIT,
    SNIPPET_CLOSE,
    SNIPPET_ELLIPSIS,
    SNIPPET_OPEN,
    SNIPPET_TOKENS,
    TAG_SNIPPET_CHARS,
)
from ..errors import DatabaseError
from ..models import LinkInfo, NoteRecord, RecentVault, SearchResult, TagInfo

log = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS notes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        path TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        frontmatter TEXT,
        created_at TEXT NOT NULL,
        modified_at TEXT NOT NULL
    );

    CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
        path,
        title,
        content,
        content=notes,
        content_rowid=id,
        tokenize='porter unicode61'
    );

    CREATE TRIGGER IF NOT EXISTS notes_ai AFTER INSERT ON notes BEGIN
        INSERT INTO notes_fts(rowid, path, title, content)
        VALUES (new.id, new.path, new.title, new.content);
    END;
    CREATE TRIGGER IF NOT EXISTS notes_ad AFTER DELETE ON notes BEGIN
        INSERT INTO notes_fts(notes_fts, rowid, path, title, content)
        VALUES ('delete', old.id, old.path, old.title, old.content);
    END;
    CREATE TRIGGER IF NOT EXISTS notes_au AFTER UPDATE ON notes BEGIN
        INSERT INTO notes_fts(notes_fts, rowid, path, title, content)
        VALUES ('delete', old.id, old.path, old.title, old.content);
        INSERT INTO notes_fts(rowid, path, title, content)
        VALUES (new.id, new.path, new.title, new.content);
    END;

    CREATE TABLE IF NOT EXISTS links (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_path TEXT NOT NULL,
        target_path TEXT NOT NULL,
        link_text TEXT,
        UNIQUE(source_path, target_path, link_text)
    );
    CREATE INDEX IF NOT EXISTS idx_links_source ON links(source_path);
    CREATE INDEX IF NOT EXISTS idx_links_target ON links(target_path);

    CREATE TABLE IF NOT EXISTS tags (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE
    );

    CREATE TABLE IF NOT EXISTS note_tags (
        note_path TEXT NOT NULL,
        tag_id INTEGER NOT NULL,
        PRIMARY KEY (note_path, tag_id),
        FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
    );
    CREATE INDEX IF NOT EXISTS idx_note_tags_path ON note_tags(note_path);
    CREATE INDEX IF NOT EXISTS idx_note_tags_tag ON note_tags(tag_id);

    CREATE TABLE IF NOT EXISTS headings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        note_path TEXT NOT NULL,
        level INTEGER NOT NULL,
        text TEXT NOT NULL,
        line_number INTEGER NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_headings_path ON headings(note_path);

    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS recent_vaults (
        path TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        last_opened TEXT NOT NULL
    );
"""


def _db_errors(method):
    """Re-raise sqlite3 errors from a store method as DatabaseError."""

    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e

    return wrapper


def build_match_query(query: str) -> str | None:
    """Turn free text into an FTS5 prefix query.

    Each whitespace-separated term becomes a quoted string, so FTS operators
    and column filters in user input are matched literally. The last term is
    a prefix match. Returns None for a blank query.
    """
    terms = query.split()
    if not terms:
        return None
    quoted = ['"' + term.replace('"', '""') + '"' for term in terms]
    return " ".join(quoted) + "*"


SEARCH_SQL = f"""
    SELECT n.path, n.title,
           snippet(notes_fts, 2, '{SNIPPET_OPEN}', '{SNIPPET_CLOSE}', '{SNIPPET_ELLIPSIS}', {SNIPPET_TOKENS}) AS snippet
    FROM notes_fts
    JOIN notes n ON notes_fts.rowid = n.id
    WHERE notes_fts MATCH ?
    ORDER BY rank
    LIMIT ?
"""


def strip_md(path: str) -> str:
    return path[:-3] if path.endswith(".md") else path


class IndexStore:
    """Relational index over a vault's notes."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._depth = 0
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DatabaseError(f"cannot create {self.db_path.parent}: {e}") from e
        try:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e
        log.debug("Opened index store %s", self.db_path)

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[IndexStore]:
        """Group writes into one commit; inner blocks join the outer one."""
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            with self._conn:
                yield self
        finally:
            self._depth = 0

    # ─────────────────────────────────────────────────────────────────────
    # Notes
    # ─────────────────────────────────────────────────────────────────────

    @_db_errors
    def upsert_note(
        self,
        path: str,
        title: str,
        content: str,
        frontmatter: str | None,
        created_at: str,
        modified_at: str,
    ) -> None:
        """Insert or update a note row. ``created_at`` of an existing row is kept."""
        with self.transaction():
            self._conn.execute(
                """
                INSERT INTO notes (path, title, content, frontmatter, created_at, modified_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    title = excluded.title,
                    content = excluded.content,
                    frontmatter = excluded.frontmatter,
                    modified_at = excluded.modified_at
                """,
                (path, title, content, frontmatter, created_at, modified_at),
            )

    @_db_errors
    def delete_note(self, path: str) -> None:
        """Remove a note with its outgoing links, tags and headings.

        Links from other notes that target this path stay, so their
        backlinks reappear if the note comes back.
        """
        with self.transaction():
            self._conn.execute("DELETE FROM notes WHERE path = ?", (path,))
            self._conn.execute("DELETE FROM links WHERE source_path = ?", (path,))
            self._conn.execute("DELETE FROM note_tags WHERE note_path = ?", (path,))
            self._conn.execute("DELETE FROM headings WHERE note_path = ?", (path,))

    @_db_errors
    def get_note(self, path: str) -> NoteRecord | None:
        row = self._conn.execute(
            "SELECT id, path, title, content, frontmatter, created_at, modified_at FROM notes WHERE path = ?",
            (path,),
        ).fetchone()
        return NoteRecord(**dict(row)) if row else None

    @_db_errors
    def update_note_path(self, old_path: str, new_path: str) -> None:
        """Move every row keyed by ``old_path`` to ``new_path``.

        A stale row already indexed under ``new_path`` is dropped first.
        """
        if old_path == new_path:
            return
        with self.transaction():
            if self._conn.execute("SELECT 1 FROM notes WHERE path = ?", (old_path,)).fetchone():
                self.delete_note(new_path)
            self._conn.execute("UPDATE notes SET path = ? WHERE path = ?", (new_path, old_path))
            self._conn.execute("UPDATE links SET source_path = ? WHERE source_path = ?", (new_path, old_path))
            self._conn.execute("UPDATE links SET target_path = ? WHERE target_path = ?", (new_path, old_path))
            self._conn.execute("UPDATE note_tags SET note_path = ? WHERE note_path = ?", (new_path, old_path))
            self._conn.execute("UPDATE headings SET note_path = ? WHERE note_path = ?", (new_path, old_path))

    @_db_errors
    def get_all_note_paths(self) -> list[str]:
        return [row[0] for row in self._conn.execute("SELECT path FROM notes ORDER BY path")]

    @_db_errors
    def count_notes(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM notes").fetchone()[0]

    # ─────────────────────────────────────────────────────────────────────
    # Search
    # ─────────────────────────────────────────────────────────────────────

    @_db_errors
    def search(self, query: str, limit: int) -> list[SearchResult]:
        """Full-text search over path, title and content, best match first.

        Snippets come from the content column with matches wrapped in
        ``<mark>`` tags.
        """
        match = build_match_query(query)
        if match is None:
            return []
        rows = self._conn.execute(SEARCH_SQL, (match, limit))
        return [SearchResult(path=r["path"], title=r["title"], snippet=r["snippet"] or "") for r in rows]

    @_db_errors
    def search_by_tag(self, tag: str) -> list[SearchResult]:
        rows = self._conn.execute(
            """
            SELECT n.path, n.title, substr(n.content, 1, ?) AS snippet
            FROM notes n
            JOIN note_tags nt ON n.path = nt.note_path
            JOIN tags t ON nt.tag_id = t.id
            WHERE t.name = ?
            ORDER BY n.modified_at DESC
            """,
            (TAG_SNIPPET_CHARS, tag),
        )
        return [SearchResult(path=r["path"], title=r["title"], snippet=r["snippet"] or "") for r in rows]

    # ─────────────────────────────────────────────────────────────────────
    # Links
    # ─────────────────────────────────────────────────────────────────────

    @_db_errors
    def set_links(self, source_path: str, links: Iterable[tuple[str, str | None]]) -> None:
        """Replace all outgoing links of ``source_path``."""
        with self.transaction():
            self._conn.execute("DELETE FROM links WHERE source_path = ?", (source_path,))
            seen: set[tuple[str, str | None]] = set()
            for target, text in links:
                # NULL link_text never collides under UNIQUE, so dedupe here too
                if (target, text) in seen:
                    continue
                seen.add((target, text))
                self._conn.execute(
                    "INSERT OR IGNORE INTO links (source_path, target_path, link_text) VALUES (?, ?, ?)",
                    (source_path, target, text),
                )

    @_db_errors
    def get_backlinks(self, path: str) -> list[LinkInfo]:
        """Notes linking to ``path``, by full path or by path without ``.md``."""
        rows = self._conn.execute(
            """
            SELECT DISTINCT l.source_path, n.title, l.link_text
            FROM links l
            JOIN notes n ON l.source_path = n.path
            WHERE l.target_path = ? OR l.target_path = ?
            ORDER BY l.source_path
            """,
            (path, strip_md(path)),
        )
        return [LinkInfo(path=r["source_path"], title=r["title"], link_text=r["link_text"]) for r in rows]

    @_db_errors
    def get_outgoing_links(self, path: str) -> list[LinkInfo]:
        """Links from ``path``. Unresolved targets use the raw target as title."""
        rows = self._conn.execute(
            """
            SELECT l.target_path, COALESCE(n.title, l.target_path) AS title, l.link_text
            FROM links l
            LEFT JOIN notes n ON l.target_path = n.path OR l.target_path || '.md' = n.path
            WHERE l.source_path = ?
            ORDER BY l.id
            """,
            (path,),
        )
        return [LinkInfo(path=r["target_path"], title=r["title"], link_text=r["link_text"]) for r in rows]

    @_db_errors
    def get_all_links(self) -> list[tuple[str, str]]:
        """Every (source_path, raw target) pair."""
        return [(r[0], r[1]) for r in self._conn.execute("SELECT source_path, target_path FROM links ORDER BY id")]

    # ─────────────────────────────────────────────────────────────────────
    # Tags
    # ─────────────────────────────────────────────────────────────────────

    @_db_errors
    def set_tags(self, note_path: str, tags: Iterable[str]) -> None:
        with self.transaction():
            self._conn.execute("DELETE FROM note_tags WHERE note_path = ?", (note_path,))
            for tag in tags:
                self._conn.execute("INSERT OR IGNORE INTO tags (name) VALUES (?)", (tag,))
                tag_id = self._conn.execute("SELECT id FROM tags WHERE name = ?", (tag,)).fetchone()[0]
                self._conn.execute(
                    "INSERT OR IGNORE INTO note_tags (note_path, tag_id) VALUES (?, ?)",
                    (note_path, tag_id),
                )

    @_db_errors
    def get_all_tags(self) -> list[TagInfo]:
        """Tags with usage counts, most used first, then by name."""
        rows = self._conn.execute(
            """
            SELECT t.name, COUNT(nt.note_path) AS count
            FROM tags t
            LEFT JOIN note_tags nt ON t.id = nt.tag_id
            GROUP BY t.id
            ORDER BY count DESC, t.name ASC
            """
        )
        return [TagInfo(name=r["name"], count=r["count"]) for r in rows]

    @_db_errors
    def get_notes_by_tag(self, tag: str) -> list[str]:
        rows = self._conn.execute(
            """
            SELECT nt.note_path
            FROM note_tags nt
            JOIN tags t ON nt.tag_id = t.id
            WHERE t.name = ?
            ORDER BY nt.note_path
            """,
            (tag,),
        )
        return [r[0] for r in rows]

    # ─────────────────────────────────────────────────────────────────────
    # Headings
    # ─────────────────────────────────────────────────────────────────────

    @_db_errors
    def set_headings(self, note_path: str, headings: Iterable[tuple[int, str, int]]) -> None:
        with self.transaction():
            self._conn.execute("DELETE FROM headings WHERE note_path = ?", (note_path,))
            self._conn.executemany(
                "INSERT INTO headings (note_path, level, text, line_number) VALUES (?, ?, ?, ?)",
                [(note_path, level, text, line) for level, text, line in headings],
            )

    @_db_errors
    def get_headings(self, note_path: str) -> list[tuple[int, str, int]]:
        rows = self._conn.execute(
            "SELECT level, text, line_number FROM headings WHERE note_path = ? ORDER BY line_number",
            (note_path,),
        )
        return [(r[0], r[1], r[2]) for r in rows]

    # ─────────────────────────────────────────────────────────────────────
    # Settings and recent vaults
    # ─────────────────────────────────────────────────────────────────────

    @_db_errors
    def get_setting(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    @_db_errors
    def set_setting(self, key: str, value: str) -> None:
        with self.transaction():
            self._conn.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value))

    @_db_errors
    def add_recent_vault(self, path: str, name: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self.transaction():
            self._conn.execute(
                "INSERT OR REPLACE INTO recent_vaults (path, name, last_opened) VALUES (?, ?, ?)",
                (path, name, now),
            )

    @_db_errors
    def get_recent_vaults(self) -> list[RecentVault]:
        rows = self._conn.execute(
            "SELECT path, name, last_opened FROM recent_vaults ORDER BY last_opened DESC LIMIT ?",
            (RECENT_VAULTS_LIMIT,),
        )
        return [RecentVault(path=r["path"], name=r["name"], last_opened=r["last_opened"]) for r in rows]
