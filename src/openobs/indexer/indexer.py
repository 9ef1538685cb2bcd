"""Keeps the index store in step with the markdown files of a vault.

Entry points:
    index_vault(root, store)             # full pass plus orphan cleanup
    index_file(full_path, root, store)   # one file, after create or edit
    remove_file(full_path, root, store)  # after delete
    rename_file(old, new, root, store)   # after rename or move
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from ..errors import VaultIOError
from ..models import IndexStats
from ..parser import MarkdownParser
from ..vault.fs import VaultFs, file_times
from .store import IndexStore

log = logging.getLogger(__name__)


def relative_path(full_path: Path, root: Path) -> str:
    """Vault-relative, forward-slash path of ``full_path``.

    Tries the root as given first, then both sides canonicalized, so a path
    built by joining onto a symlinked root still maps back.
    """
    full_path = Path(full_path)
    root = Path(root)
    for base, target in ((root, full_path), (root.resolve(), full_path)):
        try:
            return target.relative_to(base).as_posix()
        except ValueError:
            continue
    canonical_root = root.resolve()
    try:
        return full_path.resolve().relative_to(canonical_root).as_posix()
    except ValueError:
        return full_path.as_posix()


class Indexer:
    """Parses notes and writes them to an ``IndexStore``. Holds no vault state."""

    def __init__(self, parser: MarkdownParser | None = None):
        self.parser = parser or MarkdownParser()

    def index_vault(self, root: Path, store: IndexStore) -> IndexStats:
        """Index every markdown file under ``root`` and drop orphaned rows.

        A file that fails to index is logged and counted; the walk goes on.
        """
        stats = IndexStats()
        for path in VaultFs(root).get_all_markdown_files():
            try:
                self.index_file(path, root, store)
            except Exception as e:
                stats.errors += 1
                log.warning("Error indexing %s: %s", path, e)
            else:
                stats.files_indexed += 1

        self.cleanup_orphans(root, store)
        log.debug("Indexed %s: %d files, %d errors", root, stats.files_indexed, stats.errors)
        return stats

    def index_file(self, full_path: Path, root: Path, store: IndexStore) -> None:
        """Parse one file and replace its note row, links, tags and headings."""
        full_path = Path(full_path)
        try:
            text = full_path.read_text(encoding="utf-8")
        except OSError as e:
            raise VaultIOError(str(e)) from e
        except UnicodeDecodeError as e:
            raise VaultIOError(f"{full_path}: stream did not contain valid UTF-8") from e

        try:
            created, modified = file_times(full_path.stat())
        except OSError:
            created = modified = datetime.now(timezone.utc).isoformat()
        created = created or modified

        parsed = self.parser.parse(text)
        rel = relative_path(full_path, root)
        title = parsed.title or full_path.stem

        with store.transaction():
            store.upsert_note(rel, title, parsed.content, parsed.frontmatter_raw, created, modified)
            store.set_links(rel, [(link.target, link.display) for link in parsed.wikilinks])
            store.set_tags(rel, parsed.tags)
            store.set_headings(rel, [(h.level, h.text, h.line) for h in parsed.headings])

    def remove_file(self, full_path: Path, root: Path, store: IndexStore) -> None:
        store.delete_note(relative_path(full_path, root))

    def rename_file(self, old_path: Path, new_path: Path, root: Path, store: IndexStore) -> None:
        """Move the index rows of a file. The on-disk rename is the caller's job."""
        store.update_note_path(relative_path(old_path, root), relative_path(new_path, root))

    def cleanup_orphans(self, root: Path, store: IndexStore) -> int:
        """Delete rows for notes whose file no longer exists. Returns the count."""
        removed = 0
        for path in store.get_all_note_paths():
            if not (Path(root) / path).exists():
                store.delete_note(path)
                removed += 1
                log.debug("Removed orphaned note %s", path)
        return removed

