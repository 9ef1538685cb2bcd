"""Sandboxed filesystem access rooted at a vault directory.

Every public method takes a vault-relative path string. Paths are resolved
against the canonical vault root, following symlinks, and anything that lands
outside the root is rejected with ``InvalidPathError``.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from ..errors import AlreadyExistsError, InvalidPathError, NoteNotFoundError, VaultIOError
from ..models import FileEntry, FileInfo

log = logging.getLogger(__name__)


def format_timestamp(ts: float) -> str:
    """RFC-3339 UTC string for a POSIX timestamp."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def file_times(st: os.stat_result) -> tuple[str | None, str]:
    """(created, modified) for a stat result; created is None where the OS has no birth time."""
    birth = getattr(st, "st_birthtime", None)
    created = format_timestamp(birth) if birth is not None else None
    return created, format_timestamp(st.st_mtime)


def is_hidden(relative: Path) -> bool:
    return any(part.startswith(".") for part in relative.parts)


@contextmanager
def _os_errors(relative: str) -> Iterator[None]:
    """Convert OSError raised inside the block to the vault error kinds."""
    try:
        yield
    except FileNotFoundError as e:
        raise NoteNotFoundError(relative) from e
    except FileExistsError as e:
        raise AlreadyExistsError(relative) from e
    except OSError as e:
        raise VaultIOError(str(e)) from e
    except UnicodeDecodeError as e:
        raise VaultIOError(f"{relative}: stream did not contain valid UTF-8") from e


class VaultFs:
    """File operations confined to one vault."""

    def __init__(self, root: Path | str):
        self.root = Path(root)
        try:
            self.canonical_root = self.root.resolve(strict=True)
        except OSError as e:
            raise VaultIOError(str(e)) from e

    # ─────────────────────────────────────────────────────────────────────
    # Paths
    # ─────────────────────────────────────────────────────────────────────

    def resolve_path(self, relative: str) -> Path:
        """Resolve a vault-relative path to a canonical absolute path.

        Symlinks in the existing part of the path are followed; components
        that do not exist yet are appended as-is.

        Raises:
            InvalidPathError: If the result is outside the vault root.
        """
        candidate = self.canonical_root / relative.lstrip("/")
        resolved = candidate.resolve(strict=False)
        if resolved != self.canonical_root and not resolved.is_relative_to(self.canonical_root):
            raise InvalidPathError("Path is outside vault")
        return resolved

    def relative_path(self, full_path: Path) -> str:
        """Vault-relative, forward-slash form of an absolute path."""
        full = Path(full_path)
        try:
            return full.relative_to(self.canonical_root).as_posix()
        except ValueError:
            pass
        try:
            return full.resolve().relative_to(self.canonical_root).as_posix()
        except ValueError:
            return full.as_posix()

    def exists(self, relative: str) -> bool:
        try:
            return self.resolve_path(relative).exists()
        except InvalidPathError:
            return False

    # ─────────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────────

    def read_directory(self, relative: str = "") -> list[FileEntry]:
        """Recursive listing of a directory, hidden entries skipped.

        Directories sort before files, then by case-insensitive name.
        Symlinks below ``relative`` are listed as files and not followed.
        """
        full = self.resolve_path(relative)
        if not full.exists():
            raise NoteNotFoundError(relative)
        with _os_errors(relative):
            return self._read_directory(full)

    def _read_directory(self, directory: Path) -> list[FileEntry]:
        entries: list[FileEntry] = []
        for child in directory.iterdir():
            if child.name.startswith("."):
                continue
            st = child.lstat()
            is_dir = stat.S_ISDIR(st.st_mode)
            created, modified = file_times(st)
            entries.append(
                FileEntry(
                    name=child.name,
                    path=self.relative_path(child),
                    is_directory=is_dir,
                    extension=None if is_dir else (child.suffix[1:] or None),
                    size=st.st_size,
                    created=created,
                    modified=modified,
                    children=self._read_directory(child) if is_dir else None,
                )
            )
        entries.sort(key=lambda e: (not e.is_directory, e.name.lower()))
        return entries

    def read_file(self, relative: str) -> str:
        full = self.resolve_path(relative)
        if not full.is_file():
            raise NoteNotFoundError(relative)
        with _os_errors(relative):
            return full.read_text(encoding="utf-8")

    def modified_time(self, relative: str) -> str | None:
        full = self.resolve_path(relative)
        try:
            return format_timestamp(full.stat().st_mtime)
        except OSError:
            return None

    def get_file_info(self, relative: str) -> FileInfo:
        """Metadata for one file; word and character counts for markdown only."""
        full = self.resolve_path(relative)
        if not full.exists():
            raise NoteNotFoundError(relative)

        with _os_errors(relative):
            st = full.stat()
            created, modified = file_times(st)
            is_markdown = full.suffix == ".md"
            word_count = character_count = None
            if is_markdown:
                text = full.read_text(encoding="utf-8")
                word_count = len(text.split())
                character_count = len(text)

        return FileInfo(
            name=full.name,
            path=relative,
            size=st.st_size,
            created=created,
            modified=modified,
            is_markdown=is_markdown,
            word_count=word_count,
            character_count=character_count,
        )

    def get_all_markdown_files(self) -> Iterator[Path]:
        """Lazily walk the vault yielding absolute paths of ``.md`` files.

        Any path with a hidden component is skipped. Symlinked directories
        are followed once each.
        """
        seen: set[tuple[int, int]] = set()
        for dirpath, dirnames, filenames in os.walk(self.canonical_root, followlinks=True):
            current = Path(dirpath)
            try:
                st = current.stat()
            except OSError:
                dirnames[:] = []
                continue
            key = (st.st_dev, st.st_ino)
            if key in seen:
                dirnames[:] = []
                continue
            seen.add(key)

            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if filename.startswith(".") or not filename.endswith(".md"):
                    continue
                path = current / filename
                if is_hidden(path.relative_to(self.canonical_root)):
                    continue
                yield path

    # ─────────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────────

    def write_file(self, relative: str, content: str) -> Path:
        """Write content, creating parent directories. Overwrites."""
        full = self.resolve_path(relative)
        with _os_errors(relative):
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_text(content, encoding="utf-8")
        return full

    def create_file(self, relative: str, content: str = "") -> Path:
        full = self.resolve_path(relative)
        if full.exists():
            raise AlreadyExistsError(relative)
        return self.write_file(relative, content)

    def create_folder(self, relative: str) -> Path:
        full = self.resolve_path(relative)
        if full.exists():
            raise AlreadyExistsError(relative)
        with _os_errors(relative):
            full.mkdir(parents=True)
        return full

    def delete_file(self, relative: str) -> Path:
        full = self.resolve_path(relative)
        if not full.exists():
            raise NoteNotFoundError(relative)
        if full.is_dir():
            raise InvalidPathError("Cannot delete directory with delete_file")
        with _os_errors(relative):
            full.unlink()
        return full

    def delete_folder(self, relative: str) -> Path:
        full = self.resolve_path(relative)
        if not full.exists():
            raise NoteNotFoundError(relative)
        if not full.is_dir():
            raise InvalidPathError("Cannot delete file with delete_folder")
        if full == self.canonical_root:
            raise InvalidPathError("Cannot delete the vault root")
        with _os_errors(relative):
            shutil.rmtree(full)
        return full

    def rename(self, old: str, new: str) -> tuple[Path, Path]:
        """Move ``old`` to ``new``, creating new's parents.

        Returns:
            (old_full_path, new_full_path)
        """
        old_full = self.resolve_path(old)
        new_full = self.resolve_path(new)
        if not old_full.exists():
            raise NoteNotFoundError(old)
        if new_full.exists():
            raise AlreadyExistsError(new)
        with _os_errors(old):
            new_full.parent.mkdir(parents=True, exist_ok=True)
            old_full.rename(new_full)
        log.debug("Renamed %s -> %s", old, new)
        return old_full, new_full

    def move_file(self, source: str, dest_dir: str) -> str:
        """Move a file into another folder, keeping its name.

        Returns:
            The new vault-relative path.
        """
        source_full = self.resolve_path(source)
        if not source_full.exists():
            raise NoteNotFoundError(source)
        dest_full = self.resolve_path(dest_dir) / source_full.name
        if dest_full.exists():
            raise AlreadyExistsError(self.relative_path(dest_full))
        with _os_errors(source):
            dest_full.parent.mkdir(parents=True, exist_ok=True)
            source_full.rename(dest_full)
        return self.relative_path(dest_full)
