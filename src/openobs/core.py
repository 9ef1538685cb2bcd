"""Command handlers for openobs.

Every public function here is a command the UI (or the CLI) can run. Handlers
take the state lock for their whole run, resolve the open vault from it, and
dispatch to the vault filesystem, the indexer, the store and the graph
builder. Every mutating file command re-indexes or de-indexes the affected
notes before returning.

``invoke(name, args)`` runs a command by name with JSON arguments and never
raises for ``OpenObsError``; the error string is returned in the result.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from functools import lru_cache
from pathlib import Path, PurePosixPath
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from .config import (
    APP_SETTINGS_PREFIX,
    DAILY_NOTE_DATE_FORMAT,
    DAILY_NOTE_TEMPLATE,
    DAILY_NOTES_FOLDER,
    DEFAULT_SEARCH_LIMIT,
    TEMPLATES_FOLDER,
    VAULT_SETTINGS_PREFIX,
    get_db_path,
)
from .errors import (
    AlreadyExistsError,
    CustomError,
    InvalidPathError,
    NoteNotFoundError,
    OpenObsError,
    SerializationError,
)
from .graph import build_graph_data, build_local_graph
from .indexer import Indexer, IndexStore
from .models import (
    AppliedTemplate,
    AppSettings,
    BatchResponse,
    CommandResult,
    DailyNote,
    DailyNotesList,
    FileContent,
    FileEntry,
    FileInfo,
    GraphData,
    LinksResponse,
    NotesByTagResponse,
    RecentVaultInfo,
    SearchResponse,
    TagListResponse,
    TemplateInfo,
    TemplatesResponse,
    VaultInfo,
    VaultSettings,
)
from .parser import TemplateProcessor
from .state import VaultHandle, get_state
from .vault import VaultFs, get_vault_name, init_vault, is_valid_vault

log = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Helper functions
# ─────────────────────────────────────────────────────────────────────────────


@contextmanager
def _vault() -> Iterator[VaultHandle]:
    """Hold the state lock and yield the open vault."""
    state = get_state()
    with state.locked():
        yield state.require_vault()


def _is_markdown(path: str) -> bool:
    return path.endswith(".md")


def _reindex_renamed(handle: VaultHandle, fs: VaultFs, old_rel: str, new_rel: str) -> None:
    """Bring the index in line after ``old_rel`` became ``new_rel`` on disk."""
    store = handle.store
    indexer = Indexer()
    new_full = fs.resolve_path(new_rel)

    if new_full.is_dir():
        prefix = f"{old_rel}/"
        with store.transaction():
            for path in store.get_all_note_paths():
                if path.startswith(prefix):
                    store.update_note_path(path, f"{new_rel}/{path[len(prefix):]}")
    elif _is_markdown(old_rel) and _is_markdown(new_rel):
        indexer.rename_file(fs.resolve_path(old_rel), new_full, fs.canonical_root, store)
    elif _is_markdown(old_rel):
        store.delete_note(old_rel)
    elif _is_markdown(new_rel):
        indexer.index_file(new_full, fs.canonical_root, store)


def _open_store(vault_path: Path) -> tuple[IndexStore, VaultInfo]:
    """Open and fully index a vault's store. The caller installs it in state."""
    store = IndexStore(get_db_path(vault_path))
    try:
        stats = Indexer().index_vault(vault_path, store)
        name = get_vault_name(vault_path)
        store.add_recent_vault(str(vault_path), name)
    except OpenObsError:
        store.close()
        raise
    log.info("Opened vault %s (%d notes, %d errors)", vault_path, stats.files_indexed, stats.errors)
    return store, VaultInfo(name=name, path=str(vault_path), note_count=stats.files_indexed)


# ─────────────────────────────────────────────────────────────────────────────
# Vault
# ─────────────────────────────────────────────────────────────────────────────


def open_vault(path: str) -> VaultInfo:
    """Open an existing directory as the current vault, indexing it fully."""
    vault_path = Path(path).expanduser()
    if not is_valid_vault(vault_path):
        raise InvalidPathError(f"Not a valid vault directory: {path}")
    vault_path = vault_path.resolve()

    state = get_state()
    with state.locked():
        store, info = _open_store(vault_path)
        state.set_vault(vault_path, store)
    return info


def create_vault(path: str, name: str) -> VaultInfo:
    """Scaffold a new vault named ``name`` inside ``path`` and open it."""
    vault_path = Path(path).expanduser() / name
    if vault_path.exists():
        raise AlreadyExistsError(f"Vault already exists at: {vault_path}")

    state = get_state()
    with state.locked():
        init_vault(vault_path)
        vault_path = vault_path.resolve()
        store, info = _open_store(vault_path)
        state.set_vault(vault_path, store)
    log.info("Created vault %s", vault_path)
    return info


def get_vault_info() -> VaultInfo | None:
    state = get_state()
    with state.locked():
        if state.vault_path is None or state.store is None:
            return None
        return VaultInfo(
            name=get_vault_name(state.vault_path),
            path=str(state.vault_path),
            note_count=state.store.count_notes(),
        )


def get_recent_vaults() -> list[RecentVaultInfo]:
    """Recently opened vaults that still exist. Empty when no vault is open."""
    state = get_state()
    with state.locked():
        if state.store is None:
            return []
        return [
            RecentVaultInfo(name=v.name, path=v.path, last_opened=v.last_opened)
            for v in state.store.get_recent_vaults()
            if Path(v.path).exists()
        ]


# ─────────────────────────────────────────────────────────────────────────────
# Files
# ─────────────────────────────────────────────────────────────────────────────


def read_directory(path: str = "") -> list[FileEntry]:
    with _vault() as handle:
        return VaultFs(handle.path).read_directory(path)


def read_file(path: str) -> FileContent:
    with _vault() as handle:
        fs = VaultFs(handle.path)
        content = fs.read_file(path)
        return FileContent(path=path, content=content, modified=fs.modified_time(path))


def write_file(path: str, content: str) -> None:
    """Write a file (creating parents) and re-index it."""
    with _vault() as handle:
        fs = VaultFs(handle.path)
        full = fs.write_file(path, content)
        if _is_markdown(full.name):
            Indexer().index_file(full, fs.canonical_root, handle.store)


def create_file(path: str, content: str = "") -> None:
    with _vault() as handle:
        fs = VaultFs(handle.path)
        full = fs.create_file(path, content)
        if _is_markdown(full.name):
            Indexer().index_file(full, fs.canonical_root, handle.store)


def create_folder(path: str) -> None:
    with _vault() as handle:
        VaultFs(handle.path).create_folder(path)


def delete_file(path: str) -> None:
    with _vault() as handle:
        fs = VaultFs(handle.path)
        full = fs.delete_file(path)
        Indexer().remove_file(full, fs.canonical_root, handle.store)


def delete_folder(path: str) -> None:
    """Delete a folder recursively and de-index the notes it held.

    A note that fails to de-index is logged; the command still succeeds
    because the files are already gone.
    """
    with _vault() as handle:
        fs = VaultFs(handle.path)
        full = fs.delete_folder(path)
        folder = fs.relative_path(full)
        prefix = f"{folder}/"
        indexer = Indexer()
        for note_path in handle.store.get_all_note_paths():
            if note_path.startswith(prefix) or note_path == folder:
                try:
                    indexer.remove_file(fs.canonical_root / note_path, fs.canonical_root, handle.store)
                except OpenObsError as e:
                    log.warning("Failed to de-index %s: %s", note_path, e)


def rename_file(old_path: str, new_path: str) -> None:
    """Rename a file or folder and move its index rows along."""
    with _vault() as handle:
        fs = VaultFs(handle.path)
        old_full, new_full = fs.rename(old_path, new_path)
        _reindex_renamed(handle, fs, fs.relative_path(old_full), fs.relative_path(new_full))


def move_file(source_path: str, dest_dir: str) -> str:
    """Move a file into ``dest_dir``. Returns its new vault-relative path."""
    with _vault() as handle:
        fs = VaultFs(handle.path)
        old_rel = fs.relative_path(fs.resolve_path(source_path))
        new_rel = fs.move_file(source_path, dest_dir)
        _reindex_renamed(handle, fs, old_rel, new_rel)
        return new_rel


def get_file_info(path: str) -> FileInfo:
    with _vault() as handle:
        return VaultFs(handle.path).get_file_info(path)


# ─────────────────────────────────────────────────────────────────────────────
# Search, tags and links
# ─────────────────────────────────────────────────────────────────────────────


def search_notes(query: str, limit: int | None = None) -> SearchResponse:
    """Full-text search with highlighted snippets."""
    with _vault() as handle:
        results = handle.store.search(query, limit if limit is not None else DEFAULT_SEARCH_LIMIT)
        return SearchResponse(results=results, query=query, total=len(results))


def search_by_tag(tag: str) -> SearchResponse:
    with _vault() as handle:
        results = handle.store.search_by_tag(tag)
        return SearchResponse(results=results, query=f"#{tag}", total=len(results))


def get_backlinks(path: str) -> LinksResponse:
    with _vault() as handle:
        return LinksResponse(path=path, links=handle.store.get_backlinks(path))


def get_outgoing_links(path: str) -> LinksResponse:
    with _vault() as handle:
        return LinksResponse(path=path, links=handle.store.get_outgoing_links(path))


def get_all_links() -> list[tuple[str, str]]:
    with _vault() as handle:
        return handle.store.get_all_links()


def get_all_tags() -> TagListResponse:
    with _vault() as handle:
        tags = handle.store.get_all_tags()
        return TagListResponse(tags=tags, total=len(tags))


def get_notes_by_tag(tag: str) -> NotesByTagResponse:
    with _vault() as handle:
        paths = handle.store.get_notes_by_tag(tag)
        return NotesByTagResponse(tag=tag, paths=paths, count=len(paths))


# ─────────────────────────────────────────────────────────────────────────────
# Graph
# ─────────────────────────────────────────────────────────────────────────────


def get_graph_data() -> GraphData:
    with _vault() as handle:
        return build_graph_data(handle.store)


def get_local_graph(path: str, depth: int | None = None) -> GraphData:
    with _vault() as handle:
        return build_local_graph(handle.store, path, depth)


# ─────────────────────────────────────────────────────────────────────────────
# Daily notes
# ─────────────────────────────────────────────────────────────────────────────


def _default_daily_note(date_str: str) -> str:
    created = datetime.now().strftime("%Y-%m-%d %H:%M")
    return f'---\ntitle: "{date_str}"\ncreated: {created}\ntags: [daily-note]\n---\n\n# {date_str}\n\n## Notes\n\n'


def get_daily_note(date: str | None = None) -> DailyNote:
    """Return the daily note for ``date`` (default today), creating it if needed.

    A new note is built from ``Templates/Daily Note.md`` when that exists,
    else from a built-in template, then written and indexed.
    """
    if date is None:
        target = datetime.now().date()
    else:
        try:
            target = datetime.strptime(date, DAILY_NOTE_DATE_FORMAT).date()
        except ValueError as e:
            raise CustomError(f"Invalid date format: {e}") from e

    date_str = target.strftime(DAILY_NOTE_DATE_FORMAT)
    note_path = f"{DAILY_NOTES_FOLDER}/{date_str}.md"

    with _vault() as handle:
        fs = VaultFs(handle.path)
        if fs.exists(note_path):
            return DailyNote(path=note_path, date=date_str, exists=True, content=fs.read_file(note_path))

        if fs.exists(DAILY_NOTE_TEMPLATE):
            content = TemplateProcessor.process(fs.read_file(DAILY_NOTE_TEMPLATE), {"title": date_str})
        else:
            content = _default_daily_note(date_str)

        full = fs.create_file(note_path, content)
        Indexer().index_file(full, fs.canonical_root, handle.store)
        log.debug("Created daily note %s", note_path)
        return DailyNote(path=note_path, date=date_str, exists=True, content=content)


def get_daily_notes_list(limit: int | None = None) -> DailyNotesList:
    """Existing daily notes, newest first."""
    with _vault() as handle:
        try:
            entries = VaultFs(handle.path).read_directory(DAILY_NOTES_FOLDER)
        except NoteNotFoundError:
            return DailyNotesList()

    notes: list[DailyNote] = []
    for entry in entries:
        if entry.is_directory or entry.extension != "md":
            continue
        stem = entry.name[: -len(".md")]
        try:
            datetime.strptime(stem, DAILY_NOTE_DATE_FORMAT)
        except ValueError:
            continue
        notes.append(DailyNote(path=entry.path, date=stem, exists=True))

    notes.sort(key=lambda n: n.date, reverse=True)
    if limit is not None:
        notes = notes[:limit]
    return DailyNotesList(notes=notes)


# ─────────────────────────────────────────────────────────────────────────────
# Templates
# ─────────────────────────────────────────────────────────────────────────────


def get_templates() -> TemplatesResponse:
    with _vault() as handle:
        try:
            entries = VaultFs(handle.path).read_directory(TEMPLATES_FOLDER)
        except NoteNotFoundError:
            return TemplatesResponse()
    return TemplatesResponse(
        templates=[
            TemplateInfo(name=entry.name[: -len(".md")], path=entry.path)
            for entry in entries
            if not entry.is_directory and entry.extension == "md"
        ]
    )


def apply_template(template_path: str, variables: Mapping[str, str] | None = None) -> AppliedTemplate:
    """Fill in a template's placeholders. Nothing is written."""
    with _vault() as handle:
        template = VaultFs(handle.path).read_file(template_path)
    return AppliedTemplate(
        content=TemplateProcessor.process(template, variables),
        template_name=PurePosixPath(template_path).stem or "Untitled",
    )


# ─────────────────────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────────────────────


def _setting_value(value: Any) -> str:
    """Stringify a JSON value for the settings table."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    try:
        return json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise SerializationError(str(e)) from e


def _parse_int(raw: str | None) -> int | None:
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


def _parse_bool(raw: str | None) -> bool | None:
    return {"true": True, "false": False}.get(raw) if raw is not None else None


def get_settings() -> AppSettings:
    """Application settings; all unset when no vault is open."""
    state = get_state()
    with state.locked():
        store = state.store
        if store is None:
            return AppSettings()

        def get(name: str) -> str | None:
            return store.get_setting(f"{APP_SETTINGS_PREFIX}{name}")

        return AppSettings(
            theme=get("theme"),
            font_size=_parse_int(get("font_size")),
            font_family=get("font_family"),
            vim_mode=_parse_bool(get("vim_mode")),
            spell_check=_parse_bool(get("spell_check")),
            auto_save_interval=_parse_int(get("auto_save_interval")),
            line_numbers=_parse_bool(get("line_numbers")),
            word_wrap=_parse_bool(get("word_wrap")),
        )


def set_setting(key: str, value: Any) -> None:
    with _vault() as handle:
        if not key.startswith(APP_SETTINGS_PREFIX):
            raise CustomError(f"Invalid setting key: {key}. App settings must start with '{APP_SETTINGS_PREFIX}'")
        handle.store.set_setting(key, _setting_value(value))


def get_vault_settings() -> VaultSettings:
    with _vault() as handle:
        store = handle.store
        defaults = VaultSettings()

        def get(name: str, default: str | None = None) -> str | None:
            value = store.get_setting(f"{VAULT_SETTINGS_PREFIX}{name}")
            return default if value is None else value

        excluded_raw = get("excluded_folders")
        excluded: list[str] | None = None
        if excluded_raw:
            try:
                excluded = json.loads(excluded_raw)
            except json.JSONDecodeError as e:
                raise SerializationError(str(e)) from e
            if not isinstance(excluded, list) or not all(isinstance(f, str) for f in excluded):
                raise SerializationError("vault.excluded_folders must be a list of strings")

        return VaultSettings(
            default_note_folder=get("default_note_folder"),
            daily_notes_folder=get("daily_notes_folder", defaults.daily_notes_folder),
            templates_folder=get("templates_folder", defaults.templates_folder),
            attachments_folder=get("attachments_folder", defaults.attachments_folder),
            daily_note_format=get("daily_note_format", defaults.daily_note_format),
            default_template=get("default_template"),
            excluded_folders=excluded,
        )


def set_vault_setting(key: str, value: Any) -> None:
    with _vault() as handle:
        if not key.startswith(VAULT_SETTINGS_PREFIX):
            raise CustomError(
                f"Invalid setting key: {key}. Vault settings must start with '{VAULT_SETTINGS_PREFIX}'"
            )
        handle.store.set_setting(key, _setting_value(value))


# ─────────────────────────────────────────────────────────────────────────────
# Command dispatch
# ─────────────────────────────────────────────────────────────────────────────

COMMANDS: dict[str, Callable[..., Any]] = {
    func.__name__: func
    for func in (
        open_vault,
        create_vault,
        get_vault_info,
        get_recent_vaults,
        read_directory,
        read_file,
        write_file,
        create_file,
        create_folder,
        delete_file,
        delete_folder,
        rename_file,
        move_file,
        get_file_info,
        search_notes,
        search_by_tag,
        get_backlinks,
        get_outgoing_links,
        get_all_links,
        get_all_tags,
        get_notes_by_tag,
        get_graph_data,
        get_local_graph,
        get_daily_note,
        get_daily_notes_list,
        get_templates,
        apply_template,
        get_settings,
        set_setting,
        get_vault_settings,
        set_vault_setting,
    )
}


def to_jsonable(value: Any) -> Any:
    """Convert a command result to plain JSON types, using wire field names."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


@lru_cache(maxsize=None)
def _adapter(annotation: Any) -> TypeAdapter:
    return TypeAdapter(annotation)


def validate_args(name: str, args: Mapping[str, Any] | None) -> inspect.BoundArguments:
    """Bind JSON arguments to a command's signature and check their types.

    Raises:
        CustomError: If the command is unknown, an argument is missing or
            unexpected, or a value does not match its annotation. ``details``
            carries one ``"param: reason"`` string per bad value.
    """
    handler = COMMANDS.get(name)
    if handler is None:
        raise CustomError(f"Unknown command: {name}")
    if args is not None and not isinstance(args, Mapping):
        raise CustomError(f"Invalid arguments for {name}: expected an object")

    signature = inspect.signature(handler, eval_str=True)
    try:
        bound = signature.bind(**dict(args or {}))
    except TypeError as e:
        raise CustomError(f"Invalid arguments for {name}: {e}") from e

    errors: list[str] = []
    for param, value in bound.arguments.items():
        annotation = signature.parameters[param].annotation
        if annotation is inspect.Parameter.empty:
            continue
        try:
            bound.arguments[param] = _adapter(annotation).validate_python(value)
        except ValidationError as e:
            errors.extend(f"{param}: {err['msg']}" for err in e.errors())
    if errors:
        raise CustomError(f"Invalid arguments for {name}: {'; '.join(errors)}", details={"errors": errors})
    return bound


def invoke(name: str, args: Mapping[str, Any] | None = None) -> CommandResult:
    """Run a command by name. Failures are reported in the result, not raised."""
    try:
        bound = validate_args(name, args)
        result = COMMANDS[name](*bound.args, **bound.kwargs)
    except OpenObsError as e:
        return CommandResult(command=name, success=False, error=str(e), error_code=e.code)
    return CommandResult(command=name, success=True, result=to_jsonable(result))


def batch(commands: list[Mapping[str, Any]], continue_on_error: bool = True) -> BatchResponse:
    """Run several ``{"command": ..., "args": {...}}`` requests in order.

    Stops after the first failure unless ``continue_on_error`` is set.
    """
    results: list[CommandResult] = []
    for request in commands:
        result = invoke(str(request.get("command", "")), request.get("args"))
        results.append(result)
        if not result.success and not continue_on_error:
            break

    succeeded = sum(1 for r in results if r.success)
    return BatchResponse(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=results,
    )
