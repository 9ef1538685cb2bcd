#!/usr/bin/env python3
"""
openobs: CLI for a vault of markdown notes

Usage:
    openobs init ~/notes "My Vault"     # Scaffold a new vault
    openobs search "query"              # Full-text search
    openobs backlinks path/to/note.md   # Who links here
    openobs graph --local note.md       # Local link graph
    openobs invoke get_all_tags         # Run any command by name
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from . import __version__ as OPENOBS_VERSION
from .errors import ConfigurationError, CustomError, OpenObsError, SerializationError


def format_table(rows: list[dict], columns: list[str], max_widths: dict | None = None) -> str:
    """Format rows as a simple table."""
    if not rows:
        return ""

    max_widths = max_widths or {}

    def cell(row: dict, col: str) -> str:
        val = str(row.get(col, "")).replace("\n", " ")
        limit = max_widths.get(col, 50)
        return val[: limit - 3] + "..." if len(val) > limit else val

    widths = {col: max([len(col)] + [len(cell(row, col)) for row in rows]) for col in columns}
    lines = [
        "  ".join(col.upper().ljust(widths[col]) for col in columns),
        "  ".join("-" * widths[col] for col in columns),
    ]
    for row in rows:
        lines.append("  ".join(cell(row, col).ljust(widths[col]) for col in columns))
    return "\n".join(lines)


def output(data, as_json: bool = False):
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


def _handle_error(ctx: click.Context, error: Exception, exit_code: int = 1) -> NoReturn:
    """Print an error, as JSON when --json was given, and exit."""
    as_json = bool(ctx.params.get("as_json"))
    if isinstance(error, OpenObsError):
        if as_json:
            click.echo(error.to_json(), err=True)
        else:
            click.echo(f"Error: {error}", err=True)
    else:
        click.echo(f"Error: {error}", err=True)
    sys.exit(exit_code)


def _open(vault: str | None) -> None:
    """Open the vault named by --vault, OPENOBS_VAULT or the working directory."""
    from .config import get_vault_root
    from .core import open_vault

    open_vault(str(get_vault_root(vault)))


def _open_if_configured(vault: str | None) -> None:
    """Like _open, but a missing vault is fine (the commands may create one)."""
    try:
        _open(vault)
    except ConfigurationError:
        return


vault_option = click.option(
    "--vault",
    "vault",
    type=click.Path(file_okay=False),
    envvar="OPENOBS_VAULT",
    help="Vault directory (default: $OPENOBS_VAULT or nearest parent with .openobs/)",
)
json_option = click.option("--json", "as_json", is_flag=True, help="Output as JSON")


@click.group()
@click.version_option(version=OPENOBS_VERSION, prog_name="openobs")
def cli():
    """openobs: index, search and link-graph a vault of markdown notes.

    \b
    Quick start:
      openobs init ~/notes "My Vault"   # Create a vault
      openobs search "scheduler"        # Find notes
      openobs tags                      # Tag usage counts
      openobs graph                     # Whole-vault link graph
    """


# ─────────────────────────────────────────────────────────────────────────────
# Vault Commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("parent", type=click.Path(file_okay=False))
@click.argument("name")
@json_option
@click.pass_context
def init(ctx: click.Context, parent: str, name: str, as_json: bool):
    """Create a new vault NAME inside PARENT.

    \b
    Creates Daily Notes/, Templates/, Attachments/, a Welcome note and
    a daily note template, then indexes the vault.
    """
    from .core import create_vault, to_jsonable

    try:
        info = create_vault(parent, name)
    except OpenObsError as e:
        _handle_error(ctx, e)

    if as_json:
        output(to_jsonable(info), as_json=True)
    else:
        click.echo(f"Created vault {info.name} at {info.path} ({info.note_count} notes)")


@cli.command()
@vault_option
@json_option
@click.pass_context
def index(ctx: click.Context, vault: str | None, as_json: bool):
    """Re-index every note in the vault and drop orphaned entries."""
    from .core import get_vault_info, to_jsonable

    try:
        _open(vault)
        info = get_vault_info()
    except OpenObsError as e:
        _handle_error(ctx, e)

    if as_json:
        output(to_jsonable(info), as_json=True)
    else:
        click.echo(f"Indexed {info.note_count} notes in {info.path}")


# ─────────────────────────────────────────────────────────────────────────────
# Search Commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("query")
@click.option("--limit", "-n", type=int, default=None, help="Max results (default: 50)")
@vault_option
@json_option
@click.pass_context
def search(ctx: click.Context, query: str, limit: int | None, vault: str | None, as_json: bool):
    """Full-text search. The last word matches as a prefix.

    \b
    Examples:
      openobs search "sched"
      openobs search "async runtime" --limit 5
    """
    from .core import search_notes, to_jsonable

    try:
        _open(vault)
        response = search_notes(query, limit)
    except OpenObsError as e:
        _handle_error(ctx, e)

    if as_json:
        output(to_jsonable(response), as_json=True)
        return
    if not response.results:
        click.echo("No results found.")
        return
    rows = [r.model_dump() for r in response.results]
    click.echo(format_table(rows, ["path", "title", "snippet"], {"snippet": 60}))


@cli.command()
@click.argument("name")
@vault_option
@json_option
@click.pass_context
def tag(ctx: click.Context, name: str, vault: str | None, as_json: bool):
    """List notes carrying tag NAME, most recently modified first."""
    from .core import search_by_tag, to_jsonable

    try:
        _open(vault)
        response = search_by_tag(name.lstrip("#"))
    except OpenObsError as e:
        _handle_error(ctx, e)

    if as_json:
        output(to_jsonable(response), as_json=True)
        return
    if not response.results:
        click.echo(f"No notes tagged #{name.lstrip('#')}.")
        return
    for result in response.results:
        click.echo(f"  {result.path}  ({result.title})")


@cli.command()
@vault_option
@json_option
@click.pass_context
def tags(ctx: click.Context, vault: str | None, as_json: bool):
    """List all tags with usage counts."""
    from .core import get_all_tags, to_jsonable

    try:
        _open(vault)
        response = get_all_tags()
    except OpenObsError as e:
        _handle_error(ctx, e)

    if as_json:
        output(to_jsonable(response), as_json=True)
        return
    if not response.tags:
        click.echo("No tags found.")
        return
    for tag_info in response.tags:
        click.echo(f"  {tag_info.name}: {tag_info.count}")


# ─────────────────────────────────────────────────────────────────────────────
# Link Commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("path")
@vault_option
@json_option
@click.pass_context
def backlinks(ctx: click.Context, path: str, vault: str | None, as_json: bool):
    """Show notes linking to PATH."""
    from .core import get_backlinks, to_jsonable

    try:
        _open(vault)
        response = get_backlinks(path)
    except OpenObsError as e:
        _handle_error(ctx, e)

    if as_json:
        output(to_jsonable(response), as_json=True)
        return
    if not response.links:
        click.echo(f"No backlinks to {path}.")
        return
    for link in response.links:
        click.echo(f"  {link.path}  ({link.title})")


@cli.command()
@click.argument("path")
@vault_option
@json_option
@click.pass_context
def links(ctx: click.Context, path: str, vault: str | None, as_json: bool):
    """Show the outgoing wikilinks of PATH."""
    from .core import get_outgoing_links, to_jsonable

    try:
        _open(vault)
        response = get_outgoing_links(path)
    except OpenObsError as e:
        _handle_error(ctx, e)

    if as_json:
        output(to_jsonable(response), as_json=True)
        return
    if not response.links:
        click.echo(f"No links from {path}.")
        return
    for link in response.links:
        suffix = f" [{link.link_text}]" if link.link_text else ""
        click.echo(f"  {link.path}  ({link.title}){suffix}")


@cli.command()
@click.option("--local", "center", default=None, help="Center note for a local graph")
@click.option("--depth", "-d", type=int, default=None, help="Hops from the center (default: 1)")
@vault_option
@json_option
@click.pass_context
def graph(ctx: click.Context, center: str | None, depth: int | None, vault: str | None, as_json: bool):
    """Show the link graph, or the neighbourhood of one note with --local.

    \b
    Examples:
      openobs graph --json
      openobs graph --local "Projects/Alpha.md" --depth 2
    """
    from .core import get_graph_data, get_local_graph, to_jsonable

    if depth is not None and center is None:
        _handle_error(ctx, click.UsageError("--depth requires --local"))

    try:
        _open(vault)
        data = get_local_graph(center, depth) if center else get_graph_data()
    except OpenObsError as e:
        _handle_error(ctx, e)

    if as_json:
        output(to_jsonable(data), as_json=True)
        return

    click.echo(f"{len(data.nodes)} notes, {len(data.edges)} edges, {len(data.concepts)} concepts")
    if data.nodes:
        rows = [{"path": n.path, "connections": n.connections} for n in data.nodes]
        click.echo(format_table(rows, ["path", "connections"]))
    for concept in data.concepts:
        click.echo(f"  concept {concept.name}: {', '.join(concept.notes)}")


# ─────────────────────────────────────────────────────────────────────────────
# Daily Notes
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("date", required=False)
@vault_option
@json_option
@click.pass_context
def daily(ctx: click.Context, date: str | None, vault: str | None, as_json: bool):
    """Print the daily note for DATE (YYYY-MM-DD, default today), creating it if needed."""
    from .core import get_daily_note, to_jsonable

    try:
        _open(vault)
        note = get_daily_note(date)
    except OpenObsError as e:
        _handle_error(ctx, e)

    if as_json:
        output(to_jsonable(note), as_json=True)
        return
    click.echo(f"# {note.path}")
    click.echo(note.content or "")


# ─────────────────────────────────────────────────────────────────────────────
# Command Dispatch
# ─────────────────────────────────────────────────────────────────────────────


@cli.command("invoke")
@click.argument("command")
@click.argument("args_json", required=False)
@vault_option
@json_option
@click.pass_context
def invoke_cmd(ctx: click.Context, command: str, args_json: str | None, vault: str | None, as_json: bool):
    """Run any command by name with JSON arguments.

    \b
    Examples:
      openobs invoke get_all_tags
      openobs invoke search_notes '{"query": "sched", "limit": 10}'
      openobs invoke get_local_graph '{"path": "A.md", "depth": 2}'

    Output is always the JSON command result. Exits 1 if the command failed.
    """
    from .core import invoke

    try:
        args = json.loads(args_json) if args_json else {}
    except json.JSONDecodeError as e:
        _handle_error(ctx, SerializationError(str(e)))

    try:
        _open_if_configured(vault)
    except OpenObsError as e:
        _handle_error(ctx, e)

    result = invoke(command, args)
    click.echo(result.model_dump_json(indent=2))
    if not result.success:
        sys.exit(1)


@cli.command("batch")
@click.option("--file", "-f", "file_path", type=click.Path(exists=True), help="Read commands from file")
@click.option(
    "--continue-on-error/--stop-on-error",
    default=True,
    help="Continue processing after errors (default: continue)",
)
@json_option
@vault_option
@click.pass_context
def batch_cmd(
    ctx: click.Context, file_path: str | None, continue_on_error: bool, as_json: bool, vault: str | None
):
    """Run several commands, one JSON object per line.

    \b
    Example:
      openobs batch << 'EOF'
      {"command": "search_notes", "args": {"query": "api"}}
      {"command": "get_backlinks", "args": {"path": "B.md"}}
      EOF

    Output is a JSON object with per-command results. With --json, input
    errors are reported as JSON too.
    Exit code is 1 if any command fails, 0 if all succeed.
    """
    from .core import batch

    if file_path:
        text = Path(file_path).read_text(encoding="utf-8")
    else:
        text = sys.stdin.read()

    requests: list[dict[str, Any]] = []
    for line_num, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            request = json.loads(line)
        except json.JSONDecodeError as e:
            _handle_error(ctx, SerializationError(f"line {line_num}: {e}"))
        if not isinstance(request, dict):
            _handle_error(ctx, SerializationError(f"line {line_num}: expected a JSON object"))
        requests.append(request)

    if not requests:
        _handle_error(ctx, CustomError("No commands provided"))

    try:
        _open_if_configured(vault)
    except OpenObsError as e:
        _handle_error(ctx, e)

    result = batch(requests, continue_on_error=continue_on_error)
    click.echo(result.model_dump_json(indent=2))
    if result.failed > 0:
        sys.exit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def main():
    """Entry point for openobs CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli()


if __name__ == "__main__":
    main()
