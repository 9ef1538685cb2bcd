"""Shared test fixtures for the openobs test suite.

Design:
- tmp_vault: isolated vault directory (with .openobs/) in a temp dir
- scaffolded_vault: vault created by init_vault (Welcome note, templates)
- write_note: helper writing markdown files into tmp_vault
- store: IndexStore on tmp_vault, closed afterwards
- open_vault: opens tmp_vault through the command layer
- runner: CliRunner for CLI tests
Process-wide vault state is reset after every test.
"""

import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from openobs import core
from openobs.config import APP_DIR_NAME, get_db_path
from openobs.indexer import IndexStore
from openobs.models import VaultInfo
from openobs.state import reset_state
from openobs.vault import init_vault


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _reset_vault_state() -> Generator[None, None, None]:
    """Close whatever vault a test opened."""
    yield
    reset_state()


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def tmp_vault(tmp_path: Path) -> Generator[Path, None, None]:
    """Create an isolated, empty vault.

    Sets OPENOBS_VAULT to the vault, yields its path, then restores the
    environment.

    Usage:
        def test_something(tmp_vault):
            (tmp_vault / "note.md").write_text("# Note")
    """
    vault = tmp_path / "vault"
    (vault / APP_DIR_NAME).mkdir(parents=True)

    original = os.environ.get("OPENOBS_VAULT")
    os.environ["OPENOBS_VAULT"] = str(vault)

    yield vault

    if original is not None:
        os.environ["OPENOBS_VAULT"] = original
    else:
        os.environ.pop("OPENOBS_VAULT", None)


@pytest.fixture
def scaffolded_vault(tmp_path: Path) -> Path:
    """A vault with the default folders, Welcome note and daily template."""
    vault = tmp_path / "scaffolded"
    init_vault(vault)
    return vault


@pytest.fixture
def write_note(tmp_vault: Path) -> Callable[[str, str], Path]:
    """Write a file into tmp_vault, creating parent folders.

    Usage:
        def test_links(write_note):
            write_note("A.md", "Links to [[B]].")
    """

    def _write(path: str, content: str = "") -> Path:
        full = tmp_vault / path
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_text(content, encoding="utf-8")
        return full

    return _write


@pytest.fixture
def store(tmp_vault: Path) -> Generator[IndexStore, None, None]:
    """IndexStore backed by tmp_vault's database."""
    index_store = IndexStore(get_db_path(tmp_vault))
    yield index_store
    index_store.close()


@pytest.fixture
def open_vault(tmp_vault: Path) -> Callable[[], VaultInfo]:
    """Open tmp_vault through the command layer (call after writing notes)."""

    def _open() -> VaultInfo:
        return core.open_vault(str(tmp_vault))

    return _open
