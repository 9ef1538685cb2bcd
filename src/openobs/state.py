"""Process-wide state: the open vault and its index store.

Exactly one vault is open at a time. Command handlers take the state lock
for their whole run, so commands issued from different threads execute one
after another in the order the lock is granted.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from .errors import VaultNotOpenError
from .indexer.store import IndexStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaultHandle:
    """The open vault as seen by one command."""

    path: Path
    store: IndexStore


class AppState:
    """Holds the open vault path and store behind a single lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.vault_path: Path | None = None
        self.store: IndexStore | None = None

    @contextmanager
    def locked(self) -> Iterator[AppState]:
        with self._lock:
            yield self

    def set_vault(self, path: Path, store: IndexStore) -> None:
        """Switch to another vault, closing the previous store."""
        if self.store is not None and self.store is not store:
            self.store.close()
        self.vault_path = path
        self.store = store
        log.debug("Vault set to %s", path)

    def close(self) -> None:
        if self.store is not None:
            self.store.close()
        self.vault_path = None
        self.store = None

    def require_vault(self) -> VaultHandle:
        """The open vault, or VaultNotOpenError."""
        if self.vault_path is None or self.store is None:
            raise VaultNotOpenError()
        return VaultHandle(self.vault_path, self.store)


# ─────────────────────────────────────────────────────────────────────────────
# Module-level state
# ─────────────────────────────────────────────────────────────────────────────

_state = AppState()


def get_state() -> AppState:
    return _state


def reset_state() -> None:
    """Close the open vault, if any. Used by tests and on shutdown."""
    with _state.locked():
        _state.close()
