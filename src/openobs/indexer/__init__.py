"""Index store and indexer."""

from .indexer import Indexer, relative_path
from .store import IndexStore

__all__ = ["IndexStore", "Indexer", "relative_path"]
