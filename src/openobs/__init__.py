"""openobs: indexing, search and link-graph engine for a vault of markdown notes."""

__version__ = "0.1.0"
