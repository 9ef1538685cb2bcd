"""Vault filesystem access and scaffolding."""

from .fs import VaultFs, format_timestamp
from .scaffold import get_vault_name, init_vault, is_valid_vault

__all__ = ["VaultFs", "format_timestamp", "get_vault_name", "init_vault", "is_valid_vault"]
