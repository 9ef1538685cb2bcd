"""Error types for openobs.

Every failure that reaches the command boundary is an ``OpenObsError``.
The string form of an error is what the UI shows, so each kind keeps the
message prefix it has always had (``"IO error: ..."``, ``"Vault not open"``).

Usage:
    from .errors import NoteNotFoundError

    raise NoteNotFoundError(path)
"""

from __future__ import annotations

import json
from typing import Any


class OpenObsError(Exception):
    """Base class for all errors surfaced by openobs."""

    code = "CUSTOM"
    prefix = ""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(f"{self.prefix}{message}")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.details:
            payload["details"] = self.details
        return payload

    def to_json(self) -> str:
        return json.dumps({"error": self.to_dict()})


class VaultIOError(OpenObsError):
    """A filesystem operation failed."""

    code = "IO"
    prefix = "IO error: "


class DatabaseError(OpenObsError):
    """A store operation failed. Never retried."""

    code = "DATABASE"
    prefix = "Database error: "


class SerializationError(OpenObsError):
    """JSON encoding or decoding failed."""

    code = "SERIALIZATION"
    prefix = "Serialization error: "


class YamlError(OpenObsError):
    """Frontmatter could not be serialized to YAML."""

    code = "YAML"
    prefix = "YAML error: "


class VaultNotOpenError(OpenObsError):
    """A command needing a vault ran before open_vault/create_vault."""

    code = "VAULT_NOT_OPEN"

    def __init__(self) -> None:
        super().__init__("Vault not open")


class NoteNotFoundError(OpenObsError):
    """Path absent on read, delete or rename."""

    code = "FILE_NOT_FOUND"
    prefix = "File not found: "


class InvalidPathError(OpenObsError):
    """Path escapes the vault, or the operation targets the wrong kind of entry."""

    code = "INVALID_PATH"
    prefix = "Invalid path: "


class AlreadyExistsError(OpenObsError):
    """A create or rename would overwrite an existing entry."""

    code = "ALREADY_EXISTS"
    prefix = "Already exists: "


class CustomError(OpenObsError):
    """Validation and other failures carrying a free-form message."""

    code = "CUSTOM"


class ConfigurationError(CustomError):
    """Raised when no vault can be located for the CLI."""

    code = "CONFIGURATION"
