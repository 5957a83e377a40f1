# modtune/core/errors.py
"""
Modtune – exception taxonomy
============================

Raised by `core/` modules and translated to HTTP status codes by the
API routers.  Anything *not* listed here (OSError, ValueError, …) is an
unclassified failure from the orchestrator's point of view.
"""

from __future__ import annotations


class ModtuneError(Exception):
    """Base class for every error the engine raises on purpose."""


class ParseError(ModtuneError):
    """A managed file is not valid for its format (malformed JSON)."""

    def __init__(self, message: str, filename: str | None = None):
        super().__init__(message)
        self.filename = filename


class RoundTripValidationError(ModtuneError):
    """A merged tree did not survive serialize → parse unchanged."""

    def __init__(self, filename: str):
        super().__init__(f"Round-trip validation failed for {filename}")
        self.filename = filename


class NotFoundError(ModtuneError):
    """Requested backup id is not in the manifest."""

    def __init__(self, backup_id: str):
        super().__init__(f"Backup not found: {backup_id}")
        self.backup_id = backup_id


class NotRestorableError(ModtuneError):
    """Backup exists but holds no files."""

    def __init__(self, backup_id: str):
        super().__init__(f"Backup {backup_id} is not restorable")
        self.backup_id = backup_id


class NoBackupError(ModtuneError):
    """Rollback requested but the manifest is empty."""

    def __init__(self) -> None:
        super().__init__("No backup available for rollback")


class PresetApplicationError(ModtuneError):
    """Wraps any unclassified failure escaping `apply_preset`."""

    def __init__(self, message: str, recovered: bool = False):
        super().__init__(message)
        self.recovered = recovered
