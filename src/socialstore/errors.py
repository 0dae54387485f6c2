"""Storage error taxonomy.

    StorageError            base; carries file_path, reason, user_message
    ├── CorruptionError     malformed JSON on disk (recovered by read_with_recovery)
    ├── WriteError          filesystem refused a write (propagated, never retried)
    └── LockTimeoutError    advisory lock not obtained in time (propagated)
"""

from __future__ import annotations

from pathlib import Path

_USER_MESSAGES = {
    "corrupted": "Data file '{name}' is corrupted. It will be backed up and reset.",
    "locked": "Data file '{name}' is locked by another process. Please try again.",
    "permission": "Cannot access '{name}'. Please check file permissions.",
    "write": "Could not save '{name}'. Please check free disk space and the data directory.",
    "not_found": "Data file '{name}' not found.",
}
_DEFAULT_USER_MESSAGE = "Storage error for '{name}'. Please check the data directory."


class StorageError(Exception):
    """A failure tied to one document file."""

    def __init__(self, message: str, file_path: Path | str, reason: str | None = None) -> None:
        super().__init__(message)
        self.file_path = Path(file_path)
        self.reason = reason

    @property
    def user_message(self) -> str:
        template = _USER_MESSAGES.get(self.reason or "", _DEFAULT_USER_MESSAGE)
        return template.format(name=self.file_path.name)


class CorruptionError(StorageError):
    def __init__(self, message: str, file_path: Path | str) -> None:
        super().__init__(message, file_path, "corrupted")


class WriteError(StorageError):
    def __init__(self, message: str, file_path: Path | str, *, permission: bool = False) -> None:
        super().__init__(message, file_path, "permission" if permission else "write")


class LockTimeoutError(StorageError):
    def __init__(self, file_path: Path | str, timeout_ms: float) -> None:
        super().__init__(f"Lock timeout after {timeout_ms:g}ms", file_path, "locked")
        self.timeout_ms = timeout_ms
