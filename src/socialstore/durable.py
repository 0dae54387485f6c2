"""Durable Store: one JSON document per file, crash-safe.

    store = DurableStore("~/.social-agent/data")
    path = store.resolve_path("queue")             # <data_dir>/queue.json
    data = store.read_with_recovery(path, {"items": []})
    store.write(path, data)
    with store.acquire_lock(path, timeout_ms=500):
        ...                                        # cross-process critical section

Writes go to a temp file in the same directory, are fsync'd, then renamed
over the target, so a reader sees either the old document or the new one.
A document that exists but does not parse is renamed to
``<stem>.corrupt-<timestamp>.json`` and replaced by the caller's default.

Locks are fcntl.flock on a sibling ``<name>.json.lock`` file. The kernel
drops them when the holder dies, so a crashed process never leaves a stale
lock behind. The lock file itself stays on disk.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from socialstore.errors import CorruptionError, LockTimeoutError, StorageError, WriteError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger("socialstore.durable")

_LOCK_BACKOFF_START = 0.005  # seconds
_LOCK_BACKOFF_MAX = 0.1
_DEFAULT_LOCK_TIMEOUT_MS = 5000


class _Absent:
    """Marker for a document file that does not exist yet."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Any = _Absent()


@dataclass
class StoreHandle:
    """In-memory lifecycle of one document: path, cached value, last seen mtime."""

    file_path: Path
    cached_value: Any = ABSENT
    last_known_good_mtime: int | None = None   # st_mtime_ns after the last load/save
    mutex: threading.RLock = field(default_factory=threading.RLock, repr=False)
    draft: Any = field(default=None, repr=False)  # working copy of the open transaction

    @property
    def is_cached(self) -> bool:
        return self.cached_value is not ABSENT

    def invalidate(self) -> None:
        self.cached_value = ABSENT
        self.last_known_good_mtime = None


@dataclass
class LockHandle:
    """A held advisory lock. Released when the acquire_lock block exits."""

    path: Path
    lock_path: Path
    waited_ms: float = 0.0
    released: bool = False


class DurableStore:
    """Atomic JSON persistence rooted at one data directory."""

    def __init__(self, data_dir: Path | str, *, lock_timeout_ms: int = _DEFAULT_LOCK_TIMEOUT_MS) -> None:
        self.data_dir = Path(data_dir).expanduser()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.lock_timeout_ms = lock_timeout_ms
        self._handles: dict[str, StoreHandle] = {}
        self._handles_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Paths and handles
    # ------------------------------------------------------------------

    def resolve_path(self, name: str) -> Path:
        """Map a logical document name to its file under data_dir."""
        if not name or name in (".", "..") or "/" in name or "\\" in name or name.startswith("."):
            msg = f"Invalid document name: {name!r}"
            raise ValueError(msg)
        filename = name if name.endswith(".json") else f"{name}.json"
        return self.data_dir / filename

    def handle(self, name: str) -> StoreHandle:
        """Return the handle for a document name, creating it on first access."""
        path = self.resolve_path(name)
        key = path.name
        with self._handles_lock:
            h = self._handles.get(key)
            if h is None:
                h = StoreHandle(file_path=path)
                self._handles[key] = h
            return h

    def reset(self) -> None:
        """Drop every handle and its cached value. For test isolation."""
        with self._handles_lock:
            self._handles.clear()

    def exists(self, path: Path | str) -> bool:
        return Path(path).exists()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read(self, path: Path | str) -> Any:
        """Parse the document at path, or return ABSENT if there is no file.

        Raises CorruptionError when the file is empty, not UTF-8, or not JSON.
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return ABSENT
        except PermissionError as e:
            raise StorageError(str(e), path, "permission") from e
        except OSError as e:
            raise StorageError(str(e), path) from e

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            msg = f"File is not valid UTF-8: {e}"
            raise CorruptionError(msg, path) from e
        if not text.strip():
            msg = "File is empty"
            raise CorruptionError(msg, path)
        try:
            return json.loads(text, parse_constant=_reject_constant)
        except ValueError as e:
            raise CorruptionError(str(e), path) from e

    def read_with_recovery(
        self,
        path: Path | str,
        default: Any,
        on_recovery: Callable[[Path, CorruptionError, Path], None] | None = None,
    ) -> Any:
        """Read path; back up and replace a corrupt file with default.

        A missing file yields default without touching disk.
        """
        path = Path(path)
        try:
            value = self.read(path)
        except CorruptionError as e:
            backup = self.backup_corrupted(path)
            logger.warning("corrupted document %s moved to %s (%s)", path.name, backup.name, e)
            self.write(path, default)
            if on_recovery is not None:
                on_recovery(path, e, backup)
            return default
        if value is ABSENT:
            return default
        return value

    def backup_corrupted(self, path: Path) -> Path:
        """Rename a corrupt document out of the way. Never deletes bytes."""
        stamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        backup = path.with_name(f"{path.stem}.corrupt-{stamp}.json")
        n = 1
        while backup.exists():
            backup = path.with_name(f"{path.stem}.corrupt-{stamp}-{n}.json")
            n += 1
        try:
            os.replace(path, backup)
        except OSError as e:
            msg = f"Could not back up corrupted file: {e}"
            raise StorageError(msg, path, "permission" if isinstance(e, PermissionError) else None) from e
        return backup

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write(self, path: Path | str, value: Any) -> None:
        """Atomically replace path with value serialized as JSON.

        Raises WriteError if the value cannot be serialized or the filesystem
        refuses the write; the previous document is left untouched.
        """
        path = Path(path)
        try:
            content = (json.dumps(value, indent=2, ensure_ascii=False, allow_nan=False) + "\n").encode("utf-8")
        except (TypeError, ValueError) as e:
            msg = f"Value is not JSON serializable: {e}"
            raise WriteError(msg, path) from e

        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise WriteError(str(e), path, permission=isinstance(e, PermissionError)) from e
        finally:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
        _fsync_dir(path.parent)

    def delete(self, path: Path | str) -> None:
        """Remove a document file. A missing file is fine."""
        path = Path(path)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(str(e), path, "permission" if isinstance(e, PermissionError) else None) from e
        with self._handles_lock:
            h = self._handles.get(path.name)
        if h is not None and h.file_path == path:
            h.invalidate()

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def acquire_lock(self, path: Path | str, timeout_ms: float | None = None) -> Iterator[LockHandle]:
        """Hold an exclusive advisory lock on path for the duration of the block.

        Retries with exponential backoff until timeout_ms (default: the store's
        lock_timeout_ms) elapses, then raises LockTimeoutError.
        """
        path = Path(path)
        budget = self.lock_timeout_ms if timeout_ms is None else timeout_ms
        lock_path = path.with_name(path.name + ".lock")
        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise StorageError(str(e), lock_path, "permission" if isinstance(e, PermissionError) else None) from e

        try:
            waited = _flock_with_timeout(fd, path, budget)
            handle = LockHandle(path=path, lock_path=lock_path, waited_ms=waited)
            try:
                yield handle
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                handle.released = True
        finally:
            os.close(fd)


def _flock_with_timeout(fd: int, path: Path, timeout_ms: float) -> float:
    """Take LOCK_EX on fd, polling with backoff. Returns milliseconds waited."""
    start = time.monotonic()
    deadline = start + timeout_ms / 1000
    delay = _LOCK_BACKOFF_START
    logged = False
    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            return (time.monotonic() - start) * 1000
        except BlockingIOError:
            pass
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning("lock timeout on %s after %gms", path.name, timeout_ms)
            raise LockTimeoutError(path, timeout_ms)
        if not logged:
            logger.debug("waiting for lock on %s", path.name)
            logged = True
        time.sleep(min(delay, remaining))
        delay = min(delay * 2, _LOCK_BACKOFF_MAX)


def _fsync_dir(directory: Path) -> None:
    """Flush the directory entry after a rename. Not every platform allows it."""
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        with contextlib.suppress(OSError):
            os.fsync(fd)
    finally:
        os.close(fd)


def _reject_constant(name: str) -> Any:
    msg = f"Invalid JSON constant: {name}"
    raise ValueError(msg)
