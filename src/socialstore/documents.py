"""Typed document stores: one schema-validated document per store.

A concrete store names its document and supplies default/parse/dump:

    class QueueStore(DocumentStore[QueueData]):
        document_name = "queue.json"
        def default(self): ...
        def parse(self, raw): return QueueData.from_dict(raw)
        def dump(self, doc): return doc.to_dict()

Reads go through the handle cache; every mutation goes through
``transaction()``, which serializes writers inside the process and, when
``cross_process_lock`` is on, across processes too.
"""

from __future__ import annotations

import contextlib
import copy
import logging
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from socialstore.durable import DurableStore, StoreHandle
from socialstore.models import utc_now

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger = logging.getLogger("socialstore.documents")

T = TypeVar("T")


class DocumentStore(Generic[T]):
    """Cached load/save of one document on top of a DurableStore."""

    document_name: ClassVar[str]

    def __init__(self, durable: DurableStore, *, cross_process_lock: bool = False) -> None:
        self.durable = durable
        self.cross_process_lock = cross_process_lock

    # ------------------------------------------------------------------
    # Schema hooks
    # ------------------------------------------------------------------

    def default(self) -> T:
        raise NotImplementedError

    def parse(self, raw: Any) -> T:
        """Validate raw JSON. Raise ValueError, KeyError or TypeError if invalid."""
        raise NotImplementedError

    def dump(self, doc: T) -> dict[str, Any]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    @property
    def _handle(self) -> StoreHandle:
        # Looked up on every access so DurableStore.reset() takes effect
        return self.durable.handle(self.document_name)

    @property
    def path(self) -> Path:
        return self._handle.file_path

    def load(self) -> T:
        """Return the cached document, reading it from disk on first access.

        The returned object is shared with the cache; mutate only inside
        transaction(). Inside an open transaction this is its working copy.
        """
        handle = self._handle
        with handle.mutex:
            if handle.draft is not None:
                return handle.draft  # type: ignore[no-any-return]
            if not handle.is_cached:
                self._read_into(handle)
            return handle.cached_value  # type: ignore[no-any-return]

    def reload(self) -> T:
        """Drop the cached value and read the document again."""
        handle = self._handle
        with handle.mutex:
            handle.invalidate()
            return self.load()

    def save(self, doc: T) -> None:
        """Stamp updated_at, write atomically, and cache the written value."""
        handle = self._handle
        with handle.mutex:
            doc.updated_at = utc_now()  # type: ignore[attr-defined]
            self.durable.write(handle.file_path, self.dump(doc))
            handle.cached_value = doc
            handle.last_known_good_mtime = _mtime_ns(handle.file_path)

    @contextlib.contextmanager
    def transaction(self) -> Iterator[T]:
        """Yield a private copy of the document and save it on normal exit.

        An exception inside the block discards the copy and leaves both the
        cache and the file untouched.

        A nested transaction on the same document (same thread) yields the
        outer copy and saves nothing; the outermost block saves once.
        """
        handle = self._handle
        with handle.mutex:
            if handle.draft is not None:
                yield handle.draft
                return
            lock = (
                self.durable.acquire_lock(handle.file_path)
                if self.cross_process_lock
                else contextlib.nullcontext()
            )
            with lock:
                if handle.is_cached and self.cross_process_lock and self._is_stale(handle):
                    logger.debug("%s changed on disk, reloading", self.document_name)
                    handle.invalidate()
                draft = copy.deepcopy(self.load())
                handle.draft = draft
                try:
                    yield draft
                finally:
                    handle.draft = None
                self.save(draft)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _read_into(self, handle: StoreHandle) -> None:
        raw = self.durable.read_with_recovery(handle.file_path, self.dump(self.default()))
        try:
            doc = self.parse(raw)
        except (KeyError, TypeError, ValueError) as e:
            doc = self.default()
            if not self.durable.exists(handle.file_path):
                logger.warning("invalid default for %s: %s", self.document_name, e)
            else:
                # Rejected bytes survive as a backup
                backup = self.durable.backup_corrupted(handle.file_path)
                logger.warning("invalid %s document moved to %s, using defaults: %s", self.document_name, backup.name, e)
                self.durable.write(handle.file_path, self.dump(doc))
        handle.cached_value = doc
        handle.last_known_good_mtime = _mtime_ns(handle.file_path)

    def _is_stale(self, handle: StoreHandle) -> bool:
        return _mtime_ns(handle.file_path) != handle.last_known_good_mtime


def _mtime_ns(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None
