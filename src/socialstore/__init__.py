"""Durable JSON document store for the social agent, with content deduplication.

Layout (one file per concern, directly in the data dir):
    ~/.social-agent/data/
        queue.json                               # posting queue
        content-graph.json                       # posted content: hashes + vectors
        queue.json.lock                          # advisory lock files (flock)
        content-graph.corrupt-<timestamp>.json   # backups of unreadable documents

Every document is ``{"version": 1, "updated_at": "...", ...}``.
Writes are temp file + fsync + rename: a document on disk is always either
the previous or the new value, never a torn write.
"""

from socialstore.config import StoreConfig, init_config, load_config
from socialstore.content_graph import ContentGraphStore, DuplicateCheckResult, SimilarityResult
from socialstore.documents import DocumentStore
from socialstore.durable import ABSENT, DurableStore, LockHandle, StoreHandle
from socialstore.errors import CorruptionError, LockTimeoutError, StorageError, WriteError
from socialstore.models import ContentGraphData, ContentNode, QueueData, QueueItem
from socialstore.queue import QueueStore
from socialstore.stores import Stores, open_stores

__all__ = [
    "ABSENT",
    "ContentGraphData",
    "ContentGraphStore",
    "ContentNode",
    "CorruptionError",
    "DocumentStore",
    "DuplicateCheckResult",
    "DurableStore",
    "LockHandle",
    "LockTimeoutError",
    "QueueData",
    "QueueItem",
    "QueueStore",
    "SimilarityResult",
    "StorageError",
    "StoreConfig",
    "StoreHandle",
    "Stores",
    "WriteError",
    "init_config",
    "load_config",
    "open_stores",
]
