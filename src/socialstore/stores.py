"""Stores: every document store for one data directory, built once at startup.

    stores = open_stores(load_config())
    stores.content_graph.check_duplicate(text)
    stores.queue.add("hello", status="pending_review")

Pass the Stores object to whatever needs persistence; there is no global
instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from socialstore.config import StoreConfig, load_config
from socialstore.content_graph import ContentGraphStore
from socialstore.durable import DurableStore
from socialstore.queue import QueueStore
from socialstore.vectorizer import get_vectorizer

if TYPE_CHECKING:
    from socialstore.vectorizer import Vectorizer


@dataclass
class Stores:
    config: StoreConfig
    durable: DurableStore
    queue: QueueStore
    content_graph: ContentGraphStore

    def reset(self) -> None:
        """Forget every cached document so the next access rereads disk (tests)."""
        self.durable.reset()


def open_stores(config: StoreConfig | None = None, *, vectorizer: Vectorizer | None = None) -> Stores:
    """Build the DurableStore and typed stores described by config."""
    cfg = config or load_config()
    durable = DurableStore(cfg.data_dir, lock_timeout_ms=cfg.store.lock_timeout_ms)
    locked = cfg.store.cross_process_lock
    return Stores(
        config=cfg,
        durable=durable,
        queue=QueueStore(durable, cross_process_lock=locked),
        content_graph=ContentGraphStore(
            durable,
            vectorizer=vectorizer or get_vectorizer(cfg.dedup.vectorizer),
            similarity_threshold=cfg.dedup.similarity_threshold,
            cross_process_lock=locked,
        ),
    )
