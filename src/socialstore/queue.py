"""Posting queue: queue.json CRUD with status filtering."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from socialstore.documents import DocumentStore
from socialstore.models import QUEUE_ITEM_STATUSES, QueueData, QueueItem, new_id, utc_now

if TYPE_CHECKING:
    from collections.abc import Sequence

_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})
_ITEM_FIELDS = frozenset(f.name for f in dataclasses.fields(QueueItem))


class QueueStore(DocumentStore[QueueData]):
    """queue.json: posts waiting for review, scheduling or publishing."""

    document_name = "queue.json"

    def default(self) -> QueueData:
        return QueueData(updated_at=utc_now())

    def parse(self, raw: Any) -> QueueData:
        return QueueData.from_dict(raw)

    def dump(self, doc: QueueData) -> dict[str, Any]:
        return doc.to_dict()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def data(self) -> QueueData:
        return self.load()

    def items(self) -> list[QueueItem]:
        return list(self.load().items)

    def get(self, item_id: str) -> QueueItem | None:
        return next((i for i in self.load().items if i.id == item_id), None)

    def by_status(self, status: str) -> list[QueueItem]:
        if status not in QUEUE_ITEM_STATUSES:
            msg = f"Unknown queue status: {status!r}"
            raise ValueError(msg)
        return [i for i in self.load().items if i.status == status]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def add(
        self,
        content: str | Sequence[str],
        *,
        type: str = "single",  # noqa: A002
        status: str = "pending",
        source: str = "manual",
        confidence_score: float = 1.0,
        media: Sequence[str] | None = None,
        scheduled_at: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> QueueItem:
        """Append a new item. Raises ValueError/TypeError on invalid fields."""
        item = QueueItem.from_dict({
            "id": new_id(),
            "type": type,
            "status": status,
            "content": content if isinstance(content, str) else list(content),
            "media": None if media is None else list(media),
            "scheduled_at": scheduled_at,
            "created_at": utc_now(),
            "confidence_score": confidence_score,
            "source": source,
            "metadata": metadata or {},
        })
        with self.transaction() as data:
            data.items.append(item)
        return item

    def update(self, item_id: str, **changes: Any) -> QueueItem | None:
        """Replace fields of an item. Returns None if the id is unknown."""
        bad = set(changes) & _IMMUTABLE_FIELDS
        if bad:
            msg = f"Cannot change {', '.join(sorted(bad))}"
            raise ValueError(msg)
        unknown = set(changes) - _ITEM_FIELDS
        if unknown:
            msg = f"Unknown queue item field(s): {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        if self.get(item_id) is None:
            return None

        with self.transaction() as data:
            for idx, current in enumerate(data.items):
                if current.id == item_id:
                    raw = current.to_dict()
                    for key, value in changes.items():
                        raw[key] = list(value) if isinstance(value, tuple) else value
                    updated = QueueItem.from_dict(raw)
                    data.items[idx] = updated
                    return updated
        return None

    def remove(self, item_id: str) -> bool:
        if self.get(item_id) is None:
            return False
        with self.transaction() as data:
            data.items = [i for i in data.items if i.id != item_id]
        return True
