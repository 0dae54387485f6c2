"""Document schemas: content graph and posting queue.

Each document dataclass has ``from_dict`` (validates, raises ValueError /
KeyError / TypeError on bad input) and ``to_dict`` (JSON-ready).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

DOCUMENT_VERSION = 1

QUEUE_ITEM_STATUSES = ("pending", "pending_review", "approved", "rejected", "posted", "failed")
QUEUE_ITEM_TYPES = ("single", "thread")
QUEUE_ITEM_SOURCES = ("generated", "manual", "trend_based", "repurposed")


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Field validation helpers
# ---------------------------------------------------------------------------

def _str(d: dict[str, Any], key: str) -> str:
    value = d[key]
    if not isinstance(value, str):
        msg = f"{key}: expected string, got {type(value).__name__}"
        raise TypeError(msg)
    return value


def _opt_str(d: dict[str, Any], key: str) -> str | None:
    return None if d.get(key) is None else _str(d, key)


def _number(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"{key}: expected number, got {type(value).__name__}"
        raise TypeError(msg)
    return float(value)


def _str_list(d: dict[str, Any], key: str) -> tuple[str, ...]:
    value = d[key]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        msg = f"{key}: expected list of strings"
        raise TypeError(msg)
    return tuple(value)


def _unit_interval(value: float, key: str) -> float:
    if not 0.0 <= value <= 1.0:
        msg = f"{key}: must be between 0 and 1, got {value}"
        raise ValueError(msg)
    return value


def _choice(d: dict[str, Any], key: str, choices: tuple[str, ...]) -> str:
    value = _str(d, key)
    if value not in choices:
        msg = f"{key}: {value!r} is not one of {', '.join(choices)}"
        raise ValueError(msg)
    return value


def _version(d: dict[str, Any]) -> int:
    value = d.get("version", DOCUMENT_VERSION)
    if isinstance(value, bool) or not isinstance(value, int):
        msg = "version: expected integer"
        raise TypeError(msg)
    return value


def _require_object(raw: Any, what: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        msg = f"{what}: expected object, got {type(raw).__name__}"
        raise TypeError(msg)
    return raw


# ---------------------------------------------------------------------------
# Content graph
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ContentNode:
    """One posted piece of content. Replaced or removed, never edited."""

    id: str
    content_hash: str
    semantic_vector: tuple[float, ...]
    topics: tuple[str, ...]
    posted_at: str
    content: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> ContentNode:
        d = _require_object(raw, "content node")
        vector = d["semantic_vector"]
        if not isinstance(vector, list):
            msg = "semantic_vector: expected list of numbers"
            raise TypeError(msg)
        return cls(
            id=_str(d, "id"),
            content_hash=_str(d, "content_hash"),
            semantic_vector=tuple(_number(v, "semantic_vector") for v in vector),
            topics=_str_list(d, "topics"),
            posted_at=_str(d, "posted_at"),
            content=_opt_str(d, "content"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "content_hash": self.content_hash,
        }
        if self.content is not None:
            d["content"] = self.content
        d["semantic_vector"] = list(self.semantic_vector)
        d["topics"] = list(self.topics)
        d["posted_at"] = self.posted_at
        return d


@dataclass
class ContentGraphData:
    """The content-graph.json document."""

    updated_at: str
    posts: list[ContentNode] = field(default_factory=list)
    similarity_threshold: float = 0.75
    version: int = DOCUMENT_VERSION

    @classmethod
    def from_dict(cls, raw: Any) -> ContentGraphData:
        d = _require_object(raw, "content graph")
        posts = d["posts"]
        if not isinstance(posts, list):
            msg = "posts: expected list"
            raise TypeError(msg)
        threshold = _number(d.get("similarity_threshold", 0.75), "similarity_threshold")
        return cls(
            version=_version(d),
            updated_at=_str(d, "updated_at"),
            posts=[ContentNode.from_dict(p) for p in posts],
            similarity_threshold=_unit_interval(threshold, "similarity_threshold"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "updated_at": self.updated_at,
            "posts": [p.to_dict() for p in self.posts],
            "similarity_threshold": self.similarity_threshold,
        }


# ---------------------------------------------------------------------------
# Posting queue
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QueueItem:
    """A post waiting to go out (or already handled)."""

    id: str
    content: str | tuple[str, ...]       # str for single, one entry per tweet for thread
    created_at: str
    type: str = "single"                 # single | thread
    status: str = "pending"              # pending | pending_review | approved | rejected | posted | failed
    source: str = "manual"               # generated | manual | trend_based | repurposed
    confidence_score: float = 1.0
    media: tuple[str, ...] | None = None
    scheduled_at: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_dict(cls, raw: Any) -> QueueItem:
        d = _require_object(raw, "queue item")
        content: str | tuple[str, ...]
        content = d["content"] if isinstance(d.get("content"), str) else _str_list(d, "content")
        media = None if d.get("media") is None else _str_list(d, "media")
        metadata = d.get("metadata", {})
        if not isinstance(metadata, dict):
            msg = "metadata: expected object"
            raise TypeError(msg)
        item_id = _str(d, "id")
        try:
            uuid.UUID(item_id)
        except ValueError as e:
            msg = f"id: not a UUID: {item_id!r}"
            raise ValueError(msg) from e
        return cls(
            id=item_id,
            content=content,
            created_at=_str(d, "created_at"),
            type=_choice(d, "type", QUEUE_ITEM_TYPES),
            status=_choice(d, "status", QUEUE_ITEM_STATUSES),
            source=_choice(d, "source", QUEUE_ITEM_SOURCES),
            confidence_score=_unit_interval(_number(d["confidence_score"], "confidence_score"), "confidence_score"),
            media=media,
            scheduled_at=_opt_str(d, "scheduled_at"),
            metadata=dict(metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "content": self.content if isinstance(self.content, str) else list(self.content),
            "media": None if self.media is None else list(self.media),
            "scheduled_at": self.scheduled_at,
            "created_at": self.created_at,
            "confidence_score": self.confidence_score,
            "source": self.source,
            "metadata": dict(self.metadata),
        }


@dataclass
class QueueData:
    """The queue.json document."""

    updated_at: str
    items: list[QueueItem] = field(default_factory=list)
    version: int = DOCUMENT_VERSION

    @classmethod
    def from_dict(cls, raw: Any) -> QueueData:
        d = _require_object(raw, "queue")
        items = d["items"]
        if not isinstance(items, list):
            msg = "items: expected list"
            raise TypeError(msg)
        return cls(
            version=_version(d),
            updated_at=_str(d, "updated_at"),
            items=[QueueItem.from_dict(i) for i in items],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "updated_at": self.updated_at,
            "items": [i.to_dict() for i in self.items],
        }
