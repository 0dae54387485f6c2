"""Content graph: record of posted content and duplicate detection.

Two signals, cheapest first:

1. exact match: SHA-256 of whitespace-normalized text against every stored hash
2. similar content: cosine similarity of semantic vectors >= threshold

The threshold lives in content-graph.json (``similarity_threshold``) so each
deployment can tune it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from socialstore.documents import DocumentStore
from socialstore.models import ContentGraphData, ContentNode, new_id, utc_now
from socialstore.similarity import content_hash, cosine_similarities
from socialstore.vectorizer import LetterFrequencyVectorizer, Vectorizer

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from socialstore.durable import DurableStore

logger = logging.getLogger("socialstore.content_graph")

EXACT_MATCH = "exact_match"
SIMILAR_CONTENT = "similar_content"


@dataclass(frozen=True)
class SimilarityResult:
    node: ContentNode
    similarity: float


@dataclass(frozen=True)
class DuplicateCheckResult:
    is_duplicate: bool
    reason: str | None = None              # exact_match | similar_content
    matched_node: ContentNode | None = None
    similarity: float | None = None        # only set for similar_content


class ContentGraphStore(DocumentStore[ContentGraphData]):
    """content-graph.json: posted content with hashes and semantic vectors."""

    document_name = "content-graph.json"

    def __init__(
        self,
        durable: DurableStore,
        *,
        vectorizer: Vectorizer | None = None,
        similarity_threshold: float = 0.75,
        cross_process_lock: bool = False,
    ) -> None:
        super().__init__(durable, cross_process_lock=cross_process_lock)
        self.vectorizer: Vectorizer = vectorizer or LetterFrequencyVectorizer()
        self._initial_threshold = similarity_threshold

    def default(self) -> ContentGraphData:
        return ContentGraphData(updated_at=utc_now(), similarity_threshold=self._initial_threshold)

    def parse(self, raw: Any) -> ContentGraphData:
        return ContentGraphData.from_dict(raw)

    def dump(self, doc: ContentGraphData) -> dict[str, Any]:
        return doc.to_dict()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def content_hash(self, text: str) -> str:
        return content_hash(text)

    def vectorize(self, text: str) -> list[float]:
        return self.vectorizer.vectorize(text)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def data(self) -> ContentGraphData:
        return self.load()

    def all_nodes(self) -> list[ContentNode]:
        return list(self.load().posts)

    def get_node(self, node_id: str) -> ContentNode | None:
        return next((n for n in self.load().posts if n.id == node_id), None)

    def find_by_hash(self, digest: str) -> ContentNode | None:
        return next((n for n in self.load().posts if n.content_hash == digest), None)

    def nodes_by_topic(self, topic: str) -> list[ContentNode]:
        return [n for n in self.load().posts if topic in n.topics]

    @property
    def similarity_threshold(self) -> float:
        return self.load().similarity_threshold

    def find_similar(self, vector: Sequence[float], threshold: float | None = None) -> list[SimilarityResult]:
        """Nodes whose vector is at least threshold-similar, most similar first.

        threshold defaults to the document's similarity_threshold. Ties keep
        insertion order.
        """
        data = self.load()
        limit = data.similarity_threshold if threshold is None else threshold
        scores = cosine_similarities(vector, [n.semantic_vector for n in data.posts])
        results = [
            SimilarityResult(node=node, similarity=score)
            for node, score in zip(data.posts, scores, strict=True)
            if score >= limit
        ]
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results

    def check_duplicate(self, text: str) -> DuplicateCheckResult:
        """Exact hash match first; vector search only when there is none."""
        exact = self.find_by_hash(self.content_hash(text))
        if exact is not None:
            return DuplicateCheckResult(is_duplicate=True, reason=EXACT_MATCH, matched_node=exact)

        similar = self.find_similar(self.vectorize(text))
        if similar:
            best = similar[0]
            return DuplicateCheckResult(
                is_duplicate=True,
                reason=SIMILAR_CONTENT,
                matched_node=best.node,
                similarity=best.similarity,
            )
        return DuplicateCheckResult(is_duplicate=False)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def add_node(
        self,
        content: str,
        topics: Iterable[str] = (),
        semantic_vector: Sequence[float] | None = None,
    ) -> ContentNode:
        """Record posted content. Does not check for duplicates."""
        if isinstance(topics, str):
            msg = f"topics must be a list of strings, not a string: {topics!r}"
            raise TypeError(msg)
        vector = self.vectorize(content) if semantic_vector is None else semantic_vector
        node = ContentNode(
            id=new_id(),
            content_hash=self.content_hash(content),
            content=content,
            semantic_vector=tuple(float(v) for v in vector),
            topics=tuple(topics),
            posted_at=utc_now(),
        )
        with self.transaction() as data:
            data.posts.append(node)
        logger.debug("content node added: %s", node.id)
        return node

    def remove_node(self, node_id: str) -> bool:
        """Remove a node by id. Returns False (and writes nothing) if absent."""
        if self.get_node(node_id) is None:
            return False
        with self.transaction() as data:
            data.posts = [n for n in data.posts if n.id != node_id]
        return True

    def set_similarity_threshold(self, threshold: float) -> None:
        if not 0.0 <= threshold <= 1.0:
            msg = f"similarity threshold must be between 0 and 1, got {threshold}"
            raise ValueError(msg)
        with self.transaction() as data:
            data.similarity_threshold = float(threshold)
