"""Text -> vector capability for similarity search: letter histogram (default) or local fastembed."""

from __future__ import annotations

import string
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from fastembed import TextEmbedding


class Vectorizer(Protocol):
    """Same text in, same vector out; dimensionality fixed per instance."""

    def vectorize(self, text: str) -> list[float]: ...


# ---------------------------------------------------------------------------
# LetterFrequencyVectorizer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LetterFrequencyVectorizer:
    """26 buckets a-z, each letter's count divided by the text length.

    Cheap and deterministic; a placeholder until a real embedding model is
    configured.
    """

    def vectorize(self, text: str) -> list[float]:
        normalized = text.lower().strip()
        length = max(len(normalized), 1)
        counts = Counter(normalized)
        return [counts[ch] / length for ch in string.ascii_lowercase]


# ---------------------------------------------------------------------------
# FastEmbedVectorizer
# ---------------------------------------------------------------------------

@dataclass
class FastEmbedVectorizer:
    """Local embedder using fastembed TextEmbedding (ONNX, no API key needed)."""

    model: str = "BAAI/bge-small-en-v1.5"
    _fe_model: TextEmbedding | None = field(default=None, repr=False, init=False)  # pyright: ignore[reportUndefinedVariable]

    @property
    def _model(self) -> TextEmbedding:  # pyright: ignore[reportUndefinedVariable]
        """Get or create the fastembed model (lazy)."""
        if self._fe_model is None:
            try:
                from fastembed import TextEmbedding
            except ImportError as e:
                msg = "fastembed is required for local embeddings: pip install 'social-agent-store[fastembed]'"
                raise ImportError(msg) from e
            self._fe_model = TextEmbedding(self.model)
        return self._fe_model

    def vectorize(self, text: str) -> list[float]:
        import numpy as np

        embeddings = list(self._model.embed([text]))
        return np.asarray(embeddings[0], dtype=np.float32).tolist()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_vectorizer(spec: str) -> Vectorizer:
    """Factory: build a Vectorizer from a config string.

    - ``letters`` (or empty) → LetterFrequencyVectorizer
    - ``fastembed:<model>`` or a bare model name → FastEmbedVectorizer
    """
    lower = spec.strip().lower()
    if lower in ("", "letters"):
        return LetterFrequencyVectorizer()
    if lower.startswith("fastembed:"):
        return FastEmbedVectorizer(model=spec.strip()[len("fastembed:"):])
    return FastEmbedVectorizer(model=spec.strip())
