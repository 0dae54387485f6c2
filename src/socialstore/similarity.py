"""Content hashing and cosine similarity for duplicate detection."""

from __future__ import annotations

import hashlib
import re
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Trim and collapse whitespace runs to a single space."""
    return _WHITESPACE_RE.sub(" ", text.strip())


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the normalized text.

    Lone surrogates (e.g. from surrogateescape-decoded argv) hash as U+FFFD.
    """
    return hashlib.sha256(_well_formed(normalize_text(text)).encode("utf-8")).hexdigest()


def _well_formed(text: str) -> str:
    # Pairs surrogate halves into their code point, replaces unpaired ones
    return text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "replace")


def _padded(vector: Sequence[float], width: int) -> NDArray[np.float64]:
    out = np.zeros(width, dtype=np.float64)
    out[: len(vector)] = vector
    return out


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of two vectors in [-1, 1].

    A shorter vector is zero-padded to the longer one's length. Empty or
    all-zero vectors give 0.0.
    """
    if len(a) == 0 or len(b) == 0:
        return 0.0
    width = max(len(a), len(b))
    va = _padded(a, width)
    vb = _padded(b, width)
    magnitude = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if magnitude == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / magnitude, -1.0, 1.0))


def cosine_similarities(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> list[float]:
    """cosine_similarity(query, v) for every v, computed as one matrix product."""
    if not vectors:
        return []
    width = max(len(query), *(len(v) for v in vectors))
    if width == 0:
        return [0.0] * len(vectors)

    q = _padded(query, width)
    q_norm = float(np.linalg.norm(q))
    if q_norm == 0:
        return [0.0] * len(vectors)

    matrix = np.zeros((len(vectors), width), dtype=np.float64)
    for i, v in enumerate(vectors):
        matrix[i, : len(v)] = v
    norms = np.linalg.norm(matrix, axis=1)
    safe = np.where(norms == 0, 1.0, norms)
    scores = np.where(norms == 0, 0.0, (matrix @ q) / (safe * q_norm))
    return [float(s) for s in np.clip(scores, -1.0, 1.0)]
