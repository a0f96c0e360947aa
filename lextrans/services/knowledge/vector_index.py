"""In-memory vector index keyed by knowledge-base id.

Each knowledge base maps to an immutable tuple of :class:`VectorChunk`
records.  Writers only ever replace or remove a whole tuple, so a reader
iterating one knowledge base never observes a half-built list, even when
an embedding build finishes between two of its awaits.

Vectors are not persisted; :class:`IngestionService.rebuild_from_store`
repopulates the index from stored documents at startup.
"""

from __future__ import annotations

from typing import Iterator, Sequence

import numpy as np
import structlog

from lextrans.models.knowledge import VectorChunk
from lextrans.utils.errors import InvalidInputError

logger = structlog.get_logger(logger_name=__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (|a| * |b|)``.

    Raises
    ------
    InvalidInputError
        If the vectors differ in length.

    A zero-norm vector has no direction, so its similarity to anything is
    ``0.0``.
    """
    if len(a) != len(b):
        raise InvalidInputError(f"Vector length mismatch: {len(a)} != {len(b)}")
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_product = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm_product == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm_product)


class VectorIndex:
    """Process-wide mapping of knowledge-base id to chunk records."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[VectorChunk, ...]] = {}
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> None:
        self._entries.clear()
        self._initialized = True
        logger.info("vector_index_initialized")

    def shutdown(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        self._initialized = False
        logger.info("vector_index_shutdown", knowledge_bases=count)

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Mutation -- whole-list only
    # ------------------------------------------------------------------

    def put(self, kb_id: str, chunks: Sequence[VectorChunk]) -> None:
        """Replace the chunk list for *kb_id*."""
        self._entries[kb_id] = tuple(chunks)

    def remove(self, kb_id: str) -> bool:
        return self._entries.pop(kb_id, None) is not None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def scan(self, kb_id: str) -> tuple[VectorChunk, ...]:
        """Return the chunk records for *kb_id* (empty if absent)."""
        return self._entries.get(kb_id, ())

    def contains(self, kb_id: str) -> bool:
        return kb_id in self._entries

    def knowledge_base_ids(self) -> list[str]:
        return list(self._entries)

    def score(
        self, kb_id: str, query_vector: Sequence[float]
    ) -> Iterator[tuple[VectorChunk, float]]:
        """Yield ``(chunk, similarity)`` for every embedded chunk of *kb_id*.

        Chunks with an empty embedding are skipped.  A length mismatch
        raises :class:`InvalidInputError` from :func:`cosine_similarity`.
        """
        for chunk in self.scan(kb_id):
            if not chunk.embedding:
                continue
            yield chunk, cosine_similarity(query_vector, chunk.embedding)

    def stats(self) -> dict[str, int]:
        chunks = sum(len(c) for c in self._entries.values())
        embedded = sum(1 for c in self._entries.values() for chunk in c if chunk.embedding)
        return {
            "knowledge_bases": len(self._entries),
            "chunks": chunks,
            "embedded_chunks": embedded,
        }
