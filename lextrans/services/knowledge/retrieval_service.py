"""Similarity search across knowledge bases, grouped by embedding space.

Vectors produced by different embedding models live in different spaces
and are never compared.  A search therefore:

1. resolves which knowledge bases the requester may see and has not
   disabled (narrowed further by an explicit candidate list),
2. groups those knowledge bases by ``embedding_model_id``,
3. embeds the query once per group, concurrently,
4. scores each group's chunks against that group's query vector only,
5. merges everything with a stable sort on similarity.

A group whose query embedding fails is logged and dropped; the other
groups still contribute results.
"""

from __future__ import annotations

import asyncio

import structlog

from lextrans.interfaces.knowledge_base_store import IKnowledgeBaseStore, IPreferenceStore
from lextrans.interfaces.llm_provider import ILLMProvider
from lextrans.interfaces.model_registry import IModelRegistry
from lextrans.models.knowledge import KnowledgeBase, SearchResult, VectorChunk
from lextrans.services.knowledge.access import is_visible, resolve_candidate_ids
from lextrans.services.knowledge.vector_index import VectorIndex
from lextrans.utils.errors import InvalidInputError, ModelNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TOP_K = 5


class RetrievalService:
    """Scoped, embedding-space-aware search over the vector index."""

    def __init__(
        self,
        store: IKnowledgeBaseStore,
        model_registry: IModelRegistry,
        llm_provider: ILLMProvider,
        vector_index: VectorIndex,
        preference_store: IPreferenceStore | None = None,
        default_top_k: int = _DEFAULT_TOP_K,
    ) -> None:
        self._store = store
        self._models = model_registry
        self._llm = llm_provider
        self._index = vector_index
        self._preferences = preference_store
        self._default_top_k = default_top_k

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        candidate_kb_ids: list[str] | None = None,
        top_k: int | None = None,
        requester_id: str | None = None,
        is_admin: bool = False,
    ) -> list[SearchResult]:
        """Return the ``top_k`` chunks most similar to ``query``.

        Parameters
        ----------
        query:
            Free text to search for.
        candidate_kb_ids:
            ``None`` searches every accessible, enabled knowledge base.
            An explicit list -- **including an empty list** -- restricts
            the search to those ids, so ``[]`` always returns no results.
        top_k:
            Maximum results; defaults to the configured ``rag_top_k``.
        requester_id, is_admin:
            Caller identity for visibility rules.  ``None`` means auth is
            disabled and every knowledge base is visible.

        Raises
        ------
        InvalidInputError
            If ``query`` is empty.
        """
        if not query or not query.strip():
            raise InvalidInputError("Search query must not be empty")
        limit = self._default_top_k if top_k is None else top_k
        if limit <= 0:
            return []

        selected = await self._select_knowledge_bases(candidate_kb_ids, requester_id, is_admin)
        if not selected:
            return []

        groups: dict[str, list[KnowledgeBase]] = {}
        for kb in selected:
            groups.setdefault(kb.embedding_model_id, []).append(kb)

        query_vectors = await self._embed_query_per_group(query, list(groups))

        scored: list[tuple[VectorChunk, float, str]] = []
        for model_id, members in groups.items():
            query_vector = query_vectors.get(model_id)
            if query_vector is None:
                continue
            for kb in members:
                scored.extend(self._score_knowledge_base(kb, query_vector))

        # list.sort is stable: ties keep group order, then chunk order
        scored.sort(key=lambda item: item[1], reverse=True)

        results = [
            SearchResult(
                chunk_id=chunk.chunk_id,
                content=chunk.content,
                similarity=similarity,
                metadata=dict(chunk.metadata),
                knowledge_base_name=kb_name,
            )
            for chunk, similarity, kb_name in scored[:limit]
        ]
        logger.info(
            "knowledge_search_complete",
            knowledge_bases=len(selected),
            groups=len(groups),
            groups_searched=len(query_vectors),
            candidates=len(scored),
            returned=len(results),
        )
        return results

    async def retrieve_context(
        self,
        query: str,
        candidate_kb_ids: list[str] | None = None,
        top_k: int | None = None,
        requester_id: str | None = None,
        is_admin: bool = False,
    ) -> list[str]:
        """Return just the chunk texts of :meth:`search`, for RAG prompts."""
        results = await self.search(query, candidate_kb_ids, top_k, requester_id, is_admin)
        return [result.content for result in results]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _select_knowledge_bases(
        self,
        candidate_kb_ids: list[str] | None,
        requester_id: str | None,
        is_admin: bool,
    ) -> list[KnowledgeBase]:
        accessible = [
            kb
            for kb in await self._store.list_all()
            if is_visible(kb.owner_user_id, kb.is_public, requester_id, is_admin)
        ]
        overrides: dict[str, bool] = {}
        if requester_id is not None and self._preferences is not None:
            overrides = await self._preferences.get_knowledge_base_preferences(requester_id)

        by_id = {kb.id: kb for kb in accessible}
        selected_ids = resolve_candidate_ids(by_id, overrides, candidate_kb_ids)
        return [by_id[kb_id] for kb_id in selected_ids]

    async def _embed_query_per_group(
        self, query: str, model_ids: list[str]
    ) -> dict[str, list[float]]:
        async def _embed_for(model_id: str) -> list[float]:
            model = await self._models.get_model_by_id(model_id)
            if model is None:
                raise ModelNotFoundError(model_id)
            return await self._llm.embed(model, query)

        outcomes = await asyncio.gather(
            *(_embed_for(model_id) for model_id in model_ids), return_exceptions=True
        )

        vectors: dict[str, list[float]] = {}
        for model_id, outcome in zip(model_ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "retrieval_group_skipped", embedding_model_id=model_id, error=str(outcome)
                )
            elif not outcome:
                logger.warning(
                    "retrieval_group_skipped",
                    embedding_model_id=model_id,
                    error="empty query embedding",
                )
            else:
                vectors[model_id] = outcome
        return vectors

    def _score_knowledge_base(
        self, kb: KnowledgeBase, query_vector: list[float]
    ) -> list[tuple[VectorChunk, float, str]]:
        try:
            return [
                (chunk, similarity, kb.name)
                for chunk, similarity in self._index.score(kb.id, query_vector)
            ]
        except InvalidInputError as exc:
            # stale vectors from a model whose dimension changed
            logger.warning("knowledge_base_skipped", kb_id=kb.id, error=str(exc))
            return []
