"""Knowledge-base ingestion and background embedding builds.

Lifecycle of one knowledge base::

    ingest() --> Created --> EmbeddingInProgress --> Ready
                                               \\--> PartiallyReady

``ingest`` does the synchronous part: it validates the text, chunks it,
stores the metadata row and puts placeholder chunks (empty vectors) into
the :class:`VectorIndex`, so the knowledge base is listable immediately.
Embedding runs as an :class:`EmbeddingBuildJob` -- an ``asyncio.Task``
whose handle is kept so it can be awaited, cancelled on delete, and
drained on shutdown.  Inside a job a fixed-size worker pool bounds the
number of in-flight embedding calls; a chunk whose call fails gets an
empty vector and the build carries on.
"""

from __future__ import annotations

import asyncio
import functools
import uuid
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from lextrans.interfaces.knowledge_base_store import IKnowledgeBaseStore, IPreferenceStore
from lextrans.interfaces.llm_provider import ILLMProvider
from lextrans.interfaces.model_registry import IModelRegistry
from lextrans.interfaces.text_extractor import ITextExtractor
from lextrans.models.knowledge import (
    BuildPhase,
    BuildStatus,
    KnowledgeBase,
    SourceFile,
    VectorChunk,
)
from lextrans.models.model_config import ModelConfig, ModelStage
from lextrans.pipeline.progress_tracker import BuildProgressTracker
from lextrans.services.knowledge.access import can_manage, is_visible
from lextrans.services.knowledge.chunker import TextChunker
from lextrans.services.knowledge.vector_index import VectorIndex
from lextrans.utils.concurrency import map_with_concurrency
from lextrans.utils.errors import (
    ConfigurationError,
    InvalidInputError,
    KnowledgeBaseNotFoundError,
    LexTransError,
    ModelNotFoundError,
    PermissionDeniedError,
)

logger = structlog.get_logger(logger_name=__name__)


@dataclass
class EmbeddingBuildJob:
    """One scheduled embedding build for a knowledge base."""

    kb_id: str
    model: ModelConfig
    chunks: list[str]
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()


class IngestionService:
    """Creates knowledge bases and keeps the vector index populated.

    Parameters
    ----------
    store:
        Metadata persistence for knowledge-base rows.
    model_registry:
        Resolves embedding model configs.
    llm_provider:
        Adapter used for embedding calls.
    vector_index:
        The shared in-memory index.
    chunker:
        Text splitter configured with the deployment's window size.
    progress_tracker:
        Receives per-chunk progress for :meth:`get_build_status`.
    text_extractor:
        Reads stored source files for :meth:`ingest_file` and startup
        reconciliation.
    preference_store:
        Optional per-user enable/disable overrides.
    concurrency:
        Worker-pool size for embedding calls within one build.
    """

    def __init__(
        self,
        store: IKnowledgeBaseStore,
        model_registry: IModelRegistry,
        llm_provider: ILLMProvider,
        vector_index: VectorIndex,
        chunker: TextChunker,
        progress_tracker: BuildProgressTracker,
        text_extractor: ITextExtractor,
        preference_store: IPreferenceStore | None = None,
        concurrency: int = 4,
    ) -> None:
        if concurrency < 1:
            raise ConfigurationError(f"embedding concurrency must be >= 1, got {concurrency}")
        self._store = store
        self._models = model_registry
        self._llm = llm_provider
        self._index = vector_index
        self._chunker = chunker
        self._tracker = progress_tracker
        self._extractor = text_extractor
        self._preferences = preference_store
        self._concurrency = concurrency
        self._jobs: dict[str, EmbeddingBuildJob] = {}

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(
        self,
        name: str,
        description: str | None,
        extracted_text: str,
        embedding_model_id: str,
        owner_id: str | None = None,
        source_file: SourceFile | None = None,
        is_public: bool = False,
    ) -> KnowledgeBase:
        """Create a knowledge base and schedule its embedding build.

        Returns as soon as the metadata row exists; embedding continues in
        the background.

        Raises
        ------
        InvalidInputError
            If ``extracted_text`` is empty or whitespace only (for example
            an image-only PDF).  No row is created.
        ModelNotFoundError
            If ``embedding_model_id`` does not name an embedding model.
        """
        if not extracted_text or not extracted_text.strip():
            raise InvalidInputError(
                "No text could be extracted from the document; image-only PDFs "
                "must be OCR'd before they can be used as a knowledge base"
            )

        model = await self._resolve_embedding_model(embedding_model_id)
        chunks = self._chunker.split(extracted_text)

        kb = KnowledgeBase(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            source_file=source_file or SourceFile(file_name=f"{name}.txt"),
            chunk_count=len(chunks),
            embedding_model_id=model.id,
            owner_user_id=owner_id,
            is_public=is_public,
        )
        await self._store.insert(kb)
        logger.info(
            "knowledge_base_created",
            kb_id=kb.id,
            name=name,
            chunk_count=len(chunks),
            embedding_model=model.name,
            owner_id=owner_id,
        )

        await self._schedule_build(kb.id, model, chunks)
        return kb

    async def ingest_file(
        self,
        name: str,
        description: str | None,
        source_file: SourceFile,
        embedding_model_id: str,
        owner_id: str | None = None,
        is_public: bool = False,
    ) -> KnowledgeBase:
        """Extract text from a stored document, then :meth:`ingest` it."""
        text = await self._extractor.extract_text(source_file)
        return await self.ingest(
            name=name,
            description=description,
            extracted_text=text,
            embedding_model_id=embedding_model_id,
            owner_id=owner_id,
            source_file=source_file,
            is_public=is_public,
        )

    # ------------------------------------------------------------------
    # Build status
    # ------------------------------------------------------------------

    async def get_build_status(self, kb_id: str) -> BuildStatus:
        """Return ``{ready, total, processed}`` for a knowledge base.

        ``ready`` is true only when the build has finished and every chunk
        holds a non-empty vector.  A knowledge base that has never been
        built (e.g. right after a restart, before reconciliation) reports
        its stored chunk count with nothing processed.
        """
        kb = await self._store.get(kb_id)
        if kb is None:
            raise KnowledgeBaseNotFoundError(kb_id)

        tracked = self._tracker.get_status(kb_id)
        if tracked is not None:
            return tracked

        chunks = self._index.scan(kb_id)
        if not chunks:
            return BuildStatus(ready=False, total=kb.chunk_count, processed=0)

        embedded = sum(1 for chunk in chunks if chunk.embedding)
        ready = embedded == len(chunks)
        return BuildStatus(
            ready=ready,
            total=len(chunks),
            processed=len(chunks),
            failed=len(chunks) - embedded,
            phase=BuildPhase.READY if ready else BuildPhase.PARTIALLY_READY,
        )

    async def wait_for_build(self, kb_id: str, timeout: float | None = None) -> BuildStatus:
        """Wait up to ``timeout`` seconds for a build, then report its status."""
        await self.wait_for_builds([kb_id], timeout)
        return await self.get_build_status(kb_id)

    async def wait_for_builds(
        self, kb_ids: list[str] | None = None, timeout: float | None = None
    ) -> int:
        """Wait for several builds (all when ``kb_ids`` is None).

        Never cancels a build on timeout.  Returns how many of the awaited
        builds had finished.
        """
        wanted = self._jobs.keys() if kb_ids is None else kb_ids
        tasks = [
            job.task
            for kb_id in list(wanted)
            if (job := self._jobs.get(kb_id)) is not None and job.task is not None
        ]
        if not tasks:
            return 0
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning("embedding_builds_still_running", pending=len(pending))
        return len(done)

    async def cancel_build(self, kb_id: str) -> bool:
        """Cancel a running build; ``True`` if one was cancelled."""
        job = self._jobs.pop(kb_id, None)
        if job is None or job.task is None or job.task.done():
            return False
        job.task.cancel()
        await asyncio.gather(job.task, return_exceptions=True)
        logger.info("embedding_build_cancelled", kb_id=kb_id)
        return True

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    async def list_knowledge_bases(
        self, requester_id: str | None = None, is_admin: bool = False
    ) -> list[KnowledgeBase]:
        return [
            kb
            for kb in await self._store.list_all()
            if is_visible(kb.owner_user_id, kb.is_public, requester_id, is_admin)
        ]

    async def delete(
        self, kb_id: str, requester_id: str | None = None, is_admin: bool = False
    ) -> bool:
        """Delete a knowledge base, its source file and its index entry.

        Returns ``False`` if it does not exist.
        """
        kb = await self._store.get(kb_id)
        if kb is None:
            return False
        if not can_manage(kb.owner_user_id, requester_id, is_admin):
            raise PermissionDeniedError(f"Not allowed to delete knowledge base {kb_id}")

        await self.cancel_build(kb_id)
        self._remove_source_file(kb)
        self._index.remove(kb_id)
        self._tracker.discard(kb_id)
        deleted = await self._store.delete(kb_id)
        logger.info("knowledge_base_deleted", kb_id=kb_id, name=kb.name)
        return deleted

    async def set_visibility(
        self,
        kb_id: str,
        is_public: bool,
        requester_id: str | None = None,
        is_admin: bool = False,
    ) -> KnowledgeBase:
        kb = await self._store.get(kb_id)
        if kb is None:
            raise KnowledgeBaseNotFoundError(kb_id)
        if not can_manage(kb.owner_user_id, requester_id, is_admin):
            raise PermissionDeniedError(f"Not allowed to change visibility of {kb_id}")
        updated = await self._store.update_visibility(kb_id, is_public)
        if updated is None:
            raise KnowledgeBaseNotFoundError(kb_id)
        logger.info("knowledge_base_visibility_changed", kb_id=kb_id, is_public=is_public)
        return updated

    async def set_user_preference(self, user_id: str, kb_id: str, enabled: bool) -> None:
        """Enable or disable a visible knowledge base for one user's searches."""
        if self._preferences is None:
            raise ConfigurationError("No preference store configured")
        kb = await self._store.get(kb_id)
        if kb is None or not is_visible(kb.owner_user_id, kb.is_public, user_id):
            raise KnowledgeBaseNotFoundError(kb_id)
        await self._preferences.set_knowledge_base_preference(user_id, kb_id, enabled)

    # ------------------------------------------------------------------
    # Startup reconciliation / shutdown
    # ------------------------------------------------------------------

    async def rebuild_from_store(
        self, wait: bool = False, timeout: float | None = None
    ) -> int:
        """Re-embed every stored knowledge base missing from the index.

        The index is not persisted, so after a restart each knowledge base
        is re-extracted from its stored file and rebuilt.  Knowledge bases
        whose file or embedding model is gone are logged and skipped.
        With ``wait=True`` the call blocks until the builds finish or
        ``timeout`` elapses.  Returns the number of builds scheduled.
        """
        scheduled: list[str] = []
        for kb in await self._store.list_all():
            if self._index.contains(kb.id) or kb.id in self._jobs:
                continue
            try:
                model = await self._resolve_embedding_model(kb.embedding_model_id)
                text = await self._extractor.extract_text(kb.source_file)
            except LexTransError as exc:
                logger.error("knowledge_base_rebuild_skipped", kb_id=kb.id, error=str(exc))
                continue

            chunks = self._chunker.split(text)
            if not chunks:
                logger.error("knowledge_base_rebuild_skipped", kb_id=kb.id, error="empty text")
                continue
            if len(chunks) != kb.chunk_count:
                logger.warning(
                    "knowledge_base_chunk_count_changed",
                    kb_id=kb.id,
                    stored=kb.chunk_count,
                    current=len(chunks),
                )
            await self._schedule_build(kb.id, model, chunks)
            scheduled.append(kb.id)

        logger.info("knowledge_base_rebuild_scheduled", count=len(scheduled))
        if wait and scheduled:
            await self.wait_for_builds(scheduled, timeout)
        return len(scheduled)

    async def shutdown(self) -> None:
        """Cancel every running build."""
        for kb_id in list(self._jobs):
            await self.cancel_build(kb_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _resolve_embedding_model(self, model_id: str) -> ModelConfig:
        model = await self._models.get_model_by_id(model_id)
        if model is None:
            raise ModelNotFoundError(model_id)
        if model.stage is not ModelStage.EMBEDDING:
            raise ModelNotFoundError(
                model_id, f"Model {model.name} is a {model.stage.value} model, not an embedding model"
            )
        return model

    async def _schedule_build(self, kb_id: str, model: ModelConfig, chunks: list[str]) -> None:
        self._index.put(
            kb_id,
            [
                VectorChunk(
                    chunk_id=VectorChunk.make_id(kb_id, i),
                    content=text,
                    metadata={"index": i, "knowledge_base_id": kb_id},
                )
                for i, text in enumerate(chunks)
            ],
        )
        await self._tracker.start(kb_id, len(chunks))

        job = EmbeddingBuildJob(kb_id=kb_id, model=model, chunks=chunks)
        job.task = asyncio.create_task(self._run_build(job), name=f"embedding-build-{kb_id}")
        job.task.add_done_callback(functools.partial(self._on_build_done, job))
        self._jobs[kb_id] = job

    async def _run_build(self, job: EmbeddingBuildJob) -> None:
        logger.info(
            "embedding_build_started",
            kb_id=job.kb_id,
            chunks=len(job.chunks),
            model=job.model.name,
            concurrency=self._concurrency,
        )

        async def _embed_chunk(text: str, index: int) -> tuple[float, ...]:
            try:
                vector = await self._llm.embed(job.model, text)
            except Exception as exc:  # noqa: BLE001 -- one chunk must not abort the build
                logger.warning(
                    "chunk_embedding_failed", kb_id=job.kb_id, index=index, error=str(exc)
                )
                vector = []
            await self._tracker.advance(job.kb_id, failed=not vector)
            return tuple(vector)

        vectors = await map_with_concurrency(job.chunks, _embed_chunk, self._concurrency)

        # the knowledge base may have been deleted while we were embedding
        if self._jobs.get(job.kb_id) is not job:
            return
        self._index.put(
            job.kb_id,
            [
                VectorChunk(
                    chunk_id=VectorChunk.make_id(job.kb_id, i),
                    content=text,
                    embedding=vector,
                    metadata={"index": i, "knowledge_base_id": job.kb_id},
                )
                for i, (text, vector) in enumerate(zip(job.chunks, vectors))
            ],
        )
        await self._tracker.finish(job.kb_id)
        failed = sum(1 for v in vectors if not v)
        logger.info(
            "embedding_build_finished",
            kb_id=job.kb_id,
            total=len(vectors),
            failed=failed,
        )

    def _on_build_done(self, job: EmbeddingBuildJob, task: asyncio.Task) -> None:
        if self._jobs.get(job.kb_id) is job:
            del self._jobs[job.kb_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("embedding_build_crashed", kb_id=job.kb_id, error=str(exc))

    @staticmethod
    def _remove_source_file(kb: KnowledgeBase) -> None:
        if not kb.source_file.file_path:
            return
        try:
            Path(kb.source_file.file_path).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning(
                "source_file_delete_failed", kb_id=kb.id, path=kb.source_file.file_path,
                error=str(exc),
            )
