"""Composition root for LexTrans.

Builds every provider and service from :class:`Settings`, and owns the
process lifecycle:

    startup   create tables, seed models, init the vector index,
              rebuild embeddings for stored knowledge bases
    shutdown  cancel embedding builds, clear the index, close HTTP client

``app_lifespan`` wraps both for callers (the CLI, an HTTP layer, tests).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import structlog

from lextrans.config.loader import load_config
from lextrans.config.settings import Settings
from lextrans.pipeline.orchestrator import TranslationPipeline
from lextrans.pipeline.progress_tracker import BuildProgressTracker
from lextrans.providers.extraction.file_text_extractor import FileTextExtractor
from lextrans.providers.llm.openai_compatible_provider import OpenAICompatibleProvider
from lextrans.providers.sqlite.history_store import SQLiteTranslationHistoryStore
from lextrans.providers.sqlite.knowledge_base_store import SQLiteKnowledgeBaseStore
from lextrans.providers.sqlite.model_registry import SQLiteModelRegistry
from lextrans.providers.sqlite.preference_store import SQLitePreferenceStore
from lextrans.services.knowledge.chunker import TextChunker
from lextrans.services.knowledge.ingestion_service import IngestionService
from lextrans.services.knowledge.retrieval_service import RetrievalService
from lextrans.services.knowledge.vector_index import VectorIndex
from lextrans.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


@dataclass
class AppComponents:
    """Every long-lived object the application wires together."""

    settings: Settings
    config: dict[str, Any]
    llm_provider: OpenAICompatibleProvider
    preference_store: SQLitePreferenceStore
    model_registry: SQLiteModelRegistry
    knowledge_base_store: SQLiteKnowledgeBaseStore
    history_store: SQLiteTranslationHistoryStore
    vector_index: VectorIndex
    progress_tracker: BuildProgressTracker
    ingestion_service: IngestionService
    retrieval_service: RetrievalService
    translation_pipeline: TranslationPipeline


def build_components(
    app_settings: Settings | None = None,
    llm_provider: OpenAICompatibleProvider | None = None,
) -> AppComponents:
    """Construct every provider and service instance.

    Nothing touches the network or the database here; see :func:`startup`.
    """
    app_settings = app_settings or Settings()
    config = load_config(settings=app_settings)
    db_path = app_settings.database_path

    llm = llm_provider or OpenAICompatibleProvider(settings=app_settings)
    preferences = SQLitePreferenceStore(db_path)
    registry = SQLiteModelRegistry(db_path, preference_store=preferences)
    kb_store = SQLiteKnowledgeBaseStore(db_path)
    history = SQLiteTranslationHistoryStore(db_path)
    index = VectorIndex()
    tracker = BuildProgressTracker()

    ingestion = IngestionService(
        store=kb_store,
        model_registry=registry,
        llm_provider=llm,
        vector_index=index,
        chunker=TextChunker(app_settings.chunk_size, app_settings.chunk_overlap),
        progress_tracker=tracker,
        text_extractor=FileTextExtractor(),
        preference_store=preferences,
        concurrency=app_settings.embedding_concurrency,
    )
    retrieval = RetrievalService(
        store=kb_store,
        model_registry=registry,
        llm_provider=llm,
        vector_index=index,
        preference_store=preferences,
        default_top_k=app_settings.rag_top_k,
    )
    pipeline = TranslationPipeline(
        model_registry=registry,
        llm_provider=llm,
        history_store=history,
        retrieval_service=retrieval,
        source_language=app_settings.source_language,
        target_language=app_settings.target_language,
        rag_top_k=app_settings.rag_top_k,
    )

    return AppComponents(
        settings=app_settings,
        config=config,
        llm_provider=llm,
        preference_store=preferences,
        model_registry=registry,
        knowledge_base_store=kb_store,
        history_store=history,
        vector_index=index,
        progress_tracker=tracker,
        ingestion_service=ingestion,
        retrieval_service=retrieval,
        translation_pipeline=pipeline,
    )


async def startup(components: AppComponents, rebuild: bool | None = None) -> None:
    """Prepare storage and repopulate the in-memory vector index.

    ``rebuild`` overrides ``Settings.rebuild_on_startup``.  When a rebuild
    timeout is configured, startup waits for the builds up to that bound;
    otherwise builds continue in the background.
    """
    app_settings = components.settings
    await components.preference_store.initialize()
    await components.model_registry.initialize()
    await components.knowledge_base_store.initialize()
    await components.history_store.initialize()

    seeded = await components.model_registry.seed(components.config.get("models", []))
    components.vector_index.init()

    should_rebuild = app_settings.rebuild_on_startup if rebuild is None else rebuild
    scheduled = 0
    if should_rebuild:
        timeout = app_settings.rebuild_timeout_seconds
        scheduled = await components.ingestion_service.rebuild_from_store(
            wait=timeout is not None, timeout=timeout
        )

    _logger.info(
        "application_started",
        database=app_settings.database_path,
        seeded_models=seeded,
        rebuild_scheduled=scheduled,
        app_env=app_settings.app_env,
    )


async def shutdown(components: AppComponents) -> None:
    await components.ingestion_service.shutdown()
    components.vector_index.shutdown()
    await components.llm_provider.aclose()
    _logger.info("application_stopped")


@asynccontextmanager
async def app_lifespan(
    app_settings: Settings | None = None, rebuild: bool | None = None
) -> AsyncIterator[AppComponents]:
    """Build, start, and always shut down the application."""
    app_settings = app_settings or Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=app_settings.app_env == "production",
    )
    components = build_components(app_settings)
    try:
        await startup(components, rebuild=rebuild)
        yield components
    finally:
        await shutdown(components)
