"""Shared pytest fixtures for the LexTrans test suite."""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from lextrans.interfaces.llm_provider import ILLMProvider
from lextrans.interfaces.text_extractor import ITextExtractor
from lextrans.models.knowledge import SourceFile
from lextrans.models.model_config import ChatCompletion, ChatMessage, ModelConfig, ModelStage
from lextrans.pipeline.progress_tracker import BuildProgressTracker
from lextrans.providers.sqlite.history_store import SQLiteTranslationHistoryStore
from lextrans.providers.sqlite.knowledge_base_store import SQLiteKnowledgeBaseStore
from lextrans.providers.sqlite.model_registry import SQLiteModelRegistry
from lextrans.providers.sqlite.preference_store import SQLitePreferenceStore
from lextrans.services.knowledge.chunker import TextChunker
from lextrans.services.knowledge.ingestion_service import IngestionService
from lextrans.services.knowledge.retrieval_service import RetrievalService
from lextrans.services.knowledge.vector_index import VectorIndex
from lextrans.utils.errors import EmbeddingError, ExtractionError, LLMError

# ---------------------------------------------------------------------------
# Model factory
# ---------------------------------------------------------------------------


def make_model(
    model_id: str,
    stage: ModelStage,
    **overrides: Any,
) -> ModelConfig:
    """Build a ModelConfig with predictable defaults."""
    fields: dict[str, Any] = {
        "id": model_id,
        "name": model_id,
        "stage": stage,
        "api_endpoint": "https://llm.test/v1/chat/completions",
        "api_key": "sk-test",
        "model_id": f"upstream-{model_id}",
        "is_public": True,
    }
    fields.update(overrides)
    return ModelConfig(**fields)


# ---------------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------------


def _hash_vector(text: str, dims: int = 8) -> list[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 + 0.01 for b in digest[:dims]]


class FakeLLMProvider(ILLMProvider):
    """Deterministic in-process stand-in for the HTTP adapter.

    * ``embed`` returns ``model_vectors[(config.id, text)]`` or
      ``vectors[text]`` when set, else a hash-derived vector whose length
      is ``dims_by_model[config.id]`` (default 8).
    * ``chat_complete`` returns ``replies[config.id]`` (a string or a
      callable of the prompt) or ``"<model id>: <prompt head>"``.
    * ``fail_embed`` / ``fail_chat`` hold model ids whose calls raise;
      ``fail_embed_texts`` fails individual embedding inputs.
    * ``delays`` holds per-model sleeps applied to both call types.
    """

    def __init__(self) -> None:
        self.vectors: dict[str, list[float]] = {}
        self.model_vectors: dict[tuple[str, str], list[float]] = {}
        self.dims_by_model: dict[str, int] = {}
        self.replies: dict[str, str | Callable[[str], str]] = {}
        self.delays: dict[str, float] = {}
        self.fail_embed: set[str] = set()
        self.fail_embed_texts: set[str] = set()
        self.fail_chat: set[str] = set()
        self.embed_calls: list[tuple[str, str]] = []
        self.chat_calls: list[tuple[str, list[ChatMessage], list[str] | None]] = []
        self.closed = False

    async def chat_complete(
        self,
        config: ModelConfig,
        messages: list[ChatMessage],
        rag_context: list[str] | None = None,
    ) -> ChatCompletion:
        self.chat_calls.append((config.id, messages, rag_context))
        if config.id in self.delays:
            await asyncio.sleep(self.delays[config.id])
        if config.id in self.fail_chat:
            raise LLMError(
                message=f"{config.stage.value} call to {config.api_endpoint} failed: HTTP 500",
                provider_name=config.name,
            )
        prompt = messages[-1].content
        reply = self.replies.get(config.id)
        if callable(reply):
            text = reply(prompt)
        elif reply is not None:
            text = reply
        else:
            text = f"{config.id}: {prompt[:40]}"
        return ChatCompletion(text=text, tokens_used=len(text))

    async def embed(self, config: ModelConfig, text: str) -> list[float]:
        self.embed_calls.append((config.id, text))
        if config.id in self.delays:
            await asyncio.sleep(self.delays[config.id])
        if config.id in self.fail_embed or text in self.fail_embed_texts:
            raise EmbeddingError(message="embedding call failed", provider_name=config.name)
        if (config.id, text) in self.model_vectors:
            return list(self.model_vectors[(config.id, text)])
        if text in self.vectors:
            return list(self.vectors[text])
        return _hash_vector(text, self.dims_by_model.get(config.id, 8))

    async def test_connection(self, config: ModelConfig) -> bool:
        return config.id not in self.fail_chat and config.id not in self.fail_embed

    def get_provider_name(self) -> str:
        return "fake"

    async def aclose(self) -> None:
        self.closed = True


class FakeTextExtractor(ITextExtractor):
    """Returns text registered per file name instead of reading disk."""

    def __init__(self, texts: dict[str, str] | None = None) -> None:
        self.texts = dict(texts or {})

    async def extract_text(self, source_file: SourceFile) -> str:
        if source_file.file_name not in self.texts:
            raise ExtractionError(f"Source file not found: {source_file.file_name}")
        return self.texts[source_file.file_name]

    def supported_extensions(self) -> tuple[str, ...]:
        return (".txt",)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def fake_llm() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture
def fake_extractor() -> FakeTextExtractor:
    return FakeTextExtractor()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "lextrans_test.db"


@pytest_asyncio.fixture
async def preference_store(db_path: Path) -> SQLitePreferenceStore:
    store = SQLitePreferenceStore(db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def model_registry(
    db_path: Path, preference_store: SQLitePreferenceStore
) -> SQLiteModelRegistry:
    registry = SQLiteModelRegistry(db_path, preference_store=preference_store)
    await registry.initialize()
    return registry


@pytest_asyncio.fixture
async def kb_store(db_path: Path) -> SQLiteKnowledgeBaseStore:
    store = SQLiteKnowledgeBaseStore(db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def history_store(db_path: Path) -> SQLiteTranslationHistoryStore:
    store = SQLiteTranslationHistoryStore(db_path)
    await store.initialize()
    return store


@pytest.fixture
def vector_index() -> VectorIndex:
    index = VectorIndex()
    index.init()
    return index


@pytest.fixture
def progress_tracker() -> BuildProgressTracker:
    return BuildProgressTracker()


@pytest_asyncio.fixture
async def ingestion_service(
    kb_store: SQLiteKnowledgeBaseStore,
    model_registry: SQLiteModelRegistry,
    fake_llm: FakeLLMProvider,
    vector_index: VectorIndex,
    progress_tracker: BuildProgressTracker,
    fake_extractor: FakeTextExtractor,
    preference_store: SQLitePreferenceStore,
):
    service = IngestionService(
        store=kb_store,
        model_registry=model_registry,
        llm_provider=fake_llm,
        vector_index=vector_index,
        chunker=TextChunker(chunk_size=100, overlap=20),
        progress_tracker=progress_tracker,
        text_extractor=fake_extractor,
        preference_store=preference_store,
        concurrency=2,
    )
    yield service
    await service.shutdown()


@pytest.fixture
def retrieval_service(
    kb_store: SQLiteKnowledgeBaseStore,
    model_registry: SQLiteModelRegistry,
    fake_llm: FakeLLMProvider,
    vector_index: VectorIndex,
    preference_store: SQLitePreferenceStore,
) -> RetrievalService:
    return RetrievalService(
        store=kb_store,
        model_registry=model_registry,
        llm_provider=fake_llm,
        vector_index=vector_index,
        preference_store=preference_store,
        default_top_k=5,
    )
