"""Knowledge-base data models.

A knowledge base is one uploaded reference document (glossary, statute,
prior translations) split into overlapping chunks.  Each chunk is embedded
with the knowledge base's embedding model and kept in the in-memory
:class:`~lextrans.services.knowledge.vector_index.VectorIndex`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SourceFile(BaseModel):
    """Descriptor of the stored document a knowledge base was built from."""

    model_config = ConfigDict(frozen=True)

    file_type: str = Field(default="text/plain", description="MIME type of the document.")
    file_name: str = Field(description="Original file name as uploaded.")
    file_path: str = Field(default="", description="Storage path on local disk.")
    file_size: int = Field(default=0, ge=0, description="Size in bytes.")


class KnowledgeBase(BaseModel):
    """Metadata row for one knowledge base.

    ``chunk_count`` is fixed at creation time and does not track how many
    chunks currently hold a non-empty vector.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str | None = None
    source_file: SourceFile
    chunk_count: int = Field(default=0, ge=0)
    embedding_model_id: str
    owner_user_id: str | None = None
    is_public: bool = False
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class VectorChunk(BaseModel):
    """One chunk of a knowledge base plus its embedding.

    An empty ``embedding`` means the chunk has not been embedded yet or its
    embedding call failed; such chunks are never scored.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    content: str
    embedding: tuple[float, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)

    @staticmethod
    def make_id(kb_id: str, index: int) -> str:
        return f"{kb_id}_chunk_{index}"


class SearchResult(BaseModel):
    """A ranked chunk returned by the retrieval engine."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    content: str
    similarity: float
    metadata: dict[str, Any] = Field(default_factory=dict)
    knowledge_base_name: str = ""


class BuildPhase(str, Enum):
    """Lifecycle of a knowledge base's embedding build."""

    CREATED = "created"
    EMBEDDING = "embedding"
    READY = "ready"
    PARTIALLY_READY = "partially_ready"


class BuildStatus(BaseModel):
    """Progress of the background embedding build for one knowledge base."""

    model_config = ConfigDict(frozen=True)

    ready: bool
    total: int
    processed: int
    failed: int = 0
    phase: BuildPhase = BuildPhase.CREATED
