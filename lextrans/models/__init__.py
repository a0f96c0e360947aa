"""Pydantic v2 data models for LexTrans.

All models are frozen; derive updated copies with ``model_copy(update=...)``.
"""

from lextrans.models.knowledge import (
    BuildPhase,
    BuildStatus,
    KnowledgeBase,
    SearchResult,
    SourceFile,
    VectorChunk,
)
from lextrans.models.model_config import (
    ChatCompletion,
    ChatMessage,
    ModelConfig,
    ModelStage,
)
from lextrans.models.translation import (
    ReviewResult,
    StageResult,
    TranslationRequest,
    TranslationResponse,
)

__all__ = [
    "BuildPhase",
    "BuildStatus",
    "ChatCompletion",
    "ChatMessage",
    "KnowledgeBase",
    "ModelConfig",
    "ModelStage",
    "ReviewResult",
    "SearchResult",
    "SourceFile",
    "StageResult",
    "TranslationRequest",
    "TranslationResponse",
    "VectorChunk",
]
