"""Abstract interfaces for every swappable LexTrans collaborator."""

from lextrans.interfaces.history_store import ITranslationHistoryStore
from lextrans.interfaces.knowledge_base_store import IKnowledgeBaseStore, IPreferenceStore
from lextrans.interfaces.llm_provider import ILLMProvider
from lextrans.interfaces.model_registry import IModelRegistry
from lextrans.interfaces.text_extractor import ITextExtractor

__all__ = [
    "IKnowledgeBaseStore",
    "ILLMProvider",
    "IModelRegistry",
    "IPreferenceStore",
    "ITextExtractor",
    "ITranslationHistoryStore",
]
