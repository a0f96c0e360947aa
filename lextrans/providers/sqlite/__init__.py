"""SQLite persistence adapters (aiosqlite).

All stores may share one database file; each creates its own tables in
``initialize()``.
"""

from lextrans.providers.sqlite.history_store import SQLiteTranslationHistoryStore
from lextrans.providers.sqlite.knowledge_base_store import SQLiteKnowledgeBaseStore
from lextrans.providers.sqlite.model_registry import SQLiteModelRegistry
from lextrans.providers.sqlite.preference_store import SQLitePreferenceStore

__all__ = [
    "SQLiteKnowledgeBaseStore",
    "SQLiteModelRegistry",
    "SQLitePreferenceStore",
    "SQLiteTranslationHistoryStore",
]
