"""Abstract base class for translation history persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod

from lextrans.models.translation import TranslationResponse


# Concrete implementation: SQLiteTranslationHistoryStore
# Located in: lextrans/providers/sqlite/
class ITranslationHistoryStore(ABC):
    """Append-only store of completed :class:`TranslationResponse` records."""

    @abstractmethod
    async def save(self, response: TranslationResponse, user_id: str | None = None) -> None:
        """Persist a finished translation."""

    @abstractmethod
    async def list_recent(
        self, limit: int = 50, user_id: str | None = None
    ) -> list[TranslationResponse]:
        """Return the newest translations, optionally only ``user_id``'s."""

    @abstractmethod
    async def search(
        self, query: str, limit: int = 50, user_id: str | None = None
    ) -> list[TranslationResponse]:
        """Return translations whose source text contains ``query``."""

    @abstractmethod
    async def get(self, translation_id: str) -> TranslationResponse | None:
        """Return one translation, or ``None``."""
