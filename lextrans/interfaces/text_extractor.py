"""Abstract base class for document text extraction."""

from __future__ import annotations

from abc import ABC, abstractmethod

from lextrans.models.knowledge import SourceFile


# Concrete implementation: FileTextExtractor
# Located in: lextrans/providers/extraction/
class ITextExtractor(ABC):
    """Contract for turning a stored document into plain text."""

    @abstractmethod
    async def extract_text(self, source_file: SourceFile) -> str:
        """Return the document's text.

        Raises
        ------
        lextrans.utils.errors.ExtractionError
            If the format is unsupported or the file cannot be parsed.
        """

    @abstractmethod
    def supported_extensions(self) -> tuple[str, ...]:
        """Return the lower-case file extensions this extractor accepts."""
