"""Plain-text extraction for knowledge-base source documents.

    .txt / .md  -> read as UTF-8
    .pdf        -> PyMuPDF (fitz), page by page
    .docx       -> python-docx paragraphs

Parsing is blocking, so each extractor runs in a worker thread via
``asyncio.to_thread``.  Image-only PDFs yield an empty string; rejecting
empty text is the ingestion pipeline's job, not the extractor's.
"""

from __future__ import annotations

import asyncio
import mimetypes
from pathlib import Path
from typing import Callable

import fitz  # PyMuPDF
import structlog
from docx import Document

from lextrans.interfaces.text_extractor import ITextExtractor
from lextrans.models.knowledge import SourceFile
from lextrans.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_MIME_TYPES: dict[str, str] = {
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def describe_file(path: str | Path, original_name: str | None = None) -> SourceFile:
    """Build a :class:`SourceFile` for a document already on disk."""
    file_path = Path(path)
    suffix = file_path.suffix.lower()
    file_type = _MIME_TYPES.get(suffix) or mimetypes.guess_type(file_path.name)[0]
    return SourceFile(
        file_type=file_type or "application/octet-stream",
        file_name=original_name or file_path.name,
        file_path=str(file_path),
        file_size=file_path.stat().st_size,
    )


class FileTextExtractor(ITextExtractor):
    """Extracts text from local files based on their extension."""

    def __init__(self) -> None:
        self._extractors: dict[str, Callable[[Path], str]] = {
            ".txt": self._read_plain_text,
            ".md": self._read_plain_text,
            ".pdf": self._read_pdf,
            ".docx": self._read_docx,
        }

    async def extract_text(self, source_file: SourceFile) -> str:
        path = Path(source_file.file_path)
        # the original name wins; stored uploads may not keep the extension
        suffix = Path(source_file.file_name).suffix.lower() or path.suffix.lower()
        extractor = self._extractors.get(suffix)
        if extractor is None:
            raise ExtractionError(f"Unsupported file type: {suffix or source_file.file_type}")
        if not path.is_file():
            raise ExtractionError(f"Source file not found: {path}")

        try:
            text = await asyncio.to_thread(extractor, path)
        except ExtractionError:
            raise
        except Exception as exc:  # noqa: BLE001 -- parser libraries raise assorted types
            raise ExtractionError(
                f"Failed to extract text from {source_file.file_name}: {exc}"
            ) from exc

        logger.info(
            "text_extracted", file_name=source_file.file_name, suffix=suffix, chars=len(text)
        )
        return text

    def supported_extensions(self) -> tuple[str, ...]:
        return tuple(self._extractors)

    # ------------------------------------------------------------------

    @staticmethod
    def _read_plain_text(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ExtractionError(f"{path.name} is not valid UTF-8 text") from exc

    @staticmethod
    def _read_pdf(path: Path) -> str:
        doc = fitz.open(str(path))
        try:
            pages = [page.get_text("text") for page in doc]
        finally:
            doc.close()
        return "\n".join(pages)

    @staticmethod
    def _read_docx(path: Path) -> str:
        doc = Document(str(path))
        return "\n".join(para.text for para in doc.paragraphs)
