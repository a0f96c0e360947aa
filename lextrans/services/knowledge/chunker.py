"""Fixed-size character windows with overlap.

Legal source documents are split into windows of ``chunk_size`` characters;
each window starts ``overlap`` characters before the previous one ended,
so a clause straddling a boundary appears whole in at least one chunk.

For a text of length ``L`` the walk produces ``ceil((L - O) / (C - O))``
windows (one window when ``L <= C``), before whitespace-only windows are
dropped.
"""

from __future__ import annotations

import structlog

from lextrans.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


class TextChunker:
    """Splits text into overlapping, trimmed, non-empty windows.

    Parameters
    ----------
    chunk_size:
        Window length in characters (default 1000).
    overlap:
        Characters shared between consecutive windows (default 200).
        Must be smaller than ``chunk_size`` or the window would never
        advance.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ConfigurationError(f"overlap must be non-negative, got {overlap}")
        if overlap >= chunk_size:
            raise ConfigurationError(
                f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    def split(self, text: str) -> list[str]:
        """Return the trimmed, non-empty windows of *text* in order."""
        if not text:
            return []

        chunks: list[str] = []
        length = len(text)
        start = 0
        while True:
            end = min(start + self._chunk_size, length)
            window = text[start:end].strip()
            if window:
                chunks.append(window)
            if end >= length:
                break
            start = end - self._overlap

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            text_length=length,
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks
