"""Document text extraction."""

from lextrans.providers.extraction.file_text_extractor import FileTextExtractor, describe_file

__all__ = ["FileTextExtractor", "describe_file"]
