"""Pipeline orchestration: the translation stages and embedding-build progress."""

from lextrans.pipeline.orchestrator import TranslationPipeline
from lextrans.pipeline.progress_tracker import BuildProgressTracker

__all__ = ["BuildProgressTracker", "TranslationPipeline"]
