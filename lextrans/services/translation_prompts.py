"""Prompt construction for the three translation stages.

Stage 1 sends the source text with a short instruction; Stage 2 asks each
review model for a scored critique in a fixed Markdown rubric; Stage 3
assembles every successful translation and review into one shared prompt.
Errored results never appear in a prompt.

Default system prompts for models without one are read from
``lextrans/prompts/<stage>.md`` (or ``Settings.prompts_dir`` when set) and
cached for the life of the process.
"""

from __future__ import annotations

from pathlib import Path

import structlog
from cachetools import LRUCache, cached

from lextrans.models.model_config import ModelStage
from lextrans.models.translation import ReviewResult, StageResult

logger = structlog.get_logger(logger_name=__name__)

_PACKAGED_PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

_REVIEW_RUBRIC = """\
Please evaluate the translation using the following format:

## Assessment
- **Accuracy**: [Does it convey the legal meaning of the source exactly?]
- **Terminology**: [Are legal terms rendered correctly and consistently?]
- **Fluency**: [Does it read naturally in {target_language}?]
- **Completeness**: [Is anything omitted or added?]

## Overall score
[1-10]

## Suggestions
1. [Problem] -> [Suggested revision]
2. [Problem] -> [Suggested revision]
..."""


@cached(cache=LRUCache(maxsize=16))
def load_default_system_prompt(stage: ModelStage, prompts_dir: str = "") -> str:
    """Return the default system prompt for ``stage``.

    Embedding models never receive a system prompt, so ``""`` is returned
    for them.  A missing prompt file is logged and also yields ``""``.
    """
    if stage is ModelStage.EMBEDDING:
        return ""

    directory = Path(prompts_dir) if prompts_dir else _PACKAGED_PROMPTS_DIR
    prompt_path = directory / f"{stage.value}.md"
    try:
        return prompt_path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        logger.warning(
            "default_prompt_unavailable", stage=stage.value, path=str(prompt_path), error=str(exc)
        )
        return ""


def build_translation_prompt(
    source_text: str,
    source_language: str = "legal English",
    target_language: str = "Chinese",
) -> str:
    """Stage-1 user message."""
    return f"Translate the following {source_language} text into {target_language}:\n\n{source_text}"


def build_review_prompt(
    source_text: str,
    translation: str,
    target_language: str = "Chinese",
) -> str:
    """Stage-2 user message asking for a rubric-based critique of one translation."""
    return (
        "Review the quality of the following legal translation.\n\n"
        f"Source text:\n{source_text}\n\n"
        f"Translation:\n{translation}\n\n"
        + _REVIEW_RUBRIC.format(target_language=target_language)
    )


def build_synthesis_prompt(
    source_text: str,
    translations: list[StageResult],
    reviews: list[ReviewResult],
    target_language: str = "Chinese",
) -> str:
    """Stage-3 user message shared by every synthesis model.

    Translations are labelled by model name; each review is labelled with
    the translation it reviewed and the model that wrote it.
    """
    successful = [t for t in translations if t.succeeded]
    names = {t.model_id: t.model_name for t in translations}

    parts = [
        "Using the candidate translations and reviews below, produce the best "
        f"final {target_language} translation of the source text.",
        f"Source text:\n{source_text}",
        "Candidate translations:",
    ]
    for position, result in enumerate(successful, start=1):
        parts.append(f"Translation {position} ({result.model_name}):\n{result.output}")

    successful_reviews = [r for r in reviews if r.succeeded]
    if successful_reviews:
        parts.append("Reviews:")
        for review in successful_reviews:
            reviewed = names.get(review.translation_model_id, review.translation_model_id)
            parts.append(
                f'Review of translation "{reviewed}" ({review.model_name}):\n{review.output}'
            )

    parts.append(
        f"Output only the final {target_language} translation, "
        "without any explanation or commentary."
    )
    return "\n\n".join(parts)
