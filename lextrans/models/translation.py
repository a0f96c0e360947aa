"""Translation pipeline data models.

Every model call in the three-stage pipeline produces a
:class:`StageResult`.  Failures are recorded in ``error`` instead of being
raised, so a response always describes what succeeded and what did not.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StageResult(BaseModel):
    """Output of one model call within a pipeline stage."""

    model_config = ConfigDict(frozen=True)

    model_id: str
    model_name: str
    output: str = ""
    context_used: list[str] | None = None
    tokens_used: int = 0
    duration_ms: int = Field(default=0, ge=0)
    error: str | None = None

    @model_validator(mode="after")
    def _errored_results_have_no_output(self) -> "StageResult":
        if self.error and self.output:
            raise ValueError("a StageResult with an error must have empty output")
        return self

    @property
    def succeeded(self) -> bool:
        return not self.error


class ReviewResult(StageResult):
    """A Stage-2 review, tied to the Stage-1 model whose output it reviewed."""

    translation_model_id: str


class TranslationRequest(BaseModel):
    """Caller input for an end-to-end translation run.

    ``knowledge_base_ids`` follows the retrieval contract: ``None`` searches
    every accessible knowledge base, while an explicit empty list selects
    none.  The ``*_model_ids`` filters only apply when non-empty.
    """

    model_config = ConfigDict(frozen=True)

    source_text: str
    use_knowledge_base: bool = False
    knowledge_base_ids: list[str] | None = None
    translation_model_ids: list[str] | None = None
    review_model_ids: list[str] | None = None
    synthesis_model_ids: list[str] | None = None


class TranslationResponse(BaseModel):
    """Aggregate result of a translation run, as persisted to history.

    ``total_duration_ms`` is the sum of every per-result duration, so
    concurrent calls are counted once each.  ``elapsed_ms`` is the
    wall-clock time of the run when it was measured.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_text: str
    stage1_results: list[StageResult] = Field(default_factory=list)
    stage2_results: list[ReviewResult] = Field(default_factory=list)
    stage3_results: list[StageResult] = Field(default_factory=list)
    final_translation: str = ""
    total_duration_ms: int = 0
    elapsed_ms: int | None = None
    created_at: datetime = Field(default_factory=_utc_now)
