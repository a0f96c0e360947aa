"""Three-stage translation pipeline: translate -> review -> synthesize.

Stages run one after another; inside a stage every selected model is
called concurrently and the stage waits for all of them (fan-out/fan-in):

    Stage 1  N translation models, each given the source text
    Stage 2  every review model x every successful Stage-1 translation
    Stage 3  every synthesis model, sharing one prompt built from Stages 1-2

Knowledge-base context, when present, is attached to every call in every
stage, so reviewers check terminology against the same references.

A model call that fails becomes a :class:`StageResult` with ``error`` set
and never aborts its stage.  Only configuration and validation problems
raise: no translation models at all, or empty source text.

Each stage also has a ``*_streaming`` variant that hands every result to a
callback the moment its model finishes (completion order), while still
returning the full list in submission order.
"""

from __future__ import annotations

import asyncio
import functools
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from lextrans.interfaces.history_store import ITranslationHistoryStore
from lextrans.interfaces.llm_provider import ILLMProvider
from lextrans.interfaces.model_registry import IModelRegistry
from lextrans.models.model_config import ChatMessage, ModelConfig, ModelStage
from lextrans.models.translation import (
    ReviewResult,
    StageResult,
    TranslationRequest,
    TranslationResponse,
)
from lextrans.services.knowledge.retrieval_service import RetrievalService
from lextrans.services.translation_prompts import (
    build_review_prompt,
    build_synthesis_prompt,
    build_translation_prompt,
)
from lextrans.utils.errors import InvalidInputError, LexTransError, NoModelsAvailableError
from lextrans.utils.logging import get_logger

_R = TypeVar("_R", bound=StageResult)

# on_result(stage, result) -- sync or async
StageCallback = Callable[[ModelStage, StageResult], Any]


def _usable(results: list[_R]) -> list[_R]:
    return [r for r in results if r.succeeded]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class TranslationPipeline:
    """Orchestrates the translation stages and records finished runs.

    All collaborators are injected.  ``retrieval_service`` may be ``None``,
    in which case knowledge-base context is never added.
    """

    def __init__(
        self,
        model_registry: IModelRegistry,
        llm_provider: ILLMProvider,
        history_store: ITranslationHistoryStore,
        retrieval_service: RetrievalService | None = None,
        source_language: str = "legal English",
        target_language: str = "Chinese",
        rag_top_k: int = 5,
    ) -> None:
        self._models = model_registry
        self._llm = llm_provider
        self._history = history_store
        self._retrieval = retrieval_service
        self._source_language = source_language
        self._target_language = target_language
        self._rag_top_k = rag_top_k
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # End-to-end
    # ------------------------------------------------------------------

    async def translate(
        self,
        request: TranslationRequest,
        requester_id: str | None = None,
        is_admin: bool = False,
        on_result: StageCallback | None = None,
    ) -> TranslationResponse:
        """Run all three stages and save the result to history.

        When ``on_result`` is given every stage streams its results
        through it as they complete.
        """
        self._require_source(request.source_text)
        started = time.monotonic()

        context: list[str] = []
        if request.use_knowledge_base:
            context = await self.get_knowledge_context(
                request.source_text, request.knowledge_base_ids, requester_id, is_admin
            )

        stage1 = await self._run_stage1(
            request.source_text, context, request.translation_model_ids,
            requester_id, is_admin, on_result,
        )
        stage2 = await self._run_stage2(
            request.source_text, stage1, request.review_model_ids,
            requester_id, is_admin, on_result, context,
        )
        stage3 = await self._run_stage3(
            request.source_text, stage1, stage2, request.synthesis_model_ids,
            requester_id, is_admin, on_result, context,
        )
        return await self.finalize_and_save(
            request.source_text, stage1, stage2, stage3,
            user_id=requester_id, elapsed_ms=_elapsed_ms(started),
        )

    async def get_knowledge_context(
        self,
        source_text: str,
        knowledge_base_ids: list[str] | None = None,
        requester_id: str | None = None,
        is_admin: bool = False,
    ) -> list[str]:
        """Retrieve RAG snippets for the source text; ``[]`` if retrieval fails."""
        if self._retrieval is None:
            return []
        try:
            return await self._retrieval.retrieve_context(
                source_text,
                candidate_kb_ids=knowledge_base_ids,
                top_k=self._rag_top_k,
                requester_id=requester_id,
                is_admin=is_admin,
            )
        except LexTransError as exc:
            self._logger.warning("knowledge_context_unavailable", error=str(exc))
            return []

    # ------------------------------------------------------------------
    # Stage 1: Translate
    # ------------------------------------------------------------------

    async def run_stage1(
        self,
        source_text: str,
        knowledge_context: list[str] | None = None,
        model_ids: list[str] | None = None,
        requester_id: str | None = None,
        is_admin: bool = False,
    ) -> list[StageResult]:
        """Translate with every enabled translation model.

        Raises
        ------
        InvalidInputError
            If ``source_text`` is blank.
        NoModelsAvailableError
            If no translation model is selected.
        """
        return await self._run_stage1(
            source_text, knowledge_context, model_ids, requester_id, is_admin, None
        )

    async def run_stage1_streaming(
        self,
        source_text: str,
        on_result: StageCallback,
        knowledge_context: list[str] | None = None,
        model_ids: list[str] | None = None,
        requester_id: str | None = None,
        is_admin: bool = False,
    ) -> list[StageResult]:
        return await self._run_stage1(
            source_text, knowledge_context, model_ids, requester_id, is_admin, on_result
        )

    async def _run_stage1(
        self,
        source_text: str,
        knowledge_context: list[str] | None,
        model_ids: list[str] | None,
        requester_id: str | None,
        is_admin: bool,
        on_result: StageCallback | None,
    ) -> list[StageResult]:
        self._require_source(source_text)
        models = await self._select_models(
            ModelStage.TRANSLATION, model_ids, requester_id, is_admin
        )
        if not models:
            raise NoModelsAvailableError(ModelStage.TRANSLATION.value)

        prompt = build_translation_prompt(
            source_text, self._source_language, self._target_language
        )
        context = knowledge_context or None
        calls = [
            functools.partial(self._call_model, StageResult, model, prompt, context)
            for model in models
        ]
        return await self._fan_out(ModelStage.TRANSLATION, calls, on_result)

    # ------------------------------------------------------------------
    # Stage 2: Review
    # ------------------------------------------------------------------

    async def run_stage2(
        self,
        source_text: str,
        stage1_results: list[StageResult],
        model_ids: list[str] | None = None,
        requester_id: str | None = None,
        is_admin: bool = False,
        knowledge_context: list[str] | None = None,
    ) -> list[ReviewResult]:
        """Review every successful translation with every review model.

        Returns ``[]`` when no review model is enabled.
        """
        return await self._run_stage2(
            source_text, stage1_results, model_ids, requester_id, is_admin, None,
            knowledge_context,
        )

    async def run_stage2_streaming(
        self,
        source_text: str,
        stage1_results: list[StageResult],
        on_result: StageCallback,
        model_ids: list[str] | None = None,
        requester_id: str | None = None,
        is_admin: bool = False,
        knowledge_context: list[str] | None = None,
    ) -> list[ReviewResult]:
        return await self._run_stage2(
            source_text, stage1_results, model_ids, requester_id, is_admin, on_result,
            knowledge_context,
        )

    async def _run_stage2(
        self,
        source_text: str,
        stage1_results: list[StageResult],
        model_ids: list[str] | None,
        requester_id: str | None,
        is_admin: bool,
        on_result: StageCallback | None,
        knowledge_context: list[str] | None = None,
    ) -> list[ReviewResult]:
        models = await self._select_models(ModelStage.REVIEW, model_ids, requester_id, is_admin)
        translations = _usable(stage1_results)
        if not models or not translations:
            self._logger.info(
                "stage_skipped",
                stage=ModelStage.REVIEW.value,
                models=len(models),
                translations=len(translations),
            )
            return []

        calls = [
            functools.partial(
                self._call_model,
                ReviewResult,
                model,
                build_review_prompt(source_text, translation.output, self._target_language),
                knowledge_context or None,
                translation_model_id=translation.model_id,
            )
            for translation in translations
            for model in models
        ]
        return await self._fan_out(ModelStage.REVIEW, calls, on_result)

    # ------------------------------------------------------------------
    # Stage 3: Synthesize
    # ------------------------------------------------------------------

    async def run_stage3(
        self,
        source_text: str,
        stage1_results: list[StageResult],
        stage2_results: list[ReviewResult],
        model_ids: list[str] | None = None,
        requester_id: str | None = None,
        is_admin: bool = False,
        knowledge_context: list[str] | None = None,
    ) -> list[StageResult]:
        """Produce final candidates from all prior outputs.

        Returns ``[]`` when no synthesis model is enabled.
        """
        return await self._run_stage3(
            source_text, stage1_results, stage2_results, model_ids,
            requester_id, is_admin, None, knowledge_context,
        )

    async def run_stage3_streaming(
        self,
        source_text: str,
        stage1_results: list[StageResult],
        stage2_results: list[ReviewResult],
        on_result: StageCallback,
        model_ids: list[str] | None = None,
        requester_id: str | None = None,
        is_admin: bool = False,
        knowledge_context: list[str] | None = None,
    ) -> list[StageResult]:
        return await self._run_stage3(
            source_text, stage1_results, stage2_results, model_ids,
            requester_id, is_admin, on_result, knowledge_context,
        )

    async def _run_stage3(
        self,
        source_text: str,
        stage1_results: list[StageResult],
        stage2_results: list[ReviewResult],
        model_ids: list[str] | None,
        requester_id: str | None,
        is_admin: bool,
        on_result: StageCallback | None,
        knowledge_context: list[str] | None = None,
    ) -> list[StageResult]:
        models = await self._select_models(
            ModelStage.SYNTHESIS, model_ids, requester_id, is_admin
        )
        translations = _usable(stage1_results)
        if not models or not translations:
            self._logger.info(
                "stage_skipped",
                stage=ModelStage.SYNTHESIS.value,
                models=len(models),
                translations=len(translations),
            )
            return []

        prompt = build_synthesis_prompt(
            source_text, translations, _usable(stage2_results), self._target_language
        )
        calls = [
            functools.partial(
                self._call_model, StageResult, model, prompt, knowledge_context or None
            )
            for model in models
        ]
        return await self._fan_out(ModelStage.SYNTHESIS, calls, on_result)

    # ------------------------------------------------------------------
    # Finalization and history
    # ------------------------------------------------------------------

    async def finalize_and_save(
        self,
        source_text: str,
        stage1_results: list[StageResult],
        stage2_results: list[ReviewResult],
        stage3_results: list[StageResult],
        user_id: str | None = None,
        elapsed_ms: int | None = None,
    ) -> TranslationResponse:
        """Pick the final translation, build the response and save it.

        A failed history write is logged and the response is still returned.

        The final translation is the first successful Stage-3 output, else
        the first successful Stage-1 output, else ``""``.
        ``total_duration_ms`` sums every per-result duration.
        """
        final_candidates = _usable(stage3_results) or _usable(stage1_results)
        final_translation = final_candidates[0].output if final_candidates else ""
        total_duration = sum(
            r.duration_ms for r in (*stage1_results, *stage2_results, *stage3_results)
        )

        response = TranslationResponse(
            source_text=source_text,
            stage1_results=stage1_results,
            stage2_results=stage2_results,
            stage3_results=stage3_results,
            final_translation=final_translation,
            total_duration_ms=total_duration,
            elapsed_ms=elapsed_ms,
        )
        try:
            await self._history.save(response, user_id)
        except Exception as exc:  # noqa: BLE001 -- the computed translation is still returned
            self._logger.error(
                "translation_history_save_failed",
                translation_id=response.id,
                error=str(exc),
            )
        self._logger.info(
            "translation_complete",
            translation_id=response.id,
            stage1=len(stage1_results),
            stage2=len(stage2_results),
            stage3=len(stage3_results),
            total_duration_ms=total_duration,
            elapsed_ms=elapsed_ms,
        )
        return response

    async def get_history(
        self, limit: int = 50, user_id: str | None = None
    ) -> list[TranslationResponse]:
        return await self._history.list_recent(limit, user_id)

    async def search_history(
        self, query: str, limit: int = 50, user_id: str | None = None
    ) -> list[TranslationResponse]:
        return await self._history.search(query, limit, user_id)

    async def get_translation(self, translation_id: str) -> TranslationResponse | None:
        return await self._history.get(translation_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_source(source_text: str) -> None:
        if not source_text or not source_text.strip():
            raise InvalidInputError("Source text must not be empty")

    async def _select_models(
        self,
        stage: ModelStage,
        model_ids: list[str] | None,
        requester_id: str | None,
        is_admin: bool,
    ) -> list[ModelConfig]:
        """Enabled models for a stage, narrowed to ``model_ids`` when non-empty."""
        models = await self._models.get_enabled_models_for_stage(stage, requester_id, is_admin)
        if model_ids:
            wanted = set(model_ids)
            models = [m for m in models if m.id in wanted]
        return models

    async def _call_model(
        self,
        result_type: type[_R],
        model: ModelConfig,
        prompt: str,
        rag_context: list[str] | None,
        **extra: Any,
    ) -> _R:
        """Call one model; failures become an errored result."""
        started = time.monotonic()
        try:
            completion = await self._llm.chat_complete(
                model, [ChatMessage(role="user", content=prompt)], rag_context
            )
        except Exception as exc:  # noqa: BLE001 -- per-model failures are recorded, not raised
            self._logger.warning(
                "stage_model_failed",
                stage=model.stage.value,
                model=model.name,
                error=str(exc),
            )
            return result_type(
                model_id=model.id,
                model_name=model.name,
                context_used=rag_context,
                duration_ms=_elapsed_ms(started),
                error=str(exc) or type(exc).__name__,
                **extra,
            )

        return result_type(
            model_id=model.id,
            model_name=model.name,
            output=completion.text,
            context_used=rag_context,
            tokens_used=completion.tokens_used,
            duration_ms=_elapsed_ms(started),
            **extra,
        )

    async def _fan_out(
        self,
        stage: ModelStage,
        calls: list[Callable[[], Awaitable[_R]]],
        on_result: StageCallback | None,
    ) -> list[_R]:
        """Run ``calls`` concurrently; results come back in submission order."""
        self._logger.info("stage_started", stage=stage.value, calls=len(calls))
        if on_result is None:
            results = list(await asyncio.gather(*(call() for call in calls)))
        else:
            slots: list[_R | None] = [None] * len(calls)

            async def _indexed(index: int, call: Callable[[], Awaitable[_R]]) -> tuple[int, _R]:
                return index, await call()

            for next_done in asyncio.as_completed(
                [_indexed(i, call) for i, call in enumerate(calls)]
            ):
                index, result = await next_done
                slots[index] = result
                await self._emit(on_result, stage, result)
            results = [r for r in slots if r is not None]

        self._logger.info(
            "stage_finished",
            stage=stage.value,
            succeeded=sum(1 for r in results if r.succeeded),
            failed=sum(1 for r in results if not r.succeeded),
        )
        return results

    async def _emit(self, on_result: StageCallback, stage: ModelStage, result: StageResult) -> None:
        try:
            outcome = on_result(stage, result)
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception as exc:
            self._logger.warning(
                "stage_callback_error",
                stage=stage.value,
                model=result.model_name,
                error=str(exc),
            )
