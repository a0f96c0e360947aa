"""Unit tests for the three-stage TranslationPipeline.

Model configs live in a real SQLite registry; every model call goes to the
FakeLLMProvider, so stage behaviour (fan-out, partial failure, skipping,
streaming, finalization) is exercised without network access.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from lextrans.models.model_config import ModelStage
from lextrans.models.translation import ReviewResult, StageResult, TranslationRequest
from lextrans.pipeline.orchestrator import TranslationPipeline
from lextrans.providers.sqlite.history_store import SQLiteTranslationHistoryStore
from lextrans.providers.sqlite.model_registry import SQLiteModelRegistry
from lextrans.utils.errors import InvalidInputError, NoModelsAvailableError, RAGError
from tests.conftest import FakeLLMProvider, make_model

_SOURCE = "The Lessee shall indemnify the Lessor against all claims."


async def _register(registry: SQLiteModelRegistry, stage: ModelStage, *ids: str) -> None:
    for position, model_id in enumerate(ids):
        await registry.create_model(make_model(model_id, stage, order_num=position))


@pytest.fixture
def pipeline(
    model_registry: SQLiteModelRegistry,
    fake_llm: FakeLLMProvider,
    history_store: SQLiteTranslationHistoryStore,
) -> TranslationPipeline:
    return TranslationPipeline(
        model_registry=model_registry,
        llm_provider=fake_llm,
        history_store=history_store,
        source_language="legal English",
        target_language="Chinese",
    )


@pytest_asyncio.fixture
async def three_translators(model_registry: SQLiteModelRegistry) -> None:
    await _register(model_registry, ModelStage.TRANSLATION, "t1", "t2", "t3")


# ======================================================================
# Stage 1
# ======================================================================


class TestStage1:
    @pytest.mark.asyncio
    async def test_every_model_called_with_source(
        self,
        pipeline: TranslationPipeline,
        fake_llm: FakeLLMProvider,
        three_translators: None,
    ) -> None:
        results = await pipeline.run_stage1(_SOURCE)

        assert [r.model_id for r in results] == ["t1", "t2", "t3"]
        assert all(r.succeeded and r.output for r in results)
        prompts = [messages[-1].content for _, messages, _ in fake_llm.chat_calls]
        assert all(_SOURCE in prompt for prompt in prompts)
        assert all("into Chinese" in prompt for prompt in prompts)

    @pytest.mark.asyncio
    async def test_failed_model_becomes_errored_result(
        self,
        pipeline: TranslationPipeline,
        fake_llm: FakeLLMProvider,
        three_translators: None,
    ) -> None:
        fake_llm.fail_chat.add("t2")
        results = await pipeline.run_stage1(_SOURCE)

        failed = results[1]
        assert failed.model_id == "t2"
        assert failed.error and "HTTP 500" in failed.error
        assert failed.output == ""
        assert results[0].succeeded and results[2].succeeded

    @pytest.mark.asyncio
    async def test_knowledge_context_passed_to_translators(
        self,
        pipeline: TranslationPipeline,
        fake_llm: FakeLLMProvider,
        three_translators: None,
    ) -> None:
        results = await pipeline.run_stage1(_SOURCE, knowledge_context=["Lessee: 承租人"])

        assert all(ctx == ["Lessee: 承租人"] for _, _, ctx in fake_llm.chat_calls)
        assert results[0].context_used == ["Lessee: 承租人"]

    @pytest.mark.asyncio
    async def test_no_translation_models(self, pipeline: TranslationPipeline) -> None:
        with pytest.raises(NoModelsAvailableError) as exc_info:
            await pipeline.run_stage1(_SOURCE)
        assert exc_info.value.stage == "translation"

    @pytest.mark.asyncio
    async def test_blank_source_rejected(
        self, pipeline: TranslationPipeline, three_translators: None
    ) -> None:
        with pytest.raises(InvalidInputError):
            await pipeline.run_stage1("   ")

    @pytest.mark.asyncio
    async def test_model_id_filter(
        self, pipeline: TranslationPipeline, three_translators: None
    ) -> None:
        results = await pipeline.run_stage1(_SOURCE, model_ids=["t3"])
        assert [r.model_id for r in results] == ["t3"]

    @pytest.mark.asyncio
    async def test_disabled_models_skipped(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        three_translators: None,
    ) -> None:
        await model_registry.update_model("t1", enabled=False)
        await model_registry.set_user_preference("alice", "t2", False)

        anonymous = await pipeline.run_stage1(_SOURCE)
        alice = await pipeline.run_stage1(_SOURCE, requester_id="alice")
        assert [r.model_id for r in anonymous] == ["t2", "t3"]
        assert [r.model_id for r in alice] == ["t3"]


# ======================================================================
# Stage 2
# ======================================================================


class TestStage2:
    @pytest.mark.asyncio
    async def test_reviews_only_successful_translations(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
        three_translators: None,
    ) -> None:
        await _register(model_registry, ModelStage.REVIEW, "r1", "r2")
        fake_llm.fail_chat.add("t2")

        stage1 = await pipeline.run_stage1(_SOURCE)
        stage2 = await pipeline.run_stage2(_SOURCE, stage1)

        assert len(stage2) == 2 * 2
        assert all(isinstance(r, ReviewResult) for r in stage2)
        assert {r.translation_model_id for r in stage2} == {"t1", "t3"}
        assert sorted((r.translation_model_id, r.model_id) for r in stage2) == [
            ("t1", "r1"),
            ("t1", "r2"),
            ("t3", "r1"),
            ("t3", "r2"),
        ]

    @pytest.mark.asyncio
    async def test_review_prompt_uses_rubric(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
    ) -> None:
        await _register(model_registry, ModelStage.REVIEW, "r1")
        stage1 = [StageResult(model_id="t1", model_name="t1", output="承租人应赔偿出租人。")]

        await pipeline.run_stage2(_SOURCE, stage1)

        prompt = fake_llm.chat_calls[0][1][-1].content
        assert "承租人应赔偿出租人。" in prompt
        for heading in ("Accuracy", "Terminology", "Fluency", "Completeness", "Suggestions"):
            assert heading in prompt
        assert fake_llm.chat_calls[0][2] is None

    @pytest.mark.asyncio
    async def test_reviewers_receive_knowledge_context(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
    ) -> None:
        await _register(model_registry, ModelStage.TRANSLATION, "t1")
        await _register(model_registry, ModelStage.REVIEW, "r1")
        glossary = ["indemnify = 赔偿"]

        stage1 = await pipeline.run_stage1("Hello world.", glossary)
        stage2 = await pipeline.run_stage2(
            "Hello world.", stage1, knowledge_context=glossary
        )

        contexts = {model_id: ctx for model_id, _, ctx in fake_llm.chat_calls}
        assert contexts == {"t1": glossary, "r1": glossary}
        assert stage2[0].context_used == glossary

    @pytest.mark.asyncio
    async def test_blank_successful_translation_is_still_reviewed(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
    ) -> None:
        await _register(model_registry, ModelStage.REVIEW, "r1")
        stage1 = [StageResult(model_id="t1", model_name="t1", output="")]

        stage2 = await pipeline.run_stage2(_SOURCE, stage1)

        assert [r.translation_model_id for r in stage2] == ["t1"]
        assert len(fake_llm.chat_calls) == 1

    @pytest.mark.asyncio
    async def test_no_review_models(
        self, pipeline: TranslationPipeline, three_translators: None
    ) -> None:
        stage1 = await pipeline.run_stage1(_SOURCE)
        assert await pipeline.run_stage2(_SOURCE, stage1) == []

    @pytest.mark.asyncio
    async def test_no_usable_translations(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
    ) -> None:
        await _register(model_registry, ModelStage.REVIEW, "r1")
        stage1 = [StageResult(model_id="t1", model_name="t1", error="timeout")]
        assert await pipeline.run_stage2(_SOURCE, stage1) == []
        assert fake_llm.chat_calls == []


# ======================================================================
# Stage 3
# ======================================================================


class TestStage3:
    @pytest.mark.asyncio
    async def test_shared_prompt_labels_translations_and_reviews(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
    ) -> None:
        await _register(model_registry, ModelStage.SYNTHESIS, "s1", "s2")
        stage1 = [
            StageResult(model_id="t1", model_name="Model One", output="译文一"),
            StageResult(model_id="t2", model_name="Model Two", error="boom"),
        ]
        stage2 = [
            ReviewResult(
                model_id="r1", model_name="Reviewer", output="Score 8", translation_model_id="t1"
            )
        ]

        stage3 = await pipeline.run_stage3(_SOURCE, stage1, stage2)

        assert [r.model_id for r in stage3] == ["s1", "s2"]
        prompts = {messages[-1].content for _, messages, _ in fake_llm.chat_calls}
        assert len(prompts) == 1
        prompt = prompts.pop()
        assert "Translation 1 (Model One):\n译文一" in prompt
        assert 'Review of translation "Model One" (Reviewer):\nScore 8' in prompt
        assert "Model Two" not in prompt

    @pytest.mark.asyncio
    async def test_synthesizers_receive_knowledge_context(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
    ) -> None:
        await _register(model_registry, ModelStage.SYNTHESIS, "s1")
        stage1 = [StageResult(model_id="t1", model_name="t1", output="译文一")]
        glossary = ["Lessor: 出租人"]

        stage3 = await pipeline.run_stage3(_SOURCE, stage1, [], knowledge_context=glossary)

        assert [ctx for _, _, ctx in fake_llm.chat_calls] == [glossary]
        assert stage3[0].context_used == glossary

    @pytest.mark.asyncio
    async def test_no_synthesis_models(
        self, pipeline: TranslationPipeline, three_translators: None
    ) -> None:
        stage1 = await pipeline.run_stage1(_SOURCE)
        assert await pipeline.run_stage3(_SOURCE, stage1, []) == []


# ======================================================================
# Streaming
# ======================================================================


class TestStreaming:
    @pytest.mark.asyncio
    async def test_results_emitted_in_completion_order(
        self,
        pipeline: TranslationPipeline,
        fake_llm: FakeLLMProvider,
        three_translators: None,
    ) -> None:
        fake_llm.delays["t1"] = 0.2
        fake_llm.delays["t2"] = 0.1
        emitted: list[tuple[ModelStage, str]] = []

        async def _on_result(stage: ModelStage, result: StageResult) -> None:
            emitted.append((stage, result.model_id))

        results = await pipeline.run_stage1_streaming(_SOURCE, _on_result)

        assert emitted == [
            (ModelStage.TRANSLATION, "t3"),
            (ModelStage.TRANSLATION, "t2"),
            (ModelStage.TRANSLATION, "t1"),
        ]
        # the returned list keeps submission order
        assert [r.model_id for r in results] == ["t1", "t2", "t3"]

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_break_stage(
        self,
        pipeline: TranslationPipeline,
        three_translators: None,
    ) -> None:
        def _broken(stage: ModelStage, result: StageResult) -> None:
            raise RuntimeError("client disconnected")

        results = await pipeline.run_stage1_streaming(_SOURCE, _broken)
        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_streaming_review_and_synthesis(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        three_translators: None,
    ) -> None:
        await _register(model_registry, ModelStage.REVIEW, "r1")
        await _register(model_registry, ModelStage.SYNTHESIS, "s1")
        stages: list[ModelStage] = []

        def _on_result(stage: ModelStage, result: StageResult) -> None:
            stages.append(stage)

        stage1 = await pipeline.run_stage1(_SOURCE)
        stage2 = await pipeline.run_stage2_streaming(_SOURCE, stage1, _on_result)
        stage3 = await pipeline.run_stage3_streaming(_SOURCE, stage1, stage2, _on_result)

        assert len(stage2) == 3
        assert len(stage3) == 1
        assert stages == [ModelStage.REVIEW] * 3 + [ModelStage.SYNTHESIS]


# ======================================================================
# Finalization and end-to-end
# ======================================================================


class TestFinalize:
    @pytest.mark.asyncio
    async def test_prefers_first_successful_synthesis(self, pipeline: TranslationPipeline) -> None:
        stage1 = [StageResult(model_id="t1", model_name="t1", output="s1 text", duration_ms=10)]
        stage3 = [
            StageResult(model_id="s1", model_name="s1", error="down", duration_ms=5),
            StageResult(model_id="s2", model_name="s2", output="final", duration_ms=20),
        ]
        response = await pipeline.finalize_and_save(_SOURCE, stage1, [], stage3)

        assert response.final_translation == "final"
        assert response.total_duration_ms == 35

    @pytest.mark.asyncio
    async def test_falls_back_to_stage1(self, pipeline: TranslationPipeline) -> None:
        stage1 = [
            StageResult(model_id="t1", model_name="t1", error="down"),
            StageResult(model_id="t2", model_name="t2", output="fallback"),
        ]
        response = await pipeline.finalize_and_save(_SOURCE, stage1, [], [])
        assert response.final_translation == "fallback"

    @pytest.mark.asyncio
    async def test_nothing_succeeded(self, pipeline: TranslationPipeline) -> None:
        stage1 = [StageResult(model_id="t1", model_name="t1", error="down")]
        response = await pipeline.finalize_and_save(_SOURCE, stage1, [], [])
        assert response.final_translation == ""

    @pytest.mark.asyncio
    async def test_saved_to_history(
        self,
        pipeline: TranslationPipeline,
    ) -> None:
        stage1 = [StageResult(model_id="t1", model_name="t1", output="译文")]
        response = await pipeline.finalize_and_save(_SOURCE, stage1, [], [], user_id="alice")

        stored = await pipeline.get_translation(response.id)
        assert stored == response
        assert [r.id for r in await pipeline.get_history(user_id="alice")] == [response.id]
        assert await pipeline.get_history(user_id="bob") == []
        assert [r.id for r in await pipeline.search_history("indemnify")] == [response.id]

    @pytest.mark.asyncio
    async def test_history_failure_still_returns_translation(
        self,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
    ) -> None:
        await _register(model_registry, ModelStage.TRANSLATION, "t1")
        fake_llm.replies["t1"] = "你好，世界。"
        history = AsyncMock()
        history.save.side_effect = RuntimeError("database is locked")
        pipeline = TranslationPipeline(model_registry, fake_llm, history)

        response = await pipeline.translate(TranslationRequest(source_text="Hello world."))

        assert response.final_translation == "你好，世界。"
        history.save.assert_awaited_once()


class TestTranslate:
    @pytest.mark.asyncio
    async def test_hello_world(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
    ) -> None:
        await _register(model_registry, ModelStage.TRANSLATION, "t1", "t2")
        await _register(model_registry, ModelStage.REVIEW, "r1")
        await _register(model_registry, ModelStage.SYNTHESIS, "s1")
        fake_llm.replies.update(
            {"t1": "你好，世界。", "t2": "您好，世界。", "r1": "Overall score: 9", "s1": "你好，世界。"}
        )

        response = await pipeline.translate(TranslationRequest(source_text="Hello world."))

        assert len(response.stage1_results) == 2
        assert len(response.stage2_results) == 2
        assert len(response.stage3_results) == 1
        assert response.final_translation == "你好，世界。"
        assert response.total_duration_ms == sum(
            r.duration_ms
            for r in (
                *response.stage1_results,
                *response.stage2_results,
                *response.stage3_results,
            )
        )
        assert response.elapsed_ms is not None
        assert await pipeline.get_translation(response.id) is not None

    @pytest.mark.asyncio
    async def test_without_review_or_synthesis(
        self,
        pipeline: TranslationPipeline,
        fake_llm: FakeLLMProvider,
        three_translators: None,
    ) -> None:
        fake_llm.replies["t1"] = "第一译文"
        response = await pipeline.translate(TranslationRequest(source_text=_SOURCE))

        assert response.stage2_results == []
        assert response.stage3_results == []
        assert response.final_translation == "第一译文"

    @pytest.mark.asyncio
    async def test_uses_knowledge_context(
        self,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
        history_store: SQLiteTranslationHistoryStore,
        three_translators: None,
    ) -> None:
        retrieval = AsyncMock()
        retrieval.retrieve_context.return_value = ["Lessee: 承租人"]
        pipeline = TranslationPipeline(
            model_registry, fake_llm, history_store, retrieval_service=retrieval, rag_top_k=3
        )

        response = await pipeline.translate(
            TranslationRequest(
                source_text=_SOURCE, use_knowledge_base=True, knowledge_base_ids=["kb-1"]
            ),
            requester_id="alice",
        )

        retrieval.retrieve_context.assert_awaited_once_with(
            _SOURCE,
            candidate_kb_ids=["kb-1"],
            top_k=3,
            requester_id="alice",
            is_admin=False,
        )
        assert response.stage1_results[0].context_used == ["Lessee: 承租人"]

    @pytest.mark.asyncio
    async def test_knowledge_context_reaches_every_stage(
        self,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
        history_store: SQLiteTranslationHistoryStore,
    ) -> None:
        await _register(model_registry, ModelStage.TRANSLATION, "t1")
        await _register(model_registry, ModelStage.REVIEW, "r1")
        await _register(model_registry, ModelStage.SYNTHESIS, "s1")
        retrieval = AsyncMock()
        retrieval.retrieve_context.return_value = ["Lessee: 承租人"]
        pipeline = TranslationPipeline(
            model_registry, fake_llm, history_store, retrieval_service=retrieval
        )

        response = await pipeline.translate(
            TranslationRequest(source_text=_SOURCE, use_knowledge_base=True)
        )

        assert [(model_id, ctx) for model_id, _, ctx in fake_llm.chat_calls] == [
            ("t1", ["Lessee: 承租人"]),
            ("r1", ["Lessee: 承租人"]),
            ("s1", ["Lessee: 承租人"]),
        ]
        assert response.stage2_results[0].context_used == ["Lessee: 承租人"]
        assert response.stage3_results[0].context_used == ["Lessee: 承租人"]

    @pytest.mark.asyncio
    async def test_retrieval_failure_degrades_to_no_context(
        self,
        model_registry: SQLiteModelRegistry,
        fake_llm: FakeLLMProvider,
        history_store: SQLiteTranslationHistoryStore,
        three_translators: None,
    ) -> None:
        retrieval = AsyncMock()
        retrieval.retrieve_context.side_effect = RAGError("index unavailable")
        pipeline = TranslationPipeline(
            model_registry, fake_llm, history_store, retrieval_service=retrieval
        )

        response = await pipeline.translate(
            TranslationRequest(source_text=_SOURCE, use_knowledge_base=True)
        )
        assert all(ctx is None for _, _, ctx in fake_llm.chat_calls)
        assert response.final_translation

    @pytest.mark.asyncio
    async def test_streams_every_stage(
        self,
        pipeline: TranslationPipeline,
        model_registry: SQLiteModelRegistry,
        three_translators: None,
    ) -> None:
        await _register(model_registry, ModelStage.REVIEW, "r1")
        seen: list[ModelStage] = []

        await pipeline.translate(
            TranslationRequest(source_text=_SOURCE),
            on_result=lambda stage, result: seen.append(stage),
        )
        assert seen.count(ModelStage.TRANSLATION) == 3
        assert seen.count(ModelStage.REVIEW) == 3
