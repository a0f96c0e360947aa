"""Integration test: ingest a document, translate with its context, restart.

Runs the real composition root, SQLite stores, file extractor and vector
index; only the upstream LLM is replaced by the in-process fake.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from lextrans.config.settings import Settings
from lextrans.main import AppComponents, build_components, shutdown, startup
from lextrans.models.knowledge import BuildPhase
from lextrans.models.model_config import ModelStage
from lextrans.models.translation import TranslationRequest
from lextrans.providers.extraction.file_text_extractor import describe_file
from tests.conftest import FakeLLMProvider, _hash_vector

_GLOSSARY = "Force majeure: 不可抗力. Indemnify: 赔偿. Lessee: 承租人. Lessor: 出租人."
_STATUTE = "Article 590: A lessee shall return the leased property upon expiry of the term."
_SOURCE = "The Lessee shall indemnify the Lessor against any loss."


def _seed(stage: str, name: str) -> dict:
    return {
        "name": name,
        "stage": stage,
        "api_endpoint": f"https://llm.test/{stage}",
        "model_id": f"{name}-upstream",
        "is_public": True,
    }


@pytest.fixture
def app_settings(tmp_path: Path) -> Settings:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "models": [
                    _seed("translation", "translator-a"),
                    _seed("translation", "translator-b"),
                    _seed("review", "reviewer"),
                    _seed("synthesis", "synthesizer"),
                    _seed("embedding", "embedder"),
                ]
            }
        ),
        encoding="utf-8",
    )
    return Settings(
        database_path=str(tmp_path / "lextrans.db"),
        config_path=str(config_path),
        upload_dir=str(tmp_path / "uploads"),
        rag_top_k=1,
        rebuild_timeout_seconds=5.0,
    )


async def _start(app_settings: Settings, fake: FakeLLMProvider, rebuild: bool) -> AppComponents:
    components = build_components(app_settings, llm_provider=fake)
    await startup(components, rebuild=rebuild)
    return components


async def _embedding_model_id(components: AppComponents) -> str:
    models = await components.model_registry.list_models(stage=ModelStage.EMBEDDING)
    return models[0].id


class TestTranslationFlow:
    @pytest.mark.asyncio
    async def test_ingest_translate_and_restart(
        self, app_settings: Settings, tmp_path: Path
    ) -> None:
        glossary_file = tmp_path / "glossary.txt"
        glossary_file.write_text(_GLOSSARY, encoding="utf-8")
        statute_file = tmp_path / "statute.md"
        statute_file.write_text(_STATUTE, encoding="utf-8")

        fake = FakeLLMProvider()
        # the source text embeds exactly like the glossary chunk
        fake.vectors[_SOURCE] = _hash_vector(_GLOSSARY)
        components = await _start(app_settings, fake, rebuild=False)
        try:
            embedder_id = await _embedding_model_id(components)
            glossary = await components.ingestion_service.ingest_file(
                name="Glossary",
                description="Contract terms",
                source_file=describe_file(glossary_file),
                embedding_model_id=embedder_id,
                is_public=True,
            )
            await components.ingestion_service.ingest_file(
                name="Civil Code",
                description=None,
                source_file=describe_file(statute_file),
                embedding_model_id=embedder_id,
                is_public=True,
            )
            status = await components.ingestion_service.wait_for_build(glossary.id, timeout=5)
            assert status.ready is True
            assert status.phase is BuildPhase.READY
            await components.ingestion_service.wait_for_builds(timeout=5)

            synthesizer = next(
                m for m in await components.model_registry.list_models()
                if m.stage is ModelStage.SYNTHESIS
            )
            fake.replies[synthesizer.id] = "承租人应赔偿出租人的任何损失。"

            response = await components.translation_pipeline.translate(
                TranslationRequest(source_text=_SOURCE, use_knowledge_base=True)
            )
        finally:
            await shutdown(components)

        assert len(response.stage1_results) == 2
        assert all(r.context_used == [_GLOSSARY] for r in response.stage1_results)
        assert len(response.stage2_results) == 2
        assert len(response.stage3_results) == 1
        assert response.final_translation == "承租人应赔偿出租人的任何损失。"
        # translate, review and synthesize calls all carry the glossary
        assert len(fake.chat_calls) == 5
        assert all(context == [_GLOSSARY] for _, _, context in fake.chat_calls)
        assert fake.closed is True

        # A fresh process re-embeds from the stored files and keeps history.
        restarted_fake = FakeLLMProvider()
        restarted = await _start(app_settings, restarted_fake, rebuild=True)
        try:
            status = await restarted.ingestion_service.get_build_status(glossary.id)
            assert status.ready is True
            embedded_texts = {text for _, text in restarted_fake.embed_calls}
            assert {_GLOSSARY, _STATUTE} <= embedded_texts

            results = await restarted.retrieval_service.search(_STATUTE, top_k=1)
            assert [r.knowledge_base_name for r in results] == ["Civil Code"]

            history = await restarted.translation_pipeline.get_history()
            assert [entry.id for entry in history] == [response.id]
            assert history[0].final_translation == response.final_translation
        finally:
            await shutdown(restarted)
