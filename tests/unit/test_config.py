"""Unit tests for Settings validation and the YAML config loader."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml
from pydantic import ValidationError

from lextrans.config import loader
from lextrans.config.loader import load_config
from lextrans.config.settings import Settings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.chunk_size == 1000
        assert settings.chunk_overlap == 200
        assert settings.embedding_concurrency == 4
        assert settings.rebuild_timeout_seconds is None
        assert settings.use_system_proxy is False

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHUNK_SIZE", "500")
        monkeypatch.setenv("CHUNK_OVERLAP", "50")
        monkeypatch.setenv("TARGET_LANGUAGE", "Japanese")
        settings = Settings()
        assert settings.chunk_size == 500
        assert settings.chunk_overlap == 50
        assert settings.target_language == "Japanese"

    @pytest.mark.parametrize(("size", "overlap"), [(100, 100), (100, 200)])
    def test_overlap_must_be_smaller_than_chunk(self, size: int, overlap: int) -> None:
        with pytest.raises(ValidationError):
            Settings(chunk_size=size, chunk_overlap=overlap)

    def test_concurrency_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Settings(embedding_concurrency=0)


class TestLoadConfig:
    def test_settings_sections_are_ignored_with_warning(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "knowledge": {"chunk_size": 1},
                    "models": [{"name": "a", "stage": "translation"}],
                }
            ),
            encoding="utf-8",
        )
        fake_logger = MagicMock()
        monkeypatch.setattr(loader, "logger", fake_logger)

        config = load_config(str(path), Settings())

        assert config == {"models": [{"name": "a", "stage": "translation"}]}
        fake_logger.warning.assert_called_once()
        assert fake_logger.warning.call_args.kwargs["section"] == "knowledge"

    def test_missing_file(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), Settings())
        assert config == {"models": []}

    def test_model_api_key_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LEXTRANS_TEST_KEY", "sk-from-env")
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "models": [
                        {"name": "a", "api_key_env": "LEXTRANS_TEST_KEY"},
                        {"name": "b", "api_key": "inline", "api_key_env": "LEXTRANS_TEST_KEY"},
                        {"name": "c", "api_key_env": "LEXTRANS_UNSET_KEY"},
                    ]
                }
            ),
            encoding="utf-8",
        )
        monkeypatch.delenv("LEXTRANS_UNSET_KEY", raising=False)

        models = load_config(str(path), Settings())["models"]
        assert models == [
            {"name": "a", "api_key": "sk-from-env"},
            {"name": "b", "api_key": "inline"},
            {"name": "c", "api_key": ""},
        ]

    def test_packaged_config_seeds_every_stage(self, project_root: Path) -> None:
        config = load_config(str(project_root / "config" / "config.yaml"), Settings())
        stages = {entry["stage"] for entry in config["models"]}
        assert stages == {"translation", "review", "synthesis", "embedding"}

    def test_packaged_config_has_only_seed_models(self, project_root: Path) -> None:
        raw = yaml.safe_load((project_root / "config" / "config.yaml").read_text(encoding="utf-8"))
        assert set(raw) == {"models"}
