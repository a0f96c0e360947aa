"""Application settings loaded from environment variables via pydantic-settings.

Values are read from (highest priority first):

  1. Environment variables, e.g. ``EMBEDDING_CONCURRENCY=2``
  2. The ``.env`` file in the working directory
  3. The defaults declared below
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """LexTrans application settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === Storage ===
    database_path: str = "data/lextrans.db"
    upload_dir: str = "uploads"

    # === Knowledge base ===
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    embedding_concurrency: int = Field(default=4, ge=1)
    rag_top_k: int = Field(default=5, ge=1)
    rebuild_on_startup: bool = True
    # None = schedule rebuild jobs and return without waiting
    rebuild_timeout_seconds: float | None = None

    # === Provider calls ===
    chat_timeout_seconds: float = 120.0
    embedding_timeout_seconds: float = 60.0
    # httpx honours HTTP(S)_PROXY / NO_PROXY only when this is on
    use_system_proxy: bool = False
    openrouter_referer: str = "http://localhost"
    openrouter_title: str = "LexTrans"

    # === Translation ===
    source_language: str = "legal English"
    target_language: str = "Chinese"
    # Overrides the packaged default stage prompts when set
    prompts_dir: str = ""

    # === App Config ===
    config_path: str = "config/config.yaml"
    app_env: str = "development"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_chunk_window(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
        return self
