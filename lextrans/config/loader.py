"""YAML configuration loader for seed model configs.

``config/config.yaml`` holds only the ``models`` list that is inserted into
an empty model registry on startup.  Every tunable (chunk window, top-k,
timeouts, log level, ...) lives in :class:`Settings` and is set through
environment variables or ``.env``; YAML sections that look like settings
are ignored with a warning instead of silently doing nothing.

Seed model entries may reference credentials indirectly through
``api_key_env``; the named variable is resolved here so secrets never
have to live in the YAML file.
"""

import os
from pathlib import Path
from typing import Any

import yaml

from lextrans.config.settings import Settings
from lextrans.utils.logging import get_logger

logger = get_logger(__name__)

# Sections older configs carried; their values belong in Settings.
_SETTINGS_SECTIONS = ("app", "knowledge", "logging")


def load_config(path: str | None = None, settings: Settings | None = None) -> dict:
    """Load the YAML file and resolve its seed model entries.

    Args:
        path: Path to the YAML configuration file.  Defaults to
              ``settings.config_path``.
        settings: Settings instance supplying the default path; a fresh
                  one is built if omitted.

    Returns:
        ``{"models": [...]}`` with ``api_key_env`` references resolved.
        A missing file yields an empty model list.
    """
    settings = settings or Settings()
    config_path = Path(path or settings.config_path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    for section in _SETTINGS_SECTIONS:
        if section in yaml_config:
            logger.warning(
                "config_section_ignored",
                section=section,
                path=str(config_path),
                hint="set these values through environment variables or .env",
            )

    return {
        "models": [
            _resolve_model_entry(entry) for entry in yaml_config.get("models") or []
        ]
    }


def _resolve_model_entry(entry: dict[str, Any]) -> dict[str, Any]:
    """Replace ``api_key_env`` with the value of that environment variable."""
    resolved = dict(entry)
    env_name = resolved.pop("api_key_env", None)
    if env_name and not resolved.get("api_key"):
        resolved["api_key"] = os.environ.get(env_name, "")
    return resolved
