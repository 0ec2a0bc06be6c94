"""YAML configuration loader with environment variable overrides.

Configuration is resolved in layers (later layers win):

  1. ``config/config.yaml`` -- static defaults checked into the repo
  2. ``.env`` file          -- local developer overrides
  3. Environment variables  -- set at deploy time

:func:`load_config` reads the YAML file first, then deep-merges the
environment-derived values on top.  :func:`build_settings` goes the other
way and produces a :class:`Settings` object whose unset fields are filled
from the YAML sections.
"""

from pathlib import Path
from typing import Any

import yaml

from plansearch.config.settings import Settings

# YAML section/key -> Settings field.
_YAML_FIELD_MAP: dict[tuple[str, str], str] = {
    ("storage", "database_path"): "database_path",
    ("storage", "page_image_dir"): "page_image_dir",
    ("storage", "render_page_images"): "render_page_images",
    ("ingestion", "allowed_mime_types"): "allowed_mime_types",
    ("ingestion", "max_upload_bytes"): "max_upload_bytes",
    ("ingestion", "page_concurrency"): "page_concurrency",
    ("ingestion", "combined_page_embeddings"): "combined_page_embeddings",
    ("ingestion", "fact_extraction_enabled"): "fact_extraction_enabled",
    ("ingestion", "report_cache_size"): "report_cache_size",
    ("chunking", "target_size"): "chunk_target_size",
    ("chunking", "min_size"): "chunk_min_size",
    ("chunking", "max_size"): "chunk_max_size",
    ("chunking", "overlap"): "chunk_overlap",
    ("chunking", "floor"): "chunk_floor",
    ("retrieval", "top_k"): "search_top_k",
    ("retrieval", "similarity_threshold"): "search_similarity_threshold",
    ("classification", "max_pages"): "classification_max_pages",
    ("classification", "excerpt_chars"): "classification_excerpt_chars",
    ("polling", "interval_seconds"): "status_poll_interval",
}


def _read_yaml(path: str) -> dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def load_config(path: str = "config/config.yaml") -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Fully resolved configuration dictionary.
    """
    yaml_config = _read_yaml(path)

    settings = Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "llm": {
            "available_providers": settings.get_available_llm_providers(),
            "ollama_base_url": settings.ollama_base_url,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def build_settings(path: str = "config/config.yaml") -> Settings:
    """Return :class:`Settings` with YAML values filling fields the environment left unset."""
    env_settings = Settings()
    yaml_config = _read_yaml(path)

    yaml_values: dict[str, Any] = {}
    for (section, key), field_name in _YAML_FIELD_MAP.items():
        section_values = yaml_config.get(section) or {}
        if key in section_values:
            yaml_values[field_name] = section_values[key]

    # Fields set explicitly through env/.env always win over YAML.
    explicit = env_settings.model_dump(include=env_settings.model_fields_set)
    return Settings(**{**yaml_values, **explicit})


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
