"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  -- Static defaults checked into the repo
#                            (search index schema, embedder definition)
#   2. .env file           -- Local developer overrides (not committed)
#   3. Environment vars    -- Set in docker-compose at deploy time
#
# _deep_merge does recursive dict merging:
#   base = {"search_index": {"primary_key": "id"}}
#   overrides = {"search_index": {"uid": "docs"}}
#   result = {"search_index": {"primary_key": "id", "uid": "docs"}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from kbchat.config.settings import Settings
from kbchat.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to take overrides from; a fresh one is
                  built when omitted.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the YAML file exists but cannot be parsed.
    """
    config_path = Path(path)
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "search_index": {
            "uid": settings.meilisearch_index,
            "semantic_ratio": settings.semantic_ratio,
        },
        "chunking": {
            "chunk_size": settings.chunk_size,
            "overlap": settings.chunk_overlap,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
