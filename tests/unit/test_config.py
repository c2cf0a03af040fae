"""Unit tests for Settings, the YAML config loader, and error status mapping."""

from __future__ import annotations

from pathlib import Path

import pytest

from kbchat.api.middleware import status_for_error
from kbchat.config.loader import load_config
from kbchat.config.settings import Settings
from kbchat.utils.errors import (
    ChunkingError,
    ConfigurationError,
    IndexingError,
    KBChatError,
    LLMError,
    QueueFullError,
    SearchError,
    TaskNotFoundError,
    ValidationError,
)


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.chunk_size == 512
        assert settings.chunk_overlap == 50
        assert settings.meilisearch_index == "rag_documents"
        assert settings.semantic_ratio == 0.5

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MEILISEARCH_URL", "http://search:7700")
        monkeypatch.setenv("CHUNK_SIZE", "256")

        settings = Settings(_env_file=None)

        assert settings.meilisearch_url == "http://search:7700"
        assert settings.chunk_size == 256

    def test_cors_origins_split(self) -> None:
        settings = Settings(_env_file=None, cors_origins="http://a.test, http://b.test,")

        assert settings.get_cors_origins() == ["http://a.test", "http://b.test"]


class TestLoadConfig:
    def test_repo_config_loads(self, project_root: Path, settings: Settings) -> None:
        config = load_config(str(project_root / "config" / "config.yaml"), settings=settings)

        index = config["search_index"]
        assert index["uid"] == "rag_documents"
        assert index["primary_key"] == "id"
        assert "hierarchy_lvl1" in index["settings"]["filterableAttributes"]
        assert index["settings"]["embedders"]["default"]["source"] == "rest"
        assert config["chunking"] == {"chunk_size": 512, "overlap": 50}

    def test_settings_override_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "search_index:\n  uid: from_yaml\n  primary_key: id\nchunking:\n  chunk_size: 100\n",
            encoding="utf-8",
        )
        settings = Settings(_env_file=None, meilisearch_index="from_env", chunk_size=300)

        config = load_config(str(path), settings=settings)

        assert config["search_index"]["uid"] == "from_env"
        assert config["search_index"]["primary_key"] == "id"
        assert config["chunking"]["chunk_size"] == 300

    def test_missing_file_uses_settings(self, tmp_path: Path, settings: Settings) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=settings)

        assert config["search_index"]["uid"] == "rag_documents"
        assert config["app"]["port"] == settings.app_port

    def test_invalid_yaml_raises(self, tmp_path: Path, settings: Settings) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("search_index: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_config(str(path), settings=settings)


class TestErrorStatusMapping:
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (ValidationError("empty"), 400),
            (TaskNotFoundError(), 404),
            (QueueFullError(), 503),
            (SearchError(), 502),
            (LLMError(), 502),
            (IndexingError(), 500),
            (ChunkingError(), 500),
            (KBChatError(), 500),
        ],
    )
    def test_status_for_error(self, error: KBChatError, status: int) -> None:
        assert status_for_error(error) == status

    def test_str_includes_provider(self) -> None:
        err = SearchError("index missing", provider_name="meilisearch")

        assert str(err) == "[meilisearch] index missing"
        assert err.message == "index missing"
