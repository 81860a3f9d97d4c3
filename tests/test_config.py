"""
Config Tests
============

Tests for YAML loading and environment overrides.
"""

import pytest
from pydantic import ValidationError

from frame_narrator.config import DEFAULT_MAX_CONCURRENCY, Settings, load_config


ENV_VARS = (
    "NARRATOR_CONFIG",
    "NARRATOR_BACKEND",
    "NARRATOR_SAMPLE_INTERVAL",
    "NARRATOR_FAILURE_POLICY",
    "NARRATOR_SUMMARY_ENABLED",
    "NARRATOR_DATA_DIR",
    "NARRATOR_PORT",
    "LLM_MAX_CONCURRENCY",
    "GEMINI_MODEL",
    "GEMINI_TEXT_MODEL",
    "NARRATOR_RAG_ENABLED",
    "NARRATOR_RAG_STORE",
    "NARRATOR_EMBEDDER",
    "GOOGLE_API_KEY",
    "PORT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "sampling:\n"
        "  interval_seconds: 0.5\n"
        "annotation:\n"
        "  backend: gemini\n"
        "  max_concurrency: 8\n"
        "server:\n"
        "  port: 9000\n"
    )
    return path


class TestSettings:
    """Tests for Settings defaults and validation."""

    def test_defaults(self):
        settings = Settings()

        assert settings.sampling.interval_seconds == 0.25
        assert settings.sampling.grid_size == 64
        assert settings.annotation.max_concurrency == DEFAULT_MAX_CONCURRENCY
        assert settings.annotation.failure_policy == "fail_fast"
        assert settings.annotation.jpeg_quality == 85
        assert settings.storage.max_upload_mb == 500

    def test_rejects_invalid_values(self):
        with pytest.raises(ValidationError):
            Settings.model_validate({"sampling": {"interval_seconds": 0}})
        with pytest.raises(ValidationError):
            Settings.model_validate({"annotation": {"failure_policy": "ignore"}})


class TestLoadConfig:
    """Tests for load_config precedence."""

    def test_yaml_overrides_defaults(self, clean_env, config_file):
        settings = load_config(str(config_file))

        assert settings.sampling.interval_seconds == 0.5
        assert settings.annotation.backend == "gemini"
        assert settings.annotation.max_concurrency == 8
        assert settings.server.port == 9000
        assert settings.annotation.queue_depth == 8

    def test_env_overrides_yaml(self, clean_env, config_file):
        clean_env.setenv("NARRATOR_BACKEND", "mock")
        clean_env.setenv("LLM_MAX_CONCURRENCY", "3")
        clean_env.setenv("GEMINI_MODEL", "Gemini25Pro")
        clean_env.setenv("NARRATOR_SUMMARY_ENABLED", "false")
        clean_env.setenv("PORT", "8080")

        settings = load_config(str(config_file))

        assert settings.annotation.backend == "mock"
        assert settings.annotation.max_concurrency == 3
        assert settings.annotation.model == "Gemini25Pro"
        assert settings.summary.enabled is False
        assert settings.server.port == 8080

    def test_invalid_concurrency_uses_default(self, clean_env, tmp_path):
        clean_env.setenv("LLM_MAX_CONCURRENCY", "lots")

        settings = load_config(str(tmp_path / "absent.yaml"))

        assert settings.annotation.max_concurrency == DEFAULT_MAX_CONCURRENCY

    def test_invalid_concurrency_overrides_yaml_with_default(self, clean_env, config_file):
        clean_env.setenv("LLM_MAX_CONCURRENCY", "abc")

        settings = load_config(str(config_file))

        assert settings.annotation.max_concurrency == DEFAULT_MAX_CONCURRENCY

    def test_zero_concurrency_uses_default(self, clean_env, config_file):
        clean_env.setenv("LLM_MAX_CONCURRENCY", "0")

        settings = load_config(str(config_file))

        assert settings.annotation.max_concurrency == DEFAULT_MAX_CONCURRENCY

    def test_api_key_from_environment(self, clean_env, tmp_path):
        clean_env.setenv("GOOGLE_API_KEY", "secret")

        settings = load_config(str(tmp_path / "absent.yaml"))

        assert settings.annotation.api_key == "secret"

    def test_retrieval_overrides(self, clean_env, tmp_path):
        clean_env.setenv("NARRATOR_RAG_ENABLED", "no")
        clean_env.setenv("NARRATOR_RAG_STORE", "memory")
        clean_env.setenv("NARRATOR_EMBEDDER", "mock")
        clean_env.setenv("GEMINI_TEXT_MODEL", "gemini-2.5-flash")

        settings = load_config(str(tmp_path / "absent.yaml"))

        assert settings.rag.enabled is False
        assert settings.rag.store == "memory"
        assert settings.rag.embedder == "mock"
        assert settings.rag.answer_model == "gemini-2.5-flash"

    def test_retrieval_defaults(self, clean_env, tmp_path):
        settings = load_config(str(tmp_path / "absent.yaml"))

        assert settings.rag.enabled is True
        assert settings.rag.embedding_model == "gemini-embedding-001"
        assert settings.rag.query_top_k == 3
        assert settings.rag.directory is None
