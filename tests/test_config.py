"""Tests for configuration loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from livenotes.config import (
    AppConfig,
    LLMConfig,
    PipelineConfig,
    StorageConfig,
    get_config,
    reset_config,
    set_config,
)
from livenotes.prompts import render_annotation_context, render_note_context


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_BASE_URL", "REDIS_URL",
                "LIVENOTES_SOURCE_URL", "LIVENOTES_STORAGE_BACKEND", "LIVENOTES_NOTE_BATCH_SIZE",
                "LIVENOTES_POLL_INTERVAL", "LIVENOTES_USER_ID"):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


class TestDefaults:
    def test_pipeline_defaults(self) -> None:
        cfg = PipelineConfig()

        assert cfg.annotation_block_size == 4
        assert cfg.note_batch_size == 8
        assert cfg.poll_interval == 2.0
        assert cfg.summary_preview_chars == 100

    def test_llm_and_storage_defaults(self) -> None:
        assert LLMConfig().max_retries == 2
        assert StorageConfig().backend == "memory"
        assert AppConfig().source.base_url == "http://localhost:8000"

    def test_invalid_batch_size(self) -> None:
        with pytest.raises(ValidationError):
            PipelineConfig(note_batch_size=0)

    def test_invalid_backend(self) -> None:
        with pytest.raises(ValidationError):
            StorageConfig(backend="sqlite")


class TestOverrides:
    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("OPENAI_MODEL", "gpt-test")
        monkeypatch.setenv("LIVENOTES_SOURCE_URL", "http://stt:9000")
        monkeypatch.setenv("LIVENOTES_STORAGE_BACKEND", "REDIS")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379")
        monkeypatch.setenv("LIVENOTES_NOTE_BATCH_SIZE", "12")
        monkeypatch.setenv("LIVENOTES_POLL_INTERVAL", "not-a-number")

        cfg = AppConfig.from_env()

        assert cfg.llm.api_key == "sk-env"
        assert cfg.llm.model == "gpt-test"
        assert cfg.source.base_url == "http://stt:9000"
        assert cfg.storage.backend == "redis"
        assert cfg.storage.redis_url == "redis://cache:6379"
        assert cfg.pipeline.note_batch_size == 12
        assert cfg.pipeline.poll_interval == 2.0

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "pipeline:\n  annotation_block_size: 3\nstorage:\n  backend: redis\nuser_id: alice\n",
            encoding="utf-8",
        )

        cfg = AppConfig.from_yaml(path)

        assert cfg.pipeline.annotation_block_size == 3
        assert cfg.storage.backend == "redis"
        assert cfg.user_id == "alice"

    def test_to_dict_masks_api_key(self) -> None:
        cfg = AppConfig(llm=LLMConfig(api_key="sk-secret"))
        data = cfg.to_dict()

        assert data["llm"]["api_key"] is True
        assert "sk-secret" not in str(data)

    def test_global_config(self) -> None:
        cfg = AppConfig(user_id="bob")
        set_config(cfg)
        assert get_config() is cfg
        reset_config()
        assert get_config() is not cfg


class TestPrompts:
    def test_annotation_context(self) -> None:
        context = render_annotation_context(PipelineConfig(annotation_sentences=3))
        assert "lecture transcriptions" in context
        assert "3 sentences" in context

    def test_note_context_lists_every_header(self) -> None:
        context = render_note_context(PipelineConfig())
        for header in ("Lecture Topic:", "Key Concepts:", "Bullet Notes:",
                       "Important Definitions:", "Questions to Explore:", "Summary:"):
            assert header in context

    def test_template_file_override(self, tmp_path: Path) -> None:
        path = tmp_path / "annotation.j2"
        path.write_text("Explain in {{ sentences }} words.", encoding="utf-8")

        context = render_annotation_context(PipelineConfig(annotation_prompt_file=path, annotation_sentences=5))

        assert context == "Explain in 5 words."

    def test_missing_template_file_falls_back(self, tmp_path: Path) -> None:
        context = render_annotation_context(PipelineConfig(annotation_prompt_file=tmp_path / "nope.j2"))
        assert "lecture transcriptions" in context
