"""
Annotation Tests
================

Tests for engines, the summarizer and the engine factory.
"""

import asyncio

import pytest

from conftest import FailingSummaryEngine
from frame_narrator.annotation import (
    EMPTY_SUMMARY,
    MockDescriptionEngine,
    MockSummaryEngine,
    Summarizer,
    build_transcript,
    resolve_model_name,
)
from frame_narrator.annotation.gemini_engine import DEFAULT_MODEL, resolve_api_key
from frame_narrator.annotation.vision_engine import render_description
from frame_narrator.config import Settings
from frame_narrator.errors import AnnotationError
from frame_narrator.models.records import FrameRecord
from frame_narrator.pipeline.factory import (
    build_pipeline,
    create_description_engine,
    create_sink,
    create_summary_engine,
)
from frame_narrator.storage import FileSystemSink, MemorySink


class SlowSummaryEngine:
    async def summarize(self, prompt: str) -> str:
        await asyncio.sleep(1.0)
        return "late"


@pytest.fixture
def records():
    return [
        FrameRecord(frame_id=0, timestamp=0.0, description="A car waits."),
        FrameRecord(frame_id=2, timestamp=0.75, description="The light turns green."),
    ]


class TestSummarizer:
    """Tests for Summarizer."""

    def test_transcript_format(self, records):
        transcript = build_transcript(records, header="Frames:\n")
        assert transcript == (
            "Frames:\n"
            "- [0.0s] A car waits.\n"
            "- [0.8s] The light turns green.\n"
        )

    def test_single_request(self, records):
        engine = MockSummaryEngine(fixed_text="A short story.")
        summary = asyncio.run(Summarizer(engine).summarize(records))

        assert summary == "A short story."
        assert engine.call_count == 1

    def test_empty_records_skip_engine(self):
        engine = MockSummaryEngine()
        summary = asyncio.run(Summarizer(engine).summarize([]))

        assert summary == EMPTY_SUMMARY
        assert engine.call_count == 0

    def test_failure_becomes_fallback_text(self, records):
        summary = asyncio.run(Summarizer(FailingSummaryEngine()).summarize(records))
        assert summary == "Failed to summarize: quota exceeded"

    def test_timeout_becomes_fallback_text(self, records):
        summarizer = Summarizer(SlowSummaryEngine(), timeout=0.05)
        summary = asyncio.run(summarizer.summarize(records))
        assert summary.startswith("Failed to summarize:")


class TestEngines:
    """Tests for engine helpers and mocks."""

    def test_mock_description_is_deterministic(self):
        engine = MockDescriptionEngine()
        first = asyncio.run(engine.describe(b"abc", "image/jpeg"))
        second = asyncio.run(engine.describe(b"abc", "image/jpeg"))

        assert first == second
        assert engine.call_count == 2

    def test_model_aliases(self):
        assert resolve_model_name(None) == DEFAULT_MODEL
        assert resolve_model_name("Gemini25Flash") == "gemini-2.5-flash"
        assert resolve_model_name("Gemini25Pro") == "gemini-2.5-pro"
        assert resolve_model_name("gemini-2.0-flash") == "gemini-2.0-flash"
        assert resolve_model_name("gpt-4") == DEFAULT_MODEL

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(AnnotationError):
            resolve_api_key(None)

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.setenv("GEMINI_API_KEY", "secret")
        assert resolve_api_key(None) == "secret"

    def test_render_vision_description(self):
        text = render_description(["Street", "Car"], ["person", "Person", "car"])
        assert text == "Scene labels: street, car. Objects: 2 x person, 1 x car."
        assert render_description([], []) == "No confident labels or objects detected."


class TestFactory:
    """Tests for building engines and pipelines from Settings."""

    def test_mock_backends(self):
        settings = Settings.model_validate({"annotation": {"backend": "mock"}})

        assert isinstance(create_description_engine(settings), MockDescriptionEngine)
        assert isinstance(create_summary_engine(settings), MockSummaryEngine)

    def test_summary_disabled(self):
        settings = Settings.model_validate({"summary": {"enabled": False}})
        assert create_summary_engine(settings) is None

    def test_unknown_backend(self):
        settings = Settings.model_validate({"annotation": {"backend": "llava"}})
        with pytest.raises(ValueError):
            create_description_engine(settings)

    def test_sinks(self, tmp_path):
        fs = Settings.model_validate({"storage": {"directory": str(tmp_path)}})
        memory = Settings.model_validate({"storage": {"backend": "memory"}})
        none = Settings.model_validate({"storage": {"backend": "none"}})

        assert isinstance(create_sink(fs), FileSystemSink)
        assert isinstance(create_sink(memory), MemorySink)
        assert create_sink(none) is None

    def test_build_pipeline(self):
        settings = Settings.model_validate({
            "annotation": {"backend": "mock", "max_concurrency": 3, "failure_policy": "partial"},
            "summary": {"enabled": False},
            "storage": {"backend": "memory"},
        })

        pipeline = build_pipeline(settings)

        assert pipeline.failure_policy == "partial"
        assert not pipeline.summary_enabled
        assert isinstance(pipeline.sink, MemorySink)
