"""
Retrieval Tests
===============

Tests for embedders, vector stores and the frame index, using the
bag-of-words mock embedder.
"""

import asyncio

import pytest

from conftest import FailingSummaryEngine, RecordingAnswerEngine
from frame_narrator.config import Settings
from frame_narrator.errors import RetrievalError
from frame_narrator.pipeline.factory import (
    build_frame_index,
    create_answer_engine,
    create_text_embedder,
    create_vector_store,
)
from frame_narrator.rag import (
    DOCUMENT_TASK,
    QUERY_TASK,
    FrameIndex,
    InMemoryVectorStore,
    JsonFileVectorStore,
    MockTextEmbedder,
    VectorEntry,
    namespace_for,
)
from frame_narrator.rag.embedder import GeminiTextEmbedder
from frame_narrator.rag.index import NO_FRAMES_ANSWER
from frame_narrator.annotation import MockSummaryEngine


def make_index(answer_engine=None, store=None, max_top_k=50):
    return FrameIndex(
        MockTextEmbedder(dimension=256),
        store or InMemoryVectorStore(),
        answer_engine=answer_engine,
        max_top_k=max_top_k,
    )


class TestNamespaces:
    """Tests for namespace_for."""

    def test_sanitizes_video_id(self):
        assert namespace_for("1761542252139_crashDemo") == "video-1761542252139-crashdemo"
        assert namespace_for("  Clip  #2 ") == "video-clip-2"

    def test_missing_id_uses_shared_namespace(self):
        assert namespace_for(None) == "frames"
        assert namespace_for("") == "frames"
        assert namespace_for("___") == "frames"

    def test_long_ids_are_truncated(self):
        namespace = namespace_for("x" * 100)
        assert namespace == "video-" + "x" * 45


class TestMockTextEmbedder:
    """Tests for MockTextEmbedder."""

    def test_deterministic_unit_vectors(self):
        embedder = MockTextEmbedder(dimension=32)
        [first] = asyncio.run(embedder.embed(["Red car"], DOCUMENT_TASK))
        [second] = asyncio.run(embedder.embed(["red CAR!"], QUERY_TASK))

        assert first == second
        assert sum(v * v for v in first) == pytest.approx(1.0)

    def test_blank_text_is_zero_vector(self):
        [vector] = asyncio.run(MockTextEmbedder(dimension=8).embed([""], DOCUMENT_TASK))
        assert vector == [0.0] * 8

    def test_empty_batch_rejected(self):
        with pytest.raises(RetrievalError):
            asyncio.run(MockTextEmbedder().embed([], DOCUMENT_TASK))

    def test_gemini_embedder_needs_api_key(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(RetrievalError):
            GeminiTextEmbedder(api_key=None)


class TestVectorStores:
    """Tests for the vector stores."""

    def test_query_ranks_by_cosine_and_filters(self):
        async def scenario():
            store = InMemoryVectorStore()
            await store.upsert("ns", [
                VectorEntry("a", [1.0, 0.0], {"kind": "frame"}),
                VectorEntry("b", [0.6, 0.8], {"kind": "frame"}),
                VectorEntry("c", [1.0, 0.0], {"kind": "summary"}),
                VectorEntry("z", [0.0, 0.0], {"kind": "frame"}),
            ])
            return await store.query("ns", [1.0, 0.0], top_k=3, where={"kind": "frame"})

        matches = asyncio.run(scenario())

        assert [m.id for m in matches] == ["a", "b", "z"]
        assert matches[0].score == pytest.approx(1.0)
        assert matches[2].score == 0.0

    def test_dimension_mismatch_raises(self):
        async def scenario():
            store = InMemoryVectorStore()
            await store.upsert("ns", [VectorEntry("a", [1.0, 0.0, 0.0])])
            await store.query("ns", [1.0, 0.0], top_k=1)

        with pytest.raises(RetrievalError):
            asyncio.run(scenario())

    def test_unknown_namespace_is_empty(self):
        matches = asyncio.run(InMemoryVectorStore().query("nope", [1.0], top_k=5))
        assert matches == []

    def test_json_store_survives_restart(self, tmp_path):
        async def write():
            store = JsonFileVectorStore(tmp_path / "index")
            await store.upsert("video-clip", [VectorEntry("video-clip::0", [0.5, 0.5], {"kind": "frame"})])

        asyncio.run(write())
        reopened = JsonFileVectorStore(tmp_path / "index")

        assert asyncio.run(reopened.namespaces()) == {"video-clip": 1}
        fetched = asyncio.run(reopened.fetch("video-clip", ["video-clip::0", "missing"]))
        assert list(fetched) == ["video-clip::0"]
        assert fetched["video-clip::0"].metadata == {"kind": "frame"}

        assert asyncio.run(reopened.delete_namespace("video-clip")) is True
        assert not (tmp_path / "index" / "video-clip.json").exists()

    def test_json_store_skips_corrupt_files(self, tmp_path):
        (tmp_path / "broken.json").write_text("{not json")
        store = JsonFileVectorStore(tmp_path)
        assert asyncio.run(store.namespaces()) == {}


class TestFrameIndex:
    """Tests for FrameIndex."""

    def test_ingest_stores_frames_summary_and_manifest(self, street_records):
        index = make_index()

        result = asyncio.run(index.ingest(
            "street",
            street_records,
            summary="A car passes a cyclist.",
            video_filename="1761_street.mp4",
        ))

        assert result.namespace == "video-street"
        assert result.upserted == 6
        assert result.included_summary
        listing = asyncio.run(index.namespaces())
        assert listing == [{
            "namespace": "video-street",
            "vector_count": 6,
            "video_id": "street",
            "video_filename": "1761_street.mp4",
            "frame_count": 4,
        }]

    def test_blank_summary_is_not_stored(self, street_records):
        result = asyncio.run(make_index().ingest("street", street_records, summary="  "))

        assert result.upserted == 5
        assert not result.included_summary

    def test_ingest_requires_records(self):
        with pytest.raises(ValueError):
            asyncio.run(make_index().ingest("street", []))

    def test_reingest_replaces_vectors(self, street_records):
        index = make_index()
        asyncio.run(index.ingest("street", street_records))
        asyncio.run(index.ingest("street", street_records))

        assert asyncio.run(index.store.namespaces()) == {"video-street": 5}

    def test_query_returns_matching_frames_only(self, street_records):
        index = make_index()
        asyncio.run(index.ingest("street", street_records, summary="red car red car"))

        matches = asyncio.run(index.query("street", "red car", top_k=2))

        assert {m.metadata["frame_id"] for m in matches} == {0, 2}
        assert all(m.metadata["kind"] == "frame" for m in matches)
        assert matches[0].score >= matches[1].score

    def test_query_is_scoped_to_the_video(self, street_records):
        index = make_index()
        asyncio.run(index.ingest("street", street_records))

        assert asyncio.run(index.query("other", "red car")) == []

    def test_query_top_k_is_clamped(self, street_records):
        index = make_index(max_top_k=2)
        asyncio.run(index.ingest("street", street_records))

        assert len(asyncio.run(index.query("street", "the", top_k=10))) == 2

    def test_blank_question_rejected(self):
        with pytest.raises(ValueError):
            asyncio.run(make_index().query("street", "   "))

    def test_answer_uses_chronological_context(self, street_records):
        engine = RecordingAnswerEngine()
        index = make_index(answer_engine=engine)
        asyncio.run(index.ingest("street", street_records))

        answer = asyncio.run(index.answer("street", "what happens to the red car", top_k=2))

        assert answer.answer == "The red car runs the light."
        assert [m.metadata["frame_id"] for m in answer.citations] == [0, 2]
        [prompt] = engine.prompts
        assert "Question: what happens to the red car" in prompt
        first = prompt.index("#1 [t=0.0s] id=0 (data/street_frame_000.jpg)")
        second = prompt.index("#2 [t=1.0s] id=2 (data/street_frame_002.jpg)")
        assert first < second
        assert index.get_metrics()["answers"] == 1

    def test_answer_without_frames_skips_engine(self):
        engine = RecordingAnswerEngine()

        answer = asyncio.run(make_index(answer_engine=engine).answer("empty", "anything?"))

        assert answer.answer == NO_FRAMES_ANSWER
        assert answer.citations == []
        assert engine.prompts == []

    def test_answer_failure_raises_retrieval_error(self, street_records):
        index = make_index(answer_engine=FailingSummaryEngine())
        asyncio.run(index.ingest("street", street_records))

        with pytest.raises(RetrievalError, match="quota exceeded"):
            asyncio.run(index.answer("street", "red car"))

    def test_answer_requires_engine(self):
        with pytest.raises(RetrievalError):
            asyncio.run(make_index().answer("street", "red car"))

    def test_overview_is_chronological(self, street_records):
        index = make_index()
        asyncio.run(index.ingest("street", street_records, summary="A busy street."))

        overview = asyncio.run(index.overview("street"))

        assert overview.summary == "A busy street."
        assert [f["frame_id"] for f in overview.frames] == [0, 1, 2, 3]
        assert overview.frames[1]["path"] is None

    def test_delete(self, street_records):
        index = make_index()
        asyncio.run(index.ingest("street", street_records))

        assert asyncio.run(index.delete("street")) is True
        assert asyncio.run(index.delete("street")) is False
        assert asyncio.run(index.namespaces()) == []

    def test_metrics_include_embedder(self, street_records):
        index = make_index()
        asyncio.run(index.ingest("street", street_records))
        asyncio.run(index.query("street", "dog"))

        metrics = index.get_metrics()

        assert metrics["ingests"] == 1
        assert metrics["queries"] == 1
        assert metrics["vectors_upserted"] == 5
        assert metrics["embedder"] == {"model": "mock", "call_count": 2}


class TestRetrievalFactory:
    """Tests for building the frame index from Settings."""

    def test_disabled(self):
        settings = Settings.model_validate({"rag": {"enabled": False}})
        assert build_frame_index(settings) is None

    def test_mock_backends_follow_annotation(self, tmp_path):
        settings = Settings.model_validate({
            "annotation": {"backend": "vision"},
            "storage": {"directory": str(tmp_path)},
        })

        index = build_frame_index(settings)

        assert isinstance(index.embedder, MockTextEmbedder)
        assert isinstance(index.answer_engine, MockSummaryEngine)
        assert isinstance(index.store, JsonFileVectorStore)
        assert index.store.directory == tmp_path / "index"

    def test_memory_store_and_top_k(self):
        settings = Settings.model_validate({
            "annotation": {"backend": "mock"},
            "rag": {"store": "memory", "query_top_k": 5, "max_top_k": 20},
        })

        index = build_frame_index(settings)

        assert isinstance(index.store, InMemoryVectorStore)
        assert index.query_top_k == 5
        assert index.max_top_k == 20

    def test_unknown_backends(self):
        with pytest.raises(ValueError):
            create_text_embedder(Settings.model_validate({"rag": {"embedder": "openai"}}))
        with pytest.raises(ValueError):
            create_vector_store(Settings.model_validate({"rag": {"store": "pinecone"}}))

    def test_answer_engine_for_mock(self):
        settings = Settings.model_validate({"rag": {"embedder": "mock"}})
        assert isinstance(create_answer_engine(settings), MockSummaryEngine)
