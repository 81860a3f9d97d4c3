"""
Pipeline Tests
==============

End-to-end tests of VideoPipelineGraph with mock engines.
"""

import asyncio

import pytest

from conftest import FailingSummaryEngine, SelectiveFailEngine, gray_frame, half_frame
from frame_narrator.annotation import MockDescriptionEngine, MockSummaryEngine
from frame_narrator.decode import IterableFrameSource
from frame_narrator.errors import AnnotationError, DecodeError
from frame_narrator.pipeline import VideoPipelineGraph
from frame_narrator.pipeline.graph import _close_source
from frame_narrator.storage import FileSystemSink, MemorySink


class TestVideoPipelineGraph:
    """Tests for process()."""

    def test_two_frame_sequence(self, two_frame_sequence):
        pipeline = VideoPipelineGraph(MockDescriptionEngine("X"))
        source = IterableFrameSource(two_frame_sequence)

        result = asyncio.run(pipeline.process(source))

        records = [r.model_dump(exclude={"path"}) for r in result.records]
        assert records == [
            {"frame_id": 0, "timestamp": 0.0, "description": "X"},
            {"frame_id": 1, "timestamp": 0.25, "description": "X"},
        ]
        assert result.summary is None
        assert result.failures == []

    def test_summary_uses_ordered_transcript(self, two_frame_sequence):
        summary_engine = MockSummaryEngine()
        pipeline = VideoPipelineGraph(
            MockDescriptionEngine("X"),
            summary_engine=summary_engine,
        )

        result = asyncio.run(pipeline.process(IterableFrameSource(two_frame_sequence)))

        assert result.summary == "Mock summary of 2 frames."
        assert summary_engine.call_count == 1
        assert "- [0.0s] X\n- [0.2s] X\n" in summary_engine.last_prompt
        assert "summarize" in result.stats["durations"]

    def test_summary_failure_does_not_fail_run(self, two_frame_sequence):
        pipeline = VideoPipelineGraph(
            MockDescriptionEngine("X"),
            summary_engine=FailingSummaryEngine(),
        )

        result = asyncio.run(pipeline.process(IterableFrameSource(two_frame_sequence)))

        assert result.summary == "Failed to summarize: quota exceeded"
        assert len(result.records) == 2

    def test_records_sorted_with_concurrent_workers(self):
        frames = [
            half_frame("left" if (i // 5) % 2 == 0 else "right", i / 20)
            for i in range(41)
        ]
        pipeline = VideoPipelineGraph(
            MockDescriptionEngine(),
            sink=MemorySink(),
            max_concurrency=4,
            queue_depth=2,
        )

        result = asyncio.run(pipeline.process(IterableFrameSource(frames, video_id="halves")))
        keys = [(r.timestamp, r.frame_id) for r in result.records]

        assert keys == sorted(keys)
        assert result.records[0].frame_id == 0
        assert all(r.path.startswith("memory://halves_frame_") for r in result.records)
        assert result.stats["selected"] == len(result.records)
        assert result.stats["frames_decoded"] == 41

    def test_empty_source_raises_decode_error(self):
        pipeline = VideoPipelineGraph(MockDescriptionEngine("X"))

        with pytest.raises(DecodeError):
            asyncio.run(pipeline.process(IterableFrameSource([])))

        assert pipeline.videos_failed == 1

    def test_missing_file_raises_decode_error(self, tmp_path):
        pipeline = VideoPipelineGraph(MockDescriptionEngine("X"))

        with pytest.raises(DecodeError):
            asyncio.run(pipeline.process(tmp_path / "missing.mp4"))

    def test_fail_fast_propagates(self):
        frames = [gray_frame(40 * i, i * 0.25) for i in range(6)]
        pipeline = VideoPipelineGraph(
            SelectiveFailEngine(bad_calls=[1]),
            max_concurrency=1,
            max_retries=0,
        )

        with pytest.raises(AnnotationError):
            asyncio.run(pipeline.process(IterableFrameSource(frames)))

    def test_partial_policy_returns_completed_records(self, two_frame_sequence):
        pipeline = VideoPipelineGraph(
            SelectiveFailEngine(bad_calls=[1]),
            max_concurrency=1,
            max_retries=0,
            failure_policy="partial",
        )

        result = asyncio.run(pipeline.process(IterableFrameSource(two_frame_sequence)))

        assert [r.frame_id for r in result.records] == [1]
        assert result.failed_ids == [0]

    def test_video_file_end_to_end(self, video_file, tmp_path):
        sink = FileSystemSink(tmp_path / "frames")
        pipeline = VideoPipelineGraph(
            MockDescriptionEngine("frame"),
            summary_engine=MockSummaryEngine(),
            sink=sink,
        )

        result = asyncio.run(pipeline.process(video_file))

        assert result.video_id == "clip"
        assert result.records[0].frame_id == 0
        assert result.records[0].timestamp == 0.0
        assert len(result.records) >= 2
        for record in result.records:
            assert record.path.endswith(f"clip_frame_{record.frame_id:03d}.jpg")
        assert sink.written_count == len(result.records)
        assert pipeline.get_metrics()["videos_processed"] == 1
        assert pipeline.get_metrics()["engine"] == {
            "model": "mock",
            "call_count": len(result.records),
        }


class BusyIterator:
    """Iterator whose close() fails like a generator running in a thread."""

    def close(self):
        raise ValueError("generator already executing")


class ReleaseRecorder:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class TestCloseSource:
    """Tests for releasing the decoder after a run."""

    def test_source_released_when_iterator_busy(self):
        source = ReleaseRecorder()

        _close_source(BusyIterator(), source)

        assert source.closed

    def test_source_released_after_iterator_closed(self):
        source = ReleaseRecorder()

        _close_source(iter([]), source)

        assert source.closed
