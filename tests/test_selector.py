"""
Selector Tests
==============

Tests for the sampling clock and the most-different selection rule.
"""

import numpy as np
import pytest

from conftest import gray_frame, half_frame
from frame_narrator.decode.frame import DecodedFrame
from frame_narrator.errors import FeatureError
from frame_narrator.features import extract_frame_features
from frame_narrator.selection import (
    Candidate,
    EmptyWindow,
    HoldingWindow,
    SelectorValidationError,
    StreamingSelector,
    compare_candidates,
)


def run_selector(selector, frames):
    emitted = []
    for frame in frames:
        emitted.extend(selector.push(frame))
    emitted.extend(selector.finish())
    return emitted


def candidate_from(frame: DecodedFrame, frame_id: int) -> Candidate:
    return Candidate(
        frame_id=frame_id,
        timestamp=frame.timestamp,
        pixels=frame.pixels,
        pixel_format=frame.pixel_format,
        feature=extract_frame_features(frame, grid_size=16),
    )


class TestCompareCandidates:
    """Tests for the pairwise comparison rule."""

    def test_selects_less_similar_candidate(self):
        reference = candidate_from(half_frame("left", 0.0), 0).feature
        pending = candidate_from(half_frame("left", 0.25), 1)
        current = candidate_from(half_frame("right", 0.5), 2)

        decision = compare_candidates(reference, pending, current)

        assert decision.selected is current
        assert decision.other is pending
        assert not decision.pending_selected
        assert decision.selected_similarity <= decision.other_similarity

    def test_tie_favours_pending(self):
        reference = candidate_from(half_frame("left", 0.0), 0).feature
        pending = candidate_from(half_frame("right", 0.25), 1)
        current = candidate_from(half_frame("right", 0.5), 2)

        decision = compare_candidates(reference, pending, current)

        assert decision.pending_selected
        assert decision.selected is pending

    def test_zero_reference_ties_to_pending(self):
        reference = candidate_from(gray_frame(0, 0.0), 0).feature
        pending = candidate_from(gray_frame(90, 0.25), 1)
        current = candidate_from(gray_frame(200, 0.5), 2)

        decision = compare_candidates(reference, pending, current)

        assert decision.pending_similarity == 0.0
        assert decision.current_similarity == 0.0
        assert decision.selected is pending


class TestStreamingSelector:
    """Tests for StreamingSelector."""

    def test_first_frame_emitted_with_id_zero(self):
        selector = StreamingSelector()
        emitted = selector.push(gray_frame(10, 0.04))

        assert len(emitted) == 1
        assert emitted[0].frame_id == 0
        assert emitted[0].timestamp == 0.0
        assert selector.reference is emitted[0].feature
        assert selector.next_id == 1

    def test_frames_between_ticks_are_ignored(self):
        selector = StreamingSelector(interval=0.25)
        selector.push(gray_frame(10, 0.0))

        assert selector.push(gray_frame(20, 0.1)) == []
        assert selector.push(gray_frame(30, 0.2)) == []
        assert selector.metrics.frames_featurized == 1
        assert isinstance(selector.window, EmptyWindow)

    def test_one_second_has_four_ticks(self):
        selector = StreamingSelector(interval=0.25)
        frames = [half_frame("left" if i % 2 else "right", i / 20) for i in range(21)]

        run_selector(selector, frames)

        assert selector.metrics.ticks == 4
        assert selector.next_id == 5

    def test_most_different_candidate_wins(self):
        selector = StreamingSelector(interval=0.25, grid_size=16)
        frames = [
            half_frame("left", 0.0),
            half_frame("left", 0.25),
            half_frame("right", 0.5),
        ]

        emitted = run_selector(selector, frames)

        assert [c.frame_id for c in emitted] == [0, 2]
        assert emitted[1].timestamp == 0.5
        assert selector.metrics.discarded == 1
        assert isinstance(selector.window, EmptyWindow)

    def test_pending_win_keeps_current_in_window(self):
        selector = StreamingSelector(interval=0.25, grid_size=16)
        selector.push(half_frame("left", 0.0))
        selector.push(half_frame("right", 0.25))
        emitted = selector.push(half_frame("left", 0.5))

        assert [c.frame_id for c in emitted] == [1]
        assert isinstance(selector.window, HoldingWindow)
        assert selector.window.candidate.frame_id == 2
        assert selector.reference is emitted[0].feature

    def test_finish_flushes_pending_candidate(self, two_frame_sequence):
        selector = StreamingSelector(interval=0.25)

        emitted = run_selector(selector, two_frame_sequence)

        assert [(c.frame_id, c.timestamp) for c in emitted] == [(0, 0.0), (1, 0.25)]
        assert selector.metrics.flushed == 1
        assert isinstance(selector.window, EmptyWindow)

    def test_decode_gap_processes_every_owed_tick(self):
        selector = StreamingSelector(interval=0.25)
        selector.push(gray_frame(50, 0.0))

        emitted = selector.push(gray_frame(100, 1.0))
        flushed = selector.finish()

        assert [c.frame_id for c in emitted] == [1, 2, 3]
        assert [c.timestamp for c in emitted] == [0.25, 0.5, 0.75]
        assert [(c.frame_id, c.timestamp) for c in flushed] == [(4, 1.0)]

    def test_ids_strictly_increase(self):
        selector = StreamingSelector(interval=0.1, grid_size=8)
        rng = np.random.default_rng(11)
        frames = [
            DecodedFrame(
                timestamp=i / 30,
                pixels=rng.integers(0, 256, size=(24, 24), dtype=np.uint8),
                pixel_format="gray",
            )
            for i in range(90)
        ]

        emitted = run_selector(selector, frames)
        ids = [c.frame_id for c in emitted]

        assert ids == sorted(set(ids))
        assert ids[0] == 0

    def test_epsilon_admits_rounded_timestamps(self):
        selector = StreamingSelector(interval=0.25, epsilon=1e-6)
        selector.push(gray_frame(10, 0.0))
        selector.push(gray_frame(20, 0.2499999))

        assert selector.metrics.ticks == 1

    def test_push_after_finish_raises(self):
        selector = StreamingSelector()
        selector.finish()
        with pytest.raises(RuntimeError):
            selector.push(gray_frame(0, 0.0))

    def test_malformed_frame_raises_feature_error(self):
        selector = StreamingSelector()
        frame = DecodedFrame(
            timestamp=0.0,
            pixels=np.zeros((8, 8), dtype=np.uint8),
            pixel_format="bgr24",
        )
        with pytest.raises(FeatureError):
            selector.push(frame)

    def test_invalid_parameters(self):
        with pytest.raises(SelectorValidationError):
            StreamingSelector(interval=0)
        with pytest.raises(SelectorValidationError):
            StreamingSelector(grid_size=0)
