"""
Streaming Selector
==================

Adaptive pairwise "most-different" frame selection.

This selector:
    - Always emits the first decoded frame (id 0, timestamp 0.0)
    - Runs a sampling clock at a fixed interval, independent of FPS
    - Assigns each owed clock tick the current decoded frame as a Candidate
    - Compares every two consecutive candidates against a running
      Reference and emits the one LESS similar to it
    - Flushes a still-pending candidate at end of stream

Selection rule, for pending P and current C:
    s_P = cosine(reference, P), s_C = cosine(reference, C)
    s_P <= s_C  ->  emit P, reference = P, pending = C   (slide by one)
    s_P >  s_C  ->  emit C, reference = C, pending = none (slide by two)

Emission rate therefore stays between one per interval and one per two
intervals, adapting to how fast the content changes.

Key Design Decisions:
    - One selector instance per video; state is never shared
    - Features are computed once per decoded frame, only when it is sampled
    - Candidate timestamps are tick times, not decode times
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from frame_narrator.decode.frame import DecodedFrame
from frame_narrator.features.extractor import (
    DEFAULT_GRID_SIZE,
    FeatureVector,
    extract_frame_features,
)
from frame_narrator.features.similarity import feature_similarity
from frame_narrator.selection.candidate import (
    EMPTY_WINDOW,
    Candidate,
    HoldingWindow,
    Window,
)


logger = logging.getLogger(__name__)


class SelectorValidationError(Exception):
    """Raised when selector parameters are invalid."""
    pass


@dataclass(frozen=True, slots=True)
class SelectionDecision:
    """
    Outcome of one pairwise comparison.

    Attributes:
        selected: The emitted candidate
        other: The candidate that was not emitted by this comparison
        pending_similarity: cosine(reference, pending)
        current_similarity: cosine(reference, current)
        pending_selected: True if the earlier (pending) candidate won
    """

    selected: Candidate
    other: Candidate
    pending_similarity: float
    current_similarity: float
    pending_selected: bool

    @property
    def selected_similarity(self) -> float:
        if self.pending_selected:
            return self.pending_similarity
        return self.current_similarity

    @property
    def other_similarity(self) -> float:
        if self.pending_selected:
            return self.current_similarity
        return self.pending_similarity


def compare_candidates(
    reference: FeatureVector,
    pending: Candidate,
    current: Candidate,
) -> SelectionDecision:
    """
    Pick the candidate most different from the reference.

    Ties favour the pending (earlier) candidate.

    Args:
        reference: Feature of the most recently selected frame
        pending: Candidate held from the previous tick
        current: Candidate of the current tick

    Returns:
        SelectionDecision naming exactly one selected candidate
    """
    s_pending = feature_similarity(reference, pending.feature)
    s_current = feature_similarity(reference, current.feature)

    if s_pending <= s_current:
        return SelectionDecision(
            selected=pending,
            other=current,
            pending_similarity=s_pending,
            current_similarity=s_current,
            pending_selected=True,
        )

    return SelectionDecision(
        selected=current,
        other=pending,
        pending_similarity=s_pending,
        current_similarity=s_current,
        pending_selected=False,
    )


class SelectorMetrics:
    """Metrics for StreamingSelector observability."""

    __slots__ = (
        "frames_seen",
        "frames_featurized",
        "ticks",
        "comparisons",
        "selected",
        "discarded",
        "flushed",
    )

    def __init__(self) -> None:
        self.frames_seen: int = 0
        self.frames_featurized: int = 0
        self.ticks: int = 0
        self.comparisons: int = 0
        self.selected: int = 0
        self.discarded: int = 0
        self.flushed: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_seen": self.frames_seen,
            "frames_featurized": self.frames_featurized,
            "ticks": self.ticks,
            "comparisons": self.comparisons,
            "selected": self.selected,
            "discarded": self.discarded,
            "flushed": self.flushed,
        }


class StreamingSelector:
    """
    Single-threaded streaming frame selector.

    Feed frames in decode order with push(); call finish() once the
    source is exhausted. Both return the candidates emitted by that call,
    in emission order.

    Attributes:
        interval: Sampling clock interval in seconds
        grid_size: Feature grid edge length
        epsilon: Tolerance when matching timestamps to ticks
        metrics: Operational counters

    Example:
        selector = StreamingSelector(interval=0.25)
        for frame in source:
            for candidate in selector.push(frame):
                await dispatcher.submit(candidate)
        for candidate in selector.finish():
            await dispatcher.submit(candidate)
    """

    def __init__(
        self,
        interval: float = 0.25,
        grid_size: int = DEFAULT_GRID_SIZE,
        epsilon: float = 1e-6,
    ) -> None:
        """
        Initialize selector.

        Args:
            interval: Sampling interval in seconds (> 0)
            grid_size: Feature grid edge length (>= 1)
            epsilon: Timestamp tolerance (>= 0)

        Raises:
            SelectorValidationError: If parameters are invalid
        """
        errors = []
        if not interval > 0:
            errors.append(f"interval must be > 0, got {interval}")
        if grid_size < 1:
            errors.append(f"grid_size must be >= 1, got {grid_size}")
        if epsilon < 0:
            errors.append(f"epsilon must be >= 0, got {epsilon}")
        if errors:
            raise SelectorValidationError(
                "Selector parameter validation failed:\n" + "\n".join(errors)
            )

        self.interval = interval
        self.grid_size = grid_size
        self.epsilon = epsilon

        self._reference: Optional[FeatureVector] = None
        self._window: Window = EMPTY_WINDOW
        self._tick_index: int = 1
        self._next_id: int = 1
        self._finished: bool = False

        self.metrics = SelectorMetrics()

    @property
    def reference(self) -> Optional[FeatureVector]:
        """Feature of the most recently selected frame."""
        return self._reference

    @property
    def window(self) -> Window:
        """Current comparison window."""
        return self._window

    @property
    def next_sample_time(self) -> float:
        """Time of the next sampling tick."""
        return self._tick_index * self.interval

    @property
    def next_id(self) -> int:
        """Id the next tick's candidate will receive."""
        return self._next_id

    def push(self, frame: DecodedFrame) -> List[Candidate]:
        """
        Consume one decoded frame.

        Args:
            frame: Next frame in decode order

        Returns:
            Candidates emitted while processing this frame

        Raises:
            FeatureError: If the frame's luminance plane is malformed
            RuntimeError: If called after finish()
        """
        if self._finished:
            raise RuntimeError("StreamingSelector.push() called after finish()")

        self.metrics.frames_seen += 1

        if self._reference is None:
            return [self._select_first(frame)]

        if not frame.timestamp + self.epsilon >= self.next_sample_time:
            return []

        feature = extract_frame_features(frame, grid_size=self.grid_size)
        self.metrics.frames_featurized += 1

        emitted: List[Candidate] = []

        # A decode gap larger than the interval owes several ticks
        while frame.timestamp + self.epsilon >= self.next_sample_time:
            candidate = Candidate(
                frame_id=self._next_id,
                timestamp=self.next_sample_time,
                pixels=frame.pixels,
                pixel_format=frame.pixel_format,
                feature=feature,
            )
            self.metrics.ticks += 1

            selected = self._advance(candidate)
            if selected is not None:
                emitted.append(selected)

            logger.debug(
                f"Sampled id={candidate.frame_id} at ~{candidate.timestamp:.3f}s"
            )
            self._next_id += 1
            self._tick_index += 1

        return emitted

    def finish(self) -> List[Candidate]:
        """
        Flush the window at end of stream.

        Returns:
            The pending candidate, if one was still held
        """
        self._finished = True

        if isinstance(self._window, HoldingWindow):
            candidate = self._window.candidate
            self._window = EMPTY_WINDOW
            self._reference = candidate.feature
            self.metrics.selected += 1
            self.metrics.flushed += 1
            logger.debug(f"Flushed pending id={candidate.frame_id} at end of stream")
            return [candidate]

        return []

    def _select_first(self, frame: DecodedFrame) -> Candidate:
        """Emit the first frame unconditionally and seed the reference."""
        feature = extract_frame_features(frame, grid_size=self.grid_size)
        self.metrics.frames_featurized += 1
        self.metrics.selected += 1
        self._reference = feature

        return Candidate(
            frame_id=0,
            timestamp=0.0,
            pixels=frame.pixels,
            pixel_format=frame.pixel_format,
            feature=feature,
        )

    def _advance(self, candidate: Candidate) -> Optional[Candidate]:
        """Apply one tick's candidate to the window."""
        if not isinstance(self._window, HoldingWindow):
            self._window = HoldingWindow(candidate)
            return None

        pending = self._window.candidate
        decision = compare_candidates(self._reference, pending, candidate)
        self.metrics.comparisons += 1
        self.metrics.selected += 1

        logger.debug(
            f"Cosines vs ref: id{pending.frame_id} -> {decision.pending_similarity:.6f}, "
            f"id{candidate.frame_id} -> {decision.current_similarity:.6f}"
        )

        self._reference = decision.selected.feature

        if decision.pending_selected:
            self._window = HoldingWindow(candidate)
        else:
            self.metrics.discarded += 1
            self._window = EMPTY_WINDOW

        return decision.selected
