"""
Pipeline Graph Definition
=========================

LangGraph workflow that turns one video into described, ordered frames.

LangGraph is used for CONTROL FLOW only; the model calls live in the
description and summary engines.

Graph Structure:
    START → annotate → summarize → END
                    ↘ (summary disabled) → END

    The annotate node:
    1. Opens the frame source
    2. Decodes frames one at a time in a worker thread
    3. Feeds them to a fresh StreamingSelector
    4. Submits emitted candidates to a fresh AnnotationDispatcher
    5. Flushes the selector, joins, and orders the results

    The summarize node:
    1. Builds one transcript from the ordered records
    2. Issues a single best-effort summary request

Design Philosophy:
    - Selector and dispatcher live for exactly one process() call
    - Decode and selection stay sequential in decode order
    - Fatal errors propagate; persistence and summary errors do not
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, TypedDict, Union

from langgraph.graph import StateGraph, END

from frame_narrator.annotation.engine import DescriptionEngine, SummaryEngine
from frame_narrator.annotation.summarizer import Summarizer
from frame_narrator.decode.video_source import FrameSource, open_source
from frame_narrator.dispatch.aggregator import ResultAggregator
from frame_narrator.dispatch.dispatcher import FAIL_FAST, AnnotationDispatcher
from frame_narrator.errors import DecodeError
from frame_narrator.features.extractor import DEFAULT_GRID_SIZE
from frame_narrator.models.records import FailedFrame, FrameRecord, ProcessResult
from frame_narrator.observability.run_analytics import compute_run_analytics
from frame_narrator.selection.selector import StreamingSelector
from frame_narrator.storage.sink import PersistenceSink


logger = logging.getLogger(__name__)


class PipelineState(TypedDict):
    """
    State passed through the pipeline graph.

    Attributes:
        video: File path or FrameSource to process
        video_id: Identifier of the video (file stem)
        records: Ordered FrameRecords
        failures: Failed frames (partial policy)
        persistence_failures: Frames described but not stored
        summary: Summary text, None when disabled
        stats: Run analytics
    """
    video: Any
    video_id: str
    records: List[FrameRecord]
    failures: List[FailedFrame]
    persistence_failures: List[FailedFrame]
    summary: Optional[str]
    stats: Dict[str, Any]


def create_initial_state(video: Union[str, Path, FrameSource]) -> PipelineState:
    """Create initial graph state for one video."""
    return {
        "video": video,
        "video_id": "",
        "records": [],
        "failures": [],
        "persistence_failures": [],
        "summary": None,
        "stats": {},
    }


class VideoPipelineGraph:
    """
    LangGraph-based video narration pipeline.

    Safe to share between concurrent process() calls: all per-video
    state lives in the call.

    Example:
        pipeline = VideoPipelineGraph(MockDescriptionEngine("X"))
        result = await pipeline.process("data/clip.mp4")
        for record in result.records:
            print(record.timestamp, record.description)
    """

    def __init__(
        self,
        description_engine: DescriptionEngine,
        summary_engine: Optional[SummaryEngine] = None,
        sink: Optional[PersistenceSink] = None,
        interval: float = 0.25,
        grid_size: int = DEFAULT_GRID_SIZE,
        epsilon: float = 1e-6,
        max_concurrency: int = 100,
        queue_depth: int = 8,
        job_timeout: Optional[float] = 120.0,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        failure_policy: str = FAIL_FAST,
        jpeg_quality: int = 85,
        summary_timeout: Optional[float] = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            description_engine: Per-frame description capability
            summary_engine: Summary capability; None disables the summary
            sink: Where encoded frames are stored; None skips storage
            interval: Sampling clock interval in seconds
            grid_size: Feature grid edge length
            epsilon: Tick matching tolerance
            max_concurrency: Description calls in flight at most
            queue_depth: Candidates buffered ahead of the workers
            job_timeout: Seconds per description call
            max_retries: Retries per job
            retry_backoff: Base retry delay in seconds
            failure_policy: "fail_fast" or "partial"
            jpeg_quality: JPEG quality 1-100
            summary_timeout: Seconds for the summary call
        """
        self.description_engine = description_engine
        self.sink = sink
        self.summarizer = (
            Summarizer(summary_engine, timeout=summary_timeout)
            if summary_engine is not None
            else None
        )

        self.interval = interval
        self.grid_size = grid_size
        self.epsilon = epsilon
        self.failure_policy = failure_policy
        self._dispatch_options = {
            "max_concurrency": max_concurrency,
            "queue_depth": queue_depth,
            "job_timeout": job_timeout,
            "max_retries": max_retries,
            "retry_backoff": retry_backoff,
            "failure_policy": failure_policy,
            "jpeg_quality": jpeg_quality,
        }

        self.videos_processed: int = 0
        self.videos_failed: int = 0
        self.last_stats: Optional[Dict[str, Any]] = None

        self._graph = self._build_graph()

        logger.info(
            f"VideoPipelineGraph initialized: interval={interval}s, "
            f"max_concurrency={max_concurrency}, policy={failure_policy}, "
            f"summary={'on' if self.summarizer else 'off'}"
        )

    @property
    def summary_enabled(self) -> bool:
        return self.summarizer is not None

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(PipelineState)

        workflow.add_node("annotate", self._annotate_node)
        workflow.add_node("summarize", self._summarize_node)

        workflow.set_entry_point("annotate")
        workflow.add_conditional_edges(
            "annotate",
            self._route_after_annotate,
            {"summarize": "summarize", END: END},
        )
        workflow.add_edge("summarize", END)

        return workflow.compile()

    def _route_after_annotate(self, state: PipelineState) -> str:
        return "summarize" if self.summary_enabled else END

    # =========================================================================
    # Nodes
    # =========================================================================

    async def _annotate_node(self, state: PipelineState) -> Dict[str, Any]:
        """Decode, select and describe frames of one video."""
        started = time.perf_counter()

        source = await asyncio.to_thread(open_source, state["video"])
        video_id = getattr(source, "video_id", None) or "video"

        selector = StreamingSelector(
            interval=self.interval,
            grid_size=self.grid_size,
            epsilon=self.epsilon,
        )
        dispatcher = AnnotationDispatcher(
            self.description_engine,
            video_id=video_id,
            sink=self.sink,
            **self._dispatch_options,
        )

        logger.info(f"Processing video {video_id}")

        await dispatcher.start()
        iterator = iter(source)
        try:
            frames = 0
            while True:
                frame = await asyncio.to_thread(next, iterator, None)
                if frame is None:
                    break
                frames += 1
                for candidate in selector.push(frame):
                    await dispatcher.submit(candidate)

            if frames == 0:
                raise DecodeError(f"No frames could be decoded from {video_id}")

            for candidate in selector.finish():
                await dispatcher.submit(candidate)

            decode_seconds = time.perf_counter() - started
            outcome = await dispatcher.join()
        except BaseException:
            await dispatcher.cancel()
            raise
        finally:
            _close_source(iterator, source)

        aggregator = ResultAggregator()
        aggregator.add_outcome(outcome)
        records = aggregator.records

        stats = compute_run_analytics(
            video_id,
            selector.metrics.to_dict(),
            dispatcher.metrics.to_dict(),
            dispatcher.queue.metrics(),
            durations={
                "decode_select": decode_seconds,
                "annotate": time.perf_counter() - started,
            },
        ).to_dict()

        logger.info(
            f"Annotated {video_id}: frames={frames}, selected={len(records)}, "
            f"failed={len(outcome.failures)}, "
            f"persistence_failed={len(outcome.persistence_failures)}"
        )

        return {
            "video_id": video_id,
            "records": records,
            "failures": aggregator.failures,
            "persistence_failures": aggregator.persistence_failures,
            "stats": stats,
        }

    async def _summarize_node(self, state: PipelineState) -> Dict[str, Any]:
        """Summarize the ordered records."""
        started = time.perf_counter()
        summary = await self.summarizer.summarize(state["records"])

        stats = dict(state.get("stats") or {})
        durations = dict(stats.get("durations") or {})
        durations["summarize"] = round(time.perf_counter() - started, 4)
        stats["durations"] = durations

        return {"summary": summary, "stats": stats}

    # =========================================================================
    # Entry Point
    # =========================================================================

    async def process(self, video: Union[str, Path, FrameSource]) -> ProcessResult:
        """
        Process one video.

        Args:
            video: Video file path or FrameSource

        Returns:
            ProcessResult with records sorted by timestamp

        Raises:
            DecodeError: No decodable stream or first frame undecodable
            PipelineError: Any job failure under the fail_fast policy
        """
        try:
            state = await self._graph.ainvoke(create_initial_state(video))
        except BaseException:
            self.videos_failed += 1
            raise

        self.videos_processed += 1
        self.last_stats = state.get("stats")

        return ProcessResult(
            video_id=state.get("video_id", ""),
            records=state.get("records", []),
            summary=state.get("summary"),
            failures=state.get("failures", []),
            persistence_failures=state.get("persistence_failures", []),
            stats=state.get("stats", {}),
        )

    def get_metrics(self) -> Dict[str, Any]:
        """Get pipeline metrics for observability."""
        engine_metrics = getattr(self.description_engine, "get_metrics", None)
        return {
            "videos_processed": self.videos_processed,
            "videos_failed": self.videos_failed,
            "failure_policy": self.failure_policy,
            "summary_enabled": self.summary_enabled,
            "engine": engine_metrics() if engine_metrics is not None else None,
            "last_run": self.last_stats,
        }


def _close_source(iterator, source) -> None:
    """Close the frame iterator and release the decoder."""
    close = getattr(iterator, "close", None)
    try:
        if close is not None:
            close()
    except ValueError as e:
        # Generator still running in a decode thread after cancellation
        logger.warning(f"Could not close frame iterator: {e}")
    finally:
        release = getattr(source, "close", None)
        if release is not None:
            release()
