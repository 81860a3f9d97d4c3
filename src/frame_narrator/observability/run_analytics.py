"""
Run Analytics
=============

Per-run analytics derived from existing component metrics.

This module computes analytics for observability ONLY.
Analytics do NOT influence selection or dispatch.

Derived from:
    - SelectorMetrics (frames, ticks, selections)
    - DispatcherMetrics (jobs, retries, peak in-flight)
    - JobQueue metrics (high-water mark)
    - Stage timings measured by the pipeline
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RunAnalytics:
    """
    Analytics snapshot for one processed video.

    All values are DERIVED from component metrics.
    """

    video_id: str
    frames_decoded: int
    ticks: int
    selected: int
    discarded: int
    flushed: int
    jobs_dispatched: int
    jobs_succeeded: int
    jobs_failed: int
    retries: int
    timeouts: int
    peak_in_flight: int
    queue_high_water: int
    persistence_errors: int
    durations: Dict[str, float] = field(default_factory=dict)

    @property
    def selection_ratio(self) -> float:
        """Selected frames per decoded frame."""
        if self.frames_decoded == 0:
            return 0.0
        return self.selected / self.frames_decoded

    def to_dict(self) -> dict:
        data = asdict(self)
        data["selection_ratio"] = round(self.selection_ratio, 4)
        return data


def compute_run_analytics(
    video_id: str,
    selector_metrics: dict,
    dispatcher_metrics: dict,
    queue_metrics: Optional[dict] = None,
    durations: Optional[Dict[str, float]] = None,
) -> RunAnalytics:
    """
    Build a RunAnalytics snapshot from component metrics dicts.

    Args:
        video_id: Processed video
        selector_metrics: SelectorMetrics.to_dict()
        dispatcher_metrics: DispatcherMetrics.to_dict()
        queue_metrics: JobQueue.metrics()
        durations: Stage name -> seconds

    Returns:
        Complete analytics snapshot
    """
    queue_metrics = queue_metrics or {}

    analytics = RunAnalytics(
        video_id=video_id,
        frames_decoded=selector_metrics.get("frames_seen", 0),
        ticks=selector_metrics.get("ticks", 0),
        selected=selector_metrics.get("selected", 0),
        discarded=selector_metrics.get("discarded", 0),
        flushed=selector_metrics.get("flushed", 0),
        jobs_dispatched=dispatcher_metrics.get("jobs_submitted", 0),
        jobs_succeeded=dispatcher_metrics.get("jobs_succeeded", 0),
        jobs_failed=dispatcher_metrics.get("jobs_failed", 0),
        retries=dispatcher_metrics.get("retries", 0),
        timeouts=dispatcher_metrics.get("timeouts", 0),
        peak_in_flight=dispatcher_metrics.get("peak_in_flight", 0),
        queue_high_water=queue_metrics.get("high_water", 0),
        persistence_errors=dispatcher_metrics.get("persistence_errors", 0),
        durations={name: round(seconds, 4) for name, seconds in (durations or {}).items()},
    )

    logger.debug(f"Run analytics for {video_id}: {analytics.to_dict()}")
    return analytics
