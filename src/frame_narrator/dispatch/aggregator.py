"""
Result Aggregator
=================

Collects dispatcher outcomes into the final, ordered record list.

Ordering:
    Records are sorted ascending by timestamp, ties broken by frame_id.
    A NaN timestamp compares equal to any other timestamp, so the pair
    falls back to frame_id. The sort never raises on malformed input.
"""

import logging
from functools import cmp_to_key
from typing import Iterable, List

from frame_narrator.dispatch.dispatcher import DispatchOutcome
from frame_narrator.models.records import FailedFrame, FrameRecord


logger = logging.getLogger(__name__)


def _compare_records(a: FrameRecord, b: FrameRecord) -> int:
    if a.timestamp < b.timestamp:
        return -1
    if a.timestamp > b.timestamp:
        return 1
    # Equal or incomparable (NaN)
    return (a.frame_id > b.frame_id) - (a.frame_id < b.frame_id)


def order_records(records: Iterable[FrameRecord]) -> List[FrameRecord]:
    """
    Sort records by timestamp, then frame_id.

    Args:
        records: Records in any order (typically completion order)

    Returns:
        New sorted list
    """
    return sorted(records, key=cmp_to_key(_compare_records))


class ResultAggregator:
    """
    Accounts for every dispatched job and orders the results.

    Every dispatched frame ends up exactly once in either the records or
    the failures. persistence_failures overlap with records (the frame
    was described but not stored).
    """

    def __init__(self) -> None:
        self._records: List[FrameRecord] = []
        self._failures: List[FailedFrame] = []
        self._persistence_failures: List[FailedFrame] = []
        self._dispatched: int = 0

    def add_outcome(self, outcome: DispatchOutcome) -> None:
        """
        Add one dispatcher outcome.

        Raises:
            ValueError: If records and failures do not account for
                every dispatched job, or a frame_id appears twice
        """
        accounted = len(outcome.records) + len(outcome.failures)
        if accounted != outcome.dispatched:
            raise ValueError(
                f"Dispatched {outcome.dispatched} jobs but got "
                f"{len(outcome.records)} records and {len(outcome.failures)} failures"
            )

        seen = {record.frame_id for record in self._records}
        seen.update(failure.frame_id for failure in self._failures)
        for frame_id in [r.frame_id for r in outcome.records] + [f.frame_id for f in outcome.failures]:
            if frame_id in seen:
                raise ValueError(f"Duplicate result for frame {frame_id}")
            seen.add(frame_id)

        self._records.extend(outcome.records)
        self._failures.extend(outcome.failures)
        self._persistence_failures.extend(outcome.persistence_failures)
        self._dispatched += outcome.dispatched

    @property
    def dispatched(self) -> int:
        return self._dispatched

    @property
    def records(self) -> List[FrameRecord]:
        """Records sorted by timestamp, then frame_id."""
        return order_records(self._records)

    @property
    def failures(self) -> List[FailedFrame]:
        return sorted(self._failures, key=lambda failure: failure.frame_id)

    @property
    def persistence_failures(self) -> List[FailedFrame]:
        return sorted(self._persistence_failures, key=lambda failure: failure.frame_id)

    def to_dict(self) -> dict:
        """Counters for run analytics."""
        return {
            "dispatched": self._dispatched,
            "described": len(self._records),
            "failed": len(self._failures),
            "persistence_failed": len(self._persistence_failures),
        }
