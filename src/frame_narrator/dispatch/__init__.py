"""
Dispatch Module
===============

Bounded-concurrency annotation of selected frames.

Components:
    - JobQueue: Bounded async queue with backpressure
    - AnnotationDispatcher: Worker pool, one worker per permit
    - ResultAggregator: Accounting and timestamp ordering of results
"""

from frame_narrator.dispatch.queue import JobQueue, QueueClosedError
from frame_narrator.dispatch.dispatcher import (
    FAIL_FAST,
    FAILURE_POLICIES,
    PARTIAL,
    AnnotationDispatcher,
    DispatcherMetrics,
    DispatchOutcome,
    Job,
)
from frame_narrator.dispatch.aggregator import ResultAggregator, order_records

__all__ = [
    "JobQueue",
    "QueueClosedError",
    "AnnotationDispatcher",
    "DispatcherMetrics",
    "DispatchOutcome",
    "Job",
    "FAIL_FAST",
    "PARTIAL",
    "FAILURE_POLICIES",
    "ResultAggregator",
    "order_records",
]
