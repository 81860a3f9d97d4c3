"""
Annotation Dispatcher
=====================

Bounded-concurrency submission of selected frames to a description engine.

This dispatcher:
    - Accepts emitted Candidates in selection order via submit()
    - Buffers them in a fixed-capacity JobQueue (submit waits when full)
    - Runs N worker coroutines; each worker is one concurrency permit
    - Per job: JPEG-encodes in a worker thread, starts persistence
      concurrently, calls the engine under a timeout with retries
    - Collects FrameRecords (completion order) and failures

Failure Policy:
    - fail_fast (default): the first job error is kept, queued jobs are
      skipped, further submit() calls raise it, join() raises it
    - partial: failed jobs are reported as FailedFrame entries

Key Design Decisions:
    - At most N engine calls are in flight, because there are N workers
    - Memory is bounded by N in-flight jobs plus the queue depth
    - Encoded bytes are dropped once a job ends; records keep only the
      storage reference
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from frame_narrator.annotation.engine import DescriptionEngine
from frame_narrator.decode.image_codec import JPEG_MIME_TYPE, encode_jpeg
from frame_narrator.dispatch.queue import JobQueue
from frame_narrator.errors import (
    AnnotationError,
    PersistenceError,
    PipelineError,
)
from frame_narrator.models.records import FailedFrame, FrameRecord
from frame_narrator.selection.candidate import Candidate
from frame_narrator.storage.sink import PersistenceSink, frame_key


logger = logging.getLogger(__name__)


FAIL_FAST = "fail_fast"
PARTIAL = "partial"
FAILURE_POLICIES = (FAIL_FAST, PARTIAL)


@dataclass(frozen=True, slots=True)
class Job:
    """
    One encoded frame awaiting description.

    Attributes:
        frame_id: Selection id
        timestamp: Tick time in seconds
        image_bytes: Encoded image
        mime_type: MIME type of image_bytes
    """

    frame_id: int
    timestamp: float
    image_bytes: bytes
    mime_type: str = JPEG_MIME_TYPE

    def __repr__(self) -> str:
        return (
            f"Job(frame_id={self.frame_id}, timestamp={self.timestamp:.3f}, "
            f"bytes={len(self.image_bytes)})"
        )


@dataclass
class DispatchOutcome:
    """
    Everything the workers produced.

    Records are in completion order; the aggregator sorts them.
    """

    dispatched: int
    records: List[FrameRecord] = field(default_factory=list)
    failures: List[FailedFrame] = field(default_factory=list)
    persistence_failures: List[FailedFrame] = field(default_factory=list)


class DispatcherMetrics:
    """Metrics for AnnotationDispatcher observability."""

    __slots__ = (
        "jobs_submitted",
        "jobs_succeeded",
        "jobs_failed",
        "jobs_skipped",
        "retries",
        "timeouts",
        "in_flight",
        "peak_in_flight",
        "persisted",
        "persistence_errors",
    )

    def __init__(self) -> None:
        self.jobs_submitted: int = 0
        self.jobs_succeeded: int = 0
        self.jobs_failed: int = 0
        self.jobs_skipped: int = 0
        self.retries: int = 0
        self.timeouts: int = 0
        self.in_flight: int = 0
        self.peak_in_flight: int = 0
        self.persisted: int = 0
        self.persistence_errors: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "jobs_submitted": self.jobs_submitted,
            "jobs_succeeded": self.jobs_succeeded,
            "jobs_failed": self.jobs_failed,
            "jobs_skipped": self.jobs_skipped,
            "retries": self.retries,
            "timeouts": self.timeouts,
            "peak_in_flight": self.peak_in_flight,
            "persisted": self.persisted,
            "persistence_errors": self.persistence_errors,
        }


class AnnotationDispatcher:
    """
    Worker pool that turns Candidates into FrameRecords.

    Attributes:
        max_concurrency: Number of permits (workers)
        queue_depth: Capacity of the job queue
        video_id: Prefix of storage keys
        metrics: Operational counters

    Example:
        dispatcher = AnnotationDispatcher(engine, max_concurrency=4)
        await dispatcher.start()
        try:
            for candidate in candidates:
                await dispatcher.submit(candidate)
            outcome = await dispatcher.join()
        except BaseException:
            await dispatcher.cancel()
            raise
    """

    def __init__(
        self,
        engine: DescriptionEngine,
        max_concurrency: int = 100,
        queue_depth: int = 8,
        video_id: str = "video",
        sink: Optional[PersistenceSink] = None,
        jpeg_quality: int = 85,
        job_timeout: Optional[float] = 120.0,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        failure_policy: str = FAIL_FAST,
    ) -> None:
        """
        Initialize dispatcher.

        Args:
            engine: Description capability
            max_concurrency: Permits; values < 1 are raised to 1
            queue_depth: Job queue capacity (>= 1)
            video_id: Used to build storage keys
            sink: Persistence sink, or None to skip storage
            jpeg_quality: JPEG quality 1-100
            job_timeout: Seconds per engine call (None = no limit)
            max_retries: Extra attempts after a failed engine call
            retry_backoff: Base delay in seconds, doubled per retry
            failure_policy: "fail_fast" or "partial"
        """
        if failure_policy not in FAILURE_POLICIES:
            raise ValueError(
                f"Unknown failure policy '{failure_policy}', "
                f"expected one of {FAILURE_POLICIES}"
            )

        self._engine = engine
        self._sink = sink
        self.max_concurrency = max(1, max_concurrency)
        self.queue_depth = max(1, queue_depth)
        self.video_id = video_id
        self.jpeg_quality = jpeg_quality
        self.job_timeout = job_timeout
        self.max_retries = max(0, max_retries)
        self.retry_backoff = max(0.0, retry_backoff)
        self.failure_policy = failure_policy

        self._queue: JobQueue[Candidate] = JobQueue(maxsize=self.queue_depth)
        self._workers: List[asyncio.Task] = []
        self._started: bool = False

        self._records: List[FrameRecord] = []
        self._failures: List[FailedFrame] = []
        self._persistence_failures: List[FailedFrame] = []
        self._first_error: Optional[PipelineError] = None

        self.metrics = DispatcherMetrics()

    @property
    def fail_fast(self) -> bool:
        return self.failure_policy == FAIL_FAST

    @property
    def in_flight(self) -> int:
        """Engine calls currently awaiting a response."""
        return self.metrics.in_flight

    @property
    def queue(self) -> JobQueue:
        return self._queue

    async def start(self) -> None:
        """Start the worker pool."""
        if self._started:
            return

        self._workers = [
            asyncio.create_task(self._worker(index), name=f"annotation_worker_{index}")
            for index in range(self.max_concurrency)
        ]
        self._started = True

        logger.info(
            f"AnnotationDispatcher started: permits={self.max_concurrency}, "
            f"queue_depth={self.queue_depth}, policy={self.failure_policy}"
        )

    async def submit(self, candidate: Candidate) -> None:
        """
        Queue one candidate, waiting while the queue is full.

        Raises:
            PipelineError: The first job failure, under fail_fast
            RuntimeError: If start() was not called
        """
        if not self._started:
            raise RuntimeError("AnnotationDispatcher.submit() called before start()")

        if self._first_error is not None:
            raise self._first_error

        await self._queue.put(candidate)
        self.metrics.jobs_submitted += 1

    async def join(self) -> DispatchOutcome:
        """
        Wait for every submitted job to finish.

        Returns:
            DispatchOutcome with records in completion order

        Raises:
            PipelineError: The first job failure, under fail_fast
        """
        if not self._started:
            await self.start()

        await self._queue.close(consumers=len(self._workers))
        await asyncio.gather(*self._workers)

        logger.info(
            f"Dispatch finished: submitted={self.metrics.jobs_submitted}, "
            f"succeeded={self.metrics.jobs_succeeded}, "
            f"failed={self.metrics.jobs_failed}, "
            f"peak_in_flight={self.metrics.peak_in_flight}"
        )

        if self._first_error is not None:
            raise self._first_error

        return DispatchOutcome(
            dispatched=self.metrics.jobs_submitted,
            records=list(self._records),
            failures=list(self._failures),
            persistence_failures=list(self._persistence_failures),
        )

    async def cancel(self) -> None:
        """
        Stop all workers and drop queued jobs.

        In-flight engine calls are abandoned; permits are released with
        their workers.
        """
        for task in self._workers:
            task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)

        dropped = self._queue.clear()
        logger.warning(
            f"AnnotationDispatcher cancelled: dropped {dropped} queued jobs"
        )

    # =========================================================================
    # Workers
    # =========================================================================

    async def _worker(self, index: int) -> None:
        """Process queued candidates until the end-of-work sentinel."""
        while True:
            candidate = await self._queue.get()
            try:
                if candidate is None:
                    return

                if self._first_error is not None:
                    self.metrics.jobs_skipped += 1
                    continue

                try:
                    record = await self._run_job(candidate)
                except PipelineError as e:
                    self._on_failure(candidate, e)
                except Exception as e:
                    logger.exception(
                        f"Unexpected job error (frame={candidate.frame_id})"
                    )
                    self._on_failure(
                        candidate,
                        AnnotationError(f"unexpected job error: {e}"),
                    )
                else:
                    self._records.append(record)
                    self.metrics.jobs_succeeded += 1
            finally:
                self._queue.task_done()

    async def _run_job(self, candidate: Candidate) -> FrameRecord:
        """Encode, persist and describe one candidate."""
        image_bytes = await asyncio.to_thread(
            encode_jpeg,
            candidate.pixels,
            candidate.pixel_format,
            self.jpeg_quality,
        )
        job = Job(
            frame_id=candidate.frame_id,
            timestamp=candidate.timestamp,
            image_bytes=image_bytes,
        )

        store_task: Optional[asyncio.Task] = None
        if self._sink is not None:
            store_task = asyncio.create_task(self._persist(job))

        try:
            description = await self._describe(job)
        except asyncio.CancelledError:
            if store_task is not None:
                store_task.cancel()
            raise
        except PipelineError:
            if store_task is not None:
                await store_task
            raise

        path = await store_task if store_task is not None else None

        return FrameRecord(
            frame_id=job.frame_id,
            timestamp=job.timestamp,
            description=description,
            path=path,
        )

    async def _describe(self, job: Job) -> str:
        """Call the engine with timeout and exponential-backoff retries."""
        last_error: Optional[AnnotationError] = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = self.retry_backoff * (2 ** (attempt - 1))
                self.metrics.retries += 1
                logger.warning(
                    f"Retrying frame {job.frame_id} in {delay:.2f}s "
                    f"(attempt {attempt + 1}/{self.max_retries + 1}): {last_error}"
                )
                await asyncio.sleep(delay)

            self.metrics.in_flight += 1
            self.metrics.peak_in_flight = max(
                self.metrics.peak_in_flight, self.metrics.in_flight
            )
            try:
                return await asyncio.wait_for(
                    self._engine.describe(job.image_bytes, job.mime_type),
                    timeout=self.job_timeout,
                )
            except asyncio.TimeoutError:
                self.metrics.timeouts += 1
                last_error = AnnotationError(
                    f"description timed out after {self.job_timeout}s"
                )
            except AnnotationError as e:
                last_error = e
            except Exception as e:
                last_error = AnnotationError(f"description failed: {e}")
            finally:
                self.metrics.in_flight -= 1

        raise AnnotationError(
            f"frame {job.frame_id} at {job.timestamp:.2f}s: {last_error.message}"
        )

    async def _persist(self, job: Job) -> Optional[str]:
        """Store encoded bytes; failures are recorded, not raised."""
        key = frame_key(self.video_id, job.frame_id)
        try:
            reference = await self._sink.store(key, job.image_bytes)
        except PersistenceError as e:
            error = e.message
        except Exception as e:
            error = f"unexpected persistence error: {e}"
        else:
            self.metrics.persisted += 1
            return reference

        self.metrics.persistence_errors += 1
        logger.error(f"Persistence failed (frame={job.frame_id}): {error}")
        self._persistence_failures.append(
            FailedFrame(
                frame_id=job.frame_id,
                timestamp=job.timestamp,
                stage=PersistenceError.stage,
                error=error,
            )
        )
        return None

    def _on_failure(self, candidate: Candidate, error: PipelineError) -> None:
        """Apply the failure policy to one failed job."""
        self.metrics.jobs_failed += 1
        logger.error(
            f"Job failed (frame={candidate.frame_id}, stage={error.stage}): "
            f"{error.message}"
        )

        if self.fail_fast:
            if self._first_error is None:
                self._first_error = error
            return

        self._failures.append(
            FailedFrame(
                frame_id=candidate.frame_id,
                timestamp=candidate.timestamp,
                stage=error.stage,
                error=error.message,
            )
        )
