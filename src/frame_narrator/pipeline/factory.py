"""
Pipeline Factory
================

Builds engines, sinks, the pipeline and the frame index from Settings.
"""

import logging
from pathlib import Path
from typing import Optional

from frame_narrator.annotation.engine import (
    DescriptionEngine,
    MockDescriptionEngine,
    MockSummaryEngine,
    SummaryEngine,
)
from frame_narrator.config import Settings
from frame_narrator.pipeline.graph import VideoPipelineGraph
from frame_narrator.rag.embedder import MockTextEmbedder, TextEmbedder
from frame_narrator.rag.index import FrameIndex
from frame_narrator.rag.store import InMemoryVectorStore, JsonFileVectorStore, VectorStore
from frame_narrator.storage.sink import FileSystemSink, MemorySink, PersistenceSink


logger = logging.getLogger(__name__)


DESCRIPTION_BACKENDS = ("mock", "gemini", "vision")
SUMMARY_BACKENDS = ("mock", "gemini")
EMBEDDER_BACKENDS = ("mock", "gemini")
VECTOR_STORES = ("memory", "filesystem")


def create_description_engine(settings: Settings) -> DescriptionEngine:
    """
    Create the description engine based on configuration.

    Raises:
        ValueError: If the backend name is unknown
        AnnotationError: If a cloud backend is misconfigured
    """
    annotation = settings.annotation
    backend = annotation.backend.lower()

    if backend == "mock":
        logger.info("Using MockDescriptionEngine")
        return MockDescriptionEngine(fixed_text=annotation.mock.fixed_text)

    if backend == "gemini":
        from frame_narrator.annotation.gemini_engine import GeminiDescriptionEngine

        logger.info("Using GeminiDescriptionEngine")
        return GeminiDescriptionEngine(api_key=annotation.api_key, model=annotation.model)

    if backend == "vision":
        from frame_narrator.annotation.vision_engine import VisionLabelEngine

        logger.info("Using VisionLabelEngine")
        return VisionLabelEngine(
            credentials_path=annotation.vision.credentials_path,
            confidence_threshold=annotation.vision.confidence_threshold,
            max_labels=annotation.vision.max_labels,
        )

    raise ValueError(
        f"Unknown description backend '{annotation.backend}', "
        f"expected one of {DESCRIPTION_BACKENDS}"
    )


def create_summary_engine(settings: Settings) -> Optional[SummaryEngine]:
    """
    Create the summary engine, or None when summaries are disabled.

    The summary backend defaults to the description backend; the vision
    backend has no text model, so it summarizes with the mock.

    Raises:
        ValueError: If the backend name is unknown
    """
    if not settings.summary.enabled:
        return None

    backend = (settings.summary.backend or settings.annotation.backend).lower()

    if backend == "vision" and settings.summary.backend is None:
        logger.warning("Vision backend has no summary model; using MockSummaryEngine")
        backend = "mock"

    if backend == "mock":
        return MockSummaryEngine()

    if backend == "gemini":
        from frame_narrator.annotation.gemini_engine import GeminiSummaryEngine

        return GeminiSummaryEngine(
            api_key=settings.annotation.api_key,
            model=settings.annotation.model,
        )

    raise ValueError(
        f"Unknown summary backend '{backend}', expected one of {SUMMARY_BACKENDS}"
    )


def create_sink(settings: Settings) -> Optional[PersistenceSink]:
    """
    Create the frame sink.

    Raises:
        ValueError: If the storage backend is unknown
    """
    backend = settings.storage.backend.lower()
    if backend == "filesystem":
        return FileSystemSink(directory=settings.storage.directory)
    if backend == "memory":
        return MemorySink()
    if backend == "none":
        return None
    raise ValueError(f"Unknown storage backend '{settings.storage.backend}'")


def build_pipeline(settings: Settings) -> VideoPipelineGraph:
    """Build a VideoPipelineGraph from Settings."""
    annotation = settings.annotation
    sampling = settings.sampling

    return VideoPipelineGraph(
        description_engine=create_description_engine(settings),
        summary_engine=create_summary_engine(settings),
        sink=create_sink(settings),
        interval=sampling.interval_seconds,
        grid_size=sampling.grid_size,
        epsilon=sampling.epsilon,
        max_concurrency=annotation.max_concurrency,
        queue_depth=annotation.queue_depth,
        job_timeout=annotation.job_timeout_seconds,
        max_retries=annotation.max_retries,
        retry_backoff=annotation.retry_backoff_seconds,
        failure_policy=annotation.failure_policy,
        jpeg_quality=annotation.jpeg_quality,
        summary_timeout=settings.summary.timeout_seconds,
    )


def _retrieval_backend(settings: Settings) -> str:
    """Embedder backend; defaults to the description backend."""
    backend = (settings.rag.embedder or settings.annotation.backend).lower()
    if backend == "vision" and settings.rag.embedder is None:
        logger.warning("Vision backend has no text embeddings; using MockTextEmbedder")
        backend = "mock"
    return backend


def create_text_embedder(settings: Settings) -> TextEmbedder:
    """
    Create the text embedder for the frame index.

    Raises:
        ValueError: If the backend name is unknown
        RetrievalError: If the Gemini embedder is misconfigured
    """
    backend = _retrieval_backend(settings)

    if backend == "mock":
        return MockTextEmbedder()

    if backend == "gemini":
        from frame_narrator.rag.embedder import GeminiTextEmbedder

        return GeminiTextEmbedder(
            api_key=settings.annotation.api_key,
            model=settings.rag.embedding_model,
            dimension=settings.rag.embedding_dimension,
        )

    raise ValueError(
        f"Unknown embedder backend '{backend}', expected one of {EMBEDDER_BACKENDS}"
    )


def create_vector_store(settings: Settings) -> VectorStore:
    """
    Create the vector store.

    Raises:
        ValueError: If the store name is unknown
    """
    store = settings.rag.store.lower()
    if store == "memory":
        return InMemoryVectorStore()
    if store == "filesystem":
        directory = settings.rag.directory or Path(settings.storage.directory) / "index"
        return JsonFileVectorStore(directory)
    raise ValueError(
        f"Unknown vector store '{settings.rag.store}', expected one of {VECTOR_STORES}"
    )


def create_answer_engine(settings: Settings) -> SummaryEngine:
    """Text model that answers questions; follows the embedder backend."""
    backend = _retrieval_backend(settings)

    if backend == "gemini":
        from frame_narrator.annotation.gemini_engine import GeminiSummaryEngine

        return GeminiSummaryEngine(
            api_key=settings.annotation.api_key,
            model=settings.rag.answer_model or settings.annotation.model,
        )

    return MockSummaryEngine()


def build_frame_index(settings: Settings) -> Optional[FrameIndex]:
    """Build a FrameIndex from Settings, or None when retrieval is disabled."""
    if not settings.rag.enabled:
        return None

    rag = settings.rag
    return FrameIndex(
        embedder=create_text_embedder(settings),
        store=create_vector_store(settings),
        answer_engine=create_answer_engine(settings),
        query_top_k=rag.query_top_k,
        answer_top_k=rag.answer_top_k,
        max_top_k=rag.max_top_k,
    )
