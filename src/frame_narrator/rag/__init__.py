"""
Retrieval Module
================

Vector index over frame descriptions for question answering.

Components:
    - TextEmbedder: Protocol; MockTextEmbedder, GeminiTextEmbedder
    - VectorStore: Protocol; InMemoryVectorStore, JsonFileVectorStore
    - FrameIndex: ingest / query / answer / overview per video namespace

Processing never depends on this module; the HTTP layer indexes a
video after /process-video succeeds.
"""

from frame_narrator.rag.embedder import (
    DOCUMENT_TASK,
    QUERY_TASK,
    GeminiTextEmbedder,
    MockTextEmbedder,
    TextEmbedder,
)
from frame_narrator.rag.index import (
    Answer,
    FrameIndex,
    IngestResult,
    Overview,
    namespace_for,
)
from frame_narrator.rag.store import (
    InMemoryVectorStore,
    JsonFileVectorStore,
    Match,
    VectorEntry,
    VectorStore,
)

__all__ = [
    # Embedders
    "TextEmbedder",
    "MockTextEmbedder",
    "GeminiTextEmbedder",
    "DOCUMENT_TASK",
    "QUERY_TASK",
    # Stores
    "VectorStore",
    "VectorEntry",
    "Match",
    "InMemoryVectorStore",
    "JsonFileVectorStore",
    # Index
    "FrameIndex",
    "IngestResult",
    "Answer",
    "Overview",
    "namespace_for",
]
