"""
Text Embedders
==============

Turn frame descriptions and questions into vectors for retrieval.

This module provides:
    - TextEmbedder: Protocol for async text embedding
    - MockTextEmbedder: Hashed bag-of-words vectors, no network
    - GeminiTextEmbedder: gemini-embedding-001 through google-genai

Task types follow the Gemini embedding API: stored descriptions are
embedded as RETRIEVAL_DOCUMENT, questions as RETRIEVAL_QUERY.
"""

import asyncio
import hashlib
import logging
import re
from typing import List, Optional, Protocol

import numpy as np

from frame_narrator.annotation.gemini_engine import create_client, resolve_api_key
from frame_narrator.errors import AnnotationError, RetrievalError


logger = logging.getLogger(__name__)


DOCUMENT_TASK = "RETRIEVAL_DOCUMENT"
QUERY_TASK = "RETRIEVAL_QUERY"

DEFAULT_EMBEDDING_MODEL = "gemini-embedding-001"
DEFAULT_EMBEDDING_DIMENSION = 3072

# Texts per embed_content request
EMBED_BATCH_SIZE = 100

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


class TextEmbedder(Protocol):
    """
    Protocol for embedding backends.

    Implemented by:
        - MockTextEmbedder (tests, dry runs)
        - GeminiTextEmbedder (google-genai)
    """

    dimension: int

    async def embed(self, texts: List[str], task_type: str) -> List[List[float]]:
        """
        Embed texts.

        Args:
            texts: Non-empty list of texts
            task_type: DOCUMENT_TASK or QUERY_TASK

        Returns:
            One vector per text, in input order

        Raises:
            RetrievalError: If the backend fails
        """
        ...


class MockTextEmbedder:
    """
    Deterministic bag-of-words embedder.

    Every lowercase alphanumeric token is hashed into one of `dimension`
    buckets and the counts are L2-normalized, so texts sharing words
    get a high cosine similarity.
    """

    def __init__(self, dimension: int = 64) -> None:
        if dimension < 1:
            raise ValueError(f"dimension must be >= 1, got {dimension}")
        self.dimension = dimension
        self.call_count: int = 0

    async def embed(self, texts: List[str], task_type: str) -> List[List[float]]:
        if not texts:
            raise RetrievalError("No text provided for embedding")
        self.call_count += 1
        return [self._vector(text) for text in texts]

    def _vector(self, text: str) -> List[float]:
        values = np.zeros(self.dimension, dtype=np.float64)
        for token in _TOKEN_PATTERN.findall((text or "").lower()):
            digest = hashlib.sha1(token.encode("utf-8")).digest()
            values[int.from_bytes(digest[:4], "big") % self.dimension] += 1.0

        norm = float(np.linalg.norm(values))
        if norm > 0.0:
            values /= norm
        return values.tolist()

    def get_metrics(self) -> dict:
        return {"model": "mock", "call_count": self.call_count}


class GeminiTextEmbedder:
    """
    Embedder backed by the Gemini embedding model.

    Texts are sent in batches of EMBED_BATCH_SIZE; the blocking SDK call
    runs in a worker thread.

    Attributes:
        model: Embedding model id
        dimension: Requested output dimensionality (768, 1536 or 3072)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_EMBEDDING_MODEL,
        dimension: int = DEFAULT_EMBEDDING_DIMENSION,
    ) -> None:
        """
        Initialize Gemini embedder.

        Raises:
            RetrievalError: If no API key is available
            ImportError: If google-genai is not installed
        """
        self.model = model
        self.dimension = dimension
        try:
            self._client = create_client(resolve_api_key(api_key))
        except AnnotationError as e:
            raise RetrievalError(e.message) from e
        self._call_count: int = 0
        self._error_count: int = 0

        logger.info(f"GeminiTextEmbedder initialized: model={model}, dimension={dimension}")

    async def embed(self, texts: List[str], task_type: str) -> List[List[float]]:
        if not texts:
            raise RetrievalError("No text provided for embedding")

        vectors: List[List[float]] = []
        for start in range(0, len(texts), EMBED_BATCH_SIZE):
            batch = texts[start:start + EMBED_BATCH_SIZE]
            vectors.extend(await self._embed_batch(batch, task_type))
        return vectors

    async def _embed_batch(self, texts: List[str], task_type: str) -> List[List[float]]:
        from google.genai import types

        self._call_count += 1
        try:
            response = await asyncio.to_thread(
                self._client.models.embed_content,
                model=self.model,
                contents=[text or "" for text in texts],
                config=types.EmbedContentConfig(
                    task_type=task_type,
                    output_dimensionality=self.dimension,
                ),
            )
        except Exception as e:
            self._error_count += 1
            raise RetrievalError(f"Gemini embed failed: {e}") from e

        embeddings = getattr(response, "embeddings", None) or []
        if len(embeddings) != len(texts):
            self._error_count += 1
            raise RetrievalError(
                f"Gemini returned {len(embeddings)} embeddings for {len(texts)} texts"
            )

        vectors = []
        for embedding in embeddings:
            values = list(embedding.values or [])
            if not values:
                raise RetrievalError("Gemini did not return an embedding vector")
            if len(values) != self.dimension:
                logger.warning(
                    f"Embedding dimension mismatch: expected {self.dimension}, "
                    f"received {len(values)}"
                )
            vectors.append(values)
        return vectors

    def get_metrics(self) -> dict:
        """Get embedder metrics for observability."""
        return {
            "model": self.model,
            "call_count": self._call_count,
            "error_count": self._error_count,
        }
