"""
Vector Store
============

Namespaced storage of embedded frame descriptions with cosine search.

This module provides:
    - VectorEntry / Match: Stored vector and search hit
    - VectorStore: Protocol for async vector backends
    - InMemoryVectorStore: Dict of numpy vectors per namespace
    - JsonFileVectorStore: InMemoryVectorStore persisted as one JSON
      file per namespace

Design Rules:
    - One namespace per video; ids are unique within a namespace
    - Upserting an existing id replaces it
    - Similarity is cosine; zero-norm vectors score 0.0
    - Metadata filters are exact matches on metadata keys
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

import numpy as np

from frame_narrator.errors import RetrievalError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VectorEntry:
    """One stored vector with its metadata."""

    id: str
    values: Sequence[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Match:
    """One search hit."""

    id: str
    score: float
    metadata: Dict[str, Any]

    def to_dict(self) -> dict:
        return {"id": self.id, "score": self.score, "metadata": dict(self.metadata)}


class VectorStore(Protocol):
    """
    Protocol for vector backends.

    Implemented by:
        - InMemoryVectorStore (tests, single process)
        - JsonFileVectorStore (survives restarts)
    """

    async def upsert(self, namespace: str, entries: List[VectorEntry]) -> int:
        """Insert or replace entries; returns the number written."""
        ...

    async def query(
        self,
        namespace: str,
        vector: Sequence[float],
        top_k: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Match]:
        """Return up to top_k entries by descending cosine similarity."""
        ...

    async def fetch(self, namespace: str, ids: List[str]) -> Dict[str, VectorEntry]:
        """Return the entries that exist among ids."""
        ...

    async def list_entries(
        self,
        namespace: str,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[VectorEntry]:
        """Return every entry of a namespace matching the filter."""
        ...

    async def namespaces(self) -> Dict[str, int]:
        """Return vector counts per namespace."""
        ...

    async def delete_namespace(self, namespace: str) -> bool:
        """Drop a namespace; returns False if it did not exist."""
        ...


def _matches(metadata: Dict[str, Any], where: Optional[Dict[str, Any]]) -> bool:
    if not where:
        return True
    return all(metadata.get(key) == value for key, value in where.items())


class InMemoryVectorStore:
    """
    Vector store held in process memory.

    Search is a brute-force cosine scan over the namespace, which is
    plenty for the few hundred frames a video yields.
    """

    def __init__(self) -> None:
        self._namespaces: Dict[str, Dict[str, VectorEntry]] = {}

    async def upsert(self, namespace: str, entries: List[VectorEntry]) -> int:
        bucket = self._namespaces.setdefault(namespace, {})
        for entry in entries:
            bucket[entry.id] = entry
        logger.debug(f"Upserted {len(entries)} vectors into {namespace}")
        return len(entries)

    async def query(
        self,
        namespace: str,
        vector: Sequence[float],
        top_k: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Match]:
        if top_k < 1:
            return []

        candidates = [
            entry
            for entry in self._namespaces.get(namespace, {}).values()
            if _matches(entry.metadata, where)
        ]
        if not candidates:
            return []

        query = np.asarray(vector, dtype=np.float64)
        scored = []
        for entry in candidates:
            values = np.asarray(entry.values, dtype=np.float64)
            if values.shape != query.shape:
                raise RetrievalError(
                    f"Vector dimension mismatch in {namespace}: "
                    f"query has {query.size}, {entry.id} has {values.size}"
                )
            denominator = float(np.linalg.norm(values) * np.linalg.norm(query))
            score = float(np.dot(values, query)) / denominator if denominator > 0.0 else 0.0
            scored.append(Match(id=entry.id, score=score, metadata=entry.metadata))

        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:top_k]

    async def fetch(self, namespace: str, ids: List[str]) -> Dict[str, VectorEntry]:
        bucket = self._namespaces.get(namespace, {})
        return {entry_id: bucket[entry_id] for entry_id in ids if entry_id in bucket}

    async def list_entries(
        self,
        namespace: str,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[VectorEntry]:
        return [
            entry
            for entry in self._namespaces.get(namespace, {}).values()
            if _matches(entry.metadata, where)
        ]

    async def namespaces(self) -> Dict[str, int]:
        return {name: len(bucket) for name, bucket in sorted(self._namespaces.items())}

    async def delete_namespace(self, namespace: str) -> bool:
        return self._namespaces.pop(namespace, None) is not None


class JsonFileVectorStore(InMemoryVectorStore):
    """
    In-memory store mirrored to `<directory>/<namespace>.json`.

    Existing files are loaded on construction; every upsert rewrites the
    namespace file in a worker thread.

    Attributes:
        directory: Where namespace files live
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        super().__init__()
        self.directory = Path(directory)
        self._load()

    def _path(self, namespace: str) -> Path:
        return self.directory / f"{namespace}.json"

    def _load(self) -> None:
        if not self.directory.is_dir():
            return

        for path in sorted(self.directory.glob("*.json")):
            try:
                payload = json.loads(path.read_text())
                bucket = {
                    item["id"]: VectorEntry(
                        id=item["id"],
                        values=item["values"],
                        metadata=item.get("metadata", {}),
                    )
                    for item in payload
                }
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable index file {path}: {e}")
                continue
            self._namespaces[path.stem] = bucket

        logger.info(f"Loaded {len(self._namespaces)} namespaces from {self.directory}")

    def _write(self, namespace: str, entries: List[VectorEntry]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = [
            {"id": e.id, "values": list(e.values), "metadata": e.metadata}
            for e in entries
        ]
        self._path(namespace).write_text(json.dumps(payload))

    async def upsert(self, namespace: str, entries: List[VectorEntry]) -> int:
        count = await super().upsert(namespace, entries)
        snapshot = list(self._namespaces[namespace].values())
        try:
            await asyncio.to_thread(self._write, namespace, snapshot)
        except OSError as e:
            raise RetrievalError(f"failed to write index {self._path(namespace)}: {e}") from e
        return count

    async def delete_namespace(self, namespace: str) -> bool:
        existed = await super().delete_namespace(namespace)
        try:
            await asyncio.to_thread(self._path(namespace).unlink, missing_ok=True)
        except OSError as e:
            raise RetrievalError(f"failed to delete index {self._path(namespace)}: {e}") from e
        return existed
