"""
Frame Index
===========

Question answering over the described frames of processed videos.

Flow:
    1. ingest(): embed each FrameRecord description (plus the video
       summary and a manifest) into the video's namespace
    2. query(): embed a question and return the nearest frames
    3. answer(): retrieve frames, order them by timestamp, and ask the
       text model one question over that timeline

Namespaces:
    "video-<sanitized video id>", or "frames" when no id is given.
    Entry ids are "<namespace>::<frame_id>", "<namespace>::summary" and
    "<namespace>::manifest".
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from frame_narrator.annotation.engine import SummaryEngine
from frame_narrator.dispatch.aggregator import order_records
from frame_narrator.errors import PipelineError, RetrievalError
from frame_narrator.models.records import FrameRecord
from frame_narrator.rag.embedder import DOCUMENT_TASK, QUERY_TASK, TextEmbedder
from frame_narrator.rag.store import Match, VectorEntry, VectorStore


logger = logging.getLogger(__name__)


DEFAULT_NAMESPACE = "frames"
NAMESPACE_PREFIX = "video-"
MAX_NAMESPACE_ID_LENGTH = 45

FRAME_KIND = "frame"
SUMMARY_KIND = "summary"
MANIFEST_KIND = "manifest"

NO_FRAMES_ANSWER = "No indexed frames match this video; process and index it first."

ANSWER_PROMPT = """You are a video analysis assistant. Answer the question about a video using the frames below, which are sorted by timestamp.

Instructions:
1. Read the frames as a timeline and connect them into one account of what happened
2. Use the timestamps to reason about order, cause and effect
3. Explain how events progress when they span several frames
4. Use ONLY the provided frames; do not invent details
5. Cite the 2-3 most relevant frames in square brackets, e.g. [frame 5 at 2.5s]
6. If the frames do not answer the question, say what is missing

Question: {question}

Frames (chronological):
{context}
"""

_UNSAFE = re.compile(r"[^a-z0-9-]+")
_DASHES = re.compile(r"-+")


def namespace_for(video_id: Optional[str]) -> str:
    """
    Namespace of a video.

    The id is lowercased, runs of other characters become "-", and the
    result is trimmed to MAX_NAMESPACE_ID_LENGTH characters.

    Example:
        namespace_for("1761542252139_crashDemo") -> "video-1761542252139-crashdemo"
    """
    if video_id is None or not str(video_id).strip():
        return DEFAULT_NAMESPACE

    safe = _DASHES.sub("-", _UNSAFE.sub("-", str(video_id).lower())).strip("-")
    safe = safe[:MAX_NAMESPACE_ID_LENGTH].strip("-")
    if not safe:
        return DEFAULT_NAMESPACE
    return f"{NAMESPACE_PREFIX}{safe}"


@dataclass(frozen=True)
class IngestResult:
    """Outcome of one ingest() call."""

    namespace: str
    upserted: int
    included_summary: bool

    def to_dict(self) -> dict:
        return {
            "namespace": self.namespace,
            "upserted": self.upserted,
            "included_summary": self.included_summary,
        }


@dataclass(frozen=True)
class Answer:
    """Generated answer with the frames it was based on, oldest first."""

    answer: str
    citations: List[Match] = field(default_factory=list)


@dataclass(frozen=True)
class Overview:
    """Stored summary and frames of one namespace, oldest first."""

    namespace: str
    summary: Optional[str]
    frames: List[Dict[str, Any]]


def _timestamp_of(metadata: Dict[str, Any]) -> float:
    value = metadata.get("timestamp")
    return float(value) if isinstance(value, (int, float)) else 0.0


def build_context(matches: List[Match]) -> str:
    """Render retrieved frames as numbered, timestamped blocks."""
    blocks = []
    for position, match in enumerate(matches, start=1):
        meta = match.metadata
        ts = meta.get("timestamp")
        ts_text = f"{ts:.1f}s" if isinstance(ts, (int, float)) else str(ts or "")
        path = f" ({meta['path']})" if meta.get("path") else ""
        blocks.append(
            f"#{position} [t={ts_text}] id={meta.get('frame_id', '?')}{path}\n"
            f"{meta.get('description', '')}"
        )
    return "\n\n".join(blocks)


class FrameIndex:
    """
    Retrieval over frame descriptions.

    Holds no per-video state of its own; everything lives in the
    VectorStore, so one instance serves every video.

    Attributes:
        embedder: Text embedding backend
        store: Vector backend
        answer_engine: Text model for answers (None disables answer())
        query_top_k: Default hits for query()
        answer_top_k: Default frames given to answer()
        max_top_k: Upper bound on any requested top_k
    """

    def __init__(
        self,
        embedder: TextEmbedder,
        store: VectorStore,
        answer_engine: Optional[SummaryEngine] = None,
        query_top_k: int = 3,
        answer_top_k: int = 10,
        max_top_k: int = 50,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.answer_engine = answer_engine
        self.query_top_k = query_top_k
        self.answer_top_k = answer_top_k
        self.max_top_k = max_top_k

        self.ingest_count: int = 0
        self.query_count: int = 0
        self.answer_count: int = 0
        self.vectors_upserted: int = 0

        logger.info(
            f"FrameIndex initialized: embedder={type(embedder).__name__}, "
            f"store={type(store).__name__}, "
            f"answers={'on' if answer_engine else 'off'}"
        )

    def _clamp(self, top_k: Optional[int], default: int) -> int:
        return max(1, min(top_k or default, self.max_top_k))

    async def ingest(
        self,
        video_id: Optional[str],
        records: List[FrameRecord],
        summary: Optional[str] = None,
        video_filename: Optional[str] = None,
    ) -> IngestResult:
        """
        Embed and store the records of one video.

        Args:
            video_id: Video identifier (namespace source)
            records: Described frames
            summary: Video summary, stored as its own vector when non-blank
            video_filename: Original upload name, kept in the manifest

        Returns:
            IngestResult

        Raises:
            ValueError: If records is empty
            RetrievalError: If embedding or storage fails
        """
        if not records:
            raise ValueError("No frames provided for ingestion")

        namespace = namespace_for(video_id)
        meta_video_id = str(video_id) if video_id else "1"
        ordered = order_records(records)

        texts = [record.description for record in ordered]
        include_summary = bool(summary and summary.strip())
        if include_summary:
            texts.append(summary)
        texts.append(f"manifest video {meta_video_id}")

        vectors = await self.embedder.embed(texts, DOCUMENT_TASK)
        if len(vectors) != len(texts):
            raise RetrievalError(
                f"Embedder returned {len(vectors)} vectors for {len(texts)} texts"
            )

        entries = [
            VectorEntry(
                id=f"{namespace}::{record.frame_id}",
                values=vector,
                metadata={
                    "kind": FRAME_KIND,
                    "video_id": meta_video_id,
                    "frame_id": record.frame_id,
                    "timestamp": record.timestamp,
                    "description": record.description,
                    "path": record.path,
                },
            )
            for record, vector in zip(ordered, vectors)
        ]

        extra = vectors[len(ordered):]
        if include_summary:
            entries.append(VectorEntry(
                id=f"{namespace}::summary",
                values=extra.pop(0),
                metadata={"kind": SUMMARY_KIND, "video_id": meta_video_id, "text": summary},
            ))

        manifest = {
            "kind": MANIFEST_KIND,
            "video_id": meta_video_id,
            "count": len(ordered),
            "first_timestamp": ordered[0].timestamp,
            "last_timestamp": ordered[-1].timestamp,
        }
        if video_filename:
            manifest["video_filename"] = video_filename
        entries.append(VectorEntry(id=f"{namespace}::manifest", values=extra[0], metadata=manifest))

        upserted = await self.store.upsert(namespace, entries)

        self.ingest_count += 1
        self.vectors_upserted += upserted
        logger.info(
            f"Indexed {len(ordered)} frames into {namespace} "
            f"({upserted} vectors, summary={'yes' if include_summary else 'no'})"
        )
        return IngestResult(namespace=namespace, upserted=upserted, included_summary=include_summary)

    async def query(
        self,
        video_id: Optional[str],
        question: str,
        top_k: Optional[int] = None,
    ) -> List[Match]:
        """
        Nearest frames to a question, best first.

        Raises:
            ValueError: If the question is blank
            RetrievalError: If embedding or search fails
        """
        if not question or not question.strip():
            raise ValueError("Question is required")

        namespace = namespace_for(video_id)
        [vector] = await self.embedder.embed([question], QUERY_TASK)
        matches = await self.store.query(
            namespace,
            vector,
            top_k=self._clamp(top_k, self.query_top_k),
            where={"kind": FRAME_KIND},
        )

        self.query_count += 1
        logger.debug(f"Query on {namespace} returned {len(matches)} frames")
        return matches

    async def answer(
        self,
        video_id: Optional[str],
        question: str,
        top_k: Optional[int] = None,
    ) -> Answer:
        """
        Answer a question from the video's nearest frames.

        The retrieved frames are re-ordered chronologically before they
        are shown to the text model, and returned in that order.

        Raises:
            ValueError: If the question is blank
            RetrievalError: If retrieval or generation fails, or no
                answer engine is configured
        """
        if self.answer_engine is None:
            raise RetrievalError("Question answering is not configured")

        matches = await self.query(
            video_id, question, top_k=self._clamp(top_k, self.answer_top_k)
        )
        if not matches:
            return Answer(answer=NO_FRAMES_ANSWER)

        timeline = sorted(matches, key=lambda m: _timestamp_of(m.metadata))
        prompt = ANSWER_PROMPT.format(question=question, context=build_context(timeline))

        try:
            text = await self.answer_engine.summarize(prompt)
        except PipelineError as e:
            raise RetrievalError(f"Failed to answer: {e.message}") from e
        except Exception as e:
            raise RetrievalError(f"Failed to answer: {e}") from e

        self.answer_count += 1
        return Answer(answer=text, citations=timeline)

    async def overview(self, video_id: Optional[str]) -> Overview:
        """Stored summary and all frames of a video, oldest first."""
        namespace = namespace_for(video_id)

        stored = await self.store.fetch(namespace, [f"{namespace}::summary"])
        summary_entry = stored.get(f"{namespace}::summary")
        summary = summary_entry.metadata.get("text") if summary_entry else None

        entries = await self.store.list_entries(namespace, where={"kind": FRAME_KIND})
        frames = sorted(
            (
                {
                    "id": entry.id,
                    "frame_id": entry.metadata.get("frame_id"),
                    "timestamp": entry.metadata.get("timestamp"),
                    "description": entry.metadata.get("description"),
                    "path": entry.metadata.get("path"),
                }
                for entry in entries
            ),
            key=lambda frame: (_timestamp_of(frame), frame["frame_id"] or 0),
        )
        return Overview(namespace=namespace, summary=summary, frames=frames)

    async def namespaces(self) -> List[Dict[str, Any]]:
        """Every namespace with its vector count and manifest details."""
        listing = []
        for namespace, count in (await self.store.namespaces()).items():
            manifests = await self.store.fetch(namespace, [f"{namespace}::manifest"])
            manifest = manifests.get(f"{namespace}::manifest")
            meta = manifest.metadata if manifest else {}
            listing.append({
                "namespace": namespace,
                "vector_count": count,
                "video_id": meta.get("video_id"),
                "video_filename": meta.get("video_filename"),
                "frame_count": meta.get("count"),
            })
        return listing

    async def delete(self, video_id: Optional[str]) -> bool:
        """Drop a video's namespace; returns False if it was not indexed."""
        namespace = namespace_for(video_id)
        deleted = await self.store.delete_namespace(namespace)
        logger.info(f"Deleted namespace {namespace}: {deleted}")
        return deleted

    def get_metrics(self) -> Dict[str, Any]:
        """Get index metrics for observability."""
        embedder_metrics = getattr(self.embedder, "get_metrics", None)
        return {
            "ingests": self.ingest_count,
            "queries": self.query_count,
            "answers": self.answer_count,
            "vectors_upserted": self.vectors_upserted,
            "embedder": embedder_metrics() if embedder_metrics is not None else None,
        }
