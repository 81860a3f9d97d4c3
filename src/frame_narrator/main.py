"""
Frame Narrator Main Application
===============================

FastAPI entry point for the video narration service.

Flow:
    1. Client uploads a video (POST /upload) and gets its stored path
    2. Client asks for processing (POST /process-video)
    3. The pipeline selects distinct frames, describes them concurrently,
       stores the encoded frames, and summarizes the video
    4. The records are indexed for retrieval (rag.auto_ingest)
    5. Client shows thumbnails served from GET /data/{filename} and asks
       questions through POST /rag/query

Endpoints:
    GET  /                  - Service information
    GET  /health            - Liveness check
    GET  /metrics           - Processing counters and last-run analytics
    POST /upload            - Store an uploaded video
    POST /process-video     - Process a stored video
    GET  /data/{filename}   - Serve stored frames and uploads
    POST /rag/ingest        - Index frame records of a video
    POST /rag/query         - Retrieve frames and answer a question
    GET  /rag/namespaces    - List indexed videos
    GET  /rag/overview      - Stored summary and frames of a video
    DELETE /rag/videos/{id} - Drop a video from the index
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from frame_narrator import __version__
from frame_narrator.config import settings
from frame_narrator.errors import PipelineError
from frame_narrator.models.api import (
    ErrorResponse,
    IndexingStatus,
    IngestRequest,
    IngestResponse,
    MatchModel,
    NamespaceInfo,
    NamespaceListResponse,
    OverviewResponse,
    ProcessVideoRequest,
    ProcessVideoResponse,
    QueryRequest,
    QueryResponse,
    UploadResponse,
)
from frame_narrator.models.records import ProcessResult
from frame_narrator.pipeline.factory import build_frame_index, build_pipeline
from frame_narrator.pipeline.graph import VideoPipelineGraph
from frame_narrator.rag.index import FrameIndex, namespace_for
from frame_narrator.rag.store import Match


logger = logging.getLogger(__name__)


UPLOAD_CHUNK_BYTES = 1024 * 1024


# =============================================================================
# Global State
# =============================================================================

_startup_time: float = time.time()
_pipeline: Optional[VideoPipelineGraph] = None
_frame_index: Optional[FrameIndex] = None

# Counters
_uploads_count: int = 0
_upload_errors: int = 0


# =============================================================================
# Getters
# =============================================================================

def get_pipeline() -> VideoPipelineGraph:
    """
    Return the shared pipeline, building it on first use.

    Raises:
        PipelineError: If a configured backend cannot be created
    """
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline(settings)
    return _pipeline


def get_frame_index() -> Optional[FrameIndex]:
    """
    Return the shared frame index, or None when retrieval is disabled.

    Raises:
        PipelineError: If the embedder or answer engine cannot be created
    """
    global _frame_index
    if _frame_index is None and settings.rag.enabled:
        _frame_index = build_frame_index(settings)
    return _frame_index


def get_storage_dir() -> Path:
    return Path(settings.storage.directory)


def _error(message: str, status_code: int, stage: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(message=message, stage=stage)
    return JSONResponse(body.model_dump(exclude_none=True), status_code=status_code)


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    global _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")
    logger.info(
        f"Backend: {settings.annotation.backend}, "
        f"max_concurrency={settings.annotation.max_concurrency}, "
        f"storage={settings.storage.directory}"
    )

    get_storage_dir().mkdir(parents=True, exist_ok=True)

    yield

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="FrameNarrator",
    description="Adaptive frame selection and concurrent frame description for videos",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Structured body for pipeline errors a route does not handle itself."""
    logger.error(f"{request.url.path}: {exc.stage} error: {exc.message}")
    return _error(exc.message, status_code=500, stage=exc.stage)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "FrameNarrator",
        "version": settings.service.version,
        "name": settings.service.name,
        "status": "running",
        "backend": settings.annotation.backend,
        "sample_interval_seconds": settings.sampling.interval_seconds,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness check; always 200 while the process is alive."""
    return JSONResponse({"status": "ok", "message": "Server is running"})


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    pipeline_metrics = _pipeline.get_metrics() if _pipeline is not None else {}
    rag_metrics = _frame_index.get_metrics() if _frame_index is not None else None

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "backend": settings.annotation.backend,
        "uploads": _uploads_count,
        "upload_errors": _upload_errors,
        **pipeline_metrics,
        "rag": rag_metrics,
    })


@app.post("/upload")
async def upload(file: Optional[UploadFile] = File(None)) -> JSONResponse:
    """
    Store an uploaded video as <storage>/<millis>_<filename>.

    Rejects missing files and files above the configured size limit.
    """
    global _uploads_count, _upload_errors

    if file is None or not file.filename:
        _upload_errors += 1
        return _error("No file uploaded", status_code=400)

    filename = Path(file.filename).name
    storage_dir = get_storage_dir()
    storage_dir.mkdir(parents=True, exist_ok=True)
    target = storage_dir / f"{int(time.time() * 1000)}_{filename}"

    limit = settings.storage.max_upload_mb * 1024 * 1024
    written = 0
    try:
        with open(target, "wb") as out:
            while chunk := await file.read(UPLOAD_CHUNK_BYTES):
                written += len(chunk)
                if written > limit:
                    break
                await asyncio.to_thread(out.write, chunk)
    except OSError as e:
        _upload_errors += 1
        logger.error(f"Upload failed: {e}")
        return _error(f"Failed to save file: {e}", status_code=500)
    finally:
        await file.close()

    if written > limit:
        target.unlink(missing_ok=True)
        _upload_errors += 1
        return _error(
            f"File exceeds the {settings.storage.max_upload_mb} MB upload limit",
            status_code=413,
        )

    _uploads_count += 1
    logger.info(f"Stored upload {target} ({written} bytes)")

    body = UploadResponse(video_path=target.as_posix())
    return JSONResponse(body.model_dump())


@app.post("/process-video")
async def process_video(
    request: ProcessVideoRequest,
    pipeline: VideoPipelineGraph = Depends(get_pipeline),
) -> JSONResponse:
    """Process a stored video and return ordered frame records."""
    video_path = Path(request.video_path)
    if not video_path.is_file():
        return _error(f"Video not found: {request.video_path}", status_code=404)

    try:
        result = await pipeline.process(video_path)
    except PipelineError as e:
        logger.error(f"Processing failed for {video_path}: {e.stage}: {e.message}")
        return _error(
            f"Failed to process video: {e.message}",
            status_code=500,
            stage=e.stage,
        )
    except Exception as e:
        logger.exception(f"Unexpected processing error for {video_path}")
        return _error(f"Failed to process video: {e}", status_code=500)

    indexing = await _index_result(result, video_filename=video_path.name)

    body = ProcessVideoResponse(
        video_id=result.video_id,
        records=result.records,
        summary=result.summary,
        failures=result.failures,
        persistence_failures=result.persistence_failures,
        indexing=indexing,
    )
    return JSONResponse(body.model_dump(mode="json"))


@app.get("/data/{filename}")
async def data_file(filename: str):
    """Serve a stored frame or upload."""
    storage_dir = get_storage_dir()
    path = storage_dir / filename

    if Path(filename).name != filename or not path.is_file():
        return _error(f"File not found: {filename}", status_code=404)

    return FileResponse(path)


# =============================================================================
# Retrieval Helpers
# =============================================================================

async def _index_result(result: ProcessResult, video_filename: str) -> IndexingStatus:
    """Index a processed video; failures are reported, never raised."""
    if not settings.rag.auto_ingest:
        return IndexingStatus(status="skipped", message="Automatic indexing is disabled")
    if not result.records:
        return IndexingStatus(status="skipped", message="No frames to index")

    try:
        index = get_frame_index()
        if index is None:
            return IndexingStatus(status="skipped", message="Retrieval is disabled")
        ingested = await index.ingest(
            result.video_id,
            result.records,
            summary=result.summary,
            video_filename=video_filename,
        )
    except PipelineError as e:
        logger.error(f"Indexing failed for {result.video_id}: {e.stage}: {e.message}")
        return IndexingStatus(status="error", message=f"Frames processed but indexing failed: {e.message}")
    except Exception as e:
        logger.exception(f"Unexpected indexing error for {result.video_id}")
        return IndexingStatus(status="error", message=f"Frames processed but indexing failed: {e}")

    return IndexingStatus(
        status="ok",
        namespace=ingested.namespace,
        upserted=ingested.upserted,
    )


def _match_models(matches: List[Match]) -> List[MatchModel]:
    return [MatchModel(**match.to_dict()) for match in matches]


def _retrieval_disabled() -> JSONResponse:
    return _error("Retrieval is disabled", status_code=503, stage="retrieval")


# =============================================================================
# Retrieval Endpoints
# =============================================================================

@app.post("/rag/ingest")
async def rag_ingest(
    request: IngestRequest,
    index: Optional[FrameIndex] = Depends(get_frame_index),
) -> JSONResponse:
    """Embed and store the records of one video."""
    if index is None:
        return _retrieval_disabled()

    try:
        ingested = await index.ingest(
            request.video_id,
            request.records,
            summary=request.summary,
            video_filename=request.video_filename,
        )
    except ValueError as e:
        return _error(str(e), status_code=400, stage="retrieval")

    body = IngestResponse(**ingested.to_dict())
    return JSONResponse(body.model_dump(mode="json"))


@app.post("/rag/query")
async def rag_query(
    request: QueryRequest,
    index: Optional[FrameIndex] = Depends(get_frame_index),
) -> JSONResponse:
    """Retrieve the nearest frames and, by default, answer the question."""
    if index is None:
        return _retrieval_disabled()

    namespace = namespace_for(request.video_id)
    try:
        if request.answer:
            answered = await index.answer(request.video_id, request.question, top_k=request.top_k)
            body = QueryResponse(
                namespace=namespace,
                answer=answered.answer,
                matches=_match_models(answered.citations),
            )
        else:
            matches = await index.query(request.video_id, request.question, top_k=request.top_k)
            body = QueryResponse(namespace=namespace, matches=_match_models(matches))
    except ValueError as e:
        return _error(str(e), status_code=400, stage="retrieval")

    return JSONResponse(body.model_dump(mode="json"))


@app.get("/rag/namespaces")
async def rag_namespaces(
    index: Optional[FrameIndex] = Depends(get_frame_index),
) -> JSONResponse:
    """List indexed videos."""
    if index is None:
        return _retrieval_disabled()

    listing = await index.namespaces()
    body = NamespaceListResponse(namespaces=[NamespaceInfo(**item) for item in listing])
    return JSONResponse(body.model_dump(mode="json"))


@app.get("/rag/overview")
async def rag_overview(
    video_id: Optional[str] = None,
    index: Optional[FrameIndex] = Depends(get_frame_index),
) -> JSONResponse:
    """Stored summary and frames of one video, oldest first."""
    if index is None:
        return _retrieval_disabled()

    overview = await index.overview(video_id)
    if overview.summary is None and not overview.frames:
        return _error(f"Nothing indexed for {overview.namespace}", status_code=404, stage="retrieval")

    body = OverviewResponse(
        namespace=overview.namespace,
        summary=overview.summary,
        frames=overview.frames,
    )
    return JSONResponse(body.model_dump(mode="json"))


@app.delete("/rag/videos/{video_id}")
async def rag_delete(
    video_id: str,
    index: Optional[FrameIndex] = Depends(get_frame_index),
) -> JSONResponse:
    """Drop a video's namespace from the index."""
    if index is None:
        return _retrieval_disabled()

    if not await index.delete(video_id):
        return _error(f"Nothing indexed for {namespace_for(video_id)}", status_code=404, stage="retrieval")

    return JSONResponse({"status": "ok", "deleted": namespace_for(video_id)})


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "frame_narrator.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
