"""
API Schemas
===========

Request/response models for the HTTP service.

Input Contract (POST /process-video):
    {"video_path": "data/1761542252139_crashDemo.mp4"}

Output Contract:
    {"status": "ok", "records": [...], "summary": "...", "failures": [...],
     "indexing": {"status": "ok", "namespace": "video-...", "upserted": 7}}
    {"status": "error", "message": "Failed to process video: ..."}
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from frame_narrator.models.records import FailedFrame, FrameRecord


class ProcessVideoRequest(BaseModel):
    """Request body for POST /process-video."""

    video_path: str = Field(
        ...,
        min_length=1,
        description="Path of a video previously stored by /upload",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"video_path": "data/1761542252139_crashDemo.mp4"},
        }
    )


class IndexingStatus(BaseModel):
    """Outcome of indexing a processed video for retrieval."""

    status: str = Field(..., description="'ok', 'skipped' or 'error'")
    namespace: Optional[str] = None
    upserted: int = 0
    message: Optional[str] = None


class ProcessVideoResponse(BaseModel):
    """Successful processing response."""

    status: str = "ok"
    video_id: str
    records: List[FrameRecord]
    summary: Optional[str] = None
    failures: List[FailedFrame] = Field(default_factory=list)
    persistence_failures: List[FailedFrame] = Field(default_factory=list)
    indexing: Optional[IndexingStatus] = None


class UploadResponse(BaseModel):
    """Successful upload response."""

    status: str = "ok"
    message: str = "File uploaded successfully"
    video_path: str


class ErrorResponse(BaseModel):
    """Structured failure body."""

    status: str = "error"
    message: str
    stage: Optional[str] = None


class IngestRequest(BaseModel):
    """Request body for POST /rag/ingest."""

    video_id: Optional[str] = Field(
        default=None,
        description="Video identifier; None uses the shared 'frames' namespace",
    )
    records: List[FrameRecord] = Field(..., min_length=1)
    summary: Optional[str] = None
    video_filename: Optional[str] = None


class IngestResponse(BaseModel):
    """Successful ingest response."""

    status: str = "ok"
    namespace: str
    upserted: int
    included_summary: bool


class QueryRequest(BaseModel):
    """Request body for POST /rag/query."""

    video_id: Optional[str] = None
    question: str = Field(..., min_length=1)
    top_k: Optional[int] = Field(default=None, ge=1)
    answer: bool = Field(
        default=True,
        description="Generate an answer; False returns the matches only",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "video_id": "1761542252139_crashDemo",
                "question": "When does the car run the red light?",
                "top_k": 10,
            },
        }
    )


class MatchModel(BaseModel):
    """One retrieved vector."""

    id: str
    score: float
    metadata: Dict[str, Any]


class QueryResponse(BaseModel):
    """Retrieval response; answer is set when one was requested."""

    status: str = "ok"
    namespace: str
    answer: Optional[str] = None
    matches: List[MatchModel] = Field(default_factory=list)


class NamespaceInfo(BaseModel):
    """One indexed video."""

    namespace: str
    vector_count: int
    video_id: Optional[str] = None
    video_filename: Optional[str] = None
    frame_count: Optional[int] = None


class NamespaceListResponse(BaseModel):
    status: str = "ok"
    namespaces: List[NamespaceInfo]


class OverviewResponse(BaseModel):
    """Stored summary and frames of one indexed video."""

    status: str = "ok"
    namespace: str
    summary: Optional[str] = None
    frames: List[Dict[str, Any]]
