"""
Data Models
===========

Pydantic models for frame_narrator.

Models:
    Records:
        - FrameRecord: One described frame
        - FailedFrame: One frame that failed at some stage
        - ProcessResult: Complete result of one video

    API:
        - ProcessVideoRequest / ProcessVideoResponse
        - UploadResponse
        - ErrorResponse
        - IndexingStatus, IngestRequest / IngestResponse,
          QueryRequest / QueryResponse, NamespaceListResponse,
          OverviewResponse
"""

from frame_narrator.models.records import FailedFrame, FrameRecord, ProcessResult
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

__all__ = [
    # Records
    "FrameRecord",
    "FailedFrame",
    "ProcessResult",
    # API
    "ProcessVideoRequest",
    "ProcessVideoResponse",
    "UploadResponse",
    "ErrorResponse",
    "IndexingStatus",
    "IngestRequest",
    "IngestResponse",
    "MatchModel",
    "NamespaceInfo",
    "NamespaceListResponse",
    "OverviewResponse",
    "QueryRequest",
    "QueryResponse",
]
