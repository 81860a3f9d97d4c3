"""
Record Models
=============

Pydantic models for pipeline results.

JSON field names follow the original service contract:
    {
        "frame_id": 3,
        "timestamp": 0.75,
        "description": "A man crosses the street ...",
        "path": "data/1761542252139_crashDemo_frame_003.jpg"
    }
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FrameRecord(BaseModel):
    """
    Final description of one selected frame.

    Immutable once produced. The records of a run are sorted ascending
    by timestamp, ties broken by frame_id.

    Attributes:
        frame_id: Selection id (0 for the first frame)
        timestamp: Sampling tick time in seconds
        description: Text returned by the description capability
        path: Storage reference of the encoded frame, None if not stored
    """

    model_config = ConfigDict(frozen=True)

    frame_id: int = Field(..., ge=0, description="Selection id of the frame")
    timestamp: float = Field(..., description="Tick time in seconds")
    description: str = Field(..., description="Natural-language description")
    path: Optional[str] = Field(
        default=None,
        description="Storage reference of the encoded frame",
    )


class FailedFrame(BaseModel):
    """
    A frame whose job failed at some stage.

    Used for annotation failures under the partial-success policy and for
    per-item persistence failures.
    """

    model_config = ConfigDict(frozen=True)

    frame_id: int = Field(..., ge=0)
    timestamp: float
    stage: str = Field(..., description="Stage that failed (encode, annotation, persistence)")
    error: str = Field(..., description="Human-readable cause")


class ProcessResult(BaseModel):
    """
    Complete result of processing one video.

    Attributes:
        video_id: Identifier derived from the video file name
        records: Successful FrameRecords sorted by timestamp
        summary: Consolidated description, None when disabled
        failures: Frames whose annotation failed (partial policy only)
        persistence_failures: Frames described but not stored
        stats: Run analytics (counters and durations)
    """

    video_id: str
    records: List[FrameRecord] = Field(default_factory=list)
    summary: Optional[str] = None
    failures: List[FailedFrame] = Field(default_factory=list)
    persistence_failures: List[FailedFrame] = Field(default_factory=list)
    stats: dict = Field(default_factory=dict)

    @property
    def failed_ids(self) -> List[int]:
        """Ids of frames whose annotation failed."""
        return [failure.frame_id for failure in self.failures]
