"""
Pipeline Errors
===============

Structured error taxonomy for the frame narration pipeline.

Every error carries a human-readable message and the name of the pipeline
stage that raised it, so the HTTP layer and the CLI can report a cause
string without inspecting exception types.

Propagation:
    - DecodeError, FeatureError, EncodeError, AnnotationError are fatal
      and propagate to the caller of VideoPipelineGraph.process()
    - PersistenceError is recorded per frame and never fails a run
    - SummaryError is caught by the Summarizer and turned into a
      fallback string
    - RetrievalError belongs to the frame index, which runs after a
      video is processed and never fails the processing itself
"""


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    stage: str = "pipeline"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DecodeError(PipelineError):
    """No video stream, codec init failure, or undecodable first frame."""

    stage = "decode"


class FeatureError(PipelineError):
    """Luminance plane has malformed geometry."""

    stage = "feature"


class EncodeError(PipelineError):
    """Image compression failed for a selected frame."""

    stage = "encode"


class AnnotationError(PipelineError):
    """Description capability failed (after retries) or timed out."""

    stage = "annotation"


class PersistenceError(PipelineError):
    """Writing an encoded frame to the persistence sink failed."""

    stage = "persistence"


class SummaryError(PipelineError):
    """Summarization capability failed."""

    stage = "summary"


class RetrievalError(PipelineError):
    """Embedding, vector store or question answering failed."""

    stage = "retrieval"
