"""
FrameNarrator
=============

Adaptive frame selection and bounded-concurrency frame description for
uploaded videos.

The pipeline decodes a video, keeps the frames that differ most from the
last kept frame, describes them with a vision-language model (several
calls in flight at once), stores the encoded frames, and summarizes the
whole video.

Components:
    - decode: OpenCV video decoding and JPEG encoding
    - features: Luminance feature vectors and cosine similarity
    - selection: Streaming most-different frame selector
    - dispatch: Bounded worker pool and result ordering
    - annotation: Description and summary engines
    - storage: Frame persistence sinks
    - pipeline: LangGraph orchestration

Example:
    from frame_narrator.config import settings
    from frame_narrator.pipeline.factory import build_pipeline

    pipeline = build_pipeline(settings)
    result = await pipeline.process("data/clip.mp4")
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
