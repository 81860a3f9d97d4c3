"""
Annotation Module
=================

External description and summarization capabilities.

This module provides a black-box abstraction over the inference
backends. The pipeline consumes ONLY description text, never backend
internals.

Components:
    - DescriptionEngine / SummaryEngine: Protocols
    - MockDescriptionEngine / MockSummaryEngine: Deterministic mocks
    - GeminiDescriptionEngine / GeminiSummaryEngine: google-genai (production)
    - VisionLabelEngine: Google Cloud Vision labels (alternative backend)
    - Summarizer: Transcript + one consolidated request

Cloud backends import their SDKs lazily, on construction.
"""

from frame_narrator.annotation.engine import (
    DescriptionEngine,
    MockDescriptionEngine,
    MockSummaryEngine,
    SummaryEngine,
)
from frame_narrator.annotation.gemini_engine import (
    GeminiDescriptionEngine,
    GeminiSummaryEngine,
    resolve_model_name,
)
from frame_narrator.annotation.vision_engine import VisionLabelEngine
from frame_narrator.annotation.summarizer import (
    EMPTY_SUMMARY,
    Summarizer,
    build_transcript,
)

__all__ = [
    "DescriptionEngine",
    "SummaryEngine",
    "MockDescriptionEngine",
    "MockSummaryEngine",
    "GeminiDescriptionEngine",
    "GeminiSummaryEngine",
    "resolve_model_name",
    "VisionLabelEngine",
    "EMPTY_SUMMARY",
    "Summarizer",
    "build_transcript",
]
