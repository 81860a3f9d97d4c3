"""
Selection Module
================

Streaming selection of perceptually distinct frames.

Components:
    - Candidate: Sampled frame awaiting a decision
    - EmptyWindow / HoldingWindow: Tagged comparison window
    - StreamingSelector: Sampling clock + pairwise most-different rule
"""

from frame_narrator.selection.candidate import (
    EMPTY_WINDOW,
    Candidate,
    EmptyWindow,
    HoldingWindow,
    Window,
)
from frame_narrator.selection.selector import (
    SelectionDecision,
    SelectorMetrics,
    SelectorValidationError,
    StreamingSelector,
    compare_candidates,
)

__all__ = [
    "EMPTY_WINDOW",
    "Candidate",
    "EmptyWindow",
    "HoldingWindow",
    "Window",
    "SelectionDecision",
    "SelectorMetrics",
    "SelectorValidationError",
    "StreamingSelector",
    "compare_candidates",
]
