"""
Observability Module
====================

Per-run analytics derived from component metrics.

Nothing here feeds back into selection or dispatch.
"""

from frame_narrator.observability.run_analytics import (
    RunAnalytics,
    compute_run_analytics,
)

__all__ = ["RunAnalytics", "compute_run_analytics"]
