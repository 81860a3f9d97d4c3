"""
Pipeline Module
===============

LangGraph orchestration of decode, selection, annotation and summary.

Components:
    - VideoPipelineGraph: process(video) -> ProcessResult
    - build_pipeline: Construct a pipeline from Settings
"""

from frame_narrator.pipeline.graph import VideoPipelineGraph

__all__ = ["VideoPipelineGraph"]
