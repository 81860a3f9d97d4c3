"""
Annotation Engines
==================

Clean abstraction over the external inference capabilities.

This module provides the DescriptionEngine and SummaryEngine protocols
and deterministic mock implementations that make no network calls.

Design Rules:
    - Engines take encoded bytes / plain text, never raw frames
    - Engines are async; blocking SDKs are moved to a thread by the
      implementation
    - Engines raise on failure; retry and policy live in the dispatcher
"""

import hashlib
import logging
from typing import Protocol


logger = logging.getLogger(__name__)


class DescriptionEngine(Protocol):
    """
    Protocol for description backends.

    All implementations must provide an async `describe` method that
    takes encoded image bytes and returns a natural-language description.

    Implemented by:
        - MockDescriptionEngine (tests, dry runs)
        - GeminiDescriptionEngine (google-genai)
        - VisionLabelEngine (Google Cloud Vision)
    """

    async def describe(self, image_bytes: bytes, mime_type: str) -> str:
        """
        Describe one image.

        Args:
            image_bytes: Encoded image (JPEG)
            mime_type: MIME type of image_bytes, e.g. "image/jpeg"

        Returns:
            Description text
        """
        ...


class SummaryEngine(Protocol):
    """
    Protocol for text-generation backends used by the Summarizer.
    """

    async def summarize(self, prompt: str) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: Full prompt text

        Returns:
            Generated text
        """
        ...


class MockDescriptionEngine:
    """
    Deterministic mock description engine.

    Returns the configured fixed text, or when none is given a short
    description derived from a hash of the image bytes, so identical
    frames always get identical descriptions.

    Attributes:
        fixed_text: Text to return for every image (optional)
        call_count: Number of describe() calls so far
    """

    def __init__(self, fixed_text: str = "") -> None:
        self.fixed_text = fixed_text
        self.call_count: int = 0

        logger.info(
            f"MockDescriptionEngine initialized: "
            f"fixed_text={'set' if fixed_text else 'hash-based'}"
        )

    async def describe(self, image_bytes: bytes, mime_type: str) -> str:
        self.call_count += 1

        if self.fixed_text:
            return self.fixed_text

        digest = hashlib.sha1(image_bytes).hexdigest()[:8]
        return f"Mock description of {mime_type} frame {digest} ({len(image_bytes)} bytes)"

    def get_metrics(self) -> dict:
        return {"model": "mock", "call_count": self.call_count}


class MockSummaryEngine:
    """
    Deterministic mock summary engine.

    Echoes the number of transcript lines it was given.
    """

    def __init__(self, fixed_text: str = "") -> None:
        self.fixed_text = fixed_text
        self.call_count: int = 0
        self.last_prompt: str = ""

    async def summarize(self, prompt: str) -> str:
        self.call_count += 1
        self.last_prompt = prompt

        if self.fixed_text:
            return self.fixed_text

        frame_lines = [line for line in prompt.splitlines() if line.startswith("- [")]
        return f"Mock summary of {len(frame_lines)} frames."
