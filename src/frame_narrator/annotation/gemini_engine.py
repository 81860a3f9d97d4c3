"""
Gemini Engines
==============

Production description and summary engines using Google Gemini.

These engines:
    - Call the Gemini API through the google-genai SDK
    - Run the blocking SDK call in a worker thread
    - Raise AnnotationError / SummaryError on any API failure

Design Rules:
    - Fail fast on misconfiguration (missing key, missing SDK)
    - Never retry here; retries belong to the dispatcher
    - Log call counts, never payloads
"""

import asyncio
import logging
import os
from typing import Optional

from frame_narrator.errors import AnnotationError, SummaryError


logger = logging.getLogger(__name__)


DEFAULT_MODEL = "gemini-2.5-flash-lite"

# Enum-style names accepted by GEMINI_MODEL in earlier deployments
MODEL_ALIASES = {
    "Gemini25FlashLite": "gemini-2.5-flash-lite",
    "Gemini25Flash": "gemini-2.5-flash",
    "Gemini25Pro": "gemini-2.5-pro",
}

DESCRIBE_PROMPT = (
    "Please describe what you see in this video frame with extremely detailed "
    "description try to understand the context of the frames. Make speculative "
    "guesses about what might be happening based on the frame!"
)


def resolve_model_name(model_name: Optional[str]) -> str:
    """
    Resolve a configured model name to a Gemini model id.

    Args:
        model_name: Model id ("gemini-2.5-flash"), alias ("Gemini25Flash"),
            or None for the default

    Returns:
        Gemini model id
    """
    if not model_name:
        return DEFAULT_MODEL
    if model_name in MODEL_ALIASES:
        return MODEL_ALIASES[model_name]
    if model_name.startswith("gemini-"):
        return model_name

    logger.warning(
        f"Unknown GEMINI_MODEL '{model_name}'; defaulting to {DEFAULT_MODEL}"
    )
    return DEFAULT_MODEL


def resolve_api_key(api_key: Optional[str]) -> str:
    """
    Resolve the Gemini API key.

    Raises:
        AnnotationError: If no key is configured
    """
    key = api_key or os.environ.get("GOOGLE_API_KEY") or os.environ.get("GEMINI_API_KEY")
    if not key:
        raise AnnotationError(
            "Missing GOOGLE_API_KEY or GEMINI_API_KEY for the Gemini backend"
        )
    return key


def create_client(api_key: str):
    """Create a google-genai client."""
    try:
        from google import genai
    except ImportError:
        raise ImportError(
            "google-genai is required for the Gemini backend. "
            "Install with: pip install google-genai"
        )
    return genai.Client(api_key=api_key)


def _response_text(response) -> str:
    """Extract non-empty text from a generate_content response."""
    text = getattr(response, "text", None)
    if not text or not text.strip():
        raise ValueError("Gemini returned an empty response")
    return text.strip()


class GeminiDescriptionEngine:
    """
    Frame description engine backed by Gemini.

    Sends the encoded frame as inline data together with a fixed
    instruction prompt.

    Attributes:
        model: Gemini model id
        prompt: Instruction sent with every frame
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        prompt: str = DESCRIBE_PROMPT,
    ) -> None:
        """
        Initialize Gemini description engine.

        Args:
            api_key: API key (falls back to GOOGLE_API_KEY / GEMINI_API_KEY)
            model: Model id or alias
            prompt: Instruction prompt

        Raises:
            AnnotationError: If no API key is available
            ImportError: If google-genai is not installed
        """
        self.model = resolve_model_name(model)
        self.prompt = prompt
        self._client = create_client(resolve_api_key(api_key))
        self._call_count: int = 0
        self._error_count: int = 0

        logger.info(f"GeminiDescriptionEngine initialized: model={self.model}")

    async def describe(self, image_bytes: bytes, mime_type: str) -> str:
        from google.genai import types

        contents = [
            types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
            self.prompt,
        ]

        self._call_count += 1
        try:
            response = await asyncio.to_thread(
                self._client.models.generate_content,
                model=self.model,
                contents=contents,
            )
            return _response_text(response)
        except Exception as e:
            self._error_count += 1
            raise AnnotationError(f"Gemini describe failed: {e}") from e

    def get_metrics(self) -> dict:
        """Get engine metrics for observability."""
        return {
            "model": self.model,
            "call_count": self._call_count,
            "error_count": self._error_count,
        }


class GeminiSummaryEngine:
    """
    Text summary engine backed by Gemini.

    No images are attached; the prompt is the Summarizer's transcript.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        self.model = resolve_model_name(model)
        try:
            self._client = create_client(resolve_api_key(api_key))
        except AnnotationError as e:
            raise SummaryError(e.message) from e

        logger.info(f"GeminiSummaryEngine initialized: model={self.model}")

    async def summarize(self, prompt: str) -> str:
        try:
            response = await asyncio.to_thread(
                self._client.models.generate_content,
                model=self.model,
                contents=prompt,
            )
            return _response_text(response)
        except Exception as e:
            raise SummaryError(f"Gemini summarize failed: {e}") from e
