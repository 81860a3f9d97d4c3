"""
Vision Label Engine
===================

Description engine using Google Cloud Vision API.

This engine:
    - Calls Vision API label detection and object localization
    - Renders the detections into one descriptive sentence
    - Filters detections below a confidence threshold

Design Rules:
    - Fail fast on misconfiguration
    - Raise AnnotationError on API errors (the dispatcher decides policy)
    - Log all API calls
"""

import asyncio
import logging
from collections import Counter
from typing import List, Optional

from frame_narrator.errors import AnnotationError


logger = logging.getLogger(__name__)


class VisionLabelEngine:
    """
    Description engine backed by Google Cloud Vision.

    Produces descriptions such as:
        "Scene labels: street, car, crowd. Objects: 3 x person, 1 x car."

    Attributes:
        confidence_threshold: Minimum score for labels and objects
        max_labels: Maximum labels listed in a description
        credentials_path: Path to service account JSON
    """

    def __init__(
        self,
        credentials_path: Optional[str] = None,
        confidence_threshold: float = 0.6,
        max_labels: int = 10,
    ) -> None:
        """
        Initialize Vision label engine.

        Args:
            credentials_path: Path to service account JSON (optional)
            confidence_threshold: Minimum detection confidence
            max_labels: Maximum number of labels in a description

        Raises:
            ImportError: If google-cloud-vision is not installed
            AnnotationError: If the client cannot be created
        """
        self.confidence_threshold = confidence_threshold
        self.max_labels = max(1, max_labels)
        self.credentials_path = credentials_path

        self._api_call_count: int = 0
        self._api_error_count: int = 0

        self._client = None
        self._init_client(credentials_path)

        logger.info(
            f"VisionLabelEngine initialized: "
            f"threshold={confidence_threshold}, max_labels={max_labels}"
        )

    def _init_client(self, credentials_path: Optional[str]) -> None:
        """Initialize Google Cloud Vision client."""
        try:
            from google.cloud import vision

            if credentials_path:
                self._client = vision.ImageAnnotatorClient.from_service_account_json(
                    credentials_path
                )
                logger.info(f"Vision client initialized from: {credentials_path}")
            else:
                # Use default credentials (ADC)
                self._client = vision.ImageAnnotatorClient()
                logger.info("Vision client initialized with default credentials")

        except ImportError:
            raise ImportError(
                "google-cloud-vision is required for VisionLabelEngine. "
                "Install with: pip install google-cloud-vision"
            )
        except Exception as e:
            raise AnnotationError(f"Failed to initialize Vision client: {e}") from e

    async def describe(self, image_bytes: bytes, mime_type: str) -> str:
        from google.cloud import vision

        image = vision.Image(content=image_bytes)

        try:
            labels_response = await asyncio.to_thread(
                self._client.label_detection,
                image=image,
            )
            objects_response = await asyncio.to_thread(
                self._client.object_localization,
                image=image,
            )
        except Exception as e:
            self._api_error_count += 1
            raise AnnotationError(f"Vision API call failed: {e}") from e

        self._api_call_count += 2

        for response in (labels_response, objects_response):
            if response.error.message:
                self._api_error_count += 1
                raise AnnotationError(f"Vision API: {response.error.message}")

        labels = [
            label.description
            for label in labels_response.label_annotations
            if label.score >= self.confidence_threshold
        ][: self.max_labels]

        objects = [
            obj.name
            for obj in objects_response.localized_object_annotations
            if obj.score >= self.confidence_threshold
        ]

        description = render_description(labels, objects)
        logger.debug(
            f"Vision API: labels={len(labels)}, objects={len(objects)}"
        )
        return description

    @property
    def api_call_count(self) -> int:
        """Total API calls made."""
        return self._api_call_count

    @property
    def api_error_count(self) -> int:
        """Total API errors."""
        return self._api_error_count

    def get_metrics(self) -> dict:
        """Get engine metrics for observability."""
        return {
            "api_call_count": self._api_call_count,
            "api_error_count": self._api_error_count,
            "confidence_threshold": self.confidence_threshold,
        }


def render_description(labels: List[str], objects: List[str]) -> str:
    """
    Render detections into one sentence.

    Args:
        labels: Scene labels, most confident first
        objects: Localized object names (may repeat)

    Returns:
        Human-readable description
    """
    parts = []
    if labels:
        parts.append("Scene labels: " + ", ".join(label.lower() for label in labels) + ".")
    if objects:
        counts = Counter(name.lower() for name in objects)
        rendered = ", ".join(f"{count} x {name}" for name, count in counts.most_common())
        parts.append(f"Objects: {rendered}.")
    if not parts:
        return "No confident labels or objects detected."
    return " ".join(parts)
