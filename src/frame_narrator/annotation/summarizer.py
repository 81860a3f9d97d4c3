"""
Summarizer
==========

Consolidated description of a whole video from its frame records.

Builds one compact text transcript, one line per record:
    - [0.0s] A car waits at a red light ...
    - [0.8s] The light turns green ...

and issues exactly one request to the summary engine. No images are
attached, to keep the call light.

Design Rules:
    - Best effort: failures become a fallback string, never an exception
    - Per-frame results are never touched
"""

import asyncio
import logging
from typing import Optional, Sequence

from frame_narrator.annotation.engine import SummaryEngine
from frame_narrator.models.records import FrameRecord


logger = logging.getLogger(__name__)


SUMMARY_HEADER = (
    "Summarize the video in detail description, should be 3-5 sentences.\n\n"
    "Based on all the frames, try to keep a story line and explain what "
    "happened in the video. Describe the story not the specific details.\n\n"
    "Frames:\n"
)

EMPTY_SUMMARY = "No frames processed; nothing to summarize."


def build_transcript(
    records: Sequence[FrameRecord],
    header: str = SUMMARY_HEADER,
) -> str:
    """
    Build the summary prompt.

    Args:
        records: Records in the order they should appear
        header: Instruction text placed before the frame lines

    Returns:
        Prompt text
    """
    lines = [f"- [{record.timestamp:.1f}s] {record.description}" for record in records]
    return header + "\n".join(lines) + "\n"


class Summarizer:
    """
    Best-effort video summarizer.

    Attributes:
        engine: SummaryEngine used for the single request
        header: Instruction header of the prompt
        timeout: Seconds to wait for the engine (None = no limit)
    """

    def __init__(
        self,
        engine: SummaryEngine,
        header: str = SUMMARY_HEADER,
        timeout: Optional[float] = None,
    ) -> None:
        self.engine = engine
        self.header = header
        self.timeout = timeout

    async def summarize(self, records: Sequence[FrameRecord]) -> str:
        """
        Summarize the records.

        Args:
            records: FrameRecords sorted by timestamp

        Returns:
            Summary text, EMPTY_SUMMARY for no records, or a
            "Failed to summarize: ..." diagnostic on failure
        """
        if not records:
            return EMPTY_SUMMARY

        prompt = build_transcript(records, self.header)

        try:
            if self.timeout is not None:
                summary = await asyncio.wait_for(
                    self.engine.summarize(prompt),
                    timeout=self.timeout,
                )
            else:
                summary = await self.engine.summarize(prompt)
        except asyncio.TimeoutError:
            logger.error(f"Summary timed out after {self.timeout}s")
            return f"Failed to summarize: timed out after {self.timeout}s"
        except Exception as e:
            logger.error(f"Summary failed: {e}")
            return f"Failed to summarize: {e}"

        logger.info(f"Summary generated from {len(records)} records")
        return summary
