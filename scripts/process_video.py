#!/usr/bin/env python3
"""
Local Processing Script
=======================

Standalone script to run the narration pipeline on one video file.

This script:
    1. Loads config.yaml (or --config) and environment overrides
    2. Builds the pipeline with the configured or --backend engine
    3. Processes the video
    4. Prints the result JSON (or writes it to --output)

Prerequisites:
    - Install the package: pip install -e .
    - GOOGLE_API_KEY for the gemini backend

Usage:
    python scripts/process_video.py data/clip.mp4 --backend mock
    python scripts/process_video.py data/clip.mp4 --no-summary --output result.json
"""

import argparse
import asyncio
import logging
import sys
import time

from frame_narrator.config import load_config, setup_logging
from frame_narrator.errors import PipelineError
from frame_narrator.pipeline.factory import DESCRIPTION_BACKENDS, build_pipeline


logger = logging.getLogger(__name__)


async def run(args: argparse.Namespace) -> int:
    """
    Process the video and emit the result.

    Returns:
        Process exit code
    """
    settings = load_config(args.config)
    if args.backend:
        settings.annotation.backend = args.backend
    if args.no_summary:
        settings.summary.enabled = False
    setup_logging(settings)

    logger.info("=" * 60)
    logger.info(f"Video: {args.video}")
    logger.info(f"Backend: {settings.annotation.backend}")
    logger.info(f"Max concurrency: {settings.annotation.max_concurrency}")
    logger.info("=" * 60)

    started = time.perf_counter()
    pipeline = build_pipeline(settings)

    try:
        result = await pipeline.process(args.video)
    except PipelineError as e:
        logger.error(f"Failed to process video ({e.stage}): {e.message}")
        return 1

    logger.info(
        f"Processed {len(result.records)} frames in "
        f"{time.perf_counter() - started:.1f}s"
    )

    payload = result.model_dump_json(indent=2)
    if args.output:
        with open(args.output, "w") as f:
            f.write(payload)
        logger.info(f"Result written to {args.output}")
    else:
        print(payload)

    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Select and describe distinct frames of a video"
    )
    parser.add_argument("video", help="Video file to process")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument(
        "--backend",
        choices=DESCRIPTION_BACKENDS,
        default=None,
        help="Override annotation.backend",
    )
    parser.add_argument(
        "--no-summary",
        action="store_true",
        help="Skip the video summary",
    )
    parser.add_argument("--output", default=None, help="Write result JSON here")

    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
