"""
Command line single-shot trim.

Usage:
    yt-trimmer-cli URL --start 00:03:01 --end 00:04:05 [-o clip.mp4] [--quality 1080]
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from trimmer.config import get_settings
from trimmer.services.direct_trim import direct_trim
from trimmer.services.stage_runner import StageFailed, StageSpawnError, SubprocessStageRunner
from trimmer.services.validators import TrimValidationError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Trim a YouTube video without downloading it first")
    parser.add_argument("url", help="YouTube video URL")
    parser.add_argument("--start", required=True, help="Start time (HH:MM:SS or MM:SS)")
    parser.add_argument("--end", required=True, help="End time (HH:MM:SS or MM:SS)")
    parser.add_argument("-o", "--output", default="video_trimmed.mp4", help="Output file")
    parser.add_argument("--quality", type=int, default=1080, help="Maximum video height")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    settings = get_settings()
    runner = SubprocessStageRunner(
        stderr_tail_chars=settings.stderr_tail_chars,
        excerpt_chars=settings.error_excerpt_chars,
    )

    try:
        result = asyncio.run(
            direct_trim(
                args.url,
                args.start,
                args.end,
                args.output,
                runner,
                settings=settings,
                quality=args.quality,
            )
        )
    except TrimValidationError as e:
        logger.error(f"Invalid input: {e}")
        return 2
    except (StageSpawnError, StageFailed) as e:
        logger.error(f"Trim failed: {e}")
        return 1

    print(f"Saved {result.output_path} ({result.duration_seconds}s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
