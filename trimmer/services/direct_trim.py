"""
Direct Trim - Single-shot trim without a local download.

yt-dlp is asked twice for direct media URLs (video, then audio) and ffmpeg
seeks both remote inputs and cuts the window in one pass. Used by the
command line entry point; the HTTP service uses the TaskOrchestrator.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from trimmer.config import Settings, get_settings
from trimmer.services.stage_runner import StageFailed, StageRunner
from trimmer.services.time_utils import compute_duration
from trimmer.services.validators import TrimValidationError, is_valid_time
from trimmer.services.video_downloader import VideoDownloaderService
from trimmer.services.video_trimmer import VideoTrimmerService

logger = logging.getLogger(__name__)

AUDIO_FORMAT = "bestaudio[ext=m4a]/bestaudio"


def video_format_for(quality: int) -> str:
    return f"bestvideo[height<={quality}][ext=mp4]/bestvideo"


@dataclass
class DirectTrimResult:
    output_path: Path
    duration_seconds: int


def _first_line(text: Optional[str]) -> str:
    for line in (text or "").splitlines():
        if line.strip():
            return line.strip()
    return ""


async def direct_trim(
    url: str,
    start: str,
    end: str,
    output_path: Union[str, Path],
    runner: StageRunner,
    settings: Optional[Settings] = None,
    quality: Optional[int] = None,
) -> DirectTrimResult:
    """
    Trim a window straight from the remote streams.

    Args:
        url: Source video URL
        start: Start time string
        end: End time string
        output_path: Destination file (".mp4" is appended if missing)
        runner: StageRunner used for all three tool invocations
        settings: Settings (defaults to get_settings())
        quality: Maximum video height (defaults to settings.default_quality)

    Returns:
        DirectTrimResult

    Raises:
        TrimValidationError: If the times are malformed or the duration is not positive
        StageSpawnError, StageFailed: If a tool cannot run or fails
    """
    settings = settings or get_settings()
    downloader = VideoDownloaderService(settings)
    trimmer = VideoTrimmerService(settings)

    errors = []
    if not is_valid_time(start):
        errors.append("Start time must be HH:MM:SS or MM:SS")
    if not is_valid_time(end):
        errors.append("End time must be HH:MM:SS or MM:SS")
    duration = compute_duration(start, end)
    if not errors and duration <= 0:
        errors.append(f"Invalid duration ({duration} seconds)")
    if errors:
        raise TrimValidationError(errors)

    output_path = Path(output_path)
    if output_path.suffix.lower() != ".mp4":
        output_path = output_path.with_name(output_path.name + ".mp4")

    quality = quality or settings.default_quality
    logger.info(f"Direct trim: start={start} end={end} duration={duration}s -> {output_path}")

    video = await runner.run(
        downloader.executable,
        downloader.build_media_url_args(url, video_format_for(quality)),
        capture_stdout=True,
    )
    audio = await runner.run(
        downloader.executable,
        downloader.build_media_url_args(url, AUDIO_FORMAT),
        capture_stdout=True,
    )

    video_url = _first_line(video.stdout)
    audio_url = _first_line(audio.stdout)
    if not video_url or not audio_url:
        raise StageFailed(downloader.executable, 0, reason="returned no media URL")

    await runner.run(
        trimmer.executable,
        trimmer.build_direct_trim_args(video_url, audio_url, start, duration, output_path),
    )

    logger.info(f"Direct trim finished: {output_path}")
    return DirectTrimResult(output_path=output_path, duration_seconds=duration)
