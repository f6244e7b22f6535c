"""
Video Trimmer Service - ffmpeg cut stage.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from trimmer.config import Settings, get_settings
from trimmer.schemas.requests import OutputFormat

logger = logging.getLogger(__name__)

# ffmpeg prints "time=00:00:12.34" on every stats update
ACTIVITY_TOKEN = "time="


class VideoTrimmerService:
    """Builds ffmpeg commands that cut a window out of a downloaded file."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def executable(self) -> str:
        return self.settings.ffmpeg_path

    def build_trim_args(
        self,
        input_path: Union[str, Path],
        start: str,
        duration_seconds: int,
        output_path: Union[str, Path],
        output_format: OutputFormat = OutputFormat.VIDEO,
    ) -> list[str]:
        """
        Build ffmpeg arguments for the cut.

        Uses -t (duration) rather than -to so the window length is exact
        regardless of how the input timestamps start.

        Args:
            input_path: Resolved download
            start: Start offset as the client sent it (HH:MM:SS[.ms])
            duration_seconds: Window length
            output_path: Final artifact path
            output_format: VIDEO copies the video stream and re-encodes audio
                to AAC; AUDIO drops video and encodes MP3

        Returns:
            Argument list, without the executable
        """
        args = [
            "-y",
            "-i", str(input_path),
            "-ss", start,
            "-t", str(duration_seconds),
        ]

        if output_format is OutputFormat.AUDIO:
            args += ["-vn", "-c:a", "libmp3lame", "-q:a", "2"]
        else:
            args += ["-c:v", "copy", "-c:a", "aac"]

        args += ["-avoid_negative_ts", "make_zero", str(output_path)]
        return args

    def build_direct_trim_args(
        self,
        video_url: str,
        audio_url: str,
        start: str,
        duration_seconds: int,
        output_path: Union[str, Path],
    ) -> list[str]:
        """Cut straight from remote media URLs, seeking both inputs."""
        return [
            "-ss", start,
            "-i", video_url,
            "-ss", start,
            "-i", audio_url,
            "-t", str(duration_seconds),
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", "aac",
            "-y",
            str(output_path),
        ]

    @staticmethod
    def is_activity(chunk: str) -> bool:
        """True when a chunk of ffmpeg output reports encoding progress."""
        return ACTIVITY_TOKEN in chunk
