"""
Video Downloader Service - yt-dlp fetch stage and metadata lookup.

The fetch stage runs the yt-dlp executable through a StageRunner so its
`--newline --progress` output can be parsed for percentages. Metadata for
the preview card uses the yt-dlp Python library directly, since no progress
is needed there.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import yt_dlp

from trimmer.config import Settings, get_settings
from trimmer.schemas.requests import OutputFormat
from trimmer.services.time_utils import format_seconds
from trimmer.services.validators import extract_video_id

logger = logging.getLogger(__name__)


@dataclass
class VideoInfo:
    """Metadata shown to the client before it submits a trim."""

    video_id: Optional[str]
    title: str
    duration_seconds: float
    duration_formatted: str
    thumbnail_url: str
    uploader: str
    view_count: int
    video_qualities: list[int] = field(default_factory=list)
    audio_formats: list[str] = field(default_factory=lambda: ["mp3"])


def thumbnail_for(video_id: Optional[str]) -> str:
    if not video_id:
        return ""
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


class VideoDownloaderService:
    """
    Builds fetch-stage commands and looks up video metadata.

    Features:
    - Height-capped format selection for video, mp3 extraction for audio
    - Line-per-update progress output for the stage runner
    - Optional proxy from settings
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def executable(self) -> str:
        return self.settings.ytdlp_path

    def _get_format_selector(self, quality: int) -> str:
        """Best video up to `quality` lines merged with best audio, then fallbacks."""
        return (
            f"bestvideo[height<={quality}]+bestaudio/"
            f"best[height<={quality}]/best"
        )

    def build_download_args(
        self,
        url: str,
        output_format: OutputFormat,
        quality: int,
        output_path: Union[str, Path],
    ) -> list[str]:
        """
        Build yt-dlp arguments for downloading straight to a file.

        Args:
            url: Validated source URL
            output_format: VIDEO (merged mp4) or AUDIO (mp3 extraction)
            quality: Maximum video height, ignored for audio
            output_path: Intended file path (yt-dlp may decorate it)

        Returns:
            Argument list, without the executable
        """
        if output_format is OutputFormat.AUDIO:
            args = [
                "-f", "bestaudio/best",
                "--extract-audio",
                "--audio-format", "mp3",
            ]
        else:
            args = [
                "-f", self._get_format_selector(quality),
                "--merge-output-format", "mp4",
            ]

        args += [
            "--no-playlist",
            "--newline",
            "--progress",
            "--force-overwrites",
        ]

        if self.settings.ytdlp_proxy:
            args += ["--proxy", self.settings.ytdlp_proxy]

        args += ["-o", str(output_path), url]
        return args

    def build_media_url_args(self, url: str, format_selector: str) -> list[str]:
        """Arguments that print the direct media URL for a format (-g)."""
        args = ["-f", format_selector, "-g", "--no-playlist"]
        if self.settings.ytdlp_proxy:
            args += ["--proxy", self.settings.ytdlp_proxy]
        args.append(url)
        return args

    async def get_video_info(self, url: str) -> VideoInfo:
        """
        Get video metadata without downloading using the yt-dlp library.

        Uses minimal options for maximum compatibility - no format selection.

        Raises:
            VideoInfoError: If yt-dlp cannot extract the metadata
        """
        logger.debug(f"Getting video info for: {url}")

        loop = asyncio.get_event_loop()

        def do_extract():
            opts = {
                "quiet": True,
                "no_warnings": True,
                "skip_download": True,
                "noplaylist": True,
                "socket_timeout": 30,
            }
            if self.settings.ytdlp_proxy:
                opts["proxy"] = self.settings.ytdlp_proxy

            with yt_dlp.YoutubeDL(opts) as ydl:
                return ydl.extract_info(url, download=False)

        try:
            info = await loop.run_in_executor(None, do_extract)
        except Exception as e:
            raise VideoInfoError(f"Failed to get video info: {e}") from e

        if not info:
            raise VideoInfoError("yt-dlp returned no metadata")

        video_id = info.get("id") or extract_video_id(url)
        duration = float(info.get("duration") or 0)
        return VideoInfo(
            video_id=video_id,
            title=info.get("title") or "Unknown Title",
            duration_seconds=duration,
            duration_formatted=info.get("duration_string") or format_seconds(duration),
            thumbnail_url=info.get("thumbnail") or thumbnail_for(video_id),
            uploader=info.get("uploader") or "Unknown",
            view_count=int(info.get("view_count") or 0),
            video_qualities=list(self.settings.supported_qualities),
        )

    def fallback_info(self, url: str) -> VideoInfo:
        """Preview data derived only from the URL, used when lookup fails."""
        video_id = extract_video_id(url)
        return VideoInfo(
            video_id=video_id,
            title="YouTube Video",
            duration_seconds=0,
            duration_formatted="??:??",
            thumbnail_url=thumbnail_for(video_id),
            uploader="Unknown",
            view_count=0,
            video_qualities=list(self.settings.supported_qualities),
        )


class VideoInfoError(Exception):
    """Exception raised when video metadata cannot be retrieved."""
    pass
