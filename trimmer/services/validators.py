"""
Validators - Pure checks and transforms applied before a task is created.

Nothing here touches the filesystem or launches processes. The orchestrator
trusts these verdicts: a request that passes validate_trim_request is safe
to hand to the external tools.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

from trimmer.config import Settings
from trimmer.schemas.requests import OutputFormat, TrimRequest
from trimmer.services.time_utils import parse_time_to_seconds

logger = logging.getLogger(__name__)


# Recognized video-host URL shapes
YOUTUBE_PATTERNS = [
    re.compile(
        r"^https?://(?:www\.|m\.|music\.)?youtube\.com/watch\?(?:.*&)?v=(?P<id>[A-Za-z0-9_-]{11})",
        re.IGNORECASE,
    ),
    re.compile(
        r"^https?://(?:www\.|m\.)?youtube\.com/(?:shorts|embed|live|v)/(?P<id>[A-Za-z0-9_-]{11})",
        re.IGNORECASE,
    ),
    re.compile(r"^https?://youtu\.be/(?P<id>[A-Za-z0-9_-]{11})", re.IGNORECASE),
]

TIME_PATTERN = re.compile(r"^(?:\d{1,2}:)?\d{1,2}:\d{2}(?:\.\d{1,3})?$")

ILLEGAL_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
KNOWN_EXTENSIONS = re.compile(r"\.(mp4|mp3|webm|mkv|m4a)$", re.IGNORECASE)
MAX_FILENAME_LENGTH = 100


@dataclass
class ValidatedTrim:
    """A trim request that passed every check."""

    url: str
    start: str
    end: str
    start_offset: int
    end_offset: int
    duration_seconds: int
    output_format: OutputFormat
    quality: int
    filename: str  # sanitized, without extension


class TrimValidationError(ValueError):
    """Raised when a trim request is rejected before any subprocess starts."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(". ".join(errors))


def normalize_url(url: Optional[str]) -> str:
    """Trim whitespace and add a scheme when the client left it out."""
    if not url:
        return ""
    url = url.strip()
    if url and not re.match(r"^https?://", url, re.IGNORECASE):
        url = f"https://{url}"
    return url


def extract_video_id(url: Optional[str]) -> Optional[str]:
    """Return the 11-character YouTube video id, or None."""
    url = normalize_url(url)
    for pattern in YOUTUBE_PATTERNS:
        match = pattern.match(url)
        if match:
            return match.group("id")
    return None


def is_supported_url(url: Optional[str]) -> bool:
    return extract_video_id(url) is not None


def is_valid_time(text: Optional[str]) -> bool:
    return bool(text) and TIME_PATTERN.match(text.strip()) is not None


def sanitize_filename(name: Optional[str], default: str = "trimmed_video") -> str:
    """
    Make a client-supplied name safe to use inside the output directory.

    Directory components are dropped, a trailing media extension is removed,
    and illegal characters become underscores.

    Args:
        name: Raw filename from the client
        default: Substitute used when nothing usable remains

    Returns:
        A bare filename without extension
    """
    if not name:
        return default

    # Drop any directory part, whichever separator the client used
    name = os.path.basename(name.replace("\\", "/"))
    name = KNOWN_EXTENSIONS.sub("", name)
    name = ILLEGAL_FILENAME_CHARS.sub("_", name)
    name = name.replace("..", "_")
    name = name.strip().lstrip(". ")
    name = name[:MAX_FILENAME_LENGTH].rstrip(". ")

    return name or default


def validate_trim_request(request: TrimRequest, settings: Settings) -> ValidatedTrim:
    """
    Validate a trim request and compute its duration.

    All problems are collected so the client sees them in one response.

    Raises:
        TrimValidationError: If any check fails
    """
    errors: list[str] = []

    url = normalize_url(request.url)
    if not url:
        errors.append("URL is required")
    elif not is_supported_url(url):
        errors.append("URL is not a recognized YouTube video link")

    start = (request.start or "").strip()
    end = (request.end or "").strip()
    if not is_valid_time(start):
        errors.append("Start time must be HH:MM:SS or MM:SS")
    if not is_valid_time(end):
        errors.append("End time must be HH:MM:SS or MM:SS")

    start_offset = parse_time_to_seconds(start)
    end_offset = parse_time_to_seconds(end)
    duration = end_offset - start_offset

    if is_valid_time(start) and is_valid_time(end):
        if duration <= 0:
            errors.append("End time must be after start time")
        elif duration > settings.max_clip_duration_seconds:
            errors.append(
                f"Clip is too long ({duration}s). "
                f"Maximum is {settings.max_clip_duration_seconds // 60} minutes"
            )

    quality = request.quality if request.quality is not None else settings.default_quality
    if request.output_format is OutputFormat.VIDEO and quality not in settings.supported_qualities:
        errors.append(f"Quality must be one of: {settings.supported_qualities}")

    if errors:
        logger.warning(f"Trim request rejected: {errors}")
        raise TrimValidationError(errors)

    return ValidatedTrim(
        url=url,
        start=start,
        end=end,
        start_offset=start_offset,
        end_offset=end_offset,
        duration_seconds=duration,
        output_format=request.output_format,
        quality=quality,
        filename=sanitize_filename(request.filename, settings.default_filename),
    )
