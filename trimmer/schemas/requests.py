"""
Request schemas for the trim API.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OutputFormat(str, Enum):
    """Container of the trimmed artifact."""

    VIDEO = "video"
    AUDIO = "audio"

    @property
    def extension(self) -> str:
        return "mp3" if self is OutputFormat.AUDIO else "mp4"

    @property
    def media_type(self) -> str:
        return "audio/mpeg" if self is OutputFormat.AUDIO else "video/mp4"


# Legacy clients send the container name instead of the format
_FORMAT_ALIASES = {
    "mp4": OutputFormat.VIDEO,
    "mp3": OutputFormat.AUDIO,
}


class TrimRequest(BaseModel):
    """Request body for POST /trim.

    Only types are enforced here. Shape checks (URL host, time strings,
    duration) happen in services.validators so that every problem is
    reported in a single 400 response.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
                "start": "00:00:30",
                "end": "00:01:15",
                "filename": "my_clip",
                "format": "video",
                "quality": 720,
            }
        },
    )

    url: str = Field("", description="Source video URL (YouTube)")
    start: str = Field("", description="Clip start, HH:MM:SS[.ms] or MM:SS")
    end: str = Field("", description="Clip end, HH:MM:SS[.ms] or MM:SS")
    filename: Optional[str] = Field(None, description="Output name without extension")
    output_format: OutputFormat = Field(
        OutputFormat.VIDEO,
        alias="format",
        description="'video' (mp4) or 'audio' (mp3)",
    )
    quality: Optional[int] = Field(
        None,
        description="Maximum vertical resolution for video output (ignored for audio)",
    )

    @field_validator("output_format", mode="before")
    @classmethod
    def _normalize_format(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _FORMAT_ALIASES.get(lowered, lowered)
        return value

    @field_validator("quality", mode="before")
    @classmethod
    def _normalize_quality(cls, value):
        # Accept "720" and "720p" from form-style clients
        if isinstance(value, str):
            stripped = value.strip().lower().rstrip("p")
            return int(stripped) if stripped.isdigit() else None
        return value
