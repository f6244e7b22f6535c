"""
Response schemas for the trim API.
"""

from typing import Optional

from pydantic import BaseModel, Field


class TrimSubmitResponse(BaseModel):
    """Returned immediately after a trim task is accepted."""

    success: bool = True
    task_id: str = Field(..., description="Correlation id for progress and download")
    message: str = Field(..., description="Human readable status")


class ErrorResponse(BaseModel):
    success: bool = False
    message: str


class ProgressResponse(BaseModel):
    """Latest progress snapshot of a task."""

    task_id: str
    status: str = Field(..., description="starting, downloading, trimming, cleaning, complete or error")
    progress: int = Field(..., ge=0, le=100)
    message: str
    filename: Optional[str] = Field(
        default=None, description="Artifact name, present only when status is 'complete'"
    )


class VideoFormats(BaseModel):
    video: list[int]
    audio: list[str]


class VideoInfoResponse(BaseModel):
    """Preview metadata for a source video."""

    id: Optional[str] = None
    title: str
    duration: float = Field(..., description="Duration in seconds (0 if unknown)")
    duration_formatted: str
    thumbnail: str
    uploader: str
    view_count: int
    formats: VideoFormats


class DiskInfo(BaseModel):
    free_space_mb: int
    has_enough_space: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")
    timestamp: str
    disk: DiskInfo
    tools: dict[str, bool] = Field(default_factory=dict, description="External tool availability")
