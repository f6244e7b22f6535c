"""
Pydantic schemas for request/response models.
"""

from trimmer.schemas.requests import OutputFormat, TrimRequest
from trimmer.schemas.responses import (
    DiskInfo,
    ErrorResponse,
    HealthResponse,
    ProgressResponse,
    TrimSubmitResponse,
    VideoFormats,
    VideoInfoResponse,
)

__all__ = [
    "OutputFormat",
    "TrimRequest",
    "TrimSubmitResponse",
    "ErrorResponse",
    "ProgressResponse",
    "VideoInfoResponse",
    "VideoFormats",
    "HealthResponse",
    "DiskInfo",
]
