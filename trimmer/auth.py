"""
API Key Authentication for YT-Trimmer.

Provides a FastAPI dependency that protects task submission when an API key
is configured.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from trimmer.config import Settings, get_settings

logger = logging.getLogger(__name__)


async def verify_api_key(
    x_trimmer_api_key: Optional[str] = Header(None, alias="X-Trimmer-API-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    FastAPI dependency to verify the trimmer API key.

    If TRIMMER_API_KEY is configured, requests must include a matching
    X-Trimmer-API-Key header. If not configured, authentication is skipped
    (public mode).

    Raises:
        HTTPException: 401 if API key is missing or invalid
    """
    expected_key = settings.trimmer_api_key

    if not expected_key:
        return

    if not x_trimmer_api_key:
        logger.warning("Request missing X-Trimmer-API-Key header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "X-Trimmer-API-Key"},
        )

    if x_trimmer_api_key != expected_key:
        logger.warning("Invalid API key received")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "X-Trimmer-API-Key"},
        )
