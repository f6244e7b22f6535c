"""
FastAPI routers for the trimmer service.
"""

from trimmer.routers import health, trim

__all__ = ["health", "trim"]
