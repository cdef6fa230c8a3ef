# src/pujo_gallery/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .moderation import router as moderation_router
from .pandals import router as pandals_router
from .submissions import router as submissions_router

__all__ = [
    "moderation_router",
    "pandals_router",
    "submissions_router",
]
