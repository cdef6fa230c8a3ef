# src/pujo_gallery/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import moderation_router, pandals_router, submissions_router

__all__ = [
    "moderation_router",
    "pandals_router",
    "submissions_router",
]
