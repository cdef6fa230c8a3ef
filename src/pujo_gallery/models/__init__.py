# src/pujo_gallery/models/__init__.py
"""SQLAlchemy models for the Pujo Gallery service."""

from .dead_letter import NotificationDeadLetter

__all__ = ["NotificationDeadLetter"]
