# src/pujo_gallery/schemas/__init__.py
"""
Pydantic schemas for persisted records and API request/response models.
"""

from .submission import (
    ImageType,
    MessageResponse,
    ModerationOutcome,
    Submission,
    SubmissionForm,
    SubmissionStatus,
    SubmissionSummary,
    SubmitResponse,
)

__all__ = [
    "ImageType",
    "MessageResponse",
    "ModerationOutcome",
    "Submission", "SubmissionForm", "SubmissionStatus", "SubmissionSummary",
    "SubmitResponse",
]
