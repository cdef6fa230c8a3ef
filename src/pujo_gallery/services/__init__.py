# src/pujo_gallery/services/__init__.py
"""Business logic services for the Pujo Gallery application."""

from .blobs import BlobGateway
from .container import GalleryServices, build_services
from .dead_letters import DeadLetterLog
from .ingestion import IngestionPipeline, PhotoUpload
from .listing import SubmissionListing
from .moderation import ModerationActionHandler, ModerationResult
from .notifications import NotificationSynchronizer
from .store import SubmissionStore
from .tokens import CapabilityTokenService

__all__ = [
    "BlobGateway",
    "CapabilityTokenService",
    "DeadLetterLog",
    "GalleryServices",
    "IngestionPipeline",
    "ModerationActionHandler",
    "ModerationResult",
    "NotificationSynchronizer",
    "PhotoUpload",
    "SubmissionListing",
    "SubmissionStore",
    "build_services",
]
