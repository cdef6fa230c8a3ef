"""Error taxonomy shared by every component of the moderation lifecycle.

Each exception carries an explicit `ErrorKind`. Components raise these and
translate third-party failures at the point where they own the client; the
HTTP layer maps the kind to a status code and nothing else.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of failures, translated to status codes at the boundary."""

    VALIDATION = "validation"
    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UPSTREAM = "upstream"


class GalleryError(Exception):
    """Base exception for submission lifecycle failures."""

    kind: ErrorKind = ErrorKind.UPSTREAM
    public_message: str = "Internal Server Error"

    def __init__(
        self,
        message: str | None = None,
        *,
        submission_id: str | None = None,
        collaborator: str | None = None,
    ) -> None:
        self.message = message or self.public_message
        self.submission_id = submission_id
        self.collaborator = collaborator
        super().__init__(self.message)


class ValidationError(GalleryError):
    """Raised when an upload is user-correctable (bad type, size or fields)."""

    kind = ErrorKind.VALIDATION
    public_message = "Invalid submission"


class InvalidToken(GalleryError):
    """Raised when a capability token is malformed or has a bad signature."""

    kind = ErrorKind.INVALID_TOKEN
    public_message = "Invalid moderation link"


class ExpiredToken(GalleryError):
    """Raised when a capability token is past its expiry."""

    kind = ErrorKind.EXPIRED_TOKEN
    public_message = "Moderation link has expired"


class NotFound(GalleryError):
    """Raised when a submission is absent or already finalized."""

    kind = ErrorKind.NOT_FOUND
    public_message = "Submission not found"


class TransitionConflict(GalleryError):
    """Raised when another transition holds the submission lock too long."""

    kind = ErrorKind.CONFLICT
    public_message = "Submission is being moderated, try again shortly"


class UpstreamFailure(GalleryError):
    """Raised when the store, blob storage or notification channel fails."""

    kind = ErrorKind.UPSTREAM
    public_message = "Internal Server Error"


# Collaborator labels used in logs and UpstreamFailure context.
STORE = "submission store"
BLOBS = "blob store"
NOTIFICATIONS = "notification channel"
TOKENS = "token service"
