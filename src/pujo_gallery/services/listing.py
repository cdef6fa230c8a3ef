"""Read models over the pending queue and the approved-location sets."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from pujo_gallery.core.errors import NotFound
from pujo_gallery.schemas.submission import Submission
from pujo_gallery.services.store import SubmissionStore

logger = logging.getLogger(__name__)

_EPOCH = datetime.fromtimestamp(0, UTC)


class SubmissionListing:
    """Moderator queue view and public per-pandal gallery view."""

    def __init__(self, store: SubmissionStore) -> None:
        self.store = store

    async def pending(self, limit: int = 50) -> list[Submission]:
        """Return pending submissions, newest first.

        Queue entries whose record is gone or no longer pending are dropped
        from the queue as they are found.
        """
        submissions: list[Submission] = []
        for submission_id in await self.store.pending_ids(limit):
            try:
                submission = await self.store.get(submission_id)
            except NotFound:
                submission = None
            if submission is None or not submission.is_pending:
                logger.warning("Dropping stale pending-queue entry %s", submission_id)
                await self.store.remove_pending(submission_id)
                continue
            submissions.append(submission)
        return submissions

    async def approved_for(self, pandal_id: str) -> list[Submission]:
        """Return approved submissions for a pandal, oldest first."""
        submissions: list[Submission] = []
        for submission_id in await self.store.approved_ids(pandal_id):
            try:
                submissions.append(await self.store.get(submission_id))
            except NotFound:
                logger.warning(
                    "Approved set for %s references missing submission %s",
                    pandal_id,
                    submission_id,
                )
        submissions.sort(key=lambda s: (s.created_at or _EPOCH, s.id))
        return submissions
