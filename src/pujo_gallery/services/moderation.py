# src/pujo_gallery/services/moderation.py
"""Moderation state machine driven by capability-token clicks.

States: pending -> approved (terminal) or pending -> rejected (terminal, the
record and both blobs are destroyed). Each transition runs under the
per-submission lock and re-reads the record inside it, so at most one
terminal transition is ever committed. The moderation card is updated after
the commit and its failure never undoes or blocks the decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pujo_gallery.core.errors import NotFound
from pujo_gallery.schemas.submission import ModerationOutcome, SubmissionStatus
from pujo_gallery.services.blobs import BlobGateway
from pujo_gallery.services.notifications import NotificationSynchronizer
from pujo_gallery.services.store import SubmissionStore
from pujo_gallery.services.tokens import CapabilityTokenService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModerationResult:
    """Outcome of a moderation click."""

    submission_id: str
    outcome: ModerationOutcome
    card_updated: bool
    repeated: bool = False

    @property
    def message(self) -> str:
        if self.outcome is ModerationOutcome.APPROVED:
            return "Submission approved successfully"
        return "Submission disapproved and deleted successfully"


class ModerationActionHandler:
    """Applies approve/reject decisions across store, blobs and the card."""

    def __init__(
        self,
        store: SubmissionStore,
        blobs: BlobGateway,
        tokens: CapabilityTokenService,
        notifier: NotificationSynchronizer,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.tokens = tokens
        self.notifier = notifier

    async def approve(self, token: str) -> ModerationResult:
        """Approve the submission named by `token`.

        Idempotent: approving an approved submission re-applies the queue and
        set bookkeeping and the card rendering, and succeeds.

        Raises:
            InvalidToken: If the token is forged or malformed
            ExpiredToken: If the token is past its expiry
            NotFound: If the submission does not exist (e.g. it was rejected)
            UpstreamFailure: If the store fails; safe to retry
        """
        submission_id = self.tokens.verify(token)

        async with self.store.transition_lock(submission_id):
            submission = await self.store.get(submission_id)
            repeated = submission.status is SubmissionStatus.APPROVED
            if not repeated:
                submission.status = SubmissionStatus.APPROVED
                await self.store.put(submission)
            await self.store.remove_pending(submission_id)
            await self.store.add_approved(submission.pandal_id, submission_id)

        logger.info(
            "Submission %s approved for pandal %s%s",
            submission_id,
            submission.pandal_id,
            " (repeat click)" if repeated else "",
        )
        card_updated = await self.notifier.transition(
            submission.notification_ref,
            ModerationOutcome.APPROVED,
            submission_id=submission_id,
        )
        return ModerationResult(
            submission_id=submission_id,
            outcome=ModerationOutcome.APPROVED,
            card_updated=card_updated,
            repeated=repeated,
        )

    async def reject(self, token: str) -> ModerationResult:
        """Reject the submission named by `token`, destroying its record and blobs.

        Single-shot: once it succeeds the record is gone and any further click
        on the same token fails with NotFound. A submission that was already
        approved is final and also reports NotFound.

        Raises:
            InvalidToken: If the token is forged or malformed
            ExpiredToken: If the token is past its expiry
            NotFound: If the submission is absent or already approved
            UpstreamFailure: If blob deletion fails (nothing was changed) or
                the record delete fails (the record is still pending and queued,
                and the click can be repeated)
        """
        submission_id = self.tokens.verify(token)

        async with self.store.transition_lock(submission_id):
            submission = await self.store.get(submission_id)
            if submission.status is not SubmissionStatus.PENDING:
                raise NotFound("Submission already finalized", submission_id=submission_id)

            # Blobs go first so a failure leaves the record untouched and retryable.
            # The record goes before its queue entry: a stale queue id is dropped
            # by the pending listing, a pending record missing from the queue is not.
            await self.blobs.delete(submission_id)
            await self.blobs.delete(submission.archive_key)
            await self.store.delete(submission_id)
            await self.store.remove_pending(submission_id)

        logger.info("Submission %s rejected and deleted", submission_id)
        card_updated = await self.notifier.transition(
            submission.notification_ref,
            ModerationOutcome.REJECTED,
            submission_id=submission_id,
        )
        return ModerationResult(
            submission_id=submission_id,
            outcome=ModerationOutcome.REJECTED,
            card_updated=card_updated,
        )
