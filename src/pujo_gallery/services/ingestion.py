"""Media ingestion: validate, watermark, store both variants, record, announce."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from jose import JWTError

from pujo_gallery.core.errors import (
    TOKENS,
    NotFound,
    TransitionConflict,
    UpstreamFailure,
    ValidationError,
)
from pujo_gallery.core.settings import settings
from pujo_gallery.models.dead_letter import ACTION_ATTACH
from pujo_gallery.schemas.submission import (
    ModerationOutcome,
    Submission,
    SubmissionForm,
    SubmissionStatus,
    archive_key_for,
)
from pujo_gallery.services.blobs import BlobGateway
from pujo_gallery.services.notifications import NotificationSynchronizer
from pujo_gallery.services.store import SubmissionStore
from pujo_gallery.services.tokens import CapabilityTokenService
from pujo_gallery.services.watermark import apply_watermark

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhotoUpload:
    """Raw upload as received from the client."""

    content: bytes
    content_type: str
    filename: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


class IngestionPipeline:
    """Turns an upload into a pending submission with a moderation card."""

    def __init__(
        self,
        store: SubmissionStore,
        blobs: BlobGateway,
        tokens: CapabilityTokenService,
        notifier: NotificationSynchronizer,
        *,
        max_upload_bytes: int | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.tokens = tokens
        self.notifier = notifier
        self.max_upload_bytes = max_upload_bytes or settings.max_upload_bytes
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    def validate_photo(self, photo: PhotoUpload) -> None:
        """Reject uploads that are not images or exceed the size ceiling.

        Raises:
            ValidationError: If the upload is unusable
        """
        if not photo.content_type.lower().startswith("image/"):
            raise ValidationError("Invalid file type")
        if photo.size == 0:
            raise ValidationError("File is empty")
        if photo.size > self.max_upload_bytes:
            raise ValidationError("File is too large")

    async def submit(self, photo: PhotoUpload, form: SubmissionForm) -> str:
        """Ingest one upload and return the new submission id.

        Nothing is written until the upload is validated and the watermarked
        copy is encoded. Blob writes are undone on failure; once the record is
        committed it stays, even if announcing it fails.

        Raises:
            ValidationError: If the upload or its metadata is unusable
            UpstreamFailure: If a storage or notification call fails
        """
        self.validate_photo(photo)

        submission_id = self._new_id()
        watermarked = await asyncio.to_thread(
            apply_watermark, photo.content, form.username, submission_id
        )

        public_key = submission_id
        archive_key = archive_key_for(submission_id)
        photo_url = await self._write_blobs(
            submission_id, public_key, watermarked.data, archive_key, photo
        )

        submission = Submission(
            id=submission_id,
            username=form.username,
            email=form.email,
            reddit_username=form.reddit_username,
            location=form.location,
            pandal_id=form.pandal_id,
            pandal_name=form.pandal_name or form.location,
            coordinates=form.coordinates,
            image_type=form.image_type,
            photo_url=photo_url,
            archive_key=archive_key,
            status=SubmissionStatus.PENDING,
            created_at=datetime.now(UTC),
        )
        await self._commit_record(submission, (public_key, archive_key))
        logger.info(
            "Submission %s from %s stored as pending (pandal=%s)",
            submission_id,
            submission.username,
            submission.pandal_id,
        )

        # From here on the submission exists; failures are reported, not rolled back.
        try:
            token = self.tokens.issue(submission_id)
        except JWTError as err:
            logger.error("Token issue failed for submission %s: %s", submission_id, err)
            raise UpstreamFailure(
                "Moderation token could not be issued",
                submission_id=submission_id,
                collaborator=TOKENS,
            ) from err

        message_ref = await self.notifier.post(submission, token)
        if message_ref:
            await self.attach_notification_ref(submission_id, message_ref)
        return submission_id

    async def _write_blobs(
        self,
        submission_id: str,
        public_key: str,
        public_body: bytes,
        archive_key: str,
        photo: PhotoUpload,
    ) -> str:
        written: list[str] = []
        try:
            photo_url = await self.blobs.put_public(public_key, public_body)
            written.append(public_key)
            await self.blobs.put_archive(archive_key, photo.content, photo.content_type)
            written.append(archive_key)
        except UpstreamFailure as err:
            err.submission_id = submission_id
            await self._discard_blobs(submission_id, written)
            raise
        return photo_url

    async def _commit_record(self, submission: Submission, blob_keys: Iterable[str]) -> None:
        try:
            await self.store.put(submission)
        except UpstreamFailure:
            await self._discard_blobs(submission.id, blob_keys)
            raise

        try:
            await self.store.push_pending(submission.id)
        except UpstreamFailure:
            # A record outside the queue would be invisible to moderators.
            try:
                await self.store.delete(submission.id)
            except UpstreamFailure:
                logger.error("Could not remove unqueued record %s", submission.id)
            await self._discard_blobs(submission.id, blob_keys)
            raise

    async def _discard_blobs(self, submission_id: str, keys: Iterable[str]) -> None:
        for key in keys:
            try:
                await self.blobs.delete(key)
            except UpstreamFailure:
                logger.warning(
                    "Cleanup of blob %s for failed submission %s did not complete",
                    key,
                    submission_id,
                )

    async def attach_notification_ref(
        self,
        submission_id: str,
        message_ref: str,
        *,
        dead_letter_on_conflict: bool = True,
    ) -> None:
        """Store the card reference on the record.

        The record is re-read under the transition lock so an early decision is
        never overwritten. If the submission was already decided, the card is
        moved to that outcome instead of being left with live links. A reference
        that cannot be stored because a transition holds the lock is written to
        the dead-letter log for the replay job.

        Raises:
            TransitionConflict: If the lock is held and `dead_letter_on_conflict`
                is False
        """
        try:
            async with self.store.transition_lock(submission_id):
                current = await self.store.get(submission_id)
                current.notification_ref = message_ref
                await self.store.put(current)
        except NotFound:
            logger.info(
                "Submission %s was rejected before its card reference was stored",
                submission_id,
            )
            await self.notifier.transition(
                message_ref, ModerationOutcome.REJECTED, submission_id=submission_id
            )
            return
        except TransitionConflict as err:
            if not dead_letter_on_conflict:
                raise
            logger.warning(
                "Card reference %s for submission %s not stored: transition in progress",
                message_ref,
                submission_id,
            )
            await self.notifier.dead_letters.record(
                submission_id=submission_id,
                action=ACTION_ATTACH,
                error=str(err),
                message_ref=message_ref,
            )
            return

        if not current.is_pending:
            await self.notifier.transition(
                message_ref, ModerationOutcome.APPROVED, submission_id=submission_id
            )
