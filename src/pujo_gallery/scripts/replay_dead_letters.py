# src/pujo_gallery/scripts/replay_dead_letters.py
"""
Cron job to replay moderation card deliveries that exhausted their retries.

This script should be run periodically to:
1. Re-post cards for submissions that are still pending
2. Store card references that a concurrent transition kept off the record
3. Re-apply the approved/rejected rendering to decided cards
4. Abandon letters that keep failing
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import Counter
from collections.abc import Callable

import httpx
from sqlalchemy.orm import Session

from pujo_gallery.core.errors import GalleryError, NotFound
from pujo_gallery.core.settings import settings
from pujo_gallery.db.session import SessionLocal
from pujo_gallery.models import NotificationDeadLetter
from pujo_gallery.models.dead_letter import (
    ACTION_ATTACH,
    ACTION_POST,
    DEAD_LETTER_ABANDONED,
    DEAD_LETTER_DELIVERED,
)
from pujo_gallery.schemas.submission import ModerationOutcome
from pujo_gallery.services.container import GalleryServices, build_services
from pujo_gallery.services.dead_letters import DeadLetterLog
from pujo_gallery.services.notifications import NotificationError

logger = logging.getLogger(__name__)

BATCH_SIZE = 50


async def replay_letter(services: GalleryServices, letter: NotificationDeadLetter) -> None:
    """Re-attempt one delivery.

    Raises:
        NotificationError: If the webhook refused the delivery again
        httpx.HTTPError: If the webhook is still unreachable
        GalleryError: If the submission store could not be read or a transition
            still holds the submission lock
    """
    notifier = services.notifier
    if letter.action == ACTION_POST:
        payload = json.loads(letter.payload or "{}")
        submission_id = payload.get("submissionId", letter.submission_id)
        try:
            submission = await services.store.get(submission_id)
        except NotFound:
            logger.info("Submission %s is gone; card post no longer needed", submission_id)
            return
        if not submission.is_pending:
            logger.info("Submission %s already decided; card post skipped", submission_id)
            return
        token = services.tokens.issue(submission_id)
        message_ref = await notifier.deliver(submission, token)
        await services.ingestion.attach_notification_ref(submission_id, message_ref)
        return

    if letter.action == ACTION_ATTACH:
        await services.ingestion.attach_notification_ref(
            letter.submission_id, letter.message_ref, dead_letter_on_conflict=False
        )
        return

    outcome = ModerationOutcome(letter.action)
    await notifier.rewrite(letter.message_ref, outcome, submission_id=letter.submission_id)


async def replay_dead_letters(
    services: GalleryServices,
    session_factory: Callable[[], Session] = SessionLocal,
    *,
    max_replays: int | None = None,
    limit: int = BATCH_SIZE,
) -> Counter[str]:
    """Replay pending dead letters and record their new status.

    Returns:
        Count of letters per resulting status
    """
    max_replays = max_replays if max_replays is not None else settings.dead_letter_max_replays
    outcomes: Counter[str] = Counter()

    with session_factory() as db:
        for letter in DeadLetterLog(session_factory).pending(db, limit=limit):
            try:
                await replay_letter(services, letter)
            except (NotificationError, httpx.HTTPError, GalleryError, ValueError) as err:
                letter.retry_count += 1
                letter.last_error = (str(err) or type(err).__name__)[:2000]
                if letter.retry_count >= max_replays:
                    letter.status = DEAD_LETTER_ABANDONED
                    logger.error(
                        "Abandoning %s delivery for submission %s after %d replays: %s",
                        letter.action,
                        letter.submission_id,
                        letter.retry_count,
                        letter.last_error,
                    )
                else:
                    logger.warning(
                        "Replay %d of %s delivery for submission %s failed: %s",
                        letter.retry_count,
                        letter.action,
                        letter.submission_id,
                        letter.last_error,
                    )
            else:
                letter.status = DEAD_LETTER_DELIVERED
                logger.info(
                    "Replayed %s delivery for submission %s", letter.action, letter.submission_id
                )
            outcomes[letter.status] += 1
            db.commit()

    return outcomes


async def main() -> None:
    services = build_services(settings)
    try:
        outcomes = await replay_dead_letters(services)
    finally:
        await services.aclose()
    print(f"Replayed dead letters: {dict(outcomes)}")


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level.upper())
    asyncio.run(main())
