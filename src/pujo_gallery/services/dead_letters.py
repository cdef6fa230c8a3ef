"""Persistence of notification deliveries that could not be completed."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pujo_gallery.db.session import SessionLocal
from pujo_gallery.models import NotificationDeadLetter
from pujo_gallery.models.dead_letter import DEAD_LETTER_PENDING

logger = logging.getLogger(__name__)


class DeadLetterLog:
    """Records failed card deliveries so they can be replayed later."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    async def record(
        self,
        *,
        submission_id: str,
        action: str,
        error: str,
        message_ref: str = "",
        payload: Mapping[str, Any] | None = None,
    ) -> None:
        """Append a dead letter. Storage failures are logged, never raised."""
        await asyncio.to_thread(
            self._record_sync,
            submission_id,
            action,
            error,
            message_ref,
            dict(payload or {}),
        )

    def _record_sync(
        self,
        submission_id: str,
        action: str,
        error: str,
        message_ref: str,
        payload: dict[str, Any],
    ) -> None:
        letter = NotificationDeadLetter(
            submission_id=submission_id,
            action=action,
            message_ref=message_ref,
            payload=json.dumps(payload, sort_keys=True),
            last_error=error[:2000],
            status=DEAD_LETTER_PENDING,
            retry_count=0,
        )
        try:
            with self._session_factory() as db:
                db.add(letter)
                db.commit()
        except SQLAlchemyError:
            logger.exception(
                "Could not write dead letter for submission %s (action=%s, ref=%s)",
                submission_id,
                action,
                message_ref,
            )
            return
        logger.error(
            "Dead-lettered %s notification for submission %s: %s",
            action,
            submission_id,
            error,
        )

    def pending(self, db: Session, limit: int = 50) -> list[NotificationDeadLetter]:
        """Return pending letters, oldest first."""
        return (
            db.query(NotificationDeadLetter)
            .filter(NotificationDeadLetter.status == DEAD_LETTER_PENDING)
            .order_by(NotificationDeadLetter.id)
            .limit(limit)
            .all()
        )
