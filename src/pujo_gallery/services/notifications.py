"""Moderation cards posted to, and edited on, a Discord webhook.

The card is a convenience view for moderators, not the system of record.
Posting a card is part of ingestion and reports failure to the caller;
transitioning a card after a decision never fails the decision. Deliveries
that exhaust their retries land in the dead-letter log.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from pujo_gallery.core.errors import NOTIFICATIONS, UpstreamFailure
from pujo_gallery.core.settings import Settings, settings
from pujo_gallery.models.dead_letter import ACTION_POST
from pujo_gallery.schemas.submission import (
    ModerationOutcome,
    Submission,
    expiry_notice,
    replace_expiry_notice,
)
from pujo_gallery.services.dead_letters import DeadLetterLog
from pujo_gallery.utils.retry import retry_with_exponential_backoff

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429
HTTP_INTERNAL_SERVER_ERROR = 500
CARD_TITLE = "New Pujo Picture Submission"


class NotificationError(RuntimeError):
    """Base exception for moderation card delivery failures."""


class TransientNotificationError(NotificationError):
    """Delivery failed in a way worth retrying (rate limit or server error)."""


class RejectedNotificationError(NotificationError):
    """The webhook refused the request or answered with something unusable."""


@dataclass(frozen=True)
class NotifierConfig:
    """Immutable configuration for moderation card delivery."""

    webhook_url: str | None
    username: str
    avatar_url: str | None
    timeout_seconds: float
    max_retries: int
    retry_delay_seconds: float
    token_ttl_days: int
    moderation_base_url: str


def load_notifier_config(config: Settings | None = None) -> NotifierConfig:
    """Build configuration object from global settings."""
    config = config or settings
    return NotifierConfig(
        webhook_url=config.discord_webhook_url,
        username=config.discord_username,
        avatar_url=config.discord_avatar_url,
        timeout_seconds=config.notification_timeout_seconds,
        max_retries=config.notification_max_retries,
        retry_delay_seconds=config.notification_retry_delay_seconds,
        token_ttl_days=config.token_ttl_days,
        moderation_base_url=config.moderation_base_url,
    )


class NotificationSynchronizer:
    """Posts moderation cards and rewrites them once a decision is made."""

    def __init__(
        self,
        config: NotifierConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        dead_letters: DeadLetterLog | None = None,
    ) -> None:
        self.config = config or load_notifier_config()
        self.dead_letters = dead_letters or DeadLetterLog()
        self._client = client
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.config.webhook_url)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def approve_url(self, token: str) -> str:
        return f"{self.config.moderation_base_url}/approve/{token}"

    def reject_url(self, token: str) -> str:
        return f"{self.config.moderation_base_url}/disapprove/{token}"

    def build_card(self, submission: Submission, token: str) -> dict[str, Any]:
        """Return the webhook body for a pending submission."""
        coordinates = (
            f"{submission.coordinates[0]}, {submission.coordinates[1]}"
            if submission.coordinates
            else "unknown"
        )
        description = "\n".join(
            [
                f"Location: {submission.location or '-'}",
                f"Coordinates: {coordinates}",
                f"Pandal: {submission.pandal_name or '-'}",
                f"Image Type: {submission.image_type.value}",
                f"ID: {submission.id}",
                f"pandalId: {submission.pandal_id}",
                f"Reddit Username: {submission.reddit_username or '-'}",
            ]
        )
        body: dict[str, Any] = {
            "content": (
                f"New submission from @{submission.username}!\n"
                f"{expiry_notice(self.config.token_ttl_days)}"
            ),
            "embeds": [
                {
                    "title": CARD_TITLE,
                    "description": description,
                    "image": {"url": submission.photo_url},
                    "fields": [
                        {
                            "name": "Approve",
                            "value": f"[yah]({self.approve_url(token)})",
                            "inline": True,
                        },
                        {
                            "name": "Disapprove",
                            "value": f"[nah]({self.reject_url(token)})",
                            "inline": True,
                        },
                    ],
                }
            ],
            "username": self.config.username,
        }
        if self.config.avatar_url:
            body["avatar_url"] = self.config.avatar_url
        return body

    async def post(self, submission: Submission, token: str) -> str:
        """Post the pending card and return the message reference.

        Raises:
            UpstreamFailure: If the card could not be delivered within the retry budget
        """
        if not self.enabled:
            logger.warning(
                "No moderation webhook configured; card for %s not posted", submission.id
            )
            return ""

        try:
            message_ref = await self.deliver(submission, token)
        except (NotificationError, httpx.HTTPError) as err:
            await self.dead_letters.record(
                submission_id=submission.id,
                action=ACTION_POST,
                error=str(err) or type(err).__name__,
                payload={"submissionId": submission.id},
            )
            raise UpstreamFailure(
                "Moderation card could not be posted",
                submission_id=submission.id,
                collaborator=NOTIFICATIONS,
            ) from err

        logger.info("Posted moderation card %s for submission %s", message_ref, submission.id)
        return message_ref

    async def transition(
        self,
        message_ref: str,
        outcome: ModerationOutcome,
        *,
        submission_id: str,
    ) -> bool:
        """Rewrite a card to its terminal rendering.

        Never raises: the decision it reflects is already committed.

        Returns:
            True if the card now shows the outcome, False if it was dead-lettered or skipped
        """
        if not self.enabled:
            return False
        if not message_ref:
            logger.warning(
                "Submission %s has no moderation card reference; %s marker not applied",
                submission_id,
                outcome.marker,
            )
            return False

        try:
            await self.rewrite(message_ref, outcome, submission_id=submission_id)
        except (NotificationError, httpx.HTTPError) as err:
            await self.dead_letters.record(
                submission_id=submission_id,
                action=outcome.value,
                error=str(err) or type(err).__name__,
                message_ref=message_ref,
            )
            return False

        logger.info("Moderation card %s marked %s", message_ref, outcome.marker)
        return True

    async def deliver(self, submission: Submission, token: str) -> str:
        """Post the card with retries and no dead-lettering.

        Raises:
            NotificationError: If the webhook refused the card or kept failing
            httpx.HTTPError: If the webhook stayed unreachable
        """
        body = self.build_card(submission, token)
        return await retry_with_exponential_backoff(
            lambda: self._post_once(body),
            max_retries=self.config.max_retries,
            initial_delay=self.config.retry_delay_seconds,
            exceptions=(httpx.TransportError, TransientNotificationError),
            description=f"Moderation card post for {submission.id}",
        )

    async def rewrite(
        self,
        message_ref: str,
        outcome: ModerationOutcome,
        *,
        submission_id: str,
    ) -> None:
        """Edit a card to its terminal rendering with retries and no dead-lettering."""
        await retry_with_exponential_backoff(
            lambda: self._transition_once(message_ref, outcome),
            max_retries=self.config.max_retries,
            initial_delay=self.config.retry_delay_seconds,
            exceptions=(httpx.TransportError, TransientNotificationError),
            description=f"Moderation card {outcome.value} edit for {submission_id}",
        )

    async def _post_once(self, body: dict[str, Any]) -> str:
        client = await self._ensure_client()
        response = await client.post(
            self.config.webhook_url or "",
            params={"wait": "true"},
            json=body,
        )
        self._check_response(response)
        message_id = self._json(response).get("id")
        if not message_id:
            raise RejectedNotificationError("Webhook response carried no message id")
        return str(message_id)

    async def _transition_once(self, message_ref: str, outcome: ModerationOutcome) -> None:
        client = await self._ensure_client()
        message_url = f"{self.config.webhook_url}/messages/{message_ref}"

        response = await client.get(message_url, headers={"Accept": "application/json"})
        self._check_response(response)
        message = self._json(response)

        embeds = message.get("embeds") or []
        for embed in embeds:
            # Links are consumed once a decision exists; absent fields are fine.
            embed.pop("fields", None)
        content = replace_expiry_notice(message.get("content") or "", outcome.marker)

        response = await client.patch(message_url, json={"content": content, "embeds": embeds})
        self._check_response(response)

    @staticmethod
    def _check_response(response: httpx.Response) -> None:
        status = response.status_code
        if status == HTTP_TOO_MANY_REQUESTS or status >= HTTP_INTERNAL_SERVER_ERROR:
            raise TransientNotificationError(f"Webhook responded with {status}")
        if status >= 400:
            raise RejectedNotificationError(f"Webhook responded with {status}")

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as err:
            raise RejectedNotificationError("Webhook returned a non-JSON body") from err
        if not isinstance(payload, dict):
            raise RejectedNotificationError("Webhook returned an unexpected body")
        return payload
