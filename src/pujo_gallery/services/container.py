"""Process-wide service wiring with an explicit open/close lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pujo_gallery.core.settings import Settings, settings
from pujo_gallery.services.blobs import BlobGateway, create_s3_client, load_blob_config
from pujo_gallery.services.dead_letters import DeadLetterLog
from pujo_gallery.services.ingestion import IngestionPipeline
from pujo_gallery.services.listing import SubmissionListing
from pujo_gallery.services.moderation import ModerationActionHandler
from pujo_gallery.services.notifications import NotificationSynchronizer, load_notifier_config
from pujo_gallery.services.store import SubmissionStore, create_redis_client
from pujo_gallery.services.tokens import CapabilityTokenService

logger = logging.getLogger(__name__)


@dataclass
class GalleryServices:
    """Every component of the submission lifecycle, sharing pooled clients."""

    store: SubmissionStore
    blobs: BlobGateway
    tokens: CapabilityTokenService
    notifier: NotificationSynchronizer
    ingestion: IngestionPipeline
    moderation: ModerationActionHandler
    listing: SubmissionListing

    @classmethod
    def from_components(
        cls,
        store: SubmissionStore,
        blobs: BlobGateway,
        tokens: CapabilityTokenService,
        notifier: NotificationSynchronizer,
        *,
        max_upload_bytes: int | None = None,
    ) -> GalleryServices:
        """Assemble the pipeline and handler around already-built components."""
        return cls(
            store=store,
            blobs=blobs,
            tokens=tokens,
            notifier=notifier,
            ingestion=IngestionPipeline(
                store, blobs, tokens, notifier, max_upload_bytes=max_upload_bytes
            ),
            moderation=ModerationActionHandler(store, blobs, tokens, notifier),
            listing=SubmissionListing(store),
        )

    async def aclose(self) -> None:
        """Close every pooled client."""
        await self.notifier.aclose()
        await self.store.aclose()
        self.blobs.close()
        logger.info("Service clients closed")


def build_services(config: Settings | None = None) -> GalleryServices:
    """Create the pooled clients and wire the components from settings."""
    config = config or settings
    store = SubmissionStore(create_redis_client(config), config)
    blobs = BlobGateway(create_s3_client(config), load_blob_config(config))
    notifier = NotificationSynchronizer(
        load_notifier_config(config),
        dead_letters=DeadLetterLog(),
    )
    logger.info(
        "Service clients ready (bucket=%s, webhook=%s)",
        config.s3_bucket_name,
        "configured" if notifier.enabled else "disabled",
    )
    return GalleryServices.from_components(
        store,
        blobs,
        CapabilityTokenService(config),
        notifier,
        max_upload_bytes=config.max_upload_bytes,
    )
