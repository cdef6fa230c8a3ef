"""Public gallery of approved photos per pandal."""

from __future__ import annotations

from fastapi import APIRouter

from pujo_gallery.api.v1.dependencies import ServicesDep
from pujo_gallery.schemas.submission import SubmissionSummary

router = APIRouter(prefix="/pandals", tags=["pandals"])


@router.get("/{pandal_id}/photos", response_model=list[SubmissionSummary])
async def list_pandal_photos(pandal_id: str, services: ServicesDep) -> list[SubmissionSummary]:
    """List approved photos of a pandal, oldest first."""
    submissions = await services.listing.approved_for(pandal_id)
    return [SubmissionSummary.model_validate(s.model_dump()) for s in submissions]
