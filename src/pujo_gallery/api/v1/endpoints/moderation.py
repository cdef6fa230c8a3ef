"""Moderation endpoints opened from the links on a moderation card.

Both links carry the same capability token; the path decides the action.
"""

from __future__ import annotations

from fastapi import APIRouter

from pujo_gallery.api.v1.dependencies import ServicesDep
from pujo_gallery.schemas.submission import MessageResponse

router = APIRouter(tags=["moderation"])


@router.get("/approve/{token}", response_model=MessageResponse)
async def approve_submission(token: str, services: ServicesDep) -> MessageResponse:
    """Approve the submission named by the token."""
    result = await services.moderation.approve(token)
    return MessageResponse(message=result.message)


@router.get("/disapprove/{token}", response_model=MessageResponse)
async def disapprove_submission(token: str, services: ServicesDep) -> MessageResponse:
    """Reject the submission named by the token and delete it."""
    result = await services.moderation.reject(token)
    return MessageResponse(message=result.message)
