"""Photo submission endpoints."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, File, Form, Query, UploadFile
from pydantic import ValidationError as SchemaValidationError

from pujo_gallery.api.v1.dependencies import ServicesDep
from pujo_gallery.core.errors import ValidationError
from pujo_gallery.schemas.submission import SubmissionForm, SubmissionSummary, SubmitResponse
from pujo_gallery.services.ingestion import PhotoUpload

router = APIRouter(tags=["submissions"])


def _parse_form(fields: dict[str, Any]) -> SubmissionForm:
    """Validate the metadata fields of an upload.

    Raises:
        ValidationError: With the first offending field named
    """
    try:
        return SubmissionForm.model_validate(
            {name: value for name, value in fields.items() if value is not None}
        )
    except SchemaValidationError as err:
        first = err.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "form"
        raise ValidationError(f"Invalid {location}: {first.get('msg', 'invalid value')}") from err


@router.post("/submit", response_model=SubmitResponse)
async def submit_photo(
    services: ServicesDep,
    photo: Annotated[UploadFile, File()],
    username: Annotated[str, Form()],
    location: Annotated[str, Form()] = "",
    email: Annotated[str | None, Form()] = None,
    pandal_id: Annotated[str | None, Form(alias="pandalId")] = None,
    pandal_name: Annotated[str | None, Form(alias="pandalName")] = None,
    coordinates: Annotated[str | None, Form()] = None,
    image_type: Annotated[str | None, Form(alias="imageType")] = None,
    reddit_username: Annotated[str | None, Form(alias="redditUsername")] = None,
) -> SubmitResponse:
    """Accept a photo for moderation and return its submission id."""
    # Read one byte past the ceiling so oversize uploads are detected without buffering them.
    content = await photo.read(services.ingestion.max_upload_bytes + 1)
    upload = PhotoUpload(
        content=content,
        content_type=photo.content_type or "",
        filename=photo.filename,
    )
    services.ingestion.validate_photo(upload)

    form = _parse_form(
        {
            "username": username,
            "email": email,
            "location": location,
            "pandalId": pandal_id,
            "pandalName": pandal_name,
            "coordinates": coordinates,
            "imageType": image_type,
            "redditUsername": reddit_username,
        }
    )
    submission_id = await services.ingestion.submit(upload, form)
    return SubmitResponse(submission_id=submission_id)


@router.get("/pending", response_model=list[SubmissionSummary])
async def list_pending(
    services: ServicesDep,
    limit: int = Query(50, ge=1, le=200),
) -> list[SubmissionSummary]:
    """List submissions awaiting a decision, newest first."""
    submissions = await services.listing.pending(limit)
    return [SubmissionSummary.model_validate(s.model_dump()) for s in submissions]
