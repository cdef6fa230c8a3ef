"""Submission record and form schemas.

The persisted record uses camelCase keys so records written by the legacy
service stay readable. Records carry a `schemaVersion`; older versions are
migrated on read by `migrate_record`.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = 2
NEW_PANDAL = "new_pandal"
ARCHIVE_PREFIX = "original/"

_USERNAME_PATTERN = r"^[A-Za-z0-9_ ]+$"
_EXPIRY_NOTICE = re.compile(r"Request expires in \d+ days?")


class ImageType(str, Enum):
    """Category tag chosen by the uploader."""

    PANDAL = "pandal"
    ATMOSPHERE = "atmosphere"
    IDOL = "idol"
    PERFORMANCE = "performance"
    FOOD = "food"
    OTHER = "other"


class SubmissionStatus(str, Enum):
    """Stored status. Rejected submissions are deleted, never stored."""

    PENDING = "pending"
    APPROVED = "approved"


class ModerationOutcome(str, Enum):
    """Terminal outcome of a moderation click."""

    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def marker(self) -> str:
        """Text that replaces the expiry notice on the moderation card."""
        return f"[{self.value.upper()}]"


def archive_key_for(submission_id: str) -> str:
    """Return the archival blob key for a submission."""
    return f"{ARCHIVE_PREFIX}{submission_id}"


def expiry_notice(days: int) -> str:
    """Return the expiry notice line shown on a pending card."""
    unit = "day" if days == 1 else "days"
    return f"Request expires in {days} {unit}"


def replace_expiry_notice(content: str, marker: str) -> str:
    """Swap the expiry notice for a terminal marker; no-op if already replaced."""
    return _EXPIRY_NOTICE.sub(marker, content)


def _empty_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _parse_coordinates(value: Any) -> Any:
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as err:
            raise ValueError("coordinates must be a JSON [lat, lng] pair") from err
    return value


class Submission(BaseModel):
    """A user-contributed photo entry awaiting or having received a decision."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    schema_version: int = SCHEMA_VERSION
    id: str
    username: str
    email: str | None = None
    reddit_username: str | None = None
    location: str = ""
    pandal_id: str = NEW_PANDAL
    pandal_name: str = ""
    coordinates: tuple[float, float] | None = None
    image_type: ImageType = ImageType.OTHER
    photo_url: str
    archive_key: str
    status: SubmissionStatus = SubmissionStatus.PENDING
    notification_ref: str = ""
    created_at: datetime | None = None

    @field_validator("email", "reddit_username", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        return _empty_to_none(value)

    @field_validator("coordinates", mode="before")
    @classmethod
    def _coordinates_from_json(cls, value: Any) -> Any:
        return _parse_coordinates(value)

    @property
    def is_pending(self) -> bool:
        return self.status is SubmissionStatus.PENDING

    def to_json(self) -> str:
        """Serialize to the persisted camelCase layout."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> Submission:
        """Parse a persisted record, migrating older schema versions."""
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("submission record must be a JSON object")
        return cls.model_validate(migrate_record(data))


def migrate_record(data: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a raw record dict to the current schema version.

    Version 1 is the layout written by the original service: no
    `schemaVersion`, `status` of "unapproved" and the card reference stored
    as `discordMessageId`.

    Raises:
        ValueError: If the record claims a version newer than this code knows
    """
    version = int(data.get("schemaVersion", 1))
    if version > SCHEMA_VERSION:
        raise ValueError(f"unsupported submission schema version {version}")

    migrated = dict(data)
    if version < 2:
        if migrated.get("status") == "unapproved":
            migrated["status"] = SubmissionStatus.PENDING.value
        legacy_ref = migrated.pop("discordMessageId", None)
        migrated.setdefault("notificationRef", legacy_ref or "")
        migrated.setdefault("archiveKey", archive_key_for(str(migrated.get("id", ""))))
        migrated["schemaVersion"] = 2
    return migrated


class SubmissionForm(BaseModel):
    """Validated metadata of an upload, as posted by the browser form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    username: str = Field(..., min_length=1, max_length=20, pattern=_USERNAME_PATTERN)
    email: str | None = Field(None, max_length=254)
    reddit_username: str | None = Field(None, max_length=64)
    location: str = Field("", max_length=200)
    pandal_id: str = Field(NEW_PANDAL, max_length=128)
    pandal_name: str | None = Field(None, max_length=200)
    coordinates: tuple[float, float] | None = None
    image_type: ImageType = ImageType.PANDAL

    @field_validator("email", "reddit_username", "pandal_name", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        return _empty_to_none(value)

    @field_validator("pandal_id", mode="before")
    @classmethod
    def _default_pandal(cls, value: Any) -> Any:
        return _empty_to_none(value) or NEW_PANDAL

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str | None) -> str | None:
        if value is not None and "@" not in value:
            raise ValueError("email address is not valid")
        return value

    @field_validator("coordinates", mode="before")
    @classmethod
    def _coordinates_from_json(cls, value: Any) -> Any:
        return _parse_coordinates(value)

    @field_validator("coordinates")
    @classmethod
    def _check_coordinates(
        cls, value: tuple[float, float] | None
    ) -> tuple[float, float] | None:
        if value is None:
            return value
        lat, lng = value
        if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
            raise ValueError("coordinates are out of range")
        return value

    @model_validator(mode="after")
    def _require_location(self) -> SubmissionForm:
        self.location = self.location.strip()
        if not self.location and self.pandal_id == NEW_PANDAL:
            raise ValueError("a location or a pandal must be given")
        if self.pandal_name is None:
            self.pandal_name = self.location
        return self


class SubmitResponse(BaseModel):
    """Response returned after a successful upload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    submission_id: str


class MessageResponse(BaseModel):
    """Response returned after a successful moderation click."""

    message: str


class SubmissionSummary(BaseModel):
    """Public view of a submission, without contact details."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    username: str
    location: str
    pandal_id: str
    pandal_name: str
    coordinates: tuple[float, float] | None
    image_type: ImageType
    photo_url: str
    status: SubmissionStatus
