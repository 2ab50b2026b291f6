"""Pydantic schemas for conversion runs.

Defines:
- ConversionOptions: immutable options a pipeline and batch run are built with
- Run request/response models for the conversion API
- Schedule request/response models for recurring conversions
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from content_converter.core.config import Settings, get_settings
from content_converter.models.content import LinkVisibility, ShareType

VALID_SHARE_TYPES = {share_type.value for share_type in ShareType}
VALID_VISIBILITIES = {visibility.value for visibility in LinkVisibility}

DEFAULT_BATCH_SIZE = 200
MAX_BATCH_SIZE = 2000


class ConversionKind(str, Enum):
    """Kind of legacy record a run converts."""

    NOTES = "notes"
    ATTACHMENTS = "attachments"


class ConversionOptions(BaseModel):
    """Options for one conversion run. Read-only once built."""

    model_config = ConfigDict(frozen=True)

    delete_source_upon_conversion: bool = Field(
        default=False,
        description="Delete each legacy record once its file has been created",
    )
    share_private: bool = Field(
        default=False,
        description="Share files of private records with the record's parent",
    )
    convert_if_sharing_capability_disabled: bool = Field(
        default=False,
        description="Convert records whose share target type does not support sharing",
    )
    route_inbound_message_attachments_to_case: bool = Field(
        default=False,
        description="Share inbound email attachments with the email's parent",
    )
    scope_parent_ids: frozenset[str] | None = Field(
        default=None,
        description="None converts all records; an empty set converts nothing",
    )
    notification_addresses: tuple[str, ...] | None = Field(
        default=None,
        description="Addresses that receive the result email",
    )
    share_type: str = Field(default=ShareType.VIEWER.value)
    visibility: str = Field(default=LinkVisibility.ALL_USERS.value)
    run_as_principal_id: str | None = Field(
        default=None,
        description="Principal the run acts as; initial owner of created files",
    )
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE)

    @field_validator("share_type")
    @classmethod
    def validate_share_type(cls, v: str) -> str:
        """Validate share type."""
        if v not in VALID_SHARE_TYPES:
            raise ValueError(
                f"Invalid share_type '{v}'. Must be one of: {', '.join(sorted(VALID_SHARE_TYPES))}"
            )
        return v

    @field_validator("visibility")
    @classmethod
    def validate_visibility(cls, v: str) -> str:
        """Validate link visibility."""
        if v not in VALID_VISIBILITIES:
            raise ValueError(
                f"Invalid visibility '{v}'. Must be one of: {', '.join(sorted(VALID_VISIBILITIES))}"
            )
        return v

    @field_validator("notification_addresses")
    @classmethod
    def validate_addresses(cls, v: tuple[str, ...] | None) -> tuple[str, ...] | None:
        """Drop blank addresses and reject values without '@'."""
        if v is None:
            return None
        addresses = tuple(address.strip() for address in v if address.strip())
        invalid = [address for address in addresses if "@" not in address]
        if invalid:
            raise ValueError(f"Invalid notification address(es): {', '.join(invalid)}")
        return addresses

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, **overrides: Any
    ) -> "ConversionOptions":
        """Build options from CONVERSION_* settings, then apply overrides."""
        settings = settings or get_settings()
        values: dict[str, Any] = {
            "delete_source_upon_conversion": settings.conversion_delete_source_upon_conversion,
            "share_private": settings.conversion_share_private,
            "convert_if_sharing_capability_disabled": (
                settings.conversion_convert_if_sharing_capability_disabled
            ),
            "route_inbound_message_attachments_to_case": (
                settings.conversion_route_inbound_message_attachments_to_case
            ),
            "notification_addresses": tuple(settings.conversion_notification_addresses)
            or None,
            "share_type": settings.conversion_share_type,
            "visibility": settings.conversion_visibility,
            "run_as_principal_id": settings.conversion_run_as_principal_id,
            "batch_size": settings.conversion_batch_size,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


# -----------------------------------------------------------------------------
# Run API
# -----------------------------------------------------------------------------


class ConversionRunRequest(BaseModel):
    """Overrides for a one-shot run. Unset fields fall back to settings."""

    delete_source_upon_conversion: bool | None = None
    share_private: bool | None = None
    convert_if_sharing_capability_disabled: bool | None = None
    route_inbound_message_attachments_to_case: bool | None = None
    scope_parent_ids: list[str] | None = Field(
        default=None,
        description="Restrict the run to these parents; [] converts nothing",
    )
    notification_addresses: list[str] | None = None
    share_type: str | None = None
    visibility: str | None = None
    batch_size: int | None = Field(default=None, ge=1, le=MAX_BATCH_SIZE)

    def to_options(self, settings: Settings | None = None) -> ConversionOptions:
        """Merge the overrides into settings-based options."""
        overrides = self.model_dump(exclude_none=True)
        if "scope_parent_ids" in overrides:
            overrides["scope_parent_ids"] = frozenset(overrides["scope_parent_ids"])
        if "notification_addresses" in overrides:
            overrides["notification_addresses"] = tuple(overrides["notification_addresses"])
        return ConversionOptions.from_settings(settings, **overrides)


class ConversionResultResponse(BaseModel):
    """Outcome of converting one legacy record."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    source_record_id: str
    new_content_id: str | None = None
    content_document_id: str | None = None
    message: str = ""


class FailedChunkResponse(BaseModel):
    """A chunk that aborted on a store failure."""

    model_config = ConfigDict(from_attributes=True)

    chunk_index: int
    record_ids: list[str]
    error: str


class ConversionRunResponse(BaseModel):
    """Summary of a whole conversion run."""

    kind: ConversionKind
    total_records: int
    converted: int
    failed: int
    chunk_count: int
    failed_chunks: list[FailedChunkResponse]
    results: list[ConversionResultResponse]
    duration_ms: float


# -----------------------------------------------------------------------------
# Schedule API
# -----------------------------------------------------------------------------


class ConversionScheduleCreate(BaseModel):
    """Request to run a conversion on a cron schedule."""

    kind: ConversionKind
    cron: str = Field(
        ...,
        min_length=9,
        max_length=100,
        description="Five-field crontab expression, e.g. '0 2 * * *'",
    )

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, v: str) -> str:
        """Require exactly five crontab fields."""
        fields = v.split()
        if len(fields) != 5:
            raise ValueError("cron must have exactly 5 fields (minute hour day month weekday)")
        return " ".join(fields)


class ScheduledJobResponse(BaseModel):
    """A scheduled conversion job."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str | None
    trigger: str
    next_run_time: datetime | None
    pending: bool
