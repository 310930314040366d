"""
Pydantic request and response models for the Meetup Calendar API.
"""

from datetime import date, time
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from meetup_calendar.services.recurrence import Occurrence


# =============================================================================
# Request Models
# =============================================================================


# Override fields with their own typed request attributes
OVERRIDE_FIELD_NAMES = (
    "title",
    "description",
    "start_time",
    "end_time",
    "location_name",
    "location_address",
    "category",
)


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone '{value}'")
    return value


class CreateSeriesRequest(BaseModel):
    """Request to create a recurring series."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    rrule: str = Field(
        ...,
        description="Recurrence rule text",
        examples=["FREQ=MONTHLY;BYDAY=TU;BYSETPOS=1"],
    )
    start_date: date = Field(..., description="Date of the base occurrence")
    end_date: Optional[date] = Field(None, description="Last date instances may occur on")
    start_time: time
    end_time: time
    timezone: Optional[str] = Field(None, description="IANA timezone (defaults to the configured one)")
    status: str = Field(default="published", pattern="^(draft|published)$")
    exdates: list[str] = Field(default_factory=list, description="Excluded dates (YYYY-MM-DD)")
    category: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    max_participants: Optional[int] = Field(None, ge=1)
    requires_registration: bool = False
    tags: list[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def validate_title_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v.strip()

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


class PreviewRequest(BaseModel):
    """Preview instances of an unsaved rule."""

    rrule: str
    start_date: date
    start_time: time
    end_time: time
    timezone: Optional[str] = None
    exdates: list[str] = Field(default_factory=list)
    title: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


class ValidateRuleRequest(BaseModel):
    """Rule text to validate."""

    rrule: str
    locale: Optional[str] = Field(None, description="Description language ('en' or 'de')")


class ExceptionDateRequest(BaseModel):
    """Exception date to add. Date format is checked by the resolver."""

    date: Optional[str] = Field(None, examples=["2025-01-14"])


class OverrideRequest(BaseModel):
    """
    CHANGED override for one instance.

    Omitted fields keep the generated value.
    """

    instance_date: Optional[str] = Field(None, examples=["2025-01-14"])
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    category: Optional[str] = None
    extra_fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator("extra_fields")
    @classmethod
    def validate_extra_fields(cls, v: dict[str, Any]) -> dict[str, Any]:
        named = sorted(set(v) & set(OVERRIDE_FIELD_NAMES))
        if named:
            raise ValueError(f"Use the top-level fields for: {', '.join(named)}")
        return v

    def override_fields(self) -> dict[str, Any]:
        """Fields actually supplied by the caller."""
        fields = dict(self.extra_fields)
        for key in OVERRIDE_FIELD_NAMES:
            value = getattr(self, key)
            if value is not None:
                fields[key] = value
        return fields


class CancelInstanceRequest(BaseModel):
    """Cancel one instance."""

    instance_date: Optional[str] = Field(None, examples=["2025-01-14"])
    reason: Optional[str] = Field(None, max_length=500)


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database_connected: bool


class OccurrenceResponse(BaseModel):
    """A generated instance with resolved fields."""

    model_config = ConfigDict(extra="allow")

    id: str
    parent_event_id: str
    instance_date: str
    start_datetime: str
    end_datetime: str
    title: Optional[str] = None
    description: Optional[str] = None
    is_recurring_instance: bool = True
    is_cancelled: bool = False
    cancellation_reason: Optional[str] = None
    override_type: Optional[str] = None

    @classmethod
    def from_occurrence(cls, occurrence: Occurrence) -> "OccurrenceResponse":
        data = occurrence.to_dict()
        data["parent_event_id"] = str(data["parent_event_id"])
        return cls(**data)


class OccurrenceListResponse(BaseModel):
    """Occurrences within a window."""

    occurrences: list[OccurrenceResponse]
    total: int
    start: date
    end: date


class RuleErrorResponse(BaseModel):
    code: str
    message: str


class ValidateRuleResponse(BaseModel):
    """Rule validation result."""

    valid: bool
    errors: list[RuleErrorResponse] = Field(default_factory=list)
    normalized: Optional[str] = None
    description: Optional[str] = None


class PreviewResponse(BaseModel):
    """Preview of an unsaved rule."""

    description: str
    occurrences: list[OccurrenceResponse]
    total: int


class OverrideResponse(BaseModel):
    """Stored override of one instance."""

    instance_date: date
    override_type: str
    fields: dict[str, Any] = Field(default_factory=dict)
    cancellation_reason: Optional[str] = None


class SeriesResponse(BaseModel):
    """Stored series."""

    id: str
    title: str
    description: Optional[str] = None
    rrule: str
    rrule_description: str
    start_date: date
    end_date: Optional[date] = None
    start_time: time
    end_time: time
    timezone: str
    status: str
    exdates: list[str] = Field(default_factory=list)
    overrides: list[OverrideResponse] = Field(default_factory=list)
    category: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    max_participants: Optional[int] = None
    requires_registration: bool = False
    tags: list[str] = Field(default_factory=list)


class ExceptionDatesResponse(BaseModel):
    """Exception dates of a series, ascending."""

    series_id: str
    exdates: list[str]


class ErrorResponse(BaseModel):
    """Error response body."""

    error_type: str
    message: str
    retryable: bool = False
