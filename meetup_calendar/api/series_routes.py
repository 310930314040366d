"""
Admin API routes for recurring series.

Handles series creation and per-instance maintenance:
1. /admin/series - Create a series (rule validated before saving)
2. /admin/series/{id}/exdates - Exclude or re-include instance dates
3. /admin/series/{id}/overrides - Change individual instances
4. /admin/series/{id}/cancel - Cancel or restore individual instances

Domain errors propagate to the application's MeetupCalendarError handler,
which maps them to HTTP status codes.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from meetup_calendar.api.dependencies import get_app_settings, get_date_window
from meetup_calendar.api.models import (
    CancelInstanceRequest,
    CreateSeriesRequest,
    ExceptionDateRequest,
    ExceptionDatesResponse,
    OccurrenceListResponse,
    OccurrenceResponse,
    OverrideRequest,
    OverrideResponse,
    SeriesResponse,
)
from meetup_calendar.config import Settings
from meetup_calendar.database import get_db
from meetup_calendar.models.series import EventSeries
from meetup_calendar.services import series_store
from meetup_calendar.services.recurrence import InstanceOverride, OverrideType, parse_instance_date
from meetup_calendar.services.rrule import describe_rule, parse_rule

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/series", tags=["series"])


def _to_response(series: EventSeries, locale: str) -> SeriesResponse:
    return SeriesResponse(
        id=str(series.id),
        title=series.title,
        description=series.description,
        rrule=series.rrule,
        rrule_description=describe_rule(parse_rule(series.rrule), locale),
        start_date=series.start_date,
        end_date=series.end_date,
        start_time=series.start_time,
        end_time=series.end_time,
        timezone=series.timezone,
        status=series.status,
        exdates=list(series.exdates or []),
        overrides=[_override_response(row) for row in series.overrides],
        category=series.default_category,
        location_name=series.default_location_name,
        location_address=series.default_location_address,
        max_participants=series.default_max_participants,
        requires_registration=series.default_requires_registration,
        tags=list(series.tags or []),
    )


def _override_response(row) -> OverrideResponse:
    override = series_store.override_from_model(row)
    return OverrideResponse(
        instance_date=override.instance_date,
        override_type=override.override_type.value,
        fields=dict(override.fields),
        cancellation_reason=override.cancellation_reason,
    )


def _exdates_response(series: EventSeries) -> ExceptionDatesResponse:
    return ExceptionDatesResponse(series_id=str(series.id), exdates=list(series.exdates or []))


# =============================================================================
# Series
# =============================================================================


@router.post("", response_model=SeriesResponse, status_code=201, summary="Create series")
def create_series(
    request: CreateSeriesRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> SeriesResponse:
    """
    Create a recurring series.

    The rule is parsed and validated first; a malformed or inconsistent
    rule is rejected with 422 and nothing is saved.
    """
    series = series_store.create_series(
        db,
        title=request.title,
        rrule=request.rrule,
        start_date=request.start_date,
        start_time=request.start_time,
        end_time=request.end_time,
        timezone=request.timezone,
        end_date=request.end_date,
        description=request.description,
        status=request.status,
        exdates=request.exdates,
        category=request.category,
        location_name=request.location_name,
        location_address=request.location_address,
        max_participants=request.max_participants,
        requires_registration=request.requires_registration,
        tags=request.tags,
    )
    db.commit()
    return _to_response(series, settings.describe_locale)


@router.get("/{series_id}", response_model=SeriesResponse, summary="Get series")
def get_series(
    series_id: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> SeriesResponse:
    series = series_store.get_series_by_id(db, series_id)
    return _to_response(series, settings.describe_locale)


@router.get(
    "/{series_id}/occurrences",
    response_model=OccurrenceListResponse,
    summary="Expand one series",
)
def list_series_occurrences(
    series_id: str,
    window=Depends(get_date_window),
    db: Session = Depends(get_db),
) -> OccurrenceListResponse:
    """Resolved occurrences of a single series, drafts included."""
    start, end = window
    occurrences = series_store.get_series_occurrences(db, series_id, start, end)
    return OccurrenceListResponse(
        occurrences=[OccurrenceResponse.from_occurrence(o) for o in occurrences],
        total=len(occurrences),
        start=start,
        end=end,
    )


# =============================================================================
# Exception dates
# =============================================================================


@router.get("/{series_id}/exdates", response_model=ExceptionDatesResponse)
def list_exdates(series_id: str, db: Session = Depends(get_db)) -> ExceptionDatesResponse:
    return _exdates_response(series_store.get_series_by_id(db, series_id))


@router.post("/{series_id}/exdates", response_model=ExceptionDatesResponse, status_code=201)
def add_exdate(
    series_id: str,
    request: ExceptionDateRequest,
    db: Session = Depends(get_db),
) -> ExceptionDatesResponse:
    """
    Exclude an instance date.

    409 if the date is already excluded or carries an override.
    """
    series = series_store.add_series_exdate(db, series_id, request.date)
    db.commit()
    return _exdates_response(series)


@router.delete("/{series_id}/exdates", response_model=ExceptionDatesResponse)
def remove_exdate(
    series_id: str,
    date: str = Query(None, description="Date to re-include (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
) -> ExceptionDatesResponse:
    series = series_store.remove_series_exdate(db, series_id, date)
    db.commit()
    return _exdates_response(series)


# =============================================================================
# Overrides
# =============================================================================


@router.get("/{series_id}/overrides", response_model=list[OverrideResponse])
def list_overrides(series_id: str, db: Session = Depends(get_db)) -> list[OverrideResponse]:
    series = series_store.get_series_by_id(db, series_id)
    return [_override_response(row) for row in series.overrides]


@router.post("/{series_id}/overrides", response_model=OverrideResponse, status_code=201)
def set_override(
    series_id: str,
    request: OverrideRequest,
    db: Session = Depends(get_db),
) -> OverrideResponse:
    """
    Create or replace the CHANGED override of one instance.

    409 if the date is excluded.
    """
    override = InstanceOverride(
        instance_date=parse_instance_date(request.instance_date),
        override_type=OverrideType.CHANGED,
        fields=request.override_fields(),
    )
    series = series_store.set_series_override(db, series_id, override)
    db.commit()
    row = next(r for r in series.overrides if r.instance_date == override.instance_date)
    return _override_response(row)


@router.delete("/{series_id}/overrides/{instance_date}", status_code=204)
def clear_override(series_id: str, instance_date: str, db: Session = Depends(get_db)) -> None:
    series_store.clear_series_override(db, series_id, instance_date)
    db.commit()


# =============================================================================
# Cancellation
# =============================================================================


@router.post("/{series_id}/cancel", response_model=OverrideResponse)
def cancel_instance(
    series_id: str,
    request: CancelInstanceRequest,
    db: Session = Depends(get_db),
) -> OverrideResponse:
    """
    Cancel one instance; it stays visible as cancelled.

    400 if instance_date is missing or before today (series timezone).
    """
    day = parse_instance_date(request.instance_date)
    series = series_store.cancel_series_instance(db, series_id, day, reason=request.reason)
    db.commit()
    row = next(r for r in series.overrides if r.instance_date == day)
    return _override_response(row)


@router.delete("/{series_id}/cancel", status_code=204)
def restore_instance(
    series_id: str,
    instance_date: str = Query(None, description="Instance to restore (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
) -> None:
    """Restore a cancelled or changed instance to its generated state."""
    series_store.restore_series_instance(db, series_id, instance_date)
    db.commit()
