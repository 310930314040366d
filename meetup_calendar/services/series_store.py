"""
Persistence for recurring series.

Bridges the database models and the pure recurrence core:
- Converts EventSeries/SeriesOverride rows into SeriesDefinition snapshots
- Runs exception/override mutations and writes the result back
- Expands published series into resolved occurrences for feeds
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from meetup_calendar.config import get_settings
from meetup_calendar.exceptions import (
    InvalidInstanceDateError,
    InvalidOverrideError,
    SeriesNotFoundError,
)
from meetup_calendar.models.series import EventSeries, SeriesOverride
from meetup_calendar.services import overrides as resolver
from meetup_calendar.services.recurrence import (
    InstanceOverride,
    Occurrence,
    OverrideType,
    SeriesDefinition,
    parse_instance_date,
)
from meetup_calendar.services.rrule import serialize_rule
from meetup_calendar.services.rrule_validation import parse_and_validate

logger = logging.getLogger(__name__)

# SeriesOverride columns that map one-to-one onto override fields
OVERRIDE_COLUMNS = (
    "title",
    "description",
    "start_time",
    "end_time",
    "location_name",
    "location_address",
    "category",
)


# =============================================================================
# Row <-> snapshot conversion
# =============================================================================


def override_from_model(row: SeriesOverride) -> InstanceOverride:
    """Build an InstanceOverride from a stored row (NULL columns are not overridden)."""
    fields: dict[str, Any] = dict(row.override_fields or {})
    for column in OVERRIDE_COLUMNS:
        value = getattr(row, column)
        if value is not None:
            fields[column] = value

    return InstanceOverride(
        instance_date=row.instance_date,
        override_type=OverrideType(row.override_type),
        fields=fields,
        cancellation_reason=row.cancellation_reason,
    )


def _parse_override_time(key: str, value: str) -> time:
    try:
        return time.fromisoformat(value.strip())
    except ValueError as e:
        raise InvalidOverrideError(f"Invalid {key} '{value}': expected HH:MM[:SS]") from e


def apply_override_to_model(row: SeriesOverride, override: InstanceOverride) -> SeriesOverride:
    """Copy an InstanceOverride onto a (new or existing) row."""
    extra = {}
    for column in OVERRIDE_COLUMNS:
        setattr(row, column, None)
    for key, value in override.fields.items():
        if key in OVERRIDE_COLUMNS:
            if key in ("start_time", "end_time") and isinstance(value, str):
                value = _parse_override_time(key, value)
            setattr(row, key, value)
        else:
            extra[key] = value

    row.instance_date = override.instance_date
    row.override_type = override.override_type.value
    row.override_fields = extra
    row.cancellation_reason = override.cancellation_reason
    return row


def _stored_exdates(series: EventSeries) -> tuple[date, ...]:
    days = []
    for value in series.exdates or []:
        try:
            days.append(parse_instance_date(value))
        except InvalidInstanceDateError:
            logger.warning(f"Series {series.id}: ignoring invalid stored exception date {value!r}")
    return tuple(days)


def series_to_definition(series: EventSeries) -> SeriesDefinition:
    """
    Snapshot a stored series for the recurrence core.

    An end_time not after start_time means the base occurrence ends on
    the following day.
    """
    start = datetime.combine(series.start_date, series.start_time)
    end = datetime.combine(series.start_date, series.end_time)
    if end <= start:
        end += timedelta(days=1)

    fields = {
        "title": series.title,
        "description": series.description,
        "category": series.default_category,
        "location_name": series.default_location_name,
        "location_address": series.default_location_address,
        "max_participants": series.default_max_participants,
        "requires_registration": series.default_requires_registration,
        "tags": list(series.tags or []),
    }

    return SeriesDefinition(
        series_id=str(series.id),
        start=start,
        end=end,
        rrule=series.rrule,
        timezone=series.timezone or get_settings().timezone,
        exception_dates=_stored_exdates(series),
        overrides=[override_from_model(row) for row in series.overrides],
        fields=fields,
        defaults={"title": series.title, "description": series.description},
        end_date=series.end_date,
    )


def _write_back(session: Session, series: EventSeries, definition: SeriesDefinition) -> EventSeries:
    """Persist the exception dates and overrides of a mutated snapshot."""
    series.exdates = [d.isoformat() for d in definition.exception_dates]

    existing = {row.instance_date: row for row in series.overrides}
    for day, row in existing.items():
        if day not in definition.overrides:
            series.overrides.remove(row)

    for day, override in definition.overrides.items():
        row = existing.get(day)
        if row is None:
            row = SeriesOverride(series_id=series.id)
            series.overrides.append(row)
        apply_override_to_model(row, override)

    session.flush()
    return series


# =============================================================================
# Queries
# =============================================================================


def _coerce_series_id(series_id: Union[str, uuid.UUID]) -> uuid.UUID:
    if isinstance(series_id, uuid.UUID):
        return series_id
    try:
        return uuid.UUID(str(series_id))
    except ValueError as e:
        raise SeriesNotFoundError(f"Series {series_id} not found") from e


def get_series_by_id(session: Session, series_id: Union[str, uuid.UUID]) -> EventSeries:
    """
    Load a series with its overrides.

    Raises:
        SeriesNotFoundError: If no series has this id
    """
    stmt = (
        select(EventSeries)
        .where(EventSeries.id == _coerce_series_id(series_id))
        .options(selectinload(EventSeries.overrides))
    )
    series = session.scalars(stmt).first()
    if series is None:
        raise SeriesNotFoundError(f"Series {series_id} not found")
    return series


def get_published_series(session: Session) -> Sequence[EventSeries]:
    """All published series, overrides eagerly loaded."""
    stmt = (
        select(EventSeries)
        .where(EventSeries.status == "published")
        .options(selectinload(EventSeries.overrides))
        .order_by(EventSeries.start_date, EventSeries.title)
    )
    return session.scalars(stmt).all()


def get_series_occurrences(
    session: Session,
    series_id: Union[str, uuid.UUID],
    start: Union[date, datetime],
    end: Union[date, datetime],
) -> list[Occurrence]:
    """Resolved occurrences of one series (draft or published) within a window."""
    series = get_series_by_id(session, series_id)
    return resolver.resolve_series_occurrences(series_to_definition(series), start, end)


def get_expanded_occurrences(
    session: Session,
    start: Union[date, datetime],
    end: Union[date, datetime],
) -> list[Occurrence]:
    """
    Resolved occurrences of every published series within a window.

    Series whose stored rule no longer expands contribute nothing; the
    expander logs why.

    Returns:
        Occurrences ordered by start time
    """
    occurrences: list[Occurrence] = []
    for series in get_published_series(session):
        occurrences.extend(
            resolver.resolve_series_occurrences(series_to_definition(series), start, end)
        )

    occurrences.sort(key=Occurrence.sort_key)
    logger.debug(f"Expanded {len(occurrences)} occurrences between {start} and {end}")
    return occurrences


# =============================================================================
# Commands
# =============================================================================


def create_series(
    session: Session,
    title: str,
    rrule: str,
    start_date: date,
    start_time: time,
    end_time: time,
    timezone: Optional[str] = None,
    end_date: Optional[date] = None,
    description: Optional[str] = None,
    status: str = "published",
    exdates: Iterable[Union[str, date]] = (),
    category: Optional[str] = None,
    location_name: Optional[str] = None,
    location_address: Optional[str] = None,
    max_participants: Optional[int] = None,
    requires_registration: bool = False,
    tags: Optional[list[str]] = None,
) -> EventSeries:
    """
    Create a series after validating its rule.

    The rule is stored in normalized form (FREQ first, 'RRULE:' prefix and
    DTSTART lines dropped).

    Raises:
        MalformedRuleError: If the rule text cannot be parsed
        RuleValidationError: If the rule is inconsistent
        InvalidInstanceDateError: If an exception date is not YYYY-MM-DD
    """
    rule = parse_and_validate(rrule)
    exception_dates = sorted({parse_instance_date(d) for d in exdates})

    series = EventSeries(
        id=uuid.uuid4(),
        title=title,
        description=description,
        rrule=serialize_rule(rule),
        start_date=start_date,
        end_date=end_date,
        start_time=start_time,
        end_time=end_time,
        timezone=timezone or get_settings().timezone,
        exdates=[d.isoformat() for d in exception_dates],
        status=status,
        default_category=category,
        default_location_name=location_name,
        default_location_address=location_address,
        default_max_participants=max_participants,
        default_requires_registration=requires_registration,
        tags=list(tags or []),
    )
    session.add(series)
    session.flush()

    logger.info(f"Created series '{title}' ({series.id}) with rule {series.rrule}")
    return series


def add_series_exdate(session: Session, series_id, instance_date) -> EventSeries:
    """
    Exclude an instance date from a stored series.

    Raises:
        SeriesNotFoundError, DuplicateExceptionError, ExceptionOverrideConflictError
    """
    series = get_series_by_id(session, series_id)
    definition = resolver.add_exception_date(series_to_definition(series), instance_date)
    logger.info(f"Series {series.id}: excluded {parse_instance_date(instance_date)}")
    return _write_back(session, series, definition)


def remove_series_exdate(session: Session, series_id, instance_date) -> EventSeries:
    """Remove an exception date from a stored series (no-op if absent)."""
    series = get_series_by_id(session, series_id)
    definition = resolver.remove_exception_date(series_to_definition(series), instance_date)
    return _write_back(session, series, definition)


def set_series_override(session: Session, series_id, override: InstanceOverride) -> EventSeries:
    """
    Create or replace a CHANGED override on a stored series.

    Raises:
        SeriesNotFoundError, ExceptionOverrideConflictError, InvalidOverrideError
    """
    for key in ("start_time", "end_time"):
        if isinstance(override.fields.get(key), str):
            _parse_override_time(key, override.fields[key])

    series = get_series_by_id(session, series_id)
    definition = resolver.set_override(series_to_definition(series), override)
    logger.info(f"Series {series.id}: override set for {override.instance_date}")
    return _write_back(session, series, definition)


def clear_series_override(session: Session, series_id, instance_date) -> EventSeries:
    """Remove the override for an instance date (no-op if absent)."""
    series = get_series_by_id(session, series_id)
    definition = resolver.clear_override(series_to_definition(series), instance_date)
    return _write_back(session, series, definition)


def cancel_series_instance(
    session: Session,
    series_id,
    instance_date,
    reason: Optional[str] = None,
    today: Optional[date] = None,
) -> EventSeries:
    """
    Cancel one instance of a stored series.

    ``today`` defaults to the current date in the series timezone.

    Raises:
        SeriesNotFoundError, MissingInstanceDateError, InvalidInstanceDateError,
        PastInstanceCancellationError, ExceptionOverrideConflictError
    """
    series = get_series_by_id(session, series_id)
    definition = series_to_definition(series)
    if today is None:
        today = resolver.today_in_timezone(definition.timezone)

    definition = resolver.cancel_instance(definition, instance_date, today, reason)
    logger.info(f"Series {series.id}: cancelled instance {parse_instance_date(instance_date)}")
    return _write_back(session, series, definition)


def restore_series_instance(session: Session, series_id, instance_date) -> EventSeries:
    """
    Restore one instance of a stored series to its generated state.

    Raises:
        SeriesNotFoundError, MissingInstanceDateError, InvalidInstanceDateError
    """
    series = get_series_by_id(session, series_id)
    definition = resolver.restore_instance(series_to_definition(series), instance_date)
    logger.info(f"Series {series.id}: restored instance {parse_instance_date(instance_date)}")
    return _write_back(session, series, definition)
