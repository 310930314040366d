"""
Instance override resolution.

Applies per-instance overrides (changed fields or cancellation) to expanded
occurrences, and provides the mutations of a series' exception dates and
overrides. Mutations are pure: each returns a new SeriesDefinition.

Per instance date the states are NORMAL, EXCLUDED, OVERRIDDEN_CHANGED and
OVERRIDDEN_CANCELLED. EXCLUDED and the OVERRIDDEN states are mutually
exclusive; every mutation checks both collections.
"""

import logging
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Union
from zoneinfo import ZoneInfo

from meetup_calendar.exceptions import (
    DuplicateExceptionError,
    ExceptionOverrideConflictError,
    PastInstanceCancellationError,
)
from meetup_calendar.services.recurrence import (
    InstanceOverride,
    Occurrence,
    OverrideType,
    SeriesDefinition,
    expand_series,
    parse_instance_date,
)

logger = logging.getLogger(__name__)

# Fields that fall back to the series-level default when a CHANGED override omits them
FALLBACK_FIELDS = ("title", "description")

# Override fields that move the instance's wall-clock time range
TIME_FIELDS = ("start_time", "end_time")


class InstanceState(str, Enum):
    """State of a single instance date within a series."""

    NORMAL = "normal"
    EXCLUDED = "excluded"
    OVERRIDDEN_CHANGED = "overridden_changed"
    OVERRIDDEN_CANCELLED = "overridden_cancelled"


# =============================================================================
# Applying overrides
# =============================================================================


def _coerce_time(value: Union[str, time, None]) -> Optional[time]:
    if value is None or isinstance(value, time):
        return value
    return time.fromisoformat(str(value).strip())


def _shift_times(occurrence: Occurrence, override: InstanceOverride) -> tuple[datetime, datetime]:
    try:
        start_time = _coerce_time(override.fields.get("start_time"))
        end_time = _coerce_time(override.fields.get("end_time"))
    except ValueError:
        logger.warning(
            f"Ignoring invalid override times for {occurrence.id}: "
            f"{override.fields.get('start_time')!r} - {override.fields.get('end_time')!r}"
        )
        return occurrence.start, occurrence.end

    if start_time is None and end_time is None:
        return occurrence.start, occurrence.end

    zone = occurrence.start.tzinfo
    old_start = occurrence.start.replace(tzinfo=None)
    duration = occurrence.end.replace(tzinfo=None) - old_start

    start_local = datetime.combine(occurrence.instance_date, start_time or old_start.time())
    if end_time is not None:
        end_local = datetime.combine(occurrence.instance_date, end_time)
        if end_local <= start_local:
            end_local += timedelta(days=1)
    else:
        end_local = start_local + duration

    return start_local.replace(tzinfo=zone), end_local.replace(tzinfo=zone)


def _overlay(
    occurrence: Occurrence,
    override: InstanceOverride,
    defaults: Mapping[str, Any],
) -> Occurrence:
    """Overlay the override's fields; precedence is override > series default > base field."""
    fields = dict(occurrence.fields)
    for key, value in override.fields.items():
        if key in TIME_FIELDS or value is None:
            continue
        fields[key] = value

    for key in FALLBACK_FIELDS:
        if override.fields.get(key) is None and defaults.get(key) is not None:
            fields[key] = defaults[key]

    start, end = _shift_times(occurrence, override)
    return replace(
        occurrence,
        fields=fields,
        start=start,
        end=end,
        override_type=OverrideType.CHANGED,
    )


def apply_overrides(
    occurrences: Iterable[Occurrence],
    overrides: Union[Mapping[date, InstanceOverride], Iterable[InstanceOverride]],
    defaults: Optional[Mapping[str, Any]] = None,
) -> list[Occurrence]:
    """
    Merge per-instance overrides into expanded occurrences.

    Cancelled instances stay in the result, flagged with ``is_cancelled``
    and the cancellation reason, so calendar views can render them struck
    through.

    Args:
        occurrences: Output of expand_series
        overrides: Overrides keyed by instance date (or an iterable of them)
        defaults: Series-level default title/description

    Returns:
        Resolved occurrences, ordered by start time
    """
    if not isinstance(overrides, Mapping):
        overrides = {o.instance_date: o for o in overrides}
    defaults = defaults or {}

    resolved = []
    for occurrence in occurrences:
        override = overrides.get(occurrence.instance_date)
        if override is None:
            resolved.append(occurrence)
            continue

        if override.is_cancelled:
            if override.fields:
                occurrence = _overlay(occurrence, override, defaults)
            resolved.append(replace(
                occurrence,
                is_cancelled=True,
                cancellation_reason=override.cancellation_reason,
                override_type=OverrideType.CANCELLED,
            ))
        else:
            resolved.append(_overlay(occurrence, override, defaults))

    return sorted(resolved, key=Occurrence.sort_key)


def resolve_series_occurrences(
    series: SeriesDefinition,
    window_start: Union[date, datetime],
    window_end: Union[date, datetime],
) -> list[Occurrence]:
    """Expand a series over a window and apply its overrides."""
    occurrences = expand_series(series, window_start, window_end)
    return apply_overrides(occurrences, series.overrides, series.defaults)


# =============================================================================
# Exception / override mutations
# =============================================================================


def today_in_timezone(timezone: str, now: Optional[datetime] = None) -> date:
    """Current calendar date in a timezone (``now`` defaults to the wall clock)."""
    zone = ZoneInfo(timezone)
    if now is None:
        return datetime.now(zone).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(zone).date()


def instance_state(series: SeriesDefinition, instance_date: Union[str, date]) -> InstanceState:
    """Report the state of one instance date."""
    day = parse_instance_date(instance_date)
    if day in series.exception_dates:
        return InstanceState.EXCLUDED
    override = series.overrides.get(day)
    if override is None:
        return InstanceState.NORMAL
    if override.is_cancelled:
        return InstanceState.OVERRIDDEN_CANCELLED
    return InstanceState.OVERRIDDEN_CHANGED


def add_exception_date(series: SeriesDefinition, instance_date: Union[str, date]) -> SeriesDefinition:
    """
    Exclude a date from generation.

    Raises:
        DuplicateExceptionError: If the date is already excluded
        ExceptionOverrideConflictError: If the date carries an override
    """
    day = parse_instance_date(instance_date)
    if day in series.exception_dates:
        raise DuplicateExceptionError(f"{day.isoformat()} is already excluded")
    if day in series.overrides:
        raise ExceptionOverrideConflictError(
            f"{day.isoformat()} has an override; restore the instance before excluding it"
        )
    return replace(series, exception_dates=tuple(sorted(series.exception_dates + (day,))))


def remove_exception_date(series: SeriesDefinition, instance_date: Union[str, date]) -> SeriesDefinition:
    """Remove a date from the exception set (no-op if absent)."""
    day = parse_instance_date(instance_date)
    if day not in series.exception_dates:
        return series
    return replace(series, exception_dates=tuple(d for d in series.exception_dates if d != day))


def set_override(series: SeriesDefinition, override: InstanceOverride) -> SeriesDefinition:
    """
    Create or replace the override for an instance date.

    Raises:
        ExceptionOverrideConflictError: If the date is excluded
    """
    if override.instance_date in series.exception_dates:
        raise ExceptionOverrideConflictError(
            f"{override.instance_date.isoformat()} is excluded; remove the exception first"
        )
    overrides = dict(series.overrides)
    overrides[override.instance_date] = override
    return replace(series, overrides=overrides)


def clear_override(series: SeriesDefinition, instance_date: Union[str, date]) -> SeriesDefinition:
    """Remove the override for a date (no-op if absent)."""
    day = parse_instance_date(instance_date)
    if day not in series.overrides:
        return series
    overrides = {d: o for d, o in series.overrides.items() if d != day}
    return replace(series, overrides=overrides)


def cancel_instance(
    series: SeriesDefinition,
    instance_date: Union[str, date, None],
    today: date,
    reason: Optional[str] = None,
) -> SeriesDefinition:
    """
    Cancel a single instance, keeping it visible as cancelled.

    An existing CHANGED override keeps its fields and becomes CANCELLED.

    Args:
        series: Series snapshot
        instance_date: Instance to cancel (required)
        today: Current date in the series timezone
        reason: Optional free-text reason

    Raises:
        MissingInstanceDateError: If instance_date is absent
        PastInstanceCancellationError: If instance_date is before today
        ExceptionOverrideConflictError: If the date is excluded
    """
    day = parse_instance_date(instance_date)
    if day < today:
        raise PastInstanceCancellationError(
            f"{day.isoformat()} is in the past and cannot be cancelled"
        )

    existing = series.overrides.get(day)
    override = InstanceOverride(
        instance_date=day,
        override_type=OverrideType.CANCELLED,
        fields=dict(existing.fields) if existing else {},
        cancellation_reason=(reason or "").strip() or None,
    )
    return set_override(series, override)


def restore_instance(series: SeriesDefinition, instance_date: Union[str, date, None]) -> SeriesDefinition:
    """
    Restore an instance to its generated state by removing any override.

    Raises:
        MissingInstanceDateError: If instance_date is absent
    """
    return clear_override(series, parse_instance_date(instance_date))
