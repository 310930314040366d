"""
Recurrence expansion service.

Expands a series definition (base occurrence + recurrence rule + exception
dates) into concrete occurrences for a query window:
- COUNT and UNTIL bound the whole series, not just the window
- Exception dates suppress instances (they still count toward COUNT)
- Per-instance overrides are NOT applied here (see services.overrides)

Wall-clock times are preserved across DST transitions in the series
timezone; timezone rules come from the platform's zoneinfo database.
"""

import logging
import re
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY, MO, MONTHLY, WEEKLY, YEARLY, rrule, weekday

from meetup_calendar.exceptions import (
    InvalidInstanceDateError,
    MalformedRuleError,
    MissingInstanceDateError,
)
from meetup_calendar.services.rrule import Frequency, RecurrenceRule, parse_rule
from meetup_calendar.services.rrule_validation import validate_rule

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Berlin"

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# =============================================================================
# Data model
# =============================================================================


def parse_instance_date(value: Union[str, date, None]) -> date:
    """
    Coerce an instance date (YYYY-MM-DD string or date) to a date.

    Raises:
        MissingInstanceDateError: If the value is None or blank
        InvalidInstanceDateError: If the value is not a valid YYYY-MM-DD date
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingInstanceDateError("instance_date is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not _ISO_DATE.match(text):
        raise InvalidInstanceDateError(f"Invalid date '{text}': expected YYYY-MM-DD")
    try:
        return date.fromisoformat(text)
    except ValueError as e:
        raise InvalidInstanceDateError(f"Invalid date '{text}': {e}") from e


def format_instance_id(series_id: Any, instance_date: date) -> str:
    """
    Format the identity of a generated instance.

    Returns:
        String in '<series_id>_<YYYY-MM-DD>' format
    """
    return f"{series_id}_{instance_date.isoformat()}"


class OverrideType(str, Enum):
    """Kinds of per-instance overrides."""

    CHANGED = "changed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class InstanceOverride:
    """
    Per-instance modification of a generated occurrence.

    CHANGED overrides carry a partial field set (title, description,
    start_time, end_time, location fields, ...). CANCELLED overrides carry
    an optional free-text reason.
    """

    instance_date: date
    override_type: OverrideType = OverrideType.CHANGED
    fields: Mapping[str, Any] = field(default_factory=dict)
    cancellation_reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.override_type == OverrideType.CANCELLED


@dataclass(frozen=True)
class SeriesDefinition:
    """
    Immutable snapshot of a recurring series.

    ``start``/``end`` describe the base occurrence. Naive datetimes are wall
    clock times in ``timezone``; aware datetimes are converted into it.
    ``fields`` are the base event's non-temporal fields, copied verbatim onto
    every occurrence. ``defaults`` holds series-level default title and
    description used when resolving CHANGED overrides.
    """

    series_id: Any
    start: datetime
    end: datetime
    rrule: Union[str, RecurrenceRule, None]
    timezone: str = DEFAULT_TIMEZONE
    exception_dates: tuple[date, ...] = ()
    overrides: Mapping[date, InstanceOverride] = field(default_factory=dict)
    fields: Mapping[str, Any] = field(default_factory=dict)
    defaults: Mapping[str, Any] = field(default_factory=dict)
    end_date: Optional[date] = None

    def __post_init__(self):
        exception_dates = tuple(sorted({parse_instance_date(d) for d in self.exception_dates}))
        object.__setattr__(self, "exception_dates", exception_dates)

        overrides = self.overrides
        if not isinstance(overrides, Mapping):
            overrides = {o.instance_date: o for o in overrides}
        object.__setattr__(self, "overrides", dict(overrides))


@dataclass(frozen=True)
class Occurrence:
    """
    A single generated calendar instance (never persisted).

    Identity is (series_id, instance_date).
    """

    series_id: Any
    instance_date: date
    start: datetime
    end: datetime
    fields: Mapping[str, Any] = field(default_factory=dict)
    is_recurring_instance: bool = True
    is_cancelled: bool = False
    cancellation_reason: Optional[str] = None
    override_type: Optional[OverrideType] = None

    @property
    def id(self) -> str:
        return format_instance_id(self.series_id, self.instance_date)

    @property
    def parent_event_id(self) -> Any:
        return self.series_id

    @property
    def title(self) -> Optional[str]:
        return self.fields.get("title")

    @property
    def description(self) -> Optional[str]:
        return self.fields.get("description")

    def sort_key(self) -> tuple:
        return (self.start, str(self.series_id), self.instance_date)

    def to_dict(self) -> dict:
        """Flatten into a JSON-friendly dictionary (fields first, then instance data)."""
        return {
            **self.fields,
            "id": self.id,
            "parent_event_id": self.parent_event_id,
            "instance_date": self.instance_date.isoformat(),
            "start_datetime": self.start.isoformat(),
            "end_datetime": self.end.isoformat(),
            "is_recurring_instance": self.is_recurring_instance,
            "is_cancelled": self.is_cancelled,
            "cancellation_reason": self.cancellation_reason,
            "override_type": self.override_type.value if self.override_type else None,
        }


# =============================================================================
# Candidate date generation
# =============================================================================

_DATEUTIL_FREQUENCIES = {
    Frequency.DAILY: DAILY,
    Frequency.WEEKLY: WEEKLY,
    Frequency.MONTHLY: MONTHLY,
    Frequency.YEARLY: YEARLY,
}


def build_rrule(rule: RecurrenceRule, dtstart: datetime, last_date: Optional[date] = None) -> rrule:
    """
    Build the dateutil rrule for a validated rule.

    Args:
        rule: Validated rule
        dtstart: Naive wall-clock start of the base occurrence
        last_date: Last date an instance may fall on (UNTIL or series end date)

    BYMONTHDAY and BYSETPOS apply to MONTHLY rules only. With BYSETPOS the
    BYDAY entries form the candidate set, so inline ordinals are dropped.
    YEARLY rules repeat the base month and day. COUNT is not passed on
    (dateutil deprecates COUNT together with UNTIL); iter_occurrences
    applies it.
    """
    freq = rule.freq
    options: dict[str, Any] = {"dtstart": dtstart, "interval": rule.interval, "wkst": MO}
    if last_date is not None:
        options["until"] = datetime.combine(last_date, time.max)

    plain_weekdays = sorted({w.weekday for w in rule.by_weekdays})
    if freq in (Frequency.DAILY, Frequency.WEEKLY) and plain_weekdays:
        options["byweekday"] = plain_weekdays
    elif freq == Frequency.MONTHLY:
        if rule.by_weekdays and rule.by_set_positions:
            options["byweekday"] = plain_weekdays
            options["bysetpos"] = list(rule.by_set_positions)
        elif rule.by_weekdays:
            options["byweekday"] = [weekday(w.weekday, w.ordinal) for w in rule.by_weekdays]
        if rule.by_month_days:
            options["bymonthday"] = sorted(set(rule.by_month_days))

    return rrule(_DATEUTIL_FREQUENCIES[freq], **options)


# =============================================================================
# Expansion
# =============================================================================


def _wall_clock(value: datetime, zone: ZoneInfo) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(zone).replace(tzinfo=None)


def _window_bound(value: Union[date, datetime], zone: ZoneInfo, upper: bool) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=zone)
    return datetime.combine(value, time.max if upper else time.min, tzinfo=zone)


def _last_allowed_date(rule: RecurrenceRule, series: SeriesDefinition, zone: ZoneInfo) -> Optional[date]:
    bounds = []
    if rule.until is not None:
        if isinstance(rule.until, datetime):
            bounds.append(_wall_clock(rule.until, zone).date())
        else:
            bounds.append(rule.until)
    if series.end_date is not None:
        bounds.append(series.end_date)
    return min(bounds) if bounds else None


def _prepare(series: SeriesDefinition) -> Optional[tuple[RecurrenceRule, ZoneInfo]]:
    """Resolve rule and timezone, or log and return None when the series cannot expand."""
    rule = series.rrule
    if not isinstance(rule, RecurrenceRule):
        try:
            rule = parse_rule(rule or "")
        except MalformedRuleError as e:
            logger.warning(f"Series {series.series_id}: unparseable rule '{series.rrule}': {e.message}")
            return None

    errors = validate_rule(rule)
    if errors:
        codes = ", ".join(e.value for e in errors)
        logger.warning(f"Series {series.series_id}: invalid rule '{rule}' ({codes})")
        return None

    try:
        zone = ZoneInfo(series.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Series {series.series_id}: unknown timezone '{series.timezone}'")
        return None

    return rule, zone


def iter_occurrences(series: SeriesDefinition) -> Iterator[Occurrence]:
    """
    Lazily yield the series' occurrences in ascending order.

    Honors COUNT (counted over every generated candidate, including
    excluded ones), UNTIL and the series end date (day granularity in the
    series timezone). Exception dates are skipped. Yields nothing for a
    malformed or invalid rule.
    """
    prepared = _prepare(series)
    if prepared is None:
        return
    rule, zone = prepared

    local_start = _wall_clock(series.start, zone)
    duration = _wall_clock(series.end, zone) - local_start
    last_date = _last_allowed_date(rule, series, zone)
    excluded = set(series.exception_dates)

    generated = 0
    for start_local in build_rrule(rule, local_start, last_date):
        if rule.count is not None and generated >= rule.count:
            return
        generated += 1

        day = start_local.date()
        if day in excluded:
            continue

        yield Occurrence(
            series_id=series.series_id,
            instance_date=day,
            start=start_local.replace(tzinfo=zone),
            end=(start_local + duration).replace(tzinfo=zone),
            fields=deepcopy(dict(series.fields)),
        )


def expand_series(
    series: SeriesDefinition,
    window_start: Union[date, datetime],
    window_end: Union[date, datetime],
    max_instances: Optional[int] = None,
) -> list[Occurrence]:
    """
    Expand a series into occurrences intersecting a window.

    Args:
        series: Series snapshot
        window_start: Window start (inclusive). A date means start of that day
            in the series timezone; a naive datetime is read in that timezone.
        window_end: Window end (inclusive). A date means end of that day.
        max_instances: Optional cap on returned occurrences

    Returns:
        Occurrences ordered by start time, exception dates excluded,
        overrides not applied. Empty for a malformed or invalid rule.
    """
    try:
        zone = ZoneInfo(series.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Series {series.series_id}: unknown timezone '{series.timezone}'")
        return []

    lower = _window_bound(window_start, zone, upper=False)
    upper = _window_bound(window_end, zone, upper=True)
    if upper < lower:
        return []

    occurrences: list[Occurrence] = []
    for occurrence in iter_occurrences(series):
        if occurrence.start > upper:
            break
        if occurrence.end < lower:
            continue
        occurrences.append(occurrence)
        if max_instances is not None and len(occurrences) >= max_instances:
            break

    return occurrences


def get_next_occurrence(series: SeriesDefinition, after: datetime) -> Optional[Occurrence]:
    """
    Get the first occurrence starting strictly after a point in time.

    Args:
        series: Series snapshot
        after: Reference time (naive values are read in the series timezone)

    Returns:
        Next occurrence or None
    """
    try:
        zone = ZoneInfo(series.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return None

    reference = _window_bound(after, zone, upper=False)
    for occurrence in iter_occurrences(series):
        if occurrence.start > reference:
            return occurrence
    return None


def count_occurrences_in_range(
    series: SeriesDefinition,
    window_start: Union[date, datetime],
    window_end: Union[date, datetime],
    max_count: int = 1000,
) -> int:
    """
    Count occurrences within a window, stopping at max_count.

    Useful for checking if expansion would be expensive.
    """
    return len(expand_series(series, window_start, window_end, max_instances=max_count))


def preview_occurrences(
    rrule: str,
    start: datetime,
    end: datetime,
    today: date,
    months: int = 6,
    limit: int = 20,
    timezone: str = DEFAULT_TIMEZONE,
    exception_dates: Iterable[Union[str, date]] = (),
    fields: Optional[Mapping[str, Any]] = None,
) -> list[Occurrence]:
    """
    Preview an unsaved rule over the next ``months`` months starting today.

    Returns:
        At most ``limit`` occurrences
    """
    series = SeriesDefinition(
        series_id="preview",
        start=start,
        end=end,
        rrule=rrule,
        timezone=timezone,
        exception_dates=tuple(exception_dates),
        fields=dict(fields or {}),
    )
    return expand_series(series, today, today + relativedelta(months=months), max_instances=limit)
