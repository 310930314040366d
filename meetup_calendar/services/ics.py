"""
iCalendar feed rendering.

Renders resolved occurrences as a VCALENDAR with one VEVENT per instance.
Times are written in UTC; cancelled instances are kept with
STATUS:CANCELLED so subscribed clients remove them.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from icalendar import Calendar, Event

from meetup_calendar.config import get_settings
from meetup_calendar.services.recurrence import Occurrence

PRODID = "-//Meetup Calendar//Recurring Events//EN"


def occurrence_uid(occurrence: Occurrence, domain: Optional[str] = None) -> str:
    """Stable UID of an instance, e.g. '<series_id>_2025-01-07@example.org'."""
    return f"{occurrence.id}@{domain or get_settings().feed_domain}"


def _location(occurrence: Occurrence) -> Optional[str]:
    parts = [occurrence.fields.get("location_name"), occurrence.fields.get("location_address")]
    text = ", ".join(p for p in parts if p)
    return text or None


def occurrence_to_event(occurrence: Occurrence, domain: Optional[str] = None,
                        stamp: Optional[datetime] = None) -> Event:
    """Build the VEVENT for a single occurrence."""
    event = Event()
    event.add("uid", occurrence_uid(occurrence, domain))
    event.add("dtstamp", stamp or datetime.now(timezone.utc))
    event.add("dtstart", occurrence.start.astimezone(timezone.utc))
    event.add("dtend", occurrence.end.astimezone(timezone.utc))
    event.add("summary", occurrence.title or "")

    description = occurrence.description
    if occurrence.is_cancelled and occurrence.cancellation_reason:
        description = "\n\n".join(p for p in (occurrence.cancellation_reason, description) if p)
    if description:
        event.add("description", description)

    location = _location(occurrence)
    if location:
        event.add("location", location)
    if occurrence.fields.get("category"):
        event.add("categories", [occurrence.fields["category"]])

    event.add("status", "CANCELLED" if occurrence.is_cancelled else "CONFIRMED")
    return event


def render_calendar(
    occurrences: Iterable[Occurrence],
    name: Optional[str] = None,
    domain: Optional[str] = None,
    stamp: Optional[datetime] = None,
) -> bytes:
    """
    Render occurrences as an iCalendar document.

    Args:
        occurrences: Resolved occurrences
        name: Calendar display name (X-WR-CALNAME); defaults to the app name
        domain: UID domain; defaults to the configured feed domain
        stamp: DTSTAMP for every event; defaults to now

    Returns:
        Serialized VCALENDAR bytes
    """
    settings = get_settings()
    stamp = stamp or datetime.now(timezone.utc)

    calendar = Calendar()
    calendar.add("prodid", PRODID)
    calendar.add("version", "2.0")
    calendar.add("calscale", "GREGORIAN")
    calendar.add("x-wr-calname", name or settings.app_name)

    for occurrence in occurrences:
        calendar.add_component(occurrence_to_event(occurrence, domain, stamp))

    return calendar.to_ical()
