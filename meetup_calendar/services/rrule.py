"""
Recurrence rule parsing.

Turns RRULE text (e.g., 'FREQ=MONTHLY;BYDAY=-1FR') into an immutable
RecurrenceRule, serializes a rule back to text, and renders a one-line
human-readable description.

Supported keys: FREQ, INTERVAL, BYDAY (with optional ordinal prefix),
BYSETPOS, BYMONTHDAY, COUNT, UNTIL. Unknown keys are ignored.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, Optional

from dateutil.parser import isoparse

from meetup_calendar.exceptions import MalformedRuleError


class Frequency(str, Enum):
    """Recurrence frequencies understood by the expander."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


# Index matches date.weekday() (Monday == 0)
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

_BYDAY_TOKEN = re.compile(r"^([+-]?\d{1,3})?(MO|TU|WE|TH|FR|SA|SU)$")


@dataclass(frozen=True)
class WeekdayRule:
    """A BYDAY entry: weekday (0=Monday) with an optional ordinal (-1 = last)."""

    weekday: int
    ordinal: Optional[int] = None

    @property
    def code(self) -> str:
        return WEEKDAY_CODES[self.weekday]

    def __str__(self) -> str:
        prefix = "" if self.ordinal is None else str(self.ordinal)
        return f"{prefix}{self.code}"


@dataclass(frozen=True)
class RecurrenceRule:
    """
    Structured form of a recurrence rule.

    ``frequency`` keeps the raw FREQ value (or None when missing) so that the
    validator can tell a missing FREQ from an unknown one. ``until`` is a date,
    or a datetime when the rule text carried a time component.
    """

    frequency: Optional[str] = None
    interval: int = 1
    by_weekdays: tuple[WeekdayRule, ...] = ()
    by_set_positions: tuple[int, ...] = ()
    by_month_days: tuple[int, ...] = ()
    count: Optional[int] = None
    until: Optional[date] = None

    @property
    def freq(self) -> Optional[Frequency]:
        """Known frequency, or None if FREQ is missing or unrecognized."""
        if self.frequency is None:
            return None
        try:
            return Frequency(self.frequency)
        except ValueError:
            return None

    @property
    def has_weekday_ordinals(self) -> bool:
        return any(w.ordinal is not None for w in self.by_weekdays)

    def __str__(self) -> str:
        return serialize_rule(self)


# =============================================================================
# Parsing
# =============================================================================


def normalize_rule_text(raw: str) -> str:
    """
    Reduce raw rule content to plain 'KEY=VALUE;...' text.

    Accepts full iCalendar fragments such as
    'DTSTART:20250812T070000Z\\nRRULE:FREQ=DAILY;UNTIL=20250816T215959Z':
    DTSTART lines are dropped and the 'RRULE:' prefix is removed.
    """
    lines = []
    for line in (raw or "").splitlines():
        line = line.strip()
        if not line:
            continue
        if line.upper().startswith("DTSTART"):
            continue
        if line.upper().startswith("RRULE:"):
            line = line[len("RRULE:"):]
        lines.append(line)
    return ";".join(lines).strip()


def _parse_int(key: str, value: str) -> int:
    try:
        return int(value.strip(), 10)
    except ValueError as e:
        raise MalformedRuleError(
            f"{key} must be an integer, got '{value}'", key=key, value=value
        ) from e


def _parse_int_list(key: str, value: str) -> tuple[int, ...]:
    return tuple(_parse_int(key, part) for part in value.split(",") if part.strip())


def _parse_byday(key: str, value: str) -> tuple[WeekdayRule, ...]:
    rules: list[WeekdayRule] = []
    for part in value.split(","):
        token = part.strip().upper()
        if not token:
            continue
        match = _BYDAY_TOKEN.match(token)
        if not match:
            raise MalformedRuleError(
                f"Invalid BYDAY value '{part.strip()}'", key=key, value=value
            )
        ordinal = int(match.group(1), 10) if match.group(1) else None
        rule = WeekdayRule(weekday=WEEKDAY_CODES.index(match.group(2)), ordinal=ordinal)
        if rule not in rules:
            rules.append(rule)
    return tuple(rules)


def _parse_until(key: str, value: str) -> date:
    text = value.strip()
    try:
        parsed = isoparse(text)
    except (ValueError, OverflowError) as e:
        raise MalformedRuleError(
            f"Invalid UNTIL date '{value}'", key=key, value=value
        ) from e
    if "T" not in text.upper():
        return parsed.date()
    return parsed


def _parse_frequency(key: str, value: str) -> Optional[str]:
    return value.strip().upper() or None


_FIELD_PARSERS: dict[str, tuple[str, Callable]] = {
    "FREQ": ("frequency", _parse_frequency),
    "INTERVAL": ("interval", _parse_int),
    "BYDAY": ("by_weekdays", _parse_byday),
    "BYSETPOS": ("by_set_positions", _parse_int_list),
    "BYMONTHDAY": ("by_month_days", _parse_int_list),
    "COUNT": ("count", _parse_int),
    "UNTIL": ("until", _parse_until),
}


def parse_rule(text: str) -> RecurrenceRule:
    """
    Parse RRULE text into a RecurrenceRule.

    Args:
        text: Rule text, e.g. 'FREQ=WEEKLY;BYDAY=TU;COUNT=3'. A leading
            'RRULE:' and DTSTART lines are tolerated.

    Returns:
        RecurrenceRule. A missing or unknown FREQ is not an error here;
        see rrule_validation.validate_rule.

    Raises:
        MalformedRuleError: If a value cannot be coerced to its expected type
    """
    values: dict = {}
    for segment in normalize_rule_text(text).split(";"):
        if "=" not in segment:
            continue
        key, value = segment.split("=", 1)
        key = key.strip().upper()
        if key not in _FIELD_PARSERS:
            continue
        field_name, parser = _FIELD_PARSERS[key]
        values[field_name] = parser(key, value)

    return RecurrenceRule(**values)


# =============================================================================
# Serialization
# =============================================================================


def _format_until(until: date) -> str:
    if isinstance(until, datetime):
        if until.tzinfo is not None:
            return until.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        return until.strftime("%Y%m%dT%H%M%S")
    return until.strftime("%Y%m%d")


def serialize_rule(rule: RecurrenceRule) -> str:
    """
    Serialize a rule back to RRULE text.

    FREQ comes first, followed by INTERVAL, BYDAY, BYSETPOS, BYMONTHDAY,
    COUNT and UNTIL. Unset fields (and INTERVAL=1) are omitted.
    """
    parts = []
    if rule.frequency:
        parts.append(f"FREQ={rule.frequency}")
    if rule.interval != 1:
        parts.append(f"INTERVAL={rule.interval}")
    if rule.by_weekdays:
        parts.append("BYDAY=" + ",".join(str(w) for w in rule.by_weekdays))
    if rule.by_set_positions:
        parts.append("BYSETPOS=" + ",".join(str(p) for p in rule.by_set_positions))
    if rule.by_month_days:
        parts.append("BYMONTHDAY=" + ",".join(str(d) for d in rule.by_month_days))
    if rule.count is not None:
        parts.append(f"COUNT={rule.count}")
    if rule.until is not None:
        parts.append(f"UNTIL={_format_until(rule.until)}")
    return ";".join(parts)


# =============================================================================
# Human-readable description
# =============================================================================


_TEXT = {
    "en": {
        "freq_single": {
            "DAILY": "Daily",
            "WEEKLY": "Weekly",
            "MONTHLY": "Monthly",
            "YEARLY": "Yearly",
        },
        "freq_plural": {
            "DAILY": "Every {n} days",
            "WEEKLY": "Every {n} weeks",
            "MONTHLY": "Every {n} months",
            "YEARLY": "Every {n} years",
        },
        "days": ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"),
        "positions": {1: "1st", 2: "2nd", 3: "3rd", 4: "4th", 5: "5th", -1: "last", -2: "2nd to last"},
        "on": "on",
        "on_the": "on the",
        "the": "the",
        "and": "and",
        "month_days": "on day {days}",
        "count": "for {n} occurrences",
        "until": "until {date}",
        "separator": ", ",
    },
    "de": {
        "freq_single": {
            "DAILY": "Täglich",
            "WEEKLY": "Wöchentlich",
            "MONTHLY": "Monatlich",
            "YEARLY": "Jährlich",
        },
        "freq_plural": {
            "DAILY": "Alle {n} Tage",
            "WEEKLY": "Alle {n} Wochen",
            "MONTHLY": "Alle {n} Monate",
            "YEARLY": "Alle {n} Jahre",
        },
        "days": ("Montag", "Dienstag", "Mittwoch", "Donnerstag", "Freitag", "Samstag", "Sonntag"),
        "positions": {1: "ersten", 2: "zweiten", 3: "dritten", 4: "vierten", 5: "fünften",
                      -1: "letzten", -2: "vorletzten"},
        "on": "am",
        "on_the": "am",
        "the": "",
        "and": "und",
        "month_days": "am {days}. Tag",
        "count": "für {n} Termine",
        "until": "bis {date}",
        "separator": " ",
    },
}

_MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _language(locale: Optional[str]) -> str:
    language = (locale or "en").replace("-", "_").split("_")[0].lower()
    return language if language in _TEXT else "en"


def _position_name(text: dict, position: int) -> str:
    if position in text["positions"]:
        return text["positions"][position]
    return f"{position}."


def _format_date(language: str, value: date) -> str:
    if language == "de":
        return value.strftime("%d.%m.%Y")
    return f"{_MONTH_ABBR[value.month - 1]} {value.day} {value.year}"


def describe_rule(rule: RecurrenceRule, locale: str = "en") -> str:
    """
    Describe a rule in one line, e.g. 'Monthly on the last Friday, until Dec 31 2025'.

    Args:
        rule: Parsed rule
        locale: 'en' (default) or 'de'; region suffixes are ignored

    Returns:
        Description string. Wording is informational only.
    """
    language = _language(locale)
    text = _TEXT[language]

    frequency = rule.frequency or "WEEKLY"
    if rule.interval == 1:
        head = text["freq_single"].get(frequency, frequency)
    else:
        head = text["freq_plural"].get(frequency, frequency).format(n=rule.interval)

    day_names = [text["days"][w.weekday] for w in rule.by_weekdays]
    if rule.by_set_positions and rule.by_weekdays:
        positions = f" {text['and']} ".join(
            _position_name(text, p) for p in rule.by_set_positions
        )
        head += f" {text['on_the']} {positions} {'/'.join(day_names)}"
    elif rule.by_weekdays:
        items = []
        for weekday_rule, name in zip(rule.by_weekdays, day_names):
            if weekday_rule.ordinal is None:
                items.append(name)
            else:
                words = (text["the"], _position_name(text, weekday_rule.ordinal), name)
                items.append(" ".join(w for w in words if w))
        head += f" {text['on']} " + ", ".join(items)

    if rule.by_month_days:
        joiner = "./" if language == "de" else ", "
        head += " " + text["month_days"].format(
            days=joiner.join(str(d) for d in rule.by_month_days)
        )

    tail = []
    if rule.count is not None:
        tail.append(text["count"].format(n=rule.count))
    if rule.until is not None:
        tail.append(text["until"].format(date=_format_date(language, rule.until)))

    return text["separator"].join([head] + tail)
