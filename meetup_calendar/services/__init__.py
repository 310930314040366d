"""
Service layer for Meetup Calendar.

Provides:
- Recurrence rule parsing, validation and description
- Occurrence expansion and per-instance override resolution
- Series persistence and the ICS feed renderer
"""

from meetup_calendar.services.rrule import (
    Frequency,
    RecurrenceRule,
    WeekdayRule,
    describe_rule,
    normalize_rule_text,
    parse_rule,
    serialize_rule,
)

from meetup_calendar.services.rrule_validation import (
    RuleErrorKind,
    ensure_valid_rule,
    is_valid_rule,
    parse_and_validate,
    validate_rule,
)

from meetup_calendar.services.recurrence import (
    InstanceOverride,
    Occurrence,
    OverrideType,
    SeriesDefinition,
    build_rrule,
    count_occurrences_in_range,
    expand_series,
    format_instance_id,
    get_next_occurrence,
    iter_occurrences,
    parse_instance_date,
    preview_occurrences,
)

from meetup_calendar.services.overrides import (
    InstanceState,
    add_exception_date,
    apply_overrides,
    cancel_instance,
    clear_override,
    instance_state,
    remove_exception_date,
    resolve_series_occurrences,
    restore_instance,
    set_override,
    today_in_timezone,
)

__all__ = [
    # Rule parsing
    "Frequency",
    "RecurrenceRule",
    "WeekdayRule",
    "describe_rule",
    "normalize_rule_text",
    "parse_rule",
    "serialize_rule",
    # Rule validation
    "RuleErrorKind",
    "ensure_valid_rule",
    "is_valid_rule",
    "parse_and_validate",
    "validate_rule",
    # Expansion
    "InstanceOverride",
    "Occurrence",
    "OverrideType",
    "SeriesDefinition",
    "build_rrule",
    "count_occurrences_in_range",
    "expand_series",
    "format_instance_id",
    "get_next_occurrence",
    "iter_occurrences",
    "parse_instance_date",
    "preview_occurrences",
    # Overrides
    "InstanceState",
    "add_exception_date",
    "apply_overrides",
    "cancel_instance",
    "clear_override",
    "instance_state",
    "remove_exception_date",
    "resolve_series_occurrences",
    "restore_instance",
    "set_override",
    "today_in_timezone",
]
