"""
Recurrence rule validation.

Checks a parsed RecurrenceRule for internal consistency. Validation is
advisory for read paths (the expander degrades to no occurrences) and
mandatory for write paths, which must reject any non-empty result.
"""

import logging
from enum import Enum

from meetup_calendar.exceptions import RuleValidationError
from meetup_calendar.services.rrule import RecurrenceRule, parse_rule

logger = logging.getLogger(__name__)

MIN_INTERVAL = 1
MAX_INTERVAL = 366
MIN_COUNT = 1
MAX_COUNT = 1000
MAX_POSITION = 5


class RuleErrorKind(str, Enum):
    """Named validation errors, each with a user-facing message."""

    MISSING_FREQ = "missing_freq"
    INVALID_FREQ = "invalid_freq"
    INTERVAL_OUT_OF_RANGE = "interval_out_of_range"
    COUNT_OUT_OF_RANGE = "count_out_of_range"
    BYSETPOS_OUT_OF_RANGE = "bysetpos_out_of_range"
    BYSETPOS_WITH_BYMONTHDAY = "bysetpos_with_bymonthday"
    BYDAY_POSITION_OUT_OF_RANGE = "byday_position_out_of_range"
    BYMONTHDAY_OUT_OF_RANGE = "bymonthday_out_of_range"

    @property
    def message(self) -> str:
        return ERROR_MESSAGES[self]


ERROR_MESSAGES = {
    RuleErrorKind.MISSING_FREQ: "FREQ is required",
    RuleErrorKind.INVALID_FREQ: "FREQ must be one of DAILY, WEEKLY, MONTHLY, YEARLY",
    RuleErrorKind.INTERVAL_OUT_OF_RANGE: f"INTERVAL must be between {MIN_INTERVAL} and {MAX_INTERVAL}",
    RuleErrorKind.COUNT_OUT_OF_RANGE: f"COUNT must be between {MIN_COUNT} and {MAX_COUNT}",
    RuleErrorKind.BYSETPOS_OUT_OF_RANGE: "BYSETPOS must be between -5 and 5 (excluding 0)",
    RuleErrorKind.BYSETPOS_WITH_BYMONTHDAY: "BYSETPOS and BYMONTHDAY cannot be used together",
    RuleErrorKind.BYDAY_POSITION_OUT_OF_RANGE: "BYDAY positions must be between -5 and 5 (excluding 0)",
    RuleErrorKind.BYMONTHDAY_OUT_OF_RANGE: "BYMONTHDAY values must be between 1 and 31",
}


def _valid_position(position: int) -> bool:
    return position != 0 and -MAX_POSITION <= position <= MAX_POSITION


def validate_rule(rule: RecurrenceRule) -> list[RuleErrorKind]:
    """
    Check a rule for consistency.

    Args:
        rule: Parsed rule

    Returns:
        List of RuleErrorKind (empty when the rule is valid), in check order
    """
    errors: list[RuleErrorKind] = []

    if rule.frequency is None:
        errors.append(RuleErrorKind.MISSING_FREQ)
    elif rule.freq is None:
        errors.append(RuleErrorKind.INVALID_FREQ)

    if not MIN_INTERVAL <= rule.interval <= MAX_INTERVAL:
        errors.append(RuleErrorKind.INTERVAL_OUT_OF_RANGE)

    if rule.count is not None and not MIN_COUNT <= rule.count <= MAX_COUNT:
        errors.append(RuleErrorKind.COUNT_OUT_OF_RANGE)

    if any(not _valid_position(p) for p in rule.by_set_positions):
        errors.append(RuleErrorKind.BYSETPOS_OUT_OF_RANGE)

    if rule.by_set_positions and rule.by_month_days:
        errors.append(RuleErrorKind.BYSETPOS_WITH_BYMONTHDAY)

    if any(w.ordinal is not None and not _valid_position(w.ordinal) for w in rule.by_weekdays):
        errors.append(RuleErrorKind.BYDAY_POSITION_OUT_OF_RANGE)

    if any(not 1 <= d <= 31 for d in rule.by_month_days):
        errors.append(RuleErrorKind.BYMONTHDAY_OUT_OF_RANGE)

    return errors


def is_valid_rule(rule: RecurrenceRule) -> bool:
    """Check whether a rule has no validation errors."""
    return not validate_rule(rule)


def ensure_valid_rule(rule: RecurrenceRule) -> RecurrenceRule:
    """
    Validate a rule for a write path.

    Raises:
        RuleValidationError: If the rule has any validation errors
    """
    errors = validate_rule(rule)
    if errors:
        raise RuleValidationError(errors)

    if rule.count is not None and rule.until is not None:
        # RFC 5545 discourages COUNT with UNTIL but does not forbid it
        logger.warning(f"Rule '{rule}' sets both COUNT and UNTIL; the first bound reached wins")
    return rule


def parse_and_validate(text: str) -> RecurrenceRule:
    """
    Parse and validate rule text in one step (write paths).

    Raises:
        MalformedRuleError: If the text cannot be parsed
        RuleValidationError: If the parsed rule is inconsistent
    """
    if not text or not text.strip():
        raise RuleValidationError([RuleErrorKind.MISSING_FREQ])
    return ensure_valid_rule(parse_rule(text))

