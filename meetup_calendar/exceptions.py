"""
Custom exceptions for recurrence and series operations.

Each error carries a message that the admin UI can display verbatim and an
``error_type`` used in API error bodies.
"""


class MeetupCalendarError(Exception):
    """Base exception for recurrence and series operations."""

    error_type: str = "calendar_error"
    retryable: bool = False

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class MalformedRuleError(MeetupCalendarError):
    """
    A rule-text segment could not be coerced to its expected type.

    Causes:
    - Non-numeric INTERVAL, COUNT, BYSETPOS or BYMONTHDAY
    - Unknown weekday token in BYDAY
    - Unparseable UNTIL date
    """

    error_type = "malformed_rule"

    def __init__(self, message: str, key: str | None = None, value: str | None = None):
        super().__init__(message)
        self.key = key
        self.value = value


class RuleValidationError(MeetupCalendarError):
    """
    A parsed rule is internally inconsistent.

    Raised only on write paths; expansion never raises this.
    """

    error_type = "invalid_rule"

    def __init__(self, errors: list):
        self.errors = list(errors)
        message = "; ".join(getattr(e, "message", str(e)) for e in self.errors)
        super().__init__(message or "Invalid recurrence rule")


class DuplicateExceptionError(MeetupCalendarError):
    """The date is already in the series' exception set."""

    error_type = "duplicate_exception"


class ExceptionOverrideConflictError(MeetupCalendarError):
    """
    Exception dates and overrides are mutually exclusive for the same date.

    Causes:
    - Excluding a date that carries an override
    - Overriding or cancelling a date that is excluded
    """

    error_type = "exception_override_conflict"


class MissingInstanceDateError(MeetupCalendarError):
    """A required instance date was not supplied."""

    error_type = "missing_instance_date"


class InvalidInstanceDateError(MeetupCalendarError):
    """An instance date is not a valid YYYY-MM-DD calendar date."""

    error_type = "invalid_instance_date"


class InvalidOverrideError(MeetupCalendarError):
    """An override carries a value that cannot be stored (e.g. a bad time)."""

    error_type = "invalid_override"


class PastInstanceCancellationError(MeetupCalendarError):
    """Instances strictly before today cannot be cancelled."""

    error_type = "past_instance_cancellation"


class SeriesNotFoundError(MeetupCalendarError):
    """The requested series does not exist."""

    error_type = "series_not_found"
