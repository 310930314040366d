"""
FastAPI application for Meetup Calendar.

Main entry point for the HTTP API, providing:
- Public calendar endpoints (expanded occurrences, ICS feed)
- Rule validation and recurrence preview for the authoring UI
- Admin series routes (see series_routes)
- Health endpoint
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from meetup_calendar.api.dependencies import get_app_settings, get_date_window
from meetup_calendar.api.middleware import RequestLoggingMiddleware
from meetup_calendar.api.models import (
    HealthResponse,
    OccurrenceListResponse,
    OccurrenceResponse,
    PreviewRequest,
    PreviewResponse,
    RuleErrorResponse,
    ValidateRuleRequest,
    ValidateRuleResponse,
)
from meetup_calendar.api.series_routes import router as series_router
from meetup_calendar.config import Settings, get_settings
from meetup_calendar.database import check_connection, get_db, init_db
from meetup_calendar.exceptions import (
    DuplicateExceptionError,
    ExceptionOverrideConflictError,
    InvalidInstanceDateError,
    InvalidOverrideError,
    MalformedRuleError,
    MeetupCalendarError,
    MissingInstanceDateError,
    PastInstanceCancellationError,
    RuleValidationError,
    SeriesNotFoundError,
)
from meetup_calendar.services import ics, series_store
from meetup_calendar.services.overrides import today_in_timezone
from meetup_calendar.services.recurrence import preview_occurrences
from meetup_calendar.services.rrule import describe_rule, parse_rule, serialize_rule
from meetup_calendar.services.rrule_validation import parse_and_validate, validate_rule

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"

# Domain error -> HTTP status
ERROR_STATUS = {
    MalformedRuleError: 422,
    RuleValidationError: 422,
    DuplicateExceptionError: 409,
    ExceptionOverrideConflictError: 409,
    PastInstanceCancellationError: 400,
    MissingInstanceDateError: 400,
    InvalidInstanceDateError: 400,
    InvalidOverrideError: 400,
    SeriesNotFoundError: 404,
}


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting Meetup Calendar API")
    if settings.auto_create_tables:
        init_db()
    yield
    logger.info("Shutting down Meetup Calendar API")


app = FastAPI(
    title="Meetup Calendar API",
    description="""
# Meetup Calendar API

Recurring meetups stored as a rule plus exceptions; instances are generated
on read.

## Error Handling

- **400** - Missing or invalid instance date, past cancellation
- **404** - Series not found
- **409** - Date already excluded, or exception/override conflict
- **422** - Malformed or invalid recurrence rule
    """,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(series_router)


# =============================================================================
# Exception Handlers
# =============================================================================


def error_status(exc: MeetupCalendarError) -> int:
    """HTTP status for a domain error (400 for unmapped kinds)."""
    for error_class, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_class):
            return status_code
    return 400


@app.exception_handler(MeetupCalendarError)
async def calendar_exception_handler(request, exc: MeetupCalendarError):
    """Map domain errors to HTTP responses."""
    status_code = error_status(exc)
    logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc.message}")
    content = {
        "error_type": exc.error_type,
        "message": exc.message,
        "retryable": exc.retryable,
    }
    if isinstance(exc, RuleValidationError):
        content["errors"] = [{"code": e.value, "message": e.message} for e in exc.errors]
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_type": "http_error",
            "message": exc.detail,
            "retryable": exc.status_code >= 500,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error_type": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": True,
        },
    )


# =============================================================================
# Health
# =============================================================================


@app.get("/health", response_model=HealthResponse, summary="Health check", tags=["System"])
def health_check() -> HealthResponse:
    database_connected = check_connection()
    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        version=API_VERSION,
        database_connected=database_connected,
    )


# =============================================================================
# Public calendar
# =============================================================================


@app.get(
    "/events",
    response_model=OccurrenceListResponse,
    summary="List occurrences",
    description="Expanded, override-resolved occurrences of all published series. "
                "Cancelled instances are included and flagged.",
    tags=["Calendar"],
)
def list_events(
    window=Depends(get_date_window),
    db: Session = Depends(get_db),
) -> OccurrenceListResponse:
    start, end = window
    occurrences = series_store.get_expanded_occurrences(db, start, end)
    return OccurrenceListResponse(
        occurrences=[OccurrenceResponse.from_occurrence(o) for o in occurrences],
        total=len(occurrences),
        start=start,
        end=end,
    )


@app.get("/calendar.ics", summary="ICS feed", tags=["Calendar"])
def calendar_feed(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    """iCalendar feed of published series around today."""
    today = today_in_timezone(settings.timezone)
    start = today - timedelta(days=settings.feed_past_days)
    end = today + timedelta(days=settings.feed_future_days)

    occurrences = series_store.get_expanded_occurrences(db, start, end)
    body = ics.render_calendar(occurrences, name=settings.app_name, domain=settings.feed_domain)
    return Response(
        content=body,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": 'inline; filename="calendar.ics"'},
    )


# =============================================================================
# Authoring helpers
# =============================================================================


@app.post(
    "/rrule/validate",
    response_model=ValidateRuleResponse,
    summary="Validate a recurrence rule",
    tags=["Authoring"],
)
def validate_rrule(
    request: ValidateRuleRequest,
    settings: Settings = Depends(get_app_settings),
) -> ValidateRuleResponse:
    """
    Check a rule without saving anything.

    Malformed text is reported as an error entry rather than a 422, so the
    authoring form can show it inline.
    """
    try:
        rule = parse_rule(request.rrule)
    except MalformedRuleError as e:
        return ValidateRuleResponse(
            valid=False,
            errors=[RuleErrorResponse(code=e.error_type, message=e.message)],
        )

    errors = validate_rule(rule)
    if errors:
        return ValidateRuleResponse(
            valid=False,
            errors=[RuleErrorResponse(code=e.value, message=e.message) for e in errors],
        )

    return ValidateRuleResponse(
        valid=True,
        normalized=serialize_rule(rule),
        description=describe_rule(rule, request.locale or settings.describe_locale),
    )


@app.post(
    "/events/preview-recurring",
    response_model=PreviewResponse,
    summary="Preview an unsaved rule",
    tags=["Authoring"],
)
def preview_recurring(
    request: PreviewRequest,
    settings: Settings = Depends(get_app_settings),
) -> PreviewResponse:
    """
    Instances an unsaved rule would generate from today on.

    Covers settings.preview_months months, at most settings.preview_limit
    instances. An invalid rule is rejected with 422.
    """
    rule = parse_and_validate(request.rrule)
    timezone = request.timezone or settings.timezone

    start = datetime.combine(request.start_date, request.start_time)
    end = datetime.combine(request.start_date, request.end_time)
    if end <= start:
        end += timedelta(days=1)

    occurrences = preview_occurrences(
        rrule=request.rrule,
        start=start,
        end=end,
        today=today_in_timezone(timezone),
        months=settings.preview_months,
        limit=settings.preview_limit,
        timezone=timezone,
        exception_dates=request.exdates,
        fields={"title": request.title},
    )
    return PreviewResponse(
        description=describe_rule(rule, settings.describe_locale),
        occurrences=[OccurrenceResponse.from_occurrence(o) for o in occurrences],
        total=len(occurrences),
    )


def run_server(host: str = None, port: int = None, reload: bool = None):
    """Run the API server with Uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "meetup_calendar.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=settings.api_reload if reload is None else reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_server()
