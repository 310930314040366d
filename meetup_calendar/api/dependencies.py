"""
FastAPI dependency providers.
"""

import logging
from datetime import date
from typing import Optional

from dateutil.parser import isoparse
from fastapi import HTTPException, Query

from meetup_calendar.config import Settings, get_settings

logger = logging.getLogger(__name__)


def get_app_settings() -> Settings:
    """Dependency injection for settings (overridable in tests)."""
    return get_settings()


def _parse_query_date(name: str, value: Optional[str]) -> Optional[date]:
    if value is None or not value.strip():
        return None
    try:
        return isoparse(value.strip()).date()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid {name} date '{value}': {e}")


def get_date_window(
    start: Optional[str] = Query(None, description="Window start (YYYY-MM-DD)"),
    end: Optional[str] = Query(None, description="Window end (YYYY-MM-DD), inclusive"),
) -> tuple[date, date]:
    """
    Resolve the ?start=&end= query window.

    Both bounds are required; end must not be before start.

    Raises:
        HTTPException: 400 on missing, unparseable or inverted bounds
    """
    window_start = _parse_query_date("start", start)
    window_end = _parse_query_date("end", end)
    if window_start is None or window_end is None:
        raise HTTPException(status_code=400, detail="Both start and end are required (YYYY-MM-DD)")
    if window_end < window_start:
        raise HTTPException(status_code=400, detail="end must not be before start")
    return window_start, window_end
