"""
ASGI entry point.

Re-exports the FastAPI app from meetup_calendar/api/main.py, e.g.
`uvicorn meetup_calendar.app:app`.
"""

from meetup_calendar.api.main import app

__all__ = ["app"]
