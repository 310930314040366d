"""
SQLAlchemy models for Meetup Calendar.

Importing this package registers every table on Base.metadata, which
Alembic autogenerate and init_db rely on.
"""

from meetup_calendar.models.base import Base, BaseModel, GUID, get_json_type
from meetup_calendar.models.series import EventSeries, SeriesOverride

__all__ = [
    "Base",
    "BaseModel",
    "GUID",
    "get_json_type",
    "EventSeries",
    "SeriesOverride",
]
