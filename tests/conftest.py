"""
Pytest configuration and fixtures for Meetup Calendar tests.

Provides an in-memory database session and sample series.
"""

import os

# Must be set before meetup_calendar.database creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("PYTHON_ENV", "development")

from datetime import date, datetime, time
from typing import Generator

import pytest
import sqlalchemy as sa
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from meetup_calendar.models import Base, EventSeries
from meetup_calendar.services.recurrence import SeriesDefinition


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """
    Create a clean database session for each test.

    Uses an in-memory SQLite database shared across threads (StaticPool),
    so TestClient requests see the same data. Torn down after each test.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as connection:
            connection.execute(sa.text("PRAGMA foreign_keys=OFF"))
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def tuesday_series() -> SeriesDefinition:
    """Weekly Tuesday meetup, 19:00-21:00 Berlin time, from 2025-01-07."""
    return SeriesDefinition(
        series_id="s1",
        start=datetime(2025, 1, 7, 19, 0),
        end=datetime(2025, 1, 7, 21, 0),
        rrule="FREQ=WEEKLY;BYDAY=TU",
        timezone="Europe/Berlin",
        fields={"title": "Python Meetup", "description": "Talks and pizza"},
        defaults={"title": "Python Meetup", "description": "Talks and pizza"},
    )


@pytest.fixture
def stored_series(db_session: Session) -> EventSeries:
    """
    Create a published weekly Tuesday series in the database.

    Returns:
        EventSeries: Persisted series starting 2025-01-07
    """
    series = EventSeries(
        title="Python Meetup",
        description="Talks and pizza",
        rrule="FREQ=WEEKLY;BYDAY=TU",
        start_date=date(2025, 1, 7),
        start_time=time(19, 0),
        end_time=time(21, 0),
        timezone="Europe/Berlin",
        exdates=[],
        status="published",
        default_location_name="Hackerspace",
        tags=["python"],
    )
    db_session.add(series)
    db_session.commit()
    db_session.refresh(series)
    return series
