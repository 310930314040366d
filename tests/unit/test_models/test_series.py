"""
Unit tests for EventSeries and SeriesOverride models.

Tests:
- GUID primary keys with SQLite (CHAR storage)
- Column defaults and JSON columns
- Override relationship, unique constraint and cascade delete
"""

import uuid
from datetime import date, time

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meetup_calendar.models import EventSeries, GUID, SeriesOverride


def make_series(**kwargs) -> EventSeries:
    values = dict(
        title="Python Meetup",
        rrule="FREQ=WEEKLY;BYDAY=TU",
        start_date=date(2025, 1, 7),
        start_time=time(19, 0),
        end_time=time(21, 0),
    )
    values.update(kwargs)
    return EventSeries(**values)


class TestGUID:
    """Test the GUID TypeDecorator."""

    def test_id_generated(self, db_session: Session):
        """Test ids are generated as UUIDs and persist."""
        series = make_series()
        db_session.add(series)
        db_session.commit()
        original_id = series.id

        db_session.expire_all()
        assert isinstance(series.id, uuid.UUID)
        assert series.id == original_id

    def test_bind_param_sqlite_hex(self):
        """Test SQLite storage is the 32-character hex form."""
        from sqlalchemy.dialects import sqlite

        value = uuid.uuid4()
        assert GUID().process_bind_param(value, sqlite.dialect()) == value.hex
        assert GUID().process_bind_param(str(value), sqlite.dialect()) == value.hex

    def test_result_value(self):
        """Test stored hex converts back to UUID."""
        from sqlalchemy.dialects import sqlite

        value = uuid.uuid4()
        assert GUID().process_result_value(value.hex, sqlite.dialect()) == value
        assert GUID().process_result_value(None, sqlite.dialect()) is None


class TestEventSeries:
    """Test EventSeries model."""

    def test_defaults(self, db_session: Session):
        """Test column defaults after insert."""
        series = make_series()
        db_session.add(series)
        db_session.commit()
        db_session.refresh(series)

        assert series.timezone == "Europe/Berlin"
        assert series.status == "published"
        assert series.is_published
        assert series.exdates == []
        assert series.tags == []
        assert series.default_requires_registration is False
        assert series.created_at is not None

    def test_json_columns(self, db_session: Session):
        """Test exdates and tags round-trip as lists."""
        series = make_series(exdates=["2025-01-14"], tags=["python", "talks"])
        db_session.add(series)
        db_session.commit()
        db_session.expire_all()

        assert series.exdates == ["2025-01-14"]
        assert series.tags == ["python", "talks"]

    def test_to_dict(self, db_session: Session):
        """Test to_dict exposes column values."""
        series = make_series()
        db_session.add(series)
        db_session.commit()

        data = series.to_dict()
        assert data["title"] == "Python Meetup"
        assert data["rrule"] == "FREQ=WEEKLY;BYDAY=TU"
        assert "overrides" not in data


class TestSeriesOverride:
    """Test SeriesOverride model."""

    def test_relationship_ordered_by_date(self, db_session: Session, stored_series):
        """Test overrides load in instance date order."""
        db_session.add_all([
            SeriesOverride(series_id=stored_series.id, instance_date=date(2025, 1, 21), title="B"),
            SeriesOverride(series_id=stored_series.id, instance_date=date(2025, 1, 14), title="A"),
        ])
        db_session.commit()
        db_session.expire_all()

        assert [o.title for o in stored_series.overrides] == ["A", "B"]
        assert stored_series.overrides[0].override_type == "changed"
        assert stored_series.overrides[0].override_fields == {}

    def test_unique_instance_date(self, db_session: Session, stored_series):
        """Test only one override per series and date."""
        db_session.add_all([
            SeriesOverride(series_id=stored_series.id, instance_date=date(2025, 1, 14)),
            SeriesOverride(series_id=stored_series.id, instance_date=date(2025, 1, 14)),
        ])

        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_cascade_delete(self, db_session: Session, stored_series):
        """Test deleting a series deletes its overrides."""
        stored_series.overrides.append(SeriesOverride(instance_date=date(2025, 1, 14)))
        db_session.commit()

        db_session.delete(stored_series)
        db_session.commit()

        assert db_session.query(SeriesOverride).count() == 0
