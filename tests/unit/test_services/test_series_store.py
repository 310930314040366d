"""
Unit tests for series persistence.

Tests row/snapshot conversion, stored mutations and windowed queries
against an in-memory database.
"""

import logging
import uuid
from datetime import date, time

import pytest

from meetup_calendar.exceptions import (
    DuplicateExceptionError,
    ExceptionOverrideConflictError,
    InvalidOverrideError,
    MalformedRuleError,
    PastInstanceCancellationError,
    RuleValidationError,
    SeriesNotFoundError,
)
from meetup_calendar.models import EventSeries, SeriesOverride
from meetup_calendar.services import series_store
from meetup_calendar.services.recurrence import InstanceOverride, OverrideType

JANUARY = (date(2025, 1, 1), date(2025, 1, 31))
TODAY = date(2025, 1, 1)


class TestCreateSeries:
    """Test create_series function."""

    def test_create_normalizes_rule(self, db_session):
        """Test the stored rule is normalized."""
        series = series_store.create_series(
            db_session,
            title="Monthly Social",
            rrule="RRULE:BYSETPOS=1;BYDAY=TU;FREQ=MONTHLY",
            start_date=date(2025, 1, 7),
            start_time=time(19, 0),
            end_time=time(22, 0),
            exdates=["2025-03-04", "2025-02-04"],
        )
        db_session.commit()

        assert series.rrule == "FREQ=MONTHLY;BYDAY=TU;BYSETPOS=1"
        assert series.timezone == "Europe/Berlin"
        assert series.exdates == ["2025-02-04", "2025-03-04"]

    def test_create_invalid_rule_rejected(self, db_session):
        """Test an inconsistent rule is not saved."""
        with pytest.raises(RuleValidationError):
            series_store.create_series(
                db_session,
                title="Broken",
                rrule="FREQ=MONTHLY;BYSETPOS=1;BYMONTHDAY=15",
                start_date=date(2025, 1, 15),
                start_time=time(19, 0),
                end_time=time(21, 0),
            )

        assert db_session.query(EventSeries).count() == 0

    def test_create_malformed_rule_rejected(self, db_session):
        """Test unparseable rule text is rejected."""
        with pytest.raises(MalformedRuleError):
            series_store.create_series(
                db_session,
                title="Broken",
                rrule="FREQ=WEEKLY;INTERVAL=two",
                start_date=date(2025, 1, 7),
                start_time=time(19, 0),
                end_time=time(21, 0),
            )


class TestSeriesToDefinition:
    """Test series_to_definition function."""

    def test_snapshot(self, stored_series):
        """Test base occurrence and fields are carried over."""
        definition = series_store.series_to_definition(stored_series)

        assert definition.series_id == str(stored_series.id)
        assert definition.start.hour == 19
        assert definition.end.hour == 21
        assert definition.fields["title"] == "Python Meetup"
        assert definition.fields["location_name"] == "Hackerspace"
        assert definition.fields["tags"] == ["python"]

    def test_overnight_end(self, stored_series):
        """Test an end time before the start time ends the next day."""
        stored_series.start_time = time(22, 0)
        stored_series.end_time = time(1, 0)

        definition = series_store.series_to_definition(stored_series)
        assert (definition.end - definition.start).total_seconds() == 3 * 3600

    def test_invalid_stored_exdate_skipped(self, stored_series, caplog):
        """Test a corrupt exception date is logged and ignored."""
        stored_series.exdates = ["2025-01-14", "garbage"]

        with caplog.at_level(logging.WARNING, logger="meetup_calendar.services.series_store"):
            definition = series_store.series_to_definition(stored_series)

        assert definition.exception_dates == (date(2025, 1, 14),)
        assert "garbage" in caplog.text


class TestQueries:
    """Test series lookups and windowed expansion."""

    def test_get_series_by_id(self, db_session, stored_series):
        """Test lookup by UUID and by string id."""
        assert series_store.get_series_by_id(db_session, stored_series.id) is stored_series
        assert series_store.get_series_by_id(db_session, str(stored_series.id)) is stored_series

    @pytest.mark.parametrize("series_id", ["not-a-uuid", str(uuid.uuid4())])
    def test_get_series_not_found(self, db_session, series_id):
        """Test unknown ids raise SeriesNotFoundError."""
        with pytest.raises(SeriesNotFoundError):
            series_store.get_series_by_id(db_session, series_id)

    def test_expanded_occurrences(self, db_session, stored_series):
        """Test published series are expanded over the window."""
        occurrences = series_store.get_expanded_occurrences(db_session, *JANUARY)

        assert [o.instance_date for o in occurrences] == [
            date(2025, 1, 7), date(2025, 1, 14), date(2025, 1, 21), date(2025, 1, 28)
        ]
        assert occurrences[0].id == f"{stored_series.id}_2025-01-07"

    def test_drafts_excluded(self, db_session, stored_series):
        """Test draft series do not appear in the public expansion."""
        stored_series.status = "draft"
        db_session.commit()

        assert series_store.get_expanded_occurrences(db_session, *JANUARY) == []
        assert len(series_store.get_series_occurrences(db_session, stored_series.id, *JANUARY)) == 4

    def test_merged_and_sorted(self, db_session, stored_series):
        """Test occurrences of several series are merged by start time."""
        series_store.create_series(
            db_session,
            title="Breakfast",
            rrule="FREQ=WEEKLY;BYDAY=TU",
            start_date=date(2025, 1, 7),
            start_time=time(8, 0),
            end_time=time(9, 0),
        )
        db_session.commit()

        occurrences = series_store.get_expanded_occurrences(db_session, date(2025, 1, 7), date(2025, 1, 7))
        assert [o.title for o in occurrences] == ["Breakfast", "Python Meetup"]

    def test_corrupt_rule_does_not_break_others(self, db_session, stored_series):
        """Test a series with a bad stored rule contributes nothing."""
        broken = EventSeries(
            title="Broken",
            rrule="FREQ=SOMETIMES",
            start_date=date(2025, 1, 1),
            start_time=time(10, 0),
            end_time=time(11, 0),
            exdates=[],
            tags=[],
        )
        db_session.add(broken)
        db_session.commit()

        occurrences = series_store.get_expanded_occurrences(db_session, *JANUARY)
        assert {o.title for o in occurrences} == {"Python Meetup"}


class TestStoredMutations:
    """Test mutations written back to the database."""

    def test_add_and_remove_exdate(self, db_session, stored_series):
        """Test exception dates are persisted sorted and removed again."""
        series_store.add_series_exdate(db_session, stored_series.id, "2025-01-21")
        series_store.add_series_exdate(db_session, stored_series.id, "2025-01-14")
        db_session.commit()

        assert stored_series.exdates == ["2025-01-14", "2025-01-21"]
        occurrences = series_store.get_expanded_occurrences(db_session, *JANUARY)
        assert [o.instance_date for o in occurrences] == [date(2025, 1, 7), date(2025, 1, 28)]

        series_store.remove_series_exdate(db_session, stored_series.id, "2025-01-14")
        db_session.commit()
        assert stored_series.exdates == ["2025-01-21"]

    def test_duplicate_exdate(self, db_session, stored_series):
        """Test a duplicate exception date is rejected."""
        series_store.add_series_exdate(db_session, stored_series.id, "2025-01-14")

        with pytest.raises(DuplicateExceptionError):
            series_store.add_series_exdate(db_session, stored_series.id, "2025-01-14")

    def test_override_persisted(self, db_session, stored_series):
        """Test a CHANGED override is stored in columns and extra fields."""
        override = InstanceOverride(
            instance_date=date(2025, 1, 14),
            fields={"title": "Lightning Talks", "start_time": time(18, 0), "speaker": "Ada"},
        )
        series_store.set_series_override(db_session, stored_series.id, override)
        db_session.commit()

        row = db_session.query(SeriesOverride).one()
        assert row.title == "Lightning Talks"
        assert row.start_time == time(18, 0)
        assert row.override_fields == {"speaker": "Ada"}
        assert row.override_type == "changed"

        occurrences = series_store.get_expanded_occurrences(db_session, date(2025, 1, 14), date(2025, 1, 14))
        assert occurrences[0].title == "Lightning Talks"
        assert occurrences[0].start.hour == 18
        assert occurrences[0].fields["speaker"] == "Ada"

    @pytest.mark.parametrize("key", ["start_time", "end_time"])
    def test_override_invalid_time_rejected(self, db_session, stored_series, key):
        """Test an unparseable override time is rejected before anything is written."""
        override = InstanceOverride(instance_date=date(2025, 1, 14), fields={key: "nope"})

        with pytest.raises(InvalidOverrideError):
            series_store.set_series_override(db_session, stored_series.id, override)

        db_session.commit()
        assert db_session.query(SeriesOverride).count() == 0

    def test_override_time_string_stored(self, db_session, stored_series):
        """Test ISO time strings are stored as times."""
        override = InstanceOverride(instance_date=date(2025, 1, 14), fields={"end_time": "22:30"})
        series_store.set_series_override(db_session, stored_series.id, override)
        db_session.commit()

        assert db_session.query(SeriesOverride).one().end_time == time(22, 30)

    def test_override_round_trip(self, db_session, stored_series):
        """Test override_from_model reads back what apply_override_to_model wrote."""
        override = InstanceOverride(
            instance_date=date(2025, 1, 14),
            override_type=OverrideType.CANCELLED,
            fields={"location_name": "Online"},
            cancellation_reason="Storm",
        )
        row = series_store.apply_override_to_model(SeriesOverride(series_id=stored_series.id), override)

        assert series_store.override_from_model(row) == override

    def test_exdate_on_overridden_date_conflicts(self, db_session, stored_series):
        """Test a stored override blocks excluding the same date."""
        series_store.set_series_override(
            db_session, stored_series.id,
            InstanceOverride(instance_date=date(2025, 1, 14), fields={"title": "X"}),
        )

        with pytest.raises(ExceptionOverrideConflictError):
            series_store.add_series_exdate(db_session, stored_series.id, "2025-01-14")

    def test_cancel_and_restore(self, db_session, stored_series):
        """Test cancelling creates a cancelled row and restoring deletes it."""
        series_store.cancel_series_instance(
            db_session, stored_series.id, "2025-01-14", reason="Venue closed", today=TODAY
        )
        db_session.commit()

        row = db_session.query(SeriesOverride).one()
        assert row.override_type == "cancelled"
        assert row.cancellation_reason == "Venue closed"

        occurrences = series_store.get_expanded_occurrences(db_session, *JANUARY)
        assert len(occurrences) == 4
        assert [o.is_cancelled for o in occurrences] == [False, True, False, False]

        series_store.restore_series_instance(db_session, stored_series.id, "2025-01-14")
        db_session.commit()
        assert db_session.query(SeriesOverride).count() == 0

    def test_cancel_past_rejected(self, db_session, stored_series):
        """Test cancelling before today is rejected."""
        with pytest.raises(PastInstanceCancellationError):
            series_store.cancel_series_instance(
                db_session, stored_series.id, "2025-01-07", today=date(2025, 2, 1)
            )

    def test_clear_override(self, db_session, stored_series):
        """Test clearing deletes the stored row."""
        series_store.set_series_override(
            db_session, stored_series.id,
            InstanceOverride(instance_date=date(2025, 1, 14), fields={"title": "X"}),
        )
        series_store.clear_series_override(db_session, stored_series.id, "2025-01-14")
        db_session.commit()

        assert db_session.query(SeriesOverride).count() == 0
