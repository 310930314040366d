"""
Unit tests for API request/response models.
"""

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from meetup_calendar.api.models import (
    CreateSeriesRequest,
    OccurrenceResponse,
    OverrideRequest,
    PreviewRequest,
)
from meetup_calendar.services.recurrence import Occurrence


BASE = {
    "title": "Python Meetup",
    "rrule": "FREQ=WEEKLY;BYDAY=TU",
    "start_date": "2025-01-07",
    "start_time": "19:00",
    "end_time": "21:00",
}


class TestCreateSeriesRequest:
    """Test CreateSeriesRequest validation."""

    def test_valid_request(self):
        """Test defaults are applied."""
        request = CreateSeriesRequest(**BASE)

        assert request.start_date == date(2025, 1, 7)
        assert request.start_time == time(19, 0)
        assert request.status == "published"
        assert request.timezone is None
        assert request.exdates == []

    def test_title_stripped(self):
        """Test surrounding whitespace is removed from the title."""
        assert CreateSeriesRequest(**{**BASE, "title": "  Meetup  "}).title == "Meetup"

    def test_blank_title_rejected(self):
        """Test whitespace-only titles are rejected."""
        with pytest.raises(ValidationError):
            CreateSeriesRequest(**{**BASE, "title": "   "})

    def test_unknown_status_rejected(self):
        """Test only draft and published are accepted."""
        with pytest.raises(ValidationError):
            CreateSeriesRequest(**{**BASE, "status": "archived"})

    def test_unknown_timezone_rejected(self):
        """Test timezones must be known IANA names."""
        with pytest.raises(ValidationError):
            CreateSeriesRequest(**{**BASE, "timezone": "Europe/Atlantis"})

    def test_known_timezone(self):
        """Test a valid timezone is kept."""
        assert PreviewRequest(
            rrule="FREQ=DAILY",
            start_date="2025-01-07",
            start_time="19:00",
            end_time="21:00",
            timezone="America/New_York",
        ).timezone == "America/New_York"


class TestOverrideRequest:
    """Test OverrideRequest.override_fields."""

    def test_only_supplied_fields(self):
        """Test omitted fields are not overridden."""
        request = OverrideRequest(instance_date="2025-01-14", title="Special")
        assert request.override_fields() == {"title": "Special"}

    def test_extra_fields_merged(self):
        """Test extra fields are carried alongside named ones."""
        request = OverrideRequest(
            instance_date="2025-01-14",
            start_time="18:00",
            extra_fields={"max_participants": 10},
        )
        assert request.override_fields() == {"max_participants": 10, "start_time": time(18, 0)}

    @pytest.mark.parametrize("key", ["start_time", "end_time", "title"])
    def test_named_fields_rejected_in_extra_fields(self, key):
        """Test typed fields cannot bypass validation through extra_fields."""
        with pytest.raises(ValidationError):
            OverrideRequest(instance_date="2025-01-14", extra_fields={key: "nope"})


class TestOccurrenceResponse:
    """Test OccurrenceResponse.from_occurrence."""

    def test_from_occurrence(self):
        """Test occurrence fields are flattened into the response."""
        berlin = ZoneInfo("Europe/Berlin")
        occurrence = Occurrence(
            series_id="s1",
            instance_date=date(2025, 1, 7),
            start=datetime(2025, 1, 7, 19, 0, tzinfo=berlin),
            end=datetime(2025, 1, 7, 21, 0, tzinfo=berlin),
            fields={"title": "Python Meetup", "location_name": "Hackerspace"},
        )

        response = OccurrenceResponse.from_occurrence(occurrence)
        data = response.model_dump()

        assert response.id == "s1_2025-01-07"
        assert response.title == "Python Meetup"
        assert response.start_datetime == "2025-01-07T19:00:00+01:00"
        assert data["location_name"] == "Hackerspace"
        assert response.is_cancelled is False
