"""
EventSeries and SeriesOverride models.

Entities:
- EventSeries: A recurring meetup (base occurrence + RRULE + exception dates)
- SeriesOverride: A persisted per-instance change or cancellation

Occurrences themselves are never stored; they are generated on read.
"""

import uuid
from datetime import date, time
from typing import Optional

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from meetup_calendar.models.base import BaseModel, get_json_type


class EventSeries(BaseModel):
    """
    A recurring event series.

    The base occurrence is ``start_date`` at ``start_time`` .. ``end_time``
    (wall clock in ``timezone``). ``end_date`` optionally stops the series
    independently of the rule's UNTIL. ``exdates`` holds excluded instance
    dates as sorted YYYY-MM-DD strings.
    """

    __tablename__ = "event_series"

    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Series title (copied onto each occurrence)"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Series description"
    )

    rrule: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        doc="RRULE text (e.g., 'FREQ=MONTHLY;BYDAY=TU;BYSETPOS=1')"
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Date of the base occurrence"
    )

    end_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Last date on which instances may occur"
    )

    start_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
        doc="Wall-clock start time"
    )

    end_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
        doc="Wall-clock end time (next day when not after start_time)"
    )

    timezone: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="Europe/Berlin",
        doc="IANA timezone of the wall-clock times"
    )

    exdates: Mapped[list] = mapped_column(
        get_json_type(),
        nullable=False,
        default=list,
        doc="Excluded instance dates (YYYY-MM-DD)"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="published",
        doc="'draft' or 'published'; only published series appear in feeds"
    )

    # Defaults carried onto every instance
    default_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    default_location_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    default_location_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    default_max_participants: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    default_requires_registration: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    tags: Mapped[list] = mapped_column(
        get_json_type(),
        nullable=False,
        default=list,
        doc="Free-form tags"
    )

    overrides: Mapped[list["SeriesOverride"]] = relationship(
        "SeriesOverride",
        back_populates="series",
        cascade="all, delete-orphan",
        order_by="SeriesOverride.instance_date",
    )

    __table_args__ = (
        Index("ix_event_series_status", "status"),
        Index("ix_event_series_start_date", "start_date"),
    )

    @property
    def is_published(self) -> bool:
        return self.status == "published"

    def __repr__(self) -> str:
        return f"<EventSeries(id={self.id}, title='{self.title}', rrule='{self.rrule}')>"


class SeriesOverride(BaseModel):
    """
    Per-instance override of a series.

    ``override_type`` is 'changed' (some fields replaced) or 'cancelled'.
    NULL columns mean "not overridden". Fields without a dedicated column
    go into ``override_fields``.
    """

    __tablename__ = "series_overrides"

    series_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("event_series.id", ondelete="CASCADE"),
        nullable=False,
        doc="Series this override belongs to"
    )

    instance_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Generated date this override applies to"
    )

    override_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="changed",
        doc="'changed' or 'cancelled'"
    )

    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    location_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    location_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    cancellation_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Free-text reason shown on cancelled instances"
    )

    override_fields: Mapped[dict] = mapped_column(
        get_json_type(),
        nullable=False,
        default=dict,
        doc="Additional overridden fields"
    )

    series: Mapped["EventSeries"] = relationship(
        "EventSeries",
        back_populates="overrides",
    )

    __table_args__ = (
        UniqueConstraint("series_id", "instance_date", name="uq_series_override_instance"),
        Index("ix_series_overrides_series", "series_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<SeriesOverride(series_id={self.series_id}, "
            f"instance_date={self.instance_date}, type='{self.override_type}')>"
        )
