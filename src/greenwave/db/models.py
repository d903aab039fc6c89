"""SQLAlchemy ORM models for the event store.

Learn: The tables are owned by the ingestion side (sensors write a row
whenever an ambulance passes a light). We only read them, but mapping
them here gives the query builder typed columns instead of raw SQL.

- ambulances: one row per vehicle, identified to humans by its plate
- ambulance_events: one row per passage, indexed on timestamp because
  every query we run filters or orders on it
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Ambulance(Base):
    __tablename__ = "ambulances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    plate: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    events: Mapped[list["AmbulanceEvent"]] = relationship(back_populates="ambulance")


class AmbulanceEvent(Base):
    """An ambulance passed a traffic light at `timestamp`."""

    __tablename__ = "ambulance_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    ambulance_id: Mapped[int] = mapped_column(
        ForeignKey("ambulances.id"), nullable=False
    )
    traffic_light_id: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    ambulance: Mapped[Ambulance] = relationship(back_populates="events")

    __table_args__ = (
        Index("ix_ambulance_events_timestamp", "timestamp"),
    )
