from datetime import datetime
from uuid import uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import DateTime, Index


def new_id() -> str:
    return uuid4().hex


class Device(SQLModel, table=True):
    __tablename__ = "devices"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str


class Auditory(SQLModel, table=True):
    __tablename__ = "auditories"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    capacity: int


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    __table_args__ = (
        # Backs the "active booking on this auditory" lookup
        Index("ix_bookings_auditory_end", "auditory_id", "end_time"),
    )

    # References are plain ids: devices and auditories can be deleted
    # without touching the booking log.
    id: str = Field(default_factory=new_id, primary_key=True)
    device_id: str = Field(index=True)
    auditory_id: str
    # Plain DATETIME columns holding naive UTC
    start_time: datetime = Field(sa_type=DateTime())  # fixed at creation
    end_time: datetime = Field(sa_type=DateTime())
