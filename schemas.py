"""Request and response bodies.

Field names are snake_case in Python and camelCase on the wire
(``deviceId``, ``endTime``); both spellings are accepted on input.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# --- Devices ---
class DeviceCreate(CamelModel):
    name: str = Field(min_length=1)


class DeviceUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)


class DeviceRead(CamelModel):
    id: str
    name: str


# --- Auditories ---
class AuditoryCreate(CamelModel):
    name: str = Field(min_length=1)
    capacity: int = Field(ge=1)


class AuditoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    capacity: Optional[int] = Field(default=None, ge=1)


class AuditoryRead(CamelModel):
    id: str
    name: str
    capacity: int


class AuditoryAvailability(CamelModel):
    auditory_id: str
    name: str
    capacity: int
    busy: bool
    busy_until: Optional[datetime]


# --- Bookings ---
class BookingCreate(CamelModel):
    device_id: str = Field(min_length=1)
    auditory_id: str = Field(min_length=1)
    end_time: datetime


class BookingUpdate(CamelModel):
    device_id: Optional[str] = Field(default=None, min_length=1)
    auditory_id: Optional[str] = Field(default=None, min_length=1)
    end_time: Optional[datetime] = None

    def patch(self) -> dict:
        """Only the fields the client actually supplied."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class BookingRead(CamelModel):
    id: str
    device_id: str
    auditory_id: str
    start_time: datetime
    end_time: datetime
    # None when the referenced record has since been deleted
    device: Optional[DeviceRead] = None
    auditory: Optional[AuditoryRead] = None


class ErrorDetail(BaseModel):
    detail: str
    errors: Optional[List[dict]] = None
