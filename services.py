"""Booking rules and CRUD over the entity store.

Every function takes the request's ``AsyncSession`` and runs inside its
single transaction; nothing here commits partially. Times passed in are
naive UTC (see ``to_utc``), matching what the tables store.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Type, TypeVar

from sqlmodel import SQLModel, select
from sqlalchemy import desc
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ConflictError, NotFoundError, TemporalError
from models import Auditory, Booking, Device
from schemas import (
    AuditoryAvailability,
    AuditoryRead,
    BookingCreate,
    BookingRead,
    BookingUpdate,
    DeviceRead,
)

logger = logging.getLogger(__name__)

Entity = TypeVar("Entity", bound=SQLModel)

ENTITY_LABELS = {Device: "Device", Auditory: "Auditory", Booking: "Booking"}


# --- Time helpers ---
def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc(value: datetime) -> datetime:
    """Normalize to naive UTC. A value without an offset is already UTC."""
    if value.tzinfo is None:
        return value
    try:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    except OverflowError:
        # e.g. 9999-12-31T23:59:59-05:00 has no UTC representation
        raise TemporalError("end time is out of range") from None


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def format_busy_until(end_time: datetime) -> str:
    return f"Auditory is booked until {end_time.strftime('%H:%M')} UTC"


# --- Conflict checker ---
async def find_active_booking(
    session: AsyncSession,
    auditory_id: str,
    now: datetime,
    exclude_booking_id: Optional[str] = None,
) -> Optional[Booking]:
    """Return a booking on ``auditory_id`` that is still running at ``now``.

    A booking ending exactly at ``now`` is already over.
    """
    statement = select(Booking).where(
        Booking.auditory_id == auditory_id,
        Booking.end_time > now,
    )
    if exclude_booking_id is not None:
        statement = statement.where(Booking.id != exclude_booking_id)

    result = await session.execute(statement.limit(1))
    return result.scalars().first()


async def has_conflict(
    session: AsyncSession,
    auditory_id: str,
    now: datetime,
    exclude_booking_id: Optional[str] = None,
) -> bool:
    return (
        await find_active_booking(session, auditory_id, now, exclude_booking_id)
    ) is not None


async def _ensure_no_conflict(
    session: AsyncSession,
    auditory_id: str,
    now: datetime,
    exclude_booking_id: Optional[str] = None,
) -> None:
    active = await find_active_booking(session, auditory_id, now, exclude_booking_id)
    if active is not None:
        logger.warning(
            "Auditory %s already booked until %s by booking %s",
            auditory_id, active.end_time.isoformat(), active.id,
        )
        raise ConflictError(format_busy_until(active.end_time))


async def _lock_auditory(session: AsyncSession, auditory_id: str) -> Optional[Auditory]:
    # Row lock held until commit/rollback; concurrent bookings on the same
    # auditory queue up here.
    statement = select(Auditory).where(Auditory.id == auditory_id).with_for_update()
    result = await session.execute(statement)
    return result.scalars().first()


# --- Generic lookups ---
async def get_or_404(session: AsyncSession, model: Type[Entity], entity_id: str) -> Entity:
    entity = await session.get(model, entity_id)
    if entity is None:
        raise NotFoundError(f"{ENTITY_LABELS[model]} not found")
    return entity


def _check_future(end_time: datetime, now: datetime) -> None:
    if end_time <= now:
        logger.warning("Rejected end time %s (now %s)", end_time.isoformat(), now.isoformat())
        raise TemporalError("end time must be in the future")


# --- Joined booking reads ---
def _joined_statement():
    return (
        select(Booking, Device, Auditory)
        .outerjoin(Device, Device.id == Booking.device_id)
        .outerjoin(Auditory, Auditory.id == Booking.auditory_id)
    )


def to_booking_read(
    booking: Booking, device: Optional[Device], auditory: Optional[Auditory]
) -> BookingRead:
    return BookingRead(
        id=booking.id,
        device_id=booking.device_id,
        auditory_id=booking.auditory_id,
        start_time=as_aware(booking.start_time),
        end_time=as_aware(booking.end_time),
        device=DeviceRead.model_validate(device) if device else None,
        auditory=AuditoryRead.model_validate(auditory) if auditory else None,
    )


async def list_bookings(session: AsyncSession) -> List[BookingRead]:
    statement = _joined_statement().order_by(desc(Booking.end_time))
    result = await session.execute(statement)
    return [to_booking_read(*row) for row in result.all()]


async def get_booking(session: AsyncSession, booking_id: str) -> BookingRead:
    statement = _joined_statement().where(Booking.id == booking_id)
    result = await session.execute(statement)
    row = result.first()
    if row is None:
        raise NotFoundError("Booking not found")
    return to_booking_read(*row)


# --- Booking lifecycle ---
async def create_booking(
    session: AsyncSession, data: BookingCreate, now: datetime
) -> BookingRead:
    end_time = to_utc(data.end_time)
    _check_future(end_time, now)

    auditory = await _lock_auditory(session, data.auditory_id)
    if auditory is None:
        raise NotFoundError("Auditory not found")
    await get_or_404(session, Device, data.device_id)

    await _ensure_no_conflict(session, data.auditory_id, now)

    booking = Booking(
        device_id=data.device_id,
        auditory_id=data.auditory_id,
        start_time=now,
        end_time=end_time,
    )
    session.add(booking)
    await session.commit()

    logger.info(
        "Booked auditory %s for device %s until %s (booking %s)",
        booking.auditory_id, booking.device_id, end_time.isoformat(), booking.id,
    )
    return await get_booking(session, booking.id)


async def update_booking(
    session: AsyncSession, booking_id: str, data: BookingUpdate, now: datetime
) -> BookingRead:
    booking = await get_or_404(session, Booking, booking_id)
    patch = data.patch()

    if "end_time" in patch:
        patch["end_time"] = to_utc(patch["end_time"])
        _check_future(patch["end_time"], now)

    target_auditory_id = patch.get("auditory_id", booking.auditory_id)

    if "auditory_id" in patch or "end_time" in patch:
        auditory = await _lock_auditory(session, target_auditory_id)
        if auditory is None and "auditory_id" in patch:
            raise NotFoundError("Auditory not found")
        await _ensure_no_conflict(session, target_auditory_id, now, exclude_booking_id=booking.id)

    if "device_id" in patch:
        await get_or_404(session, Device, patch["device_id"])

    for field, value in patch.items():
        setattr(booking, field, value)
    session.add(booking)
    await session.commit()

    logger.info("Updated booking %s: %s", booking.id, sorted(patch))
    return await get_booking(session, booking.id)


async def delete_booking(session: AsyncSession, booking_id: str) -> None:
    await delete_entity(session, Booking, booking_id)


# --- Devices and auditories ---
async def list_entities(session: AsyncSession, model: Type[Entity]) -> List[Entity]:
    result = await session.execute(select(model))
    return list(result.scalars().all())


async def create_entity(session: AsyncSession, model: Type[Entity], data) -> Entity:
    entity = model(**data.model_dump())
    session.add(entity)
    await session.commit()
    await session.refresh(entity)
    logger.info("Created %s %s", ENTITY_LABELS[model].lower(), entity.id)
    return entity


async def update_entity(
    session: AsyncSession, model: Type[Entity], entity_id: str, data
) -> Entity:
    entity = await get_or_404(session, model, entity_id)
    for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(entity, field, value)
    session.add(entity)
    await session.commit()
    await session.refresh(entity)
    return entity


async def delete_entity(session: AsyncSession, model: Type[Entity], entity_id: str) -> None:
    entity = await get_or_404(session, model, entity_id)
    await session.delete(entity)
    await session.commit()
    logger.info("Deleted %s %s", ENTITY_LABELS[model].lower(), entity_id)


# --- Availability ---
def auditory_busy_until(
    auditory_id: str, bookings: Iterable[Booking], now: datetime
) -> Optional[datetime]:
    """End time of the booking currently occupying the auditory, if any."""
    active = [
        b.end_time for b in bookings
        if b.auditory_id == auditory_id and b.end_time > now
    ]
    return max(active) if active else None


async def list_availability(
    session: AsyncSession, now: datetime
) -> List[AuditoryAvailability]:
    auditories = await list_entities(session, Auditory)
    result = await session.execute(select(Booking).where(Booking.end_time > now))
    active_bookings = result.scalars().all()

    availability = []
    for auditory in auditories:
        busy_until = auditory_busy_until(auditory.id, active_bookings, now)
        availability.append(
            AuditoryAvailability(
                auditory_id=auditory.id,
                name=auditory.name,
                capacity=auditory.capacity,
                busy=busy_until is not None,
                busy_until=as_aware(busy_until),
            )
        )
    return availability
