import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import DateTime

import services
from conftest import NOW
from database import async_session
from errors import ConflictError, TemporalError
from models import Auditory, Booking, Device
from schemas import BookingCreate, BookingUpdate


async def _seed(*auditory_names):
    async with async_session() as session:
        device = Device(name="Projector")
        auditories = [Auditory(name=name, capacity=10) for name in auditory_names]
        session.add(device)
        session.add_all(auditories)
        await session.commit()
        return device.id, [a.id for a in auditories]


async def _bookings():
    async with async_session() as session:
        return await services.list_entities(session, Booking)


def test_booking_times_are_plain_datetime_columns():
    # Naive UTC values are bound directly, so no timezone-enforcing type
    for name in ("start_time", "end_time"):
        column_type = Booking.__table__.c[name].type
        assert type(column_type) is DateTime
        assert column_type.timezone is False


def test_has_conflict_uses_strict_end_time(reset_db):
    async def scenario():
        device_id, (room_id,) = await _seed("Room 101")
        async with async_session() as session:
            await services.create_booking(
                session,
                BookingCreate(device_id=device_id, auditory_id=room_id, end_time=NOW + timedelta(hours=1)),
                NOW,
            )
        async with async_session() as session:
            return [
                await services.has_conflict(session, room_id, NOW),
                await services.has_conflict(session, room_id, NOW + timedelta(minutes=59)),
                await services.has_conflict(session, room_id, NOW + timedelta(hours=1)),
                await services.has_conflict(session, "other-room", NOW),
            ]

    assert asyncio.run(scenario()) == [True, True, False, False]


def test_has_conflict_excludes_given_booking(reset_db):
    async def scenario():
        device_id, (room_id,) = await _seed("Room 101")
        async with async_session() as session:
            created = await services.create_booking(
                session,
                BookingCreate(device_id=device_id, auditory_id=room_id, end_time=NOW + timedelta(hours=1)),
                NOW,
            )
        async with async_session() as session:
            return await services.has_conflict(session, room_id, NOW, exclude_booking_id=created.id)

    assert asyncio.run(scenario()) is False


def test_rejected_create_leaves_store_unchanged(reset_db):
    async def scenario():
        device_id, (room_id,) = await _seed("Room 101")
        data = BookingCreate(device_id=device_id, auditory_id=room_id, end_time=NOW + timedelta(hours=1))
        async with async_session() as session:
            await services.create_booking(session, data, NOW)

        async with async_session() as session:
            with pytest.raises(ConflictError):
                await services.create_booking(session, data, NOW + timedelta(minutes=5))

        past = BookingCreate(device_id=device_id, auditory_id=room_id, end_time=NOW - timedelta(hours=1))
        async with async_session() as session:
            with pytest.raises(TemporalError):
                await services.create_booking(session, past, NOW)

        return await _bookings()

    assert len(asyncio.run(scenario())) == 1


def test_concurrent_creates_allow_exactly_one(reset_db):
    async def attempt(device_id, room_id, minutes):
        async with async_session() as session:
            return await services.create_booking(
                session,
                BookingCreate(
                    device_id=device_id,
                    auditory_id=room_id,
                    end_time=NOW + timedelta(minutes=minutes),
                ),
                NOW,
            )

    async def scenario():
        device_id, (room_id,) = await _seed("Room 101")
        results = await asyncio.gather(
            *(attempt(device_id, room_id, 30 + i) for i in range(5)),
            return_exceptions=True,
        )
        return results, await _bookings()

    results, stored = asyncio.run(scenario())

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert all(isinstance(f, ConflictError) for f in failures)
    assert len(stored) == 1


def test_update_patch_leaves_unsupplied_fields(reset_db):
    async def scenario():
        device_id, (room_a, room_b) = await _seed("A", "B")
        async with async_session() as session:
            created = await services.create_booking(
                session,
                BookingCreate(device_id=device_id, auditory_id=room_a, end_time=NOW + timedelta(hours=1)),
                NOW,
            )
        async with async_session() as session:
            updated = await services.update_booking(
                session,
                created.id,
                BookingUpdate(auditory_id=room_b),
                NOW + timedelta(minutes=10),
            )
        return created, updated, room_b

    created, updated, room_b = asyncio.run(scenario())

    assert updated.auditory_id == room_b
    assert updated.device_id == created.device_id
    assert updated.start_time == created.start_time
    assert updated.end_time == created.end_time


def test_booking_update_patch_only_has_supplied_fields():
    assert BookingUpdate.model_validate({"deviceId": "d1"}).patch() == {"device_id": "d1"}
    assert BookingUpdate.model_validate({"deviceId": "d1", "endTime": None}).patch() == {"device_id": "d1"}
    assert BookingUpdate().patch() == {}


def test_auditory_busy_until_is_derived_from_bookings():
    bookings = [
        Booking(id="1", device_id="d", auditory_id="a", start_time=NOW, end_time=NOW + timedelta(hours=1)),
        Booking(id="2", device_id="d", auditory_id="b", start_time=NOW, end_time=NOW),
    ]

    assert services.auditory_busy_until("a", bookings, NOW) == NOW + timedelta(hours=1)
    assert services.auditory_busy_until("a", bookings, NOW + timedelta(hours=1)) is None
    assert services.auditory_busy_until("b", bookings, NOW) is None
    assert services.auditory_busy_until("c", bookings, NOW) is None
