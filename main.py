import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List

from fastapi import APIRouter, FastAPI, Depends, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

import services
from config import API_PREFIX, CORS_ORIGINS, LOG_LEVEL
from database import init_db, get_session
from errors import register_error_handlers
from models import Auditory, Device
from schemas import (
    AuditoryAvailability,
    AuditoryCreate,
    AuditoryRead,
    AuditoryUpdate,
    BookingCreate,
    BookingRead,
    BookingUpdate,
    DeviceCreate,
    DeviceRead,
    DeviceUpdate,
    ErrorDetail,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("Serving API under %r", API_PREFIX or "/")
    yield


app = FastAPI(title="Room Booking Manager", lifespan=lifespan)
register_error_handlers(app)

router = APIRouter(prefix=API_PREFIX)

NOT_FOUND = {404: {"model": ErrorDetail}}
BOOKING_ERRORS = {
    400: {"model": ErrorDetail},
    404: {"model": ErrorDetail},
    409: {"model": ErrorDetail},
}


def get_now() -> datetime:
    """Current instant as naive UTC. Overridden in tests to move the clock."""
    return services.utcnow()


@router.get("/health", response_class=PlainTextResponse)
async def health():
    return "ok"


# --- Devices ---
@router.get("/devices", response_model=List[DeviceRead])
async def list_devices(session: AsyncSession = Depends(get_session)):
    return await services.list_entities(session, Device)


@router.post("/devices", response_model=DeviceRead, status_code=status.HTTP_201_CREATED)
async def create_device(data: DeviceCreate, session: AsyncSession = Depends(get_session)):
    return await services.create_entity(session, Device, data)


@router.put("/devices/{device_id}", response_model=DeviceRead, responses=NOT_FOUND)
async def update_device(
    device_id: str,
    data: DeviceUpdate,
    session: AsyncSession = Depends(get_session),
):
    return await services.update_entity(session, Device, device_id, data)


@router.delete("/devices/{device_id}", status_code=status.HTTP_204_NO_CONTENT, responses=NOT_FOUND)
async def delete_device(device_id: str, session: AsyncSession = Depends(get_session)):
    await services.delete_entity(session, Device, device_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Auditories ---
@router.get("/auditories", response_model=List[AuditoryRead])
async def list_auditories(session: AsyncSession = Depends(get_session)):
    return await services.list_entities(session, Auditory)


@router.get("/auditories/availability", response_model=List[AuditoryAvailability])
async def auditory_availability(
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
):
    return await services.list_availability(session, now)


@router.post("/auditories", response_model=AuditoryRead, status_code=status.HTTP_201_CREATED)
async def create_auditory(data: AuditoryCreate, session: AsyncSession = Depends(get_session)):
    return await services.create_entity(session, Auditory, data)


@router.put("/auditories/{auditory_id}", response_model=AuditoryRead, responses=NOT_FOUND)
async def update_auditory(
    auditory_id: str,
    data: AuditoryUpdate,
    session: AsyncSession = Depends(get_session),
):
    return await services.update_entity(session, Auditory, auditory_id, data)


@router.delete("/auditories/{auditory_id}", status_code=status.HTTP_204_NO_CONTENT, responses=NOT_FOUND)
async def delete_auditory(auditory_id: str, session: AsyncSession = Depends(get_session)):
    await services.delete_entity(session, Auditory, auditory_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Bookings ---
@router.get("/bookings", response_model=List[BookingRead])
async def list_bookings(session: AsyncSession = Depends(get_session)):
    # Newest end time first
    return await services.list_bookings(session)


@router.get("/bookings/{booking_id}", response_model=BookingRead, responses=NOT_FOUND)
async def get_booking(booking_id: str, session: AsyncSession = Depends(get_session)):
    return await services.get_booking(session, booking_id)


@router.post(
    "/bookings",
    response_model=BookingRead,
    status_code=status.HTTP_201_CREATED,
    responses=BOOKING_ERRORS,
)
async def create_booking(
    data: BookingCreate,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
):
    return await services.create_booking(session, data, now)


@router.put("/bookings/{booking_id}", response_model=BookingRead, responses=BOOKING_ERRORS)
async def update_booking(
    booking_id: str,
    data: BookingUpdate,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
):
    return await services.update_booking(session, booking_id, data, now)


@router.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT, responses=NOT_FOUND)
async def delete_booking(booking_id: str, session: AsyncSession = Depends(get_session)):
    await services.delete_booking(session, booking_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


app.include_router(router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
