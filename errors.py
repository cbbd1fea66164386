import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BookingManagerError(Exception):
    """Base for business-rule failures raised by the service layer."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class TemporalError(BookingManagerError):
    """The requested end time is not strictly in the future."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BookingManagerError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(BookingManagerError):
    """The auditory already has an active booking."""

    status_code = status.HTTP_409_CONFLICT


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookingManagerError)
    async def booking_manager_error_handler(
        request: Request, exc: BookingManagerError
    ) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.info("Rejected %s %s: invalid body", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": "Validation error",
                "errors": jsonable_encoder(exc.errors()),
            },
        )
