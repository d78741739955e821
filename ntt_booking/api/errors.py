import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..core import errors

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[errors.BookingError], int] = {
    errors.ValidationError: status.HTTP_400_BAD_REQUEST,
    errors.InvalidTransitionError: status.HTTP_400_BAD_REQUEST,
    errors.SlotNotFoundError: status.HTTP_404_NOT_FOUND,
    errors.BookingNotFoundError: status.HTTP_404_NOT_FOUND,
    errors.PaymentNotFoundError: status.HTTP_404_NOT_FOUND,
    errors.CapacityExceededError: status.HTTP_409_CONFLICT,
    errors.SlotBlockedError: status.HTTP_409_CONFLICT,
    errors.SlotInUseError: status.HTTP_409_CONFLICT,
    errors.AlreadyCancelledError: status.HTTP_409_CONFLICT,
    errors.GatewayUnavailableError: status.HTTP_502_BAD_GATEWAY,
}


def status_for(exc: errors.BookingError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return status.HTTP_400_BAD_REQUEST


def error_body(detail: str, code: str, field_errors: dict[str, list[str]] | None = None) -> dict:
    body = {"detail": detail, "code": code}
    if field_errors:
        body["errors"] = field_errors
    return body


async def booking_error_handler(request: Request, exc: errors.BookingError) -> JSONResponse:
    field_errors = exc.errors if isinstance(exc, errors.ValidationError) else None
    return JSONResponse(
        status_code=status_for(exc),
        content=error_body(exc.message, exc.code, field_errors),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error["loc"] if part not in ("body", "query", "path")]
        field_errors.setdefault(".".join(loc) or "_form", []).append(error["msg"])
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid input", errors.ValidationError.code, field_errors),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Something went wrong", "internal_error"),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(errors.BookingError, booking_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
