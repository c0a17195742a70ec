from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from trip_ledger.core.errors import (
    ContinuityViolation,
    InvalidOdometerRange,
    InvalidTripTimes,
    LedgerError,
    LedgerStorageError,
    RetryableCorrectionError,
    TripNotFound,
)

STATUS_BY_ERROR = {
    TripNotFound: status.HTTP_404_NOT_FOUND,
    InvalidOdometerRange: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidTripTimes: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ContinuityViolation: status.HTTP_409_CONFLICT,
    RetryableCorrectionError: status.HTTP_409_CONFLICT,
    LedgerStorageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

RETRY_AFTER_SECONDS = "1"


def status_for(exc: LedgerError) -> int:
    for error_type, code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def to_http_exception(exc: LedgerError) -> HTTPException:
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if isinstance(exc, RetryableCorrectionError) else None
    if isinstance(exc, TripNotFound):
        # Same answer whether the trip is missing or someone else's.
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")
    return HTTPException(status_code=status_for(exc), detail=exc.to_detail(), headers=headers)


async def ledger_error_handler(_: Request, exc: LedgerError) -> JSONResponse:
    http_exc = to_http_exception(exc)
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": http_exc.detail},
        headers=http_exc.headers,
    )
