import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from tripsplit.core.exceptions import (
    DataUnavailableError,
    PermissionDeniedError,
    RecordNotFoundError,
    SettlementConflictError,
    SettlementInProgressError,
    SettlementValidationError,
    TripsplitError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    DataUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    RecordNotFoundError: status.HTTP_404_NOT_FOUND,
    SettlementConflictError: status.HTTP_409_CONFLICT,
    SettlementInProgressError: status.HTTP_409_CONFLICT,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    SettlementValidationError: status.HTTP_400_BAD_REQUEST,
}


def status_for(exc: TripsplitError) -> int:
    for error_type, code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def tripsplit_error_handler(request: Request, exc: TripsplitError) -> JSONResponse:
    """Translate domain errors into the same body shape HTTPException uses."""
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, code, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})
