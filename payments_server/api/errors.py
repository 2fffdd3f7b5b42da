"""Translate domain errors into JSON responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from payments_server.modules.common.exceptions import (
    ConflictError,
    DomainError,
    DuplicateCodeError,
    ExternalGatewayFailure,
    GiftCardDisabled,
    GiftCardExhausted,
    GiftCardExpired,
    InsufficientBalance,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[DomainError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateTransition: status.HTTP_409_CONFLICT,
    InsufficientBalance: status.HTTP_409_CONFLICT,
    DuplicateCodeError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    GiftCardExpired: status.HTTP_409_CONFLICT,
    GiftCardDisabled: status.HTTP_409_CONFLICT,
    GiftCardExhausted: status.HTTP_409_CONFLICT,
    ExternalGatewayFailure: status.HTTP_502_BAD_GATEWAY,
}


def status_for(exc: DomainError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return status.HTTP_400_BAD_REQUEST


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
