"""Mapping of gateway errors to HTTP responses."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from asyncua import ua
from fastapi import status
from fastapi.responses import JSONResponse

from uaweb_gateway.adapters.northbound.api.schemas.common import ErrorResponse
from uaweb_gateway.domain.errors import (
    EndpointDiscoveryFailed,
    GatewayError,
    InvalidNodeId,
    NoTypeDefinition,
    SessionUnavailable,
    TypeHierarchyTooDeep,
    UnsupportedBrokerScheme,
    WriteRejected,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = structlog.get_logger(__name__)

_STATUS_BY_ERROR: list[tuple[type[GatewayError], int]] = [
    (InvalidNodeId, status.HTTP_400_BAD_REQUEST),
    (UnsupportedBrokerScheme, status.HTTP_400_BAD_REQUEST),
    (WriteRejected, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NoTypeDefinition, status.HTTP_409_CONFLICT),
    (TypeHierarchyTooDeep, status.HTTP_409_CONFLICT),
    (EndpointDiscoveryFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
    (SessionUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
]

# Service results that mean the caller addressed something that does not exist
_NOT_FOUND_STATUSES = {"BadNodeIdUnknown", "BadNodeIdInvalid", "BadAttributeIdInvalid"}


def status_for(exc: GatewayError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error(code: int, error: str, message: str, detail: object = None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, detail=detail)
    return JSONResponse(status_code=code, content=body.model_dump())


async def _gateway_error(_request: Request, exc: GatewayError) -> JSONResponse:
    code = status_for(exc)
    detail = exc.status_name if isinstance(exc, WriteRejected) else None
    logger.debug("Request failed", error=type(exc).__name__, message=str(exc), status=code)
    return _error(code, type(exc).__name__, str(exc), detail)


async def _service_error(_request: Request, exc: ua.UaStatusCodeError) -> JSONResponse:
    name = ua.StatusCode(exc.code).name
    code = (
        status.HTTP_404_NOT_FOUND if name in _NOT_FOUND_STATUSES else status.HTTP_502_BAD_GATEWAY
    )
    return _error(code, name, str(exc))


async def _transport_error(_request: Request, exc: Exception) -> JSONResponse:
    logger.warning("Server connection error", error=str(exc))
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, type(exc).__name__, str(exc))


def install_error_handlers(app: FastAPI) -> None:
    """Register the gateway's exception handlers on an app."""
    app.add_exception_handler(GatewayError, _gateway_error)
    app.add_exception_handler(ua.UaStatusCodeError, _service_error)
    app.add_exception_handler(ConnectionError, _transport_error)
    app.add_exception_handler(TimeoutError, _transport_error)
