"""Mapping of collaboration failures to HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from backend.app.collaboration.errors import CollaborationError, ErrorKind

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.validation: status.HTTP_400_BAD_REQUEST,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.permission: status.HTTP_403_FORBIDDEN,
    ErrorKind.conflict: status.HTTP_409_CONFLICT,
    ErrorKind.internal: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def collaboration_error_handler(
    request: Request, exc: CollaborationError
) -> JSONResponse:
    """Render a CollaborationError as {"error": {kind, message, details}}."""
    status_code = STATUS_BY_KIND[exc.kind]

    log_data = {
        "path": request.url.path,
        "method": request.method,
        "kind": exc.kind.value,
        "status_code": status_code,
    }
    if status_code >= 500:
        logger.error(f"Request failed: {exc.message}", extra={"structured": log_data}, exc_info=exc)
    else:
        logger.info(f"Request rejected: {exc.message}", extra={"structured": log_data})

    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


def install_error_handlers(app: FastAPI) -> None:
    """Register the collaboration error handler on an app."""
    app.add_exception_handler(CollaborationError, collaboration_error_handler)
