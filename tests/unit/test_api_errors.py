"""Unit tests for the collaboration error handler."""

import json

import pytest
from starlette.requests import Request

from backend.app.api.errors import collaboration_error_handler
from backend.app.collaboration.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


def _request() -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/sessions",
            "headers": [],
            "query_string": b"",
        }
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (ValidationError("Bad input"), 400),
        (NotFoundError("Session", "abc"), 404),
        (PermissionDeniedError("Not allowed"), 403),
        (ConflictError("Already active"), 409),
        (InternalError("Store failed"), 500),
    ],
)
async def test_handler_maps_kind_to_status(error, status_code: int) -> None:
    """Test each failure kind renders its status and the error envelope."""
    response = await collaboration_error_handler(_request(), error)

    assert response.status_code == status_code
    body = json.loads(response.body)
    assert body["error"]["kind"] == error.kind.value
    assert body["error"]["message"] == error.message
