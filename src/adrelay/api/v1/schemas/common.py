# Common API response schemas.
# Created: 2026-10-18

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error envelope rendered for every gateway error."""

    detail: str
    code: str | None = None


# OpenAPI documentation for the statuses GatewayError subclasses map to
ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    401: {"model": ErrorResponse, "description": "Missing or rejected credential"},
    404: {"model": ErrorResponse, "description": "Unknown provider"},
    502: {"model": ErrorResponse, "description": "Upstream provider failure"},
}
