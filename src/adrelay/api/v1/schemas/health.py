# Health schemas.
# Created: 2026-10-18

from __future__ import annotations

from pydantic import BaseModel


class ProviderStatus(BaseModel):
    name: str
    scheme: str
    configured: bool


class HealthResponse(BaseModel):
    """Gateway readiness. Never includes credential material."""

    status: str = "ok"
    oauth_configured: bool
    auth_state: str
    providers: list[ProviderStatus] = []
