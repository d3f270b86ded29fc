# OAuth schemas.
# Created: 2026-10-18

from __future__ import annotations

from pydantic import BaseModel


class AuthCallbackResponse(BaseModel):
    """Returned by the callback when no post-login redirect is configured."""

    authenticated: bool = True
    provider: str
    expires_at: float | None = None


class AuthStatusResponse(BaseModel):
    provider: str
    state: str
    expires_at: float | None = None
    has_refresh_token: bool = False
