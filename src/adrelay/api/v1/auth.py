# OAuth router — consent redirect, callback, status.
# Created: 2026-10-18
#
# Only mounted when client id, secret and redirect target are configured.

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from adrelay.api.deps import get_oauth_manager
from adrelay.api.v1.schemas.auth import AuthCallbackResponse, AuthStatusResponse
from adrelay.config import Settings, get_settings
from adrelay.errors import AuthExchangeError, UnknownProviderError
from adrelay.integrations.oauth import OAuthManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


def _check_provider(provider: str, manager: OAuthManager) -> None:
    if provider != manager.provider:
        raise UnknownProviderError(provider)


@router.get("/auth/{provider}/login")
async def login(
    provider: str,
    state: str = Query(""),
    manager: OAuthManager = Depends(get_oauth_manager),
):
    """Redirect the browser to the provider's consent screen."""
    _check_provider(provider, manager)
    return RedirectResponse(manager.get_auth_url(state=state))


@router.get("/auth/{provider}/callback", response_model=AuthCallbackResponse)
async def callback(
    provider: str,
    code: str = Query(""),
    error: str = Query(""),
    manager: OAuthManager = Depends(get_oauth_manager),
    settings: Settings = Depends(get_settings),
):
    """Exchange the authorization code and store the token pair."""
    _check_provider(provider, manager)
    if error:
        logger.warning("OAuth consent for %s returned error=%s", provider, error[:64])
        raise AuthExchangeError(f"Authorization was not granted ({error[:64]})")

    tokens = await manager.exchange_code(code)

    if settings.post_login_redirect:
        return RedirectResponse(settings.post_login_redirect, status_code=302)
    return AuthCallbackResponse(provider=provider, expires_at=tokens.expires_at)


@router.get("/auth/{provider}/status", response_model=AuthStatusResponse)
async def status(provider: str, manager: OAuthManager = Depends(get_oauth_manager)):
    _check_provider(provider, manager)
    return AuthStatusResponse(**manager.status())
