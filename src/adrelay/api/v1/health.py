# Health router — readiness and provider configuration summary.
# Created: 2026-10-18

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from adrelay.api.deps import get_dispatcher, get_optional_oauth_manager
from adrelay.api.v1.schemas.health import HealthResponse, ProviderStatus
from adrelay.config import Settings, get_settings
from adrelay.integrations.oauth import OAuthManager
from adrelay.proxy.dispatcher import ProviderDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health(
    settings: Settings = Depends(get_settings),
    manager: OAuthManager | None = Depends(get_optional_oauth_manager),
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
):
    """Report which providers have credentials and the OAuth state."""
    return HealthResponse(
        oauth_configured=settings.oauth_configured,
        auth_state=manager.state.value if manager else "unconfigured",
        providers=[
            ProviderStatus(name=p.name, scheme=p.scheme, configured=p.configured)
            for p in dispatcher.providers()
        ],
    )
