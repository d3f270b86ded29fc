# Shared FastAPI dependencies for the API layer.
# Created: 2026-10-18
#
# Each getter builds its singleton on first use from the cached settings.
# ``shutdown_dependencies()`` runs from the app lifespan; tests swap the
# getters out through ``app.dependency_overrides``.

from __future__ import annotations

import logging

from fastapi import Depends

from adrelay.config import Settings, get_settings
from adrelay.errors import MissingCredentialError
from adrelay.integrations.oauth import OAuthManager
from adrelay.integrations.token_store import AuthState
from adrelay.proxy.dispatcher import ProviderDispatcher
from adrelay.upload.resumable import ResumableUploadOrchestrator
from adrelay.upload.staging import TempFileManager

logger = logging.getLogger(__name__)

_oauth_manager: OAuthManager | None = None
_temp_files: TempFileManager | None = None
_dispatcher: ProviderDispatcher | None = None
_uploader: ResumableUploadOrchestrator | None = None


def _reset() -> None:
    global _oauth_manager, _temp_files, _dispatcher, _uploader
    _oauth_manager = _temp_files = _dispatcher = _uploader = None


async def shutdown_dependencies() -> None:
    """Release process-wide state at exit.

    Staged files still held by interrupted uploads are deleted. The token pair
    is dropped with the manager; nothing is persisted.
    """
    if _temp_files is not None:
        removed = _temp_files.purge()
        logger.debug("Shutdown purged %d staged files", removed)
    if _oauth_manager is not None and _oauth_manager.state is not AuthState.UNAUTHENTICATED:
        logger.info("Dropping in-memory OAuth tokens for %s", _oauth_manager.provider)
    _reset()


def get_optional_oauth_manager(
    settings: Settings = Depends(get_settings),
) -> OAuthManager | None:
    """The process-wide token manager, or None when OAuth is not configured."""
    global _oauth_manager
    if _oauth_manager is None and settings.oauth_configured:
        _oauth_manager = OAuthManager.from_settings(settings)
    return _oauth_manager


def get_oauth_manager(
    manager: OAuthManager | None = Depends(get_optional_oauth_manager),
) -> OAuthManager:
    if manager is None:
        raise MissingCredentialError("OAuth is not configured on this gateway")
    return manager


def get_temp_files(settings: Settings = Depends(get_settings)) -> TempFileManager:
    global _temp_files
    if _temp_files is None:
        _temp_files = TempFileManager(settings.scratch_dir)
    return _temp_files


def get_dispatcher(
    settings: Settings = Depends(get_settings),
    manager: OAuthManager | None = Depends(get_optional_oauth_manager),
) -> ProviderDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = ProviderDispatcher.from_settings(settings, manager)
    return _dispatcher


def get_uploader(
    settings: Settings = Depends(get_settings),
    temp_files: TempFileManager = Depends(get_temp_files),
) -> ResumableUploadOrchestrator:
    global _uploader
    if _uploader is None:
        _uploader = ResumableUploadOrchestrator(
            temp_files,
            chunk_size=settings.upload_chunk_size,
            max_retries=settings.upload_max_retries,
            http_timeout=settings.http_timeout,
            default_timeout=settings.upload_timeout,
        )
    return _uploader
