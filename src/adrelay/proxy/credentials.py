# Provider credentials — one authentication scheme per provider.
# Created: 2026-10-18
#
# Each scheme turns into request headers through ``headers(caller_auth)``.
# A scheme that cannot produce a credential raises before any network call.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from adrelay.errors import MissingCredentialError

if TYPE_CHECKING:
    from adrelay.integrations.oauth import OAuthManager

logger = logging.getLogger(__name__)


def bearer_from_header(value: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` value."""
    if not value:
        return None
    scheme, _, token = value.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@dataclass(frozen=True)
class StaticBearer:
    """Service-held token from configuration."""

    token: str | None

    async def headers(self, caller_auth: str | None = None) -> dict[str, str]:
        if not self.token:
            raise MissingCredentialError("Service token is not configured")
        return {"Authorization": f"Bearer {self.token}"}


@dataclass(frozen=True)
class CallerSuppliedBearer:
    """Token taken from the incoming request's own Authorization header."""

    async def headers(self, caller_auth: str | None = None) -> dict[str, str]:
        token = bearer_from_header(caller_auth)
        if not token:
            raise MissingCredentialError("Missing Bearer token")
        return {"Authorization": f"Bearer {token}"}


@dataclass(frozen=True)
class ManagedOAuth:
    """Token held and refreshed by the gateway's OAuth manager."""

    manager: OAuthManager | None

    async def headers(self, caller_auth: str | None = None) -> dict[str, str]:
        if self.manager is None:
            raise MissingCredentialError("OAuth is not configured for this provider")
        token = await self.manager.get_valid_token()
        return {"Authorization": f"Bearer {token}"}


@dataclass(frozen=True)
class ApiKeyWithAccount:
    """Developer key plus account scope, for query-style reporting APIs."""

    key: str | None
    account_id: str | None
    key_header: str = "developer-token"
    account_header: str = "login-customer-id"
    extra_headers: dict[str, str] = field(default_factory=dict)

    async def headers(self, caller_auth: str | None = None) -> dict[str, str]:
        if not self.key or not self.account_id:
            raise MissingCredentialError("API key or account id is not configured")
        return {
            self.key_header: self.key,
            self.account_header: self.account_id,
            **self.extra_headers,
        }


ProviderCredential = Union[StaticBearer, CallerSuppliedBearer, ManagedOAuth, ApiKeyWithAccount]


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    base_url: str
    credential: ProviderCredential

    def url_for(self, path_suffix: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path_suffix.lstrip('/')}"

    @property
    def scheme(self) -> str:
        return type(self.credential).__name__

    @property
    def configured(self) -> bool:
        cred = self.credential
        if isinstance(cred, StaticBearer):
            return bool(cred.token)
        if isinstance(cred, ManagedOAuth):
            return cred.manager is not None
        if isinstance(cred, ApiKeyWithAccount):
            return bool(cred.key and cred.account_id)
        return True


def bearer_token_provider(credential: ProviderCredential, caller_auth: str | None = None):
    """Adapt a bearer-style credential into a zero-argument token coroutine.

    Used by the upload path, which needs the raw token rather than headers.
    """

    async def provide() -> str:
        headers = await credential.headers(caller_auth)
        token = bearer_from_header(headers.get("Authorization"))
        if not token:
            raise MissingCredentialError("Provider credential is not a bearer token")
        return token

    return provide
