# Provider Dispatcher — authenticated pass-through to upstream REST APIs.
# Created: 2026-10-18
#
# One registry replaces a route per provider: the provider name selects the
# base URL and the credential scheme, the rest of the call is relayed as-is.

from __future__ import annotations

import logging
import urllib.parse
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from adrelay.config import Settings
from adrelay.errors import ProxyUpstreamError, UnknownProviderError, ValidationError
from adrelay.proxy.credentials import (
    ApiKeyWithAccount,
    CallerSuppliedBearer,
    ManagedOAuth,
    ProviderConfig,
    StaticBearer,
)

if TYPE_CHECKING:
    from adrelay.integrations.oauth import OAuthManager

logger = logging.getLogger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH"})
ALLOWED_METHODS = MUTATING_METHODS | {"GET", "DELETE"}

TWITTER_BASE = "https://api.twitter.com/2"
YOUTUBE_BASE = "https://www.googleapis.com/youtube/v3"
SNAPCHAT_BASE = "https://adsapi.snapchat.com/v1"
GOOGLE_ADS_BASE = "https://googleads.googleapis.com"

QueryParams = Mapping[str, str] | Sequence[tuple[str, str]]


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _escapes_base(path_suffix: str) -> bool:
    """True when a dot segment could climb out of the provider's base path."""
    path = urllib.parse.unquote(path_suffix.split("?", 1)[0]).replace("\\", "/")
    return any(segment in (".", "..") for segment in path.split("/"))


def build_providers(settings: Settings, oauth: OAuthManager | None = None) -> list[ProviderConfig]:
    """Provider registry for a deployment.

    The video provider uses exactly one scheme, chosen by
    ``youtube_auth_scheme``: the gateway-held OAuth token, or the caller's
    own bearer token.
    """
    if settings.youtube_auth_scheme == "caller":
        youtube_cred = CallerSuppliedBearer()
    else:
        youtube_cred = ManagedOAuth(oauth)

    ads_extra = {}
    if settings.google_ads_access_token:
        ads_extra["Authorization"] = f"Bearer {settings.google_ads_access_token}"

    return [
        ProviderConfig("twitter", TWITTER_BASE, StaticBearer(settings.twitter_bearer_token)),
        ProviderConfig("youtube", YOUTUBE_BASE, youtube_cred),
        ProviderConfig("snapchat", SNAPCHAT_BASE, StaticBearer(settings.snapchat_access_token)),
        ProviderConfig(
            "google_ads",
            f"{GOOGLE_ADS_BASE}/{settings.google_ads_api_version}",
            ApiKeyWithAccount(
                key=settings.google_ads_developer_token,
                account_id=settings.google_ads_login_customer_id,
                extra_headers=ads_extra,
            ),
        ),
    ]


class ProviderDispatcher:
    """Forwards REST calls to a named provider with its credential injected.

    Only status code and JSON body are relayed back. Upstream error text is
    never copied into gateway errors.
    """

    def __init__(
        self,
        providers: Iterable[ProviderConfig],
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._providers = {p.name: p for p in providers}
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        oauth: OAuthManager | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ProviderDispatcher:
        return cls(
            build_providers(settings, oauth), timeout=settings.http_timeout, transport=transport
        )

    def providers(self) -> list[ProviderConfig]:
        return list(self._providers.values())

    def get(self, provider: str) -> ProviderConfig:
        config = self._providers.get(provider)
        if config is None:
            raise UnknownProviderError(provider)
        return config

    async def forward(
        self,
        provider: str,
        path_suffix: str,
        method: str = "GET",
        body: Any = None,
        caller_auth: str | None = None,
        *,
        params: QueryParams | None = None,
        timeout: float | None = None,
    ) -> UpstreamResponse:
        """Relay one call to ``provider``.

        Args:
            provider: Registered provider name.
            path_suffix: Path under the provider base, may carry a query string.
            method: HTTP method; bodies are only sent for POST/PUT/PATCH.
            body: JSON-serializable payload.
            caller_auth: The incoming request's Authorization header value.
            params: Extra query parameters, merged with any in ``path_suffix``.
            timeout: Per-call timeout in seconds.

        Raises:
            UnknownProviderError: ``provider`` is not registered.
            AuthError: the provider's credential is missing (no network call made).
            ProxyUpstreamError: network failure or non-JSON upstream response.
        """
        config = self.get(provider)
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise ValidationError(f"Method {method} is not supported")
        if "://" in path_suffix or _escapes_base(path_suffix):
            raise ValidationError("Path must be relative to the provider base URL")

        headers = await config.credential.headers(caller_auth)
        headers["Accept"] = "application/json"

        request_kwargs: dict[str, Any] = {}
        if method in MUTATING_METHODS and body is not None:
            request_kwargs["json"] = body

        url = config.url_for(path_suffix)
        try:
            async with httpx.AsyncClient(
                timeout=timeout or self.timeout, transport=self._transport
            ) as client:
                resp = await client.request(
                    method, url, params=params, headers=headers, **request_kwargs
                )
        except httpx.HTTPError as e:
            logger.warning("%s %s proxy call failed: %s", method, provider, type(e).__name__)
            raise ProxyUpstreamError(f"{provider} upstream request failed") from None

        logger.debug("%s %s/%s -> %s", method, provider, path_suffix.lstrip("/"), resp.status_code)

        if not resp.content:
            return UpstreamResponse(resp.status_code, None)
        try:
            data = resp.json()
        except ValueError:
            logger.warning("%s returned non-JSON body (HTTP %s)", provider, resp.status_code)
            raise ProxyUpstreamError(
                f"{provider} returned a non-JSON response (HTTP {resp.status_code})"
            ) from None

        return UpstreamResponse(resp.status_code, data)
