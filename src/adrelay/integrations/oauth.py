# OAuth Manager — authorization code flow + single-flight token refresh.
# Created: 2026-10-18
#
# One manager holds the delegated identity for one provider. Callers only ever
# ask for ``get_valid_token()``; overlapping calls made while the access token
# is stale share one refresh round trip.

from __future__ import annotations

import asyncio
import logging
import time
import urllib.parse

import httpx

from adrelay.config import Settings
from adrelay.errors import AuthExchangeError, NotAuthenticatedError, UpstreamAuthError
from adrelay.integrations.token_store import AuthState, OAuthTokens, TokenStore

logger = logging.getLogger(__name__)


# OAuth 2.0 provider configuration
PROVIDERS: dict[str, dict[str, str | list[str]]] = {
    "youtube": {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "scopes": [
            "https://www.googleapis.com/auth/youtube.upload",
            "https://www.googleapis.com/auth/youtube",
        ],
    },
}

# Refresh this many seconds before the provider-reported expiry, or at half
# the token lifetime when that is shorter
EXPIRY_SKEW = 60.0


class OAuthManager:
    """Token lifecycle for one provider and one delegated identity.

    State machine::

        UNAUTHENTICATED --exchange_code--> AUTHENTICATED
        AUTHENTICATED --refresh rejected--> REVOKED
        REVOKED --exchange_code--> AUTHENTICATED

    Refreshes are coalesced: while one is in flight, every other caller awaits
    the same task instead of hitting the token endpoint again.
    """

    def __init__(
        self,
        provider: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        store: TokenStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 15.0,
    ):
        config = PROVIDERS.get(provider)
        if not config:
            raise ValueError(f"Unknown OAuth provider: {provider}")
        self.provider = provider
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.store = store or TokenStore()
        self._config = config
        self._transport = transport
        self._timeout = timeout
        self._refresh_task: asyncio.Task[OAuthTokens] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: str = "youtube",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> OAuthManager:
        missing = settings.missing_oauth_settings()
        if missing:
            raise ValueError(f"OAuth not configured, missing: {', '.join(missing)}")
        return cls(
            provider,
            client_id=settings.youtube_client_id or "",
            client_secret=settings.youtube_client_secret or "",
            redirect_uri=settings.youtube_redirect_uri or "",
            transport=transport,
            timeout=settings.http_timeout,
        )

    @property
    def state(self) -> AuthState:
        return self.store.state

    @property
    def scopes(self) -> list[str]:
        return list(self._config["scopes"])

    def get_auth_url(self, state: str = "") -> str:
        """Build the consent URL the browser is redirected to.

        Requests offline access so the callback yields a refresh token.
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
        if state:
            params["state"] = state

        return f"{self._config['auth_url']}?{urllib.parse.urlencode(params)}"

    async def exchange_code(self, code: str | None) -> OAuthTokens:
        """Exchange an authorization code for an access/refresh pair.

        Raises:
            AuthExchangeError: the code is missing, or the provider rejected it.
        """
        if not code:
            raise AuthExchangeError("Missing authorization code")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    str(self._config["token_url"]),
                    data={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "redirect_uri": self.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
        except httpx.HTTPError as e:
            logger.warning("Code exchange for %s failed: %s", self.provider, type(e).__name__)
            raise AuthExchangeError("Token endpoint unreachable") from e

        if not resp.is_success:
            logger.warning("Code exchange for %s rejected with HTTP %s", self.provider, resp.status_code)
            raise AuthExchangeError("Authorization code was rejected or has expired")

        data = _token_payload(resp, AuthExchangeError)
        now = time.time()
        tokens = OAuthTokens(
            identity=f"{self.provider}:delegated",
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type", "Bearer"),
            expires_at=now + float(data.get("expires_in", 3600)),
            issued_at=now,
            scopes=tuple(str(data.get("scope", " ".join(self.scopes))).split()),
        )
        if tokens.refresh_token is None:
            logger.warning("Provider %s granted no refresh token; re-consent needed at expiry", self.provider)

        self.store.save(tokens)
        logger.info("OAuth authorization completed for %s", self.provider)
        return tokens

    async def get_valid_token(self) -> str:
        """Return an access token that is good for at least ``EXPIRY_SKEW`` seconds
        (half its lifetime for tokens shorter-lived than twice that).

        Raises:
            NotAuthenticatedError: no authorization has completed, or the stale
                token came without a refresh token.
            UpstreamAuthError: the grant is revoked or the refresh failed.
        """
        if self.store.state is AuthState.REVOKED:
            raise UpstreamAuthError("Authorization was revoked; sign in again")

        tokens = self.store.load()
        if tokens is None:
            raise NotAuthenticatedError(f"Not authenticated with {self.provider}; sign in first")

        if tokens.is_fresh(EXPIRY_SKEW):
            return tokens.access_token

        if not tokens.refresh_token:
            raise NotAuthenticatedError(f"Access token for {self.provider} expired; sign in again")

        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.create_task(self._refresh(tokens))
            task.add_done_callback(self._forget_refresh)
            self._refresh_task = task

        # shield: a cancelled waiter must not cancel the refresh others wait on
        refreshed = await asyncio.shield(task)
        return refreshed.access_token

    def status(self) -> dict[str, object]:
        """Token state without credential material."""
        tokens = self.store.load()
        return {
            "provider": self.provider,
            "state": self.store.state.value,
            "expires_at": tokens.expires_at if tokens else None,
            "has_refresh_token": bool(tokens and tokens.refresh_token),
        }

    def _superseding(self, tokens: OAuthTokens) -> OAuthTokens | None:
        """Tokens stored by a newer authorization than ``tokens``, if any."""
        current = self.store.load()
        if current is None or current is tokens or self.store.state is not AuthState.AUTHENTICATED:
            return None
        return current

    def _forget_refresh(self, task: asyncio.Task[OAuthTokens]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh(self, tokens: OAuthTokens) -> OAuthTokens:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    str(self._config["token_url"]),
                    data={
                        "refresh_token": tokens.refresh_token,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            logger.warning("Token refresh for %s failed: %s", self.provider, type(e).__name__)
            raise UpstreamAuthError("Token endpoint unreachable") from e

        # Re-authorized while the refresh was in flight: the newer grant wins
        # whatever the endpoint said about the old one
        superseding = self._superseding(tokens)
        if superseding is not None:
            logger.info(
                "Discarding refresh result for %s (HTTP %s): re-authorized meanwhile",
                self.provider, resp.status_code,
            )
            return superseding

        if resp.status_code in (400, 401):
            # invalid_grant: consent revoked or refresh token expired
            self.store.revoke()
            raise UpstreamAuthError("Refresh token was rejected; sign in again")
        if not resp.is_success:
            logger.warning("Token refresh for %s got HTTP %s", self.provider, resp.status_code)
            raise UpstreamAuthError(f"Token endpoint returned HTTP {resp.status_code}")

        data = _token_payload(resp, UpstreamAuthError)
        if "refresh_token" in data and data["refresh_token"] != tokens.refresh_token:
            logger.debug("Ignoring rotated refresh token for %s", self.provider)

        now = time.time()
        refreshed = tokens.with_access_token(
            data["access_token"], now + float(data.get("expires_in", 3600)), issued_at=now
        )
        self.store.save(refreshed)
        logger.info("Refreshed OAuth token for %s", self.provider)
        return refreshed


def _token_payload(resp: httpx.Response, error_cls: type[Exception]) -> dict:
    try:
        data = resp.json()
    except ValueError:
        raise error_cls("Token endpoint returned a malformed response") from None
    if not isinstance(data, dict) or not data.get("access_token"):
        raise error_cls("Token endpoint response had no access token")
    return data
