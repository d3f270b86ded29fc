# Token Store — in-memory OAuth token state for the one delegated identity.
# Created: 2026-10-18
#
# Nothing is persisted: the pair is obtained by the OAuth callback, replaced by
# refreshes, and lost when the process exits.

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    REVOKED = "revoked"


@dataclass(frozen=True)
class OAuthTokens:
    """Access/refresh pair for a delegated identity.

    Frozen: a refresh builds a new instance via ``with_access_token`` so a
    reader always sees a complete pre- or post-refresh value.
    """

    identity: str
    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_at: float | None = None  # Unix timestamp
    scopes: tuple[str, ...] = field(default_factory=tuple)
    issued_at: float | None = None

    def is_fresh(self, skew: float = 60.0) -> bool:
        """True while the access token has more than ``skew`` seconds left.

        ``skew`` is capped at half the token's lifetime, so a token issued for
        less than ``2 * skew`` seconds still counts as fresh right after issue.
        """
        if self.expires_at is None:
            return True
        if self.issued_at is not None:
            skew = min(skew, max(0.0, self.expires_at - self.issued_at) / 2)
        return self.expires_at > time.time() + skew

    def with_access_token(
        self, access_token: str, expires_at: float | None, issued_at: float | None = None
    ) -> OAuthTokens:
        return replace(
            self, access_token=access_token, expires_at=expires_at, issued_at=issued_at
        )


class TokenStore:
    """Holds the current token pair and auth state for one identity.

    All mutation happens through ``save``/``revoke``/``clear`` and swaps the
    stored reference in a single assignment.
    """

    def __init__(self) -> None:
        self._tokens: OAuthTokens | None = None
        self._state = AuthState.UNAUTHENTICATED

    @property
    def state(self) -> AuthState:
        return self._state

    def load(self) -> OAuthTokens | None:
        return self._tokens

    def save(self, tokens: OAuthTokens) -> None:
        self._tokens = tokens
        self._state = AuthState.AUTHENTICATED
        logger.info("Stored OAuth tokens for %s", tokens.identity)

    def revoke(self) -> None:
        """Mark the stored grant unusable until the next authorization."""
        self._state = AuthState.REVOKED
        logger.warning("OAuth grant marked revoked; re-authorization required")

    def clear(self) -> None:
        self._tokens = None
        self._state = AuthState.UNAUTHENTICATED
