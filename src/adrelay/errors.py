# Gateway error taxonomy.
# Created: 2026-10-18
#
# Every error carries a stable ``kind`` and an HTTP status so the API layer can
# render it as {"detail": ..., "code": ...}. Messages are written for the
# browser client and never include upstream response text or credentials.

from __future__ import annotations


class GatewayError(Exception):
    """Base class for errors rendered at the HTTP boundary."""

    kind = "gateway_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "code": self.kind}


# -- authentication ----------------------------------------------------------


class AuthError(GatewayError):
    kind = "auth_error"
    status_code = 401


class NotAuthenticatedError(AuthError):
    """No authorization has completed yet (or no refresh token was granted)."""

    kind = "not_authenticated"


class AuthExchangeError(AuthError):
    """The authorization code was absent, expired, or rejected."""

    kind = "auth_exchange_failed"
    status_code = 400


class UpstreamAuthError(AuthError):
    """The token endpoint rejected a refresh, or could not be reached."""

    kind = "upstream_auth_failed"


class MissingCredentialError(AuthError):
    """A provider has no usable credential for this request."""

    kind = "credential_missing"


# -- uploads -----------------------------------------------------------------


class SessionInitiationError(GatewayError):
    kind = "session_initiation_failed"
    status_code = 502


class TransferError(GatewayError):
    kind = "transfer_failed"
    status_code = 502


# -- forwarding --------------------------------------------------------------


class ProxyUpstreamError(GatewayError):
    kind = "proxy_upstream_failed"
    status_code = 502


# -- input -------------------------------------------------------------------


class ValidationError(GatewayError):
    kind = "validation_error"
    status_code = 400


class UnknownProviderError(ValidationError):
    kind = "unknown_provider"
    status_code = 404

    def __init__(self, provider: str):
        super().__init__(f"Unknown provider: {provider}")
        self.provider = provider
