# Tests for proxy/dispatcher.py and proxy/credentials.py
# Created: 2026-10-18

import json
import time

import httpx
import pytest

from adrelay.config import Settings
from adrelay.errors import (
    MissingCredentialError,
    NotAuthenticatedError,
    ProxyUpstreamError,
    UnknownProviderError,
    ValidationError,
)
from adrelay.integrations.oauth import OAuthManager
from adrelay.integrations.token_store import OAuthTokens, TokenStore
from adrelay.proxy.credentials import (
    ApiKeyWithAccount,
    CallerSuppliedBearer,
    ManagedOAuth,
    ProviderConfig,
    StaticBearer,
    bearer_from_header,
    bearer_token_provider,
)
from adrelay.proxy.dispatcher import ProviderDispatcher, build_providers


class Upstream:
    """Records requests and answers with a fixed response."""

    def __init__(self, response: httpx.Response | None = None, error: Exception | None = None):
        self.response = response or httpx.Response(200, json={"pong": True})
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.response


def make_dispatcher(upstream: Upstream, *providers: ProviderConfig) -> ProviderDispatcher:
    if not providers:
        providers = (ProviderConfig("echo", "https://echo.test/v1", StaticBearer("svc-token")),)
    return ProviderDispatcher(providers, transport=httpx.MockTransport(upstream))


def signed_in_manager() -> OAuthManager:
    store = TokenStore()
    store.save(
        OAuthTokens(
            identity="youtube:delegated",
            access_token="managed-token",
            refresh_token="r",
            expires_at=time.time() + 3600,
        )
    )
    return OAuthManager("youtube", "id", "secret", "http://localhost/cb", store=store)


class TestForward:
    async def test_relays_status_and_json(self):
        upstream = Upstream()
        result = await make_dispatcher(upstream).forward("echo", "ping")

        assert result.status_code == 200
        assert result.body == {"pong": True}
        assert result.ok
        assert str(upstream.requests[0].url) == "https://echo.test/v1/ping"
        assert upstream.requests[0].headers["authorization"] == "Bearer svc-token"

    async def test_upstream_error_status_is_relayed(self):
        upstream = Upstream(httpx.Response(404, json={"error": "no such campaign"}))
        result = await make_dispatcher(upstream).forward("echo", "campaigns/9")

        assert result.status_code == 404
        assert result.body == {"error": "no such campaign"}
        assert not result.ok

    async def test_empty_body(self):
        upstream = Upstream(httpx.Response(204))
        result = await make_dispatcher(upstream).forward("echo", "things/1", method="DELETE")
        assert result.status_code == 204
        assert result.body is None

    async def test_body_sent_for_mutating_methods(self):
        for method in ("POST", "PUT", "PATCH"):
            upstream = Upstream()
            await make_dispatcher(upstream).forward("echo", "x", method=method, body={"a": 1})
            assert json.loads(upstream.requests[0].content) == {"a": 1}

    async def test_body_dropped_for_get_and_delete(self):
        for method in ("GET", "DELETE"):
            upstream = Upstream()
            await make_dispatcher(upstream).forward("echo", "x", method=method, body={"a": 1})
            assert upstream.requests[0].content == b""

    async def test_query_string_and_params_merge(self):
        upstream = Upstream()
        await make_dispatcher(upstream).forward(
            "echo", "search?q=shoes", params={"limit": "5"}
        )
        params = upstream.requests[0].url.params
        assert params["q"] == "shoes"
        assert params["limit"] == "5"

    async def test_unknown_provider(self):
        upstream = Upstream()
        with pytest.raises(UnknownProviderError):
            await make_dispatcher(upstream).forward("myspace", "x")
        assert upstream.requests == []

    async def test_unsupported_method(self):
        upstream = Upstream()
        with pytest.raises(ValidationError):
            await make_dispatcher(upstream).forward("echo", "x", method="TRACE")
        assert upstream.requests == []

    async def test_absolute_path_rejected(self):
        upstream = Upstream()
        with pytest.raises(ValidationError):
            await make_dispatcher(upstream).forward("echo", "https://evil.test/steal")
        assert upstream.requests == []

    @pytest.mark.parametrize("path", ["../v12/customers", "a/./b", "a/%2E%2E/%2e%2e/admin", "..\\admin"])
    async def test_dot_segments_rejected(self, path):
        upstream = Upstream()
        with pytest.raises(ValidationError):
            await make_dispatcher(upstream).forward("echo", path)
        assert upstream.requests == []

    async def test_dots_inside_segment_allowed(self):
        upstream = Upstream()
        await make_dispatcher(upstream).forward("echo", "files/report..v2.json?q=..")
        assert upstream.requests[0].url.path == "/v1/files/report..v2.json"

    async def test_network_error_hides_details(self):
        upstream = Upstream(error=httpx.ConnectError("connect to svc-token@echo.test failed"))
        with pytest.raises(ProxyUpstreamError) as exc_info:
            await make_dispatcher(upstream).forward("echo", "ping")
        assert "svc-token" not in str(exc_info.value)
        assert exc_info.value.status_code == 502

    async def test_non_json_response(self):
        upstream = Upstream(httpx.Response(200, text="<html>maintenance</html>"))
        with pytest.raises(ProxyUpstreamError, match="non-JSON"):
            await make_dispatcher(upstream).forward("echo", "ping")


class TestCredentials:
    async def test_missing_static_token_makes_no_call(self):
        upstream = Upstream()
        dispatcher = make_dispatcher(
            upstream, ProviderConfig("echo", "https://echo.test", StaticBearer(None))
        )
        with pytest.raises(MissingCredentialError) as exc_info:
            await dispatcher.forward("echo", "ping")
        assert exc_info.value.status_code == 401
        assert upstream.requests == []

    async def test_caller_supplied_bearer(self):
        upstream = Upstream()
        dispatcher = make_dispatcher(
            upstream, ProviderConfig("echo", "https://echo.test", CallerSuppliedBearer())
        )
        await dispatcher.forward("echo", "ping", caller_auth="Bearer user-token")
        assert upstream.requests[0].headers["authorization"] == "Bearer user-token"

    async def test_caller_supplied_bearer_missing(self):
        upstream = Upstream()
        dispatcher = make_dispatcher(
            upstream, ProviderConfig("echo", "https://echo.test", CallerSuppliedBearer())
        )
        with pytest.raises(MissingCredentialError, match="Bearer"):
            await dispatcher.forward("echo", "ping", caller_auth="Basic abc")
        assert upstream.requests == []

    async def test_managed_oauth_signed_in(self):
        upstream = Upstream()
        dispatcher = make_dispatcher(
            upstream, ProviderConfig("yt", "https://yt.test", ManagedOAuth(signed_in_manager()))
        )
        await dispatcher.forward("yt", "channels", caller_auth="Bearer ignored")
        assert upstream.requests[0].headers["authorization"] == "Bearer managed-token"

    async def test_managed_oauth_not_signed_in(self):
        upstream = Upstream()
        manager = OAuthManager("youtube", "id", "secret", "http://localhost/cb")
        dispatcher = make_dispatcher(
            upstream, ProviderConfig("yt", "https://yt.test", ManagedOAuth(manager))
        )
        with pytest.raises(NotAuthenticatedError):
            await dispatcher.forward("yt", "channels")
        assert upstream.requests == []

    async def test_managed_oauth_without_manager(self):
        with pytest.raises(MissingCredentialError):
            await ManagedOAuth(None).headers()

    async def test_api_key_with_account(self):
        upstream = Upstream()
        cred = ApiKeyWithAccount(
            key="dev-token", account_id="1234567890", extra_headers={"Authorization": "Bearer a"}
        )
        dispatcher = make_dispatcher(upstream, ProviderConfig("ads", "https://ads.test", cred))
        await dispatcher.forward("ads", "customers/1/googleAds:search", method="POST", body={})

        headers = upstream.requests[0].headers
        assert headers["developer-token"] == "dev-token"
        assert headers["login-customer-id"] == "1234567890"
        assert headers["authorization"] == "Bearer a"

    async def test_api_key_missing_account(self):
        with pytest.raises(MissingCredentialError):
            await ApiKeyWithAccount(key="dev-token", account_id=None).headers()

    def test_bearer_from_header(self):
        assert bearer_from_header("Bearer abc") == "abc"
        assert bearer_from_header("bearer  abc ") == "abc"
        assert bearer_from_header("Basic abc") is None
        assert bearer_from_header("Bearer ") is None
        assert bearer_from_header(None) is None

    async def test_bearer_token_provider(self):
        provide = bearer_token_provider(CallerSuppliedBearer(), "Bearer user-token")
        assert await provide() == "user-token"

    async def test_bearer_token_provider_rejects_api_keys(self):
        provide = bearer_token_provider(ApiKeyWithAccount(key="k", account_id="a"))
        with pytest.raises(MissingCredentialError):
            await provide()


class TestRegistry:
    def test_default_providers(self):
        settings = Settings(_env_file=None, twitter_bearer_token="tw")
        dispatcher = ProviderDispatcher.from_settings(settings)
        names = [p.name for p in dispatcher.providers()]
        assert names == ["twitter", "youtube", "snapchat", "google_ads"]
        assert dispatcher.get("twitter").configured
        assert not dispatcher.get("snapchat").configured

    def test_youtube_managed_by_default(self):
        settings = Settings(_env_file=None)
        manager = signed_in_manager()
        youtube = {p.name: p for p in build_providers(settings, manager)}["youtube"]
        assert isinstance(youtube.credential, ManagedOAuth)
        assert youtube.credential.manager is manager

    def test_youtube_caller_scheme(self):
        settings = Settings(_env_file=None, youtube_auth_scheme="caller")
        youtube = {p.name: p for p in build_providers(settings, signed_in_manager())}["youtube"]
        assert isinstance(youtube.credential, CallerSuppliedBearer)
        assert youtube.scheme == "CallerSuppliedBearer"

    def test_google_ads_api_version(self):
        settings = Settings(
            _env_file=None,
            google_ads_developer_token="dev",
            google_ads_login_customer_id="123-456-7890",
            google_ads_api_version="v18",
        )
        ads = {p.name: p for p in build_providers(settings)}["google_ads"]
        assert ads.base_url.endswith("/v18")
        assert ads.credential.account_id == "1234567890"
        assert ads.configured

    def test_get_unknown(self):
        dispatcher = ProviderDispatcher([])
        with pytest.raises(UnknownProviderError):
            dispatcher.get("nope")
