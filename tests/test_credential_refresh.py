from datetime import timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from gbp_access.config.settings import ConfigurationError
from gbp_access.credentials.cache import TokenCache
from gbp_access.credentials.errors import (
    CredentialError,
    CredentialRefreshRejectedError,
    CredentialRefreshTransientError,
)
from gbp_access.credentials.identity_provider import (
    GOOGLE_TOKEN_URL,
    GoogleIdentityProvider,
    GoogleOAuthConfig,
    TokenGrant,
)
from gbp_access.credentials.refresh import CredentialRefreshService, RefreshResultStatus
from gbp_access.credentials.store import CredentialStore
from gbp_access.models.oauth_credential import CredentialStatus


class FakeProvider:
    def __init__(self, expires_in=3600):
        self.calls = []
        self.error = None
        self.expires_in = expires_in
        self.rotated_refresh_token = None

    async def refresh_access_token(self, refresh_token):
        self.calls.append(refresh_token)
        if self.error is not None:
            raise self.error
        return TokenGrant(
            access_token=f"access-{len(self.calls)}",
            expires_in=self.expires_in,
            refresh_token=self.rotated_refresh_token,
        )


@pytest.fixture
def store(session_factory, encryption_key):
    return CredentialStore(session_factory, TokenCache(ttl_seconds=120))


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def service(store, provider):
    return CredentialRefreshService(store, provider, refresh_window_seconds=30 * 60)


# ============================================================================
# TEST SUITE: FETCH-OR-REFRESH
# ============================================================================

class TestEnsureFresh:

    @pytest.mark.asyncio
    async def test_expiring_in_ten_minutes_is_refreshed(self, service, store, provider, now):
        await store.save_grant("U1", "access-0", "refresh-1", now + timedelta(minutes=10))

        result = await service.ensure_fresh("U1", now)

        assert result.status == RefreshResultStatus.REFRESHED
        assert provider.calls == ["refresh-1"]
        credential = await store.get("U1")
        assert credential.access_token == "access-1"
        assert credential.expires_at == now + timedelta(hours=1)
        assert credential.expires_at > now + timedelta(minutes=10)
        assert credential.last_refreshed_at == now
        assert credential.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_expiring_in_fifty_minutes_is_left_alone(self, service, store, provider, now):
        await store.save_grant("U1", "access-0", "refresh-1", now + timedelta(minutes=50))

        result = await service.ensure_fresh("U1", now)

        assert result.status == RefreshResultStatus.NOT_NEEDED
        assert result.succeeded is True
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_unknown_expiry_is_refreshed(self, service, store, provider, now):
        await store.save_grant("U1", "access-0", "refresh-1", None)

        result = await service.ensure_fresh("U1", now)

        assert result.status == RefreshResultStatus.REFRESHED

    @pytest.mark.asyncio
    async def test_force_refreshes_healthy_token(self, service, store, provider, now):
        await store.save_grant("U1", "access-0", "refresh-1", now + timedelta(minutes=50))

        result = await service.ensure_fresh("U1", now, force=True)

        assert result.status == RefreshResultStatus.REFRESHED

    @pytest.mark.asyncio
    async def test_rotated_refresh_token_is_stored(self, service, store, provider, now):
        provider.rotated_refresh_token = "refresh-2"
        await store.save_grant("U1", "access-0", "refresh-1", now)

        await service.ensure_fresh("U1", now)

        assert (await store.get("U1")).refresh_token == "refresh-2"

    @pytest.mark.asyncio
    async def test_invalid_grant_marks_credential_invalid(self, service, store, provider, now):
        provider.error = CredentialRefreshRejectedError(
            "Refresh token rejected by provider", status_code=400, provider_error="invalid_grant"
        )
        await store.save_grant("U1", "access-0", "refresh-1", now + timedelta(minutes=5))

        result = await service.ensure_fresh("U1", now)

        assert result.status == RefreshResultStatus.REJECTED
        assert result.succeeded is False
        credential = await store.get("U1")
        assert credential.status == CredentialStatus.INVALID.value
        failures = await store.list_failures("U1")
        assert len(failures) == 1
        assert failures[0]["reason"] == "refresh_token_rejected"
        assert failures[0]["provider_error"] == "invalid_grant"
        assert failures[0]["requires_reauth"] is True

    @pytest.mark.asyncio
    async def test_rejected_credential_is_not_retried(self, service, store, provider, now):
        provider.error = CredentialRefreshRejectedError("rejected", provider_error="invalid_grant")
        await store.save_grant("U1", "access-0", "refresh-1", now)
        await service.ensure_fresh("U1", now)

        result = await service.ensure_fresh("U1", now + timedelta(minutes=30))

        assert result.status == RefreshResultStatus.SKIPPED_INVALID
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_transient_failure_mutates_nothing(self, service, store, provider, now):
        provider.error = CredentialRefreshTransientError("Token endpoint returned 503", status_code=503)
        expires_at = now + timedelta(minutes=5)
        await store.save_grant("U1", "access-0", "refresh-1", expires_at)

        result = await service.ensure_fresh("U1", now)

        assert result.status == RefreshResultStatus.TRANSIENT
        credential = await store.get("U1")
        assert credential.status == CredentialStatus.ACTIVE.value
        assert credential.access_token == "access-0"
        assert credential.expires_at == expires_at
        assert await store.list_failures("U1") == []

    @pytest.mark.asyncio
    async def test_missing_refresh_token(self, service, store, provider, now):
        await store.save_grant("U1", "access-0", None, now)

        result = await service.ensure_fresh("U1", now)

        assert result.status == RefreshResultStatus.NOT_POSSIBLE
        assert provider.calls == []
        assert (await store.list_failures("U1"))[0]["reason"] == "no_refresh_token"

    @pytest.mark.asyncio
    async def test_missing_credential(self, service, store, now):
        result = await service.ensure_fresh("ghost", now)

        assert result.status == RefreshResultStatus.NOT_FOUND
        assert (await store.list_failures("ghost"))[0]["reason"] == "credential_not_found"

    @pytest.mark.asyncio
    async def test_get_valid_access_token(self, service, store, now):
        await store.save_grant("U1", "access-0", "refresh-1", now + timedelta(minutes=1))

        assert await service.get_valid_access_token("U1", now) == "access-1"

    @pytest.mark.asyncio
    async def test_get_valid_access_token_for_invalid_credential(self, service, store, now):
        await store.save_grant("U1", "access-0", "refresh-1", now)
        await store.mark_invalid("U1", "invalid_grant")

        with pytest.raises(CredentialError):
            await service.get_valid_access_token("U1", now)


# ============================================================================
# TEST SUITE: GOOGLE IDENTITY PROVIDER
# ============================================================================

def _provider_with(handler):
    config = GoogleOAuthConfig(client_id="client-id", client_secret="client-secret")
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleIdentityProvider(config, http_client=client)


class TestGoogleIdentityProvider:

    @pytest.mark.asyncio
    async def test_successful_refresh(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"access_token": "new-access", "expires_in": 3599})

        provider = _provider_with(handler)
        grant = await provider.refresh_access_token("refresh-1")
        await provider.aclose()

        assert grant.access_token == "new-access"
        assert grant.expires_in == 3599
        assert grant.refresh_token is None
        assert seen["url"] == GOOGLE_TOKEN_URL
        assert seen["form"]["grant_type"] == ["refresh_token"]
        assert seen["form"]["refresh_token"] == ["refresh-1"]
        assert seen["form"]["client_id"] == ["client-id"]

    @pytest.mark.asyncio
    async def test_invalid_grant_is_rejected(self):
        provider = _provider_with(
            lambda request: httpx.Response(
                400, json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."}
            )
        )

        with pytest.raises(CredentialRefreshRejectedError) as exc_info:
            await provider.refresh_access_token("refresh-1")

        assert exc_info.value.provider_error == "invalid_grant"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="backend error"),
            httpx.Response(429, json={"error": "rate_limit_exceeded"}),
            httpx.Response(400, json={"error": "invalid_request"}),
            httpx.Response(200, json={"token_type": "Bearer"}),
            httpx.Response(200, text="<html>maintenance</html>"),
            httpx.Response(200, json=["new-access"]),
            httpx.Response(200, json={"access_token": "new-access", "expires_in": "soon"}),
        ],
    )
    async def test_other_failures_are_transient(self, response):
        provider = _provider_with(lambda request: response)

        with pytest.raises(CredentialRefreshTransientError):
            await provider.refresh_access_token("refresh-1")

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = _provider_with(handler)

        with pytest.raises(CredentialRefreshTransientError):
            await provider.refresh_access_token("refresh-1")

    def test_config_from_env(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "id")
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "secret")

        config = GoogleOAuthConfig.from_env()

        assert config.client_id == "id"
        assert config.token_url == GOOGLE_TOKEN_URL

    def test_config_requires_client_credentials(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLIENT_ID", raising=False)
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "secret")

        with pytest.raises(ConfigurationError):
            GoogleOAuthConfig.from_env()
