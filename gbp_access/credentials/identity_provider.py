"""
Identity provider client for the OAuth refresh grant.

GoogleIdentityProvider posts grant_type=refresh_token to Google's token
endpoint. Responses are classified so callers can tell a dead refresh
token (CredentialRefreshRejectedError) from a hiccup worth retrying
(CredentialRefreshTransientError).
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from gbp_access.config.settings import ConfigurationError
from gbp_access.credentials.errors import (
    CredentialRefreshRejectedError,
    CredentialRefreshTransientError,
)

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# OAuth error codes meaning the refresh token itself is no longer valid
REJECTED_ERROR_CODES = frozenset({"invalid_grant"})


@dataclass(frozen=True)
class TokenGrant:
    """
    New tokens from a refresh grant.

    SECURITY: Never log instances of this class.
    """

    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    def __repr__(self) -> str:
        return f"<TokenGrant(expires_in={self.expires_in}, rotated={self.refresh_token is not None})>"


class IdentityProvider(Protocol):
    async def refresh_access_token(self, refresh_token: str) -> TokenGrant: ...


@dataclass(frozen=True)
class GoogleOAuthConfig:
    """Google OAuth client configuration from environment."""

    client_id: str
    client_secret: str
    token_url: str = GOOGLE_TOKEN_URL
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "GoogleOAuthConfig":
        client_id = os.getenv("GOOGLE_CLIENT_ID")
        client_secret = os.getenv("GOOGLE_CLIENT_SECRET")

        if not client_id or not client_secret:
            logger.error(
                "Google OAuth credentials not fully configured",
                extra={
                    "has_client_id": bool(client_id),
                    "has_client_secret": bool(client_secret),
                }
            )
            raise ConfigurationError(
                "GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required",
                setting="GOOGLE_CLIENT_ID",
            )

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            token_url=os.getenv("GOOGLE_TOKEN_URL", GOOGLE_TOKEN_URL),
        )


class GoogleIdentityProvider:
    """Refreshes Google access tokens over httpx."""

    def __init__(
        self,
        config: GoogleOAuthConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._http_client = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)

    async def aclose(self) -> None:
        await self._http_client.aclose()

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """
        Exchange a refresh token for a new access token.

        Raises:
            CredentialRefreshRejectedError: Provider returned invalid_grant
            CredentialRefreshTransientError: Network failure or any other error
        """
        try:
            response = await self._http_client.post(
                self.config.token_url,
                data={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Token endpoint unreachable",
                extra={"error_type": type(e).__name__}
            )
            raise CredentialRefreshTransientError(
                f"Token endpoint unreachable: {type(e).__name__}"
            ) from e

        if response.status_code != 200:
            provider_error = _error_code(response)
            if provider_error in REJECTED_ERROR_CODES:
                raise CredentialRefreshRejectedError(
                    "Refresh token rejected by provider",
                    status_code=response.status_code,
                    provider_error=provider_error,
                )
            raise CredentialRefreshTransientError(
                f"Token endpoint returned {response.status_code}",
                status_code=response.status_code,
                provider_error=provider_error,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CredentialRefreshTransientError(
                "Token endpoint returned a non-JSON body",
                status_code=response.status_code,
            ) from e

        if not isinstance(data, dict):
            raise CredentialRefreshTransientError(
                "Token endpoint returned a non-object body",
                status_code=response.status_code,
            )

        access_token = data.get("access_token")
        if not access_token:
            raise CredentialRefreshTransientError(
                "No access_token in refresh response",
                status_code=response.status_code,
            )

        try:
            expires_in = int(data.get("expires_in") or 3600)
        except (TypeError, ValueError) as e:
            raise CredentialRefreshTransientError(
                "Invalid expires_in in refresh response",
                status_code=response.status_code,
            ) from e

        return TokenGrant(
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
        )


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        error = body.get("error")
        return error if isinstance(error, str) else None
    return None
