"""
Token refresh service for delegated OAuth credentials.

Implements the fetch-or-refresh step for one user:
- credentials expiring within the refresh window are refreshed
- a provider rejection (invalid_grant) marks the credential invalid and
  appends a failure record; it is not retried until re-authentication
- any other provider failure is transient: logged, nothing mutated

SECURITY REQUIREMENTS:
- No plaintext tokens in logs

Usage:
    service = CredentialRefreshService(store, provider)
    result = await service.ensure_fresh(user_id)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from gbp_access.config.settings import (
    TOKEN_LIFETIME_SECONDS,
    TOKEN_REFRESH_SAFETY_BUFFER_SECONDS,
)
from gbp_access.credentials.cache import CachedCredential
from gbp_access.credentials.errors import (
    CredentialError,
    CredentialRefreshRejectedError,
    CredentialRefreshTransientError,
)
from gbp_access.credentials.identity_provider import IdentityProvider
from gbp_access.credentials.store import CredentialStore
from gbp_access.models.base import as_utc, utc_now
from gbp_access.models.oauth_credential import CredentialStatus

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_WINDOW_SECONDS = TOKEN_LIFETIME_SECONDS - TOKEN_REFRESH_SAFETY_BUFFER_SECONDS


class RefreshResultStatus(str, Enum):
    """Result status for refresh operations."""
    REFRESHED = "refreshed"
    NOT_NEEDED = "not_needed"
    NOT_FOUND = "not_found"
    NOT_POSSIBLE = "not_possible"
    SKIPPED_INVALID = "skipped_invalid"
    REJECTED = "rejected"
    TRANSIENT = "transient"


@dataclass
class RefreshResult:
    """
    Result of a token refresh operation.

    SECURITY: Does NOT include token values.
    """
    status: RefreshResultStatus
    user_id: str
    new_expires_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in (RefreshResultStatus.REFRESHED, RefreshResultStatus.NOT_NEEDED)

    @property
    def skipped(self) -> bool:
        return self.status == RefreshResultStatus.SKIPPED_INVALID


class CredentialRefreshService:
    """Keeps one user's credential fresh."""

    def __init__(
        self,
        store: CredentialStore,
        provider: IdentityProvider,
        refresh_window_seconds: int = DEFAULT_REFRESH_WINDOW_SECONDS,
    ):
        self.store = store
        self.provider = provider
        self.refresh_window = timedelta(seconds=refresh_window_seconds)

    def needs_refresh(self, credential: CachedCredential, now: datetime) -> bool:
        if credential.expires_at is None:
            return True
        return as_utc(credential.expires_at) - now < self.refresh_window

    async def ensure_fresh(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        force: bool = False,
    ) -> RefreshResult:
        """
        Refresh the user's credential if it expires within the window.

        Returns:
            RefreshResult; provider failures are classified, not raised

        Raises:
            CredentialStoreError: If the credential store is unavailable
        """
        now = as_utc(now) if now else utc_now()

        credential = await self.store.get(user_id)
        if credential is None:
            logger.warning("No credential stored for user", extra={"user_id": user_id})
            await self.store.log_failure(user_id, "credential_not_found")
            return RefreshResult(
                status=RefreshResultStatus.NOT_FOUND,
                user_id=user_id,
                error_message="No credential stored",
            )

        if credential.status == CredentialStatus.INVALID.value:
            logger.debug("Skipping invalid credential", extra={"user_id": user_id})
            return RefreshResult(
                status=RefreshResultStatus.SKIPPED_INVALID,
                user_id=user_id,
                error_message="Credential requires re-authentication",
            )

        if not force and not self.needs_refresh(credential, now):
            return RefreshResult(
                status=RefreshResultStatus.NOT_NEEDED,
                user_id=user_id,
                new_expires_at=credential.expires_at,
            )

        if not credential.refresh_token:
            logger.warning(
                "Cannot refresh credential",
                extra={"user_id": user_id, "reason": "no_refresh_token"},
            )
            await self.store.log_failure(user_id, "no_refresh_token")
            return RefreshResult(
                status=RefreshResultStatus.NOT_POSSIBLE,
                user_id=user_id,
                error_message="Refresh token not available",
            )

        return await self._do_refresh(credential, now)

    async def _do_refresh(self, credential: CachedCredential, now: datetime) -> RefreshResult:
        user_id = credential.user_id
        try:
            grant = await self.provider.refresh_access_token(credential.refresh_token)
        except CredentialRefreshRejectedError as e:
            await self.store.mark_invalid(user_id, e.provider_error or e.message)
            await self.store.log_failure(
                user_id,
                "refresh_token_rejected",
                {
                    "provider_error": e.provider_error,
                    "status_code": e.status_code,
                    "requires_reauth": True,
                },
            )
            logger.error(
                "Refresh token rejected; user must re-authenticate",
                extra={"user_id": user_id, "provider_error": e.provider_error},
            )
            return RefreshResult(
                status=RefreshResultStatus.REJECTED,
                user_id=user_id,
                error_message=e.message,
            )
        except CredentialRefreshTransientError as e:
            logger.warning(
                "Transient token refresh failure",
                extra={"user_id": user_id, "error": e.message, "status_code": e.status_code},
            )
            return RefreshResult(
                status=RefreshResultStatus.TRANSIENT,
                user_id=user_id,
                error_message=e.message,
            )

        new_expires_at = now + timedelta(seconds=grant.expires_in)
        await self.store.update_tokens(
            user_id,
            access_token=grant.access_token,
            expires_at=new_expires_at,
            refresh_token=grant.refresh_token,
            refreshed_at=now,
        )

        logger.info(
            "Credential refreshed",
            extra={
                "user_id": user_id,
                "token_expires_at": new_expires_at.isoformat(),
                "rotated": grant.refresh_token is not None,
            },
        )
        return RefreshResult(
            status=RefreshResultStatus.REFRESHED,
            user_id=user_id,
            new_expires_at=new_expires_at,
        )

    async def get_valid_access_token(self, user_id: str, now: Optional[datetime] = None) -> str:
        """
        On-demand access for automation work: refresh if needed, then return
        the current access token.

        Raises:
            CredentialError: If no usable token is available
        """
        result = await self.ensure_fresh(user_id, now)
        if result.status not in (
            RefreshResultStatus.REFRESHED,
            RefreshResultStatus.NOT_NEEDED,
            RefreshResultStatus.TRANSIENT,
        ):
            raise CredentialError(
                f"No usable credential ({result.status.value})", user_id=user_id
            )

        credential = await self.store.get(user_id)
        if credential is None or not credential.access_token:
            raise CredentialError("No usable credential", user_id=user_id)
        return credential.access_token
