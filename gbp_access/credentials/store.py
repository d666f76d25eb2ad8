"""
Credential storage for delegated Google OAuth credentials.

SECURITY REQUIREMENTS:
- Tokens are encrypted at rest before storage
- No plaintext tokens in logs

Two tiers:
- the oauth_credentials table is the source of truth
- TokenCache is a process-local read cache, invalidated on every write

Usage:
    store = CredentialStore(session_factory, TokenCache(ttl_seconds=120))

    await store.save_grant(user_id, access_token, refresh_token, expires_at, scope)
    credential = await store.get(user_id)
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gbp_access.credentials.cache import CachedCredential, TokenCache
from gbp_access.credentials.encryption import decrypt_optional, encrypt_token
from gbp_access.credentials.errors import CredentialNotFoundError, CredentialStoreError
from gbp_access.models.activity_log import ActivityLog
from gbp_access.models.base import as_utc, utc_now
from gbp_access.models.oauth_credential import CredentialStatus, OAuthCredential

logger = logging.getLogger(__name__)

TOKEN_REFRESH_ACTION = "token_refresh"


class CredentialStore:
    """Encrypted durable credential store with a process-local cache tier."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        cache: Optional[TokenCache] = None,
    ):
        self._session_factory = session_factory
        self.cache = cache or TokenCache()

    async def _to_cached(self, row: OAuthCredential) -> CachedCredential:
        return CachedCredential(
            user_id=row.user_id,
            access_token=await decrypt_optional(row.access_token_encrypted),
            refresh_token=await decrypt_optional(row.refresh_token_encrypted),
            expires_at=as_utc(row.expires_at),
            scope=row.scope,
            last_refreshed_at=as_utc(row.last_refreshed_at),
            status=row.status.value if row.status else CredentialStatus.ACTIVE.value,
        )

    async def save_grant(
        self,
        user_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
        scope: Optional[str] = None,
    ) -> CachedCredential:
        """
        Store credentials from an initial grant or a re-authentication.

        Re-authenticating an INVALID credential makes it ACTIVE again.
        """
        if not user_id:
            raise ValueError("user_id is required")

        access_token_encrypted = await encrypt_token(access_token)
        refresh_token_encrypted = await encrypt_token(refresh_token) if refresh_token else None

        self.cache.invalidate(user_id)
        try:
            with self._session_factory() as session:
                row = session.get(OAuthCredential, user_id)
                if row is None:
                    row = OAuthCredential(user_id=user_id)
                    session.add(row)
                row.access_token_encrypted = access_token_encrypted
                if refresh_token_encrypted:
                    row.refresh_token_encrypted = refresh_token_encrypted
                row.expires_at = as_utc(expires_at)
                row.scope = scope
                row.status = CredentialStatus.ACTIVE
                row.last_error = None
                session.commit()
                credential = await self._to_cached(row)
        except SQLAlchemyError as e:
            raise CredentialStoreError("Failed to store credential", user_id=user_id) from e

        logger.info(
            "Credential stored",
            extra={"user_id": user_id, "has_refresh_token": credential.refresh_token is not None},
        )
        return credential

    async def get(self, user_id: str) -> Optional[CachedCredential]:
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        try:
            with self._session_factory() as session:
                row = session.get(OAuthCredential, user_id)
                if row is None:
                    return None
                credential = await self._to_cached(row)
        except SQLAlchemyError as e:
            raise CredentialStoreError("Failed to load credential", user_id=user_id) from e

        self.cache.set(credential)
        return credential

    async def update_tokens(
        self,
        user_id: str,
        access_token: str,
        expires_at: datetime,
        refresh_token: Optional[str] = None,
        refreshed_at: Optional[datetime] = None,
    ) -> CachedCredential:
        """
        Persist the result of a refresh.

        The refresh token is only replaced when the provider rotated it.

        Raises:
            CredentialNotFoundError: If the credential was revoked meanwhile
        """
        access_token_encrypted = await encrypt_token(access_token)
        refresh_token_encrypted = await encrypt_token(refresh_token) if refresh_token else None

        self.cache.invalidate(user_id)
        try:
            with self._session_factory() as session:
                row = session.get(OAuthCredential, user_id)
                if row is None:
                    raise CredentialNotFoundError("Credential not found", user_id=user_id)
                row.access_token_encrypted = access_token_encrypted
                if refresh_token_encrypted:
                    row.refresh_token_encrypted = refresh_token_encrypted
                row.expires_at = as_utc(expires_at)
                row.last_refreshed_at = as_utc(refreshed_at) if refreshed_at else utc_now()
                row.last_error = None
                session.commit()
                return await self._to_cached(row)
        except SQLAlchemyError as e:
            raise CredentialStoreError("Failed to update credential", user_id=user_id) from e

    async def mark_invalid(self, user_id: str, error: str) -> None:
        """Purge tokens and flag the credential until the user re-authenticates."""
        self.cache.invalidate(user_id)
        try:
            with self._session_factory() as session:
                row = session.get(OAuthCredential, user_id)
                if row is None:
                    return
                row.status = CredentialStatus.INVALID
                row.access_token_encrypted = None
                row.refresh_token_encrypted = None
                row.last_error = error
                session.commit()
        except SQLAlchemyError as e:
            raise CredentialStoreError("Failed to invalidate credential", user_id=user_id) from e

        logger.warning(
            "Credential marked invalid",
            extra={"user_id": user_id, "error": error},
        )

    async def delete(self, user_id: str) -> bool:
        """Remove a credential on explicit revocation."""
        self.cache.invalidate(user_id)
        try:
            with self._session_factory() as session:
                result = session.execute(
                    delete(OAuthCredential).where(OAuthCredential.user_id == user_id)
                )
                session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise CredentialStoreError("Failed to delete credential", user_id=user_id) from e

    async def log_failure(
        self,
        user_id: str,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append a structured refresh failure record."""
        metadata = {"reason": reason, "timestamp": utc_now().isoformat()}
        metadata.update(details or {})
        try:
            with self._session_factory() as session:
                session.add(
                    ActivityLog(
                        user_id=user_id,
                        action=TOKEN_REFRESH_ACTION,
                        status="failed",
                        extra_metadata=metadata,
                    )
                )
                session.commit()
        except SQLAlchemyError as e:
            raise CredentialStoreError("Failed to record refresh failure", user_id=user_id) from e

    async def list_failures(self, user_id: str) -> List[Dict[str, Any]]:
        try:
            with self._session_factory() as session:
                rows = session.execute(
                    select(ActivityLog)
                    .where(
                        ActivityLog.user_id == user_id,
                        ActivityLog.action == TOKEN_REFRESH_ACTION,
                    )
                    .order_by(ActivityLog.created_at)
                ).scalars().all()
                return [dict(row.extra_metadata or {}) for row in rows]
        except SQLAlchemyError as e:
            raise CredentialStoreError("Failed to list refresh failures", user_id=user_id) from e
