"""
OAuthCredential model - delegated Google credentials per user.

SECURITY REQUIREMENTS:
- Tokens are encrypted at rest using ENCRYPTION_KEY env var
- Token values never appear in repr() or log output

Lifecycle:
- Created on the initial OAuth grant
- Updated only by the refresh path
- Marked INVALID (tokens purged) when the provider rejects the refresh token
- Deleted on explicit revocation
"""

import enum
from typing import Optional

from sqlalchemy import Column, String, DateTime, Text, Enum

from gbp_access.db_base import Base
from gbp_access.models.base import TimestampMixin


class CredentialStatus(str, enum.Enum):
    """OAuth credential status enumeration."""
    ACTIVE = "active"
    INVALID = "invalid"  # Refresh token rejected; user must re-authenticate


class OAuthCredential(Base, TimestampMixin):
    """
    Secure OAuth credential storage, keyed by user.

    access_token_encrypted and refresh_token_encrypted are Fernet ciphertext.
    """

    __tablename__ = "oauth_credentials"

    user_id = Column(
        String(255),
        primary_key=True,
        comment="Owning user"
    )

    # Encrypted tokens - NEVER log these values
    access_token_encrypted = Column(
        Text,
        nullable=True,
        comment="Encrypted access token - NEVER log plaintext"
    )
    refresh_token_encrypted = Column(
        Text,
        nullable=True,
        comment="Encrypted refresh token - NEVER log plaintext"
    )

    expires_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the access token expires"
    )
    last_refreshed_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When tokens were last refreshed"
    )
    scope = Column(
        Text,
        nullable=True,
        comment="Space-separated granted OAuth scopes"
    )

    status = Column(
        Enum(CredentialStatus),
        default=CredentialStatus.ACTIVE,
        nullable=False,
        index=True,
        comment="Current credential status"
    )
    last_error = Column(
        Text,
        nullable=True,
        comment="Last refresh error (sanitized)"
    )

    def __repr__(self) -> str:
        """Safe repr - NEVER include token values."""
        return (
            f"<OAuthCredential("
            f"user_id={self.user_id}, "
            f"status={self.status}, "
            f"expires_at={self.expires_at})>"
        )

    @property
    def can_refresh(self) -> bool:
        """Check if tokens can be refreshed."""
        return (
            self.status == CredentialStatus.ACTIVE and
            self.refresh_token_encrypted is not None
        )

    def to_safe_dict(self) -> dict:
        """
        Return dictionary safe for logging.

        SECURITY: Excludes all token values.
        """
        return {
            "user_id": self.user_id,
            "status": self.status.value if self.status else None,
            "scope": self.scope,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "last_refreshed_at": self.last_refreshed_at.isoformat() if self.last_refreshed_at else None,
            "has_refresh_token": self.refresh_token_encrypted is not None,
            "last_error": self.last_error,
        }
