"""
Credential management.

Encrypted durable storage with a process-local cache tier, the Google
refresh grant, and the fetch-or-refresh service used by the scheduler.
"""

from gbp_access.credentials.cache import CachedCredential, TokenCache
from gbp_access.credentials.errors import (
    CredentialError,
    CredentialNotFoundError,
    CredentialRefreshError,
    CredentialRefreshRejectedError,
    CredentialRefreshTransientError,
    CredentialEncryptionError,
    CredentialStoreError,
)
from gbp_access.credentials.identity_provider import (
    GoogleIdentityProvider,
    GoogleOAuthConfig,
    IdentityProvider,
    TokenGrant,
)
from gbp_access.credentials.refresh import (
    CredentialRefreshService,
    RefreshResult,
    RefreshResultStatus,
)
from gbp_access.credentials.store import CredentialStore

__all__ = [
    "CachedCredential",
    "TokenCache",
    "CredentialError",
    "CredentialNotFoundError",
    "CredentialRefreshError",
    "CredentialRefreshRejectedError",
    "CredentialRefreshTransientError",
    "CredentialEncryptionError",
    "CredentialStoreError",
    "GoogleIdentityProvider",
    "GoogleOAuthConfig",
    "IdentityProvider",
    "TokenGrant",
    "CredentialRefreshService",
    "RefreshResult",
    "RefreshResultStatus",
    "CredentialStore",
]
