"""
Credential error hierarchy.

Provides:
- CredentialError: base for credential failures
- CredentialNotFoundError: no credential stored for the user
- CredentialRefreshError: refresh with the identity provider failed
  - CredentialRefreshRejectedError: provider rejected the refresh token (fatal)
  - CredentialRefreshTransientError: network / 5xx, retry next run
- CredentialEncryptionError: token encryption or decryption failed
"""

from typing import Optional


class CredentialError(Exception):
    """Base exception for credential failures."""

    error_code = "CREDENTIAL_ERROR"

    def __init__(self, message: str, user_id: Optional[str] = None):
        self.message = message
        self.user_id = user_id
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "user_id": self.user_id,
        }


class CredentialNotFoundError(CredentialError):
    error_code = "CREDENTIAL_NOT_FOUND"


class CredentialRefreshError(CredentialError):
    """Refresh with the identity provider failed."""

    error_code = "CREDENTIAL_REFRESH_FAILED"

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        status_code: Optional[int] = None,
        provider_error: Optional[str] = None,
    ):
        self.status_code = status_code
        self.provider_error = provider_error
        super().__init__(message, user_id=user_id)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["status_code"] = self.status_code
        payload["provider_error"] = self.provider_error
        return payload


class CredentialRefreshRejectedError(CredentialRefreshError):
    """The provider declared the refresh token invalid (invalid_grant)."""

    error_code = "CREDENTIAL_REFRESH_REJECTED"


class CredentialRefreshTransientError(CredentialRefreshError):
    """Recoverable refresh failure; retried on the next scheduled run."""

    error_code = "CREDENTIAL_REFRESH_TRANSIENT"


class CredentialEncryptionError(CredentialError):
    """Raised when credential encryption/decryption fails."""

    error_code = "CREDENTIAL_ENCRYPTION_FAILED"

    def __init__(self, message: str, operation: str = "unknown"):
        self.operation = operation
        super().__init__(message)


class CredentialStoreError(CredentialError):
    """The durable credential store could not be read or written."""

    error_code = "CREDENTIAL_STORE_UNAVAILABLE"
