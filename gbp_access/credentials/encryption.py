"""
Credential encryption utilities.

SECURITY REQUIREMENTS:
- Uses Fernet symmetric encryption via ENCRYPTION_KEY env var
- No plaintext tokens outside process memory
- Clear error messages without exposing sensitive data

ENCRYPTION_KEY may be a Fernet key (32 url-safe base64-encoded bytes) or
any passphrase; passphrases are stretched to a Fernet key with SHA-256.

Usage:
    from gbp_access.credentials.encryption import encrypt_token, decrypt_token

    # Encrypt before storage
    encrypted = await encrypt_token(access_token)

    # Decrypt for use (in memory only)
    plaintext = await decrypt_token(encrypted)
"""

import base64
import binascii
import hashlib
import logging
import os
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from gbp_access.credentials.errors import CredentialEncryptionError

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_ENV = "ENCRYPTION_KEY"


def _derive_fernet_key(raw_key: str) -> bytes:
    try:
        decoded = base64.urlsafe_b64decode(raw_key.encode())
        if len(decoded) == 32 and base64.urlsafe_b64encode(decoded) == raw_key.encode():
            return raw_key.encode()
    except (binascii.Error, ValueError):
        pass
    digest = hashlib.sha256(raw_key.encode()).digest()
    return base64.urlsafe_b64encode(digest)


@lru_cache(maxsize=4)
def _fernet_for(raw_key: str) -> Fernet:
    return Fernet(_derive_fernet_key(raw_key))


def _get_fernet(operation: str) -> Fernet:
    raw_key = os.getenv(ENCRYPTION_KEY_ENV)
    if not raw_key:
        logger.error(
            "Encryption not configured",
            extra={"operation": operation}
        )
        raise CredentialEncryptionError(
            "Encryption key not configured. Set ENCRYPTION_KEY environment variable.",
            operation=operation
        )
    return _fernet_for(raw_key)


def validate_encryption_configured() -> bool:
    return bool(os.getenv(ENCRYPTION_KEY_ENV))


async def encrypt_token(plaintext: str) -> str:
    """
    Encrypt an OAuth token for secure storage.

    Args:
        plaintext: The token to encrypt (access_token or refresh_token)

    Returns:
        Encrypted string safe for database storage

    Raises:
        CredentialEncryptionError: If encryption is not configured
        ValueError: If plaintext is empty
    """
    if not plaintext:
        raise ValueError("Cannot encrypt empty token")

    fernet = _get_fernet("encrypt")
    return fernet.encrypt(plaintext.encode()).decode()


async def decrypt_token(ciphertext: str) -> str:
    """
    Decrypt an encrypted OAuth token.

    SECURITY:
    - Decrypted value must NEVER be logged

    Raises:
        CredentialEncryptionError: If decryption fails
        ValueError: If ciphertext is empty
    """
    if not ciphertext:
        raise ValueError("Cannot decrypt empty ciphertext")

    fernet = _get_fernet("decrypt")
    try:
        return fernet.decrypt(ciphertext.encode()).decode()
    except InvalidToken as e:
        logger.error(
            "Token decryption failed",
            extra={"operation": "decrypt_token", "error_type": type(e).__name__}
        )
        raise CredentialEncryptionError(
            "Failed to decrypt token. Token may be corrupted or encryption key changed.",
            operation="decrypt"
        ) from e


async def decrypt_optional(ciphertext: Optional[str]) -> Optional[str]:
    if not ciphertext:
        return None
    return await decrypt_token(ciphertext)


def validate_encryption_ready() -> bool:
    """
    Validate that encryption is properly configured.

    Call this during startup to fail fast.

    Raises:
        CredentialEncryptionError: If encryption is not configured
    """
    if not validate_encryption_configured():
        raise CredentialEncryptionError(
            "ENCRYPTION_KEY environment variable is required for credential storage.",
            operation="validate"
        )

    logger.info("Credential encryption validated successfully")
    return True
