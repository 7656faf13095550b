"""Session encryption using Fernet symmetric encryption.

The serialized auth session (access and refresh tokens) is encrypted at
rest with AES-128-CBC via Fernet before it reaches the credential file.
"""

import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from ..exceptions import CredentialEncryptionError


class CredentialEncryption:
    """Encrypts and decrypts credential blobs with a Fernet key.

    The key must be a valid Fernet key (32 bytes, URL-safe base64 encoded).

    Usage:
        encryption = CredentialEncryption(key)
        token = encryption.encrypt(b"session json")
        blob = encryption.decrypt(token)
    """

    def __init__(self, key: Optional[str] = None):
        """Initialize the encryption service.

        Args:
            key: Encryption key. If not provided, reads from the
                 VIIRAA_CREDENTIAL_ENCRYPTION_KEY environment variable.

        Raises:
            CredentialEncryptionError: If no key is provided or found.
        """
        self._key = key or os.getenv("VIIRAA_CREDENTIAL_ENCRYPTION_KEY")
        if not self._key:
            raise CredentialEncryptionError(
                "VIIRAA_CREDENTIAL_ENCRYPTION_KEY not set. "
                "Generate one with: CredentialEncryption.generate_key()"
            )

        try:
            self._fernet = Fernet(self._key.encode())
        except (ValueError, TypeError) as e:
            raise CredentialEncryptionError(
                f"Invalid encryption key format: {e}. "
                "Key must be a valid Fernet key (32 bytes, URL-safe base64 encoded)."
            ) from e

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt a blob.

        Raises:
            CredentialEncryptionError: If the blob is empty.
        """
        if not plaintext:
            raise CredentialEncryptionError("Cannot encrypt empty value")
        return self._fernet.encrypt(plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Decrypt a blob.

        Raises:
            CredentialEncryptionError: If decryption fails (wrong key,
                                       corrupted data, or tampered ciphertext).
        """
        if not ciphertext:
            raise CredentialEncryptionError("Cannot decrypt empty value")

        try:
            return self._fernet.decrypt(ciphertext)
        except InvalidToken as e:
            raise CredentialEncryptionError(
                "Decryption failed: invalid token. "
                "The data may be corrupted, tampered with, or encrypted with a different key."
            ) from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet encryption key.

        Example:
            key = CredentialEncryption.generate_key()
            # Store in .env as VIIRAA_CREDENTIAL_ENCRYPTION_KEY
        """
        return Fernet.generate_key().decode("utf-8")
