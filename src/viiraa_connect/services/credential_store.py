"""Credential stores for the serialized auth session."""

import logging
import os
from pathlib import Path
from typing import Optional

from ..exceptions import CredentialEncryptionError
from .encryption import CredentialEncryption

logger = logging.getLogger(__name__)


class MemoryCredentialStore:
    """Process-local store. Used in tests and when no key is configured."""

    def __init__(self) -> None:
        self._blob: Optional[bytes] = None

    def save(self, blob: bytes) -> None:
        self._blob = bytes(blob)

    def fetch(self) -> Optional[bytes]:
        return self._blob

    def clear(self) -> None:
        self._blob = None


class FernetCredentialStore:
    """
    File-backed store encrypted with Fernet.

    The file holds a single Fernet token and is written with owner-only
    permissions. A blob that can no longer be decrypted (key rotated, file
    corrupted) is treated as absent and removed.
    """

    def __init__(self, path: Path, encryption: CredentialEncryption):
        self.path = Path(path)
        self._encryption = encryption

    def save(self, blob: bytes) -> None:
        token = self._encryption.encrypt(blob)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_bytes(token)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.path)

    def fetch(self) -> Optional[bytes]:
        if not self.path.exists():
            return None
        try:
            return self._encryption.decrypt(self.path.read_bytes())
        except CredentialEncryptionError as e:
            logger.warning(f"Discarding unreadable credential file {self.path}: {e}")
            self.clear()
            return None

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
