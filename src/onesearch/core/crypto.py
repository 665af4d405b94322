"""
Secret encryption for values stored in the config store.
"""

from __future__ import annotations

import base64
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger("onesearch.crypto")

_SALT = b"onesearch_secret_salt"


class Encryptor:
    """
    Fernet encryption keyed from an arbitrary passphrase.

    A 32-character passphrase is used as the key material directly; anything
    else is stretched with PBKDF2-HMAC-SHA256.
    """

    def __init__(self, passphrase: str) -> None:
        if not passphrase:
            raise ValueError("An encryption passphrase is required")

        if len(passphrase) == 32:
            key = base64.urlsafe_b64encode(passphrase.encode())
        else:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=_SALT,
                iterations=100000,
            )
            key = base64.urlsafe_b64encode(kdf.derive(passphrase.encode()))

        self._fernet = Fernet(key)

    def encrypt(self, value: str) -> str:
        if not value:
            return ""
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, token: str) -> Optional[str]:
        """Decrypt a stored value; None when it cannot be decrypted."""
        if not token:
            return ""
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            logger.error("Stored secret could not be decrypted; was the encryption key changed?")
            return None
