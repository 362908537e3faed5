"""
At-rest encryption for Strava OAuth tokens.

Keys come from TOKEN_ENCRYPTION_KEY (comma-separated for rotation: new
tokens use the first key, any listed key can decrypt). Outside production
a throwaway key is generated, so stored tokens do not survive a restart.
"""
import logging
from typing import List, Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from core.config import settings

logger = logging.getLogger(__name__)


class TokenEncryption:

    def __init__(self, keys: Optional[List[str]] = None):
        keys = list(keys) if keys is not None else settings.token_encryption_keys
        if not keys:
            if settings.ENVIRONMENT == "production":
                raise RuntimeError("TOKEN_ENCRYPTION_KEY must be set in production")
            logger.warning("TOKEN_ENCRYPTION_KEY not set; using an ephemeral key")
            keys = [Fernet.generate_key().decode()]

        try:
            self.cipher = MultiFernet([Fernet(k.encode() if isinstance(k, str) else k) for k in keys])
        except ValueError as e:
            raise ValueError(f"Invalid TOKEN_ENCRYPTION_KEY: {e}")

    def encrypt(self, plaintext: str) -> str:
        return self.cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> Optional[str]:
        """None when no configured key matches; the user must reconnect Strava."""
        try:
            return self.cipher.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.error("Stored Strava token could not be decrypted with the configured keys")
            return None

    def rotate(self, ciphertext: str) -> str:
        """Re-encrypt a stored token under the primary key."""
        return self.cipher.rotate(ciphertext.encode()).decode()


_token_encryption: Optional[TokenEncryption] = None


def get_token_encryption() -> TokenEncryption:
    global _token_encryption
    if _token_encryption is None:
        _token_encryption = TokenEncryption()
    return _token_encryption


def encrypt_token(token: Optional[str]) -> Optional[str]:
    return get_token_encryption().encrypt(token) if token else None


def decrypt_token(token: Optional[str]) -> Optional[str]:
    return get_token_encryption().decrypt(token) if token else None
