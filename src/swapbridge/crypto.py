"""Cryptographic utilities for keys stored at rest.

Uses Fernet (AES-128-CBC with HMAC) for symmetric encryption of the
sequencer and attester private keys in the environment.
"""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Fernet tokens are base64 of a 0x80 version byte, so they all start with this
FERNET_PREFIX = "gAAAAA"


def generate_master_key() -> str:
    """Generate a new master encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for Fernet
    """
    return Fernet.generate_key().decode()


class SecretEncryptor:
    """Encrypts and decrypts private keys using Fernet.

    Usage:
        encryptor = SecretEncryptor(master_key)
        encrypted = encryptor.encrypt("0x59c6...")
        decrypted = encryptor.decrypt(encrypted)
    """

    def __init__(self, master_key: str):
        self._fernet = Fernet(master_key.encode())

    def encrypt(self, secret: str) -> str:
        return self._fernet.encrypt(secret.encode()).decode()

    def decrypt(self, encrypted: str) -> str:
        """Decrypt an encrypted secret.

        Raises:
            InvalidToken: If decryption fails (wrong key or corrupted data)
        """
        return self._fernet.decrypt(encrypted.encode()).decode()


def get_encryptor() -> Optional[SecretEncryptor]:
    """Get encryptor instance using MASTER_KEY from settings.

    Returns:
        SecretEncryptor if MASTER_KEY is set, None otherwise
    """
    from swapbridge.config import get_settings

    master_key = get_settings().master_key
    if not master_key:
        return None
    return SecretEncryptor(master_key)


def decrypt_secret(value: str) -> str:
    """Decrypt a secret loaded from configuration.

    Values without the Fernet prefix are plain keys and are returned as-is.

    Raises:
        ValueError: If the value is encrypted but cannot be decrypted
    """
    if not value.startswith(FERNET_PREFIX):
        return value

    encryptor = get_encryptor()
    if encryptor is None:
        raise ValueError("Encrypted key found but MASTER_KEY is not set")

    try:
        return encryptor.decrypt(value)
    except InvalidToken as e:
        logger.error("Encrypted key could not be decrypted, check MASTER_KEY")
        raise ValueError("Encrypted key could not be decrypted with MASTER_KEY") from e
