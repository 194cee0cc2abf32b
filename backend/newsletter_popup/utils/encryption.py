"""
Encryption utilities for Shopify access tokens.
Tokens are stored with Fernet using a key derived from ENCRYPTION_KEY.
"""

import base64
import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from newsletter_popup.config import settings

logger = logging.getLogger(__name__)

_SALT = b"foxx-newsletter-popup:shopify"
_ITERATIONS = 390000


@lru_cache()
def _get_fernet() -> Fernet:
    """Build the Fernet instance from the configured secret."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_SALT,
        iterations=_ITERATIONS,
    )
    key = base64.urlsafe_b64encode(kdf.derive(settings.encryption_key.encode("utf-8")))
    return Fernet(key)


def encrypt_token(token: str) -> str:
    """
    Encrypt an access token for storage.

    Args:
        token: Plain text token

    Returns:
        Encrypted token string
    """
    return _get_fernet().encrypt(token.encode("utf-8")).decode("utf-8")


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt an access token from storage.

    Args:
        encrypted_token: Encrypted token string

    Returns:
        Plain text token

    Raises:
        ValueError: If the token cannot be decrypted with the current key
    """
    try:
        return _get_fernet().decrypt(encrypted_token.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        logger.error("Stored access token could not be decrypted")
        raise ValueError("Invalid encrypted token") from e


def mask_token(token: str, visible: int = 4) -> str:
    """Mask all but the last few characters of a token for display."""
    if not token:
        return ""
    if len(token) <= visible:
        return "*" * len(token)
    return "*" * (len(token) - visible) + token[-visible:]


__all__ = [
    "encrypt_token",
    "decrypt_token",
    "mask_token",
]
