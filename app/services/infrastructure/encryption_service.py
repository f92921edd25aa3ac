"""
At-rest encryption for OAuth tokens.

AES-256-GCM with a random 96-bit nonce per value. Stored form is
base64(nonce || ciphertext || tag), which fits a TEXT column. The key is
the SHA-256 of the base64 material in TOKEN_ENCRYPTION_KEY.
"""

import base64
import binascii
import hashlib
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

NONCE_SIZE = 12
KEY_MATERIAL_BYTES = 32


class EncryptionError(Exception):
    pass


def _b64decode(value: str, what: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncryptionError(f"{what} is not valid base64") from e


@lru_cache(maxsize=1)
def _get_cipher() -> AESGCM:
    """Derived once per process; `reset_cipher_cache` forces a re-read."""
    configured = settings.TOKEN_ENCRYPTION_KEY
    if not configured:
        raise EncryptionError("TOKEN_ENCRYPTION_KEY not configured")

    material = _b64decode(configured, "TOKEN_ENCRYPTION_KEY")
    if not material:
        raise EncryptionError("TOKEN_ENCRYPTION_KEY is empty")

    return AESGCM(hashlib.sha256(material).digest())


def reset_cipher_cache() -> None:
    _get_cipher.cache_clear()


def load_cipher() -> bool:
    """
    Derive the token key at process start.

    A missing or malformed key is logged, not raised; the API stays up and
    readiness reports the configuration issue.
    """
    try:
        _get_cipher()
    except EncryptionError as e:
        logger.error("Token encryption key unavailable", error=str(e))
        return False
    return True


def encrypt_token(token: str) -> str:
    """
    Raises:
        EncryptionError: If the token is empty or no key is configured
    """
    if not isinstance(token, str) or not token:
        raise EncryptionError("Token must be a non-empty string")

    nonce = os.urandom(NONCE_SIZE)
    sealed = _get_cipher().encrypt(nonce, token.encode("utf-8"), None)
    return base64.b64encode(nonce + sealed).decode("ascii")


def decrypt_token(encrypted_token: str) -> str:
    """
    Inverse of `encrypt_token`.

    Raises:
        EncryptionError: On malformed input, a wrong key, or tampering
    """
    if not isinstance(encrypted_token, str) or not encrypted_token:
        raise EncryptionError("Encrypted token must be a non-empty string")

    cipher = _get_cipher()
    blob = _b64decode(encrypted_token, "Encrypted token")
    if len(blob) <= NONCE_SIZE:
        raise EncryptionError("Encrypted token is truncated")

    try:
        plaintext = cipher.decrypt(blob[:NONCE_SIZE], blob[NONCE_SIZE:], None)
    except InvalidTag as e:
        # wrong key or modified ciphertext; GCM cannot tell which
        logger.warning("Token authentication tag mismatch", encrypted_length=len(blob))
        raise EncryptionError("Invalid or corrupted token") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncryptionError("Decrypted token is not valid UTF-8") from e


def encrypt_oauth_tokens(
    access_token: str, refresh_token: str | None = None
) -> tuple[str, str | None]:
    """(access_enc, refresh_enc); refresh_enc is None when no refresh token was issued."""
    return encrypt_token(access_token), encrypt_token(refresh_token) if refresh_token else None


def validate_encryption_config() -> bool:
    """Round-trip a sample value with the configured key."""
    sample = "cleanup-key-check"
    try:
        ok = decrypt_token(encrypt_token(sample)) == sample
    except EncryptionError as e:
        logger.error("Token encryption is misconfigured", error=str(e))
        return False

    if not ok:
        logger.error("Token encryption round trip mismatch")
    return ok


def generate_new_key() -> str:
    """Fresh base64 material for TOKEN_ENCRYPTION_KEY."""
    return base64.b64encode(os.urandom(KEY_MATERIAL_BYTES)).decode("ascii")
