import base64
import logging
import os
from typing import Optional, Tuple

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import CredentialsError

logger = logging.getLogger(__name__)

IV_SIZE = 16  # AES block size


def _cipher(key: str, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(key.encode("utf-8")), modes.CFB(iv))


def encrypt(plain_text: str, key: str) -> str:
    """Encrypts `plain_text` as base64(IV || AES-CFB(plain_text))."""
    iv = os.urandom(IV_SIZE)
    try:
        encryptor = _cipher(key, iv).encryptor()
    except ValueError as e:
        raise CredentialsError(f"Invalid crypto key: {e}")
    data = encryptor.update(plain_text.encode("utf-8")) + encryptor.finalize()
    return base64.b64encode(iv + data).decode("ascii")


def decrypt(cipher_text: str, key: Optional[str]) -> str:
    """
    Recovers a credential value encrypted with `encrypt`.

    Args:
        cipher_text: base64 text holding the IV followed by the AES-CFB payload.
        key: 16, 24 or 32 character AES key. When empty, `cipher_text` is
             returned unchanged so plaintext deployments keep working.

    Returns:
        The decrypted value.
    """
    if not key:
        return cipher_text

    try:
        raw = base64.b64decode(cipher_text, validate=True)
        if len(raw) < IV_SIZE:
            raise ValueError("ciphertext too short")
        decryptor = _cipher(key, raw[:IV_SIZE]).decryptor()
        plain = decryptor.update(raw[IV_SIZE:]) + decryptor.finalize()
        return plain.decode("utf-8")
    except ValueError as e:
        logger.error("Could not decrypt credentials: %s", e)
        raise CredentialsError(f"Could not decrypt credentials: {e}")


def decrypt_credentials(
    access_key: str, secret_key: str, key: Optional[str]
) -> Tuple[str, str]:
    return decrypt(access_key, key), decrypt(secret_key, key)
