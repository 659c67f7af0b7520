"""Reversible encryption of numeric folder ids for use in URLs.

Only the API layer applies this transform, when a folder id is serialised
outward or read back from a path parameter. Services always work with the
raw integer id.

Format: ``"{iv_hex}:{ciphertext_hex}"`` with AES-256-CBC and PKCS7 padding,
key = SHA-256 of the configured secret.
"""

import hashlib
import logging
import os
from typing import Optional, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

IV_LENGTH = 16


class OpaqueIdCodec:
    """Encrypts and decrypts ids with a key derived from a secret string."""

    def __init__(self, secret: str):
        self._key = hashlib.sha256(secret.encode()).digest()

    def encrypt(self, value: Union[int, str, None]) -> Optional[str]:
        if value is None:
            return None
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        data = padder.update(str(value).encode()) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(data) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: Optional[str]) -> Optional[str]:
        """Return the plaintext, or None when the token is malformed or forged."""
        if not token:
            return None
        parts = token.split(":")
        if len(parts) != 2:
            return None
        try:
            iv = bytes.fromhex(parts[0])
            ciphertext = bytes.fromhex(parts[1])
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            data = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return (unpadder.update(data) + unpadder.finalize()).decode()
        except ValueError:
            logger.debug("Rejected opaque id", extra={"token_prefix": token[:8]})
            return None

    def decrypt_int(self, token: Optional[str]) -> Optional[int]:
        plain = self.decrypt(token)
        if plain is None or not plain.isdigit():
            return None
        return int(plain)
