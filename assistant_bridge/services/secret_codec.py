"""At-rest encryption of API keys.

Blob layout: ``base64(iv || base64(aes-256-cbc(pkcs7(plaintext))))``. The key is
the SHA-256 of the deployment identity (server name + document root), so the
same deployment always derives the same key and nothing is stored beside it.
Values of at most ``LEGACY_THRESHOLD`` characters are legacy plain base64.
"""

import base64
import binascii
import hashlib
import os
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..entities import ServiceConfig
from ..structured_logging import get_logger

logger = get_logger("SECRET_CODEC")

IV_LENGTH = 16
LEGACY_THRESHOLD = 100


class SecretCodec:
    def __init__(self, server_name: str, document_root: str) -> None:
        self._key = hashlib.sha256((server_name + document_root).encode("utf-8")).digest()

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "SecretCodec":
        return cls(config.server_name, config.document_root)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(iv + base64.b64encode(ciphertext)).decode("ascii")

    def decrypt(self, blob: str) -> Optional[str]:
        """Return the plaintext, or None for anything that is not a blob of this deployment."""
        try:
            data = base64.b64decode(blob, validate=True)
            iv, inner = data[:IV_LENGTH], data[IV_LENGTH:]
            ciphertext = base64.b64decode(inner, validate=True)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, TypeError) as err:
            logger.warning("Failed to decrypt API key", error_type=type(err).__name__)
            return None

    def decode_stored(self, stored: Optional[str]) -> Optional[str]:
        """Turn a stored value into a plaintext key, picking the format by length."""
        if not stored:
            return None
        if len(stored) > LEGACY_THRESHOLD:
            return self.decrypt(stored)
        try:
            return base64.b64decode(stored).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.warning("Failed to decode legacy API key", stored_length=len(stored))
            return None
