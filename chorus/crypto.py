"""Persona credential encryption.

API keys are stored as ``<hex iv>:<base64 ciphertext>`` produced by
AES-256-CBC with PKCS#7 padding.  The key is a 32-character secret taken
from ``[security] encryption_key`` or ``$CHORUS_ENCRYPTION_KEY``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from chorus.errors import CredentialError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16


class CredentialCipher:
    """Encrypts and decrypts persona API keys."""

    def __init__(self, key: str) -> None:
        raw = key.encode("utf-8")
        if len(raw) != KEY_LENGTH:
            raise CredentialError(
                f"Encryption key must be exactly {KEY_LENGTH} bytes, got {len(raw)}"
            )
        self._key = raw

    def encrypt(self, plaintext: str) -> str:
        """Encrypt *plaintext*; a fresh IV is generated per call."""
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{base64.b64encode(ciphertext).decode('ascii')}"

    def decrypt(self, token: str) -> str:
        """Decrypt a ``<hex iv>:<base64 ciphertext>`` token.

        Raises:
            CredentialError: If the token is malformed or the key is wrong.
        """
        parts = token.split(":")
        if len(parts) != 2:
            raise CredentialError("Invalid encrypted credential format")

        try:
            iv = bytes.fromhex(parts[0])
            ciphertext = base64.b64decode(parts[1], validate=True)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, binascii.Error) as exc:
            logger.debug("Credential decryption failed: %s", exc)
            raise CredentialError("Failed to decrypt credential") from exc
