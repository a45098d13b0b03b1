"""
Token encryption — encrypt / decrypt refresh tokens at rest.

Uses AES-256-GCM from the ``cryptography`` library.  Every call to
:meth:`TokenCipher.encrypt` draws a fresh 16-byte IV, and the IV travels
with the ciphertext in a single envelope string::

    <hex(ciphertext + tag)>:<hex(iv)>

The key is supplied explicitly (``config.token_encryption_key``, hex encoded)
and never changes for the lifetime of a cipher.  Moving stored data to a new
key is an explicit migration, see ``TokenStorage.reencrypt_all``.  Generate a
key with::

    python -m cli generate-key
"""

from __future__ import annotations

import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from oauth.exceptions import ConfigurationError, DecryptionError

KEY_BYTES = 32
IV_BYTES = 16
SEPARATOR = ":"


def generate_key() -> str:
    """Return a fresh random 256-bit key, hex encoded."""
    return os.urandom(KEY_BYTES).hex()


class TokenCipher:
    """Symmetric envelope codec bound to one key."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_BYTES:
            raise ConfigurationError(
                f"Encryption key must be {KEY_BYTES} bytes, got {len(key)}"
            )
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_hex(cls, key_hex: str) -> "TokenCipher":
        """Build a cipher from a hex-encoded key as found in configuration."""
        if not key_hex:
            raise ConfigurationError(
                "TOKEN_ENCRYPTION_KEY is not set. Generate one with "
                "`python -m cli generate-key`"
            )
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as exc:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY is not valid hex") from exc
        return cls(key)

    def __repr__(self) -> str:
        return "TokenCipher(key=<redacted>)"

    def encrypt(self, plaintext: str) -> str:
        """Encrypt *plaintext* and return the ``ciphertext:iv`` envelope."""
        iv = os.urandom(IV_BYTES)
        ciphertext = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        return f"{ciphertext.hex()}{SEPARATOR}{iv.hex()}"

    def decrypt(self, envelope: str) -> str:
        """
        Decrypt an envelope produced by :meth:`encrypt`.

        Raises ``DecryptionError`` on any malformed envelope, a wrong key, or
        a ciphertext that fails authentication.
        """
        parts = envelope.split(SEPARATOR)
        if len(parts) != 2:
            raise DecryptionError("Malformed envelope: expected 'ciphertext:iv'")

        try:
            ciphertext = binascii.unhexlify(parts[0])
            iv = binascii.unhexlify(parts[1])
        except (binascii.Error, ValueError) as exc:
            raise DecryptionError("Malformed envelope: invalid hex encoding") from exc

        if len(iv) != IV_BYTES or not ciphertext:
            raise DecryptionError("Malformed envelope: bad IV or empty ciphertext")

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext, None)
        except InvalidTag as exc:
            raise DecryptionError(
                "Envelope failed authentication (wrong key or tampered data)"
            ) from exc

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Decrypted payload is not valid UTF-8") from exc
