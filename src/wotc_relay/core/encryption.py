"""Encryption primitives for portal secrets at rest.

Every secret stored on a StatePortalConfig is sealed with AES-256-GCM under a
single master key. Sealed values are self-describing text envelopes:

    v1:<base64(nonce || ciphertext || tag)>

so a value can be opened with nothing but the master key and the name of the
field it belongs to (the field name is bound in as associated data).

Usage:
    from wotc_relay.core.encryption import get_encryptor

    encryptor = get_encryptor()
    envelope = encryptor.seal("hunter22", field="credentials")
    plaintext = encryptor.open(envelope, field="credentials")

    # JSON payloads
    envelope = encryptor.seal_json({"userId": "acme", "password": "..."}, field="credentials")
    data = encryptor.open_json(envelope, field="credentials")
"""

import base64
import binascii
import hashlib
import json
import secrets
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from wotc_relay.utils.exceptions import WotcRelayError


class EncryptionError(WotcRelayError):
    """Raised when encryption or decryption fails."""

    pass


class EncryptionKeyError(EncryptionError):
    """Raised when the master key is missing or invalid."""

    pass


class DecryptionError(EncryptionError):
    """Raised when a sealed value cannot be opened (wrong key, corrupted data, etc.)."""

    pass


NONCE_SIZE = 12  # 96 bits recommended for AES-GCM
KEY_SIZE = 32  # 256 bits for AES-256
TAG_SIZE = 16
ENVELOPE_VERSION = "v1"


class Encryptor:
    """AES-256-GCM encryptor for portal secrets.

    Uses authenticated encryption, so tampered or foreign data fails to open
    instead of yielding garbage plaintext.
    """

    def __init__(self, key: bytes):
        """Initialize encryptor with a key.

        Args:
            key: 32-byte (256-bit) master key

        Raises:
            EncryptionKeyError: If key is not 32 bytes
        """
        if len(key) != KEY_SIZE:
            raise EncryptionKeyError(
                f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}"
            )
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: bytes, associated_data: bytes | None = None) -> bytes:
        """Encrypt raw bytes.

        Returns:
            nonce (12 bytes) || ciphertext || tag (16 bytes)
        """
        nonce = secrets.token_bytes(NONCE_SIZE)
        return nonce + self._aesgcm.encrypt(nonce, plaintext, associated_data)

    def decrypt(self, ciphertext: bytes, associated_data: bytes | None = None) -> bytes:
        """Decrypt raw bytes produced by encrypt().

        Raises:
            DecryptionError: If the data is truncated, tampered with, or was
                sealed under another key or field
        """
        if len(ciphertext) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("Ciphertext too short")

        nonce = ciphertext[:NONCE_SIZE]
        try:
            return self._aesgcm.decrypt(nonce, ciphertext[NONCE_SIZE:], associated_data)
        except InvalidTag as e:
            raise DecryptionError("Authentication tag mismatch") from e

    def seal(self, plaintext: str, *, field: str) -> str:
        """Seal a string into a versioned text envelope bound to ``field``."""
        raw = self.encrypt(plaintext.encode("utf-8"), field.encode("utf-8"))
        return f"{ENVELOPE_VERSION}:{base64.b64encode(raw).decode('ascii')}"

    def open(self, envelope: str, *, field: str) -> str:
        """Open an envelope produced by seal().

        Raises:
            DecryptionError: On an unknown version prefix, malformed base64,
                or any authentication failure
        """
        version, sep, body = envelope.partition(":")
        if not sep or version != ENVELOPE_VERSION:
            raise DecryptionError(f"Unsupported envelope version: {version[:8]!r}")

        try:
            raw = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Envelope body is not valid base64") from e

        plaintext = self.decrypt(raw, field.encode("utf-8"))
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted payload is not valid UTF-8") from e

    def seal_json(self, data: Any, *, field: str) -> str:
        """Seal JSON-serializable data using canonical encoding."""
        return self.seal(canonical_json(data), field=field)

    def open_json(self, envelope: str, *, field: str) -> Any:
        """Open an envelope produced by seal_json()."""
        text = self.open(envelope, field=field)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise DecryptionError("Decrypted payload is not valid JSON") from e


def canonical_json(data: Any) -> str:
    """Serialize data deterministically (sorted keys, compact separators)."""
    return json.dumps(data, separators=(",", ":"), sort_keys=True)


def fingerprint(data: Any) -> str:
    """One-way SHA-256 hex digest of the canonical JSON of ``data``."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def generate_key() -> bytes:
    """Generate a new random 256-bit master key."""
    return secrets.token_bytes(KEY_SIZE)


def key_to_string(key: bytes) -> str:
    """Convert key to base64 string for storage in ENCRYPTION_KEY."""
    return base64.b64encode(key).decode("ascii")


def key_from_string(key_string: str) -> bytes:
    """Convert base64 string back to key bytes.

    Raises:
        EncryptionKeyError: If key string is invalid
    """
    try:
        key = base64.b64decode(key_string, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncryptionKeyError(f"Invalid key string: {e}") from e
    if len(key) != KEY_SIZE:
        raise EncryptionKeyError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
    return key


# Global encryptor instance (lazy-loaded)
_encryptor: Encryptor | None = None


def get_encryptor() -> Encryptor:
    """Get the global encryptor instance.

    Loads the master key from settings on first call.

    Raises:
        EncryptionKeyError: If ENCRYPTION_KEY is not configured
    """
    global _encryptor

    if _encryptor is None:
        from wotc_relay.config.settings import get_settings

        settings = get_settings()
        if settings.ENCRYPTION_KEY is None:
            raise EncryptionKeyError(
                "ENCRYPTION_KEY is not configured. Set it in environment variables."
            )

        _encryptor = Encryptor(key_from_string(settings.ENCRYPTION_KEY.get_secret_value()))

    return _encryptor


def reset_encryptor() -> None:
    """Reset the global encryptor (for testing)."""
    global _encryptor
    _encryptor = None
