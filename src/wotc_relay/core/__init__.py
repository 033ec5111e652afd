"""Core services: encryption, audit logging, structured logging and Redis."""

from .audit import AuditLogger
from .encryption import (
    DecryptionError,
    EncryptionError,
    EncryptionKeyError,
    Encryptor,
    get_encryptor,
)

__all__ = [
    "AuditLogger",
    "DecryptionError",
    "EncryptionError",
    "EncryptionKeyError",
    "Encryptor",
    "get_encryptor",
]
