# Vault Module - Encrypted item storage
#
# Master password → key (PBKDF2-SHA256)
# Per-item AES-256-GCM envelopes
# Optional chaff obfuscation of field maps

from .encryption import EncryptionService, Envelope
from .keys import KeyDerivation, SymmetricKey
from .session import VaultSession
from .auth import UnlockResult, VaultAuthenticator, VaultState
from .chaff import ChaffField, add_chaff, remove_chaff
from .records import ItemType, RecordManager, VaultItem
from .vault_manager import VaultManager

__all__ = [
    "EncryptionService",
    "Envelope",
    "KeyDerivation",
    "SymmetricKey",
    "VaultSession",
    "UnlockResult",
    "VaultAuthenticator",
    "VaultState",
    "ChaffField",
    "add_chaff",
    "remove_chaff",
    "ItemType",
    "RecordManager",
    "VaultItem",
    "VaultManager",
]
