# chaff-vault - Main Package
#
# Client-side encrypted vault: password-derived key, AES-256-GCM item
# envelopes, chaff obfuscation, partitioned local storage with audit log.

__version__ = "0.1.0"
__author__ = "chaff-vault contributors"
__description__ = "Client-side encrypted vault with chaff obfuscation"

from .core import (
    EventType,
    VaultConfig,
    VaultError,
)
from .vault import VaultManager, VaultSession

__all__ = [
    "__version__",
    "EventType",
    "VaultConfig",
    "VaultError",
    "VaultManager",
    "VaultSession",
]
