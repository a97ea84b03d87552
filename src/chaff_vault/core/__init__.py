# Core Module - Shared Utilities
#
# Shared functionality across the vault:
# - Error taxonomy
# - Configuration
# - Clock and id helpers
# - Audit logging

from .exceptions import (
    AuthDataMissing,
    AuthMismatch,
    ConfigInvalid,
    DecryptionFailed,
    ImportCorrupt,
    MasterKeyMissing,
    RecordNotFound,
    StorageFailure,
    VaultError,
    VaultLocked,
)
from .config import VaultConfig
from .clock import now_ms
from .audit_log import (
    AuditEvent,
    AuditLog,
    EventType,
    configure_logging,
)

__all__ = [
    # Errors
    "VaultError",
    "AuthDataMissing",
    "MasterKeyMissing",
    "AuthMismatch",
    "DecryptionFailed",
    "RecordNotFound",
    "StorageFailure",
    "ImportCorrupt",
    "ConfigInvalid",
    "VaultLocked",
    # Configuration
    "VaultConfig",
    "now_ms",
    # Audit Logging
    "AuditEvent",
    "AuditLog",
    "EventType",
    "configure_logging",
]
