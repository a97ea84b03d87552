"""
Vault Exception Classes
"""


class VaultError(Exception):
    """Base exception for vault operations"""
    pass


class AuthDataMissing(VaultError):
    """Raised when the key-derivation salt is absent from metadata"""
    pass


class MasterKeyMissing(VaultError):
    """Raised when no master key has been stored for the vault"""
    pass


class AuthMismatch(VaultError):
    """Raised when the supplied password does not derive the stored key"""
    pass


class DecryptionFailed(VaultError):
    """Raised when an envelope fails authentication or is malformed"""
    pass


class RecordNotFound(VaultError):
    """Raised when a vault item does not exist"""

    def __init__(self, item_id: str):
        super().__init__(f"Item not found: {item_id}")
        self.item_id = item_id


class StorageFailure(VaultError):
    """Raised when the persistent backend fails"""
    pass


class ImportCorrupt(VaultError):
    """Raised when an export document cannot be parsed"""
    pass


class ConfigInvalid(VaultError):
    """Raised when configuration or generator options are invalid"""
    pass


class VaultLocked(VaultError):
    """Raised when an operation needs an unlocked session"""
    pass
