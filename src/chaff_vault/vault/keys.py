# Vault - Password-Derived Key Module
#
# Master password + salt → 256-bit AES-GCM key (PBKDF2-HMAC-SHA256)
# Keys round-trip through their raw byte form for storage and comparison.
#
# The derived key IS the vault key: there is no independently generated
# master key wrapped by the password key.

import base64
import binascii
import hmac
import os
from typing import Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core.exceptions import VaultLocked


class SymmetricKey:
    """Opaque AES-256-GCM key.

    Raw bytes live in a bytearray so wipe() can zero them when a session
    ends. A wiped key raises VaultLocked on any further use.
    """

    __slots__ = ("_raw", "_wiped")

    def __init__(self, raw: Union[bytes, bytearray]):
        if len(raw) != KeyDerivation.KEY_LENGTH:
            raise ValueError(
                f"AES-256 key must be {KeyDerivation.KEY_LENGTH} bytes, got {len(raw)}"
            )
        self._raw = bytearray(raw)
        self._wiped = False

    @property
    def is_wiped(self) -> bool:
        return self._wiped

    def cipher(self) -> AESGCM:
        if self._wiped:
            raise VaultLocked("Key has been wiped")
        return AESGCM(bytes(self._raw))

    def raw_bytes(self) -> bytes:
        if self._wiped:
            raise VaultLocked("Key has been wiped")
        return bytes(self._raw)

    def wipe(self) -> None:
        for i in range(len(self._raw)):
            self._raw[i] = 0
        self._wiped = True

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else "active"
        return f"<SymmetricKey {state}>"


class KeyDerivation:
    """
    Salt generation, PBKDF2 key derivation, and key export/import.

    Flow:
    1. new_salt() once per vault (stored as hex metadata)
    2. derive_key(password, salt) on initialize and on every unlock
    3. export_key() gives the bytes persisted under "masterKey"
    4. import_key() turns the persisted bytes back into a usable key
    """

    DEFAULT_ITERATIONS = 100_000
    KEY_LENGTH = 32  # 256 bits for AES-256
    SALT_LENGTH = 16

    @staticmethod
    def new_salt() -> bytes:
        """Generate cryptographically random salt."""
        return os.urandom(KeyDerivation.SALT_LENGTH)

    @staticmethod
    def derive_key(password: str, salt: bytes, iterations: int = DEFAULT_ITERATIONS) -> SymmetricKey:
        """
        Derive the vault key from a password with PBKDF2-HMAC-SHA256.

        Deterministic: identical password, salt and iterations always give
        byte-identical exported keys. Authentication depends on this.
        """
        if iterations <= 0:
            raise ValueError("iterations must be positive")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KeyDerivation.KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )
        return SymmetricKey(kdf.derive(password.encode("utf-8")))

    @staticmethod
    def export_key(key: SymmetricKey) -> bytes:
        return key.raw_bytes()

    @staticmethod
    def import_key(raw: bytes) -> SymmetricKey:
        return SymmetricKey(raw)

    @staticmethod
    def keys_match(a: bytes, b: bytes) -> bool:
        """Constant-time comparison of exported key bytes."""
        return hmac.compare_digest(a, b)

    # ── Text forms for the store ────────────────────────────────────

    @staticmethod
    def salt_to_text(salt: bytes) -> str:
        return salt.hex()

    @staticmethod
    def salt_from_text(text: str) -> bytes:
        return bytes.fromhex(text)

    @staticmethod
    def key_to_text(raw: bytes) -> str:
        return base64.b64encode(raw).decode("ascii")

    @staticmethod
    def key_from_text(text: str) -> bytes:
        """Decode a stored key. Raises ValueError on malformed text."""
        try:
            return base64.b64decode(text.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise ValueError(f"Malformed stored key: {e}") from e
