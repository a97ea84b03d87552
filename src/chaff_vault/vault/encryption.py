# Vault - Encryption Envelope
#
# AES-256-GCM seal/open for one logical record
# Fresh 96-bit nonce per seal, never reused
# Envelope fields are base64 text so they can be stored as JSON
#
# seal/open work on bytes; callers own the JSON layer (seal_json/open_json).

import base64
import binascii
import json
import os
from dataclasses import dataclass
from typing import Any, Dict

from cryptography.exceptions import InvalidTag

from ..core.exceptions import DecryptionFailed
from .keys import SymmetricKey


@dataclass(frozen=True)
class Envelope:
    """Ciphertext (with GCM tag appended) and the nonce used to produce it."""

    ciphertext: str
    nonce: str

    def to_dict(self) -> Dict[str, str]:
        return {"ciphertext": self.ciphertext, "nonce": self.nonce}

    @classmethod
    def from_dict(cls, data: Any) -> "Envelope":
        """
        Parse a stored envelope.

        Accepts the legacy "iv" field name for the nonce.

        Raises:
            DecryptionFailed: data is not an envelope-shaped mapping
        """
        if not isinstance(data, dict):
            raise DecryptionFailed("Envelope must be an object")
        ciphertext = data.get("ciphertext")
        nonce = data.get("nonce", data.get("iv"))
        if not isinstance(ciphertext, str) or not isinstance(nonce, str):
            raise DecryptionFailed("Envelope is missing ciphertext or nonce")
        return cls(ciphertext=ciphertext, nonce=nonce)


class EncryptionService:
    """
    Authenticated encryption for vault records.

    The GCM tag check in open() is the only integrity check in the vault:
    tampering, truncation and wrong keys all surface as DecryptionFailed.
    """

    NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)

    @staticmethod
    def seal(key: SymmetricKey, plaintext: bytes) -> Envelope:
        """
        Encrypt bytes under key with a new random nonce.

        Returns:
            Envelope with base64 ciphertext+tag and base64 nonce
        """
        nonce = os.urandom(EncryptionService.NONCE_LENGTH)
        ciphertext = key.cipher().encrypt(nonce, plaintext, None)
        return Envelope(
            ciphertext=EncryptionService.encode_for_storage(ciphertext),
            nonce=EncryptionService.encode_for_storage(nonce),
        )

    @staticmethod
    def open(key: SymmetricKey, envelope: Envelope) -> bytes:
        """
        Decrypt and verify an envelope.

        Raises:
            DecryptionFailed: tag mismatch, wrong key, or malformed input
        """
        try:
            nonce = EncryptionService.decode_from_storage(envelope.nonce)
            ciphertext = EncryptionService.decode_from_storage(envelope.ciphertext)
            if len(nonce) != EncryptionService.NONCE_LENGTH:
                raise ValueError(f"nonce must be {EncryptionService.NONCE_LENGTH} bytes")
            return key.cipher().decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise DecryptionFailed("Authentication tag verification failed")
        except (binascii.Error, ValueError) as e:
            raise DecryptionFailed(f"Malformed envelope: {e}") from e

    @staticmethod
    def seal_json(key: SymmetricKey, value: Any) -> Envelope:
        """Seal the UTF-8 JSON serialization of value."""
        return EncryptionService.seal(key, json.dumps(value).encode("utf-8"))

    @staticmethod
    def open_json(key: SymmetricKey, envelope: Envelope) -> Any:
        plaintext = EncryptionService.open(key, envelope)
        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecryptionFailed(f"Decrypted payload is not JSON: {e}") from e

    @staticmethod
    def encode_for_storage(data: bytes) -> str:
        """Encode binary data as base64 text."""
        return base64.b64encode(data).decode("utf-8")

    @staticmethod
    def decode_from_storage(data: str) -> bytes:
        """Decode base64 text. Raises binascii.Error on bad input."""
        return base64.b64decode(data.encode("utf-8"), validate=True)
