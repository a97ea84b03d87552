# Vault - Authentication State Machine
#
# Uninitialized → Locked → Unlocked (→ Locked again on logout)
#
# initialize(): salt + PBKDF2 key, store exported key bytes as "masterKey"
# authenticate(): re-derive with the stored salt, constant-time compare
#                 against the stored bytes, hand out a VaultSession
#
# Failures are reported as results plus an audit event, never raised.
# Rotation is a clock only: when the last rotation is older than
# rotation_days the timestamp is reset; no key material changes.

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..core.audit_log import AuditLog, EventType
from ..core.clock import MS_PER_DAY, Clock, now_ms
from ..core.config import DEFAULT_ROTATION_DAYS
from ..core.exceptions import (
    AuthDataMissing,
    AuthMismatch,
    MasterKeyMissing,
    VaultError,
)
from ..storage.kv_store import Namespace, VaultStore
from .keys import KeyDerivation
from .session import VaultSession

logger = logging.getLogger(__name__)

MASTER_KEY_ID = "masterKey"

META_SALT = "authSalt"
META_LAST_ROTATION = "lastKeyRotation"
META_INITIALIZED = "vaultInitialized"
META_SECONDARY_REGISTERED = "webauthnRegistered"
META_SECONDARY_USERNAME = "webauthnUsername"


class VaultState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


@dataclass
class UnlockResult:
    """Outcome of authenticate(). session is set only when ok is True."""

    ok: bool
    session: Optional[VaultSession] = None
    error: Optional[VaultError] = None
    rotation_reset: bool = False

    @property
    def message(self) -> str:
        if self.ok:
            return "Vault unlocked successfully!"
        if isinstance(self.error, AuthMismatch):
            return "Incorrect master password"
        return str(self.error) if self.error else "Failed to unlock vault"


class VaultAuthenticator:
    """
    Creates and unlocks the vault for one store.

    Args:
        store: Vault store (keys + metadata namespaces are used)
        audit: Audit log receiving one event per attempt
        iterations: PBKDF2 iteration count; must match the one used at init
        rotation_days: Rotation clock period
        clock: Epoch-millisecond clock
    """

    def __init__(
        self,
        store: VaultStore,
        audit: AuditLog,
        iterations: int = KeyDerivation.DEFAULT_ITERATIONS,
        rotation_days: int = DEFAULT_ROTATION_DAYS,
        clock: Clock = now_ms,
    ):
        self.store = store
        self.audit = audit
        self.iterations = iterations
        self.rotation_days = rotation_days
        self.clock = clock
        self._session: Optional[VaultSession] = None

    @property
    def session(self) -> Optional[VaultSession]:
        if self._session is not None and self._session.is_active:
            return self._session
        return None

    async def is_unlock_required(self) -> bool:
        """True iff a master key has been stored (vault has a password)."""
        return await self.store.get(Namespace.KEYS, MASTER_KEY_ID) is not None

    async def state(self) -> VaultState:
        if self.session is not None:
            return VaultState.UNLOCKED
        if await self.is_unlock_required():
            return VaultState.LOCKED
        return VaultState.UNINITIALIZED

    async def _derive(self, password: str, salt: bytes):
        # PBKDF2 is CPU-bound; keep it off the event loop.
        return await asyncio.to_thread(KeyDerivation.derive_key, password, salt, self.iterations)

    async def initialize(self, password: str) -> bool:
        """
        Create the vault key from a password.

        Returns:
            True on success, False on any failure (audited with the error)
        """
        written = []
        try:
            if await self.is_unlock_required():
                raise VaultError("Vault already initialized. Use authenticate() instead.")

            salt = KeyDerivation.new_salt()
            key = await self._derive(password, salt)
            exported = KeyDerivation.export_key(key)
            key.wipe()

            # masterKey marks the vault as initialized, so it is written last.
            entries = [
                (Namespace.METADATA, META_SALT, KeyDerivation.salt_to_text(salt)),
                (Namespace.METADATA, META_LAST_ROTATION, self.clock()),
                (Namespace.METADATA, META_INITIALIZED, True),
                (Namespace.KEYS, MASTER_KEY_ID, KeyDerivation.key_to_text(exported)),
            ]
            for ns, name, value in entries:
                written.append((ns, name))
                await self.store.set(ns, name, value)

            await self.audit.append(EventType.AUTH_INIT, {"success": True})
            logger.info("Vault initialized")
            return True

        except Exception as e:
            logger.error("Vault initialization failed: %s", e)
            await self._discard(written)
            try:
                await self.audit.append(EventType.AUTH_INIT, {"success": False, "error": str(e)})
            except VaultError as audit_error:
                logger.error("Could not record AUTH_INIT failure: %s", audit_error)
            return False

    async def _discard(self, written) -> None:
        """Remove entries written by a failed initialize, key first."""
        for ns, name in reversed(written):
            try:
                await self.store.remove(ns, name)
            except VaultError as e:
                logger.error("Could not remove %s/%s after failed initialize: %s", ns.value, name, e)

    async def authenticate(self, password: str) -> UnlockResult:
        """
        Unlock the vault with a password.

        Returns:
            UnlockResult; on success it carries a fresh VaultSession and any
            previous session is invalidated
        """
        try:
            salt_text = await self.store.get(Namespace.METADATA, META_SALT)
            if not salt_text:
                raise AuthDataMissing("Authentication data not found")
            salt = KeyDerivation.salt_from_text(salt_text)

            candidate = await self._derive(password, salt)
            candidate_bytes = KeyDerivation.export_key(candidate)
            candidate.wipe()

            stored_text = await self.store.get(Namespace.KEYS, MASTER_KEY_ID)
            if not stored_text:
                raise MasterKeyMissing("Master key not found")
            stored_bytes = KeyDerivation.key_from_text(stored_text)

            matched = KeyDerivation.keys_match(candidate_bytes, stored_bytes)
            await self.audit.append(EventType.AUTH_ATTEMPT, {"success": matched})

            if not matched:
                logger.warning("Vault unlock failed: incorrect password")
                return UnlockResult(ok=False, error=AuthMismatch("Incorrect master password"))

            rotation_reset = await self._check_rotation()

            self.logout()
            session = VaultSession(KeyDerivation.import_key(stored_bytes), opened_at=self.clock())
            self._session = session
            logger.info("Vault unlocked (session %s)", session.session_id)
            return UnlockResult(ok=True, session=session, rotation_reset=rotation_reset)

        except Exception as e:
            error = e if isinstance(e, VaultError) else VaultError(str(e))
            logger.error("Vault authentication error: %s", e)
            try:
                await self.audit.append(EventType.AUTH_ERROR, {"error": str(e)})
            except VaultError as audit_error:
                logger.error("Could not record AUTH_ERROR: %s", audit_error)
            return UnlockResult(ok=False, error=error)

    async def _check_rotation(self) -> bool:
        """Reset the rotation clock when it is older than rotation_days."""
        last_rotation = await self.store.get(Namespace.METADATA, META_LAST_ROTATION) or 0
        now = self.clock()
        days_since = (now - last_rotation) / MS_PER_DAY
        if days_since < self.rotation_days:
            return False

        # Clock reset only: records stay encrypted under the same key.
        await self.store.set(Namespace.METADATA, META_LAST_ROTATION, now)
        await self.audit.append(
            EventType.KEY_ROTATION_DUE,
            {"daysSinceRotation": int(days_since), "reencrypted": False},
        )
        logger.info("Rotation clock reset after %d days", int(days_since))
        return True

    def logout(self) -> bool:
        """
        Discard the in-memory key. Returns True if a session was open.

        Sync so teardown paths can call it; lock() is the audited variant.
        """
        if self._session is None:
            return False
        self._session.invalidate()
        self._session = None
        return True

    async def lock(self) -> bool:
        """Logout and audit it."""
        was_open = self.logout()
        if was_open:
            await self.audit.append(EventType.AUTH_LOGOUT, {})
        return was_open
