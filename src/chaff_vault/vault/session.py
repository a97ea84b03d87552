# Vault - Unlocked Session Handle
#
# The key obtained by a successful unlock lives only inside a VaultSession.
# Record and chaff operations receive the session explicitly; once the
# session is invalidated (logout, re-unlock, reset) the key is zeroed and
# every holder of the handle gets VaultLocked.

import secrets
from typing import Optional

from ..core.clock import now_ms
from ..core.exceptions import VaultLocked
from .keys import SymmetricKey


class VaultSession:
    """Capability object for one unlocked period of the vault."""

    def __init__(self, key: SymmetricKey, opened_at: Optional[int] = None):
        self._key: Optional[SymmetricKey] = key
        self.session_id = secrets.token_hex(8)
        self.opened_at = opened_at if opened_at is not None else now_ms()

    @property
    def is_active(self) -> bool:
        return self._key is not None and not self._key.is_wiped

    @property
    def key(self) -> SymmetricKey:
        if not self.is_active:
            raise VaultLocked("Vault is locked. Unlock vault first.")
        return self._key

    def require_active(self) -> None:
        if not self.is_active:
            raise VaultLocked("Vault is locked. Unlock vault first.")

    def invalidate(self) -> None:
        """Zero the key and drop it. Safe to call more than once."""
        if self._key is not None:
            self._key.wipe()
            self._key = None

    def __repr__(self) -> str:
        state = "active" if self.is_active else "closed"
        return f"<VaultSession {self.session_id} {state}>"


def require_session(session: Optional[VaultSession]) -> VaultSession:
    """Return the session if it is usable, else raise VaultLocked."""
    if session is None:
        raise VaultLocked("Vault is locked. Unlock vault first.")
    session.require_active()
    return session
