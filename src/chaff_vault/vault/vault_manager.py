# Vault Manager - Collaborator Facade
#
# One object wiring store, audit log, authenticator, records, chaff and
# export/import together. UI layers (CLI, local HTTP API) talk only to
# this class: they get a VaultSession from unlock_vault() and hand it
# back on every item or chaff call. They never see the raw key.

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..backup.vault_export import VaultExporter
from ..core.audit_log import AuditEvent, AuditLog, EventType, configure_logging
from ..core.clock import Clock, now_ms
from ..core.config import VaultConfig
from ..storage.kv_store import Namespace, VaultStore
from .auth import (
    META_INITIALIZED,
    META_SECONDARY_REGISTERED,
    META_SECONDARY_USERNAME,
    UnlockResult,
    VaultAuthenticator,
    VaultState,
)
from .chaff import ChaffField, add_chaff, remove_chaff
from .records import ItemType, RecordManager, VaultItem
from .session import VaultSession, require_session

logger = logging.getLogger(__name__)


class VaultManager:
    """
    Manages one encrypted vault.

    Security:
    - Key derived from the master password (PBKDF2-SHA256), never stored
      in opaque form; only its exported bytes are kept for verification
    - Each item sealed with AES-256-GCM under a fresh nonce
    - Key held only inside the VaultSession returned by unlock_vault()
    - Audit event for every unlock attempt and every item mutation
    """

    def __init__(
        self,
        store: VaultStore,
        config: Optional[VaultConfig] = None,
        clock: Clock = now_ms,
    ):
        self.config = (config or VaultConfig()).validate()
        self.store = store
        self.clock = clock
        self.audit = AuditLog(store, clock=clock)
        self.auth = VaultAuthenticator(
            store,
            self.audit,
            iterations=self.config.kdf_iterations,
            rotation_days=self.config.rotation_days,
            clock=clock,
        )
        self.records = RecordManager(store, self.audit, clock=clock)
        self.exporter = VaultExporter(store, self.audit, clock=clock)

    @classmethod
    def from_config(cls, config: Optional[VaultConfig] = None, clock: Clock = now_ms) -> "VaultManager":
        """Open (or create) the vault file named by config and set up logging."""
        config = (config or VaultConfig.from_env()).validate()
        configure_logging(config.log_dir, config.log_level_value)
        return cls(VaultStore(config.db_path), config=config, clock=clock)

    # ── Authentication ───────────────────────────────────────────────

    async def initialize_vault(self, password: str) -> bool:
        return await self.auth.initialize(password)

    async def unlock_vault(self, password: str) -> UnlockResult:
        return await self.auth.authenticate(password)

    async def lock_vault(self) -> bool:
        """Invalidate the active session (logout)."""
        return await self.auth.lock()

    async def is_vault_present(self) -> bool:
        """True once a master key exists, i.e. unlocking is required."""
        return await self.auth.is_unlock_required()

    async def is_vault_initialized(self) -> bool:
        return await self.store.get(Namespace.METADATA, META_INITIALIZED) is True

    async def state(self) -> VaultState:
        return await self.auth.state()

    @property
    def session(self) -> Optional[VaultSession]:
        return self.auth.session

    # ── Secondary authentication flags ──────────────────────────────

    async def register_secondary_auth(self, username: str) -> bool:
        """Record that a secondary authenticator was registered for username."""
        await self.store.set(Namespace.METADATA, META_SECONDARY_REGISTERED, True)
        await self.store.set(Namespace.METADATA, META_SECONDARY_USERNAME, username)
        return True

    async def authenticate_secondary(self) -> bool:
        """
        Presence check for a registered secondary authenticator.

        Never unlocks the vault or yields a key.
        """
        registered = await self.store.get(Namespace.METADATA, META_SECONDARY_REGISTERED) is True
        await self.audit.append(EventType.WEBAUTHN_AUTH, {"success": registered})
        return registered

    # ── Items ────────────────────────────────────────────────────────

    async def create_item(
        self,
        session: VaultSession,
        name: str,
        item_type: str = ItemType.PASSWORD.value,
        data: Optional[Dict[str, Any]] = None,
    ) -> str:
        return await self.records.create(session, name, item_type, data)

    async def read_item(self, session: VaultSession, item_id: str) -> Optional[VaultItem]:
        return await self.records.read(session, item_id)

    async def update_item(self, session: VaultSession, item_id: str, updates: Dict[str, Any]) -> VaultItem:
        return await self.records.update(session, item_id, updates)

    async def delete_item(self, session: VaultSession, item_id: str) -> None:
        await self.records.delete(session, item_id)

    async def list_items(self, session: VaultSession) -> List[VaultItem]:
        return await self.records.list_all(session)

    # ── Chaff ────────────────────────────────────────────────────────

    def add_chaff(
        self,
        session: VaultSession,
        fields: Mapping[str, Any],
        ratio: Optional[int] = None,
    ) -> Dict[str, ChaffField]:
        require_session(session)
        return add_chaff(fields, self.config.chaff_ratio if ratio is None else ratio)

    def remove_chaff(self, session: VaultSession, obfuscated: Mapping[str, Any]) -> Dict[str, Any]:
        require_session(session)
        return remove_chaff(obfuscated)

    # ── Export / import / audit ──────────────────────────────────────

    async def export_vault(self) -> Dict[str, Any]:
        return await self.exporter.export_all()

    async def import_vault(self, document: Any) -> Dict[str, int]:
        return await self.exporter.import_all(document)

    async def query_audit_log(self, limit: int = 100, offset: int = 0) -> List[AuditEvent]:
        return await self.audit.query(limit, offset)

    # ── Reset ────────────────────────────────────────────────────────

    async def reset_vault(self) -> None:
        """Delete everything (keys, records, metadata, audit) and lock."""
        self.auth.logout()
        await self.store.clear_all()
        await self.audit.append(EventType.VAULT_RESET, {})
        logger.warning("Vault reset: all namespaces cleared")
