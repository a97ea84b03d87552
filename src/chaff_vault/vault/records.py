# Vault - Record Lifecycle
#
# CRUD over vault items. Each item is stored as one AES-256-GCM envelope
# under its id in the `records` namespace; plaintext never reaches the
# store. Every create/update/delete appends exactly one audit event.
#
# Stored plaintext shape (JSON): {name, type, data, createdAt, updatedAt}

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.audit_log import AuditLog, EventType
from ..core.clock import Clock, make_id, now_ms
from ..core.exceptions import DecryptionFailed, RecordNotFound
from ..storage.kv_store import Namespace, VaultStore
from .encryption import EncryptionService, Envelope
from .session import VaultSession, require_session

logger = logging.getLogger(__name__)

# Fields a caller may change through update(); timestamps are managed here.
MUTABLE_FIELDS = ("name", "type", "data")


class ItemType(str, Enum):
    PASSWORD = "password"
    NOTE = "note"
    CARD = "card"
    OTHER = "other"


@dataclass
class VaultItem:
    """Decrypted vault item. Only exists in memory."""

    id: str
    name: str
    type: str
    created_at: int
    updated_at: int
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """Plaintext shape that gets sealed (id is the store key, not payload)."""
        return {
            "name": self.name,
            "type": self.type,
            "data": self.data,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.to_payload()}

    @classmethod
    def from_payload(cls, item_id: str, payload: Dict[str, Any]) -> "VaultItem":
        if not isinstance(payload, dict):
            raise DecryptionFailed(f"Item {item_id} payload is not an object")
        return cls(
            id=item_id,
            name=payload.get("name", ""),
            type=payload.get("type", ItemType.OTHER.value),
            created_at=payload.get("createdAt", 0),
            updated_at=payload.get("updatedAt", 0),
            data=payload.get("data") or {},
        )


@dataclass
class ItemOutcome:
    """Per-item result of a bulk load: an item or the error that hid it."""

    item_id: str
    item: Optional[VaultItem] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.item is not None


def normalize_item_type(value: Any) -> str:
    """Map a requested type onto password/note/card/other."""
    try:
        return ItemType(value).value
    except ValueError:
        return ItemType.OTHER.value


class RecordManager:
    """
    Encrypted item storage bound to one store and audit log.

    Methods take the VaultSession explicitly; a closed session raises
    VaultLocked before any storage access.

    update() and delete() hold a per-item asyncio.Lock so concurrent
    read-merge-write cycles on the same id cannot lose updates.
    """

    def __init__(self, store: VaultStore, audit: AuditLog, clock: Clock = now_ms):
        self.store = store
        self.audit = audit
        self.clock = clock
        # item id -> [lock, number of holders and waiters]
        self._locks: Dict[str, list] = {}

    @asynccontextmanager
    async def _record_lock(self, item_id: str):
        """Hold the lock for one item id; the entry is dropped with its last user."""
        entry = self._locks.get(item_id)
        if entry is None:
            entry = [asyncio.Lock(), 0]
            self._locks[item_id] = entry
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[item_id]

    async def _load(self, session: VaultSession, item_id: str) -> Optional[VaultItem]:
        stored = await self.store.get(Namespace.RECORDS, item_id)
        if stored is None:
            return None
        envelope = Envelope.from_dict(stored)
        payload = EncryptionService.open_json(session.key, envelope)
        return VaultItem.from_payload(item_id, payload)

    async def _save(self, session: VaultSession, item: VaultItem) -> None:
        envelope = EncryptionService.seal_json(session.key, item.to_payload())
        await self.store.set(Namespace.RECORDS, item.id, envelope.to_dict())

    async def create(
        self,
        session: VaultSession,
        name: str,
        item_type: str = ItemType.PASSWORD.value,
        data: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Encrypt and store a new item.

        Returns:
            The generated item id (``item_<ms>_<suffix>``)
        """
        require_session(session)
        now = self.clock()
        item = VaultItem(
            id=make_id("item", now),
            name=name,
            type=normalize_item_type(item_type),
            created_at=now,
            updated_at=now,
            data=dict(data or {}),
        )
        await self._save(session, item)

        await self.audit.append(
            EventType.ITEM_CREATE,
            {"id": item.id, "type": item.type},
            timestamp=now,
        )
        logger.debug("Created vault item %s", item.id)
        return item.id

    async def read(self, session: VaultSession, item_id: str) -> Optional[VaultItem]:
        """
        Decrypt one item.

        Returns:
            The item, or None if no such id is stored

        Raises:
            DecryptionFailed: stored envelope is corrupt or the key is wrong
        """
        require_session(session)
        return await self._load(session, item_id)

    async def update(self, session: VaultSession, item_id: str, updates: Dict[str, Any]) -> VaultItem:
        """
        Shallow-merge updates into an item and reseal it.

        Only name, type and data are taken from updates; data is replaced
        as a whole, not merged key by key.

        Raises:
            RecordNotFound: no item with this id
            DecryptionFailed: existing item cannot be opened
        """
        require_session(session)
        async with self._record_lock(item_id):
            item = await self._load(session, item_id)
            if item is None:
                raise RecordNotFound(item_id)

            for name in MUTABLE_FIELDS:
                if name not in updates:
                    continue
                value = updates[name]
                if name == "type":
                    value = normalize_item_type(value)
                elif name == "data":
                    value = dict(value or {})
                setattr(item, name, value)
            item.updated_at = self.clock()

            await self._save(session, item)

        await self.audit.append(EventType.ITEM_UPDATE, {"id": item_id})
        return item

    async def delete(self, session: VaultSession, item_id: str) -> None:
        """Remove an item. Succeeds whether or not the id exists."""
        require_session(session)
        async with self._record_lock(item_id):
            await self.store.remove(Namespace.RECORDS, item_id)

        await self.audit.append(EventType.ITEM_DELETE, {"id": item_id})

    async def load_all(self, session: VaultSession) -> List[ItemOutcome]:
        """Open every stored item, capturing failures per item."""
        require_session(session)
        outcomes: List[ItemOutcome] = []
        for item_id, stored in await self.store.items(Namespace.RECORDS):
            try:
                payload = EncryptionService.open_json(session.key, Envelope.from_dict(stored))
                outcomes.append(ItemOutcome(item_id, item=VaultItem.from_payload(item_id, payload)))
            except DecryptionFailed as e:
                outcomes.append(ItemOutcome(item_id, error=e))
        return outcomes

    async def list_all(self, session: VaultSession) -> List[VaultItem]:
        """
        All readable items, newest updatedAt first.

        Items that fail to decrypt are left out so one corrupt record
        cannot hide the rest of the vault.
        """
        outcomes = await self.load_all(session)
        skipped = [o.item_id for o in outcomes if not o.ok]
        if skipped:
            logger.warning("Skipped %d unreadable vault item(s): %s", len(skipped), skipped)

        items = [o.item for o in outcomes if o.ok]
        items.sort(key=lambda item: item.updated_at, reverse=True)
        return items
