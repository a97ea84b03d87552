"""Vault export/import - whole-store snapshot of metadata and records.

The export document is plain JSON:

    {"meta": {...}, "data": {id: envelope, ...}, "timestamp": <epoch ms>}

Records stay encrypted, so the file is only useful together with the
vault password. The keys namespace and the audit history are never
exported.

Import is a best-effort merge: entries are upserted one by one and entries
not named in the document are left alone. A failure part-way through
leaves the entries written so far in place; running the same import again
converges to the full merge.
"""

import json
import logging
from typing import Any, Dict

from ..core.audit_log import AuditLog, EventType
from ..core.clock import Clock, now_ms
from ..core.exceptions import DecryptionFailed, ImportCorrupt
from ..storage.kv_store import Namespace, VaultStore
from ..vault.encryption import Envelope

logger = logging.getLogger(__name__)


class VaultExporter:
    """Snapshot and merge the metadata and records namespaces.

    Args:
        store: Vault store to read from / write into.
        audit: Audit log receiving the IMPORT event.
        clock: Epoch-millisecond clock for the export timestamp.
    """

    def __init__(self, store: VaultStore, audit: AuditLog, clock: Clock = now_ms):
        self.store = store
        self.audit = audit
        self.clock = clock

    # ── Export ───────────────────────────────────────────────────────

    async def export_all(self) -> Dict[str, Any]:
        """Return the export document as a dict."""
        meta = await self.store.snapshot(Namespace.METADATA)
        data = await self.store.snapshot(Namespace.RECORDS)
        return {"meta": meta, "data": data, "timestamp": self.clock()}

    async def export_json(self) -> str:
        return json.dumps(await self.export_all())

    # ── Import ───────────────────────────────────────────────────────

    @staticmethod
    def validate_document(doc: Any) -> Dict[str, Any]:
        """Check the document shape before anything is written.

        Raises:
            ImportCorrupt: Missing/invalid meta or data, or a record that
                is not envelope-shaped.
        """
        if not isinstance(doc, dict):
            raise ImportCorrupt("Export document must be a JSON object.")
        meta = doc.get("meta")
        data = doc.get("data")
        if not isinstance(meta, dict) or not isinstance(data, dict):
            raise ImportCorrupt("Export document needs 'meta' and 'data' objects.")
        for item_id, envelope in data.items():
            try:
                Envelope.from_dict(envelope)
            except DecryptionFailed as e:
                raise ImportCorrupt(f"Record {item_id} is not an encrypted envelope: {e}") from e
        return doc

    async def import_all(self, doc: Any) -> Dict[str, int]:
        """Merge an export document into the store.

        Returns:
            {"metaCount": n, "dataCount": m}

        Raises:
            ImportCorrupt: Document does not have the export shape.
            StorageFailure: Backend error part-way through (partial merge).
        """
        doc = self.validate_document(doc)
        meta = doc["meta"]
        data = doc["data"]

        for key, value in meta.items():
            await self.store.set(Namespace.METADATA, key, value)

        for item_id, envelope in data.items():
            await self.store.set(Namespace.RECORDS, item_id, envelope)

        counts = {"metaCount": len(meta), "dataCount": len(data)}
        await self.audit.append(
            EventType.IMPORT,
            {"timestamp": doc.get("timestamp"), **counts},
        )
        logger.info("Imported %d metadata entries and %d records", counts["metaCount"], counts["dataCount"])
        return counts

    async def import_json(self, text: str) -> Dict[str, int]:
        """Parse a JSON export and merge it.

        Raises:
            ImportCorrupt: Text is not valid JSON or has the wrong shape.
        """
        try:
            doc = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise ImportCorrupt(f"Failed to import data. The file may be corrupted: {e}") from e
        return await self.import_all(doc)
