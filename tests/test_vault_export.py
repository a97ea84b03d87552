# Tests for vault export/import
# Covers: document shape, secrets excluded, merge semantics, idempotence,
#         corrupt documents, JSON text form, partial-merge behaviour

import json

import pytest

from chaff_vault.backup import VaultExporter
from chaff_vault.core.audit_log import AuditLog, EventType
from chaff_vault.core.exceptions import ImportCorrupt, StorageFailure
from chaff_vault.storage import Namespace, VaultStore
from chaff_vault.vault.auth import MASTER_KEY_ID

PASSWORD = "Str0ng!Pass"


@pytest.fixture
def exporter(store, clock):
    return VaultExporter(store, AuditLog(store, clock=clock), clock=clock)


@pytest.fixture
def other_store(tmp_path):
    return VaultStore(tmp_path / "other" / "vault.db")


class TestExport:
    @pytest.mark.asyncio
    async def test_document_shape(self, manager):
        await manager.initialize_vault(PASSWORD)
        session = (await manager.unlock_vault(PASSWORD)).session
        item_id = await manager.create_item(session, "Bank", "password", {"username": "alice"})

        doc = await manager.export_vault()

        assert set(doc) == {"meta", "data", "timestamp"}
        assert isinstance(doc["timestamp"], int)
        assert "authSalt" in doc["meta"]
        assert set(doc["data"]) == {item_id}
        assert set(doc["data"][item_id]) == {"ciphertext", "nonce"}

    @pytest.mark.asyncio
    async def test_master_key_and_audit_not_exported(self, manager):
        await manager.initialize_vault(PASSWORD)

        doc = await manager.export_vault()
        text = json.dumps(doc)

        stored_key = await manager.store.get(Namespace.KEYS, MASTER_KEY_ID)
        assert stored_key not in text
        assert "AUTH_INIT" not in text

    @pytest.mark.asyncio
    async def test_export_json(self, exporter, store):
        await store.set(Namespace.METADATA, "k", "v")
        doc = json.loads(await exporter.export_json())
        assert doc["meta"] == {"k": "v"}
        assert doc["data"] == {}


class TestImport:
    @pytest.mark.asyncio
    async def test_import_into_empty_store(self, exporter, store, other_store, clock):
        await store.set(Namespace.METADATA, "authSalt", "00" * 16)
        await store.set(Namespace.RECORDS, "item_1", {"ciphertext": "YWJj", "nonce": "AAAAAAAAAAAAAAAA"})
        doc = await exporter.export_all()

        target = VaultExporter(other_store, AuditLog(other_store, clock=clock), clock=clock)
        counts = await target.import_all(doc)

        assert counts == {"metaCount": 1, "dataCount": 1}
        assert await other_store.snapshot(Namespace.METADATA) == doc["meta"]
        assert await other_store.snapshot(Namespace.RECORDS) == doc["data"]

    @pytest.mark.asyncio
    async def test_merge_keeps_unlisted_entries(self, exporter, store):
        await store.set(Namespace.RECORDS, "item_local", {"ciphertext": "YWJj", "nonce": "AAAAAAAAAAAAAAAA"})
        doc = {
            "meta": {"flag": True},
            "data": {"item_imported": {"ciphertext": "ZGVm", "nonce": "AAAAAAAAAAAAAAAA"}},
            "timestamp": 1,
        }

        await exporter.import_all(doc)

        assert set(await store.list_keys(Namespace.RECORDS)) == {"item_local", "item_imported"}
        assert await store.get(Namespace.METADATA, "flag") is True

    @pytest.mark.asyncio
    async def test_import_overwrites_same_ids(self, exporter, store):
        await store.set(Namespace.RECORDS, "item_1", {"ciphertext": "b2xk", "nonce": "AAAAAAAAAAAAAAAA"})
        new = {"ciphertext": "bmV3", "nonce": "AAAAAAAAAAAAAAAA"}

        await exporter.import_all({"meta": {}, "data": {"item_1": new}})

        assert await store.get(Namespace.RECORDS, "item_1") == new

    @pytest.mark.asyncio
    async def test_idempotent(self, manager):
        await manager.initialize_vault(PASSWORD)
        session = (await manager.unlock_vault(PASSWORD)).session
        await manager.create_item(session, "Bank")
        doc = await manager.export_vault()

        await manager.import_vault(doc)
        once_meta = await manager.store.snapshot(Namespace.METADATA)
        once_data = await manager.store.snapshot(Namespace.RECORDS)
        await manager.import_vault(doc)

        assert await manager.store.snapshot(Namespace.METADATA) == once_meta
        assert await manager.store.snapshot(Namespace.RECORDS) == once_data

    @pytest.mark.asyncio
    async def test_deleted_item_restored_and_readable(self, manager):
        await manager.initialize_vault(PASSWORD)
        session = (await manager.unlock_vault(PASSWORD)).session
        item_id = await manager.create_item(session, "Bank", "password", {"username": "alice"})
        doc = await manager.export_vault()

        await manager.delete_item(session, item_id)
        await manager.import_vault(doc)

        item = await manager.read_item(session, item_id)
        assert item.name == "Bank"
        assert item.data == {"username": "alice"}

    @pytest.mark.asyncio
    async def test_import_audited(self, exporter):
        await exporter.import_all({"meta": {"a": 1, "b": 2}, "data": {}, "timestamp": 99})

        [event] = [e for e in await exporter.audit.query() if e.type == EventType.IMPORT.value]
        assert event.details == {"timestamp": 99, "metaCount": 2, "dataCount": 0}


class TestCorruptDocuments:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("doc", [
        None,
        [],
        "text",
        {"meta": {}},
        {"data": {}},
        {"meta": [], "data": {}},
        {"meta": {}, "data": {"item_1": "not an envelope"}},
        {"meta": {}, "data": {"item_1": {"ciphertext": "abc"}}},
    ])
    async def test_rejected_without_writes(self, exporter, store, doc):
        with pytest.raises(ImportCorrupt):
            await exporter.import_all(doc)

        assert await store.list_keys(Namespace.METADATA) == []
        assert await store.list_keys(Namespace.RECORDS) == []
        assert await store.list_keys(Namespace.AUDIT) == []

    @pytest.mark.asyncio
    async def test_bad_json_text(self, exporter):
        with pytest.raises(ImportCorrupt):
            await exporter.import_json("{not json")

    @pytest.mark.asyncio
    async def test_json_text_roundtrip(self, exporter, store):
        await store.set(Namespace.METADATA, "x", 1)
        text = await exporter.export_json()
        await store.clear(Namespace.METADATA)

        counts = await exporter.import_json(text)

        assert counts["metaCount"] == 1
        assert await store.get(Namespace.METADATA, "x") == 1


class TestPartialMerge:
    @pytest.mark.asyncio
    async def test_failure_leaves_earlier_writes(self, exporter, store, monkeypatch):
        real_set = store.set
        calls = {"records": 0}

        async def flaky_set(ns, key, value):
            if ns == Namespace.RECORDS:
                calls["records"] += 1
                if calls["records"] == 2:
                    raise StorageFailure("disk full")
            await real_set(ns, key, value)

        monkeypatch.setattr(store, "set", flaky_set)
        envelope = {"ciphertext": "YWJj", "nonce": "AAAAAAAAAAAAAAAA"}
        doc = {"meta": {"m": 1}, "data": {"item_a": envelope, "item_b": envelope}}

        with pytest.raises(StorageFailure):
            await exporter.import_all(doc)

        assert await store.get(Namespace.METADATA, "m") == 1
        assert await store.get(Namespace.RECORDS, "item_a") == envelope
        assert await store.get(Namespace.RECORDS, "item_b") is None

        monkeypatch.setattr(store, "set", real_set)
        await exporter.import_all(doc)
        assert await store.get(Namespace.RECORDS, "item_b") == envelope
