# Tests for the record lifecycle manager
# Covers: create/read/update/delete, encryption at rest, audit events,
#         list ordering, corrupt records, locked sessions, concurrent updates

import asyncio
import re

import pytest

from chaff_vault.core.audit_log import AuditLog, EventType
from chaff_vault.core.exceptions import DecryptionFailed, RecordNotFound, VaultLocked
from chaff_vault.storage import Namespace
from chaff_vault.vault.keys import KeyDerivation
from chaff_vault.vault.records import RecordManager
from chaff_vault.vault.session import VaultSession


@pytest.fixture
def audit(store, clock):
    return AuditLog(store, clock=clock)


@pytest.fixture
def records(store, audit, clock):
    return RecordManager(store, audit, clock=clock)


@pytest.fixture
def session():
    return VaultSession(KeyDerivation.derive_key("Str0ng!Pass", bytes(16), iterations=1000))


async def _events(audit, event_type):
    return [e for e in await audit.query(limit=1000) if e.type == event_type.value]


class TestCreateRead:
    @pytest.mark.asyncio
    async def test_create_returns_item_id(self, records, session):
        item_id = await records.create(session, "Bank", "password", {"username": "alice"})
        assert re.fullmatch(r"item_\d{13}_[0-9a-z]{7}", item_id)

    @pytest.mark.asyncio
    async def test_read_roundtrip(self, records, session):
        item_id = await records.create(session, "Bank", "password", {"username": "alice", "pin": 12})

        item = await records.read(session, item_id)

        assert item.id == item_id
        assert item.name == "Bank"
        assert item.type == "password"
        assert item.data == {"username": "alice", "pin": 12}
        assert item.created_at == item.updated_at

    @pytest.mark.asyncio
    async def test_stored_as_envelope_only(self, records, session, store):
        item_id = await records.create(session, "VisibleName", "note", {"secret": "hunter2"})

        stored = await store.get(Namespace.RECORDS, item_id)

        assert set(stored) == {"ciphertext", "nonce"}
        assert "VisibleName" not in str(stored)
        assert "hunter2" not in str(stored)

    @pytest.mark.asyncio
    async def test_unknown_type_becomes_other(self, records, session):
        item_id = await records.create(session, "Thing", "spaceship")
        assert (await records.read(session, item_id)).type == "other"

    @pytest.mark.asyncio
    async def test_read_missing(self, records, session):
        assert await records.read(session, "item_0_missing") is None

    @pytest.mark.asyncio
    async def test_create_audited(self, records, session, audit):
        item_id = await records.create(session, "Bank", "card")
        [event] = await _events(audit, EventType.ITEM_CREATE)
        assert event.details == {"id": item_id, "type": "card"}

    @pytest.mark.asyncio
    async def test_read_with_other_key_fails(self, records, session):
        item_id = await records.create(session, "Bank")
        other = VaultSession(KeyDerivation.derive_key("Other!Pass1", bytes(16), iterations=1000))
        with pytest.raises(DecryptionFailed):
            await records.read(other, item_id)


class TestUpdate:
    @pytest.mark.asyncio
    async def test_merge(self, records, session):
        item_id = await records.create(session, "Bank", "password", {"username": "alice"})
        original = await records.read(session, item_id)

        updated = await records.update(session, item_id, {"name": "Bank (old)"})

        assert updated.name == "Bank (old)"
        assert updated.data == {"username": "alice"}
        assert updated.created_at == original.created_at
        assert updated.updated_at > original.updated_at
        assert (await records.read(session, item_id)).name == "Bank (old)"

    @pytest.mark.asyncio
    async def test_data_replaced_whole(self, records, session):
        item_id = await records.create(session, "Bank", "password", {"a": 1, "b": 2})
        updated = await records.update(session, item_id, {"data": {"c": 3}})
        assert updated.data == {"c": 3}

    @pytest.mark.asyncio
    async def test_managed_fields_ignored(self, records, session):
        item_id = await records.create(session, "Bank")
        original = await records.read(session, item_id)

        updated = await records.update(session, item_id, {"createdAt": 1, "id": "hijack"})

        assert updated.id == item_id
        assert updated.created_at == original.created_at

    @pytest.mark.asyncio
    async def test_missing_item(self, records, session):
        with pytest.raises(RecordNotFound):
            await records.update(session, "item_0_missing", {"name": "x"})

    @pytest.mark.asyncio
    async def test_update_audited(self, records, session, audit):
        item_id = await records.create(session, "Bank")
        await records.update(session, item_id, {"name": "x"})
        [event] = await _events(audit, EventType.ITEM_UPDATE)
        assert event.details == {"id": item_id}

    @pytest.mark.asyncio
    async def test_concurrent_updates_both_apply(self, records, session):
        item_id = await records.create(session, "Bank", "password", {"a": 1})

        await asyncio.gather(
            records.update(session, item_id, {"name": "Renamed"}),
            records.update(session, item_id, {"type": "note"}),
        )

        item = await records.read(session, item_id)
        assert item.name == "Renamed"
        assert item.type == "note"


    @pytest.mark.asyncio
    async def test_lock_entries_released(self, records, session):
        item_id = await records.create(session, "Bank")

        with pytest.raises(RecordNotFound):
            await records.update(session, "item_0_missing", {"name": "x"})
        await asyncio.gather(*(records.update(session, item_id, {"name": str(i)}) for i in range(3)))
        await records.delete(session, item_id)

        assert records._locks == {}

    @pytest.mark.asyncio
    async def test_delete_and_update_share_one_lock(self, records, session, store):
        item_id = await records.create(session, "Bank")

        async with records._record_lock(item_id):
            delete_task = asyncio.create_task(records.delete(session, item_id))
            update_task = asyncio.create_task(records.update(session, item_id, {"name": "late"}))
            await asyncio.sleep(0)

            assert records._locks[item_id][1] == 3
            assert await store.get(Namespace.RECORDS, item_id) is not None

        await delete_task
        with pytest.raises(RecordNotFound):
            await update_task
        assert await store.get(Namespace.RECORDS, item_id) is None
        assert records._locks == {}

class TestDelete:
    @pytest.mark.asyncio
    async def test_delete(self, records, session, audit):
        item_id = await records.create(session, "Bank")

        await records.delete(session, item_id)

        assert await records.read(session, item_id) is None
        [event] = await _events(audit, EventType.ITEM_DELETE)
        assert event.details == {"id": item_id}

    @pytest.mark.asyncio
    async def test_delete_missing_still_audited(self, records, session, audit):
        await records.delete(session, "item_0_missing")
        assert len(await _events(audit, EventType.ITEM_DELETE)) == 1


class TestList:
    @pytest.mark.asyncio
    async def test_newest_updated_first(self, records, session):
        first = await records.create(session, "First")
        second = await records.create(session, "Second")
        await records.update(session, first, {"name": "First (edited)"})

        items = await records.list_all(session)

        assert [i.id for i in items] == [first, second]

    @pytest.mark.asyncio
    async def test_corrupt_record_skipped(self, records, session, store):
        good = await records.create(session, "Good")
        await store.set(Namespace.RECORDS, "item_bad", {"ciphertext": "AAAA", "nonce": "AAAAAAAAAAAAAAAA"})

        items = await records.list_all(session)

        assert [i.id for i in items] == [good]
        outcomes = {o.item_id: o for o in await records.load_all(session)}
        assert not outcomes["item_bad"].ok
        assert isinstance(outcomes["item_bad"].error, DecryptionFailed)
        with pytest.raises(DecryptionFailed):
            await records.read(session, "item_bad")

    @pytest.mark.asyncio
    async def test_empty(self, records, session):
        assert await records.list_all(session) == []


class TestLockedSession:
    @pytest.mark.asyncio
    async def test_operations_require_active_session(self, records, session, store):
        item_id = await records.create(session, "Bank")
        session.invalidate()

        with pytest.raises(VaultLocked):
            await records.create(session, "Another")
        with pytest.raises(VaultLocked):
            await records.read(session, item_id)
        with pytest.raises(VaultLocked):
            await records.update(session, item_id, {"name": "x"})
        with pytest.raises(VaultLocked):
            await records.delete(session, item_id)
        with pytest.raises(VaultLocked):
            await records.list_all(session)

        assert await store.get(Namespace.RECORDS, item_id) is not None
