# Tests for the audit log
# Covers: append id/shape, storage, page-then-sort query semantics,
#         paging windows, argument validation, structured log mirror

import json
import re

import pytest

from chaff_vault.core.audit_log import AuditEvent, AuditLog, EventType
from chaff_vault.storage import Namespace


def _json_lines(path):
    return [json.loads(line) for line in path.read_text().splitlines() if line.startswith("{")]


@pytest.fixture
def audit(store, clock):
    return AuditLog(store, clock=clock)


class TestAppend:
    @pytest.mark.asyncio
    async def test_append_returns_event(self, audit, clock):
        event = await audit.append(EventType.ITEM_CREATE, {"id": "item_1", "type": "note"})

        assert re.fullmatch(r"log_\d{13}_[0-9a-z]{7}", event.id)
        assert event.type == "ITEM_CREATE"
        assert event.details == {"id": "item_1", "type": "note"}
        assert event.timestamp < clock.now

    @pytest.mark.asyncio
    async def test_append_persists_to_audit_namespace(self, audit, store):
        event = await audit.append(EventType.AUTH_ATTEMPT, {"success": True})

        stored = await store.get(Namespace.AUDIT, event.id)
        assert stored == {"type": "AUTH_ATTEMPT", "timestamp": event.timestamp, "details": {"success": True}}
        assert await store.list_keys(Namespace.RECORDS) == []

    @pytest.mark.asyncio
    async def test_explicit_timestamp(self, audit):
        event = await audit.append(EventType.IMPORT, {}, timestamp=42)
        assert event.timestamp == 42

    @pytest.mark.asyncio
    async def test_string_tag_accepted(self, audit):
        event = await audit.append("CUSTOM_EVENT")
        assert event.type == "CUSTOM_EVENT"
        assert event.details == {}

    @pytest.mark.asyncio
    async def test_count(self, audit):
        for _ in range(3):
            await audit.append(EventType.ITEM_DELETE, {"id": "x"})
        assert await audit.count() == 3


class TestQuery:
    @pytest.mark.asyncio
    async def test_page_sorted_newest_first(self, audit):
        for ts in (5, 1, 3):
            await audit.append(EventType.ITEM_UPDATE, {}, timestamp=ts)

        events = await audit.query()

        assert [e.timestamp for e in events] == [5, 3, 1]

    @pytest.mark.asyncio
    async def test_offset_and_limit_select_window_before_sorting(self, audit):
        for ts in (10, 20, 30, 40, 50):
            await audit.append(EventType.ITEM_UPDATE, {}, timestamp=ts)

        events = await audit.query(limit=2, offset=1)

        # Storage order is 10..50; the window is the 2nd and 3rd entries.
        assert [e.timestamp for e in events] == [30, 20]

    @pytest.mark.asyncio
    async def test_newer_event_outside_window_not_included(self, audit):
        for ts in (1, 2, 100):
            await audit.append(EventType.ITEM_UPDATE, {}, timestamp=ts)

        events = await audit.query(limit=2)

        assert [e.timestamp for e in events] == [2, 1]

    @pytest.mark.asyncio
    async def test_offset_past_end(self, audit):
        await audit.append(EventType.ITEM_UPDATE)
        assert await audit.query(offset=5) == []

    @pytest.mark.asyncio
    async def test_zero_limit(self, audit):
        await audit.append(EventType.ITEM_UPDATE)
        assert await audit.query(limit=0) == []

    @pytest.mark.asyncio
    async def test_empty_log(self, audit):
        assert await audit.query() == []

    @pytest.mark.asyncio
    async def test_negative_arguments_rejected(self, audit):
        with pytest.raises(ValueError):
            await audit.query(limit=-1)
        with pytest.raises(ValueError):
            await audit.query(offset=-1)

    @pytest.mark.asyncio
    async def test_query_returns_event_objects(self, audit):
        stored = await audit.append(EventType.WEBAUTHN_AUTH, {"success": True})
        [event] = await audit.query()
        assert isinstance(event, AuditEvent)
        assert event.to_dict() == stored.to_dict()


class TestStructuredMirror:
    @pytest.mark.asyncio
    async def test_event_written_to_log_file(self, audit, tmp_path):
        await audit.append(EventType.ITEM_CREATE, {"id": "item_7", "type": "card"})

        log_files = list((tmp_path / "audit_logs").glob("audit_*.log"))
        assert len(log_files) == 1
        records = _json_lines(log_files[0])
        mirrored = [r for r in records if r.get("event") == "vault_event"]
        assert mirrored[-1]["event_type"] == "ITEM_CREATE"
        assert mirrored[-1]["details"] == {"id": "item_7", "type": "card"}

    @pytest.mark.asyncio
    async def test_failure_logged_as_warning(self, audit, tmp_path):
        await audit.append(EventType.AUTH_ATTEMPT, {"success": False})

        [log_file] = (tmp_path / "audit_logs").glob("audit_*.log")
        records = _json_lines(log_file)
        assert records[-1]["level"] == "warning"
