# Storage - Partitioned Key-Value Store
#
# Four isolated namespaces over one SQLite file:
#   keys      exported master-key bytes
#   records   encrypted vault items (one envelope per id)
#   metadata  salt, rotation clock, flags
#   audit     append-only event log
#
# Values are JSON-encoded. Every public method is a coroutine; the blocking
# SQLite work runs on a worker thread with its own connection, so callers
# suspend at each storage call and never block the event loop.

import asyncio
import inspect
import json
import logging
import sqlite3
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from ..core.db import connect as db_connect
from ..core.exceptions import StorageFailure

logger = logging.getLogger(__name__)

Visitor = Callable[[Any, str], Union[Any, Awaitable[Any]]]


class Namespace(str, Enum):
    """Isolated partitions of the vault store (one table each)."""
    KEYS = "keys"
    RECORDS = "records"
    METADATA = "metadata"
    AUDIT = "audit"


class VaultStore:
    """Async key-value store with one SQLite table per namespace.

    Args:
        db_path: Path to the SQLite file. Parent directories are created.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        with db_connect(self.db_path) as conn:
            for ns in Namespace:
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {ns.value} (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                """)
            conn.commit()
        conn.close()

    # ── Sync primitives (run on worker threads) ─────────────────────

    def _execute(self, ns: Namespace, key: Optional[str], fn: Callable[[sqlite3.Connection], Any]):
        table = Namespace(ns).value
        conn = None
        try:
            conn = db_connect(self.db_path)
            result = fn(conn)
            conn.commit()
            return result
        except sqlite3.Error as e:
            where = f"{table}/{key}" if key is not None else table
            logger.error("Vault store operation failed on %s: %s", where, e)
            raise StorageFailure(f"Storage error on {where}: {e}") from e
        finally:
            if conn is not None:
                conn.close()

    def _set_sync(self, ns: Namespace, key: str, value: Any) -> None:
        table = Namespace(ns).value
        encoded = json.dumps(value)
        self._execute(ns, key, lambda conn: conn.execute(
            f"""INSERT INTO {table} (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value""",
            (key, encoded),
        ))

    def _get_sync(self, ns: Namespace, key: str) -> Optional[Any]:
        table = Namespace(ns).value
        row = self._execute(ns, key, lambda conn: conn.execute(
            f"SELECT value FROM {table} WHERE key = ?", (key,)
        ).fetchone())
        if row is None:
            return None
        return json.loads(row[0])

    def _remove_sync(self, ns: Namespace, key: str) -> None:
        table = Namespace(ns).value
        self._execute(ns, key, lambda conn: conn.execute(
            f"DELETE FROM {table} WHERE key = ?", (key,)
        ))

    def _items_sync(self, ns: Namespace) -> List[Tuple[str, Any]]:
        table = Namespace(ns).value
        rows = self._execute(ns, None, lambda conn: conn.execute(
            f"SELECT key, value FROM {table} ORDER BY key"
        ).fetchall())
        return [(key, json.loads(value)) for key, value in rows]

    def _list_keys_sync(self, ns: Namespace) -> List[str]:
        table = Namespace(ns).value
        rows = self._execute(ns, None, lambda conn: conn.execute(
            f"SELECT key FROM {table} ORDER BY key"
        ).fetchall())
        return [row[0] for row in rows]

    def _clear_sync(self, ns: Namespace) -> None:
        table = Namespace(ns).value
        self._execute(ns, None, lambda conn: conn.execute(f"DELETE FROM {table}"))

    # ── Async API ───────────────────────────────────────────────────

    async def set(self, ns: Namespace, key: str, value: Any) -> None:
        """Insert or replace a JSON-serializable value."""
        await asyncio.to_thread(self._set_sync, ns, key, value)

    async def get(self, ns: Namespace, key: str) -> Optional[Any]:
        """Return the stored value, or None when the key is absent."""
        return await asyncio.to_thread(self._get_sync, ns, key)

    async def remove(self, ns: Namespace, key: str) -> None:
        """Delete a key. Removing an absent key is not an error."""
        await asyncio.to_thread(self._remove_sync, ns, key)

    async def list_keys(self, ns: Namespace) -> List[str]:
        return await asyncio.to_thread(self._list_keys_sync, ns)

    async def items(self, ns: Namespace) -> List[Tuple[str, Any]]:
        """Snapshot of (key, value) pairs in key order."""
        return await asyncio.to_thread(self._items_sync, ns)

    async def iterate(self, ns: Namespace, visitor: Visitor) -> Optional[Any]:
        """Call visitor(value, key) for each entry in key order.

        A visitor may be a plain function or a coroutine function. If it
        returns anything other than None, iteration stops and that value
        is returned.
        """
        for key, value in await self.items(ns):
            result = visitor(value, key)
            if inspect.isawaitable(result):
                result = await result
            if result is not None:
                return result
        return None

    async def clear(self, ns: Namespace) -> None:
        await asyncio.to_thread(self._clear_sync, ns)

    async def clear_all(self) -> None:
        for ns in Namespace:
            await self.clear(ns)

    async def snapshot(self, ns: Namespace) -> Dict[str, Any]:
        return dict(await self.items(ns))
