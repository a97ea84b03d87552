# Vault - Audit Log
#
# Append-only event log stored in the vault's `audit` namespace.
# Every authentication attempt and every record mutation lands here.
# Each event is mirrored to the structured operational log (structlog,
# JSON lines) so there is a trail outside the vault file as well.
#
# Never put passwords, plaintext payloads, or key bytes in details.

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog

from ..storage.kv_store import Namespace, VaultStore
from .clock import Clock, make_id, now_ms


class EventType(str, Enum):
    """
    Types of events recorded in the audit namespace.

    Values are the stored tags; they match the tags of exported logs.
    """
    # Authentication
    AUTH_INIT = "AUTH_INIT"
    AUTH_ATTEMPT = "AUTH_ATTEMPT"
    AUTH_ERROR = "AUTH_ERROR"
    AUTH_LOGOUT = "AUTH_LOGOUT"
    WEBAUTHN_AUTH = "WEBAUTHN_AUTH"
    KEY_ROTATION_DUE = "KEY_ROTATION_DUE"

    # Records
    ITEM_CREATE = "ITEM_CREATE"
    ITEM_UPDATE = "ITEM_UPDATE"
    ITEM_DELETE = "ITEM_DELETE"

    # Whole-vault
    IMPORT = "IMPORT"
    VAULT_RESET = "VAULT_RESET"


@dataclass
class AuditEvent:
    """One stored audit entry. `id` is the store key."""

    id: str
    type: str
    timestamp: int
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "timestamp": self.timestamp,
            "details": self.details,
        }

    @classmethod
    def from_stored(cls, event_id: str, value: Dict[str, Any]) -> "AuditEvent":
        return cls(
            id=event_id,
            type=value.get("type", ""),
            timestamp=value.get("timestamp", 0),
            details=value.get("details") or {},
        )


# ── Structured operational log ─────────────────────────────────────

_structlog_configured = False
_file_handler: Optional[logging.Handler] = None


def configure_logging(log_dir: Optional[Path] = None, level: int = logging.INFO) -> None:
    """
    Configure structlog over stdlib logging with a daily JSON log file.

    Safe to call repeatedly: structlog is configured once, and the file
    handler is swapped when log_dir changes.
    """
    global _structlog_configured, _file_handler

    if not _structlog_configured:
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _structlog_configured = True

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if log_dir is None:
        return

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    today = datetime.now().strftime("%Y-%m-%d")
    log_file = log_dir / f"audit_{today}.log"

    if _file_handler is not None:
        root_logger.removeHandler(_file_handler)
        _file_handler.close()

    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))  # structlog handles formatting
    root_logger.addHandler(handler)
    _file_handler = handler


class AuditLog:
    """
    Append-only audit log over the store's audit namespace.

    Args:
        store: Vault store holding the audit namespace
        clock: Epoch-millisecond clock used for ids and default timestamps
    """

    def __init__(self, store: VaultStore, clock: Clock = now_ms):
        self.store = store
        self.clock = clock
        self.logger = structlog.get_logger("chaff_vault.audit")

    async def append(
        self,
        event_type: Union[EventType, str],
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[int] = None,
    ) -> AuditEvent:
        """
        Persist one event under ``log_<now>_<suffix>``.

        Returns:
            The stored event, including its id
        """
        tag = event_type.value if isinstance(event_type, EventType) else str(event_type)
        now = self.clock()
        event = AuditEvent(
            id=make_id("log", now),
            type=tag,
            timestamp=timestamp if timestamp is not None else now,
            details=details or {},
        )
        await self.store.set(Namespace.AUDIT, event.id, {
            "type": event.type,
            "timestamp": event.timestamp,
            "details": event.details,
        })

        log_fields = {
            "event_id": event.id,
            "event_type": event.type,
            "event_time": event.timestamp,
            "details": event.details,
        }
        if event.details.get("success") is False or tag == EventType.AUTH_ERROR.value:
            self.logger.warning("vault_event", **log_fields)
        else:
            self.logger.info("vault_event", **log_fields)
        return event

    async def query(self, limit: int = 100, offset: int = 0) -> List[AuditEvent]:
        """
        Page through the log, newest first within the page.

        Entries are enumerated in storage order, the first `offset` are
        skipped, up to `limit` are taken, and only that page is sorted by
        timestamp descending. Events outside the window never displace
        events inside it, even if they are newer.
        """
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")

        page: List[AuditEvent] = []
        skipped = 0
        for event_id, value in await self.store.items(Namespace.AUDIT):
            if skipped < offset:
                skipped += 1
                continue
            if len(page) >= limit:
                break
            page.append(AuditEvent.from_stored(event_id, value))

        page.sort(key=lambda e: e.timestamp, reverse=True)
        return page

    async def count(self) -> int:
        return len(await self.store.list_keys(Namespace.AUDIT))
