"""
Shared pytest fixtures for the chaff-vault test suite.

Autouse fixtures below isolate tests from live data:
  - Operational log -> temp directory  (no stray audit_*.log in the cwd)

Everything else is built per test on tmp_path: a low-iteration config so
PBKDF2 stays fast, a fresh SQLite store, and a deterministic clock.
"""

import logging

import pytest

from chaff_vault.core import VaultConfig, configure_logging
from chaff_vault.storage import VaultStore
from chaff_vault.vault import VaultManager

TEST_PASSWORD = "Str0ng!Pass"

# Start well inside the 13-digit millisecond range so ids built from the
# clock sort lexically in creation order.
FAKE_EPOCH_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-ms clock that advances by `step` on every read."""

    def __init__(self, start: int = FAKE_EPOCH_MS, step: int = 1):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        current = self.now
        self.now += self.step
        return current

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def _isolate_logs(tmp_path):
    """Point the structured log file at a temp directory for every test."""
    import chaff_vault.core.audit_log as audit_mod

    configure_logging(tmp_path / "audit_logs", logging.INFO)

    yield

    handler = audit_mod._file_handler
    if handler is not None:
        logging.getLogger().removeHandler(handler)
        handler.close()
        audit_mod._file_handler = None


@pytest.fixture
def config(tmp_path):
    return VaultConfig(
        data_dir=tmp_path / "data",
        log_dir=tmp_path / "audit_logs",
        kdf_iterations=1000,
    )


@pytest.fixture
def store(config):
    return VaultStore(config.db_path)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(store, config, clock):
    return VaultManager(store, config=config, clock=clock)
