# Core Module - Clock and ID helpers
#
# Timestamps across the vault are integer epoch milliseconds. Components
# take a `clock` callable so tests can drive time deterministically.

import secrets
import string
import time
from typing import Callable

Clock = Callable[[], int]

_BASE36 = string.digits + string.ascii_lowercase

MS_PER_DAY = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def random_suffix(length: int = 7) -> str:
    """Lowercase base36 string from the OS CSPRNG."""
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def make_id(prefix: str, timestamp: int) -> str:
    """Build an id of the form ``<prefix>_<ms>_<suffix>``."""
    return f"{prefix}_{timestamp}_{random_suffix()}"
